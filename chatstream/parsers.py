"""Post-processing parsers applied to the committed content buffer.

A parser takes the concatenated answer text and returns the value stored
in the assistant message. Non-string input is passed through untouched.
"""
import json
import re
from typing import Any, Callable, Dict, List

ContentParser = Callable[[Any], Any]

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)
_BARE_JSON = re.compile(r"\{[\s\S]*\}|\[[\s\S]*\]")
_THINKING_TAG = re.compile(r"<thinking>([\s\S]*?)</thinking>", re.IGNORECASE)
_REASONING_SECTION = re.compile(r"(?:reasoning|thinking):\s*([\s\S]*?)(?:\n\n|$)", re.IGNORECASE)
_URL = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+", re.IGNORECASE)
_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def json_content(content: Any) -> Any:
    """Decode JSON from the whole text, a fenced block, or the first {...}/[...] span.

    Returns the original text when nothing decodes.
    """
    if not isinstance(content, str):
        return content
    candidates = [content.strip()]
    fenced = _FENCED_JSON.search(content)
    if fenced:
        candidates.append(fenced.group(1).strip())
    bare = _BARE_JSON.search(content)
    if bare:
        candidates.append(bare.group(0))
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return content


def xml(tag: str) -> ContentParser:
    """Parser returning the text inside the first ``<tag>`` element."""
    pattern = re.compile(rf"<{re.escape(tag)}[^>]*>([\s\S]*?)</{re.escape(tag)}>", re.IGNORECASE)

    def parse(content: Any) -> Any:
        if not isinstance(content, str):
            return content
        match = pattern.search(content)
        return match.group(1).strip() if match else content

    return parse


def code_block(language: str = "") -> ContentParser:
    """Parser returning the body of the first fenced code block."""
    lang = f"(?:{re.escape(language)})?" if language else r"\w*"
    pattern = re.compile(rf"```{lang}\s*\n?([\s\S]*?)\n?```", re.IGNORECASE)

    def parse(content: Any) -> Any:
        if not isinstance(content, str):
            return content
        match = pattern.search(content)
        return match.group(1).strip() if match else content

    return parse


def thinking(content: Any) -> str:
    """Reasoning embedded in the answer text, or ``""``."""
    if not isinstance(content, str):
        return ""
    match = _THINKING_TAG.search(content) or _REASONING_SECTION.search(content)
    return match.group(1).strip() if match else ""


def strip_thinking(content: Any) -> Any:
    """The answer text with embedded reasoning removed."""
    if not isinstance(content, str):
        return content
    cleaned = re.sub(r"<thinking>[\s\S]*?</thinking>", "", content, flags=re.IGNORECASE)
    cleaned = re.sub(r"(?:reasoning|thinking):\s*[\s\S]*?(?:\n\n|$)", "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip()


def plain_text(content: Any) -> Any:
    """Strip HTML tags and markdown emphasis, collapse whitespace."""
    if not isinstance(content, str):
        return content
    text = re.sub(r"<[^>]*>", "", content)
    text = re.sub(r"```[\s\S]*?```", "", text)
    text = re.sub(r"\*\*(.*?)\*\*", r"\1", text)
    text = re.sub(r"\*(.*?)\*", r"\1", text)
    text = re.sub(r"__(.*?)__", r"\1", text)
    text = re.sub(r"_(.*?)_", r"\1", text)
    text = re.sub(r"`(.*?)`", r"\1", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    return re.sub(r"\s+", " ", text).strip()


def urls(content: Any) -> List[str]:
    if not isinstance(content, str):
        return []
    return _URL.findall(content)


def emails(content: Any) -> List[str]:
    if not isinstance(content, str):
        return []
    return _EMAIL.findall(content)


PARSERS: Dict[str, ContentParser] = {
    "json": json_content,
    "xml": xml,
    "code_block": code_block,
    "thinking": thinking,
    "strip_thinking": strip_thinking,
    "plain_text": plain_text,
    "urls": urls,
    "emails": emails,
}

PARSER_FACTORIES = frozenset({"xml", "code_block"})


def get_parser(name: str) -> ContentParser:
    """Look up a parser by name; factories take an argument as ``name:arg``.

    ``get_parser("xml:answer")`` is ``xml("answer")``.
    """
    name, _, arg = name.partition(":")
    parser = PARSERS.get(name)
    if parser is None:
        available = ", ".join(sorted(PARSERS)) or "(none)"
        raise ValueError(f"Unknown parser '{name}'. Available parsers: {available}")
    if name in PARSER_FACTORIES:
        if name == "xml" and not arg:
            raise ValueError("Parser 'xml' requires a tag name, e.g. 'xml:answer'")
        return parser(arg)
    return parser
