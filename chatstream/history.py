"""Serialization of conversation history for provider requests.

Internal-only roles are compacted before transmission:
  thinking, tool_call  -> assistant
  system               -> separate system-instruction list
  user, assistant      -> unchanged
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel

from chatstream.models import ExtendedContent, Message, MessageRole

COMPACTED_ROLES = frozenset({MessageRole.THINKING, MessageRole.TOOL_CALL})


@dataclass
class SerializedHistory:
    """Provider-neutral history: system instructions plus the turn list."""
    system: List[str] = field(default_factory=list)
    turns: List[Dict[str, Any]] = field(default_factory=list)


def _attachments_to_parts(content: ExtendedContent) -> List[Dict[str, Any]]:
    parts = [attachment.to_part() for attachment in content.attachments]
    parts.append({"type": content.type, "text": content.text})
    return parts


def normalize_content(content: Any) -> Any:
    """Convert message content to a string or a list of typed parts."""
    if isinstance(content, dict) and isinstance(content.get("text"), str):
        content = ExtendedContent.model_validate(content)
    if isinstance(content, ExtendedContent):
        if content.attachments:
            return _attachments_to_parts(content)
        return content.text
    if isinstance(content, str):
        return content
    if isinstance(content, BaseModel):
        return content.model_dump_json(exclude_none=True)
    return json.dumps(content)


def serialize_for_provider(messages: Iterable[Message]) -> SerializedHistory:
    """Build the wire-neutral history for a provider request.

    Pure: the input messages are never mutated, so calling this twice on the
    same conversation yields equal output.
    """
    history = SerializedHistory()
    for message in messages:
        content = normalize_content(message.content)
        if message.role == MessageRole.SYSTEM:
            history.system.append(content if isinstance(content, str) else json.dumps(content))
            continue
        if message.role in COMPACTED_ROLES:
            role = MessageRole.ASSISTANT.value
        else:
            role = message.role.value
        history.turns.append({"role": role, "content": content})
    return history
