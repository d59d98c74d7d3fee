"""Google Gemini adapter for the generativelanguage REST API.

Request bodies are assembled from google-genai types and serialized with
their camelCase aliases. Response chunks are read as plain dicts, since
streamed records may carry fields newer than the installed SDK.
"""
import base64
import binascii
import json
import logging
import re
import uuid
from typing import Any, Dict, List, Optional

import httpx
from google.genai import types as genai_types
from pydantic import BaseModel

from chatstream.models import ChatOptions, ModelInfo, ToolCall, ToolDefinition, UsageRecord
from chatstream.providers.base import JSON_HEADERS
from chatstream.transport import join_url

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/"
DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_MAX_TOKENS = 4096

_DATA_URL = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _text_part(text: str) -> Dict[str, Any]:
    return _dump(genai_types.Part(text=text))


def _inline_part(mime_type: str, data: str) -> Dict[str, Any]:
    try:
        raw = base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"{mime_type} attachment data is not valid base64: {exc}") from exc
    part = _dump(genai_types.Part(inline_data=genai_types.Blob(mime_type=mime_type, data=raw)))
    # The REST API takes standard base64, as validated above.
    part["inlineData"]["data"] = data
    return part


def _candidate_parts(chunk: Any) -> List[Dict[str, Any]]:
    """Parts of the first candidate, or [] when any level is missing."""
    if not isinstance(chunk, dict):
        return []
    candidates = chunk.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        return []
    content = candidate.get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    if not isinstance(parts, list):
        return []
    return [part for part in parts if isinstance(part, dict)]


class GoogleAdapter:
    """ProviderAdapter for Gemini models.

    The API key travels as the ``key`` query parameter; ``build_headers``
    only sets the content type.
    """

    service_id = "google"
    is_local = False

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        default_model: str = DEFAULT_MODEL,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.base_url = base_url
        self.default_model = default_model
        self.default_max_tokens = default_max_tokens

    # -- request ---------------------------------------------------------

    def build_wire_request(self, options: ChatOptions) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "contents": [self._convert_turn(turn) for turn in options.messages],
        }
        if options.system:
            system = genai_types.Content(parts=[genai_types.Part(text=text) for text in options.system])
            request["systemInstruction"] = _dump(system)

        thinking_config = None
        if options.think:
            thinking_config = genai_types.ThinkingConfig(
                include_thoughts=True,
                thinking_budget=options.max_thinking_tokens,
            )
        generation_config = genai_types.GenerationConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_tokens or self.default_max_tokens,
            thinking_config=thinking_config,
        )
        request["generationConfig"] = _dump(generation_config)

        if options.tools:
            tool = genai_types.Tool(
                function_declarations=[self._convert_tool(t) for t in options.tools]
            )
            request["tools"] = [_dump(tool)]
        return request

    def _convert_turn(self, turn: Dict[str, Any]) -> Dict[str, Any]:
        role = "user" if turn.get("role") == "user" else "model"
        content = turn.get("content")
        if isinstance(content, list):
            parts = [self._convert_part(part) for part in content]
        elif isinstance(content, str):
            parts = [_text_part(content)]
        else:
            parts = [_text_part(json.dumps(content))]
        return {"role": role, "parts": parts}

    def _convert_part(self, part: Any) -> Dict[str, Any]:
        if not isinstance(part, dict):
            return _text_part(str(part))
        kind = part.get("type")
        if kind == "text":
            return _text_part(part.get("text") or "")
        if kind == "document":
            document = part.get("document") or {}
            return _inline_part(document.get("mime_type") or "application/pdf", document.get("data") or "")
        if kind == "image_url":
            url = (part.get("image_url") or {}).get("url") or ""
            match = _DATA_URL.match(url)
            if match:
                return _inline_part(match.group("mime"), match.group("data"))
        # Remote URLs and unknown part types are sent as text.
        logger.debug("Sending %s part as text", kind)
        return _text_part(json.dumps(part))

    @staticmethod
    def _convert_tool(tool: ToolDefinition) -> genai_types.FunctionDeclaration:
        return genai_types.FunctionDeclaration(
            name=tool.name,
            description=tool.description or None,
            parameters_json_schema=tool.input_schema,
        )

    # -- endpoints -------------------------------------------------------

    def _model(self, options: Optional[ChatOptions]) -> str:
        if options is not None and options.model:
            return options.model
        return self.default_model

    @staticmethod
    def _with_params(url: str, params: Dict[str, str]) -> str:
        return str(httpx.URL(url, params=params))

    def build_chat_url(self, options: ChatOptions, credential: Optional[str]) -> str:
        url = join_url(self.base_url, f"models/{self._model(options)}:generateContent")
        return self._with_params(url, {"key": credential} if credential else {})

    def build_streaming_chat_url(self, options: ChatOptions, credential: Optional[str]) -> str:
        url = join_url(self.base_url, f"models/{self._model(options)}:streamGenerateContent")
        params = {"alt": "sse"}
        if credential:
            params["key"] = credential
        return self._with_params(url, params)

    def build_models_url(self, credential: Optional[str]) -> str:
        url = join_url(self.base_url, "models")
        return self._with_params(url, {"key": credential} if credential else {})

    def build_headers(self, credential: Optional[str]) -> Dict[str, str]:
        return dict(JSON_HEADERS)

    # -- response --------------------------------------------------------

    def parse_content(self, chunk: Any) -> str:
        return "".join(
            part["text"] for part in _candidate_parts(chunk)
            if isinstance(part.get("text"), str) and not part.get("thought")
        )

    def parse_thinking(self, chunk: Any) -> str:
        return "".join(
            part["text"] for part in _candidate_parts(chunk)
            if isinstance(part.get("text"), str) and part.get("thought")
        )

    def parse_token_usage(self, chunk: Any) -> Optional[UsageRecord]:
        if not isinstance(chunk, dict):
            return None
        usage = chunk.get("usageMetadata")
        if not isinstance(usage, dict):
            return None
        return UsageRecord(
            input_tokens=usage.get("promptTokenCount") or 0,
            output_tokens=usage.get("candidatesTokenCount") or 0,
            total_tokens=usage.get("totalTokenCount") or 0,
            thinking_tokens=usage.get("thoughtsTokenCount") or 0,
        )

    def parse_tool_calls(self, chunk: Any) -> List[ToolCall]:
        tool_calls = []
        for part in _candidate_parts(chunk):
            call = part.get("functionCall")
            if not isinstance(call, dict) or not call.get("name"):
                continue
            args = call.get("args")
            tool_calls.append(ToolCall(
                id=f"call_{uuid.uuid4().hex[:8]}",
                name=call["name"],
                input=args if isinstance(args, dict) else {},
            ))
        return tool_calls

    def parse_model(self, raw: Dict[str, Any]) -> ModelInfo:
        name = raw.get("name") or ""
        model = name[len("models/"):] if name.startswith("models/") else name
        return ModelInfo(
            model=model,
            name=raw.get("displayName") or model,
            max_input_tokens=raw.get("inputTokenLimit") or 0,
            max_output_tokens=raw.get("outputTokenLimit") or 0,
            supports_reasoning=bool(raw.get("thinking")) or "thinking" in name,
            supports_function_calling=True,
            supports_vision="vision" in name or "pro" in name,
        )
