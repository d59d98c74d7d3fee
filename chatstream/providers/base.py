"""Provider adapter contract."""
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from chatstream.demux import CONTENT, THINKING, TOOL_CALLS, USAGE, Extractor
from chatstream.errors import AdapterCapabilityError
from chatstream.models import ChatOptions

JSON_HEADERS = {"Content-Type": "application/json"}

REQUIRED_CAPABILITIES = ("build_wire_request", "parse_content")

# Extended-mode channels in registration order, after content.
OPTIONAL_EXTRACTORS = (
    (THINKING, "parse_thinking"),
    (USAGE, "parse_token_usage"),
    (TOOL_CALLS, "parse_tool_calls"),
)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Capability set a provider implements to plug into the engine.

    Adapters are plain objects; nothing needs to subclass this. Beyond the
    members below an adapter may provide ``parse_thinking``,
    ``parse_token_usage``, ``parse_tool_calls``, ``build_headers``,
    ``build_models_url`` and ``parse_model``. Missing parse functions are
    treated as extractors that never produce a value.

    Every parse function receives one provider-native chunk and must return
    a falsy value instead of raising when the field is absent.
    """

    service_id: str
    is_local: bool

    def build_wire_request(self, options: ChatOptions) -> Dict[str, Any]:
        ...

    def parse_content(self, chunk: Any) -> str:
        ...

    def build_chat_url(self, options: ChatOptions, credential: Optional[str]) -> str:
        ...

    def build_streaming_chat_url(self, options: ChatOptions, credential: Optional[str]) -> str:
        ...


def _never(chunk: Any) -> None:
    return None


def require_capabilities(adapter: Any) -> None:
    """Raise AdapterCapabilityError unless every required capability is callable."""
    service_id = getattr(adapter, "service_id", type(adapter).__name__)
    for name in REQUIRED_CAPABILITIES:
        if not callable(getattr(adapter, name, None)):
            raise AdapterCapabilityError(
                f"Adapter '{service_id}' is missing required capability '{name}'"
            )


def build_extractors(adapter: Any, *, extended: bool) -> Dict[str, Extractor]:
    """Ordered channel extractors for one request."""
    extractors: Dict[str, Extractor] = {CONTENT: adapter.parse_content}
    if extended:
        for channel, attr in OPTIONAL_EXTRACTORS:
            extractor = getattr(adapter, attr, None)
            extractors[channel] = extractor if callable(extractor) else _never
    return extractors


def build_headers(adapter: Any, credential: Optional[str]) -> Dict[str, str]:
    builder = getattr(adapter, "build_headers", None)
    if callable(builder):
        return builder(credential)
    return dict(JSON_HEADERS)
