"""Chat engine: one conversation, one provider adapter."""
import functools
import logging
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from chatstream.cancellation import CANCELLED, CancellationToken
from chatstream.config import EngineConfig
from chatstream.credentials import CredentialProvider, EnvCredentialProvider
from chatstream.demux import CONTENT, THINKING, TOOL_CALLS, USAGE, StreamDemultiplexer, commit_buffers
from chatstream.errors import ChatStreamError
from chatstream.history import serialize_for_provider
from chatstream.models import (
    Attachment,
    ChatOptions,
    Conversation,
    ModelInfo,
    ReconciledResponse,
    UsageRecord,
)
from chatstream.orchestrator import ExtendedStream
from chatstream.parsers import PARSERS, ContentParser, get_parser
from chatstream.providers.base import build_extractors, build_headers, require_capabilities
from chatstream.transport import iter_sse_records, open_stream, request_json
from chatstream.usage import coerce_usage_record, parse_usage

logger = logging.getLogger(__name__)

# Options accepted per request in addition to the EngineConfig fields.
REQUEST_ONLY_OPTIONS = frozenset({"tools"})
PARSER_OPTIONS = frozenset({"parser", "json_output"})


def resolve_parser(config: EngineConfig) -> Optional[ContentParser]:
    """Content parser selected by configuration, if any."""
    if config.parser:
        return get_parser(config.parser)
    if config.json_output:
        return PARSERS["json"]
    return None


class ChatEngine:
    """Sends a conversation to one provider and commits the replies.

    Usage:
        async with ChatEngine(GoogleAdapter(), config=EngineConfig.from_env()) as engine:
            stream = await engine.chat("Hello", stream=True, think=True)
            async for event in stream:
                print(event.type, event.content)
            response = await stream.complete()

    The return type of ``send`` depends on the request mode:
      stream + extended -> ExtendedStream
      stream            -> async iterator of content deltas
      extended          -> ReconciledResponse
      plain             -> the (parsed) content

    At most one request may be in flight per engine.
    """

    def __init__(
        self,
        adapter: Any,
        *,
        config: Optional[EngineConfig] = None,
        credentials: Optional[CredentialProvider] = None,
        conversation: Optional[Conversation] = None,
        client: Optional[httpx.AsyncClient] = None,
        parser: Optional[ContentParser] = None,
    ):
        require_capabilities(adapter)
        self.adapter = adapter
        self.config = config or EngineConfig(service=adapter.service_id)
        if credentials is None:
            env_vars = {adapter.service_id: self.config.api_key_env} if self.config.api_key_env else None
            credentials = EnvCredentialProvider(env_vars)
        self.credentials = credentials
        self.conversation = conversation or Conversation()
        self.parser = parser if parser is not None else resolve_parser(self.config)
        self._client = client
        self._owns_client = client is None
        self._token: Optional[CancellationToken] = None

    @property
    def service_id(self) -> str:
        return self.adapter.service_id

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._client

    @property
    def in_flight(self) -> bool:
        return self._token is not None

    async def aclose(self) -> None:
        if self._token is not None:
            self._token.cancel("engine closed")
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ChatEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # -- requests --------------------------------------------------------

    async def chat(self, text: str, attachments: Optional[List[Attachment]] = None, **overrides: Any) -> Any:
        """Append a user message and send the conversation."""
        self.conversation.user(text, attachments)
        return await self.send(**overrides)

    def abort(self, reason: str = "aborted") -> bool:
        """Cancel the in-flight request; nothing from it is committed."""
        if self._token is None:
            return False
        logger.info("Aborting in-flight request: %s", reason)
        self._token.cancel(reason)
        return True

    async def send(self, **overrides: Any) -> Any:
        """Send the conversation with config defaults plus ``overrides``."""
        require_capabilities(self.adapter)
        request_id = str(uuid.uuid4())[:8]
        settings, options, extended = self._prepare(overrides)
        parser = resolve_parser(settings) if PARSER_OPTIONS & set(overrides) else self.parser

        credential = await self.credentials.get_credential(self.service_id, settings.session_id)
        if credential is None:
            logger.warning(
                "[%s] No credential for service '%s', sending unauthenticated request",
                request_id, self.service_id,
            )
        headers = build_headers(self.adapter, credential)
        body = self.adapter.build_wire_request(options)
        logger.info(
            "[%s] Send: service=%s model=%s stream=%s extended=%s messages=%d",
            request_id, self.service_id, options.model, options.stream, extended, len(options.messages),
        )

        if options.stream:
            url = self.adapter.build_streaming_chat_url(options, credential)
            return await self._send_streaming(url, body, headers, settings, options, extended, parser, request_id)

        url = self.adapter.build_chat_url(options, credential)
        token = self._begin(None)
        try:
            data = await token.until_cancelled(request_json(
                self.client, "POST", url,
                body=body, headers=headers,
                error_message="Failed to send request", request_id=request_id,
            ))
        finally:
            self._finish(token)

        if data is CANCELLED:
            logger.info("[%s] Request aborted (%s)", request_id, token.reason)
            if extended:
                return ReconciledResponse(
                    service_id=self.service_id,
                    options=self._request_options(options),
                    messages=self.conversation.snapshot(),
                    aborted=True,
                )
            return ""
        if extended:
            return self._extended_response(data, options, parser, request_id)
        return self._response(data, parser)

    def _prepare(self, overrides: Dict[str, Any]) -> Tuple[EngineConfig, ChatOptions, bool]:
        unknown = set(overrides) - set(EngineConfig.model_fields) - REQUEST_ONLY_OPTIONS
        if unknown:
            raise ValueError(f"Unknown request options: {', '.join(sorted(unknown))}")
        updates = {k: v for k, v in overrides.items() if k in EngineConfig.model_fields}
        settings = EngineConfig.model_validate({**self.config.model_dump(), **updates})
        tools = overrides.get("tools") or None

        history = serialize_for_provider(self.conversation.messages)
        options = ChatOptions(
            model=settings.model or getattr(self.adapter, "default_model", None) or "",
            system=history.system,
            messages=history.turns,
            stream=settings.stream,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            think=settings.think,
            max_thinking_tokens=settings.max_thinking_tokens,
            tools=tools,
        )
        extended = settings.extended or settings.think or bool(tools)
        return settings, options, extended

    def _request_options(self, options: ChatOptions) -> Dict[str, Any]:
        return options.model_dump(mode="json", exclude={"system", "messages"}, exclude_none=True)

    def _usage_parser(self) -> Callable[[UsageRecord], Any]:
        return functools.partial(
            parse_usage,
            local=bool(getattr(self.adapter, "is_local", False)),
            input_cost_per_token=self.config.input_cost_per_token,
            output_cost_per_token=self.config.output_cost_per_token,
        )

    def _begin(self, deadline: Optional[float]) -> CancellationToken:
        token = CancellationToken()
        if deadline:
            token.cancel_after(deadline)
        self._token = token
        return token

    def _finish(self, token: CancellationToken) -> None:
        token.release()
        if self._token is token:
            self._token = None

    # -- streaming -------------------------------------------------------

    async def _send_streaming(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Dict[str, str],
        settings: EngineConfig,
        options: ChatOptions,
        extended: bool,
        parser: Optional[ContentParser],
        request_id: str,
    ) -> Any:
        token = self._begin(settings.stream_deadline_seconds)
        try:
            response = await open_stream(self.client, url, body=body, headers=headers, request_id=request_id)
        except BaseException:
            self._finish(token)
            raise

        async def close() -> None:
            self._finish(token)
            await response.aclose()

        demux = StreamDemultiplexer(
            iter_sse_records(response, request_id),
            build_extractors(self.adapter, extended=extended),
            conversation=self.conversation,
            parser=parser,
            token=token,
            request_id=request_id,
        )
        if extended:
            return ExtendedStream(
                demux,
                service_id=self.service_id,
                conversation=self.conversation,
                options=self._request_options(options),
                think=options.think,
                usage_parser=self._usage_parser(),
                on_close=close,
                request_id=request_id,
            )
        return self._content_stream(demux, close)

    @staticmethod
    async def _content_stream(
        demux: StreamDemultiplexer,
        close: Callable[[], Awaitable[None]],
    ) -> AsyncIterator[str]:
        try:
            async for event in demux.events():
                if event.type == CONTENT:
                    yield event.content
        finally:
            await close()

    # -- single response -------------------------------------------------

    def _response(self, data: Any, parser: Optional[ContentParser]) -> Any:
        buffers: Dict[str, Any] = {CONTENT: self.adapter.parse_content(data) or ""}
        commit_buffers(self.conversation, buffers, parser)
        return buffers[CONTENT]

    def _extended_response(
        self,
        data: Any,
        options: ChatOptions,
        parser: Optional[ContentParser],
        request_id: str,
    ) -> ReconciledResponse:
        extractors = build_extractors(self.adapter, extended=True)
        usage = None
        record = coerce_usage_record(extractors[USAGE](data))
        if record is not None:
            usage = self._usage_parser()(record)

        buffers: Dict[str, Any] = {CONTENT: extractors[CONTENT](data) or ""}
        thinking = None
        if options.think:
            thinking = extractors[THINKING](data) or ""
            buffers[THINKING] = thinking
        tool_calls = None
        if options.tools:
            tool_calls = list(extractors[TOOL_CALLS](data) or [])
            buffers[TOOL_CALLS] = tool_calls

        commit_buffers(self.conversation, buffers, parser)
        self.conversation.record_usage(usage)
        logger.debug("[%s] Reconciled single response, usage=%s", request_id, usage)
        return ReconciledResponse(
            service_id=self.service_id,
            options=self._request_options(options),
            usage=usage,
            content=buffers[CONTENT],
            thinking=thinking or None,
            tool_calls=tool_calls,
            messages=self.conversation.snapshot(),
        )

    # -- models ----------------------------------------------------------

    async def fetch_models(self) -> List[ModelInfo]:
        """List the models offered by the provider."""
        builder = getattr(self.adapter, "build_models_url", None)
        parse_model = getattr(self.adapter, "parse_model", None)
        if not callable(builder) or not callable(parse_model):
            raise ChatStreamError(f"Adapter '{self.service_id}' does not support listing models")

        credential = await self.credentials.get_credential(self.service_id, self.config.session_id)
        data = await request_json(
            self.client, "GET", builder(credential),
            headers=build_headers(self.adapter, credential),
            error_message="Failed to fetch models",
        )
        if isinstance(data, dict) and isinstance(data.get("models"), list):
            raw_models = data["models"]
        elif isinstance(data, list):
            raw_models = data
        else:
            raw_models = []
        if not raw_models:
            raise ChatStreamError("No models found")
        logger.info("Fetched %d models from %s", len(raw_models), self.service_id)
        return [parse_model(raw) for raw in raw_models]

    async def verify_connection(self) -> bool:
        """True when the provider answers a model listing."""
        try:
            return len(await self.fetch_models()) > 0
        except ChatStreamError as exc:
            logger.warning("Connection check for %s failed: %s", self.service_id, exc)
            return False
