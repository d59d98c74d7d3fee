"""Stream demultiplexer.

Splits an incremental stream of provider-native chunks into named
channels, accumulates one buffer per channel and commits the buffers to
the conversation once the stream ends naturally.

Accumulation is fixed by channel name:
  content, thinking  -> text, concatenated
  tool_calls         -> list, extended with each non-empty batch
  usage              -> scalar, last write wins
Unknown channel names use the text rule.
"""
import logging
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, Iterator, Mapping, Optional

from pydantic import BaseModel

from chatstream.cancellation import CANCELLED, CancellationToken
from chatstream.errors import AdapterCapabilityError
from chatstream.models import ChannelName, Conversation, MessageRole, StreamEvent

logger = logging.getLogger(__name__)

Extractor = Callable[[Any], Any]
ContentParser = Callable[[Any], Any]

CONTENT = ChannelName.CONTENT.value
THINKING = ChannelName.THINKING.value
USAGE = ChannelName.USAGE.value
TOOL_CALLS = ChannelName.TOOL_CALLS.value
BUFFERS = ChannelName.BUFFERS.value

LIST_CHANNELS = frozenset({TOOL_CALLS})
SCALAR_CHANNELS = frozenset({USAGE})

# Messages are appended in this order regardless of chunk arrival order.
COMMIT_ORDER = (CONTENT, THINKING, TOOL_CALLS)

_EXHAUSTED = object()
_ABORTED = object()


def accumulate(buffers: Dict[str, Any], name: str, value: Any) -> bool:
    """Fold ``value`` into ``buffers[name]``; False if the value was rejected."""
    if name in SCALAR_CHANNELS:
        buffers[name] = value
    elif name in LIST_CHANNELS:
        if not isinstance(value, (list, tuple)) or not value:
            return False
        buffers.setdefault(name, []).extend(value)
    else:
        if not isinstance(value, str):
            return False
        buffers[name] = buffers.get(name, "") + value
    return True


def _has_payload(item: Any) -> bool:
    if isinstance(item, BaseModel):
        return bool(item.model_dump(exclude_none=True))
    return bool(item)


def commit_buffers(
    conversation: Conversation,
    buffers: Dict[str, Any],
    parser: Optional[ContentParser] = None,
) -> None:
    """Append one message per non-empty buffer.

    The parser runs on the content buffer first and its result replaces the
    buffer. Usage is metadata and never becomes a message.
    """
    if parser is not None and CONTENT in buffers:
        buffers[CONTENT] = parser(buffers[CONTENT])

    for name in COMMIT_ORDER:
        value = buffers.get(name)
        if not value:
            continue
        if name == THINKING:
            conversation.add_message(MessageRole.THINKING, value)
        elif name == TOOL_CALLS:
            for tool in value:
                if _has_payload(tool):
                    conversation.add_message(MessageRole.TOOL_CALL, tool)
        else:
            conversation.add_message(MessageRole.ASSISTANT, value)


async def _anext(iterator: AsyncIterator[Any]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _EXHAUSTED


async def _aclose(iterator: AsyncIterator[Any]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


class StreamDemultiplexer:
    """Turns one chunk stream into typed StreamEvents.

    Usage:
        demux = StreamDemultiplexer(chunks, {"content": adapter.parse_content})
        async for event in demux.events():
            ...
        demux.buffers  # final buffers once exhausted

    A stream can be consumed once. When ``conversation`` is given, buffers are
    committed to it exactly once, on natural exhaustion only; a cancelled
    token ends iteration silently without committing.
    """

    def __init__(
        self,
        source: AsyncIterable[Any],
        extractors: Mapping[str, Extractor],
        *,
        conversation: Optional[Conversation] = None,
        parser: Optional[ContentParser] = None,
        token: Optional[CancellationToken] = None,
        request_id: str = "-",
    ):
        if not callable(extractors.get(CONTENT)):
            raise AdapterCapabilityError(
                "A 'content' extractor is required to demultiplex a response stream"
            )
        self._source = source
        self._extractors: Dict[str, Extractor] = dict(extractors)
        self._conversation = conversation
        self._parser = parser
        self._token = token
        self._request_id = request_id
        self._started = False

        self.buffers: Dict[str, Any] = {}
        self.chunk_count = 0
        self.exhausted = False
        self.aborted = False

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield channel deltas, then one final ``buffers`` event."""
        if self._started:
            raise RuntimeError("Response stream has already been consumed")
        self._started = True

        iterator = self._source.__aiter__()
        try:
            while True:
                if self._cancelled:
                    self._mark_aborted()
                    return
                try:
                    chunk = await self._next_chunk(iterator)
                except Exception:
                    if self._cancelled:
                        logger.debug(
                            "[%s] Transport error after abort ignored",
                            self._request_id, exc_info=True,
                        )
                        self._mark_aborted()
                        return
                    raise
                if chunk is _ABORTED:
                    self._mark_aborted()
                    return
                if chunk is _EXHAUSTED:
                    break
                self.chunk_count += 1
                for event in self._extract(chunk):
                    yield event
                    if self._cancelled:
                        self._mark_aborted()
                        return
        finally:
            await _aclose(iterator)

        self.exhausted = True
        if self._conversation is not None:
            commit_buffers(self._conversation, self.buffers, self._parser)
        logger.debug(
            "[%s] Stream exhausted after %d chunks, channels=%s",
            self._request_id, self.chunk_count, sorted(self.buffers),
        )
        yield StreamEvent(type=BUFFERS, content=dict(self.buffers))

    @property
    def _cancelled(self) -> bool:
        return self._token is not None and self._token.cancelled

    def _mark_aborted(self) -> None:
        self.aborted = True
        logger.info(
            "[%s] Stream aborted after %d chunks (%s), buffers discarded",
            self._request_id, self.chunk_count, self._token.reason if self._token else "-",
        )

    def _extract(self, chunk: Any) -> Iterator[StreamEvent]:
        for name, extractor in self._extractors.items():
            try:
                value = extractor(chunk)
            except Exception:
                logger.debug(
                    "[%s] Extractor %r failed on chunk %d, skipping",
                    self._request_id, name, self.chunk_count, exc_info=True,
                )
                continue
            if not value:
                continue
            if not accumulate(self.buffers, name, value):
                logger.debug(
                    "[%s] Rejected %s value of type %s",
                    self._request_id, name, type(value).__name__,
                )
                continue
            yield StreamEvent(type=name, content=value)

    async def _next_chunk(self, iterator: AsyncIterator[Any]) -> Any:
        """Read the next chunk, giving up as soon as the token is cancelled."""
        if self._token is None:
            return await _anext(iterator)
        chunk = await self._token.until_cancelled(_anext(iterator))
        return _ABORTED if chunk is CANCELLED else chunk
