"""Extended stream orchestration.

Wraps a StreamDemultiplexer, passes its events through unchanged and keeps
the side state needed to build a ReconciledResponse at the end.
"""
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from chatstream.demux import BUFFERS, CONTENT, THINKING, TOOL_CALLS, USAGE, StreamDemultiplexer
from chatstream.models import Conversation, ReconciledResponse, StreamEvent, Usage, UsageRecord
from chatstream.usage import coerce_usage_record, parse_usage

logger = logging.getLogger(__name__)


class ExtendedStream:
    """Async-iterable event feed with a final reconciled snapshot.

    Usage:
        stream = await engine.send(stream=True, think=True)
        async for event in stream:
            render(event)
        response = await stream.complete()

    The terminal ``buffers`` event is consumed here and never re-emitted.
    """

    def __init__(
        self,
        demux: StreamDemultiplexer,
        *,
        service_id: str,
        conversation: Conversation,
        options: Optional[Dict[str, Any]] = None,
        think: bool = False,
        usage_parser: Callable[[UsageRecord], Usage] = parse_usage,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
        request_id: str = "-",
    ):
        self.service_id = service_id
        self.options = options or {}
        self.think = think
        self._demux = demux
        self._conversation = conversation
        self._usage_parser = usage_parser
        self._on_close = on_close
        self._request_id = request_id
        self._discarded = False

        self.usage: Optional[Usage] = None
        self.content: Any = ""
        self.thinking = ""
        self.tool_calls: List[Any] = []

        self._events = self._relay()

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._events

    @property
    def aborted(self) -> bool:
        return self._demux.aborted or self._discarded

    @property
    def exhausted(self) -> bool:
        return self._demux.exhausted

    async def _relay(self) -> AsyncIterator[StreamEvent]:
        events = self._demux.events()
        try:
            async for event in events:
                self._observe(event)
                if event.type == BUFFERS:
                    continue
                yield event
        finally:
            await events.aclose()
            await self._close()

    async def _close(self) -> None:
        on_close, self._on_close = self._on_close, None
        if on_close is not None:
            await on_close()

    async def aclose(self) -> None:
        """Stop reading and release the response without committing."""
        if not self._demux.exhausted:
            self._discarded = True
        await self._events.aclose()
        await self._close()

    def _observe(self, event: StreamEvent) -> None:
        if event.type == USAGE:
            record = coerce_usage_record(event.content)
            if record is not None:
                self.usage = self._usage_parser(record)
        elif event.type == THINKING:
            self.thinking += event.content
        elif event.type == CONTENT:
            self.content += event.content
        elif event.type == TOOL_CALLS:
            self.tool_calls.extend(event.content)
        elif event.type == BUFFERS:
            buffers = event.content
            self.content = buffers.get(CONTENT, "")
            self.thinking = buffers.get(THINKING, "")
            self.tool_calls = list(buffers.get(TOOL_CALLS, []))
            self._conversation.record_usage(self.usage)

    async def complete(self, drain: bool = True) -> ReconciledResponse:
        """Build the final response.

        With ``drain`` the remaining events are consumed first, so the
        result reflects the committed conversation however far the caller
        iterated. Without it the current side state is returned as is.
        """
        if drain:
            async for _ in self._events:
                pass

        if self.aborted:
            logger.debug("[%s] Completing aborted stream", self._request_id)
            return ReconciledResponse(
                service_id=self.service_id,
                options=self.options,
                messages=self._conversation.snapshot(),
                aborted=True,
            )

        return ReconciledResponse(
            service_id=self.service_id,
            options=self.options,
            usage=self.usage,
            content=self.content,
            thinking=(self.thinking or None) if self.think else None,
            tool_calls=self.tool_calls or None,
            messages=self._conversation.snapshot(),
        )
