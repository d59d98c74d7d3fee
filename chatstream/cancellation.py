"""Cooperative cancellation for in-flight requests."""
import asyncio
import logging
from typing import Any, Awaitable, Optional

logger = logging.getLogger(__name__)

# Returned by CancellationToken.until_cancelled when the token won the race.
CANCELLED = object()


class CancellationToken:
    """One-shot abort signal shared by the engine and the stream reader.

    Cancelling is idempotent. A deadline is just a cancel scheduled on
    the running loop.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._timer: Optional[asyncio.TimerHandle] = None
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "aborted") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        self._clear_timer()

    def cancel_after(self, seconds: float) -> None:
        """Arm a deadline; the token cancels itself once it expires."""
        self._clear_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(seconds, self.cancel, f"deadline of {seconds}s exceeded")

    async def wait(self) -> None:
        await self._event.wait()

    async def until_cancelled(self, awaitable: Awaitable[Any]) -> Any:
        """Await ``awaitable`` unless the token fires first.

        Returns the awaitable's result, or CANCELLED after cancelling the
        pending work. Exceptions raised by the work propagate.
        """
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.debug("Pending work failed while being cancelled", exc_info=True)
        return CANCELLED

    def release(self) -> None:
        """Drop any pending deadline without cancelling."""
        self._clear_timer()

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
