"""Exception types raised by the chat engine."""
from typing import Optional

# Status codes an external caller may reasonably retry.
RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})


class ChatStreamError(Exception):
    """Base exception for all chatstream errors."""


class TransportError(ChatStreamError):
    """The request failed before any streaming began.

    Raised for network failures and non-2xx responses. ``retryable`` is a
    hint for the caller; the engine itself never retries.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        if retryable is None:
            retryable = status_code in RETRYABLE_STATUS_CODES
        self.retryable = retryable


class AdapterCapabilityError(ChatStreamError):
    """A provider adapter is missing a capability that has no safe default."""
