"""HTTP transport: request dispatch, SSE record framing and error mapping.

All network failures and non-2xx responses surface as TransportError
before any chunk is handed to the caller.
"""
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from chatstream.errors import TransportError

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


def join_url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def _error_detail(response: httpx.Response) -> str:
    """Best-effort server error text from a JSON or plain-text body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if payload.get("message"):
            return str(payload["message"])
    return response.text.strip()


async def raise_for_error_response(response: httpx.Response, message: str) -> None:
    """Raise TransportError for a non-2xx response, closing it first."""
    if response.is_success:
        return
    try:
        await response.aread()
        detail = _error_detail(response)
    finally:
        await response.aclose()
    text = f"{message}: {response.status_code} {response.reason_phrase}"
    if detail:
        text = f"{text} - {detail}"
    raise TransportError(text, status_code=response.status_code)


async def open_stream(
    client: httpx.AsyncClient,
    url: str,
    *,
    body: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
    request_id: str = "-",
) -> httpx.Response:
    """POST ``body`` and return the open streaming response.

    The caller owns the response; iter_sse_records closes it.
    """
    request = client.build_request("POST", url, json=body, headers=headers)
    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        logger.warning("[%s] Stream request failed: %s", request_id, type(exc).__name__)
        raise TransportError(
            f"Failed to stream response: {type(exc).__name__}: {exc}",
            retryable=isinstance(exc, httpx.TransportError),
        ) from exc
    await raise_for_error_response(response, "Failed to stream response")
    logger.debug("[%s] Stream opened with status %d", request_id, response.status_code)
    return response


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    error_message: str = "Failed to fetch response",
    request_id: str = "-",
) -> Any:
    """Send one request and decode its JSON body."""
    request = client.build_request(method, url, json=body, headers=headers)
    try:
        response = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        logger.warning("[%s] Request failed: %s", request_id, type(exc).__name__)
        raise TransportError(
            f"{error_message}: {type(exc).__name__}: {exc}",
            retryable=isinstance(exc, httpx.TransportError),
        ) from exc
    await raise_for_error_response(response, error_message)
    try:
        await response.aread()
    finally:
        await response.aclose()
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(
            f"{error_message}: response body is not valid JSON",
            status_code=response.status_code,
            retryable=False,
        ) from exc


async def iter_sse_records(response: httpx.Response, request_id: str = "-") -> AsyncIterator[Any]:
    """Decode ``data:`` records of a text/event-stream body.

    ``[DONE]`` ends the stream; records that are not valid JSON are skipped.
    The response is closed when iteration stops for any reason.
    """
    try:
        async for line in response.aiter_lines():
            line = line.strip()
            if not line.startswith(SSE_DATA_PREFIX):
                continue
            data = line[len(SSE_DATA_PREFIX):].strip()
            if data == SSE_DONE:
                break
            if not data:
                continue
            try:
                yield json.loads(data)
            except json.JSONDecodeError:
                logger.debug("[%s] Skipping malformed SSE record: %.80s", request_id, data)
    finally:
        await response.aclose()
