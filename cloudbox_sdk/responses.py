"""
Response parsing helpers shared by the client and the chunked upload engine.
"""

import json
from typing import Any, Dict, Optional, Tuple

from .exceptions import (
    CloudBoxError, AuthenticationError, BadRequestError, NotFoundError,
    NotModifiedError, NotAcceptableError, UnsupportedMediaTypeError,
    ProtocolViolation, QuotaExceededError, RateLimitError, RetryLaterError,
    ServerError,
)
from .models import ResponseEnvelope


def parse_body(content: bytes) -> Any:
    """Decode a JSON body, falling back to the raw bytes."""
    if not content:
        return b""
    try:
        return json.loads(content)
    except ValueError:
        return content


def error_message(response: ResponseEnvelope) -> str:
    """
    Extract the error message from a response.

    The service reports errors as ``{"error": "..."}`` or as
    ``{"error": {"field": "..."}}``; anything else falls back to the status.
    """
    message = f"HTTP status {response.status_code}"
    body = response.body

    if isinstance(body, dict) and body.get("error"):
        error = body["error"]
        if isinstance(error, dict):
            values = list(error.values())
            return str(values[0]) if values else message
        return str(error)

    if isinstance(body, bytes) and body:
        # First 200 bytes only
        message += "\n" + body[:200].decode("utf-8", errors="replace")

    return message


def offset_correction(response: ResponseEnvelope) -> Optional[Tuple[str, int]]:
    """Return ``(upload_id, offset)`` when the response is an offset-correcting 400."""
    if response.status_code != 400 or not isinstance(response.body, dict):
        return None
    if "upload_id" not in response.body or "offset" not in response.body:
        return None
    return response.body["upload_id"], response.body["offset"]


def upload_state(body: Any) -> Tuple[str, int]:
    """Read ``(upload_id, offset)`` from a successful chunked upload response."""
    if not isinstance(body, dict):
        raise ProtocolViolation(f"Expected a JSON object, got {body!r}")

    for key in ("upload_id", "offset"):
        if key not in body:
            raise ProtocolViolation(f'missing field "{key}" in {body!r}')

    return body["upload_id"], body["offset"]


def unexpected_status(response: ResponseEnvelope) -> CloudBoxError:
    """
    Map a status the caller did not expect to an exception.

    Server-side failures map to retryable classes; anything that is not an
    auth or server failure is a protocol violation.
    """
    sc = response.status_code
    message = error_message(response)
    retry_after = _retry_after(response.headers)

    if sc == 401:
        return AuthenticationError(f"InvalidAccessToken {message}")
    if sc == 429:
        return RateLimitError(message, retry_after=retry_after, status_code=sc)
    if sc == 503:
        return RetryLaterError(message, retry_after=retry_after, status_code=sc)
    if 500 <= sc < 600:
        return ServerError(message, status_code=sc)

    return ProtocolViolation(f"Unexpected {message}", status_code=sc)


_CALL_ERRORS: Dict[int, type] = {
    304: NotModifiedError,
    400: BadRequestError,
    404: NotFoundError,
    406: NotAcceptableError,
    415: UnsupportedMediaTypeError,
    507: QuotaExceededError,
}


def check_response(response: ResponseEnvelope) -> ResponseEnvelope:
    """Raise the matching exception for a failed single-shot API call."""
    if response.ok:
        return response

    error_class = _CALL_ERRORS.get(response.status_code)
    if error_class is not None:
        if response.status_code == 304:
            raise NotModifiedError()
        raise error_class(error_message(response))

    raise unexpected_status(response)


def _retry_after(headers: Dict[str, str]) -> Optional[int]:
    value = headers.get("retry-after")
    if value and value.isdigit():
        return int(value)
    return None
