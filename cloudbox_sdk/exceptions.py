"""
Custom exceptions for CloudBox SDK.

This module defines all the exception classes used throughout the SDK.
Retryable failures (transport errors, server errors, "retry later") are
kept apart from fatal ones (protocol violations, expired upload sessions,
authentication failures) so callers can hand only the former to a retry loop.
"""


class CloudBoxError(Exception):
    """Base exception for all CloudBox SDK errors."""

    def __init__(self, message: str, error_code: str = None, details: dict = None, status_code: int = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        # Last known upload session, attached by the chunked upload engine
        self.session = None

    def __str__(self):
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class TransportError(CloudBoxError):
    """Raised when a request could not be delivered (connection, timeout, IO)."""

    def __init__(self, message: str = "Network operation failed", **kwargs):
        super().__init__(message, error_code="TRANSPORT_ERROR", **kwargs)


class ProtocolViolation(CloudBoxError):
    """Raised when a server response breaks the documented API contract."""

    def __init__(self, message: str = "Unexpected server response", server_offset: int = None, **kwargs):
        super().__init__(message, error_code="PROTOCOL_VIOLATION", **kwargs)
        self.server_offset = server_offset


class SessionExpired(CloudBoxError):
    """Raised when the server no longer recognises a chunked upload id."""

    def __init__(self, message: str = "Upload session is unknown to the server", upload_id: str = None, offset: int = None, **kwargs):
        super().__init__(message, error_code="SESSION_EXPIRED", **kwargs)
        self.upload_id = upload_id
        self.offset = offset


class AuthenticationError(CloudBoxError):
    """Raised when the credentials are invalid or expired."""

    def __init__(self, message: str = "Authentication failed", **kwargs):
        kwargs.setdefault("status_code", 401)
        super().__init__(message, error_code="AUTH_ERROR", **kwargs)


class ServerError(CloudBoxError):
    """Raised when the server fails with a 5xx status."""

    def __init__(self, message: str = "Server error", **kwargs):
        super().__init__(message, error_code="SERVER_ERROR", **kwargs)


class RetryLaterError(CloudBoxError):
    """Raised when the server asks the client to back off (503)."""

    def __init__(self, message: str = "Service unavailable, retry later", retry_after: int = None, error_code: str = "RETRY_LATER", **kwargs):
        super().__init__(message, error_code=error_code, **kwargs)
        self.retry_after = retry_after


class RateLimitError(RetryLaterError):
    """Raised when API rate limit is exceeded (429)."""

    def __init__(self, message: str = "Rate limit exceeded", retry_after: int = None, **kwargs):
        super().__init__(message, retry_after=retry_after, error_code="RATE_LIMIT", **kwargs)


class BadRequestError(CloudBoxError):
    """Raised when the server rejects a request as malformed (400)."""

    def __init__(self, message: str = "Bad request", **kwargs):
        kwargs.setdefault("status_code", 400)
        super().__init__(message, error_code="BAD_REQUEST", **kwargs)


class NotFoundError(CloudBoxError):
    """Raised when a remote file or folder does not exist (404)."""

    def __init__(self, message: str = "Not found", path: str = None, **kwargs):
        kwargs.setdefault("status_code", 404)
        super().__init__(message, error_code="NOT_FOUND", **kwargs)
        self.path = path


class NotModifiedError(CloudBoxError):
    """Raised when a folder listing has not changed since the given hash (304)."""

    def __init__(self, message: str = "The folder contents have not changed", **kwargs):
        kwargs.setdefault("status_code", 304)
        super().__init__(message, error_code="NOT_MODIFIED", **kwargs)


class NotAcceptableError(CloudBoxError):
    """Raised when a listing would return too many entries (406)."""

    def __init__(self, message: str = "Not acceptable", **kwargs):
        kwargs.setdefault("status_code", 406)
        super().__init__(message, error_code="NOT_ACCEPTABLE", **kwargs)


class UnsupportedMediaTypeError(CloudBoxError):
    """Raised when a thumbnail or preview cannot be produced for a file (415)."""

    def __init__(self, message: str = "Unsupported media type", **kwargs):
        kwargs.setdefault("status_code", 415)
        super().__init__(message, error_code="UNSUPPORTED_MEDIA_TYPE", **kwargs)


class QuotaExceededError(CloudBoxError):
    """Raised when storage quota is exceeded (507)."""

    def __init__(self, message: str = "Storage quota exceeded", **kwargs):
        kwargs.setdefault("status_code", 507)
        super().__init__(message, error_code="QUOTA_EXCEEDED", **kwargs)


class FileNotFoundError(CloudBoxError):
    """Raised when a local file to upload does not exist."""

    def __init__(self, message: str = "File not found", filename: str = None, **kwargs):
        super().__init__(message, error_code="FILE_NOT_FOUND", **kwargs)
        self.filename = filename


class ValidationError(CloudBoxError):
    """Raised when input validation fails."""

    def __init__(self, message: str = "Validation failed", field: str = None, **kwargs):
        super().__init__(message, error_code="VALIDATION_ERROR", **kwargs)
        self.field = field


class ConfigurationError(CloudBoxError):
    """Raised when SDK configuration is invalid."""

    def __init__(self, message: str = "Invalid configuration", config_key: str = None, **kwargs):
        super().__init__(message, error_code="CONFIG_ERROR", **kwargs)
        self.config_key = config_key
