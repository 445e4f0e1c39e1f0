"""
CloudBox SDK - Python client for the CloudBox file storage API.

This package provides:
- OAuth 1.0 request signing (HMAC-SHA1 and PLAINTEXT)
- Resumable chunked uploads with offset reconciliation and retries
- Single-shot file upload and download calls
- A CLI for uploads, downloads and credential setup
"""

__version__ = "1.0.0"
__author__ = "CloudBox Team"

from .client import CloudBoxClient
from .auth import (
    OAuthSigner,
    TokenProvider,
    StaticTokenProvider,
    EnvironmentTokenProvider,
    CredentialManager,
)
from .models import (
    Credentials,
    Token,
    TokenKind,
    SignatureMethod,
    SignedRequest,
    ResponseEnvelope,
    UploadSession,
    ChunkAccepted,
    OffsetCorrection,
    UnknownSession,
    FileMetadata,
    UploadProgress,
)
from .retry import RetryExecutor, retry_with_backoff
from .transport import RequestsTransport
from .upload import ChunkedUploadEngine
from .exceptions import (
    CloudBoxError,
    TransportError,
    ProtocolViolation,
    SessionExpired,
    AuthenticationError,
    ServerError,
    RetryLaterError,
    RateLimitError,
    BadRequestError,
    NotFoundError,
    NotModifiedError,
    QuotaExceededError,
    ConfigurationError,
    ValidationError,
)

__all__ = [
    # Main client
    "CloudBoxClient",

    # Signing and credentials
    "OAuthSigner",
    "TokenProvider",
    "StaticTokenProvider",
    "EnvironmentTokenProvider",
    "CredentialManager",

    # Data models
    "Credentials",
    "Token",
    "TokenKind",
    "SignatureMethod",
    "SignedRequest",
    "ResponseEnvelope",
    "UploadSession",
    "ChunkAccepted",
    "OffsetCorrection",
    "UnknownSession",
    "FileMetadata",
    "UploadProgress",

    # Transfer machinery
    "RetryExecutor",
    "retry_with_backoff",
    "RequestsTransport",
    "ChunkedUploadEngine",

    # Exceptions
    "CloudBoxError",
    "TransportError",
    "ProtocolViolation",
    "SessionExpired",
    "AuthenticationError",
    "ServerError",
    "RetryLaterError",
    "RateLimitError",
    "BadRequestError",
    "NotFoundError",
    "NotModifiedError",
    "QuotaExceededError",
    "ConfigurationError",
    "ValidationError",
]
