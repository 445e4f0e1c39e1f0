"""
Data models for CloudBox SDK.

This module defines the data structures shared by the signer, the transport
and the chunked upload engine.
"""

from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass, field, replace
from enum import Enum
from urllib.parse import urlencode, quote

from .exceptions import ConfigurationError, ValidationError


class SignatureMethod(Enum):
    """OAuth signature methods supported by the signer."""
    PLAINTEXT = "PLAINTEXT"
    HMAC_SHA1 = "HMAC-SHA1"

    @classmethod
    def parse(cls, value: Union[str, "SignatureMethod"]) -> "SignatureMethod":
        """Resolve a signature method name, rejecting unknown names."""
        if isinstance(value, cls):
            return value
        for method in cls:
            if method.value == value:
                return method
        raise ConfigurationError(
            f"Unsupported signature method '{value}'. Expected one of: "
            + ", ".join(m.value for m in cls),
            config_key="signature_method",
        )


class TokenKind(Enum):
    """Stage of the OAuth flow a token belongs to."""
    REQUEST = "request_token"
    ACCESS = "access_token"


@dataclass(frozen=True)
class Token:
    """An OAuth token pair."""

    key: str
    secret: str
    kind: TokenKind = TokenKind.ACCESS


@dataclass(frozen=True)
class Credentials:
    """Consumer credentials plus the currently active token, if any."""

    consumer_key: str
    consumer_secret: str
    token: Optional[Token] = None

    @property
    def token_key(self) -> Optional[str]:
        return self.token.key if self.token else None

    @property
    def token_secret(self) -> str:
        return self.token.secret if self.token else ""

    @property
    def is_authorized(self) -> bool:
        """True once an access token is active."""
        return self.token is not None and self.token.kind is TokenKind.ACCESS

    def with_token(self, token: Token) -> "Credentials":
        """
        Return a copy with ``token`` active.

        An access token permanently supersedes the request token, so
        installing a request token over an access token is rejected.
        """
        if self.is_authorized and token.kind is TokenKind.REQUEST:
            raise ValidationError(
                "An access token is already active; a request token cannot replace it",
                field="token",
            )
        return replace(self, token=token)


@dataclass(frozen=True)
class SignedRequest:
    """A signed API call, ready to hand to a transport."""

    method: str
    url: str
    params: Dict[str, str] = field(default_factory=dict)
    signature: str = ""

    @property
    def query_url(self) -> str:
        """The request URL with every parameter in the query string."""
        if not self.params:
            return self.url
        return f"{self.url}?{urlencode(self.params, quote_via=quote, safe='~')}"

    def form_fields(self) -> Dict[str, str]:
        """Copy of the parameters for use as POST form fields."""
        return dict(self.params)


@dataclass
class ResponseEnvelope:
    """Normalized HTTP response."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_json(self) -> bool:
        return isinstance(self.body, (dict, list))


@dataclass
class UploadSession:
    """Server-side chunked upload session as known to the client."""

    upload_id: str
    offset: int = 0


@dataclass(frozen=True)
class ChunkAccepted:
    """The server appended the whole chunk; ``offset`` is its new offset."""

    offset: int


@dataclass(frozen=True)
class OffsetCorrection:
    """The server disagrees with the client's offset; ``offset`` is authoritative."""

    offset: int


@dataclass(frozen=True)
class UnknownSession:
    """The server does not recognise the upload id (expired or never existed)."""


ContinueResult = Union[ChunkAccepted, OffsetCorrection, UnknownSession]


@dataclass
class FileMetadata:
    """Metadata of a file or folder stored in CloudBox."""

    path: str
    bytes: int = 0
    size: str = ""
    is_dir: bool = False
    rev: Optional[str] = None
    revision: Optional[int] = None
    mime_type: Optional[str] = None
    root: Optional[str] = None
    icon: Optional[str] = None
    thumb_exists: bool = False
    modified: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileMetadata":
        """Create FileMetadata from API response dictionary."""
        modified = None
        if data.get("modified"):
            try:
                modified = parsedate_to_datetime(data["modified"])
            except (TypeError, ValueError):
                modified = None

        return cls(
            path=data["path"],
            bytes=data.get("bytes", 0),
            size=data.get("size", ""),
            is_dir=data.get("is_dir", False),
            rev=data.get("rev"),
            revision=data.get("revision"),
            mime_type=data.get("mime_type"),
            root=data.get("root"),
            icon=data.get("icon"),
            thumb_exists=data.get("thumb_exists", False),
            modified=modified,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert FileMetadata to dictionary."""
        result = {
            "path": self.path,
            "bytes": self.bytes,
            "size": self.size,
            "is_dir": self.is_dir,
            "thumb_exists": self.thumb_exists,
        }

        for key in ("rev", "revision", "mime_type", "root", "icon"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.modified:
            result["modified"] = self.modified.strftime("%a, %d %b %Y %H:%M:%S %z")

        return result


@dataclass
class UploadProgress:
    """Progress information for file uploads."""

    filename: str
    total_bytes: int
    uploaded_bytes: int
    percentage: float
    speed_bps: float  # Bytes per second
    eta_seconds: Optional[float] = None

    @property
    def speed_mbps(self) -> float:
        """Upload speed in MB/s."""
        return self.speed_bps / (1024 * 1024)

    @property
    def uploaded_mb(self) -> float:
        """Uploaded bytes in MB."""
        return self.uploaded_bytes / (1024 * 1024)

    @property
    def total_mb(self) -> float:
        """Total bytes in MB."""
        return self.total_bytes / (1024 * 1024)
