"""
Authentication management for CloudBox SDK.

This module handles OAuth 1.0 request signing, and provides the token
providers the client asks for the current credentials before every call.
"""

import os
import json
import hmac
import time
import base64
import hashlib
import posixpath
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Dict, Any, Callable, Union
from urllib.parse import quote

from .exceptions import ConfigurationError
from .models import Credentials, SignatureMethod, SignedRequest, Token, TokenKind

# Leading marker of a parameter value that refers to a local file to send
FILE_SENTINEL = "@"
# The only parameter whose value may be a file placeholder
FILE_FIELD = "file"


def encode(value: str) -> str:
    """
    Percent-encode a value per RFC 3986.

    Only the unreserved set (ALPHA, DIGIT, '-', '.', '_', '~') is left as is.
    """
    return quote(value, safe="~").replace("%7E", "~")


def is_file_placeholder(name: str, value: str) -> bool:
    """True when ``value`` of parameter ``name`` refers to a local file."""
    return name == FILE_FIELD and value.startswith(FILE_SENTINEL)


def parse_file_placeholder(value: str):
    """
    Split a file placeholder into ``(local_path, filename)``.

    The placeholder has the form ``@/local/path`` or
    ``@/local/path;filename=name``; without an explicit filename the
    basename of the local path is used.
    """
    reference = value[len(FILE_SENTINEL):]
    local_path, sep, filename = reference.partition(";filename=")
    if not sep or not filename:
        filename = posixpath.basename(local_path.replace("\\", "/"))
    return local_path, filename


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class OAuthSigner:
    """
    Signs API requests using OAuth 1.0.

    The signer holds no credentials of its own; they are handed in on every
    call so that token rotation never leaves a stale copy behind.
    """

    VERSION = "1.0"

    def __init__(
        self,
        signature_method: Union[str, SignatureMethod] = SignatureMethod.HMAC_SHA1,
        clock: Callable[[], float] = time.time,
        nonce_factory: Callable[[], str] = None,
    ):
        """
        Initialize the signer.

        Args:
            signature_method: ``PLAINTEXT`` or ``HMAC-SHA1``
            clock: Source of the ``oauth_timestamp`` value
            nonce_factory: Source of ``oauth_nonce`` values (random by default)
        """
        self.signature_method = SignatureMethod.parse(signature_method)
        self.clock = clock
        self.nonce_factory = nonce_factory or (lambda: uuid.uuid4().hex)

    def sign(
        self,
        method: str,
        base_url: str,
        call: str,
        params: Optional[Dict[str, Any]] = None,
        credentials: Credentials = None,
    ) -> SignedRequest:
        """
        Build a signed request.

        Args:
            method: HTTP method (GET, POST, PUT)
            base_url: API host URL, including the version prefix
            call: Endpoint path, already path-encoded
            params: Call parameters; ``None`` values are dropped
            credentials: Consumer and token credentials

        Returns:
            SignedRequest carrying ``oauth_signature`` among its parameters
        """
        if credentials is None:
            raise ConfigurationError("Credentials are required to sign a request")

        method = method.upper()
        url = base_url + call

        oauth_params = {
            "oauth_consumer_key": credentials.consumer_key,
            "oauth_token": credentials.token_key,
            "oauth_signature_method": self.signature_method.value,
            "oauth_version": self.VERSION,
        }
        if self.signature_method is SignatureMethod.HMAC_SHA1:
            oauth_params["oauth_timestamp"] = int(self.clock())
            oauth_params["oauth_nonce"] = self.nonce_factory()

        merged = dict(oauth_params)
        merged.update(params or {})

        request_params = {
            key: _stringify(value)
            for key, value in sorted(merged.items())
            if value is not None
        }

        base_string = self.base_string(method, url, request_params)
        signature = self._signature(base_string, credentials)

        request_params["oauth_signature"] = signature
        return SignedRequest(method=method, url=url, params=request_params, signature=signature)

    @staticmethod
    def base_string(method: str, url: str, params: Dict[str, str]) -> str:
        """Build the OAuth signature base string for already-filtered params."""
        pairs = []
        for key, value in sorted(params.items()):
            if is_file_placeholder(key, value):
                value = parse_file_placeholder(value)[1]
            pairs.append(f"{encode(key)}={encode(value)}")

        return "&".join([method.upper(), encode(url), encode("&".join(pairs))])

    def _signature(self, base_string: str, credentials: Credentials) -> str:
        key = f"{credentials.consumer_secret}&{credentials.token_secret}"

        if self.signature_method is SignatureMethod.PLAINTEXT:
            return key

        digest = hmac.new(
            key.encode("utf-8"),
            base_string.encode("utf-8"),
            hashlib.sha1,
        ).digest()
        return base64.b64encode(digest).decode("utf-8")


class TokenProvider(ABC):
    """Supplies the credentials to sign the next request with."""

    @abstractmethod
    def current_credentials(self) -> Credentials:
        """Return the credentials currently in effect."""


class StaticTokenProvider(TokenProvider):
    """Keeps credentials in memory for the lifetime of the process."""

    def __init__(self, credentials: Credentials):
        self._credentials = credentials

    def current_credentials(self) -> Credentials:
        return self._credentials

    def set_token(self, token: Token):
        """Install a new token, honouring the access-token precedence rule."""
        self._credentials = self._credentials.with_token(token)


class EnvironmentTokenProvider(TokenProvider):
    """
    Reads credentials through a :class:`CredentialManager`.

    Credentials are resolved on every call. The manager caches what it
    finds, so clear its cache to pick up a rotated token.
    """

    def __init__(self, manager: Optional["CredentialManager"] = None):
        self.manager = manager or CredentialManager()

    def current_credentials(self) -> Credentials:
        consumer_key = self.manager.get_credential("consumer_key")
        consumer_secret = self.manager.get_credential("consumer_secret")

        if not consumer_key or not consumer_secret:
            raise ConfigurationError(
                "Consumer key and secret are required. Set CLOUDBOX_CONSUMER_KEY and "
                "CLOUDBOX_CONSUMER_SECRET or run 'cloudbox config'.",
                config_key="consumer_key",
            )

        token = None
        token_key = self.manager.get_credential("access_token")
        if token_key:
            token = Token(
                key=token_key,
                secret=self.manager.get_credential("access_token_secret", ""),
                kind=TokenKind.ACCESS,
            )

        return Credentials(consumer_key, consumer_secret, token)


class CredentialManager:
    """
    Manages credential storage and retrieval from various sources.

    Supports environment variables and JSON credentials files.
    """

    def __init__(self, credential_files: Optional[list] = None):
        self.credentials_cache: Dict[str, str] = {}
        self.credential_files = credential_files or [
            Path.home() / ".cloudbox" / "credentials.json",
            Path.home() / ".config" / "cloudbox" / "credentials.json",
            Path.cwd() / ".cloudbox.json",
        ]

    def get_credential(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Get credential from various sources.

        Args:
            key: Credential key name
            default: Default value if not found

        Returns:
            Credential value or default
        """
        if key in self.credentials_cache:
            return self.credentials_cache[key]

        env_variations = [
            f"CLOUDBOX_{key.upper()}",
            f"CB_{key.upper()}",
            key.upper(),
        ]

        for env_var in env_variations:
            env_value = os.getenv(env_var)
            if env_value:
                self.credentials_cache[key] = env_value
                return env_value

        cred_file_value = self._load_from_credentials_file(key)
        if cred_file_value:
            self.credentials_cache[key] = cred_file_value
            return cred_file_value

        return default

    def _load_from_credentials_file(self, key: str) -> Optional[str]:
        """Load credential from the first credentials file that has it."""
        for cred_file in self.credential_files:
            if cred_file.exists():
                try:
                    with open(cred_file, 'r') as f:
                        credentials = json.load(f)

                    if key in credentials:
                        return credentials[key]

                except (json.JSONDecodeError, IOError):
                    continue

        return None

    def store_credential(self, key: str, value: str, persistent: bool = False):
        """
        Store credential in cache and optionally persist to file.

        Args:
            key: Credential key name
            value: Credential value
            persistent: Whether to persist to the primary credentials file
        """
        self.credentials_cache[key] = value

        if persistent:
            self._save_to_credentials_file(key, value)

    def _save_to_credentials_file(self, key: str, value: str):
        """Save credential to the primary credentials file."""
        cred_file = Path(self.credential_files[0])
        cred_file.parent.mkdir(exist_ok=True, parents=True)

        credentials = {}
        if cred_file.exists():
            try:
                with open(cred_file, 'r') as f:
                    credentials = json.load(f)
            except (json.JSONDecodeError, IOError):
                credentials = {}

        credentials[key] = value

        try:
            with open(cred_file, 'w') as f:
                json.dump(credentials, f, indent=2)

            cred_file.chmod(0o600)

        except IOError as e:
            raise ConfigurationError(f"Failed to save credentials: {e}")

    def clear_cache(self):
        """Clear credentials cache."""
        self.credentials_cache.clear()
