"""
Synchronous CloudBox client implementation.

This module provides the main client for interacting with the CloudBox API.
Every call is signed with OAuth 1.0 using the credentials supplied by a
token provider at the time of the call.
"""

import json
from typing import Optional, Dict, Any, Callable, BinaryIO, Union
from pathlib import Path

from .auth import FILE_FIELD, FILE_SENTINEL, OAuthSigner, TokenProvider, StaticTokenProvider, EnvironmentTokenProvider
from .exceptions import ConfigurationError, FileNotFoundError, ValidationError
from .models import (
    ContinueResult, Credentials, FileMetadata, ResponseEnvelope, SignatureMethod, Token,
    UploadProgress,
)
from .responses import check_response
from .retry import RetryExecutor
from .transport import RequestsTransport
from .upload import ChunkedUploadEngine
from .utils import DEFAULT_CHUNK_SIZE, MAX_CHUNK_SIZE, encode_path, validate_chunk_size

ROOTS = ("sandbox", "dropbox")


class CloudBoxClient:
    """
    Client for the CloudBox file storage API.

    Combines the OAuth signer, a token provider and an HTTP transport, and
    exposes resumable chunked uploads alongside the single-shot file calls.
    """

    API_URL = "https://api.cloudbox.com/1/"
    CONTENT_URL = "https://api-content.cloudbox.com/1/"

    def __init__(
        self,
        consumer_key: Optional[str] = None,
        consumer_secret: Optional[str] = None,
        access_token: Optional[str] = None,
        access_token_secret: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        root: str = "sandbox",
        signature_method: Union[str, SignatureMethod] = SignatureMethod.HMAC_SHA1,
        timeout: int = 30,
        max_retries: int = 3,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        api_url: Optional[str] = None,
        content_url: Optional[str] = None,
        transport=None,
        retry: Optional[RetryExecutor] = None,
    ):
        """
        Initialize the CloudBox client.

        Args:
            consumer_key: Application key (falls back to CLOUDBOX_CONSUMER_KEY)
            consumer_secret: Application secret (falls back to CLOUDBOX_CONSUMER_SECRET)
            access_token: OAuth access token
            access_token_secret: OAuth access token secret
            token_provider: Source of credentials; overrides the key arguments
            root: Access root, either 'sandbox' or 'dropbox'
            signature_method: 'HMAC-SHA1' or 'PLAINTEXT'
            timeout: Request timeout in seconds
            max_retries: Connection-level retries for downloads
            chunk_size: Default chunk size for chunked uploads
            api_url: Override of the API host URL
            content_url: Override of the content host URL
            transport: Object with a ``send(request, body=None, sink=None)`` method
            retry: Retry policy for chunked upload calls
        """
        if token_provider is None:
            if consumer_key or consumer_secret:
                if not (consumer_key and consumer_secret):
                    raise ConfigurationError("Both consumer key and consumer secret are required")
                token = Token(access_token, access_token_secret or "") if access_token else None
                token_provider = StaticTokenProvider(Credentials(consumer_key, consumer_secret, token))
            else:
                token_provider = EnvironmentTokenProvider()

        self.token_provider = token_provider
        self.signer = OAuthSigner(signature_method)
        self.api_url = api_url or self.API_URL
        self.content_url = content_url or self.CONTENT_URL
        self.transport = transport or RequestsTransport(timeout=timeout, max_retries=max_retries)

        self.uploads = ChunkedUploadEngine(
            self.fetch,
            self.content_url,
            chunk_size=chunk_size,
            retry=retry,
        )
        self.root = root

    @property
    def root(self) -> str:
        return self._root

    @root.setter
    def root(self, root: str):
        if root not in ROOTS:
            raise ConfigurationError(
                f"Expected a root of either 'dropbox' or 'sandbox', got '{root}'",
                config_key="root",
            )
        self._root = root
        self.uploads.root = root

    @property
    def chunk_size(self) -> int:
        return self.uploads.chunk_size

    @chunk_size.setter
    def chunk_size(self, chunk_size: int):
        self.uploads.chunk_size = validate_chunk_size(chunk_size)

    def fetch(
        self,
        method: str,
        base_url: str,
        call: str,
        params: Optional[Dict[str, Any]] = None,
        body: Union[bytes, BinaryIO, None] = None,
        sink: Optional[BinaryIO] = None,
    ) -> ResponseEnvelope:
        """
        Sign and send one request without interpreting the status.

        Args:
            method: HTTP method
            base_url: API_URL or CONTENT_URL style host URL
            call: Endpoint path, already path-encoded
            params: Call parameters
            body: Request body for PUT requests
            sink: File object that receives a successful GET response body

        Returns:
            ResponseEnvelope
        """
        request = self.signer.sign(
            method,
            base_url,
            call,
            params,
            self.token_provider.current_credentials(),
        )
        return self.transport.send(request, body=body, sink=sink)

    def _call(self, method: str, base_url: str, call: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> ResponseEnvelope:
        """Make a signed request and raise for error statuses."""
        return check_response(self.fetch(method, base_url, call, params, **kwargs))

    def account_info(self) -> Dict[str, Any]:
        """Retrieve information about the user's account."""
        return self._call("POST", self.api_url, "account/info").body

    def metadata(
        self,
        path: str = "",
        rev: Optional[str] = None,
        file_limit: int = 10000,
        folder_hash: Optional[str] = None,
        list_contents: bool = True,
        include_deleted: bool = False,
    ) -> Dict[str, Any]:
        """
        Retrieve metadata for a file or folder.

        Raises:
            NotModifiedError: ``folder_hash`` matches the current folder listing
        """
        call = f"metadata/{self.root}/{encode_path(path)}"
        params = {
            "file_limit": file_limit,
            "hash": folder_hash,
            "list": int(list_contents),
            "include_deleted": int(include_deleted),
            "rev": rev,
        }
        return self._call("GET", self.api_url, call, params).body

    def put_file(
        self,
        local_path: Union[str, Path],
        filename: Optional[str] = None,
        path: str = "",
        overwrite: bool = True,
    ) -> FileMetadata:
        """
        Upload a local file in a single request.

        Files above 150MB must go through :meth:`chunked_upload`. The file is
        sent as the multipart ``file`` part; ``filename`` is sent verbatim,
        even when it starts with ``@``.
        """
        local_path = Path(local_path)
        if not local_path.is_file():
            raise FileNotFoundError(f"Local file {local_path} does not exist", filename=str(local_path))
        if local_path.stat().st_size > MAX_CHUNK_SIZE:
            raise ValidationError("File exceeds 150MB upload limit", field="local_path")

        filename = filename or local_path.name
        call = f"files/{self.root}/{encode_path(path)}"
        params = {
            "filename": filename,
            FILE_FIELD: f"{FILE_SENTINEL}{local_path.as_posix()};filename={filename}",
            "overwrite": int(overwrite),
        }
        response = self._call("POST", self.content_url, call, params)
        return FileMetadata.from_dict(response.body)

    def put_stream(self, stream: BinaryIO, filename: str, overwrite: bool = True) -> FileMetadata:
        """Upload data from a readable binary stream to ``filename``."""
        call = f"files_put/{self.root}/{encode_path(filename)}"
        response = self._call("PUT", self.content_url, call, {"overwrite": int(overwrite)}, body=stream)
        return FileMetadata.from_dict(response.body)

    def get_file(self, path: str, sink: BinaryIO, revision: Optional[str] = None) -> Dict[str, Any]:
        """
        Download a file into ``sink``.

        Returns:
            The file's metadata from the ``x-cloudbox-metadata`` response header,
            or an empty dict when the header is missing
        """
        call = f"files/{self.root}/{encode_path(path)}"
        response = self._call("GET", self.content_url, call, {"rev": revision}, sink=sink)

        header = response.headers.get("x-cloudbox-metadata")
        if not header:
            return {}

        return json.loads(header)

    def start_upload(self, data: bytes) -> str:
        """Open a chunked upload session with its first chunk."""
        return self.uploads.start_upload(data)

    def continue_upload(self, upload_id: str, offset: int, data: bytes) -> ContinueResult:
        """Append a chunk to an open chunked upload session."""
        return self.uploads.continue_upload(upload_id, offset, data)

    def finish_upload(self, upload_id: str, path: str, overwrite: bool = True) -> FileMetadata:
        """Commit a chunked upload session as a file at ``path``."""
        return self.uploads.finish_upload(upload_id, path, overwrite)

    def chunked_upload(
        self,
        file_path: Union[str, Path],
        filename: Optional[str] = None,
        path: str = "",
        overwrite: bool = True,
        chunk_size: Optional[int] = None,
        upload_id: Optional[str] = None,
        offset: int = 0,
        progress_callback: Optional[Callable[[UploadProgress], None]] = None,
    ) -> FileMetadata:
        """
        Upload a large file in chunks.

        Args:
            file_path: Local file to upload
            filename: Destination filename (defaults to the local basename)
            path: Destination directory, relative to the root
            overwrite: Replace an existing file at the destination
            chunk_size: Chunk size for this upload
            upload_id: Session to resume
            offset: Bytes the resumed session already holds
            progress_callback: Callback function for upload progress

        Returns:
            FileMetadata of the committed file
        """
        return self.uploads.chunked_upload(
            file_path,
            filename=filename,
            path=path,
            overwrite=overwrite,
            chunk_size=chunk_size,
            upload_id=upload_id,
            offset=offset,
            progress_callback=progress_callback,
        )

    def close(self):
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
