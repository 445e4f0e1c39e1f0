"""Shared pytest fixtures: credentials, a deterministic signer and a fake upload server."""

import uuid
from typing import Dict, List, Optional

import pytest

from cloudbox_sdk.client import CloudBoxClient
from cloudbox_sdk.exceptions import TransportError
from cloudbox_sdk.models import Credentials, ResponseEnvelope, SignedRequest, Token
from cloudbox_sdk.retry import RetryExecutor
from cloudbox_sdk.auth import OAuthSigner, StaticTokenProvider

CONTENT_URL = "https://content.test/1/"
API_URL = "https://api.test/1/"


@pytest.fixture
def credentials() -> Credentials:
    return Credentials("consumer-key", "consumer-secret", Token("token-key", "token-secret"))


@pytest.fixture
def signer() -> OAuthSigner:
    """HMAC-SHA1 signer with a frozen clock and nonce."""
    return OAuthSigner("HMAC-SHA1", clock=lambda: 1300000000, nonce_factory=lambda: "fixednonce")


class SleepRecorder:
    """Stands in for time.sleep and remembers the requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


class FakeUploadServer:
    """
    In-process implementation of the chunked upload endpoints.

    Implements the transport contract (``send(request, body, sink)``) and
    keeps per-session byte buffers, so tests can assert on exactly what the
    server ended up storing. Failure injection:

    - ``fail_next``: exceptions raised (in order) before the request reaches
      the server.
    - ``partial_writes``: byte counts; for each, the next chunk append stores
      only that many bytes and then fails with a TransportError, as if the
      client timed out after the server had written part of the chunk.
    - ``fail_on_chunk``: maps a 1-based chunk call number to the exception
      raised for that call.
    - ``responses``: canned envelopes returned (in order) instead of handling
      the request.
    """

    def __init__(self):
        self.sessions = {}
        self.committed = {}
        self.requests: List[SignedRequest] = []
        self.chunk_calls: List[dict] = []
        self.commit_calls: List[dict] = []
        self.fail_next: List[Exception] = []
        self.fail_on_chunk: Dict[int, Exception] = {}
        self.partial_writes: List[int] = []
        self.responses: List[ResponseEnvelope] = []

    def send(self, request: SignedRequest, body=None, sink=None) -> ResponseEnvelope:
        self.requests.append(request)

        if request.url == CONTENT_URL + "chunked_upload":
            self.chunk_calls.append({"params": dict(request.params), "body": body})
            error = self.fail_on_chunk.pop(len(self.chunk_calls), None)
            if error is not None:
                raise error
        elif request.url.startswith(CONTENT_URL + "commit_chunked_upload/"):
            self.commit_calls.append({"url": request.url, "params": dict(request.params)})

        if self.fail_next:
            raise self.fail_next.pop(0)
        if self.responses:
            return self.responses.pop(0)

        if request.url == CONTENT_URL + "chunked_upload":
            return self._chunk(request.params, body)
        if request.url.startswith(CONTENT_URL + "commit_chunked_upload/"):
            return self._commit(request)

        return ResponseEnvelope(404, {}, {"error": "Unknown endpoint"})

    def _chunk(self, params, body: bytes) -> ResponseEnvelope:
        upload_id: Optional[str] = params.get("upload_id")

        if upload_id is None:
            upload_id = uuid.uuid4().hex
            self.sessions[upload_id] = bytearray()
        elif upload_id not in self.sessions:
            return ResponseEnvelope(404, {}, {"error": "Unknown upload_id"})

        stored = self.sessions[upload_id]
        offset = int(params.get("offset", 0))
        if offset != len(stored):
            return ResponseEnvelope(400, {}, {"upload_id": upload_id, "offset": len(stored)})

        if self.partial_writes:
            written = self.partial_writes.pop(0)
            stored.extend(body[:written])
            raise TransportError("Request timeout: read timed out")

        stored.extend(body)
        return ResponseEnvelope(200, {}, {"upload_id": upload_id, "offset": len(stored), "expires": "Tue, 19 Jul 2011 21:55:38 +0000"})

    def _commit(self, request: SignedRequest) -> ResponseEnvelope:
        upload_id = request.params.get("upload_id")
        if upload_id not in self.sessions:
            return ResponseEnvelope(404, {}, {"error": "Unknown upload_id"})

        path = "/" + request.url.split("/", 6)[-1]
        data = bytes(self.sessions.pop(upload_id))
        self.committed[path] = data

        return ResponseEnvelope(200, {}, {
            "path": path,
            "bytes": len(data),
            "size": f"{len(data)} bytes",
            "rev": "1f477dd351f",
            "revision": 31,
            "is_dir": False,
            "root": "app_folder",
            "mime_type": "application/octet-stream",
            "modified": "Wed, 20 Jul 2011 22:04:50 +0000",
            "thumb_exists": False,
            "icon": "page_white",
        })


@pytest.fixture
def server() -> FakeUploadServer:
    return FakeUploadServer()


@pytest.fixture
def client(server, credentials, sleeps) -> CloudBoxClient:
    return CloudBoxClient(
        token_provider=StaticTokenProvider(credentials),
        api_url=API_URL,
        content_url=CONTENT_URL,
        transport=server,
        retry=RetryExecutor(sleep=sleeps),
    )


@pytest.fixture
def make_file(tmp_path):
    """Create a local file of ``size`` bytes with position-dependent content."""

    def _make(size: int, name: str = "upload.bin"):
        path = tmp_path / name
        pattern = bytes(range(251))
        repeats = size // len(pattern) + 1
        path.write_bytes((pattern * repeats)[:size])
        return path

    return _make
