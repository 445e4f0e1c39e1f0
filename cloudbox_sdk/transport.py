"""
HTTP transport for CloudBox SDK.

Executes exactly one signed request per call and returns a normalized
response envelope. Status codes are not interpreted here; callers decide
which statuses are errors.
"""

import logging
from contextlib import ExitStack
from typing import Optional, BinaryIO, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import __version__
from .auth import is_file_placeholder, parse_file_placeholder
from .exceptions import TransportError, ConfigurationError
from .models import ResponseEnvelope, SignedRequest
from .responses import parse_body

logger = logging.getLogger(__name__)

RequestBody = Union[bytes, BinaryIO, None]


class RequestsTransport:
    """
    Sends signed requests with pooled ``requests`` sessions.

    GETs go through a session with a urllib3 retry policy. PUTs and POSTs go
    through a session without one, so every upload attempt is exactly one
    signed request on the wire; the caller decides whether to retry it.
    """

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        verify: bool = True,
        session: Optional[requests.Session] = None,
        download_chunk_size: int = 1024 * 1024,
    ):
        """
        Initialize the transport.

        Args:
            timeout: Request timeout in seconds
            max_retries: Retry attempts for GET requests at the connection level
            verify: Verify TLS certificates
            session: Preconfigured session used for every method instead of
                the two default sessions
            download_chunk_size: Read size when streaming a response to a sink
        """
        self.timeout = timeout
        self.verify = verify
        self.download_chunk_size = download_chunk_size

        if session is None:
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=1,
                status_forcelist=[500, 502, 504],
                allowed_methods=frozenset(["GET"]),
                raise_on_status=False,
            )
            session = requests.Session()
            self._mount(session, HTTPAdapter(max_retries=retry_strategy))
            self.upload_session = requests.Session()
            self._mount(self.upload_session, HTTPAdapter(max_retries=0))
        else:
            self.upload_session = session

        self.session = session
        self.session.headers.update({
            "User-Agent": f"CloudBox-Python-SDK/{__version__}",
        })
        self.upload_session.headers.update(self.session.headers)

    @staticmethod
    def _mount(session: requests.Session, adapter: HTTPAdapter):
        session.mount("http://", adapter)
        session.mount("https://", adapter)

    def send(
        self,
        request: SignedRequest,
        body: RequestBody = None,
        sink: Optional[BinaryIO] = None,
    ) -> ResponseEnvelope:
        """
        Execute one signed request.

        Args:
            request: Signed request descriptor
            body: Request body for PUT (bytes or a binary file object)
            sink: Binary file object to stream a successful GET response into

        Returns:
            ResponseEnvelope; for a streamed GET the body is empty
        """
        logger.debug("%s %s", request.method, request.url)

        try:
            if request.method == "GET":
                return self._get(request, sink)
            if request.method == "POST":
                return self._post(request)
            if request.method == "PUT":
                return self._put(request, body)
        except requests.exceptions.ConnectionError as e:
            raise TransportError(f"Connection error: {e}") from e
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request timeout: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}") from e
        except OSError as e:
            raise TransportError(f"I/O error: {e}") from e

        raise ConfigurationError(f"Unsupported HTTP method '{request.method}'")

    def _get(self, request: SignedRequest, sink: Optional[BinaryIO]) -> ResponseEnvelope:
        response = self.session.get(
            request.query_url,
            timeout=self.timeout,
            verify=self.verify,
            stream=sink is not None,
        )

        if sink is None or response.status_code != 200:
            return self._envelope(response)

        try:
            for chunk in response.iter_content(chunk_size=self.download_chunk_size):
                if chunk:
                    sink.write(chunk)
        finally:
            response.close()

        return ResponseEnvelope(
            status_code=response.status_code,
            headers=self._headers(response),
            body=b"",
        )

    def _post(self, request: SignedRequest) -> ResponseEnvelope:
        data = {}
        files = {}

        with ExitStack() as stack:
            for name, value in request.form_fields().items():
                if is_file_placeholder(name, value):
                    local_path, filename = parse_file_placeholder(value)
                    handle = stack.enter_context(open(local_path, "rb"))
                    files[name] = (filename, handle)
                else:
                    data[name] = value

            response = self.upload_session.post(
                request.url,
                data=data,
                files=files or None,
                timeout=self.timeout,
                verify=self.verify,
            )

        return self._envelope(response)

    def _put(self, request: SignedRequest, body: RequestBody) -> ResponseEnvelope:
        response = self.upload_session.put(
            request.query_url,
            data=body if body is not None else b"",
            headers={"Content-Type": "application/octet-stream"},
            timeout=self.timeout,
            verify=self.verify,
        )
        return self._envelope(response)

    def _envelope(self, response: requests.Response) -> ResponseEnvelope:
        return ResponseEnvelope(
            status_code=response.status_code,
            headers=self._headers(response),
            body=parse_body(response.content),
        )

    @staticmethod
    def _headers(response: requests.Response) -> dict:
        return {key.lower(): value for key, value in response.headers.items()}

    def close(self):
        self.session.close()
        if self.upload_session is not self.session:
            self.upload_session.close()
