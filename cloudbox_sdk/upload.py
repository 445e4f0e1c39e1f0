"""
Resumable chunked uploads.

A large file is sent as a sequence of chunks appended to one server-side
upload session, then committed to its destination path. Each chunk is
retried on transient failures, and offset disagreements with the server are
reconciled by trusting the server's offset when it is within the chunk just
sent. Any other disagreement is fatal.
"""

import time
import logging
from functools import partial
from pathlib import Path
from typing import Callable, Optional, Union

from .exceptions import CloudBoxError, FileNotFoundError, ProtocolViolation, SessionExpired, ValidationError
from .models import (
    ChunkAccepted, ContinueResult, FileMetadata, OffsetCorrection, ResponseEnvelope,
    UnknownSession, UploadProgress, UploadSession,
)
from .responses import offset_correction, unexpected_status, upload_state
from .retry import RetryExecutor
from .utils import (
    DEFAULT_CHUNK_SIZE, calculate_transfer_speed, encode_path, estimate_remaining_time,
    join_remote_path, read_fully, validate_chunk_size,
)

logger = logging.getLogger(__name__)

# fetch(method, base_url, call, params, body=...) -> ResponseEnvelope
Fetch = Callable[..., ResponseEnvelope]

CALL_RETRIES = 3


class ChunkedUploadEngine:
    """
    Drives one chunked upload at a time.

    The engine keeps no state between uploads. Callers that want to resume
    after a crash persist the ``(upload_id, offset)`` pair themselves, either
    from progress callbacks or from the ``session`` attribute of the raised
    exception, and pass it back to :meth:`chunked_upload`.
    """

    def __init__(
        self,
        fetch: Fetch,
        content_url: str,
        root: str = "sandbox",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        retry: Optional[RetryExecutor] = None,
    ):
        """
        Initialize the engine.

        Args:
            fetch: Function that signs and sends one request
            content_url: Base URL of the content host
            root: Access root used in commit paths
            chunk_size: Default chunk size in bytes
            retry: Retry policy for individual calls
        """
        self.fetch = fetch
        self.content_url = content_url
        self.root = root
        self.chunk_size = validate_chunk_size(chunk_size)
        self.retry = retry or RetryExecutor()

    def start_upload(self, data: bytes) -> str:
        """
        Open an upload session with its first chunk.

        Returns:
            The server-assigned upload id
        """
        response = self.fetch("PUT", self.content_url, "chunked_upload", {}, body=data)

        if response.status_code == 404:
            raise ProtocolViolation("Got a 404, but we didn't send up an 'upload_id'", status_code=404)

        if offset_correction(response) is not None:
            raise ProtocolViolation(
                "Got an offset-correcting 400 response, but we didn't send an offset",
                status_code=400,
            )

        if response.status_code != 200:
            raise unexpected_status(response)

        upload_id, offset = upload_state(response.body)
        if offset != len(data):
            raise ProtocolViolation(
                f"We sent {len(data)} bytes, but server returned an offset of {offset}",
                server_offset=offset,
            )

        logger.info("Started upload session %s", upload_id)
        return upload_id

    def continue_upload(self, upload_id: str, offset: int, data: bytes) -> ContinueResult:
        """
        Append a chunk to an open session.

        Returns:
            ChunkAccepted when the server stored the whole chunk,
            OffsetCorrection when the server holds a different offset, or
            UnknownSession when the upload id is not recognised
        """
        response = self.fetch(
            "PUT",
            self.content_url,
            "chunked_upload",
            {"upload_id": upload_id, "offset": offset},
            body=data,
        )

        if response.status_code == 404:
            return UnknownSession()

        correction = offset_correction(response)
        if correction is not None:
            corrected_id, corrected_offset = correction
            if corrected_id != upload_id:
                raise ProtocolViolation(
                    f"Corrective 400 upload_id mismatch: us={upload_id!r} server={corrected_id!r}"
                )
            if corrected_offset == offset:
                raise ProtocolViolation(f"Corrective 400 offset is the same as ours: {offset}")
            return OffsetCorrection(corrected_offset)

        if response.status_code != 200:
            raise unexpected_status(response)

        returned_id, returned_offset = upload_state(response.body)
        expected_offset = offset + len(data)

        if returned_id != upload_id:
            raise ProtocolViolation(f"upload_id mismatch: us={upload_id!r}, server={returned_id!r}")
        if returned_offset != expected_offset:
            raise ProtocolViolation(
                f"next-offset mismatch: us={expected_offset}, server={returned_offset}",
                server_offset=returned_offset,
            )

        return ChunkAccepted(returned_offset)

    def finish_upload(self, upload_id: str, path: str, overwrite: bool = True) -> FileMetadata:
        """
        Commit the session's data as a file at ``path``.

        Raises:
            SessionExpired: The server no longer knows the upload id
        """
        call = f"commit_chunked_upload/{self.root}/{encode_path(path)}"
        response = self.fetch(
            "POST",
            self.content_url,
            call,
            {"upload_id": upload_id, "overwrite": int(overwrite)},
        )

        if response.status_code == 404:
            raise SessionExpired("Commit failed, upload session unknown", upload_id=upload_id)
        if response.status_code != 200:
            raise unexpected_status(response)
        if not isinstance(response.body, dict):
            raise ProtocolViolation(f"Expected file metadata, got {response.body!r}")

        logger.info("Committed upload session %s to %s", upload_id, path)
        return FileMetadata.from_dict(response.body)

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
        Upload a local file in chunks and commit it.

        Args:
            file_path: Local file to upload
            filename: Destination filename (defaults to the local basename)
            path: Destination directory, relative to the root
            overwrite: Replace an existing file at the destination
            chunk_size: Chunk size for this upload (defaults to the engine's)
            upload_id: Session to resume instead of starting a new one
            offset: Bytes the resumed session already holds
            progress_callback: Called after every chunk the server accepts

        Returns:
            Metadata of the committed file

        Raises:
            CloudBoxError: With ``session`` set to the last known upload state
                once a session exists
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            raise FileNotFoundError(f"Local file {file_path} does not exist", filename=str(file_path))

        chunk_size = validate_chunk_size(chunk_size) if chunk_size is not None else self.chunk_size
        filename = filename or file_path.name
        total_bytes = file_path.stat().st_size

        if upload_id is not None and not 0 <= offset <= total_bytes:
            raise ValidationError(
                f"Resume offset {offset} is outside the file (size {total_bytes})",
                field="offset",
            )

        session = UploadSession(upload_id, offset) if upload_id is not None else None
        tracker = _ProgressTracker(filename, total_bytes, offset if session else 0, progress_callback)

        try:
            with open(file_path, "rb") as f:
                if session is None:
                    data = read_fully(f, chunk_size)
                    new_id = self.retry.run(CALL_RETRIES, partial(self.start_upload, data))
                    session = UploadSession(new_id, len(data))
                    tracker.update(session)
                else:
                    logger.info("Resuming upload session %s at offset %d", session.upload_id, session.offset)
                    f.seek(session.offset)

                while True:
                    data = read_fully(f, chunk_size)
                    if not data:
                        break
                    self._send_chunk(session, data)
                    tracker.update(session)

            return self.retry.run(
                CALL_RETRIES,
                partial(self.finish_upload, session.upload_id, join_remote_path(path, filename), overwrite),
            )
        except CloudBoxError as e:
            if session is not None and e.session is None:
                e.session = UploadSession(session.upload_id, session.offset)
            raise

    def _send_chunk(self, session: UploadSession, data: bytes):
        """Append one chunk, reconciling offset corrections until it is stored."""
        while True:
            logger.debug("Sending %d bytes to %s at offset %d", len(data), session.upload_id, session.offset)
            result = self.retry.run(
                CALL_RETRIES,
                partial(self.continue_upload, session.upload_id, session.offset, data),
            )

            if isinstance(result, ChunkAccepted):
                session.offset = result.offset
                return

            if isinstance(result, UnknownSession):
                raise SessionExpired(
                    "Server forgot our upload_id",
                    upload_id=session.upload_id,
                    offset=session.offset,
                )

            server_offset = result.offset
            if server_offset < session.offset:
                error = ProtocolViolation(
                    f"Server is at an earlier byte offset: us={session.offset}, server={server_offset}",
                    server_offset=server_offset,
                )
                error.session = UploadSession(session.upload_id, server_offset)
                raise error

            diff = server_offset - session.offset
            if diff > len(data):
                error = ProtocolViolation(
                    f"Server is more than a chunk ahead: us={session.offset}, server={server_offset}",
                    server_offset=server_offset,
                )
                error.session = UploadSession(session.upload_id, server_offset)
                raise error

            # Server already holds the first `diff` bytes of this chunk
            logger.info("Server is %d bytes ahead of offset %d, trimming chunk", diff, session.offset)
            session.offset = server_offset
            if diff == len(data):
                return
            data = data[diff:]


class _ProgressTracker:
    """Builds UploadProgress reports for a single upload."""

    def __init__(self, filename: str, total_bytes: int, start_offset: int, callback):
        self.filename = filename
        self.total_bytes = total_bytes
        self.start_offset = start_offset
        self.callback = callback
        self.started_at = time.monotonic()

    def update(self, session: UploadSession):
        if self.callback is None:
            return

        elapsed = time.monotonic() - self.started_at
        sent = session.offset - self.start_offset
        percentage = 100.0 if self.total_bytes == 0 else session.offset / self.total_bytes * 100

        self.callback(UploadProgress(
            filename=self.filename,
            total_bytes=self.total_bytes,
            uploaded_bytes=session.offset,
            percentage=percentage,
            speed_bps=calculate_transfer_speed(sent, elapsed),
            eta_seconds=estimate_remaining_time(sent, self.total_bytes - self.start_offset, elapsed),
        ))
