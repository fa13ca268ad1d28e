"""Chunked upload of arbitrary-length streams.

A chunked upload sends a stream as a sequence of chunks to the
``chunked_upload`` endpoint and then commits the resulting upload session
to a path. The server issues the session's ``upload_id`` with the first
chunk and reports the acknowledged ``offset`` after every chunk; both are
adopted as-is for the next chunk.

Uploads are strictly sequential. Each chunk is retried up to
``max_retries`` times with no delay between attempts, and the first chunk
that exhausts its attempts aborts the upload. Sessions abandoned this way
are left to expire on the server.
"""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, BinaryIO, Callable, Optional

from .exceptions import (
    DbxAPIError,
    DbxCommitError,
    DbxRetryExhaustedError,
    DbxStreamReadError,
)
from .utils import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_RETRIES, check_root_and_path

if TYPE_CHECKING:
    from .api import DropboxClient
    from .models import PathMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadSession:
    """Server-side state of an upload in progress.

    The empty session (no upload_id, offset 0) is the state before the
    first chunk has been accepted.
    """

    upload_id: str = ""
    """Session id issued by the server with the first chunk"""

    offset: int = 0
    """Number of bytes the server has acknowledged so far"""

    expires: Optional[str] = None
    """When the server will discard the session if it is not committed"""

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> UploadSession:
        return cls(
            upload_id=data.get("upload_id", ""),
            offset=int(data.get("offset", 0)),
            expires=data.get("expires"),
        )


class ChunkedUploader:
    """Uploads streams chunk by chunk and commits them to a path."""

    def __init__(
        self,
        client: DropboxClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        progress_callback: Callable[[int, int], None] | None = None,
    ):
        """Initialize the uploader.

        Args:
            client: Dropbox API client used for chunk and commit calls
            chunk_size: Bytes read from the source per chunk
            max_retries: Attempts per chunk, including the first one
            progress_callback: Optional callback function(bytes_uploaded, total_bytes)

        Raises:
            ValueError: If chunk_size or max_retries is not positive
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")

        self.client = client
        self.chunk_size = chunk_size
        self.max_retries = max_retries
        self.progress_callback = progress_callback

    def upload_chunk(self, chunk: bytes, session: UploadSession) -> UploadSession:
        """Upload one chunk, retrying failed attempts.

        Args:
            chunk: Non-empty chunk bytes
            session: Session state after the previous chunk

        Returns:
            Session state reported by the server for this chunk

        Raises:
            ValueError: If chunk is empty
            DbxRetryExhaustedError: If every attempt failed
        """
        if not chunk:
            raise ValueError("Refusing to upload an empty chunk")

        last_error: DbxAPIError | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return self.client.chunked_upload(
                    chunk, upload_id=session.upload_id, offset=session.offset
                )
            except DbxAPIError as e:
                last_error = e
                logger.warning(
                    "Chunk at offset %d failed (attempt %d/%d): %s",
                    session.offset,
                    attempt,
                    self.max_retries,
                    e,
                )

        assert last_error is not None
        raise DbxRetryExhaustedError(last_error, self.max_retries) from last_error

    def _read_chunk(self, source: BinaryIO, offset: int) -> bytes:
        try:
            return source.read(self.chunk_size)
        except (OSError, ValueError) as e:
            raise DbxStreamReadError(
                f"Failed to read upload source at offset {offset}: {e}"
            ) from e

    def upload_stream(
        self,
        source: BinaryIO,
        path: str,
        root: str | None = None,
        overwrite: bool = True,
        parent_rev: str = "",
        total_size: int = 0,
    ) -> PathMetadata:
        """Upload a stream and commit it to path.

        The source is read until it returns no more bytes and is closed on
        every exit path. An empty source makes no chunk calls and commits
        without an upload id.

        Args:
            source: Readable binary stream, owned by this call
            path: Remote destination path
            root: Root namespace (defaults to the client's root)
            overwrite: Overwrite an existing file instead of renaming
            parent_rev: Revision the upload replaces; empty for none
            total_size: Stream length reported to progress_callback, if known

        Returns:
            PathMetadata of the committed file

        Raises:
            DbxValidationError: If root or path is invalid; nothing is uploaded
            DbxStreamReadError: If reading the source fails
            DbxRetryExhaustedError: If a chunk fails on every attempt
            DbxCommitError: If the commit call fails
        """
        session = UploadSession()
        chunks = 0
        root = root or self.client.root

        with closing(source):
            check_root_and_path(root, path)
            while True:
                chunk = self._read_chunk(source, session.offset)
                if not chunk:
                    break

                session = self.upload_chunk(chunk, session)
                chunks += 1
                logger.debug(
                    "Chunk %d accepted, %s at offset %d",
                    chunks,
                    session.upload_id,
                    session.offset,
                )
                if self.progress_callback:
                    self.progress_callback(session.offset, total_size)

        logger.debug("Committing %d chunks to %s", chunks, path)
        try:
            return self.client.commit_chunked_upload(
                path,
                session.upload_id,
                root=root,
                parent_rev=parent_rev,
                overwrite=overwrite,
            )
        except DbxAPIError as e:
            raise DbxCommitError(
                f"Failed to commit upload to {path}: {e}",
                upload_id=session.upload_id,
                status_code=e.status_code,
            ) from e
