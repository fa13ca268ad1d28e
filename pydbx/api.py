"""API client for Dropbox."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, BinaryIO, Callable

import httpx

from .auth import OAuth2, RequestSigner
from .chunked import ChunkedUploader, UploadSession
from .config import config
from .exceptions import (
    DbxAPIError,
    DbxAuthenticationError,
    DbxConfigError,
    DbxDownloadError,
    DbxFileNotFoundError,
    DbxInvalidResponseError,
    DbxNetworkError,
    DbxNotFoundError,
    DbxRateLimitError,
    DbxValidationError,
)
from .models import AccountInfo, Content, DeltaResult, FileEntry, PathMetadata
from .utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    bool_param,
    build_root_path_url,
    check_root,
    check_root_and_path,
    has_empty,
)

logger = logging.getLogger(__name__)

API_URL = "https://api.dropbox.com/1"
CONTENT_URL = "https://api-content.dropbox.com/1"

API_URLS = {
    "account/info": f"{API_URL}/account/info",
    "metadata": f"{API_URL}/metadata/<root>/<path>",
    "files": f"{CONTENT_URL}/files/<root>/<path>",
    "files_put": f"{CONTENT_URL}/files_put/<root>/<path>",
    "delta": f"{API_URL}/delta",
    "revisions": f"{API_URL}/revisions/<root>/<path>",
    "restore": f"{API_URL}/restore/<root>/<path>",
    "search": f"{API_URL}/search/<root>/<path>",
    "shares": f"{API_URL}/shares/<root>/<path>",
    "media": f"{API_URL}/media/<root>/<path>",
    "copy_ref": f"{API_URL}/copy_ref/<root>/<path>",
    "thumbnails": f"{CONTENT_URL}/thumbnails/<root>/<path>",
    "chunked_upload": f"{CONTENT_URL}/chunked_upload",
    "commit_chunked_upload": f"{CONTENT_URL}/commit_chunked_upload/<root>/<path>",
    "fileops/copy": f"{API_URL}/fileops/copy",
    "fileops/create_folder": f"{API_URL}/fileops/create_folder",
    "fileops/delete": f"{API_URL}/fileops/delete",
    "fileops/move": f"{API_URL}/fileops/move",
}


class DropboxClient:
    """Client for interacting with the Dropbox core API."""

    def __init__(
        self,
        access_token: str | None = None,
        root: str | None = None,
        locale: str | None = None,
        timeout: float = 30.0,
        signer: RequestSigner | None = None,
    ):
        """Initialize Dropbox API client.

        Args:
            access_token: Optional OAuth2 token (uses config if not provided)
            root: Default root for path operations (uses config if not provided)
            locale: Locale hint sent with requests (uses config if not provided)
            timeout: Request timeout in seconds (default: 30.0)
            signer: Optional custom request signer; overrides access_token
        """
        self.root = root or config.root
        self.locale = locale or config.locale
        self.timeout = timeout

        if signer is None:
            access_token = access_token or config.access_token
            if not access_token:
                raise DbxConfigError(
                    "Access token not configured. "
                    "Please set DBX_ACCESS_TOKEN environment variable."
                )
            signer = OAuth2(access_token=access_token)
        self.signer = signer

        check_root(self.root)
        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client.

        Safe to call from several threads sharing one DropboxClient.
        """
        with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.Client(
                    timeout=httpx.Timeout(self.timeout),
                    follow_redirects=True,
                )
            return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        with self._client_lock:
            if self._client is not None and not self._client.is_closed:
                self._client.close()
                self._client = None

    def __enter__(self) -> DropboxClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # =========================
    # Request execution
    # =========================

    def _error_from_response(self, response: httpx.Response) -> DbxAPIError:
        """Map a non-2xx response to an exception.

        The provider's ``{"error": ...}`` message is passed through when
        the body carries one.
        """
        status_code = response.status_code
        message = f"API request failed with status {status_code}"
        try:
            if response.content:
                error_data = response.json()
                if isinstance(error_data, dict):
                    detail = error_data.get("error") or error_data.get(
                        "error_description"
                    )
                    if isinstance(detail, dict):
                        detail = json.dumps(detail)
                    if detail:
                        message = f"{message}: {detail}"
        except ValueError:
            # Body is not JSON; keep the status-based message
            pass

        if status_code == 401:
            return DbxAuthenticationError(message, status_code)
        if status_code == 404:
            return DbxNotFoundError(message, status_code)
        if status_code in (429, 503) and "Retry-After" in response.headers:
            retry_after = response.headers.get("Retry-After", "")
            return DbxRateLimitError(
                message,
                status_code,
                retry_after=float(retry_after) if retry_after.isdigit() else None,
            )
        return DbxAPIError(message, status_code)

    def _send(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        content: bytes | BinaryIO | None = None,
    ) -> httpx.Response:
        """Sign and perform a single request.

        Args:
            method: HTTP method
            url: Absolute endpoint URL
            params: Query parameters
            content: Raw request body

        Returns:
            The successful response

        Raises:
            DbxNetworkError: If the request could not be delivered
            DbxAPIError: If the server answered with a non-2xx status
        """
        client = self._get_client()
        request = client.build_request(method, url, params=params, content=content)
        self.signer.sign(request)

        logger.debug("%s %s", method, request.url)
        try:
            response = client.send(request)
        except httpx.RequestError as e:
            raise DbxNetworkError(f"Network error: {e}") from e

        if not response.is_success:
            raise self._error_from_response(response)
        return response

    def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        content: bytes | BinaryIO | None = None,
    ) -> Any:
        """Perform a request and decode its JSON body.

        Raises:
            DbxInvalidResponseError: If the body is not valid JSON
        """
        response = self._send(method, url, params=params, content=content)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise DbxInvalidResponseError("Invalid JSON response from server") from e

    def _root_path_url(self, name: str, root: str | None, path: str) -> str:
        root = root or self.root
        check_root_and_path(root, path)
        return build_root_path_url(API_URLS[name], root, path)

    # =========================
    # Account Operations
    # =========================

    def get_account_info(self) -> AccountInfo:
        """Get information about the account the token belongs to."""
        data = self._request(
            "GET", API_URLS["account/info"], params={"locale": self.locale}
        )
        return AccountInfo.from_api_response(data)

    # =========================
    # Metadata Operations
    # =========================

    def get_file_metadata(
        self,
        path: str,
        root: str | None = None,
        file_limit: int = 10000,
        hash: str = "",
        list: bool = True,
        include_deleted: bool = False,
        rev: str = "",
    ) -> PathMetadata:
        """Get metadata of a file or folder.

        Args:
            path: Remote path
            root: Root namespace (defaults to the client's root)
            file_limit: Maximum number of folder entries to return
            hash: Hash of a previous listing; unchanged folders return 304
            list: Include folder contents
            include_deleted: Include deleted entries in the listing
            rev: Metadata of a specific revision

        Returns:
            PathMetadata with contents populated for folders
        """
        url = self._root_path_url("metadata", root, path)
        params = {
            "file_limit": file_limit,
            "hash": hash,
            "list": bool_param(list),
            "include_deleted": bool_param(include_deleted),
            "rev": rev,
            "locale": self.locale,
        }
        return PathMetadata.from_api_response(self._request("GET", url, params=params))

    def revisions(
        self, path: str, root: str | None = None, rev_limit: int = 10
    ) -> list[PathMetadata]:
        """List previous revisions of a file."""
        url = self._root_path_url("revisions", root, path)
        params = {"rev_limit": rev_limit, "locale": self.locale}
        data = self._request("POST", url, params=params)
        return [PathMetadata.from_api_response(item) for item in data or []]

    def restore(self, path: str, rev: str, root: str | None = None) -> PathMetadata:
        """Restore a file to an earlier revision."""
        url = self._root_path_url("restore", root, path)
        params = {"rev": rev, "locale": self.locale}
        return PathMetadata.from_api_response(self._request("POST", url, params=params))

    def search(
        self,
        path: str,
        query: str,
        root: str | None = None,
        file_limit: int = 1000,
        include_deleted: bool = False,
    ) -> list[PathMetadata]:
        """Search a folder and its subfolders for names containing query."""
        url = self._root_path_url("search", root, path)
        params = {
            "query": query,
            "file_limit": file_limit,
            "include_deleted": bool_param(include_deleted),
            "locale": self.locale,
        }
        data = self._request("POST", url, params=params)
        return [PathMetadata.from_api_response(item) for item in data or []]

    def delta(self, cursor: str = "") -> DeltaResult:
        """Get a page of changes since cursor.

        Args:
            cursor: Cursor from a previous call; empty starts from scratch

        Returns:
            DeltaResult; call again with its cursor while has_more is set
        """
        params = {"cursor": cursor, "locale": self.locale}
        data = self._request("POST", API_URLS["delta"], params=params)
        return DeltaResult.from_api_response(data)

    # =========================
    # Sharing Operations
    # =========================

    def shares(
        self, path: str, root: str | None = None, short_url: bool = True
    ) -> dict[str, Any]:
        """Create a shareable link to a file or folder."""
        url = self._root_path_url("shares", root, path)
        params = {"short_url": bool_param(short_url), "locale": self.locale}
        result: dict[str, Any] = self._request("POST", url, params=params)
        return result

    def media(self, path: str, root: str | None = None) -> dict[str, Any]:
        """Get a direct streaming link to a file."""
        url = self._root_path_url("media", root, path)
        result: dict[str, Any] = self._request(
            "GET", url, params={"locale": self.locale}
        )
        return result

    def copy_ref(self, path: str, root: str | None = None) -> dict[str, Any]:
        """Create a reference usable as from_copy_ref in copy()."""
        url = self._root_path_url("copy_ref", root, path)
        result: dict[str, Any] = self._request("GET", url)
        return result

    # =========================
    # Download Operations
    # =========================

    def _get_file_entry(self, url: str, params: dict[str, Any]) -> FileEntry:
        response = self._send("GET", url, params=params)

        metadata_header = response.headers.get("x-dropbox-metadata")
        metadata = Content(path="")
        if metadata_header:
            try:
                metadata = Content.from_api_response(json.loads(metadata_header))
            except ValueError as e:
                raise DbxInvalidResponseError(
                    "Invalid x-dropbox-metadata header from server"
                ) from e

        return FileEntry(metadata=metadata, data=response.content)

    def get_file(self, path: str, root: str | None = None, rev: str = "") -> FileEntry:
        """Download a file into memory.

        Args:
            path: Remote path
            root: Root namespace (defaults to the client's root)
            rev: Download a specific revision

        Returns:
            FileEntry with the file's bytes and metadata
        """
        url = self._root_path_url("files", root, path)
        return self._get_file_entry(url, {"rev": rev})

    def download_file(
        self, path: str, output_path: Path, root: str | None = None, rev: str = ""
    ) -> Content:
        """Download a file and write it to output_path.

        Raises:
            DbxDownloadError: If the local file cannot be written
        """
        entry = self.get_file(path, root=root, rev=rev)
        try:
            output_path.write_bytes(entry.data)
        except OSError as e:
            raise DbxDownloadError(f"Failed to write file: {e}") from e
        return entry.metadata

    def thumbnails(
        self,
        path: str,
        root: str | None = None,
        format: str = "jpeg",
        size: str = "s",
    ) -> FileEntry:
        """Get a thumbnail of an image file.

        Args:
            path: Remote path of the image
            root: Root namespace (defaults to the client's root)
            format: "jpeg" or "png"
            size: One of xs, s, m, l, xl

        Returns:
            FileEntry with the thumbnail bytes
        """
        url = self._root_path_url("thumbnails", root, path)
        return self._get_file_entry(url, {"format": format, "size": size})

    # =========================
    # Upload Operations
    # =========================

    def put_file(
        self,
        body: bytes | BinaryIO,
        path: str,
        root: str | None = None,
        parent_rev: str = "",
        overwrite: bool = True,
    ) -> PathMetadata:
        """Upload a file in a single request.

        Args:
            body: File contents or a binary file object
            path: Remote destination path
            root: Root namespace (defaults to the client's root)
            parent_rev: Revision the upload replaces; empty for none
            overwrite: Overwrite an existing file instead of renaming

        Returns:
            PathMetadata of the stored file
        """
        url = self._root_path_url("files_put", root, path)
        params = {"overwrite": bool_param(overwrite), "parent_rev": parent_rev}
        data = self._request("PUT", url, params=params, content=body)
        return PathMetadata.from_api_response(data)

    def put_file_by_name(
        self, local_path: Path, path: str, root: str | None = None
    ) -> PathMetadata:
        """Upload a local file in a single request, overwriting the target."""
        if not local_path.is_file():
            raise DbxFileNotFoundError(str(local_path))
        with open(local_path, "rb") as f:
            return self.put_file(f.read(), path, root=root)

    def chunked_upload(
        self, chunk: bytes, upload_id: str = "", offset: int = 0
    ) -> UploadSession:
        """Upload one chunk of a chunked upload session.

        Args:
            chunk: Chunk bytes
            upload_id: Session id; empty for the first chunk
            offset: Byte offset of this chunk in the file

        Returns:
            UploadSession built from the server's upload_id and offset
        """
        params: dict[str, Any] = {}
        if upload_id:
            params["upload_id"] = upload_id
        params["offset"] = offset

        data = self._request(
            "PUT", API_URLS["chunked_upload"], params=params, content=chunk
        )
        return UploadSession.from_api_response(data)

    def commit_chunked_upload(
        self,
        path: str,
        upload_id: str,
        root: str | None = None,
        parent_rev: str = "",
        overwrite: bool = True,
    ) -> PathMetadata:
        """Turn an upload session into a file at path.

        Args:
            path: Remote destination path
            upload_id: Session id; empty if no chunk was uploaded
            root: Root namespace (defaults to the client's root)
            parent_rev: Revision the upload replaces; empty for none
            overwrite: Overwrite an existing file instead of renaming

        Returns:
            PathMetadata of the stored file
        """
        url = self._root_path_url("commit_chunked_upload", root, path)
        params: dict[str, Any] = {}
        if upload_id:
            params["upload_id"] = upload_id
        params.update(
            {
                "overwrite": bool_param(overwrite),
                "parent_rev": parent_rev,
                "locale": self.locale,
            }
        )
        return PathMetadata.from_api_response(self._request("POST", url, params=params))

    def upload_reader_by_chunked(
        self,
        source: BinaryIO,
        path: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        retry_count: int = DEFAULT_MAX_RETRIES,
        progress_callback: Callable[[int, int], None] | None = None,
        total_size: int = 0,
    ) -> PathMetadata:
        """Upload a binary stream with a chunked upload session.

        The stream is closed when the upload finishes or fails.

        Args:
            source: Readable binary stream
            path: Remote destination path in the client's root
            chunk_size: Bytes per chunk
            retry_count: Attempts per chunk before giving up
            progress_callback: Optional callback function(bytes_uploaded, total_bytes)
            total_size: Stream length reported to progress_callback, if known

        Returns:
            PathMetadata of the stored file
        """
        try:
            uploader = ChunkedUploader(
                self,
                chunk_size=chunk_size,
                max_retries=retry_count,
                progress_callback=progress_callback,
            )
        except ValueError:
            source.close()
            raise
        return uploader.upload_stream(source, path, total_size=total_size)

    def upload_by_chunked(
        self,
        local_path: Path,
        path: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        retry_count: int = DEFAULT_MAX_RETRIES,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> PathMetadata:
        """Upload a local file with a chunked upload session."""
        if not local_path.is_file():
            raise DbxFileNotFoundError(str(local_path))

        uploader = ChunkedUploader(
            self,
            chunk_size=chunk_size,
            max_retries=retry_count,
            progress_callback=progress_callback,
        )
        total_size = local_path.stat().st_size
        # upload_stream closes the file
        return uploader.upload_stream(
            open(local_path, "rb"), path, total_size=total_size
        )

    # =========================
    # File Operations
    # =========================

    def copy(
        self,
        from_path: str,
        to_path: str,
        root: str | None = None,
        from_copy_ref: str = "",
    ) -> PathMetadata:
        """Copy a file or folder, either by path or by copy reference."""
        root = root or self.root
        if has_empty(root, to_path):
            raise DbxValidationError("root, to_path are all required")
        if has_empty(from_path) and has_empty(from_copy_ref):
            raise DbxValidationError(
                "from_path, from_copy_ref must have one non-empty value"
            )
        check_root(root)

        params = {
            "root": root,
            "from_path": from_path,
            "to_path": to_path,
            "from_copy_ref": from_copy_ref,
            "locale": self.locale,
        }
        return self._file_operation("fileops/copy", params)

    def create_folder(self, path: str, root: str | None = None) -> PathMetadata:
        """Create a folder."""
        root = root or self.root
        check_root_and_path(root, path)
        params = {"root": root, "path": path, "locale": self.locale}
        return self._file_operation("fileops/create_folder", params)

    def delete(self, path: str, root: str | None = None) -> PathMetadata:
        """Delete a file or folder."""
        root = root or self.root
        check_root_and_path(root, path)
        params = {"root": root, "path": path, "locale": self.locale}
        return self._file_operation("fileops/delete", params)

    def move(
        self, from_path: str, to_path: str, root: str | None = None
    ) -> PathMetadata:
        """Move a file or folder."""
        root = root or self.root
        if has_empty(root, from_path, to_path):
            raise DbxValidationError("root, from_path, to_path are all required")
        check_root(root)

        params = {
            "root": root,
            "from_path": from_path,
            "to_path": to_path,
            "locale": self.locale,
        }
        return self._file_operation("fileops/move", params)

    def _file_operation(self, name: str, params: dict[str, Any]) -> PathMetadata:
        data = self._request("POST", API_URLS[name], params=params)
        return PathMetadata.from_api_response(data)
