"""pydbx - Python client and CLI for the Dropbox core API."""

from .api import DropboxClient
from .auth import OAuth2, authorize_url
from .chunked import ChunkedUploader, UploadSession
from .exceptions import (
    DbxAPIError,
    DbxAuthenticationError,
    DbxCommitError,
    DbxConfigError,
    DbxDownloadError,
    DbxFileNotFoundError,
    DbxInvalidResponseError,
    DbxNetworkError,
    DbxNotFoundError,
    DbxRateLimitError,
    DbxRetryExhaustedError,
    DbxStreamReadError,
    DbxUploadError,
    DbxValidationError,
)
from .models import (
    AccountInfo,
    Content,
    DeltaEntry,
    DeltaResult,
    FileEntry,
    PathMetadata,
    QuotaInfo,
)

__version__ = "0.1.0"

__all__ = [
    "DropboxClient",
    "OAuth2",
    "authorize_url",
    "ChunkedUploader",
    "UploadSession",
    "AccountInfo",
    "Content",
    "DeltaEntry",
    "DeltaResult",
    "FileEntry",
    "PathMetadata",
    "QuotaInfo",
    "DbxAPIError",
    "DbxAuthenticationError",
    "DbxCommitError",
    "DbxConfigError",
    "DbxDownloadError",
    "DbxFileNotFoundError",
    "DbxInvalidResponseError",
    "DbxNetworkError",
    "DbxNotFoundError",
    "DbxRateLimitError",
    "DbxRetryExhaustedError",
    "DbxStreamReadError",
    "DbxUploadError",
    "DbxValidationError",
]
