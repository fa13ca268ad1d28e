"""Exceptions raised by the Dropbox client."""

from __future__ import annotations


class DbxAPIError(Exception):
    """Base exception for all Dropbox API errors.

    Attributes:
        message: Human readable error message
        status_code: HTTP status code, -1 for client-side validation
            failures, or None when no response was received
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class DbxConfigError(DbxAPIError):
    """Raised when the client is missing credentials or configuration."""


class DbxAuthenticationError(DbxAPIError):
    """Raised when the access token is rejected."""


class DbxNotFoundError(DbxAPIError):
    """Raised when a remote path does not exist."""


class DbxRateLimitError(DbxAPIError):
    """Raised when the API asks the client to back off."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class DbxNetworkError(DbxAPIError):
    """Raised when the request could not be delivered."""


class DbxInvalidResponseError(DbxAPIError):
    """Raised when a response body cannot be decoded."""


class DbxValidationError(DbxAPIError):
    """Raised when arguments are rejected before any request is made."""

    def __init__(self, message: str):
        super().__init__(message, status_code=-1)


class DbxFileNotFoundError(DbxAPIError):
    """Raised when a local file does not exist."""

    def __init__(self, file_path: str):
        super().__init__(f"File not found: {file_path}")
        self.file_path = file_path


class DbxDownloadError(DbxAPIError):
    """Raised when a download cannot be written locally."""


class DbxUploadError(DbxAPIError):
    """Base exception for upload failures."""


class DbxRetryExhaustedError(DbxUploadError):
    """Raised when a chunk failed on every permitted attempt.

    The last underlying error is kept in ``last_error`` and as the
    exception's ``__cause__``.
    """

    def __init__(self, last_error: DbxAPIError, attempts: int):
        super().__init__(
            f"{last_error} (chunk upload gave up after {attempts} attempts)",
            status_code=last_error.status_code,
        )
        self.last_error = last_error
        self.attempts = attempts


class DbxStreamReadError(DbxUploadError):
    """Raised when the upload source cannot be read."""


class DbxCommitError(DbxUploadError):
    """Raised when an upload session cannot be committed to a path.

    All chunks were accepted, so ``upload_id`` still identifies the
    uploaded data on the server.
    """

    def __init__(
        self, message: str, upload_id: str = "", status_code: int | None = None
    ):
        super().__init__(message, status_code)
        self.upload_id = upload_id
