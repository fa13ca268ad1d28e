"""Utility functions for pydbx."""

from typing import Optional
from urllib.parse import quote

from .exceptions import DbxValidationError

# =============================================================================
# Constants for file operations
# =============================================================================

# Chunk size for chunked uploads (4 MB)
DEFAULT_CHUNK_SIZE: int = 4 * 1024 * 1024

# Attempts per chunk before a chunked upload gives up
DEFAULT_MAX_RETRIES: int = 3

VALID_ROOTS = ("dropbox", "sandbox", "auto")


# =============================================================================
# Root and path validation
# =============================================================================


def has_empty(*values: Optional[str]) -> bool:
    """Return True if any of the values is None or an empty string."""
    return any(not value for value in values)


def check_root(root: str) -> None:
    """Ensure root is one of the namespaces the API knows.

    Raises:
        DbxValidationError: If root is not dropbox, sandbox or auto
    """
    if root not in VALID_ROOTS:
        raise DbxValidationError('root must be "dropbox" or "sandbox" or "auto"')


def check_root_and_path(root: str, path: str) -> None:
    """Ensure both root and path are given and root is valid.

    Raises:
        DbxValidationError: If either is empty or root is invalid
    """
    if has_empty(root, path):
        raise DbxValidationError("root, path are all required")
    check_root(root)


def build_root_path_url(template: str, root: str, path: str) -> str:
    """Fill the <root> and <path> placeholders of an endpoint template.

    Both values are percent-escaped, slashes included.

    Examples:
        >>> build_root_path_url("https://x/1/metadata/<root>/<path>", "auto", "/a b")
        'https://x/1/metadata/auto/%2Fa%20b'
    """
    url = template.replace("<root>", quote(root, safe=""), 1)
    return url.replace("<path>", quote(path, safe=""), 1)


def bool_param(value: bool) -> str:
    """Format a boolean the way the API expects query flags."""
    return "true" if value else "false"


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Human-readable size string (e.g., "1.5 MB")
    """
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            if unit == "B":
                return f"{int(size)} {unit}"
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"


def parse_size(value: str) -> int:
    """Parse a size such as "10MB", "512k" or "4096" into bytes.

    Raises:
        ValueError: If the value is not a positive size
    """
    text = value.strip().upper().rstrip("B")
    multipliers = {"K": 1024, "M": 1024**2, "G": 1024**3}
    multiplier = 1
    if text and text[-1] in multipliers:
        multiplier = multipliers[text[-1]]
        text = text[:-1]
    try:
        size = int(float(text) * multiplier)
    except OverflowError:
        raise ValueError(f"Size is too large: {value}") from None
    if size <= 0:
        raise ValueError(f"Size must be positive: {value}")
    return size
