"""Data models for Dropbox API responses."""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class QuotaInfo:
    """Storage quota of an account, in bytes."""

    shared: int = 0
    quota: int = 0
    normal: int = 0

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "QuotaInfo":
        return cls(
            shared=int(data.get("shared", 0)),
            quota=int(data.get("quota", 0)),
            normal=int(data.get("normal", 0)),
        )

    @property
    def used(self) -> int:
        return self.shared + self.normal


@dataclass
class AccountInfo:
    """Information about the account the token belongs to."""

    uid: int
    display_name: str
    email: str = ""
    country: str = ""
    referral_link: str = ""
    quota_info: QuotaInfo = field(default_factory=QuotaInfo)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "AccountInfo":
        return cls(
            uid=int(data.get("uid", 0)),
            display_name=data.get("display_name", ""),
            email=data.get("email", ""),
            country=data.get("country", ""),
            referral_link=data.get("referral_link", ""),
            quota_info=QuotaInfo.from_api_response(data.get("quota_info") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Content:
    """Metadata of a single file or folder."""

    path: str
    is_dir: bool = False
    bytes: int = 0
    size: str = ""
    rev: str = ""
    revision: int = 0
    modified: str = ""
    client_mtime: str = ""
    thumb_exists: bool = False
    icon: str = ""
    root: str = ""
    mime_type: str = ""
    is_deleted: bool = False

    @classmethod
    def _kwargs(cls, data: dict[str, Any]) -> dict[str, Any]:
        # Numbers in delta entries are decoded as floats by some servers
        return {
            "path": data.get("path", ""),
            "is_dir": bool(data.get("is_dir", False)),
            "bytes": int(data.get("bytes", 0) or 0),
            "size": data.get("size", ""),
            "rev": data.get("rev", ""),
            "revision": int(data.get("revision", 0) or 0),
            "modified": data.get("modified", ""),
            "client_mtime": data.get("client_mtime", ""),
            "thumb_exists": bool(data.get("thumb_exists", False)),
            "icon": data.get("icon", ""),
            "root": data.get("root", ""),
            "mime_type": data.get("mime_type", ""),
            "is_deleted": bool(data.get("is_deleted", False)),
        }

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "Content":
        return cls(**cls._kwargs(data))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]


@dataclass
class PathMetadata(Content):
    """Metadata of a path, with folder contents when listed."""

    hash: str = ""
    contents: list[Content] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "PathMetadata":
        return cls(
            **cls._kwargs(data),
            hash=data.get("hash", ""),
            contents=[
                Content.from_api_response(item) for item in data.get("contents") or []
            ],
        )


@dataclass
class FileEntry:
    """Downloaded file data along with its metadata."""

    metadata: Content
    data: bytes = b""


@dataclass
class DeltaEntry:
    """One change reported by delta; metadata is None for deletions."""

    path: str
    metadata: Optional[PathMetadata] = None

    @property
    def is_deleted(self) -> bool:
        return self.metadata is None


@dataclass
class DeltaResult:
    """A page of changes returned by delta."""

    entries: list[DeltaEntry]
    reset: bool = False
    cursor: str = ""
    has_more: bool = False

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DeltaResult":
        entries = []
        for item in data.get("entries") or []:
            path, metadata = item[0], item[1]
            entries.append(
                DeltaEntry(
                    path=path,
                    metadata=(
                        PathMetadata.from_api_response(metadata)
                        if metadata is not None
                        else None
                    ),
                )
            )
        return cls(
            entries=entries,
            reset=bool(data.get("reset", False)),
            cursor=data.get("cursor", ""),
            has_more=bool(data.get("has_more", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
