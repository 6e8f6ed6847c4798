from __future__ import annotations
"""Data models representing listings and transfers."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
import enum
import mimetypes
from pathlib import Path
from typing import Optional

from .errors import ListingError


class Operation(str, enum.Enum):
    READ = "read"
    WRITE = "write"


class ScopeState(enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class ObjectRecord:
    """One stored object as reported by a listing."""

    key: str
    size_bytes: int
    last_modified: datetime


@dataclass(frozen=True)
class Listing:
    """Objects and sub-prefixes visible under one prefix."""

    prefix: str = ""
    files: tuple[ObjectRecord, ...] = ()
    folders: tuple[str, ...] = ()

    def __post_init__(self):
        seen: set[str] = set()
        for record in self.files:
            if record.key in seen:
                raise ListingError(f"Duplicate key '{record.key}' in listing for '{self.prefix}'")
            seen.add(record.key)

    def find(self, key: str) -> Optional[ObjectRecord]:
        for record in self.files:
            if record.key == key:
                return record
        return None


@dataclass(frozen=True)
class TransferAuthorization:
    """A signed URL good for one operation on one key."""

    key: str
    operation: Operation
    url: str
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at


@dataclass(frozen=True)
class LocalFile:
    """A local file to upload, backed by a path or by in-memory bytes."""

    name: str
    size_bytes: int
    content_type: str = "application/octet-stream"
    path: Optional[Path] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: str | Path, *, name: str | None = None) -> "LocalFile":
        source = Path(path)
        content_type, _ = mimetypes.guess_type(source.name)
        return cls(
            name=name or source.name,
            size_bytes=source.stat().st_size,
            content_type=content_type or "application/octet-stream",
            path=source,
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: str | None = None) -> "LocalFile":
        if content_type is None:
            content_type, _ = mimetypes.guess_type(name)
        return cls(
            name=name,
            size_bytes=len(data),
            content_type=content_type or "application/octet-stream",
            data=data,
        )


@dataclass
class UploadResult:
    """Outcome of an upload; the upload itself always succeeded."""

    key: str
    size_bytes: int
    refresh_error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return True

    @property
    def refreshed(self) -> bool:
        return self.refresh_error is None


@dataclass
class DownloadResult:
    key: str
    destination: Path
    size_bytes: int


@dataclass(frozen=True)
class Bundle:
    """The backend's answer to a bundling request: a pointer or the archive itself."""

    prefix: str
    filename: str
    url: Optional[str] = None
    content: Optional[bytes] = field(default=None, repr=False)


@dataclass(frozen=True)
class VisibleFile:
    """One row rendered for the selected folder."""

    name: str
    record: ObjectRecord

    @property
    def key(self) -> str:
        return self.record.key

    @property
    def size_bytes(self) -> int:
        return self.record.size_bytes

    @property
    def last_modified(self) -> datetime:
        return self.record.last_modified
