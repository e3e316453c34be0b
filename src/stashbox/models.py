from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiofiles

from stashbox.errors import ErrorKind


def _parse_timestamp(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class FileRecord:
    name: str
    size_bytes: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: dict) -> "FileRecord":
        metadata = data.get("metadata") or {}
        return cls(
            name=data["name"],
            size_bytes=int(metadata.get("size") or 0),
            created_at=_parse_timestamp(data.get("created_at")),
        )

    @classmethod
    def from_s3_object(cls, obj: dict, prefix: str) -> "FileRecord":
        key = obj["Key"]
        if prefix and key.startswith(f"{prefix}/"):
            key = key[len(prefix) + 1 :]
        return cls(
            name=key,
            size_bytes=int(obj.get("Size") or 0),
            created_at=_parse_timestamp(obj.get("LastModified")),
        )


def newest_first(records: list[FileRecord]) -> list[FileRecord]:
    """Order records by creation time, newest first, undated records last."""
    dated = [r for r in records if r.created_at is not None]
    undated = [r for r in records if r.created_at is None]
    dated.sort(key=lambda r: r.created_at, reverse=True)
    return dated + undated


@dataclass(frozen=True)
class DownloadGrant:
    url: str
    expires_in_seconds: int


@dataclass(frozen=True)
class UploadOutcome:
    final_name: Optional[str] = None
    kind: Optional[ErrorKind] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, final_name: str) -> "UploadOutcome":
        return cls(final_name=final_name)

    @classmethod
    def failure(cls, kind: ErrorKind, reason: str) -> "UploadOutcome":
        return cls(kind=kind, reason=reason)

    @property
    def ok(self) -> bool:
        return self.kind is None


class UploadState(str, Enum):
    PENDING = "pending"
    SIZE_CHECKED = "size_checked"
    NAME_RESOLVED = "name_resolved"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


@dataclass
class UploadItem:
    name: str
    size: int
    read: Callable[[], Awaitable[bytes]]
    state: UploadState = UploadState.PENDING
    effective_name: Optional[str] = None
    outcome: Optional[UploadOutcome] = None

    @classmethod
    def from_bytes(cls, name: str, data: bytes) -> "UploadItem":
        async def _read() -> bytes:
            return data

        return cls(name=name, size=len(data), read=_read)

    @classmethod
    def from_path(cls, path: Path) -> "UploadItem":
        async def _read() -> bytes:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()

        return cls(name=path.name, size=path.stat().st_size, read=_read)

    @property
    def finished(self) -> bool:
        return self.state in (UploadState.DONE, UploadState.FAILED)

    def complete(self, outcome: UploadOutcome) -> None:
        self.outcome = outcome
        self.state = UploadState.DONE if outcome.ok else UploadState.FAILED


@dataclass(frozen=True)
class UploadProgress:
    active: bool
    current: Optional[str] = None
    completed: int = 0
    total: int = 0


@dataclass
class BatchResult:
    items: list[UploadItem] = field(default_factory=list)
    listing_refreshed: bool = False
    session_ended: bool = False

    @property
    def uploaded(self) -> list[str]:
        return [
            item.outcome.final_name
            for item in self.items
            if item.outcome is not None and item.outcome.ok
        ]

    @property
    def failed(self) -> list[UploadItem]:
        return [item for item in self.items if item.state == UploadState.FAILED]


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    kind: Optional[ErrorKind] = None
    reason: Optional[str] = None
    grant: Optional[DownloadGrant] = None
