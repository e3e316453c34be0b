from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from stashbox.formatting import format_date, format_file_size
from stashbox.models import DownloadGrant, FileRecord, UploadProgress


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


@runtime_checkable
class Presenter(Protocol):
    """What the orchestrator needs from whatever renders the app."""

    def notify(self, notification: Notification) -> None: ...

    def show_files(self, files: list[FileRecord]) -> None: ...

    def show_progress(self, progress: UploadProgress) -> None: ...

    def show_login(self, message: Optional[str] = None) -> None: ...

    def confirm(self, message: str) -> bool: ...

    def open_url(self, name: str, grant: DownloadGrant) -> None: ...


_MARKERS = {"success": "+", "error": "!", "info": "-"}


class ConsolePresenter:
    def __init__(self, assume_yes: bool = False):
        self.assume_yes = assume_yes
        self.last_grant: Optional[DownloadGrant] = None

    def notify(self, notification: Notification) -> None:
        marker = _MARKERS.get(notification.level, "-")
        print(f"[{marker}] {notification.message}")

    def show_files(self, files: list[FileRecord]) -> None:
        print(f"Files ({len(files)})")
        if not files:
            print("No files yet. Upload your first file!")
            return
        width = max(len(f.name) for f in files)
        for record in files:
            print(
                f"  {record.name:<{width}}  {format_file_size(record.size_bytes):>10}"
                f"  {format_date(record.created_at)}"
            )

    def show_progress(self, progress: UploadProgress) -> None:
        if progress.active and progress.current:
            position = f"{progress.completed + 1}/{progress.total}"
            print(f"Uploading {progress.current}... ({position})")

    def show_login(self, message: Optional[str] = None) -> None:
        if message:
            print(message)

    def confirm(self, message: str) -> bool:
        if self.assume_yes:
            return True
        answer = input(f"{message} [y/N] ")
        return answer.strip().lower() in ("y", "yes")

    def open_url(self, name: str, grant: DownloadGrant) -> None:
        self.last_grant = grant
        print(f"{name}: {grant.url} (expires in {grant.expires_in_seconds}s)")
