from stashbox.errors import ErrorKind, StorageError
from stashbox.models import (
    ActionResult,
    BatchResult,
    DownloadGrant,
    FileRecord,
    UploadItem,
    UploadOutcome,
    UploadProgress,
    UploadState,
)
from stashbox.naming import resolve
from stashbox.orchestrator import Orchestrator, UploadQueue
from stashbox.presenter import ConsolePresenter, Notification, Presenter
from stashbox.session import SessionStore

__all__ = [
    "ActionResult",
    "BatchResult",
    "ConsolePresenter",
    "DownloadGrant",
    "ErrorKind",
    "FileRecord",
    "Notification",
    "Orchestrator",
    "Presenter",
    "SessionStore",
    "StorageError",
    "UploadItem",
    "UploadOutcome",
    "UploadProgress",
    "UploadQueue",
    "UploadState",
    "resolve",
]
