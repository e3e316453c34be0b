from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from stashbox.errors import ErrorKind, StorageError
from stashbox.models import DownloadGrant, FileRecord, UploadOutcome, newest_first
from stashbox.orchestrator import Orchestrator
from stashbox.session import SessionStore

PASSWORD = "correct horse"
FIXED_MILLIS = 1700000000000


class FakeBackend:
    """In-memory StorageBackend that records every call it receives."""

    def __init__(self, password: str = PASSWORD):
        self.password = password
        self.objects: dict[str, FileRecord] = {}
        self.tokens: set[str] = set()
        self.calls: list[tuple[str, ...]] = []
        self._failures: dict[str, list[StorageError]] = {}
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def fail(self, operation: str, error: StorageError, times: int = 1) -> None:
        self._failures.setdefault(operation, []).extend([error] * times)

    def add(self, name: str, size: int = 10) -> None:
        self._clock += timedelta(seconds=1)
        self.objects[name] = FileRecord(name=name, size_bytes=size, created_at=self._clock)

    def expire_tokens(self) -> None:
        self.tokens.clear()

    def calls_to(self, operation: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == operation]

    def _enter(self, operation: str, *args: str, credential: Optional[str] = None) -> None:
        self.calls.append((operation, *args))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)
        if credential is not None and credential not in self.tokens:
            raise StorageError(ErrorKind.UNAUTHORIZED)

    async def authenticate(self, password: str) -> str:
        self._enter("authenticate")
        if password != self.password:
            raise StorageError(ErrorKind.UNAUTHORIZED, "Incorrect password")
        token = f"token-{len(self.tokens) + 1}"
        self.tokens.add(token)
        return token

    async def upload(self, name: str, content: bytes, credential: str) -> UploadOutcome:
        self._enter("upload", name, credential=credential)
        if name in self.objects:
            raise StorageError(ErrorKind.CONFLICT, f"File already exists: {name}")
        self.add(name, len(content))
        return UploadOutcome.success(name)

    async def list_files(self, credential: str) -> list[FileRecord]:
        self._enter("list_files", credential=credential)
        return newest_first(list(self.objects.values()))

    async def create_download_grant(self, name: str, credential: str) -> DownloadGrant:
        self._enter("create_download_grant", name, credential=credential)
        if name not in self.objects:
            raise StorageError(ErrorKind.NOT_FOUND, f"File not found: {name}")
        return DownloadGrant(url=f"https://files.test/{name}?sig=abc", expires_in_seconds=60)

    async def delete(self, name: str, credential: str) -> None:
        self._enter("delete", name, credential=credential)
        if name not in self.objects:
            raise StorageError(ErrorKind.NOT_FOUND, f"File not found: {name}")
        del self.objects[name]


class RecordingPresenter:
    def __init__(self, confirm_answer: bool = True):
        self.confirm_answer = confirm_answer
        self.notifications = []
        self.listings = []
        self.progress = []
        self.login_prompts = []
        self.confirmations = []
        self.opened = []

    def notify(self, notification) -> None:
        self.notifications.append(notification)

    def show_files(self, files) -> None:
        self.listings.append(list(files))

    def show_progress(self, progress) -> None:
        self.progress.append(progress)

    def show_login(self, message=None) -> None:
        self.login_prompts.append(message)

    def confirm(self, message: str) -> bool:
        self.confirmations.append(message)
        return self.confirm_answer

    def open_url(self, name, grant) -> None:
        self.opened.append((name, grant))

    @property
    def errors(self) -> list[str]:
        return [n.message for n in self.notifications if n.level == "error"]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def orchestrator(backend, session_store, presenter):
    return Orchestrator(backend, session_store, presenter, clock=lambda: FIXED_MILLIS)
