import asyncio
from collections import deque
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from loguru import logger

from stashbox.config import MAX_FILE_SIZE
from stashbox.errors import ErrorKind, StorageError
from stashbox.models import (
    ActionResult,
    BatchResult,
    FileRecord,
    UploadItem,
    UploadOutcome,
    UploadProgress,
    UploadState,
)
from stashbox.naming import epoch_millis, resolve
from stashbox.presenter import Notification, Presenter
from stashbox.session import SessionStore
from stashbox.storage.backend import StorageBackend

T = TypeVar("T")

ProgressListener = Callable[[UploadProgress], None]


class UploadQueue:
    """Selected files waiting to be uploaded, handed out one at a time.

    An item is only dequeued after the previous one reached DONE or FAILED,
    and every change is published to subscribers as an UploadProgress.
    """

    def __init__(self, items: Iterable[UploadItem]):
        self.items = list(items)
        self._pending = deque(self.items)
        self._current: Optional[UploadItem] = None
        self._listeners: list[ProgressListener] = []

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    @property
    def completed(self) -> int:
        return sum(1 for item in self.items if item.finished)

    @property
    def progress(self) -> UploadProgress:
        return UploadProgress(
            active=self._current is not None,
            current=self._current.name if self._current else None,
            completed=self.completed,
            total=len(self.items),
        )

    def next(self) -> Optional[UploadItem]:
        if self._current is not None and not self._current.finished:
            raise RuntimeError(f"{self._current.name} has not finished uploading")
        self._current = self._pending.popleft() if self._pending else None
        self._publish()
        return self._current

    def finish(self, item: UploadItem, outcome: UploadOutcome) -> None:
        item.complete(outcome)
        if self._current is item:
            self._current = None
        self._publish()

    def abandon(self, outcome: UploadOutcome) -> list[UploadItem]:
        skipped = list(self._pending)
        self._pending.clear()
        for item in skipped:
            item.complete(outcome)
        self._current = None
        self._publish()
        return skipped

    def _publish(self) -> None:
        progress = self.progress
        for listener in self._listeners:
            listener(progress)


class Orchestrator:
    """Drives upload, listing, download and delete against one backend.

    Every backend failure is turned into an ErrorKind and surfaced as a
    single notification. An UNAUTHORIZED answer from any call clears the
    session and sends the user back to the login screen. The rendered
    listing in ``files`` is only ever replaced by a fresh ``list_files``
    result, never patched.
    """

    def __init__(
        self,
        backend: StorageBackend,
        session: SessionStore,
        presenter: Presenter,
        timeout: Optional[float] = None,
        clock: Callable[[], int] = epoch_millis,
        max_file_size: int = MAX_FILE_SIZE,
    ):
        self.backend = backend
        self.session = session
        self.presenter = presenter
        self.timeout = timeout
        self.clock = clock
        self.max_file_size = max_file_size
        self.files: list[FileRecord] = []
        self.session.subscribe(self._on_session_cleared)

    def _on_session_cleared(self, reason: str) -> None:
        self.files = []
        self.presenter.show_login()

    def _notify(self, level: str, message: str) -> None:
        self.presenter.notify(Notification(level=level, message=message))

    async def _call(self, operation: Awaitable[T]) -> T:
        try:
            if self.timeout is None:
                return await operation
            return await asyncio.wait_for(operation, self.timeout)
        except StorageError:
            raise
        except asyncio.TimeoutError as e:
            logger.warning(f"Backend call timed out after {self.timeout}s")
            raise StorageError(ErrorKind.NETWORK_FAILURE, "Request timed out") from e
        except Exception as e:
            logger.error(f"Unexpected backend error: {e!r}")
            raise StorageError(ErrorKind.UNKNOWN, str(e) or None) from e

    def _end_session(self, message: str) -> None:
        self._notify("error", message)
        self.session.clear("invalidated")

    def _report(self, error: StorageError) -> None:
        if error.kind == ErrorKind.UNAUTHORIZED:
            self._end_session(error.reason)
        else:
            self._notify("error", error.reason)

    def _require_credential(self) -> Optional[str]:
        credential = self.session.get_credential()
        if credential is None:
            self._end_session("Not authenticated")
        return credential

    async def login(self, password: str) -> ActionResult:
        if not password:
            self.presenter.show_login("Please enter a password")
            return ActionResult(
                ok=False, kind=ErrorKind.UNAUTHORIZED, reason="Please enter a password"
            )

        try:
            token = await self._call(self.backend.authenticate(password))
        except StorageError as e:
            logger.warning(f"Login failed: {e.reason}")
            self.presenter.show_login(e.reason)
            return ActionResult(ok=False, kind=e.kind, reason=e.reason)

        self.session.set_credential(token)
        logger.info("Logged in")
        await self.refresh()
        return ActionResult(ok=True)

    def logout(self) -> None:
        self.session.clear("logout")

    async def refresh(self) -> Optional[list[FileRecord]]:
        credential = self._require_credential()
        if credential is None:
            return None

        try:
            files = await self._call(self.backend.list_files(credential))
        except StorageError as e:
            logger.warning(f"Failed to load files: {e.reason}")
            self._report(e)
            return None

        self.files = files
        self.presenter.show_files(files)
        return files

    async def _upload_one(self, item: UploadItem, taken: set[str]) -> UploadOutcome:
        if item.size > self.max_file_size:
            limit_mb = self.max_file_size // (1024 * 1024)
            return UploadOutcome.failure(
                ErrorKind.OVERSIZE, f"File exceeds {limit_mb}MB limit"
            )
        item.state = UploadState.SIZE_CHECKED

        credential = self.session.get_credential()
        if credential is None:
            return UploadOutcome.failure(ErrorKind.UNAUTHORIZED, "Not authenticated")

        item.effective_name = resolve(item.name, taken, self.clock)
        item.state = UploadState.NAME_RESOLVED

        item.state = UploadState.UPLOADING
        try:
            content = await item.read()
        except Exception as e:
            logger.error(f"Reading {item.name} failed: {e!r}")
            return UploadOutcome.failure(
                ErrorKind.UNKNOWN, f"Could not read {item.name}: {e}"
            )

        try:
            return await self._call(
                self.backend.upload(item.effective_name, content, credential)
            )
        except StorageError as e:
            return UploadOutcome.failure(e.kind, e.reason)

    async def upload(self, items: Iterable[UploadItem]) -> BatchResult:
        queue = UploadQueue(items)
        result = BatchResult(items=queue.items)
        if not queue.items:
            return result

        queue.subscribe(self.presenter.show_progress)
        taken = {record.name for record in self.files}

        while True:
            item = queue.next()
            if item is None:
                break

            outcome = await self._upload_one(item, taken)
            queue.finish(item, outcome)

            if outcome.ok:
                taken.add(outcome.final_name)
                if outcome.final_name != item.name:
                    self._notify(
                        "success", f"{item.name} uploaded as {outcome.final_name}"
                    )
                else:
                    self._notify("success", f"{item.name} uploaded successfully")
                logger.info(f"Uploaded {outcome.final_name} ({item.size} bytes)")
                continue

            logger.warning(
                f"Upload of {item.name} failed: {outcome.kind.value}: {outcome.reason}"
            )
            if outcome.kind == ErrorKind.UNAUTHORIZED:
                skipped = queue.abandon(
                    UploadOutcome.failure(
                        ErrorKind.UNAUTHORIZED, "Not attempted: session ended"
                    )
                )
                if skipped:
                    logger.info(f"Skipped {len(skipped)} queued upload(s)")
                self._end_session(outcome.reason)
                result.session_ended = True
                return result
            self._notify("error", outcome.reason)

        result.listing_refreshed = await self.refresh() is not None
        return result

    async def download(self, name: str) -> ActionResult:
        credential = self._require_credential()
        if credential is None:
            return ActionResult(
                ok=False, kind=ErrorKind.UNAUTHORIZED, reason="Not authenticated"
            )

        try:
            grant = await self._call(
                self.backend.create_download_grant(name, credential)
            )
        except StorageError as e:
            logger.warning(f"Download of {name} failed: {e.reason}")
            self._report(e)
            return ActionResult(ok=False, kind=e.kind, reason=e.reason)

        self.presenter.open_url(name, grant)
        self._notify("success", "Download started")
        return ActionResult(ok=True, grant=grant)

    async def delete(self, name: str) -> ActionResult:
        if not self.presenter.confirm(f'Are you sure you want to delete "{name}"?'):
            return ActionResult(ok=False, reason="Cancelled")

        credential = self._require_credential()
        if credential is None:
            return ActionResult(
                ok=False, kind=ErrorKind.UNAUTHORIZED, reason="Not authenticated"
            )

        try:
            await self._call(self.backend.delete(name, credential))
        except StorageError as e:
            logger.warning(f"Delete of {name} failed: {e.reason}")
            self._report(e)
            # Someone else already removed it; show what is actually there.
            if e.kind == ErrorKind.NOT_FOUND:
                await self.refresh()
            return ActionResult(ok=False, kind=e.kind, reason=e.reason)

        logger.info(f"Deleted {name}")
        self._notify("success", "File deleted successfully")
        await self.refresh()
        return ActionResult(ok=True)
