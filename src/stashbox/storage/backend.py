from typing import Protocol, runtime_checkable

from stashbox.models import DownloadGrant, FileRecord, UploadOutcome


@runtime_checkable
class StorageBackend(Protocol):
    async def authenticate(self, password: str) -> str: ...

    async def upload(
        self, name: str, content: bytes, credential: str
    ) -> UploadOutcome: ...

    async def list_files(self, credential: str) -> list[FileRecord]: ...

    async def create_download_grant(
        self, name: str, credential: str
    ) -> DownloadGrant: ...

    async def delete(self, name: str, credential: str) -> None: ...
