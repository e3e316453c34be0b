import asyncio
from typing import Optional
from urllib.parse import quote

import aiohttp
from loguru import logger

from stashbox.config import DEFAULT_GRANT_TTL_SECONDS
from stashbox.errors import ErrorKind, StorageError
from stashbox.models import DownloadGrant, FileRecord, UploadOutcome, newest_first

_STATUS_KINDS = {
    401: ErrorKind.UNAUTHORIZED,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    412: ErrorKind.CONFLICT,
    413: ErrorKind.OVERSIZE,
}


class HttpApiError(StorageError):
    def __init__(self, kind: ErrorKind, status: int, message: Optional[str]):
        # A 401 always means the session is gone, whatever the server says.
        super().__init__(kind, None if kind == ErrorKind.UNAUTHORIZED else message)
        self.status = status
        self.message = message


class HttpApiStorage:
    """Bearer-token HTTP API backend.

    Every request opens a short-lived ``aiohttp.ClientSession``; the
    backend keeps no connection state between calls.
    """

    def __init__(self, base_url: str, timeout: Optional[float] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _client(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    @staticmethod
    def _auth_headers(credential: str) -> dict:
        return {"Authorization": f"Bearer {credential}"}

    @staticmethod
    async def _read_json(response: aiohttp.ClientResponse):
        try:
            data = await response.json(content_type=None)
        except ValueError:
            return {}
        return {} if data is None else data

    async def _request(self, method: str, path: str, default_error: str, **kwargs):
        try:
            async with self._client() as client:
                async with client.request(method, self._url(path), **kwargs) as resp:
                    data = await self._read_json(resp)
                    if resp.status >= 400:
                        message = data.get("error") if isinstance(data, dict) else None
                        kind = _STATUS_KINDS.get(resp.status, ErrorKind.UNKNOWN)
                        if kind == ErrorKind.UNKNOWN:
                            message = message or default_error
                        raise HttpApiError(kind, resp.status, message)
                    return data
        except aiohttp.ClientError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise StorageError(ErrorKind.NETWORK_FAILURE) from e
        except asyncio.TimeoutError as e:
            logger.warning(f"{method} {path} timed out after {self.timeout}s")
            raise StorageError(ErrorKind.NETWORK_FAILURE, "Request timed out") from e

    async def authenticate(self, password: str) -> str:
        try:
            data = await self._request(
                "POST", "/login", "Login failed", json={"password": password}
            )
        except HttpApiError as e:
            if 400 <= e.status < 500:
                raise StorageError(
                    ErrorKind.UNAUTHORIZED, e.message or "Incorrect password"
                ) from e
            raise
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise StorageError(ErrorKind.UNKNOWN, "Login failed")
        return token

    async def upload(self, name: str, content: bytes, credential: str) -> UploadOutcome:
        form = aiohttp.FormData()
        form.add_field("file", content, filename=name)
        await self._request(
            "POST",
            "/upload",
            "Upload failed",
            data=form,
            headers=self._auth_headers(credential),
        )
        logger.debug(f"Uploaded {name} to {self.base_url}")
        return UploadOutcome.success(name)

    async def list_files(self, credential: str) -> list[FileRecord]:
        data = await self._request(
            "GET",
            "/files",
            "Failed to load files",
            headers=self._auth_headers(credential),
        )
        # The API has answered both with a bare array and with {"files": [...]}.
        if isinstance(data, dict):
            data = data.get("files") or []
        try:
            records = [FileRecord.from_api(entry) for entry in data]
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.error(f"Unexpected file listing from {self.base_url}: {e!r}")
            raise StorageError(ErrorKind.UNKNOWN, "Malformed file listing") from e
        logger.debug(f"Listed {len(records)} files from {self.base_url}")
        return newest_first(records)

    async def create_download_grant(self, name: str, credential: str) -> DownloadGrant:
        data = await self._request(
            "GET",
            f"/download/{quote(name, safe='')}",
            "Download failed",
            headers=self._auth_headers(credential),
        )
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise StorageError(ErrorKind.UNKNOWN, "Download failed")
        expires_in = data.get("expires_in") or DEFAULT_GRANT_TTL_SECONDS
        return DownloadGrant(url=url, expires_in_seconds=int(expires_in))

    async def delete(self, name: str, credential: str) -> None:
        await self._request(
            "DELETE",
            f"/delete/{quote(name, safe='')}",
            "Delete failed",
            headers=self._auth_headers(credential),
        )
        logger.debug(f"Deleted {name} from {self.base_url}")
