import hashlib
import hmac
import secrets
from typing import Optional

import aioboto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from loguru import logger

from stashbox.config import (
    DEFAULT_GRANT_TTL_SECONDS,
    DEFAULT_S3_PREFIX,
    DEFAULT_S3_REGION,
    MAX_FILE_SIZE,
)
from stashbox.errors import ErrorKind, StorageError
from stashbox.models import DownloadGrant, FileRecord, UploadOutcome, newest_first

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_CONFLICT_CODES = {"PreconditionFailed", "ConditionalRequestConflict", "412", "409"}
_CONNECTION_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def _translate(error: Exception, name: Optional[str] = None) -> StorageError:
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        message = error.response.get("Error", {}).get("Message") or str(error)
        if code in _NOT_FOUND_CODES:
            return StorageError(ErrorKind.NOT_FOUND, f"File not found: {name}")
        if code in _CONFLICT_CODES:
            return StorageError(ErrorKind.CONFLICT, f"File already exists: {name}")
        return StorageError(ErrorKind.UNKNOWN, message)
    if isinstance(error, _CONNECTION_ERRORS):
        return StorageError(ErrorKind.NETWORK_FAILURE)
    # NoCredentialsError, ParamValidationError and other local failures.
    logger.error(f"S3 client error: {error!r}")
    return StorageError(ErrorKind.UNKNOWN, str(error))


class S3Storage:
    """Managed object-storage backend on a single S3 bucket.

    The bucket has no notion of the stashbox password, so the adapter checks
    it against a configured SHA-256 digest and hands out opaque tokens that
    live as long as this object does. Uploads are conditional on the key
    not existing, so the bucket itself refuses to overwrite.
    """

    def __init__(
        self,
        bucket: str,
        password_sha256: str,
        region: str = DEFAULT_S3_REGION,
        prefix: str = DEFAULT_S3_PREFIX,
        endpoint_url: Optional[str] = None,
        grant_ttl: int = DEFAULT_GRANT_TTL_SECONDS,
    ):
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")
        self.endpoint_url = endpoint_url
        self.grant_ttl = grant_ttl
        self._password_sha256 = password_sha256.lower()
        self._tokens: set[str] = set()
        self._session = aioboto3.Session()

    def _get_client_kwargs(self) -> dict:
        kwargs = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        return kwargs

    def _key(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    def _check_credential(self, credential: str) -> None:
        if credential not in self._tokens:
            raise StorageError(ErrorKind.UNAUTHORIZED)

    async def authenticate(self, password: str) -> str:
        if not hmac.compare_digest(hash_password(password), self._password_sha256):
            raise StorageError(ErrorKind.UNAUTHORIZED, "Incorrect password")
        token = secrets.token_urlsafe(32)
        self._tokens.add(token)
        return token

    def revoke(self, credential: str) -> None:
        self._tokens.discard(credential)

    async def upload(self, name: str, content: bytes, credential: str) -> UploadOutcome:
        self._check_credential(credential)
        if len(content) > MAX_FILE_SIZE:
            raise StorageError(ErrorKind.OVERSIZE)

        key = self._key(name)
        try:
            async with self._session.client("s3", **self._get_client_kwargs()) as s3:
                await s3.put_object(
                    Bucket=self.bucket, Key=key, Body=content, IfNoneMatch="*"
                )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, name) from e
        logger.debug(f"Uploaded {name} to s3://{self.bucket}/{key}")
        return UploadOutcome.success(name)

    async def list_files(self, credential: str) -> list[FileRecord]:
        self._check_credential(credential)
        prefix = f"{self.prefix}/" if self.prefix else ""
        records = []
        try:
            async with self._session.client("s3", **self._get_client_kwargs()) as s3:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                    for obj in page.get("Contents", []):
                        if obj["Key"].endswith("/"):
                            continue
                        records.append(FileRecord.from_s3_object(obj, self.prefix))
        except (ClientError, BotoCoreError) as e:
            raise _translate(e) from e
        logger.debug(f"Listed {len(records)} objects under s3://{self.bucket}/{prefix}")
        return newest_first(records)

    async def _head(self, s3, name: str) -> None:
        await s3.head_object(Bucket=self.bucket, Key=self._key(name))

    async def create_download_grant(self, name: str, credential: str) -> DownloadGrant:
        self._check_credential(credential)
        try:
            async with self._session.client("s3", **self._get_client_kwargs()) as s3:
                await self._head(s3, name)
                url = await s3.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self.bucket, "Key": self._key(name)},
                    ExpiresIn=self.grant_ttl,
                )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, name) from e
        return DownloadGrant(url=url, expires_in_seconds=self.grant_ttl)

    async def delete(self, name: str, credential: str) -> None:
        self._check_credential(credential)
        try:
            async with self._session.client("s3", **self._get_client_kwargs()) as s3:
                # delete_object succeeds for missing keys, so look first.
                await self._head(s3, name)
                await s3.delete_object(Bucket=self.bucket, Key=self._key(name))
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, name) from e
        logger.info(f"Deleted s3://{self.bucket}/{self._key(name)}")
