from stashbox.storage.backend import StorageBackend
from stashbox.storage.http import HttpApiStorage
from stashbox.storage.s3 import S3Storage

__all__ = ["StorageBackend", "HttpApiStorage", "S3Storage"]
