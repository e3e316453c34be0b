import os
from dataclasses import dataclass
from typing import Optional

MAX_FILE_SIZE = 50 * 1024 * 1024
DEFAULT_GRANT_TTL_SECONDS = 60
DEFAULT_API_URL = "http://localhost:8787"
DEFAULT_S3_REGION = "us-east-1"
DEFAULT_S3_PREFIX = "files"


def _arg_or_env(args, attr: str, env_var: str, default=None):
    value = getattr(args, attr, None)
    if value is not None:
        return value
    return os.environ.get(env_var, default)


@dataclass
class Settings:
    storage: str = "http"
    api_url: str = DEFAULT_API_URL
    s3_bucket: Optional[str] = None
    s3_region: str = DEFAULT_S3_REGION
    s3_prefix: str = DEFAULT_S3_PREFIX
    s3_endpoint: Optional[str] = None
    password_sha256: Optional[str] = None
    password: Optional[str] = None
    timeout: Optional[float] = None

    @classmethod
    def from_args(cls, args) -> "Settings":
        """Resolve settings from CLI arguments, falling back to STASHBOX_* env vars."""
        timeout = _arg_or_env(args, "timeout", "STASHBOX_TIMEOUT")
        if timeout:
            try:
                timeout = float(timeout)
            except ValueError:
                raise ValueError(
                    f"timeout must be a number of seconds, got {timeout!r}"
                ) from None
        return cls(
            storage=_arg_or_env(args, "storage", "STASHBOX_STORAGE", "http"),
            api_url=_arg_or_env(args, "api_url", "STASHBOX_API_URL", DEFAULT_API_URL),
            s3_bucket=_arg_or_env(args, "s3_bucket", "STASHBOX_S3_BUCKET"),
            s3_region=_arg_or_env(
                args, "s3_region", "STASHBOX_S3_REGION", DEFAULT_S3_REGION
            ),
            s3_prefix=_arg_or_env(
                args, "s3_prefix", "STASHBOX_S3_PREFIX", DEFAULT_S3_PREFIX
            ),
            s3_endpoint=_arg_or_env(args, "s3_endpoint", "STASHBOX_S3_ENDPOINT"),
            password_sha256=_arg_or_env(
                args, "password_sha256", "STASHBOX_PASSWORD_SHA256"
            ),
            password=os.environ.get("STASHBOX_PASSWORD"),
            timeout=timeout or None,
        )
