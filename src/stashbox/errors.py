from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    OVERSIZE = "oversize"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    NETWORK_FAILURE = "network_failure"
    UNKNOWN = "unknown"


DEFAULT_MESSAGES = {
    ErrorKind.UNAUTHORIZED: "Session expired. Please login again.",
    ErrorKind.OVERSIZE: "File exceeds 50MB limit",
    ErrorKind.CONFLICT: "A file with that name already exists",
    ErrorKind.NOT_FOUND: "File not found",
    ErrorKind.NETWORK_FAILURE: "Network error. Check your connection.",
    ErrorKind.UNKNOWN: "Something went wrong. Try again.",
}


class StorageError(Exception):
    """A backend failure already classified into an ErrorKind.

    Adapters raise this for every failure they can recognise so callers
    never have to inspect backend-specific error shapes or message text.
    """

    def __init__(self, kind: ErrorKind, reason: str | None = None):
        self.kind = kind
        self.reason = reason or DEFAULT_MESSAGES[kind]
        super().__init__(self.reason)

    def __repr__(self) -> str:
        return f"StorageError({self.kind.value!r}, {self.reason!r})"
