from typing import Callable, Optional

from loguru import logger

SessionListener = Callable[[str], None]


class SessionStore:
    """Holds the bearer credential for the lifetime of the process.

    Nothing is persisted and there is no expiry timer: a credential is set
    at login and removed on logout or when a backend rejects it. Listeners
    registered with ``subscribe`` are told why the session ended.
    """

    def __init__(self):
        self._credential: Optional[str] = None
        self._listeners: list[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def set_credential(self, token: str) -> None:
        if not token:
            raise ValueError("credential must be a non-empty token")
        self._credential = token
        logger.debug("Session credential set")

    def get_credential(self) -> Optional[str]:
        return self._credential

    @property
    def is_authenticated(self) -> bool:
        return self._credential is not None

    def clear(self, reason: str = "logout") -> None:
        had_credential = self._credential is not None
        self._credential = None
        if had_credential:
            logger.info(f"Session ended ({reason})")
        for listener in list(self._listeners):
            listener(reason)
