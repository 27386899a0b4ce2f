import logging
from collections import deque

logger = logging.getLogger(__name__)


class LedgerChatError(Exception):
    """Base class for errors raised by the application layer."""


class ValidationError(LedgerChatError):
    pass


class ConflictError(LedgerChatError):
    pass


class AuthError(LedgerChatError):
    pass


class StorageError(LedgerChatError):
    pass


class LoginRequired(Exception):
    """Raised by the auth gate; the app turns it into a redirect to the login page."""


class ErrorReporter:
    """Collects failures of realtime signals.

    Failed signals are never reported back to the client, so this is the one place
    they surface: a server log line plus a short in-memory history.
    """

    def __init__(self, keep: int = 100):
        self.errors = deque(maxlen=keep)

    def report(self, signal: str, exc: BaseException):
        self.errors.append((signal, exc))
        logger.error(f"{signal} failed: {exc!r}", exc_info=(type(exc), exc, exc.__traceback__))

    def clear(self):
        self.errors.clear()
