from __future__ import annotations


class RkeyFsError(Exception):
    """Base class for every error raised by rkeyfs."""


class InvalidPath(RkeyFsError, ValueError):
    pass


class KeyTooLong(InvalidPath):
    pass


class NotFound(RkeyFsError, FileNotFoundError):
    pass


class UnsupportedOperation(RkeyFsError, NotImplementedError):
    def __init__(self, operation: str, detail: str | None = None) -> None:
        message = f"Operation not supported: {operation}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.operation = operation


class RemoteFailure(RkeyFsError, RuntimeError):
    """A record store call failed at the transport or protocol level."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error = error


class AlreadyExists(RkeyFsError, FileExistsError):
    pass
