from __future__ import annotations


class BingoError(Exception):
    """
    Base class for every failure an operation reports to its caller.

    `category` is the stable, machine-checkable name sent to clients and
    `status_code` is the HTTP status the interface layer maps it to.
    """

    category = "InternalError"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"category": self.category, "message": self.message}


class BadRequest(BingoError):
    category = "BadRequest"
    status_code = 400


class Unauthorized(BingoError):
    category = "Unauthorized"
    status_code = 401


class Forbidden(BingoError):
    category = "Forbidden"
    status_code = 403


class NotFound(BingoError):
    category = "NotFound"
    status_code = 404


class Conflict(BingoError):
    category = "Conflict"
    status_code = 409


class InternalError(BingoError):
    category = "InternalError"
    status_code = 500


class NoOwnerConfigured(InternalError):
    def __init__(self, message: str = "No owner is configured for this hall.") -> None:
        super().__init__(message)


class StorageError(InternalError):
    """A persistence operation failed; `message` names what was attempted."""
