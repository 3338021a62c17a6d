"""
Typed failures for the swap lifecycle and activity log.

Every error carries a stable ``code`` that callers branch on instead of
parsing messages, and the HTTP status the API layer maps it to.

    ShiftSwapError
    +-- ValidationError
    |   +-- ShiftNotFoundError
    |   +-- SwapNotFoundError
    +-- RoleNotAllowedError
    +-- SelfSwapError
    +-- InvalidStateError
    +-- DuplicateRequestError
    +-- PersistenceError
"""

from __future__ import annotations

from typing import Any


class ShiftSwapError(Exception):
    """Base class for all swap lifecycle failures."""

    code: str = "SHIFT_SWAP_ERROR"
    status_code: int = 400
    default_message: str = "Swap request could not be processed"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(ShiftSwapError):
    """Malformed or logically inconsistent input."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid swap request data"


class ShiftNotFoundError(ValidationError):
    code = "SHIFT_NOT_FOUND"
    status_code = 404
    default_message = "Shift not found"


class SwapNotFoundError(ValidationError):
    code = "SWAP_NOT_FOUND"
    status_code = 404
    default_message = "Swap request not found"


class RoleNotAllowedError(ShiftSwapError):
    """Actor's role does not permit the requested transition."""

    code = "ROLE_NOT_ALLOWED"
    status_code = 403
    default_message = "Your role does not allow this action"


class SelfSwapError(ShiftSwapError):
    code = "SELF_SWAP"
    status_code = 400
    default_message = "You cannot volunteer for your own swap request"


class InvalidStateError(ShiftSwapError):
    """Transition attempted from a state that does not allow it."""

    code = "INVALID_STATE"
    status_code = 409
    default_message = "This swap request can no longer be changed"

    def __init__(
        self,
        message: str | None = None,
        *,
        current_status: str | None = None,
        **context: Any,
    ) -> None:
        self.current_status = current_status
        super().__init__(message, current_status=current_status, **context)


class DuplicateRequestError(ShiftSwapError):
    code = "DUPLICATE_REQUEST"
    status_code = 409
    default_message = "An open swap request already exists for this shift"


class PersistenceError(ShiftSwapError):
    """Underlying store unreachable or returned an unexpected fault."""

    code = "PERSISTENCE_ERROR"
    status_code = 503
    default_message = "The data store is unavailable"
