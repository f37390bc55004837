"""
Error taxonomy shared by the core and the HTTP layer.
Each error carries the status code the API answers with.
"""

from typing import Any, Dict, Optional


class CommandGateError(Exception):
    """Base class for every error the core raises on purpose."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"error": self.error, "message": self.message}
        body.update(self.details)
        return body


class ValidationError(CommandGateError):
    """Malformed, missing or empty input; invalid pattern syntax."""
    status_code = 400
    error = "Validation error"


class AuthError(CommandGateError):
    """Missing or unknown credential."""
    status_code = 401
    error = "Unauthorized"


class PermissionDenied(AuthError):
    """Valid credential, wrong role."""
    status_code = 403
    error = "Forbidden"


class NotFound(CommandGateError):
    status_code = 404
    error = "Not found"


class Conflict(CommandGateError):
    """Uniqueness violation or a state transition that is no longer possible."""
    status_code = 409
    error = "Conflict"


class InsufficientCredits(CommandGateError):
    status_code = 403
    error = "Insufficient credits"

    def __init__(self, current_balance: int, required: int):
        super().__init__(
            f"You need at least {required} credits to submit a command. "
            f"Your current balance: {current_balance}",
            {"current_balance": current_balance},
        )
        self.current_balance = current_balance
        self.required = required


class InternalError(CommandGateError):
    """Unexpected store failure; callers only ever see the generic message."""
    status_code = 500
    error = "Internal server error"
