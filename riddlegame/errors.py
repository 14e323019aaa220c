from __future__ import annotations

from typing import Any, Optional


class RiddleGameError(Exception):
    """Base error carrying a human readable message and optional details."""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(RiddleGameError):
    pass


class ConflictError(ValidationError):
    pass


class NotFoundError(RiddleGameError):
    pass


class AuthenticationError(RiddleGameError):
    def __init__(self, message: str, details: Optional[Any] = None, *, expired: bool = False):
        super().__init__(message, details)
        self.expired = expired


class PermissionDeniedError(AuthenticationError):
    pass


class TransportError(RiddleGameError):
    """A remote call failed; ``message`` reads ``Failed to <action>.``"""

    def __init__(self, action: str, details: Optional[Any] = None, *, status_code: Optional[int] = None):
        super().__init__(f"Failed to {action}.", details)
        self.action = action
        self.status_code = status_code
