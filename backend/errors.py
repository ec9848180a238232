"""
Domain errors for ProjectTrack
==============================

Core operations raise these instead of HTTPException so that the group,
project and milestone logic stays transport-agnostic. The web layer maps
each kind to a status code in one exception handler (see main.py).

Usage:
    from errors import NotFoundError

    if not group:
        raise NotFoundError("Group", group_id)
"""

from typing import Any, Dict, Optional


class ProjectTrackError(Exception):
    """Base exception for all domain errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(ProjectTrackError):
    """Malformed or missing input"""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_FAILED", details=details)


class NotFoundError(ProjectTrackError):
    """Referenced entity is absent"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Optional[str] = None, message: Optional[str] = None):
        if message is None:
            if resource_id is None:
                message = f"{resource_type} not found"
            else:
                message = f"{resource_type} with ID '{resource_id}' not found"
        super().__init__(
            message,
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class AuthorizationError(ProjectTrackError):
    """Role or ownership mismatch"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


class ConflictError(ProjectTrackError):
    """The write would violate an invariant (duplicate membership, lost race, illegal transition)"""

    status_code = 409

    def __init__(self, message: str, code: str = "CONFLICT", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class CapacityError(ConflictError):
    """Group is already at its maximum size"""

    def __init__(self, max_members: int):
        super().__init__(
            f"Group is full (max {max_members} members)",
            code="GROUP_FULL",
            details={"max_members": max_members}
        )


class InvariantError(ProjectTrackError):
    """Leader-specific illegal transition or a broken group invariant"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="INVARIANT_VIOLATION")
