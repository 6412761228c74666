"""Custom exception hierarchy for the Thing System."""

from enum import Enum
from typing import Optional, Dict, Any, Sequence


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Thing errors
    THING_NOT_FOUND = "THING_NOT_FOUND"
    PROTECTED_THING = "PROTECTED_THING"

    # Version errors
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"

    # Composition errors
    CYCLE_DETECTED = "CYCLE_DETECTED"

    # Self-hosting errors
    CONTENT_UNREADABLE = "CONTENT_UNREADABLE"
    EXECUTION_FAILURE = "EXECUTION_FAILURE"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"


class ThingSystemError(Exception):
    """Base class for every error the Thing System reports.

    Carries what the API layer needs to answer a client: a message, a
    stable ``error_code``, the HTTP ``status_code`` and free-form
    ``details``. Boot-time failures use the same type and are turned into
    a process exit by the app's lifespan instead.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """JSON body: ``{error, message, details}``."""
        return {"error": self.error_code.value, "message": self.message, "details": self.details}


class ThingNotFoundError(ThingSystemError):
    """No stored record backs this Thing id."""

    def __init__(self, thing_id: str):
        super().__init__(
            f"Thing not found: {thing_id}",
            ErrorCode.THING_NOT_FOUND,
            status_code=404,
            details={"thing_id": thing_id}
        )


class VersionNotFoundError(ThingSystemError):
    """Restore target is absent from the Thing's history."""

    def __init__(self, thing_id: str, version: int):
        super().__init__(
            f"Version {version} not found for Thing {thing_id}",
            ErrorCode.VERSION_NOT_FOUND,
            status_code=400,
            details={"thing_id": thing_id, "version": version}
        )


class CycleDetectedError(ThingSystemError):
    """The parent/child graph revisits a Thing already on the current path."""

    def __init__(self, path: Sequence[str]):
        path = list(path)
        super().__init__(
            "Cycle detected: " + " -> ".join(path),
            ErrorCode.CYCLE_DETECTED,
            status_code=400,
            details={"path": path}
        )


class ProtectedThingError(ThingSystemError):
    """Operation is not permitted on this Thing (e.g. deleting the system Thing)."""

    def __init__(self, thing_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Thing {thing_id} is protected",
            ErrorCode.PROTECTED_THING,
            status_code=400,
            details={"thing_id": thing_id}
        )


class ValidationError(ThingSystemError):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class ContentUnreadableError(ThingSystemError):
    """An authoritative system template source is missing or unreadable."""

    def __init__(self, source: str, original_error: Optional[Exception] = None):
        details = {"source": source}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            f"System template source unreadable: {source}",
            ErrorCode.CONTENT_UNREADABLE,
            status_code=500,
            details=details
        )


class ExecutionFailureError(ThingSystemError):
    """A loaded server fragment raised while executing."""

    def __init__(self, thing_id: str, original_error: Optional[Exception] = None):
        details = {"thing_id": thing_id}
        if original_error:
            details["original_error"] = f"{type(original_error).__name__}: {original_error}"

        super().__init__(
            f"Server fragment of {thing_id} failed to execute",
            ErrorCode.EXECUTION_FAILURE,
            status_code=500,
            details=details
        )
