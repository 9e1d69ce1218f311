# genstudio/errors.py
"""
Error taxonomy for generation jobs.

Every failure a job can hit is one of the StudioError subclasses below.
They are raised inside the client/driver/persister and caught once at the
state machine boundary, where they become the job's structured error.
"""

from enum import Enum


class ErrorKind(Enum):
    """Classified failure kinds."""

    VALIDATION = "validation"
    QUOTA_EXCEEDED = "quota_exceeded"
    GENERATION_FAILURE = "generation_failure"
    TRANSPORT_TIMEOUT = "transport_timeout"
    PERSISTENCE_FAILURE = "persistence_failure"
    JOB_IN_PROGRESS = "job_in_progress"


class RecoveryAction(Enum):
    """The single primary recovery action offered for an error."""

    TRY_AGAIN = "try_again"
    RETRY_SAVE = "retry_save"
    NONE = "none"


# Friendly text for backend error codes
_ERROR_CODE_MESSAGES = {
    "OPENAI_API_FAILURE": "AI service temporarily unavailable. Please try again in a moment.",
    "IMAGE_GENERATION_FAILED": "Image generation failed. Please try again.",
    "CONTENT_POLICY_VIOLATION": (
        "Your prompt contains content that violates our policy. Please modify your request."
    ),
    "AUTH_REQUIRED": "Please log in to continue.",
    "NETWORK_ERROR": "Connection lost. Please check your internet and try again.",
}


class StudioError(Exception):
    """Base class for all classified generation errors."""

    kind: ErrorKind = ErrorKind.GENERATION_FAILURE
    title: str = "Error"
    severity: str = "error"
    recovery: RecoveryAction = RecoveryAction.TRY_AGAIN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        """Flat representation for rendering and logging."""
        return {
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "recovery": self.recovery.value,
        }


class ValidationError(StudioError):
    """Input failed local checks. Never reaches the network."""

    kind = ErrorKind.VALIDATION
    title = "Invalid Input"
    severity = "warning"

    def __init__(self, message: str, field_errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.field_errors = field_errors or {}

    @classmethod
    def from_fields(cls, field_errors: dict[str, str]) -> "ValidationError":
        """Build from per-field messages; the first one becomes the headline."""
        first = next(iter(field_errors.values()), "Validation failed")
        return cls(first, field_errors=field_errors)


class QuotaExceededError(StudioError):
    """No generations left in the current quota window."""

    kind = ErrorKind.QUOTA_EXCEEDED
    title = "Limit Reached"
    severity = "warning"
    recovery = RecoveryAction.NONE

    def __init__(
        self,
        message: str | None = None,
        remaining: int = 0,
        resets_at: str | None = None,
    ) -> None:
        if message is None:
            message = "You've used all your generations for now."
            if resets_at:
                message += f" Your limit resets at {resets_at}."
        super().__init__(message)
        self.remaining = remaining
        self.resets_at = resets_at

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["remaining"] = self.remaining
        data["resets_at"] = self.resets_at
        return data


class GenerationFailure(StudioError):
    """The backend accepted the job but generation failed."""

    kind = ErrorKind.GENERATION_FAILURE
    title = "Generation Failed"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        friendly = _ERROR_CODE_MESSAGES.get(error_code or "")
        super().__init__(friendly or message or "Something went wrong. Please try again.")
        self.error_code = error_code
        self.status_code = status_code
        self.backend_message = message

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["error_code"] = self.error_code
        data["status_code"] = self.status_code
        return data


class TransportTimeout(StudioError):
    """The extended client timeout elapsed with no response."""

    kind = ErrorKind.TRANSPORT_TIMEOUT
    title = "Still Working"
    severity = "warning"

    def __init__(self, timeout_seconds: float | None = None) -> None:
        # The job may have finished server-side, so never claim quota was not spent
        message = (
            "We stopped waiting for the result. Your generation may still complete "
            "and may have used one of your generations. Please try again later."
        )
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class PersistenceFailure(StudioError):
    """Saving a successful result failed. The result itself is kept."""

    kind = ErrorKind.PERSISTENCE_FAILURE
    title = "Save Failed"
    recovery = RecoveryAction.RETRY_SAVE

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        super().__init__(
            message or "We couldn't save your story. Your story is still here, try saving again."
        )
        self.status_code = status_code


class IllegalTransitionError(RuntimeError):
    """Raised when code asks the state machine for a transition the table forbids."""


class JobInProgressError(StudioError):
    """A start was refused because another job in the session is in flight."""

    kind = ErrorKind.JOB_IN_PROGRESS
    title = "Already Working"
    severity = "info"
    recovery = RecoveryAction.NONE

    def __init__(self, holder: str | None = None) -> None:
        super().__init__("A generation is already in progress. Please wait for it to finish.")
        self.holder = holder
