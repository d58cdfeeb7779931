from typing import Optional


class PitchCoachError(Exception):
    """Base class for every error surfaced to the user at the workflow boundary."""

    status_code = 400
    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PitchCoachError):
    code = "validation_error"


class ImmutableError(ValidationError):
    code = "immutable"


class NotFoundError(PitchCoachError):
    status_code = 404
    code = "not_found"


class CapabilityError(PitchCoachError):
    status_code = 401
    code = "login_required"


class QuotaError(PitchCoachError):
    status_code = 403
    code = "quota_exceeded"

    def __init__(self, message: str, *, limit: int) -> None:
        super().__init__(message)
        self.limit = limit


class GenerationError(PitchCoachError):
    status_code = 502
    code = "generation_failed"

    def __init__(self, message: str, *, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.reason = reason


class CaptureError(PitchCoachError):
    status_code = 422
    code = "capture_failed"


class BusyError(PitchCoachError):
    status_code = 409
    code = "busy"
