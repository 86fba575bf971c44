"""Domain errors raised by the onboarding core.

Every error carries the HTTP status it maps to and an ``error_type`` slug the
client uses to pick the right recovery affordance.
"""
from __future__ import annotations

from typing import Any


class OnboardingError(Exception):
    status_code = 400
    error_type = "onboarding_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "error_type": self.error_type, **self.details}


class ValidationFailedError(OnboardingError):
    error_type = "validation_error"


class EmailRejectedError(OnboardingError):
    """Personal, temporary or malformed email address."""
    error_type = "invalid_email"

    def __init__(self, message: str, *, reason: str, suggestion: str):
        super().__init__(message, details={"reason": reason, "suggestion": suggestion})
        self.reason = reason
        self.suggestion = suggestion


class StepOrderError(OnboardingError):
    error_type = "step_order"


class RecordNotFoundError(OnboardingError):
    status_code = 404
    error_type = "not_found"


class SessionNotFoundError(RecordNotFoundError):
    error_type = "session_not_found"


class EmailConflictError(OnboardingError):
    status_code = 409
    error_type = "email_taken"


class SessionConflictError(OnboardingError):
    """The session was modified by another request since it was read."""
    status_code = 409
    error_type = "session_conflict"


class FolderStructureMissingError(OnboardingError):
    status_code = 409
    error_type = "folder_structure_missing"


class StartOverNotAllowedError(OnboardingError):
    error_type = "start_over_not_allowed"


class StartOverLimitError(OnboardingError):
    error_type = "start_over_limit"


class UploadMissingError(OnboardingError):
    """The temporary upload is gone; the user has to upload again."""
    status_code = 410
    error_type = "upload_missing"


class AnalysisError(OnboardingError):
    """The scoring provider failed (timeout, network, bad payload)."""
    status_code = 502
    error_type = "analysis_failed"
