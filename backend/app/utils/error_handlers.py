"""
Centralized error handling and user-friendly error messages.

Services raise the typed errors below; `main.py` renders them through
`create_error_response` so every failure carries a stable `code` tag.
"""
import logging
from fastapi import HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error."""
    code = "server_error"

    def __init__(self, message: str, status_code: int = 500, details: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Validation error."""
    code = "validation_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=400, details=details)


class NotFoundError(AppError):
    """Resource not found error."""
    code = "not_found"

    def __init__(self, message: str = "Resource not found", details: dict | None = None):
        super().__init__(message, status_code=404, details=details)


class ForbiddenError(AppError):
    """Forbidden access error."""
    code = "forbidden"

    def __init__(self, message: str = "Access forbidden", details: dict | None = None):
        super().__init__(message, status_code=403, details=details)


class DuplicateSubmissionError(AppError):
    """The student already has a notified application for this job."""
    code = "duplicate_submission"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or get_error_message("already_applied"), status_code=409, details=details)


class NoActiveCVError(AppError):
    """No CV was given and the student has no active CV."""
    code = "no_active_cv"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or get_error_message("no_active_cv"), status_code=400, details=details)


class QuotaExceededError(AppError):
    """Daily application email limit reached."""
    code = "quota_exceeded"

    def __init__(self, *, sent_today: int, limit: int):
        super().__init__(
            get_error_message("quota_exceeded").format(limit=limit),
            status_code=429,
            details={"emailsSentToday": int(sent_today), "emailsRemaining": max(0, limit - sent_today), "limit": limit},
        )


class NotificationFailedError(AppError):
    """The email transport rejected or could not deliver the application email."""
    code = "notification_failed"

    def __init__(self, transport_message: str, details: dict | None = None):
        super().__init__(f"Failed to send email: {transport_message}", status_code=502, details=details)
        self.transport_message = transport_message


class InvalidStateTransitionError(AppError):
    """Requested lifecycle change is not allowed from the current status."""
    code = "invalid_state_transition"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=409, details=details)


# User-friendly error messages
ERROR_MESSAGES = {
    # Jobs
    "job_not_found": "Job posting not found or has been removed.",
    "job_closed": "This job posting is no longer accepting applications.",

    # Students / CVs
    "student_not_found": "Student profile not found.",
    "employer_not_found": "Employer profile not found.",
    "cv_not_found": "CV not found.",
    "no_active_cv": "No active CV found. Please set an active CV in your profile.",

    # Applications
    "already_applied": "You have already applied for this job.",
    "email_already_sent": "Email already sent for this application.",
    "application_not_found": "Application not found. It may have been withdrawn.",
    "withdraw_not_pending": "Cannot withdraw an application that has already been submitted.",
    "quota_exceeded": "Daily email limit reached ({limit} emails per day). Please try again tomorrow.",
    "no_recipient": "No recipient email is configured for this job posting.",

    # Matches
    "match_not_found": "Job match not found.",
    "task_not_found": "Task not found.",

    # General
    "unauthorized": "Please login to access this feature.",
    "forbidden": "You don't have permission to access this resource.",
    "not_found": "The requested resource was not found.",
    "server_error": "Something went wrong on our end. Please try again later.",
    "database_error": "Database connection issue. Please try again later.",
    "validation_error": "Please check your input and try again.",
}


def get_error_message(error_key: str, default: str | None = None) -> str:
    """Get a user-friendly error message."""
    return ERROR_MESSAGES.get(error_key, default or ERROR_MESSAGES["server_error"])


def handle_database_error(error: Exception, operation: str = "") -> HTTPException:
    """Handle database errors with user-friendly messages."""
    logger.error(f"Database error during {operation}: {error}")

    error_str = str(error).lower()

    if "duplicate" in error_str or "unique" in error_str:
        return HTTPException(
            status_code=409,
            detail="This record already exists. Please check your input."
        )

    if "foreign key" in error_str:
        return HTTPException(
            status_code=400,
            detail="Invalid reference. The related record may have been deleted."
        )

    if "connection" in error_str or "operational" in error_str:
        return HTTPException(
            status_code=503,
            detail=get_error_message("database_error")
        )

    return HTTPException(
        status_code=500,
        detail=get_error_message("server_error")
    )


def create_error_response(
    status_code: int,
    message: str,
    details: dict | None = None,
    code: str | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    content = {
        "success": False,
        "error": message,
    }

    if code:
        content["code"] = code

    if details:
        content["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content
    )
