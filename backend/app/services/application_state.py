"""
Lifecycle of a job application.

    pending --(notification delivered)--> submitted

A pending row is never advanced by anything other than a delivered email; a
newer attempt for the same (student, job) deletes it instead. Submitted rows
are immutable from the student's side.
"""
from datetime import datetime, timezone

from ..models.application import Application
from ..utils.error_handlers import InvalidStateTransitionError, get_error_message

PENDING = "pending"
SUBMITTED = "submitted"

STATUSES = (PENDING, SUBMITTED)


def is_notified(application: Application | None) -> bool:
    return bool(application is not None and application.email_sent)


def mark_submitted(
    application: Application,
    *,
    email_subject: str | None,
    email_body: str | None,
    now: datetime | None = None,
) -> Application:
    """Apply the pending -> submitted transition after a delivered notification."""
    if application.status == SUBMITTED or application.email_sent:
        raise InvalidStateTransitionError(
            get_error_message("email_already_sent"),
            details={"application_id": application.id, "status": application.status},
        )
    now = now or datetime.now(timezone.utc)
    application.status = SUBMITTED
    application.email_sent = True
    application.email_sent_at = now
    application.email_subject = email_subject
    application.email_body = email_body
    application.applied_at = now
    application.last_updated_at = now
    return application


def ensure_withdrawable(application: Application) -> None:
    if application.status != PENDING or application.email_sent:
        raise InvalidStateTransitionError(
            get_error_message("withdraw_not_pending"),
            details={"application_id": application.id, "status": application.status},
        )
