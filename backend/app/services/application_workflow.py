"""
Apply / notify workflow for job applications.

`submit_application` is the one-shot "apply and send" flow:

    1. load student and job (job must be open)
    2. reject if an application for (student, job) was already notified;
       a stale pending one is replaced
    3. resolve the CV (explicit, else active)
    4. generate the cover letter
    5. check the daily email quota
    6. resolve the recipient
    7. dispatch the email
    8. on success only: write the submitted application, count the email,
       mark the stored match as viewed, commit

Any failure before step 8 leaves the database as it was: no submitted row,
quota unchanged, a stale pending row still in place.

Steps 2-8 run under `quota_tracker.candidate_lock(student_id)` in a
transaction begun after the lock is taken, so two submissions by the same
student never interleave inside one process. The unique (student_id, job_id)
constraint on job_applications catches what the lock cannot
(another worker process); that insert failure is reported as a duplicate
submission.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.application import Application
from ..models.job import Job
from ..models.job_match import JobMatch
from ..models.student_profile import StudentProfile
from ..utils.error_handlers import (
    DuplicateSubmissionError,
    ForbiddenError,
    NotFoundError,
    NotificationFailedError,
    QuotaExceededError,
    get_error_message,
)
from . import application_state, cv_store, quota_tracker
from .cover_letter import generate_cover_letter
from .match_recalculation import mark_match_viewed
from .match_scorer import default_match_score
from .notification import (
    EmailAttachment,
    candidate_contact,
    cv_view_url,
    default_email_body,
    default_subject,
    resolve_recipient,
    send_job_application_email,
)

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    application: Application
    emails_sent_today: int
    emails_remaining: int


@contextmanager
def _serialized(db: Session, student_id: int):
    """Hold the student's lock, then start a new transaction so reads see what the previous holder committed."""
    with quota_tracker.candidate_lock(student_id):
        db.rollback()
        yield


def _get_student(db: Session, student_id: int) -> StudentProfile:
    student = db.query(StudentProfile).filter(StudentProfile.id == int(student_id)).first()
    if not student:
        raise NotFoundError(get_error_message("student_not_found"))
    return student


def _get_open_job(db: Session, job_id: int) -> Job:
    job = db.query(Job).filter(Job.id == int(job_id)).first()
    if not job:
        raise NotFoundError(get_error_message("job_not_found"), details={"job_id": int(job_id)})
    if not job.active:
        raise NotFoundError(get_error_message("job_closed"), details={"job_id": int(job_id)})
    return job


def _find_application(db: Session, *, student_id: int, job_id: int) -> Application | None:
    return (
        db.query(Application)
        .filter(Application.student_id == int(student_id), Application.job_id == int(job_id))
        .first()
    )


def _get_own_application(db: Session, *, student_id: int, application_id: int) -> Application:
    application = db.query(Application).filter(Application.id == int(application_id)).first()
    if not application:
        raise NotFoundError(get_error_message("application_not_found"))
    if int(application.student_id) != int(student_id):
        raise ForbiddenError(details={"application_id": int(application_id)})
    return application


def _check_quota(db: Session, *, student_id: int, today: date | None) -> quota_tracker.QuotaCheck:
    check = quota_tracker.check_and_reserve(db, student_id=student_id, today=today)
    if not check.allowed:
        logger.info("Email quota exceeded student_id=%s count=%s", student_id, check.current_count)
        raise QuotaExceededError(sent_today=check.current_count, limit=check.limit)
    return check


def _dispatch(
    *,
    student: StudentProfile,
    job: Job,
    cv_id: int,
    cover_letter: str | None,
    subject: str,
    email_body: str | None,
    attachments: list[EmailAttachment] | None,
) -> None:
    recipient = resolve_recipient(job)
    if not recipient.email:
        raise NotificationFailedError(get_error_message("no_recipient"), details={"job_id": int(job.id)})

    contact = candidate_contact(student)
    try:
        send_job_application_email(
            recipient_email=recipient.email,
            recipient_name=recipient.name,
            candidate_name=contact.name,
            candidate_email=contact.email,
            candidate_phone=contact.phone,
            institution=contact.institution,
            field_of_study=contact.field_of_study,
            job_title=job.title,
            company_name=recipient.company_name,
            cover_letter=cover_letter,
            cv_url=cv_view_url(cv_id),
            custom_body=email_body,
            subject=subject,
            attachments=attachments,
        )
    except Exception as e:
        logger.exception("Application email failed student_id=%s job_id=%s", student.id, job.id)
        raise NotificationFailedError(str(e) or type(e).__name__) from e


def _finish_submission(
    db: Session,
    *,
    application: Application,
    subject: str,
    email_body: str | None,
    today: date | None,
) -> SubmissionResult:
    application_state.mark_submitted(application, email_subject=subject, email_body=email_body)
    try:
        db.flush()
        count = quota_tracker.commit(db, student_id=int(application.student_id), today=today)
        mark_match_viewed(db, student_id=int(application.student_id), job_id=int(application.job_id))
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(
            "Concurrent application detected student_id=%s job_id=%s: %s",
            application.student_id,
            application.job_id,
            e,
        )
        raise DuplicateSubmissionError() from None
    db.refresh(application)
    return SubmissionResult(
        application=application,
        emails_sent_today=count,
        emails_remaining=max(0, quota_tracker.DAILY_EMAIL_LIMIT - count),
    )


def submit_application(
    db: Session,
    *,
    student_id: int,
    job_id: int,
    cv_id: int | None = None,
    subject: str | None = None,
    email_body: str | None = None,
    attachments: list[EmailAttachment] | None = None,
    today: date | None = None,
) -> SubmissionResult:
    with _serialized(db, student_id):
        try:
            student = _get_student(db, student_id)
            job = _get_open_job(db, job_id)

            existing = _find_application(db, student_id=student.id, job_id=job.id)
            if application_state.is_notified(existing):
                raise DuplicateSubmissionError(details={"application_id": int(existing.id)})

            cv = cv_store.resolve(db, student=student, cv_id=cv_id)
            cover_letter = generate_cover_letter(db, student_id=student.id, job_id=job.id, cv_id=cv.id)
            _check_quota(db, student_id=student.id, today=today)

            subject = (subject or "").strip() or default_subject(job_title=job.title, candidate_name=student.full_name)
            _dispatch(
                student=student,
                job=job,
                cv_id=int(cv.id),
                cover_letter=cover_letter,
                subject=subject,
                email_body=email_body,
                attachments=attachments,
            )

            # Email is out; only now touch the stored state.
            if existing is not None:
                logger.info("Replacing stale pending application id=%s", existing.id)
                db.delete(existing)
                db.flush()

            application = Application(
                student_id=int(student.id),
                job_id=int(job.id),
                cv_id=int(cv.id),
                cover_letter=cover_letter,
                status=application_state.PENDING,
                email_sent=False,
            )
            db.add(application)
            result = _finish_submission(
                db,
                application=application,
                subject=subject,
                email_body=email_body or cover_letter,
                today=today,
            )
        except Exception:
            db.rollback()
            raise

    logger.info(
        "Application submitted id=%s student_id=%s job_id=%s emails_today=%s",
        result.application.id,
        student_id,
        job_id,
        result.emails_sent_today,
    )
    return result


def create_pending_application(
    db: Session,
    *,
    student_id: int,
    job_id: int,
    cv_id: int | None = None,
) -> Application:
    """Save an application draft without sending anything."""
    with _serialized(db, student_id):
        try:
            student = _get_student(db, student_id)
            job = _get_open_job(db, job_id)

            existing = _find_application(db, student_id=student.id, job_id=job.id)
            if application_state.is_notified(existing):
                raise DuplicateSubmissionError(details={"application_id": int(existing.id)})

            cv = cv_store.resolve(db, student=student, cv_id=cv_id)
            cover_letter = generate_cover_letter(db, student_id=student.id, job_id=job.id, cv_id=cv.id)

            if existing is not None:
                db.delete(existing)
                db.flush()

            application = Application(
                student_id=int(student.id),
                job_id=int(job.id),
                cv_id=int(cv.id),
                cover_letter=cover_letter,
                status=application_state.PENDING,
                email_sent=False,
            )
            db.add(application)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateSubmissionError() from None
        except Exception:
            db.rollback()
            raise

    db.refresh(application)
    logger.info("Pending application created id=%s student_id=%s job_id=%s", application.id, student_id, job_id)
    return application


def send_pending_application(
    db: Session,
    *,
    student_id: int,
    application_id: int,
    subject: str | None = None,
    email_body: str | None = None,
    attachments: list[EmailAttachment] | None = None,
    today: date | None = None,
) -> SubmissionResult:
    """Notify the employer for an existing pending application and move it to submitted."""
    with _serialized(db, student_id):
        try:
            application = _get_own_application(db, student_id=student_id, application_id=application_id)
            if application_state.is_notified(application):
                raise DuplicateSubmissionError(
                    get_error_message("email_already_sent"),
                    details={"application_id": int(application.id)},
                )
            student = application.student
            job = _get_open_job(db, application.job_id)
            _check_quota(db, student_id=student.id, today=today)

            subject = (subject or "").strip() or default_subject(job_title=job.title, candidate_name=student.full_name)
            _dispatch(
                student=student,
                job=job,
                cv_id=int(application.cv_id),
                cover_letter=application.cover_letter,
                subject=subject,
                email_body=email_body,
                attachments=attachments,
            )
            result = _finish_submission(
                db,
                application=application,
                subject=subject,
                email_body=email_body or application.cover_letter,
                today=today,
            )
        except Exception:
            db.rollback()
            raise

    logger.info("Pending application sent id=%s student_id=%s", application_id, student_id)
    return result


def prepare_email_draft(db: Session, *, student_id: int, application_id: int) -> dict[str, Any]:
    application = _get_own_application(db, student_id=student_id, application_id=application_id)
    student = application.student
    job = application.job
    recipient = resolve_recipient(job)
    contact = candidate_contact(student)
    return {
        "recipientEmail": recipient.email,
        "recipientName": recipient.name,
        "subject": default_subject(job_title=job.title, candidate_name=contact.name),
        "emailBody": default_email_body(
            candidate_name=contact.name, job_title=job.title, cover_letter=application.cover_letter
        ),
        "cvUrl": cv_view_url(int(application.cv_id)),
        "studentName": contact.name,
        "studentEmail": contact.email,
        "studentPhone": contact.phone,
        "university": contact.institution,
        "major": contact.field_of_study,
    }


def withdraw_application(db: Session, *, student_id: int, application_id: int) -> None:
    """Delete a pending application. Submitted applications cannot be withdrawn."""
    application = _get_own_application(db, student_id=student_id, application_id=application_id)
    application_state.ensure_withdrawable(application)
    try:
        db.delete(application)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Application withdrawn id=%s student_id=%s", application_id, student_id)


def application_match_score(db: Session, application: Application) -> float:
    """Stored match score for the pair, else the inline fallback estimate."""
    match = (
        db.query(JobMatch)
        .filter(JobMatch.student_id == int(application.student_id), JobMatch.job_id == int(application.job_id))
        .first()
    )
    if match is not None and match.match_score is not None:
        return float(match.match_score)
    student = application.student
    job = application.job
    return round(
        default_match_score(student.skills if student else None, job.required_skills if job else None),
        2,
    )
