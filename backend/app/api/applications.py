import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.application import Application
from ..models.employer_profile import EmployerProfile
from ..models.student_profile import StudentProfile
from ..services import application_workflow, cv_store, quota_tracker
from ..services.cover_letter import generate_cover_letter
from ..services.notification import EmailAttachment
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import ForbiddenError, NotFoundError, get_error_message
from ..utils.validation import MAX_ATTACHMENT_BYTES, MAX_ATTACHMENTS, sanitize_filename, validate_string_field
from .deps import current_student, iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/applications", tags=["Applications"])


class ApplyRequest(BaseModel):
    cvId: int | None = Field(default=None, ge=1)


class CoverLetterRequest(BaseModel):
    cvId: int | None = Field(default=None, ge=1)


def _application_to_public(db: Session, application: Application) -> dict:
    job = application.job
    return {
        "id": application.id,
        "job_id": application.job_id,
        "job_title": job.title if job else None,
        "student_id": application.student_id,
        "cv_id": application.cv_id,
        "status": application.status,
        "cover_letter": application.cover_letter,
        "email_sent": bool(application.email_sent),
        "email_sent_at": iso(application.email_sent_at),
        "email_subject": application.email_subject,
        "applied_at": iso(application.applied_at),
        "last_updated_at": iso(application.last_updated_at),
        "created_at": iso(application.created_at),
        "match_score": application_workflow.application_match_score(db, application),
    }


def _read_attachments(files: list[UploadFile] | None) -> list[EmailAttachment]:
    files = [f for f in (files or []) if f is not None and f.filename]
    if len(files) > MAX_ATTACHMENTS:
        raise HTTPException(status_code=400, detail=f"Too many attachments (max {MAX_ATTACHMENTS})")
    out: list[EmailAttachment] = []
    for f in files:
        try:
            content = f.file.read(MAX_ATTACHMENT_BYTES + 1)
        finally:
            f.file.close()
        if len(content) > MAX_ATTACHMENT_BYTES:
            raise HTTPException(status_code=413, detail="Attachment too large (max 5MB)")
        out.append(
            EmailAttachment(
                filename=sanitize_filename(f.filename),
                content=content,
                content_type=f.content_type,
            )
        )
    return out


def _clean_subject(subject: str | None) -> str | None:
    return validate_string_field(subject, "Subject", min_length=0, max_length=255, required=False) or None


def _clean_body(body: str | None) -> str | None:
    return validate_string_field(body, "Email body", min_length=0, max_length=20000, required=False) or None


def _sent_response(db: Session, result: application_workflow.SubmissionResult) -> dict:
    return {
        "success": True,
        "message": "Application email sent successfully",
        "emailsSentToday": result.emails_sent_today,
        "emailsRemaining": result.emails_remaining,
        "application": _application_to_public(db, result.application),
    }


@router.post("/apply-and-send/{job_id:int}")
def apply_and_send(
    job_id: int,
    subject: str | None = Form(default=None),
    emailBody: str | None = Form(default=None),
    cvId: int | None = Form(default=None),
    attachments: list[UploadFile] | None = File(default=None),
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    """
    Apply to a job and email the employer in one step.
    The application is only stored once the email has gone out.
    """
    files = _read_attachments(attachments)
    result = application_workflow.submit_application(
        db,
        student_id=int(student.id),
        job_id=job_id,
        cv_id=cvId,
        subject=_clean_subject(subject),
        email_body=_clean_body(emailBody),
        attachments=files,
    )
    return _sent_response(db, result)


@router.post("/apply/{job_id:int}", status_code=201)
def apply_draft(
    job_id: int,
    payload: ApplyRequest | None = None,
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    application = application_workflow.create_pending_application(
        db,
        student_id=int(student.id),
        job_id=job_id,
        cv_id=payload.cvId if payload else None,
    )
    return {"success": True, "application": _application_to_public(db, application)}


@router.get("/email-quota")
def email_quota(
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    return {"success": True, **quota_tracker.usage(db, student_id=int(student.id))}


@router.post("/generate-cover-letter/{job_id:int}")
def cover_letter(
    job_id: int,
    payload: CoverLetterRequest | None = None,
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    cv = cv_store.resolve(db, student=student, cv_id=payload.cvId if payload else None)
    letter = generate_cover_letter(db, student_id=int(student.id), job_id=job_id, cv_id=int(cv.id))
    return {"success": True, "coverLetter": letter, "cv_id": cv.id}


@router.get("")
def list_my_applications(
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    apps = (
        db.query(Application)
        .filter(Application.student_id == int(student.id))
        .order_by(Application.created_at.desc(), Application.id.desc())
        .all()
    )
    return {"success": True, "applications": [_application_to_public(db, a) for a in apps]}


@router.get("/{application_id:int}")
def get_application(
    application_id: int,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    application = db.query(Application).filter(Application.id == application_id).first()
    if not application:
        raise NotFoundError(get_error_message("application_not_found"))

    user_id = int(user.get("sub"))
    role = user.get("role")
    if role == "student":
        owner = application.student
        if owner is None or int(owner.user_id) != user_id:
            raise ForbiddenError()
    elif role == "employer":
        employer = db.query(EmployerProfile).filter(EmployerProfile.user_id == user_id).first()
        if employer is None or application.job is None or int(application.job.employer_id) != int(employer.id):
            raise ForbiddenError()
    elif role != "admin":
        raise ForbiddenError()

    return {"success": True, "application": _application_to_public(db, application)}


@router.get("/{application_id:int}/prepare-email")
def prepare_email(
    application_id: int,
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    draft = application_workflow.prepare_email_draft(
        db, student_id=int(student.id), application_id=application_id
    )
    return {"success": True, "draft": draft}


@router.post("/{application_id:int}/send-email")
def send_email(
    application_id: int,
    subject: str | None = Form(default=None),
    emailBody: str | None = Form(default=None),
    attachments: list[UploadFile] | None = File(default=None),
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    files = _read_attachments(attachments)
    result = application_workflow.send_pending_application(
        db,
        student_id=int(student.id),
        application_id=application_id,
        subject=_clean_subject(subject),
        email_body=_clean_body(emailBody),
        attachments=files,
    )
    return _sent_response(db, result)


@router.delete("/{application_id:int}")
def withdraw(
    application_id: int,
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    application_workflow.withdraw_application(db, student_id=int(student.id), application_id=application_id)
    return {"success": True, "withdrawn_application_id": application_id}
