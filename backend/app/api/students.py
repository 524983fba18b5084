import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.cv import CV
from ..models.student_profile import StudentProfile
from ..services import cv_store
from ..services.match_recalculation import schedule_student_recalculation
from ..services.match_scorer import parse_skills
from ..utils.validation import validate_email, validate_skills_field, validate_string_field
from .deps import current_student, iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/students", tags=["Students"])


class StudentUpdate(BaseModel):
    first_name: str | None = Field(default=None, min_length=1, max_length=120)
    last_name: str | None = Field(default=None, max_length=120)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    university: str | None = Field(default=None, max_length=255)
    field_of_study: str | None = Field(default=None, max_length=255)
    skills: list[str] | str | None = None


class CVCreate(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    content: str | None = None
    make_active: bool = True


def _student_to_public(student: StudentProfile) -> dict:
    return {
        "id": student.id,
        "user_id": student.user_id,
        "first_name": student.first_name,
        "last_name": student.last_name,
        "email": student.contact_email,
        "phone": student.phone,
        "university": student.university,
        "field_of_study": student.field_of_study,
        "skills": parse_skills(student.skills),
        "active_cv_id": student.active_cv_id,
        "updated_at": iso(student.updated_at),
    }


def _cv_to_public(cv: CV) -> dict:
    return {
        "id": cv.id,
        "title": cv.title,
        "is_active": bool(cv.is_active),
        "created_at": iso(cv.created_at),
    }


@router.get("/me")
def get_me(student: StudentProfile = Depends(current_student)):
    return {
        "success": True,
        "student": _student_to_public(student),
        "cvs": [_cv_to_public(cv) for cv in student.cvs],
    }


@router.patch("/me")
def update_me(
    payload: StudentUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    """Partial profile update. Only fields sent as non-null are changed."""
    if payload.first_name is not None:
        student.first_name = validate_string_field(payload.first_name, "First name", max_length=120)
    if payload.last_name is not None:
        student.last_name = validate_string_field(payload.last_name, "Last name", min_length=0, max_length=120, required=False) or None
    if payload.email is not None:
        student.email = validate_email(payload.email)
    if payload.phone is not None:
        student.phone = validate_string_field(payload.phone, "Phone", min_length=0, max_length=50, required=False) or None
    if payload.university is not None:
        student.university = validate_string_field(payload.university, "University", min_length=0, max_length=255, required=False) or None
    if payload.field_of_study is not None:
        student.field_of_study = validate_string_field(payload.field_of_study, "Field of study", min_length=0, max_length=255, required=False) or None
    if payload.skills is not None:
        student.skills = validate_skills_field(payload.skills, "Skills")

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(student)
    logger.info("Student profile updated id=%s", student.id)

    task_id = schedule_student_recalculation(background_tasks, student_id=int(student.id), owner_id=int(student.user_id))
    return {"success": True, "student": _student_to_public(student), "recalculation_task_id": task_id}


@router.post("/me/cvs", status_code=201)
def add_cv(
    payload: CVCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    had_active = bool(student.active_cv_id)
    try:
        cv = cv_store.create_cv(
            db,
            student=student,
            title=validate_string_field(payload.title, "Title", min_length=0, max_length=255, required=False) or None,
            content=payload.content,
            make_active=payload.make_active,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(cv)

    task_id = None
    # A first active CV puts the student into the matching pool.
    if not had_active and cv.is_active:
        task_id = schedule_student_recalculation(background_tasks, student_id=int(student.id), owner_id=int(student.user_id))
    return {"success": True, "cv": _cv_to_public(cv), "recalculation_task_id": task_id}


@router.put("/me/cvs/{cv_id:int}/active")
def activate_cv(
    cv_id: int,
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    try:
        cv = cv_store.set_active_cv(db, student=student, cv_id=cv_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(cv)
    return {"success": True, "cv": _cv_to_public(cv), "active_cv_id": student.active_cv_id}
