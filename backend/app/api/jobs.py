import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.application import Application
from ..models.company import Company
from ..models.employer_profile import EmployerProfile
from ..models.job import Job
from ..models.job_match import JobMatch
from ..services.match_recalculation import schedule_job_recalculation
from ..services.match_scorer import parse_skills
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import NotFoundError, ValidationError, get_error_message
from ..utils.validation import validate_skills_field, validate_string_field
from .deps import current_employer, get_owned_job, iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


def _job_to_public(job: Job) -> dict:
    company_name = None
    if job.company is not None:
        company_name = job.company.name
    elif job.employer is not None:
        company_name = job.employer.company_name
    return {
        "id": job.id,
        "title": job.title,
        "description": job.description,
        "location": job.location,
        "required_skills": parse_skills(job.required_skills),
        "preferred_skills": parse_skills(job.preferred_skills),
        "company_id": job.company_id,
        "company_name": company_name,
        "employer_id": job.employer_id,
        "active": bool(job.active),
        "created_at": iso(job.created_at),
        "updated_at": iso(job.updated_at),
    }


class JobCreate(BaseModel):
    title: str = Field(min_length=2, max_length=150)
    description: str | None = Field(default=None, max_length=5000)
    location: str | None = Field(default=None, max_length=100)
    required_skills: list[str] | str | None = None
    preferred_skills: list[str] | str | None = None
    company_id: int | None = Field(default=None, ge=1)
    active: bool = True


class JobUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=2, max_length=150)
    description: str | None = Field(default=None, max_length=5000)
    location: str | None = Field(default=None, max_length=100)
    required_skills: list[str] | str | None = None
    preferred_skills: list[str] | str | None = None
    company_id: int | None = Field(default=None, ge=1)
    active: bool | None = None


def _check_company(db: Session, company_id: int | None) -> None:
    if company_id is None:
        return
    if not db.query(Company).filter(Company.id == int(company_id)).first():
        raise ValidationError("Unknown company.", details={"company_id": int(company_id)})


@router.post("", status_code=201)
def create_job(
    payload: JobCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    employer: EmployerProfile = Depends(current_employer),
):
    title = validate_string_field(payload.title, "Title", min_length=2, max_length=150, required=True)
    _check_company(db, payload.company_id)

    job = Job(
        employer_id=int(employer.id),
        company_id=payload.company_id,
        title=title,
        description=validate_string_field(payload.description, "Description", min_length=0, max_length=5000, required=False) or None,
        location=validate_string_field(payload.location, "Location", min_length=0, max_length=100, required=False) or None,
        required_skills=validate_skills_field(payload.required_skills, "Required skills"),
        preferred_skills=validate_skills_field(payload.preferred_skills, "Preferred skills"),
        active=bool(payload.active),
    )
    try:
        db.add(job)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(job)
    logger.info("Job created id=%s employer_id=%s active=%s", job.id, employer.id, job.active)

    task_id = None
    if job.active:
        task_id = schedule_job_recalculation(background_tasks, job_id=int(job.id), owner_id=int(employer.user_id))
    return {"success": True, "job": _job_to_public(job), "recalculation_task_id": task_id}


@router.patch("/{job_id:int}")
def update_job(
    job_id: int,
    payload: JobUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    employer: EmployerProfile = Depends(current_employer),
):
    job = get_owned_job(db, job_id=job_id, employer=employer)
    was_active = bool(job.active)
    skills_changed = False

    if payload.title is not None:
        job.title = validate_string_field(payload.title, "Title", min_length=2, max_length=150, required=True)
    if payload.description is not None:
        job.description = validate_string_field(payload.description, "Description", min_length=0, max_length=5000, required=False) or None
    if payload.location is not None:
        job.location = validate_string_field(payload.location, "Location", min_length=0, max_length=100, required=False) or None
    if payload.required_skills is not None:
        job.required_skills = validate_skills_field(payload.required_skills, "Required skills")
        skills_changed = True
    if payload.preferred_skills is not None:
        job.preferred_skills = validate_skills_field(payload.preferred_skills, "Preferred skills")
        skills_changed = True
    if payload.company_id is not None:
        _check_company(db, payload.company_id)
        job.company_id = payload.company_id
    if payload.active is not None:
        job.active = bool(payload.active)

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(job)

    task_id = None
    # Activation, or a skills edit on an open job, changes every stored score for it.
    if job.active and (not was_active or skills_changed):
        task_id = schedule_job_recalculation(background_tasks, job_id=int(job.id), owner_id=int(employer.user_id))
    return {"success": True, "job": _job_to_public(job), "recalculation_task_id": task_id}


@router.delete("/{job_id:int}")
def delete_job(
    job_id: int,
    db: Session = Depends(get_db),
    employer: EmployerProfile = Depends(current_employer),
):
    job = get_owned_job(db, job_id=job_id, employer=employer)
    # Soft delete: applications and matches stay readable.
    try:
        job.active = False
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"success": True, "deleted_job_id": job_id}


@router.get("")
def list_jobs(
    mine: bool = Query(default=False, description="If true and role is employer, return only your jobs"),
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    q = db.query(Job)
    if user.get("role") == "employer" and mine:
        employer = db.query(EmployerProfile).filter(EmployerProfile.user_id == int(user.get("sub"))).first()
        if not employer:
            raise NotFoundError(get_error_message("employer_not_found"))
        q = q.filter(Job.employer_id == int(employer.id))
    else:
        q = q.filter(Job.active.is_(True))
    jobs = q.order_by(Job.created_at.desc(), Job.id.desc()).all()
    return {"success": True, "jobs": [_job_to_public(j) for j in jobs]}


@router.get("/{job_id:int}")
def get_job(
    job_id: int,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job or (not job.active and user.get("role") == "student"):
        raise NotFoundError(get_error_message("job_not_found"))
    return {"success": True, "job": _job_to_public(job)}


@router.get("/{job_id:int}/ranked_candidates")
def ranked_candidates(
    job_id: int,
    db: Session = Depends(get_db),
    employer: EmployerProfile = Depends(current_employer),
):
    job = get_owned_job(db, job_id=job_id, employer=employer)

    matches = (
        db.query(JobMatch)
        .filter(JobMatch.job_id == int(job.id))
        .order_by(JobMatch.match_score.desc(), JobMatch.id.asc())
        .all()
    )
    status_by_student = {
        int(a.student_id): a.status
        for a in db.query(Application).filter(Application.job_id == int(job.id)).all()
    }

    items: list[dict] = []
    for m in matches:
        student = m.student
        items.append(
            {
                "match_id": m.id,
                "student": {
                    "id": student.id if student else None,
                    "name": student.full_name if student else None,
                    "email": student.contact_email if student else None,
                    "university": student.university if student else None,
                },
                "match_score": float(m.match_score or 0.0),
                "match_details": m.match_details,
                "application_status": status_by_student.get(int(m.student_id)),
                "updated_at": iso(m.updated_at),
            }
        )
    return {"success": True, "job": _job_to_public(job), "candidates": items}
