from datetime import datetime

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.employer_profile import EmployerProfile
from ..models.job import Job
from ..models.student_profile import StudentProfile
from ..utils.error_handlers import ForbiddenError, NotFoundError, get_error_message
from ..utils.roles import employer_only, student_only


def current_student(db: Session = Depends(get_db), user=Depends(student_only)) -> StudentProfile:
    student = db.query(StudentProfile).filter(StudentProfile.user_id == int(user.get("sub"))).first()
    if not student:
        raise NotFoundError(get_error_message("student_not_found"))
    return student


def current_employer(db: Session = Depends(get_db), user=Depends(employer_only)) -> EmployerProfile:
    employer = db.query(EmployerProfile).filter(EmployerProfile.user_id == int(user.get("sub"))).first()
    if not employer:
        raise NotFoundError(get_error_message("employer_not_found"))
    return employer


def get_owned_job(db: Session, *, job_id: int, employer: EmployerProfile) -> Job:
    job = db.query(Job).filter(Job.id == int(job_id)).first()
    if not job:
        raise NotFoundError(get_error_message("job_not_found"))
    if int(job.employer_id) != int(employer.id):
        raise ForbiddenError("You can only manage your own job postings.")
    return job


def iso(value):
    return value.isoformat() if isinstance(value, datetime) else value
