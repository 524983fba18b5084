import logging

from sqlalchemy.orm import Session

from ..models.cv import CV
from ..models.student_profile import StudentProfile
from ..utils.error_handlers import NoActiveCVError, NotFoundError, get_error_message

logger = logging.getLogger(__name__)


def get_student_cv(db: Session, *, student_id: int, cv_id: int) -> CV:
    cv = db.query(CV).filter(CV.id == int(cv_id), CV.student_id == int(student_id)).first()
    if not cv:
        raise NotFoundError(get_error_message("cv_not_found"), details={"cv_id": int(cv_id)})
    return cv


def resolve_active_cv(db: Session, *, student: StudentProfile) -> CV:
    """The student's active CV, or NoActiveCVError."""
    cv = None
    if student.active_cv_id:
        cv = db.query(CV).filter(CV.id == int(student.active_cv_id), CV.student_id == int(student.id)).first()
    if cv is None:
        # Older rows may only carry the flag on the CV itself.
        cv = (
            db.query(CV)
            .filter(CV.student_id == int(student.id), CV.is_active.is_(True))
            .order_by(CV.created_at.desc(), CV.id.desc())
            .first()
        )
    if cv is None:
        raise NoActiveCVError()
    return cv


def resolve(db: Session, *, student: StudentProfile, cv_id: int | None) -> CV:
    """Explicit CV when given (must belong to the student), else the active one."""
    if cv_id is not None:
        return get_student_cv(db, student_id=int(student.id), cv_id=int(cv_id))
    return resolve_active_cv(db, student=student)


def create_cv(db: Session, *, student: StudentProfile, title: str | None, content: str | None, make_active: bool) -> CV:
    cv = CV(student_id=int(student.id), title=title, content=content, is_active=False)
    db.add(cv)
    db.flush()
    if make_active or not student.active_cv_id:
        set_active_cv(db, student=student, cv_id=int(cv.id))
    return cv


def set_active_cv(db: Session, *, student: StudentProfile, cv_id: int) -> CV:
    """Make one CV active and clear the flag on every other CV of the student. Flushes only."""
    cv = get_student_cv(db, student_id=int(student.id), cv_id=cv_id)
    (
        db.query(CV)
        .filter(CV.student_id == int(student.id), CV.id != int(cv.id))
        .update({CV.is_active: False})
    )
    cv.is_active = True
    student.active_cv_id = int(cv.id)
    db.flush()
    logger.info("Active CV set student_id=%s cv_id=%s", student.id, cv.id)
    return cv
