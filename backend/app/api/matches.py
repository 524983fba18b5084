from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.job import Job
from ..models.job_match import JobMatch
from ..models.student_profile import StudentProfile
from ..services.match_recalculation import set_match_viewed
from ..services.progress_tracker import get_task, public_view
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import NotFoundError, get_error_message
from .deps import current_student, iso

router = APIRouter(prefix="/matches", tags=["Matches"])


def _match_to_public(m: JobMatch) -> dict:
    job = m.job
    return {
        "id": m.id,
        "job_id": m.job_id,
        "job_title": job.title if job else None,
        "match_score": float(m.match_score or 0.0),
        "match_details": m.match_details,
        "viewed": bool(m.viewed),
        "matched_at": iso(m.matched_at),
        "updated_at": iso(m.updated_at),
    }


@router.get("")
def list_matches(
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    matches = (
        db.query(JobMatch)
        .join(Job, Job.id == JobMatch.job_id)
        .filter(JobMatch.student_id == int(student.id), Job.active.is_(True))
        .order_by(JobMatch.match_score.desc(), JobMatch.id.asc())
        .all()
    )
    return {"success": True, "matches": [_match_to_public(m) for m in matches]}


@router.post("/{match_id:int}/viewed")
def mark_viewed(
    match_id: int,
    db: Session = Depends(get_db),
    student: StudentProfile = Depends(current_student),
):
    match = set_match_viewed(db, student_id=int(student.id), match_id=match_id)
    return {"success": True, "match": _match_to_public(match)}


@router.get("/recalculations/{task_id}")
def recalculation_status(
    task_id: str,
    user=Depends(get_current_user),
):
    t = get_task(task_id=task_id)
    if not t or int(t.get("owner_id") or 0) != int(user.get("sub")):
        raise NotFoundError(get_error_message("task_not_found"))
    return {"success": True, "task": public_view(t)}
