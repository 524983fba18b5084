"""
Keeps stored job matches in step with jobs and student profiles.

- A job is created or re-activated: score every student with an active CV
  against it.
- A student profile changes: score that student against every open job.

Rows are upserted on (student_id, job_id); nothing here deletes a match, and
an update keeps its `viewed` flag. Each pair is committed on its own, so one
failing pair is logged and skipped without aborting the batch.

Routers hand the work to FastAPI `BackgroundTasks` through the `schedule_*`
helpers; the request returns before any scoring runs.
"""
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import BackgroundTasks
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import database
from ..models.cv import CV
from ..models.job import Job
from ..models.job_match import JobMatch
from ..models.student_profile import StudentProfile
from ..utils.error_handlers import NotFoundError, get_error_message
from .match_scorer import explain, match_breakdown, parse_skills, score
from .progress_tracker import complete_task, create_task, fail_task, update_task

logger = logging.getLogger(__name__)


def _students_with_active_cv(db: Session) -> list[StudentProfile]:
    return (
        db.query(StudentProfile)
        .filter(
            or_(
                StudentProfile.active_cv_id.isnot(None),
                StudentProfile.cvs.any(CV.is_active.is_(True)),
            )
        )
        .order_by(StudentProfile.id.asc())
        .all()
    )


def upsert_match(db: Session, *, student: StudentProfile, job: Job) -> tuple[JobMatch, bool]:
    """Score one pair and write it. Returns (match, created). Flushes only."""
    cand = parse_skills(student.skills)
    req = parse_skills(job.required_skills)
    pref = parse_skills(job.preferred_skills)

    value = round(score(cand, req, pref), 2)
    details = explain(
        score_value=value,
        breakdown=match_breakdown(candidate_skills=cand, required_skills=req, preferred_skills=pref),
    )

    match = (
        db.query(JobMatch)
        .filter(JobMatch.student_id == int(student.id), JobMatch.job_id == int(job.id))
        .first()
    )
    created = match is None
    if created:
        match = JobMatch(student_id=int(student.id), job_id=int(job.id), viewed=False)
        db.add(match)
    match.match_score = value
    match.match_details = details
    match.updated_at = datetime.now(timezone.utc)
    db.flush()
    return match, created


def _run_pairs(
    db: Session,
    pairs: list[tuple[int, int]],
    *,
    summary: dict[str, Any],
    progress_task_id: str | None,
) -> dict[str, Any]:
    total = len(pairs)
    for i, (student_id, job_id) in enumerate(pairs, start=1):
        try:
            student = db.query(StudentProfile).filter(StudentProfile.id == student_id).first()
            job = db.query(Job).filter(Job.id == job_id).first()
            if student is None or job is None:
                summary["skipped"] += 1
                continue
            _, created = upsert_match(db, student=student, job=job)
            db.commit()
            summary["created" if created else "updated"] += 1
        except Exception:
            db.rollback()
            summary["failed"] += 1
            logger.exception("Match recalculation failed student_id=%s job_id=%s", student_id, job_id)
        if progress_task_id and total:
            update_task(task_id=progress_task_id, percent=int(100 * i / total), message=f"Scored {i}/{total}")
    summary["processed"] = total
    return summary


def _empty_summary(**ids: int) -> dict[str, Any]:
    return {**ids, "processed": 0, "created": 0, "updated": 0, "failed": 0, "skipped": 0}


def recalculate_for_job(db: Session, *, job_id: int, progress_task_id: str | None = None) -> dict[str, Any]:
    summary = _empty_summary(job_id=int(job_id))
    job = db.query(Job).filter(Job.id == int(job_id)).first()
    if job is None or not job.active:
        logger.info("Skipping match recalculation for missing or inactive job_id=%s", job_id)
        return summary

    pairs = [(int(s.id), int(job.id)) for s in _students_with_active_cv(db)]
    _run_pairs(db, pairs, summary=summary, progress_task_id=progress_task_id)
    logger.info("Recalculated matches for job_id=%s: %s", job_id, summary)
    return summary


def recalculate_for_student(db: Session, *, student_id: int, progress_task_id: str | None = None) -> dict[str, Any]:
    summary = _empty_summary(student_id=int(student_id))
    student = db.query(StudentProfile).filter(StudentProfile.id == int(student_id)).first()
    if student is None:
        logger.info("Skipping match recalculation for missing student_id=%s", student_id)
        return summary

    jobs = db.query(Job).filter(Job.active.is_(True)).order_by(Job.id.asc()).all()
    pairs = [(int(student.id), int(j.id)) for j in jobs]
    _run_pairs(db, pairs, summary=summary, progress_task_id=progress_task_id)
    logger.info("Recalculated matches for student_id=%s: %s", student_id, summary)
    return summary


def _run_job_task(*, task_id: str, job_id: int) -> None:
    try:
        with database.session_scope() as db:
            result = recalculate_for_job(db, job_id=job_id, progress_task_id=task_id)
        complete_task(task_id=task_id, result=result)
    except Exception as e:
        logger.exception("Job match recalculation task %s failed", task_id)
        fail_task(task_id=task_id, error_message=str(e))


def _run_student_task(*, task_id: str, student_id: int) -> None:
    try:
        with database.session_scope() as db:
            result = recalculate_for_student(db, student_id=student_id, progress_task_id=task_id)
        complete_task(task_id=task_id, result=result)
    except Exception as e:
        logger.exception("Student match recalculation task %s failed", task_id)
        fail_task(task_id=task_id, error_message=str(e))


def schedule_job_recalculation(background_tasks: BackgroundTasks, *, job_id: int, owner_id: int) -> str:
    task_id = uuid4().hex
    create_task(task_id=task_id, kind="job", entity_id=int(job_id), owner_id=int(owner_id))
    background_tasks.add_task(_run_job_task, task_id=task_id, job_id=int(job_id))
    return task_id


def schedule_student_recalculation(background_tasks: BackgroundTasks, *, student_id: int, owner_id: int) -> str:
    task_id = uuid4().hex
    create_task(task_id=task_id, kind="student", entity_id=int(student_id), owner_id=int(owner_id))
    background_tasks.add_task(_run_student_task, task_id=task_id, student_id=int(student_id))
    return task_id


def mark_match_viewed(db: Session, *, student_id: int, job_id: int) -> bool:
    """Flag the stored match for the pair as viewed, if there is one. Does not commit."""
    match = (
        db.query(JobMatch)
        .filter(JobMatch.student_id == int(student_id), JobMatch.job_id == int(job_id))
        .first()
    )
    if match is None:
        return False
    match.viewed = True
    return True


def set_match_viewed(db: Session, *, student_id: int, match_id: int) -> JobMatch:
    match = (
        db.query(JobMatch)
        .filter(JobMatch.id == int(match_id), JobMatch.student_id == int(student_id))
        .first()
    )
    if match is None:
        raise NotFoundError(get_error_message("match_not_found"))
    match.viewed = True
    db.commit()
    db.refresh(match)
    return match
