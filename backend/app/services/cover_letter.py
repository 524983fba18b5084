"""
Cover letter generation for job applications.

Letters are rendered from the student's profile, the chosen CV and the job
posting with a fixed template, so the same inputs always give the same letter
for a given date.
"""
import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from .. import config
from ..models.cv import CV
from ..models.job import Job
from ..models.student_profile import StudentProfile
from ..utils.error_handlers import NotFoundError, get_error_message
from .match_scorer import normalize_skill, parse_skills

logger = logging.getLogger(__name__)


def _today() -> date:
    return datetime.now(ZoneInfo(config.COVER_LETTER_TIMEZONE)).date()


def _format_date(d: date) -> str:
    # "March 05, 2025"
    return d.strftime("%B %d, %Y")


def _matching_skills(student: StudentProfile, job: Job) -> list[str]:
    cand = {normalize_skill(s) for s in parse_skills(student.skills)}
    wanted = parse_skills(job.required_skills) + parse_skills(job.preferred_skills)
    out: list[str] = []
    seen: set[str] = set()
    for s in wanted:
        n = normalize_skill(s)
        if n in cand and n not in seen:
            seen.add(n)
            out.append(s)
    return out


def _salutation_name(job: Job) -> str:
    company = job.company
    if company is not None and company.hr_email:
        return company.hr_name or "Hiring Manager"
    employer = job.employer
    if employer is not None and employer.contact_person_name:
        return employer.contact_person_name
    return "Hiring Manager"


def _company_name(job: Job) -> str:
    if job.company is not None and job.company.name:
        return job.company.name
    if job.employer is not None and job.employer.company_name:
        return job.employer.company_name
    return "your company"


def render_cover_letter(
    *,
    student: StudentProfile,
    job: Job,
    cv: CV | None,
    on_date: date | None = None,
) -> str:
    on_date = on_date or _today()
    name = student.full_name or "Student"
    company = _company_name(job)

    studies = ""
    if student.field_of_study and student.university:
        studies = f" As a {student.field_of_study} student at {student.university},"
    elif student.university:
        studies = f" As a student at {student.university},"
    elif student.field_of_study:
        studies = f" As a {student.field_of_study} student,"

    if studies:
        intro = f"{studies} I am eager to put what I have learned into practice."
    else:
        intro = " I am eager to put what I have learned into practice."
    opening = f"I am writing to apply for the {job.title} position at {company}.{intro}"

    matching = _matching_skills(student, job)
    if matching:
        skills_paragraph = (
            f"My experience with {', '.join(matching)} aligns closely with the requirements of this role. "
            "I have applied these skills in coursework and projects, and I am confident I can contribute from day one."
        )
    else:
        all_skills = parse_skills(student.skills)
        if all_skills:
            skills_paragraph = (
                f"I bring skills in {', '.join(all_skills)}, and I am a quick learner who is ready to pick up "
                "the tools your team relies on."
            )
        else:
            skills_paragraph = (
                "I am a quick learner who is ready to pick up the tools your team relies on."
            )

    cv_line = "I have attached my CV"
    if cv is not None and cv.title:
        cv_line = f"I have attached my CV ({cv.title})"
    closing = (
        f"{cv_line} for your review and would welcome the opportunity to discuss how I can contribute to "
        f"{company}. Thank you for your time and consideration."
    )

    parts = [
        _format_date(on_date),
        "",
        f"Dear {_salutation_name(job)},",
        "",
        opening,
        "",
        skills_paragraph,
        "",
        closing,
        "",
        "Sincerely,",
        name,
    ]
    if student.contact_email:
        parts.append(student.contact_email)
    if student.phone:
        parts.append(student.phone)
    return "\n".join(parts)


def generate_cover_letter(
    db: Session,
    *,
    student_id: int,
    job_id: int,
    cv_id: int | None = None,
    on_date: date | None = None,
) -> str:
    student = db.query(StudentProfile).filter(StudentProfile.id == int(student_id)).first()
    if not student:
        raise NotFoundError(get_error_message("student_not_found"))
    job = db.query(Job).filter(Job.id == int(job_id)).first()
    if not job:
        raise NotFoundError(get_error_message("job_not_found"))

    cv = None
    if cv_id is not None:
        cv = db.query(CV).filter(CV.id == int(cv_id), CV.student_id == int(student.id)).first()
        if not cv:
            raise NotFoundError(get_error_message("cv_not_found"))

    letter = render_cover_letter(student=student, job=job, cv=cv, on_date=on_date)
    logger.info("Generated cover letter student_id=%s job_id=%s chars=%s", student_id, job_id, len(letter))
    return letter
