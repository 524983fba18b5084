from .user import User
from .student_profile import StudentProfile
from .cv import CV
from .employer_profile import EmployerProfile
from .company import Company
from .job import Job
from .application import Application
from .job_match import JobMatch
from .email_tracking import StudentEmailTracking

__all__ = [
    "Application",
    "CV",
    "Company",
    "EmployerProfile",
    "Job",
    "JobMatch",
    "StudentEmailTracking",
    "StudentProfile",
    "User",
]
