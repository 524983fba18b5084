import os
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker


# Ensure `import backend.app...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before anything imports backend.app.config.
os.environ["DISABLE_DOTENV"] = "1"
os.environ.setdefault("SECRET_KEY", "test_secret")
os.environ["EMAIL_ENABLED"] = "1"
os.environ["FRONTEND_URL"] = "http://frontend.test"


@pytest.fixture()
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.sqlite3"


@pytest.fixture()
def app(test_db_path: Path) -> FastAPI:
    """
    Create a FastAPI app wired to a temporary SQLite DB.

    We do not import `app.main` so startup hooks never touch the developer database.
    """
    os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{test_db_path}"

    from backend.app import database as db
    from backend.app.main import app_error_handler, http_exception_handler
    from backend.app.utils.error_handlers import AppError
    from fastapi import HTTPException

    engine = create_engine(
        os.environ["DATABASE_URL"],
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _fk_on(dbapi_connection, connection_record):  # noqa: ANN001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Patch the shared database module so router dependencies and background tasks use the test DB.
    db.engine = engine
    db.SessionLocal = TestingSessionLocal

    # Import models so Base metadata is populated, then create tables.
    from backend.app import models  # noqa: F401

    db.Base.metadata.drop_all(bind=engine)
    db.Base.metadata.create_all(bind=engine)

    from backend.app.api import applications as applications_api
    from backend.app.api import jobs as jobs_api
    from backend.app.api import matches as matches_api
    from backend.app.api import students as students_api

    fastapi_app = FastAPI()
    fastapi_app.include_router(applications_api.router)
    fastapi_app.include_router(jobs_api.router)
    fastapi_app.include_router(students_api.router)
    fastapi_app.include_router(matches_api.router)
    fastapi_app.add_exception_handler(AppError, app_error_handler)
    fastapi_app.add_exception_handler(HTTPException, http_exception_handler)

    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(app: FastAPI):
    """
    Direct SQLAlchemy session bound to the same temporary SQLite DB used by the test app.
    """
    from backend.app import database

    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _reset_email_config(monkeypatch):
    from backend.app import config

    monkeypatch.setattr(config, "EMAIL_ENABLED", True)
    monkeypatch.setattr(config, "EMAIL_PROVIDER", "smtp")
    monkeypatch.setattr(config, "FRONTEND_URL", "http://frontend.test")


@pytest.fixture()
def sent_emails(monkeypatch):
    """Replace the email transport used by the workflow with a recorder."""
    from backend.app.services import application_workflow

    sent: list[dict] = []

    def _fake_send(**kwargs):
        sent.append(kwargs)

    monkeypatch.setattr(application_workflow, "send_job_application_email", _fake_send)
    return sent


@pytest.fixture()
def make_student(db_session):
    from backend.app.models.cv import CV
    from backend.app.models.student_profile import StudentProfile
    from backend.app.models.user import User

    counter = {"n": 0}

    def _make(
        *,
        skills: str | None = "Python, SQL",
        with_cv: bool = True,
        first_name: str = "Ana",
        last_name: str = "Reyes",
    ) -> StudentProfile:
        counter["n"] += 1
        n = counter["n"]
        user = User(name=f"{first_name} {last_name}", email=f"student{n}@example.com", role="student")
        db_session.add(user)
        db_session.flush()
        student = StudentProfile(
            user_id=user.id,
            first_name=first_name,
            last_name=last_name,
            phone="+63 900 000 0000",
            university="UP Diliman",
            field_of_study="Computer Science",
            skills=skills,
        )
        db_session.add(student)
        db_session.flush()
        if with_cv:
            cv = CV(student_id=student.id, title="Main CV", content="...", is_active=True)
            db_session.add(cv)
            db_session.flush()
            student.active_cv_id = cv.id
        db_session.commit()
        db_session.refresh(student)
        return student

    return _make


@pytest.fixture()
def make_employer(db_session):
    from backend.app.models.employer_profile import EmployerProfile
    from backend.app.models.user import User

    counter = {"n": 0}

    def _make(*, contact_email: str | None = "contact@acme.test") -> EmployerProfile:
        counter["n"] += 1
        n = counter["n"]
        user = User(name=f"Employer {n}", email=f"employer{n}@example.com", role="employer")
        db_session.add(user)
        db_session.flush()
        employer = EmployerProfile(
            user_id=user.id,
            company_name="Acme Corp",
            contact_person_name="Maria Santos",
            contact_person_email=contact_email,
        )
        db_session.add(employer)
        db_session.commit()
        db_session.refresh(employer)
        return employer

    return _make


@pytest.fixture()
def make_job(db_session, make_employer):
    from backend.app.models.job import Job

    def _make(
        *,
        employer=None,
        company=None,
        required: str | None = "Python, SQL",
        preferred: str | None = "Docker",
        active: bool = True,
        title: str = "Backend Intern",
    ) -> Job:
        employer = employer or make_employer()
        job = Job(
            employer_id=employer.id,
            company_id=company.id if company is not None else None,
            title=title,
            description="Build APIs.",
            required_skills=required,
            preferred_skills=preferred,
            active=active,
        )
        db_session.add(job)
        db_session.commit()
        db_session.refresh(job)
        return job

    return _make


@pytest.fixture()
def token_for():
    from backend.app.utils.jwt import create_access_token

    def _token(user_id: int, role: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id), 'role': role})}"}

    return _token
