import logging
import os

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from .api import applications as applications_api
from .api import jobs as jobs_api
from .api import matches as matches_api
from .api import students as students_api
from .config import LOG_LEVEL
from .database import engine, init_db
from .utils.error_handlers import AppError, create_error_response, get_error_message

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="OJTech Job Board")

app.include_router(applications_api.router)
app.include_router(jobs_api.router)
app.include_router(students_api.router)
app.include_router(matches_api.router)

logger = logging.getLogger(__name__)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render typed service errors with their stable code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return create_error_response(exc.status_code, exc.message, details=exc.details, code=exc.code)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTPException with user-friendly messages."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code,
        },
    )


@app.exception_handler(OperationalError)
async def sqlalchemy_operational_error_handler(request: Request, exc: OperationalError):
    """Handle database operational errors."""
    logger.exception("Database OperationalError: %s", exc)
    root = getattr(exc, "orig", None)
    root_msg = str(root) if root else str(exc)
    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "error": get_error_message("database_error"),
            "details": f"Database operation failed. Check DATABASE_URL / DB server. Details: {root_msg}",
        },
    )


@app.exception_handler(SQLAlchemyError)
async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError):
    """Handle general database errors."""
    logger.exception("Database SQLAlchemyError: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": get_error_message("database_error"),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors globally."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": get_error_message("server_error"),
        },
    )


@app.get("/health")
def health_check():
    """Health check endpoint."""
    db_ok = True
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Health check database probe failed: %s", e)
        db_ok = False
    return {
        "status": "Backend running",
        "service": "OJTech Job Board",
        "database": "ok" if db_ok else "unavailable",
    }


_default_origins = ["http://localhost:5173", "http://127.0.0.1:5173"]
_extra_origins = [
    origin.strip()
    for origin in os.getenv("FRONTEND_ORIGINS", "").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[*_default_origins, *_extra_origins],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    try:
        init_db()
    except OperationalError as e:
        # Let the app boot so /health can report the problem.
        logger.error("Database initialisation failed: %s", e)
