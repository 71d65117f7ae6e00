"""FastAPI application."""
import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .domain_errors import DomainError, StorageError
from .problem_details import build_problem_details_response
from .routers import assignments, completions, kpis

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create app
app = FastAPI(
    title="KPI Planning",
    version="1.0.0",
    description="KPI target planning and work-assignment API for production chains"
)

# Production safety checks (fail closed on insecure config).
if settings.ENV.lower() == "production" and settings.JWT_SECRET_KEY == "change-me":
    raise RuntimeError("JWT_SECRET_KEY must be set in production (shared with the identity service).")
if settings.ENV.lower() == "production" and not settings.cors_origins:
    raise RuntimeError("ALLOWED_ORIGINS must be set in production (explicit frontend origin required).")
if settings.ENV.lower() == "production" and any(origin.strip() == "*" for origin in settings.cors_origins):
    raise RuntimeError("ALLOWED_ORIGINS must be explicit in production (no wildcard when using credentials).")

# CORS
cors_methods = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
cors_headers = ["Authorization", "Content-Type"]
if settings.ENV.lower() != "production":
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)


@app.exception_handler(DomainError)
async def handle_domain_error(_: Request, exc: DomainError):
    return build_problem_details_response(exc)


@app.exception_handler(StorageError)
async def handle_storage_error(_: Request, exc: StorageError):
    return build_problem_details_response(exc)


# Include routers
app.include_router(kpis.router, prefix="/api/v1")
app.include_router(assignments.router, prefix="/api/v1")
app.include_router(completions.router, prefix="/api/v1")


@app.get("/api/v1/system/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint."""
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "version": "1.0.0",
        "database": database,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "KPI Planning API",
        "version": "1.0.0",
        "docs": "/docs"
    }
