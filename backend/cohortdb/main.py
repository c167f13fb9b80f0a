# backend/cohortdb/main.py
import logging
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .errors import install_error_handlers

from .apps.assessments.router import router as assessments_router
from .apps.attendance.router import router as attendance_router
from .apps.audit.router import router as audit_router
from .apps.cohorts.router import router as cohorts_router
from .apps.cohorts.router_learners import router as learners_router
from .apps.cohorts.router_sessions import router as sessions_router
from .apps.iqa.router import router as iqa_router

logging.basicConfig(level=os.getenv("LOG_LEVEL", "info").upper())


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ]


app = FastAPI(title="Cohort Compliance API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Cohort compliance backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(cohorts_router)
app.include_router(learners_router)
app.include_router(sessions_router)
app.include_router(attendance_router)
app.include_router(assessments_router)
app.include_router(iqa_router)
app.include_router(audit_router)
