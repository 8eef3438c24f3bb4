"""Liveness and readiness probes."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.db.models import TrackingSession, Visitor
from app.db.session import get_session

router = APIRouter(tags=["health"])

_SERVICE_NAME = "attribution_tracker"


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok", "service": _SERVICE_NAME, "env": settings.env}


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
def readiness() -> JSONResponse:
    # Probes the tracking tables themselves so a missing migration reports not ready.
    try:
        with get_session() as session:
            session.execute(select(Visitor.id).limit(1))
            session.execute(select(TrackingSession.id).limit(1))
    except (RuntimeError, SQLAlchemyError) as exc:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "reason": f"database_unavailable: {exc.__class__.__name__}",
            },
        )
    return JSONResponse(status_code=200, content={"status": "ready"})
