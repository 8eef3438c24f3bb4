"""Admin-only attribution audit over HTTP basic credentials."""

from __future__ import annotations

import base64
import hmac
import logging
from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.exc import OperationalError, TimeoutError as SQLAlchemyTimeoutError
from sqlalchemy.orm import Session

from app.api.dependencies import get_db_session
from app.core.config import settings
from app.services.attribution_audit import AuditOptions, build_attribution_audit

router = APIRouter(prefix="/api/analytics", tags=["analytics"])
logger = logging.getLogger(__name__)


def _extract_basic_auth(request: Request) -> tuple[str | None, str | None]:
    auth_header = request.headers.get("authorization")
    if not auth_header:
        return None, None
    if not auth_header.lower().startswith("basic "):
        return None, None
    payload = auth_header[6:]
    try:
        decoded = base64.b64decode(payload).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return None, None
    if ":" not in decoded:
        return None, None
    login, password = decoded.split(":", 1)
    return login, password


def _require_admin(request: Request) -> None:
    if not settings.admin_credentials_ready:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="ADMIN_LOGIN or ADMIN_PASSWORD is not configured",
        )
    login, password = _extract_basic_auth(request)
    if (
        login is not None
        and password is not None
        and hmac.compare_digest(login.encode("utf-8"), settings.admin_login.encode("utf-8"))
        and hmac.compare_digest(password.encode("utf-8"), settings.admin_password.encode("utf-8"))
    ):
        return
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing admin credentials",
        headers={"WWW-Authenticate": "Basic"},
    )


@router.get("/attribution-audit", dependencies=[Depends(_require_admin)])
def attribution_audit(
    days: int | None = Query(default=None, ge=1, le=3650),
    session: Session = Depends(get_db_session),
) -> dict:
    since = date.today() - timedelta(days=days) if days else None
    try:
        report = build_attribution_audit(session, AuditOptions.from_settings(since=since))
    except (OperationalError, SQLAlchemyTimeoutError) as exc:
        logger.exception("attribution_audit_db_unavailable", extra={"days": days})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is temporarily unavailable. Retry the audit later.",
        ) from exc
    return {"success": True, **report}
