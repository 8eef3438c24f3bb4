from collections.abc import Iterator

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_session_factory


def get_db_session() -> Iterator[Session]:
    """One session per request, closed after the response.

    Tracking services commit their own units of work, so nothing is
    committed here.
    """
    try:
        session_factory = get_session_factory()
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    session = session_factory()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
