"""Insert helpers that turn uniqueness violations into a result value.

Tracking beacons are delivered at-least-once, so inserting a row whose key is
already taken is an expected outcome rather than a failure. Callers branch on
:class:`InsertOutcome` instead of catching driver exceptions themselves.
"""

from __future__ import annotations

import enum
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.base import Base

logger = logging.getLogger(__name__)

_UNIQUE_VIOLATION_SQLSTATE = "23505"
_UNIQUE_VIOLATION_MARKERS = (
    "unique constraint failed",
    "duplicate key value violates unique constraint",
)


class InsertOutcome(enum.StrEnum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate:
        return sqlstate == _UNIQUE_VIOLATION_SQLSTATE
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _UNIQUE_VIOLATION_MARKERS)


def insert_once(session: Session, row: Base) -> InsertOutcome:
    """Insert ``row`` and commit, or report that its key already exists.

    Pending work in ``session`` must be committed before the call: a
    uniqueness violation rolls the session back. Integrity errors other than
    a uniqueness violation propagate unchanged.
    """
    session.add(row)
    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        if not is_unique_violation(exc):
            raise
        logger.debug(
            "insert_already_exists",
            extra={"table": row.__tablename__},
        )
        return InsertOutcome.ALREADY_EXISTS
    session.commit()
    return InsertOutcome.INSERTED
