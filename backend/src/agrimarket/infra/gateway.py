"""Persistence gateway: driver exceptions in, taxonomy errors out.

Services call ``commit`` (or wrap flushes in ``translated``) so that unique,
foreign-key and check violations surface as ``ApiError`` subclasses no matter
which database driver sits underneath.
"""

import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession

from agrimarket.domain.errors import ApiError, Conflict, EmailTaken, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

# SQLSTATE classes (PostgreSQL and friends)
_UNIQUE_VIOLATION = "23505"
_FK_VIOLATION = "23503"
_CHECK_VIOLATION = "23514"
_NOT_NULL_VIOLATION = "23502"


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    return None


def translate_integrity_error(exc: IntegrityError) -> ApiError:
    """Map an IntegrityError onto EMAIL_TAKEN / CONFLICT / VALIDATION_ERROR."""
    state = _sqlstate(exc)
    text = str(exc.orig).lower()

    if state == _UNIQUE_VIOLATION or "unique constraint" in text or "duplicate key" in text:
        if "email" in text:
            return EmailTaken()
        return Conflict(details={"reason": "unique_violation"})
    if state == _FK_VIOLATION or "foreign key" in text:
        return ValidationFailed(
            "Referenced record does not exist",
            details=[{"field": None, "message": "Referenced record does not exist", "code": "foreign_key"}],
        )
    if state in (_CHECK_VIOLATION, _NOT_NULL_VIOLATION) or "check constraint" in text or "not null" in text:
        return ValidationFailed(
            "Value violates a data constraint",
            details=[{"field": None, "message": "Value violates a data constraint", "code": "constraint"}],
        )

    logger.error("Unclassified integrity error: %s", exc.orig)
    return Conflict()


@asynccontextmanager
async def translated(db: AsyncSession):
    """Roll back and re-raise storage errors as taxonomy errors."""
    try:
        yield
    except IntegrityError as exc:
        await db.rollback()
        raise translate_integrity_error(exc) from exc
    except NoResultFound as exc:
        await db.rollback()
        raise NotFound() from exc


async def commit(db: AsyncSession) -> None:
    """Commit the unit of work, translating constraint violations."""
    async with translated(db):
        await db.commit()
