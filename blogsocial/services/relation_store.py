"""
Toggle and count helpers for the user-owned join tables (Follow, Like,
Bookmark).

Every table passed in here has a composite unique constraint over the key
columns used for lookups.  The check-then-act toggle is racy by nature:
two identical requests can both see "no row" and both insert.  The
constraint rejects the second insert; ``insert_row`` absorbs that
rejection inside a savepoint so the surrounding transaction stays usable
and the caller simply observes that the row exists.
"""
import logging
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _key_filter(model, keys: dict[str, Any]) -> list:
    return [getattr(model, column) == value for column, value in keys.items()]


async def find_row(db: AsyncSession, model, **keys: Any) -> int | None:
    """Return the primary key of the row matching *keys*, or None."""
    q = select(model.id).where(*_key_filter(model, keys))
    return (await db.execute(q)).scalar_one_or_none()


async def insert_row(db: AsyncSession, model, **keys: Any) -> bool:
    """
    Insert a row built from *keys*.

    Returns True when this call created the row and False when a
    concurrent writer got there first.  Integrity errors that are not a
    duplicate of *keys* (e.g. a foreign key pointing at a row deleted in
    the meantime) are re-raised.
    """
    try:
        async with db.begin_nested():
            db.add(model(**keys))
    except IntegrityError:
        if await find_row(db, model, **keys) is None:
            raise
        logger.info("Concurrent insert into %s absorbed for %s", model.__tablename__, keys)
        return False
    return True


async def delete_rows(db: AsyncSession, model, **keys: Any) -> int:
    """
    Delete rows matching *keys* and return how many were removed.

    A filtered DELETE (rather than loading and deleting an instance) keeps
    a concurrent double delete a harmless no-op.
    """
    result = await db.execute(
        delete(model).where(*_key_filter(model, keys)).execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def toggle_row(db: AsyncSession, model, **keys: Any) -> bool:
    """Invert the presence of the row matching *keys*; return True if it now exists."""
    if await find_row(db, model, **keys) is not None:
        await delete_rows(db, model, **keys)
        await db.flush()
        return False

    await insert_row(db, model, **keys)
    return True


async def count_rows(db: AsyncSession, model, **filters: Any) -> int:
    """Count rows of *model* matching *filters* directly on the join table."""
    q = select(func.count()).select_from(model).where(*_key_filter(model, filters))
    return (await db.execute(q)).scalar_one()
