"""
Guard helpers shared by the service layer.

Two failure modes are used throughout the services:

- ``hard_fail`` wraps mutations.  Domain errors (``Unauthorized``,
  ``Forbidden``, ``NotFound``, ``ValidationError``) propagate untouched so
  the router can map them to 401/403/404/400; a lost database connection is
  re-raised as ``StoreUnavailable`` (503).
- ``soft_fail`` wraps reads that feed optional UI affordances (follow
  button state, counters, follower lists).  The listed error classes and,
  by default, any "database unreachable" condition are logged and replaced
  by a safe default value.

"Record not found" and "validation failed" are never classified as store
unavailability; they only degrade when a wrapper lists them explicitly.
"""
import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.errors import AppError, Forbidden, StoreUnavailable, Unauthorized
from blogsocial.models import MODERATION_ROLES, User

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Any failure raised while talking to the store.
STORE_ERRORS: tuple[type[BaseException], ...] = (SQLAlchemyError, OSError, TimeoutError)


def is_store_unavailable(exc: BaseException) -> bool:
    """
    Return True when *exc* means the database could not be reached.

    Covers SQLAlchemy's connectivity classes, driver errors that invalidated
    the pooled connection, and raw socket / timeout errors raised while the
    driver was connecting.
    """
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (OSError, TimeoutError))


def require_auth(user_id: int | None) -> int:
    """Return *user_id*, or raise ``Unauthorized`` for an anonymous caller."""
    if user_id is None:
        raise Unauthorized()
    return user_id


async def _is_moderator(db: AsyncSession, user_id: int) -> bool:
    role = (await db.execute(select(User.role).where(User.id == user_id))).scalar_one_or_none()
    return role in MODERATION_ROLES


async def can_edit(db: AsyncSession, user_id: int, owner_id: int) -> bool:
    """Owners may edit their own content; moderators and admins may edit anything."""
    if user_id == owner_id:
        return True
    return await _is_moderator(db, user_id)


async def require_moderator(db: AsyncSession, user_id: int | None) -> int:
    """Return *user_id* if it has a moderation role, else raise 401 / 403."""
    user_id = require_auth(user_id)
    if not await _is_moderator(db, user_id):
        raise Forbidden("Moderator access required")
    return user_id


def hard_fail(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except AppError:
            raise
        except Exception as exc:
            if is_store_unavailable(exc):
                logger.error("%s failed, database unreachable: %s", func.__qualname__, exc)
                raise StoreUnavailable() from exc
            raise

    return wrapper


def soft_fail(
    default: Any,
    *catch: type[BaseException],
    store_unavailable: bool = True,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """
    Degrade a read to *default* instead of raising.

    *catch* lists the exception classes to absorb in addition to the
    "database unreachable" condition (disable that with
    ``store_unavailable=False``).  When *default* is callable it is called
    per failure, so ``soft_fail(list)`` yields a fresh empty list.
    """

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except Exception as exc:
                if isinstance(exc, AppError) and isinstance(exc, catch):
                    logger.debug("%s degraded: %s", func.__qualname__, exc)
                elif isinstance(exc, catch) or (store_unavailable and is_store_unavailable(exc)):
                    logger.warning("%s degraded after store error: %s", func.__qualname__, exc)
                else:
                    raise
                return default() if callable(default) else default

        return wrapper

    return decorator
