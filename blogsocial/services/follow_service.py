"""
Follow service: the directed follow relation between users.

Design notes
------------
- ``toggle_follow`` is the only mutation.  It is a check-then-act toggle
  over the ``follows`` table; the unique constraint on
  ``(follower_id, following_id)`` settles concurrent duplicates (see
  ``relation_store``).
- Follower / following counts are always counted on the ``follows``
  table at read time.  There is no counter column to drift.
- Every read here is display-only and wrapped in ``soft_fail``: a
  logged-out viewer or an unreachable database yields ``False``, ``0`` or
  ``[]`` instead of an error page.
"""
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.config import settings
from blogsocial.errors import AppError, Forbidden, NotFound
from blogsocial.guards import STORE_ERRORS, hard_fail, require_auth, soft_fail
from blogsocial.models import Follow, User
from blogsocial.services import relation_store


def _peer_to_dict(user: User, followed_at: datetime | None, is_following: bool) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
        "bio": user.bio,
        "is_following": is_following,
        "followed_at": followed_at.isoformat() if followed_at else None,
    }


async def _count_for(db: AsyncSession, user_id: int) -> tuple[int, int]:
    followers = await relation_store.count_rows(db, Follow, following_id=user_id)
    following = await relation_store.count_rows(db, Follow, follower_id=user_id)
    return followers, following


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@hard_fail
async def toggle_follow(
    db: AsyncSession, acting_user_id: int | None, target_user_id: int
) -> dict:
    """
    Follow *target_user_id* if the caller does not follow them yet,
    otherwise unfollow.

    Both returned counts describe the target user: how many accounts now
    follow them, and how many accounts they follow.
    """
    follower_id = require_auth(acting_user_id)
    if follower_id == target_user_id:
        raise Forbidden("You cannot follow yourself")

    target = await db.get(User, target_user_id)
    if target is None:
        raise NotFound("User")

    following = await relation_store.toggle_row(
        db, Follow, follower_id=follower_id, following_id=target_user_id
    )
    follower_count, following_count = await _count_for(db, target_user_id)
    return {
        "following": following,
        "follower_count": follower_count,
        "following_count": following_count,
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@soft_fail(False, AppError, *STORE_ERRORS)
async def is_following(
    db: AsyncSession, acting_user_id: int | None, target_user_id: int
) -> bool:
    follower_id = require_auth(acting_user_id)
    row = await relation_store.find_row(
        db, Follow, follower_id=follower_id, following_id=target_user_id
    )
    return row is not None


@soft_fail(0, *STORE_ERRORS)
async def get_follower_count(db: AsyncSession, user_id: int) -> int:
    return await relation_store.count_rows(db, Follow, following_id=user_id)


@soft_fail(0, *STORE_ERRORS)
async def get_following_count(db: AsyncSession, user_id: int) -> int:
    return await relation_store.count_rows(db, Follow, follower_id=user_id)


async def _viewer_follows(
    db: AsyncSession, viewer_id: int | None, peer_ids: list[int]
) -> set[int]:
    """Return the subset of *peer_ids* followed by *viewer_id*, in one query."""
    if viewer_id is None or not peer_ids:
        return set()
    q = select(Follow.following_id).where(
        Follow.follower_id == viewer_id, Follow.following_id.in_(peer_ids)
    )
    return set((await db.execute(q)).scalars().all())


async def _list_peers(
    db: AsyncSession,
    user_id: int,
    limit: int | None,
    viewer_id: int | None,
    *,
    peer_column,
    owner_column,
) -> list[dict]:
    q = (
        select(User, Follow.created_at)
        .join(Follow, User.id == peer_column)
        .where(owner_column == user_id)
        .order_by(Follow.created_at.desc(), Follow.id.desc())
        .limit(settings.FOLLOW_LIST_LIMIT if limit is None else limit)
    )
    rows = (await db.execute(q)).all()
    followed = await _viewer_follows(db, viewer_id, [user.id for user, _ in rows])
    return [_peer_to_dict(user, created_at, user.id in followed) for user, created_at in rows]


@soft_fail(list, *STORE_ERRORS)
async def list_followers(
    db: AsyncSession,
    user_id: int,
    limit: int | None = None,
    viewer_id: int | None = None,
) -> list[dict]:
    """
    Return the accounts following *user_id*, most recent first.

    ``is_following`` on each entry is from the *viewer's* perspective
    (does the viewer follow that account), not *user_id*'s.
    """
    return await _list_peers(
        db, user_id, limit, viewer_id,
        peer_column=Follow.follower_id, owner_column=Follow.following_id,
    )


@soft_fail(list, *STORE_ERRORS)
async def list_following(
    db: AsyncSession,
    user_id: int,
    limit: int | None = None,
    viewer_id: int | None = None,
) -> list[dict]:
    """Return the accounts *user_id* follows, most recent first."""
    return await _list_peers(
        db, user_id, limit, viewer_id,
        peer_column=Follow.following_id, owner_column=Follow.follower_id,
    )
