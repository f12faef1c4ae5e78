"""
Profile service: the public counters panel for a user.

Every number shown on a profile is counted on its authoritative table
when the profile is read.  Engagement *received* (comments and likes on
articles the user wrote) is summed per authored article from the
``comments`` and ``likes`` tables; followers and following are counted on
``follows`` in both directions.

An unreachable database degrades the profile to None (rendered as "not
found") instead of an error page; any other failure propagates.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.config import settings
from blogsocial.guards import soft_fail
from blogsocial.models import Article, Bookmark, Comment, Follow, Like, User
from blogsocial.services import relation_store
from blogsocial.services.article_service import grouped_counts


async def find_user(db: AsyncSession, username_or_id: int | str) -> User | None:
    """Look a user up by primary key (``int``) or by username (``str``)."""
    if isinstance(username_or_id, int):
        q = select(User).where(User.id == username_or_id)
    else:
        q = select(User).where(User.username == username_or_id)
    return (await db.execute(q)).scalar_one_or_none()


async def _engagement_received(db: AsyncSession, user_id: int) -> tuple[int, int]:
    article_ids = list(
        (await db.execute(select(Article.id).where(Article.user_id == user_id))).scalars().all()
    )
    comments = await grouped_counts(db, Comment, article_ids)
    likes = await grouped_counts(db, Like, article_ids)
    return sum(comments.values()), sum(likes.values())


async def compute_counts(db: AsyncSession, user_id: int) -> dict:
    comments_received, likes_received = await _engagement_received(db, user_id)
    return {
        "articles": await relation_store.count_rows(db, Article, user_id=user_id),
        "comments": await relation_store.count_rows(db, Comment, user_id=user_id),
        "likes": await relation_store.count_rows(db, Like, user_id=user_id),
        "bookmarks": await relation_store.count_rows(db, Bookmark, user_id=user_id),
        "followers": await relation_store.count_rows(db, Follow, following_id=user_id),
        "following": await relation_store.count_rows(db, Follow, follower_id=user_id),
        "comments_received": comments_received,
        "likes_received": likes_received,
    }


@soft_fail(None)
async def get_user_profile(db: AsyncSession, username_or_id: int | str) -> dict | None:
    """Return the profile dict for a username or user id, or None."""
    user = await find_user(db, username_or_id)
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "bio": user.bio,
        "avatar_url": user.avatar_url,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "counts": await compute_counts(db, user.id),
    }


@soft_fail(list)
async def get_popular_authors(db: AsyncSession, limit: int | None = None) -> list[dict]:
    """
    Return authors with at least one published article, ranked by how
    many articles they have published.
    """
    published = func.count(Article.id).label("published_articles")
    q = (
        select(User, published)
        .join(Article, Article.user_id == User.id)
        .where(Article.is_published.is_(True))
        .group_by(User.id)
        .order_by(published.desc(), User.id)
        .limit(settings.POPULAR_AUTHORS_LIMIT if limit is None else limit)
    )
    rows = (await db.execute(q)).all()

    author_ids = [user.id for user, _ in rows]
    followers: dict[int, int] = {}
    if author_ids:
        follower_q = (
            select(Follow.following_id, func.count())
            .where(Follow.following_id.in_(author_ids))
            .group_by(Follow.following_id)
        )
        followers = dict((await db.execute(follower_q)).all())

    return [
        {
            "id": user.id,
            "username": user.username,
            "display_name": user.display_name,
            "avatar_url": user.avatar_url,
            "bio": user.bio,
            "published_articles": count,
            "followers": followers.get(user.id, 0),
        }
        for user, count in rows
    ]
