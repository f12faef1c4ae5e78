"""
Interaction service: likes and bookmarks on articles.

Likes and bookmarks are the same state machine over User x Article,
differing only in the join table.  Unlike follows, acting on your own
article is allowed.

``get_like_count`` / ``get_bookmark_count`` are public queries and let
store errors propagate; the per-viewer ``has_*`` checks degrade to False.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from blogsocial.errors import NotFound, Unauthorized
from blogsocial.guards import STORE_ERRORS, hard_fail, require_auth, soft_fail
from blogsocial.models import Article, Bookmark, Like
from blogsocial.services import relation_store
from blogsocial.services.article_service import article_previews


async def _require_article(db: AsyncSession, article_id: int) -> None:
    q = select(Article.id).where(Article.id == article_id)
    if (await db.execute(q)).scalar_one_or_none() is None:
        raise NotFound("Article")


async def _toggle_interaction(
    db: AsyncSession, model, acting_user_id: int | None, article_id: int
) -> bool:
    user_id = require_auth(acting_user_id)
    await _require_article(db, article_id)
    return await relation_store.toggle_row(db, model, user_id=user_id, article_id=article_id)


async def _has_interaction(
    db: AsyncSession, model, acting_user_id: int | None, article_id: int
) -> bool:
    user_id = require_auth(acting_user_id)
    row = await relation_store.find_row(db, model, user_id=user_id, article_id=article_id)
    return row is not None


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------

@hard_fail
async def toggle_like(db: AsyncSession, acting_user_id: int | None, article_id: int) -> dict:
    liked = await _toggle_interaction(db, Like, acting_user_id, article_id)
    like_count = await relation_store.count_rows(db, Like, article_id=article_id)
    return {"liked": liked, "like_count": like_count}


@soft_fail(False, Unauthorized, *STORE_ERRORS)
async def has_liked(db: AsyncSession, acting_user_id: int | None, article_id: int) -> bool:
    return await _has_interaction(db, Like, acting_user_id, article_id)


async def get_like_count(db: AsyncSession, article_id: int) -> int:
    return await relation_store.count_rows(db, Like, article_id=article_id)


@soft_fail(list, Unauthorized)
async def get_liked_article_ids(db: AsyncSession, acting_user_id: int | None) -> list[int]:
    """Return the ids of the articles the caller liked, most recent first."""
    user_id = require_auth(acting_user_id)
    q = (
        select(Like.article_id)
        .where(Like.user_id == user_id)
        .order_by(Like.created_at.desc(), Like.id.desc())
    )
    return list((await db.execute(q)).scalars().all())


# ---------------------------------------------------------------------------
# Bookmarks
# ---------------------------------------------------------------------------

@hard_fail
async def toggle_bookmark(db: AsyncSession, acting_user_id: int | None, article_id: int) -> dict:
    bookmarked = await _toggle_interaction(db, Bookmark, acting_user_id, article_id)
    return {"bookmarked": bookmarked}


@soft_fail(False, Unauthorized, *STORE_ERRORS)
async def has_bookmarked(db: AsyncSession, acting_user_id: int | None, article_id: int) -> bool:
    return await _has_interaction(db, Bookmark, acting_user_id, article_id)


async def get_bookmark_count(db: AsyncSession, article_id: int) -> int:
    return await relation_store.count_rows(db, Bookmark, article_id=article_id)


@soft_fail(list, Unauthorized)
async def get_bookmarked_articles(db: AsyncSession, acting_user_id: int | None) -> list[dict]:
    """
    Return the caller's bookmarked articles, most recently bookmarked first.

    Anonymous callers and an unreachable database both get an empty list.
    """
    user_id = require_auth(acting_user_id)
    q = (
        select(Bookmark)
        .where(Bookmark.user_id == user_id)
        .options(
            joinedload(Bookmark.article).joinedload(Article.author),
            joinedload(Bookmark.article).selectinload(Article.tags),
        )
        .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
        .execution_options(populate_existing=True)
    )
    bookmarks = (await db.execute(q)).unique().scalars().all()
    return await article_previews(db, [b.article for b in bookmarks])
