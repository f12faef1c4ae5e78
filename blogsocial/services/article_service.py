"""
Article service: business logic for the Article aggregate.

Design notes
------------
- The published-article list goes through the cache-aside pattern (Redis →
  fallback to DB).  Cache keys encode every dimension that affects the
  result.  Engagement numbers in list previews are best-effort: a cached
  page may show a like count up to ``CACHE_TTL_LIST`` seconds old.
  Profile pages never read from here (see ``profile_service``).
- Eager loading via ``joinedload`` (many-to-one: author) and
  ``selectinload`` (many-to-many: tags) avoids N+1 queries; comment and
  like counts for a page are fetched with one grouped query per table.
- Writes require an authenticated principal.  Only the author (or a
  moderator / admin) may update or delete an article.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
import math
import re
import time
from datetime import datetime, timezone

from sqlalchemy import asc, delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from blogsocial.cache import cache
from blogsocial.config import settings
from blogsocial.errors import Forbidden, NotFound, ValidationError
from blogsocial.guards import can_edit, hard_fail, require_auth, soft_fail
from blogsocial.models import Article, Bookmark, Comment, Like, Report, Tag, article_tags
from blogsocial.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

# Columns that are safe to sort by; guards against arbitrary attribute access.
_SORTABLE_COLUMNS: frozenset[str] = frozenset(
    {"created_at", "published_at", "view_count", "title"}
)

_SEARCH_ORDERINGS = {
    "newest": (desc(Article.created_at), desc(Article.id)),
    "oldest": (asc(Article.created_at), asc(Article.id)),
    "popular": (desc(Article.view_count), desc(Article.created_at)),
}


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _resolve_sort_column(sort_by: str):
    """
    Return the SQLAlchemy column expression for *sort_by*, falling back
    to ``Article.created_at`` for any unrecognised column name.
    """
    if sort_by in _SORTABLE_COLUMNS:
        return getattr(Article, sort_by)
    return Article.created_at


async def _unique_slug(db: AsyncSession, title: str, exclude_id: int | None = None) -> str:
    slug = slugify(title)
    if not slug:
        raise ValidationError("Title must contain at least one letter or digit")
    q = select(Article.id).where(Article.slug == slug)
    if exclude_id is not None:
        q = q.where(Article.id != exclude_id)
    if (await db.execute(q)).first() is not None:
        slug = f"{slug}-{int(time.time() * 1000)}"
    return slug


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def serialize_author(author) -> dict | None:
    if author is None:
        return None
    return {
        "id": author.id,
        "username": author.username,
        "display_name": author.display_name,
        "avatar_url": author.avatar_url,
    }


def _article_to_dict(article: Article) -> dict:
    """Serialise an Article ORM instance to a plain dict (list view)."""
    return {
        "id": article.id,
        "title": article.title,
        "slug": article.slug,
        "summary": article.summary,
        "view_count": article.view_count,
        "is_published": article.is_published,
        "published_at": article.published_at.isoformat() if article.published_at else None,
        "created_at": article.created_at.isoformat() if article.created_at else None,
        "user_id": article.user_id,
        "author": serialize_author(article.author),
        "tags": [{"id": t.id, "name": t.name} for t in article.tags],
    }


async def grouped_counts(db: AsyncSession, model, article_ids: list[int]) -> dict[int, int]:
    if not article_ids:
        return {}
    q = (
        select(model.article_id, func.count())
        .where(model.article_id.in_(article_ids))
        .group_by(model.article_id)
    )
    return {article_id: count for article_id, count in (await db.execute(q)).all()}


async def article_previews(db: AsyncSession, articles: list[Article]) -> list[dict]:
    """
    Serialise *articles* for list views, attaching ``comment_count`` and
    ``like_count`` with one grouped query per table.
    """
    ids = [a.id for a in articles]
    comments = await grouped_counts(db, Comment, ids)
    likes = await grouped_counts(db, Like, ids)
    items = []
    for article in articles:
        data = _article_to_dict(article)
        data["comment_count"] = comments.get(article.id, 0)
        data["like_count"] = likes.get(article.id, 0)
        items.append(data)
    return items


# ---------------------------------------------------------------------------
# Tag resolution helper (used by create / update)
# ---------------------------------------------------------------------------

async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each name in *tag_names*, creating any
    that do not yet exist.  Names are normalised to lowercase and
    de-duplicated.
    """
    tags: list[Tag] = []
    seen: set[str] = set()
    for raw in tag_names:
        name = raw.strip().lower()
        if not name or name in seen:
            continue
        seen.add(name)
        tag = (await db.execute(select(Tag).where(Tag.name == name))).scalar_one_or_none()
        if not tag:
            tag = Tag(name=name)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


async def _load_article(db: AsyncSession, article_id: int) -> Article | None:
    return await _load_article_where(db, Article.id == article_id)


async def _load_article_where(db: AsyncSession, condition) -> Article | None:
    q = (
        select(Article)
        .where(condition)
        .options(joinedload(Article.author), selectinload(Article.tags))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one_or_none()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_articles(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> PaginatedResponse:
    """
    Return a paginated list of published articles, using Redis as a
    cache layer.
    """
    cache_key = f"articles:list:{page}:{page_size}:{sort_by}:{sort_order}"
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    count_q = (
        select(func.count())
        .select_from(Article)
        .where(Article.is_published.is_(True))
    )
    total: int = (await db.execute(count_q)).scalar_one()

    sort_col = _resolve_sort_column(sort_by)
    order_expr = desc(sort_col) if sort_order == "desc" else asc(sort_col)

    articles_q = (
        select(Article)
        .where(Article.is_published.is_(True))
        .options(joinedload(Article.author), selectinload(Article.tags))
        .execution_options(populate_existing=True)
        .order_by(order_expr, Article.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    articles = (await db.execute(articles_q)).unique().scalars().all()

    response = PaginatedResponse(
        items=await article_previews(db, list(articles)),
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def get_article(
    db: AsyncSession, article_id: int, viewer_id: int | None = None
) -> dict | None:
    """
    Return the full detail dict for *article_id*, incrementing the view
    counter on each hit.

    Drafts are only visible to their author.  Returns None when the
    article does not exist or is not visible to *viewer_id*.
    """
    return await _view_article(db, await _load_article(db, article_id), viewer_id)


async def get_article_by_slug(
    db: AsyncSession, slug: str, viewer_id: int | None = None
) -> dict | None:
    """Same as ``get_article``, addressed by the article's slug."""
    return await _view_article(
        db, await _load_article_where(db, Article.slug == slug), viewer_id
    )


async def _view_article(db: AsyncSession, article: Article | None, viewer_id: int | None) -> dict | None:
    if article is None:
        return None
    if not article.is_published and article.user_id != viewer_id:
        return None

    article.view_count += 1
    await db.flush()

    data = (await article_previews(db, [article]))[0]
    data["content"] = article.content
    return data


@soft_fail(list)
async def get_user_articles(
    db: AsyncSession, user_id: int, include_drafts: bool = False
) -> list[dict]:
    """Return *user_id*'s articles, newest first; drafts only on request."""
    q = (
        select(Article)
        .where(Article.user_id == user_id)
        .options(joinedload(Article.author), selectinload(Article.tags))
        .execution_options(populate_existing=True)
        .order_by(Article.created_at.desc(), Article.id.desc())
    )
    if not include_drafts:
        q = q.where(Article.is_published.is_(True))
    articles = (await db.execute(q)).unique().scalars().all()
    return await article_previews(db, list(articles))


def _empty_search_page() -> PaginatedResponse:
    return PaginatedResponse(items=[], total=0, page=1, page_size=0, pages=0)


@soft_fail(_empty_search_page)
async def search_articles(
    db: AsyncSession,
    query: str | None = None,
    tag: str | None = None,
    sort: str = "newest",
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResponse:
    """
    Case-insensitive search over published articles' title, summary and
    content, optionally restricted to one tag.

    *sort* is one of ``newest``, ``oldest`` or ``popular`` (by views);
    anything else falls back to ``newest``.
    """
    conditions = [Article.is_published.is_(True)]
    if query and query.strip():
        pattern = f"%{query.strip()}%"
        conditions.append(
            or_(
                Article.title.ilike(pattern),
                Article.summary.ilike(pattern),
                Article.content.ilike(pattern),
            )
        )
    if tag:
        tagged = (
            select(article_tags.c.article_id)
            .join(Tag, Tag.id == article_tags.c.tag_id)
            .where(Tag.name == tag.strip().lower())
        )
        conditions.append(Article.id.in_(tagged))

    total: int = (
        await db.execute(select(func.count()).select_from(Article).where(*conditions))
    ).scalar_one()

    q = (
        select(Article)
        .where(*conditions)
        .options(joinedload(Article.author), selectinload(Article.tags))
        .execution_options(populate_existing=True)
        .order_by(*_SEARCH_ORDERINGS.get(sort, _SEARCH_ORDERINGS["newest"]))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    articles = (await db.execute(q)).unique().scalars().all()
    return PaginatedResponse(
        items=await article_previews(db, list(articles)),
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@hard_fail
async def create_article(db: AsyncSession, acting_user_id: int | None, data: ArticleCreate) -> dict:
    """Create a new article authored by the caller and return its detail dict."""
    user_id = require_auth(acting_user_id)

    article = Article(
        title=data.title,
        slug=await _unique_slug(db, data.title),
        content=data.content,
        summary=data.summary,
        is_published=data.is_published,
        user_id=user_id,
    )
    if data.is_published:
        article.published_at = datetime.now(timezone.utc)
    if data.tags:
        article.tags.extend(await _resolve_tags(db, data.tags))

    db.add(article)
    await db.flush()
    await cache.invalidate_article_lists()
    logger.info("User %s created article %s (%s)", user_id, article.id, article.slug)

    created = await _load_article(db, article.id)
    result = _article_to_dict(created)
    result.update(content=created.content, comment_count=0, like_count=0)
    return result


async def _editable_article(db: AsyncSession, acting_user_id: int | None, article_id: int) -> Article:
    user_id = require_auth(acting_user_id)
    article = await _load_article(db, article_id)
    if article is None:
        raise NotFound("Article")
    if not await can_edit(db, user_id, article.user_id):
        raise Forbidden("You don't have permission to modify this article")
    return article


@hard_fail
async def update_article(
    db: AsyncSession, acting_user_id: int | None, article_id: int, data: ArticleUpdate
) -> dict:
    """
    Partially update an article.  Only fields explicitly set in the
    payload are modified; a new title regenerates the slug.
    """
    article = await _editable_article(db, acting_user_id, article_id)

    update_data = data.model_dump(exclude_unset=True)
    tags_data: list[str] | None = update_data.pop("tags", None)

    for field, value in update_data.items():
        setattr(article, field, value)

    if "title" in update_data:
        article.slug = await _unique_slug(db, update_data["title"], exclude_id=article.id)

    # Set published_at the first time the article is published.
    if data.is_published and not article.published_at:
        article.published_at = datetime.now(timezone.utc)

    if tags_data is not None:
        article.tags.clear()
        article.tags.extend(await _resolve_tags(db, tags_data))

    await db.flush()
    await cache.invalidate_article_lists()

    data_out = (await article_previews(db, [article]))[0]
    data_out["content"] = article.content
    return data_out


@hard_fail
async def delete_article(db: AsyncSession, acting_user_id: int | None, article_id: int) -> None:
    """
    Delete an article together with its tag links, comments, likes,
    bookmarks and reports.  Dependent rows are removed explicitly so the
    result does not depend on the backend enforcing ON DELETE CASCADE.
    """
    article = await _editable_article(db, acting_user_id, article_id)

    await db.execute(delete(article_tags).where(article_tags.c.article_id == article.id))
    await db.execute(delete(Like).where(Like.article_id == article.id))
    await db.execute(delete(Bookmark).where(Bookmark.article_id == article.id))
    await db.execute(delete(Comment).where(Comment.article_id == article.id))
    await db.execute(delete(Report).where(Report.article_id == article.id))
    await db.execute(delete(Article).where(Article.id == article.id))
    await db.flush()
    await cache.invalidate_article_lists()
    logger.info("Article %s deleted by user %s", article_id, acting_user_id)
