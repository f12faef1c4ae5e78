"""
Tag service: read access to the tag vocabulary.

Tags are created implicitly when an article is written (see
``article_service._resolve_tags``); names are stored lowercased, so every
lookup here lowercases its input the same way.
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.errors import NotFound
from blogsocial.guards import soft_fail
from blogsocial.models import Article, Tag, article_tags

POPULAR_TAGS_LIMIT = 20


def _tag_to_dict(tag: Tag, article_count: int | None = None) -> dict:
    data = {"id": tag.id, "name": tag.name}
    if article_count is not None:
        data["article_count"] = article_count
    return data


@soft_fail(list)
async def get_all_tags(db: AsyncSession) -> list[dict]:
    """Return every tag, alphabetically."""
    tags = (await db.execute(select(Tag).order_by(Tag.name))).scalars().all()
    return [_tag_to_dict(t) for t in tags]


@soft_fail(list)
async def get_popular_tags(db: AsyncSession, limit: int = POPULAR_TAGS_LIMIT) -> list[dict]:
    """
    Return tags ranked by how many articles carry them.  Tags no article
    uses are left out.
    """
    article_count = func.count(article_tags.c.article_id).label("article_count")
    q = (
        select(Tag, article_count)
        .join(article_tags, article_tags.c.tag_id == Tag.id)
        .group_by(Tag.id)
        .order_by(article_count.desc(), Tag.name)
        .limit(limit)
    )
    return [_tag_to_dict(tag, count) for tag, count in (await db.execute(q)).all()]


@soft_fail(None)
async def get_tag(db: AsyncSession, name: str) -> dict | None:
    """Return the tag called *name* with its article count, or None."""
    tag = (
        await db.execute(select(Tag).where(Tag.name == name.strip().lower()))
    ).scalar_one_or_none()
    if tag is None:
        return None
    count_q = select(func.count()).select_from(article_tags).where(article_tags.c.tag_id == tag.id)
    return _tag_to_dict(tag, (await db.execute(count_q)).scalar_one())


async def get_article_tags(db: AsyncSession, article_id: int) -> list[dict]:
    """Return the tags attached to *article_id*, alphabetically."""
    if (await db.execute(select(Article.id).where(Article.id == article_id))).first() is None:
        raise NotFound("Article")
    q = (
        select(Tag)
        .join(article_tags, article_tags.c.tag_id == Tag.id)
        .where(article_tags.c.article_id == article_id)
        .order_by(Tag.name)
    )
    return [_tag_to_dict(t) for t in (await db.execute(q)).scalars().all()]
