from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.database import get_db
from blogsocial.errors import NotFound
from blogsocial.services import tag_service

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])


@router.get("")
async def list_tags(
    name: str | None = None,
    popular: bool = False,
    limit: int = Query(tag_service.POPULAR_TAGS_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    if name:
        tag = await tag_service.get_tag(db, name)
        if tag is None:
            raise NotFound("Tag")
        return tag
    if popular:
        return await tag_service.get_popular_tags(db, limit)
    return await tag_service.get_all_tags(db)
