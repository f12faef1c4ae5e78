from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.database import get_db
from blogsocial.dependencies import PaginationParams, get_current_user_id
from blogsocial.errors import NotFound
from blogsocial.schemas import ArticleCreate, ArticleUpdate, CommentCreate, PaginatedResponse
from blogsocial.services import article_service, comment_service, tag_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])


@router.get("", response_model=PaginatedResponse)
async def list_articles(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(
        db, pagination.page, pagination.page_size, pagination.sort_by, pagination.sort_order
    )


@router.get("/search", response_model=PaginatedResponse)
async def search_articles(
    q: str | None = None,
    tag: str | None = None,
    sort: str = Query("newest", pattern="^(newest|oldest|popular)$"),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.search_articles(
        db, q, tag, sort, pagination.page, pagination.page_size
    )


@router.get("/by-slug/{slug}")
async def get_article_by_slug(
    slug: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    article = await article_service.get_article_by_slug(db, slug, viewer_id=current_user_id)
    if not article:
        raise NotFound("Article")
    return article


@router.get("/{article_id}")
async def get_article(
    article_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    article = await article_service.get_article(db, article_id, viewer_id=current_user_id)
    if not article:
        raise NotFound("Article")
    return article


@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await article_service.create_article(db, current_user_id, data)


@router.put("/{article_id}")
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await article_service.update_article(db, current_user_id, article_id, data)


@router.delete("/{article_id}", status_code=204)
async def delete_article(
    article_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    await article_service.delete_article(db, current_user_id, article_id)


@router.get("/{article_id}/tags")
async def list_article_tags(article_id: int, db: AsyncSession = Depends(get_db)):
    return await tag_service.get_article_tags(db, article_id)


@router.get("/{article_id}/comments")
async def list_comments(article_id: int, db: AsyncSession = Depends(get_db)):
    return await comment_service.get_article_comments(db, article_id)


@router.post("/{article_id}/comments", status_code=201)
async def add_comment(
    article_id: int,
    data: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await comment_service.add_comment(db, current_user_id, article_id, data)
