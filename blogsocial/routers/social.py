from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.database import get_db
from blogsocial.dependencies import get_current_user_id
from blogsocial.errors import ValidationError
from blogsocial.schemas import (
    ArticleRef,
    BookmarkToggleResponse,
    FollowToggleRequest,
    FollowToggleResponse,
    LikeToggleResponse,
)
from blogsocial.services import follow_service, interaction_service

router = APIRouter(prefix="/api/v1", tags=["social"])


# --- Follows ---

@router.post("/follows", response_model=FollowToggleResponse)
async def toggle_follow(
    data: FollowToggleRequest,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await follow_service.toggle_follow(db, current_user_id, data.user_id)


@router.get("/follows")
async def follow_state(
    user_id: int,
    action: str = Query("check"),
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    if action == "check":
        return {"following": await follow_service.is_following(db, current_user_id, user_id)}
    if action == "count":
        return {
            "follower_count": await follow_service.get_follower_count(db, user_id),
            "following_count": await follow_service.get_following_count(db, user_id),
        }
    raise ValidationError("action must be 'check' or 'count'")


# --- Likes ---

@router.post("/likes", response_model=LikeToggleResponse)
async def toggle_like(
    data: ArticleRef,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await interaction_service.toggle_like(db, current_user_id, data.article_id)


@router.get("/likes")
async def likes(
    article_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    if article_id is None:
        return {"article_ids": await interaction_service.get_liked_article_ids(db, current_user_id)}
    return {
        "liked": await interaction_service.has_liked(db, current_user_id, article_id),
        "count": await interaction_service.get_like_count(db, article_id),
    }


# --- Bookmarks ---

@router.post("/bookmarks", response_model=BookmarkToggleResponse)
async def toggle_bookmark(
    data: ArticleRef,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await interaction_service.toggle_bookmark(db, current_user_id, data.article_id)


@router.get("/bookmarks")
async def bookmarks(
    article_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    if article_id is None:
        return await interaction_service.get_bookmarked_articles(db, current_user_id)
    return {
        "bookmarked": await interaction_service.has_bookmarked(db, current_user_id, article_id),
        "count": await interaction_service.get_bookmark_count(db, article_id),
    }
