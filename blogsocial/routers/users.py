from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.config import settings
from blogsocial.database import get_db
from blogsocial.dependencies import get_current_user_id
from blogsocial.errors import NotFound
from blogsocial.schemas import PeerSummary, ProfileResponse, ProfileUpdate, UserCreate, UserResponse
from blogsocial.services import article_service, follow_service, profile_service, user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


async def _user_id_or_404(db: AsyncSession, username: str) -> int:
    user = await profile_service.find_user(db, username)
    if user is None:
        raise NotFound("User")
    return user.id


@router.get("", response_model=list[UserResponse])
async def list_users(db: AsyncSession = Depends(get_db)):
    return await user_service.get_users(db)


@router.post("", status_code=201, response_model=UserResponse)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await user_service.create_user(db, data)
    except IntegrityError:
        raise HTTPException(
            status_code=409,
            detail="A user with this username or email already exists",
        )


@router.get("/popular")
async def popular_authors(
    limit: int = Query(settings.POPULAR_AUTHORS_LIMIT, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    return await profile_service.get_popular_authors(db, limit)


@router.patch("/me", response_model=ProfileResponse)
async def update_me(
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await user_service.update_profile(db, current_user_id, data)


@router.get("/{username}", response_model=ProfileResponse)
async def get_profile(username: str, db: AsyncSession = Depends(get_db)):
    profile = await profile_service.get_user_profile(db, username)
    if profile is None:
        raise NotFound("User")
    return profile


@router.get("/{username}/articles")
async def user_articles(
    username: str,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    user_id = await _user_id_or_404(db, username)
    return await article_service.get_user_articles(
        db, user_id, include_drafts=current_user_id == user_id
    )


@router.get("/{username}/followers", response_model=list[PeerSummary])
async def followers(
    username: str,
    limit: int = Query(settings.FOLLOW_LIST_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    user_id = await _user_id_or_404(db, username)
    return await follow_service.list_followers(db, user_id, limit, viewer_id=current_user_id)


@router.get("/{username}/following", response_model=list[PeerSummary])
async def following(
    username: str,
    limit: int = Query(settings.FOLLOW_LIST_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    user_id = await _user_id_or_404(db, username)
    return await follow_service.list_following(db, user_id, limit, viewer_id=current_user_id)
