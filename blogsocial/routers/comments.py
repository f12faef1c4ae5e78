from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.database import get_db
from blogsocial.dependencies import get_current_user_id
from blogsocial.schemas import CommentUpdate
from blogsocial.services import comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])


@router.put("/{comment_id}")
async def update_comment(
    comment_id: int,
    data: CommentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await comment_service.update_comment(db, current_user_id, comment_id, data)


@router.delete("/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    await comment_service.delete_comment(db, current_user_id, comment_id)
