from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.database import get_db
from blogsocial.dependencies import get_current_user_id
from blogsocial.schemas import ReportCreate
from blogsocial.services import report_service

router = APIRouter(prefix="/api/v1", tags=["reports"])


@router.post("/articles/{article_id}/reports", status_code=201)
async def report_article(
    article_id: int,
    data: ReportCreate,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await report_service.report_article(db, current_user_id, article_id, data.reason)


@router.get("/reports")
async def list_reports(
    include_resolved: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await report_service.list_reports(db, current_user_id, include_resolved)


@router.post("/reports/{report_id}/resolve")
async def resolve_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    current_user_id: int | None = Depends(get_current_user_id),
):
    return await report_service.resolve_report(db, current_user_id, report_id)
