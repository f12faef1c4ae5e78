"""
Report service: readers flag articles for moderation.

Any signed-in user may report an article with a short reason.  Moderators
and admins review the open queue and resolve reports; resolving only
stamps ``resolved_at``, the article itself is left to the normal edit /
delete paths.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from blogsocial.errors import NotFound, ValidationError
from blogsocial.guards import hard_fail, require_auth, require_moderator
from blogsocial.models import Article, Report
from blogsocial.services.article_service import serialize_author

logger = logging.getLogger(__name__)


def _report_to_dict(report: Report) -> dict:
    return {
        "id": report.id,
        "article_id": report.article_id,
        "reporter_id": report.reporter_id,
        "reason": report.reason,
        "created_at": report.created_at.isoformat() if report.created_at else None,
        "resolved_at": report.resolved_at.isoformat() if report.resolved_at else None,
        "reporter": serialize_author(report.reporter),
    }


@hard_fail
async def report_article(
    db: AsyncSession, acting_user_id: int | None, article_id: int, reason: str
) -> dict:
    """File a report against *article_id* on behalf of the caller."""
    user_id = require_auth(acting_user_id)
    reason = reason.strip()
    if not reason:
        raise ValidationError("A reason is required")

    if (await db.execute(select(Article.id).where(Article.id == article_id))).first() is None:
        raise NotFound("Article")

    report = Report(article_id=article_id, reporter_id=user_id, reason=reason)
    db.add(report)
    await db.flush()
    await db.refresh(report)
    logger.info("User %s reported article %s", user_id, article_id)
    return _report_to_dict(report)


@hard_fail
async def list_reports(
    db: AsyncSession, acting_user_id: int | None, include_resolved: bool = False
) -> list[dict]:
    """Return the moderation queue, newest first.  Moderators only."""
    await require_moderator(db, acting_user_id)

    q = (
        select(Report)
        .options(joinedload(Report.reporter))
        .order_by(Report.created_at.desc(), Report.id.desc())
        .execution_options(populate_existing=True)
    )
    if not include_resolved:
        q = q.where(Report.resolved_at.is_(None))
    return [_report_to_dict(r) for r in (await db.execute(q)).unique().scalars().all()]


@hard_fail
async def resolve_report(db: AsyncSession, acting_user_id: int | None, report_id: int) -> dict:
    user_id = await require_moderator(db, acting_user_id)

    report = await db.get(Report, report_id)
    if report is None:
        raise NotFound("Report")
    if report.resolved_at is None:
        report.resolved_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("Report %s resolved by user %s", report_id, user_id)
    return _report_to_dict(report)
