"""
Comment service: threaded comments on articles.

A comment may reply to another comment on the same article through
``parent_id``.  Only the author (or a moderator / admin) may edit or
delete a comment; deleting a comment also deletes its replies.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from blogsocial.errors import Forbidden, NotFound
from blogsocial.guards import can_edit, hard_fail, require_auth, soft_fail
from blogsocial.models import Article, Comment
from blogsocial.schemas import CommentCreate, CommentUpdate
from blogsocial.services.article_service import serialize_author

logger = logging.getLogger(__name__)


def _comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "article_id": comment.article_id,
        "parent_id": comment.parent_id,
        "author": serialize_author(comment.author),
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
        "replies": [],
    }


async def _load_comment(db: AsyncSession, comment_id: int) -> Comment | None:
    q = (
        select(Comment)
        .where(Comment.id == comment_id)
        .options(joinedload(Comment.author))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one_or_none()


@hard_fail
async def add_comment(
    db: AsyncSession,
    acting_user_id: int | None,
    article_id: int,
    data: CommentCreate,
) -> dict:
    """
    Add a comment (or a reply when ``data.parent_id`` is set) to
    *article_id*.
    """
    user_id = require_auth(acting_user_id)

    article = (await db.execute(select(Article.id).where(Article.id == article_id))).first()
    if article is None:
        raise NotFound("Article")

    if data.parent_id is not None:
        parent = await db.get(Comment, data.parent_id)
        if parent is None:
            raise NotFound("Parent comment")
        if parent.article_id != article_id:
            raise Forbidden("Parent comment must belong to the same article")

    comment = Comment(
        content=data.content,
        article_id=article_id,
        user_id=user_id,
        parent_id=data.parent_id,
    )
    db.add(comment)
    await db.flush()
    return _comment_to_dict(await _load_comment(db, comment.id))


async def _editable_comment(db: AsyncSession, acting_user_id: int | None, comment_id: int) -> Comment:
    user_id = require_auth(acting_user_id)
    comment = await _load_comment(db, comment_id)
    if comment is None:
        raise NotFound("Comment")
    if not await can_edit(db, user_id, comment.user_id):
        raise Forbidden("You don't have permission to modify this comment")
    return comment


@hard_fail
async def update_comment(
    db: AsyncSession, acting_user_id: int | None, comment_id: int, data: CommentUpdate
) -> dict:
    comment = await _editable_comment(db, acting_user_id, comment_id)
    comment.content = data.content
    await db.flush()
    return _comment_to_dict(comment)


@hard_fail
async def delete_comment(db: AsyncSession, acting_user_id: int | None, comment_id: int) -> None:
    comment = await _editable_comment(db, acting_user_id, comment_id)

    # Collect the whole reply subtree, then delete it in one statement.
    doomed = [comment.id]
    frontier = [comment.id]
    while frontier:
        q = select(Comment.id).where(Comment.parent_id.in_(frontier))
        frontier = list((await db.execute(q)).scalars().all())
        doomed.extend(frontier)

    await db.execute(delete(Comment).where(Comment.id.in_(doomed)))
    await db.flush()
    logger.info("Deleted comment %s and %d repl(ies)", comment_id, len(doomed) - 1)


@soft_fail(list)
async def get_article_comments(db: AsyncSession, article_id: int) -> list[dict]:
    """
    Return the article's comments as a tree of top-level comments with
    nested ``replies``, each level ordered oldest first.
    """
    q = (
        select(Comment)
        .where(Comment.article_id == article_id)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    comments = (await db.execute(q)).unique().scalars().all()

    nodes = {c.id: _comment_to_dict(c) for c in comments}
    roots: list[dict] = []
    for comment in comments:
        node = nodes[comment.id]
        parent = nodes.get(comment.parent_id) if comment.parent_id else None
        if parent is not None:
            parent["replies"].append(node)
        else:
            roots.append(node)
    return roots
