"""
User service: registration and self-service profile edits.

Username and email uniqueness is enforced at the database level; the
router translates the resulting ``IntegrityError`` into a 409.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.errors import NotFound
from blogsocial.guards import hard_fail, require_auth
from blogsocial.models import User
from blogsocial.schemas import ProfileUpdate, UserCreate
from blogsocial.services import profile_service


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "bio": user.bio,
        "avatar_url": user.avatar_url,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def get_users(db: AsyncSession) -> list[dict]:
    """Return all users, newest first."""
    q = select(User).order_by(User.created_at.desc(), User.id.desc())
    result = await db.execute(q)
    return [_user_to_dict(u) for u in result.scalars().all()]


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    user = User(
        username=data.username,
        email=data.email,
        display_name=data.display_name,
        bio=data.bio,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return _user_to_dict(user)


@hard_fail
async def update_profile(
    db: AsyncSession, acting_user_id: int | None, data: ProfileUpdate
) -> dict:
    """Update the caller's display name, bio and avatar; return the profile."""
    user_id = require_auth(acting_user_id)
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User")

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    await db.flush()
    await db.refresh(user)

    return await profile_service.get_user_profile(db, user_id)
