from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Usernames that collide with fixed paths under /api/v1/users.
RESERVED_USERNAMES = frozenset({"me", "popular"})


# --- User ---

class UserBase(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    email: str = Field(max_length=255)
    display_name: str | None = Field(None, max_length=150)
    bio: str | None = Field(None, max_length=500)


class UserCreate(UserBase):
    @field_validator("username")
    @classmethod
    def username_not_reserved(cls, value: str) -> str:
        if value.lower() in RESERVED_USERNAMES:
            raise ValueError(f"'{value}' is a reserved username")
        return value


class UserResponse(UserBase):
    id: int
    avatar_url: str | None = None
    role: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    display_name: str | None = Field(None, max_length=150)
    bio: str | None = Field(None, max_length=500)
    avatar_url: str | None = Field(None, max_length=500, pattern=r"^https?://")


class ProfileCounts(BaseModel):
    articles: int
    comments: int
    likes: int
    bookmarks: int
    followers: int
    following: int
    comments_received: int
    likes_received: int


class ProfileResponse(BaseModel):
    id: int
    username: str
    display_name: str | None
    bio: str | None
    avatar_url: str | None
    role: str
    created_at: datetime | None
    counts: ProfileCounts


class PeerSummary(BaseModel):
    id: int
    username: str
    display_name: str | None
    avatar_url: str | None
    bio: str | None
    is_following: bool
    followed_at: datetime | None


# --- Social graph / interactions ---

class FollowToggleRequest(BaseModel):
    user_id: int


class FollowToggleResponse(BaseModel):
    following: bool
    follower_count: int
    following_count: int


class ArticleRef(BaseModel):
    article_id: int


class LikeToggleResponse(BaseModel):
    liked: bool
    like_count: int


class BookmarkToggleResponse(BaseModel):
    bookmarked: bool


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    parent_id: int | None = None


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


# --- Article ---

class ArticleBase(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = Field(min_length=1)
    summary: str | None = Field(None, max_length=500)
    is_published: bool = False
    tags: list[str] = Field(default_factory=list, max_length=5)


class ArticleCreate(ArticleBase):
    pass


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = Field(None, min_length=1)
    summary: str | None = Field(None, max_length=500)
    is_published: bool | None = None
    tags: list[str] | None = Field(None, max_length=5)


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list
    total: int
    page: int
    page_size: int
    pages: int


# --- Report ---

class ReportCreate(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
