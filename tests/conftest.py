"""
Test infrastructure for the Blog Social API.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- All tables are created fresh before each test and dropped after.
- The Redis cache is disabled by setting cache._redis = None; the
  CacheManager treats that as "cache off".
- The signed-in principal is passed through the X-User-Id header, exactly
  as the upstream auth gateway does; ``auth(user_id)`` builds it.
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from blogsocial.cache import cache
from blogsocial.config import settings
from blogsocial.database import Base, get_db
from blogsocial.main import app
from blogsocial.middleware import install_query_counter
from blogsocial.models import Article, User

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


def auth(user_id: int) -> dict[str, str]:
    """Request headers identifying *user_id* as the signed-in caller."""
    return {settings.AUTH_USER_HEADER: str(user_id)}


async def create_user(db: AsyncSession, username: str, role: str = "USER") -> User:
    user = User(username=username, email=f"{username}@example.com", role=role)
    db.add(user)
    await db.flush()
    return user


async def create_article(
    db: AsyncSession, author: User, title: str = "An Article", is_published: bool = True
) -> Article:
    article = Article(
        title=title,
        slug=title.lower().replace(" ", "-"),
        content="# Hello\n\nSome MDX.",
        is_published=is_published,
        user_id=author.id,
    )
    db.add(article)
    await db.flush()
    return article


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live AsyncSession for calling services directly."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """An httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
