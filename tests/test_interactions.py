"""
Like and bookmark tests: toggles, count consistency, self-interaction,
per-viewer state, and the bookmarked-articles list.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.errors import NotFound, Unauthorized
from blogsocial.models import Bookmark, Like
from blogsocial.services import interaction_service, relation_store

from conftest import auth, create_article, create_user


async def _rows(db: AsyncSession, model, article_id: int) -> int:
    q = select(func.count()).select_from(model).where(model.article_id == article_id)
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_like_toggle_round_trip(db_session: AsyncSession):
    author = await create_user(db_session, "author")
    reader = await create_user(db_session, "reader")
    article = await create_article(db_session, author)

    liked = await interaction_service.toggle_like(db_session, reader.id, article.id)
    assert liked == {"liked": True, "like_count": 1}
    assert await interaction_service.has_liked(db_session, reader.id, article.id) is True

    unliked = await interaction_service.toggle_like(db_session, reader.id, article.id)
    assert unliked == {"liked": False, "like_count": 0}
    assert await interaction_service.has_liked(db_session, reader.id, article.id) is False


@pytest.mark.asyncio
async def test_self_like_is_allowed(db_session: AsyncSession):
    author = await create_user(db_session, "narcissus")
    article = await create_article(db_session, author)

    result = await interaction_service.toggle_like(db_session, author.id, article.id)
    assert result["liked"] is True


@pytest.mark.asyncio
async def test_like_count_tracks_rows(db_session: AsyncSession):
    """Five readers like, two of them change their mind: three rows, count three."""
    author = await create_user(db_session, "author")
    article = await create_article(db_session, author)
    readers = [await create_user(db_session, f"reader{i}") for i in range(5)]

    for reader in readers:
        await interaction_service.toggle_like(db_session, reader.id, article.id)
    for reader in readers[:2]:
        last = await interaction_service.toggle_like(db_session, reader.id, article.id)

    assert last["like_count"] == 3
    assert await interaction_service.get_like_count(db_session, article.id) == 3
    assert await _rows(db_session, Like, article.id) == 3


@pytest.mark.asyncio
async def test_like_missing_article_creates_nothing(db_session: AsyncSession):
    reader = await create_user(db_session, "reader")
    with pytest.raises(NotFound) as exc_info:
        await interaction_service.toggle_like(db_session, reader.id, 99999)
    assert exc_info.value.message == "Article not found"
    assert await _rows(db_session, Like, 99999) == 0


@pytest.mark.asyncio
async def test_like_requires_sign_in(db_session: AsyncSession):
    author = await create_user(db_session, "author")
    article = await create_article(db_session, author)
    with pytest.raises(Unauthorized):
        await interaction_service.toggle_like(db_session, None, article.id)


@pytest.mark.asyncio
async def test_has_liked_anonymous_is_false(db_session: AsyncSession):
    author = await create_user(db_session, "author")
    article = await create_article(db_session, author)
    assert await interaction_service.has_liked(db_session, None, article.id) is False


@pytest.mark.asyncio
async def test_liked_article_ids(db_session: AsyncSession):
    author = await create_user(db_session, "author")
    reader = await create_user(db_session, "reader")
    first = await create_article(db_session, author, "First")
    second = await create_article(db_session, author, "Second")
    await create_article(db_session, author, "Third")

    await interaction_service.toggle_like(db_session, reader.id, first.id)
    await interaction_service.toggle_like(db_session, reader.id, second.id)

    ids = await interaction_service.get_liked_article_ids(db_session, reader.id)
    assert ids == [second.id, first.id]


@pytest.mark.asyncio
async def test_liked_article_ids_anonymous_is_empty(db_session: AsyncSession):
    assert await interaction_service.get_liked_article_ids(db_session, None) == []


# ---------------------------------------------------------------------------
# Bookmarks
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_bookmark_toggle_round_trip(db_session: AsyncSession):
    author = await create_user(db_session, "author")
    reader = await create_user(db_session, "reader")
    article = await create_article(db_session, author)

    assert await interaction_service.toggle_bookmark(db_session, reader.id, article.id) == {
        "bookmarked": True
    }
    assert await interaction_service.has_bookmarked(db_session, reader.id, article.id) is True
    assert await interaction_service.get_bookmark_count(db_session, article.id) == 1

    assert await interaction_service.toggle_bookmark(db_session, reader.id, article.id) == {
        "bookmarked": False
    }
    assert await _rows(db_session, Bookmark, article.id) == 0


@pytest.mark.asyncio
async def test_bookmark_missing_article(db_session: AsyncSession):
    reader = await create_user(db_session, "reader")
    with pytest.raises(NotFound):
        await interaction_service.toggle_bookmark(db_session, reader.id, 99999)


@pytest.mark.asyncio
async def test_bookmarked_articles_newest_first(db_session: AsyncSession):
    author = await create_user(db_session, "author")
    reader = await create_user(db_session, "reader")
    first = await create_article(db_session, author, "First Saved")
    second = await create_article(db_session, author, "Second Saved")
    await interaction_service.toggle_bookmark(db_session, reader.id, first.id)
    await interaction_service.toggle_bookmark(db_session, reader.id, second.id)
    await interaction_service.toggle_like(db_session, reader.id, second.id)

    saved = await interaction_service.get_bookmarked_articles(db_session, reader.id)

    assert [a["title"] for a in saved] == ["Second Saved", "First Saved"]
    assert saved[0]["like_count"] == 1
    assert saved[0]["author"]["username"] == "author"


@pytest.mark.asyncio
async def test_bookmarked_articles_anonymous_is_empty(db_session: AsyncSession):
    assert await interaction_service.get_bookmarked_articles(db_session, None) == []


# ---------------------------------------------------------------------------
# Concurrent toggles
# ---------------------------------------------------------------------------

def _stale_first_check(monkeypatch) -> list:
    """Make the first existence check miss a row that is already stored."""
    real_find_row = relation_store.find_row
    calls = []

    async def stale_first_check(db, model, **keys):
        calls.append(keys)
        if len(calls) == 1:
            return None
        return await real_find_row(db, model, **keys)

    monkeypatch.setattr(relation_store, "find_row", stale_first_check)
    return calls


@pytest.mark.asyncio
async def test_like_lost_insert_race_is_absorbed(db_session: AsyncSession, monkeypatch):
    """Another writer's like lands between our check and our insert."""
    author = await create_user(db_session, "author")
    reader_id = (await create_user(db_session, "reader")).id
    article_id = (await create_article(db_session, author)).id
    db_session.add(Like(user_id=reader_id, article_id=article_id))
    await db_session.flush()

    calls = _stale_first_check(monkeypatch)
    result = await interaction_service.toggle_like(db_session, reader_id, article_id)

    assert result == {"liked": True, "like_count": 1}
    assert await _rows(db_session, Like, article_id) == 1
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_bookmark_lost_insert_race_is_absorbed(db_session: AsyncSession, monkeypatch):
    author = await create_user(db_session, "author")
    reader_id = (await create_user(db_session, "reader")).id
    article_id = (await create_article(db_session, author)).id
    db_session.add(Bookmark(user_id=reader_id, article_id=article_id))
    await db_session.flush()

    calls = _stale_first_check(monkeypatch)
    result = await interaction_service.toggle_bookmark(db_session, reader_id, article_id)

    assert result == {"bookmarked": True}
    assert await _rows(db_session, Bookmark, article_id) == 1
    assert await interaction_service.get_bookmark_count(db_session, article_id) == 1
    assert len(calls) == 2


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

async def _setup(client: AsyncClient) -> tuple[int, int, int]:
    author = (await client.post("/api/v1/users", json={
        "username": "author", "email": "author@example.com",
    })).json()["id"]
    reader = (await client.post("/api/v1/users", json={
        "username": "reader", "email": "reader@example.com",
    })).json()["id"]
    article = (await client.post("/api/v1/articles", json={
        "title": "Likeable", "content": "Content", "is_published": True,
    }, headers=auth(author))).json()["id"]
    return author, reader, article


@pytest.mark.asyncio
async def test_like_endpoints(async_client: AsyncClient):
    _, reader, article = await _setup(async_client)

    resp = await async_client.post("/api/v1/likes", json={"article_id": article}, headers=auth(reader))
    assert resp.status_code == 200
    assert resp.json() == {"liked": True, "like_count": 1}

    state = await async_client.get(f"/api/v1/likes?article_id={article}", headers=auth(reader))
    assert state.json() == {"liked": True, "count": 1}

    anonymous = await async_client.get(f"/api/v1/likes?article_id={article}")
    assert anonymous.json() == {"liked": False, "count": 1}

    preview = (await async_client.get("/api/v1/articles")).json()["items"][0]
    assert preview["like_count"] == 1


@pytest.mark.asyncio
async def test_like_endpoint_errors(async_client: AsyncClient):
    _, reader, article = await _setup(async_client)

    resp = await async_client.post("/api/v1/likes", json={"article_id": article})
    assert resp.status_code == 401

    resp = await async_client.post("/api/v1/likes", json={"article_id": 99999}, headers=auth(reader))
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "Article not found", "code": "NOT_FOUND"}


@pytest.mark.asyncio
async def test_bookmark_endpoints(async_client: AsyncClient):
    _, reader, article = await _setup(async_client)

    resp = await async_client.post("/api/v1/bookmarks", json={"article_id": article}, headers=auth(reader))
    assert resp.json() == {"bookmarked": True}

    state = await async_client.get(f"/api/v1/bookmarks?article_id={article}", headers=auth(reader))
    assert state.json() == {"bookmarked": True, "count": 1}

    saved = await async_client.get("/api/v1/bookmarks", headers=auth(reader))
    assert [a["id"] for a in saved.json()] == [article]

    assert (await async_client.get("/api/v1/bookmarks")).json() == []


@pytest.mark.asyncio
async def test_liked_ids_endpoint(async_client: AsyncClient):
    _, reader, article = await _setup(async_client)
    await async_client.post("/api/v1/likes", json={"article_id": article}, headers=auth(reader))

    resp = await async_client.get("/api/v1/likes", headers=auth(reader))
    assert resp.status_code == 200
    assert resp.json() == {"article_ids": [article]}

    assert (await async_client.get("/api/v1/likes")).json() == {"article_ids": []}
