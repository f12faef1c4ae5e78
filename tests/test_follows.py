"""
Social graph tests: toggle semantics, self-follow rejection, the lost
insert race, counts, and follower / following lists with the viewer's
follow state.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blogsocial.errors import Forbidden, NotFound, Unauthorized
from blogsocial.models import Follow
from blogsocial.services import follow_service, relation_store

from conftest import auth, create_user


async def _edge_count(db: AsyncSession, follower_id: int, following_id: int) -> int:
    q = select(func.count()).select_from(Follow).where(
        Follow.follower_id == follower_id, Follow.following_id == following_id
    )
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------------
# toggle_follow
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_follow_then_unfollow_alice_bob(db_session: AsyncSession):
    alice = await create_user(db_session, "alice")
    bob = await create_user(db_session, "bob")
    carol = await create_user(db_session, "carol")
    # bob follows carol, so bob's own following count is 1 and must not change
    await follow_service.toggle_follow(db_session, bob.id, carol.id)

    first = await follow_service.toggle_follow(db_session, alice.id, bob.id)
    assert first == {"following": True, "follower_count": 1, "following_count": 1}

    second = await follow_service.toggle_follow(db_session, alice.id, bob.id)
    assert second == {"following": False, "follower_count": 0, "following_count": 1}


@pytest.mark.asyncio
async def test_toggle_parity_matches_row_count(db_session: AsyncSession):
    alice = await create_user(db_session, "alice")
    bob = await create_user(db_session, "bob")

    for n in range(1, 6):
        result = await follow_service.toggle_follow(db_session, alice.id, bob.id)
        expected = n % 2
        assert result["following"] is bool(expected)
        assert await _edge_count(db_session, alice.id, bob.id) == expected


@pytest.mark.asyncio
async def test_self_follow_is_forbidden_and_creates_nothing(db_session: AsyncSession):
    alice = await create_user(db_session, "alice")

    for _ in range(2):
        with pytest.raises(Forbidden) as exc_info:
            await follow_service.toggle_follow(db_session, alice.id, alice.id)
        assert "cannot follow yourself" in exc_info.value.message

    assert await _edge_count(db_session, alice.id, alice.id) == 0


@pytest.mark.asyncio
async def test_toggle_follow_requires_principal(db_session: AsyncSession):
    bob = await create_user(db_session, "bob")
    with pytest.raises(Unauthorized):
        await follow_service.toggle_follow(db_session, None, bob.id)


@pytest.mark.asyncio
async def test_toggle_follow_unknown_target(db_session: AsyncSession):
    alice = await create_user(db_session, "alice")
    with pytest.raises(NotFound) as exc_info:
        await follow_service.toggle_follow(db_session, alice.id, 99999)
    assert exc_info.value.message == "User not found"


@pytest.mark.asyncio
async def test_lost_insert_race_is_absorbed(db_session: AsyncSession, monkeypatch):
    """
    Simulate two concurrent follows: the other writer's row lands between
    our existence check and our insert.  Exactly one row must remain and
    the toggle reports the edge as present.
    """
    alice_id = (await create_user(db_session, "alice")).id
    bob_id = (await create_user(db_session, "bob")).id
    db_session.add(Follow(follower_id=alice_id, following_id=bob_id))
    await db_session.flush()

    real_find_row = relation_store.find_row
    calls = []

    async def stale_first_check(db, model, **keys):
        calls.append(keys)
        if len(calls) == 1:
            return None
        return await real_find_row(db, model, **keys)

    monkeypatch.setattr(relation_store, "find_row", stale_first_check)

    result = await follow_service.toggle_follow(db_session, alice_id, bob_id)

    assert result == {"following": True, "follower_count": 1, "following_count": 0}
    assert await _edge_count(db_session, alice_id, bob_id) == 1
    # The session is still usable after the absorbed violation.
    assert await follow_service.get_follower_count(db_session, bob_id) == 1
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_unique_constraint_rejects_duplicate_edge(db_session: AsyncSession):
    alice = await create_user(db_session, "alice")
    bob = await create_user(db_session, "bob")
    db_session.add(Follow(follower_id=alice.id, following_id=bob.id))
    await db_session.flush()

    db_session.add(Follow(follower_id=alice.id, following_id=bob.id))
    with pytest.raises(IntegrityError):
        await db_session.flush()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_is_following(db_session: AsyncSession):
    alice = await create_user(db_session, "alice")
    bob = await create_user(db_session, "bob")

    assert await follow_service.is_following(db_session, alice.id, bob.id) is False
    await follow_service.toggle_follow(db_session, alice.id, bob.id)
    assert await follow_service.is_following(db_session, alice.id, bob.id) is True
    # Direction matters.
    assert await follow_service.is_following(db_session, bob.id, alice.id) is False


@pytest.mark.asyncio
async def test_is_following_anonymous_returns_false(db_session: AsyncSession):
    bob = await create_user(db_session, "bob")
    assert await follow_service.is_following(db_session, None, bob.id) is False


@pytest.mark.asyncio
async def test_follower_and_following_counts(db_session: AsyncSession):
    users = [await create_user(db_session, f"user{i}") for i in range(4)]
    star = users[0]
    for fan in users[1:]:
        await follow_service.toggle_follow(db_session, fan.id, star.id)
    await follow_service.toggle_follow(db_session, star.id, users[1].id)

    assert await follow_service.get_follower_count(db_session, star.id) == 3
    assert await follow_service.get_following_count(db_session, star.id) == 1
    assert await follow_service.get_follower_count(db_session, 99999) == 0


@pytest.mark.asyncio
async def test_list_followers_newest_first_with_viewer_state(db_session: AsyncSession):
    star = await create_user(db_session, "star")
    fans = [await create_user(db_session, f"fan{i}") for i in range(3)]
    viewer = await create_user(db_session, "viewer")
    for fan in fans:
        await follow_service.toggle_follow(db_session, fan.id, star.id)
    # The viewer follows fan1 only; star's perspective must not leak in.
    await follow_service.toggle_follow(db_session, viewer.id, fans[1].id)

    result = await follow_service.list_followers(db_session, star.id, viewer_id=viewer.id)

    assert [p["username"] for p in result] == ["fan2", "fan1", "fan0"]
    assert {p["username"]: p["is_following"] for p in result} == {
        "fan0": False,
        "fan1": True,
        "fan2": False,
    }


@pytest.mark.asyncio
async def test_list_followers_anonymous_viewer_and_limit(db_session: AsyncSession):
    star = await create_user(db_session, "star")
    for i in range(5):
        fan = await create_user(db_session, f"fan{i}")
        await follow_service.toggle_follow(db_session, fan.id, star.id)

    result = await follow_service.list_followers(db_session, star.id, limit=2)

    assert len(result) == 2
    assert all(p["is_following"] is False for p in result)


@pytest.mark.asyncio
async def test_list_followers_limit_zero_returns_nothing(db_session: AsyncSession):
    star = await create_user(db_session, "star")
    for i in range(3):
        fan = await create_user(db_session, f"fan{i}")
        await follow_service.toggle_follow(db_session, fan.id, star.id)

    assert await follow_service.list_followers(db_session, star.id, limit=0) == []
    assert len(await follow_service.list_followers(db_session, star.id)) == 3


@pytest.mark.asyncio
async def test_list_following(db_session: AsyncSession):
    alice = await create_user(db_session, "alice")
    bob = await create_user(db_session, "bob")
    carol = await create_user(db_session, "carol")
    await follow_service.toggle_follow(db_session, alice.id, bob.id)
    await follow_service.toggle_follow(db_session, alice.id, carol.id)

    result = await follow_service.list_following(db_session, alice.id, viewer_id=bob.id)

    assert [p["username"] for p in result] == ["carol", "bob"]
    assert set(result[0]) == {
        "id", "username", "display_name", "avatar_url", "bio", "is_following", "followed_at",
    }


@pytest.mark.asyncio
async def test_viewer_annotation_is_one_batched_query(db_session: AsyncSession, monkeypatch):
    star = await create_user(db_session, "star")
    viewer = await create_user(db_session, "viewer")
    for i in range(6):
        fan = await create_user(db_session, f"fan{i}")
        await follow_service.toggle_follow(db_session, fan.id, star.id)

    statements = []
    real_execute = db_session.execute

    async def recording_execute(statement, *args, **kwargs):
        statements.append(statement)
        return await real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", recording_execute)
    await follow_service.list_followers(db_session, star.id, viewer_id=viewer.id)

    # one query for the page, one for the viewer's follow state
    assert len(statements) == 2


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

async def _register(client: AsyncClient, username: str) -> int:
    resp = await client.post("/api/v1/users", json={
        "username": username,
        "email": f"{username}@example.com",
    })
    assert resp.status_code == 201
    return resp.json()["id"]


@pytest.mark.asyncio
async def test_follow_endpoint_toggles(async_client: AsyncClient):
    alice = await _register(async_client, "alice")
    bob = await _register(async_client, "bob")

    resp = await async_client.post("/api/v1/follows", json={"user_id": bob}, headers=auth(alice))
    assert resp.status_code == 200
    assert resp.json() == {"following": True, "follower_count": 1, "following_count": 0}

    check = await async_client.get(f"/api/v1/follows?user_id={bob}", headers=auth(alice))
    assert check.json() == {"following": True}

    counts = await async_client.get(f"/api/v1/follows?user_id={bob}&action=count")
    assert counts.json() == {"follower_count": 1, "following_count": 0}

    resp = await async_client.post("/api/v1/follows", json={"user_id": bob}, headers=auth(alice))
    assert resp.json()["following"] is False


@pytest.mark.asyncio
async def test_follow_endpoint_signed_out(async_client: AsyncClient):
    bob = await _register(async_client, "bob")
    resp = await async_client.post("/api/v1/follows", json={"user_id": bob})
    assert resp.status_code == 401
    body = resp.json()
    assert body["success"] is False
    assert body["code"] == "UNAUTHORIZED"
    assert "sign in" in body["error"]


@pytest.mark.asyncio
async def test_follow_endpoint_self_follow(async_client: AsyncClient):
    alice = await _register(async_client, "alice")
    resp = await async_client.post("/api/v1/follows", json={"user_id": alice}, headers=auth(alice))
    assert resp.status_code == 403
    assert resp.json()["error"] == "You cannot follow yourself"


@pytest.mark.asyncio
async def test_follow_endpoint_unknown_user(async_client: AsyncClient):
    alice = await _register(async_client, "alice")
    resp = await async_client.post("/api/v1/follows", json={"user_id": 424242}, headers=auth(alice))
    assert resp.status_code == 404
    assert resp.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_follow_check_anonymous_and_bad_action(async_client: AsyncClient):
    bob = await _register(async_client, "bob")
    check = await async_client.get(f"/api/v1/follows?user_id={bob}")
    assert check.status_code == 200
    assert check.json() == {"following": False}

    bad = await async_client.get(f"/api/v1/follows?user_id={bob}&action=explode")
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_malformed_principal_header(async_client: AsyncClient):
    bob = await _register(async_client, "bob")
    resp = await async_client.post(
        "/api/v1/follows", json={"user_id": bob}, headers={"X-User-Id": "not-a-number"}
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_followers_and_following_endpoints(async_client: AsyncClient):
    alice = await _register(async_client, "alice")
    bob = await _register(async_client, "bob")
    carol = await _register(async_client, "carol")
    await async_client.post("/api/v1/follows", json={"user_id": carol}, headers=auth(alice))
    await async_client.post("/api/v1/follows", json={"user_id": carol}, headers=auth(bob))
    await async_client.post("/api/v1/follows", json={"user_id": alice}, headers=auth(bob))

    resp = await async_client.get("/api/v1/users/carol/followers", headers=auth(bob))
    assert resp.status_code == 200
    followers = {p["username"]: p["is_following"] for p in resp.json()}
    assert followers == {"alice": True, "bob": False}

    resp = await async_client.get("/api/v1/users/bob/following?limit=1")
    assert resp.status_code == 200
    assert len(resp.json()) == 1

    missing = await async_client.get("/api/v1/users/nobody/followers")
    assert missing.status_code == 404
