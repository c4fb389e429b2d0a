"""
Route tests through the ASGI app with real JWTs and the SQLite test database.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from courtside.api.main import app
from courtside.exceptions import ConcurrencyTimeout
from courtside.services import auth_service, recompute_queue


def auth_headers(player=None, email=None):
    if player is not None:
        token = auth_service.create_access_token(player.email, player_id=player.id)
    else:
        token = auth_service.create_access_token(email)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(test_engine):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def match_body(group_id, team_a, team_b, score_a, score_b, date="2024-06-01T18:00:00Z"):
    return {
        "group_id": group_id,
        "date": date,
        "match_type": "SINGLES",
        "team_a": [p.id for p in team_a],
        "team_b": [p.id for p in team_b],
        "score_a": score_a,
        "score_b": score_b,
    }


@pytest.mark.asyncio
async def test_health_needs_no_auth(client):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_or_bad_token_is_rejected(client, league):
    response = await client.get("/api/groups")
    assert response.status_code in (401, 403)

    response = await client.get("/api/groups", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_viewer_create_match_is_problem_json_403(client, league):
    response = await client.post(
        "/api/matches",
        json=match_body(league["group"].id, [league["a"]], [league["b"]], 11, 5),
        headers=auth_headers(league["viewer"]),
    )
    assert response.status_code == 403
    assert response.headers["content-type"].startswith("application/problem+json")
    body = response.json()
    assert body["code"] == "authorization_denied"
    assert body["status"] == 403


@pytest.mark.asyncio
async def test_match_lifecycle_updates_stats(client, league):
    group_id = league["group"].id
    gina = auth_headers(league["group_admin"])
    alice, bob = league["a"], league["b"]

    first = await client.post("/api/matches", json=match_body(group_id, [alice], [bob], 11, 5), headers=gina)
    assert first.status_code == 201, first.text
    second = await client.post(
        "/api/matches",
        json=match_body(group_id, [bob], [alice], 11, 9, date="2024-06-02T18:00:00Z"),
        headers=gina,
    )
    assert second.status_code == 201, second.text

    stats = await client.get(f"/api/stats?group_id={group_id}", headers=auth_headers(league["viewer"]))
    assert stats.status_code == 200
    alice_row = next(r for r in stats.json() if r["player_id"] == alice.id)
    assert alice_row["win_rate"] == 0.5
    assert alice_row["avg_points_for"] == 10.0

    deleted = await client.delete(f"/api/matches/{first.json()['id']}", headers=gina)
    assert deleted.status_code == 200

    stats = await client.get(f"/api/stats?group_id={group_id}", headers=gina)
    alice_row = next(r for r in stats.json() if r["player_id"] == alice.id)
    assert (alice_row["wins"], alice_row["losses"]) == (0, 1)
    assert alice_row["avg_points_for"] == 9.0

    matches = await client.get(f"/api/matches?group_id={group_id}", headers=gina)
    assert [m["id"] for m in matches.json()] == [second.json()["id"]]

    history = await client.get(
        f"/api/players/{alice.id}/rating-history?group_id={group_id}", headers=gina
    )
    assert history.status_code == 200
    assert len(history.json()) == 1

    status = await client.get(f"/api/stats/status?group_id={group_id}", headers=gina)
    assert status.status_code == 200
    assert status.json()["running"] is None
    assert len(status.json()["recent_completed"]) == 3


@pytest.mark.asyncio
async def test_tied_match_is_400(client, league):
    response = await client.post(
        "/api/matches",
        json=match_body(league["group"].id, [league["a"]], [league["b"]], 11, 11),
        headers=auth_headers(league["group_admin"]),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_lock_timeout_is_503_with_retry_after(client, league, monkeypatch):
    queue = recompute_queue.get_recompute_queue()

    async def busy(group_id, mutation=None, trigger="manual"):
        raise ConcurrencyTimeout(group_id, queue.lock_timeout)

    monkeypatch.setattr(queue, "run_serialized", busy)

    response = await client.post(
        "/api/matches",
        json=match_body(league["group"].id, [league["a"]], [league["b"]], 11, 5),
        headers=auth_headers(league["group_admin"]),
    )
    assert response.status_code == 503
    assert response.headers["retry-after"] == "1"
    assert response.json()["code"] == "concurrency_timeout"


@pytest.mark.asyncio
async def test_manual_recompute(client, league):
    group_id = league["group"].id
    response = await client.post(
        f"/api/stats/recompute?group_id={group_id}", headers=auth_headers(league["group_admin"])
    )
    assert response.status_code == 200
    assert response.json()["match_count"] == 0

    response = await client.post(
        f"/api/stats/recompute?group_id={group_id}", headers=auth_headers(league["viewer"])
    )
    assert response.status_code == 403

    response = await client.post("/api/stats/recompute?group_id=9999", headers=auth_headers(league["admin"]))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_groups_and_membership_routes(client, league):
    admin = auth_headers(league["admin"])

    created = await client.post("/api/groups", json={"name": "Night League"}, headers=admin)
    assert created.status_code == 201
    group_id = created.json()["id"]

    denied = await client.post("/api/groups", json={"name": "Nope"}, headers=auth_headers(league["viewer"]))
    assert denied.status_code == 403

    duplicate = await client.post("/api/groups", json={"name": "Night League"}, headers=admin)
    assert duplicate.status_code == 409

    added = await client.put(
        f"/api/groups/{group_id}/members/{league['a'].id}?role=GROUP_ADMIN", headers=admin
    )
    assert added.status_code == 200
    assert added.json()["role"] == "GROUP_ADMIN"

    players = await client.get(f"/api/players?group_id={group_id}", headers=admin)
    assert [p["id"] for p in players.json()] == [league["a"].id]

    removed = await client.delete(f"/api/groups/{group_id}/members/{league['a'].id}", headers=admin)
    assert removed.status_code == 200
    assert removed.json()["role"] is None


@pytest.mark.asyncio
async def test_profile_completion_for_unlinked_login(client, league):
    headers = auth_headers(email="someone.new@example.com")

    missing = await client.get("/api/players/by-email/someone.new@example.com", headers=headers)
    assert missing.status_code == 404

    created = await client.post("/api/players/me", json={"name": "Someone New"}, headers=headers)
    assert created.status_code == 200
    player_id = created.json()["id"]

    # Same login is now linked by email and may edit its own profile
    updated = await client.put(
        f"/api/players/{player_id}", json={"social_media": "@someone"}, headers=headers
    )
    assert updated.status_code == 200
    assert updated.json()["social_media"] == "@someone"

    forbidden = await client.put(
        f"/api/players/{league['b'].id}", json={"name": "Not mine"}, headers=headers
    )
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_venues_are_listed_for_any_group(client, league, db_session):
    from courtside.database.models import Venue

    db_session.add(Venue(name="Pier Courts", court_count=4, group_id=league["other_group"].id))
    await db_session.commit()

    response = await client.get(
        f"/api/venues?group_id={league['group'].id}", headers=auth_headers(league["viewer"])
    )
    assert response.status_code == 200
    assert [v["name"] for v in response.json()] == ["Pier Courts"]


@pytest.mark.asyncio
async def test_no_active_group_reads_are_unfiltered_for_any_login(client, league):
    gina = auth_headers(league["group_admin"])
    created = await client.post(
        "/api/matches", json=match_body(league["group"].id, [league["a"]], [league["b"]], 11, 5), headers=gina
    )
    assert created.status_code == 201

    unlinked = auth_headers(email="drifter@example.com")
    matches = await client.get("/api/matches", headers=unlinked)
    assert [m["id"] for m in matches.json()] == [created.json()["id"]]

    players = await client.get("/api/players", headers=unlinked)
    assert len(players.json()) == 8

    scoped = await client.get(f"/api/matches?group_id={league['group'].id}", headers=unlinked)
    assert scoped.status_code == 403
