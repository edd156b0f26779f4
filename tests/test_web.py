"""Tests for the JSON API."""

from datetime import timedelta

import httpx
import pytest
import pytest_asyncio

from factories import run
from pace_duel.models.challenge import ChallengeStatus, SportType
from pace_duel.services.challenges import ChallengeService
from pace_duel.web import create_app


@pytest_asyncio.fixture
async def client(db_path, sink, source):
    app = create_app(db_path, sink=sink, sources={"fake": source})
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def as_user(user):
    return {"X-User-Id": str(user.id)}


class TestChallengeRoutes:
    """Tests for the challenge endpoints."""

    @pytest.mark.asyncio
    async def test_create_join_and_progress(self, client, users, today):
        alice, bob = users["alice"], users["bob"]
        created = await client.post(
            "/challenges",
            json={
                "name": "July miles",
                "start_date": (today + timedelta(days=1)).isoformat(),
                "end_date": (today + timedelta(days=14)).isoformat(),
                "goals": {"run": 50},
            },
            headers=as_user(alice),
        )
        assert created.status_code == 201
        body = created.json()
        assert body["status"] == "PENDING"
        assert body["sport_types"] == ["RUN"]

        joined = await client.post(
            "/challenges/join",
            json={"invite_code": body["invite_code"].lower(), "goals": {"RIDE": 100}},
            headers=as_user(bob),
        )
        assert joined.status_code == 200
        assert joined.json()["status"] == "SCHEDULED"
        assert joined.json()["sport_types"] == ["RIDE", "RUN"]

        progress = await client.get(f"/challenges/{body['id']}/progress")
        assert progress.status_code == 200
        data = progress.json()
        assert [p["user_id"] for p in data["participants"]] == [alice.id, bob.id]
        assert data["participants"][0]["overall_percent"] == 0
        assert data["seconds_remaining"] > 0

    @pytest.mark.asyncio
    async def test_list_and_filter_by_status(self, client, users, make_challenge, today):
        await make_challenge(
            users["alice"], today, today + timedelta(days=5),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        await make_challenge(users["alice"], today + timedelta(days=2), today + timedelta(days=5))

        everything = await client.get("/challenges", headers=as_user(users["alice"]))
        active = await client.get("/challenges?status=ACTIVE", headers=as_user(users["alice"]))

        assert len(everything.json()["challenges"]) == 2
        assert [c["status"] for c in active.json()["challenges"]] == ["ACTIVE"]

    @pytest.mark.asyncio
    async def test_invite_preview(self, client, users, make_challenge, today):
        c = await make_challenge(users["alice"], today + timedelta(days=1), today + timedelta(days=5))

        found = await client.get(f"/challenges/invite/{c.invite_code}")
        missing = await client.get("/challenges/invite/NOPE0000")

        assert found.json()["id"] == c.id
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_delete_by_creator_only(self, client, users, make_challenge, today):
        c = await make_challenge(users["alice"], today + timedelta(days=1), today + timedelta(days=5))

        forbidden = await client.delete(f"/challenges/{c.id}", headers=as_user(users["bob"]))
        deleted = await client.delete(f"/challenges/{c.id}", headers=as_user(users["alice"]))
        gone = await client.get(f"/challenges/{c.id}")

        assert forbidden.status_code == 403
        assert deleted.status_code == 204
        assert gone.status_code == 404

    @pytest.mark.asyncio
    async def test_rename_by_creator_only(self, client, users, make_challenge, today):
        c = await make_challenge(users["alice"], today + timedelta(days=1), today + timedelta(days=5))

        forbidden = await client.patch(
            f"/challenges/{c.id}", json={"name": "Mine now"}, headers=as_user(users["bob"])
        )
        renamed = await client.patch(
            f"/challenges/{c.id}", json={"name": "Autumn miles"}, headers=as_user(users["alice"])
        )
        blank = await client.patch(
            f"/challenges/{c.id}", json={"name": " "}, headers=as_user(users["alice"])
        )

        assert forbidden.status_code == 403
        assert renamed.status_code == 200
        assert renamed.json()["name"] == "Autumn miles"
        assert blank.status_code == 400
        assert blank.json()["error"]["details"]["field"] == "name"

    @pytest.mark.asyncio
    async def test_sync_returns_fresh_progress(self, client, users, source, make_challenge, today):
        c = await make_challenge(
            users["alice"], today - timedelta(days=2), today + timedelta(days=5),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )
        source.add(users["bob"].id, run(30000, today - timedelta(days=1), "b1"))

        response = await client.post(f"/challenges/{c.id}/sync", headers=as_user(users["bob"]))

        assert response.status_code == 200
        data = response.json()
        bob = next(p for p in data["participants"] if p["user_id"] == users["bob"].id)
        assert bob["overall_percent"] == 50

    @pytest.mark.asyncio
    async def test_forfeit_then_finish(self, client, users, make_challenge, today):
        c = await make_challenge(
            users["alice"], today - timedelta(days=2), today + timedelta(days=5),
            status=ChallengeStatus.ACTIVE, opponent=users["bob"],
        )

        left = await client.post(f"/challenges/{c.id}/leave", headers=as_user(users["bob"]))
        again = await client.post(f"/challenges/{c.id}/leave", headers=as_user(users["bob"]))
        finished = await client.post(f"/challenges/{c.id}/finish", headers=as_user(users["alice"]))

        assert left.status_code == 200
        assert left.json()["status"] == "ACTIVE"
        assert again.status_code == 409
        assert finished.json()["status"] == "COMPLETED"
        assert finished.json()["winner_id"] == users["alice"].id


class TestErrors:
    """Tests for error responses."""

    @pytest.mark.asyncio
    async def test_missing_user_header(self, client):
        response = await client.get("/challenges")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_service_validation_error(self, client, users, today):
        response = await client.post(
            "/challenges",
            json={
                "start_date": (today - timedelta(days=1)).isoformat(),
                "end_date": (today + timedelta(days=5)).isoformat(),
                "goals": {"run": 10},
            },
            headers=as_user(users["alice"]),
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["field"] == "start_date"

    @pytest.mark.asyncio
    async def test_unknown_sport_is_request_error(self, client, users, today):
        response = await client.post(
            "/challenges",
            json={
                "start_date": today.isoformat(),
                "end_date": (today + timedelta(days=5)).isoformat(),
                "goals": {"rowing": 10},
            },
            headers=as_user(users["alice"]),
        )
        assert response.status_code == 422
        assert response.json()["error"]["details"]["errors"]


class TestNotificationRoutes:
    """Tests for the notification inbox."""

    @pytest.mark.asyncio
    async def test_inbox_and_read_all(self, db_path, users, source, today):
        app = create_app(db_path, sources={"fake": source})
        transport = httpx.ASGITransport(app=app)
        service: ChallengeService = app.state.challenge_service
        view = await service.create_challenge(
            users["alice"].id, None,
            today + timedelta(days=1), today + timedelta(days=3),
            {SportType.RUN: 5},
        )
        await service.join_challenge(users["bob"].id, view.challenge.invite_code, {SportType.RUN: 5})

        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            headers = as_user(users["alice"])
            inbox = await client.get("/notifications", headers=headers)
            count = await client.get("/notifications/unread-count", headers=headers)
            await client.post("/notifications/read-all", headers=headers)
            after = await client.get("/notifications?unread_only=true", headers=headers)

        kinds = [n["kind"] for n in inbox.json()["notifications"]]
        assert "opponent_joined" in kinds
        assert count.json()["unread"] == len(kinds)
        assert after.json()["notifications"] == []
