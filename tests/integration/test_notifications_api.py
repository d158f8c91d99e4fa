"""Integration tests: notification endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from stackit.notifications.cache import unread_count_key
from tests.conftest import auth_headers, make_notification


class TestListAndCount:
    @pytest.mark.asyncio
    async def test_list_empty(self, client: AsyncClient, users):
        response = await client.get("/api/v1/notifications", headers=auth_headers(users["alice"]))
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 0
        assert data["notifications"] == []

    @pytest.mark.asyncio
    async def test_list_filters(self, client: AsyncClient, db_session, users):
        alice = users["alice"]
        await make_notification(db_session, alice, "answer")
        await make_notification(db_session, alice, "mention", is_read=True)
        await make_notification(db_session, users["bob"], "mention")

        response = await client.get(
            "/api/v1/notifications", params={"type": "mention"}, headers=auth_headers(alice),
        )
        assert response.json()["total"] == 1

        response = await client.get(
            "/api/v1/notifications", params={"unread_only": "true"}, headers=auth_headers(alice),
        )
        data = response.json()
        assert data["total"] == 1
        assert data["notifications"][0]["type"] == "answer"

    @pytest.mark.asyncio
    async def test_invalid_type_filter(self, client: AsyncClient, users):
        response = await client.get(
            "/api/v1/notifications", params={"type": "badge"}, headers=auth_headers(users["alice"]),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unread_count_is_cached(self, client: AsyncClient, db_session, users, fake_redis):
        alice = users["alice"]
        await make_notification(db_session, alice)
        await make_notification(db_session, alice)

        response = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(alice))
        assert response.json() == {"unread_count": 2}
        assert fake_redis.store[unread_count_key(alice)] == "2"

        await client.get("/api/v1/notifications/unread-count", headers=auth_headers(alice))
        assert fake_redis.calls["set"] == 1

    @pytest.mark.asyncio
    async def test_unread_count_redis_down(self, client: AsyncClient, db_session, users, fake_redis):
        alice = users["alice"]
        await make_notification(db_session, alice)
        fake_redis.fail = True

        response = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(alice))
        assert response.status_code == 200
        assert response.json() == {"unread_count": 1}

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, db_session, users):
        alice = users["alice"]
        await make_notification(db_session, alice, "vote")
        await make_notification(db_session, alice, "comment", is_read=True)

        response = await client.get("/api/v1/notifications/stats", headers=auth_headers(alice))
        data = response.json()
        assert data["total_notifications"] == 2
        assert data["unread_count"] == 1
        assert data["vote_count"] == 1
        assert data["comment_count"] == 1


class TestReadState:
    @pytest.mark.asyncio
    async def test_mark_one_read_twice(self, client: AsyncClient, db_session, users, fake_redis):
        alice = users["alice"]
        notification_id = await make_notification(db_session, alice)
        fake_redis.store[unread_count_key(alice)] = "1"

        first = await client.post(f"/api/v1/notifications/{notification_id}/read", headers=auth_headers(alice))
        assert first.status_code == 200
        assert unread_count_key(alice) not in fake_redis.store
        [message] = fake_redis.messages_for(alice)
        assert message["type"] == "notifications_read"
        assert message["notification_ids"] == [notification_id]

        second = await client.post(f"/api/v1/notifications/{notification_id}/read", headers=auth_headers(alice))
        assert second.status_code == 200
        assert len(fake_redis.messages_for(alice)) == 1

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(alice))
        assert count.json() == {"unread_count": 0}

    @pytest.mark.asyncio
    async def test_mark_someone_elses(self, client: AsyncClient, db_session, users):
        notification_id = await make_notification(db_session, users["alice"])
        response = await client.post(
            f"/api/v1/notifications/{notification_id}/read", headers=auth_headers(users["bob"]),
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_mark_list(self, client: AsyncClient, db_session, users):
        alice = users["alice"]
        ids = [await make_notification(db_session, alice) for _ in range(3)]

        response = await client.put(
            "/api/v1/notifications/read", json={"notification_ids": ids[:2]}, headers=auth_headers(alice),
        )
        assert response.json() == {"updated_count": 2}

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(alice))
        assert count.json() == {"unread_count": 1}

    @pytest.mark.asyncio
    async def test_mark_null_means_all(self, client: AsyncClient, db_session, users):
        alice = users["alice"]
        for _ in range(3):
            await make_notification(db_session, alice)

        response = await client.put(
            "/api/v1/notifications/read", json={"notification_ids": None}, headers=auth_headers(alice),
        )
        assert response.json() == {"updated_count": 3}

    @pytest.mark.asyncio
    async def test_read_all(self, client: AsyncClient, db_session, users, fake_redis):
        alice = users["alice"]
        await make_notification(db_session, alice)
        await make_notification(db_session, alice)
        await client.get("/api/v1/notifications/unread-count", headers=auth_headers(alice))

        response = await client.post("/api/v1/notifications/read-all", headers=auth_headers(alice))
        assert response.json() == {"updated_count": 2}

        count = await client.get("/api/v1/notifications/unread-count", headers=auth_headers(alice))
        assert count.json() == {"unread_count": 0}


class TestSingleAndDelete:
    @pytest.mark.asyncio
    async def test_get_one(self, client: AsyncClient, db_session, users):
        notification_id = await make_notification(db_session, users["alice"], "comment", "x commented")
        response = await client.get(f"/api/v1/notifications/{notification_id}", headers=auth_headers(users["alice"]))
        assert response.status_code == 200
        assert response.json()["message"] == "x commented"

        other = await client.get(f"/api/v1/notifications/{notification_id}", headers=auth_headers(users["bob"]))
        assert other.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, db_session, users):
        alice = users["alice"]
        notification_id = await make_notification(db_session, alice)

        response = await client.delete(f"/api/v1/notifications/{notification_id}", headers=auth_headers(alice))
        assert response.status_code == 204

        again = await client.delete(f"/api/v1/notifications/{notification_id}", headers=auth_headers(alice))
        assert again.status_code == 404


class TestPreferences:
    @pytest.mark.asyncio
    async def test_defaults(self, client: AsyncClient, users):
        response = await client.get("/api/v1/notifications/preferences", headers=auth_headers(users["alice"]))
        assert response.json() == {
            "answer_notifications": True,
            "comment_notifications": True,
            "mention_notifications": True,
            "vote_notifications": True,
        }

    @pytest.mark.asyncio
    async def test_replace(self, client: AsyncClient, users):
        prefs = {
            "answer_notifications": False,
            "comment_notifications": True,
            "mention_notifications": False,
            "vote_notifications": True,
        }
        response = await client.put(
            "/api/v1/notifications/preferences", json=prefs, headers=auth_headers(users["alice"]),
        )
        assert response.status_code == 200

        response = await client.get("/api/v1/notifications/preferences", headers=auth_headers(users["alice"]))
        assert response.json() == prefs

    @pytest.mark.asyncio
    async def test_partial_update_rejected(self, client: AsyncClient, users):
        response = await client.put(
            "/api/v1/notifications/preferences",
            json={"mention_notifications": False},
            headers=auth_headers(users["alice"]),
        )
        assert response.status_code == 422
