"""Tests for the arq notification worker jobs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from stackit.db.models import Notification
from stackit.notifications.events import UserMentionedEvent
from stackit.qa.service import create_question
from stackit.workers.notification_worker import (
    WorkerSettings,
    cleanup_notifications,
    fan_out_content_event,
)
from tests.conftest import FakeRedis, make_notification


class TestWorkerSettings:
    def test_registers_jobs(self) -> None:
        names = {f.__name__ for f in WorkerSettings.functions}
        assert names == {"fan_out_content_event", "cleanup_notifications"}

    def test_cleanup_cron(self) -> None:
        [job] = WorkerSettings.cron_jobs
        assert job.coroutine is cleanup_notifications
        assert job.hour == {3}
        assert job.minute == {0}


class TestFanOutJob:
    @pytest.mark.asyncio
    async def test_creates_notifications_from_payload(self, db_session, users) -> None:
        redis = FakeRedis()
        question = await create_question(db_session, users["alice"], "Who knows asyncio?", "@bob?", [])
        await db_session.commit()
        payload = UserMentionedEvent(
            actor_id=users["alice"], body="@bob?", question_id=question.id,
        ).model_dump(mode="json")

        created = await fan_out_content_event({"redis": redis}, payload)

        assert len(created) == 1
        assert len(redis.messages_for(users["bob"])) == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_fails_the_job(self, db) -> None:
        with pytest.raises(ValidationError):
            await fan_out_content_event({}, {"kind": "nope"})


class TestCleanupJob:
    @pytest.mark.asyncio
    async def test_removes_expired(self, db_session, users) -> None:
        old = datetime.now(timezone.utc) - timedelta(days=45)
        await make_notification(db_session, users["alice"], created_at=old)
        await make_notification(db_session, users["alice"])

        assert await cleanup_notifications({"redis": FakeRedis()}) == 1
        remaining = await db_session.execute(select(func.count()).select_from(Notification))
        assert remaining.scalar_one() == 1
