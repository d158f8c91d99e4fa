"""Unit tests for the notification preference gate."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from stackit.notifications.preferences import (
    DEFAULT_PREFERENCES,
    get_preferences,
    is_enabled,
    should_deliver,
    upsert_preferences,
)
from tests.conftest import make_user


class TestShouldDeliver:
    def test_defaults_enable_everything(self):
        prefs = dict(DEFAULT_PREFERENCES)
        for category in ("answer", "comment", "mention", "vote"):
            assert should_deliver(prefs, category) is True

    def test_disabled_category_blocked(self):
        prefs = dict(DEFAULT_PREFERENCES)
        prefs["mention_notifications"] = False
        assert should_deliver(prefs, "mention") is False
        assert should_deliver(prefs, "answer") is True

    def test_missing_key_means_enabled(self):
        assert should_deliver({}, "comment") is True

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError, match="Invalid notification category"):
            should_deliver(dict(DEFAULT_PREFERENCES), "badge")


class TestPreferenceStore:
    @pytest.mark.asyncio
    async def test_no_row_returns_defaults(self, db_session):
        user_id = await make_user(db_session, "alice")
        assert await get_preferences(db_session, user_id) == DEFAULT_PREFERENCES
        assert await is_enabled(db_session, user_id, "vote") is True

    @pytest.mark.asyncio
    async def test_upsert_replaces_whole_row(self, db_session):
        user_id = await make_user(db_session, "alice")
        await upsert_preferences(
            db_session, user_id,
            answer_notifications=True,
            comment_notifications=False,
            mention_notifications=False,
            vote_notifications=True,
        )
        await db_session.commit()
        assert await is_enabled(db_session, user_id, "mention") is False
        assert await is_enabled(db_session, user_id, "comment") is False

        await upsert_preferences(
            db_session, user_id,
            answer_notifications=False,
            comment_notifications=True,
            mention_notifications=True,
            vote_notifications=True,
        )
        await db_session.commit()
        prefs = await get_preferences(db_session, user_id)
        assert prefs == {
            "answer_notifications": False,
            "comment_notifications": True,
            "mention_notifications": True,
            "vote_notifications": True,
        }

    @pytest.mark.asyncio
    async def test_lookup_failure_defaults_to_enabled(self, monkeypatch):
        db = AsyncMock()
        monkeypatch.setattr(
            "stackit.notifications.preferences.get_preferences",
            AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down"))),
        )
        assert await is_enabled(db, 1, "answer") is True
        db.rollback.assert_awaited_once()
