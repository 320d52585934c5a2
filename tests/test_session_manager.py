"""Tests for in-memory conversation sessions and the message log."""

from datetime import UTC, datetime, timedelta

import pytest

from assistant.services.message_log import InMemoryMessageLog
from assistant.services.session_manager import InMemorySessionManager


class TestSessionManager:
    """Tests for InMemorySessionManager."""

    def test_creates_sessions_with_unique_ids(self):
        manager = InMemorySessionManager()
        first = manager.get_or_create_session()
        second = manager.get_or_create_session()

        assert first.conversation_id != second.conversation_id
        assert manager.get_session_count() == 2

    def test_returns_existing_session(self):
        manager = InMemorySessionManager()
        session = manager.get_or_create_session()

        assert manager.get_or_create_session(session.conversation_id) is session
        assert manager.get_session(session.conversation_id) is session

    def test_sessions_are_isolated(self):
        manager = InMemorySessionManager()
        first = manager.get_or_create_session()
        second = manager.get_or_create_session()

        assert first.store is not second.store
        assert first.lock is not second.lock

    def test_expired_sessions_are_removed(self):
        manager = InMemorySessionManager(session_timeout_minutes=1)
        session = manager.get_or_create_session()
        session.last_activity = datetime.now(UTC) - timedelta(minutes=5)

        assert manager.get_session(session.conversation_id) is None

    @pytest.mark.asyncio
    async def test_busy_sessions_do_not_expire(self):
        manager = InMemorySessionManager(session_timeout_minutes=1)
        session = manager.get_or_create_session()
        session.last_activity = datetime.now(UTC) - timedelta(minutes=5)

        async with session.lock:
            assert manager.get_session_count() == 1

    def test_delete_session(self):
        manager = InMemorySessionManager()
        session = manager.get_or_create_session()

        assert manager.delete_session(session.conversation_id)
        assert not manager.delete_session(session.conversation_id)


class TestMessageLog:
    """Tests for the persisted message log."""

    @pytest.mark.asyncio
    async def test_append_and_list(self):
        log = InMemoryMessageLog()
        await log.append("conv_1", "user", "Hello")
        await log.append("conv_2", "user", "Other")
        await log.append("conv_1", "assistant", "Hi!")

        messages = await log.list("conv_1")

        assert [(message.role, message.content) for message in messages] == [("user", "Hello"), ("assistant", "Hi!")]
        assert await log.list("missing") == []
