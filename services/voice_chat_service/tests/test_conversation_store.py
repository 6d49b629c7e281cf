"""
Unit tests for Voice Chat Service Conversation Store.
Tests the memory tier, durable mirroring and per-session degradation.
"""
from __future__ import annotations
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from services.shared import DurablePersistenceError
from services.voice_chat_service.src.infrastructure.conversation_store import (
    ConversationStore,
    DurableSessionStore,
    InMemoryDurableSessionStore,
)
from services.voice_chat_service.src.schemas import (
    ConversationMessage,
    Emotion,
    MessageRole,
    SessionRecord,
    SessionStatus,
    TherapeuticContext,
)


def _record(session_id: str, user_id: str = "u1", start: datetime | None = None) -> SessionRecord:
    return SessionRecord(
        session_id=session_id, user_id=user_id, emotion=Emotion.STRESS, intensity=5,
        start_time=start or datetime.now(timezone.utc),
        therapeutic_context=TherapeuticContext(primary_concern="stress", primary_approach="CBT"),
    )


def _message(content: str, role: MessageRole = MessageRole.USER) -> ConversationMessage:
    return ConversationMessage(role=role, content=content)


class TestInMemoryDurableSessionStore:
    """Tests for the in-process durable tier."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryDurableSessionStore(), DurableSessionStore)

    @pytest.mark.asyncio
    async def test_keeps_independent_copies(self) -> None:
        durable = InMemoryDurableSessionStore()
        record = _record("s1")
        await durable.save(record)
        record.record_message(_message("not yet mirrored"))
        stored = await durable.get("s1")
        assert stored.conversation_log == []

    @pytest.mark.asyncio
    async def test_append_to_missing_record_fails(self) -> None:
        durable = InMemoryDurableSessionStore()
        with pytest.raises(DurablePersistenceError):
            await durable.append_message("missing", _message("hello"))


class TestConversationStore:
    """Tests for the two-tier session repository."""

    @pytest.mark.asyncio
    async def test_create_mirrors_to_durable(self) -> None:
        durable = InMemoryDurableSessionStore()
        store = ConversationStore(durable)
        record = _record("s1")
        assert await store.create(record) is True
        assert record.metadata.memory_only is False
        assert await durable.count() == 1

    @pytest.mark.asyncio
    async def test_append_updates_both_tiers(self) -> None:
        durable = InMemoryDurableSessionStore()
        store = ConversationStore(durable)
        await store.create(_record("s1"))
        await store.append("s1", _message("hello"))
        await store.append("s1", _message("hi there", MessageRole.ASSISTANT))
        memory_copy = await store.get("s1")
        durable_copy = await durable.get("s1")
        assert [m.content for m in memory_copy.conversation_log] == ["hello", "hi there"]
        assert [m.content for m in durable_copy.conversation_log] == ["hello", "hi there"]
        assert durable_copy.metadata.user_messages == 1
        assert durable_copy.metadata.assistant_messages == 1

    @pytest.mark.asyncio
    async def test_append_unknown_session_raises_key_error(self) -> None:
        store = ConversationStore(InMemoryDurableSessionStore())
        with pytest.raises(KeyError):
            await store.append("missing", _message("hello"))

    @pytest.mark.asyncio
    async def test_without_durable_tier_everything_is_memory_only(self) -> None:
        store = ConversationStore()
        record = _record("s1")
        assert await store.create(record) is False
        assert store.is_memory_only("s1") is True
        assert record.metadata.memory_only is True

    @pytest.mark.asyncio
    async def test_create_failure_degrades_only_that_session(self) -> None:
        durable = AsyncMock(spec=InMemoryDurableSessionStore)
        durable.save.side_effect = [DurablePersistenceError("write refused", operation="save"), None]
        store = ConversationStore(durable)
        degraded, healthy = _record("s1"), _record("s2")
        assert await store.create(degraded) is False
        assert await store.create(healthy) is True
        assert store.is_memory_only("s1") is True
        assert store.is_memory_only("s2") is False
        assert degraded.metadata.memory_only is True
        assert store.stats["degraded_sessions"] == 1

    @pytest.mark.asyncio
    async def test_degraded_session_never_written_again(self) -> None:
        durable = AsyncMock(spec=InMemoryDurableSessionStore)
        durable.save.side_effect = ConnectionError("connection reset")
        store = ConversationStore(durable)
        await store.create(_record("s1"))
        await store.append("s1", _message("hello"))
        await store.save(await store.get("s1"))
        assert durable.save.await_count == 1
        durable.append_message.assert_not_awaited()
        session = await store.get("s1")
        assert len(session.conversation_log) == 1

    @pytest.mark.asyncio
    async def test_append_failure_degrades_session(self) -> None:
        durable = AsyncMock(spec=InMemoryDurableSessionStore)
        durable.append_message.side_effect = DurablePersistenceError("list push failed")
        store = ConversationStore(durable)
        await store.create(_record("s1"))
        await store.append("s1", _message("hello"))
        assert store.is_memory_only("s1") is True
        assert store.stats["durable_failures"] == 1

    @pytest.mark.asyncio
    async def test_get_falls_back_to_durable(self) -> None:
        durable = InMemoryDurableSessionStore()
        await durable.save(_record("persisted"))
        store = ConversationStore(durable)
        session = await store.get("persisted")
        assert session is not None
        assert session.session_id == "persisted"

    @pytest.mark.asyncio
    async def test_durable_read_failure_is_a_miss(self) -> None:
        durable = AsyncMock(spec=InMemoryDurableSessionStore)
        durable.get.side_effect = DurablePersistenceError("read failed")
        store = ConversationStore(durable)
        assert await store.get("s1") is None

    @pytest.mark.asyncio
    async def test_list_by_user_merges_tiers(self) -> None:
        durable = InMemoryDurableSessionStore()
        await durable.save(_record("old", start=datetime(2024, 1, 1, tzinfo=timezone.utc)))
        await durable.save(_record("elsewhere", user_id="u2"))
        store = ConversationStore(durable)
        await store.create(_record("new"))
        await store.append("new", _message("hello"))
        sessions = await store.list_by_user("u1", limit=10)
        assert [s.session_id for s in sessions] == ["new", "old"]
        assert len(sessions[0].conversation_log) == 1

    @pytest.mark.asyncio
    async def test_list_by_user_survives_durable_failure(self) -> None:
        durable = AsyncMock(spec=InMemoryDurableSessionStore)
        durable.list_by_user.side_effect = DurablePersistenceError("scan failed")
        store = ConversationStore(durable)
        await store.create(_record("s1"))
        assert [s.session_id for s in await store.list_by_user("u1", limit=5)] == ["s1"]

    @pytest.mark.asyncio
    async def test_active_count(self) -> None:
        store = ConversationStore(InMemoryDurableSessionStore())
        await store.create(_record("s1"))
        ended = _record("s2")
        ended.status = SessionStatus.ENDED
        await store.create(ended)
        assert store.active_count() == 1

    @pytest.mark.asyncio
    async def test_evict_only_persisted_sessions(self) -> None:
        durable = AsyncMock(spec=InMemoryDurableSessionStore)
        durable.save.side_effect = [None, DurablePersistenceError("write refused")]
        durable.get.return_value = None
        store = ConversationStore(durable)
        await store.create(_record("persisted"))
        await store.create(_record("degraded"))
        assert store.evict("persisted") is True
        assert store.evict("degraded") is False
        assert await store.get("degraded") is not None

    @pytest.mark.asyncio
    async def test_evict_without_durable_tier_keeps_session(self) -> None:
        store = ConversationStore()
        await store.create(_record("s1"))
        assert store.evict("s1") is False
        assert await store.get("s1") is not None
