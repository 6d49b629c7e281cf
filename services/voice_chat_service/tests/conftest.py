"""
Pytest configuration and fixtures for voice chat service tests.
"""
from __future__ import annotations
import asyncio
import random

import pytest

from services.shared import AdapterUnavailableError, DurablePersistenceError
from services.voice_chat_service.src.domain.fallback_responses import FallbackResponseEngine
from services.voice_chat_service.src.domain.finalizer import SessionFinalizer
from services.voice_chat_service.src.domain.session_registry import SessionRegistry, SessionRegistrySettings
from services.voice_chat_service.src.infrastructure.collaborators import (
    InMemoryJournalEntryStore, InMemoryUserHistoryProvider,
)
from services.voice_chat_service.src.infrastructure.conversation_store import (
    ConversationStore, InMemoryDurableSessionStore,
)
from services.voice_chat_service.src.infrastructure.live_adapter import LiveMessage


class FakeLiveChannel:
    """Live channel that answers each send with a scripted reply after ``delay`` seconds."""

    def __init__(self, reply: str | None = "I'm listening. Tell me more.", delay: float = 0.0,
                 fail_send: bool = False, hang_send: bool = False) -> None:
        self.reply = reply
        self.delay = delay
        self.fail_send = fail_send
        self.hang_send = hang_send
        self.sent: list[tuple[str | None, bytes | None]] = []
        self.closed = False
        self._callbacks = []

    def on_message(self, callback) -> None:
        self._callbacks.append(callback)

    def emit(self, message: LiveMessage) -> None:
        for callback in self._callbacks:
            callback(message)

    async def send(self, *, text: str | None = None, audio: bytes | None = None) -> None:
        self.sent.append((text, audio))
        if self.fail_send:
            raise ConnectionError("socket closed")
        if self.hang_send:
            await asyncio.sleep(3600)
        if self.reply is None:
            return
        asyncio.get_running_loop().call_later(self.delay, self._complete_turn, self.reply)

    def _complete_turn(self, reply: str) -> None:
        self.emit(LiveMessage(text=reply))
        self.emit(LiveMessage(turn_complete=True))

    async def close(self) -> None:
        self.closed = True


class FakeLiveAdapter:
    """Adapter handing out one FakeLiveChannel per connect."""
    model_name = "fake-live-model"

    def __init__(self, fail: bool = False, **channel_kwargs) -> None:
        self.fail = fail
        self.channel_kwargs = channel_kwargs
        self.channels: list[FakeLiveChannel] = []
        self.prompts: list[str] = []

    async def connect(self, system_prompt, modalities) -> FakeLiveChannel:
        self.prompts.append(system_prompt)
        if self.fail:
            raise AdapterUnavailableError("connection refused")
        channel = FakeLiveChannel(**self.channel_kwargs)
        self.channels.append(channel)
        return channel


class FailingDurableStore(InMemoryDurableSessionStore):
    """Durable tier whose writes always fail."""

    async def save(self, session) -> None:
        raise DurablePersistenceError("durable tier unavailable", operation="save")

    async def append_message(self, session_id, message) -> None:
        raise DurablePersistenceError("durable tier unavailable", operation="append_message")


@pytest.fixture
def registry_settings() -> SessionRegistrySettings:
    return SessionRegistrySettings(enable_idle_reaping=False, live_response_timeout_seconds=0.5)


@pytest.fixture
def durable_store() -> InMemoryDurableSessionStore:
    return InMemoryDurableSessionStore()


@pytest.fixture
def journal_store() -> InMemoryJournalEntryStore:
    return InMemoryJournalEntryStore()


@pytest.fixture
def history_provider() -> InMemoryUserHistoryProvider:
    return InMemoryUserHistoryProvider()


@pytest.fixture
def make_registry(registry_settings, durable_store, journal_store, history_provider):
    """Factory building a SessionRegistry around in-memory collaborators."""
    def _make(**overrides) -> SessionRegistry:
        components = {
            "store": ConversationStore(durable_store),
            "fallback_engine": FallbackResponseEngine(rng=random.Random(7)),
            "finalizer": SessionFinalizer(journal_store),
            "history_provider": history_provider,
            "settings": registry_settings,
        }
        components.update(overrides)
        return SessionRegistry(**components)
    return _make


@pytest.fixture
def live_adapter() -> FakeLiveAdapter:
    return FakeLiveAdapter()


@pytest.fixture
def fake_channel_factory():
    return FakeLiveChannel


@pytest.fixture
def fake_adapter_factory():
    return FakeLiveAdapter


@pytest.fixture
def failing_durable_store() -> FailingDurableStore:
    return FailingDurableStore()
