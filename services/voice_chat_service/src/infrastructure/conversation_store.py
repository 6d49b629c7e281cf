"""
Lumen Voice Chat Service - Conversation Store.
Two-tier session repository: authoritative process memory mirrored to durable storage.

Consistency window: every mutation lands in memory first and is then written
to the durable tier. A durable failure downgrades only that session to
memory-only; from then on it is never written durably again and is lost if the
process restarts.
"""
from __future__ import annotations
from typing import Protocol, runtime_checkable
import structlog

from services.shared import DurablePersistenceError

from ..schemas import ConversationMessage, SessionRecord, SessionStatus

logger = structlog.get_logger(__name__)


@runtime_checkable
class DurableSessionStore(Protocol):
    """Durable backend for session records. Failures raise DurablePersistenceError."""

    async def save(self, session: SessionRecord) -> None: ...

    async def append_message(self, session_id: str, message: ConversationMessage) -> None: ...

    async def get(self, session_id: str) -> SessionRecord | None: ...

    async def list_by_user(self, user_id: str, limit: int) -> list[SessionRecord]: ...


class InMemoryDurableSessionStore:
    """Durable tier stand-in for development and tests; keeps deep copies."""

    def __init__(self) -> None:
        self._storage: dict[str, SessionRecord] = {}
        self._user_index: dict[str, list[str]] = {}

    async def save(self, session: SessionRecord) -> None:
        self._storage[session.session_id] = session.model_copy(deep=True)
        ids = self._user_index.setdefault(session.user_id, [])
        if session.session_id not in ids:
            ids.append(session.session_id)

    async def append_message(self, session_id: str, message: ConversationMessage) -> None:
        stored = self._storage.get(session_id)
        if stored is None:
            raise DurablePersistenceError(
                f"Session {session_id} has no durable record", operation="append_message",
            )
        stored.record_message(message.model_copy())

    async def get(self, session_id: str) -> SessionRecord | None:
        stored = self._storage.get(session_id)
        return stored.model_copy(deep=True) if stored else None

    async def list_by_user(self, user_id: str, limit: int) -> list[SessionRecord]:
        sessions = [self._storage[sid] for sid in self._user_index.get(user_id, []) if sid in self._storage]
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return [s.model_copy(deep=True) for s in sessions[:limit]]

    async def count(self) -> int:
        return len(self._storage)


class ConversationStore:
    """Session repository combining the memory tier with a durable mirror."""

    def __init__(self, durable: DurableSessionStore | None = None) -> None:
        self._durable = durable
        self._memory: dict[str, SessionRecord] = {}
        self._memory_only: set[str] = set()
        self._stats = {"durable_writes": 0, "durable_failures": 0, "degraded_sessions": 0}

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    def is_memory_only(self, session_id: str) -> bool:
        return self._durable is None or session_id in self._memory_only

    async def create(self, session: SessionRecord) -> bool:
        """Register a new session. Returns False when it is memory-only."""
        self._memory[session.session_id] = session
        persisted = await self._mirror(session.session_id, "save", session)
        session.metadata.memory_only = not persisted
        return persisted

    async def append(self, session_id: str, message: ConversationMessage) -> None:
        session = self._memory.get(session_id)
        if session is None:
            raise KeyError(session_id)
        session.record_message(message)
        await self._mirror(session_id, "append_message", message)

    async def save(self, session: SessionRecord) -> bool:
        """Mirror a whole-record change such as ending the session."""
        self._memory[session.session_id] = session
        return await self._mirror(session.session_id, "save", session)

    async def get(self, session_id: str) -> SessionRecord | None:
        session = self._memory.get(session_id)
        if session is not None:
            return session
        if self._durable is None:
            return None
        try:
            return await self._durable.get(session_id)
        except Exception as e:
            logger.warning("durable_session_read_failed", session_id=session_id, error=str(e))
            return None

    async def list_by_user(self, user_id: str, limit: int) -> list[SessionRecord]:
        """Most recent first; memory copies win over durable ones."""
        merged: dict[str, SessionRecord] = {}
        if self._durable is not None:
            try:
                for session in await self._durable.list_by_user(user_id, limit):
                    merged[session.session_id] = session
            except Exception as e:
                logger.warning("durable_session_list_failed", user_id=user_id, error=str(e))
        for session in self._memory.values():
            if session.user_id == user_id:
                merged[session.session_id] = session
        ordered = sorted(merged.values(), key=lambda s: s.start_time, reverse=True)
        return ordered[:limit]

    def active_count(self) -> int:
        return sum(1 for s in self._memory.values() if s.status == SessionStatus.ACTIVE)

    def evict(self, session_id: str) -> bool:
        """Drop the memory copy of a durably persisted session."""
        if self.is_memory_only(session_id) or session_id not in self._memory:
            return False
        del self._memory[session_id]
        return True

    async def _mirror(self, session_id: str, operation: str, payload: object) -> bool:
        if self.is_memory_only(session_id):
            return False
        try:
            if operation == "save":
                await self._durable.save(payload)
            else:
                await self._durable.append_message(session_id, payload)
        except Exception as e:
            self._degrade(session_id, operation, e)
            return False
        self._stats["durable_writes"] += 1
        return True

    def _degrade(self, session_id: str, operation: str, error: Exception) -> None:
        self._memory_only.add(session_id)
        self._stats["durable_failures"] += 1
        self._stats["degraded_sessions"] = len(self._memory_only)
        session = self._memory.get(session_id)
        if session is not None:
            session.metadata.memory_only = True
        logger.warning(
            "session_degraded_to_memory_only",
            session_id=session_id,
            operation=operation,
            error_type=type(error).__name__,
            error=str(error),
        )
