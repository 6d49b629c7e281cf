"""
Lumen Voice Chat Service - Session Registry.
Lifecycle state machine for therapeutic voice sessions: start, turn processing,
live/fallback reply selection, end-of-session journaling and idle reaping.
"""
from __future__ import annotations
import asyncio
import base64
import binascii
import math
import random
from datetime import datetime, timedelta
from typing import Any, TYPE_CHECKING
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from services.shared import (
    AdapterUnavailableError, ServiceBase, SessionAlreadyExistsError, SessionNotFoundError, ValidationError,
)

from ..infrastructure.collaborators import InMemoryJournalEntryStore
from ..infrastructure.conversation_store import ConversationStore
from ..infrastructure.live_adapter import LiveTurnBridge
from ..schemas import (
    ConversationMessage, Emotion, MessageRole, MoodTrend, MoodTrends, ResponseSource, SessionMetadata,
    SessionRecord, SessionStatus, TherapeuticContext, UserHistorySnapshot, utc_now,
)
from .fallback_responses import FallbackResponseEngine
from .finalizer import SessionFinalizer
from .mode_selector import TherapeuticModeSelector
from .models import AssistantReply, TherapeuticProfile

if TYPE_CHECKING:
    from ..infrastructure.collaborators import SpeechTranscriber, UserHistoryProvider
    from ..infrastructure.live_adapter import LiveConversationAdapter

logger = structlog.get_logger(__name__)

MIN_INTENSITY = 1
MAX_INTENSITY = 10


class SessionRegistrySettings(BaseSettings):
    """Session registry configuration."""
    live_response_timeout_seconds: float = Field(default=15.0, gt=0.0, le=120.0)
    idle_timeout_minutes: int = Field(default=30, ge=1)
    reap_interval_seconds: float = Field(default=60.0, gt=0.0)
    enable_idle_reaping: bool = Field(default=True)
    recent_emotions_limit: int = Field(default=10, ge=1, le=50)
    recent_games_limit: int = Field(default=5, ge=1, le=50)
    recent_journals_limit: int = Field(default=5, ge=1, le=50)
    audio_placeholder_transcription: str = Field(default="I'm feeling overwhelmed and need some support.")
    error_reply: str = Field(default="I'm having trouble processing your message right now. Could you try again?")
    response_modalities: list[str] = Field(default_factory=lambda: ["AUDIO", "TEXT"])
    default_user_sessions_limit: int = Field(default=10, ge=1, le=100)
    model_config = SettingsConfigDict(env_prefix="VOICE_CHAT_REGISTRY_", env_file=".env", extra="ignore")


def analyze_mood_trends(emotions: list[dict[str, Any]]) -> MoodTrends:
    """
    Derive a trend from emotion entries ordered most recent first.

    The three most recent intensities are compared with the three before
    them; a gap of more than one point in either direction sets the trend.
    """
    intensities = [float(e["intensity"]) for e in emotions if isinstance(e.get("intensity"), (int, float))]
    if not intensities:
        return MoodTrends()
    average = sum(intensities) / len(intensities)
    recent, older = intensities[:3], intensities[3:6]
    recent_avg = sum(recent) / len(recent) if recent else average
    older_avg = sum(older) / len(older) if older else average
    trend = MoodTrend.STABLE
    if recent_avg > older_avg + 1:
        trend = MoodTrend.IMPROVING
    elif recent_avg < older_avg - 1:
        trend = MoodTrend.DECLINING
    return MoodTrends(trend=trend, average_intensity=math.floor(average + 0.5))


def build_history_snapshot(raw: dict[str, list[dict[str, Any]]], settings: SessionRegistrySettings) -> UserHistorySnapshot:
    emotions = list(raw.get("emotions", []))[:settings.recent_emotions_limit]
    return UserHistorySnapshot(
        recent_emotions=emotions,
        recent_games=list(raw.get("games", []))[:settings.recent_games_limit],
        recent_journals=list(raw.get("journals", []))[:settings.recent_journals_limit],
        mood_trends=analyze_mood_trends(emotions),
    )


def compute_duration_minutes(session: SessionRecord) -> int:
    """Whole minutes between the first and last log entries, rounded half up."""
    if session.conversation_log:
        started, finished = session.conversation_log[0].timestamp, session.conversation_log[-1].timestamp
    else:
        started, finished = session.start_time, session.end_time or session.start_time
    minutes = max((finished - started).total_seconds(), 0.0) / 60
    return math.floor(minutes + 0.5)


class SessionRegistry(ServiceBase):
    """
    Owns every active voice session in the process.

    Turns and session end are serialized per session by an asyncio.Lock, so a
    session's log always alternates one user entry with one assistant entry.
    Ended session ids stay reserved for the lifetime of the registry.
    """

    def __init__(
        self,
        store: ConversationStore | None = None,
        selector: TherapeuticModeSelector | None = None,
        fallback_engine: FallbackResponseEngine | None = None,
        finalizer: SessionFinalizer | None = None,
        history_provider: UserHistoryProvider | None = None,
        live_adapter: LiveConversationAdapter | None = None,
        transcriber: SpeechTranscriber | None = None,
        settings: SessionRegistrySettings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or SessionRegistrySettings()
        self._store = store or ConversationStore()
        self._selector = selector or TherapeuticModeSelector()
        self._fallback = fallback_engine or FallbackResponseEngine(rng=rng)
        self._finalizer = finalizer or SessionFinalizer(InMemoryJournalEntryStore())
        self._history_provider = history_provider
        self._live_adapter = live_adapter
        self._transcriber = transcriber
        self._active: set[str] = set()
        self._known_ids: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}
        self._bridges: dict[str, LiveTurnBridge] = {}
        self._reaper_task: asyncio.Task[None] | None = None
        self._initialized = False
        self._stats = {
            "sessions_started": 0,
            "sessions_ended": 0,
            "sessions_reaped": 0,
            "turns_processed": 0,
            "live_responses": 0,
            "fallback_responses": 0,
            "error_responses": 0,
            "live_connect_failures": 0,
            "history_fallbacks": 0,
            "journal_failures": 0,
        }

    async def initialize(self) -> None:
        logger.info("session_registry_initializing")
        if self._settings.enable_idle_reaping and self._reaper_task is None:
            self._reaper_task = asyncio.create_task(self._reap_loop())
        self._initialized = True
        logger.info(
            "session_registry_initialized",
            live_enabled=self._live_adapter is not None,
            idle_reaping=self._settings.enable_idle_reaping,
        )

    async def shutdown(self) -> None:
        logger.info("session_registry_shutting_down", stats=self._stats)
        if self._reaper_task is not None:
            self._reaper_task.cancel()
            try:
                await self._reaper_task
            except asyncio.CancelledError:
                pass
            self._reaper_task = None
        for session_id in list(self._bridges):
            await self._close_bridge(session_id)
        self._initialized = False

    async def get_status(self) -> dict[str, Any]:
        return {
            "status": "operational" if self._initialized else "initializing",
            "initialized": self._initialized,
            "active_sessions": len(self._active),
            "live_channels": len(self._bridges),
            "live_model": self._live_adapter.model_name if self._live_adapter else None,
            "statistics": dict(self._stats),
            "store": self._store.stats,
        }

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    async def initialize_session(
        self, session_id: str, user_id: str, emotion: Emotion | str, intensity: int,
    ) -> SessionRecord:
        """Start a session, greet the user and return the new record."""
        if not session_id:
            raise ValidationError("Session id is required", field="session_id")
        if not user_id:
            raise ValidationError("User id is required", field="user_id")
        emotion_value = self._validate_emotion(emotion)
        if isinstance(intensity, bool) or not isinstance(intensity, int) or not MIN_INTENSITY <= intensity <= MAX_INTENSITY:
            raise ValidationError(
                f"Intensity must be an integer between {MIN_INTENSITY} and {MAX_INTENSITY}",
                field="intensity", value=intensity,
            )
        if session_id in self._known_ids:
            raise SessionAlreadyExistsError(session_id)
        self._known_ids.add(session_id)

        history = await self._load_history(user_id)
        profile = self._selector.select(emotion_value.value)
        session = SessionRecord(
            session_id=session_id,
            user_id=user_id,
            emotion=emotion_value,
            intensity=intensity,
            therapeutic_context=TherapeuticContext(
                primary_concern=emotion_value.value,
                primary_approach=profile.primary_approach,
                recommended_techniques=list(profile.techniques),
                session_goals=list(profile.session_goals),
                user_history=history,
            ),
            metadata=SessionMetadata(response_modalities=list(self._settings.response_modalities)),
        )
        if await self._open_live_channel(session, profile):
            session.metadata.live_connected = True
            session.metadata.model_used = self._live_adapter.model_name

        self._locks[session_id] = asyncio.Lock()
        self._active.add(session_id)
        await self._store.create(session)
        await self._store.append(
            session_id,
            ConversationMessage(role=MessageRole.ASSISTANT, content=self._welcome_message(session)),
        )
        self._stats["sessions_started"] += 1
        logger.info(
            "voice_session_initialized",
            session_id=session_id,
            user_id=user_id,
            emotion=emotion_value.value,
            intensity=intensity,
            approach=profile.primary_approach,
            live_connected=session.metadata.live_connected,
            memory_only=session.metadata.memory_only,
        )
        return session

    async def process_text_input(self, session_id: str, text: str) -> str:
        """Record a typed user turn and return the assistant reply."""
        lock = self._require_lock(session_id)
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Message text must not be empty", field="text")
        async with lock:
            session = await self._require_active(session_id)
            await self._store.append(session_id, ConversationMessage(role=MessageRole.USER, content=text))
            return await self._respond(session, text=text)

    async def process_audio_input(self, session_id: str, audio_data: str) -> str:
        """Record a spoken user turn (base64 audio) and return the assistant reply."""
        lock = self._require_lock(session_id)
        audio = self._decode_audio(audio_data)
        async with lock:
            session = await self._require_active(session_id)
            user_text = await self._transcribe(session_id, audio_data)
            await self._store.append(
                session_id,
                ConversationMessage(role=MessageRole.USER, content=user_text, audio_data=audio_data),
            )
            return await self._respond(session, text=user_text, audio=audio)

    async def end_session(self, session_id: str) -> str | None:
        """End an active session and return its journal entry id. Unknown or ended ids return None."""
        session = await self._end_session(session_id)
        return session.metadata.journal_entry_id if session is not None else None

    async def _end_session(self, session_id: str) -> SessionRecord | None:
        """Returns the ended record, or None when this call did not end the session."""
        lock = self._locks.get(session_id)
        if lock is None or session_id not in self._active:
            return None
        async with lock:
            session = await self._store.get(session_id)
            if session is None or not session.is_active:
                return None
            self._active.discard(session_id)
            await self._close_bridge(session_id)
            session.status = SessionStatus.ENDED
            session.end_time = utc_now()
            session.duration_minutes = compute_duration_minutes(session)
            await self._store.save(session)
            journal_entry_id = await self._finalize(session)
            if journal_entry_id is not None:
                session.metadata.journal_entry_id = journal_entry_id
                await self._store.save(session)
            self._store.evict(session_id)
        self._locks.pop(session_id, None)
        self._stats["sessions_ended"] += 1
        logger.info(
            "voice_session_ended",
            session_id=session_id,
            duration_minutes=session.duration_minutes,
            total_messages=session.metadata.total_messages,
            journal_entry_id=journal_entry_id,
        )
        return session

    async def get_session(self, session_id: str) -> SessionRecord | None:
        """Snapshot of a session. Changes to it never reach the stored record."""
        session = await self._store.get(session_id)
        return session.model_copy(deep=True) if session is not None else None

    def get_active_sessions_count(self) -> int:
        return len(self._active)

    async def get_user_sessions(self, user_id: str, limit: int | None = None) -> list[SessionRecord]:
        """Sessions of a user, most recent first."""
        limit = limit if limit is not None else self._settings.default_user_sessions_limit
        if limit < 1:
            raise ValidationError("Limit must be at least 1", field="limit", value=limit)
        return [s.model_copy(deep=True) for s in await self._store.list_by_user(user_id, limit)]

    async def reap_idle_sessions(self, now: datetime | None = None) -> list[str]:
        """End every active session idle for longer than the configured timeout."""
        cutoff = (now or utc_now()) - timedelta(minutes=self._settings.idle_timeout_minutes)
        idle: list[str] = []
        for session_id in list(self._active):
            session = await self._store.get(session_id)
            if session is not None and session.is_active and session.last_activity < cutoff:
                idle.append(session_id)
        reaped: list[str] = []
        for session_id in idle:
            if await self._end_session(session_id) is None:
                continue
            reaped.append(session_id)
            self._stats["sessions_reaped"] += 1
            logger.info("idle_session_reaped", session_id=session_id)
        return reaped

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.reap_interval_seconds)
            try:
                await self.reap_idle_sessions()
            except Exception as e:
                logger.error("idle_session_reap_failed", error=str(e))

    def _require_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None or session_id not in self._active:
            raise SessionNotFoundError(session_id)
        return lock

    async def _require_active(self, session_id: str) -> SessionRecord:
        session = await self._store.get(session_id)
        if session is None or not session.is_active:
            raise SessionNotFoundError(session_id)
        return session

    @staticmethod
    def _validate_emotion(emotion: Emotion | str) -> Emotion:
        if isinstance(emotion, Emotion):
            return emotion
        try:
            return Emotion(str(emotion).strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unsupported emotion '{emotion}'", field="emotion", value=emotion, cause=e) from e

    @staticmethod
    def _decode_audio(audio_data: str) -> bytes:
        if not isinstance(audio_data, str) or not audio_data:
            raise ValidationError("Audio payload must be a non-empty base64 string", field="audio_data")
        try:
            return base64.b64decode(audio_data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError("Audio payload is not valid base64", field="audio_data", cause=e) from e

    async def _load_history(self, user_id: str) -> UserHistorySnapshot:
        if self._history_provider is None:
            return UserHistorySnapshot()
        try:
            raw = await self._history_provider.get_recent(user_id)
            return build_history_snapshot(raw, self._settings)
        except Exception as e:
            self._stats["history_fallbacks"] += 1
            logger.warning("user_history_unavailable", user_id=user_id, error=str(e))
            return UserHistorySnapshot()

    async def _open_live_channel(self, session: SessionRecord, profile: TherapeuticProfile) -> bool:
        if self._live_adapter is None:
            return False
        try:
            channel = await self._live_adapter.connect(profile.system_prompt, self._settings.response_modalities)
        except Exception as e:
            self._stats["live_connect_failures"] += 1
            logger.warning("live_channel_connect_failed", session_id=session.session_id, error=str(e))
            return False
        self._bridges[session.session_id] = LiveTurnBridge(channel, session_id=session.session_id)
        return True

    async def _close_bridge(self, session_id: str) -> None:
        bridge = self._bridges.pop(session_id, None)
        if bridge is None:
            return
        try:
            await bridge.close()
        except Exception as e:
            logger.warning("live_channel_close_failed", session_id=session_id, error=str(e))

    @staticmethod
    def _welcome_message(session: SessionRecord) -> str:
        approach = session.therapeutic_context.primary_approach
        if session.metadata.live_connected:
            return (
                f"Welcome to your therapeutic session. I'm here to help you with {approach}. "
                "I can hear and respond to your voice, or you can type if you prefer. "
                "What would you like to talk about today?"
            )
        return (
            f"Welcome to your therapeutic session. I'm here to help you with {approach}. "
            "What would you like to discuss today?"
        )

    async def _transcribe(self, session_id: str, audio_data: str) -> str:
        placeholder = self._settings.audio_placeholder_transcription
        if self._transcriber is None:
            return placeholder
        try:
            text = await self._transcriber.transcribe(audio_data)
        except Exception as e:
            logger.warning("audio_transcription_failed", session_id=session_id, error=str(e))
            return placeholder
        return text.strip() or placeholder

    async def _respond(self, session: SessionRecord, *, text: str, audio: bytes | None = None) -> str:
        """Produce and record exactly one assistant entry for the current turn."""
        try:
            reply = await self._generate_reply(session, text=text, audio=audio)
        except Exception as e:
            logger.error("turn_processing_failed", session_id=session.session_id, error=str(e), exc_info=True)
            reply = AssistantReply(text=self._settings.error_reply, source=ResponseSource.ERROR)
        if reply.source == ResponseSource.LIVE:
            session.metadata.live_responses += 1
            self._stats["live_responses"] += 1
        elif reply.source == ResponseSource.FALLBACK:
            session.metadata.fallback_responses += 1
            self._stats["fallback_responses"] += 1
        else:
            self._stats["error_responses"] += 1
        await self._store.append(
            session.session_id,
            ConversationMessage(role=MessageRole.ASSISTANT, content=reply.text, timestamp=reply.produced_at),
        )
        self._stats["turns_processed"] += 1
        return reply.text

    async def _generate_reply(self, session: SessionRecord, *, text: str, audio: bytes | None) -> AssistantReply:
        bridge = self._bridges.get(session.session_id)
        if bridge is not None and not bridge.is_closed:
            try:
                if audio is not None:
                    reply_text = await bridge.ask(audio=audio, timeout=self._settings.live_response_timeout_seconds)
                else:
                    reply_text = await bridge.ask(text=text, timeout=self._settings.live_response_timeout_seconds)
                if reply_text:
                    return AssistantReply(text=reply_text, source=ResponseSource.LIVE)
                logger.info("live_reply_empty", session_id=session.session_id)
            except asyncio.TimeoutError:
                logger.warning(
                    "live_reply_timeout",
                    session_id=session.session_id,
                    timeout_seconds=self._settings.live_response_timeout_seconds,
                )
            except AdapterUnavailableError as e:
                logger.warning("live_reply_unavailable", session_id=session.session_id, error=e.message)
            except Exception as e:
                logger.warning("live_reply_failed", session_id=session.session_id, error=str(e))
        return AssistantReply(text=self._fallback.respond(session.emotion.value), source=ResponseSource.FALLBACK)

    async def _finalize(self, session: SessionRecord) -> str | None:
        try:
            return await self._finalizer.finalize(session)
        except Exception as e:
            self._stats["journal_failures"] += 1
            logger.error("session_finalization_failed", session_id=session.session_id, error=str(e))
            return None
