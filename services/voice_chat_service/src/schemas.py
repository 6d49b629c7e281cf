"""
Lumen Voice Chat Service - Session and Journal Schemas.
Pydantic models for voice session records, conversation logs and journal entries.
"""
from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Emotion(str, Enum):
    """Emotions a user can report when starting a session."""
    HAPPY = "happy"
    SAD = "sad"
    LONELINESS = "loneliness"
    ANXIETY = "anxiety"
    FRUSTRATION = "frustration"
    STRESS = "stress"
    LETHARGY = "lethargy"
    FEAR = "fear"
    GRIEF = "grief"


class SessionStatus(str, Enum):
    """Voice session lifecycle status. ENDED is terminal."""
    ACTIVE = "active"
    ENDED = "ended"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class MoodTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class ResponseSource(str, Enum):
    """Where an assistant reply came from."""
    LIVE = "live"
    FALLBACK = "fallback"
    ERROR = "error"


class ConversationMessage(BaseModel):
    """Single entry of a session conversation log."""
    timestamp: datetime = Field(default_factory=utc_now)
    role: MessageRole
    content: str
    audio_data: str | None = Field(default=None, description="Base64 encoded audio payload")


class MoodTrends(BaseModel):
    trend: MoodTrend = MoodTrend.STABLE
    average_intensity: int = 5


class UserHistorySnapshot(BaseModel):
    """Bounded snapshot of recent user activity captured at session start."""
    recent_emotions: list[dict[str, Any]] = Field(default_factory=list)
    recent_games: list[dict[str, Any]] = Field(default_factory=list)
    recent_journals: list[dict[str, Any]] = Field(default_factory=list)
    mood_trends: MoodTrends = Field(default_factory=MoodTrends)


class TherapeuticContext(BaseModel):
    primary_concern: str
    primary_approach: str
    recommended_techniques: list[str] = Field(default_factory=list)
    session_goals: list[str] = Field(default_factory=list)
    user_history: UserHistorySnapshot = Field(default_factory=UserHistorySnapshot)


class SessionMetadata(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_used: str = "fallback"
    response_modalities: list[str] = Field(default_factory=list)
    total_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    live_responses: int = 0
    fallback_responses: int = 0
    live_connected: bool = False
    memory_only: bool = False
    journal_entry_id: str | None = None


class SessionRecord(BaseModel):
    """Voice therapy session with its append-only conversation log."""
    session_id: str
    user_id: str
    emotion: Emotion
    intensity: int = Field(ge=1, le=10)
    status: SessionStatus = SessionStatus.ACTIVE
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
    duration_minutes: int = Field(default=0, ge=0)
    conversation_log: list[ConversationMessage] = Field(default_factory=list)
    therapeutic_context: TherapeuticContext
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def last_activity(self) -> datetime:
        if self.conversation_log:
            return self.conversation_log[-1].timestamp
        return self.start_time

    def record_message(self, message: ConversationMessage) -> None:
        """Append to the log and keep message counters in step with it."""
        self.conversation_log.append(message)
        self.metadata.total_messages = len(self.conversation_log)
        if message.role == MessageRole.USER:
            self.metadata.user_messages += 1
        else:
            self.metadata.assistant_messages += 1

    def user_utterances(self) -> list[str]:
        return [m.content for m in self.conversation_log if m.role == MessageRole.USER]


class JournalEntryMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    duration_minutes: int = 0
    emotion_intensity: int
    therapeutic_techniques: list[str] = Field(default_factory=list)
    conversation_log: list[ConversationMessage] = Field(default_factory=list)
    ai_model: str = "fallback"
    sentiment: Sentiment = Sentiment.NEUTRAL
    key_themes: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)


class JournalEntry(BaseModel):
    """Journal artifact derived from a finished session. Never mutated."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    title: str = Field(max_length=200)
    content: str
    source: str = "voice_chat"
    mood: int = Field(ge=1, le=10)
    metadata: JournalEntryMetadata
    created_at: datetime = Field(default_factory=utc_now)
