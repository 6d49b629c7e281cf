"""
Lumen Voice Chat Service - Session Finalization.
Summarizes a finished session, tags sentiment and themes, and persists a journal entry.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Iterable

import structlog

from ..schemas import JournalEntry, JournalEntryMetadata, Sentiment, SessionRecord

if TYPE_CHECKING:
    from ..infrastructure.collaborators import JournalEntryStore

logger = structlog.get_logger(__name__)

POSITIVE_WORDS: tuple[str, ...] = (
    "good", "better", "happy", "relieved", "calm", "peaceful",
    "grateful", "hopeful", "improving", "comfortable",
)
NEGATIVE_WORDS: tuple[str, ...] = (
    "bad", "worse", "sad", "angry", "anxious", "stressed",
    "hopeless", "overwhelmed", "terrible", "awful",
)

THEME_KEYWORDS: dict[str, tuple[str, ...]] = {
    "work": ("work", "job", "career", "office", "meeting", "deadline", "boss", "colleague"),
    "relationships": ("friend", "family", "partner", "relationship", "love", "marriage", "divorce", "parent"),
    "health": ("health", "sick", "pain", "doctor", "medical", "physical", "hospital", "medication"),
    "finances": ("money", "financial", "bills", "debt", "expenses", "budget", "cost", "pay"),
    "future": ("future", "planning", "goals", "dreams", "aspirations", "hope", "worry", "scared"),
    "self-esteem": ("confidence", "self-worth", "shame", "guilt", "proud", "accomplishment", "failure"),
    "sleep": ("sleep", "tired", "exhausted", "insomnia", "rest", "energy", "fatigue"),
}

INSIGHT_LONG_SESSION = "Extended session duration suggests deep engagement with therapeutic process"
INSIGHT_HIGH_ENGAGEMENT = "High user engagement indicates willingness to explore emotions"
INSIGHT_HIGH_INTENSITY = "High emotion intensity suggests significant distress requiring continued support"
INSIGHT_LIVE_AGENT = "Session utilized real-time AI audio processing for natural conversation flow"


def analyze_sentiment(utterances: Iterable[str]) -> Sentiment:
    """Count lexicon words present in each utterance and compare the totals."""
    positive = negative = 0
    for message in (u.lower() for u in utterances):
        positive += sum(1 for word in POSITIVE_WORDS if word in message)
        negative += sum(1 for word in NEGATIVE_WORDS if word in message)
    if positive > negative:
        return Sentiment.POSITIVE
    if negative > positive:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def extract_key_themes(utterances: Iterable[str]) -> set[str]:
    """Return every theme with at least one keyword in any utterance."""
    themes: set[str] = set()
    for message in (u.lower() for u in utterances):
        for theme, keywords in THEME_KEYWORDS.items():
            if theme not in themes and any(k in message for k in keywords):
                themes.add(theme)
    return themes


class SessionFinalizer:
    """Derives and persists the journal entry for an ended session."""

    def __init__(self, journal_store: JournalEntryStore) -> None:
        self._journal_store = journal_store

    @staticmethod
    def uses_live_agent(session: SessionRecord) -> bool:
        return session.metadata.live_connected

    def summarize(self, session: SessionRecord) -> str:
        context = session.therapeutic_context
        ai_mode = (
            "Live AI agent with real-time audio processing"
            if self.uses_live_agent(session) else "Fallback therapeutic responses"
        )
        meta = session.metadata
        return "\n\n".join([
            f"Voice therapy session focused on {session.emotion.value} (intensity: {session.intensity}/10).",
            f"Therapeutic approach: {context.primary_approach}",
            f"AI Model: {ai_mode}",
            f"Key discussion points: {' '.join(session.user_utterances())}",
            f"Session duration: {session.duration_minutes} minutes",
            f"Techniques discussed: {', '.join(context.recommended_techniques)}",
            f"Total messages: {meta.total_messages} (User: {meta.user_messages}, Assistant: {meta.assistant_messages})",
        ])

    def generate_insights(self, session: SessionRecord) -> list[str]:
        insights = []
        if session.duration_minutes > 15:
            insights.append(INSIGHT_LONG_SESSION)
        if session.metadata.user_messages > 5:
            insights.append(INSIGHT_HIGH_ENGAGEMENT)
        if session.intensity > 7:
            insights.append(INSIGHT_HIGH_INTENSITY)
        if self.uses_live_agent(session):
            insights.append(INSIGHT_LIVE_AGENT)
        return insights

    def build_entry(self, session: SessionRecord) -> JournalEntry:
        utterances = session.user_utterances()
        live = self.uses_live_agent(session)
        prefix = "AI Therapy Session" if live else "Voice Therapy Session"
        return JournalEntry(
            user_id=session.user_id,
            title=f"{prefix} - {session.emotion.value}",
            content=self.summarize(session),
            source="live_voice_chat" if live else "voice_chat",
            mood=session.intensity,
            metadata=JournalEntryMetadata(
                session_id=session.session_id,
                duration_minutes=session.duration_minutes,
                emotion_intensity=session.intensity,
                therapeutic_techniques=list(session.therapeutic_context.recommended_techniques),
                conversation_log=[m.model_copy() for m in session.conversation_log],
                ai_model=session.metadata.model_used,
                sentiment=analyze_sentiment(utterances),
                key_themes=sorted(extract_key_themes(utterances)),
                insights=self.generate_insights(session),
            ),
        )

    async def finalize(self, session: SessionRecord) -> str:
        """Persist the session's journal entry and return its id."""
        entry = self.build_entry(session)
        entry_id = await self._journal_store.create(entry)
        logger.info(
            "session_journal_created",
            session_id=session.session_id,
            journal_entry_id=entry_id,
            sentiment=entry.metadata.sentiment.value,
            themes=entry.metadata.key_themes,
        )
        return entry_id
