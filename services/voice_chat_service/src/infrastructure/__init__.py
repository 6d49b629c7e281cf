"""
Lumen Voice Chat Service - Infrastructure Layer.
Session storage tiers, live conversation adapters and collaborator clients.
"""
from .collaborators import (
    CollaboratorClientSettings,
    InMemoryJournalEntryStore,
    InMemoryUserHistoryProvider,
    JournalEntryClient,
    JournalEntryStore,
    SpeechTranscriber,
    UserHistoryClient,
    UserHistoryProvider,
)
from .conversation_store import ConversationStore, DurableSessionStore, InMemoryDurableSessionStore
from .redis_store import RedisSessionStore, RedisSettings
from .live_adapter import LiveChannel, LiveConversationAdapter, LiveMessage, LiveTurnBridge
from .gemini_live import GeminiLiveAdapter, GeminiLiveChannel, LiveAdapterSettings

__all__ = [
    "CollaboratorClientSettings",
    "InMemoryJournalEntryStore",
    "InMemoryUserHistoryProvider",
    "JournalEntryClient",
    "JournalEntryStore",
    "SpeechTranscriber",
    "UserHistoryClient",
    "UserHistoryProvider",
    "ConversationStore",
    "DurableSessionStore",
    "InMemoryDurableSessionStore",
    "RedisSessionStore",
    "RedisSettings",
    "LiveChannel",
    "LiveConversationAdapter",
    "LiveMessage",
    "LiveTurnBridge",
    "GeminiLiveAdapter",
    "GeminiLiveChannel",
    "LiveAdapterSettings",
]
