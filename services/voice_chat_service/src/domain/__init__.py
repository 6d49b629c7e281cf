"""
Lumen Voice Chat Service - Domain Layer.
Session lifecycle, therapeutic mode selection, fallback replies and journaling.
"""
from .models import TherapeuticProfile, AssistantReply
from .mode_selector import TherapeuticModeSelector, THERAPEUTIC_PROFILES, DEFAULT_EMOTION_KEY
from .fallback_responses import FallbackResponseEngine, FALLBACK_RESPONSES
from .finalizer import SessionFinalizer, analyze_sentiment, extract_key_themes
from .session_registry import (
    SessionRegistry,
    SessionRegistrySettings,
    analyze_mood_trends,
    build_history_snapshot,
    compute_duration_minutes,
)

__all__ = [
    "TherapeuticProfile",
    "AssistantReply",
    "TherapeuticModeSelector",
    "THERAPEUTIC_PROFILES",
    "DEFAULT_EMOTION_KEY",
    "FallbackResponseEngine",
    "FALLBACK_RESPONSES",
    "SessionFinalizer",
    "analyze_sentiment",
    "extract_key_themes",
    "SessionRegistry",
    "SessionRegistrySettings",
    "analyze_mood_trends",
    "build_history_snapshot",
    "compute_duration_minutes",
]
