"""
Unit tests for Voice Chat Service Fallback Response Engine.
"""
from __future__ import annotations
import random

from services.voice_chat_service.src.domain.fallback_responses import (
    DEFAULT_POOL_KEY,
    FALLBACK_RESPONSES,
    FallbackResponseEngine,
)
from services.voice_chat_service.src.schemas import Emotion


class TestFallbackResponseEngine:
    """Tests for canned reply selection."""

    def test_reply_from_emotion_pool(self) -> None:
        engine = FallbackResponseEngine(rng=random.Random(1))
        assert engine.respond("anxiety") in FALLBACK_RESPONSES["anxiety"]

    def test_unmapped_uses_stress_pool(self) -> None:
        engine = FallbackResponseEngine()
        assert engine.pool_for("happy") == FALLBACK_RESPONSES[DEFAULT_POOL_KEY]
        assert engine.respond("happy") in FALLBACK_RESPONSES["stress"]

    def test_every_emotion_has_non_empty_reply(self) -> None:
        engine = FallbackResponseEngine(rng=random.Random(3))
        for emotion in Emotion:
            assert engine.respond(emotion).strip()

    def test_seeded_rng_is_deterministic(self) -> None:
        first = FallbackResponseEngine(rng=random.Random(42))
        second = FallbackResponseEngine(rng=random.Random(42))
        assert [first.respond("sad") for _ in range(5)] == [second.respond("sad") for _ in range(5)]

    def test_custom_pools(self) -> None:
        engine = FallbackResponseEngine(responses={"stress": ("Breathe.",)})
        assert engine.respond("grief") == "Breathe."
