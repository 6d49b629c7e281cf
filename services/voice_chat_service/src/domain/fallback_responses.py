"""
Lumen Voice Chat Service - Fallback Response Engine.
Canned empathetic replies used when the live conversation agent is unavailable.
"""
from __future__ import annotations
import random

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_POOL_KEY = "stress"

FALLBACK_RESPONSES: dict[str, tuple[str, ...]] = {
    "anger": (
        "I hear that you're feeling angry. Let's take a moment to breathe together. Can you tell me what triggered this feeling?",
        "Anger is a natural emotion that often protects other feelings. What might be underneath this anger?",
        "I notice your intensity level is quite high. Let's try the STOP technique: Stop, Take a step back, Observe, Proceed mindfully. Can you try this with me?",
        "It sounds like something really activated your anger. Let's explore what happened and find some healthy ways to express these feelings.",
    ),
    "frustration": (
        "That sounds really frustrating. Before we look for solutions, can you tell me what feels most stuck right now?",
        "Frustration often shows up when something matters to us. What were you hoping would happen?",
        "Let's slow down for a moment. If we broke this problem into smaller pieces, what would the first piece be?",
    ),
    "anxiety": (
        "I can sense your anxiety. Let's ground ourselves together. Can you name 5 things you can see right now?",
        "Anxiety can feel overwhelming. Let's break this down. What's the worst that could happen, and how likely is it really?",
        "Your breathing might be quickening. Let's try a 4-7-8 breath together: inhale for 4, hold for 7, exhale for 8.",
        "I hear the worry in your voice. Let's challenge some of these anxious thoughts together. What evidence do we have for and against this worry?",
    ),
    "sad": (
        "I'm here with you in this sadness. It's okay to feel this way. Can you tell me more about what's weighing on your heart?",
        "Sadness can make everything feel heavy. Let's start small. What's one tiny thing that might bring you a moment of relief today?",
        "I hear the pain in your words. You don't have to go through this alone. What would be most helpful for you right now?",
        "Sometimes when we're sad, it helps to be gentle with ourselves. What would you say to a friend feeling this way?",
    ),
    "stress": (
        "Stress can be overwhelming. Let's identify what's within your control and what isn't. What feels most pressing right now?",
        "I can hear the stress in your voice. Let's take a moment to prioritize. What absolutely needs to happen today versus what can wait?",
        "Stress affects us physically too. How is your body feeling right now? Let's do a quick body scan together.",
        "Let's break this stress down into smaller pieces. When everything feels urgent, what's the one thing you could focus on first?",
    ),
    "loneliness": (
        "Feeling lonely can be really painful. I'm glad you reached out. What has the loneliness been like for you lately?",
        "Part of you may be longing for connection. What would feeling a little less alone look like today?",
        "You deserve connection and care. Is there one person, even someone small in your life, you feel safe with?",
    ),
    "grief": (
        "I'm so sorry for your loss. There's no right way to grieve. Would you like to tell me about who or what you're missing?",
        "Grief comes in waves. What has today's wave felt like for you?",
        "It's okay to carry both the pain and the love together. What memory has been on your mind?",
    ),
    "fear": (
        "Fear can make the world feel unsafe. Right now, in this moment, you are here with me. What do you notice around you?",
        "Let's make some space around this fear. What is it telling you might happen?",
        "You're being brave by talking about this. What helps you feel even a little bit safer?",
    ),
    "lethargy": (
        "Low energy can make everything feel like a lot. What's one very small thing you could do in the next ten minutes?",
        "It's okay to move slowly. When during the day do you usually have a bit more energy?",
        "Let's celebrate small steps. What's something, however tiny, you managed to do today?",
    ),
}


class FallbackResponseEngine:
    """
    Selects a canned reply uniformly at random from the emotion's pool.

    The random source is injectable so tests can seed it.
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        responses: dict[str, tuple[str, ...]] | None = None,
    ) -> None:
        self._rng = rng or random.Random()
        self._responses = responses or FALLBACK_RESPONSES

    def pool_for(self, emotion: str) -> tuple[str, ...]:
        key = str(getattr(emotion, "value", emotion)).strip().lower()
        return self._responses.get(key) or self._responses[DEFAULT_POOL_KEY]

    def respond(self, emotion: str) -> str:
        """Return a non-empty reply for ``emotion``."""
        response = self._rng.choice(self.pool_for(emotion))
        logger.debug("fallback_response_selected", emotion=str(getattr(emotion, "value", emotion)))
        return response
