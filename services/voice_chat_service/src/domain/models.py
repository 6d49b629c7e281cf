"""
Lumen Voice Chat Service - Domain Models.
Data classes passed between the session registry and its collaborators.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..schemas import ResponseSource


@dataclass(frozen=True)
class TherapeuticProfile:
    """Approach, techniques and live-agent prompt bound to a reported emotion."""
    emotion_key: str
    primary_approach: str
    techniques: tuple[str, ...] = ()
    session_goals: tuple[str, ...] = ()
    system_prompt: str = ""


@dataclass
class AssistantReply:
    """Reply produced for a single user turn."""
    text: str
    source: ResponseSource = ResponseSource.FALLBACK
    produced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
