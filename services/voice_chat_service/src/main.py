"""
Lumen Voice Chat Service - Bootstrap.
Logging setup and wiring of the session registry with its collaborators.
"""
from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
import structlog

from .config import VoiceChatServiceSettings, get_settings
from .domain.fallback_responses import FallbackResponseEngine
from .domain.finalizer import SessionFinalizer
from .domain.mode_selector import TherapeuticModeSelector
from .domain.session_registry import SessionRegistry
from .infrastructure.collaborators import (
    InMemoryJournalEntryStore, InMemoryUserHistoryProvider, JournalEntryClient, UserHistoryClient,
)
from .infrastructure.conversation_store import ConversationStore, InMemoryDurableSessionStore
from .infrastructure.gemini_live import GeminiLiveAdapter
from .infrastructure.redis_store import RedisSessionStore

logger = structlog.get_logger(__name__)


def configure_logging(settings: VoiceChatServiceSettings) -> None:
    """Configure structured logging for the voice chat service."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.is_debug:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())
    log_level = getattr(logging, settings.observability.log_level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_session_registry(
    settings: VoiceChatServiceSettings | None = None,
    redis_store: RedisSessionStore | None = None,
) -> SessionRegistry:
    """Wire a SessionRegistry from settings. The Redis store still needs ``initialize()``."""
    settings = settings or get_settings()
    if settings.durable_backend == "redis":
        durable = redis_store or RedisSessionStore(settings.redis)
    else:
        durable = InMemoryDurableSessionStore()
    if settings.use_http_collaborators:
        history_provider = UserHistoryClient(settings.clients)
        journal_store = JournalEntryClient(settings.clients)
    else:
        history_provider = InMemoryUserHistoryProvider()
        journal_store = InMemoryJournalEntryStore()
    live_adapter = GeminiLiveAdapter(settings.live) if settings.live_enabled else None
    return SessionRegistry(
        store=ConversationStore(durable),
        selector=TherapeuticModeSelector(),
        fallback_engine=FallbackResponseEngine(),
        finalizer=SessionFinalizer(journal_store),
        history_provider=history_provider,
        live_adapter=live_adapter,
        settings=settings.registry,
    )


@asynccontextmanager
async def session_registry_lifespan(
    settings: VoiceChatServiceSettings | None = None,
    redis_store: RedisSessionStore | None = None,
) -> AsyncIterator[SessionRegistry]:
    """Run a configured SessionRegistry for the duration of the block."""
    settings = settings or get_settings()
    configure_logging(settings)
    logger.info("voice_chat_service_starting", environment=settings.environment,
                durable_backend=settings.durable_backend, live_enabled=settings.live_enabled)
    if settings.durable_backend == "redis":
        redis_store = redis_store or RedisSessionStore(settings.redis)
        await redis_store.initialize()
    registry = build_session_registry(settings, redis_store=redis_store)
    await registry.initialize()
    logger.info("voice_chat_service_started", config=settings.to_dict())
    try:
        yield registry
    finally:
        logger.info("voice_chat_service_stopping")
        await registry.shutdown()
        if redis_store is not None:
            await redis_store.close()
        logger.info("voice_chat_service_stopped")
