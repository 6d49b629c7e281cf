"""
Lumen Voice Chat Service - Redis Session Store.
Durable tier for voice session records backed by Redis.
"""
from __future__ import annotations
import asyncio
import json
from typing import Any
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from services.shared import DurablePersistenceError

from ..schemas import ConversationMessage, SessionRecord

logger = structlog.get_logger(__name__)


class RedisSettings(BaseSettings):
    """Redis connection configuration."""
    host: str = Field(default="localhost")
    port: int = Field(default=6379)
    db: int = Field(default=0, ge=0, le=15)
    password: str = Field(default="")
    ssl: bool = Field(default=False)
    socket_timeout: int = Field(default=5)
    session_ttl_seconds: int = Field(default=60 * 60 * 24 * 30)
    key_prefix: str = Field(default="lumen:voice:")
    model_config = SettingsConfigDict(env_prefix="VOICE_CHAT_REDIS_", env_file=".env", extra="ignore")

    @property
    def url(self) -> str:
        protocol = "rediss" if self.ssl else "redis"
        auth = f":{self.password}@" if self.password else ""
        return f"{protocol}://{auth}{self.host}:{self.port}/{self.db}"


class RedisSessionStore:
    """
    Stores each session as a record key plus an append-only log list.

    Keys:
        <prefix>session:<id>          record JSON without the conversation log
        <prefix>session:<id>:log      one JSON message per list element
        <prefix>user_sessions:<uid>   sorted set of session ids scored by start time
    """

    def __init__(self, settings: RedisSettings | None = None, client: Any = None) -> None:
        self._settings = settings or RedisSettings()
        self._client = client
        self._initialized = client is not None

    async def initialize(self, max_retries: int = 3) -> None:
        """Connect with exponential backoff. Leaves the store uninitialized on failure."""
        import redis.asyncio as redis

        for attempt in range(max_retries + 1):
            try:
                self._client = redis.Redis.from_url(
                    self._settings.url, socket_timeout=self._settings.socket_timeout, decode_responses=True,
                )
                await self._client.ping()
                self._initialized = True
                logger.info("redis_session_store_initialized", host=self._settings.host, db=self._settings.db)
                return
            except Exception as e:
                if attempt < max_retries:
                    delay = min(2 ** attempt, 30.0)
                    logger.warning("redis_connect_retry", attempt=attempt + 1, delay_seconds=delay, error=str(e))
                    await asyncio.sleep(delay)
                else:
                    logger.error("redis_session_store_init_failed", error=str(e), attempts=max_retries + 1)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._initialized = False
        logger.info("redis_session_store_closed")

    def _key(self, *parts: str) -> str:
        return self._settings.key_prefix + ":".join(parts)

    def _require_client(self, operation: str) -> Any:
        if not self._initialized or self._client is None:
            raise DurablePersistenceError("Redis session store is not connected", operation=operation)
        return self._client

    async def save(self, session: SessionRecord) -> None:
        client = self._require_client("save")
        record_key = self._key("session", session.session_id)
        log_key = self._key("session", session.session_id, "log")
        ttl = self._settings.session_ttl_seconds
        record = session.model_dump_json(exclude={"conversation_log"})
        messages = [m.model_dump_json() for m in session.conversation_log]
        user_key = self._key("user_sessions", session.user_id)
        try:
            # MULTI/EXEC: the log is never left cleared behind a failed rewrite
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(record_key, record, ex=ttl)
                pipe.delete(log_key)
                if messages:
                    pipe.rpush(log_key, *messages)
                    pipe.expire(log_key, ttl)
                pipe.zadd(user_key, {session.session_id: session.start_time.timestamp()})
                pipe.expire(user_key, ttl)
                await pipe.execute()
        except Exception as e:
            raise DurablePersistenceError(
                f"Failed to save session {session.session_id}", operation="save", cause=e,
            ) from e

    async def append_message(self, session_id: str, message: ConversationMessage) -> None:
        client = self._require_client("append_message")
        log_key = self._key("session", session_id, "log")
        try:
            if not await client.exists(self._key("session", session_id)):
                raise DurablePersistenceError(
                    f"Session {session_id} has no durable record", operation="append_message",
                )
            await client.rpush(log_key, message.model_dump_json())
            await client.expire(log_key, self._settings.session_ttl_seconds)
        except DurablePersistenceError:
            raise
        except Exception as e:
            raise DurablePersistenceError(
                f"Failed to append message to session {session_id}", operation="append_message", cause=e,
            ) from e

    async def get(self, session_id: str) -> SessionRecord | None:
        client = self._require_client("get")
        try:
            data = await client.get(self._key("session", session_id))
            if not data:
                return None
            raw_log = await client.lrange(self._key("session", session_id, "log"), 0, -1)
        except Exception as e:
            raise DurablePersistenceError(f"Failed to load session {session_id}", operation="get", cause=e) from e
        session = SessionRecord.model_validate(json.loads(data))
        session.metadata.total_messages = session.metadata.user_messages = session.metadata.assistant_messages = 0
        for item in raw_log:
            session.record_message(ConversationMessage.model_validate_json(item))
        return session

    async def list_by_user(self, user_id: str, limit: int) -> list[SessionRecord]:
        """Most recent first. Ids whose records have expired are pruned from the user index."""
        client = self._require_client("list_by_user")
        user_key = self._key("user_sessions", user_id)
        try:
            session_ids = await client.zrevrange(user_key, 0, -1)
        except Exception as e:
            raise DurablePersistenceError(
                f"Failed to list sessions for user {user_id}", operation="list_by_user", cause=e,
            ) from e
        sessions: list[SessionRecord] = []
        expired: list[str] = []
        for session_id in session_ids:
            if len(sessions) == limit:
                break
            session = await self.get(session_id)
            if session is None:
                expired.append(session_id)
            else:
                sessions.append(session)
        if expired:
            try:
                await client.zrem(user_key, *expired)
            except Exception as e:
                logger.warning("redis_user_index_prune_failed", user_id=user_id, error=str(e))
        return sessions
