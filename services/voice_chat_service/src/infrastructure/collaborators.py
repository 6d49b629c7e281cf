"""
Lumen Voice Chat Service - External Collaborators.
Contracts and clients for user history, journal persistence and speech transcription.
"""
from __future__ import annotations
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4
import httpx
import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from services.shared import HistoryFetchError, JournalPersistenceError

from ..schemas import JournalEntry

logger = structlog.get_logger(__name__)


@runtime_checkable
class UserHistoryProvider(Protocol):
    """Read-only source of a user's recent emotions, games and journals."""

    async def get_recent(self, user_id: str) -> dict[str, list[dict[str, Any]]]: ...


@runtime_checkable
class JournalEntryStore(Protocol):
    """Owner of journal entries once they are created."""

    async def create(self, entry: JournalEntry) -> str: ...


@runtime_checkable
class SpeechTranscriber(Protocol):
    """Turns a base64 audio payload into text."""

    async def transcribe(self, audio_data: str) -> str: ...


class CollaboratorClientSettings(BaseSettings):
    """HTTP collaborator configuration."""
    history_service_url: str = Field(default="http://localhost:5000")
    journal_service_url: str = Field(default="http://localhost:5000")
    timeout_seconds: float = Field(default=5.0, ge=0.5, le=30.0)
    max_retries: int = Field(default=2, ge=0, le=5)
    recent_emotions_limit: int = Field(default=10, ge=1, le=50)
    recent_games_limit: int = Field(default=5, ge=1, le=50)
    recent_journals_limit: int = Field(default=5, ge=1, le=50)
    model_config = SettingsConfigDict(env_prefix="VOICE_CHAT_CLIENTS_", env_file=".env", extra="ignore")


class InMemoryUserHistoryProvider:
    """History provider backed by process memory."""

    def __init__(self) -> None:
        self._history: dict[str, dict[str, list[dict[str, Any]]]] = {}

    def _bucket(self, user_id: str) -> dict[str, list[dict[str, Any]]]:
        return self._history.setdefault(user_id, {"emotions": [], "games": [], "journals": []})

    def add_emotion(self, user_id: str, emotion: str, intensity: int, **extra: Any) -> None:
        self._bucket(user_id)["emotions"].insert(0, {"emotion": emotion, "intensity": intensity, **extra})

    def add_game(self, user_id: str, game: dict[str, Any]) -> None:
        self._bucket(user_id)["games"].insert(0, game)

    def add_journal(self, user_id: str, journal: dict[str, Any]) -> None:
        self._bucket(user_id)["journals"].insert(0, journal)

    async def get_recent(self, user_id: str) -> dict[str, list[dict[str, Any]]]:
        bucket = self._bucket(user_id)
        return {key: list(items) for key, items in bucket.items()}


class InMemoryJournalEntryStore:
    """Journal store backed by process memory. One entry per session id."""

    def __init__(self) -> None:
        self._entries: dict[str, JournalEntry] = {}
        self._user_index: dict[str, list[str]] = {}
        self._session_index: dict[str, str] = {}

    async def create(self, entry: JournalEntry) -> str:
        existing = self._session_index.get(entry.metadata.session_id)
        if existing is not None:
            return existing
        entry_id = str(uuid4())
        self._session_index[entry.metadata.session_id] = entry_id
        self._entries[entry_id] = entry
        self._user_index.setdefault(entry.user_id, []).append(entry_id)
        return entry_id

    async def get(self, entry_id: str) -> JournalEntry | None:
        return self._entries.get(entry_id)

    async def get_by_user(self, user_id: str) -> list[JournalEntry]:
        return [self._entries[eid] for eid in self._user_index.get(user_id, []) if eid in self._entries]

    async def count(self) -> int:
        return len(self._entries)


class UserHistoryClient:
    """HTTP client fetching bounded user history from the Lumen backend."""

    def __init__(
        self,
        settings: CollaboratorClientSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or CollaboratorClientSettings()
        self._base_url = self._settings.history_service_url.rstrip("/")
        self._transport = transport

    async def get_recent(self, user_id: str) -> dict[str, list[dict[str, Any]]]:
        url = f"{self._base_url}/api/users/{user_id}/history"
        params = {
            "emotions": self._settings.recent_emotions_limit,
            "games": self._settings.recent_games_limit,
            "journals": self._settings.recent_journals_limit,
        }
        async with httpx.AsyncClient(timeout=self._settings.timeout_seconds, transport=self._transport) as client:
            try:
                response = await client.get(url, params=params)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise HistoryFetchError(
                    f"History request for user {user_id} failed", status_code=e.response.status_code, cause=e,
                ) from e
            except (httpx.RequestError, ValueError) as e:
                raise HistoryFetchError(f"History request for user {user_id} failed", cause=e) from e
        return {
            "emotions": list(data.get("emotions", [])),
            "games": list(data.get("games", [])),
            "journals": list(data.get("journals", [])),
        }


def journal_idempotency_key(entry: JournalEntry) -> str:
    return f"voice-session-journal:{entry.metadata.session_id}"


class JournalEntryClient:
    """
    HTTP client creating journal entries in the Lumen backend.

    Every attempt for one session carries the same ``Idempotency-Key`` so the
    backend collapses a retried POST whose first response was lost.
    """

    def __init__(
        self,
        settings: CollaboratorClientSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or CollaboratorClientSettings()
        self._base_url = self._settings.journal_service_url.rstrip("/")
        self._transport = transport

    async def create(self, entry: JournalEntry) -> str:
        url = f"{self._base_url}/api/journal"
        payload = entry.model_dump(mode="json")
        headers = {"Idempotency-Key": journal_idempotency_key(entry)}
        async with httpx.AsyncClient(timeout=self._settings.timeout_seconds, transport=self._transport) as client:
            for attempt in range(self._settings.max_retries + 1):
                try:
                    response = await client.post(url, json=payload, headers=headers)
                    response.raise_for_status()
                    body = response.json()
                    entry_id = body.get("id") or body.get("data", {}).get("id")
                    if not entry_id:
                        raise JournalPersistenceError("Journal service response did not include an id")
                    return str(entry_id)
                except httpx.HTTPStatusError as e:
                    logger.warning("journal_service_http_error", status_code=e.response.status_code, attempt=attempt + 1)
                    if attempt == self._settings.max_retries:
                        raise JournalPersistenceError(
                            "Journal entry creation failed", status_code=e.response.status_code, cause=e,
                        ) from e
                except httpx.RequestError as e:
                    logger.warning("journal_service_request_error", error=str(e), attempt=attempt + 1)
                    if attempt == self._settings.max_retries:
                        raise JournalPersistenceError("Journal entry creation failed", cause=e) from e
        raise JournalPersistenceError("Journal entry creation failed after retries")
