"""
Lumen Voice Chat Service - Live Conversation Adapter Contract.
Protocol for real-time AI conversation channels and a per-turn reply bridge.
"""
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence, runtime_checkable
import structlog

from services.shared import AdapterUnavailableError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LiveMessage:
    """One server message from a live channel."""
    text: str | None = None
    audio: bytes | None = None
    input_transcription: str | None = None
    output_transcription: str | None = None
    turn_complete: bool = False
    error: str | None = None


MessageCallback = Callable[[LiveMessage], None]


@runtime_checkable
class LiveChannel(Protocol):
    async def send(self, *, text: str | None = None, audio: bytes | None = None) -> None: ...

    def on_message(self, callback: MessageCallback) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class LiveConversationAdapter(Protocol):
    model_name: str

    async def connect(self, system_prompt: str, modalities: Sequence[str]) -> LiveChannel: ...


class LiveTurnBridge:
    """
    Resolves one reply per turn from a channel's message stream.

    Each ``ask`` installs a future that the channel's turn-complete message
    resolves. A turn abandoned after its message was sent is still owed a
    turn-complete by the server; everything up to and including that
    turn-complete is dropped so replies stay paired with their turns.
    Messages that arrive with no turn pending are dropped as well.
    """

    def __init__(self, channel: LiveChannel, session_id: str = "") -> None:
        self._channel = channel
        self._session_id = session_id
        self._pending: asyncio.Future[str] | None = None
        self._text_parts: list[str] = []
        self._transcript_parts: list[str] = []
        self._abandoned_turns = 0
        self._closed = False
        channel.on_message(self._handle_message)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def abandoned_turns(self) -> int:
        return self._abandoned_turns

    def _handle_message(self, message: LiveMessage) -> None:
        pending = self._pending
        if message.error:
            # the stream broke, so no turn-complete is coming for abandoned turns
            self._abandoned_turns = 0
            if pending is not None and not pending.done():
                pending.set_exception(AdapterUnavailableError(message.error))
            return
        if self._abandoned_turns:
            if message.turn_complete:
                self._abandoned_turns -= 1
            logger.debug("live_message_dropped", session_id=self._session_id, reason="abandoned_turn",
                         abandoned_turns=self._abandoned_turns)
            return
        if pending is None or pending.done():
            logger.debug("live_message_dropped", session_id=self._session_id, reason="no_turn_pending")
            return
        if message.text:
            self._text_parts.append(message.text)
        if message.output_transcription:
            self._transcript_parts.append(message.output_transcription)
        if message.input_transcription:
            logger.debug("live_input_transcription", session_id=self._session_id,
                         text=message.input_transcription[:100])
        if message.turn_complete:
            reply = "".join(self._text_parts) or "".join(self._transcript_parts)
            pending.set_result(reply.strip())

    async def ask(self, *, text: str | None = None, audio: bytes | None = None, timeout: float) -> str:
        """Send one user turn and wait up to ``timeout`` seconds, send included, for the reply."""
        if self._closed:
            raise AdapterUnavailableError("Live channel is closed")
        if self._pending is not None and not self._pending.done():
            raise AdapterUnavailableError("Live channel already has a turn in flight")
        self._text_parts.clear()
        self._transcript_parts.clear()
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending = future
        sent = False
        try:
            async with asyncio.timeout(timeout):
                await self._channel.send(text=text, audio=audio)
                sent = True
                return await future
        except (asyncio.TimeoutError, asyncio.CancelledError):
            if sent:
                self._abandoned_turns += 1
                logger.debug("live_turn_abandoned", session_id=self._session_id,
                             abandoned_turns=self._abandoned_turns)
            raise
        finally:
            if not future.done():
                future.cancel()
            self._pending = None

    async def close(self) -> None:
        self._closed = True
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        await self._channel.close()
