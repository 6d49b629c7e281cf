"""
Lumen Voice Chat Service - Gemini Live Adapter.
Real-time audio/text conversation channel backed by the Gemini Live API.
"""
from __future__ import annotations
import asyncio
import contextlib
from typing import Any, Sequence
from google import genai
from google.genai import types
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import structlog

from services.shared import AdapterUnavailableError, ConfigurationError

from .live_adapter import LiveMessage, MessageCallback

logger = structlog.get_logger(__name__)


class LiveAdapterSettings(BaseSettings):
    """Gemini Live configuration."""
    api_key: str = Field(default="")
    model: str = Field(default="gemini-2.5-flash-preview-native-audio-dialog")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: float = Field(default=0.8, ge=0.0, le=1.0)
    max_output_tokens: int = Field(default=2048, ge=64, le=8192)
    audio_mime_type: str = Field(default="audio/pcm;rate=16000")
    transcribe_audio: bool = Field(default=True)
    model_config = SettingsConfigDict(env_prefix="VOICE_CHAT_LIVE_", env_file=".env", extra="ignore")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


def to_live_message(response: Any) -> LiveMessage:
    """Flatten a Gemini server message into a LiveMessage."""
    content = getattr(response, "server_content", None)
    if content is None:
        return LiveMessage()
    texts: list[str] = []
    audio = b""
    model_turn = getattr(content, "model_turn", None)
    for part in (getattr(model_turn, "parts", None) or []):
        if getattr(part, "text", None):
            texts.append(part.text)
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            audio += inline.data
    input_tx = getattr(content, "input_transcription", None)
    output_tx = getattr(content, "output_transcription", None)
    return LiveMessage(
        text="".join(texts) or None,
        audio=audio or None,
        input_transcription=getattr(input_tx, "text", None),
        output_transcription=getattr(output_tx, "text", None),
        turn_complete=bool(getattr(content, "turn_complete", False)),
    )


class GeminiLiveChannel:
    """Open Gemini Live session with a background receive loop."""

    def __init__(self, connection: Any, session: Any, audio_mime_type: str) -> None:
        self._connection = connection
        self._session = session
        self._audio_mime_type = audio_mime_type
        self._callbacks: list[MessageCallback] = []
        self._receive_task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._receive_task = asyncio.create_task(self._receive_loop())

    def on_message(self, callback: MessageCallback) -> None:
        self._callbacks.append(callback)

    async def send(self, *, text: str | None = None, audio: bytes | None = None) -> None:
        if text is not None:
            await self._session.send_client_content(
                turns=types.Content(role="user", parts=[types.Part(text=text)]),
                turn_complete=True,
            )
        if audio is not None:
            await self._session.send_realtime_input(
                audio=types.Blob(data=audio, mime_type=self._audio_mime_type),
            )
            await self._session.send_realtime_input(audio_stream_end=True)

    def _dispatch(self, message: LiveMessage) -> None:
        for callback in self._callbacks:
            try:
                callback(message)
            except Exception as e:
                logger.error("live_callback_failed", error=str(e))

    async def _receive_loop(self) -> None:
        try:
            while True:
                received = False
                async for response in self._session.receive():
                    received = True
                    self._dispatch(to_live_message(response))
                if not received:
                    logger.info("gemini_live_stream_ended")
                    return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("gemini_live_receive_failed", error=str(e))
            self._dispatch(LiveMessage(error=f"Live stream failed: {e}"))

    async def close(self) -> None:
        if self._receive_task is not None:
            self._receive_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._receive_task
            self._receive_task = None
        await self._connection.__aexit__(None, None, None)
        logger.info("gemini_live_channel_closed")


class GeminiLiveAdapter:
    """Connects therapeutic sessions to the Gemini Live API."""

    def __init__(self, settings: LiveAdapterSettings | None = None, client: genai.Client | None = None) -> None:
        self._settings = settings or LiveAdapterSettings()
        if client is None and not self._settings.is_configured:
            raise ConfigurationError("Gemini Live API key is not configured", config_key="VOICE_CHAT_LIVE_API_KEY")
        self._client = client or genai.Client(api_key=self._settings.api_key)
        self.model_name = self._settings.model

    def build_config(self, system_prompt: str, modalities: Sequence[str]) -> types.LiveConnectConfig:
        wants_audio = any(m.upper() == "AUDIO" for m in modalities)
        return types.LiveConnectConfig(
            response_modalities=[types.Modality(m.upper()) for m in modalities],
            system_instruction=types.Content(parts=[types.Part(text=system_prompt)]),
            temperature=self._settings.temperature,
            top_p=self._settings.top_p,
            max_output_tokens=self._settings.max_output_tokens,
            input_audio_transcription=types.AudioTranscriptionConfig() if self._settings.transcribe_audio else None,
            output_audio_transcription=types.AudioTranscriptionConfig() if wants_audio else None,
        )

    async def connect(self, system_prompt: str, modalities: Sequence[str]) -> GeminiLiveChannel:
        connection = self._client.aio.live.connect(
            model=self.model_name, config=self.build_config(system_prompt, modalities),
        )
        try:
            session = await connection.__aenter__()
        except Exception as e:
            raise AdapterUnavailableError(f"Gemini Live connection failed: {e}", cause=e) from e
        channel = GeminiLiveChannel(connection, session, self._settings.audio_mime_type)
        channel.start()
        logger.info("gemini_live_channel_opened", model=self.model_name)
        return channel
