"""
Unit tests for Voice Chat Service Live Turn Bridge.
"""
from __future__ import annotations
import asyncio

import pytest

from services.shared import AdapterUnavailableError
from services.voice_chat_service.src.infrastructure.live_adapter import (
    LiveChannel,
    LiveMessage,
    LiveTurnBridge,
)


class TestLiveTurnBridge:
    """Tests for per-turn reply collection from a live channel."""

    def test_fake_channel_satisfies_protocol(self, fake_channel_factory) -> None:
        assert isinstance(fake_channel_factory(), LiveChannel)

    @pytest.mark.asyncio
    async def test_reply_resolved_on_turn_complete(self, fake_channel_factory) -> None:
        channel = fake_channel_factory(reply="Let's breathe together.")
        bridge = LiveTurnBridge(channel, session_id="s1")
        reply = await bridge.ask(text="I'm panicking", timeout=1.0)
        assert reply == "Let's breathe together."
        assert channel.sent == [("I'm panicking", None)]

    @pytest.mark.asyncio
    async def test_text_fragments_are_joined(self, fake_channel_factory) -> None:
        channel = fake_channel_factory(reply=None)
        bridge = LiveTurnBridge(channel)
        task = asyncio.create_task(bridge.ask(text="hello", timeout=1.0))
        await asyncio.sleep(0)
        channel.emit(LiveMessage(text="I hear "))
        channel.emit(LiveMessage(text="you."))
        channel.emit(LiveMessage(turn_complete=True))
        assert await task == "I hear you."

    @pytest.mark.asyncio
    async def test_output_transcription_used_for_audio_replies(self, fake_channel_factory) -> None:
        channel = fake_channel_factory(reply=None)
        bridge = LiveTurnBridge(channel)
        task = asyncio.create_task(bridge.ask(audio=b"pcm", timeout=1.0))
        await asyncio.sleep(0)
        channel.emit(LiveMessage(audio=b"\x00\x01", output_transcription="Take a slow breath"))
        channel.emit(LiveMessage(output_transcription=" with me."))
        channel.emit(LiveMessage(turn_complete=True))
        assert await task == "Take a slow breath with me."

    @pytest.mark.asyncio
    async def test_timeout(self, fake_channel_factory) -> None:
        bridge = LiveTurnBridge(fake_channel_factory(reply=None))
        with pytest.raises(asyncio.TimeoutError):
            await bridge.ask(text="hello", timeout=0.02)

    @pytest.mark.asyncio
    async def test_late_messages_are_dropped(self, fake_channel_factory) -> None:
        channel = fake_channel_factory(reply=None)
        bridge = LiveTurnBridge(channel)
        with pytest.raises(asyncio.TimeoutError):
            await bridge.ask(text="first", timeout=0.02)
        channel.emit(LiveMessage(text="stale"))
        channel.emit(LiveMessage(turn_complete=True))
        channel.reply = "fresh"
        assert await bridge.ask(text="second", timeout=1.0) == "fresh"

    @pytest.mark.asyncio
    async def test_late_reply_during_next_turn_is_dropped(self, fake_channel_factory) -> None:
        channel = fake_channel_factory(reply=None)
        bridge = LiveTurnBridge(channel)
        with pytest.raises(asyncio.TimeoutError):
            await bridge.ask(text="first", timeout=0.02)
        assert bridge.abandoned_turns == 1
        task = asyncio.create_task(bridge.ask(text="second", timeout=1.0))
        await asyncio.sleep(0)
        channel.emit(LiveMessage(text="reply to first"))
        channel.emit(LiveMessage(turn_complete=True))
        assert not task.done()
        channel.emit(LiveMessage(text="reply to second"))
        channel.emit(LiveMessage(turn_complete=True))
        assert await task == "reply to second"
        assert bridge.abandoned_turns == 0

    @pytest.mark.asyncio
    async def test_slow_replies_stay_paired_with_their_turns(self, fake_channel_factory) -> None:
        class EchoChannel(fake_channel_factory):
            async def send(self, *, text=None, audio=None) -> None:
                self.sent.append((text, audio))
                asyncio.get_running_loop().call_later(self.delay, self._complete_turn, f"reply to {text}")

        bridge = LiveTurnBridge(EchoChannel(delay=0.1))
        with pytest.raises(asyncio.TimeoutError):
            await bridge.ask(text="first", timeout=0.05)
        assert await bridge.ask(text="second", timeout=1.0) == "reply to second"

    @pytest.mark.asyncio
    async def test_hanging_send_is_bounded_by_timeout(self, fake_channel_factory) -> None:
        channel = fake_channel_factory(hang_send=True)
        bridge = LiveTurnBridge(channel)
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(bridge.ask(text="hello", timeout=0.05), 1.0)
        assert loop.time() - started < 0.5
        assert channel.sent == [("hello", None)]
        assert bridge.abandoned_turns == 0

    @pytest.mark.asyncio
    async def test_stream_error_clears_abandoned_turns(self, fake_channel_factory) -> None:
        channel = fake_channel_factory(reply=None)
        bridge = LiveTurnBridge(channel)
        with pytest.raises(asyncio.TimeoutError):
            await bridge.ask(text="first", timeout=0.02)
        channel.emit(LiveMessage(error="stream reset"))
        assert bridge.abandoned_turns == 0
        channel.reply = "back again"
        assert await bridge.ask(text="second", timeout=1.0) == "back again"

    @pytest.mark.asyncio
    async def test_error_message_raises(self, fake_channel_factory) -> None:
        channel = fake_channel_factory(reply=None)
        bridge = LiveTurnBridge(channel)
        task = asyncio.create_task(bridge.ask(text="hello", timeout=1.0))
        await asyncio.sleep(0)
        channel.emit(LiveMessage(error="stream reset"))
        with pytest.raises(AdapterUnavailableError):
            await task

    @pytest.mark.asyncio
    async def test_only_one_turn_in_flight(self, fake_channel_factory) -> None:
        bridge = LiveTurnBridge(fake_channel_factory(reply=None))
        first = asyncio.create_task(bridge.ask(text="one", timeout=0.2))
        await asyncio.sleep(0)
        with pytest.raises(AdapterUnavailableError):
            await bridge.ask(text="two", timeout=0.2)
        with pytest.raises(asyncio.TimeoutError):
            await first

    @pytest.mark.asyncio
    async def test_closed_bridge_rejects_turns(self, fake_channel_factory) -> None:
        channel = fake_channel_factory()
        bridge = LiveTurnBridge(channel)
        await bridge.close()
        assert channel.closed is True
        assert bridge.is_closed is True
        with pytest.raises(AdapterUnavailableError):
            await bridge.ask(text="hello", timeout=0.1)
