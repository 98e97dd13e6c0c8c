# mypy: ignore-errors
# tests/services/test_presence_transport.py
"""Tests for the live channel registry and push delivery."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from retro_messenger.core.errors import TransportError
from retro_messenger.schemas.events import ConnectedEvent, MessagePayload, NewMessageEvent
from retro_messenger.services.presence import PresenceTransport, QueueChannel


def _new_message_event(content: str = "ciphertext") -> NewMessageEvent:
    return NewMessageEvent(
        message=MessagePayload(
            message_id="m-1",
            sender="alice",
            from_user_id="alice-id",
            content=content,
            timestamp="2026-01-01T00:00:00+00:00",
            status="sent",
        )
    )


def _frame_payload(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):-2])


@pytest.fixture
def bob_id(directory, public_key_b64):
    return directory.register("bob", "secret1", public_key_b64).user_id


class TestAttachDetach:
    """Channel registration and presence bookkeeping."""

    def test_attach_marks_user_online(self, presence, directory, bob_id) -> None:
        presence.attach(bob_id, MagicMock())

        assert presence.is_connected(bob_id) is True
        assert directory.get_by_id(bob_id).online is True

    def test_attach_same_channel_twice_is_noop(self, presence, bob_id) -> None:
        channel = MagicMock()

        presence.attach(bob_id, channel)
        presence.attach(bob_id, channel)

        assert presence.connection_count(bob_id) == 1

    def test_user_stays_online_until_last_channel_detaches(self, presence, directory, bob_id) -> None:
        first, second = MagicMock(), MagicMock()
        presence.attach(bob_id, first)
        presence.attach(bob_id, second)

        presence.detach(bob_id, first)
        assert presence.is_connected(bob_id) is True
        assert directory.get_by_id(bob_id).online is True

        presence.detach(bob_id, second)
        assert presence.is_connected(bob_id) is False
        assert bob_id not in presence.connected_user_ids()
        assert directory.get_by_id(bob_id).online is False

    def test_detach_unknown_channel_is_noop(self, presence, bob_id) -> None:
        presence.attach(bob_id, MagicMock())

        presence.detach(bob_id, MagicMock())
        presence.detach("ghost", MagicMock())

        assert presence.connection_count(bob_id) == 1

    def test_total_connections(self, presence) -> None:
        presence.attach("u1", MagicMock())
        presence.attach("u1", MagicMock())
        presence.attach("u2", MagicMock())

        assert presence.total_connections() == 3
        assert presence.connected_user_ids() == ["u1", "u2"]


class TestPush:
    """Fan-out to a user's channels."""

    def test_push_to_writes_every_channel_in_order(self, presence, bob_id) -> None:
        calls = []
        first, second = MagicMock(), MagicMock()
        first.write.side_effect = lambda frame: calls.append(("first", frame))
        second.write.side_effect = lambda frame: calls.append(("second", frame))
        presence.attach(bob_id, first)
        presence.attach(bob_id, second)

        assert presence.push_to(bob_id, _new_message_event()) is True

        assert [name for name, _ in calls] == ["first", "second"]
        assert calls[0][1] == calls[1][1]
        payload = _frame_payload(calls[0][1])
        assert payload["type"] == "new_message"
        assert payload["message"]["from"] == "alice"

    def test_push_to_offline_user_returns_false(self, presence) -> None:
        assert presence.push_to("nobody", _new_message_event()) is False

    def test_broken_channel_does_not_block_others(self, presence, bob_id) -> None:
        """A failing write is logged and detached; healthy channels still receive."""
        broken, healthy = MagicMock(), MagicMock()
        broken.write.side_effect = TransportError("socket gone")
        presence.attach(bob_id, broken)
        presence.attach(bob_id, healthy)

        assert presence.push_to(bob_id, _new_message_event()) is True

        healthy.write.assert_called_once()
        assert presence.connection_count(bob_id) == 1

    def test_unexpected_write_error_is_isolated(self, presence, bob_id) -> None:
        """Any exception from a channel detaches it without reaching the caller."""
        broken, healthy = MagicMock(), MagicMock()
        broken.write.side_effect = ValueError("closed file")
        presence.attach(bob_id, broken)
        presence.attach(bob_id, healthy)

        assert presence.push_to(bob_id, _new_message_event()) is True
        assert presence.broadcast(_new_message_event()) == 1

        assert healthy.write.call_count == 2
        assert presence.connection_count(bob_id) == 1

    def test_push_with_only_broken_channels_returns_false(self, presence, directory, bob_id) -> None:
        broken = MagicMock()
        broken.write.side_effect = OSError("connection reset")
        presence.attach(bob_id, broken)

        assert presence.push_to(bob_id, _new_message_event()) is False
        assert presence.is_connected(bob_id) is False
        assert directory.get_by_id(bob_id).online is False

    def test_broadcast_counts_successful_writes(self, presence) -> None:
        broken = MagicMock()
        broken.write.side_effect = RuntimeError("closed")
        presence.attach("u1", MagicMock())
        presence.attach("u1", broken)
        presence.attach("u2", MagicMock())

        sent = presence.broadcast(ConnectedEvent(user_id="system", username="system"))

        assert sent == 2
        assert presence.total_connections() == 2

    def test_reset_closes_channels(self, presence) -> None:
        channel = QueueChannel()
        presence.attach("u1", channel)
        presence.attach("u2", MagicMock(spec=["write"]))

        presence.reset()

        assert channel.closed is True
        assert presence.total_connections() == 0


class TestQueueChannel:
    """The asyncio-backed channel used by the streaming endpoint."""

    @pytest.mark.asyncio
    async def test_frames_yield_until_closed(self) -> None:
        channel = QueueChannel()
        channel.write("data: one\n\n")
        channel.write("data: two\n\n")
        channel.close()

        frames = [frame async for frame in channel.frames()]

        assert frames == ["data: one\n\n", "data: two\n\n"]

    @pytest.mark.asyncio
    async def test_frames_emit_keepalive_when_idle(self) -> None:
        channel = QueueChannel()
        frames = channel.frames(keepalive_seconds=0.01)

        assert await anext(frames) == ": keepalive\n\n"

        channel.write("data: late\n\n")
        assert await anext(frames) == "data: late\n\n"
        await frames.aclose()

    @pytest.mark.asyncio
    async def test_frames_stop_when_closed_while_waiting(self) -> None:
        channel = QueueChannel()

        async def _collect():
            return [frame async for frame in channel.frames()]

        task = asyncio.create_task(_collect())
        await asyncio.sleep(0)
        channel.write("data: x\n\n")
        channel.close()

        assert await asyncio.wait_for(task, 1.0) == ["data: x\n\n"]

    @pytest.mark.asyncio
    async def test_close_on_full_buffer_still_ends_frames(self) -> None:
        channel = QueueChannel(maxsize=2)
        channel.write("data: one\n\n")
        channel.write("data: two\n\n")
        channel.close()

        async def _collect():
            return [frame async for frame in channel.frames()]

        frames = await asyncio.wait_for(_collect(), 1.0)

        assert frames == ["data: two\n\n"]

    def test_write_after_close_raises(self) -> None:
        channel = QueueChannel()
        channel.close()

        with pytest.raises(TransportError):
            channel.write("data: x\n\n")

    def test_write_to_full_buffer_raises(self) -> None:
        channel = QueueChannel(maxsize=1)
        channel.write("data: one\n\n")

        with pytest.raises(TransportError):
            channel.write("data: two\n\n")

    def test_full_channel_is_detached_on_push(self, presence) -> None:
        channel = QueueChannel(maxsize=1)
        channel.write("data: backlog\n\n")
        presence.attach("u1", channel)

        assert presence.push_to("u1", _new_message_event()) is False
        assert presence.is_connected("u1") is False
