# src/retro_messenger/services/presence.py
"""Registry of live push channels and delivery of events to them.

One user may hold any number of channels (tabs, devices). Writes are
fire-and-forget and isolated per channel: a broken channel is logged and
detached, never allowed to abort delivery to the user's other channels.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from retro_messenger.core.errors import TransportError
from retro_messenger.schemas.events import ConnectedEvent, NewMessageEvent, format_frame
from retro_messenger.services.identity import IdentityDirectory

logger = logging.getLogger(__name__)

PushEventModel = ConnectedEvent | NewMessageEvent


@runtime_checkable
class ChannelHandle(Protocol):
    """Anything that accepts a pre-formatted frame without blocking."""

    def write(self, frame: str) -> None: ...


class QueueChannel:
    """Channel handle backed by an asyncio queue, drained by a streaming response."""

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, frame: str) -> None:
        if self._closed:
            raise TransportError("Channel is closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as err:
            raise TransportError("Channel buffer is full") from err

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # A full buffer drops its oldest frame so the end marker still fits
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self._queue.put_nowait(None)

    async def frames(self, keepalive_seconds: float | None = None) -> AsyncIterator[str]:
        """Yield queued frames until closed, emitting SSE comments when idle."""
        while True:
            try:
                if keepalive_seconds:
                    frame = await asyncio.wait_for(self._queue.get(), keepalive_seconds)
                else:
                    frame = await self._queue.get()
            except TimeoutError:
                yield ": keepalive\n\n"
                continue
            if frame is None:
                return
            yield frame


class PresenceTransport:
    """Holds live channels per user and pushes events to them."""

    def __init__(self, directory: IdentityDirectory | None = None) -> None:
        self._directory = directory
        self._channels: dict[str, list[ChannelHandle]] = {}

    def attach(self, user_id: str, channel: ChannelHandle) -> None:
        """Register a channel for ``user_id`` and mark the user online."""
        channels = self._channels.setdefault(user_id, [])
        if channel in channels:
            return
        channels.append(channel)
        if self._directory is not None:
            self._directory.set_presence(user_id, True)
        logger.info(
            "User %s connected. Total connections: %d", user_id, len(channels)
        )

    def detach(self, user_id: str, channel: ChannelHandle) -> None:
        """Remove one channel; the user entry goes away with its last channel."""
        channels = self._channels.get(user_id)
        if not channels:
            return
        try:
            channels.remove(channel)
        except ValueError:
            return

        logger.info(
            "User %s disconnected. Remaining connections: %d", user_id, len(channels)
        )
        if not channels:
            del self._channels[user_id]
            if self._directory is not None:
                self._directory.set_presence(user_id, False)

    def _write_all(self, user_id: str, channels: list[ChannelHandle], frame: str) -> int:
        written = 0
        broken: list[ChannelHandle] = []
        for channel in list(channels):
            try:
                channel.write(frame)
            except Exception as err:
                logger.warning("Error sending to user %s: %s", user_id, err)
                broken.append(channel)
                continue
            written += 1

        for channel in broken:
            self.detach(user_id, channel)
            if isinstance(channel, QueueChannel):
                channel.close()
        return written

    def push_to(self, user_id: str, event: PushEventModel) -> bool:
        """Write ``event`` to every channel of ``user_id``.

        Returns False when the user has no channels or no write succeeded;
        the message then waits in the ledger for the next poll.
        """
        channels = self._channels.get(user_id)
        if not channels:
            logger.info("User %s has no active connections", user_id)
            return False

        written = self._write_all(user_id, channels, format_frame(event))
        logger.debug("Sent event to user %s (%d connection(s))", user_id, written)
        return written > 0

    def broadcast(self, event: PushEventModel) -> int:
        """Write ``event`` to every channel of every user; return successful writes."""
        frame = format_frame(event)
        sent_count = 0
        for user_id, channels in list(self._channels.items()):
            sent_count += self._write_all(user_id, channels, frame)
        logger.info("Broadcast sent to %d connection(s)", sent_count)
        return sent_count

    # --- Introspection --------------------------------------------------------------
    def is_connected(self, user_id: str) -> bool:
        return bool(self._channels.get(user_id))

    def connection_count(self, user_id: str) -> int:
        return len(self._channels.get(user_id, []))

    def total_connections(self) -> int:
        return sum(len(channels) for channels in self._channels.values())

    def connected_user_ids(self) -> list[str]:
        return list(self._channels)

    def reset(self) -> None:
        """Close and forget every channel."""
        for channels in self._channels.values():
            for channel in channels:
                close = getattr(channel, "close", None)
                if callable(close):
                    close()
        self._channels.clear()
