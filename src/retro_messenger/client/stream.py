# src/retro_messenger/client/stream.py
"""Client half of the push transport with automatic reconnection.

The client opens a Server-Sent Events stream, forwards every valid event to
the application and, whenever the stream fails or ends, reconnects after a
capped backoff delay. Only :meth:`ReconnectingClient.disconnect` stops it.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError as SchemaValidationError

from retro_messenger.core.errors import TransportError
from retro_messenger.core.settings import settings
from retro_messenger.schemas.events import ConnectedEvent, NewMessageEvent, parse_event

logger = logging.getLogger(__name__)

PushEventModel = ConnectedEvent | NewMessageEvent
EventHandler = Callable[[PushEventModel], Awaitable[None] | None]
StreamOpener = Callable[[str], AbstractAsyncContextManager[AsyncIterator[str]]]
SleepFunc = Callable[[float], Awaitable[Any]]


class ClientState(str, Enum):
    """Connection states; ``CLOSED`` is terminal until ``connect`` is called again."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


def http_stream_opener(
    *,
    headers: Mapping[str, str] | None = None,
    timeout_seconds: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> StreamOpener:
    """Build an opener that streams lines from an SSE endpoint over httpx.

    Args:
        headers: Extra request headers, e.g. ``Authorization: Bearer <session>``
        timeout_seconds: Connect/write timeout; reads never time out
        transport: Optional custom transport (used by tests)
    """

    @asynccontextmanager
    async def _open(url: str) -> AsyncIterator[AsyncIterator[str]]:
        timeout = httpx.Timeout(
            timeout_seconds or settings.client_http_timeout_seconds,
            read=None,
        )
        request_headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if headers:
            request_headers.update(headers)

        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            async with client.stream("GET", url, headers=request_headers) as response:
                if response.status_code != httpx.codes.OK:
                    raise TransportError(
                        f"Stream endpoint responded with {response.status_code}"
                    )
                yield response.aiter_lines()

    return _open


class ReconnectingClient:
    """Maintains one push stream and recovers from failures with capped backoff."""

    def __init__(
        self,
        on_event: EventHandler,
        *,
        opener: StreamOpener | None = None,
        headers: Mapping[str, str] | None = None,
        backoff_ms: Sequence[int] | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self._on_event = on_event
        self._opener = opener or http_stream_opener(headers=headers)
        self._backoff_ms = (
            tuple(backoff_ms) if backoff_ms is not None else settings.backoff_table
        )
        if not self._backoff_ms:
            raise ValueError("Backoff table must not be empty")
        self._sleep = sleep or asyncio.sleep

        self._url: str | None = None
        self._state = ClientState.DISCONNECTED
        self._attempt = 0
        self._task: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def running(self) -> bool:
        """True while a stream or a pending reconnect is alive."""
        return self._task is not None and not self._task.done()

    def reconnect_delay_ms(self) -> int:
        """Delay before the next attempt: ``table[min(attempt, len - 1)]``."""
        return self._backoff_ms[min(self._attempt, len(self._backoff_ms) - 1)]

    async def connect(self, url: str) -> None:
        """Start streaming from ``url``; no-op if already connecting or connected."""
        if self.running:
            return
        self._url = url
        self._closing = False
        self._attempt = 0
        self._state = ClientState.CONNECTING
        self._task = asyncio.create_task(self._run())

    async def disconnect(self) -> None:
        """Tear down the stream and any pending reconnect; leaves nothing running."""
        self._closing = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._state = ClientState.CLOSED
        self._attempt = 0

    async def reconnect(self) -> None:
        """Drop the current stream and connect again immediately."""
        if self._url is None:
            raise TransportError("reconnect() called before connect()")
        url = self._url
        await self.disconnect()
        await self.connect(url)

    # --- Stream loop ----------------------------------------------------------------
    async def _run(self) -> None:
        assert self._url is not None
        while not self._closing:
            self._state = ClientState.CONNECTING
            try:
                await self._stream_once(self._url)
            except (httpx.HTTPError, httpx.StreamError, OSError, TransportError) as err:
                logger.warning("Push stream error: %s", err)
            except Exception:
                logger.exception("Unexpected push stream failure")
            else:
                logger.info("Push stream closed by server")

            if self._closing:
                break

            self._state = ClientState.DISCONNECTED
            delay = self.reconnect_delay_ms()
            logger.info(
                "Reconnecting in %dms (attempt %d)", delay, self._attempt + 1
            )
            await self._sleep(delay / 1000)
            self._attempt += 1

    async def _stream_once(self, url: str) -> None:
        logger.info("Connecting to push stream: %s", url)
        async with self._opener(url) as lines:
            self._handle_open()
            data_lines: list[str] = []
            async for line in lines:
                if line == "":
                    if data_lines:
                        await self._handle_payload("\n".join(data_lines))
                        data_lines = []
                    continue
                if line.startswith(":"):
                    continue
                if line.startswith("data:"):
                    data_lines.append(line[5:].lstrip(" "))
            if data_lines:
                await self._handle_payload("\n".join(data_lines))

    def _handle_open(self) -> None:
        logger.info("Push stream established")
        self._state = ClientState.CONNECTED
        self._attempt = 0

    async def _handle_payload(self, payload: str) -> None:
        try:
            event = parse_event(payload)
        except SchemaValidationError as err:
            logger.warning("Dropping malformed push payload: %s", err.errors()[:1])
            return

        self._attempt = 0
        try:
            result = self._on_event(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Push event handler failed")
