"""
Event stream client.

Keeps one server-push connection to the hub and turns what arrives into
typed events on a queue:

    stream = HueEventStream()
    stream.connect("https://192.168.1.20", auth_key)

    async for event in stream.events():
        if isinstance(event, StreamUpdate):
            ...

The client never reconnects on its own. A StreamDisconnected event is
emitted whenever the connection ends and the owner decides when to call
connect() again.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import aiohttp

from .api import APP_KEY_HEADER

logger = logging.getLogger(__name__)

EVENT_STREAM_PATH = "/eventstream/clip/v2"


class StreamState(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"


@dataclass
class StreamConnected:
    """The hub accepted the stream."""


@dataclass
class StreamDisconnected:
    """The stream ended, or disconnect() was called."""
    reason: Optional[str] = None
    requested: bool = False


@dataclass
class StreamUpdate:
    """One element of a pushed event array."""
    kind: str  # update, add, delete, error
    data: List[Dict[str, Any]] = field(default_factory=list)
    event_id: Optional[str] = None
    created: Optional[str] = None


@dataclass
class StreamError:
    """A pushed message could not be decoded."""
    error: str
    raw: Optional[str] = None


StreamEvent = Union[StreamConnected, StreamDisconnected, StreamUpdate, StreamError]


class HueEventStream:
    """Server-sent event connection to the hub."""

    def __init__(self, connect_timeout: float = 10.0):
        self.connect_timeout = connect_timeout
        self._queue: "asyncio.Queue[StreamEvent]" = asyncio.Queue()
        self._state = StreamState.CLOSED
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == StreamState.OPEN

    def connect(self, base_url: str, auth_key: str) -> None:
        """Open the stream in the background. No-op unless closed."""
        if self._state != StreamState.CLOSED:
            return
        self._state = StreamState.CONNECTING
        self._task = asyncio.create_task(self._run(base_url.rstrip("/"), auth_key))

    async def disconnect(self) -> None:
        """
        Close the stream, cancelling a connect in progress.

        Always emits StreamDisconnected, even when already closed.
        """
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._state = StreamState.CLOSED
        self._emit(StreamDisconnected(reason="disconnect requested", requested=True))

    async def get(self) -> StreamEvent:
        """Wait for the next event."""
        return await self._queue.get()

    async def events(self) -> AsyncIterator[StreamEvent]:
        while True:
            yield await self._queue.get()

    def _emit(self, event: StreamEvent) -> None:
        self._queue.put_nowait(event)

    async def _run(self, base_url: str, auth_key: str) -> None:
        reason: Optional[str] = None
        cancelled = False
        headers = {"Accept": "text/event-stream", APP_KEY_HEADER: auth_key}
        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout),
            connector=aiohttp.TCPConnector(ssl=False),
        )
        try:
            async with session.get(f"{base_url}{EVENT_STREAM_PATH}", headers=headers) as resp:
                if resp.status != 200:
                    reason = f"HTTP {resp.status}"
                    return

                self._state = StreamState.OPEN
                logger.debug("Event stream connected")
                self._emit(StreamConnected())

                await self._read(resp)
                reason = "closed by hub"
        except asyncio.CancelledError:
            cancelled = True
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            reason = str(e) or e.__class__.__name__
        except ValueError as e:
            # aiohttp raises this for lines over its read limit
            reason = f"Unreadable stream: {e}"
        finally:
            await session.close()
            if not cancelled:
                logger.debug(f"Event stream ended: {reason}")
                if self._task is asyncio.current_task():
                    self._task = None
                self._state = StreamState.CLOSED
                self._emit(StreamDisconnected(reason=reason))

    async def _read(self, resp: aiohttp.ClientResponse) -> None:
        """Split the body into records: SSE data blocks or bare JSON lines."""
        data_lines: List[str] = []
        async for raw in resp.content:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")

            if not line:
                if data_lines:
                    self._dispatch("\n".join(data_lines))
                    data_lines = []
                continue

            if line.startswith(":"):
                continue
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
                continue
            if line.startswith(("id:", "event:", "retry:")):
                continue

            self._dispatch(line)

        if data_lines:
            self._dispatch("\n".join(data_lines))

    def _dispatch(self, payload: str) -> None:
        try:
            messages = json.loads(payload)
        except ValueError as e:
            logger.debug(f"Malformed event stream message: {e}")
            self._emit(StreamError(error=str(e), raw=payload))
            return

        if isinstance(messages, dict):
            messages = [messages]
        if not isinstance(messages, list):
            self._emit(StreamError(error="Expected a JSON array", raw=payload))
            return

        for message in messages:
            try:
                update = self._decode(message)
            except (TypeError, ValueError) as e:
                logger.debug(f"Malformed event stream message: {e}")
                self._emit(StreamError(error=str(e), raw=payload))
                continue
            self._emit(update)

    @staticmethod
    def _decode(message: Any) -> StreamUpdate:
        if not isinstance(message, dict) or "type" not in message:
            raise ValueError("Event without type")
        data = message.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise ValueError(f"Event data is not a list: {type(data).__name__}")
        return StreamUpdate(
            kind=str(message["type"]),
            data=[d for d in data if isinstance(d, dict)],
            event_id=message.get("id"),
            created=message.get("creationtime"),
        )
