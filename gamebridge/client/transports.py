# gamebridge/client/transports.py
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

import httpx
import websockets
from websockets.exceptions import WebSocketException

logger = logging.getLogger("gamebridge.client.transport")

OnOpen = Callable[[], None]
OnMessage = Callable[[str], None]
OnError = Callable[[str], None]


class Transport:
    """
    One inbound connection. open() returns once the connection attempt is
    under way; outcomes arrive through the callbacks:
      on_open()           connection established
      on_message(raw)     one message body
      on_error(line)      connection lost or refused; line is user-facing
    """

    connected_line = "Connected."

    async def open(self, on_open: OnOpen, on_message: OnMessage, on_error: OnError) -> None:
        raise NotImplementedError

    async def send(self, data: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


class _TaskTransport(Transport):
    """
    Runs the connection in a background task; close() cancels it.
    Anything _run lets escape is reported through on_error(failure_line).
    """

    failure_line = "Live stream unavailable. Reconnecting..."

    def __init__(self):
        self._task: Optional[asyncio.Task] = None

    async def _run(self, on_open: OnOpen, on_message: OnMessage, on_error: OnError) -> None:
        raise NotImplementedError

    async def _guarded(self, on_open: OnOpen, on_message: OnMessage, on_error: OnError) -> None:
        try:
            await self._run(on_open, on_message, on_error)
        except Exception:
            logger.exception("%s task failed", type(self).__name__)
            on_error(self.failure_line)

    async def open(self, on_open: OnOpen, on_message: OnMessage, on_error: OnError) -> None:
        await self.close()
        self._task = asyncio.create_task(self._guarded(on_open, on_message, on_error))

    async def close(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


def parse_sse_lines(lines: List[str]) -> Optional[str]:
    """Data of one SSE frame (lines up to, not including, the blank line)."""
    data: List[str] = []
    for line in lines:
        if not line or line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data.append(value)
    return "\n".join(data) if data else None


class SseTransport(_TaskTransport):
    connected_line = "Connected to live event stream."
    lost_line = "Live stream disconnected. Reconnecting..."
    failure_line = lost_line

    def __init__(
        self,
        url: str,
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__()
        self.url = url
        # read timeout is open-ended: the server only speaks every few seconds
        self.timeout = httpx.Timeout(connect_timeout, read=None)
        self._transport = transport

    async def _run(self, on_open: OnOpen, on_message: OnMessage, on_error: OnError) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                async with client.stream(
                    "GET", self.url, headers={"Accept": "text/event-stream"}
                ) as r:
                    if r.status_code != 200:
                        logger.warning("SSE %s -> HTTP %s", self.url, r.status_code)
                        on_error(self.lost_line)
                        return
                    on_open()
                    frame: List[str] = []
                    async for line in r.aiter_lines():
                        if line:
                            frame.append(line)
                            continue
                        data = parse_sse_lines(frame)
                        frame = []
                        if data is not None:
                            on_message(data)
            logger.info("SSE %s closed by server", self.url)
        except httpx.HTTPError as e:
            logger.warning("SSE %s failed: %s", self.url, repr(e))
        on_error(self.lost_line)

    async def send(self, data: str) -> None:
        raise RuntimeError("SSE transport is receive-only")


class WebSocketTransport(_TaskTransport):
    connected_line = "Connected to live WebSocket feed."
    closed_line = "WebSocket closed. Reconnecting..."
    error_line = "WebSocket error. Reconnecting..."
    failure_line = error_line

    def __init__(self, url: str, open_timeout: float = 10.0):
        super().__init__()
        self.url = url
        self.open_timeout = open_timeout
        self._ws = None

    async def _run(self, on_open: OnOpen, on_message: OnMessage, on_error: OnError) -> None:
        try:
            async with websockets.connect(self.url, open_timeout=self.open_timeout) as ws:
                self._ws = ws
                on_open()
                async for raw in ws:
                    on_message(raw if isinstance(raw, str) else raw.decode("utf-8", "replace"))
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            logger.warning("WebSocket %s failed: %s", self.url, repr(e))
            on_error(self.error_line)
            return
        finally:
            self._ws = None
        on_error(self.closed_line)

    async def send(self, data: str) -> None:
        if self._ws is None:
            raise RuntimeError("WebSocket is not connected")
        await self._ws.send(data)
