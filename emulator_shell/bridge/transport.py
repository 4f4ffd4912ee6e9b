"""
Transports carry text frames between the two peers.

A transport only moves strings; encoding lives in bridge.protocol.
`receive()` returns None once the boundary is closed (by either side) and
`send()` raises BridgeClosedError after that point.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, Tuple

from fastapi import WebSocket, WebSocketDisconnect

from emulator_shell.errors import BridgeClosedError

logger = logging.getLogger("emulator-shell")


class Transport:
    """Abstract transport interface."""

    @property
    def closed(self) -> bool:  # pragma: no cover - interface only
        raise NotImplementedError

    async def send(self, frame: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    async def receive(self) -> Optional[str]:  # pragma: no cover - interface only
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


_EOF = object()


class MemoryTransport(Transport):
    """One end of an in-process pipe. Frames are still JSON text, never live objects."""

    def __init__(self, inbox: asyncio.Queue, outbox: asyncio.Queue):
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, frame: str) -> None:
        if self._closed:
            raise BridgeClosedError("Transport is closed")
        await self._outbox.put(frame)

    async def receive(self) -> Optional[str]:
        if self._closed and self._inbox.empty():
            return None
        item = await self._inbox.get()
        if item is _EOF:
            self._closed = True
            return None
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake the peer's reader and our own.
        await self._outbox.put(_EOF)
        await self._inbox.put(_EOF)


def memory_pipe() -> Tuple[MemoryTransport, MemoryTransport]:
    """Return two connected transports (host end, presentation end)."""
    a_to_b: asyncio.Queue = asyncio.Queue()
    b_to_a: asyncio.Queue = asyncio.Queue()
    return MemoryTransport(b_to_a, a_to_b), MemoryTransport(a_to_b, b_to_a)


class StreamTransport(Transport):
    """Newline-delimited frames over asyncio streams (pipes, sockets, stdio)."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, frame: str) -> None:
        if self._closed:
            raise BridgeClosedError("Transport is closed")
        if "\n" in frame:
            raise ValueError("Frames must not contain newlines")
        try:
            self._writer.write(frame.encode("utf-8") + b"\n")
            await self._writer.drain()
        except (ConnectionError, RuntimeError) as exc:
            self._closed = True
            raise BridgeClosedError(f"Stream closed while sending: {exc}") from exc

    async def receive(self) -> Optional[str]:
        while not self._closed:
            try:
                line = await self._reader.readline()
            except (ConnectionError, asyncio.IncompleteReadError):
                line = b""
            if not line:
                self._closed = True
                return None
            text = line.decode("utf-8").strip()
            if text:
                return text
        return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, RuntimeError) as exc:
            logger.debug("Stream close raised %s", exc)


async def stdio_transport() -> StreamTransport:
    """Wrap this process's stdin/stdout as a StreamTransport."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    write_transport, write_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(write_transport, write_protocol, reader, loop)
    return StreamTransport(reader, writer)


class WebSocketTransport(Transport):
    """Adapter from a FastAPI WebSocket to the bridge transport interface."""

    def __init__(self, ws: WebSocket):
        self._ws = ws
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, frame: str) -> None:
        if self._closed:
            raise BridgeClosedError("WebSocket is closed")
        try:
            await self._ws.send_text(frame)
        except (WebSocketDisconnect, RuntimeError) as exc:
            self._closed = True
            raise BridgeClosedError(f"WebSocket closed while sending: {exc}") from exc

    async def receive(self) -> Optional[str]:
        if self._closed:
            return None
        try:
            return await self._ws.receive_text()
        except (WebSocketDisconnect, RuntimeError):
            self._closed = True
            return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close()
        except RuntimeError as exc:
            logger.debug("WebSocket close raised %s", exc)
