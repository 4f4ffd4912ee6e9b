"""
CommandService: the RPC bridge between this process's registry and the peer.

    call(name, *args)         invoke a command registered in *this* process
    remote_call(name, *args)  invoke a command registered in the *other*
                              process and wait for its result

Every outbound remote call gets a fresh correlation id and a pending future.
The read loop resolves futures by id, so replies may arrive in any order.
A future is settled at most once: late replies, duplicate replies and replies
for unknown ids are logged and dropped. When the transport closes, every
pending call is rejected with BridgeClosedError.

Inbound calls are served in their own tasks so the read loop keeps running
while a handler awaits a remote call of its own.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from typing import Any, Dict, Optional, Set

from emulator_shell.bridge import protocol
from emulator_shell.bridge.protocol import (
    CallMessage,
    ErrorMessage,
    ErrorPayload,
    FrameError,
    ResultMessage,
)
from emulator_shell.bridge.transport import Transport
from emulator_shell.commands.registry import CommandRegistry
from emulator_shell.errors import (
    BridgeClosedError,
    BridgeTimeoutError,
    RemoteCommandError,
    UnknownCommandError,
)

logger = logging.getLogger("emulator-shell")


class CommandService:
    def __init__(
        self,
        registry: CommandRegistry,
        transport: Transport,
        *,
        name: str = "bridge",
        timeout: Optional[float] = None,
    ):
        self.registry = registry
        self.name = name
        self._transport = transport
        self._timeout = timeout
        self._pending: Dict[str, asyncio.Future] = {}
        self._serving: Set[asyncio.Task] = set()
        self._reader: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -- local ---------------------------------------------------------------

    async def call(self, name: str, *args: Any) -> Any:
        """Invoke a local command; awaits the handler's result when it is awaitable."""
        result = self.registry.invoke(name, *args)
        if inspect.isawaitable(result):
            result = await result
        return result

    # -- remote --------------------------------------------------------------

    async def remote_call(self, name: str, *args: Any) -> Any:
        """Invoke `name` on the peer and return its result (or raise its failure)."""
        if self._closed:
            raise BridgeClosedError(f"{self.name}: cannot call '{name}', bridge is closed")
        call_id = uuid.uuid4().hex
        while call_id in self._pending:
            call_id = uuid.uuid4().hex
        frame = protocol.encode(CallMessage(id=call_id, name=name, args=list(args)))

        future = asyncio.get_running_loop().create_future()
        self._pending[call_id] = future
        try:
            await self._transport.send(frame)
            if self._timeout is None:
                return await future
            try:
                return await asyncio.wait_for(future, self._timeout)
            except asyncio.TimeoutError:
                raise BridgeTimeoutError(
                    f"{self.name}: '{name}' got no response within {self._timeout}s"
                ) from None
        finally:
            self._pending.pop(call_id, None)
            if future.done() and not future.cancelled():
                future.exception()  # mark retrieved when send() itself failed

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> "CommandService":
        """Start the read loop in the background."""
        if self._reader is None:
            self._reader = asyncio.get_running_loop().create_task(self.run())
        return self

    async def run(self) -> None:
        """Read and dispatch frames until the transport closes."""
        try:
            while True:
                frame = await self._transport.receive()
                if frame is None:
                    break
                self._dispatch(frame)
        finally:
            self._mark_closed("transport closed")

    async def close(self) -> None:
        """Close the boundary; all outstanding remote calls reject with BridgeClosedError."""
        if not self._closed:
            logger.info("%s: closing bridge with %d pending call(s)", self.name, len(self._pending))
        self._mark_closed("bridge closed locally")
        await self._transport.close()
        reader = self._reader
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    def _mark_closed(self, reason: str) -> None:
        self._closed = True
        pending = list(self._pending.items())
        self._pending.clear()
        for call_id, future in pending:
            if not future.done():
                future.set_exception(BridgeClosedError(f"{self.name}: {reason} before call {call_id} resolved"))

    # -- inbound -------------------------------------------------------------

    def _dispatch(self, frame: str) -> None:
        try:
            message = protocol.decode(frame)
        except FrameError as exc:
            self._reject_malformed(frame, exc)
            return

        if isinstance(message, CallMessage):
            task = asyncio.get_running_loop().create_task(self._serve(message))
            self._serving.add(task)
            task.add_done_callback(self._serving.discard)
            return

        future = self._pending.pop(message.id, None)
        if future is None or future.done():
            logger.warning("%s: dropping %s for unknown call id %s", self.name, message.type, message.id)
            return
        if isinstance(message, ResultMessage):
            future.set_result(message.value)
        else:
            future.set_exception(self._remote_error(message.error))

    def _reject_malformed(self, frame: str, exc: FrameError) -> None:
        call_id = protocol.frame_id(frame)
        logger.warning("%s: dropping malformed frame (id=%s): %s", self.name, call_id, exc)
        if call_id is None:
            return
        future = self._pending.pop(call_id, None)
        if future is not None and not future.done():
            future.set_exception(RemoteCommandError("?", "FrameError", str(exc)))

    @staticmethod
    def _remote_error(error: ErrorPayload) -> Exception:
        if error.kind == UnknownCommandError.__name__:
            return UnknownCommandError(error.command, remote=True)
        return RemoteCommandError(error.command, error.kind, error.message, details=error.details)

    async def _serve(self, message: CallMessage) -> None:
        try:
            value = await self.call(message.name, *message.args)
            reply = protocol.encode(ResultMessage(id=message.id, value=value))
        except Exception as exc:
            if isinstance(exc, UnknownCommandError):
                logger.warning("%s: peer called unknown command '%s'", self.name, message.name)
            else:
                logger.exception("%s: command '%s' failed", self.name, message.name)
            payload = ErrorPayload.from_exception(exc, command=message.name)
            reply = protocol.encode(ErrorMessage(id=message.id, error=payload))
        try:
            await self._transport.send(reply)
        except BridgeClosedError:
            logger.info("%s: bridge closed before reply to '%s' could be sent", self.name, message.name)
