from __future__ import annotations

import logging
from typing import Optional

from emulator_shell.bridge.service import CommandService
from emulator_shell.bridge.transport import Transport
from emulator_shell.commands.registry import CommandRegistry
from emulator_shell.store import Store

from .commands import BotCommands, ChatCommands, NotificationCommands, SettingsCommands
from .state import PresentationState, presentation_reducer

logger = logging.getLogger("emulator-shell")


class PresentationApp:
    """
    The presentation side of the shell.

    Owns its own registry and store; talks to the host only through the
    CommandService it builds over `transport`.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        store: Optional[Store[PresentationState]] = None,
        timeout: Optional[float] = None,
    ):
        self.store: Store[PresentationState] = store or Store(presentation_reducer, PresentationState())
        self.registry = CommandRegistry()
        for command_set in (
            NotificationCommands(self.store),
            BotCommands(self.store),
            SettingsCommands(self.store),
            ChatCommands(self.store),
        ):
            self.registry.attach(command_set)
        self.service = CommandService(self.registry, transport, name="presentation", timeout=timeout)

    @property
    def state(self) -> PresentationState:
        return self.store.get_state()

    async def boot(self) -> None:
        """Start reading from the host and announce that the client is loaded."""
        self.service.start()
        await self.service.remote_call("client:loaded")
        logger.info("Presentation layer loaded")

    async def close(self) -> None:
        await self.service.close()
