from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from emulator_shell.bridge.service import CommandService
from emulator_shell.bridge.transport import Transport
from emulator_shell.commands.registry import CommandRegistry
from emulator_shell.config import Settings, get_settings
from emulator_shell.conversations import Conversation, ConversationSet
from emulator_shell.errors import EmulatorError, InvalidStateError
from emulator_shell.models import FrameworkSettings
from emulator_shell.storage import bot_store
from emulator_shell.store import Store

from . import state as actions
from .collaborators import (
    Dialogs,
    DirectoryWatcher,
    ExtensionFactory,
    ExtensionManager,
    ProtocolHandler,
    ScriptedDialogs,
)
from .commands import HostCommands, HostContext
from .state import HostState, host_reducer

logger = logging.getLogger("emulator-shell")

FRAMEWORK_SETTINGS_KEY = "framework"

# Actions after which the recent-bots list must be written back.
_BOT_LIST_ACTIONS = {actions.BOT_CREATE, actions.BOT_PATCH, actions.BOT_LOAD}


def load_host_state() -> HostState:
    """Build the initial host state from the database."""
    bot_store.init_db()
    framework_raw = bot_store.get_setting(FRAMEWORK_SETTINGS_KEY)
    framework = FrameworkSettings()
    if framework_raw is not None:
        try:
            framework = FrameworkSettings.model_validate(framework_raw)
        except ValidationError:
            logger.warning("Stored framework settings are invalid; using defaults")
    return HostState(
        bot=actions.BotState(bot_files=bot_store.list_bots()),
        framework=framework,
    )


def persist_host_state(state: HostState, action: Dict[str, Any]) -> None:
    """Store subscriber: write bots and settings through to the database."""
    if action["type"] in _BOT_LIST_ACTIONS:
        bot_store.replace_bots(state.bot.bot_files)
    elif action["type"] == actions.FRAMEWORK_SET:
        bot_store.set_setting(FRAMEWORK_SETTINGS_KEY, state.framework.to_wire())


class HostApp:
    """
    The host process: registry, state and command handlers.

    One presentation peer at a time may be connected through `connect`;
    host handlers reach it through the context.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        dialogs: Optional[Dialogs] = None,
        argv: Optional[Iterable[str]] = None,
        extension_factories: Iterable[ExtensionFactory] = (),
        persist: bool = True,
    ):
        self.settings = settings or get_settings()
        self.registry = CommandRegistry()

        initial = load_host_state() if persist else HostState()
        self.store: Store[HostState] = Store(host_reducer, initial)
        if persist:
            self.store.subscribe(persist_host_state)

        protocol = ProtocolHandler(self.settings.protocol_scheme)
        argv_list: List[str] = list(sys.argv[1:] if argv is None else argv)
        self.context = HostContext(
            settings=self.settings,
            store=self.store,
            conversations=ConversationSet(listener=self._forward_activities),
            dialogs=dialogs or ScriptedDialogs(),
            watcher=DirectoryWatcher(),
            extensions=ExtensionManager(self.registry, extension_factories),
            protocol=protocol,
            pending_protocol_url=protocol.find_protocol_url(argv_list),
        )
        self.commands = HostCommands(self.context)
        self.registry.attach(self.commands)

    @property
    def conversations(self) -> ConversationSet:
        return self.context.conversations

    @property
    def connected(self) -> bool:
        return self.context.peer() is not None

    def connect(self, transport: Transport) -> CommandService:
        """Pair the host registry with a presentation peer over `transport`."""
        if self.connected:
            raise InvalidStateError("A presentation layer is already connected")
        service = CommandService(
            self.registry, transport, name="host", timeout=self.settings.remote_call_timeout
        )
        self.context.client = service
        logger.info("Presentation layer connected")
        return service

    def disconnect(self, service: CommandService) -> None:
        if self.context.client is service:
            self.context.client = None
            logger.info("Presentation layer disconnected")

    async def _forward_activities(self, conversation: Conversation, activities: List[Dict[str, Any]]) -> None:
        peer = self.context.peer()
        if peer is None:
            logger.debug("No presentation layer; %d activities not forwarded", len(activities))
            return
        try:
            await peer.remote_call("conversation:activities", conversation.id, activities)
        except EmulatorError as exc:
            logger.warning("Could not forward %d activities of %s: %s", len(activities), conversation.id, exc)
