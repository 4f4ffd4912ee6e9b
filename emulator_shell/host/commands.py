"""
Host command handlers.

Every public command the host exposes across the bridge is a method of
HostCommands. Handlers validate their inputs before touching any state,
then do their work through the injected HostContext (store, conversations,
dialogs, watcher, extensions and the connected presentation peer).
"""

from __future__ import annotations

import errno
import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from jsonschema import Draft7Validator
from pydantic import ValidationError

from emulator_shell.commands.registry import CommandSet, command
from emulator_shell.config import Settings
from emulator_shell.conversations import Conversation, ConversationSet, new_conversation_id, validate_mode
from emulator_shell.errors import (
    InvalidArgumentError,
    InvalidFileError,
    InvalidStateError,
    NoActiveBotError,
    NotFoundError,
)
from emulator_shell.models import Bot, ConversationUser, FrameworkSettings, GlobalSettings
from emulator_shell.store import Store

from . import state as actions
from .bots import bot_file_path, get_bots_from_disk, new_bot, new_default_bot, read_bot_file
from .collaborators import Dialogs, DirectoryWatcher, ExtensionManager, ProtocolHandler
from .files import ensure_dir, read_file, read_json, write_file
from .state import HostState

if TYPE_CHECKING:
    from emulator_shell.bridge.service import CommandService

logger = logging.getLogger("emulator-shell")

TRANSCRIPT_SCHEMA: Dict[str, Any] = {"type": "array", "items": {"type": "object"}}
_transcript_validator = Draft7Validator(TRANSCRIPT_SCHEMA)

PACKAGE_DIR = Path(__file__).resolve().parent.parent


@dataclass
class HostContext:
    """Everything host handlers may touch. Passed in; never looked up globally."""

    settings: Settings
    store: Store[HostState]
    conversations: ConversationSet
    dialogs: Dialogs
    watcher: DirectoryWatcher
    extensions: ExtensionManager
    protocol: ProtocolHandler
    pending_protocol_url: Optional[str] = None
    client: Optional["CommandService"] = field(default=None, repr=False)

    def peer(self) -> Optional["CommandService"]:
        if self.client is None or self.client.closed:
            return None
        return self.client


def _coerce_bot(raw: Any, command_name: str) -> Bot:
    if isinstance(raw, Bot):
        return raw
    if not isinstance(raw, Mapping):
        raise InvalidArgumentError(f"{command_name}: bot must be an object")
    try:
        return Bot.model_validate(dict(raw))
    except ValidationError as exc:
        raise InvalidArgumentError(
            f"{command_name}: invalid bot", details=exc.errors(include_url=False)
        ) from exc


class HostCommands(CommandSet):
    def __init__(self, context: HostContext):
        self.context = context

    # -- helpers -------------------------------------------------------------

    @property
    def _state(self) -> HostState:
        return self.context.store.get_state()

    def _dispatch(self, action: Dict[str, Any]) -> None:
        self.context.store.dispatch(action)

    def _active_bot(self, command_name: str) -> Bot:
        bot = self._state.bot.active_bot
        if bot is None:
            raise NoActiveBotError(command_name)
        return bot

    def _activate(self, bot: Bot, directory: Optional[str]) -> None:
        """Make `bot` active; a bot without a project directory is a mock."""
        previous = self._state.bot.active_bot
        if previous is not None and previous.id != bot.id:
            removed = self.context.conversations.remove_bot(previous.id)
            if removed:
                logger.info("Closed %d conversation(s) of bot %s", removed, previous.id)
        if directory:
            self.context.watcher.watch(directory)
            self._dispatch(actions.set_active(bot, directory))
        else:
            self.context.watcher.unwatch()
            self._dispatch(actions.mock_and_set_active(bot))

    def _conversation(self, command_name: str, bot: Bot, conversation_id: str) -> Conversation:
        conversation = self.context.conversations.conversation_by_id(bot.id, conversation_id)
        if conversation is None:
            raise NotFoundError(f"{command_name}: Conversation {conversation_id} not found.")
        return conversation

    # -- misc ----------------------------------------------------------------

    @command("ping")
    def ping(self) -> str:
        return "pong"

    # -- bots ----------------------------------------------------------------

    @command("bot:create")
    def create_bot(self, bot: Any, bot_directory: str) -> Dict[str, Any]:
        """Write the bot file into `bot_directory` and add it to the bot list."""
        bot = _coerce_bot(bot, "bot:create")
        if not bot_directory:
            raise InvalidArgumentError("bot:create: a bot directory is required")
        path = bot_file_path(bot, bot_directory)
        ensure_dir(bot_directory)
        write_file(path, bot.to_wire())
        self._dispatch(actions.create(bot, str(path)))
        return {"bot": bot.to_wire(), "path": str(path)}

    @command("bot:save")
    def save_bot(self, bot: Any) -> None:
        self._dispatch(actions.patch(_coerce_bot(bot, "bot:save")))

    @command("bot:new")
    def new_unsaved_bot(self) -> Dict[str, Any]:
        """Create a new bot object; don't save to state."""
        names = [info.display_name for info in self._state.bot.bot_files]
        return new_default_bot(names).to_wire()

    @command("bot:load")
    async def load_bot(self, bot_file: str) -> Dict[str, Any]:
        """Open a bot project from its file, make it active and tell the presentation layer."""
        bot = read_bot_file(bot_file)
        if self._state.bot_info(bot.id) is None:
            self._dispatch(actions.create(bot, str(bot_file)))

        directory = str(Path(bot_file).resolve().parent)
        self._activate(bot, directory)

        peer = self.context.peer()
        if peer is not None:
            await peer.remote_call("bot:load", {"bot": bot.to_wire(), "directory": directory})
        return bot.to_wire()

    @command("bot:setActive")
    def set_active_bot(self, bot_id: str) -> Dict[str, Any]:
        info = self._state.bot_info(bot_id)
        if info is None:
            raise NotFoundError(f"bot:setActive: Bot {bot_id} not found.")
        bot = read_bot_file(info.path)

        directory = str(Path(info.path).resolve().parent)
        self._activate(bot, directory)
        return {"bot": bot.to_wire(), "directory": directory}

    # -- conversations -------------------------------------------------------

    @command("conversation:new")
    def new_conversation(self, mode: str) -> Conversation:
        """Create a conversation for the active bot, mocking a bot if none is active."""
        validate_mode(mode)

        bot = self._state.bot.active_bot
        if bot is None:
            bot = new_bot()
            self._activate(bot, None)

        conversation_id = new_conversation_id(mode)
        return self.context.conversations.new_conversation(
            bot.id, ConversationUser(name="User"), conversation_id
        )

    @command("emulator:save-transcript-to-file")
    def save_transcript_to_file(self, conversation_id: str) -> None:
        """Saves the conversation to a transcript file, with user interaction to set filename."""
        name = "save-transcript-to-file"
        bot = self._active_bot(name)

        directory = self._state.bot.current_bot_directory
        if not directory:
            raise InvalidStateError(f"{name}: Project directory not set")
        directory = str(Path(directory).resolve())

        conversation = self._conversation(name, bot, conversation_id)

        filename = self.context.dialogs.show_save_dialog(
            {
                "filters": [{"name": "Transcript Files", "extensions": ["transcript"]}],
                "defaultPath": directory,
                "showsTagField": False,
                "title": "Save conversation transcript",
                "buttonLabel": "Save",
            }
        )
        if not filename:
            return

        ensure_dir(Path(filename).parent)
        write_file(filename, conversation.activities)
        logger.info("Saved transcript of %s to %s", conversation_id, filename)

    @command("emulator:feed-transcript:disk")
    async def feed_transcript_from_disk(self, conversation_id: str, filename: str) -> None:
        name = "feed-transcript:disk"
        bot = self._active_bot(name)
        conversation = self._conversation(name, bot, conversation_id)

        path = Path(filename).resolve()
        if not path.is_file():
            raise FileNotFoundError(errno.ENOENT, f"{name}: File {filename} not found.", str(filename))

        try:
            activities = read_json(path)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidFileError(f"{name}: {filename} is not a JSON transcript", path=str(path)) from exc
        errors = [err.message for err in _transcript_validator.iter_errors(activities)]
        if errors:
            raise InvalidFileError(
                f"{name}: {filename} is not a list of activities", path=str(path), details=errors
            )

        await conversation.feed_activities(activities)

    @command("emulator:feed-transcript:deep-link")
    async def feed_transcript_from_deep_link(self, conversation_id: str, activities: List[Any]) -> None:
        name = "emulator:feed-transcript:deep-link"
        bot = self._active_bot(name)
        conversation = self._conversation(name, bot, conversation_id)
        await conversation.feed_activities(activities)

    # -- settings ------------------------------------------------------------

    @command("app:settings:save")
    def save_settings(self, settings: Any) -> None:
        try:
            framework = FrameworkSettings.model_validate(settings)
        except ValidationError as exc:
            raise InvalidArgumentError(
                "app:settings:save: invalid settings", details=exc.errors(include_url=False)
            ) from exc
        self._dispatch(actions.framework_set(framework))

    @command("app:settings:load")
    def load_settings(self, *args: Any) -> Dict[str, Any]:
        return self._state.framework.to_wire()

    # -- lifecycle -----------------------------------------------------------

    @command("client:loaded")
    async def client_loaded(self) -> None:
        """The presentation layer is up: sync bots and settings, reload extensions, replay the protocol URL."""
        bots = get_bots_from_disk()
        self._dispatch(actions.load(bots))

        peer = self.context.peer()
        if peer is not None:
            await peer.remote_call("bot:list:sync", [info.to_wire() for info in bots])
            global_settings = GlobalSettings(url=self.context.settings.emulator_url, cwd=str(PACKAGE_DIR))
            await peer.remote_call("receive-global-settings", global_settings.to_wire())

        self.context.extensions.unload_extensions()
        self.context.extensions.load_extensions()

        url = self.context.pending_protocol_url
        if url:
            self.context.pending_protocol_url = None
            self.context.protocol.parse_protocol_url_and_dispatch(url)

    # -- files and dialogs ---------------------------------------------------

    @command("file:read")
    def read_path(self, path: str) -> str:
        try:
            return read_file(path)
        except OSError:
            logger.error("Failure reading file at %s", path)
            raise

    @command("file:write")
    def write_path(self, path: str, contents: Any) -> None:
        try:
            write_file(path, contents)
        except OSError:
            logger.error("Failure writing to file at %s", path)
            raise

    @command("path:basename")
    def basename(self, path: str) -> str:
        return os.path.basename(path)

    @command("shell:showOpenDialog")
    def show_open_dialog(self, options: Optional[Dict[str, Any]] = None) -> Optional[str]:
        return self.context.dialogs.show_open_dialog(dict(options or {}))

    @command("shell:showSaveDialog")
    def show_save_dialog(self, options: Optional[Dict[str, Any]] = None) -> Optional[str]:
        return self.context.dialogs.show_save_dialog(dict(options or {}))

    @command("shell:showMessageBox")
    def show_message_box(self, modal: bool, options: Optional[Dict[str, Any]] = None) -> int:
        """Returns the index of the button the user chose."""
        return self.context.dialogs.show_message_box(bool(modal), dict(options or {}))
