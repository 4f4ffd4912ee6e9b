"""Commands the presentation layer exposes to the host."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from emulator_shell.commands.registry import CommandSet, command
from emulator_shell.errors import InvalidArgumentError, NotFoundError
from emulator_shell.models import Bot, BotInfo, GlobalSettings, Notification
from emulator_shell.store import Store

from . import state as actions
from .state import NOTIFICATION_FROM_MAIN, PresentationState


def _validate(model: Any, raw: Any, command_name: str) -> Any:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise InvalidArgumentError(
            f"{command_name}: invalid payload", details=exc.errors(include_url=False)
        ) from exc


class PresentationCommands(CommandSet):
    def __init__(self, store: Store[PresentationState]):
        self.store = store


class NotificationCommands(PresentationCommands):
    """Registers notification commands."""

    @command("notification:add")
    def add_notification_from_main(self, notification: Optional[Dict[str, Any]] = None) -> None:
        """Adds a notification from the main side to the store."""
        if not notification:
            notification = self.store.get_state().globals.get(NOTIFICATION_FROM_MAIN)
            if not notification:
                raise NotFoundError("notification:add: no notification was supplied or pending")
        self.store.dispatch(actions.begin_add(_validate(Notification, notification, "notification:add")))

    @command("notification:remove")
    def remove_notification_from_store(self, notification_id: str) -> None:
        self.store.dispatch(actions.begin_remove(notification_id))


class BotCommands(PresentationCommands):
    @command("bot:list:sync")
    def sync_bot_list(self, bots: List[Dict[str, Any]]) -> None:
        infos = [_validate(BotInfo, raw, "bot:list:sync") for raw in bots or []]
        self.store.dispatch(actions.bot_list_sync(infos))

    @command("bot:load")
    def bot_loaded(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        bot = _validate(Bot, (payload or {}).get("bot"), "bot:load")
        directory = str((payload or {}).get("directory") or "")
        self.store.dispatch(actions.bot_loaded(bot, directory))
        return bot.to_wire()


class SettingsCommands(PresentationCommands):
    @command("receive-global-settings")
    def receive_global_settings(self, settings: Dict[str, Any]) -> None:
        self.store.dispatch(
            actions.global_settings_received(_validate(GlobalSettings, settings, "receive-global-settings"))
        )


class ChatCommands(PresentationCommands):
    @command("conversation:activities")
    def append_activities(self, conversation_id: str, activities: List[Dict[str, Any]]) -> int:
        if not isinstance(activities, list):
            raise InvalidArgumentError("conversation:activities: activities must be a list")
        self.store.dispatch(actions.activities_appended(conversation_id, activities))
        return len(activities)
