"""Presentation-side store: notifications, the bot list, settings and chat logs."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from emulator_shell.models import Bot, BotInfo, GlobalSettings, Notification

NOTIFICATION_BEGIN_ADD = "NOTIFICATION/BEGIN_ADD"
NOTIFICATION_BEGIN_REMOVE = "NOTIFICATION/BEGIN_REMOVE"
BOT_LIST_SYNC = "BOT/LIST_SYNC"
BOT_LOADED = "BOT/LOADED"
GLOBAL_SETTINGS_RECEIVED = "SETTINGS/RECEIVE_GLOBAL"
CHAT_ACTIVITIES_APPENDED = "CHAT/ACTIVITIES_APPENDED"
GLOBAL_SET = "GLOBAL/SET"

# Key of the notification the host leaves in the shared globals when it
# calls `notification:add` without an argument.
NOTIFICATION_FROM_MAIN = "notification-from-main"


class PresentationState(BaseModel):
    notifications: List[Notification] = Field(default_factory=list)
    bots: List[BotInfo] = Field(default_factory=list)
    active_bot: Optional[Bot] = None
    bot_directory: str = ""
    global_settings: Optional[GlobalSettings] = None
    chat_logs: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    globals: Dict[str, Any] = Field(default_factory=dict)


def begin_add(notification: Notification) -> Dict[str, Any]:
    return {"type": NOTIFICATION_BEGIN_ADD, "payload": {"notification": notification}}


def begin_remove(notification_id: str) -> Dict[str, Any]:
    return {"type": NOTIFICATION_BEGIN_REMOVE, "payload": {"id": notification_id}}


def bot_list_sync(bots: List[BotInfo]) -> Dict[str, Any]:
    return {"type": BOT_LIST_SYNC, "payload": {"bots": bots}}


def bot_loaded(bot: Bot, directory: str) -> Dict[str, Any]:
    return {"type": BOT_LOADED, "payload": {"bot": bot, "directory": directory}}


def global_settings_received(settings: GlobalSettings) -> Dict[str, Any]:
    return {"type": GLOBAL_SETTINGS_RECEIVED, "payload": {"settings": settings}}


def activities_appended(conversation_id: str, activities: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "type": CHAT_ACTIVITIES_APPENDED,
        "payload": {"conversation_id": conversation_id, "activities": activities},
    }


def set_global(key: str, value: Any) -> Dict[str, Any]:
    return {"type": GLOBAL_SET, "payload": {"key": key, "value": value}}


def presentation_reducer(state: PresentationState, action: Dict[str, Any]) -> PresentationState:
    kind = action["type"]
    payload = action.get("payload") or {}

    if kind == NOTIFICATION_BEGIN_ADD:
        notification: Notification = payload["notification"]
        others = [n for n in state.notifications if n.id != notification.id]
        return state.model_copy(update={"notifications": [*others, notification]})

    if kind == NOTIFICATION_BEGIN_REMOVE:
        remaining = [n for n in state.notifications if n.id != payload["id"]]
        return state.model_copy(update={"notifications": remaining})

    if kind == BOT_LIST_SYNC:
        return state.model_copy(update={"bots": list(payload["bots"])})

    if kind == BOT_LOADED:
        return state.model_copy(
            update={"active_bot": payload["bot"], "bot_directory": payload["directory"]}
        )

    if kind == GLOBAL_SETTINGS_RECEIVED:
        return state.model_copy(update={"global_settings": payload["settings"]})

    if kind == CHAT_ACTIVITIES_APPENDED:
        logs = dict(state.chat_logs)
        conversation_id = payload["conversation_id"]
        logs[conversation_id] = [*logs.get(conversation_id, []), *payload["activities"]]
        return state.model_copy(update={"chat_logs": logs})

    if kind == GLOBAL_SET:
        return state.model_copy(update={"globals": {**state.globals, payload["key"]: payload["value"]}})

    return state
