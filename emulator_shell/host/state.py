"""
Host-side state: configured bots, the active bot and framework settings.

Action creators build plain dict actions; `host_reducer` applies them and
always returns a new HostState. Persistence is a store subscriber
(see host.app), not part of the reducer.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from emulator_shell.models import Bot, BotInfo, FrameworkSettings

BOT_CREATE = "BOT/CREATE"
BOT_PATCH = "BOT/PATCH"
BOT_LOAD = "BOT/LOAD"
BOT_SET_ACTIVE = "BOT/SET_ACTIVE"
BOT_MOCK_AND_SET_ACTIVE = "BOT/MOCK_AND_SET_ACTIVE"
FRAMEWORK_SET = "Framework_Set"


class BotState(BaseModel):
    bot_files: List[BotInfo] = Field(default_factory=list)
    active_bot: Optional[Bot] = None
    current_bot_directory: str = ""


class HostState(BaseModel):
    bot: BotState = Field(default_factory=BotState)
    framework: FrameworkSettings = Field(default_factory=FrameworkSettings)

    def bot_info(self, bot_id: str) -> Optional[BotInfo]:
        for info in self.bot.bot_files:
            if info.id == bot_id:
                return info
        return None


# -- action creators --


def create(bot: Bot, path: str) -> Dict[str, Any]:
    return {"type": BOT_CREATE, "payload": {"bot": bot, "path": path}}


def patch(bot: Bot) -> Dict[str, Any]:
    return {"type": BOT_PATCH, "payload": {"bot": bot}}


def load(bots: List[BotInfo]) -> Dict[str, Any]:
    return {"type": BOT_LOAD, "payload": {"bots": bots}}


def set_active(bot: Bot, directory: str) -> Dict[str, Any]:
    return {"type": BOT_SET_ACTIVE, "payload": {"bot": bot, "directory": directory}}


def mock_and_set_active(bot: Bot) -> Dict[str, Any]:
    return {"type": BOT_MOCK_AND_SET_ACTIVE, "payload": {"bot": bot}}


def framework_set(settings: FrameworkSettings) -> Dict[str, Any]:
    return {"type": FRAMEWORK_SET, "state": settings}


# -- reducer --


def _bot_reducer(state: BotState, action: Dict[str, Any]) -> BotState:
    kind = action["type"]
    payload = action.get("payload") or {}

    if kind == BOT_CREATE:
        bot: Bot = payload["bot"]
        info = BotInfo(id=bot.id, path=str(payload["path"]), display_name=bot.bot_name)
        others = [b for b in state.bot_files if b.id != bot.id]
        return state.model_copy(update={"bot_files": [info, *others]})

    if kind == BOT_PATCH:
        bot = payload["bot"]
        files = [
            b.model_copy(update={"display_name": bot.bot_name}) if b.id == bot.id else b
            for b in state.bot_files
        ]
        active = state.active_bot
        if active is not None and active.id == bot.id:
            active = bot
        return state.model_copy(update={"bot_files": files, "active_bot": active})

    if kind == BOT_LOAD:
        return state.model_copy(update={"bot_files": list(payload["bots"])})

    if kind == BOT_SET_ACTIVE:
        return state.model_copy(
            update={"active_bot": payload["bot"], "current_bot_directory": str(payload["directory"])}
        )

    if kind == BOT_MOCK_AND_SET_ACTIVE:
        return state.model_copy(update={"active_bot": payload["bot"], "current_bot_directory": ""})

    return state


def host_reducer(state: HostState, action: Dict[str, Any]) -> HostState:
    if action["type"] == FRAMEWORK_SET:
        return state.model_copy(update={"framework": action["state"]})
    bot_state = _bot_reducer(state.bot, action)
    if bot_state is state.bot:
        return state
    return state.model_copy(update={"bot": bot_state})
