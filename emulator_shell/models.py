"""
Data models shared by the host and presentation processes.

Defines Bot, BotInfo, FrameworkSettings, ConversationUser, Notification and
GlobalSettings. Everything here crosses the bridge, so every model dumps to
plain JSON data; bot files and wire payloads use camelCase keys.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_BOT_URL = "http://localhost:3978/api/messages"


def unique_id() -> str:
    return str(uuid.uuid4())


class WireModel(BaseModel):
    """Base for models that travel across the bridge or into bot files."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Bot(WireModel):
    """A configured bot (the contents of a .botproj file)."""

    id: str = Field(default_factory=unique_id)
    bot_name: str = ""
    bot_url: str = ""
    msa_app_id: str = ""
    msa_password: str = ""
    locale: str = ""
    services: List[Dict[str, Any]] = Field(default_factory=list)


class BotInfo(WireModel):
    """One entry in the persisted recent-bots list."""

    id: str
    path: str
    display_name: str = ""


class FrameworkSettings(WireModel):
    """Global emulator settings saved by `app:settings:save`."""

    ngrok_path: str = ""
    bypass_ngrok_localhost: bool = True
    state_size_limit: int = Field(default=64, ge=0)
    use_10_tokens: bool = False
    use_code_validation: bool = False
    locale: str = ""


class GlobalSettings(WireModel):
    """Settings pushed to the presentation layer when it reports itself loaded."""

    url: str
    cwd: str


class ConversationUser(WireModel):
    """The simulated end user of a conversation."""

    id: str = Field(default_factory=unique_id)
    name: str = "User"


class Notification(WireModel):
    """A UI notification added to the presentation-side store."""

    id: str = Field(default_factory=unique_id)
    type: str = "info"  # "info" | "error" | "warning"
    title: str = ""
    message: str = ""
    timestamp: float = Field(default_factory=time.time)
    read: bool = False
    meta: Optional[Dict[str, Any]] = None
