from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

from jsonschema import Draft7Validator
from pydantic import ValidationError

from emulator_shell.errors import InvalidFileError
from emulator_shell.models import DEFAULT_BOT_URL, Bot, BotInfo
from emulator_shell.storage import bot_store

from .files import read_file

logger = logging.getLogger("emulator-shell")

BOT_FILE_EXTENSION = ".botproj"
DEFAULT_BOT_NAME = "New Bot"

# Bot files are written by the emulator with camelCase keys.
BOT_FILE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["id", "botName"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "botName": {"type": "string"},
        "botUrl": {"type": "string"},
        "msaAppId": {"type": "string"},
        "msaPassword": {"type": "string"},
        "locale": {"type": "string"},
        "services": {"type": "array", "items": {"type": "object"}},
    },
}

_bot_file_validator = Draft7Validator(BOT_FILE_SCHEMA)


def _schema_errors(instance: Any) -> List[Dict[str, Any]]:
    return [
        {"path": list(err.path), "message": err.message}
        for err in _bot_file_validator.iter_errors(instance)
    ]


def parse_bot(raw: Any, *, path: str = "<payload>") -> Bot:
    """Validate a decoded bot file (or wire payload) and build the Bot."""
    errors = _schema_errors(raw)
    if errors:
        raise InvalidFileError(f"Invalid .bot file found at path: {path}", path=path, details=errors)
    try:
        return Bot.model_validate(raw)
    except ValidationError as exc:
        raise InvalidFileError(
            f"Invalid .bot file found at path: {path}", path=path, details=exc.errors(include_url=False)
        ) from exc


def read_bot_file(path: str) -> Bot:
    """Load a bot file; InvalidFileError when it is missing or unparsable."""
    try:
        contents = read_file(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise InvalidFileError(f"Invalid .bot file found at path: {path}", path=path) from exc
    try:
        raw = json.loads(contents) if contents.strip() else None
    except json.JSONDecodeError as exc:
        raise InvalidFileError(f"Invalid .bot file found at path: {path}", path=path) from exc
    if raw is None:
        raise InvalidFileError(f"Invalid .bot file found at path: {path}", path=path)
    return parse_bot(raw, path=path)


def bot_file_path(bot: Bot, directory: str) -> Path:
    return Path(directory) / f"{bot.bot_name}{BOT_FILE_EXTENSION}"


def get_safe_bot_name(existing: Iterable[str], base: str = DEFAULT_BOT_NAME) -> str:
    """Return `base`, or `base (n)` for the smallest n not already taken."""
    taken = {name.strip().lower() for name in existing}
    if base.lower() not in taken:
        return base
    n = 1
    while f"{base} ({n})".lower() in taken:
        n += 1
    return f"{base} ({n})"


def new_bot(**overrides: Any) -> Bot:
    return Bot(**overrides)


def new_default_bot(existing_names: Iterable[str]) -> Bot:
    return new_bot(bot_name=get_safe_bot_name(existing_names), bot_url=DEFAULT_BOT_URL)


def get_bots_from_disk() -> List[BotInfo]:
    """Return persisted recent bots whose bot files still exist."""
    bots = []
    for info in bot_store.list_bots():
        if Path(info.path).is_file():
            bots.append(info)
        else:
            logger.info("Skipping bot %s: file %s no longer exists", info.id, info.path)
    return bots
