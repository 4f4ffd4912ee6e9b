"""File helpers used by host commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Union

logger = logging.getLogger("emulator-shell")

PathLike = Union[str, Path]


def read_file(path: PathLike) -> str:
    with Path(path).open("r", encoding="utf-8") as f:
        return f.read()


def read_json(path: PathLike) -> Any:
    return json.loads(read_file(path))


def write_file(path: PathLike, contents: Any) -> Path:
    """Write `contents` to `path`; anything that is not a string is written as indented JSON."""
    target = Path(path)
    text = contents if isinstance(contents, str) else json.dumps(contents, indent=2)
    with target.open("w", encoding="utf-8") as f:
        f.write(text)
    return target


def ensure_dir(path: PathLike) -> Path:
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory
