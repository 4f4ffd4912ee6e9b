"""
Host-side collaborators that command handlers depend on.

Native dialogs, directory watching, extensions and protocol URLs live
outside the bridge. Each is a small interface plus the default used by the
headless shell and the tests.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional
from urllib.parse import parse_qsl, urlsplit

from emulator_shell.commands.registry import CommandRegistry, CommandSet
from emulator_shell.errors import InvalidArgumentError

logger = logging.getLogger("emulator-shell")


class Dialogs:
    """Abstract dialog interface. Returning None means the user cancelled."""

    def show_save_dialog(self, options: Dict[str, Any]) -> Optional[str]:  # pragma: no cover - interface only
        raise NotImplementedError

    def show_open_dialog(self, options: Dict[str, Any]) -> Optional[str]:  # pragma: no cover - interface only
        raise NotImplementedError

    def show_message_box(self, modal: bool, options: Dict[str, Any]) -> int:  # pragma: no cover - interface only
        """Returns the index of the clicked button. A modal box blocks the main window."""
        raise NotImplementedError


class ScriptedDialogs(Dialogs):
    """
    Headless dialogs that answer from a queue of prepared paths.

    An empty queue answers None (cancelled). Message boxes answer from a
    separate queue of button indexes and default to the first button.
    Every request is recorded so callers can inspect the options that were shown.
    """

    def __init__(self, answers: Iterable[Optional[str]] = (), buttons: Iterable[int] = ()):
        self._answers: Deque[Optional[str]] = deque(answers)
        self._buttons: Deque[int] = deque(buttons)
        self.requests: List[Dict[str, Any]] = []

    def answer(self, path: Optional[str]) -> None:
        self._answers.append(path)

    def press(self, button: int) -> None:
        self._buttons.append(button)

    def show_message_box(self, modal: bool, options: Dict[str, Any]) -> int:
        self.requests.append({"kind": "message", "modal": modal, **options})
        return self._buttons.popleft() if self._buttons else 0

    def _next(self, kind: str, options: Dict[str, Any]) -> Optional[str]:
        self.requests.append({"kind": kind, **options})
        return self._answers.popleft() if self._answers else None

    def show_save_dialog(self, options: Dict[str, Any]) -> Optional[str]:
        return self._next("save", options)

    def show_open_dialog(self, options: Dict[str, Any]) -> Optional[str]:
        return self._next("open", options)


class DirectoryWatcher:
    """Tracks the bot project directory being watched. One directory at a time."""

    def __init__(self) -> None:
        self.directory: Optional[str] = None

    def watch(self, directory: str) -> None:
        if directory != self.directory:
            logger.info("Watching bot directory %s", directory)
        self.directory = directory

    def unwatch(self) -> None:
        self.directory = None


ExtensionFactory = Callable[[], CommandSet]


class ExtensionManager:
    """
    Loads extensions as CommandSets attached to the host registry.

    Unloading detaches them again, so a reload replaces every extension
    command with a freshly constructed one.
    """

    def __init__(self, registry: CommandRegistry, factories: Iterable[ExtensionFactory] = ()):
        self._registry = registry
        self._factories: List[ExtensionFactory] = list(factories)
        self._loaded: List[CommandSet] = []

    @property
    def loaded(self) -> List[CommandSet]:
        return list(self._loaded)

    def load_extensions(self) -> List[str]:
        names: List[str] = []
        for factory in self._factories:
            extension = factory()
            names.extend(self._registry.attach(extension))
            self._loaded.append(extension)
        if names:
            logger.info("Loaded %d extension command(s)", len(names))
        return names

    def unload_extensions(self) -> List[str]:
        names: List[str] = []
        while self._loaded:
            names.extend(self._registry.detach(self._loaded.pop()))
        return names


@dataclass(frozen=True)
class ProtocolUrl:
    """A parsed `<scheme>://<domain>.<action>?<params>` URL."""

    url: str
    domain: str
    action: str
    params: Dict[str, str] = field(default_factory=dict)


def parse_protocol_url(url: str, scheme: str) -> ProtocolUrl:
    parts = urlsplit(url)
    if parts.scheme.lower() != scheme.lower():
        raise InvalidArgumentError(f"Not a {scheme}:// URL: {url}")
    domain, _, action = parts.netloc.partition(".")
    if not domain or not action:
        raise InvalidArgumentError(f"Protocol URL must look like {scheme}://<domain>.<action>: {url}")
    return ProtocolUrl(url=url, domain=domain, action=action, params=dict(parse_qsl(parts.query)))


class ProtocolHandler:
    """Parses protocol URLs and hands them to `on_url` (logging by default)."""

    def __init__(self, scheme: str, on_url: Optional[Callable[[ProtocolUrl], Any]] = None):
        self.scheme = scheme
        self._on_url = on_url
        self.dispatched: List[ProtocolUrl] = []

    def find_protocol_url(self, argv: Iterable[str]) -> Optional[str]:
        marker = f"{self.scheme}://"
        for arg in argv:
            if marker in arg:
                return arg
        return None

    def parse_protocol_url_and_dispatch(self, url: str) -> ProtocolUrl:
        parsed = parse_protocol_url(url, self.scheme)
        self.dispatched.append(parsed)
        logger.info("Dispatching protocol URL %s.%s", parsed.domain, parsed.action)
        if self._on_url is not None:
            self._on_url(parsed)
        return parsed
