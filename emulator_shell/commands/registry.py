"""
Command registry: the per-process mapping from command name to handler.

Handlers are plain callables taking positional arguments. A handler may
return a value, return an awaitable of a value, or raise. The registry never
awaits anything itself; `invoke` hands back exactly what the handler
returned so the bridge (or a direct caller) decides how to wait for it.

Duplicate policy: `register` rejects a name that is already taken with
DuplicateCommandError unless the caller passes `replace=True`.
`unregister` of an unknown name is a no-op that returns False.

Declarative registration is provided by CommandSet + @command:

    class PingCommands(CommandSet):
        @command("ping")
        def ping(self):
            return "pong"

    registry.attach(PingCommands())

Each CommandSet subclass builds its command table once, when the class is
defined. `attach` walks that table and registers every method bound to the
instance; it is the same as calling `register` by hand for each entry.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from emulator_shell.errors import DuplicateCommandError, UnknownCommandError

logger = logging.getLogger("emulator-shell")

Handler = Callable[..., Any]

_COMMAND_ATTR = "__command_name__"


def command(name: str) -> Callable[[Handler], Handler]:
    """Mark a CommandSet method as the handler for `name`."""

    def decorator(func: Handler) -> Handler:
        setattr(func, _COMMAND_ATTR, name)
        return func

    return decorator


class CommandSet:
    """Base class for classes whose methods are registered as commands."""

    _command_table: Dict[str, str] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        table: Dict[str, str] = {}
        for base in reversed(cls.__mro__[1:]):
            table.update(getattr(base, "_command_table", {}))
        for attr_name, value in cls.__dict__.items():
            name = getattr(value, _COMMAND_ATTR, None)
            if name is None:
                continue
            if name in table and table[name] != attr_name:
                raise DuplicateCommandError(name)
            table[name] = attr_name
        cls._command_table = table

    @classmethod
    def command_table(cls) -> Dict[str, str]:
        return dict(cls._command_table)


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: Dict[str, Handler] = {}
        # Keyed by id(); command sets need not be hashable.
        self._attached: Dict[int, CommandSet] = {}

    def register(self, name: str, handler: Handler, *, replace: bool = False) -> None:
        if not callable(handler):
            raise TypeError(f"Handler for '{name}' must be callable")
        if name in self._commands and not replace:
            raise DuplicateCommandError(name)
        self._commands[name] = handler

    def unregister(self, name: str) -> bool:
        return self._commands.pop(name, None) is not None

    def has(self, name: str) -> bool:
        return name in self._commands

    def names(self) -> List[str]:
        return sorted(self._commands)

    def get(self, name: str) -> Handler:
        try:
            return self._commands[name]
        except KeyError:
            raise UnknownCommandError(name) from None

    def invoke(self, name: str, *args: Any) -> Any:
        return self.get(name)(*args)

    def attach(self, command_set: CommandSet) -> List[str]:
        """
        Register every @command method of `command_set`, bound to it.

        Returns the registered names. Attaching an instance that is already
        attached does nothing. All names are checked before any is
        registered, so a conflict leaves the registry untouched.
        """
        if id(command_set) in self._attached:
            return []
        table = type(command_set).command_table()
        for name in table:
            if name in self._commands:
                raise DuplicateCommandError(name)
        for name, attr_name in table.items():
            self._commands[name] = getattr(command_set, attr_name)
        self._attached[id(command_set)] = command_set
        logger.debug("Attached %s (%d commands)", type(command_set).__name__, len(table))
        return sorted(table)

    def detach(self, command_set: CommandSet) -> List[str]:
        """Unregister the commands `command_set` contributed; returns the removed names."""
        if id(command_set) not in self._attached:
            return []
        removed = []
        for name, attr_name in type(command_set).command_table().items():
            handler = self._commands.get(name)
            if handler is not None and getattr(handler, "__self__", None) is command_set:
                del self._commands[name]
                removed.append(name)
        del self._attached[id(command_set)]
        return sorted(removed)
