"""
Error taxonomy shared by the host and presentation processes.

Every error carries a stable `code` so it can be rendered in an error
envelope. Errors raised by a handler on the far side of the bridge come
back as RemoteCommandError (or UnknownCommandError when the far registry
has no such command).
"""

from __future__ import annotations

from typing import Any, Optional


class EmulatorError(RuntimeError):
    """Base error for the emulator shell."""

    code = "EMULATOR_ERROR"

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


# -- Registry errors --


class UnknownCommandError(EmulatorError):
    """No handler is registered under the given name."""

    code = "UNKNOWN_COMMAND"

    def __init__(self, name: str, *, remote: bool = False):
        where = "remote" if remote else "local"
        super().__init__(f"Command '{name}' is not registered in the {where} registry")
        self.name = name
        self.remote = remote


class DuplicateCommandError(EmulatorError):
    """A command with this name is already registered."""

    code = "DUPLICATE_COMMAND"

    def __init__(self, name: str):
        super().__init__(f"Command '{name}' is already registered")
        self.name = name


# -- Bridge errors --


class BridgeClosedError(EmulatorError):
    """The transport was severed while a call was pending (or before it was sent)."""

    code = "BRIDGE_CLOSED"


class BridgeTimeoutError(EmulatorError):
    """A remote call did not receive its response within the configured timeout."""

    code = "BRIDGE_TIMEOUT"


class RemoteCommandError(EmulatorError):
    """The far side's handler failed; kind and message are those of the remote exception."""

    code = "REMOTE_COMMAND_FAILED"

    def __init__(self, command: str, kind: str, message: str, details: Any = None):
        super().__init__(f"{command}: {kind}: {message}", details=details)
        self.command = command
        self.kind = kind
        self.remote_message = message


# -- Domain errors --


class InvalidArgumentError(EmulatorError):
    """A caller-supplied value violates a precondition."""

    code = "INVALID_ARGUMENT"


class NotFoundError(EmulatorError):
    """A referenced bot or conversation does not exist."""

    code = "NOT_FOUND"


class InvalidStateError(EmulatorError):
    """The operation requires state that is not currently present."""

    code = "INVALID_STATE"


class NoActiveBotError(InvalidStateError, NotFoundError):
    """No bot is active."""

    code = "NO_ACTIVE_BOT"

    def __init__(self, command: str):
        super().__init__(f"{command}: No active bot.")
        self.command = command


class InvalidFileError(EmulatorError):
    """A bot or transcript file is missing or cannot be parsed."""

    code = "INVALID_FILE"

    def __init__(self, message: str, path: Optional[str] = None, details: Any = None):
        super().__init__(message, details=details)
        self.path = path
