"""
Host command tests.

Commands are invoked through the host registry exactly as the bridge would
invoke them; no presentation peer is connected, so host-to-presentation
notifications are skipped.
"""

from __future__ import annotations

import inspect
import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator

import pytest

from emulator_shell.commands.registry import CommandSet, command
from emulator_shell.errors import (
    InvalidArgumentError,
    InvalidFileError,
    InvalidStateError,
    NoActiveBotError,
    NotFoundError,
)
from emulator_shell.host.app import HostApp
from emulator_shell.host.collaborators import ScriptedDialogs
from emulator_shell.models import DEFAULT_BOT_URL
from emulator_shell.storage import bot_store


@contextmanager
def env_vars(env: Dict[str, str]):
    """
    Temporarily set environment variables for a test.

    Restores previous values afterwards, even if the test fails.
    """
    old_values: Dict[str, Any] = {}
    for key, value in env.items():
        old_values[key] = os.environ.get(key)
        os.environ[key] = value
    try:
        yield
    finally:
        for key, old in old_values.items():
            if old is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = old


@pytest.fixture
def db_path(tmp_path: Path) -> Iterator[str]:
    path = str(tmp_path / "state" / "emulator.db")
    with env_vars({"DB_PATH": path, "PROTOCOL_SCHEME": "bfemulator"}):
        yield path


@pytest.fixture
def dialogs() -> ScriptedDialogs:
    return ScriptedDialogs()


@pytest.fixture
def host(db_path: str, dialogs: ScriptedDialogs) -> HostApp:
    return HostApp(dialogs=dialogs, argv=[])


async def call(host: HostApp, name: str, *args: Any) -> Any:
    result = host.registry.invoke(name, *args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _create_and_load_bot(host: HostApp, directory: Path, name: str = "Echo") -> Dict[str, Any]:
    created = await call(host, "bot:create", {"botName": name, "botUrl": DEFAULT_BOT_URL}, str(directory))
    await call(host, "bot:load", created["path"])
    return created


@pytest.mark.asyncio
async def test_ping(host: HostApp) -> None:
    assert await call(host, "ping") == "pong"


@pytest.mark.asyncio
async def test_new_conversation_with_invalid_mode_changes_nothing(host: HostApp) -> None:
    with pytest.raises(InvalidArgumentError) as exc:
        await call(host, "conversation:new", "chat")

    assert '"transcript" or "livechat"' in str(exc.value)
    assert host.store.get_state().bot.active_bot is None
    assert len(host.conversations) == 0


@pytest.mark.asyncio
async def test_new_conversation_without_bot_mocks_an_active_bot(host: HostApp) -> None:
    conversation = await call(host, "conversation:new", "livechat")

    active = host.store.get_state().bot.active_bot
    assert active is not None
    assert conversation.bot_id == active.id
    assert conversation.id.endswith("|livechat")
    assert conversation.user.name == "User"
    assert host.store.get_state().bot.current_bot_directory == ""


@pytest.mark.asyncio
async def test_bot_create_writes_file_and_persists_list(host: HostApp, tmp_path: Path) -> None:
    created = await call(host, "bot:create", {"botName": "Echo"}, str(tmp_path / "bots"))

    path = Path(created["path"])
    assert path.name == "Echo.botproj"
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["botName"] == "Echo"
    assert on_disk["id"] == created["bot"]["id"]

    assert [b.id for b in host.store.get_state().bot.bot_files] == [created["bot"]["id"]]
    assert [b.display_name for b in bot_store.list_bots()] == ["Echo"]


@pytest.mark.asyncio
async def test_bot_create_rejects_bad_input(host: HostApp, tmp_path: Path) -> None:
    with pytest.raises(InvalidArgumentError):
        await call(host, "bot:create", "not a bot", str(tmp_path))
    with pytest.raises(InvalidArgumentError):
        await call(host, "bot:create", {"botName": "x"}, "")


@pytest.mark.asyncio
async def test_bot_new_picks_a_safe_unique_name(host: HostApp, tmp_path: Path) -> None:
    first = await call(host, "bot:new")
    assert first["botName"] == "New Bot"
    assert first["botUrl"] == DEFAULT_BOT_URL

    await call(host, "bot:create", {"botName": "New Bot"}, str(tmp_path))
    second = await call(host, "bot:new")
    assert second["botName"] == "New Bot (1)"
    # Not saved to state.
    assert len(host.store.get_state().bot.bot_files) == 1


@pytest.mark.asyncio
async def test_bot_load_sets_active_bot_and_watches_directory(host: HostApp, tmp_path: Path) -> None:
    created = await _create_and_load_bot(host, tmp_path / "project")

    state = host.store.get_state()
    assert state.bot.active_bot is not None
    assert state.bot.active_bot.id == created["bot"]["id"]
    assert Path(state.bot.current_bot_directory) == (tmp_path / "project").resolve()
    assert host.context.watcher.directory == state.bot.current_bot_directory


@pytest.mark.asyncio
async def test_bot_load_of_missing_or_invalid_file_fails(host: HostApp, tmp_path: Path) -> None:
    with pytest.raises(InvalidFileError) as exc:
        await call(host, "bot:load", str(tmp_path / "missing.botproj"))
    assert "Invalid .bot file found at path" in str(exc.value)

    broken = tmp_path / "broken.botproj"
    broken.write_text(json.dumps({"botName": "no id"}), encoding="utf-8")
    with pytest.raises(InvalidFileError):
        await call(host, "bot:load", str(broken))

    not_utf8 = tmp_path / "binary.botproj"
    not_utf8.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(InvalidFileError) as exc:
        await call(host, "bot:load", str(not_utf8))
    assert exc.value.path == str(not_utf8)

    assert host.store.get_state().bot.active_bot is None


@pytest.mark.asyncio
async def test_bot_set_active(host: HostApp, tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        await call(host, "bot:setActive", "nope")

    created = await call(host, "bot:create", {"botName": "Echo"}, str(tmp_path))
    result = await call(host, "bot:setActive", created["bot"]["id"])

    assert result["bot"]["botName"] == "Echo"
    assert host.store.get_state().bot.active_bot.id == created["bot"]["id"]


@pytest.mark.asyncio
async def test_switching_active_bot_closes_previous_bots_conversations(
    host: HostApp, tmp_path: Path
) -> None:
    first = await _create_and_load_bot(host, tmp_path / "first", name="First")
    old = await call(host, "conversation:new", "livechat")
    second = await call(host, "bot:create", {"botName": "Second"}, str(tmp_path / "second"))

    await call(host, "bot:setActive", second["bot"]["id"])

    assert host.context.conversations.conversation_by_id(first["bot"]["id"], old.id) is None
    assert len(host.conversations) == 0
    with pytest.raises(NotFoundError):
        await call(host, "emulator:feed-transcript:deep-link", old.id, [{"text": "late"}])
    assert host.context.watcher.directory == str((tmp_path / "second").resolve())

    # Re-activating the same bot keeps its conversations.
    current = await call(host, "conversation:new", "transcript")
    await call(host, "bot:setActive", second["bot"]["id"])
    assert host.context.conversations.conversation_by_id(second["bot"]["id"], current.id) is current


@pytest.mark.asyncio
async def test_mocked_bot_is_not_watched(host: HostApp, tmp_path: Path) -> None:
    host.context.watcher.watch(str(tmp_path))

    await call(host, "conversation:new", "livechat")

    assert host.context.watcher.directory is None
    assert host.store.get_state().bot.current_bot_directory == ""


@pytest.mark.asyncio
async def test_show_message_box_passes_modal_flag_and_returns_button(
    host: HostApp, dialogs: ScriptedDialogs
) -> None:
    assert await call(host, "shell:showMessageBox", True, {"message": "Save?", "buttons": ["Yes", "No"]}) == 0

    dialogs.press(1)
    assert await call(host, "shell:showMessageBox", False, {"message": "Really?"}) == 1

    assert dialogs.requests == [
        {"kind": "message", "modal": True, "message": "Save?", "buttons": ["Yes", "No"]},
        {"kind": "message", "modal": False, "message": "Really?"},
    ]


@pytest.mark.asyncio
async def test_bot_save_patches_display_name(host: HostApp, tmp_path: Path) -> None:
    created = await call(host, "bot:create", {"botName": "Echo"}, str(tmp_path))
    renamed = dict(created["bot"], botName="Renamed")

    await call(host, "bot:save", renamed)

    assert [b.display_name for b in host.store.get_state().bot.bot_files] == ["Renamed"]
    assert [b.display_name for b in bot_store.list_bots()] == ["Renamed"]


@pytest.mark.asyncio
async def test_feed_without_active_bot_is_not_found(host: HostApp) -> None:
    with pytest.raises(NoActiveBotError) as exc:
        await call(host, "emulator:feed-transcript:deep-link", "x|livechat", [])
    assert isinstance(exc.value, NotFoundError)
    assert isinstance(exc.value, InvalidStateError)


@pytest.mark.asyncio
async def test_feed_unknown_conversation_is_not_found(host: HostApp) -> None:
    await call(host, "conversation:new", "livechat")

    with pytest.raises(NotFoundError) as exc:
        await call(host, "emulator:feed-transcript:deep-link", "missing|livechat", [])
    assert "Conversation missing|livechat not found" in str(exc.value)


@pytest.mark.asyncio
async def test_feed_from_missing_path_leaves_activities_unchanged(host: HostApp, tmp_path: Path) -> None:
    conversation = await call(host, "conversation:new", "transcript")
    await call(host, "emulator:feed-transcript:deep-link", conversation.id, [{"text": "hi"}])

    with pytest.raises(FileNotFoundError) as exc:
        await call(host, "emulator:feed-transcript:disk", conversation.id, str(tmp_path / "nope.transcript"))
    assert exc.value.filename == str(tmp_path / "nope.transcript")

    assert conversation.activities == [{"text": "hi"}]


@pytest.mark.asyncio
async def test_feed_from_unparsable_file_is_invalid(host: HostApp, tmp_path: Path) -> None:
    conversation = await call(host, "conversation:new", "transcript")
    garbage = tmp_path / "garbage.transcript"
    garbage.write_text("{not json", encoding="utf-8")
    not_a_list = tmp_path / "object.transcript"
    not_a_list.write_text(json.dumps({"text": "hi"}), encoding="utf-8")
    not_utf8 = tmp_path / "binary.transcript"
    not_utf8.write_bytes(b"\xff\xfe[]")

    with pytest.raises(InvalidFileError):
        await call(host, "emulator:feed-transcript:disk", conversation.id, str(garbage))
    with pytest.raises(InvalidFileError):
        await call(host, "emulator:feed-transcript:disk", conversation.id, str(not_a_list))
    with pytest.raises(InvalidFileError):
        await call(host, "emulator:feed-transcript:disk", conversation.id, str(not_utf8))

    assert conversation.activities == []


@pytest.mark.asyncio
async def test_deep_link_save_and_feed_round_trip(
    host: HostApp, dialogs: ScriptedDialogs, tmp_path: Path
) -> None:
    await _create_and_load_bot(host, tmp_path / "project")
    activities = [
        {"type": "message", "text": "hello", "from": {"role": "user"}},
        {"type": "message", "text": "hi there", "from": {"role": "bot"}},
    ]

    source = await call(host, "conversation:new", "transcript")
    await call(host, "emulator:feed-transcript:deep-link", source.id, activities)

    target_file = tmp_path / "exports" / "chat.transcript"
    dialogs.answer(str(target_file))
    await call(host, "emulator:save-transcript-to-file", source.id)

    assert json.loads(target_file.read_text(encoding="utf-8")) == activities
    request = dialogs.requests[-1]
    assert request["kind"] == "save"
    assert request["filters"] == [{"name": "Transcript Files", "extensions": ["transcript"]}]
    assert Path(request["defaultPath"]) == (tmp_path / "project").resolve()

    replay = await call(host, "conversation:new", "transcript")
    await call(host, "emulator:feed-transcript:disk", replay.id, str(target_file))
    assert replay.activities == activities


@pytest.mark.asyncio
async def test_save_transcript_cancel_is_a_no_op(
    host: HostApp, dialogs: ScriptedDialogs, tmp_path: Path
) -> None:
    await _create_and_load_bot(host, tmp_path / "project")
    conversation = await call(host, "conversation:new", "livechat")

    assert await call(host, "emulator:save-transcript-to-file", conversation.id) is None
    assert len(dialogs.requests) == 1
    assert not list((tmp_path / "project").glob("*.transcript"))


@pytest.mark.asyncio
async def test_save_transcript_requires_project_directory(host: HostApp) -> None:
    conversation = await call(host, "conversation:new", "livechat")

    with pytest.raises(InvalidStateError) as exc:
        await call(host, "emulator:save-transcript-to-file", conversation.id)
    assert "Project directory not set" in str(exc.value)


@pytest.mark.asyncio
async def test_settings_round_trip_through_database(db_path: str) -> None:
    host = HostApp(argv=[])
    assert (await call(host, "app:settings:load"))["stateSizeLimit"] == 64

    await call(host, "app:settings:save", {"stateSizeLimit": 128, "ngrokPath": "/usr/bin/ngrok"})

    restarted = HostApp(argv=[])
    loaded = await call(restarted, "app:settings:load")
    assert loaded["stateSizeLimit"] == 128
    assert loaded["ngrokPath"] == "/usr/bin/ngrok"


@pytest.mark.asyncio
async def test_settings_save_rejects_invalid_values(host: HostApp) -> None:
    with pytest.raises(InvalidArgumentError):
        await call(host, "app:settings:save", {"stateSizeLimit": -1})
    assert host.store.get_state().framework.state_size_limit == 64


@pytest.mark.asyncio
async def test_file_commands(host: HostApp, tmp_path: Path) -> None:
    target = tmp_path / "data.json"

    await call(host, "file:write", str(target), {"a": 1})
    assert json.loads(await call(host, "file:read", str(target))) == {"a": 1}
    assert await call(host, "path:basename", str(target)) == "data.json"

    with pytest.raises(FileNotFoundError):
        await call(host, "file:read", str(tmp_path / "missing.txt"))


@pytest.mark.asyncio
async def test_client_loaded_filters_missing_bots_and_replays_protocol_url_once(
    db_path: str, tmp_path: Path
) -> None:
    url = "bfemulator://livechat.open?botUrl=http%3A%2F%2Flocalhost%3A3978"
    host = HostApp(argv=["--flag", url])
    kept = await call(host, "bot:create", {"botName": "Kept"}, str(tmp_path / "a"))
    gone = await call(host, "bot:create", {"botName": "Gone"}, str(tmp_path / "b"))
    Path(gone["path"]).unlink()

    await call(host, "client:loaded")
    await call(host, "client:loaded")

    assert [b.id for b in host.store.get_state().bot.bot_files] == [kept["bot"]["id"]]
    dispatched = host.context.protocol.dispatched
    assert len(dispatched) == 1
    assert (dispatched[0].domain, dispatched[0].action) == ("livechat", "open")
    assert dispatched[0].params == {"botUrl": "http://localhost:3978"}


class Extension(CommandSet):
    instances = 0

    def __init__(self) -> None:
        Extension.instances += 1
        self.number = Extension.instances

    @command("ext:which")
    def which(self) -> int:
        return self.number


@pytest.mark.asyncio
async def test_client_loaded_reloads_extensions(db_path: str) -> None:
    Extension.instances = 0
    host = HostApp(argv=[], extension_factories=[Extension])

    await call(host, "client:loaded")
    assert await call(host, "ext:which") == 1

    await call(host, "client:loaded")
    assert await call(host, "ext:which") == 2
    assert len(host.context.extensions.loaded) == 1
