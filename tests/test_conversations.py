from __future__ import annotations

from typing import Any, Dict, List

import pytest

from emulator_shell.conversations import (
    Conversation,
    ConversationSet,
    new_conversation_id,
    validate_mode,
)
from emulator_shell.errors import InvalidArgumentError
from emulator_shell.models import ConversationUser


def test_new_conversation_id_is_tagged_with_mode() -> None:
    conversation_id = new_conversation_id("livechat")
    token, _, mode = conversation_id.rpartition("|")

    assert mode == "livechat"
    assert token
    assert new_conversation_id("livechat") != conversation_id


@pytest.mark.parametrize("mode", ["", "chat", None, "LIVECHAT"])
def test_invalid_modes_are_rejected(mode: Any) -> None:
    with pytest.raises(InvalidArgumentError) as exc:
        validate_mode(mode)
    assert "transcript" in str(exc.value)
    assert "livechat" in str(exc.value)


def test_conversation_requires_mode_tag() -> None:
    with pytest.raises(InvalidArgumentError):
        Conversation("bot", "no-tag", ConversationUser())

    conversation = Conversation("bot", "abc|transcript", ConversationUser())
    assert conversation.mode == "transcript"


@pytest.mark.asyncio
async def test_feed_appends_in_order_and_notifies_listener() -> None:
    seen: List[List[Dict[str, Any]]] = []

    async def listener(conversation: Conversation, activities: List[Dict[str, Any]]) -> None:
        seen.append(activities)

    conversation = Conversation("bot", "c|livechat", ConversationUser(), listener=listener)
    await conversation.feed_activities([{"type": "message", "text": "one"}])
    await conversation.feed_activities([{"text": "two"}, {"text": "three"}])

    assert [a["text"] for a in conversation.activities] == ["one", "two", "three"]
    assert [len(batch) for batch in seen] == [1, 2]


@pytest.mark.asyncio
async def test_feed_rejects_whole_batch_with_non_object_entry() -> None:
    conversation = Conversation("bot", "c|livechat", ConversationUser())
    await conversation.feed_activities([{"text": "kept"}])

    with pytest.raises(InvalidArgumentError) as exc:
        await conversation.feed_activities([{"text": "a"}, "not an activity", {"text": "b"}])
    assert exc.value.details["index"] == 1

    with pytest.raises(InvalidArgumentError):
        await conversation.feed_activities({"text": "a single dict"})

    assert conversation.activities == [{"text": "kept"}]


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, 5, "text", {"text": "a single dict"}])
async def test_feed_rejects_payload_that_is_not_a_list(payload: Any) -> None:
    conversation = Conversation("bot", "c|livechat", ConversationUser())

    with pytest.raises(InvalidArgumentError):
        await conversation.feed_activities(payload)
    assert conversation.activities == []


@pytest.mark.asyncio
async def test_activity_log_is_isolated_from_callers() -> None:
    source = {"text": "original", "channelData": {"n": 1}}
    conversation = Conversation("bot", "c|transcript", ConversationUser())
    await conversation.feed_activities([source])

    source["channelData"]["n"] = 2
    snapshot = conversation.activities
    snapshot[0]["text"] = "changed"

    assert conversation.activities == [{"text": "original", "channelData": {"n": 1}}]


def test_conversation_set_lookup_and_teardown() -> None:
    conversations = ConversationSet()
    user = ConversationUser(name="User")
    first = conversations.new_conversation("bot-a", user, "1|livechat")
    conversations.new_conversation("bot-a", user, "2|transcript")
    conversations.new_conversation("bot-b", user, "3|livechat")

    assert conversations.conversation_by_id("bot-a", "1|livechat") is first
    assert conversations.conversation_by_id("bot-b", "1|livechat") is None
    assert len(conversations) == 3

    with pytest.raises(InvalidArgumentError):
        conversations.new_conversation("bot-a", user, "1|livechat")

    assert conversations.remove_bot("bot-a") == 2
    assert len(conversations) == 1


def test_to_dict_is_plain_camel_case_data() -> None:
    user = ConversationUser(id="u1", name="User")
    conversation = Conversation("bot-1", "x|livechat", user)

    assert conversation.to_dict() == {
        "conversationId": "x|livechat",
        "botId": "bot-1",
        "mode": "livechat",
        "user": {"id": "u1", "name": "User"},
        "activities": [],
    }
