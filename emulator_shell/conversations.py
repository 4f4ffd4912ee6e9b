"""
Conversations: simulated chat sessions with an ordered activity log.

A Conversation is owned by exactly one process (the host). Its activity log
is append-only; `feed_activities` validates the whole batch and appends it
without suspending in between, so concurrent feeds never interleave within
a batch. Listeners (the host wires one that forwards to the presentation
layer over the bridge) are awaited after the append.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import InvalidArgumentError
from .models import ConversationUser, unique_id

logger = logging.getLogger("emulator-shell")

MODES = ("transcript", "livechat")

ActivityListener = Callable[["Conversation", List[Dict[str, Any]]], Awaitable[Any]]


def validate_mode(mode: Any) -> str:
    if mode not in MODES:
        raise InvalidArgumentError(
            'A mode of either "transcript" or "livechat" must be provided to "conversation:new"',
            details={"mode": mode},
        )
    return mode


def new_conversation_id(mode: str) -> str:
    return f"{unique_id()}|{validate_mode(mode)}"


class Conversation:
    def __init__(
        self,
        bot_id: str,
        conversation_id: str,
        user: ConversationUser,
        listener: Optional[ActivityListener] = None,
    ):
        _, sep, mode = conversation_id.rpartition("|")
        if not sep:
            raise InvalidArgumentError(f"Conversation id '{conversation_id}' has no mode tag")
        validate_mode(mode)
        self.id = conversation_id
        self.bot_id = bot_id
        self.user = user
        self._activities: List[Dict[str, Any]] = []
        self._listener = listener

    @property
    def mode(self) -> str:
        return self.id.rpartition("|")[2]

    @property
    def activities(self) -> List[Dict[str, Any]]:
        """A copy of the activity log, in order."""
        return copy.deepcopy(self._activities)

    async def feed_activities(self, activities: Sequence[Any]) -> List[Dict[str, Any]]:
        """
        Append `activities` in order and notify the listener.

        Every entry must be a JSON object; otherwise nothing is appended.
        Returns the appended copies.
        """
        if not isinstance(activities, (list, tuple)):
            raise InvalidArgumentError("Activities must be a list of activity objects")
        batch = list(activities)
        for index, activity in enumerate(batch):
            if not isinstance(activity, Mapping):
                raise InvalidArgumentError(
                    f"Activity at index {index} is not an object",
                    details={"index": index, "conversation_id": self.id},
                )
        appended = [copy.deepcopy(dict(a)) for a in batch]
        self._activities.extend(appended)
        logger.debug("Conversation %s: appended %d activities", self.id, len(appended))

        if self._listener is not None and appended:
            await self._listener(self, copy.deepcopy(appended))
        return appended

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversationId": self.id,
            "botId": self.bot_id,
            "mode": self.mode,
            "user": self.user.to_wire(),
            "activities": self.activities,
        }


class ConversationSet:
    """All live conversations of this process, keyed by (bot id, conversation id)."""

    def __init__(self, listener: Optional[ActivityListener] = None):
        self._conversations: Dict[Tuple[str, str], Conversation] = {}
        self.listener = listener

    def new_conversation(
        self, bot_id: str, user: ConversationUser, conversation_id: str
    ) -> Conversation:
        key = (bot_id, conversation_id)
        if key in self._conversations:
            raise InvalidArgumentError(f"Conversation {conversation_id} already exists")
        conversation = Conversation(bot_id, conversation_id, user, listener=self.listener)
        self._conversations[key] = conversation
        logger.info("New conversation %s for bot %s", conversation_id, bot_id)
        return conversation

    def conversation_by_id(self, bot_id: str, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get((bot_id, conversation_id))

    def remove_bot(self, bot_id: str) -> int:
        """Tear down every conversation owned by `bot_id`; returns how many were removed."""
        keys = [key for key in self._conversations if key[0] == bot_id]
        for key in keys:
            del self._conversations[key]
        return len(keys)

    def __len__(self) -> int:
        return len(self._conversations)
