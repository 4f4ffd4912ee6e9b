from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Generic, List, TypeVar

logger = logging.getLogger("emulator-shell")

S = TypeVar("S")

Action = Dict[str, Any]
Reducer = Callable[[S, Action], S]
Listener = Callable[[S, Action], None]


class Store(Generic[S]):
    """
    Minimal action-dispatch store.

    `dispatch` runs the reducer and then every subscriber with the new state.
    Reducers must be pure and return a new state object; subscribers do the
    side effects (persistence on the host).
    """

    def __init__(self, reducer: Reducer, initial_state: S):
        self._reducer = reducer
        self._state = initial_state
        self._listeners: List[Listener] = []

    def get_state(self) -> S:
        return self._state

    def dispatch(self, action: Action) -> Action:
        if "type" not in action:
            raise ValueError("Actions must have a 'type'")
        self._state = self._reducer(self._state, action)
        for listener in list(self._listeners):
            listener(self._state, action)
        return action

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
