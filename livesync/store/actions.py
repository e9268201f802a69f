"""Lifecycle actions dispatched to the rest of the engine.

Dispatch is fire-and-forget: the reconciler never waits on, or inspects
the result of, a dispatched action.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Callable, Union

from livesync.api.models import LiveUpdate


@dataclass
class LiveUpdateUpsertAction:
    live_update: LiveUpdate


@dataclass
class LiveUpdateDeleteAction:
    name: str


Action = Union[LiveUpdateUpsertAction, LiveUpdateDeleteAction]


def new_upsert_action(lu: LiveUpdate) -> LiveUpdateUpsertAction:
    return LiveUpdateUpsertAction(live_update=copy.deepcopy(lu))


def new_delete_action(name: str) -> LiveUpdateDeleteAction:
    return LiveUpdateDeleteAction(name=name)


class ActionLog:
    """Dispatch sink that records actions and fans them out to subscribers.

    Also keeps the latest published LiveUpdate per name, which is what the
    rest of the engine consumes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._actions: list[Action] = []
        self._subscribers: list[Callable[[Action], None]] = []
        self.live_updates: dict[str, LiveUpdate] = {}

    def subscribe(self, fn: Callable[[Action], None]) -> None:
        with self._lock:
            self._subscribers.append(fn)

    def dispatch(self, action: Action) -> None:
        with self._lock:
            self._actions.append(action)
            if isinstance(action, LiveUpdateUpsertAction):
                self.live_updates[action.live_update.name] = action.live_update
            elif isinstance(action, LiveUpdateDeleteAction):
                self.live_updates.pop(action.name, None)
            subscribers = list(self._subscribers)

        for fn in subscribers:
            fn(action)

    @property
    def actions(self) -> list[Action]:
        with self._lock:
            return list(self._actions)
