"""In-process progress notifications.

Recorders publish after their unit of work commits. Listeners get a
``Subscription`` handle and stop receiving updates once it is cancelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable
from uuid import uuid4

from cashwise_api.errors import ScoringError
from cashwise_api.outcomes import SideEffectOutcome, run_side_effect


@dataclass(frozen=True)
class ProgressUpdate:
    kind: str
    profile_id: str
    xp_total: int
    xp_delta: int = 0
    detail: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[ProgressUpdate], None]


class Subscription:
    def __init__(self, feed: "ProgressFeed", token: str) -> None:
        self._feed = feed
        self._token = token
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._feed._remove(self._token)
            self._active = False


class ProgressFeed:
    def __init__(
        self, *, ignorable: tuple[type[BaseException], ...] = (ScoringError,)
    ) -> None:
        self._lock = Lock()
        self._listeners: dict[str, Listener] = {}
        self._ignorable = ignorable

    def subscribe(self, listener: Listener) -> Subscription:
        token = uuid4().hex
        with self._lock:
            self._listeners[token] = listener
        return Subscription(self, token)

    def _remove(self, token: str) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, update: ProgressUpdate) -> list[SideEffectOutcome]:
        with self._lock:
            listeners = list(self._listeners.items())
        return [
            run_side_effect(
                f"feed:{update.kind}:{token[:8]}",
                lambda fn=fn: fn(update),
                ignorable=self._ignorable,
            )
            for token, fn in listeners
        ]
