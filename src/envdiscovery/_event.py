"""Minimal synchronous event emitter."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Event(Generic[T]):
    """Listeners are called in subscription order; a failing listener is logged and does not stop the others."""

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """:returns: a callable that removes the listener again"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def fire(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                LOGGER.exception("listener of %s failed", self._name)

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = [
    "Event",
]
