"""
Synchronous observer plumbing.

Listeners:
    Ordered list of callbacks with subscribe/unsubscribe handles.

ActivitySignal:
    A level-valued boolean cell. Listeners are invoked synchronously on
    every value change, and once with the current value when they
    subscribe. Writes happen only on the detector's serialized
    processing path.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Listeners(Generic[T]):
    """Ordered callbacks notified synchronously."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, value: T) -> None:
        # Snapshot so listeners may unsubscribe while being notified
        for callback in list(self._callbacks):
            callback(value)

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)


class ActivitySignal:
    """Observable voice_is_active level."""

    def __init__(self, initial: bool = False) -> None:
        self._value = initial
        self._listeners: Listeners[bool] = Listeners()

    @property
    def value(self) -> bool:
        return self._value

    def set(self, value: bool) -> bool:
        """
        Store a new value.

        Returns:
            True if the value changed (listeners were notified).
        """
        if value == self._value:
            return False
        self._value = value
        self._listeners.emit(value)
        return True

    def subscribe(self, listener: Callable[[bool], None]) -> Unsubscribe:
        unsubscribe = self._listeners.subscribe(listener)
        listener(self._value)
        return unsubscribe

    def clear(self) -> None:
        self._listeners.clear()
