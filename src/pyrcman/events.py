"""Change listeners and validators for settings."""
from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

ChangeCallback = Callable[[str, Any, Any], None]
Validator = Callable[[Any], None]


class EventManager:
    """Dispatch ``(address, old, new)`` notifications.

    Validators raise :class:`ValueError` to reject a value before it is saved.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._global: list[ChangeCallback] = []
        self._by_key: dict[str, list[ChangeCallback]] = {}
        self._validators: dict[str, list[Validator]] = {}

    def on_change(self, callback: ChangeCallback) -> None:
        with self._lock:
            self._global.append(callback)

    def watch(self, address: str, callback: ChangeCallback) -> None:
        with self._lock:
            self._by_key.setdefault(address, []).append(callback)

    def unwatch(self, address: str) -> None:
        with self._lock:
            self._by_key.pop(address, None)

    def add_validator(self, address: str, validator: Validator) -> None:
        with self._lock:
            self._validators.setdefault(address, []).append(validator)

    def validate(self, address: str, value: Any) -> None:
        with self._lock:
            validators = list(self._validators.get(address, ()))
        for fn in validators:
            fn(value)

    def notify(self, address: str, old: Any, new: Any) -> None:
        with self._lock:
            callbacks = self._global + self._by_key.get(address, [])
        for fn in callbacks:
            fn(address, old, new)
