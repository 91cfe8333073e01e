"""In-memory cache of one settings document and its resolved values."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .sync import GenerationCounter


@dataclass(frozen=True)
class MergedSnapshot:
    """Resolved values captured at a given cache generation."""

    values: dict[str, dict[str, Any]]
    generation: int


class SettingsCache:
    """Stored document plus resolved (secret > stored > default) values.

    Environment overrides are applied on top at read time and never cached.
    The owner serialises access; this class does no locking of its own
    apart from the generation counter.
    """

    def __init__(self) -> None:
        self.generation = GenerationCounter()
        self._stored: dict[str, Any] | None = None
        self._values: dict[str, Any] = {}

    @property
    def loaded(self) -> bool:
        return self._stored is not None

    @property
    def stored(self) -> dict[str, Any]:
        if self._stored is None:
            raise RuntimeError("settings cache is not loaded")
        return self._stored

    def populate(self, stored: dict[str, Any], values: dict[str, Any]) -> int:
        self._stored = stored
        self._values = values
        return self.generation.bump()

    def clear(self) -> int:
        self._stored = None
        self._values = {}
        return self.generation.bump()

    def value(self, address: str) -> Any:
        return self._values[address]

    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def update(self, address: str, stored: dict[str, Any], value: Any) -> None:
        """Apply a single write in place without recomputing the view."""
        self._stored = stored
        self._values[address] = value
