"""Environment override sources and value parsing."""
from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import Any, Protocol


class EnvSource(Protocol):
    """Read-only lookup of override variables."""

    def lookup(self, name: str) -> str | None:
        """Return the raw value of *name* or ``None`` if unset."""


class OsEnvSource:
    """Overrides taken from :data:`os.environ`."""

    def lookup(self, name: str) -> str | None:
        return os.environ.get(name)


class MappingEnvSource:
    """Overrides taken from a caller supplied mapping (useful in tests)."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self.values = dict(values or {})

    def lookup(self, name: str) -> str | None:
        return self.values.get(name)


def env_var_name(prefix: str, category: str, key: str) -> str:
    name = f"{prefix}_{category}_{key}"
    return name.upper().replace("-", "_").replace(".", "_")


def parse_env_value(value: str) -> Any:
    """Interpret an override string.

    ``true``/``false`` become booleans, then integers and floats are tried,
    then JSON arrays/objects; anything else is returned unchanged.
    """
    lower = value.strip().lower()
    if lower in {"true", "false"}:
        return lower == "true"
    for func in (int, float):
        try:
            return func(value)
        except ValueError:
            pass
    stripped = value.strip()
    if stripped.startswith("[") or stripped.startswith("{"):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass
    return value
