from __future__ import annotations

from typing import Any

import tomlkit

from . import register_backend
from .base import BaseBackend


def _drop_nulls(value: Any) -> Any:
    # TOML has no null
    if isinstance(value, dict):
        return {k: _drop_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_nulls(v) for v in value if v is not None]
    return value


@register_backend
class TomlBackend(BaseBackend):
    """TOML file backend built on :mod:`tomlkit`."""

    suffixes = (".toml",)

    def loads(self, text: str) -> Any:
        return tomlkit.parse(text).unwrap()

    def dumps(self, data: dict[str, Any]) -> str:
        return tomlkit.dumps(_drop_nulls(data))
