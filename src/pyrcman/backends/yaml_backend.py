from __future__ import annotations

from typing import Any

import yaml

from . import register_backend
from .base import BaseBackend


@register_backend
class YamlBackend(BaseBackend):
    """YAML file backend."""

    suffixes = (".yaml", ".yml")

    def loads(self, text: str) -> Any:
        return yaml.safe_load(text)

    def dumps(self, data: dict[str, Any]) -> str:
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
