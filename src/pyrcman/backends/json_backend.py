from __future__ import annotations

import json
from typing import Any

from . import register_backend
from .base import BaseBackend


@register_backend
class JsonBackend(BaseBackend):
    """JSON file backend."""

    suffixes = (".json",)

    def loads(self, text: str) -> Any:
        return json.loads(text)

    def dumps(self, data: dict[str, Any]) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
