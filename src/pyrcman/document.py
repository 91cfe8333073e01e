"""Helpers for JSON-like document trees.

A document is plain Python data: ``dict`` with ``str`` keys, ``list``,
``str``, ``int``, ``float``, ``bool`` and ``None``.
"""
from __future__ import annotations

import copy
import json
from typing import Any

_MISSING = object()
_ABSENT = object()


def is_json_like(value: Any) -> bool:
    if value is None or isinstance(value, (bool, int, float, str)):
        return True
    if isinstance(value, list):
        return all(is_json_like(v) for v in value)
    if isinstance(value, dict):
        return all(isinstance(k, str) and is_json_like(v) for k, v in value.items())
    return False


def clone(doc: Any) -> Any:
    return copy.deepcopy(doc)


def split_path(dotted: str) -> list[str]:
    parts = dotted.split(".")
    if any(p == "" for p in parts):
        raise ValueError(f"invalid path: {dotted!r}")
    return parts


def get_path(doc: dict[str, Any], dotted: str, default: Any = _MISSING) -> Any:
    node: Any = doc
    for part in split_path(dotted):
        if not isinstance(node, dict) or part not in node:
            if default is _MISSING:
                raise KeyError(dotted)
            return default
        node = node[part]
    return node


def has_path(doc: dict[str, Any], dotted: str) -> bool:
    return get_path(doc, dotted, _ABSENT) is not _ABSENT


def set_path(doc: dict[str, Any], dotted: str, value: Any) -> None:
    parts = split_path(dotted)
    node = doc
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def remove_path(doc: dict[str, Any], dotted: str) -> bool:
    """Remove *dotted* from *doc*, pruning parents left empty."""
    parts = split_path(dotted)
    trail: list[tuple[dict[str, Any], str]] = []
    node: Any = doc
    for part in parts[:-1]:
        if not isinstance(node, dict) or not isinstance(node.get(part), dict):
            return False
        trail.append((node, part))
        node = node[part]
    if not isinstance(node, dict) or parts[-1] not in node:
        return False
    del node[parts[-1]]
    for parent, key in reversed(trail):
        if parent[key]:
            break
        del parent[key]
    return True


def encode(doc: Any) -> bytes:
    return json.dumps(doc, ensure_ascii=False, sort_keys=True).encode("utf-8")


def decode(data: bytes) -> Any:
    return json.loads(data.decode("utf-8"))
