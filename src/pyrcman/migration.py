"""Lazy, idempotent document migrations.

A migrator is a pure function ``document -> document``.  There is no stored
"already migrated" flag: a document counts as migrated when running the
migrator again leaves it unchanged, so every migrator must be idempotent.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from .backends import BaseBackend
from .document import clone, is_json_like
from .errors import MigrationFailedError

logger = logging.getLogger("pyrcman")

Migrator = Callable[[Any], Any]


def apply_migration(doc: Any, migrator: Migrator, *, require_object: bool = True) -> tuple[Any, bool]:
    """Run *migrator* on a copy of *doc*; return ``(result, changed)``."""
    try:
        result = migrator(clone(doc))
    except Exception as exc:
        raise MigrationFailedError(f"{type(exc).__name__}: {exc}") from exc
    try:
        json.dumps(result)
    except (TypeError, ValueError) as exc:
        raise MigrationFailedError(f"result cannot be serialised: {exc}") from exc
    if not is_json_like(result):
        raise MigrationFailedError("result is not a JSON-like document")
    if require_object and not isinstance(result, dict):
        raise MigrationFailedError("migrator must return an object")
    return result, result != doc


def migrate_document(
    backend: BaseBackend,
    path: Path,
    doc: dict[str, Any],
    migrator: Migrator | None,
    *,
    persist: bool = True,
) -> dict[str, Any]:
    """Apply *migrator* to a loaded document, persisting the result if changed.

    The write is atomic, so a crash leaves either the old document or the
    migrated one on disk.  On failure nothing is written.
    """
    if migrator is None:
        return doc
    result, changed = apply_migration(doc, migrator)
    if changed:
        logger.debug("migrated %s", path)
        if persist:
            backend.write(path, result)
    return result


def chain_migrators(*migrators: Migrator) -> Migrator:
    """Compose *migrators* left to right into a single migrator."""

    def run(doc: Any) -> Any:
        for step in migrators:
            doc = step(doc)
        return doc

    return run
