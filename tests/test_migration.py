from __future__ import annotations

import json

import pytest

from pyrcman.backends.json_backend import JsonBackend
from pyrcman.errors import MigrationFailedError
from pyrcman.migration import apply_migration, chain_migrators, migrate_document


def rename_dark_mode(doc):
    ui = doc.get("ui", {})
    if "dark_mode" in ui:
        ui["theme"] = "dark" if ui.pop("dark_mode") else "light"
    return doc


def test_changed_document_is_persisted(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"ui": {"dark_mode": True}}))
    backend = JsonBackend()
    doc = migrate_document(backend, path, backend.read(path), rename_dark_mode)
    assert doc == {"ui": {"theme": "dark"}}
    assert json.loads(path.read_text()) == {"ui": {"theme": "dark"}}


def test_unchanged_document_is_not_rewritten(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text('{"ui": {"theme": "light"}}')
    before = path.stat().st_mtime_ns
    backend = JsonBackend()
    migrate_document(backend, path, backend.read(path), rename_dark_mode)
    assert path.stat().st_mtime_ns == before
    assert path.read_text() == '{"ui": {"theme": "light"}}'


def test_input_is_not_mutated():
    doc = {"ui": {"dark_mode": False}}
    result, changed = apply_migration(doc, rename_dark_mode)
    assert changed
    assert doc == {"ui": {"dark_mode": False}}
    assert result == {"ui": {"theme": "light"}}


def test_idempotent_migrator_reports_no_change_second_time():
    first, _ = apply_migration({"ui": {"dark_mode": True}}, rename_dark_mode)
    _, changed = apply_migration(first, rename_dark_mode)
    assert not changed


def test_failures_leave_file_alone(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text('{"a": 1}')
    backend = JsonBackend()

    def broken(doc):
        raise RuntimeError("nope")

    with pytest.raises(MigrationFailedError):
        migrate_document(backend, path, backend.read(path), broken)
    with pytest.raises(MigrationFailedError):
        migrate_document(backend, path, backend.read(path), lambda d: ["not", "an", "object"])
    with pytest.raises(MigrationFailedError):
        migrate_document(backend, path, backend.read(path), lambda d: {"x": object()})
    assert path.read_text() == '{"a": 1}'


def test_chain_migrators():
    add_version = lambda d: {**d, "version": 2}
    migrator = chain_migrators(rename_dark_mode, add_version)
    assert migrator({"ui": {"dark_mode": True}}) == {"ui": {"theme": "dark"}, "version": 2}
