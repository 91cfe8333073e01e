from __future__ import annotations

import os
from pathlib import Path

import pytest

from pyrcman.backends import get_backend_for_path
from pyrcman.backends.json_backend import JsonBackend
from pyrcman.backends.toml_backend import TomlBackend
from pyrcman.backends.yaml_backend import YamlBackend
from pyrcman.errors import DocumentNotFoundError, StorageLoadError
from pyrcman.storage import atomic_write


def test_json_backend_roundtrip(tmp_path: Path):
    doc = {"ui": {"theme": "dark", "size": 3}, "tags": ["a", None], "on": True}
    path = tmp_path / "settings.json"
    JsonBackend().write(path, doc)
    assert JsonBackend().read(path) == doc


def test_missing_file(tmp_path: Path):
    with pytest.raises(DocumentNotFoundError):
        JsonBackend().read(tmp_path / "absent.json")


def test_empty_file(tmp_path: Path):
    path = tmp_path / "empty.json"
    path.write_text("  \n", encoding="utf-8")
    assert JsonBackend().read(path) == {}


def test_invalid_json(tmp_path: Path):
    path = tmp_path / "bad.json"
    path.write_text("{ invalid", encoding="utf-8")
    with pytest.raises(StorageLoadError):
        JsonBackend().read(path)


def test_root_must_be_object(tmp_path: Path):
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(StorageLoadError):
        JsonBackend().read(path)


def test_yaml_roundtrip(tmp_path: Path):
    doc = {"remote": {"host": "example.org", "port": 22}, "enabled": False}
    path = tmp_path / "remote.yaml"
    YamlBackend().write(path, doc)
    assert YamlBackend().read(path) == doc


def test_toml_drops_nulls(tmp_path: Path):
    path = tmp_path / "settings.toml"
    TomlBackend().write(path, {"n": 1, "ui": {"theme": "dark", "font": None}})
    assert TomlBackend().read(path) == {"ui": {"theme": "dark"}, "n": 1}


def test_registry_by_suffix():
    assert isinstance(get_backend_for_path(Path("a.json")), JsonBackend)
    assert isinstance(get_backend_for_path(Path("a.YML")), YamlBackend)
    with pytest.raises(ValueError):
        get_backend_for_path(Path("a.ini"))


def test_atomic_write_replaces_and_cleans_up(tmp_path: Path):
    path = tmp_path / "nested" / "doc.json"
    atomic_write(path, "{}")
    atomic_write(path, '{"a": 1}')
    assert path.read_text() == '{"a": 1}'
    assert sorted(p.name for p in path.parent.iterdir()) == ["doc.json"]


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
def test_new_files_are_owner_only(tmp_path: Path):
    path = tmp_path / "private" / "doc.json"
    JsonBackend().write(path, {"a": 1})
    assert path.stat().st_mode & 0o777 == 0o600
    assert path.parent.stat().st_mode & 0o777 == 0o700
