from __future__ import annotations

import json
import sys
import types

import pytest

from pyrcman.credentials import CredentialManager, KeyringBackend, MemoryBackend
from pyrcman.credentials.encrypted import EncryptedFileBackend
from pyrcman.errors import CredentialError, IncorrectPasswordError


def _fake_keyring(monkeypatch, *, failing: bool = False):
    store = {}

    class DummyKeyring:
        class Keyring:  # stand-in for fail.Keyring
            pass

    current = DummyKeyring.Keyring() if failing else DummyKeyring()
    dummy = types.SimpleNamespace(
        get_keyring=lambda: current,
        set_password=lambda svc, user, val: store.__setitem__((svc, user), val),
        get_password=lambda svc, user: store.get((svc, user)),
        delete_password=lambda svc, user: store.pop((svc, user)),
    )
    monkeypatch.setitem(sys.modules, "keyring", dummy)
    monkeypatch.setitem(sys.modules, "keyring.backends", types.SimpleNamespace(fail=DummyKeyring))
    return store


def test_keyring_roundtrip(monkeypatch):
    store = _fake_keyring(monkeypatch)
    creds = CredentialManager(KeyringBackend(), "demo")
    creds.store("api.token", "s3cret")
    assert store == {("demo", "api.token"): "s3cret"}
    assert creds.get("api.token") == "s3cret"
    assert creds.remove("api.token")
    assert not creds.remove("api.token")
    assert creds.get("api.token") is None


def test_keyring_unavailable(monkeypatch):
    _fake_keyring(monkeypatch, failing=True)
    backend = KeyringBackend()
    assert not backend.available()
    assert backend.retrieve("demo:x") is None
    with pytest.raises(CredentialError):
        backend.store("demo:x", "y")


def test_profile_namespacing():
    backend = MemoryBackend()
    creds = CredentialManager(backend, "demo", profile="work")
    creds.store("api.token", "w")
    creds.for_profile(None).store("api.token", "g")
    assert sorted(backend.keys()) == ["demo:api.token", "demo:profiles:work:api.token"]
    creds.set_profile("home")
    assert creds.get("api.token") is None
    assert creds.for_profile("work").get("api.token") == "w"


def test_encrypted_file_roundtrip(tmp_path):
    path = tmp_path / "secrets.enc.json"
    backend = EncryptedFileBackend(path, "pw")
    backend.store("demo:api.token", "one")
    raw = json.loads(path.read_text())
    assert "one" not in path.read_text()
    assert list(raw["entries"]) == ["demo:api.token"]

    reopened = EncryptedFileBackend(path, "pw")
    assert reopened.retrieve("demo:api.token") == "one"
    assert reopened.delete("demo:api.token")
    assert reopened.keys() == []


def test_encrypted_file_wrong_password(tmp_path):
    path = tmp_path / "secrets.enc.json"
    EncryptedFileBackend(path, "right").store("k", "v")
    with pytest.raises(IncorrectPasswordError):
        EncryptedFileBackend(path, "wrong").retrieve("k")


def test_encrypted_file_corrupt(tmp_path):
    path = tmp_path / "secrets.enc.json"
    path.write_text("not json")
    with pytest.raises(CredentialError):
        EncryptedFileBackend(path, "pw").retrieve("k")
