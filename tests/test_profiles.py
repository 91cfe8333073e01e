from __future__ import annotations

import json
import threading

import pytest

from pyrcman import DEFAULT_PROFILE, MemoryBackend, ProfileManager, SubSettingsConfig
from pyrcman.errors import (
    CannotDeleteActiveProfileError,
    InvalidProfileNameError,
    ProfileExistsError,
    ProfileNotFoundError,
    ProfilesNotEnabledError,
    ProtectedProfileError,
)
from pyrcman.profiles import ProfileEventKind
from tests.utils import make_manager


def test_fresh_root_has_default_profile(tmp_path):
    pm = ProfileManager(tmp_path)
    assert pm.list() == [DEFAULT_PROFILE]
    assert pm.active == DEFAULT_PROFILE
    assert pm.active_path() == tmp_path / "profiles" / "default"
    manifest = json.loads((tmp_path / ".profiles.json").read_text())
    assert manifest == {"active": "default", "profiles": ["default"]}


def test_lifecycle_and_events(tmp_path):
    pm = ProfileManager(tmp_path)
    events = []
    pm.subscribe(events.append)
    pm.create("work")
    assert pm.switch("work") == "default"
    pm.duplicate("work", "work-copy")
    pm.rename("work-copy", "spare")
    pm.delete("spare")
    assert [(e.kind, e.name, e.previous) for e in events] == [
        (ProfileEventKind.CREATED, "work", None),
        (ProfileEventKind.SWITCHED, "work", "default"),
        (ProfileEventKind.DUPLICATED, "work-copy", "work"),
        (ProfileEventKind.RENAMED, "spare", "work-copy"),
        (ProfileEventKind.DELETED, "spare", None),
    ]
    reopened = ProfileManager(tmp_path)
    assert reopened.list() == ["default", "work"]
    assert reopened.active == "work"


def test_profile_errors(tmp_path):
    pm = ProfileManager(tmp_path)
    pm.create("work")
    with pytest.raises(ProfileExistsError):
        pm.create("work")
    with pytest.raises(ProfileNotFoundError):
        pm.switch("missing")
    for bad in ["", "../escape", ".hidden", "a/b", "x" * 300, "tab\there"]:
        with pytest.raises(InvalidProfileNameError):
            pm.create(bad)
    pm.switch("work")
    with pytest.raises(CannotDeleteActiveProfileError):
        pm.delete("work")
    pm.switch("default")
    with pytest.raises(ProtectedProfileError):
        pm.delete("default")
    with pytest.raises(ProtectedProfileError):
        pm.rename("default", "main")


def test_settings_are_isolated_per_profile(tmp_path):
    mgr = make_manager(tmp_path, profiles_enabled=True)
    mgr.save("ui", "theme", "dark")
    mgr.create_profile("work")
    mgr.switch_profile("work")
    assert mgr.get("ui", "theme") == "light"
    mgr.save("ui", "theme", "system")
    assert mgr.settings_path == tmp_path / "profiles" / "work" / "settings.json"
    mgr.switch_profile("default")
    assert mgr.get("ui", "theme") == "dark"
    assert mgr.active_profile == "default"


def test_switch_invalidates_snapshot(tmp_path):
    mgr = make_manager(tmp_path, profiles_enabled=True)
    snap = mgr.snapshot()
    mgr.create_profile("work")
    mgr.switch_profile("work")
    assert not mgr.is_current(snap)


def test_secrets_follow_profiles(tmp_path):
    creds = MemoryBackend()
    mgr = make_manager(tmp_path, profiles_enabled=True, credentials=creds)
    mgr.save("api", "token", "default-token")
    mgr.create_profile("work")
    mgr.switch_profile("work")
    assert mgr.get("api", "token") == ""
    mgr.save("api", "token", "work-token")
    assert creds.retrieve("demo:profiles:work:api.token") == "work-token"

    mgr.duplicate_profile("work", "copy")
    assert creds.retrieve("demo:profiles:copy:api.token") == "work-token"
    mgr.rename_profile("work", "job")
    assert mgr.active_profile == "job"
    assert mgr.get("api", "token") == "work-token"
    assert creds.retrieve("demo:profiles:work:api.token") is None

    mgr.delete_profile("copy")
    assert creds.retrieve("demo:profiles:copy:api.token") is None


def test_flat_layout_is_migrated_into_default(tmp_path):
    (tmp_path / "settings.json").write_text('{"ui": {"theme": "dark"}}')
    mgr = make_manager(tmp_path, profiles_enabled=True)
    assert not (tmp_path / "settings.json").exists()
    assert (tmp_path / "profiles" / "default" / "settings.json").exists()
    assert mgr.get("ui", "theme") == "dark"


def test_profile_operations_need_profiles(tmp_path):
    mgr = make_manager(tmp_path)
    assert mgr.active_profile is None
    with pytest.raises(ProfilesNotEnabledError):
        mgr.create_profile("work")
    with pytest.raises(ProfilesNotEnabledError):
        mgr.list_profiles()


def test_switch_through_profile_manager_reroots(tmp_path):
    creds = MemoryBackend()
    mgr = make_manager(tmp_path, profiles_enabled=True, credentials=creds)
    remotes = mgr.register_sub_settings(SubSettingsConfig("remotes", profiles_enabled=True))
    mgr.create_profile("work")
    mgr.profiles.switch("work")

    mgr.save("ui", "theme", "dark")
    mgr.save("api", "token", "w")
    remotes.set("office", {})
    assert mgr.settings_path == tmp_path / "profiles" / "work" / "settings.json"
    assert mgr.settings_path.exists()
    assert not (tmp_path / "profiles" / "default" / "settings.json").exists()
    assert creds.retrieve("demo:profiles:work:api.token") == "w"
    assert (tmp_path / "profiles" / "work" / "remotes" / "office.json").exists()
    assert remotes.store_for("work").root == tmp_path / "profiles" / "work" / "remotes"


def test_renaming_active_profile_through_manager_reroots(tmp_path):
    mgr = make_manager(tmp_path, profiles_enabled=True)
    mgr.create_profile("work")
    mgr.switch_profile("work")
    mgr.save("ui", "theme", "dark")
    mgr.profiles.rename("work", "job")
    assert mgr.settings_path == tmp_path / "profiles" / "job" / "settings.json"
    assert mgr.get("ui", "theme") == "dark"


def test_concurrent_switches_with_readers_and_writers(tmp_path):
    mgr = make_manager(tmp_path, profiles_enabled=True)
    remotes = mgr.register_sub_settings(SubSettingsConfig("remotes", profiles_enabled=True))
    mgr.save("ui", "theme", "dark")
    mgr.create_profile("work")
    mgr.switch_profile("work")
    mgr.save("ui", "theme", "system")
    mgr.switch_profile("default")

    stop = threading.Event()
    errors = []

    def reader():
        while not stop.is_set():
            try:
                assert mgr.get("ui", "theme") in {"dark", "system"}
                remotes.list()
            except Exception as exc:  # collected for the main thread
                errors.append(exc)

    def writer():
        n = 0
        while not stop.is_set():
            n += 1
            try:
                mgr.save("ui", "scale", 1.0 + (n % 4) / 2)
            except Exception as exc:  # collected for the main thread
                errors.append(exc)

    threads = [threading.Thread(target=reader) for _ in range(3)]
    threads.append(threading.Thread(target=writer))
    for t in threads:
        t.start()
    for i in range(30):
        target = "work" if i % 2 == 0 else "default"
        mgr.switch_profile(target)
        snap = mgr.snapshot()
        mgr.switch_profile("default" if target == "work" else "work")
        assert not mgr.is_current(snap)
        assert mgr.get("ui", "theme") == ("dark" if target == "work" else "system")
    stop.set()
    for t in threads:
        t.join(timeout=10)
    assert not any(t.is_alive() for t in threads)
    assert errors == []
