"""Named, isolated storage roots ("profiles").

Layout under the manager's root::

    .profiles.json          {"active": "default", "profiles": ["default", ...]}
    profiles/<name>/        one directory per profile

The manager is the only owner of "which root is active"; stores ask it for
:meth:`ProfileManager.active_path` instead of keeping their own notion.
"""
from __future__ import annotations

import enum
import json
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from .errors import (
    CannotDeleteActiveProfileError,
    InvalidNameError,
    InvalidProfileNameError,
    ProfileExistsError,
    ProfileNotFoundError,
    ProtectedProfileError,
    StorageLoadError,
)
from .storage import atomic_write, copy_tree, ensure_dir, move, remove_tree

logger = logging.getLogger("pyrcman.profiles")

DEFAULT_PROFILE = "default"
PROFILES_DIR = "profiles"
MANIFEST_FILE = ".profiles.json"
MAX_NAME_LENGTH = 255


def validate_name(name: str, *, error: type[InvalidNameError] = InvalidNameError) -> str:
    """Return *name* if it is safe to use as a single path component."""
    if not name or not name.strip():
        raise error("name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise error(f"name too long: {name[:20]}...")
    if name.startswith("."):
        raise error(f"name cannot start with '.': {name!r}")
    if "/" in name or "\\" in name or ".." in name:
        raise error(f"name cannot contain path separators: {name!r}")
    if any(ord(ch) < 32 or ord(ch) == 127 for ch in name):
        raise error(f"name contains control characters: {name!r}")
    return name


def validate_profile_name(name: str) -> str:
    return validate_name(name, error=InvalidProfileNameError)


class ProfileEventKind(enum.Enum):
    CREATED = "created"
    SWITCHED = "switched"
    RENAMED = "renamed"
    DUPLICATED = "duplicated"
    DELETED = "deleted"


@dataclass(frozen=True)
class ProfileEvent:
    kind: ProfileEventKind
    name: str
    previous: str | None = None


ProfileListener = Callable[[ProfileEvent], None]


class ProfileManager:
    """Track the set of profiles under *root* and which one is active."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.profiles_dir = self.root / PROFILES_DIR
        self.manifest_path = self.root / MANIFEST_FILE
        self._lock = threading.RLock()
        self._listeners: list[ProfileListener] = []
        self._active = DEFAULT_PROFILE
        self._names: list[str] = [DEFAULT_PROFILE]
        self._initialized = False

    # ----- manifest -----

    def ensure_initialized(self, adopt: Iterable[str] = ()) -> bool:
        """Create the manifest on first use.

        Entries named in *adopt* that exist directly under the root (the flat
        layout used before profiles were enabled) are moved into the default
        profile.  Returns ``True`` if a migration happened.
        """
        with self._lock:
            if self._initialized:
                return False
            if self.manifest_path.exists():
                self._read_manifest()
                self._initialized = True
                return False
            ensure_dir(self.profile_path(DEFAULT_PROFILE))
            moved = self._adopt_locked(adopt)
            self._write_manifest()
            self._initialized = True
        if moved:
            logger.info("migrated flat layout in %s into profile %r", self.root, DEFAULT_PROFILE)
        return bool(moved)

    def adopt(self, names: Iterable[str]) -> list[str]:
        """Move flat-layout entries into the default profile if not yet there."""
        with self._lock:
            self.ensure_initialized()
            return self._adopt_locked(names)

    def _adopt_locked(self, names: Iterable[str]) -> list[str]:
        moved = []
        target_root = self.profile_path(DEFAULT_PROFILE)
        for entry in names:
            src = self.root / entry
            dst = target_root / entry
            if src.exists() and not dst.exists():
                move(src, dst)
                moved.append(entry)
        return moved

    def _read_manifest(self) -> None:
        try:
            raw = json.loads(self.manifest_path.read_text(encoding="utf-8"))
            active = raw["active"]
            names = list(raw["profiles"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise StorageLoadError(f"{self.manifest_path}: {exc}") from exc
        if DEFAULT_PROFILE not in names:
            names.insert(0, DEFAULT_PROFILE)
        if active not in names:
            logger.warning("active profile %r missing from manifest; using default", active)
            active = DEFAULT_PROFILE
        self._active = active
        self._names = names

    def _write_manifest(self) -> None:
        data = {"active": self._active, "profiles": self._names}
        atomic_write(self.manifest_path, json.dumps(data, indent=2))

    def _emit(self, event: ProfileEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event)

    def subscribe(self, listener: ProfileListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    # ----- queries -----

    def list(self) -> list[str]:
        with self._lock:
            self.ensure_initialized()
            return list(self._names)

    def exists(self, name: str) -> bool:
        with self._lock:
            self.ensure_initialized()
            return name in self._names

    @property
    def active(self) -> str:
        with self._lock:
            self.ensure_initialized()
            return self._active

    def profile_path(self, name: str) -> Path:
        return self.profiles_dir / name

    def active_path(self) -> Path:
        return self.profile_path(self.active)

    def _require(self, name: str) -> None:
        if name not in self._names:
            raise ProfileNotFoundError(name)

    # ----- lifecycle -----

    def create(self, name: str) -> Path:
        validate_profile_name(name)
        with self._lock:
            self.ensure_initialized()
            if name in self._names:
                raise ProfileExistsError(name)
            path = self.profile_path(name)
            ensure_dir(path)
            self._names.append(name)
            self._write_manifest()
        logger.debug("created profile %s", name)
        self._emit(ProfileEvent(ProfileEventKind.CREATED, name))
        return path

    def switch(self, name: str) -> str:
        """Make *name* active and return the previously active profile."""
        with self._lock:
            self.ensure_initialized()
            self._require(name)
            previous = self._active
            if previous == name:
                return previous
            ensure_dir(self.profile_path(name))
            self._active = name
            self._write_manifest()
        logger.debug("switched profile %s -> %s", previous, name)
        self._emit(ProfileEvent(ProfileEventKind.SWITCHED, name, previous))
        return previous

    def rename(self, old: str, new: str) -> None:
        validate_profile_name(new)
        with self._lock:
            self.ensure_initialized()
            self._require(old)
            if old == DEFAULT_PROFILE:
                raise ProtectedProfileError("the default profile cannot be renamed")
            if new in self._names:
                raise ProfileExistsError(new)
            src = self.profile_path(old)
            if src.exists():
                move(src, self.profile_path(new))
            else:
                ensure_dir(self.profile_path(new))
            self._names[self._names.index(old)] = new
            if self._active == old:
                self._active = new
            self._write_manifest()
        self._emit(ProfileEvent(ProfileEventKind.RENAMED, new, old))

    def duplicate(self, source: str, target: str) -> Path:
        validate_profile_name(target)
        with self._lock:
            self.ensure_initialized()
            self._require(source)
            if target in self._names:
                raise ProfileExistsError(target)
            src = self.profile_path(source)
            dst = self.profile_path(target)
            if src.exists():
                copy_tree(src, dst)
            else:
                ensure_dir(dst)
            self._names.append(target)
            self._write_manifest()
        self._emit(ProfileEvent(ProfileEventKind.DUPLICATED, target, source))
        return dst

    def delete(self, name: str) -> None:
        with self._lock:
            self.ensure_initialized()
            self._require(name)
            if name == self._active:
                raise CannotDeleteActiveProfileError(name)
            if name == DEFAULT_PROFILE:
                raise ProtectedProfileError("the default profile cannot be deleted")
            remove_tree(self.profile_path(name))
            self._names.remove(name)
            self._write_manifest()
        self._emit(ProfileEvent(ProfileEventKind.DELETED, name))
