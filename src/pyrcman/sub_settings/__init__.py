"""Per-entity settings collections ("sub-settings").

A category such as ``remotes`` holds many named entities.  Each category is
served by one :class:`SubSettings` instance in either layout:

* multi-file: ``<root>/<category>/<entity>.json``
* single-file: ``<root>/<category>.json`` with entities as top-level keys

With ``profiles_enabled`` the root is the active profile directory,
otherwise the application config directory.
"""
from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from ..backends import get_backend_for_extension
from ..credentials import CredentialManager
from ..document import clone, get_path, has_path, is_json_like, remove_path, set_path
from ..errors import (
    ConfigError,
    EntityNotFoundError,
    InvalidNameError,
    InvalidSettingValueError,
    ProfilesNotEnabledError,
    RcmanError,
    TypeMismatchError,
)
from ..migration import Migrator
from ..profiles import ProfileManager, validate_name
from ..schema import Schema
from ..sync import RWLock
from .stores import EntityStore, MultiFileStore, SingleFileStore

logger = logging.getLogger("pyrcman.sub_settings")

T = TypeVar("T")


class SubSettingsMode(enum.Enum):
    MULTI_FILE = "multi_file"
    SINGLE_FILE = "single_file"


class ChangeAction(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


SubSettingsCallback = Callable[[str, ChangeAction], None]


@dataclass(frozen=True)
class SubSettingsConfig:
    name: str
    mode: SubSettingsMode = SubSettingsMode.MULTI_FILE
    extension: str = "json"
    migrator: Migrator | None = None
    schema: Schema | None = None
    profiles_enabled: bool = False

    def __post_init__(self) -> None:
        try:
            validate_name(self.name)
        except InvalidNameError as exc:
            raise ConfigError(f"invalid sub-settings name: {exc}") from exc
        try:
            get_backend_for_extension(self.extension)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        if not isinstance(self.mode, SubSettingsMode):
            object.__setattr__(self, "mode", SubSettingsMode(self.mode))

    @property
    def file_name(self) -> str:
        return f"{self.name}.{self.extension.lstrip('.')}"


class SubSettings:
    """Entities of one category, cached and optionally profile scoped."""

    def __init__(
        self,
        config: SubSettingsConfig,
        base_dir: Path,
        *,
        profiles: ProfileManager | None = None,
        credentials: CredentialManager | None = None,
    ) -> None:
        if config.profiles_enabled and profiles is None:
            raise ConfigError(f"{config.name}: profiles_enabled needs a profile manager")
        self.config = config
        self.name = config.name
        self.base_dir = Path(base_dir)
        self.profiles = profiles if config.profiles_enabled else None
        self._secret_fields = config.schema.secret_addresses() if config.schema else []
        if self._secret_fields and credentials is None:
            raise ConfigError(f"{config.name}: secret fields need a credential backend")
        self.credentials = credentials
        self._callbacks: list[SubSettingsCallback] = []
        self._lock = RWLock(f"sub_settings:{self.name}", on_recover=self._drop_cache)
        if self.profiles is not None:
            self.profiles.adopt([self.config.file_name if self._single else self.name])
        self._store = self._make_store(self._active_root())

    # ----- layout -----

    @property
    def _single(self) -> bool:
        return self.config.mode is SubSettingsMode.SINGLE_FILE

    def _active_root(self) -> Path:
        if self.profiles is not None:
            return self.profiles.active_path()
        return self.base_dir

    def root_for(self, profile: str | None) -> Path:
        """Directory that holds this category for *profile*."""
        if self.profiles is None:
            if profile is not None:
                raise ProfilesNotEnabledError(f"{self.name} is not profile scoped")
            return self.base_dir
        if profile is None:
            return self.profiles.active_path()
        return self.profiles.profile_path(profile)

    def _make_store(self, root: Path) -> EntityStore:
        if self._single:
            return SingleFileStore(self.name, root / self.config.file_name,
                                   self.config.extension, self.config.migrator)
        return MultiFileStore(self.name, root / self.name, self.config.extension,
                              self.config.migrator)

    def store_for(self, profile: str | None) -> EntityStore:
        """Return the live store for the active profile, or a fresh one."""
        if self.profiles is None or profile is None or profile == self.profiles.active:
            return self._store
        return self._make_store(self.root_for(profile))

    def credentials_for(self, profile: str | None) -> CredentialManager | None:
        if self.credentials is None or self.profiles is None or profile is None:
            return self.credentials
        return self.credentials.for_profile(profile)

    @property
    def path(self) -> Path:
        return self._store.root

    @property
    def secret_fields(self) -> list[str]:
        return list(self._secret_fields)

    def secret_key(self, entity: str, field: str) -> str:
        return f"sub.{self.name}.{entity}.{field}"

    def refresh_root(self) -> None:
        """Re-root under the active profile and drop all cached entities."""
        with self._lock.write():
            self._store = self._make_store(self._active_root())
        logger.debug("%s re-rooted at %s", self.name, self._store.root)

    def invalidate(self) -> None:
        with self._lock.write():
            self._store.clear_cache()

    def _drop_cache(self) -> None:
        self._store.clear_cache()

    # ----- events -----

    def on_change(self, callback: SubSettingsCallback) -> None:
        self._callbacks.append(callback)

    def _notify(self, name: str, action: ChangeAction) -> None:
        for fn in list(self._callbacks):
            fn(name, action)

    # ----- secrets -----

    def _split_secrets(self, doc: dict[str, Any]) -> dict[str, Any]:
        secrets = {}
        for field in self._secret_fields:
            if has_path(doc, field):
                secrets[field] = get_path(doc, field)
                remove_path(doc, field)
        return secrets

    def _stored_secrets(self, name: str) -> dict[str, str | None]:
        return {f: self.credentials.get(self.secret_key(name, f)) for f in self._secret_fields}

    def _route_secrets(self, name: str, secrets: dict[str, Any]) -> None:
        for field in self._secret_fields:
            key = self.secret_key(name, field)
            if field in secrets:
                meta = self.config.schema.get(field)
                self.credentials.store(key, meta.encode_secret(secrets[field]))
            else:
                self.credentials.remove(key)

    def _restore_secrets(self, name: str, previous: dict[str, str | None]) -> None:
        for field, text in previous.items():
            key = self.secret_key(name, field)
            if text is None:
                self.credentials.remove(key)
            else:
                self.credentials.store(key, text)

    def _inject_secrets(self, name: str, doc: dict[str, Any]) -> None:
        for field in self._secret_fields:
            text = self.credentials.get(self.secret_key(name, field))
            if text is not None:
                meta = self.config.schema.get(field)
                set_path(doc, field, meta.decode_secret(text))

    # ----- public API -----

    def _check(self, name: str, value: Any) -> None:
        validate_name(name)
        if not is_json_like(value):
            raise InvalidSettingValueError(f"{self.name}.{name}", "value is not JSON-like")
        if self.config.schema is not None:
            self.config.schema.validate_object(value, f"{self.name}.{name}")
        elif not isinstance(value, dict):
            raise InvalidSettingValueError(f"{self.name}.{name}", "entity must be an object")

    def set(self, name: str, value: dict[str, Any]) -> None:
        self._check(name, value)
        doc = clone(value)
        secrets = self._split_secrets(doc)
        with self._lock.write():
            existed = self._store.exists(name)
            previous = self._stored_secrets(name)
            try:
                self._route_secrets(name, secrets)
                self._store.write(name, doc)
            except RcmanError:
                self._restore_secrets(name, previous)
                raise
        self._notify(name, ChangeAction.UPDATED if existed else ChangeAction.CREATED)

    def get(self, name: str, cast: Callable[[dict[str, Any]], T] | None = None) -> Any:
        validate_name(name)
        with self._lock.read():
            doc = clone(self._store.read(name))
        if self._secret_fields:
            self._inject_secrets(name, doc)
        if cast is None:
            return doc
        try:
            return cast(doc)
        except (TypeError, ValueError, KeyError) as exc:
            expected = getattr(cast, "__name__", repr(cast))
            raise TypeMismatchError(f"{self.name}.{name}", expected) from exc

    def set_field(self, name: str, path: str, value: Any) -> None:
        """Update one (dotted) field of an existing entity."""
        validate_name(name)
        with self._lock.write():
            doc = self.get(name)
            set_path(doc, path, value)
            self.set(name, doc)

    def delete(self, name: str) -> None:
        validate_name(name)
        with self._lock.write():
            self._store.remove(name)
            for field in self._secret_fields:
                self.credentials.remove(self.secret_key(name, field))
        self._notify(name, ChangeAction.DELETED)

    def exists(self, name: str) -> bool:
        validate_name(name)
        with self._lock.read():
            return self._store.exists(name)

    def list(self) -> list[str]:
        with self._lock.read():
            return self._store.names()

    def get_all(self) -> dict[str, Any]:
        return {name: self.get(name) for name in self.list()}

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        try:
            return self.exists(name)
        except InvalidNameError:
            return False

    # ----- raw access for backup/restore -----

    def export_entities(self, profile: str | None = None,
                        names: list[str] | None = None) -> dict[str, dict[str, Any]]:
        """Stored documents for *profile* without secret fields."""
        store = self.store_for(profile)
        with self._lock.read():
            wanted = store.names() if names is None else [n for n in names if store.exists(n)]
            return {n: clone(store.read(n)) for n in wanted}

    def export_secrets(self, profile: str | None, names: list[str]) -> dict[str, str]:
        creds = self.credentials_for(profile)
        out = {}
        for name in names:
            for field in self._secret_fields:
                key = self.secret_key(name, field)
                text = creds.get(key)
                if text is not None:
                    out[key] = text
        return out

    def import_entity(self, profile: str | None, name: str, doc: dict[str, Any]) -> None:
        validate_name(name)
        store = self.store_for(profile)
        with self._lock.write():
            store.write(name, doc)

    def has_entity(self, profile: str | None, name: str) -> bool:
        validate_name(name)
        store = self.store_for(profile)
        with self._lock.read():
            return store.exists(name)


__all__ = [
    "ChangeAction",
    "EntityNotFoundError",
    "MultiFileStore",
    "SingleFileStore",
    "SubSettings",
    "SubSettingsConfig",
    "SubSettingsMode",
]
