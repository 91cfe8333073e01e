from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .backends import get_backend_for_path
from .cache import MergedSnapshot, SettingsCache
from .config import SettingsConfig
from .credentials import CredentialManager
from .document import clone, get_path, has_path, remove_path, set_path
from .env import env_var_name, parse_env_value
from .errors import (
    ConfigError,
    DocumentNotFoundError,
    InvalidSettingValueError,
    NotFoundError,
    ProfilesNotEnabledError,
    TypeMismatchError,
)
from .events import ChangeCallback, EventManager, Validator
from .migration import migrate_document
from .profiles import ProfileEvent, ProfileEventKind, ProfileManager
from .schema import SettingMetadata
from .sub_settings import SubSettings, SubSettingsConfig
from .sync import RWLock

if TYPE_CHECKING:
    from .backup import (
        BackupAnalysis,
        BackupOptions,
        ExportCategory,
        ExternalConfig,
        RestoreOptions,
        RestoreResult,
    )

logger = logging.getLogger("pyrcman")

_UNSET = object()


class SettingsManager:
    """Persisted settings for one application.

    Values resolve env override > credential store > stored document >
    schema default.  Values equal to their default are never persisted: saving
    a default removes the stored entry instead.

    One :class:`RWLock` guards the stored document and the resolved-value
    cache.  Locks are always taken in the order profile manager, settings
    cache, root path, sub-settings store and never the other way round.
    """

    def __init__(self, config: SettingsConfig) -> None:
        self.config = config
        self.app_name = config.app_name
        self.schema = config.schema
        self.config_dir: Path = config.config_dir
        self.backend = get_backend_for_path(Path(config.settings_file))
        self.events = EventManager()
        self._cache = SettingsCache()
        self._lock = RWLock("settings", on_recover=self._cache.clear)
        self._root_lock = threading.Lock()
        self._sub_lock = threading.Lock()
        self._sub_settings: dict[str, SubSettings] = {}
        self._external: dict[str, ExternalConfig] = {}

        self.profiles: ProfileManager | None = None
        if config.profiles_enabled:
            self.profiles = ProfileManager(self.config_dir)
            self.profiles.ensure_initialized(adopt=[config.settings_file])
            self._settings_dir = self.profiles.active_path()
            self.profiles.subscribe(self._on_profile_event)
        else:
            self._settings_dir = self.config_dir

        self.credentials: CredentialManager | None = None
        if config.credentials is not None:
            profile = self.profiles.active if self.profiles is not None else None
            self.credentials = CredentialManager(config.credentials, config.credential_service, profile)

    # ----- paths -----

    @property
    def settings_path(self) -> Path:
        with self._root_lock:
            return self._settings_dir / self.config.settings_file

    def settings_path_for(self, profile: str | None) -> Path:
        if profile is None:
            return self.settings_path
        if self.profiles is None:
            raise ProfilesNotEnabledError("profiles are not enabled")
        return self.profiles.profile_path(profile) / self.config.settings_file

    def credentials_for(self, profile: str | None) -> CredentialManager | None:
        if self.credentials is None or profile is None or self.profiles is None:
            return self.credentials
        return self.credentials.for_profile(profile)

    # ----- loading and caching -----

    def _read_document(self, path: Path) -> dict[str, Any]:
        try:
            doc = self.backend.read(path)
            existed = True
        except DocumentNotFoundError:
            doc, existed = {}, False
        return migrate_document(self.backend, path, doc, self.config.migrator, persist=existed)

    def _resolve_one(self, address: str, meta: SettingMetadata, stored: dict[str, Any]) -> Any:
        if meta.secret and self.credentials is not None:
            text = self.credentials.get(address)
            if text is not None:
                return meta.decode_secret(text)
        value = get_path(stored, address, _UNSET)
        if value is not _UNSET:
            return value
        return clone(meta.default)

    def _resolve(self, stored: dict[str, Any]) -> dict[str, Any]:
        return {a: self._resolve_one(a, m, stored) for a, m in self.schema.items()}

    def _populate(self) -> None:
        # caller holds the write lock
        path = self.settings_path
        stored = self._read_document(path)
        generation = self._cache.populate(stored, self._resolve(stored))
        logger.debug("loaded %s (generation %d)", path, generation)

    def _with_cache(self, fn: Callable[[SettingsCache], Any]) -> Any:
        with self._lock.read():
            if self._cache.loaded:
                return fn(self._cache)
        with self._lock.write():
            if not self._cache.loaded:
                self._populate()
            return fn(self._cache)

    def load(self) -> dict[str, Any]:
        """(Re)load the document from disk, running the migrator once."""
        with self._lock.write():
            self._populate()
            return clone(self._cache.stored)

    def stored_document(self, profile: str | None = None) -> dict[str, Any]:
        """Copy of the persisted document (no defaults, env or secrets applied)."""
        if profile is None or profile == self.active_profile:
            return clone(self._with_cache(lambda c: c.stored))
        return self._read_document(self.settings_path_for(profile))

    def invalidate_cache(self) -> None:
        with self._lock.write():
            self._cache.clear()

    @property
    def generation(self) -> int:
        return self._cache.generation.value

    def snapshot(self) -> MergedSnapshot:
        values, generation = self._with_cache(lambda c: (c.values(), c.generation.value))
        return MergedSnapshot(self._merge(values), generation)

    def is_current(self, snapshot: MergedSnapshot) -> bool:
        return snapshot.generation == self.generation

    # ----- reading -----

    def _env_override(self, address: str, meta: SettingMetadata) -> tuple[bool, Any]:
        prefix = self.config.env_prefix
        if prefix is None:
            return False, None
        if meta.secret and not self.config.env_overrides_secrets:
            return False, None
        category, key = address.split(".", 1)
        raw = self.config.env_source.lookup(env_var_name(prefix, category, key))
        if raw is None:
            return False, None
        return True, parse_env_value(raw)

    def _merge(self, values: dict[str, Any]) -> dict[str, dict[str, Any]]:
        out: dict[str, dict[str, Any]] = {}
        for address, meta in self.schema.items():
            found, env = self._env_override(address, meta)
            category, key = address.split(".", 1)
            out.setdefault(category, {})[key] = env if found else clone(values[address])
        return out

    def get_value(self, address: str) -> Any:
        meta = self.schema.get(address)
        found, value = self._env_override(address, meta)
        if found:
            return value
        return clone(self._with_cache(lambda c: c.value(address)))

    def get(self, category: str, key: str) -> Any:
        return self.get_value(f"{category}.{key}")

    def get_all(self) -> dict[str, dict[str, Any]]:
        return self._merge(self._with_cache(lambda c: c.values()))

    def get_typed(self, address: str, type_: type | Callable[[Any], Any]) -> Any:
        """Return the value at *address* converted to *type_*.

        ``TypeMismatchError`` is raised if the value cannot be interpreted as
        the requested type.
        """
        val = self.get_value(address)
        name = getattr(type_, "__name__", repr(type_))
        if type_ is bool:
            return self._as_bool(address, val)
        if type_ is int:
            return self._as_int(address, val)
        if type_ is float:
            if isinstance(val, int | float) and not isinstance(val, bool):
                return float(val)
            if isinstance(val, str):
                try:
                    return float(val)
                except ValueError:
                    pass
            raise TypeMismatchError(address, "float")
        if type_ in (str, list, dict):
            if isinstance(val, type_):
                return val
            raise TypeMismatchError(address, name)
        try:
            return type_(val)
        except (TypeError, ValueError, KeyError) as exc:
            raise TypeMismatchError(address, name) from exc

    @staticmethod
    def _as_int(address: str, val: Any) -> int:
        if isinstance(val, bool):
            raise TypeMismatchError(address, "int")
        if isinstance(val, int):
            return val
        if isinstance(val, float) and val.is_integer():
            return int(val)
        if isinstance(val, str):
            try:
                return int(float(val)) if "." in val else int(val)
            except ValueError:
                pass
        raise TypeMismatchError(address, "int")

    @staticmethod
    def _as_bool(address: str, val: Any) -> bool:
        if isinstance(val, bool):
            return val
        if isinstance(val, int) and val in {0, 1}:
            return bool(val)
        if isinstance(val, str):
            lower = val.lower()
            if lower in {"true", "1"}:
                return True
            if lower in {"false", "0"}:
                return False
        raise TypeMismatchError(address, "bool")

    def get_int(self, address: str) -> int:
        return self.get_typed(address, int)

    def get_float(self, address: str) -> float:
        return self.get_typed(address, float)

    def get_bool(self, address: str) -> bool:
        return self.get_typed(address, bool)

    def get_str(self, address: str) -> str:
        return self.get_typed(address, str)

    def requires_restart(self, address: str) -> bool:
        return self.schema.get(address).requires_restart

    # ----- writing -----

    def _check(self, address: str, meta: SettingMetadata, value: Any) -> None:
        meta.validate(value, address)
        try:
            self.events.validate(address, value)
        except InvalidSettingValueError:
            raise
        except ValueError as exc:
            raise InvalidSettingValueError(address, str(exc)) from exc

    def save(self, category: str, key: str, value: Any) -> None:
        """Persist *value* for ``category.key``.

        Saving the schema default removes the stored (or secret) entry.
        """
        address = f"{category}.{key}"
        meta = self.schema.get(address)
        self._check(address, meta, value)
        is_default = value == meta.default
        with self._lock.write():
            if not self._cache.loaded:
                self._populate()
            old = self._cache.value(address)
            stored = self._cache.stored
            new_stored = stored
            if meta.secret:
                if is_default:
                    self.credentials.remove(address)
                else:
                    self.credentials.store(address, meta.encode_secret(value))
                if has_path(stored, address):
                    new_stored = clone(stored)
                    remove_path(new_stored, address)
            else:
                new_stored = clone(stored)
                if is_default:
                    remove_path(new_stored, address)
                else:
                    set_path(new_stored, address, clone(value))
            if new_stored != stored:
                self.backend.write(self.settings_path, new_stored)
            self._cache.update(address, new_stored, clone(meta.default) if is_default else clone(value))
        if old != value:
            self.events.notify(address, old, value)

    def reset(self, category: str, key: str) -> None:
        self.save(category, key, self.schema.get(f"{category}.{key}").default)

    def reset_all(self) -> None:
        """Remove every stored and secret value, reverting to defaults."""
        with self._lock.write():
            if not self._cache.loaded:
                self._populate()
            before = self._cache.values()
            if self.credentials is not None:
                for address in self.schema.secret_addresses():
                    self.credentials.remove(address)
            path = self.settings_path
            if self._cache.stored or self.backend.exists(path):
                self.backend.write(path, {})
            self._cache.populate({}, self._resolve({}))
            after = self._cache.values()
        for address, old in before.items():
            if old != after[address]:
                self.events.notify(address, old, after[address])

    # ----- events -----

    def on_change(self, callback: ChangeCallback) -> None:
        self.events.on_change(callback)

    def watch(self, address: str, callback: ChangeCallback) -> None:
        self.schema.get(address)
        self.events.watch(address, callback)

    def unwatch(self, address: str) -> None:
        self.events.unwatch(address)

    def add_validator(self, address: str, validator: Validator) -> None:
        self.schema.get(address)
        self.events.add_validator(address, validator)

    # ----- sub-settings -----

    def register_sub_settings(self, config: SubSettingsConfig) -> SubSettings:
        if config.profiles_enabled and self.profiles is None:
            raise ConfigError(f"{config.name}: profile-scoped sub-settings need profiles_enabled")
        creds = None
        if self.credentials is not None:
            creds = self.credentials if config.profiles_enabled else self.credentials.for_profile(None)
        with self._sub_lock:
            if config.name in self._sub_settings:
                raise ConfigError(f"sub-settings {config.name!r} already registered")
            sub = SubSettings(config, self.config_dir, profiles=self.profiles, credentials=creds)
            self._sub_settings[config.name] = sub
        return sub

    def sub_settings(self, name: str) -> SubSettings:
        with self._sub_lock:
            try:
                return self._sub_settings[name]
            except KeyError:
                raise NotFoundError(f"sub-settings {name!r} not registered") from None

    def list_sub_settings(self) -> list[str]:
        with self._sub_lock:
            return list(self._sub_settings)

    def _subs(self) -> list[SubSettings]:
        with self._sub_lock:
            return list(self._sub_settings.values())

    # ----- profiles -----

    def _require_profiles(self) -> ProfileManager:
        if self.profiles is None:
            raise ProfilesNotEnabledError("profiles are not enabled")
        return self.profiles

    @property
    def active_profile(self) -> str | None:
        return self.profiles.active if self.profiles is not None else None

    def list_profiles(self) -> list[str]:
        return self._require_profiles().list()

    def create_profile(self, name: str) -> Path:
        return self._require_profiles().create(name)

    def switch_profile(self, name: str) -> None:
        """Activate *name*; every cache is re-rooted before this returns."""
        self._require_profiles().switch(name)

    def _on_profile_event(self, event: ProfileEvent) -> None:
        # runs after the profile manager released its lock
        if event.kind is ProfileEventKind.SWITCHED:
            self._reroot()
        elif event.kind is ProfileEventKind.RENAMED and event.name == self.profiles.active:
            self._reroot()

    def _reroot(self) -> None:
        pm = self._require_profiles()
        active = pm.active
        new_dir = pm.profile_path(active)
        # root, credential namespace and cache change together so a writer
        # never pairs one profile's cached document with another's path
        with self._lock.write():
            with self._root_lock:
                self._settings_dir = new_dir
            if self.credentials is not None:
                self.credentials.set_profile(active)
            self._cache.clear()
        for sub in self._subs():
            if sub.profiles is not None:
                sub.refresh_root()
        logger.debug("settings re-rooted at %s", new_dir)

    def rename_profile(self, old: str, new: str) -> None:
        pm = self._require_profiles()
        keys = self._profile_secret_keys(old)
        pm.rename(old, new)
        self._move_secrets(keys, old, new, keep_source=False)
        if pm.active == new:
            # secrets moved after the rename event re-rooted the cache
            self.invalidate_cache()

    def duplicate_profile(self, source: str, target: str) -> Path:
        pm = self._require_profiles()
        path = pm.duplicate(source, target)
        self._move_secrets(self._profile_secret_keys(source), source, target, keep_source=True)
        return path

    def delete_profile(self, name: str) -> None:
        pm = self._require_profiles()
        keys = self._profile_secret_keys(name)
        pm.delete(name)
        creds = self.credentials_for(name)
        if creds is not None:
            for key in keys:
                creds.remove(key)

    def _profile_secret_keys(self, profile: str) -> list[str]:
        if self.credentials is None:
            return []
        keys = list(self.schema.secret_addresses())
        for sub in self._subs():
            if sub.profiles is None or not sub.secret_fields:
                continue
            for entity in sub.store_for(profile).names():
                keys.extend(sub.secret_key(entity, f) for f in sub.secret_fields)
        return keys

    def _move_secrets(self, keys: list[str], source: str, target: str, *, keep_source: bool) -> None:
        if self.credentials is None:
            return
        src = self.credentials.for_profile(source)
        dst = self.credentials.for_profile(target)
        for key in keys:
            text = src.get(key)
            if text is None:
                continue
            dst.store(key, text)
            if not keep_source:
                src.remove(key)

    # ----- backup / restore -----

    def register_external_config(self, config: ExternalConfig) -> None:
        with self._sub_lock:
            self._external[config.id] = config

    def external_configs(self) -> list[ExternalConfig]:
        with self._sub_lock:
            return list(self._external.values())

    def get_export_categories(self) -> list[ExportCategory]:
        from .backup import get_export_categories

        return get_export_categories(self)

    def create_backup(self, options: BackupOptions) -> Path:
        from .backup import create_backup

        return create_backup(self, options)

    def analyze_backup(self, path: Path | str) -> BackupAnalysis:
        from .backup import analyze_backup

        return analyze_backup(path)

    def restore_backup(self, options: RestoreOptions) -> RestoreResult:
        from .backup import restore_backup

        return restore_backup(self, options)
