"""Restoring a container into a :class:`~pyrcman.core.SettingsManager`.

Restore is checked up front: structure, password, decryption and checksums
of every selected entry, and the overwrite check all happen before the
first write.  After that entries are written one by one; a failing entry is
reported in :class:`RestoreResult` and does not undo earlier writes.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import TYPE_CHECKING, Any

from ..document import decode
from ..errors import InvalidBackupError, InvalidNameError, RcmanError, WouldOverwriteError
from ..profiles import validate_name, validate_profile_name
from ..storage import atomic_write
from .archive import ArchiveReader
from .operations import inspect_archive
from .types import EntryKind, ManifestEntry, RestoreOptions, RestoreResult

if TYPE_CHECKING:
    from ..core import SettingsManager

logger = logging.getLogger("pyrcman.backup")


def _check_entry_names(entry: ManifestEntry) -> None:
    """Reject manifest names that could escape their storage root."""
    try:
        if entry.profile is not None:
            validate_profile_name(entry.profile)
        if entry.kind is EntryKind.SUB_SETTINGS:
            validate_name(entry.category)
            validate_name(entry.name)
        elif entry.kind is EntryKind.EXTERNAL:
            validate_name(entry.name)
    except InvalidNameError as exc:
        raise InvalidBackupError(f"{entry.path}: {exc}") from exc


def _external_target(root: Path, entry: ManifestEntry) -> Path:
    """Resolve a directory member of an external config inside *root*."""
    rel = entry.category or ""
    parts = PurePosixPath(rel).parts
    if (not parts or rel.startswith("/") or "\\" in rel or PureWindowsPath(rel).drive
            or any(p in (".", "..") for p in parts)):
        raise InvalidBackupError(f"{entry.path}: unsafe path {rel!r}")
    target = root.joinpath(*parts)
    if not target.resolve().is_relative_to(root.resolve()):
        raise InvalidBackupError(f"{entry.path}: {rel!r} escapes {root}")
    return target


@dataclass
class _Step:
    label: str
    exists: Callable[[], bool]
    apply: Callable[[], None]
    record: Callable[[RestoreResult], None]
    profile: str | None = None


class _Planner:
    def __init__(self, manager: SettingsManager, options: RestoreOptions, source_active: str | None) -> None:
        self.manager = manager
        self.options = options
        self.source_active = source_active
        self.result = RestoreResult(dry_run=options.dry_run)
        self.steps: list[_Step] = []
        self.touched_subs: set[str] = set()

    # ----- profile mapping -----

    def target_profile(self, profile: str | None, scoped: bool) -> tuple[bool, str | None]:
        """Map a backup profile onto the destination.

        Unscoped destinations only receive the backup's active (or only)
        profile; scoped destinations receive profiles by name, and flat
        backups land in the destination's active profile.
        """
        if not scoped:
            if profile is None or profile == self.source_active:
                return True, None
            return False, None
        if profile is None:
            return True, self.manager.profiles.active
        return True, profile

    def wanted_profile(self, profile: str | None) -> bool:
        wanted = self.options.restore_profiles
        return wanted is None or profile is None or profile in wanted

    def skip(self, label: str, why: str) -> None:
        logger.warning("skipping %s: %s", label, why)
        self.result.skipped.append(label)

    # ----- entries -----

    def add(self, entry: ManifestEntry, payload: bytes) -> None:
        _check_entry_names(entry)
        if entry.kind is EntryKind.SETTINGS:
            self._settings(entry, payload)
        elif entry.kind is EntryKind.SUB_SETTINGS:
            self._sub_settings(entry, payload)
        elif entry.kind is EntryKind.EXTERNAL:
            self._external(entry, payload)
        elif entry.kind is EntryKind.SECRETS:
            self._secrets(entry, payload)

    def _document(self, entry: ManifestEntry, payload: bytes) -> dict[str, Any]:
        try:
            doc = decode(payload)
        except ValueError as exc:
            raise InvalidBackupError(f"{entry.path} is not a valid document: {exc}") from exc
        if not isinstance(doc, dict):
            raise InvalidBackupError(f"{entry.path} is not an object")
        return doc

    def _settings(self, entry: ManifestEntry, payload: bytes) -> None:
        manager = self.manager
        ok, profile = self.target_profile(entry.profile, manager.profiles is not None)
        label = "settings" if profile is None else f"settings[{profile}]"
        if not ok:
            self.skip(f"settings[{entry.profile}]", "destination has no profiles")
            return
        doc = self._document(entry, payload)

        def exists() -> bool:
            return manager.backend.exists(manager.settings_path_for(profile))

        def apply() -> None:
            manager.backend.write(manager.settings_path_for(profile), doc)

        self.steps.append(_Step(label, exists, apply,
                                lambda r: r.restored_settings.append(label), profile))

    def _sub_settings(self, entry: ManifestEntry, payload: bytes) -> None:
        category, name = entry.category, entry.name
        wanted = self.options.restore_sub_settings
        if wanted is not None and category not in wanted:
            return
        label = f"{category}/{name}"
        if category not in self.manager.list_sub_settings():
            self.skip(label, "sub-settings not registered")
            return
        sub = self.manager.sub_settings(category)
        ok, profile = self.target_profile(entry.profile, sub.profiles is not None)
        if not ok:
            self.skip(label, f"{category} is not profile scoped")
            return
        doc = self._document(entry, payload)
        if profile is not None:
            label = f"{label}[{profile}]"
        self.touched_subs.add(category)

        self.steps.append(_Step(
            label,
            lambda: sub.has_entity(profile, name),
            lambda: sub.import_entity(profile, name, doc),
            lambda r: r.restored_sub_settings.setdefault(category, []).append(name),
            profile,
        ))

    def _external(self, entry: ManifestEntry, payload: bytes) -> None:
        registered = {c.id: c for c in self.manager.external_configs()}
        cfg = registered.get(entry.name)
        label = f"external/{entry.name}"
        if cfg is None:
            self.skip(label, "external config not registered")
            return
        target = _external_target(cfg.path, entry) if cfg.is_directory else cfg.path
        if cfg.is_directory:
            label = f"{label}/{entry.category}"

        def record(r: RestoreResult) -> None:
            if cfg.id not in r.restored_external:
                r.restored_external.append(cfg.id)

        self.steps.append(_Step(label, target.exists, lambda: atomic_write(target, payload), record))

    def _secrets(self, entry: ManifestEntry, payload: bytes) -> None:
        if not self.options.restore_secrets:
            return
        manager = self.manager
        if manager.credentials is None:
            self.skip(entry.path, "no credential backend configured")
            return
        values = self._document(entry, payload)
        for key, text in values.items():
            if key.startswith("sub."):
                category = key.split(".")[1]
                if category not in manager.list_sub_settings():
                    self.skip(f"secret {key}", "sub-settings not registered")
                    continue
                scoped = manager.sub_settings(category).profiles is not None
            else:
                scoped = manager.profiles is not None
            ok, profile = self.target_profile(entry.profile, scoped)
            if not ok:
                continue
            creds = manager.credentials.for_profile(profile)

            def apply(creds=creds, key=key, text=text) -> None:
                creds.store(key, text)

            def record(r: RestoreResult) -> None:
                r.restored_secrets += 1

            # secrets follow their owning documents and are never an overwrite conflict
            self.steps.append(_Step(f"secret {key}", lambda: False, apply, record, profile))


def restore_backup(manager: SettingsManager, options: RestoreOptions) -> RestoreResult:
    with ArchiveReader(options.backup_path) as reader:
        manifest = reader.manifest
        problems = inspect_archive(reader, check_stored=False)
        if problems:
            raise InvalidBackupError("; ".join(problems))
        reader.unlock(options.password)
        planner = _Planner(manager, options, manifest.contents.get("active_profile"))
        selected = []
        for entry in manifest.entries:
            if entry.kind is EntryKind.SETTINGS and not options.restore_settings:
                continue
            if entry.kind is EntryKind.EXTERNAL and not options.restore_external_configs:
                continue
            if not planner.wanted_profile(entry.profile):
                continue
            selected.append(entry)
        # decrypt and verify everything before touching the destination
        payloads = [(e, reader.read_entry(e, verify=options.verify_checksum)) for e in selected]

    for entry, payload in payloads:
        planner.add(entry, payload)

    if not options.overwrite:
        for step in planner.steps:
            if step.exists():
                raise WouldOverwriteError(step.label)

    result = planner.result
    if options.dry_run:
        for step in planner.steps:
            step.record(result)
        return result

    pm = manager.profiles
    if pm is not None:
        for profile in sorted({s.profile for s in planner.steps if s.profile is not None}):
            if not pm.exists(profile):
                pm.create(profile)

    for step in planner.steps:
        try:
            step.apply()
        except RcmanError as exc:
            logger.error("restore of %s failed: %s", step.label, exc)
            result.errors.append(f"{step.label}: {exc}")
            continue
        step.record(result)

    manager.invalidate_cache()
    for category in planner.touched_subs:
        manager.sub_settings(category).invalidate()
    logger.info("restored %d entries from %s", result.total, options.backup_path)
    return result
