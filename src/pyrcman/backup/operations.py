"""Creating and inspecting backups."""
from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

from ..document import encode
from ..errors import ConfigError, InvalidBackupError, StorageError
from ..paths import default_backup_dir
from .archive import ArchiveReader, ArchiveWriter, sha256
from .types import (
    BACKUP_EXTENSION,
    MANIFEST_VERSION,
    SUPPORTED_VERSIONS,
    BackupAnalysis,
    BackupManifest,
    BackupOptions,
    EntryKind,
    ExportCategory,
    ExportType,
    ExternalConfig,
)

if TYPE_CHECKING:
    from ..core import SettingsManager

logger = logging.getLogger("pyrcman.backup")

SETTINGS_ENTRY = "settings.json"
SECRETS_ENTRY = "secrets.json"


def scope_prefix(profile: str | None) -> str:
    return "" if profile is None else f"profiles/{profile}/"


def sub_entry_path(profile: str | None, category: str, name: str) -> str:
    return f"{scope_prefix(profile)}sub_settings/{category}/{name}.json"


@dataclass
class _Job:
    path: str
    kind: EntryKind
    produce: Callable[[], bytes]
    profile: str | None = None
    category: str | None = None
    name: str | None = None


def backup_filename(app_name: str, suffix: str | None, when: datetime) -> str:
    app = re.sub(r"[^A-Za-z0-9._-]+", "_", app_name).strip("_") or "backup"
    stamp = when.strftime("%Y%m%d_%H%M%S")
    tail = f"_{suffix}" if suffix else ""
    return f"{app}_{stamp}{tail}{BACKUP_EXTENSION}"


def _default_suffix(options: BackupOptions) -> str:
    if options.export_type is ExportType.SETTINGS_ONLY:
        return "settings"
    if options.export_type is ExportType.SINGLE:
        return options.include_sub_settings[0]
    return "full"


def _select_profiles(manager: SettingsManager, options: BackupOptions) -> list[str | None]:
    if manager.profiles is None:
        return [None]
    known = manager.list_profiles()
    if options.include_profiles is None:
        return list(known)
    missing = [p for p in options.include_profiles if p not in known]
    if missing:
        raise ConfigError(f"unknown profiles: {', '.join(missing)}")
    return list(options.include_profiles)


def _select_externals(manager: SettingsManager, options: BackupOptions) -> list[ExternalConfig]:
    if options.export_type is not ExportType.FULL:
        return []
    registered = {c.id: c for c in manager.external_configs()}
    if options.include_external_configs is None:
        return list(registered.values())
    unknown = [i for i in options.include_external_configs if i not in registered]
    if unknown:
        raise ConfigError(f"unknown external configs: {', '.join(unknown)}")
    return [registered[i] for i in options.include_external_configs]


def _external_jobs(cfg: ExternalConfig) -> list[_Job]:
    if not cfg.path.exists():
        if cfg.optional:
            logger.warning("optional external config %s missing at %s; skipped", cfg.id, cfg.path)
            return []
        raise StorageError(f"external config {cfg.id} not found at {cfg.path}")
    if not cfg.is_directory:
        return [_Job(f"external/{cfg.id}", EntryKind.EXTERNAL, cfg.path.read_bytes, name=cfg.id)]
    jobs = []
    for file in sorted(p for p in cfg.path.rglob("*") if p.is_file()):
        rel = file.relative_to(cfg.path).as_posix()
        jobs.append(_Job(f"external/{cfg.id}/{rel}", EntryKind.EXTERNAL, file.read_bytes,
                         category=rel, name=cfg.id))
    return jobs


def _plan(manager: SettingsManager, options: BackupOptions) -> tuple[list[_Job], dict]:
    profiles = _select_profiles(manager, options)
    single = options.export_type is ExportType.SINGLE
    want_settings = options.include_settings and not single
    with_secrets = options.includes_secrets() and manager.credentials is not None
    registered = manager.list_sub_settings()
    if options.export_type is ExportType.SETTINGS_ONLY:
        categories: list[str] = []
    elif options.include_sub_settings is None:
        categories = registered
    else:
        unknown = [c for c in options.include_sub_settings if c not in registered]
        if unknown:
            raise ConfigError(f"unknown sub-settings: {', '.join(unknown)}")
        categories = list(options.include_sub_settings)

    jobs: list[_Job] = []
    summary: dict[str, list[str]] = {}
    global_secrets: dict[str, str] = {}
    for profile in profiles:
        secrets: dict[str, str] = {}
        if want_settings:
            jobs.append(_Job(scope_prefix(profile) + SETTINGS_ENTRY, EntryKind.SETTINGS,
                             _settings_producer(manager, profile), profile=profile))
            if with_secrets:
                creds = manager.credentials.for_profile(profile)
                for address in manager.schema.secret_addresses():
                    text = creds.get(address)
                    if text is not None:
                        secrets[address] = text
        for category in categories:
            sub = manager.sub_settings(category)
            scoped = sub.profiles is not None
            if not scoped and profile != profiles[0]:
                continue
            sub_profile = profile if scoped else None
            docs = sub.export_entities(sub_profile, options.include_sub_settings_items.get(category))
            for name, doc in docs.items():
                jobs.append(_Job(sub_entry_path(sub_profile, category, name), EntryKind.SUB_SETTINGS,
                                 _const(encode(doc)), profile=sub_profile, category=category, name=name))
                summary.setdefault(category, []).append(name)
            if with_secrets and sub.secret_fields:
                target = secrets if scoped else global_secrets
                target.update(sub.export_secrets(sub_profile, list(docs)))
        if secrets and profile is not None:
            jobs.append(_Job(scope_prefix(profile) + SECRETS_ENTRY, EntryKind.SECRETS,
                             _const(encode(secrets)), profile=profile))
        elif secrets:
            global_secrets.update(secrets)
    if global_secrets:
        jobs.append(_Job(SECRETS_ENTRY, EntryKind.SECRETS, _const(encode(global_secrets))))

    externals = _select_externals(manager, options)
    external_ids = []
    for cfg in externals:
        found = _external_jobs(cfg)
        if found:
            external_ids.append(cfg.id)
        jobs.extend(found)

    contents = {
        "settings": want_settings,
        "sub_settings": {c: sorted(set(n)) for c, n in summary.items()},
        "profiles": [p for p in profiles if p is not None],
        "active_profile": manager.active_profile,
        "external_configs": external_ids,
        "secrets": any(j.kind is EntryKind.SECRETS for j in jobs),
    }
    return jobs, contents


def _const(data: bytes) -> Callable[[], bytes]:
    return lambda: data


def _settings_producer(manager: SettingsManager, profile: str | None) -> Callable[[], bytes]:
    return lambda: encode(manager.stored_document(profile))


def create_backup(manager: SettingsManager, options: BackupOptions) -> Path:
    """Write a backup of the selected state and return the container path."""
    jobs, contents = _plan(manager, options)
    writer = ArchiveWriter(options.password)
    total = len(jobs)
    for i, job in enumerate(jobs, 1):
        writer.add(job.path, job.produce(), job.kind, profile=job.profile,
                   category=job.category, name=job.name)
        logger.debug("backup entry %s", job.path)
        if options.on_progress is not None:
            options.on_progress(i, total)

    now = datetime.now()
    digest = hashlib.sha256("".join(e.sha256 for e in writer.entries).encode()).hexdigest()
    manifest = BackupManifest(
        version=MANIFEST_VERSION,
        app_name=manager.app_name,
        app_version=manager.config.app_version,
        created_at=now.astimezone(timezone.utc).isoformat(timespec="seconds"),
        export_type=options.export_type,
        encrypted=options.encrypted,
        user_note=options.user_note,
        contents=contents,
        entries=writer.entries,
        encryption=writer.encryption,
        integrity={
            "sha256": digest,
            "size_bytes": sum(e.size for e in writer.entries),
            "stored_size_bytes": writer.stored_size,
            "file_count": len(writer.entries),
        },
    )
    suffix = options.filename_suffix or _default_suffix(options)
    output_dir = options.output_dir or default_backup_dir(manager.app_name)
    target = output_dir / backup_filename(manager.app_name, suffix, now)
    counter = 1
    while target.exists():
        counter += 1
        target = output_dir / backup_filename(manager.app_name, f"{suffix}_{counter}", now)
    writer.finish(target, manifest)
    logger.info("created backup %s (%d entries)", target, len(jobs))
    return target


def inspect_archive(reader: ArchiveReader, *, check_stored: bool) -> list[str]:
    """Return structural problems found without decrypting anything."""
    manifest = reader.manifest
    problems = []
    if manifest.version not in SUPPORTED_VERSIONS:
        problems.append(f"unsupported manifest version {manifest.version}")
    if manifest.encrypted and not manifest.encryption:
        problems.append("encrypted backup without encryption header")
    for entry in manifest.entries:
        if not reader.has(entry):
            problems.append(f"missing entry {entry.path}")
            continue
        if check_stored:
            try:
                stored = reader.read_stored(entry)
            except InvalidBackupError as exc:
                problems.append(str(exc))
                continue
            if sha256(stored) != entry.stored_sha256:
                problems.append(f"checksum mismatch for {entry.path}")
    return problems


def analyze_backup(path: Path | str) -> BackupAnalysis:
    """Describe a container without needing its password."""
    with ArchiveReader(path) as reader:
        warnings = inspect_archive(reader, check_stored=True)
        manifest = reader.manifest
    return BackupAnalysis(
        manifest=manifest,
        is_valid=not warnings,
        requires_password=manifest.requires_password,
        warnings=warnings,
    )


def get_export_categories(manager: SettingsManager) -> list[ExportCategory]:
    out = []
    if len(manager.schema):
        out.append(ExportCategory("settings", "Settings", "settings", "Main application settings", False))
    for name in manager.list_sub_settings():
        out.append(ExportCategory(name, name, "sub_settings"))
    for cfg in manager.external_configs():
        out.append(ExportCategory(cfg.id, cfg.display_name or cfg.id, "external",
                                  cfg.description, cfg.optional))
    return out
