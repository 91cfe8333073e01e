"""Portable, optionally encrypted backups of settings state."""
from __future__ import annotations

from .operations import analyze_backup, backup_filename, create_backup, get_export_categories
from .restore import restore_backup
from .types import (
    BACKUP_EXTENSION,
    BackupAnalysis,
    BackupManifest,
    BackupOptions,
    EntryKind,
    ExportCategory,
    ExportType,
    ExternalConfig,
    ManifestEntry,
    RestoreOptions,
    RestoreResult,
    SecretPolicy,
)

__all__ = [
    "BACKUP_EXTENSION",
    "BackupAnalysis",
    "BackupManifest",
    "BackupOptions",
    "EntryKind",
    "ExportCategory",
    "ExportType",
    "ExternalConfig",
    "ManifestEntry",
    "RestoreOptions",
    "RestoreResult",
    "SecretPolicy",
    "analyze_backup",
    "backup_filename",
    "create_backup",
    "get_export_categories",
    "restore_backup",
]
