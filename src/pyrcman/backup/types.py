from __future__ import annotations

import enum
from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from ..errors import ConfigError, InvalidBackupError

MANIFEST_VERSION = 1
SUPPORTED_VERSIONS = range(1, MANIFEST_VERSION + 1)
BACKUP_EXTENSION = ".rcman"
MANIFEST_NAME = "manifest.json"
DATA_PREFIX = "data/"

ProgressCallback = Callable[[int, int], None]


class ExportType(enum.Enum):
    FULL = "full"
    SETTINGS_ONLY = "settings_only"
    SINGLE = "single"


class SecretPolicy(enum.Enum):
    """Whether credential-store values are written into a backup."""

    EXCLUDE = "exclude"
    ENCRYPTED_ONLY = "encrypted_only"
    INCLUDE = "include"


class EntryKind(enum.Enum):
    SETTINGS = "settings"
    SUB_SETTINGS = "sub_settings"
    EXTERNAL = "external"
    SECRETS = "secrets"


@dataclass(frozen=True)
class ExternalConfig:
    """A file or directory owned by another component, included in backups."""

    id: str
    path: Path
    display_name: str = ""
    description: str = ""
    is_sensitive: bool = False
    optional: bool = True
    is_directory: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))
        if not self.id or "/" in self.id or "\\" in self.id:
            raise ConfigError(f"invalid external config id: {self.id!r}")


@dataclass(frozen=True)
class ExportCategory:
    id: str
    name: str
    kind: str
    description: str = ""
    optional: bool = True


@dataclass(frozen=True)
class BackupOptions:
    """What to put into a backup.

    ``None`` for a selection means "everything registered"; an empty
    sequence means "nothing".  Without ``output_dir`` backups go to the
    platform data directory of the application.
    """

    output_dir: Path | None = None
    export_type: ExportType = ExportType.FULL
    password: str | None = None
    user_note: str | None = None
    include_settings: bool = True
    include_sub_settings: Sequence[str] | None = None
    include_sub_settings_items: Mapping[str, Sequence[str]] = field(default_factory=dict)
    include_profiles: Sequence[str] | None = None
    include_external_configs: Sequence[str] | None = None
    secret_policy: SecretPolicy = SecretPolicy.EXCLUDE
    filename_suffix: str | None = None
    on_progress: ProgressCallback | None = None

    def __post_init__(self) -> None:
        if self.output_dir is not None:
            object.__setattr__(self, "output_dir", Path(self.output_dir))
        if self.password == "":
            raise ConfigError("password cannot be empty")
        if self.export_type is ExportType.SINGLE:
            if self.include_sub_settings is None or len(self.include_sub_settings) != 1:
                raise ConfigError("single exports need exactly one sub-settings category")

    @property
    def encrypted(self) -> bool:
        return self.password is not None

    def includes_secrets(self) -> bool:
        if self.secret_policy is SecretPolicy.INCLUDE:
            return True
        return self.secret_policy is SecretPolicy.ENCRYPTED_ONLY and self.encrypted


@dataclass(frozen=True)
class RestoreOptions:
    backup_path: Path
    password: str | None = None
    restore_settings: bool = True
    restore_sub_settings: Sequence[str] | None = None
    restore_profiles: Sequence[str] | None = None
    restore_external_configs: bool = True
    restore_secrets: bool = True
    overwrite: bool = False
    dry_run: bool = False
    verify_checksum: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "backup_path", Path(self.backup_path))


@dataclass(frozen=True)
class ManifestEntry:
    path: str
    kind: EntryKind
    size: int
    sha256: str
    stored_sha256: str
    profile: str | None = None
    category: str | None = None
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ManifestEntry:
        return cls(
            path=data["path"],
            kind=EntryKind(data["kind"]),
            size=int(data["size"]),
            sha256=data["sha256"],
            stored_sha256=data["stored_sha256"],
            profile=data.get("profile"),
            category=data.get("category"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class BackupManifest:
    """Plaintext description of a container; never modified after creation."""

    version: int
    app_name: str
    app_version: str
    created_at: str
    export_type: ExportType
    encrypted: bool
    user_note: str | None
    contents: dict[str, Any]
    entries: tuple[ManifestEntry, ...]
    encryption: dict[str, Any] | None = None
    integrity: dict[str, Any] = field(default_factory=dict)

    @property
    def requires_password(self) -> bool:
        return self.encrypted

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "backup": {
                "app_name": self.app_name,
                "app_version": self.app_version,
                "created_at": self.created_at,
                "export_type": self.export_type.value,
                "encrypted": self.encrypted,
                "user_note": self.user_note,
            },
            "contents": self.contents,
            "encryption": self.encryption,
            "integrity": self.integrity,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BackupManifest:
        try:
            info = data["backup"]
            return cls(
                version=int(data["version"]),
                app_name=info["app_name"],
                app_version=info.get("app_version", ""),
                created_at=info["created_at"],
                export_type=ExportType(info.get("export_type", "full")),
                encrypted=bool(info.get("encrypted", False)),
                user_note=info.get("user_note"),
                contents=dict(data.get("contents", {})),
                entries=tuple(ManifestEntry.from_dict(e) for e in data.get("entries", [])),
                encryption=data.get("encryption"),
                integrity=dict(data.get("integrity", {})),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidBackupError(f"malformed manifest: {exc}") from exc


@dataclass
class BackupAnalysis:
    manifest: BackupManifest
    is_valid: bool
    requires_password: bool
    warnings: list[str] = field(default_factory=list)


@dataclass
class RestoreResult:
    restored_settings: list[str] = field(default_factory=list)
    restored_sub_settings: dict[str, list[str]] = field(default_factory=dict)
    restored_external: list[str] = field(default_factory=list)
    restored_secrets: int = 0
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total(self) -> int:
        return (
            len(self.restored_settings)
            + sum(len(v) for v in self.restored_sub_settings.values())
            + len(self.restored_external)
            + self.restored_secrets
        )

    @property
    def has_changes(self) -> bool:
        return self.total > 0
