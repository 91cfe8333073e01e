from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from .backends import get_backend_for_path
from .credentials import CredentialBackend
from .env import EnvSource, OsEnvSource
from .errors import ConfigError
from .migration import Migrator
from .paths import user_config_dir
from .schema import Schema

_PREFIX_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class SettingsConfig:
    """Fully specified configuration for a :class:`~pyrcman.core.SettingsManager`.

    ``config_dir`` defaults to the platform user config directory for
    ``app_name``.  ``env_prefix=None`` disables environment overrides.
    """

    app_name: str
    schema: Schema = field(default_factory=Schema)
    app_version: str = "0.0.0"
    config_dir: Path | None = None
    settings_file: str = "settings.json"
    credentials: CredentialBackend | None = None
    credential_service: str | None = None
    env_prefix: str | None = None
    env_source: EnvSource = field(default_factory=OsEnvSource)
    env_overrides_secrets: bool = False
    profiles_enabled: bool = False
    migrator: Migrator | None = None

    def __post_init__(self) -> None:
        if not self.app_name or not self.app_name.strip():
            raise ConfigError("app_name cannot be empty")
        if not isinstance(self.schema, Schema) or not self.schema.categorized:
            raise ConfigError("schema must be a categorized Schema")
        if Path(self.settings_file).name != self.settings_file:
            raise ConfigError(f"settings_file must be a bare file name: {self.settings_file!r}")
        try:
            get_backend_for_path(Path(self.settings_file))
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        if self.env_prefix is not None and not _PREFIX_RE.match(self.env_prefix):
            raise ConfigError(f"invalid env_prefix: {self.env_prefix!r}")
        if self.schema.secret_addresses() and self.credentials is None:
            raise ConfigError("schema declares secret settings but no credential backend is configured")
        if self.config_dir is None:
            object.__setattr__(self, "config_dir", user_config_dir(self.app_name))
        else:
            object.__setattr__(self, "config_dir", Path(self.config_dir))
        if self.credential_service is None:
            object.__setattr__(self, "credential_service", self.app_name)
