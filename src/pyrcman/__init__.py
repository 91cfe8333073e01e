from .backup import (
    BackupOptions,
    ExportType,
    ExternalConfig,
    RestoreOptions,
    SecretPolicy,
    analyze_backup,
)
from .config import SettingsConfig
from .core import SettingsManager
from .credentials import CredentialManager, EncryptedFileBackend, KeyringBackend, MemoryBackend
from .env import MappingEnvSource, OsEnvSource
from .errors import RcmanError
from .profiles import DEFAULT_PROFILE, ProfileManager
from .schema import Schema, SettingMetadata
from .sub_settings import ChangeAction, SubSettings, SubSettingsConfig, SubSettingsMode

__version__ = "0.1.0"

__all__ = [
    "BackupOptions",
    "ChangeAction",
    "CredentialManager",
    "DEFAULT_PROFILE",
    "EncryptedFileBackend",
    "ExportType",
    "ExternalConfig",
    "KeyringBackend",
    "MappingEnvSource",
    "MemoryBackend",
    "OsEnvSource",
    "ProfileManager",
    "RcmanError",
    "RestoreOptions",
    "Schema",
    "SecretPolicy",
    "SettingMetadata",
    "SettingsConfig",
    "SettingsManager",
    "SubSettings",
    "SubSettingsConfig",
    "SubSettingsMode",
    "analyze_backup",
]
