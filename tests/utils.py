from __future__ import annotations

from pathlib import Path
from typing import Any

from pyrcman import (
    MappingEnvSource,
    MemoryBackend,
    Schema,
    SettingMetadata,
    SettingsConfig,
    SettingsManager,
)


def demo_schema() -> Schema:
    return Schema(
        {
            "ui.theme": SettingMetadata.select("light", ["light", "dark", "system"]),
            "ui.font_size": SettingMetadata.integer(12, min=8, max=32, requires_restart=True),
            "ui.scale": SettingMetadata.number(1.0, min=0.5, max=3.0),
            "general.username": SettingMetadata.string(
                "", pattern=r"[a-z0-9_]*", pattern_error="lowercase letters, digits and _ only"
            ),
            "general.tray": SettingMetadata.boolean(True),
            "general.tags": SettingMetadata("list", []),
            "api.token": SettingMetadata.password(""),
            "api.retries": SettingMetadata("integer", 3, secret=True),
        }
    )


def make_manager(root: Path, **overrides: Any) -> SettingsManager:
    """Build a manager rooted at *root* with in-memory secrets and env."""
    kwargs: dict[str, Any] = {
        "app_name": "demo",
        "schema": demo_schema(),
        "config_dir": root,
        "credentials": MemoryBackend(),
        "env_prefix": "DEMO",
        "env_source": MappingEnvSource(),
    }
    kwargs.update(overrides)
    return SettingsManager(SettingsConfig(**kwargs))


def remote_schema() -> Schema:
    return Schema(
        {
            "type": SettingMetadata.select("sftp", ["sftp", "s3", "drive"]),
            "host": SettingMetadata.string(),
            "port": SettingMetadata.integer(22, min=1, max=65535),
            "auth.user": SettingMetadata.string(),
            "auth.password": SettingMetadata.password(),
        },
        categorized=False,
    )
