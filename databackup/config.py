"""Configuration management for DataBackup."""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from ruamel.yaml import YAML

from .session.types import ConflictPolicy

DEFAULT_CONFIG_PATH = Path.home() / ".config/databackup/config.yaml"


class SessionConfig(BaseModel):
    """Configuration for workflow sessions."""

    conflict_policy: ConflictPolicy = Field(
        default=ConflictPolicy.SKIP,
        description="What to do with conflicting manifest entries: fail, skip or overwrite"
    )
    require_entries: bool = Field(default=True, description="Refuse to build an empty manifest")
    max_parallel: int = Field(default=1, ge=1, description="Entries executed concurrently")
    remember_selection: bool = Field(default=True, description="Pre-seed restore sessions with the last selection")


class BackupConfig(BaseModel):
    """Configuration for privileged backup operations."""

    device_root: str = Field(
        default="/storage/emulated/0/DataBackup",
        description="Backup directory on the device"
    )
    incremental: bool = Field(default=True, description="Skip APKs whose version is already backed up")
    app_components: List[str] = Field(default=["apk", "data"], description="Parts of an app to back up")
    include_system_apps: bool = Field(default=False, description="List system apps in the catalog")


class MediaConfig(BaseModel):
    """Configuration for media directories."""

    include_paths: List[str] = Field(
        default=[
            "/storage/emulated/0/DCIM",
            "/storage/emulated/0/Pictures",
            "/storage/emulated/0/Movies",
            "/storage/emulated/0/Music",
            "/storage/emulated/0/Documents",
            "/storage/emulated/0/Download",
        ],
        description="Media directories offered for backup"
    )

    @field_validator("include_paths")
    @classmethod
    def require_absolute_paths(cls, paths: List[str]) -> List[str]:
        for path in paths:
            if not path.startswith("/") or path.rstrip("/") == "":
                raise ValueError(f"Media path must be an absolute device path: {path!r}")
        return paths


class DataBackupConfig(BaseModel):
    """Main configuration for DataBackup."""

    backup_root: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/databackup",
        description="Host directory for the snapshot index"
    )
    config_dir: Path = Field(
        default_factory=lambda: Path.home() / ".config/databackup",
        description="Configuration directory"
    )
    log_dir: Path = Field(
        default_factory=lambda: Path.home() / ".local/share/databackup/logs",
        description="Directory for session logs"
    )

    session: SessionConfig = Field(default_factory=SessionConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)

    # Runtime settings
    adb_path: str = Field(default="adb", description="Path to ADB binary")
    serial: Optional[str] = Field(default=None, description="Device serial, required with several devices")
    command_timeout: int = Field(default=600, description="Timeout for privileged commands in seconds")
    log_level: str = Field(default="INFO", description="Logging level")

    class Config:
        """Pydantic configuration."""

        validate_assignment = True


def load_config(config_path: Optional[Path] = None) -> DataBackupConfig:
    """Load configuration from file or create default."""

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        yaml = YAML(typ="safe")
        with open(config_path, "r") as f:
            data = yaml.load(f) or {}
        return DataBackupConfig(**data)

    config = DataBackupConfig()
    save_config(config, config_path)
    return config


def save_config(config: DataBackupConfig, config_path: Optional[Path] = None) -> None:
    """Save configuration to file."""

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_path.parent.mkdir(parents=True, exist_ok=True)

    yaml = YAML()
    yaml.default_flow_style = False

    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(mode="json"), f)
