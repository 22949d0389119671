"""Application settings loader from YAML configuration."""
import os
import yaml
from pathlib import Path
from typing import Optional
from dataclasses import dataclass

from paylog.utils.exceptions import ConfigError


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[3] / "config.yaml"


@dataclass
class AppSettings:
    """Application-wide settings loaded from config.yaml."""

    # App info
    app_name: str
    app_version: str

    # Logging
    log_level: str
    log_max_file_size_mb: int
    log_backup_count: int
    logs_dir: str

    # Owner of every transaction produced by this device
    owner_id: str

    # Storage
    data_dir: str
    database_file: str

    # Dedup
    dedup_retention_days: int

    # Retry
    retry_max_attempts: int
    retry_initial_delay_seconds: float
    retry_backoff_factor: float

    # Sync
    drain_interval_seconds: int
    max_concurrent_messages: int

    # Connectivity probe
    connectivity_host: str
    connectivity_port: int
    connectivity_timeout_seconds: float

    # Validation
    max_amount: float
    max_days_in_past: int
    boundary_warning_days: int
    low_confidence_threshold: float

    # Remote store (Google Sheets)
    spreadsheet_id: Optional[str] = None
    service_account_path: Optional[str] = None
    oauth_client_secrets: Optional[str] = None
    oauth_token_path: Optional[str] = None

    @property
    def database_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.database_file

    @property
    def logs_path(self) -> Path:
        return Path(self.logs_dir).expanduser()

    @property
    def remote_configured(self) -> bool:
        return bool(self.spreadsheet_id) and bool(self.service_account_path or self.oauth_client_secrets)

    @classmethod
    def load(cls, config_path: Path = None) -> "AppSettings":
        """Load settings from YAML file."""
        if config_path is None:
            env_path = os.getenv("PAYLOG_CONFIG")
            config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

        try:
            remote = config.get("remote") or {}
            return cls(
                app_name=config["app"]["name"],
                app_version=str(config["app"]["version"]),
                log_level=config["logging"]["level"],
                log_max_file_size_mb=config["logging"]["max_file_size_mb"],
                log_backup_count=config["logging"]["backup_count"],
                logs_dir=config["logging"]["dir"],
                owner_id=str(config["owner"]["id"]),
                data_dir=config["storage"]["data_dir"],
                database_file=config["storage"]["database_file"],
                dedup_retention_days=config["dedup"]["retention_days"],
                retry_max_attempts=config["retry"]["max_attempts"],
                retry_initial_delay_seconds=config["retry"]["initial_delay_seconds"],
                retry_backoff_factor=config["retry"]["backoff_factor"],
                drain_interval_seconds=config["sync"]["drain_interval_seconds"],
                max_concurrent_messages=config["sync"]["max_concurrent_messages"],
                connectivity_host=config["connectivity"]["host"],
                connectivity_port=config["connectivity"]["port"],
                connectivity_timeout_seconds=config["connectivity"]["timeout_seconds"],
                max_amount=config["validation"]["max_amount"],
                max_days_in_past=config["validation"]["max_days_in_past"],
                boundary_warning_days=config["validation"]["boundary_warning_days"],
                low_confidence_threshold=config["validation"]["low_confidence_threshold"],
                spreadsheet_id=remote.get("spreadsheet_id"),
                service_account_path=remote.get("service_account_path"),
                oauth_client_secrets=remote.get("oauth_client_secrets"),
                oauth_token_path=remote.get("oauth_token_path")
            )
        except (KeyError, TypeError) as e:
            raise ConfigError(f"Missing or malformed setting in {config_path}: {e}")

    def validate(self) -> tuple[bool, str]:
        """Validate configuration values."""
        if not self.owner_id.strip():
            return False, "Owner ID is required"

        if self.retry_max_attempts < 1:
            return False, "Retry max attempts must be at least 1"

        if self.retry_initial_delay_seconds < 0:
            return False, "Retry initial delay cannot be negative"

        if self.drain_interval_seconds < 1:
            return False, "Drain interval must be at least 1 second"

        if self.max_concurrent_messages < 1:
            return False, "At least one worker is required"

        if not 0.0 <= self.low_confidence_threshold <= 1.0:
            return False, "Low confidence threshold must be between 0 and 1"

        if self.spreadsheet_id:
            has_service_account = self.service_account_path and Path(self.service_account_path).exists()
            has_oauth = self.oauth_client_secrets and Path(self.oauth_client_secrets).exists()
            if not has_service_account and not has_oauth:
                return False, "Either service account or OAuth client secrets is required for the remote store"

        return True, "Configuration is valid"


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = AppSettings.load()
    return _settings
