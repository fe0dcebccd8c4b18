"""Configuration management for mail_dispatch."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from .exceptions import ConfigurationError
from .models import TransportConfig
from .validators import split_address_list


class SmtpConfig(BaseModel):
    """Default SMTP transport configuration."""

    host: str = Field("localhost", description="SMTP server host")
    port: int = Field(587, description="SMTP server port")
    username: Optional[str] = None
    password: Optional[str] = None
    use_ssl: bool = Field(True, description="STARTTLS, or implicit TLS on port 465")
    timeout_seconds: int = Field(30, description="Per-attempt connection timeout")
    from_email: Optional[str] = None
    from_name: Optional[str] = Field("Bulk Mail Sender", description="Sender display name")
    always_cc: List[str] = Field(default_factory=list, description="Addresses copied on every message")

    @field_validator("always_cc", mode="before")
    @classmethod
    def _split_always_cc(cls, value: Any) -> Any:
        if isinstance(value, str):
            return split_address_list(value)
        return value

    def to_transport_config(self) -> TransportConfig:
        return TransportConfig(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            use_ssl=self.use_ssl,
            timeout_seconds=self.timeout_seconds,
            from_email=self.from_email,
            from_name=self.from_name,
            always_cc=tuple(self.always_cc),
        )

    @classmethod
    def from_transport_config(cls, config: TransportConfig) -> "SmtpConfig":
        return cls(**config.to_dict())


class WorkerConfig(BaseModel):
    """Dispatch worker configuration."""

    poll_interval: float = Field(0.5, gt=0, description="Seconds to wait when the queue is empty")
    max_attempts: int = Field(3, ge=1, description="Delivery attempts per group")
    backoff_factor: float = Field(1.0, ge=0, description="Multiplier for the 2**attempt second backoff")
    error_pause: float = Field(1.0, ge=0, description="Seconds to pause after an unexpected loop error")


class StorageConfig(BaseModel):
    """Local storage locations."""

    settings_file: str = Field("App_Data/smtp-settings.json", description="Saved SMTP settings")
    extraction_dir: str = Field("App_Data/extracted", description="Where uploaded archives are extracted")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field("INFO", description="Logging level")
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )
    file_path: Optional[str] = Field(None, description="Path to log file")
    max_file_size: int = Field(10 * 1024 * 1024, description="Maximum log file size in bytes")
    backup_count: int = Field(5, description="Number of backup log files to keep")
    console_output: bool = Field(True, description="Enable console logging")


class Settings(BaseSettings):
    """Main application settings."""

    app_name: str = Field("mail-dispatch", description="Application name")
    debug: bool = Field(False, description="Enable debug mode")

    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="MAIL_DISPATCH_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Environment variables override values passed in from a config file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _load_config_file(config_file: Path) -> Dict[str, Any]:
    """Load configuration from YAML or JSON file."""
    if not config_file.exists():
        return {}

    with open(config_file, 'r') as f:
        if config_file.suffix.lower() in ['.yaml', '.yml']:
            data = yaml.safe_load(f) or {}
        elif config_file.suffix.lower() == '.json':
            data = json.load(f)
        else:
            raise ConfigurationError(f"Unsupported config file format: {config_file.suffix}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a mapping")
    return data


def load_settings(
    config_dir: Optional[Path] = None,
    env_file: Optional[str] = None,
    config_file: Optional[str] = None
) -> Settings:
    """
    Load application settings from multiple sources.

    Sources in order of precedence (later sources override earlier):
    1. Default values
    2. Configuration file (YAML/JSON)
    3. Environment file (.env)
    4. Environment variables

    Args:
        config_dir: Directory containing config files (default: current directory)
        env_file: Path to environment file (default: .env in config_dir)
        config_file: Path to configuration file (default: config.yaml in config_dir)

    Returns:
        Loaded settings instance
    """
    if config_dir is None:
        config_dir = Path.cwd()
    config_dir = Path(config_dir)

    env_path = Path(env_file) if env_file else config_dir / ".env"
    config_path = Path(config_file) if config_file else config_dir / "config.yaml"

    # load_dotenv never overrides variables already set in the process
    if env_path.exists():
        load_dotenv(env_path)

    try:
        file_config = _load_config_file(config_path)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read config file {config_path}: {e}", cause=e)

    try:
        return Settings(**file_config)
    except ValidationError as e:
        raise ConfigurationError(f"Failed to load configuration: {e}", cause=e)
