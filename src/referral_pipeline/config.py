"""Configuration management for the referral pipeline.

Settings come from environment variables (prefix REFERRAL_), an optional
YAML file and built-in defaults, in that order of precedence.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from .ports import ConfigCollaborator

logger = logging.getLogger(__name__)

# Interest rate assumed when no configured rate is available
DEFAULT_INTEREST_RATE_PERCENT = 8.5

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ENV_PREFIX = "REFERRAL_"


class ConfigurationError(Exception):
    """Exception raised for configuration errors."""

    pass


class Settings(BaseSettings):
    """Application configuration settings.

    Attributes:
        app_name: Application name
        debug: Debug mode flag
        log_level: Logging level name used by configure_logging
        database_path: SQLite database file
        default_interest_rate_percent: Fallback rate for ICR calculation
        opportunity_id_prefix: Prefix of human-readable opportunity ids
        opportunity_id_start: Number given to the first opportunity
    """

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, case_sensitive=False)

    app_name: str = "Referral Pipeline"
    debug: bool = False
    log_level: str = "INFO"

    # Database configuration
    database_path: str = "~/.referral_pipeline/pipeline.db"

    # Scoring and numbering
    default_interest_rate_percent: float = DEFAULT_INTEREST_RATE_PERCENT
    opportunity_id_prefix: str = "CF"
    opportunity_id_start: int = 10001

    @property
    def database_url(self) -> str:
        """Get SQLAlchemy database URL.

        Returns:
            Database URL string for SQLAlchemy
        """
        expanded_path = os.path.expanduser(self.database_path)
        return f"sqlite:///{expanded_path}"

    def get_database_path(self) -> Path:
        """Get expanded database path as Path object."""
        return Path(os.path.expanduser(self.database_path))


def get_default_config_path() -> Path:
    """Default configuration file (~/.referral_pipeline/config.yaml)."""
    return Path.home() / ".referral_pipeline" / "config.yaml"


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from a YAML file, letting environment variables win.

    A missing file yields defaults plus environment overrides.

    Args:
        path: Config file (default: ~/.referral_pipeline/config.yaml)

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If the file is not valid YAML or has bad values
    """
    config_path = Path(path) if path else get_default_config_path()
    file_config: dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path) as f:
                file_config = yaml.safe_load(f) or {}
            logger.debug(f"Loaded configuration from {config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Configuration file {config_path} must be a mapping")
    else:
        logger.debug(f"Configuration file not found at {config_path}, using defaults")

    # Constructor values beat the environment in pydantic-settings, so hand
    # over only the file values the environment does not set
    overrides = {
        key: value
        for key, value in file_config.items()
        if f"{ENV_PREFIX}{key}".upper() not in {k.upper() for k in os.environ}
    }
    unknown = set(overrides) - set(Settings.model_fields)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
    try:
        return Settings(**overrides)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def configure_logging(config: Optional[Settings] = None) -> None:
    """Configure root logging from settings."""
    config = config or settings
    level = logging.DEBUG if config.debug else getattr(
        logging, config.log_level.upper(), logging.INFO
    )
    logging.basicConfig(level=level, format=LOG_FORMAT)


class StaticInterestRate(ConfigCollaborator):
    """ConfigCollaborator returning a fixed rate."""

    def __init__(self, rate_percent: float = DEFAULT_INTEREST_RATE_PERCENT):
        self.rate_percent = rate_percent

    def get_interest_rate_percent(self) -> float:
        return self.rate_percent


# Global settings instance
settings = Settings()
