"""
Configuration management for the audio category subsystem.

This module handles:
- Database path configuration
- Environment-specific configuration (development vs. production)
- Query cache settings (TTL, size, slow-query threshold)
- Diagnostic health-score penalties
- Compatibility sync settings

Every tunable can be overridden with an environment variable carrying the
``AUDIO_CATEGORIES_`` prefix, e.g. ``AUDIO_CATEGORIES_CACHE_TTL_SECONDS=60``.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_EXECUTION_LOG_SIZE,
    DEFAULT_HEALTH_PENALTIES,
    DEFAULT_SLOW_QUERY_LOG_SIZE,
    DEFAULT_SLOW_QUERY_THRESHOLD_MS,
    DEFAULT_SYNC_BATCH_SIZE,
    ENV_PREFIX,
    UNCATEGORIZED_LABEL,
)

logger = logging.getLogger(__name__)


def _env(name: str) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}{name}")


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {ENV_PREFIX}{name}={raw!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {ENV_PREFIX}{name}={raw!r}, using {default}")
        return default


class Config:
    """
    Application configuration manager.

    Handles database location plus the tunables of the query cache,
    the consistency diagnostics and the compatibility sync engine.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        # Determine base directory
        override_dir = _env("DATA_DIR")
        if override_dir:
            self._base_dir = Path(override_dir)
        elif environment == "development":
            self._base_dir = self._get_project_data_dir()
        else:
            self._base_dir = self._get_user_data_dir()

        self._database_dir = self._base_dir
        self._database_path = self._database_dir / DATABASE_FILENAME
        self._database_url_override = _env("DATABASE_URL")

        # Query cache
        self.cache_ttl_seconds = _env_int("CACHE_TTL_SECONDS", DEFAULT_CACHE_TTL_SECONDS)
        self.cache_max_entries = _env_int("CACHE_MAX_ENTRIES", DEFAULT_CACHE_MAX_ENTRIES)
        self.slow_query_threshold_ms = _env_float(
            "SLOW_QUERY_THRESHOLD_MS", DEFAULT_SLOW_QUERY_THRESHOLD_MS
        )
        self.execution_log_size = _env_int("EXECUTION_LOG_SIZE", DEFAULT_EXECUTION_LOG_SIZE)
        self.slow_query_log_size = _env_int("SLOW_QUERY_LOG_SIZE", DEFAULT_SLOW_QUERY_LOG_SIZE)

        # Diagnostics
        self.health_penalties: Dict[str, int] = {
            key: _env_int(f"PENALTY_{key.upper()}", value)
            for key, value in DEFAULT_HEALTH_PENALTIES.items()
        }

        # Compatibility sync
        self.sync_batch_size = _env_int("SYNC_BATCH_SIZE", DEFAULT_SYNC_BATCH_SIZE)
        self.uncategorized_label = _env("UNCATEGORIZED_LABEL") or UNCATEGORIZED_LABEL

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """
        Get the per-user data directory for production.

        Returns:
            Path to ~/.audio_categories
        """
        return Path.home() / ".audio_categories"

    def ensure_directories(self):
        """Create the database directory if it doesn't exist."""
        self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Full path to the database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            Database URL string for SQLAlchemy
        """
        if self._database_url_override:
            return self._database_url_override
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def database_exists(self) -> bool:
        """
        Check if database file exists.

        Returns:
            True if database file exists, False otherwise
        """
        return self._database_path.exists()

    def __repr__(self) -> str:
        """String representation of config."""
        return (
            f"Config(environment='{self.environment}', " f"database_path='{self._database_path}')"
        )


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument - this prevents accidental database
    switching mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    AUDIO_CATEGORIES_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = _env("ENV") or "production"
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """
    Get the database URL.

    Returns:
        SQLAlchemy database URL string
    """
    return get_config().database_url
