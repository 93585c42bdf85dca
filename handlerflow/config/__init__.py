"""Engine configuration loaded from environment variables."""
from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Values already present in the environment win over the .env file
load_dotenv(override=False)


def _parse_bool(value: str | bool | None) -> bool:
    """Parse boolean value from various formats."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on", "enabled")
    return bool(value)


def _parse_list(value: str | List[str] | None, delimiter: str = ",") -> List[str]:
    """Parse list value from string or return as-is if already a list."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [item.strip() for item in value.split(delimiter) if item.strip()]
    return [] if value is None else [value]


def _getenv(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.getenv(key, default)


def _getenv_int(key: str, default: int) -> int:
    """Get integer environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Parsed integer value

    Raises:
        ValueError: If value cannot be parsed as integer
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid integer value for {key}='{value}'. "
            f"Expected integer, got: {value}"
        ) from e


def _getenv_float(key: str, default: float) -> float:
    """Get float environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Parsed float value

    Raises:
        ValueError: If value cannot be parsed as float
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid float value for {key}='{value}'. "
            f"Expected float, got: {value}"
        ) from e


@dataclass
class Config:
    """Engine configuration loaded from environment variables."""

    # ========== Application Settings ==========
    app_name: str = field(default_factory=lambda: _getenv("APP_NAME", "handlerflow"))
    environment: str = field(default_factory=lambda: _getenv("ENVIRONMENT", "production"))

    # ========== Logging ==========
    log_level: str = field(default_factory=lambda: _getenv("LOG_LEVEL", "INFO").upper())
    log_format: str = field(
        default_factory=lambda: _getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    log_file: Optional[str] = field(default_factory=lambda: _getenv("LOG_FILE") or None)

    # ========== Feature Flags ==========
    enable_caching: bool = field(default_factory=lambda: _parse_bool(_getenv("ENABLE_CACHING", "true")))
    enable_validation: bool = field(default_factory=lambda: _parse_bool(_getenv("ENABLE_VALIDATION", "true")))
    enable_health_checks: bool = field(default_factory=lambda: _parse_bool(_getenv("ENABLE_HEALTH_CHECKS", "true")))
    enable_backup: bool = field(default_factory=lambda: _parse_bool(_getenv("ENABLE_BACKUP", "true")))

    # ========== Cache Settings ==========
    handler_cache_size: int = field(default_factory=lambda: _getenv_int("HANDLERFLOW_HANDLER_CACHE_SIZE", 100))
    adapter_cache_size: int = field(default_factory=lambda: _getenv_int("HANDLERFLOW_ADAPTER_CACHE_SIZE", 50))

    # ========== Request Validation ==========
    max_request_size: int = field(default_factory=lambda: _getenv_int("HANDLERFLOW_MAX_REQUEST_SIZE", 1024 * 1024))
    allowed_types: List[str] = field(
        default_factory=lambda: _parse_list(_getenv("HANDLERFLOW_ALLOWED_TYPES", ""))
    )

    # ========== Migration Settings ==========
    max_concurrent_migrations: int = field(
        default_factory=lambda: _getenv_int("HANDLERFLOW_MAX_CONCURRENT_MIGRATIONS", 3)
    )

    # ========== Timeout Settings (seconds) ==========
    migration_timeout: float = field(default_factory=lambda: _getenv_float("HANDLERFLOW_MIGRATION_TIMEOUT", 30.0))
    validation_timeout: float = field(default_factory=lambda: _getenv_float("HANDLERFLOW_VALIDATION_TIMEOUT", 10.0))
    rollback_timeout: float = field(default_factory=lambda: _getenv_float("HANDLERFLOW_ROLLBACK_TIMEOUT", 30.0))
    execution_timeout: float = field(default_factory=lambda: _getenv_float("HANDLERFLOW_EXECUTION_TIMEOUT", 300.0))

    def __post_init__(self):
        """Reject settings the engine cannot work with."""
        if self.max_concurrent_migrations < 1:
            raise ValueError("HANDLERFLOW_MAX_CONCURRENT_MIGRATIONS must be at least 1")
        if self.handler_cache_size < 1 or self.adapter_cache_size < 1:
            raise ValueError("Cache sizes must be at least 1")
        if self.max_request_size < 1:
            raise ValueError("HANDLERFLOW_MAX_REQUEST_SIZE must be positive")

    @property
    def LOG_LEVEL(self) -> str:
        """Get log level."""
        return self.log_level


# Singleton instance with thread-safe initialization
_config_instance: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get global config instance (singleton pattern, thread-safe)."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            # Double-check pattern to prevent race conditions
            if _config_instance is None:
                _config_instance = Config()
    return _config_instance


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = ["Config", "get_config", "reset_config"]
