"""Configuration management using environment variables."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .policies import (
    DEFAULT_COOLDOWNS,
    DEFAULT_THROTTLES,
    CooldownConfig,
    NotificationThrottleConfig,
    build_cooldown_table,
    build_throttle_table,
)

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_VALID_OUTPUT_FORMATS = ("text", "json")


class ResilienceConfigError(ValueError):
    """Raised when the resilience configuration is invalid."""


def _parse_bool(value: str | bool | None) -> bool:
    """Parse boolean value from various formats."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes", "on", "enabled")
    return bool(value)


def _getenv(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.getenv(key, default)


def _getenv_int(key: str, default: int) -> int:
    """Get integer environment variable with validation.

    Raises:
        ResilienceConfigError: If value cannot be parsed as integer
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ResilienceConfigError(
            f"Invalid integer value for {key}='{value}'. Expected integer, got: {value}"
        ) from e


def _getenv_float(key: str, default: float) -> float:
    """Get float environment variable with validation.

    Raises:
        ResilienceConfigError: If value cannot be parsed as float
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ResilienceConfigError(
            f"Invalid float value for {key}='{value}'. Expected float, got: {value}"
        ) from e


def load_environment() -> Optional[Path]:
    """Load the first .env file found in the working directory or the home directory."""
    from dotenv import load_dotenv

    for env_path in (Path(".env"), Path.home() / ".env"):
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")
            return env_path
    return None


@dataclass
class ResilienceConfig:
    """Resilience layer configuration loaded from environment variables."""

    # ========== Scheduling ==========
    flush_interval: float = field(default_factory=lambda: _getenv_float("RESILIENCE_FLUSH_INTERVAL", 2.0))
    sweep_interval: float = field(default_factory=lambda: _getenv_float("RESILIENCE_SWEEP_INTERVAL", 60.0))

    # ========== Recovery ==========
    recovery_delay: float = field(default_factory=lambda: _getenv_float("RESILIENCE_RECOVERY_DELAY", 1.0))
    max_retry_attempts: int = field(default_factory=lambda: _getenv_int("RESILIENCE_MAX_RETRY_ATTEMPTS", 3))
    base_retry_delay: float = field(default_factory=lambda: _getenv_float("RESILIENCE_BASE_RETRY_DELAY", 1.0))
    storage_max_age: float = field(default_factory=lambda: _getenv_float("RESILIENCE_STORAGE_MAX_AGE", 604800.0))
    dom_settle_delay: float = field(default_factory=lambda: _getenv_float("RESILIENCE_DOM_SETTLE_DELAY", 1.0))

    # ========== Stats ==========
    recent_errors_limit: int = field(default_factory=lambda: _getenv_int("RESILIENCE_RECENT_ERRORS_LIMIT", 100))

    # ========== Notifications ==========
    notifications_enabled: bool = field(
        default_factory=lambda: _parse_bool(_getenv("RESILIENCE_NOTIFICATIONS_ENABLED", "true"))
    )
    report_url: str = field(
        default_factory=lambda: _getenv("RESILIENCE_REPORT_URL", "https://github.com/issues/new")
    )
    locale: str = field(default_factory=lambda: _getenv("LOCALE", "en"))

    # ========== Global handlers ==========
    install_global_handlers: bool = field(
        default_factory=lambda: _parse_bool(_getenv("RESILIENCE_INSTALL_GLOBAL_HANDLERS", "false"))
    )

    # ========== Logging / UI ==========
    log_level: str = field(default_factory=lambda: _getenv("LOG_LEVEL", "INFO").upper())
    log_file: Optional[str] = field(default_factory=lambda: _getenv("LOG_FILE") or None)
    verbose: bool = field(default_factory=lambda: _parse_bool(_getenv("VERBOSE", "false")))
    output_format: str = field(default_factory=lambda: _getenv("OUTPUT_FORMAT", "text").lower())

    # ========== Policies ==========
    cooldowns: Dict[Any, CooldownConfig] = field(default_factory=lambda: dict(DEFAULT_COOLDOWNS))
    throttles: Dict[Any, NotificationThrottleConfig] = field(default_factory=lambda: dict(DEFAULT_THROTTLES))

    def __post_init__(self):
        try:
            self.cooldowns = build_cooldown_table(self.cooldowns)
            self.throttles = build_throttle_table(self.throttles)
        except ValueError as e:
            raise ResilienceConfigError(str(e)) from e
        self.validate()

    @property
    def json_output(self) -> bool:
        return self.output_format == "json"

    def validate(self) -> None:
        """Validate value ranges.

        Raises:
            ResilienceConfigError: If any setting is out of range
        """
        errors: List[str] = []
        for name in ("flush_interval", "sweep_interval"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be > 0")
        for name in ("recovery_delay", "base_retry_delay", "dom_settle_delay"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must be >= 0")
        if self.max_retry_attempts < 1:
            errors.append("max_retry_attempts must be >= 1")
        if self.recent_errors_limit < 1:
            errors.append("recent_errors_limit must be >= 1")
        if self.storage_max_age <= 0:
            errors.append("storage_max_age must be > 0")
        if self.log_level not in _VALID_LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(_VALID_LOG_LEVELS)}")
        if self.output_format not in _VALID_OUTPUT_FORMATS:
            errors.append(f"output_format must be one of {', '.join(_VALID_OUTPUT_FORMATS)}")
        if errors:
            raise ResilienceConfigError("; ".join(errors))

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a JSON-friendly dictionary."""
        data = {
            name: getattr(self, name)
            for name in self.__dataclass_fields__
            if name not in ("cooldowns", "throttles")
        }
        data["cooldowns"] = {kind.value: cfg.model_dump() for kind, cfg in self.cooldowns.items()}
        data["throttles"] = {
            f"{kind.value}_{severity.value}": cfg.model_dump()
            for (kind, severity), cfg in self.throttles.items()
        }
        return data


# Singleton instance with thread-safe initialization
_config_instance: Optional[ResilienceConfig] = None
_config_lock = threading.Lock()


def get_config() -> ResilienceConfig:
    """Get global config instance (singleton pattern, thread-safe)."""
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            # Double-check pattern to prevent race conditions
            if _config_instance is None:
                load_environment()
                _config_instance = ResilienceConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None


__all__ = [
    "CooldownConfig",
    "NotificationThrottleConfig",
    "ResilienceConfig",
    "ResilienceConfigError",
    "get_config",
    "load_environment",
    "reset_config",
]
