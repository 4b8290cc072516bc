"""Cooldown and notification-throttle policy models with their default tables."""
from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.types import PositiveFloat, PositiveInt

from ..models.errors import ErrorKind, Severity

logger = logging.getLogger(__name__)


class CooldownConfig(BaseModel):
    """Escalating cooldown policy for one error kind."""

    model_config = ConfigDict(frozen=True)

    duration: PositiveFloat = Field(15.0, description="Base cooldown in seconds")
    max_occurrences: PositiveInt = Field(5, description="Occurrences before escalating")
    escalation_factor: float = Field(2.0, description="Multiplier applied per escalation level")
    reset_after: PositiveFloat = Field(120.0, description="Window after which counters reset")

    @field_validator("escalation_factor")
    @classmethod
    def validate_escalation_factor(cls, v: float) -> float:
        """Ensure cooldowns never shrink as a failure repeats."""
        if v < 1.0:
            raise ValueError("escalation_factor must be >= 1.0")
        return v

    def cooldown_for(self, escalation_level: int) -> float:
        """Cooldown length in seconds at the given escalation level."""
        return self.duration * self.escalation_factor ** escalation_level


class NotificationThrottleConfig(BaseModel):
    """Rate limits for user-facing notifications of one (kind, severity) pair."""

    model_config = ConfigDict(frozen=True)

    min_interval: PositiveFloat = Field(..., description="Minimum seconds between two notifications")
    max_per_hour: PositiveInt = Field(..., description="Maximum notifications per rolling hour")
    batch_delay: PositiveFloat = Field(..., description="Seconds to collect duplicates before display")

    @field_validator("max_per_hour")
    @classmethod
    def validate_max_per_hour(cls, v: int) -> int:
        if v > 3600:
            logger.warning("max_per_hour above 3600 allows more than one notification per second")
        return v


DEFAULT_COOLDOWN = CooldownConfig()

DEFAULT_COOLDOWNS: Dict[ErrorKind, CooldownConfig] = {
    ErrorKind.NETWORK: CooldownConfig(duration=30.0, max_occurrences=3, escalation_factor=2.0, reset_after=300.0),
    ErrorKind.CLIPBOARD: CooldownConfig(duration=10.0, max_occurrences=5, escalation_factor=1.5, reset_after=60.0),
    ErrorKind.PARSING: CooldownConfig(duration=15.0, max_occurrences=3, escalation_factor=2.0, reset_after=120.0),
    ErrorKind.DOM: CooldownConfig(duration=5.0, max_occurrences=10, escalation_factor=1.2, reset_after=60.0),
    ErrorKind.MEMORY: CooldownConfig(duration=60.0, max_occurrences=2, escalation_factor=3.0, reset_after=600.0),
}

ThrottleKey = Tuple[ErrorKind, Severity]

DEFAULT_THROTTLES: Dict[ThrottleKey, NotificationThrottleConfig] = {
    (ErrorKind.NETWORK, Severity.ERROR): NotificationThrottleConfig(
        min_interval=30.0, max_per_hour=10, batch_delay=5.0
    ),
    (ErrorKind.CLIPBOARD, Severity.WARNING): NotificationThrottleConfig(
        min_interval=15.0, max_per_hour=20, batch_delay=3.0
    ),
    (ErrorKind.MEMORY, Severity.CRITICAL): NotificationThrottleConfig(
        min_interval=60.0, max_per_hour=3, batch_delay=1.0
    ),
}

CooldownOverride = Union[CooldownConfig, Mapping[str, float]]
ThrottleOverride = Union[NotificationThrottleConfig, Mapping[str, float]]


def build_cooldown_table(
    overrides: Optional[Mapping[Union[ErrorKind, str], CooldownOverride]] = None,
) -> Dict[ErrorKind, CooldownConfig]:
    """Merge per-kind cooldown overrides over the defaults.

    Args:
        overrides: Mapping of kind to a CooldownConfig or a dict of fields to replace

    Returns:
        Complete cooldown table

    Raises:
        ValueError: If an override names an unknown kind or has invalid values
    """
    table = dict(DEFAULT_COOLDOWNS)
    for kind, override in (overrides or {}).items():
        kind = ErrorKind(kind)
        base = table.get(kind, DEFAULT_COOLDOWN)
        table[kind] = _merge(base, override)
    return table


def build_throttle_table(
    overrides: Optional[Mapping[Tuple[Union[ErrorKind, str], Union[Severity, str]], ThrottleOverride]] = None,
) -> Dict[ThrottleKey, NotificationThrottleConfig]:
    """Merge per-(kind, severity) throttle overrides over the defaults."""
    table = dict(DEFAULT_THROTTLES)
    for (kind, severity), override in (overrides or {}).items():
        key = (ErrorKind(kind), Severity(severity))
        if isinstance(override, NotificationThrottleConfig):
            table[key] = override
        elif key in table:
            table[key] = _merge(table[key], override)
        else:
            table[key] = NotificationThrottleConfig(**override)
    return table


def _merge(base: BaseModel, override) -> BaseModel:
    if isinstance(override, BaseModel):
        return override
    try:
        return type(base)(**{**base.model_dump(), **dict(override)})
    except ValidationError as e:
        fields = ", ".join(".".join(str(x) for x in err["loc"]) for err in e.errors())
        raise ValueError(f"Invalid {type(base).__name__} override ({fields}): {e}") from e
