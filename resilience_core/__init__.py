"""Client-side resilience layer: error normalization, cooldowns, recovery and notifications."""

__version__ = "1.0.0"

from .config import ResilienceConfig, ResilienceConfigError, get_config
from .core import ResilienceCore
from .models.errors import ErrorKind, ErrorRecord, Severity
from .recovery import FallbackStrategy, RecoveryResult, RecoveryStrategy
from .rules import ErrorRule, HandleResult, HandlingStrategy

__all__ = [
    "ErrorKind",
    "ErrorRecord",
    "ErrorRule",
    "FallbackStrategy",
    "HandleResult",
    "HandlingStrategy",
    "RecoveryResult",
    "RecoveryStrategy",
    "ResilienceConfig",
    "ResilienceConfigError",
    "ResilienceCore",
    "Severity",
    "__version__",
]
