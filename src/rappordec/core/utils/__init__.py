"""Shared utility helpers used across the decoder."""

from .config import (
    RuntimeConfig,
    get_config,
    configure,
)
from .logging import (
    get_logger,
    configure_logging,
    PrivacyFilter,
)
from .param_validation import (
    ensure,
    ensure_type,
    ensure_probability,
    ParamValidationError,
)
from .performance import (
    Timer,
    Deadline,
    check_deadline,
)

__all__ = [
    "RuntimeConfig",
    "get_config",
    "configure",
    "get_logger",
    "configure_logging",
    "PrivacyFilter",
    "ensure",
    "ensure_type",
    "ensure_probability",
    "ParamValidationError",
    "Timer",
    "Deadline",
    "check_deadline",
]
