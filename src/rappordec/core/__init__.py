"""Entry point for the core library components."""

from __future__ import annotations

from .utils import (
    Deadline,
    ParamValidationError,
    RuntimeConfig,
    Timer,
    configure,
    get_config,
    get_logger,
)

__all__ = [
    "Deadline",
    "ParamValidationError",
    "RuntimeConfig",
    "Timer",
    "configure",
    "get_config",
    "get_logger",
]
