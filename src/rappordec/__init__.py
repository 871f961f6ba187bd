"""Decoder for RAPPOR-style randomized response reports over binned numeric attributes."""

from __future__ import annotations

from .decoder import DecodeContext, DecoderService, PipelineState, build_probability_table, calculate_max_range
from .exceptions import (
    DeadlineExceededError,
    DecoderError,
    DimensionMismatchError,
    DivisionUndefinedError,
    ModelFittingError,
    ValidationError,
)
from .parameters import ParameterMode, ParameterService
from .types import HyperParameters, ParameterSet, Report, reports_from_payload

__version__ = "0.1.0"

__all__ = [
    "DeadlineExceededError",
    "DecodeContext",
    "DecoderError",
    "DecoderService",
    "DimensionMismatchError",
    "DivisionUndefinedError",
    "HyperParameters",
    "ModelFittingError",
    "ParameterMode",
    "ParameterService",
    "ParameterSet",
    "PipelineState",
    "Report",
    "ValidationError",
    "build_probability_table",
    "calculate_max_range",
    "reports_from_payload",
]
