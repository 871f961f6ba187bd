"""
Aggregation stage: bit counting and bias correction.

Counts, for every bit position, how many reports carry a 1 and inverts the
two-step randomized response (permanent with probability f, then
instantaneous with p / q) to estimate how many reports truly had that bit set:

    offset = p + 0.5 * f * (q - p)
    denom  = (1 - f) * (q - p)
    expected[i] = (count[i] - offset * n) / denom
"""
# 说明：解码流水线第一阶段，统计各比特位的 1 的个数，并按 RAPPOR 噪声模型做闭式偏差校正。
# 职责：
# - count_number_of_index_in_cohort：逐位统计报告中 1 的个数
# - estimate_expected_true_counts：根据 f/p/q 将观测计数还原为期望真实计数
# - aggregate：组合以上两步，q == p 时在计数前直接报错

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

from rappordec.core.utils.logging import get_logger
from rappordec.core.utils.param_validation import ParamValidationError, ensure
from rappordec.decoder.base import BasePipe
from rappordec.decoder.context import DecodeContext, PipelineState
from rappordec.exceptions import DivisionUndefinedError, ValidationError
from rappordec.rr_utils import count_ones_per_position
from rappordec.types import ParameterSet, Report

logger = get_logger(__name__)


def count_number_of_index_in_cohort(reports: Sequence[Report], message_bit_size: int) -> np.ndarray:
    """Return an int array of length k with the number of 1s at each position."""
    ensure(message_bit_size > 0, "message_bit_size must be positive", error=ValidationError)
    try:
        return count_ones_per_position((r.prr for r in reports), message_bit_size)
    except ParamValidationError as exc:
        raise ValidationError(str(exc)) from exc


def _check_bias_denominator(parameter_set: ParameterSet) -> float:
    denom = parameter_set.bias_denominator
    if denom == 0.0:
        raise DivisionUndefinedError(
            f"bias correction undefined for f={parameter_set.f}, p={parameter_set.p}, q={parameter_set.q}",
            stage="aggregation",
        )
    return denom


def estimate_expected_true_counts(
    bit_counts: Sequence[int], number_reports_in_cohort: int, parameter_set: ParameterSet
) -> np.ndarray:
    """Bias-correct observed bit counts into estimated true counts (float array, same length)."""
    ensure(number_reports_in_cohort > 0, "cohort must contain at least one report", error=ValidationError)
    denom = _check_bias_denominator(parameter_set)
    p, q, f = parameter_set.p, parameter_set.q, parameter_set.f
    offset = p + 0.5 * f * (q - p)
    counts = np.asarray(bit_counts, dtype=float)
    return (counts - offset * number_reports_in_cohort) / denom


def aggregate(
    reports: Sequence[Report], message_bit_size: int, parameter_set: ParameterSet
) -> Tuple[np.ndarray, np.ndarray]:
    # 参数集本身导致除零时无需遍历报告
    _check_bias_denominator(parameter_set)
    bit_counts = count_number_of_index_in_cohort(reports, message_bit_size)
    expected = estimate_expected_true_counts(bit_counts, len(reports), parameter_set)
    return bit_counts, expected


class AggregationPipe(BasePipe):
    """Fill ``bit_counts`` and ``expected_true_counts`` on the context."""

    completed_state = PipelineState.AGGREGATED

    def process(self, context: DecodeContext) -> DecodeContext:
        bit_counts, expected = aggregate(context.reports, context.message_bit_size, context.parameter_set)
        context.bit_counts = bit_counts
        context.expected_true_counts = expected
        logger.debug(
            "Aggregated %d reports over %d bits (max count %d)",
            context.cohort_size,
            context.message_bit_size,
            int(bit_counts.max()) if bit_counts.size else 0,
        )
        return context
