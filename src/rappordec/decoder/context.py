"""
Per-run state threaded through the decode pipeline.

Responsibilities
  - Hold the inputs of one decode run (reports, parameter set, hyperparameters).
  - Collect the intermediate results written by each stage.
  - Track the pipeline state and the error of a failed run.

Usage Context
  - Built once per decode call by DecoderService.build_context (or by hand),
    mutated in place by each stage and discarded after rendering.

Limitations
  - Never share one context between concurrent decode runs.
"""
# 说明：在解码流水线各阶段之间传递的单次运行状态容器。
# 职责：
# - 保存输入：报告列表、参数集、分箱配置与 lambda 候选
# - 保存各阶段写入的中间结果：比特计数、期望真实计数、分箱索引、设计矩阵、回归系数与概率
# - 记录流水线状态与失败时的原始异常

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from rappordec.core.utils.performance import Deadline
from rappordec.types import ParameterSet, Report


class PipelineState(str, enum.Enum):
    PENDING = "pending"
    AGGREGATED = "aggregated"
    BINNED = "binned"
    REGRESSED = "regressed"
    REFINED = "refined"
    FAILED = "failed"


@dataclass
class DecodeContext:
    """
    Mutable state of a single decode run.

    - Configuration
      - reports: Cohort being decoded.
      - parameter_set: Randomization constants (k, h, f, p, q).
      - start_range / range_iterator / max_range: Candidate bins ``[start, max)`` of width ``range_iterator``.
      - lambdas: Ordered candidate regularization strengths.
      - deadline: Optional deadline checked between stages and fits.

    - Behavior
      - Stages fill ``bit_counts``, ``expected_true_counts``, ``bin_map``,
        ``design_matrix``, ``coefficients`` and ``probabilities`` in that order.
      - ``coefficients`` keep their sign; only rendered tables are clamped.
    """

    reports: Sequence[Report]
    parameter_set: ParameterSet
    start_range: int
    range_iterator: int
    max_range: int
    lambdas: Sequence[float]
    deadline: Optional[Deadline] = None

    bit_counts: Optional[np.ndarray] = None
    expected_true_counts: Optional[np.ndarray] = None
    bin_map: Dict[str, Tuple[int, ...]] = field(default_factory=dict)
    design_matrix: Optional[np.ndarray] = None
    coefficients: Optional[np.ndarray] = None
    selected_lambda: Optional[float] = None
    selected_mse: Optional[float] = None
    probabilities: Optional[np.ndarray] = None
    final_class_counts: Optional[np.ndarray] = None

    state: PipelineState = PipelineState.PENDING
    error: Optional[BaseException] = None

    @property
    def message_bit_size(self) -> int:
        return self.parameter_set.k

    @property
    def cohort_size(self) -> int:
        return len(self.reports)

    @property
    def bin_count(self) -> int:
        # 区间 [start, max) 按宽度向上取整得到的分箱个数
        span = self.max_range - self.start_range
        if span <= 0:
            return 0
        return -(-span // self.range_iterator)
