"""
Decode pipeline orchestrator.

Responsibilities
  - Build a fresh DecodeContext per decode run from reports, a parameter set
    and hyperparameters (auto-sizing the bin range when needed).
  - Validate the cohort and run the stages in order, recording the state and
    propagating the first failure.
  - Render the result as an ordered range -> probability table.

Usage Context
  - The only entry point the I/O layer needs: ``DecoderService().decode(...)``.

Limitations
  - Runs synchronously; a Deadline is the only way to bound a run.
"""
# 说明：解码流水线的编排服务，按顺序执行聚合、分箱、回归（以及可选的再拟合）阶段。
# 职责：
# - build_context：根据参数集与超参数为每次调用构造新的上下文，必要时自动计算分箱上界
# - run_pipeline：先校验报告再依次执行各阶段，失败时记录 FAILED 状态并原样抛出异常
# - calculate_max_range：取数值属性最大值并向上取整到分箱宽度的倍数
# - build_probability_table：按区间升序输出概率表，负概率显示为 0
# 约定：
# - 服务实例本身不保存任何单次运行状态，可被并发调用

from __future__ import annotations

import math
import numbers
from typing import Dict, List, Optional, Sequence

from rappordec.core.utils.logging import get_logger
from rappordec.core.utils.performance import Deadline, Timer, check_deadline
from rappordec.decoder.aggregation import AggregationPipe
from rappordec.decoder.base import BasePipe
from rappordec.decoder.context import DecodeContext, PipelineState
from rappordec.decoder.debias import DebiasPipe, bin_label
from rappordec.decoder.regression import RefinementPipe, RegressionPipe
from rappordec.exceptions import DeadlineExceededError, ValidationError
from rappordec.types import HyperParameters, ParameterSet, Report

logger = get_logger(__name__)


def calculate_max_range(reports: Sequence[Report], range_iterator: int) -> int:
    """
    Round the largest report value up to the next multiple of ``range_iterator``.

    When ``range_iterator`` exceeds that maximum, ``range_iterator`` itself is returned.
    """
    if not reports:
        raise ValidationError("cannot size bins for an empty cohort")
    if range_iterator <= 0:
        raise ValidationError("range_iterator must be positive")
    for position, report in enumerate(reports):
        value = report.value
        if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
            raise ValidationError(f"report #{position} has non-numeric attribute value {value!r}")
    maximum = max(r.value for r in reports)
    if range_iterator > maximum:
        return range_iterator
    # 非整数属性先向上取整
    upper = -(-maximum // 1)
    remainder = upper % range_iterator
    if remainder:
        upper += range_iterator - remainder
    return int(upper)


def validate_reports(reports: Sequence[Report], message_bit_size: int) -> None:
    """Fail with ValidationError unless the cohort is non-empty and every prr is k characters of '0'/'1'."""
    if not reports:
        raise ValidationError("cohort must contain at least one report")
    for position, report in enumerate(reports):
        prr = report.prr
        if not isinstance(prr, str) or len(prr) != message_bit_size:
            length = len(prr) if isinstance(prr, str) else None
            raise ValidationError(
                f"report #{position} has bit string length {length}, configured message bit size is {message_bit_size}"
            )
        if prr.strip("01"):
            raise ValidationError(f"report #{position} bit string contains characters other than '0' and '1'")


def build_probability_table(context: DecodeContext) -> Dict[str, float]:
    """
    Map every bin label to its probability, ascending from ``start_range``.

    Negative probabilities are shown as 0; the context keeps the signed values.
    """
    if context.probabilities is None:
        raise ValidationError("context has no probabilities; run the pipeline first")
    table: Dict[str, float] = {}
    lower = context.start_range
    for probability in context.probabilities:
        upper = lower + context.range_iterator
        table[bin_label(lower, upper)] = max(float(probability), 0.0)
        lower = upper
    return table


class DecoderService:
    """
    Runs the decode stages over a per-call DecodeContext.

    - Configuration
      - refine: Append the optional RefinementPipe after regression.
      - seed: Hash family seed forwarded to DebiasPipe.
      - pipeline: Explicit stage list; overrides ``refine`` and ``seed``.

    - Behavior
      - Holds only the (stateless) stage list; every call gets its own context.
    """

    def __init__(
        self,
        *,
        refine: bool = False,
        seed: Optional[int] = None,
        pipeline: Optional[Sequence[BasePipe]] = None,
    ):
        if pipeline is not None:
            self.pipeline: List[BasePipe] = list(pipeline)
        else:
            self.pipeline = [AggregationPipe(), DebiasPipe(seed=seed), RegressionPipe()]
            if refine:
                self.pipeline.append(RefinementPipe())

    def build_context(
        self,
        reports: Sequence[Report],
        parameter_set: ParameterSet,
        hyper_parameters: Optional[HyperParameters] = None,
        *,
        deadline: Optional[Deadline] = None,
    ) -> DecodeContext:
        # 未显式给出上界时根据报告的数值属性自动计算
        hyper = (hyper_parameters or HyperParameters()).validate()
        max_range = hyper.max_range
        if max_range is None:
            max_range = calculate_max_range(reports, hyper.range_iterator)
            if max_range <= hyper.start_range:
                raise ValidationError(
                    f"derived upper bound {max_range} does not exceed start_range {hyper.start_range}"
                )
        return DecodeContext(
            reports=list(reports),
            parameter_set=parameter_set,
            start_range=hyper.start_range,
            range_iterator=hyper.range_iterator,
            max_range=max_range,
            lambdas=tuple(hyper.lambdas),
            deadline=deadline,
        )

    def run_pipeline(self, context: DecodeContext) -> DecodeContext:
        """Validate the cohort, run every stage in order and return the same context."""
        try:
            validate_reports(context.reports, context.message_bit_size)
            for pipe in self.pipeline:
                check_deadline(context.deadline, pipe.name, DeadlineExceededError)
                with Timer() as timer:
                    context = pipe.process(context)
                context.state = pipe.completed_state
                logger.debug("%s finished in %.4fs", pipe.name, timer.elapsed)
        except Exception as exc:
            context.state = PipelineState.FAILED
            context.error = exc
            logger.error("Decode pipeline failed: %s: %s", type(exc).__name__, exc)
            raise
        return context

    def decode(
        self,
        reports: Sequence[Report],
        parameter_set: ParameterSet,
        hyper_parameters: Optional[HyperParameters] = None,
        *,
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, float]:
        """Build a context, run the pipeline and render the probability table."""
        context = self.build_context(reports, parameter_set, hyper_parameters, deadline=deadline)
        return build_probability_table(self.run_pipeline(context))

    calculate_max_range = staticmethod(calculate_max_range)
    build_probability_table = staticmethod(build_probability_table)
