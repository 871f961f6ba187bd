"""
Error hierarchy for the decode pipeline.

Responsibilities
  - Define typed errors for each way a decode run can fail.
  - Keep input validation errors compatible with ParamValidationError.

Usage Context
  - Raised by the pipeline stages and propagated unchanged by DecoderService.
  - Callers map each error kind to their own response (HTTP status, retry, ...).

Limitations
  - Exceptions only carry message text and optional context attributes.
"""
# 说明：解码流水线的异常体系，区分输入校验、偏差校正不可定义、维度不匹配、模型拟合失败与超时。
# 职责：
# - ValidationError：输入报告或超参数不合法，继承 ParamValidationError 以兼容通用参数校验
# - DecoderError：流水线运行期错误的统一基类
# - DivisionUndefinedError/DimensionMismatchError/ModelFittingError/DeadlineExceededError：各阶段专用异常

from __future__ import annotations

from typing import Optional

from rappordec.core.utils.param_validation import ParamValidationError


class ValidationError(ParamValidationError):
    """
    Raised when the reports or hyperparameters of a decode run are invalid.

    - Behavior
      - Raised before any stage runs (empty cohort, bit string length != k,
        characters other than '0'/'1', empty bin range).
    """


class DecoderError(RuntimeError):
    """
    Base error type for decode pipeline failures.

    - Configuration
      - stage: Optional name of the stage that raised the error.
    """

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage


class DivisionUndefinedError(DecoderError):
    """Raised when (1 - f) * (q - p) == 0 so bias correction is undefined."""


class DimensionMismatchError(DecoderError):
    """
    Raised when the regression feature matrix and the target disagree in size.

    - Configuration
      - expected: Number of feature-matrix rows.
      - actual: Length of the target vector.
    """

    def __init__(
        self,
        expected: int,
        actual: int,
        *,
        message: Optional[str] = None,
        stage: Optional[str] = None,
    ) -> None:
        super().__init__(
            message or f"expected true counts length ({actual}) must equal feature matrix rows ({expected})",
            stage=stage,
        )
        self.expected = expected
        self.actual = actual


class ModelFittingError(DecoderError):
    """Raised when no candidate lambda produces a usable regression model."""


class DeadlineExceededError(DecoderError):
    """Raised when the decode deadline passes at a stage boundary or between fits."""
