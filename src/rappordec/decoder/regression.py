"""
Regression stage: sparse selection of candidate bins.

The transposed design matrix is the feature matrix (k observations, one
feature per bin) and the bias-corrected bit counts are the target. A LASSO
model is fitted for every candidate lambda and the one with the lowest
in-sample mean squared error wins; its coefficients are the estimated number
of reports per bin. Bins with a coefficient near zero are judged empty.

Lambdas use the ``||y - Xw||^2 + lambda * ||w||_1`` scale; they are converted
to scikit-learn's ``alpha = lambda / (2 * n_samples)`` before fitting.
"""
# 说明：解码流水线第三阶段，以多个 lambda 拟合 LASSO，按样本内 MSE 选择最优模型并换算为概率。
# 职责：
# - make_frame：转置设计矩阵得到 k x bins 特征矩阵并校验与目标向量的维度
# - select_model / predict_most_likely_classes：逐个 lambda 拟合并保留 MSE 最小的模型
# - get_probability_for_class：系数除以报告数得到概率（不做归一化）
# - get_coefficient_based_matrix / predict_final_class_counts：可选的非负系数筛选 + 岭回归再拟合
# - RegressionPipe / RefinementPipe：对应的流水线阶段

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import Lasso, Ridge
from sklearn.metrics import mean_squared_error

from rappordec.core.utils.config import get_config
from rappordec.core.utils.logging import get_logger
from rappordec.core.utils.performance import Deadline, check_deadline
from rappordec.decoder.base import BasePipe
from rappordec.decoder.context import DecodeContext, PipelineState
from rappordec.exceptions import (
    DeadlineExceededError,
    DimensionMismatchError,
    ModelFittingError,
    ValidationError,
)

logger = get_logger(__name__)

REFINEMENT_RIDGE_ALPHA = 1e-3


@dataclass(frozen=True)
class LassoFit:
    """Winning LASSO model of a lambda sweep."""

    coefficients: np.ndarray
    lam: float
    mse: float


def make_frame(design_matrix: np.ndarray, expected_true_counts: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(X, y)`` with ``X = design_matrix.T`` (one row per bit position)."""
    matrix = np.asarray(design_matrix, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] == 0:
        raise ModelFittingError("design matrix must be a non-empty 2-D array", stage="regression")
    x = matrix.T
    y = np.asarray(expected_true_counts, dtype=float).ravel()
    if x.shape[0] != y.shape[0]:
        raise DimensionMismatchError(x.shape[0], y.shape[0], stage="regression")
    return x, y


def select_model(
    design_matrix: np.ndarray,
    message_bit_size: int,
    expected_true_counts: Sequence[float],
    lambdas: Sequence[float],
    *,
    deadline: Optional[Deadline] = None,
    max_iter: Optional[int] = None,
) -> LassoFit:
    """Fit one LASSO per lambda and keep the model with minimum in-sample MSE."""
    x, y = make_frame(design_matrix, expected_true_counts)
    if x.shape[0] != message_bit_size:
        raise DimensionMismatchError(
            message_bit_size,
            x.shape[0],
            message=f"design matrix has {x.shape[0]} bit columns, expected {message_bit_size}",
            stage="regression",
        )
    if len(lambdas) == 0:
        raise ModelFittingError("no candidate lambdas supplied", stage="regression")
    iterations = max_iter or get_config().lasso_max_iter
    n_samples = x.shape[0]

    best: Optional[LassoFit] = None
    for lam in lambdas:
        check_deadline(deadline, f"LASSO fit with lambda={lam}", DeadlineExceededError)
        model = Lasso(alpha=float(lam) / (2.0 * n_samples), fit_intercept=False, max_iter=iterations)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ConvergenceWarning)
            try:
                model.fit(x, y)
            except ValueError as exc:
                logger.warning("LASSO fit failed for lambda=%s: %s", lam, exc)
                continue
        if any(issubclass(w.category, ConvergenceWarning) for w in caught):
            logger.debug("LASSO did not fully converge for lambda=%s", lam)
        mse = float(mean_squared_error(y, model.predict(x)))
        if not math.isfinite(mse) or not np.all(np.isfinite(model.coef_)):
            logger.warning("Discarding non-finite LASSO model for lambda=%s", lam)
            continue
        logger.debug("lambda=%s mse=%.6g", lam, mse)
        if best is None or mse < best.mse:
            best = LassoFit(
                coefficients=np.asarray(model.coef_, dtype=float).copy(),
                lam=float(lam),
                mse=mse,
            )
    if best is None:
        raise ModelFittingError(f"no usable model for lambdas {list(lambdas)}", stage="regression")
    return best


def predict_most_likely_classes(
    design_matrix: np.ndarray,
    message_bit_size: int,
    expected_true_counts: Sequence[float],
    lambdas: Sequence[float],
    *,
    deadline: Optional[Deadline] = None,
) -> np.ndarray:
    # 仅返回最优模型的系数，每个分箱一个
    return select_model(design_matrix, message_bit_size, expected_true_counts, lambdas, deadline=deadline).coefficients


def get_probability_for_class(coefficients: Sequence[float], number_of_reports: int) -> np.ndarray:
    """Divide every coefficient by the cohort size; the result is not renormalized."""
    if number_of_reports <= 0:
        raise ValidationError("number_of_reports must be positive")
    return np.asarray(coefficients, dtype=float) / float(number_of_reports)


def get_coefficient_based_matrix(design_matrix: np.ndarray, coefficients: Sequence[float]) -> np.ndarray:
    """Keep the design-matrix rows whose coefficient is non-negative."""
    matrix = np.asarray(design_matrix, dtype=float)
    coefs = np.asarray(coefficients, dtype=float)
    if coefs.shape[0] != matrix.shape[0]:
        raise DimensionMismatchError(
            matrix.shape[0],
            coefs.shape[0],
            message=f"{coefs.shape[0]} coefficients for {matrix.shape[0]} design-matrix rows",
            stage="refinement",
        )
    return matrix[coefs >= 0]


def predict_final_class_counts(
    design_matrix: np.ndarray,
    expected_true_counts: Sequence[float],
    coefficients: Sequence[float],
    *,
    alpha: float = REFINEMENT_RIDGE_ALPHA,
) -> np.ndarray:
    """
    Refit the bins with non-negative coefficients with a (nearly) unregularized ridge model.

    Returns one count per bin; bins dropped by the filter get 0.
    """
    coefs = np.asarray(coefficients, dtype=float)
    selected = get_coefficient_based_matrix(design_matrix, coefs)
    final = np.zeros(coefs.shape[0], dtype=float)
    if selected.shape[0] == 0:
        logger.warning("No bin has a non-negative coefficient; final class counts are all zero")
        return final
    x, y = make_frame(selected, expected_true_counts)
    model = Ridge(alpha=alpha, fit_intercept=False)
    try:
        model.fit(x, y)
    except ValueError as exc:
        raise ModelFittingError(f"ridge refit failed: {exc}", stage="refinement") from exc
    final[coefs >= 0] = model.coef_
    return final


class RegressionPipe(BasePipe):
    """Fill ``coefficients`` and ``probabilities`` on the context."""

    completed_state = PipelineState.REGRESSED

    def process(self, context: DecodeContext) -> DecodeContext:
        fit = select_model(
            context.design_matrix,
            context.message_bit_size,
            context.expected_true_counts,
            context.lambdas,
            deadline=context.deadline,
        )
        context.coefficients = fit.coefficients
        context.selected_lambda = fit.lam
        context.selected_mse = fit.mse
        context.probabilities = get_probability_for_class(fit.coefficients, context.cohort_size)
        logger.info(
            "Selected lambda=%s (mse=%.6g), %d of %d bins non-zero",
            fit.lam,
            fit.mse,
            int(np.count_nonzero(fit.coefficients)),
            fit.coefficients.shape[0],
        )
        return context


class RefinementPipe(BasePipe):
    """
    Optional fourth stage: ridge refit restricted to non-negative bins.

    Writes ``final_class_counts`` and replaces ``probabilities`` with
    ``final_class_counts / n``; ``coefficients`` keep the LASSO values.
    """

    completed_state = PipelineState.REFINED

    def __init__(self, alpha: float = REFINEMENT_RIDGE_ALPHA):
        self.alpha = float(alpha)

    def process(self, context: DecodeContext) -> DecodeContext:
        if context.coefficients is None:
            raise ModelFittingError("refinement requires regression coefficients", stage="refinement")
        final = predict_final_class_counts(
            context.design_matrix,
            context.expected_true_counts,
            context.coefficients,
            alpha=self.alpha,
        )
        context.final_class_counts = final
        context.probabilities = get_probability_for_class(final, context.cohort_size)
        return context

    def get_metadata(self):
        return {"type": self.name, "alpha": self.alpha}
