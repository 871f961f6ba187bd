"""
Unit tests for the regression stage.
"""
# 说明：针对 LASSO 模型选择、概率换算与可选再拟合的单元测试。
# 覆盖：
# - 多 lambda 拟合不报错且系数个数等于分箱数
# - 无噪声数据下最优模型集中在真实分箱
# - 维度不匹配、空 lambda、空设计矩阵与超时的异常路径
# - 非负系数筛选与岭回归再拟合

from __future__ import annotations

import numpy as np
import pytest

from rappordec.core.utils.performance import Deadline
from rappordec.decoder.regression import (
    get_coefficient_based_matrix,
    get_probability_for_class,
    make_frame,
    predict_final_class_counts,
    predict_most_likely_classes,
    select_model,
)
from rappordec.exceptions import (
    DeadlineExceededError,
    DimensionMismatchError,
    ModelFittingError,
    ValidationError,
)

DESIGN_MATRIX = np.array(
    [
        [0, 1, 0, 0, 0, 1, 0, 0, 1, 0, 1, 0, 0, 1, 0, 0],
        [1, 0, 1, 0, 1, 0, 0, 0, 0, 1, 0, 0, 1, 0, 0, 1],
        [0, 0, 0, 1, 0, 0, 1, 1, 0, 0, 0, 1, 0, 0, 1, 0],
    ],
    dtype=float,
)
EXPECTED_TRUE_COUNTS = np.array([-24, 32, 32, -24, -24, 35, 35, -24, -24, 35, 35, -24, -24, -24, 35, -24], dtype=float)
LAMBDAS = (0.01, 0.05, 0.1, 0.2, 0.4)


def test_predict_most_likely_classes_runs() -> None:
    coefficients = predict_most_likely_classes(DESIGN_MATRIX, 16, EXPECTED_TRUE_COUNTS, LAMBDAS)
    assert coefficients.shape == (3,)
    assert np.all(np.isfinite(coefficients))


def test_select_model_recovers_noise_free_counts() -> None:
    # 三个分箱的模式恰好覆盖全部比特位，目标为第二个分箱的模式乘以 40
    assert np.all(DESIGN_MATRIX.sum(axis=0) == 1)
    target = DESIGN_MATRIX[1] * 40.0
    fit = select_model(DESIGN_MATRIX, 16, target, LAMBDAS)
    assert fit.lam in LAMBDAS
    assert fit.coefficients[1] == pytest.approx(40.0, rel=1e-3)
    assert abs(fit.coefficients[0]) < 1e-3
    assert abs(fit.coefficients[2]) < 1e-3
    assert fit.mse < 1e-3


def test_select_model_splits_mass_without_offset() -> None:
    # 模型只由各分箱贡献相加构成，不存在可与系数互相抵消的常数项
    target = DESIGN_MATRIX[0] * 10.0 + DESIGN_MATRIX[2] * 25.0
    fit = select_model(DESIGN_MATRIX, 16, target, LAMBDAS)
    np.testing.assert_allclose(fit.coefficients, [10.0, 0.0, 25.0], atol=0.01)
    assert not hasattr(fit, "intercept")


def test_select_model_keeps_minimum_mse() -> None:
    # 较小的 lambda 收缩更少，因此样本内误差不会更大
    target = DESIGN_MATRIX[0] * 10.0 + DESIGN_MATRIX[2] * 5.0
    best = select_model(DESIGN_MATRIX, 16, target, LAMBDAS)
    for lam in LAMBDAS:
        single = select_model(DESIGN_MATRIX, 16, target, (lam,))
        assert best.mse <= single.mse + 1e-12


def test_make_frame_transposes() -> None:
    design = np.array([[0, 1, 0, 0], [1, 0, 1, 0], [0, 0, 0, 1]], dtype=float)
    x, y = make_frame(design, [-24, 32, 32, -24])
    assert x.shape == (4, 3)
    np.testing.assert_array_equal(x[0], [0, 1, 0])
    np.testing.assert_array_equal(y, [-24, 32, 32, -24])


def test_dimension_mismatch() -> None:
    with pytest.raises(DimensionMismatchError) as info:
        select_model(DESIGN_MATRIX, 16, EXPECTED_TRUE_COUNTS[:5], LAMBDAS)
    assert info.value.expected == 16
    assert info.value.actual == 5
    with pytest.raises(DimensionMismatchError):
        select_model(DESIGN_MATRIX, 32, EXPECTED_TRUE_COUNTS, LAMBDAS)


def test_no_usable_model() -> None:
    with pytest.raises(ModelFittingError):
        select_model(DESIGN_MATRIX, 16, EXPECTED_TRUE_COUNTS, ())
    with pytest.raises(ModelFittingError):
        select_model(np.zeros((0, 16)), 16, EXPECTED_TRUE_COUNTS, LAMBDAS)


def test_deadline_checked_before_each_fit() -> None:
    with pytest.raises(DeadlineExceededError):
        select_model(DESIGN_MATRIX, 16, EXPECTED_TRUE_COUNTS, LAMBDAS, deadline=Deadline.after(-1.0))


def test_get_probability_for_class() -> None:
    np.testing.assert_allclose(get_probability_for_class([42], 10), [4.2])
    # 不做归一化，负系数保持为负
    np.testing.assert_allclose(get_probability_for_class([-5, 15], 10), [-0.5, 1.5])
    with pytest.raises(ValidationError):
        get_probability_for_class([1.0], 0)


def test_get_coefficient_based_matrix() -> None:
    selected = get_coefficient_based_matrix(DESIGN_MATRIX, [-24, 32, 32])
    assert selected.shape == (2, 16)
    np.testing.assert_array_equal(selected, DESIGN_MATRIX[1:])
    with pytest.raises(DimensionMismatchError):
        get_coefficient_based_matrix(DESIGN_MATRIX, [1, 2])


def test_predict_final_class_counts() -> None:
    target = DESIGN_MATRIX[1] * 20.0 + DESIGN_MATRIX[2] * 10.0
    final = predict_final_class_counts(DESIGN_MATRIX, target, [-1.0, 18.0, 9.0])
    assert final.shape == (3,)
    assert final[0] == 0.0
    assert final[1] == pytest.approx(20.0, rel=0.01)
    assert final[2] == pytest.approx(10.0, rel=0.01)


def test_predict_final_class_counts_without_selected_bins() -> None:
    final = predict_final_class_counts(DESIGN_MATRIX, EXPECTED_TRUE_COUNTS, [-1.0, -2.0, -3.0])
    np.testing.assert_array_equal(final, np.zeros(3))
