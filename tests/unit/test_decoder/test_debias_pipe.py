"""
Unit tests for the debias / binning stage.
"""
# 说明：针对候选分箱生成、Bloom Filter 索引重建与设计矩阵组装的单元测试。
# 覆盖：
# - 区间标签哈希结果的个数、取值范围与确定性
# - 大数值区间不报错
# - 分箱个数与标签顺序
# - 给定索引集合时设计矩阵的精确内容

from __future__ import annotations

import logging

import numpy as np
import pytest

from conftest import mock_parameter_set
from rappordec.core.utils.config import configure, get_config
from rappordec.decoder.context import DecodeContext
from rappordec.decoder.debias import (
    DebiasPipe,
    build_bin_map,
    build_design_matrix,
    convert_classes_to_array,
    map_candidate_strings_to_index,
)
from rappordec.exceptions import ValidationError


def test_map_candidate_strings_to_index_shape_and_determinism() -> None:
    indexes = map_candidate_strings_to_index(0, 100, 16, 2)
    assert len(indexes) == 2
    assert all(0 <= idx < 16 for idx in indexes)
    assert map_candidate_strings_to_index(0, 100, 16, 2) == indexes


def test_map_candidate_strings_to_index_large_inputs() -> None:
    # 超出 k 的区间边界依旧映射到 [0, k)
    indexes = map_candidate_strings_to_index(40000, 50000, 16, 2)
    assert all(0 <= idx < 16 for idx in indexes)
    huge = map_candidate_strings_to_index(10**15, 10**15 + 100, 16, 3)
    assert len(huge) == 3


def test_different_bins_mostly_map_to_different_patterns() -> None:
    # 相邻区间通常得到不同的索引集合
    patterns = {map_candidate_strings_to_index(lo, lo + 100, 64, 2) for lo in range(0, 5000, 100)}
    assert len(patterns) >= 40


def test_seed_changes_patterns() -> None:
    base = [map_candidate_strings_to_index(lo, lo + 100, 64, 2, seed=0) for lo in range(0, 2000, 100)]
    other = [map_candidate_strings_to_index(lo, lo + 100, 64, 2, seed=12345) for lo in range(0, 2000, 100)]
    assert base != other


def test_build_bin_map_counts_and_labels() -> None:
    bin_map = build_bin_map(1000, 100)
    assert len(bin_map) == 10
    assert list(bin_map)[:3] == ["0-100", "100-200", "200-300"]
    assert list(bin_map)[-1] == "900-1000"
    assert len(build_bin_map(1000, 10)) == 100


def test_build_bin_map_rounds_partial_bin_up() -> None:
    # 跨度不能整除宽度时最后一个分箱仍保持完整宽度
    bin_map = build_bin_map(1050, 100, start_range=200)
    assert len(bin_map) == 9
    assert list(bin_map)[-1] == "1000-1100"


def test_build_bin_map_rejects_empty_range() -> None:
    with pytest.raises(ValidationError):
        build_bin_map(100, 100, start_range=100)
    with pytest.raises(ValidationError):
        build_bin_map(1000, 0)


def test_convert_classes_to_array_exact_matrix() -> None:
    bin_map = {
        "0-100": (2, 1),
        "100-200": (2, 3),
        "200-300": (4, 5),
    }
    expected = np.zeros((3, 16))
    expected[0, [1, 2]] = 1
    expected[1, [2, 3]] = 1
    expected[2, [4, 5]] = 1
    np.testing.assert_array_equal(convert_classes_to_array(bin_map, 16), expected)


def test_convert_classes_to_array_rejects_out_of_range_index() -> None:
    with pytest.raises(ValidationError):
        convert_classes_to_array({"0-100": (16, 1)}, 16)


def test_build_design_matrix_rows_match_bin_map() -> None:
    bin_map, matrix = build_design_matrix(0, 500, 100, 32, 2)
    assert matrix.shape == (5, 32)
    for row, indexes in enumerate(bin_map.values()):
        assert set(np.flatnonzero(matrix[row]).tolist()) == set(indexes)
        assert 1 <= matrix[row].sum() <= 2


def test_debias_pipe_uses_configured_seed() -> None:
    # 未显式传入 seed 时使用运行时配置中的 hash_seed
    previous = get_config().hash_seed
    try:
        configure(hash_seed=7)
        context = DecodeContext(
            reports=[],
            parameter_set=mock_parameter_set(k=32),
            start_range=0,
            range_iterator=100,
            max_range=300,
            lambdas=(0.01,),
        )
        DebiasPipe().process(context)
        assert context.bin_map["0-100"] == map_candidate_strings_to_index(0, 100, 32, 2, seed=7)
        assert context.design_matrix.shape == (3, 32)
    finally:
        configure(hash_seed=previous)


def test_shared_pattern_warning_ignores_hash_order(monkeypatch, caplog) -> None:
    # (1, 2) 与 (2, 1) 展开后的设计矩阵行完全相同，应视为共享模式
    bin_map = {"0-100": (1, 2), "100-200": (2, 1), "200-300": (5, 6)}

    def fake_build_design_matrix(*args, **kwargs):
        return bin_map, convert_classes_to_array(bin_map, 16)

    monkeypatch.setattr("rappordec.decoder.debias.build_design_matrix", fake_build_design_matrix)
    context = DecodeContext(
        reports=[],
        parameter_set=mock_parameter_set(k=16),
        start_range=0,
        range_iterator=100,
        max_range=300,
        lambdas=(0.01,),
    )
    with caplog.at_level(logging.WARNING, logger="rappordec.decoder.debias"):
        DebiasPipe().process(context)
    np.testing.assert_array_equal(context.design_matrix[0], context.design_matrix[1])
    assert "1 of 3 bins share a Bloom filter pattern" in caplog.text
