"""
Debias / binning stage: candidate bins and the regression design matrix.

The numeric attribute range ``[start, max)`` is cut into contiguous bins of a
fixed width. Every bin label ``"<binStart>-<binEnd>"`` is hashed into ``h``
Bloom filter positions exactly as a client embeds a candidate value, and the
resulting patterns form the design matrix (one row per bin, one column per bit).
"""
# 说明：解码流水线第二阶段，生成候选数值区间并重建客户端 Bloom Filter 编码，组装设计矩阵。
# 职责：
# - map_candidate_strings_to_index：用与客户端一致的 xxhash 哈希族把区间标签映射到 h 个比特位置
# - build_bin_map：按宽度划分 [start, max) 并为每个分箱计算索引集合（保持升序插入顺序）
# - convert_classes_to_array：把分箱索引集合展开为 bins x k 的 0/1 矩阵
# 约定：
# - 哈希族（种子与步长）是与客户端编码器之间的固定契约，修改必须同步客户端

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from rappordec.core.utils.config import get_config
from rappordec.core.utils.logging import get_logger
from rappordec.core.utils.param_validation import ensure
from rappordec.decoder.base import BasePipe
from rappordec.decoder.context import DecodeContext, PipelineState
from rappordec.exceptions import ValidationError
from rappordec.rr_utils import make_hash_family

logger = get_logger(__name__)

BinMap = Dict[str, Tuple[int, ...]]


def bin_label(start: int, end: int) -> str:
    return f"{start}-{end}"


def _resolve_seed(seed: Optional[int]) -> int:
    return get_config().hash_seed if seed is None else int(seed)


def map_candidate_strings_to_index(
    start: int, end: int, message_bit_size: int, number_of_hash_functions: int = 2, seed: Optional[int] = None
) -> Tuple[int, ...]:
    """
    Return the ``h`` Bloom filter positions of the bin ``[start, end)``.

    Positions keep hash-function order and may repeat when two hashes collide.
    Any integer bounds are accepted; positions always fall in ``[0, k)``.
    """
    ensure(message_bit_size > 0, "message_bit_size must be positive", error=ValidationError)
    ensure(number_of_hash_functions > 0, "number_of_hash_functions must be positive", error=ValidationError)
    label = bin_label(start, end)
    family = make_hash_family(number_of_hash_functions, message_bit_size, _resolve_seed(seed))
    return tuple(fn(label) for fn in family)


def build_bin_map(
    max_range: int,
    range_iterator: int,
    start_range: int = 0,
    message_bit_size: int = 32,
    number_of_hash_functions: int = 2,
    seed: Optional[int] = None,
) -> BinMap:
    """Partition ``[start_range, max_range)`` into ``ceil(span / width)`` labelled bins."""
    ensure(range_iterator > 0, "range_iterator must be positive", error=ValidationError)
    ensure(
        max_range > start_range,
        f"max_range ({max_range}) must exceed start_range ({start_range})",
        error=ValidationError,
    )
    bin_map: BinMap = {}
    lower = start_range
    while lower < max_range:
        upper = lower + range_iterator
        bin_map[bin_label(lower, upper)] = map_candidate_strings_to_index(
            lower, upper, message_bit_size, number_of_hash_functions, seed
        )
        lower = upper
    return bin_map


def convert_classes_to_array(bin_map: Mapping[str, Sequence[int]], message_bit_size: int) -> np.ndarray:
    """Expand index sets into a ``len(bin_map) x k`` matrix of 0.0 / 1.0, rows in bin order."""
    ensure(message_bit_size > 0, "message_bit_size must be positive", error=ValidationError)
    matrix = np.zeros((len(bin_map), message_bit_size), dtype=float)
    for row, (label, indexes) in enumerate(bin_map.items()):
        for idx in indexes:
            if not 0 <= idx < message_bit_size:
                raise ValidationError(f"index {idx} of bin '{label}' outside [0, {message_bit_size})")
            matrix[row, idx] = 1.0
    return matrix


def build_design_matrix(
    start_range: int,
    max_range: int,
    range_iterator: int,
    message_bit_size: int,
    number_of_hash_functions: int,
    seed: Optional[int] = None,
) -> Tuple[BinMap, np.ndarray]:
    bin_map = build_bin_map(max_range, range_iterator, start_range, message_bit_size, number_of_hash_functions, seed)
    return bin_map, convert_classes_to_array(bin_map, message_bit_size)


class DebiasPipe(BasePipe):
    """
    Fill ``bin_map`` and ``design_matrix`` on the context.

    - Configuration
      - seed: Base seed of the hash family; defaults to ``RuntimeConfig.hash_seed``.
    """

    completed_state = PipelineState.BINNED

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed

    def process(self, context: DecodeContext) -> DecodeContext:
        params = context.parameter_set
        bin_map, matrix = build_design_matrix(
            context.start_range,
            context.max_range,
            context.range_iterator,
            params.k,
            params.h,
            self.seed,
        )
        context.bin_map = bin_map
        context.design_matrix = matrix
        distinct = len({frozenset(indexes) for indexes in bin_map.values()})
        if distinct < len(bin_map):
            # 多个分箱共享同一比特模式时回归无法区分它们
            logger.warning("%d of %d bins share a Bloom filter pattern (k=%d, h=%d)",
                           len(bin_map) - distinct, len(bin_map), params.k, params.h)
        logger.debug("Built design matrix with %d bins x %d bits", matrix.shape[0], matrix.shape[1])
        return context

    def get_metadata(self) -> Mapping[str, object]:
        return {"type": self.name, "seed": _resolve_seed(self.seed)}
