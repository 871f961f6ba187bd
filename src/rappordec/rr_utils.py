"""Randomized-response utility helpers for hash families and bit strings."""
# 说明：为解码器提供哈希族构造与比特串解析等通用工具函数。
# 职责：
# - 封装基于 xxhash 的哈希落桶逻辑并支持构造独立哈希函数族
# - 将客户端上报的 '0'/'1' 字符串解析为 bitarray，并转换为 numpy 计数向量

from __future__ import annotations

from typing import Callable, Iterable, List, Union

import numpy as np
import xxhash
from bitarray import bitarray

from rappordec.core.utils.param_validation import ParamValidationError

HASH_SEED_STEP = 0x9E3779B1
# 相邻哈希函数之间的子 seed 步长


def hash_to_range(value: Union[str, bytes], seed: int, num_buckets: int) -> int:
    """
    Hash value into [0, num_buckets) using xxhash64.

    Raises:
        ParamValidationError: if num_buckets <= 0 or value is not str/bytes.
    """
    if num_buckets <= 0:
        raise ParamValidationError("num_buckets must be positive")
    payload = value.encode("utf-8") if isinstance(value, str) else value
    if not isinstance(payload, (bytes, bytearray)):
        raise ParamValidationError("value must be str or bytes")
    # xxh64 的 seed 为无符号 64 位整数
    digest = xxhash.xxh64(payload, seed=seed & 0xFFFFFFFFFFFFFFFF).intdigest()
    return int(digest % num_buckets)


def make_hash_family(num_hashes: int, num_buckets: int, seed: int) -> List[Callable[[str], int]]:
    """
    Create a family of independent hash functions mapping strings into [0, num_buckets).

    Member ``i`` uses the sub-seed ``seed + i * 0x9E3779B1``. The client encoder
    must use the same family for decoded candidate patterns to line up with the
    reported Bloom filters.
    """
    if num_hashes <= 0:
        raise ParamValidationError("num_hashes must be positive")
    if num_buckets <= 0:
        raise ParamValidationError("num_buckets must be positive")

    hash_functions: List[Callable[[str], int]] = []
    for i in range(num_hashes):
        sub_seed = seed + i * HASH_SEED_STEP

        def _fn(value: str, _seed=sub_seed) -> int:
            return hash_to_range(value, seed=_seed, num_buckets=num_buckets)

        hash_functions.append(_fn)
    return hash_functions


def parse_bits(bit_string: str) -> bitarray:
    """Parse a '0'/'1' string into a bitarray; other characters raise ParamValidationError."""
    if not isinstance(bit_string, str):
        raise ParamValidationError("bit string must be a str")
    # bitarray 会忽略空白与下划线，这里先做严格的字符集检查
    if bit_string.strip("01"):
        raise ParamValidationError("bit string may only contain '0' and '1'")
    return bitarray(bit_string)


def bits_to_vector(bits: bitarray) -> np.ndarray:
    # 将 bitarray 转为 0/1 整数向量，位置 0 对应字符串首字符
    return np.fromiter(bits.tolist(), dtype=np.int64, count=len(bits))


def count_ones_per_position(bit_strings: Iterable[str], length: int) -> np.ndarray:
    """Count, for every position, how many bit strings carry a '1' there."""
    counts = np.zeros(length, dtype=np.int64)
    for bit_string in bit_strings:
        bits = parse_bits(bit_string)
        if len(bits) != length:
            raise ParamValidationError(f"bit string length {len(bits)} does not match expected length {length}")
        counts += bits_to_vector(bits)
    return counts
