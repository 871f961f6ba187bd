"""
Shared type definitions for the decoder.

Responsibilities
  - Define the randomization parameter set of one decode run.
  - Define the immutable client report consumed by the pipeline.
  - Define binning / regression hyperparameters with validation and env loading.
  - Map client upload payloads into reports.

Usage Context
  - Use as the in-process boundary between the I/O layer and the decoder.

Limitations
  - Types validate value ranges only; they do not check that a report was
    produced with a given parameter set.
"""
# 说明：解码器共享的类型定义与配置载体，覆盖参数集、客户端报告与超参数。
# 职责：
# - ParameterSet：RAPPOR 的 k/h/f/p/q 参数，带校验与字典转换
# - Report：单条客户端报告（PRR 比特串 + 数值属性 + 不透明标识），不可变
# - HyperParameters：分箱宽度、起点、lambda 候选与可选上界，支持从环境变量加载
# - reports_from_payload：将客户端上传载荷拆分为 Report 列表并去掉 "0b" 前缀

from __future__ import annotations

import math
import numbers
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from rappordec.core.utils.param_validation import ParamValidationError, ensure, ensure_probability, ensure_type

Identifier = Optional[Union[str, int]]

DEFAULT_LAMBDAS: Tuple[float, ...] = (0.01, 0.05, 0.1, 0.2, 0.4)
DEFAULT_RANGE_ITERATOR = 100
DEFAULT_START_RANGE = 0


def _parse_timestamp(value: Any) -> Optional[datetime]:
    # 尝试从多种输入类型中解析出 datetime 对象，失败时返回 None
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _strip_binary_prefix(bits: Optional[str]) -> Optional[str]:
    # 客户端以 "0b0101..." 的形式上报比特串
    if bits is None:
        return None
    return bits[2:] if bits.startswith("0b") else bits


def _numeric_value(item: Mapping[str, Any]) -> float:
    # 数值属性取 "steps"（客户端字段名），兼容 "value"；缺失或非数值时报错
    value = item.get("steps", item.get("value"))
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
        raise ParamValidationError(f"report {item.get('report_id')!r} needs a finite numeric 'steps' value, got {value!r}")
    return value


@dataclass(frozen=True)
class ParameterSet:
    """
    Randomization and encoding constants of one decode run.

    - Configuration
      - k: Width of the reported bit string (Bloom filter size).
      - h: Number of hash functions per candidate value.
      - f: Permanent randomized response probability.
      - p: Instantaneous probability of reporting 1 when the PRR bit is 0.
      - q: Instantaneous probability of reporting 1 when the PRR bit is 1.
      - parameter_id / profile: Optional identifiers of the stored parameter set.

    - Behavior
      - Validates ranges on construction; ``q == p`` is allowed here and is
        rejected by the aggregation stage, which is where it becomes fatal.
    """

    k: int
    h: int
    f: float
    p: float
    q: float
    parameter_id: Identifier = None
    profile: Optional[str] = None

    def __post_init__(self) -> None:
        ensure_type(self.k, (int,), label="k")
        ensure_type(self.h, (int,), label="h")
        ensure(self.k > 0, "k must be positive")
        ensure(self.h > 0, "h must be positive")
        ensure_probability(self.f, name="f")
        ensure_probability(self.p, name="p")
        ensure_probability(self.q, name="q")

    @property
    def bias_denominator(self) -> float:
        return (1.0 - self.f) * (self.q - self.p)

    def to_dict(self) -> Dict[str, Any]:
        """Export using the field names of the parameter API."""
        return {
            "parameter_id": self.parameter_id,
            "profile_name": self.profile,
            "k_value": self.k,
            "h_value": self.h,
            "f_value": self.f,
            "p_value": self.p,
            "q_value": self.q,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ParameterSet":
        # 从参数 API 的字典表示还原参数集，缺失字段时抛出明确错误
        missing = [key for key in ("k_value", "h_value", "f_value", "p_value", "q_value") if key not in data]
        if missing:
            raise ParamValidationError(f"parameter payload missing fields: {', '.join(missing)}")
        return cls(
            k=int(data["k_value"]),
            h=int(data["h_value"]),
            f=float(data["f_value"]),
            p=float(data["p_value"]),
            q=float(data["q_value"]),
            parameter_id=data.get("parameter_id"),
            profile=data.get("profile_name"),
        )


@dataclass(frozen=True)
class Report:
    """
    One client report as seen by the decoder.

    - Configuration
      - prr: Reported bit string of '0'/'1' characters, length k.
      - value: Numeric attribute used to size the bins (e.g. a step count).
      - report_id / device_id / cohort_id / parameter_id: Opaque identifiers.
      - irr: Optional instantaneous randomized response bit string.
      - interval_start / interval_end: Optional measurement interval.

    - Usage Notes
      - The pipeline never mutates reports.
    """

    prr: str
    value: float = 0
    report_id: Identifier = None
    device_id: Identifier = None
    cohort_id: Identifier = None
    parameter_id: Identifier = None
    irr: Optional[str] = None
    interval_start: Optional[datetime] = None
    interval_end: Optional[datetime] = None


def reports_from_payload(payload: Mapping[str, Any]) -> List[Report]:
    """
    Split a client upload into reports.

    The payload carries ``parameter_id``, ``device_id`` and ``cohort_id`` once
    and a ``values`` list whose items hold ``report_id``, ``steps``, ``prr``,
    ``irr``, ``interval_start`` and ``interval_end``.
    """
    if "values" not in payload:
        raise ParamValidationError("payload must contain 'values'")
    reports: List[Report] = []
    for item in payload["values"]:
        if "prr" not in item:
            raise ParamValidationError("every value must carry a 'prr' bit string")
        reports.append(
            Report(
                prr=_strip_binary_prefix(item["prr"]),
                value=_numeric_value(item),
                report_id=item.get("report_id"),
                device_id=payload.get("device_id"),
                cohort_id=payload.get("cohort_id"),
                parameter_id=payload.get("parameter_id"),
                irr=_strip_binary_prefix(item.get("irr")),
                interval_start=_parse_timestamp(item.get("interval_start")),
                interval_end=_parse_timestamp(item.get("interval_end")),
            )
        )
    return reports


@dataclass
class HyperParameters:
    """
    Binning and regression hyperparameters.

    - Configuration
      - range_iterator: Bin width.
      - start_range: Lower bound of the first bin.
      - lambdas: Ordered candidate regularization strengths.
      - max_range: Optional explicit upper bound; derived from the reports when None.
    """

    range_iterator: int = DEFAULT_RANGE_ITERATOR
    start_range: int = DEFAULT_START_RANGE
    lambdas: Sequence[float] = field(default_factory=lambda: DEFAULT_LAMBDAS)
    max_range: Optional[int] = None

    def validate(self) -> "HyperParameters":
        ensure_type(self.range_iterator, (int,), label="range_iterator")
        ensure_type(self.start_range, (int,), label="start_range")
        ensure(self.range_iterator > 0, "range_iterator must be positive")
        ensure(self.start_range >= 0, "start_range must be non-negative")
        ensure(len(self.lambdas) > 0, "lambdas must be non-empty")
        for lam in self.lambdas:
            ensure(math.isfinite(lam) and lam >= 0, f"lambda {lam!r} must be finite and non-negative")
        if self.max_range is not None:
            ensure_type(self.max_range, (int,), label="max_range")
            ensure(self.max_range > self.start_range, "max_range must exceed start_range")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "range_iterator": self.range_iterator,
            "start_range": self.start_range,
            "lambdas": list(self.lambdas),
            "max_range": self.max_range,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HyperParameters":
        return cls(
            range_iterator=int(data.get("range_iterator", DEFAULT_RANGE_ITERATOR)),
            start_range=int(data.get("start_range", DEFAULT_START_RANGE)),
            lambdas=tuple(float(v) for v in data.get("lambdas", DEFAULT_LAMBDAS)),
            max_range=int(data["max_range"]) if data.get("max_range") is not None else None,
        ).validate()

    @classmethod
    def from_env(cls, prefix: str = "RAPPORDEC_") -> "HyperParameters":
        # 从环境变量读取默认超参数，lambda 以逗号分隔
        data: Dict[str, Any] = {}
        for key in ("RANGE_ITERATOR", "START_RANGE", "MAX_RANGE"):
            env_key = f"{prefix}{key}"
            if env_key in os.environ:
                data[key.lower()] = int(os.environ[env_key])
        lambdas = os.environ.get(f"{prefix}LAMBDAS")
        if lambdas:
            data["lambdas"] = [float(v) for v in lambdas.split(",") if v.strip()]
        return cls.from_dict(data)
