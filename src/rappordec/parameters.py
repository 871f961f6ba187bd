"""
Parameter profiles for the randomized response protocol.

Responsibilities
  - Provide the default parameter set handed to clients.
  - Keep named parameter profiles and resolve the set for a decode run.

Usage Context
  - The I/O layer resolves a ParameterSet here before building a decode context.

Limitations
  - Profiles live in memory; persistence belongs to the caller.
"""
# 说明：随机响应协议的参数配置管理，提供默认参数集与按名称登记的参数档案。
# 职责：
# - ParameterMode：DEFAULT 表示使用默认参数，PROFILE 表示使用命名档案
# - ParameterService：维护内存中的档案表，并按模式解析出解码所需的 ParameterSet

from __future__ import annotations

import enum
from typing import Dict, Optional

from rappordec.core.utils.logging import get_logger
from rappordec.core.utils.param_validation import ParamValidationError, ensure
from rappordec.types import ParameterSet

logger = get_logger(__name__)

MESSAGE_BIT_SIZE = 32
NUMBER_HASH_FUNCTIONS = 2
PERMANENT_PROBABILITY = 0.5
INSTANTANEOUS_PROBABILITY_FOR_ZERO = 0.5
INSTANTANEOUS_PROBABILITY_FOR_ONE = 0.75


class ParameterMode(str, enum.Enum):
    DEFAULT = "default"
    PROFILE = "profile"

    @classmethod
    def parse(cls, value: "str | ParameterMode") -> "ParameterMode":
        # 大小写不敏感地解析模式名称
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ParamValidationError(f"unknown parameter mode '{value}'") from exc


class ParameterService:
    """
    In-memory registry of parameter profiles.

    - Behavior
      - ``default_parameter_set`` returns the protocol defaults
        (k=32, h=2, f=0.5, p=0.5, q=0.75).
      - ``resolve`` picks the default set or a named profile.
    """

    def __init__(self) -> None:
        self._profiles: Dict[str, ParameterSet] = {}

    @staticmethod
    def default_parameter_set() -> ParameterSet:
        return ParameterSet(
            k=MESSAGE_BIT_SIZE,
            h=NUMBER_HASH_FUNCTIONS,
            f=PERMANENT_PROBABILITY,
            p=INSTANTANEOUS_PROBABILITY_FOR_ZERO,
            q=INSTANTANEOUS_PROBABILITY_FOR_ONE,
            profile="default",
        )

    def save(self, parameter_set: ParameterSet) -> None:
        ensure(bool(parameter_set.profile), "parameter set must carry a profile name")
        if parameter_set.profile in self._profiles:
            logger.info("Replacing parameter profile '%s'", parameter_set.profile)
        self._profiles[parameter_set.profile] = parameter_set

    def find_by_profile(self, profile: str) -> Optional[ParameterSet]:
        return self._profiles.get(profile)

    def resolve(self, mode: "str | ParameterMode", profile: Optional[str] = None) -> ParameterSet:
        # DEFAULT 模式直接返回默认参数，PROFILE 模式要求档案已登记
        mode = ParameterMode.parse(mode)
        if mode is ParameterMode.DEFAULT:
            return self.default_parameter_set()
        if not profile:
            raise ParamValidationError("profile name is required in PROFILE mode")
        found = self.find_by_profile(profile)
        if found is None:
            raise ParamValidationError(f"no parameter profile named '{profile}'")
        return found
