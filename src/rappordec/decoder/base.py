"""
Base abstraction for decode pipeline stages.

Responsibilities
  - Define the single ``process(context) -> context`` contract of a stage.
  - Standardize stage naming and metadata.

Usage Context
  - DecoderService runs an ordered list of BasePipe instances.
  - Stages can be tested and substituted independently.

Limitations
  - Stages must not keep per-run state on themselves; everything goes on the context.
"""
# 说明：解码流水线阶段的抽象基类，统一 process 契约，便于独立测试与替换。
# 职责：
# - 约定 process(context) -> context 的方法签名，失败时抛出类型化异常
# - 约定阶段完成后写入的 PipelineState
# - 提供默认的阶段名称与元数据

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from rappordec.decoder.context import DecodeContext, PipelineState


class BasePipe(ABC):
    """
    Abstract interface for one decode stage.

    - Behavior
      - ``process`` reads the fields written by earlier stages, enriches the
        same context and returns it.
      - ``completed_state`` is the state the orchestrator records on success.
    """

    completed_state: PipelineState = PipelineState.PENDING

    @abstractmethod
    def process(self, context: DecodeContext) -> DecodeContext:
        """Run the stage on the given context and return it."""
        raise NotImplementedError

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def get_metadata(self) -> Mapping[str, Any]:
        return {"type": self.name}
