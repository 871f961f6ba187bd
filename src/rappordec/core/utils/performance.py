"""
Timing helpers used around decoder stages.

Responsibilities
  - Provide a timing context manager for code blocks.
  - Provide a monotonic deadline that long-running stages can poll.

Usage Context
  - Timer is used by the orchestrator to log per-stage durations.
  - Deadline is threaded through the decode context and checked at stage
    boundaries and before each regression fit.

Limitations
  - A deadline is cooperative: a single regression fit is never interrupted.
"""
# 说明：解码阶段使用的计时与截止时间工具。
# 职责：
# - Timer：基于上下文管理器与 ContextDecorator 的计时工具，可用于 with 或函数装饰
# - Deadline：基于 time.monotonic 的绝对截止时间，由调用方在阶段边界主动检查

from __future__ import annotations

import time
from contextlib import ContextDecorator
from typing import Optional, Type


class Timer(ContextDecorator):
    """
    Context manager for timing code blocks.

    - Behavior
      - Records start and end timestamps using a high-resolution clock.
      - Exposes elapsed time after exiting the context.
    """

    def __enter__(self) -> "Timer":
        self.start = time.perf_counter()
        self.end = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end = time.perf_counter()
        self.elapsed = self.end - self.start


class Deadline:
    """
    Absolute point in time after which a decode run should stop.

    - Configuration
      - expires_at: Value of ``time.monotonic()`` at which the deadline expires.

    - Behavior
      - ``check`` raises the given error type once the deadline has passed.

    - Usage Notes
      - Build with ``Deadline.after(seconds)`` for a relative timeout.
    """

    def __init__(self, expires_at: float):
        self.expires_at = float(expires_at)

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        # 以相对秒数构造截止时间
        return cls(time.monotonic() + float(seconds))

    def remaining(self) -> float:
        return self.expires_at - time.monotonic()

    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self, where: str, error: Type[Exception]) -> None:
        # 截止时间已过时抛出调用方指定的异常类型，并在消息中标明检查位置
        if self.expired():
            raise error(f"deadline exceeded before {where}")


def check_deadline(deadline: Optional[Deadline], where: str, error: Type[Exception]) -> None:
    # 未设置截止时间时为空操作
    if deadline is not None:
        deadline.check(where, error)
