"""Shared pytest configuration, path setup and report fixtures for test modules."""

import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

# Ensure repo root and src/ are on sys.path for all tests
_ROOT = Path(__file__).resolve().parents[1]
_SRC = _ROOT / "src"
for p in (str(_ROOT), str(_SRC)):
    if p not in sys.path:
        sys.path.insert(0, p)

from rappordec.types import ParameterSet, Report  # noqa: E402

MOCK_PRR_16 = "0101010000100111"
MOCK_PRR_32 = "10111111000010110011111011111111"


def mock_report(prr: str = MOCK_PRR_16, value: float = 8448, cohort_id: str = "cohort-1") -> Report:
    # 构造与客户端上报格式一致的单条报告
    return Report(
        prr=prr,
        value=value,
        report_id=f"report-{value}",
        device_id="device-1",
        cohort_id=cohort_id,
        parameter_id="b844cb27-d4af-499d-8332-2061ce481819",
        irr=prr,
    )


def mock_parameter_set(k: int = 32, h: int = 2) -> ParameterSet:
    return ParameterSet(k=k, h=h, f=0.5, p=0.5, q=0.75, profile="test")


def simulate_reports(
    patterns: List[tuple],
    k: int,
    parameter_set: ParameterSet,
    rng: np.random.Generator,
    values: Optional[List[float]] = None,
) -> List[Report]:
    """Apply permanent then instantaneous randomized response to each Bloom filter pattern."""
    # 先按 f 做永久随机化，再按 p/q 做瞬时随机化，得到客户端上报的比特串
    reports: List[Report] = []
    for position, indexes in enumerate(patterns):
        bloom = np.zeros(k, dtype=int)
        bloom[list(indexes)] = 1
        draw = rng.random(k)
        permanent = np.where(
            draw < parameter_set.f / 2, 1, np.where(draw < parameter_set.f, 0, bloom)
        )
        prob_one = np.where(permanent == 1, parameter_set.q, parameter_set.p)
        reported = (rng.random(k) < prob_one).astype(int)
        value = values[position] if values is not None else 0
        reports.append(Report(prr="".join(str(b) for b in reported), value=value, report_id=str(position)))
    return reports


@pytest.fixture
def parameter_set_16() -> ParameterSet:
    return mock_parameter_set(k=16)


@pytest.fixture
def cohort_16() -> List[Report]:
    return [mock_report() for _ in range(10)]
