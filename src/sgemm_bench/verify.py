from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from typing import Any

import attrs
import numpy as np

from .config import CHECK_SIZES, DEMO_SIZE, TOLERANCE, MatrixDims
from .device import Device
from .dispatch import dispatch
from .fixtures import MatrixFixture, new_fixture
from .pipeline import CompiledPipeline
from .reference import cpu_sgemm, max_abs_deviation

logger = logging.getLogger(__name__)


@attrs.define(frozen=True, slots=True)
class CheckResult:
    kernel_name: str
    problem_size: int
    max_absolute_deviation: float
    passed: bool

    @property
    def status(self) -> str:
        return "pass" if self.passed else "fail"

    def to_dict(self, kind: str = "check") -> dict[str, Any]:
        dev = self.max_absolute_deviation
        return {
            "kind": kind,
            "kernel": self.kernel_name,
            "size": self.problem_size,
            # JSON has no NaN/Inf; keep the fact that the value was not finite.
            "max_abs_error": dev if math.isfinite(dev) else None,
            "finite": math.isfinite(dev),
            "status": self.status,
        }


def within_tolerance(deviation: float, tolerance: float) -> bool:
    # NaN fails here too: every comparison with NaN is False.
    return not math.isnan(deviation) and deviation <= tolerance


def _measure(device: Device, pipeline: CompiledPipeline, fixture: MatrixFixture) -> tuple[float, np.ndarray]:
    dims = fixture.dims
    dispatch(device, pipeline, fixture)
    actual = device.read_buffer(fixture.c.handle)
    expected = cpu_sgemm(dims.m, dims.n, dims.k, fixture.a_host, fixture.b_host)
    return max_abs_deviation(actual, expected), expected


def check_size(
    device: Device,
    pipeline: CompiledPipeline,
    n: int,
    *,
    tolerance: float = TOLERANCE,
    rng: np.random.Generator | None = None,
) -> CheckResult:
    """Verify one square size against the host reference with fresh random inputs."""
    fixture = new_fixture(device, MatrixDims.square(n), mode="random", rng=rng)
    deviation, _ = _measure(device, pipeline, fixture)
    result = CheckResult(
        kernel_name=pipeline.name,
        problem_size=n,
        max_absolute_deviation=deviation,
        passed=within_tolerance(deviation, tolerance),
    )
    logger.debug("check %s n=%d deviation=%e %s", pipeline.name, n, result.max_absolute_deviation, result.status)
    return result


def check_kernel(
    device: Device,
    pipeline: CompiledPipeline,
    sizes: Sequence[int] = CHECK_SIZES,
    *,
    tolerance: float = TOLERANCE,
    rng: np.random.Generator | None = None,
) -> list[CheckResult]:
    return [check_size(device, pipeline, n, tolerance=tolerance, rng=rng) for n in sizes]


def kernel_passed(results: Iterable[CheckResult]) -> bool:
    return all(r.passed for r in results)


def run_demo(device: Device, pipeline: CompiledPipeline, n: int = DEMO_SIZE, *, tolerance: float = TOLERANCE) -> CheckResult:
    """Reproducible run on the deterministic (i + 1) * scale fixture.

    Demo values grow with n, so the tolerance is applied relative to the
    largest reference magnitude.
    """
    fixture = new_fixture(device, MatrixDims.square(n), mode="deterministic")
    deviation, expected = _measure(device, pipeline, fixture)
    scale = max(1.0, float(np.max(np.abs(expected)))) if expected.size else 1.0
    return CheckResult(
        kernel_name=pipeline.name,
        problem_size=n,
        max_absolute_deviation=deviation,
        passed=within_tolerance(deviation / scale, tolerance),
    )
