from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence
from typing import Any

import attrs
import numpy as np

from .config import BENCH_SIZES, DEFAULT_POLICY, BenchPolicy, MatrixDims
from .device import Device
from .dispatch import dispatch, validate_fixture
from .fixtures import new_fixture
from .pipeline import CompiledPipeline

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@attrs.define(frozen=True, slots=True)
class BenchResult:
    kernel_name: str
    problem_size: int
    throughput_gflops: float
    iterations: int = 0
    elapsed_s: float = 0.0

    @property
    def time_per_iteration_ms(self) -> float | None:
        if self.iterations == 0:
            return None
        return self.elapsed_s / self.iterations * 1e3

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "bench",
            "kernel": self.kernel_name,
            "size": self.problem_size,
            "flop_count": MatrixDims.square(self.problem_size).flop_count,
            "gflops": self.throughput_gflops,
            "iterations": self.iterations,
            "elapsed_s": self.elapsed_s,
        }


def gflops(dims: MatrixDims, elapsed_s: float, iterations: int) -> float:
    """2*m*n*k flops per iteration over the mean seconds per iteration, in 1e9/s."""
    if iterations <= 0 or elapsed_s <= 0 or not math.isfinite(elapsed_s):
        return 0.0
    return dims.flop_count / (elapsed_s / iterations) / 1e9


def benchmark_size(
    device: Device,
    pipeline: CompiledPipeline,
    n: int,
    policy: BenchPolicy = DEFAULT_POLICY,
    *,
    clock: Clock = time.perf_counter,
    rng: np.random.Generator | None = None,
) -> BenchResult:
    """Time repeated dispatches of one square size.

    Runs until `policy.min_duration_s` has elapsed or `policy.max_iterations`
    dispatches were timed, whichever comes first. C is re-zeroed before every
    dispatch so each iteration does the same work.
    """
    dims = MatrixDims.square(n)
    fixture = new_fixture(device, dims, mode="random", rng=rng)
    validate_fixture(device, fixture)

    for _ in range(policy.warmup_iterations):
        device.zero_buffer(fixture.c.handle)
        dispatch(device, pipeline, fixture, validate=False)

    iterations = 0
    start = clock()
    elapsed = 0.0
    while True:
        device.zero_buffer(fixture.c.handle)
        dispatch(device, pipeline, fixture, validate=False)
        iterations += 1
        elapsed = clock() - start
        if elapsed >= policy.min_duration_s or iterations >= policy.max_iterations:
            break

    result = BenchResult(
        kernel_name=pipeline.name,
        problem_size=n,
        throughput_gflops=gflops(dims, elapsed, iterations),
        iterations=iterations,
        elapsed_s=elapsed,
    )
    logger.info(
        "bench %s n=%d: %d iterations in %.3fs -> %.2f GFLOPS",
        pipeline.name,
        n,
        iterations,
        elapsed,
        result.throughput_gflops,
    )
    return result


def benchmark_kernel(
    device: Device,
    pipeline: CompiledPipeline,
    sizes: Sequence[int] = BENCH_SIZES,
    policy: BenchPolicy = DEFAULT_POLICY,
    *,
    clock: Clock = time.perf_counter,
) -> list[BenchResult]:
    return [benchmark_size(device, pipeline, n, policy, clock=clock) for n in sizes]
