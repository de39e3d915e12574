from __future__ import annotations

import numpy as np
import attrs


@attrs.define(frozen=True, slots=True)
class MatrixDims:
    m: int
    n: int
    k: int

    @staticmethod
    def square(n: int) -> "MatrixDims":
        return MatrixDims(m=n, n=n, k=n)

    @property
    def flop_count(self) -> int:
        return 2 * self.m * self.n * self.k

    @property
    def a_count(self) -> int:
        return self.m * self.k

    @property
    def b_count(self) -> int:
        return self.k * self.n

    @property
    def c_count(self) -> int:
        return self.m * self.n

    def to_array(self) -> np.ndarray:
        """Device parameter block layout: `struct MatrixDims { uint m, n, k; }`."""
        return np.array([self.m, self.n, self.k], dtype=np.uint32)

    def to_label(self) -> str:
        return f"{self.m}x{self.n}x{self.k}"


@attrs.define(frozen=True, slots=True)
class BenchPolicy:
    warmup_iterations: int = 3
    min_duration_s: float = 2.0
    max_iterations: int = 1000

    def to_dict(self) -> dict[str, float | int]:
        return {
            "warmup_iterations": self.warmup_iterations,
            "min_duration_s": self.min_duration_s,
            "max_iterations": self.max_iterations,
        }


# Correctness battery: below, at and across 8/16/32 tile boundaries.
CHECK_SIZES: tuple[int, ...] = (8, 32, 64, 128, 256)
BENCH_SIZES: tuple[int, ...] = (128, 256, 512, 1024, 2048)
TOLERANCE = 1e-3

# Deterministic demonstration run.
DEMO_SIZE = 64
DEMO_SCALE_A = 0.01
DEMO_SCALE_B = 0.02

DEFAULT_POLICY = BenchPolicy()


@attrs.define(frozen=True, slots=True)
class HarnessSettings:
    check_sizes: tuple[int, ...] = CHECK_SIZES
    bench_sizes: tuple[int, ...] = BENCH_SIZES
    tolerance: float = TOLERANCE
    policy: BenchPolicy = DEFAULT_POLICY
    run_demo: bool = False
    run_bench: bool = True

    def to_dict(self) -> dict[str, object]:
        return {
            "check_sizes": list(self.check_sizes),
            "bench_sizes": list(self.bench_sizes) if self.run_bench else [],
            "tolerance": self.tolerance,
            "bench_policy": self.policy.to_dict(),
        }
