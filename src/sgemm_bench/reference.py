from __future__ import annotations

import numpy as np


def cpu_sgemm(m: int, n: int, k: int, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Host reference `C = A @ B` for row-major A (m x k) and B (k x n).

    Accumulates in float32 with the inner index ascending, one rank-1 update per
    `p`, which yields the same rounding as the scalar triple loop. Returns a
    flat row-major array of length m*n. Inputs are not modified.
    """
    if a.size != m * k:
        raise ValueError(f"A has {a.size} elements, expected {m * k}")
    if b.size != k * n:
        raise ValueError(f"B has {b.size} elements, expected {k * n}")

    a2 = np.asarray(a, dtype=np.float32).reshape(m, k)
    b2 = np.asarray(b, dtype=np.float32).reshape(k, n)
    c = np.zeros((m, n), dtype=np.float32)
    for p in range(k):
        c += a2[:, p : p + 1] * b2[p : p + 1, :]
    return c.reshape(-1)


def max_abs_deviation(actual: np.ndarray, expected: np.ndarray) -> float:
    """Largest |actual - expected|; NaN if any element compares as NaN."""
    if actual.size != expected.size:
        raise ValueError(f"size mismatch: {actual.size} != {expected.size}")
    if actual.size == 0:
        return 0.0
    diff = np.abs(actual.astype(np.float32).reshape(-1) - expected.astype(np.float32).reshape(-1))
    return float(np.max(diff))
