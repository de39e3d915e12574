from __future__ import annotations

from typing import Any, Literal

import attrs
import numpy as np

from .config import DEMO_SCALE_A, DEMO_SCALE_B, MatrixDims
from .device import Device

FixtureMode = Literal["random", "deterministic"]


@attrs.define(frozen=True, slots=True)
class DeviceMatrix:
    handle: Any
    rows: int
    cols: int

    @property
    def count(self) -> int:
        return self.rows * self.cols


@attrs.define(frozen=True, slots=True)
class MatrixFixture:
    """Buffers for one dispatch plus host copies of the inputs."""

    dims: MatrixDims
    a: DeviceMatrix
    b: DeviceMatrix
    c: DeviceMatrix
    dims_buffer: Any
    a_host: np.ndarray
    b_host: np.ndarray


def generate_matrix(rows: int, cols: int, scale: float) -> np.ndarray:
    """Deterministic matrix: element i is (i + 1) * scale."""
    return (np.arange(rows * cols, dtype=np.float32) + np.float32(1.0)) * np.float32(scale)


def random_matrix(rows: int, cols: int, rng: np.random.Generator | None = None) -> np.ndarray:
    """Uniform samples in [-1.0, 1.0).

    A fresh OS-seeded generator is used unless one is passed in.
    """
    gen = np.random.default_rng() if rng is None else rng
    return gen.random(rows * cols, dtype=np.float32) * np.float32(2.0) - np.float32(1.0)


def upload_matrix(device: Device, host: np.ndarray, rows: int, cols: int) -> DeviceMatrix:
    handle = device.new_buffer(rows * cols, dtype=np.float32, host=np.ascontiguousarray(host, dtype=np.float32))
    return DeviceMatrix(handle=handle, rows=rows, cols=cols)


def zero_matrix(device: Device, rows: int, cols: int) -> DeviceMatrix:
    return DeviceMatrix(handle=device.new_buffer(rows * cols, dtype=np.float32, zeroed=True), rows=rows, cols=cols)


def new_fixture(
    device: Device,
    dims: MatrixDims,
    *,
    mode: FixtureMode = "random",
    rng: np.random.Generator | None = None,
) -> MatrixFixture:
    if mode == "random":
        gen = np.random.default_rng() if rng is None else rng
        a_host = random_matrix(dims.m, dims.k, gen)
        b_host = random_matrix(dims.k, dims.n, gen)
    elif mode == "deterministic":
        a_host = generate_matrix(dims.m, dims.k, DEMO_SCALE_A)
        b_host = generate_matrix(dims.k, dims.n, DEMO_SCALE_B)
    else:
        raise ValueError(f"Unknown fixture mode: {mode!r}")

    dims_array = dims.to_array()
    return MatrixFixture(
        dims=dims,
        a=upload_matrix(device, a_host, dims.m, dims.k),
        b=upload_matrix(device, b_host, dims.k, dims.n),
        c=zero_matrix(device, dims.m, dims.n),
        dims_buffer=device.new_buffer(dims_array.size, dtype=np.uint32, host=dims_array),
        a_host=a_host,
        b_host=b_host,
    )
