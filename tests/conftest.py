from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import attrs
import numpy as np
import pytest

from sgemm_bench.device import DeviceInfo, GridSize
from sgemm_bench.errors import DriverError
from sgemm_bench.registry import KernelDescriptor, TileShape

# (a, b, c, dims, groups, group_shape) -> None; writes into c in place.
KernelImpl = Callable[[np.ndarray, np.ndarray, np.ndarray, np.ndarray, GridSize, GridSize], None]


def _covered(dims: np.ndarray, groups: GridSize, group_shape: GridSize) -> tuple[int, int, int, int, int]:
    m, n, k = (int(x) for x in dims)
    rows = min(m, groups.height * group_shape.height)
    cols = min(n, groups.width * group_shape.width)
    return m, n, k, rows, cols


def exact_impl(a, b, c, dims, groups, group_shape) -> None:
    m, n, k, rows, cols = _covered(dims, groups, group_shape)
    full = a.reshape(m, k).astype(np.float64) @ b.reshape(k, n).astype(np.float64)
    c.reshape(m, n)[:rows, :cols] = full[:rows, :cols].astype(np.float32)


def drop_last_term_impl(a, b, c, dims, groups, group_shape) -> None:
    m, n, k, rows, cols = _covered(dims, groups, group_shape)
    a2 = a.reshape(m, k).astype(np.float64)[:, : k - 1]
    b2 = b.reshape(k, n).astype(np.float64)[: k - 1, :]
    c.reshape(m, n)[:rows, :cols] = (a2 @ b2)[:rows, :cols].astype(np.float32)


def accumulate_impl(a, b, c, dims, groups, group_shape) -> None:
    m, n, k, rows, cols = _covered(dims, groups, group_shape)
    full = a.reshape(m, k).astype(np.float64) @ b.reshape(k, n).astype(np.float64)
    c.reshape(m, n)[:rows, :cols] += full[:rows, :cols].astype(np.float32)


def nan_impl(a, b, c, dims, groups, group_shape) -> None:
    c[:] = np.nan


DEFAULT_IMPLS: dict[str, KernelImpl] = {
    "sgemm_exact": exact_impl,
    "sgemm_drop_last_term": drop_last_term_impl,
    "sgemm_accumulate": accumulate_impl,
    "sgemm_nan": nan_impl,
}

KERNEL_SOURCE = "\n".join(
    f'extern "C" __global__ void {name}(const float* a, const float* b, float* c, const MatrixDims* dims) {{}}'
    for name in DEFAULT_IMPLS
)


@attrs.define(frozen=True, slots=True)
class HostProgram:
    source: str
    label: str


@attrs.define(frozen=True, slots=True)
class HostFunction:
    entry_point: str
    impl: KernelImpl


@attrs.define(frozen=True, slots=True)
class HostPipeline:
    function: HostFunction
    threads_per_group: int


class HostDevice:
    """In-memory stand-in for a GPU: buffers are numpy arrays, kernels are Python."""

    backend = "host"

    def __init__(
        self,
        kernels: dict[str, KernelImpl] | None = None,
        *,
        dispatch_cost_s: float = 0.0,
        max_threads_per_group: int = 1024,
    ) -> None:
        self.kernels = dict(DEFAULT_IMPLS if kernels is None else kernels)
        self.dispatch_cost_s = dispatch_cost_s
        self.max_threads_per_group = max_threads_per_group
        self.now = 0.0
        self.compiled: list[str] = []
        self.dispatches: list[tuple[GridSize, GridSize]] = []
        self.events: list[tuple[str, int]] = []

    def clock(self) -> float:
        return self.now

    def info(self) -> DeviceInfo:
        return DeviceInfo(name="Host Test Device", backend=self.backend, max_threads_per_group=self.max_threads_per_group)

    def compile_program(self, source: str, *, label: str) -> HostProgram:
        if "#error" in source:
            raise DriverError(f"{label}(1): error: #error directive")
        self.compiled.append(label)
        return HostProgram(source=source, label=label)

    def get_function(self, program: HostProgram, entry_point: str) -> HostFunction:
        if f"void {entry_point}(" not in program.source or entry_point not in self.kernels:
            raise DriverError(f"named symbol not found: {entry_point}")
        return HostFunction(entry_point=entry_point, impl=self.kernels[entry_point])

    def create_pipeline(self, function: HostFunction, *, threads_per_group: int) -> HostPipeline:
        if threads_per_group > self.max_threads_per_group:
            raise DriverError(f"{threads_per_group} threads per group exceeds {self.max_threads_per_group}")
        return HostPipeline(function=function, threads_per_group=threads_per_group)

    def new_buffer(
        self,
        count: int,
        *,
        dtype: Any = np.float32,
        host: np.ndarray | None = None,
        zeroed: bool = False,
    ) -> np.ndarray:
        if host is not None:
            if host.size != count:
                raise ValueError(f"host data has {host.size} elements, expected {count}")
            return np.array(host, dtype=dtype).reshape(-1)
        if zeroed:
            return np.zeros(count, dtype=dtype)
        # Uninitialised device memory.
        return np.full(count, 7, dtype=dtype)

    def read_buffer(self, buffer: np.ndarray) -> np.ndarray:
        return buffer.copy()

    def buffer_count(self, buffer: np.ndarray) -> int:
        return int(buffer.size)

    def zero_buffer(self, buffer: np.ndarray) -> None:
        self.events.append(("zero", id(buffer)))
        buffer.fill(0)

    def dispatch(self, pipeline: HostPipeline, *, groups: GridSize, group_shape: GridSize, bindings: Sequence[Any]) -> None:
        a, b, c, dims = bindings
        pipeline.function.impl(a, b, c, dims, groups, group_shape)
        self.dispatches.append((groups, group_shape))
        self.events.append(("dispatch", id(c)))
        self.now += self.dispatch_cost_s


@pytest.fixture
def host_device() -> HostDevice:
    return HostDevice()


@pytest.fixture
def kernel_source(tmp_path: Path) -> Path:
    path = tmp_path / "kernels.cu"
    path.write_text(KERNEL_SOURCE + "\n")
    return path


@pytest.fixture
def make_descriptor(kernel_source: Path) -> Callable[..., KernelDescriptor]:
    def _make(name: str, entry_point: str, tile: tuple[int, int] = (8, 8), source: Path | None = None) -> KernelDescriptor:
        return KernelDescriptor(
            name=name,
            source_location=kernel_source if source is None else source,
            entry_point=entry_point,
            tile_shape=TileShape(*tile),
        )

    return _make


@pytest.fixture
def make_device() -> Callable[..., HostDevice]:
    return HostDevice
