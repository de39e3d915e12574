"""
GPU device layer.

The harness talks to the GPU only through the `Device` protocol below:

- compile program source and resolve a named entry point
- build an executable pipeline from that entry point
- allocate device buffers (optionally from host data or zero-filled), read them
  back and zero them
- submit one dispatch and block until the device reports completion

`CupyDevice` implements the protocol on CUDA via CuPy (NVRTC compilation and
`RawKernel` launches). Tests substitute an in-memory host device.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import attrs
import numpy as np

from .errors import DriverError, NoDeviceAvailable

logger = logging.getLogger(__name__)

NVRTC_OPTIONS: tuple[str, ...] = ("--std=c++14",)


@attrs.define(frozen=True, slots=True)
class GridSize:
    width: int
    height: int
    depth: int = 1

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0 or self.depth == 0

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.width, self.height, self.depth)


@attrs.define(frozen=True, slots=True)
class DeviceInfo:
    name: str
    backend: str
    compute_capability: str | None = None
    total_memory_bytes: int | None = None
    multiprocessors: int | None = None
    max_threads_per_group: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_name": self.name,
            "backend": self.backend,
            "compute_capability": self.compute_capability,
            "total_memory_bytes": self.total_memory_bytes,
            "multiprocessors": self.multiprocessors,
            "max_threads_per_group": self.max_threads_per_group,
        }


class Device(Protocol):
    def info(self) -> DeviceInfo: ...

    def compile_program(self, source: str, *, label: str) -> Any: ...

    def get_function(self, program: Any, entry_point: str) -> Any: ...

    def create_pipeline(self, function: Any, *, threads_per_group: int) -> Any: ...

    def new_buffer(
        self,
        count: int,
        *,
        dtype: Any = np.float32,
        host: np.ndarray | None = None,
        zeroed: bool = False,
    ) -> Any: ...

    def read_buffer(self, buffer: Any) -> np.ndarray: ...

    def buffer_count(self, buffer: Any) -> int: ...

    def zero_buffer(self, buffer: Any) -> None: ...

    def dispatch(self, pipeline: Any, *, groups: GridSize, group_shape: GridSize, bindings: Sequence[Any]) -> None: ...


@attrs.define(frozen=True, slots=True)
class CupyPipeline:
    kernel: Any
    max_threads_per_group: int
    num_regs: int
    shared_size_bytes: int


class CupyDevice:
    """CUDA device driven through CuPy. One device, one (default) stream."""

    backend = "cupy"

    def __init__(self, device_id: int = 0) -> None:
        try:
            import cupy  # noqa: PLC0415
        except ImportError as e:
            raise NoDeviceAvailable("CuPy is not installed (install the `cuda` extra)") from e

        try:
            count = cupy.cuda.runtime.getDeviceCount()
        except cupy.cuda.runtime.CUDARuntimeError as e:
            raise NoDeviceAvailable(f"CUDA runtime unavailable: {e}") from e
        if count <= device_id:
            raise NoDeviceAvailable(f"No CUDA device with index {device_id} (found {count})")

        self._cp = cupy
        self._device_id = device_id
        self._device = cupy.cuda.Device(device_id)
        self._device.use()

    def info(self) -> DeviceInfo:
        props = self._cp.cuda.runtime.getDeviceProperties(self._device_id)
        name = props.get("name", b"unknown")
        if isinstance(name, bytes):
            name = name.decode(errors="replace")
        return DeviceInfo(
            name=str(name),
            backend=self.backend,
            compute_capability=f"{props.get('major', 0)}.{props.get('minor', 0)}",
            total_memory_bytes=int(props.get("totalGlobalMem", 0)),
            multiprocessors=int(props.get("multiProcessorCount", 0)),
            max_threads_per_group=int(props.get("maxThreadsPerBlock", 0)),
        )

    def compile_program(self, source: str, *, label: str) -> Any:
        module = self._cp.RawModule(code=source, options=NVRTC_OPTIONS)
        try:
            # RawModule compiles lazily; force it so failures surface here.
            module.compile()
        except self._cp.cuda.compiler.CompileException as e:
            raise DriverError(str(e)) from e
        logger.debug("Compiled %s", label)
        return module

    def get_function(self, program: Any, entry_point: str) -> Any:
        try:
            return program.get_function(entry_point)
        except self._cp.cuda.driver.CUDADriverError as e:
            raise DriverError(str(e)) from e

    def create_pipeline(self, function: Any, *, threads_per_group: int) -> CupyPipeline:
        try:
            limit = int(function.max_threads_per_block)
            num_regs = int(function.num_regs)
            shared = int(function.shared_size_bytes)
        except self._cp.cuda.driver.CUDADriverError as e:
            raise DriverError(str(e)) from e
        if threads_per_group > limit:
            raise DriverError(f"{threads_per_group} threads per group exceeds the kernel limit of {limit}")
        return CupyPipeline(kernel=function, max_threads_per_group=limit, num_regs=num_regs, shared_size_bytes=shared)

    def new_buffer(
        self,
        count: int,
        *,
        dtype: Any = np.float32,
        host: np.ndarray | None = None,
        zeroed: bool = False,
    ) -> Any:
        if host is not None:
            if host.size != count:
                raise ValueError(f"host data has {host.size} elements, expected {count}")
            return self._cp.asarray(host.reshape(-1), dtype=dtype)
        if zeroed:
            return self._cp.zeros(count, dtype=dtype)
        return self._cp.empty(count, dtype=dtype)

    def read_buffer(self, buffer: Any) -> np.ndarray:
        return self._cp.asnumpy(buffer)

    def buffer_count(self, buffer: Any) -> int:
        return int(buffer.size)

    def zero_buffer(self, buffer: Any) -> None:
        buffer.fill(0)

    def dispatch(self, pipeline: CupyPipeline, *, groups: GridSize, group_shape: GridSize, bindings: Sequence[Any]) -> None:
        pipeline.kernel(groups.as_tuple(), group_shape.as_tuple(), tuple(bindings))
        self._cp.cuda.get_current_stream().synchronize()


def open_device(device_id: int = 0) -> Device:
    return CupyDevice(device_id)
