from __future__ import annotations

import logging
import time
from typing import Any

import attrs

from .device import Device
from .errors import (
    CompileError,
    DriverError,
    EntryPointNotFound,
    PipelineCreationError,
    SourceUnavailable,
)
from .registry import KernelDescriptor, KernelRegistry, resolve_source

logger = logging.getLogger(__name__)


@attrs.define(frozen=True, slots=True)
class CompiledPipeline:
    descriptor: KernelDescriptor
    handle: Any
    build_time_s: float = 0.0

    @property
    def name(self) -> str:
        return self.descriptor.name


PipelineMap = dict[str, CompiledPipeline]


def load_source(descriptor: KernelDescriptor) -> str:
    path = resolve_source(descriptor)
    try:
        return path.read_text()
    except (OSError, UnicodeDecodeError) as e:
        raise SourceUnavailable(descriptor.name, f"cannot read kernel source {path}: {e}") from e


def build_pipeline(device: Device, descriptor: KernelDescriptor) -> CompiledPipeline:
    """Load, compile, resolve and build one kernel variant.

    Raises the step-specific `KernelBuildError` subclass on failure.
    """
    t0 = time.perf_counter()
    source = load_source(descriptor)

    try:
        program = device.compile_program(source, label=descriptor.name)
    except DriverError as e:
        raise CompileError(descriptor.name, str(e)) from e

    try:
        function = device.get_function(program, descriptor.entry_point)
    except DriverError as e:
        raise EntryPointNotFound(
            descriptor.name, f"entry point {descriptor.entry_point!r} not found: {e}"
        ) from e

    try:
        handle = device.create_pipeline(function, threads_per_group=descriptor.tile_shape.threads)
    except DriverError as e:
        raise PipelineCreationError(descriptor.name, f"failed to create compute pipeline: {e}") from e

    elapsed = time.perf_counter() - t0
    logger.info(
        "Built %s (%s, tile %s) in %.3fs",
        descriptor.name,
        descriptor.entry_point,
        descriptor.tile_shape.to_label(),
        elapsed,
    )
    return CompiledPipeline(descriptor=descriptor, handle=handle, build_time_s=elapsed)


def build_pipelines(device: Device, registry: KernelRegistry) -> PipelineMap:
    pipelines: PipelineMap = {}
    for descriptor in registry:
        pipelines[descriptor.name] = build_pipeline(device, descriptor)
    return pipelines
