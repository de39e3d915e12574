from __future__ import annotations

import numpy as np

from .device import Device
from .fixtures import MatrixFixture
from .pipeline import CompiledPipeline
from .registry import ceil_div

__all__ = ["ceil_div", "dispatch", "validate_fixture"]

# Kernel-agnostic argument slots.
SLOT_A = 0
SLOT_B = 1
SLOT_C = 2
SLOT_DIMS = 3


def validate_fixture(device: Device, fixture: MatrixFixture) -> None:
    """Check buffer shapes and contents of the dims block against `fixture.dims`.

    Reads the dims block back from the device, so callers that dispatch the
    same fixture in a timed loop validate once up front.
    """
    dims = fixture.dims
    expected = {
        "A": ((dims.m, dims.k), fixture.a),
        "B": ((dims.k, dims.n), fixture.b),
        "C": ((dims.m, dims.n), fixture.c),
    }
    for role, ((rows, cols), mat) in expected.items():
        if (mat.rows, mat.cols) != (rows, cols):
            raise ValueError(
                f"{role} is {mat.rows}x{mat.cols} ({mat.count} elements) but dims {dims.to_label()} require {rows}x{cols}"
            )
        actual = device.buffer_count(mat.handle)
        if actual != mat.count:
            raise ValueError(f"{role} buffer holds {actual} elements but is declared {mat.rows}x{mat.cols}")

    stored = device.read_buffer(fixture.dims_buffer)
    if not np.array_equal(stored, dims.to_array()):
        raise ValueError(f"dims buffer holds {stored.tolist()} but fixture dims are {dims.to_label()}")


def dispatch(device: Device, pipeline: CompiledPipeline, fixture: MatrixFixture, *, validate: bool = True) -> None:
    """Run one multiply of `pipeline` over `fixture` and wait for completion."""
    if validate:
        validate_fixture(device, fixture)
    descriptor = pipeline.descriptor
    groups = descriptor.grid_for(fixture.dims)
    if groups.is_empty:
        return

    bindings = [None] * 4
    bindings[SLOT_A] = fixture.a.handle
    bindings[SLOT_B] = fixture.b.handle
    bindings[SLOT_C] = fixture.c.handle
    bindings[SLOT_DIMS] = fixture.dims_buffer
    device.dispatch(pipeline.handle, groups=groups, group_shape=descriptor.group_shape(), bindings=bindings)
