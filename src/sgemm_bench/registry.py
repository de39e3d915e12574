"""SGEMM kernel variants.

Every variant implements the same CUDA contract:

    struct MatrixDims { unsigned int m, n, k; };
    extern "C" __global__ void <entry_point>(
        const float* a, const float* b, float* c, const MatrixDims* dims);

with one thread per element of C, launched in `tile_shape` thread groups.
Add a variant by appending a descriptor to `DEFAULT_KERNELS`.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path

import attrs

from .config import MatrixDims
from .device import GridSize

KERNEL_SOURCE_DIR = Path(__file__).resolve().parent / "cuda"


def ceil_div(num: int, denom: int) -> int:
    # A zero tile dimension yields an empty (degenerate) dispatch.
    if denom == 0:
        return 0
    return (num + denom - 1) // denom


@attrs.define(frozen=True, slots=True)
class TileShape:
    width: int
    height: int

    @property
    def threads(self) -> int:
        return self.width * self.height

    def to_label(self) -> str:
        return f"{self.width}x{self.height}"


@attrs.define(frozen=True, slots=True)
class KernelDescriptor:
    name: str
    source_location: Path = attrs.field(converter=Path)
    entry_point: str
    tile_shape: TileShape

    def grid_for(self, dims: MatrixDims) -> GridSize:
        """Thread groups covering the m x n output: columns along x, rows along y."""
        return GridSize(
            width=ceil_div(dims.n, self.tile_shape.width),
            height=ceil_div(dims.m, self.tile_shape.height),
            depth=1,
        )

    def group_shape(self) -> GridSize:
        return GridSize(width=self.tile_shape.width, height=self.tile_shape.height, depth=1)

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "source": str(self.source_location),
            "entry_point": self.entry_point,
            "tile_shape": self.tile_shape.to_label(),
        }


def resolve_source(descriptor: KernelDescriptor) -> Path:
    if descriptor.source_location.is_absolute():
        return descriptor.source_location
    return KERNEL_SOURCE_DIR / descriptor.source_location


class KernelRegistry:
    """Immutable, ordered set of kernel descriptors keyed by name."""

    def __init__(self, descriptors: Iterable[KernelDescriptor]) -> None:
        items = tuple(descriptors)
        seen: set[str] = set()
        for d in items:
            if d.name in seen:
                raise ValueError(f"Duplicate kernel name: {d.name!r}")
            seen.add(d.name)
        self._descriptors = items

    def __iter__(self) -> Iterator[KernelDescriptor]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def names(self) -> list[str]:
        return [d.name for d in self._descriptors]

    def get(self, name: str) -> KernelDescriptor:
        for d in self._descriptors:
            if d.name == name:
                return d
        raise KeyError(f"Unknown kernel={name!r}. Known: {self.names()}")

    def select(self, names: Iterable[str]) -> "KernelRegistry":
        wanted = list(names)
        for name in wanted:
            self.get(name)
        return KernelRegistry(d for d in self._descriptors if d.name in wanted)


DEFAULT_KERNELS: tuple[KernelDescriptor, ...] = (
    KernelDescriptor(
        name="naive_8x8",
        source_location=Path("sgemm_naive.cu"),
        entry_point="sgemm_naive",
        tile_shape=TileShape(8, 8),
    ),
    KernelDescriptor(
        name="naive_16x16",
        source_location=Path("sgemm_naive.cu"),
        entry_point="sgemm_naive",
        tile_shape=TileShape(16, 16),
    ),
    # Shared-memory kernels hard-code their tile edge; tile_shape must match it.
    KernelDescriptor(
        name="tiled_16x16",
        source_location=Path("sgemm_tiled.cu"),
        entry_point="sgemm_tiled_16",
        tile_shape=TileShape(16, 16),
    ),
    KernelDescriptor(
        name="tiled_32x32",
        source_location=Path("sgemm_tiled.cu"),
        entry_point="sgemm_tiled_32",
        tile_shape=TileShape(32, 32),
    ),
)


def default_registry() -> KernelRegistry:
    return KernelRegistry(DEFAULT_KERNELS)
