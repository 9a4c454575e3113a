"""Compute-engine boundary used by the scheduler.

The scheduler never touches device APIs directly. It talks to an engine
through four calls:

    allocate(spec)                      -> DeviceBuffer
    upload(buffer, array)
    readback(buffer)                    -> numpy array (blocking)
    run_kernel(name, domain, bindings)  one data-parallel pass, synchronous

Bindings are typed per kernel (see ``volmcm.engine.bindings``) and are
validated when the kernel is launched rather than matched by position.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import numpy as np
import numpy.typing as npt

ScalarType = Literal["f32", "i32"]

NUMPY_DTYPES: dict[str, type[np.generic]] = {
    "f32": np.float32,
    "i32": np.int32,
}


@dataclass(frozen=True)
class BufferSpec:
    """Shape and element type of a device buffer.

    Attributes:
        name: Label used in logs and error messages.
        shape: Array shape, excluding the channel axis.
        dtype: Element scalar type.
        channels: 1 for scalars, 4 for RGBA / homogeneous vectors.
    """

    name: str
    shape: tuple[int, ...]
    dtype: ScalarType = "f32"
    channels: int = 1

    def __post_init__(self) -> None:
        if self.dtype not in NUMPY_DTYPES:
            raise ValueError(f"Unsupported buffer dtype: {self.dtype}")
        if self.channels not in (1, 4):
            raise ValueError(f"Buffers hold 1 or 4 channels, got {self.channels}")
        if not self.shape or any(int(n) <= 0 for n in self.shape):
            raise ValueError(f"Buffer shape must be non-empty and positive, got {self.shape}")

    @property
    def host_shape(self) -> tuple[int, ...]:
        """Shape of the matching NumPy array (channel axis appended)."""
        if self.channels == 1:
            return tuple(self.shape)
        return tuple(self.shape) + (self.channels,)

    @property
    def numpy_dtype(self) -> type[np.generic]:
        return NUMPY_DTYPES[self.dtype]

    @property
    def nbytes(self) -> int:
        return int(np.prod(self.host_shape)) * np.dtype(self.numpy_dtype).itemsize


@dataclass(frozen=True, eq=False)
class DeviceBuffer:
    """Handle to engine-owned storage.

    Attributes:
        spec: Layout of the buffer.
        array: Backend object (a ``ti.ndarray`` for the Taichi engine).
    """

    spec: BufferSpec
    array: Any = field(repr=False)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def shape(self) -> tuple[int, ...]:
        return self.spec.shape


class ComputeEngine(Protocol):
    """What the scheduler needs from a compute backend."""

    def allocate(self, spec: BufferSpec) -> DeviceBuffer: ...

    def upload(self, buffer: DeviceBuffer, data: npt.ArrayLike) -> None: ...

    def readback(self, buffer: DeviceBuffer) -> npt.NDArray: ...

    def run_kernel(self, name: str, domain: tuple[int, int], bindings: Any) -> None: ...
