"""Double-buffered per-pixel photon state.

Each output pixel owns one photon. Its state is split over six device
arrays, one generation holding:

    position       vec4  homogeneous position in volume space (w = 1)
    direction      vec4  unit direction (w = 0)
    transmittance  vec4  RGB attenuation along the current path
    radiance       vec4  running mean of finished path contributions
    samples        i32   number of finished paths
    bounces        i32   scattering events on the current path

Two generations exist. Every simulation step reads one and writes the
other; the pair is kept in a two-element list and always addressed by
``iteration % 2`` so there is no per-parity code path.

The arrays are ``(stride, height)`` where ``stride`` is the width rounded up
to the execution alignment. Columns beyond the logical width are padding and
are stripped on readback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from volmcm.engine.base import BufferSpec, ComputeEngine, DeviceBuffer

logger = logging.getLogger(__name__)

# Default alignment of the execution domain along x
WORKGROUP_GRID_SIZE = 8

# Number of photon generations (ping-pong)
GENERATION_COUNT = 2


def padded_stride(width: int, alignment: int = WORKGROUP_GRID_SIZE) -> int:
    """Round ``width`` up to a multiple of ``alignment``."""
    return ((width + alignment - 1) // alignment) * alignment


def source_generation(iteration: int) -> int:
    """Generation read by step ``iteration``."""
    return iteration % GENERATION_COUNT


def target_generation(iteration: int) -> int:
    """Generation written by step ``iteration``."""
    return (iteration + 1) % GENERATION_COUNT


def final_generation(iterations: int) -> int:
    """Generation holding final data after ``iterations`` steps."""
    return iterations % GENERATION_COUNT


@dataclass(frozen=True)
class PhotonGeneration:
    """One full set of photon arrays."""

    index: int
    position: DeviceBuffer
    direction: DeviceBuffer
    transmittance: DeviceBuffer
    radiance: DeviceBuffer
    samples: DeviceBuffer
    bounces: DeviceBuffer

    @property
    def shape(self) -> tuple[int, ...]:
        return self.position.shape

    def buffers(self) -> dict[str, DeviceBuffer]:
        return {
            "position": self.position,
            "direction": self.direction,
            "transmittance": self.transmittance,
            "radiance": self.radiance,
            "samples": self.samples,
            "bounces": self.bounces,
        }


class PhotonStateStore:
    """Owns both photon generations for one render.

    Attributes:
        width: Logical image width in pixels.
        height: Image height in pixels.
        stride: Padded width used as the execution domain.
    """

    def __init__(
        self,
        engine: ComputeEngine,
        width: int,
        height: int,
        alignment: int = WORKGROUP_GRID_SIZE,
    ) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Photon store needs a positive size, got {width}x{height}")

        self._engine = engine
        self.width = width
        self.height = height
        self.stride = padded_stride(width, alignment)

        self._generations = [self._allocate_generation(g) for g in range(GENERATION_COUNT)]

        logger.debug(
            "Allocated %d photon generations of %dx%d (logical width %d)",
            GENERATION_COUNT,
            self.stride,
            self.height,
            self.width,
        )

    def _allocate_generation(self, index: int) -> PhotonGeneration:
        shape = (self.stride, self.height)

        def vec4(name: str) -> DeviceBuffer:
            return self._engine.allocate(BufferSpec(f"{name}[{index}]", shape, "f32", 4))

        def counter(name: str) -> DeviceBuffer:
            return self._engine.allocate(BufferSpec(f"{name}[{index}]", shape, "i32", 1))

        return PhotonGeneration(
            index=index,
            position=vec4("position"),
            direction=vec4("direction"),
            transmittance=vec4("transmittance"),
            radiance=vec4("radiance"),
            samples=counter("samples"),
            bounces=counter("bounces"),
        )

    @property
    def domain(self) -> tuple[int, int]:
        """Execution domain (padded width, height)."""
        return (self.stride, self.height)

    def generation(self, index: int) -> PhotonGeneration:
        return self._generations[index % GENERATION_COUNT]

    def read_generation(self, index: int) -> dict[str, npt.NDArray]:
        """Copy every array of a generation back to the host (padding kept)."""
        gen = self.generation(index)
        return {name: self._engine.readback(buf) for name, buf in gen.buffers().items()}

    def read_radiance(self, index: int) -> npt.NDArray[np.float32]:
        """Linear RGB radiance of a generation as an image.

        Strips padding columns and converts from the device layout
        ``(x, y)`` with y pointing up to image layout ``(row, column)`` with
        row 0 at the top.

        Returns:
            Array of shape (height, width, 3), dtype float32.
        """
        radiance = self._engine.readback(self.generation(index).radiance)
        active = radiance[: self.width, : self.height, :3]
        image = np.flipud(np.transpose(active, (1, 0, 2)))
        return np.ascontiguousarray(image, dtype=np.float32)

    def __repr__(self) -> str:
        return f"PhotonStateStore(width={self.width}, height={self.height}, stride={self.stride})"
