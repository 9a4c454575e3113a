"""Read-only volume and transfer-function inputs.

A ``VolumeDescriptor`` holds raw density samples for a w x h x d grid in
x-fastest order (the layout of a raw volume file). A ``TransferFunction`` is
an ordered list of RGBA entries looked up by normalized density. Both are
immutable for the whole render and are bound into every simulation pass
without copying back.

Example:
    >>> import numpy as np
    >>> from volmcm.volume.resources import TransferFunction, VolumeDescriptor
    >>> volume = VolumeDescriptor((4, 4, 4), np.zeros(64, dtype=np.uint8))
    >>> tf = TransferFunction.from_bytes(bytes([0, 0, 0, 0, 255, 255, 255, 255]))
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
import numpy.typing as npt

from volmcm.errors import ConfigurationError


@dataclass(frozen=True, eq=False)
class VolumeDescriptor:
    """Density grid of size ``dimensions = (width, height, depth)``.

    Attributes:
        dimensions: Grid size (w, h, d); every entry must be positive.
        data: Flat density samples, length w*h*d, x varying fastest.
            Integer samples are normalized by their dtype maximum; float
            samples are taken as already normalized and clipped to [0, 1].
    """

    dimensions: tuple[int, int, int]
    data: npt.NDArray = field(repr=False)

    def __post_init__(self) -> None:
        if len(self.dimensions) != 3:
            raise ConfigurationError(
                f"Volume dimensions need 3 entries, got {self.dimensions}", stage="volume"
            )
        dims = tuple(int(d) for d in self.dimensions)
        if any(d <= 0 for d in dims):
            raise ConfigurationError(f"Volume dimensions must be positive, got {dims}", stage="volume")

        data = np.asarray(self.data).reshape(-1)
        expected = dims[0] * dims[1] * dims[2]
        if data.size != expected:
            raise ConfigurationError(
                f"Volume has {data.size} samples but dimensions {dims} need {expected}",
                stage="volume",
            )

        object.__setattr__(self, "dimensions", dims)
        object.__setattr__(self, "data", data)

    @classmethod
    def from_array(cls, grid: npt.NDArray) -> VolumeDescriptor:
        """Build from an array indexed ``[x, y, z]``."""
        grid = np.asarray(grid)
        if grid.ndim != 3:
            raise ConfigurationError(f"Expected a 3D array, got {grid.ndim}D", stage="volume")
        w, h, d = grid.shape
        # Flatten with x fastest, matching raw volume files
        return cls((w, h, d), np.transpose(grid, (2, 1, 0)).reshape(-1))

    @property
    def voxel_count(self) -> int:
        return self.dimensions[0] * self.dimensions[1] * self.dimensions[2]

    def normalized_grid(self) -> npt.NDArray[np.float32]:
        """Densities in [0, 1] as a float32 array indexed ``[x, y, z]``."""
        w, h, d = self.dimensions
        if np.issubdtype(self.data.dtype, np.integer):
            scale = float(np.iinfo(self.data.dtype).max)
            values = self.data.astype(np.float32) / scale
        else:
            values = np.clip(self.data.astype(np.float32), 0.0, 1.0)
        grid = values.reshape(d, h, w)
        return np.ascontiguousarray(np.transpose(grid, (2, 1, 0)))


@dataclass(frozen=True, eq=False)
class TransferFunction:
    """Ordered RGBA lookup table indexed by normalized density.

    Attributes:
        entries: Float array of shape (N, 4), values in [0, 1]; N >= 1.
    """

    entries: npt.NDArray[np.float32] = field(repr=False)

    def __post_init__(self) -> None:
        entries = np.asarray(self.entries)
        if entries.size == 0:
            raise ConfigurationError("Transfer function is empty", stage="transfer_function")
        if entries.ndim != 2 or entries.shape[1] != 4:
            raise ConfigurationError(
                f"Transfer function needs shape (N, 4), got {entries.shape}",
                stage="transfer_function",
            )
        entries = np.clip(entries.astype(np.float32), 0.0, 1.0)
        object.__setattr__(self, "entries", entries)

    @classmethod
    def from_rgba(cls, colors: Sequence[Sequence[float]]) -> TransferFunction:
        """Build from float RGBA tuples in [0, 1]."""
        return cls(np.array(colors, dtype=np.float32).reshape(-1, 4))

    @classmethod
    def from_bytes(cls, raw: bytes) -> TransferFunction:
        """Build from packed 8-bit RGBA bytes (length a multiple of 4)."""
        if len(raw) == 0 or len(raw) % 4 != 0:
            raise ConfigurationError(
                f"Transfer function byte length must be a positive multiple of 4, got {len(raw)}",
                stage="transfer_function",
            )
        values = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 4)
        return cls(values.astype(np.float32) / 255.0)

    def __len__(self) -> int:
        return int(self.entries.shape[0])

    def sample(self, density: npt.ArrayLike) -> npt.NDArray[np.float32]:
        """Look up RGBA for normalized densities with linear interpolation.

        Mirrors the lookup done on the device; entries are spread evenly
        over [0, 1].

        Args:
            density: Scalar or array of densities (clipped to [0, 1]).

        Returns:
            Array of shape ``density.shape + (4,)``.
        """
        d = np.clip(np.asarray(density, dtype=np.float32), 0.0, 1.0)
        n = len(self)
        if n == 1:
            return np.broadcast_to(self.entries[0], d.shape + (4,)).astype(np.float32)
        positions = np.linspace(0.0, 1.0, n, dtype=np.float32)
        channels = [np.interp(d, positions, self.entries[:, c]) for c in range(4)]
        return np.stack(channels, axis=-1).astype(np.float32)


# Transparent black at zero density ramping to opaque red at full density
DEFAULT_TRANSFER_FUNCTION = TransferFunction.from_bytes(bytes([0, 0, 0, 0, 255, 0, 0, 255]))
