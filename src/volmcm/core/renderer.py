"""Top-level render entry point.

``render`` ties the pieces together: it derives the combined inverse camera
transform once, runs the iteration scheduler on the given engine and turns
the final radiance into an 8-bit RGB image.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from volmcm.core.config import RenderParameters
    >>> from volmcm.core.renderer import render
    >>> params = RenderParameters(width=128, height=128, iterations=20, seed=1)
    >>> output = render(params, volume, DEFAULT_TRANSFER_FUNCTION, camera)
    >>> output.pixels.shape
    (128, 128, 3)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt

from volmcm.camera.perspective import Camera, combined_inverse_transform
from volmcm.core.config import RenderParameters
from volmcm.core.math3d import Matrix4
from volmcm.core.scheduler import IterationScheduler, ProgressCallback
from volmcm.engine.base import ComputeEngine
from volmcm.engine.taichi_engine import TaichiEngine
from volmcm.preview.display import ToneMapSettings, image_to_uint8
from volmcm.volume.resources import TransferFunction, VolumeDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class OutputImage:
    """Rendered 8-bit RGB image.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        pixels: uint8 array of shape (height, width, 3), row 0 at the top.
        radiance: Linear radiance the pixels were derived from.
    """

    width: int
    height: int
    pixels: npt.NDArray[np.uint8] = field(repr=False)
    radiance: npt.NDArray[np.float32] | None = field(default=None, repr=False)

    def tobytes(self) -> bytes:
        """Row-major RGB byte triples."""
        return np.ascontiguousarray(self.pixels).tobytes()


def render(
    params: RenderParameters,
    volume: VolumeDescriptor,
    transfer_function: TransferFunction,
    camera: Camera,
    *,
    engine: ComputeEngine | None = None,
    tone_map: ToneMapSettings | None = None,
    model_matrix: Matrix4 | None = None,
    callback: ProgressCallback | None = None,
) -> OutputImage:
    """Render a volume to an 8-bit RGB image.

    Args:
        params: Render parameters.
        volume: Density grid.
        transfer_function: RGBA lookup by normalized density.
        camera: Camera with refreshed matrices (``update_matrices()``).
        engine: Compute engine; a new ``TaichiEngine`` when omitted.
        tone_map: Display adjustments; None leaves radiance unchanged.
        model_matrix: Volume placement; defaults to the unit cube centred
            on the origin.
        callback: Receives (completed, total) iterations after each step.

    Returns:
        The rendered image.

    Raises:
        ConfigurationError: If the camera transform is not invertible.
        ResourceError: If the engine fails.
    """
    unproject = combined_inverse_transform(camera, model_matrix)

    if engine is None:
        engine = TaichiEngine()

    start = time.perf_counter()
    scheduler = IterationScheduler(engine, params, volume, transfer_function, unproject)
    radiance = scheduler.run(callback)
    elapsed = time.perf_counter() - start
    logger.info("Rendered %d iterations in %.2fs", params.iterations, elapsed)

    return OutputImage(
        width=params.width,
        height=params.height,
        pixels=image_to_uint8(radiance, tone_map),
        radiance=radiance,
    )
