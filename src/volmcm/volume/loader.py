"""Loading volumes and transfer functions from files.

Supported inputs:
    - Raw volumes: headerless 8-bit samples, x varying fastest.
    - Transfer functions: packed 8-bit RGBA bytes, or any image Pillow can
      open (the first row is used, left to right).
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Sequence

import numpy as np
from PIL import Image as PILImage

from volmcm.errors import ConfigurationError
from volmcm.volume.resources import DEFAULT_TRANSFER_FUNCTION, TransferFunction, VolumeDescriptor

logger = logging.getLogger(__name__)

# Extensions read through Pillow instead of as raw RGBA bytes
IMAGE_EXTENSIONS = {".png", ".bmp", ".gif", ".tif", ".tiff", ".jpg", ".jpeg"}


def infer_dimensions(sample_count: int) -> tuple[int, int, int]:
    """Guess (w, h, d) for a raw volume of unknown shape.

    Takes the cube root for width and height and puts whatever is left into
    depth.
    """
    if sample_count <= 0:
        raise ConfigurationError("Cannot infer dimensions of an empty volume", stage="volume")
    candidate = int(math.floor(round(sample_count ** (1.0 / 3.0), 6)))
    candidate = max(candidate, 1)
    depth = sample_count // (candidate * candidate)
    return (candidate, candidate, depth)


def load_raw_volume(
    path: str | Path,
    dimensions: Sequence[int] | None = None,
) -> VolumeDescriptor:
    """Read a raw 8-bit volume file.

    Args:
        path: File to read.
        dimensions: (w, h, d); inferred from the file size when omitted.

    Returns:
        The volume descriptor.

    Raises:
        ConfigurationError: If the file cannot be read or does not match
            the dimensions.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"Could not open volume {path}: {exc}", stage="volume") from exc

    data = np.frombuffer(raw, dtype=np.uint8)

    if dimensions is None:
        dims = infer_dimensions(data.size)
        logger.warning("No dimensions provided. Using %s as calculated dimensions.", list(dims))
        # Inferred depth can leave a remainder; drop it
        data = data[: dims[0] * dims[1] * dims[2]]
    else:
        dims = (int(dimensions[0]), int(dimensions[1]), int(dimensions[2]))

    logger.info("Loaded volume %s with dimensions %s", path, dims)
    return VolumeDescriptor(dims, data)


def load_transfer_function(path: str | Path | None) -> TransferFunction:
    """Read a transfer function, or return the default when ``path`` is None."""
    if path is None:
        return DEFAULT_TRANSFER_FUNCTION

    path = Path(path)
    try:
        if path.suffix.lower() in IMAGE_EXTENSIONS:
            with PILImage.open(path) as image:
                rgba = np.asarray(image.convert("RGBA"), dtype=np.uint8)
            return TransferFunction(rgba[0].astype(np.float32) / 255.0)
        return TransferFunction.from_bytes(path.read_bytes())
    except OSError as exc:
        raise ConfigurationError(
            f"Could not open transfer function {path}: {exc}", stage="transfer_function"
        ) from exc
