"""Image export utilities.

Supported formats, chosen by file extension:
    - PNG (8-bit RGB via Pillow)
    - PPM (binary P6 via Pillow)

Example:
    >>> from volmcm.preview.export import save_image
    >>> save_image(output, "render.png")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage

from volmcm.errors import ConfigurationError

if TYPE_CHECKING:
    from volmcm.core.renderer import OutputImage

logger = logging.getLogger(__name__)

# Extension -> Pillow format name
IMAGE_FORMATS = {
    ".png": "PNG",
    ".ppm": "PPM",
}


def save_image(image: OutputImage | npt.NDArray[np.uint8], filepath: str | Path) -> Path:
    """Write an 8-bit RGB image to disk.

    Args:
        image: An ``OutputImage`` or a uint8 array of shape (H, W, 3).
        filepath: Output path ending in .png or .ppm.

    Returns:
        The path written.

    Raises:
        ConfigurationError: If the extension is not supported or the array
            is not (H, W, 3) uint8.
    """
    path = Path(filepath)
    fmt = IMAGE_FORMATS.get(path.suffix.lower())
    if fmt is None:
        raise ConfigurationError(
            f"Unsupported output format {path.suffix!r} (use .png or .ppm)", stage="export"
        )

    pixels = getattr(image, "pixels", image)
    pixels = np.asarray(pixels)
    if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] != 3:
        raise ConfigurationError(
            f"Expected a uint8 (H, W, 3) image, got {pixels.dtype} {pixels.shape}", stage="export"
        )

    PILImage.fromarray(pixels).save(path, format=fmt)
    logger.info("Wrote %dx%d %s to %s", pixels.shape[1], pixels.shape[0], fmt, path)
    return path


def compute_rmse(
    image_a: npt.NDArray[np.floating[npt.NBitBase]],
    image_b: npt.NDArray[np.floating[npt.NBitBase]],
) -> float:
    """Compute root mean squared error between two images.

    Args:
        image_a: First image array.
        image_b: Second image array (must have same shape as image_a).

    Returns:
        RMSE value (lower is more similar).

    Raises:
        ValueError: If image shapes don't match.
    """
    if image_a.shape != image_b.shape:
        raise ValueError(f"Image shapes must match: {image_a.shape} vs {image_b.shape}")

    diff = np.asarray(image_a, dtype=np.float64) - np.asarray(image_b, dtype=np.float64)
    return float(np.sqrt(np.mean(diff**2)))
