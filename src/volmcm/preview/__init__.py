"""Preview module for output.

Components:
    display: Levels, saturation and gamma tone mapping, 8-bit quantization
    export: PNG/PPM image export and RMSE comparison

Example:
    >>> from volmcm.preview import ToneMapSettings, image_to_uint8, save_image
    >>> pixels = image_to_uint8(radiance, ToneMapSettings(gamma=2.2))
    >>> save_image(pixels, "render.png")
"""

from volmcm.preview.display import (
    ToneMapSettings,
    apply_gamma,
    apply_levels,
    apply_saturation,
    image_to_uint8,
    quantize,
    tone_map,
)
from volmcm.preview.export import compute_rmse, save_image

__all__ = [
    # Tone mapping
    "ToneMapSettings",
    "apply_levels",
    "apply_saturation",
    "apply_gamma",
    "tone_map",
    # Quantization
    "quantize",
    "image_to_uint8",
    # Export
    "save_image",
    "compute_rmse",
]
