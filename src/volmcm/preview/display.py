"""Tone mapping and quantization of rendered radiance.

The display pipeline always runs in this order:

1. Levels: remap through (low, mid, high) tone levels
2. Saturation: blend each pixel toward its luminance
3. Gamma: ``out = in^(1/gamma)``

followed by quantization to 8 bits with ``clamp(round(v * 255), 0, 255)``.
Changing the order changes the result, so callers only ever go through
``tone_map``.

Example:
    >>> from volmcm.preview.display import ToneMapSettings, image_to_uint8
    >>> settings = ToneMapSettings(levels=(0.0, 0.4, 1.0), gamma=2.2)
    >>> pixels = image_to_uint8(radiance, settings)
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from volmcm.errors import ConfigurationError

# Rec. 709 luma weights
LUMINANCE_WEIGHTS = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)

IDENTITY_LEVELS = (0.0, 0.5, 1.0)


@dataclass(frozen=True)
class ToneMapSettings:
    """Display adjustments applied after readback.

    Attributes:
        levels: (low, mid, high) input levels with low < mid < high. The
            default (0, 0.5, 1) leaves values unchanged.
        saturation: 0 is greyscale, 1 unchanged, above 1 more saturated.
        gamma: Display gamma; 1 is linear.
    """

    levels: tuple[float, float, float] = IDENTITY_LEVELS
    saturation: float = 1.0
    gamma: float = 1.0

    def __post_init__(self) -> None:
        levels = tuple(float(v) for v in self.levels)
        if len(levels) != 3:
            raise ConfigurationError(f"levels needs (low, mid, high), got {self.levels}", stage="tone_map")
        low, mid, high = levels
        if not low < mid < high:
            raise ConfigurationError(
                f"levels must satisfy low < mid < high, got {levels}", stage="tone_map"
            )
        if not math.isfinite(self.saturation) or self.saturation < 0.0:
            raise ConfigurationError(
                f"saturation must be non-negative, got {self.saturation}", stage="tone_map"
            )
        if not math.isfinite(self.gamma) or self.gamma <= 0.0:
            raise ConfigurationError(f"gamma must be positive, got {self.gamma}", stage="tone_map")
        object.__setattr__(self, "levels", levels)

    @property
    def is_identity(self) -> bool:
        return self.levels == IDENTITY_LEVELS and self.saturation == 1.0 and self.gamma == 1.0


def apply_levels(
    image: npt.NDArray[np.float32],
    levels: tuple[float, float, float] = IDENTITY_LEVELS,
) -> npt.NDArray[np.float32]:
    """Remap values through (low, mid, high) tone levels.

    Values are normalized so ``low`` maps to 0 and ``high`` to 1 (values
    below ``low`` clamp to 0), then bent by a power curve that sends ``mid``
    to 0.5.

    Args:
        image: Linear image array of shape (H, W, 3).
        levels: (low, mid, high).

    Returns:
        Remapped image.
    """
    if tuple(levels) == IDENTITY_LEVELS:
        return image

    low, mid, high = levels
    normalized = np.maximum((image - low) / (high - low), 0.0)
    exponent = math.log(0.5) / math.log((mid - low) / (high - low))
    return np.power(normalized, exponent).astype(np.float32)


def apply_saturation(
    image: npt.NDArray[np.float32],
    saturation: float = 1.0,
) -> npt.NDArray[np.float32]:
    """Scale chroma by blending each pixel toward its luminance."""
    if saturation == 1.0:
        return image

    luminance = np.tensordot(image, LUMINANCE_WEIGHTS, axes=([-1], [0]))[..., np.newaxis]
    result = luminance + saturation * (image - luminance)
    return result.astype(np.float32)


def apply_gamma(
    image: npt.NDArray[np.float32],
    gamma: float = 2.2,
) -> npt.NDArray[np.float32]:
    """Apply gamma correction for display.

    Args:
        image: Image array of shape (H, W, 3).
        gamma: Gamma value (2.2 for sRGB-like output).

    Returns:
        Gamma corrected image.
    """
    if gamma == 1.0:
        return image

    # Clamp to [0, 1] before gamma to avoid NaN from negative values
    image = np.clip(image, 0.0, 1.0)
    return np.power(image, 1.0 / gamma).astype(np.float32)


def tone_map(
    image: npt.NDArray[np.float32],
    settings: ToneMapSettings | None = None,
) -> npt.NDArray[np.float32]:
    """Run levels, saturation and gamma in that order.

    Args:
        image: Linear RGB radiance of shape (H, W, 3).
        settings: Adjustments; None leaves the image unchanged.

    Returns:
        Adjusted float32 image (not clamped).
    """
    result = np.asarray(image, dtype=np.float32)
    if settings is None or settings.is_identity:
        return result

    result = apply_levels(result, settings.levels)
    result = apply_saturation(result, settings.saturation)
    result = apply_gamma(result, settings.gamma)
    return result


def quantize(image: npt.NDArray[np.floating]) -> npt.NDArray[np.uint8]:
    """Convert to bytes with ``clamp(round(v * 255), 0, 255)``.

    Out-of-range values clamp rather than wrap; NaN becomes 0.
    """
    scaled = np.round(np.nan_to_num(np.asarray(image, dtype=np.float64), nan=0.0) * 255.0)
    return np.clip(scaled, 0.0, 255.0).astype(np.uint8)


def image_to_uint8(
    image: npt.NDArray[np.float32],
    settings: ToneMapSettings | None = None,
) -> npt.NDArray[np.uint8]:
    """Tone map and quantize a linear image.

    Returns:
        8-bit image array of shape (H, W, 3).
    """
    return quantize(tone_map(image, settings))
