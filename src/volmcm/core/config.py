"""Render parameters.

``RenderParameters`` collects every scalar the scheduler feeds into the
simulation passes. It validates itself on construction so that bad input is
rejected before any device memory is allocated.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from volmcm.core.photon_state import WORKGROUP_GRID_SIZE
from volmcm.errors import ConfigurationError

DEFAULT_EXTINCTION = 100.0
DEFAULT_ANISOTROPY = 0.0
DEFAULT_MAX_BOUNCES = 8
DEFAULT_STEPS = 100


@dataclass(frozen=True)
class RenderParameters:
    """Parameters of one render.

    Attributes:
        width: Output width in pixels.
        height: Output height in pixels.
        iterations: Number of simulation passes (STEP count); 0 is allowed.
        extinction: Interaction density per unit length of the volume.
        anisotropy: Henyey-Greenstein g in [-1, 1].
        max_bounces: Scattering events allowed per path.
        steps: Collision events simulated per pixel in each pass.
        linear_filter: Trilinear volume sampling instead of nearest.
        environment: RGB light reaching photons that leave the volume.
        seed: Seed for the per-pass random seeds; None draws fresh entropy.
        alignment: Padding multiple for the execution width.
    """

    width: int
    height: int
    iterations: int = 1
    extinction: float = DEFAULT_EXTINCTION
    anisotropy: float = DEFAULT_ANISOTROPY
    max_bounces: int = DEFAULT_MAX_BOUNCES
    steps: int = DEFAULT_STEPS
    linear_filter: bool = False
    environment: tuple[float, float, float] = field(default=(1.0, 1.0, 1.0))
    seed: int | None = None
    alignment: int = WORKGROUP_GRID_SIZE

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ConfigurationError(
                f"Output resolution must be at least 1x1, got {self.width}x{self.height}"
            )
        if self.iterations < 0:
            raise ConfigurationError(f"iterations must be >= 0, got {self.iterations}")
        if not math.isfinite(self.extinction) or self.extinction <= 0.0:
            raise ConfigurationError(f"extinction must be positive, got {self.extinction}")
        if not -1.0 <= self.anisotropy <= 1.0:
            raise ConfigurationError(f"anisotropy must be in [-1, 1], got {self.anisotropy}")
        if self.max_bounces < 0:
            raise ConfigurationError(f"max_bounces must be >= 0, got {self.max_bounces}")
        if self.steps < 1:
            raise ConfigurationError(f"steps must be >= 1, got {self.steps}")
        if self.alignment < 1:
            raise ConfigurationError(f"alignment must be >= 1, got {self.alignment}")

        environment = tuple(float(c) for c in self.environment)
        if len(environment) != 3 or any(not math.isfinite(c) or c < 0.0 for c in environment):
            raise ConfigurationError(
                f"environment must be three non-negative floats, got {self.environment}"
            )
        object.__setattr__(self, "environment", environment)

    @property
    def resolution(self) -> tuple[int, int]:
        return (self.width, self.height)
