"""Typed binding descriptors, one per simulation kernel.

A kernel launch receives exactly one of these objects. The engine checks the
type against the kernel's declared descriptor and the photon array shapes
against the launch domain before anything reaches the device.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from volmcm.core.photon_state import PhotonGeneration
    from volmcm.engine.base import DeviceBuffer


@dataclass(frozen=True)
class ResetBindings:
    """Inputs of the ``mcm_reset`` kernel.

    Attributes:
        width: Logical image width; columns at or beyond it are padding.
        height: Image height.
        seed: 32-bit random seed for this call.
        unproject: 16-float buffer, column-major inverse projection-view-model.
        target: Generation to initialize.
    """

    width: int
    height: int
    seed: int
    unproject: DeviceBuffer
    target: PhotonGeneration

    def photon_generations(self) -> tuple[PhotonGeneration, ...]:
        return (self.target,)


@dataclass(frozen=True)
class StepBindings:
    """Inputs of the ``mcm_step`` kernel.

    Attributes:
        width: Logical image width; padding columns are copied through.
        height: Image height.
        seed: 32-bit random seed for this pass.
        extinction: Interaction density per unit length.
        anisotropy: Henyey-Greenstein g in [-1, 1].
        max_bounces: Scattering is disabled once a path reaches this count.
        steps: Collision events simulated per pixel in this pass.
        linear_filter: Trilinear (True) or nearest (False) volume sampling.
        environment: RGB light reaching photons that leave the volume.
        unproject: 16-float buffer, column-major inverse projection-view-model.
        volume: Normalized densities indexed [x, y, z].
        transfer_function: RGBA entries.
        source: Generation read this pass.
        target: Generation written this pass.
    """

    width: int
    height: int
    seed: int
    extinction: float
    anisotropy: float
    max_bounces: int
    steps: int
    linear_filter: bool
    environment: tuple[float, float, float]
    unproject: DeviceBuffer
    volume: DeviceBuffer
    transfer_function: DeviceBuffer
    source: PhotonGeneration
    target: PhotonGeneration

    def photon_generations(self) -> tuple[PhotonGeneration, ...]:
        return (self.source, self.target)
