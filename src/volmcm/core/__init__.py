"""Core rendering module.

Components:
    math3d: Vector3, Quaternion and Matrix4
    photon_state: Double-buffered per-pixel photon state
    config: RenderParameters
    scheduler: INIT -> RESET -> STEP x N -> FINALIZE orchestration
    renderer: render() and OutputImage
"""

from .math3d import EPSILON, Matrix4, Quaternion, Vector3

# Note: scheduler and renderer are NOT imported here; they depend on the
# camera and volume packages, which import from core.math3d.
#
#   from volmcm.core.renderer import render

__all__ = [
    "EPSILON",
    "Matrix4",
    "Quaternion",
    "Vector3",
]
