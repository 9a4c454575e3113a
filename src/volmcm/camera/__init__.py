"""Camera module.

Components:
    perspective: Quaternion-oriented pinhole camera, the volume model matrix
        and the combined inverse projection-view-model transform
"""

from volmcm.camera.perspective import (
    DEFAULT_FAR,
    DEFAULT_NEAR,
    FORWARD,
    Camera,
    combined_inverse_transform,
    volume_model_matrix,
)

__all__ = [
    "Camera",
    "combined_inverse_transform",
    "volume_model_matrix",
    "FORWARD",
    "DEFAULT_NEAR",
    "DEFAULT_FAR",
]
