"""Perspective camera producing view and projection matrices.

The camera stores a position, an orientation quaternion, horizontal and
vertical field-of-view half-angle tangents and near/far clip planes. From
those it derives:

- a view matrix: the inverse of rotate-then-translate (camera to world),
- a projection matrix: an off-axis frustum whose half extents at the near
  plane are ``fov * near``.

Matrices are only recomputed when ``update_matrices()`` is called; setters do
not track dirtiness. The simulation consumes a single datum from the camera,
the combined inverse transform built by ``combined_inverse_transform``, which
is computed once per render.

Example:
    >>> from volmcm.camera.perspective import Camera, combined_inverse_transform
    >>> from volmcm.core.math3d import Vector3
    >>> camera = Camera()
    >>> camera.set_position(Vector3(0.0, 0.0, 1.5))
    >>> camera.look_at(Vector3(0.0, 0.0, 0.0))
    >>> camera.set_fov_x(0.512)
    >>> camera.set_fov_y(0.512)
    >>> camera.update_matrices()
    >>> unproject = combined_inverse_transform(camera)
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

from volmcm.core.math3d import EPSILON, Matrix4, Quaternion, Vector3
from volmcm.errors import ConfigurationError

logger = logging.getLogger(__name__)

# The camera looks down -z in its own frame
FORWARD = Vector3(0.0, 0.0, -1.0)

DEFAULT_NEAR = 0.1
DEFAULT_FAR = 50.0


class Camera:
    """Pinhole camera with quaternion orientation.

    Attributes:
        position: Camera position in world space.
        rotation: Unit quaternion rotating the camera frame into world space.
        fov_x: Horizontal half-angle tangent (half extent at unit distance).
        fov_y: Vertical half-angle tangent.
        near: Near clip plane distance.
        far: Far clip plane distance.
    """

    def __init__(
        self,
        position: Vector3 | None = None,
        fov_x: float = 1.0,
        fov_y: float = 1.0,
        near: float = DEFAULT_NEAR,
        far: float = DEFAULT_FAR,
    ) -> None:
        self.position = position if position is not None else Vector3(0.0, 0.0, 0.0)
        self.rotation = Quaternion.identity()
        self.fov_x = fov_x
        self.fov_y = fov_y
        self.near = near
        self.far = far
        self._view_matrix = Matrix4.identity()
        self._projection_matrix = Matrix4.identity()

    # -------------------------------------------------------------------------
    # Setters
    # -------------------------------------------------------------------------

    def set_position(self, position: Vector3) -> None:
        self.position = position

    def look_at(self, focus: Vector3) -> None:
        """Orient the camera so its forward axis points at ``focus``.

        Raises:
            ConfigurationError: If ``focus`` coincides with the camera position.
        """
        direction = focus - self.position
        if direction.length() < EPSILON:
            raise ConfigurationError(
                "Camera position coincides with its look-at target", stage="camera"
            )

        if FORWARD.cross(direction.normalized()).length() < EPSILON:
            logger.debug("Look-at direction is parallel to the forward axis; using fallback axis")

        self.rotation = Quaternion.from_to(FORWARD, direction)

    def set_fov_x(self, fov: float) -> None:
        self.fov_x = fov

    def set_fov_y(self, fov: float) -> None:
        self.fov_y = fov

    def set_focal_length(
        self,
        focal_length: float,
        sensor_width: float = 36.0,
        aspect_ratio: float = 1.0,
    ) -> None:
        """Set the field of view from a focal length and sensor size.

        The full angle is ``2 * atan(extent / (2 * focal_length))`` per axis;
        the stored values are the corresponding half-angle tangents.

        Args:
            focal_length: Lens focal length (same unit as ``sensor_width``).
            sensor_width: Horizontal sensor extent (default 36 mm).
            aspect_ratio: Width divided by height of the output image.
        """
        if focal_length <= 0.0 or sensor_width <= 0.0 or aspect_ratio <= 0.0:
            raise ConfigurationError(
                "focal_length, sensor_width and aspect_ratio must be positive",
                stage="camera",
            )
        sensor_height = sensor_width / aspect_ratio
        fov_x = 2.0 * math.atan(sensor_width / (2.0 * focal_length))
        fov_y = 2.0 * math.atan(sensor_height / (2.0 * focal_length))
        self.fov_x = math.tan(fov_x / 2.0)
        self.fov_y = math.tan(fov_y / 2.0)

    # -------------------------------------------------------------------------
    # Matrices
    # -------------------------------------------------------------------------

    def update_view_matrix(self) -> None:
        camera_to_world = self.rotation.to_rotation_matrix()
        camera_to_world.m[0, 3] = self.position.x
        camera_to_world.m[1, 3] = self.position.y
        camera_to_world.m[2, 3] = self.position.z
        self._view_matrix = camera_to_world.inverse()

    def update_projection_matrix(self) -> None:
        w = self.fov_x * self.near
        h = self.fov_y * self.near
        self._projection_matrix = Matrix4.frustum(-w, w, -h, h, self.near, self.far)

    def update_matrices(self) -> None:
        """Recompute view and projection; call after any setter."""
        self.update_view_matrix()
        self.update_projection_matrix()

    @property
    def view_matrix(self) -> Matrix4:
        return self._view_matrix

    @property
    def projection_matrix(self) -> Matrix4:
        return self._projection_matrix

    @property
    def forward(self) -> Vector3:
        """World-space viewing direction for the current rotation."""
        return self.rotation.to_rotation_matrix().transform_direction(FORWARD)

    def __repr__(self) -> str:
        return (
            f"Camera(position={self.position.to_tuple()}, fov=({self.fov_x}, {self.fov_y}), "
            f"near={self.near}, far={self.far})"
        )


def volume_model_matrix(scale: Sequence[float] = (1.0, 1.0, 1.0)) -> Matrix4:
    """Model matrix placing the unit-cube volume centred on the origin.

    The volume occupies [0, 1]^3 in model space; this scales it and shifts it
    by -0.5 per axis.
    """
    return Matrix4.from_values(
        [
            scale[0], 0.0, 0.0, -0.5,
            0.0, scale[1], 0.0, -0.5,
            0.0, 0.0, scale[2], -0.5,
            0.0, 0.0, 0.0, 1.0,
        ]
    )


def combined_inverse_transform(camera: Camera, model: Matrix4 | None = None) -> Matrix4:
    """Compose projection @ view @ model, invert it and transpose it.

    The result maps clip space back to model space and is laid out
    column-major (transposed) for upload, so flattening it row by row gives
    the column-major entries of the inverse.

    Args:
        camera: Camera whose matrices have been refreshed with
            ``update_matrices()``.
        model: Model matrix; defaults to ``volume_model_matrix()``.

    Returns:
        The transposed inverse projection-view-model matrix.

    Raises:
        ConfigurationError: If the composed transform is not invertible.
    """
    if model is None:
        model = volume_model_matrix()

    pvm = camera.projection_matrix @ (camera.view_matrix @ model)
    if not pvm.is_invertible():
        raise ConfigurationError(
            f"Camera transform is not invertible (det={pvm.determinant():.3e})",
            stage="camera",
        )
    return pvm.inverse().transpose()
