"""Unit tests for the perspective camera.

Tests cover:
- Look-at orientation (unit quaternion, forward axis, degenerate targets)
- View and projection matrices
- Focal-length field of view
- The combined inverse transform used by the simulation
"""

import math

import numpy as np
import pytest


class TestLookAt:
    """Tests for camera orientation."""

    @pytest.mark.parametrize(
        "position",
        [
            (-1.0, -1.0, 1.0),
            (0.0, 3.0, 0.0),
            (2.5, -0.1, -4.0),
            (0.0, 0.0, 2.0),
            (0.0, 0.0, -2.0),
        ],
    )
    def test_look_at_quaternion_is_unit(self, position):
        from volmcm.camera.perspective import Camera
        from volmcm.core.math3d import Vector3

        camera = Camera(position=Vector3(*position))
        camera.look_at(Vector3(0.0, 0.0, 0.0))

        assert abs(camera.rotation.norm() - 1.0) < 1e-5

    def test_forward_points_at_target(self):
        from volmcm.camera.perspective import Camera
        from volmcm.core.math3d import Vector3

        camera = Camera(position=Vector3(-1.0, -1.0, 1.0))
        camera.look_at(Vector3(0.0, 0.0, 0.0))

        expected = np.array([1.0, 1.0, -1.0]) / math.sqrt(3.0)
        assert np.allclose(camera.forward.to_tuple(), expected, atol=1e-9)

    def test_target_behind_default_forward(self):
        """Target exactly opposite the forward axis resolves to a finite rotation."""
        from volmcm.camera.perspective import Camera
        from volmcm.core.math3d import Vector3

        camera = Camera(position=Vector3(0.0, 0.0, -2.0))
        camera.look_at(Vector3(0.0, 0.0, 0.0))
        camera.update_matrices()

        assert np.all(np.isfinite(camera.view_matrix.m))
        assert np.allclose(camera.forward.to_tuple(), (0.0, 0.0, 1.0), atol=1e-9)

    def test_target_at_position_rejected(self):
        from volmcm.camera.perspective import Camera
        from volmcm.core.math3d import Vector3
        from volmcm.errors import ConfigurationError

        camera = Camera(position=Vector3(1.0, 2.0, 3.0))
        with pytest.raises(ConfigurationError, match="coincides"):
            camera.look_at(Vector3(1.0, 2.0, 3.0))


class TestMatrices:
    """Tests for view and projection matrices."""

    def test_view_times_inverse_is_identity(self):
        from volmcm.camera.perspective import Camera
        from volmcm.core.math3d import Matrix4, Vector3

        camera = Camera(position=Vector3(0.7, -1.3, 2.1))
        camera.look_at(Vector3(0.1, 0.2, -0.3))
        camera.update_matrices()

        view = camera.view_matrix
        assert (view @ view.inverse()).allclose(Matrix4.identity(), atol=1e-9)

    def test_view_maps_position_to_origin(self):
        from volmcm.camera.perspective import Camera
        from volmcm.core.math3d import Vector3

        camera = Camera(position=Vector3(-1.0, -1.0, 1.0))
        camera.look_at(Vector3(0.0, 0.0, 0.0))
        camera.update_matrices()

        origin = camera.view_matrix.transform_point(Vector3(-1.0, -1.0, 1.0))
        assert np.allclose(origin.to_tuple(), (0.0, 0.0, 0.0), atol=1e-9)

        # The target lies straight ahead, down -z in camera space
        target = camera.view_matrix.transform_point(Vector3(0.0, 0.0, 0.0))
        assert np.allclose(target.to_tuple(), (0.0, 0.0, -math.sqrt(3.0)), atol=1e-9)

    def test_matrices_only_change_on_update(self):
        from volmcm.camera.perspective import Camera
        from volmcm.core.math3d import Matrix4, Vector3

        camera = Camera()
        camera.set_position(Vector3(0.0, 0.0, 5.0))

        assert camera.view_matrix == Matrix4.identity()
        camera.update_matrices()
        assert camera.view_matrix != Matrix4.identity()

    def test_projection_half_extent(self):
        """Projection frustum half extents are fov * near."""
        from volmcm.camera.perspective import Camera
        from volmcm.core.math3d import Vector3

        camera = Camera(fov_x=0.5, fov_y=0.25, near=0.1, far=10.0)
        camera.update_matrices()
        proj = camera.projection_matrix

        # A point on the right edge at unit depth maps to NDC x = 1
        edge = proj.transform_point(Vector3(0.5, 0.25, -1.0))
        assert abs(edge.x - 1.0) < 1e-9
        assert abs(edge.y - 1.0) < 1e-9

    def test_focal_length_fov(self):
        from volmcm.camera.perspective import Camera

        camera = Camera()
        camera.set_focal_length(50.0, sensor_width=36.0, aspect_ratio=1.5)

        assert abs(camera.fov_x - 18.0 / 50.0) < 1e-12
        assert abs(camera.fov_y - 12.0 / 50.0) < 1e-12

    def test_focal_length_rejects_non_positive(self):
        from volmcm.camera.perspective import Camera
        from volmcm.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            Camera().set_focal_length(0.0)


class TestCombinedInverseTransform:
    """Tests for the transform uploaded to the simulation."""

    def test_unprojects_screen_centre_onto_axis(self, axis_camera):
        from volmcm.camera.perspective import combined_inverse_transform
        from volmcm.core.math3d import Vector3

        inverse = combined_inverse_transform(axis_camera).transpose()

        # Near plane is at world z = 1.9, i.e. model z = 2.4
        near = inverse.transform_point(Vector3(0.0, 0.0, -1.0))
        assert np.allclose(near.to_tuple(), (0.5, 0.5, 2.4), atol=1e-6)

        far = inverse.transform_point(Vector3(0.0, 0.0, 1.0))
        assert abs(far.x - 0.5) < 1e-6
        assert abs(far.y - 0.5) < 1e-6
        assert far.z < -40.0

    def test_round_trip_with_forward_transform(self, axis_camera):
        from volmcm.camera.perspective import combined_inverse_transform, volume_model_matrix
        from volmcm.core.math3d import Matrix4

        pvm = axis_camera.projection_matrix @ axis_camera.view_matrix @ volume_model_matrix()
        inverse = combined_inverse_transform(axis_camera).transpose()

        assert (pvm @ inverse).allclose(Matrix4.identity(), atol=1e-6)

    def test_rejects_singular_model(self, axis_camera):
        from volmcm.camera.perspective import combined_inverse_transform
        from volmcm.core.math3d import Matrix4
        from volmcm.errors import ConfigurationError

        with pytest.raises(ConfigurationError, match="not invertible") as info:
            combined_inverse_transform(axis_camera, Matrix4.scale(0.0, 1.0, 1.0))

        assert info.value.stage == "camera"

    def test_model_matrix_centres_unit_cube(self):
        from volmcm.camera.perspective import volume_model_matrix
        from volmcm.core.math3d import Vector3

        model = volume_model_matrix()
        assert model.transform_point(Vector3(0.5, 0.5, 0.5)) == Vector3(0.0, 0.0, 0.0)
        assert model.transform_point(Vector3(1.0, 1.0, 1.0)) == Vector3(0.5, 0.5, 0.5)
