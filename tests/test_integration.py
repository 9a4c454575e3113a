"""End-to-end rendering tests.

These run the full pipeline (camera -> scheduler -> Taichi kernels ->
readback -> tone mapping) on tiny volumes with fixed seeds.
"""

import numpy as np
import pytest


def opaque_voxel_volume():
    """3x3x3 volume whose centre voxel has full density."""
    from volmcm.volume.resources import VolumeDescriptor

    grid = np.zeros((3, 3, 3), dtype=np.uint8)
    grid[1, 1, 1] = 255
    return VolumeDescriptor.from_array(grid)


def white_tf():
    """Transparent at zero density, opaque white at full density."""
    from volmcm.volume.resources import TransferFunction

    return TransferFunction.from_rgba([(0.0, 0.0, 0.0, 0.0), (1.0, 1.0, 1.0, 1.0)])


class TestRenderScenarios:
    """Physical scenarios with predictable outcomes."""

    def test_zero_density_volume_is_black(self, axis_camera, empty_volume, transparent_tf):
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render

        params = RenderParameters(width=12, height=12, iterations=5, steps=32, seed=5)
        output = render(params, empty_volume, transparent_tf, axis_camera)

        assert output.pixels.shape == (12, 12, 3)
        assert output.pixels.dtype == np.uint8
        assert np.all(output.pixels == 0)

    def test_zero_density_any_camera(self, empty_volume, transparent_tf):
        from volmcm.camera.perspective import Camera
        from volmcm.core.config import RenderParameters
        from volmcm.core.math3d import Vector3
        from volmcm.core.renderer import render

        camera = Camera(position=Vector3(-1.0, -1.0, 1.0), fov_x=0.512, fov_y=0.512)
        camera.look_at(Vector3(0.0, 0.0, 0.0))
        camera.update_matrices()

        params = RenderParameters(width=9, height=7, iterations=5, steps=16, seed=2)
        output = render(params, empty_volume, transparent_tf, camera)

        assert output.pixels.shape == (7, 9, 3)
        assert np.all(output.pixels == 0)

    def test_no_iterations_is_black(self, axis_camera):
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render

        params = RenderParameters(width=8, height=8, iterations=0, seed=1)
        output = render(params, opaque_voxel_volume(), white_tf(), axis_camera)

        assert np.all(output.pixels == 0)
        assert np.all(output.radiance == 0.0)

    def test_opaque_voxel_centre_is_white(self, axis_camera):
        """A white scattering voxel lights the centre and leaves corners black."""
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render

        params = RenderParameters(
            width=16,
            height=16,
            iterations=10,
            extinction=30.0,
            steps=64,
            max_bounces=1000,
            seed=1234,
        )
        output = render(params, opaque_voxel_volume(), white_tf(), axis_camera)

        radiance = output.radiance
        assert radiance.shape == (16, 16, 3)
        assert np.all(radiance[7:9, 7:9] > 0.9)
        for corner in (radiance[0, 0], radiance[0, -1], radiance[-1, 0], radiance[-1, -1]):
            assert np.all(corner == 0.0)

        assert np.all(output.pixels[7:9, 7:9] >= 230)
        assert np.all(output.pixels[0, 0] == 0)

    def test_scattering_colour_follows_transfer_function(self, axis_camera):
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render
        from volmcm.volume.resources import TransferFunction

        tf = TransferFunction.from_rgba([(0.0, 0.0, 0.0, 0.0), (1.0, 0.0, 0.0, 1.0)])
        params = RenderParameters(
            width=16,
            height=16,
            iterations=10,
            extinction=30.0,
            steps=64,
            max_bounces=1000,
            seed=99,
        )
        output = render(params, opaque_voxel_volume(), tf, axis_camera)

        centre = output.radiance[7:9, 7:9]
        assert np.all(centre[..., 0] > 0.9)
        assert np.all(centre[..., 1:] == 0.0)

    @pytest.mark.parametrize("linear_filter", [False, True])
    def test_bounce_cap_zero_is_black(self, axis_camera, linear_filter):
        """With no scattering allowed every path ends absorbed or unlit."""
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render

        params = RenderParameters(
            width=16,
            height=16,
            iterations=5,
            extinction=30.0,
            steps=64,
            max_bounces=0,
            linear_filter=linear_filter,
            seed=11,
        )
        output = render(params, opaque_voxel_volume(), white_tf(), axis_camera)

        assert np.all(output.radiance == 0.0)

    def test_trilinear_sampling_lights_centre(self, axis_camera):
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render

        params = RenderParameters(
            width=16,
            height=16,
            iterations=10,
            extinction=30.0,
            steps=64,
            max_bounces=1000,
            linear_filter=True,
            seed=21,
        )
        output = render(params, opaque_voxel_volume(), white_tf(), axis_camera)

        radiance = output.radiance
        assert np.all(radiance[7:9, 7:9] > 0.5)
        for corner in (radiance[0, 0], radiance[0, -1], radiance[-1, 0], radiance[-1, -1]):
            assert np.all(corner == 0.0)

    def test_background_stays_black_for_distant_camera(self):
        """Pixels whose camera rays miss the volume are never lit."""
        from volmcm.camera.perspective import Camera
        from volmcm.core.config import RenderParameters
        from volmcm.core.math3d import Vector3
        from volmcm.core.renderer import render
        from volmcm.volume.resources import VolumeDescriptor

        camera = Camera(position=Vector3(-5.0, -5.0, -5.0), fov_x=0.512, fov_y=0.512)
        camera.look_at(Vector3(0.0, 0.0, 0.0))
        camera.update_matrices()

        volume = VolumeDescriptor((4, 4, 4), np.full(64, 255, dtype=np.uint8))
        params = RenderParameters(width=32, height=32, iterations=20, extinction=0.5, seed=8)
        output = render(params, volume, white_tf(), camera)

        centres = (np.arange(32) + 0.5) / 16.0 - 1.0
        ndc_x, ndc_y = np.meshgrid(centres, centres)
        radius = np.sqrt(ndc_x**2 + ndc_y**2)

        # The cube covers an NDC radius of about 0.2 from here
        background = output.radiance[radius > 0.45]
        assert background.size > 0
        assert np.all(background == 0.0)
        assert output.radiance[radius < 0.1].max() > 0.0

    def test_same_seed_same_image(self, axis_camera):
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render
        from volmcm.preview.export import compute_rmse

        params = RenderParameters(
            width=8, height=8, iterations=3, extinction=30.0, steps=16, anisotropy=0.4, seed=42
        )
        first = render(params, opaque_voxel_volume(), white_tf(), axis_camera)
        second = render(params, opaque_voxel_volume(), white_tf(), axis_camera)

        assert np.array_equal(first.radiance, second.radiance)
        assert compute_rmse(first.radiance, second.radiance) == 0.0

    def test_tone_map_applied(self, axis_camera, empty_volume, transparent_tf):
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render
        from volmcm.preview.display import ToneMapSettings

        params = RenderParameters(width=8, height=8, iterations=1, steps=4, seed=3)
        output = render(
            params,
            empty_volume,
            transparent_tf,
            axis_camera,
            tone_map=ToneMapSettings(levels=(0.0, 0.3, 1.0), saturation=0.5, gamma=2.2),
        )
        assert np.all(output.pixels == 0)

    def test_progress_callback(self, axis_camera, empty_volume, transparent_tf):
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render

        progress = []
        params = RenderParameters(width=8, height=8, iterations=3, steps=4, seed=3)
        render(
            params,
            empty_volume,
            transparent_tf,
            axis_camera,
            callback=lambda done, total: progress.append((done, total)),
        )
        assert progress == [(1, 3), (2, 3), (3, 3)]

    def test_output_bytes_row_major(self, axis_camera, empty_volume, transparent_tf):
        from volmcm.core.config import RenderParameters
        from volmcm.core.renderer import render

        params = RenderParameters(width=5, height=3, iterations=1, steps=2, seed=3)
        output = render(params, empty_volume, transparent_tf, axis_camera)

        data = output.tobytes()
        assert len(data) == 5 * 3 * 3
        assert output.width == 5 and output.height == 3

    def test_singular_camera_rejected_before_rendering(self, axis_camera, empty_volume, transparent_tf):
        from volmcm.core.config import RenderParameters
        from volmcm.core.math3d import Matrix4
        from volmcm.core.renderer import render
        from volmcm.errors import ConfigurationError

        class NoEngine:
            def allocate(self, spec):
                raise AssertionError("engine must not be used")

        params = RenderParameters(width=4, height=4, iterations=1)
        with pytest.raises(ConfigurationError):
            render(
                params,
                empty_volume,
                transparent_tf,
                axis_camera,
                engine=NoEngine(),
                model_matrix=Matrix4.scale(1.0, 1.0, 0.0),
            )
