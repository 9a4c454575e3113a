"""Tests for the double-buffered photon state store.

Tests cover:
- Padded stride computation
- Generation selection by iteration parity
- Allocation of both generations
- Radiance readback layout (padding removed, row 0 at the top)
"""

import numpy as np
import pytest


class TestGenerationIndexing:
    """Tests for stride and parity helpers."""

    @pytest.mark.parametrize(
        "width, alignment, expected",
        [(1, 8, 8), (8, 8, 8), (9, 8, 16), (100, 8, 104), (7, 1, 7), (10, 4, 12)],
    )
    def test_padded_stride(self, width, alignment, expected):
        from volmcm.core.photon_state import padded_stride

        assert padded_stride(width, alignment) == expected

    def test_generations_alternate(self):
        from volmcm.core.photon_state import source_generation, target_generation

        for i in range(6):
            assert source_generation(i) == i % 2
            assert target_generation(i) == (i + 1) % 2
            assert source_generation(i) != target_generation(i)
            # Each step reads what the previous one wrote
            if i > 0:
                assert source_generation(i) == target_generation(i - 1)

    @pytest.mark.parametrize("iterations, expected", [(0, 0), (1, 1), (2, 0), (7, 1)])
    def test_final_generation(self, iterations, expected):
        from volmcm.core.photon_state import final_generation

        assert final_generation(iterations) == expected


class TestPhotonStateStore:
    """Tests for PhotonStateStore allocation and readback."""

    def test_allocates_two_padded_generations(self, engine):
        from volmcm.core.photon_state import PhotonStateStore

        store = PhotonStateStore(engine, 10, 6)

        assert store.stride == 16
        assert store.domain == (16, 6)
        for index in (0, 1):
            generation = store.generation(index)
            assert generation.index == index
            assert generation.shape == (16, 6)
            assert generation.position.spec.channels == 4
            assert generation.samples.spec.dtype == "i32"
            assert generation.position.name == f"position[{index}]"

    def test_generation_index_wraps(self, engine):
        from volmcm.core.photon_state import PhotonStateStore

        store = PhotonStateStore(engine, 8, 8)
        assert store.generation(2) is store.generation(0)
        assert store.generation(3) is store.generation(1)

    def test_generations_are_distinct(self, engine):
        from volmcm.core.photon_state import PhotonStateStore

        store = PhotonStateStore(engine, 8, 8)
        first = store.generation(0).buffers()
        second = store.generation(1).buffers()
        for name in first:
            assert first[name].array is not second[name].array

    def test_rejects_empty_resolution(self, engine):
        from volmcm.core.photon_state import PhotonStateStore

        with pytest.raises(ValueError):
            PhotonStateStore(engine, 0, 8)

    def test_read_generation_keeps_padding(self, engine):
        from volmcm.core.photon_state import PhotonStateStore

        store = PhotonStateStore(engine, 5, 3)
        state = store.read_generation(1)

        assert set(state) == {
            "position",
            "direction",
            "transmittance",
            "radiance",
            "samples",
            "bounces",
        }
        assert state["position"].shape == (8, 3, 4)
        assert state["bounces"].shape == (8, 3)

    def test_read_radiance_layout(self, engine):
        """Device (x, y) with y up becomes image (row, col) with row 0 on top."""
        from volmcm.core.photon_state import PhotonStateStore

        store = PhotonStateStore(engine, 5, 3)
        radiance = np.zeros((8, 3, 4), dtype=np.float32)
        radiance[0, 0] = (1.0, 0.0, 0.0, 1.0)  # bottom-left
        radiance[4, 2] = (0.0, 1.0, 0.0, 1.0)  # top-right
        radiance[6, 1] = (9.0, 9.0, 9.0, 1.0)  # padding
        engine.upload(store.generation(0).radiance, radiance)

        image = store.read_radiance(0)

        assert image.shape == (3, 5, 3)
        assert image.dtype == np.float32
        assert np.array_equal(image[2, 0], (1.0, 0.0, 0.0))
        assert np.array_equal(image[0, 4], (0.0, 1.0, 0.0))
        assert image.max() == 1.0
