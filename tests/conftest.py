"""Pytest configuration for volume renderer tests.

This module provides shared fixtures for all test modules, including
Taichi initialization which must happen once per session.
"""

import numpy as np
import pytest
import taichi as ti


@pytest.fixture(scope="session", autouse=True)
def init_taichi_session():
    """Initialize Taichi once for the entire test session.

    Using session scope prevents multiple ti.init() calls which can cause
    segmentation faults due to Taichi runtime conflicts.
    """
    ti.init(arch=ti.cpu, random_seed=42)
    yield


@pytest.fixture
def engine():
    """A fresh Taichi engine (ndarray buffers are per engine)."""
    from volmcm.engine.taichi_engine import TaichiEngine

    return TaichiEngine()


@pytest.fixture
def axis_camera():
    """Camera on +z looking at the origin with a narrow field of view."""
    from volmcm.camera.perspective import Camera
    from volmcm.core.math3d import Vector3

    camera = Camera(position=Vector3(0.0, 0.0, 2.0), fov_x=0.3, fov_y=0.3)
    camera.look_at(Vector3(0.0, 0.0, 0.0))
    camera.update_matrices()
    return camera


@pytest.fixture
def empty_volume():
    """4x4x4 volume of zero density."""
    from volmcm.volume.resources import VolumeDescriptor

    return VolumeDescriptor((4, 4, 4), np.zeros(64, dtype=np.uint8))


@pytest.fixture
def transparent_tf():
    from volmcm.volume.resources import TransferFunction

    return TransferFunction.from_rgba([(0.0, 0.0, 0.0, 0.0), (0.0, 0.0, 0.0, 0.0)])
