"""Pytest configuration for csgtracer tests.

Shared fixtures: common materials, a seeded random source and small render
settings that keep recursive tracing fast.
"""

import random

import pytest

from csgtracer.core.math import Vec3
from csgtracer.core.material import Material
from csgtracer.core.camera import Camera
from csgtracer.core.scene import RenderSettings


@pytest.fixture
def red():
    return Material(Vec3(0.8, 0.1, 0.1), roughness=0.6)


@pytest.fixture
def white():
    return Material(Vec3(0.9, 0.9, 0.9), roughness=0.8)


@pytest.fixture
def glass():
    return Material(Vec3(1, 1, 1), roughness=0.01, transmission=1.0, ior=1.5)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def settings():
    """Tiny, deterministic settings."""
    return RenderSettings(width=4, height=4, max_depth=2, path_samples=1,
                          soft_shadow_samples=1, supersampling_grid=1, seed=7)


@pytest.fixture
def camera():
    """Camera at the origin looking down -z."""
    return Camera(Vec3(0, 0, 0), Vec3(0, 0, -1), Vec3(1, 0, 0))
