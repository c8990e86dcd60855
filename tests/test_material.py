"""Unit tests for materials, intersections and the cube map skybox.

Tests cover:
- Material validation and the derived normal-incidence reflectance
- Intersection ordering and re-ownership
- CubeMap face selection, solid colours and loading from disk
"""

import numpy as np
import pytest
from PIL import Image

from csgtracer.core.errors import SceneError
from csgtracer.core.math import Vec3
from csgtracer.core.material import CubeMap, Material, Intersection

# one distinct colour per face: +X, -X, +Y, -Y, +Z, -Z
FACE_COLORS = [(255, 0, 0), (0, 255, 0), (0, 0, 255),
               (255, 255, 0), (0, 255, 255), (255, 0, 255)]


def face(rgb, size=2):
    return np.full((size, size, 3), rgb, dtype=np.uint8)


class TestMaterial:
    """Tests for Material."""

    def test_dielectric_f0(self):
        assert Material(Vec3(0.8, 0.1, 0.1)).f0 == Vec3(0.04, 0.04, 0.04)

    def test_metal_f0_is_albedo(self):
        gold = Material(Vec3(1.0, 0.8, 0.3), metalness=1.0)
        assert tuple(gold.f0) == pytest.approx((1.0, 0.8, 0.3))

    def test_defaults(self):
        m = Material()
        assert m.transmission == 0.0
        assert m.ior == 1.0

    @pytest.mark.parametrize("kwargs", [
        {"roughness": -0.1},
        {"metalness": 1.5},
        {"transmission": 2.0},
        {"ior": 0.0},
    ])
    def test_validation(self, kwargs):
        with pytest.raises(SceneError):
            Material(Vec3(1, 1, 1), **kwargs)


class TestIntersection:
    """Tests for Intersection."""

    def test_sorts_by_distance(self, red):
        near = Intersection(Vec3(0, 0, -1), Vec3(0, 0, 1), 1.0, None, red)
        far = Intersection(Vec3(0, 0, -3), Vec3(0, 0, 1), 3.0, None, red)
        assert sorted([far, near]) == [near, far]

    def test_normal_is_normalized(self, red):
        hit = Intersection(Vec3(0, 0, 0), Vec3(0, 0, 5), 1.0, None, red)
        assert hit.normal == Vec3(0, 0, 1)

    def test_with_owner(self, red):
        hit = Intersection(Vec3(0, 0, 0), Vec3(0, 1, 0), 2.0, "child", red)
        owned = hit.with_owner("parent")
        assert owned.object == "parent"
        assert owned.normal == hit.normal
        assert owned.material is red
        flipped = hit.with_owner("parent", -hit.normal)
        assert flipped.normal == Vec3(0, -1, 0)
        assert hit.object == "child"


class TestCubeMap:
    """Tests for CubeMap."""

    @pytest.fixture
    def cube(self):
        return CubeMap([face(c) for c in FACE_COLORS])

    @pytest.mark.parametrize("direction,index", [
        (Vec3(1, 0, 0), 0),
        (Vec3(-1, 0, 0), 1),
        (Vec3(0, 1, 0), 2),
        (Vec3(0, -1, 0), 3),
        (Vec3(0, 0, 1), 4),
        (Vec3(0, 0, -1), 5),
        (Vec3(0.2, 0.9, -0.3), 2),
    ])
    def test_major_axis_face(self, cube, direction, index):
        expected = Vec3(*FACE_COLORS[index]) / 255.0
        assert cube.sample(direction) == expected

    def test_solid(self):
        sky = CubeMap.solid(Vec3(1, 0, 0))
        assert sky.sample(Vec3(0.3, -0.7, 0.1)) == Vec3(1, 0, 0)

    def test_accepts_pil_images(self):
        images = [Image.new("RGB", (3, 3), c) for c in FACE_COLORS]
        sky = CubeMap(images)
        assert sky.sample(Vec3(0, 0, -1)) == Vec3(1, 0, 1)

    def test_load(self, tmp_path):
        for name, color in zip(CubeMap.FACE_NAMES, FACE_COLORS):
            Image.new("RGB", (4, 4), color).save(tmp_path / f"{name}.png")
        sky = CubeMap.load(str(tmp_path), extension="png")
        assert sky.sample(Vec3(-1, 0, 0)) == Vec3(0, 1, 0)

    def test_load_missing_face(self, tmp_path):
        with pytest.raises(OSError):
            CubeMap.load(str(tmp_path), extension="png")

    def test_wrong_face_count(self):
        with pytest.raises(SceneError):
            CubeMap([face((0, 0, 0))] * 5)

    def test_wrong_face_shape(self):
        with pytest.raises(SceneError):
            CubeMap([np.zeros((2, 2), dtype=np.uint8)] * 6)
