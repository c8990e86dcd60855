import math
import logging
from typing import List

from csgtracer.core.math import Vec3, Mat4
from csgtracer.core.material import Material
from csgtracer.core.geometry import SceneObject, Quadric, Plane, Sphere
from csgtracer.core.csg import IntersectionObject, DifferenceObject, UnionObject
from csgtracer.core.sdf import (Torus, SuperEllipsoid, QuarticSurface,
                                SmoothUnionObject, SmoothDifferenceObject)
from csgtracer.core.lighting import Light, SpotLight
from csgtracer.core.scene import Scene
from csgtracer.core.camera import Camera

logger = logging.getLogger(__name__)


def make_cube(material: Material) -> SceneObject:
    """Unit cube centred on the origin, as the intersection of six half-spaces."""
    faces = [
        Quadric((0, 0, 0, 0, 0, 0, -1, 0, 0, -1), material),
        Quadric((0, 0, 0, 0, 0, 0, 1, 0, 0, -1), material),
        Quadric((0, 0, 0, 0, 0, 0, 0, -1, 0, -1), material),
        Quadric((0, 0, 0, 0, 0, 0, 0, 1, 0, -1), material),
        Quadric((0, 0, 0, 0, 0, 0, 0, 0, -1, -1), material),
        Quadric((0, 0, 0, 0, 0, 0, 0, 0, 1, -1), material),
    ]
    cube = faces[0]
    for face in faces[1:]:
        cube = IntersectionObject(cube, face, material)
    return cube


def make_cylinder(radius: float, height: float, material: Material) -> SceneObject:
    """Capped cylinder along y: an infinite quadric cylinder clipped by two planes."""
    tube = Quadric((1, 0, 1, 0, 0, 0, 0, 0, 0, -radius * radius), material)
    top = Plane(Vec3(0, 1, 0), height / 2, material)
    bottom = Plane(Vec3(0, -1, 0), height / 2, material)
    return IntersectionObject(IntersectionObject(tube, top, material), bottom, material)


class DemoSceneBuilder:
    """Hand-built scenes showing off the different object families."""

    SCENES = ("spheres", "csg", "sdf")

    def __init__(self):
        self.red = Material(Vec3(0.8, 0.1, 0.1), roughness=0.6)
        self.green = Material(Vec3(0.2, 0.5, 0.3), roughness=0.5, metalness=0.01)
        self.redish = Material(Vec3(0.5, 0.2, 0.3), roughness=0.9, metalness=0.01)
        self.floor = Material(Vec3(0.7, 0.7, 0.7), roughness=0.8)
        self.glass = Material(Vec3(0.23, 0.71, 0.35), roughness=0.01, metalness=0.01,
                              transmission=1.0, ior=1.5)
        self.chrome = Material(Vec3(0.9, 0.9, 0.9), roughness=0.02, metalness=1.0, ior=2.5)
        self.water = Material(Vec3(0.0, 0.3, 0.5), roughness=0.04, metalness=0.01,
                              transmission=0.7, ior=1.33)

    def build_scene(self, name: str = "csg") -> Scene:
        builders = {
            "spheres": self._spheres,
            "csg": self._csg,
            "sdf": self._sdf,
        }
        if name not in builders:
            raise ValueError(f"Unknown scene: {name}")
        objects, lights = builders[name]()
        logger.debug("Built scene %r", name)
        return Scene(objects, lights)

    def create_camera(self, aspect_ratio: float = 1.0) -> Camera:
        # camera at the origin looking down -z
        return Camera(Vec3(0, 0, 0), Vec3(0, 0, -1), Vec3(1, 0, 0),
                      plane_height=2.0, plane_width=2.0 * aspect_ratio, plane_distance=1.0)

    def _floor(self, y: float) -> Plane:
        return Plane(Vec3(0, 1, 0), y, self.floor)

    def _spheres(self):
        objects: List[SceneObject] = [
            Sphere(Vec3(0, 0, -3), 1.0, self.red),
            Sphere(Vec3(1.6, -0.4, -4), 0.6, self.chrome),
            Sphere(Vec3(-1.2, -0.5, -2.2), 0.5, self.glass),
            self._floor(-1.0),
        ]
        lights = [Light(Vec3(1, 1, 2), 1.0),
                  Light(Vec3(-2, 3, -1), 0.6, radius=0.3)]
        return objects, lights

    def _csg(self):
        # cube with a spherical bite taken out of it
        cube = make_cube(self.green).transformed(
            Mat4().scale(1.4).rotate_y(math.radians(30)).rotate_x(math.radians(20)).translate(-0.9, 0, -4))
        bite = Sphere(Vec3(-0.9, 0, -4), 0.9, self.redish)
        carved = DifferenceObject(cube, bite)

        # lens: two overlapping glass spheres
        lens = IntersectionObject(Sphere(Vec3(0.9, 0.2, -3.2), 0.7, self.glass),
                                  Sphere(Vec3(1.3, 0.2, -3.2), 0.7, self.glass))

        pillar = UnionObject(make_cylinder(0.25, 1.2, self.redish).transformed(Mat4().translate(1.1, -0.4, -5)),
                             Sphere(Vec3(1.1, 0.35, -5), 0.35, self.chrome))

        objects = [carved, lens, pillar, self._floor(-1.0)]
        lights = [SpotLight(Vec3(0, 0, 3), Vec3(0, 0, -1), math.radians(15), 1.0, intensity=1.0),
                  Light(Vec3(1, 1, 2), 1.0)]
        return objects, lights

    def _sdf(self):
        ripple_a = Torus(0.3, 0.1, self.water, Mat4().translate(-0.8, -0.6, -3))
        ripple_b = Torus(0.8, 0.15, self.water, Mat4().translate(-0.8, -0.65, -3))
        ripples = SmoothUnionObject(ripple_a, ripple_b, 0.3)

        blob = SuperEllipsoid(0.6, 0.6, 0.6, 0.5, 0.5, self.red,
                              Mat4().rotate_y(math.radians(45)).translate(0.9, 0.1, -3.5))
        hollow = SmoothDifferenceObject(blob, SuperEllipsoid(0.4, 0.4, 0.4, 1, 1, self.red,
                                                             Mat4().translate(0.9, 0.6, -3.5)), 0.1)

        quartic = QuarticSurface(-2.0, 1.0, self.chrome,
                                 Mat4().scale(0.3).translate(0, 0.8, -4))

        objects = [ripples, hollow, quartic, self._floor(-1.0)]
        lights = [SpotLight(Vec3(0, 3, 0), Vec3(-0.5, -4, -2), math.radians(35), 1.0, intensity=0.8),
                  Light(Vec3(1, 1, 2), 0.8, radius=0.2)]
        return objects, lights
