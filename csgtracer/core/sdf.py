import math
import logging
from abc import abstractmethod
from typing import List

from csgtracer.core.errors import SceneError
from csgtracer.core.math import Vec3, Mat4, Ray
from csgtracer.core.material import Material, Intersection
from csgtracer.core.geometry import SceneObject

logger = logging.getLogger(__name__)

MARCH_EPSILON = 1e-4
STEP_SCALE = 0.2
MAX_MARCH_DISTANCE = 100.0
MAX_MARCH_STEPS = 4096
BISECTION_STEPS = 8
GRADIENT_DELTA = 1e-4


def smooth_min(a: float, b: float, k: float) -> float:
    h = max(k - abs(a - b), 0.0) / k
    return min(a, b) - h * h * k * 0.25


def smooth_max(a: float, b: float, k: float) -> float:
    h = max(k - abs(a - b), 0.0) / k
    return max(a, b) + h * h * k * 0.25


def _crossed(before, after):
    return (before > 0 and after <= 0) or (before < 0 and after >= 0)


class SDFObject(SceneObject):
    """Implicit surface described by a signed distance estimate in local space.

    ``transform`` maps local space to world space. Intersections are found by
    sphere tracing the local-space ray and refining every sign change of the
    estimate with a bisection search. The march gives up after
    ``MAX_MARCH_DISTANCE`` world units whatever the scale of ``transform``.
    """

    def __init__(self, material: Material, transform: Mat4 = None):
        super().__init__(material)
        self.transform = transform if transform is not None else Mat4.identity()
        # raises SingularMatrixError for a degenerate transform
        self.inverse_transform = self.transform.inverse()
        self.normal_matrix = self.inverse_transform.transpose()

    @abstractmethod
    def estimate_distance(self, p: Vec3) -> float:
        """Signed distance estimate at local-space point ``p`` (negative inside)."""

    def intersect(self, ray: Ray) -> List[Intersection]:
        hits = []
        local_ray = ray.transformed(self.inverse_transform)
        f = self.estimate_distance
        # local units per world unit along this ray
        limit = MAX_MARCH_DISTANCE * self.inverse_transform.transform_direction(ray.direction).length()

        t = 0.0
        prev_t = 0.0
        prev_dist = f(local_ray.point_at(prev_t))
        last_root = -math.inf

        for _ in range(MAX_MARCH_STEPS):
            dist = f(local_ray.point_at(t))

            if _crossed(prev_dist, dist):
                t0, t1, dist0 = prev_t, t, prev_dist
                for _ in range(BISECTION_STEPS):
                    mid = 0.5 * (t0 + t1)
                    mid_dist = f(local_ray.point_at(mid))
                    if _crossed(dist0, mid_dist):
                        t1 = mid
                    else:
                        t0, dist0 = mid, mid_dist

                if t1 - last_root > MARCH_EPSILON:
                    local_point = local_ray.point_at(t1)
                    world_point = self.transform.transform_point(local_point)
                    hits.append(Intersection(world_point,
                                             self._local_normal(local_point),
                                             world_point.distance_to(ray.origin),
                                             self, self.material))
                    last_root = t1

                # restart just past the root
                t = t1 + 2 * MARCH_EPSILON
                prev_t = t
                prev_dist = f(local_ray.point_at(prev_t))
                continue

            if t >= limit:
                break
            prev_t, prev_dist = t, dist
            # the last sample lands exactly on the far limit so a crossing there is still seen
            t = min(t + max(abs(dist), MARCH_EPSILON) * STEP_SCALE, limit)

        return hits

    def _local_normal(self, p: Vec3) -> Vec3:
        f = self.estimate_distance
        e = GRADIENT_DELTA
        gradient = Vec3(f(Vec3(p.x + e, p.y, p.z)) - f(Vec3(p.x - e, p.y, p.z)),
                        f(Vec3(p.x, p.y + e, p.z)) - f(Vec3(p.x, p.y - e, p.z)),
                        f(Vec3(p.x, p.y, p.z + e)) - f(Vec3(p.x, p.y, p.z - e)))
        return self.normal_matrix.transform_direction(gradient.normalize()).normalize()

    def normal_at(self, point: Vec3) -> Vec3:
        return self._local_normal(self.inverse_transform.transform_point(point))

    def is_inside(self, point: Vec3) -> bool:
        return self.estimate_distance(self.inverse_transform.transform_point(point)) < 0.0


class Torus(SDFObject):
    """Torus around the local y axis."""

    def __init__(self, major_radius: float, minor_radius: float, material: Material,
                 transform: Mat4 = None):
        if major_radius <= 0 or minor_radius <= 0:
            raise SceneError("Torus radii must be positive")
        super().__init__(material, transform)
        self.major_radius = float(major_radius)
        self.minor_radius = float(minor_radius)

    def estimate_distance(self, p: Vec3) -> float:
        qx = math.sqrt(p.x * p.x + p.z * p.z) - self.major_radius
        return math.sqrt(qx * qx + p.y * p.y) - self.minor_radius

    def transformed(self, matrix: Mat4) -> "Torus":
        return Torus(self.major_radius, self.minor_radius, self.material,
                     self.transform.then(matrix))


class SuperEllipsoid(SDFObject):
    """Barr superellipsoid with radii ``a1..a3`` and shape exponents ``e1`` (north-south), ``e2`` (east-west)."""

    def __init__(self, a1: float, a2: float, a3: float, e1: float, e2: float,
                 material: Material, transform: Mat4 = None):
        if min(a1, a2, a3) <= 0:
            raise SceneError("SuperEllipsoid radii must be positive")
        if e1 <= 0 or e2 <= 0:
            raise SceneError("SuperEllipsoid exponents must be positive")
        super().__init__(material, transform)
        self.a1, self.a2, self.a3 = float(a1), float(a2), float(a3)
        self.e1, self.e2 = float(e1), float(e2)

    def estimate_distance(self, p: Vec3) -> float:
        x = abs(p.x / self.a1)
        y = abs(p.y / self.a2)
        z = abs(p.z / self.a3)
        xy = (x ** (2.0 / self.e2) + y ** (2.0 / self.e2)) ** (self.e2 / self.e1)
        return (xy + z ** (2.0 / self.e1)) ** (self.e1 / 2.0) - 1.0

    def transformed(self, matrix: Mat4) -> "SuperEllipsoid":
        return SuperEllipsoid(self.a1, self.a2, self.a3, self.e1, self.e2, self.material,
                              self.transform.then(matrix))


class QuarticSurface(SDFObject):
    """``x⁴ + y⁴ + z⁴ + b(x² + y² + z²) + c = 0``, distance estimated as f / |∇f|."""

    def __init__(self, b: float, c: float, material: Material, transform: Mat4 = None):
        super().__init__(material, transform)
        self.b = float(b)
        self.c = float(c)

    def estimate_distance(self, p: Vec3) -> float:
        b = self.b
        x2, y2, z2 = p.x * p.x, p.y * p.y, p.z * p.z
        value = x2 * x2 + y2 * y2 + z2 * z2 + b * (x2 + y2 + z2) + self.c

        gx = 4 * p.x * x2 + 2 * b * p.x
        gy = 4 * p.y * y2 + 2 * b * p.y
        gz = 4 * p.z * z2 + 2 * b * p.z
        gradient = max(math.sqrt(gx * gx + gy * gy + gz * gz), 1e-6)
        return value / gradient

    def transformed(self, matrix: Mat4) -> "QuarticSurface":
        return QuarticSurface(self.b, self.c, self.material, self.transform.then(matrix))


class SmoothCombination(SDFObject):
    """Blend of two SDF children.

    The combination itself always sits at the identity transform; transforming it
    transforms both children instead.
    """

    def __init__(self, a: SDFObject, b: SDFObject, smoothness: float, material: Material = None):
        if not isinstance(a, SDFObject) or not isinstance(b, SDFObject):
            raise SceneError(f"{type(self).__name__} only combines SDF objects")
        if smoothness <= 0:
            raise SceneError(f"smoothness must be positive, got {smoothness}")
        super().__init__(material if material is not None else a.material)
        self.a = a
        self.b = b
        self.smoothness = float(smoothness)

    def child_distances(self, p: Vec3):
        da = self.a.estimate_distance(self.a.inverse_transform.transform_point(p))
        db = self.b.estimate_distance(self.b.inverse_transform.transform_point(p))
        return da, db

    @abstractmethod
    def combine(self, da: float, db: float) -> float:
        pass

    def estimate_distance(self, p: Vec3) -> float:
        return self.combine(*self.child_distances(p))

    def transformed(self, matrix: Mat4):
        return type(self)(self.a.transformed(matrix), self.b.transformed(matrix),
                          self.smoothness, self.material)


class SmoothUnionObject(SmoothCombination):
    def combine(self, da, db):
        return smooth_min(da, db, self.smoothness)


class SmoothIntersectionObject(SmoothCombination):
    def combine(self, da, db):
        return smooth_max(da, db, self.smoothness)


class SmoothDifferenceObject(SmoothCombination):
    def combine(self, da, db):
        return smooth_max(da, -db, self.smoothness)
