import math
import logging
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from csgtracer.core.errors import SceneError
from csgtracer.core.math import Vec3, Mat4, Ray
from csgtracer.core.material import Material, Intersection

logger = logging.getLogger(__name__)

OCCLUSION_EPSILON = 1e-5


class SceneObject(ABC):
    """Base of every renderable object.

    Objects are immutable once built: ``transformed`` returns a new object and
    leaves the receiver untouched.
    """

    def __init__(self, material: Material = None):
        self.material = material

    @abstractmethod
    def intersect(self, ray: Ray) -> List[Intersection]:
        pass

    @abstractmethod
    def normal_at(self, point: Vec3) -> Vec3:
        pass

    @abstractmethod
    def is_inside(self, point: Vec3) -> bool:
        pass

    @abstractmethod
    def transformed(self, matrix: Mat4) -> "SceneObject":
        pass

    def is_occluding(self, ray: Ray, max_distance: float) -> bool:
        for hit in self.intersect(ray):
            if OCCLUSION_EPSILON < hit.distance < max_distance:
                return True
        return False


class Quadric(SceneObject):
    """General quadric  Ax² + By² + Cz² + 2Dxy + 2Exz + 2Fyz + 2Gx + 2Hy + 2Iz + J = 0.

    Points with a non-positive value are inside.
    """

    def __init__(self, coefficients, material: Material):
        super().__init__(material)
        coefficients = tuple(float(c) for c in coefficients)
        if len(coefficients) != 10:
            raise SceneError(f"Quadric needs 10 coefficients, got {len(coefficients)}")
        self.coefficients = coefficients

    @classmethod
    def from_matrix(cls, matrix, material: Material):
        m = matrix.m if isinstance(matrix, Mat4) else np.asarray(matrix, dtype=np.float64)
        return cls((m[0, 0], m[1, 1], m[2, 2], m[0, 1], m[0, 2], m[1, 2],
                    m[0, 3], m[1, 3], m[2, 3], m[3, 3]), material)

    def to_matrix(self) -> Mat4:
        a, b, c, d, e, f, g, h, i, j = self.coefficients
        return Mat4([[a, d, e, g],
                     [d, b, f, h],
                     [e, f, c, i],
                     [g, h, i, j]])

    def evaluate(self, p: Vec3) -> float:
        a, b, c, d, e, f, g, h, i, j = self.coefficients
        x, y, z = p.x, p.y, p.z
        return (a * x * x + b * y * y + c * z * z
                + 2 * (d * x * y + e * x * z + f * y * z)
                + 2 * (g * x + h * y + i * z) + j)

    def intersect(self, ray: Ray) -> List[Intersection]:
        a, b, c, d, e, f, g, h, i, j = self.coefficients
        px, py, pz = ray.origin.x, ray.origin.y, ray.origin.z
        vx, vy, vz = ray.direction.x, ray.direction.y, ray.direction.z

        qa = (a * vx * vx + b * vy * vy + c * vz * vz
              + 2 * (d * vx * vy + e * vx * vz + f * vy * vz))
        qb = 2 * (a * px * vx + b * py * vy + c * pz * vz
                  + d * (px * vy + py * vx)
                  + e * (px * vz + pz * vx)
                  + f * (py * vz + pz * vy)
                  + g * vx + h * vy + i * vz)
        qc = self.evaluate(ray.origin)

        if abs(qa) < 1e-12:
            if qb == 0:
                return []
            return [self._hit(ray, -qc / qb)]

        disc = qb * qb - 4 * qa * qc
        if disc < 0:
            return []

        # sign follows qb so the sum never cancels; qb == 0 counts as positive
        k = -0.5 * (qb + math.copysign(math.sqrt(disc), qb))
        if k == 0:
            return [self._hit(ray, 0.0), self._hit(ray, 0.0)]
        t1 = k / qa
        t2 = qc / k
        if t2 < t1:
            t1, t2 = t2, t1
        return [self._hit(ray, t1), self._hit(ray, t2)]

    def _hit(self, ray, t):
        point = ray.point_at(t)
        return Intersection(point, self.normal_at(point), t, self, self.material)

    def normal_at(self, point: Vec3) -> Vec3:
        a, b, c, d, e, f, g, h, i, j = self.coefficients
        x, y, z = point.x, point.y, point.z
        return Vec3(a * x + d * y + e * z + g,
                    d * x + b * y + f * z + h,
                    e * x + f * y + c * z + i).normalize()

    def is_inside(self, point: Vec3) -> bool:
        return self.evaluate(point) <= 1e-6

    def transformed(self, matrix: Mat4) -> "Quadric":
        inv = matrix.inverse()
        q = inv.transpose() @ self.to_matrix() @ inv
        return Quadric.from_matrix(q, self.material)

    def __repr__(self):
        return f"Quadric({self.coefficients})"


class Plane(SceneObject):
    """Infinite plane ``normal · p = d``; the solid side is behind the normal."""

    def __init__(self, normal: Vec3, d: float, material: Material):
        super().__init__(material)
        if normal.length() == 0:
            raise SceneError("Plane normal must not be zero")
        self.normal = normal.normalize()
        self.d = float(d)

    def intersect(self, ray: Ray) -> List[Intersection]:
        denom = self.normal.dot(ray.direction)
        if abs(denom) < 1e-6:
            return []  # parallel to the plane
        t = (self.d - self.normal.dot(ray.origin)) / denom
        if t < 0:
            return []
        return [Intersection(ray.point_at(t), self.normal, t, self, self.material)]

    def normal_at(self, point: Vec3) -> Vec3:
        return self.normal

    def is_inside(self, point: Vec3) -> bool:
        return self.normal.dot(point) - self.d < 0

    def transformed(self, matrix: Mat4) -> "Plane":
        point = matrix.transform_point(self.normal * self.d)
        normal = matrix.inverse().transpose().transform_direction(self.normal).normalize()
        return Plane(normal, normal.dot(point), self.material)


Area = Plane


class Sphere(SceneObject):
    def __init__(self, center: Vec3, radius: float, material: Material):
        super().__init__(material)
        if radius <= 0:
            raise SceneError(f"Sphere radius must be positive, got {radius}")
        self.center = center
        self.radius = float(radius)

    def intersect(self, ray: Ray) -> List[Intersection]:
        oc = ray.origin - self.center
        b = oc.dot(ray.direction)
        c = oc.dot(oc) - self.radius * self.radius
        discriminant = b * b - c
        if discriminant < 0:
            return []
        sqrt_d = math.sqrt(discriminant)
        hits = []
        for t in (-b - sqrt_d, -b + sqrt_d):
            point = ray.point_at(t)
            hits.append(Intersection(point, self.normal_at(point), t, self, self.material))
        return hits

    def normal_at(self, point: Vec3) -> Vec3:
        return (point - self.center).normalize()

    def is_inside(self, point: Vec3) -> bool:
        return (point - self.center).length_squared() < self.radius * self.radius

    def to_quadric(self) -> Quadric:
        cx, cy, cz = self.center
        return Quadric((1, 1, 1, 0, 0, 0, -cx, -cy, -cz,
                        cx * cx + cy * cy + cz * cz - self.radius * self.radius), self.material)

    def transformed(self, matrix: Mat4) -> Quadric:
        return self.to_quadric().transformed(matrix)


class Triangle(SceneObject):
    def __init__(self, v0: Vec3, v1: Vec3, v2: Vec3, material: Material = None):
        super().__init__(material)
        self.v0 = v0
        self.v1 = v1
        self.v2 = v2
        self.normal = (v1 - v0).cross(v2 - v0).normalize()

    def intersect(self, ray: Ray) -> List[Intersection]:
        # Möller–Trumbore
        edge1 = self.v1 - self.v0
        edge2 = self.v2 - self.v0
        h = ray.direction.cross(edge2)
        a = edge1.dot(h)
        if abs(a) < 1e-9:
            return []  # parallel

        f = 1.0 / a
        s = ray.origin - self.v0
        u = f * s.dot(h)
        if u < 0.0 or u > 1.0:
            return []

        q = s.cross(edge1)
        v = f * ray.direction.dot(q)
        if v < 0.0 or u + v > 1.0:
            return []

        t = f * edge2.dot(q)
        if t < 1e-4:
            return []
        return [Intersection(ray.point_at(t), self.normal, t, self, self.material)]

    def normal_at(self, point: Vec3) -> Vec3:
        return self.normal

    def is_inside(self, point: Vec3) -> bool:
        return False  # a surface encloses no volume

    def contains(self, p: Vec3) -> bool:
        """Barycentric test for a point assumed to lie in the triangle's plane."""
        e0, e1, e2 = self.v1 - self.v0, self.v2 - self.v0, p - self.v0
        d00, d01, d11 = e0.dot(e0), e0.dot(e1), e1.dot(e1)
        d20, d21 = e2.dot(e0), e2.dot(e1)
        denom = d00 * d11 - d01 * d01
        if abs(denom) < 1e-12:
            return False
        v = (d11 * d20 - d01 * d21) / denom
        w = (d00 * d21 - d01 * d20) / denom
        return v >= 0 and w >= 0 and v + w <= 1

    def transformed(self, matrix: Mat4) -> "Triangle":
        return Triangle(matrix.transform_point(self.v0),
                        matrix.transform_point(self.v1),
                        matrix.transform_point(self.v2),
                        self.material)


class MeshObject(SceneObject):
    """Closed triangle mesh treated as a single object."""

    PARITY_DIRECTION = Vec3(1, 0.5, 0.3).normalize()

    def __init__(self, triangles, material: Material):
        super().__init__(material)
        self.triangles = tuple(triangles)

    @classmethod
    def from_obj(cls, path: str, material: Material):
        """Load ``v`` and ``f`` records from a Wavefront OBJ file (fan triangulated)."""
        vertices = []
        triangles = []
        with open(path, "r", encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, 1):
                tokens = line.split()
                if not tokens:
                    continue
                try:
                    if tokens[0] == "v":
                        vertices.append(Vec3(float(tokens[1]), float(tokens[2]), float(tokens[3])))
                    elif tokens[0] == "f":
                        indices = [int(tok.split("/")[0]) for tok in tokens[1:]]
                        # negative indices count back from the latest vertex
                        corners = [vertices[i - 1] if i > 0 else vertices[i] for i in indices]
                        for k in range(1, len(corners) - 1):
                            triangles.append(Triangle(corners[0], corners[k], corners[k + 1], material))
                except (ValueError, IndexError) as exc:
                    raise SceneError(f"{path}:{line_no}: malformed OBJ record {line.strip()!r}") from exc
        logger.debug("Loaded %d triangles from %s", len(triangles), path)
        return cls(triangles, material)

    def intersect(self, ray: Ray) -> List[Intersection]:
        hits = []
        for tri in self.triangles:
            for hit in tri.intersect(ray):
                hits.append(hit.with_owner(self))
        hits.sort()
        return hits

    def normal_at(self, point: Vec3) -> Vec3:
        for tri in self.triangles:
            if tri.contains(point):
                return tri.normal
        return Vec3(0, 1, 0)

    def is_inside(self, point: Vec3) -> bool:
        ray = Ray(point, self.PARITY_DIRECTION)
        count = 0
        for tri in self.triangles:
            for hit in tri.intersect(ray):
                if hit.distance > OCCLUSION_EPSILON:
                    count += 1
        return count % 2 == 1

    def transformed(self, matrix: Mat4) -> "MeshObject":
        return MeshObject([tri.transformed(matrix) for tri in self.triangles], self.material)
