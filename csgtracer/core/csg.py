from abc import abstractmethod
from typing import List

from csgtracer.core.errors import UnsupportedOperationError
from csgtracer.core.math import Vec3, Mat4, Ray
from csgtracer.core.material import Material, Intersection
from csgtracer.core.geometry import SceneObject

START_OFFSET = 1e-5


class CSGObject(SceneObject):
    """Boolean combination of two child objects.

    The visible boundary is found by walking the children's merged hits in
    distance order while tracking whether the ray is inside each child, and
    emitting a hit whenever the combined inside state flips.
    """

    def __init__(self, a: SceneObject, b: SceneObject, material: Material = None):
        super().__init__(material if material is not None else a.material)
        self.a = a
        self.b = b

    @abstractmethod
    def combine(self, inside_a: bool, inside_b: bool) -> bool:
        pass

    def adjusted_normal(self, hit: Intersection, child: SceneObject) -> Vec3:
        return hit.normal

    def intersect(self, ray: Ray) -> List[Intersection]:
        hits = self.a.intersect(ray) + self.b.intersect(ray)
        hits.sort()

        start = ray.point_at(START_OFFSET)
        inside_a = self.a.is_inside(start)
        inside_b = self.b.is_inside(start)
        was_inside = self.combine(inside_a, inside_b)

        result = []
        for hit in hits:
            if hit.distance < START_OFFSET:
                continue

            child = hit.object
            if child is self.a:
                inside_a = not inside_a
            elif child is self.b:
                inside_b = not inside_b

            now_inside = self.combine(inside_a, inside_b)
            if now_inside != was_inside:
                result.append(hit.with_owner(self, self.adjusted_normal(hit, child)))
            was_inside = now_inside

        return result

    def normal_at(self, point: Vec3) -> Vec3:
        raise UnsupportedOperationError(
            f"{type(self).__name__} has no direct normal; use the normal of its Intersection")

    def is_inside(self, point: Vec3) -> bool:
        return self.combine(self.a.is_inside(point), self.b.is_inside(point))

    def transformed(self, matrix: Mat4):
        return type(self)(self.a.transformed(matrix), self.b.transformed(matrix), self.material)

    def __repr__(self):
        return f"{type(self).__name__}({self.a!r}, {self.b!r})"


class UnionObject(CSGObject):
    def combine(self, inside_a, inside_b):
        return inside_a or inside_b


class IntersectionObject(CSGObject):
    def combine(self, inside_a, inside_b):
        return inside_a and inside_b


class DifferenceObject(CSGObject):
    def combine(self, inside_a, inside_b):
        return inside_a and not inside_b

    def adjusted_normal(self, hit, child):
        # B's boundary faces into B, which is outside the result
        if child is self.b:
            return -hit.normal
        return hit.normal
