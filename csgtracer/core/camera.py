import math
import logging

from csgtracer.core.errors import SceneError
from csgtracer.core.math import Vec3, Ray

logger = logging.getLogger(__name__)


class Camera:
    """Pinhole camera looking through a rectangular image plane.

    ``up`` is derived as ``forward x right``; with the usual ``right`` this
    points down the image, so row indices grow with ``up``.
    """

    def __init__(self,
                 position: Vec3,
                 forward: Vec3,
                 right: Vec3,
                 plane_height: float = 2.0,
                 plane_width: float = 2.0,
                 plane_distance: float = 1.0):
        if forward.length() == 0 or right.length() == 0:
            raise SceneError("Camera forward and right vectors must not be zero")
        if abs(forward.normalize().dot(right.normalize())) > 1e-6:
            raise SceneError("Camera forward and right vectors must be perpendicular")
        if min(plane_height, plane_width, plane_distance) <= 0:
            raise SceneError("Camera image plane dimensions must be positive")

        self.position = position
        self.forward = forward.normalize()
        self.right = right.normalize()
        self.up = self.forward.cross(self.right).normalize()
        self.plane_height = float(plane_height)
        self.plane_width = float(plane_width)
        self.plane_distance = float(plane_distance)

    @classmethod
    def look_at(cls, lookfrom: Vec3, lookat: Vec3, vup: Vec3, vfov: float, aspect: float):
        """Camera from an eye point, a target and a vertical FOV in degrees."""
        forward = (lookat - lookfrom).normalize()
        right = forward.cross(vup).normalize()
        if right.length() == 0:
            raise SceneError("vup must not be parallel to the viewing direction")

        half_height = math.tan(math.radians(vfov) / 2)
        half_width = aspect * half_height
        logger.debug("look_at camera at %r towards %r", lookfrom, lookat)
        return cls(lookfrom, forward, right, 2 * half_height, 2 * half_width, 1.0)

    def pixel_start(self) -> Vec3:
        """Top-left corner of the image plane."""
        return (self.position
                + self.forward * self.plane_distance
                - self.right * (self.plane_width / 2)
                - self.up * (self.plane_height / 2))

    def right_step(self, res_x: int) -> Vec3:
        return self.right * (self.plane_width / res_x)

    def up_step(self, res_y: int) -> Vec3:
        return self.up * (self.plane_height / res_y)

    def pixel_top_left(self, x: int, y: int, res_x: int, res_y: int) -> Vec3:
        return self.pixel_start() + self.right_step(res_x) * x + self.up_step(res_y) * y

    def ray_through(self, point: Vec3) -> Ray:
        return Ray(self.position, point - self.position)

    def ray_for(self, u: float, v: float) -> Ray:
        """Ray through normalised image coordinates, ``(0, 0)`` top-left."""
        target = (self.pixel_start()
                  + self.right * (u * self.plane_width)
                  + self.up * (v * self.plane_height))
        return self.ray_through(target)
