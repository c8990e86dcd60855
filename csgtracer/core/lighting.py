import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from csgtracer.core.errors import SceneError
from csgtracer.core.math import Vec3
from csgtracer.core.material import Intersection


class Light:
    """Point light. ``radius`` is the size of the disk used for soft shadows."""

    def __init__(self, position: Vec3, intensity: float = 1.0, radius: float = 0.0,
                 color: Vec3 = Vec3(1, 1, 1)):
        if radius < 0:
            raise SceneError(f"Light radius must not be negative, got {radius}")
        self.position = position
        self.intensity = float(intensity)
        self.radius = float(radius)
        self.color = color

    def with_intensity(self, intensity: float) -> "Light":
        return Light(self.position, intensity, self.radius, self.color)

    def attenuation(self, point: Vec3) -> float:
        return 1.0

    def disk_axes(self):
        # point lights jitter in the horizontal XZ plane
        return Vec3(1, 0, 0), Vec3(0, 0, 1)

    def jitter_position(self, rng) -> Vec3:
        """Uniform sample on the light's disk."""
        if self.radius == 0:
            return self.position
        r = self.radius * math.sqrt(rng.random())
        theta = 2.0 * math.pi * rng.random()
        u, v = self.disk_axes()
        return self.position + u * (r * math.cos(theta)) + v * (r * math.sin(theta))

    def __repr__(self):
        return f"{type(self).__name__}(position={self.position!r}, intensity={self.intensity})"


class SpotLight(Light):
    """Cone light with a smooth falloff towards the cone edge.

    ``angle`` is the cone half-angle in radians; a larger ``exponent`` widens
    the bright core.
    """

    def __init__(self, position: Vec3, direction: Vec3, angle: float, exponent: float = 1.0,
                 intensity: float = 1.0, radius: float = 0.0, color: Vec3 = Vec3(1, 1, 1)):
        super().__init__(position, intensity, radius, color)
        if direction.length() == 0:
            raise SceneError("SpotLight direction must not be zero")
        if not 0 < angle < math.pi:
            raise SceneError(f"SpotLight angle must be in (0, pi), got {angle}")
        if exponent <= 0:
            raise SceneError(f"SpotLight exponent must be positive, got {exponent}")
        self.direction = direction.normalize()
        self.angle = float(angle)
        self.exponent = float(exponent)
        self.cos_angle = math.cos(self.angle)

    def with_intensity(self, intensity: float) -> "SpotLight":
        return SpotLight(self.position, self.direction, self.angle, self.exponent,
                         intensity, self.radius, self.color)

    def attenuation(self, point: Vec3) -> float:
        to_point = (point - self.position).normalize()
        t = (self.direction.dot(to_point) - self.cos_angle) / (1.0 - self.cos_angle)
        if t <= 0.0:
            return 0.0
        return t ** (1.0 / self.exponent)

    def disk_axes(self):
        u, v, _ = self.direction.orthonormal_basis()
        return u, v


@dataclass(frozen=True)
class LightingContext:
    """Everything a lighting model needs to shade one hit."""
    lights: Sequence[Light]
    intersection: Intersection
    view: Vec3
    ambient: Vec3
    ior_from: float = 1.0
    ior_to: float = 1.0


def fresnel_dielectric(view: Vec3, normal: Vec3, ior_from: float, ior_to: float) -> float:
    """Unpolarised reflectance of a dielectric boundary.

    Returns 1.0 on total internal reflection.
    """
    cos_i = min(1.0, abs(view.dot(normal)))
    eta = ior_from / ior_to
    sin2_t = eta * eta * (1.0 - cos_i * cos_i)
    if sin2_t > 1.0:
        return 1.0

    cos_t = math.sqrt(1.0 - sin2_t)
    rs = (ior_from * cos_i - ior_to * cos_t) / (ior_from * cos_i + ior_to * cos_t)
    rp = (ior_to * cos_i - ior_from * cos_t) / (ior_to * cos_i + ior_from * cos_t)
    return 0.5 * (rs * rs + rp * rp)


class LightingModel(ABC):
    @abstractmethod
    def compute_light(self, ctx: LightingContext) -> Vec3:
        pass


class LambertLighting(LightingModel):
    """Plain diffuse shading, handy for debugging geometry."""

    def compute_light(self, ctx: LightingContext) -> Vec3:
        hit = ctx.intersection
        color = Vec3(0, 0, 0)
        for light in ctx.lights:
            nl = hit.normal.dot((light.position - hit.point).normalize())
            if nl <= 0:
                continue
            weight = light.intensity * nl * light.attenuation(hit.point)
            color = color + light.color * hit.material.albedo * weight
        return color + ctx.ambient


class CookTorranceLighting(LightingModel):
    """Microfacet shading: GGX distribution, Smith geometry and exact Fresnel."""

    def compute_light(self, ctx: LightingContext) -> Vec3:
        hit = ctx.intersection
        point, normal, material = hit.point, hit.normal, hit.material
        view = ctx.view
        roughness = material.roughness

        fresnel = fresnel_dielectric(view, normal, ctx.ior_from, ctx.ior_to)
        nv = max(normal.dot(view), 0.0)
        diffuse = material.albedo * ((1.0 - fresnel) * (1.0 - material.metalness))

        color = Vec3(0, 0, 0)
        for light in ctx.lights:
            to_light = (light.position - point).normalize()
            nl = max(normal.dot(to_light), 0.0)
            if nl <= 0.0:
                continue
            attenuation = light.attenuation(point)
            if attenuation <= 0.0:
                continue

            half = (view + to_light).normalize()
            nh = max(normal.dot(half), 0.0)
            d = self.distribution_ggx(nh, roughness)
            g = self.geometry_smith(nv, nl, roughness)
            specular = fresnel * d * g / (4.0 * nv * nl + 1e-4)

            radiance = light.color * (light.intensity * nl * attenuation)
            color = color + radiance * (diffuse + Vec3(specular, specular, specular))

        return color + ctx.ambient

    @staticmethod
    def distribution_ggx(nh: float, roughness: float) -> float:
        a2 = roughness * roughness
        denom = nh * nh * (a2 - 1.0) + 1.0
        return a2 / max(math.pi * denom * denom, 1e-12)

    @staticmethod
    def geometry_schlick_ggx(x: float, roughness: float) -> float:
        k = roughness * roughness / 2.0
        denom = x * (1.0 - k) + k
        if denom <= 0.0:
            return 0.0
        return x / denom

    @classmethod
    def geometry_smith(cls, nv: float, nl: float, roughness: float) -> float:
        return cls.geometry_schlick_ggx(nv, roughness) * cls.geometry_schlick_ggx(nl, roughness)
