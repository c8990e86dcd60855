import math
import time
import random
import logging
from typing import List, Optional

import numpy as np
from PIL import Image

from csgtracer.core.math import Vec3, Ray
from csgtracer.core.material import Intersection
from csgtracer.core.camera import Camera
from csgtracer.core.framebuffer import Framebuffer
from csgtracer.core.lighting import Light, LightingContext, fresnel_dielectric
from csgtracer.core.scene import Scene, RenderSettings, IorStack
from csgtracer.renderers.base_renderer import BaseRenderer, RendererFactory, row_ranges

logger = logging.getLogger(__name__)

BLACK = Vec3(0, 0, 0)
MIRROR_ROUGHNESS = 0.05
MIN_SHADOW_TRANSMISSION = 1e-3


def pixel_rng(seed: Optional[int], x: int, y: int, width: int) -> random.Random:
    """Random source for one pixel; fixed seeds give reproducible pixels."""
    if seed is None:
        return random.Random()
    return random.Random((seed << 32) ^ (y * width + x))


def blend_weights(fresnel: float, transmission: float):
    """Split a hit's energy into ``(local, reflect, transmit)`` weights.

    ``reflect + transmit`` never exceeds 1 and ``local`` is never negative.
    """
    reflect = fresnel
    transmit = (1.0 - fresnel) * transmission
    total = reflect + transmit
    if total > 1.0:
        reflect /= total
        transmit /= total
    local = max(0.0, 1.0 - reflect - transmit)
    return local, reflect, transmit


def refraction_media(hit: Intersection, direction: Vec3, ior_stack: IorStack):
    """Work out which media a ray crosses at ``hit``.

    Returns ``(entering, ior_from, ior_to, stack_after)``; ``stack_after`` is the
    stack for the ray continuing through the surface.
    """
    ior = hit.material.ior
    if direction.dot(hit.normal) < 0:
        return True, ior_stack.top, ior, ior_stack.entering(ior)
    inner = ior_stack.exiting(ior)
    return False, ior, inner.top, inner


def _average(colors: List[Vec3]) -> Vec3:
    total = BLACK
    for c in colors:
        total = total + c
    return total / len(colors)


def _all_similar(colors: List[Vec3], threshold: float) -> bool:
    for i in range(len(colors)):
        for j in range(i + 1, len(colors)):
            if not colors[i].similar(colors[j], threshold):
                return False
    return True


class CPURenderer(BaseRenderer):
    """Single process recursive ray tracer."""

    def __init__(self):
        super().__init__("cpu_raytracer")

    def get_capabilities(self) -> List[str]:
        return [
            "ray_tracing",
            "soft_shadows",
            "glossy_reflection",
            "refraction",
            "path_tracing",
            "adaptive_supersampling",
            "csg",
            "sdf",
        ]

    def render(self, scene: Scene, camera: Camera, settings: RenderSettings,
               framebuffer: Optional[Framebuffer] = None) -> Image.Image:
        start_time = time.time()
        logger.info("CPU render started: %dx%d, depth %d, %d path samples",
                    settings.width, settings.height, settings.max_depth, settings.path_samples)

        fb = framebuffer if framebuffer is not None else Framebuffer(settings.width, settings.height)
        for y_start, y_end in row_ranges(settings.height, settings.rows_per_task):
            fb.write_rows(y_start, self.render_rows(scene, camera, settings, y_start, y_end))
            logger.debug("Rows %d-%d done (%.2fs)", y_start, y_end - 1, time.time() - start_time)

        elapsed = time.time() - start_time
        logger.info("CPU render finished in %dm %.2fs", int(elapsed // 60), elapsed % 60)
        return fb.to_image()

    def render_rows(self, scene: Scene, camera: Camera, settings: RenderSettings,
                    y_start: int, y_end: int) -> np.ndarray:
        """Gamma encoded pixels of rows ``y_start`` (inclusive) to ``y_end`` (exclusive)."""
        rows = np.zeros((y_end - y_start, settings.width, 3), dtype=np.uint8)
        ior_stack = scene.initial_ior_stack(camera.position)
        for y in range(y_start, y_end):
            for x in range(settings.width):
                color = self.render_pixel(scene, camera, settings, x, y, ior_stack)
                rows[y - y_start, x] = color.to_rgb(settings.gamma)
        return rows

    def render_pixel(self, scene: Scene, camera: Camera, settings: RenderSettings,
                     x: int, y: int, ior_stack: Optional[IorStack] = None) -> Vec3:
        """Linear colour of pixel ``(x, y)``."""
        if ior_stack is None:
            ior_stack = scene.initial_ior_stack(camera.position)
        rng = pixel_rng(settings.seed, x, y, settings.width)
        top_left = camera.pixel_top_left(x, y, settings.width, settings.height)
        return self.adaptive_sample(scene, camera, settings, top_left,
                                    camera.right_step(settings.width),
                                    camera.up_step(settings.height),
                                    0, ior_stack, rng)

    def adaptive_sample(self, scene: Scene, camera: Camera, settings: RenderSettings,
                        top_left: Vec3, step_x: Vec3, step_y: Vec3, depth: int,
                        ior_stack: IorStack, rng: random.Random) -> Vec3:
        """Average of a jittered sample grid over a footprint, split into quarters where it varies."""
        n = settings.supersampling_grid
        colors = []
        for j in range(n):
            for i in range(n):
                point = (top_left
                         + step_x * ((i + rng.random()) / n)
                         + step_y * ((j + rng.random()) / n))
                colors.append(self.trace_ray(camera.ray_through(point), scene, settings,
                                             ior_stack, settings.max_depth, rng))

        if depth >= settings.supersampling_depth or _all_similar(colors, settings.color_threshold):
            return _average(colors)

        half_x = step_x * 0.5
        half_y = step_y * 0.5
        corners = (top_left, top_left + half_x, top_left + half_y, top_left + half_x + half_y)
        return _average([self.adaptive_sample(scene, camera, settings, corner, half_x, half_y,
                                              depth + 1, ior_stack, rng)
                         for corner in corners])

    def trace_ray(self, ray: Ray, scene: Scene, settings: RenderSettings,
                  ior_stack: IorStack, depth: int, rng: random.Random) -> Vec3:
        if depth <= 0:
            return BLACK
        hit = scene.nearest_intersection(ray, settings.epsilon)
        if hit is None:
            return BLACK
        return self.shade(ray, hit, scene, settings, ior_stack, depth, rng)

    def shade(self, ray: Ray, hit: Intersection, scene: Scene, settings: RenderSettings,
              ior_stack: IorStack, depth: int, rng: random.Random) -> Vec3:
        """Colour leaving ``hit`` back along ``ray``."""
        material = hit.material
        view = -ray.direction

        entering, ior_from, ior_to, inner_stack = refraction_media(hit, ray.direction, ior_stack)
        # normal on the side the ray arrives from
        facing = hit.normal if entering else -hit.normal

        fresnel = fresnel_dielectric(view, facing, ior_from, ior_to)
        local_weight, reflect_weight, transmit_weight = blend_weights(fresnel, material.transmission)

        color = BLACK
        if local_weight > 0.0:
            lights = self.compute_soft_shadows(hit, scene, settings, rng)
            lit = hit if entering else hit.with_owner(hit.object, facing)
            ctx = LightingContext(lights, lit, view, scene.ambient, ior_from, ior_to)
            local = scene.lighting.compute_light(ctx)
            local = local + self._indirect_diffuse(hit, facing, scene, settings, ior_stack, depth, rng)
            color = color + local * local_weight

        if reflect_weight > 0.0:
            reflected = self._glossy_reflection(ray, hit, facing, scene, settings, ior_stack, depth, rng)
            color = color + reflected * reflect_weight

        if transmit_weight > 0.0:
            direction = ray.direction.refract(facing, ior_from, ior_to)
            if direction is not None:
                refracted_ray = Ray(hit.point - facing * settings.epsilon, direction)
                refracted = self.trace_ray(refracted_ray, scene, settings, inner_stack, depth - 1, rng)
                color = color + refracted * transmit_weight

        return color

    def _indirect_diffuse(self, hit, normal, scene, settings, ior_stack, depth, rng) -> Vec3:
        """Monte Carlo estimate of light bounced in from the hemisphere around ``normal``."""
        if settings.path_samples == 0:
            return BLACK
        brdf = hit.material.albedo / math.pi
        origin = hit.point + normal * settings.epsilon
        total = BLACK
        for _ in range(settings.path_samples):
            direction = normal.random_hemisphere_direction(rng)
            cos_theta = max(0.0, normal.dot(direction))
            pdf = cos_theta / math.pi
            if pdf <= 0.0:
                continue
            radiance = self.trace_ray(Ray(origin, direction), scene, settings, ior_stack, depth - 1, rng)
            total = total + radiance * brdf * (cos_theta / pdf)
        return total / settings.path_samples

    def _glossy_reflection(self, ray, hit, normal, scene, settings, ior_stack, depth, rng) -> Vec3:
        if settings.path_samples == 0:
            return BLACK
        roughness = hit.material.roughness
        mirror = roughness < MIRROR_ROUGHNESS
        samples = 1 if mirror else settings.path_samples
        reflection = ray.direction.reflect(normal)
        origin = hit.point + normal * settings.epsilon

        total = BLACK
        for _ in range(samples):
            direction = reflection if mirror else reflection.sample_glossy_direction(normal, roughness, rng)
            bounce = Ray(origin, direction)
            bounce_hit = scene.nearest_intersection(bounce, settings.epsilon)
            if bounce_hit is None:
                radiance = scene.skybox.sample(direction) if scene.skybox is not None else BLACK
            elif depth - 1 > 0:
                radiance = self.shade(bounce, bounce_hit, scene, settings, ior_stack, depth - 1, rng)
            else:
                radiance = BLACK
            total = total + radiance * max(0.0, normal.dot(direction))
        return total / samples

    def compute_soft_shadows(self, hit: Intersection, scene: Scene, settings: RenderSettings,
                             rng: random.Random) -> List[Light]:
        """Lights that reach ``hit``, with intensity scaled by their average visibility."""
        point = hit.point
        relevant = []
        for light in scene.lights:
            if light.attenuation(point) <= 0.0:
                continue  # outside the spot cone

            visible = 0.0
            for _ in range(settings.soft_shadow_samples):
                target = light.jitter_position(rng)
                normal = hit.normal if hit.normal.dot(target - point) >= 0 else -hit.normal
                origin = point + normal * settings.epsilon
                to_light = target - origin
                distance = to_light.length()
                if distance == 0:
                    visible += 1.0
                    continue

                shadow_ray = Ray(origin, to_light)
                transmission = 1.0
                for obj in scene.objects:
                    if obj.is_occluding(shadow_ray, distance):
                        transmission *= obj.material.transmission
                        if transmission < MIN_SHADOW_TRANSMISSION:
                            transmission = 0.0
                            break
                visible += transmission

            factor = visible / settings.soft_shadow_samples
            if factor > 0.0:
                relevant.append(light.with_intensity(light.intensity * factor))
        return relevant


RendererFactory.register("cpu_raytracer", CPURenderer)
