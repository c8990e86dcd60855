"""Tests for the recursive tracer inside CPURenderer.

Tests cover:
- Direct shading of a single diffuse sphere
- Refraction through a glass sphere and IOR stack bookkeeping
- Mirror reflection with the skybox fallback
- Fresnel blend weights
- Soft shadow visibility and light pruning
- Adaptive supersampling subdivision
- Per-pixel determinism for fixed seeds
"""

import math
import random

import pytest

from csgtracer.core.math import Vec3, Ray
from csgtracer.core.material import CubeMap, Material, Intersection
from csgtracer.core.geometry import Plane, Sphere
from csgtracer.core.lighting import Light, SpotLight, fresnel_dielectric
from csgtracer.core.scene import Scene, RenderSettings, IorStack
from csgtracer.renderers.cpu_renderer import CPURenderer, blend_weights, refraction_media, pixel_rng

FORWARD = Ray(Vec3(0, 0, 0), Vec3(0, 0, -1))


class RecordingRenderer(CPURenderer):
    """Keeps every traced ray together with its IOR stack and depth."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def trace_ray(self, ray, scene, settings, ior_stack, depth, rng):
        self.calls.append((ray, ior_stack, depth))
        return super().trace_ray(ray, scene, settings, ior_stack, depth, rng)


class StripeRenderer(CPURenderer):
    """White right of the view axis, black left of it."""

    def __init__(self):
        super().__init__()
        self.count = 0

    def trace_ray(self, ray, scene, settings, ior_stack, depth, rng):
        self.count += 1
        return Vec3(1, 1, 1) if ray.direction.x > 0 else Vec3(0, 0, 0)


class TestTraceRay:
    """Basic recursion behaviour."""

    def test_diffuse_sphere(self, red, settings, rng):
        scene = Scene([Sphere(Vec3(0, 0, -3), 1.0, red)], [Light(Vec3(0, 0, 0))])
        color = CPURenderer().trace_ray(FORWARD, scene, settings, IorStack(), settings.max_depth, rng)
        assert tuple(color) == pytest.approx((0.8, 0.1, 0.1))

    def test_miss_is_black(self, red, settings, rng):
        scene = Scene([Sphere(Vec3(0, 0, -3), 1.0, red)], [Light(Vec3(0, 0, 0))],
                      skybox=CubeMap.solid(Vec3(1, 1, 1)))
        ray = Ray(Vec3(0, 0, 0), Vec3(0, 0, 1))
        assert CPURenderer().trace_ray(ray, scene, settings, IorStack(), 2, rng) == Vec3(0, 0, 0)

    def test_zero_depth_is_black(self, red, settings, rng):
        scene = Scene([Sphere(Vec3(0, 0, -3), 1.0, red)], [Light(Vec3(0, 0, 0))])
        assert CPURenderer().trace_ray(FORWARD, scene, settings, IorStack(), 0, rng) == Vec3(0, 0, 0)

    def test_ambient_reaches_unlit_surface(self, red, settings, rng):
        scene = Scene([Sphere(Vec3(0, 0, -3), 1.0, red)], [], ambient=Vec3(0.1, 0.1, 0.1))
        color = CPURenderer().trace_ray(FORWARD, scene, settings, IorStack(), 2, rng)
        assert color.x == pytest.approx(0.1)

    def test_back_face_lit_like_front_face(self, white):
        settings = RenderSettings(width=1, height=1, max_depth=2, path_samples=0,
                                  supersampling_grid=1, seed=7)
        renderer = CPURenderer()

        above = Scene([Plane(Vec3(0, 1, 0), 0.0, white)], [Light(Vec3(0, 5, -1))])
        front = renderer.trace_ray(Ray(Vec3(0, 1, 0), Vec3(0, -1, -1)), above, settings,
                                   IorStack(), 2, random.Random(1))

        below = Scene([Plane(Vec3(0, 1, 0), 0.0, white)], [Light(Vec3(0, -5, -1))])
        back = renderer.trace_ray(Ray(Vec3(0, -1, 0), Vec3(0, 1, -1)), below, settings,
                                  IorStack(), 2, random.Random(1))

        assert front.x > 0.5
        assert tuple(back) == pytest.approx(tuple(front))


class TestRefraction:
    """A ray through the centre of a glass sphere."""

    @pytest.fixture
    def glass_scene(self, glass):
        return Scene([Sphere(Vec3(0, 0, -3), 1.0, glass)], [], skybox=CubeMap.solid(Vec3(0, 0, 0)))

    @pytest.fixture
    def deep_settings(self):
        return RenderSettings(width=1, height=1, max_depth=3, path_samples=1,
                              supersampling_grid=1, seed=1)

    def test_emerges_colinear(self, glass_scene, deep_settings, rng):
        renderer = RecordingRenderer()
        color = renderer.trace_ray(FORWARD, glass_scene, deep_settings, IorStack(), 3, rng)
        assert color.length() < 1e-9

        inside = [c for c in renderer.calls if c[2] == 2]
        assert len(inside) == 1
        assert inside[0][1] == IorStack([1.5])

        emerging = [c for c in renderer.calls if c[2] == 1]
        assert len(emerging) == 1
        ray, stack, _ = emerging[0]
        assert len(stack) == 0
        assert ray.direction.dot(FORWARD.direction) > 0.999
        assert ray.origin.z < -3.9

    def test_camera_inside_glass(self, glass):
        scene = Scene([Sphere(Vec3(0, 0, 0), 2.0, glass)], [])
        assert scene.initial_ior_stack(Vec3(0, 0, 0)) == IorStack([1.5])
        assert scene.initial_ior_stack(Vec3(0, 0, 5)) == IorStack()


class TestIorStack:
    """Entering and exiting media."""

    def hit(self, normal, material):
        return Intersection(Vec3(0, 0, 0), normal, 1.0, None, material)

    def test_enter_then_exit(self, glass):
        down = Vec3(0, 0, -1)
        entering, ior_from, ior_to, stack = refraction_media(
            self.hit(Vec3(0, 0, 1), glass), down, IorStack())
        assert (entering, ior_from, ior_to, stack) == (True, 1.0, 1.5, IorStack([1.5]))

        entering, ior_from, ior_to, stack = refraction_media(
            self.hit(Vec3(0, 0, -1), glass), down, stack)
        assert (entering, ior_from, ior_to, stack) == (False, 1.5, 1.0, IorStack())

    def test_nested_media(self, glass):
        water = IorStack([1.33])
        down = Vec3(0, 0, -1)
        _, ior_from, ior_to, stack = refraction_media(self.hit(Vec3(0, 0, 1), glass), down, water)
        assert (ior_from, ior_to) == (1.33, 1.5)
        assert stack == IorStack([1.33, 1.5])

        _, ior_from, ior_to, stack = refraction_media(self.hit(Vec3(0, 0, -1), glass), down, stack)
        assert (ior_from, ior_to) == (1.5, 1.33)
        assert stack == water

    def test_mismatched_exit_does_not_pop(self, glass):
        water = IorStack([1.33])
        _, _, ior_to, stack = refraction_media(self.hit(Vec3(0, 0, -1), glass), Vec3(0, 0, -1), water)
        assert stack == water
        assert ior_to == 1.33

    def test_stack_is_immutable(self):
        air = IorStack()
        glass = air.entering(1.5)
        assert len(air) == 0
        assert glass.top == 1.5
        assert air.top == IorStack.AIR


class TestBlendWeights:
    """Fresnel driven split between local, reflected and transmitted light."""

    def test_opaque(self):
        local, reflect, transmit = blend_weights(0.04, 0.0)
        assert (local, reflect, transmit) == pytest.approx((0.96, 0.04, 0.0))

    def test_clear_glass(self):
        local, reflect, transmit = blend_weights(0.3, 1.0)
        assert reflect == pytest.approx(0.3)
        assert transmit == pytest.approx(0.7)
        assert local == pytest.approx(0.0, abs=1e-12)

    def test_total_internal_reflection(self):
        assert blend_weights(1.0, 1.0) == (0.0, 1.0, 0.0)

    def test_never_exceeds_one(self):
        for fresnel in (0.0, 0.1, 0.5, 0.9, 1.0):
            for transmission in (0.0, 0.25, 0.5, 1.0):
                local, reflect, transmit = blend_weights(fresnel, transmission)
                assert reflect + transmit <= 1.0 + 1e-12
                assert local >= 0.0


class TestReflection:
    """Mirror floor under a white sky."""

    @pytest.fixture
    def mirror(self):
        return Material(Vec3(0.5, 0.5, 0.5), roughness=0.0, ior=1.5)

    def test_reflects_sky(self, mirror, settings, rng):
        scene = Scene([Plane(Vec3(0, 1, 0), 0, mirror)], [], skybox=CubeMap.solid(Vec3(1, 1, 1)))
        ray = Ray(Vec3(0, 1, 0), Vec3(0, -1, -1))
        color = CPURenderer().trace_ray(ray, scene, settings, IorStack(), 2, rng)

        fresnel = fresnel_dielectric(Vec3(0, 1, 1).normalize(), Vec3(0, 1, 0), 1.0, 1.5)
        expected = fresnel * math.cos(math.radians(45))
        assert tuple(color) == pytest.approx((expected, expected, expected))

    def test_no_skybox_reflects_black(self, mirror, settings, rng):
        scene = Scene([Plane(Vec3(0, 1, 0), 0, mirror)], [])
        ray = Ray(Vec3(0, 1, 0), Vec3(0, -1, -1))
        color = CPURenderer().trace_ray(ray, scene, settings, IorStack(), 2, rng)
        assert color.length() == pytest.approx(0.0)

    def test_no_path_samples_disables_reflection(self, mirror, rng):
        no_samples = RenderSettings(width=1, height=1, max_depth=2, path_samples=0)
        scene = Scene([Plane(Vec3(0, 1, 0), 0, mirror)], [], skybox=CubeMap.solid(Vec3(1, 1, 1)))
        ray = Ray(Vec3(0, 1, 0), Vec3(0, -1, -1))
        color = CPURenderer().trace_ray(ray, scene, no_samples, IorStack(), 2, rng)
        assert color.length() == pytest.approx(0.0)


class TestSoftShadows:
    """Visibility of lights from a point on the floor."""

    @pytest.fixture
    def floor_hit(self, white):
        return Intersection(Vec3(0, 0, 0), Vec3(0, 1, 0), 1.0, None, white)

    def test_unblocked_light_kept(self, floor_hit, settings, rng):
        scene = Scene([], [Light(Vec3(0, 5, 0), 0.7)])
        lights = CPURenderer().compute_soft_shadows(floor_hit, scene, settings, rng)
        assert len(lights) == 1
        assert lights[0].intensity == pytest.approx(0.7)

    def test_opaque_blocker_drops_light(self, floor_hit, red, settings, rng):
        scene = Scene([Sphere(Vec3(0, 2.5, 0), 0.5, red)], [Light(Vec3(0, 5, 0))])
        assert CPURenderer().compute_soft_shadows(floor_hit, scene, settings, rng) == []

    def test_transmissive_blocker_dims_light(self, floor_hit, settings, rng):
        tinted = Material(Vec3(1, 1, 1), transmission=0.5, ior=1.2)
        scene = Scene([Sphere(Vec3(0, 2.5, 0), 0.5, tinted)], [Light(Vec3(0, 5, 0))])
        lights = CPURenderer().compute_soft_shadows(floor_hit, scene, settings, rng)
        assert lights[0].intensity == pytest.approx(0.5)

    def test_spot_outside_cone_dropped(self, floor_hit, settings, rng):
        spot = SpotLight(Vec3(10, 5, 0), Vec3(0, -1, 0), math.radians(10))
        scene = Scene([], [spot])
        assert CPURenderer().compute_soft_shadows(floor_hit, scene, settings, rng) == []

    def test_area_light_gives_penumbra(self, floor_hit, red):
        many = RenderSettings(width=1, height=1, soft_shadow_samples=64)
        scene = Scene([Sphere(Vec3(0, 2.5, 0), 0.3, red)], [Light(Vec3(0, 5, 0), radius=1.0)])
        lights = CPURenderer().compute_soft_shadows(floor_hit, scene, many, random.Random(9))
        assert len(lights) == 1
        assert 0.0 < lights[0].intensity < 1.0

    def test_point_behind_surface_uses_light_side(self, settings, rng, white):
        # the offset follows the light, not the stored normal
        hit = Intersection(Vec3(0, 0, 0), Vec3(0, -1, 0), 1.0, None, white)
        scene = Scene([Plane(Vec3(0, 1, 0), 0, white)], [Light(Vec3(0, 5, 0))])
        assert len(CPURenderer().compute_soft_shadows(hit, scene, settings, rng)) == 1


class TestAdaptiveSampling:
    """Subdivision of pixel footprints."""

    FOOTPRINT = (Vec3(-0.5, 0.5, -1), Vec3(1, 0, 0), Vec3(0, -1, 0))

    def sample(self, renderer, camera, supersampling_depth):
        settings = RenderSettings(width=1, height=1, supersampling_depth=supersampling_depth,
                                  supersampling_grid=2)
        top_left, step_x, step_y = self.FOOTPRINT
        return renderer.adaptive_sample(Scene([], []), camera, settings, top_left, step_x, step_y,
                                        0, IorStack(), random.Random(4))

    def test_edge_is_subdivided(self, camera):
        renderer = StripeRenderer()
        color = self.sample(renderer, camera, 1)
        assert renderer.count == 4 + 16
        assert color.x == pytest.approx(0.5)

    def test_no_subdivision_at_depth_zero(self, camera):
        renderer = StripeRenderer()
        self.sample(renderer, camera, 0)
        assert renderer.count == 4

    def test_uniform_footprint_is_not_subdivided(self, camera):
        class Flat(CPURenderer):
            count = 0

            def trace_ray(self, ray, scene, settings, ior_stack, depth, rng):
                self.count += 1
                return Vec3(0.3, 0.3, 0.3)

        renderer = Flat()
        color = self.sample(renderer, camera, 3)
        assert renderer.count == 4
        assert color.x == pytest.approx(0.3)


class TestDeterminism:
    """Fixed seeds give reproducible pixels."""

    def test_pixel_rng(self):
        a = pixel_rng(7, 3, 2, 10).random()
        b = pixel_rng(7, 3, 2, 10).random()
        c = pixel_rng(7, 4, 2, 10).random()
        assert a == b
        assert a != c

    def test_render_pixel_repeatable(self, red, white, camera, settings):
        scene = Scene([Sphere(Vec3(0, 0, -3), 1.0, red), Plane(Vec3(0, 1, 0), -1, white)],
                      [Light(Vec3(1, 1, 0), radius=0.3)])
        renderer = CPURenderer()
        first = renderer.render_pixel(scene, camera, settings, 2, 3)
        second = renderer.render_pixel(scene, camera, settings, 2, 3)
        assert first == second
