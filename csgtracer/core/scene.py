import logging
from typing import List, Optional, Sequence
from dataclasses import dataclass

from csgtracer.core.math import Vec3, Ray
from csgtracer.core.material import CubeMap, Intersection
from csgtracer.core.geometry import SceneObject
from csgtracer.core.lighting import Light, LightingModel, CookTorranceLighting

logger = logging.getLogger(__name__)


@dataclass
class RenderSettings:
    width: int = 400
    height: int = 300
    max_depth: int = 4
    path_samples: int = 2
    soft_shadow_samples: int = 1
    supersampling_depth: int = 0
    supersampling_grid: int = 2
    color_threshold: float = 0.02
    epsilon: float = 1e-4
    gamma: float = 2.2
    seed: Optional[int] = None
    workers: Optional[int] = None
    rows_per_task: int = 8

    def __post_init__(self):
        for name in ("width", "height", "soft_shadow_samples", "supersampling_grid", "rows_per_task"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")
        for name in ("max_depth", "path_samples", "supersampling_depth"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative, got {getattr(self, name)}")
        if self.color_threshold < 0:
            raise ValueError(f"color_threshold must not be negative, got {self.color_threshold}")
        if self.epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")
        if self.gamma <= 0:
            raise ValueError(f"gamma must be positive, got {self.gamma}")
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")


class IorStack:
    """Indices of refraction of the media a ray is currently nested in.

    Immutable: ``entering`` and ``exiting`` return new stacks so every branch of
    a ray tree owns its own copy.
    """

    __slots__ = ("values",)

    AIR = 1.0
    TOLERANCE = 1e-6

    def __init__(self, values: Sequence[float] = ()):
        self.values = tuple(float(v) for v in values)

    @property
    def top(self) -> float:
        return self.values[-1] if self.values else self.AIR

    def entering(self, ior: float) -> "IorStack":
        return IorStack(self.values + (float(ior),))

    def exiting(self, ior: float) -> "IorStack":
        # only pop the medium we are actually leaving
        if self.values and abs(self.values[-1] - ior) < self.TOLERANCE:
            return IorStack(self.values[:-1])
        return self

    def __len__(self):
        return len(self.values)

    def __eq__(self, other):
        if not isinstance(other, IorStack):
            return NotImplemented
        return self.values == other.values

    def __hash__(self):
        return hash(self.values)

    def __repr__(self):
        return f"IorStack({list(self.values)})"


class Scene:
    def __init__(self,
                 objects: List[SceneObject],
                 lights: List[Light],
                 skybox: Optional[CubeMap] = None,
                 ambient: Vec3 = Vec3(0, 0, 0),
                 lighting: Optional[LightingModel] = None):
        self.objects = list(objects)
        self.lights = list(lights)
        self.skybox = skybox
        self.ambient = ambient
        self.lighting = lighting if lighting is not None else CookTorranceLighting()
        logger.debug("Scene with %d objects and %d lights", len(self.objects), len(self.lights))

    def nearest_intersection(self, ray: Ray, epsilon: float = 1e-4) -> Optional[Intersection]:
        return ray.nearest_intersection(self.objects, epsilon)

    def initial_ior_stack(self, point: Vec3) -> IorStack:
        """Stack for a ray starting at ``point``, e.g. a camera sitting inside glass."""
        return IorStack(obj.material.ior for obj in self.objects if obj.is_inside(point))
