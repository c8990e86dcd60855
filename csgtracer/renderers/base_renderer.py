from abc import ABC, abstractmethod
from typing import List, Optional
from PIL import Image

from csgtracer.core.camera import Camera
from csgtracer.core.framebuffer import Framebuffer
from csgtracer.core.scene import Scene, RenderSettings


class BaseRenderer(ABC):
    """Base class every renderer implements."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def render(self, scene: Scene, camera: Camera, settings: RenderSettings,
               framebuffer: Optional[Framebuffer] = None) -> Image.Image:
        """Render the scene and return a PIL image.

        When ``framebuffer`` is given, rows are written into it as they finish
        so a caller can watch progress.
        """
        pass

    @abstractmethod
    def get_capabilities(self) -> List[str]:
        pass

    def get_name(self) -> str:
        return self.name

    def supports(self, feature: str) -> bool:
        return feature in self.get_capabilities()


def row_ranges(height: int, rows_per_task: int):
    """Split ``height`` rows into contiguous ``(start, end)`` ranges."""
    return [(y, min(y + rows_per_task, height)) for y in range(0, height, rows_per_task)]


class RendererFactory:
    _renderers = {}

    @classmethod
    def register(cls, name: str, renderer_class):
        cls._renderers[name] = renderer_class

    @classmethod
    def create(cls, name: str, **kwargs) -> BaseRenderer:
        if name not in cls._renderers:
            raise ValueError(f"Unknown renderer: {name}")
        return cls._renderers[name](**kwargs)

    @classmethod
    def list_available(cls) -> List[str]:
        return list(cls._renderers.keys())
