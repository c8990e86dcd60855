import time
import logging
import multiprocessing as mp
from typing import List, Optional

from PIL import Image

from csgtracer.core.camera import Camera
from csgtracer.core.framebuffer import Framebuffer
from csgtracer.core.scene import Scene, RenderSettings
from csgtracer.renderers.base_renderer import BaseRenderer, RendererFactory, row_ranges
from csgtracer.renderers.cpu_renderer import CPURenderer

logger = logging.getLogger(__name__)

# per-process render job, filled once by the pool initializer
_job = {}


def _init_worker(scene: Scene, camera: Camera, settings: RenderSettings):
    _job["scene"] = scene
    _job["camera"] = camera
    _job["settings"] = settings
    _job["renderer"] = CPURenderer()


def _render_task(y_start: int, y_end: int):
    rows = _job["renderer"].render_rows(_job["scene"], _job["camera"], _job["settings"], y_start, y_end)
    return y_start, rows


class ParallelRenderer(BaseRenderer):
    """Spreads row ranges over a ``multiprocessing`` pool.

    The scene is shipped to every worker once; workers return finished rows
    which the pool's result thread writes into the framebuffer.
    """

    def __init__(self):
        super().__init__("parallel_raytracer")

    def get_capabilities(self) -> List[str]:
        return CPURenderer().get_capabilities() + ["multiprocessing"]

    def render(self, scene: Scene, camera: Camera, settings: RenderSettings,
               framebuffer: Optional[Framebuffer] = None) -> Image.Image:
        workers = settings.workers or mp.cpu_count()
        ranges = row_ranges(settings.height, settings.rows_per_task)
        fb = framebuffer if framebuffer is not None else Framebuffer(settings.width, settings.height)

        start_time = time.time()
        logger.info("Parallel render started: %dx%d, %d workers, %d row ranges",
                    settings.width, settings.height, workers, len(ranges))

        def write(result):
            y_start, rows = result
            fb.write_rows(y_start, rows)
            logger.debug("Rows %d-%d done (%.2fs)", y_start, y_start + len(rows) - 1,
                         time.time() - start_time)

        with mp.Pool(workers, initializer=_init_worker, initargs=(scene, camera, settings)) as pool:
            pending = [pool.apply_async(_render_task, args=r, callback=write) for r in ranges]
            for result in pending:
                # re-raises a worker exception here
                result.get()

        elapsed = time.time() - start_time
        logger.info("Parallel render finished in %dm %.2fs", int(elapsed // 60), elapsed % 60)
        return fb.to_image()


RendererFactory.register("parallel_raytracer", ParallelRenderer)
