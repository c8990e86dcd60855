import threading
from typing import Callable, Optional

import numpy as np
from PIL import Image


class Framebuffer:
    """8-bit RGB pixel store filled row range by row range.

    Renderers write disjoint rows, so the pixel array itself needs no locking.
    The bookkeeping and the ``on_update`` notification are serialised because
    pool callbacks may arrive from a different thread than the caller.
    """

    def __init__(self, width: int, height: int,
                 on_update: Optional[Callable[[int, int], None]] = None):
        self.width = width
        self.height = height
        self.pixels = np.zeros((height, width, 3), dtype=np.uint8)
        self.on_update = on_update
        self.rows_done = 0
        self._lock = threading.Lock()

    def write_rows(self, y_start: int, rows) -> None:
        rows = np.asarray(rows, dtype=np.uint8)
        y_end = y_start + rows.shape[0]
        if y_start < 0 or y_end > self.height or rows.shape[1:] != (self.width, 3):
            raise ValueError(f"rows of shape {rows.shape} do not fit at y={y_start}")
        self.pixels[y_start:y_end] = rows

        with self._lock:
            self.rows_done += rows.shape[0]
            if self.on_update is not None:
                self.on_update(y_start, y_end)

    def pixel(self, x: int, y: int):
        r, g, b = self.pixels[y, x]
        return int(r), int(g), int(b)

    @property
    def complete(self) -> bool:
        return self.rows_done >= self.height

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels.copy())
