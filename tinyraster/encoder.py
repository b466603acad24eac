import logging
from pathlib import Path
from typing import List

import numpy as np
import pygame
from PIL import Image

log = logging.getLogger(__name__)


# ============================================================
#  Frame sinks
# ============================================================

class GifSink:
    """
    Collects frames and writes a looping animated GIF on close().

    Frames must all have the same size; they are written in push order.
    """

    def __init__(self, path, delay_ms: int = 100, loop: int = 0):
        self.path = Path(path)
        self.delay_ms = delay_ms
        self.loop = loop
        self.frames: List[Image.Image] = []

    def push(self, image: np.ndarray):
        frame = Image.fromarray(np.ascontiguousarray(image, dtype=np.uint8))
        if self.frames and frame.size != self.frames[0].size:
            raise ValueError(f"frame size {frame.size} differs from {self.frames[0].size}")
        self.frames.append(frame)

    def close(self):
        if not self.frames:
            log.warning("no frames to write to %s", self.path)
            return
        first, *rest = self.frames
        first.save(self.path, save_all=True, append_images=rest,
                   duration=self.delay_ms, loop=self.loop)
        log.info("wrote %d frames to %s", len(self.frames), self.path)


class PreviewSink:
    """
    Shows each frame in a pygame window while the animation renders.

    Closing the window stops the preview; rendering goes on.
    """

    def __init__(self, width: int, height: int, title: str = "tinyraster"):
        pygame.init()
        self.screen = pygame.display.set_mode((width, height))
        pygame.display.set_caption(title)
        self.open = True

    def push(self, image: np.ndarray):
        if not self.open:
            return
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.close()
                return
        # pygame surfarray index order is [x, y, color]
        surface = pygame.surfarray.make_surface(np.ascontiguousarray(image.swapaxes(0, 1)))
        if surface.get_size() != self.screen.get_size():
            surface = pygame.transform.scale(surface, self.screen.get_size())
        self.screen.blit(surface, (0, 0))
        pygame.display.flip()

    def close(self):
        if self.open:
            self.open = False
            pygame.quit()


class MultiSink:
    """Forwards every frame to several sinks."""

    def __init__(self, *sinks):
        self.sinks = sinks

    def push(self, image: np.ndarray):
        for sink in self.sinks:
            sink.push(image)

    def close(self):
        for sink in self.sinks:
            sink.close()
