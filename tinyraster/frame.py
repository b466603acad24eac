import logging
import math
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .clipper import clip_near
from .errors import ConfigError
from .linalg import Mat4, Vec3, vec3_to_vec4
from .model import Model, marker_mesh
from .raster import FrameBuffer, Rasterizer, downsample
from .shaders import SHADERS, EmissiveShader, Light, Shader, Uniforms
from .transforms import look_at, perspective, rotate_y, translate, viewport

log = logging.getLogger(__name__)


# ============================================================
#  Configuration
# ============================================================

@dataclass(frozen=True)
class RenderConfig:
    """
    Everything the driver needs, read once before the first frame.

    width/height are the output size; with antialias = k the frame is
    rendered at k times that size and box-filtered down.
    """
    width: int = 1024
    height: int = 1024
    frames: int = 36
    fov: float = 45.0
    near: float = 0.1
    far: float = 100.0
    eye: Vec3 = Vec3(0.0, 0.0, 3.0)
    target: Vec3 = Vec3(0.0, 0.0, 0.0)
    up: Vec3 = Vec3(0.0, 1.0, 0.0)
    light: Vec3 = Vec3(2.0, 2.0, 2.0)
    light_color: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    ambient: float = 0.1
    orbit_light: bool = True
    show_light: bool = True
    marker_size: float = 0.05
    background: Tuple[int, int, int] = (0, 0, 0)
    shader: str = "phong"
    antialias: int = 1
    delay_ms: int = 100
    perspective_correct: bool = True

    @property
    def render_size(self) -> Tuple[int, int]:
        return self.width * self.antialias, self.height * self.antialias

    def validate(self) -> "RenderConfig":
        """Raise ConfigError for anything that would break a frame."""
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"resolution must be positive, got {self.width}x{self.height}")
        if self.frames <= 0:
            raise ConfigError(f"frame count must be positive, got {self.frames}")
        if self.antialias < 1:
            raise ConfigError(f"antialias factor must be >= 1, got {self.antialias}")
        if self.delay_ms < 0:
            raise ConfigError(f"frame delay must not be negative, got {self.delay_ms}")
        if self.shader not in SHADERS:
            raise ConfigError(f"unknown shader {self.shader!r}, expected one of {sorted(SHADERS)}")
        if any(not 0 <= c <= 255 for c in self.background):
            raise ConfigError(f"background must be 8-bit RGB, got {self.background}")
        # both raise ConfigError on bad values
        perspective(self.fov, self.width / self.height, self.near, self.far)
        look_at(self.eye, self.target, self.up)
        return self


def orbit(point: Vec3, center: Vec3, angle: float) -> Vec3:
    """Rotate point around the vertical axis through center."""
    p = rotate_y(angle).mul_vec4(vec3_to_vec4(point - center))
    return Vec3(p.x, p.y, p.z) + center


def orbit_angle(config: RenderConfig, index: int) -> float:
    return 2.0 * math.pi * index / config.frames


def orbit_camera(config: RenderConfig, index: int) -> Tuple[Vec3, Vec3]:
    """Camera eye and light position for frame index."""
    angle = orbit_angle(config, index)
    eye = orbit(config.eye, config.target, angle)
    light = orbit(config.light, config.target, angle) if config.orbit_light else config.light
    return eye, light


# ============================================================
#  Frame driver
# ============================================================

class FrameRenderer:
    """
    Renders frame i of the orbit animation.

    Per frame:
      - rotate camera (and light) around the target
      - rebuild the uniforms
      - vertex stage over the whole model
      - per face: clip -> cull -> rasterize
      - light marker with the emissive shader
      - flip (and downsample) the frame buffer
    """

    def __init__(self, model: Model, config: RenderConfig, shader: Optional[Shader] = None,
                 framebuffer: Optional[FrameBuffer] = None):
        self.config = config.validate()
        self.model = model.validate()
        self.shader = shader if shader is not None else SHADERS[config.shader]()
        self.marker = marker_mesh(config.marker_size)
        self.marker_shader = EmissiveShader()

        rw, rh = config.render_size
        if framebuffer is None:
            framebuffer = FrameBuffer(rw, rh, config.background)
        elif (framebuffer.width, framebuffer.height) != (rw, rh):
            raise ConfigError(f"frame buffer is {framebuffer.width}x{framebuffer.height}, "
                              f"config renders at {rw}x{rh}")
        self.framebuffer = framebuffer
        self.rasterizer = Rasterizer(self.framebuffer, config.perspective_correct)
        self.projection = perspective(config.fov, rw / rh, config.near, config.far)
        self.viewport = viewport(rw, rh)

    @property
    def stats(self):
        return self.rasterizer.stats

    def uniforms(self, index: int) -> Uniforms:
        cfg = self.config
        eye, light_pos = orbit_camera(cfg, index)
        light = Light(light_pos, cfg.light_color, cfg.ambient)
        return Uniforms(
            model=Mat4.identity(),
            view=look_at(eye, cfg.target, cfg.up),
            projection=self.projection,
            viewport=self.viewport,
            light=light,
            camera=eye,
        )

    def render(self, index: int) -> np.ndarray:
        """Render one frame; returns a top-down (H, W, 3) uint8 image."""
        start = time.perf_counter()
        self.framebuffer.clear()
        self.stats.reset()

        uniforms = self.uniforms(index)
        self.draw_model(self.model, self.shader, uniforms)
        if self.config.show_light:
            p = uniforms.light.position
            self.draw_model(self.marker, self.marker_shader,
                            uniforms.with_model(translate(p.x, p.y, p.z)))

        image = downsample(self.framebuffer.image(), self.config.antialias)
        s = self.stats
        log.info("frame %d: %d triangles, %d clipped away, %d culled, %d fragments in %.0f ms",
                 index, s.triangles, s.clipped, s.culled, s.fragments,
                 (time.perf_counter() - start) * 1000.0)
        log.debug("frame %d: %d degenerate, %d offscreen, %d discarded",
                  index, s.degenerate, s.offscreen, s.discarded)
        return image

    def draw_model(self, model: Model, shader: Shader, uniforms: Uniforms):
        """
        Vertex stage for the whole model, then every face of every object.

        The vertex stage finishes before the first triangle is clipped.
        """
        faces = [f for obj in model.objects.values() for f in obj.faces]
        shader.load(model.positions, model.normals, model.texcoords, faces)
        shader.vertex(uniforms)
        for obj in model.objects.values():
            obj_uniforms = uniforms.with_material(model.material_for(obj))
            for face in obj.faces:
                tris = clip_near(shader.varyings(face), self.config.near)
                if not tris:
                    self.stats.clipped += 1
                for tri in tris:
                    self.rasterizer.draw(tri, shader, obj_uniforms)


def render_frame(model: Model, shader: Optional[Shader], config: RenderConfig, index: int,
                 framebuffer: Optional[FrameBuffer] = None) -> np.ndarray:
    """Render a single frame; framebuffer, when given, must match config.render_size."""
    return FrameRenderer(model, config, shader, framebuffer).render(index)


def render_animation(model: Model, config: RenderConfig, sink, shader: Optional[Shader] = None) -> int:
    """
    Render every frame in order, push each one to sink, then close it.

    sink needs push(image) and close(). Returns the number of frames.
    """
    renderer = FrameRenderer(model, config, shader)
    log.info("rendering %d frames at %dx%d (%d faces, shader=%s)",
             config.frames, config.width, config.height, model.face_count,
             type(renderer.shader).__name__)
    start = time.perf_counter()
    for i in range(config.frames):
        sink.push(renderer.render(i))
    sink.close()
    log.info("done in %.1f s", time.perf_counter() - start)
    return config.frames
