import numpy as np
import pytest

from tinyraster.clipper import clip_near
from tinyraster.linalg import Mat4, Vec3
from tinyraster.model import Face
from tinyraster.raster import FrameBuffer, Rasterizer
from tinyraster.shaders import EmissiveShader, Light, Shader, Uniforms
from tinyraster.transforms import orthographic, viewport


class UVShader(Shader):
    """Writes the interpolated texcoord as (u, v, 0); draws both sides."""
    cull_backfaces = False

    def fragment(self, bary, varyings, uniforms):
        uv = varyings["uv"]
        return np.column_stack([uv[:, 0], uv[:, 1], np.zeros(len(uv))]), None


def ortho_uniforms(size, near=0.5, far=5.0, light=Vec3(0.0, 0.0, 5.0)):
    """Camera space == world space, x/y in [0,1] fill a size x size viewport."""
    return Uniforms(
        model=Mat4.identity(),
        view=Mat4.identity(),
        projection=orthographic(0.0, 1.0, 0.0, 1.0, near, far),
        viewport=viewport(size, size),
        light=Light(light),
        camera=Vec3(0.5, 0.5, 10.0),
    )


def draw_triangles(rasterizer, shader, uniforms, positions, faces, texcoords=(), epsilon=1e-5):
    """Run the whole per-triangle path (load, vertex, clip, rasterize)."""
    shader.load(positions, np.zeros((0, 3)), np.asarray(texcoords, dtype=float).reshape(-1, 2), faces)
    shader.vertex(uniforms)
    written = 0
    for face in faces:
        for tri in clip_near(shader.varyings(face), epsilon):
            written += rasterizer.draw(tri, shader, uniforms)
    return written


@pytest.fixture
def framebuffer():
    return FrameBuffer(100, 100, background=(10, 10, 18))


@pytest.fixture
def rasterizer(framebuffer):
    return Rasterizer(framebuffer)


@pytest.fixture
def uniforms():
    return ortho_uniforms(100)


@pytest.fixture
def red_shader():
    return EmissiveShader((1.0, 0.0, 0.0))


@pytest.fixture
def unit_face():
    return Face((0, 1, 2))
