import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from numba import njit

from .errors import ConfigError
from .shaders import Shader, Triangle, Uniforms

DEGENERATE_AREA = 1e-12


# ============================================================
#  Frame buffer
# ============================================================

class FrameBuffer:
    """
    Color + depth grid for one frame.

    color - (H, W, 3) uint8
    depth - (H, W) float64, +inf means "nothing drawn yet"

    Rows are stored bottom-up (row 0 is y = 0 of the viewport, the bottom
    of the picture). image() returns the top-down picture.
    """

    def __init__(self, width: int, height: int, background=(0, 0, 0)):
        if width <= 0 or height <= 0:
            raise ConfigError(f"frame buffer needs a positive size, got {width}x{height}")
        self.width = width
        self.height = height
        self.background = np.asarray(background, dtype=np.uint8)
        self.color = np.empty((height, width, 3), dtype=np.uint8)
        self.depth = np.empty((height, width), dtype=np.float64)
        self.clear()

    def clear(self):
        """Reset to the background color and the farthest depth."""
        self.color[:, :] = self.background
        self.depth.fill(np.inf)

    def write(self, xs, ys, colors, depths):
        """Store color and depth of the same pixels together."""
        self.color[ys, xs] = colors
        self.depth[ys, xs] = depths

    def image(self) -> np.ndarray:
        """Flipped copy, top row first; safe to hand to an encoder."""
        return np.flipud(self.color).copy()


def downsample(image: np.ndarray, factor: int) -> np.ndarray:
    """
    Box-filter anti-aliasing: average each factor x factor block.

    Trailing rows/columns that do not fill a whole block are dropped.
    """
    if factor < 1:
        raise ConfigError(f"downsample factor must be >= 1, got {factor}")
    if factor == 1:
        return image
    h = image.shape[0] // factor
    w = image.shape[1] // factor
    blocks = image[:h * factor, :w * factor].astype(np.uint32)
    blocks = blocks.reshape(h, factor, w, factor, image.shape[2])
    return (blocks.sum(axis=(1, 3)) // (factor * factor)).astype(np.uint8)


def to_rgb8(colors: np.ndarray) -> np.ndarray:
    """[0..1] float colors -> uint8."""
    return (np.clip(colors, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


# ============================================================
#  Numba kernels
# ============================================================

@njit(cache=True)
def signed_area(ax, ay, bx, by, cx, cy):
    """Twice the signed area; positive for counter-clockwise (y up)."""
    return (bx - ax) * (cy - ay) - (by - ay) * (cx - ax)


@njit(cache=True)
def edge_function(ax, ay, bx, by, px, py):
    """
    signed_area(A, B, P) with the endpoints taken in (y, x) order.

    The result depends only on the edge, not on its direction:
    edge_function(B, A, P) == -edge_function(A, B, P) bit for bit, so two
    triangles sharing an edge always agree on which side a pixel is.
    """
    if ay > by or (ay == by and ax > bx):
        return -((ax - bx) * (py - by) - (ay - by) * (px - bx))
    return (bx - ax) * (py - ay) - (by - ay) * (px - ax)


@njit(cache=True)
def barycentric(ax, ay, bx, by, cx, cy, px, py):
    """
    Compute barycentric coordinates for point (px,py) inside triangle (A,B,C)
    in 2D screen space.

    Each weight is the edge function of the edge opposite its vertex
    divided by the sum of all three, so a point exactly on an edge gets an
    exact 0.0 for the opposite weight.

    Returns (alpha, beta, gamma). If triangle is degenerate => (-1,-1,-1).
    """
    if abs(signed_area(ax, ay, bx, by, cx, cy)) < DEGENERATE_AREA:
        return -1.0, -1.0, -1.0
    e0 = edge_function(bx, by, cx, cy, px, py)
    e1 = edge_function(cx, cy, ax, ay, px, py)
    e2 = edge_function(ax, ay, bx, by, px, py)
    den = e0 + e1 + e2
    if den == 0.0:
        return -1.0, -1.0, -1.0
    inv = 1.0 / den
    return e0 * inv, e1 * inv, e2 * inv


@njit(cache=True)
def _owns_edge(dx, dy):
    # edge direction taken counter-clockwise in y-up raster space
    return dy > 0.0 or (dy == 0.0 and dx > 0.0)


@njit(cache=True)
def _covered(l, owned):
    return l > 0.0 or (l == 0.0 and owned)


@njit(cache=True)
def scan_triangle(zbuf,
                  x0, y0, z0,
                  x1, y1, z1,
                  x2, y2, z2,
                  minx, maxx, miny, maxy,
                  out_x, out_y, out_bary, out_z):
    """
    Find the pixels of a triangle that are covered and pass the depth test.

    Coverage:
      - pixel centers (x+0.5, y+0.5)
      - inside when all three edge functions are > 0 (after orienting the
        triangle counter-clockwise)
      - edge_function gives the same value for an edge whichever triangle
        evaluates it, so neighbours never both cover or both miss a pixel
      - an edge value of exactly 0 (center on an edge) counts only for
        owned edges: with the triangle taken counter-clockwise, edges going
        up (dy > 0) and horizontal edges going right. Two triangles sharing
        an edge traverse it in opposite directions, so exactly one owns it.
      - barycentric weights are the edge values divided by their sum

    Depth:
      - z interpolated affinely in screen space
      - passes when z < zbuf[y, x] (strict: the first fragment keeps ties)

    Writes up to (maxx-minx+1)*(maxy-miny+1) results into the out_*
    arrays and returns how many were written. The depth buffer itself is
    only read here.
    """
    area = signed_area(x0, y0, x1, y1, x2, y2)
    if abs(area) < DEGENERATE_AREA:
        return 0
    s = 1.0 if area > 0.0 else -1.0
    own0 = _owns_edge((x2 - x1) * s, (y2 - y1) * s)
    own1 = _owns_edge((x0 - x2) * s, (y0 - y2) * s)
    own2 = _owns_edge((x1 - x0) * s, (y1 - y0) * s)

    n = 0
    for y in range(miny, maxy + 1):
        py = y + 0.5
        for x in range(minx, maxx + 1):
            px = x + 0.5
            e0 = edge_function(x1, y1, x2, y2, px, py)
            e1 = edge_function(x2, y2, x0, y0, px, py)
            e2 = edge_function(x0, y0, x1, y1, px, py)
            if not (_covered(e0 * s, own0) and _covered(e1 * s, own1) and _covered(e2 * s, own2)):
                continue
            den = e0 + e1 + e2
            if den == 0.0:
                continue
            inv = 1.0 / den
            a = e0 * inv
            b0 = e1 * inv
            c = e2 * inv

            z = a*z0 + b0*z1 + c*z2
            if not z < zbuf[y, x]:
                continue

            out_x[n] = x
            out_y[n] = y
            out_bary[n, 0] = a
            out_bary[n, 1] = b0
            out_bary[n, 2] = c
            out_z[n] = z
            n += 1
    return n


def bounding_box(xs, ys, width, height) -> Tuple[int, int, int, int]:
    """
    Integer pixel box around the triangle, clamped to the buffer.

    Clamping happens on floats before the int conversion so far away
    vertices cannot overflow. An empty box has minx > maxx or miny > maxy.
    """
    minx = int(max(0.0, math.floor(min(xs))))
    maxx = int(min(width - 1.0, math.ceil(max(xs))))
    miny = int(max(0.0, math.floor(min(ys))))
    maxy = int(min(height - 1.0, math.ceil(max(ys))))
    return minx, maxx, miny, maxy


# ============================================================
#  Rasterizer
# ============================================================

@dataclass
class RasterStats:
    """Counters for one frame, reported by the frame driver."""
    triangles: int = 0
    clipped: int = 0
    culled: int = 0
    degenerate: int = 0
    offscreen: int = 0
    fragments: int = 0
    discarded: int = 0

    def reset(self):
        self.triangles = self.clipped = self.culled = self.degenerate = 0
        self.offscreen = self.fragments = self.discarded = 0


class Rasterizer:
    """
    Scan converts clipped triangles into a FrameBuffer.

    Works with any Shader: the shader only sees batches of interpolated
    varyings through fragment(). Triangles must already be clipped
    against the near plane (every w > 0).

    perspective_correct=False switches varyings to plain screen-space
    (affine) interpolation; depth is always interpolated affinely.
    """

    def __init__(self, framebuffer: FrameBuffer, perspective_correct: bool = True):
        self.fb = framebuffer
        self.perspective_correct = perspective_correct
        self.stats = RasterStats()

    def to_screen(self, tri: Triangle, uniforms: Uniforms):
        """
        Perspective divide + viewport.

        Returns (screen (3,3), inv_w (3,)): x, y in pixels, z in [0..1] for
        the depth test and 1/w for perspective-correct interpolation.
        """
        w = tri.clip[:, 3]
        inv_w = 1.0 / w
        ndc = tri.clip[:, :3] * inv_w[:, None]
        screen = uniforms.viewport.apply(ndc)[:, :3]
        return screen, inv_w

    def draw(self, tri: Triangle, shader: Shader, uniforms: Uniforms) -> int:
        """Rasterize one triangle; returns the number of pixels written."""
        self.stats.triangles += 1
        if np.any(tri.clip[:, 3] <= 0.0):
            raise ValueError("triangle has w <= 0; clip it against the near plane first")

        screen, inv_w = self.to_screen(tri, uniforms)
        (x0, y0, z0), (x1, y1, z1), (x2, y2, z2) = screen

        area = signed_area(x0, y0, x1, y1, x2, y2)
        if not math.isfinite(area) or abs(area) < DEGENERATE_AREA:
            self.stats.degenerate += 1
            return 0
        # Back-face culling in screen space by signed area
        if shader.cull_backfaces and area < 0.0:
            self.stats.culled += 1
            return 0

        fb = self.fb
        minx, maxx, miny, maxy = bounding_box(screen[:, 0], screen[:, 1], fb.width, fb.height)
        if minx > maxx or miny > maxy:
            self.stats.offscreen += 1
            return 0

        size = (maxx - minx + 1) * (maxy - miny + 1)
        out_x = np.empty(size, dtype=np.int64)
        out_y = np.empty(size, dtype=np.int64)
        out_bary = np.empty((size, 3), dtype=np.float64)
        out_z = np.empty(size, dtype=np.float64)
        n = scan_triangle(fb.depth,
                          x0, y0, z0, x1, y1, z1, x2, y2, z2,
                          minx, maxx, miny, maxy,
                          out_x, out_y, out_bary, out_z)
        if n == 0:
            return 0

        bary = out_bary[:n]
        weights = self.interpolation_weights(bary, inv_w)
        varyings = {name: weights @ values for name, values in tri.varyings.items()}
        colors, keep = shader.fragment(bary, varyings, uniforms)

        xs, ys, zs = out_x[:n], out_y[:n], out_z[:n]
        colors = np.asarray(colors)
        if keep is not None:
            keep = np.asarray(keep, dtype=bool)
            self.stats.discarded += int(n - keep.sum())
            xs, ys, zs, colors = xs[keep], ys[keep], zs[keep], colors[keep]
        fb.write(xs, ys, to_rgb8(colors), zs)
        self.stats.fragments += len(xs)
        return len(xs)

    def interpolation_weights(self, bary: np.ndarray, inv_w: np.ndarray) -> np.ndarray:
        """
        Weights for varyings.

        Perspective-correct: l_i / w_i renormalized by their sum.
        Affine: the screen-space weights unchanged.
        """
        if not self.perspective_correct:
            return bary
        pw = bary * inv_w[None, :]
        return pw / pw.sum(axis=1, keepdims=True)
