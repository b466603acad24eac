from typing import List

import numpy as np

from .shaders import Triangle

DEFAULT_EPSILON = 1e-5


# ============================================================
#  Near-plane clipping
# ============================================================

def clip_near(tri: Triangle, epsilon: float = DEFAULT_EPSILON) -> List[Triangle]:
    """
    Clip a triangle against the plane w = epsilon in CLIP space.

    A vertex is inside when w >= epsilon. This has to happen before the
    perspective divide: vertices behind the camera have w <= 0 and would
    flip sign or divide by zero.

    Outcomes:
      - 0 vertices outside => [tri] (the very same object)
      - 3 vertices outside => []
      - 1 outside          => quad, fanned into 2 triangles
      - 2 outside          => 1 smaller triangle

    Implementation:
      Sutherland-Hodgman for a single plane. Position and every varying
      are interpolated with the same t = (epsilon - w_a) / (w_b - w_a).
    """
    w = tri.clip[:, 3]
    inside = w >= epsilon
    if inside.all():
        return [tri]
    if not inside.any():
        return []

    names = list(tri.varyings)
    poly = []  # list of (clip, {name: value}) vertices

    def vertex(i):
        return tri.clip[i], {k: tri.varyings[k][i] for k in names}

    def intersect(a, b):
        t = (epsilon - w[a]) / (w[b] - w[a])
        pos = tri.clip[a] + (tri.clip[b] - tri.clip[a]) * t
        # pin w exactly onto the plane
        pos[3] = epsilon
        return pos, {k: tri.varyings[k][a] + (tri.varyings[k][b] - tri.varyings[k][a]) * t
                     for k in names}

    for a in range(3):
        b = (a + 1) % 3
        if inside[a] and inside[b]:
            # keep end vertex B
            poly.append(vertex(b))
        elif inside[a] and not inside[b]:
            # leaving visible region => add intersection only
            poly.append(intersect(a, b))
        elif not inside[a] and inside[b]:
            # entering visible region => intersection + B
            poly.append(intersect(a, b))
            poly.append(vertex(b))

    return triangulate_fan(poly, names)


def triangulate_fan(poly, names) -> List[Triangle]:
    """
    Convert a convex polygon (3..N vertices) into triangles using a fan:
      (0,1,2), (0,2,3), ..., (0,N-2,N-1)

    Winding order of the input polygon is preserved.
    """
    tris = []
    if len(poly) < 3:
        return tris
    for i in range(1, len(poly) - 1):
        corners = (poly[0], poly[i], poly[i + 1])
        clip = np.array([c[0] for c in corners])
        varyings = {k: np.array([c[1][k] for c in corners]) for k in names}
        tris.append(Triangle(clip, varyings))
    return tris
