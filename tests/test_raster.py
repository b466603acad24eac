import numpy as np
import pytest

from tinyraster.linalg import Mat4, Vec3, vec3_to_vec4
from tinyraster.model import Face
from tinyraster.raster import (FrameBuffer, Rasterizer, barycentric, bounding_box,
                               downsample, edge_function, scan_triangle, to_rgb8)
from tinyraster.shaders import EmissiveShader, Light, PhongShader, Triangle, Uniforms
from tinyraster.transforms import perspective, viewport

from conftest import UVShader, draw_triangles, ortho_uniforms


def test_barycentric_inside_point():
    a, b, c = barycentric(0.0, 0.0, 10.0, 0.0, 0.0, 10.0, 2.5, 3.5)
    assert 0.0 < a < 1.0 and 0.0 < b < 1.0 and 0.0 < c < 1.0
    assert a + b + c == pytest.approx(1.0)
    assert b == pytest.approx(0.25)
    assert c == pytest.approx(0.35)


def test_barycentric_degenerate_triangle():
    assert barycentric(0.0, 0.0, 1.0, 1.0, 2.0, 2.0, 0.5, 0.5) == (-1.0, -1.0, -1.0)


def test_bounding_box_is_clamped():
    assert bounding_box([-50.0, 500.0, 20.0], [-1e9, 10.0, 1e9], 100, 80) == (0, 99, 0, 79)


def test_bounding_box_offscreen_is_empty():
    minx, maxx, _, _ = bounding_box([150.0, 160.0, 170.0], [1.0, 2.0, 3.0], 100, 100)
    assert minx > maxx


def test_unit_triangle_fills_lower_left_half(framebuffer, rasterizer, uniforms, red_shader, unit_face):
    # camera space (0,0,-1) (1,0,-1) (0,1,-1) -> screen (0,0) (100,0) (0,100)
    positions = np.array([[0.0, 0.0, -1.0], [1.0, 0.0, -1.0], [0.0, 1.0, -1.0]])
    written = draw_triangles(rasterizer, red_shader, uniforms, positions, [unit_face])

    ys, xs = np.mgrid[0:100, 0:100]
    inside = (xs + 0.5) + (ys + 0.5) <= 100.0
    red = np.all(framebuffer.color == (255, 0, 0), axis=2)
    untouched = np.all(framebuffer.color == (10, 10, 18), axis=2)

    assert written == inside.sum() == 5050
    assert np.array_equal(red, inside)
    assert np.array_equal(untouched, ~inside)
    assert np.isinf(framebuffer.depth[~inside]).all()


@pytest.mark.parametrize("order", [(0, 1), (1, 0)])
def test_nearer_triangle_wins_regardless_of_order(framebuffer, rasterizer, uniforms, order):
    tris = [
        (-1.0, EmissiveShader((1.0, 0.0, 0.0))),
        (-2.0, EmissiveShader((0.0, 0.0, 1.0))),
    ]
    for i in order:
        z, shader = tris[i]
        positions = np.array([[0.1, 0.1, z], [0.9, 0.1, z], [0.1, 0.9, z]])
        draw_triangles(rasterizer, shader, uniforms, positions, [Face((0, 1, 2))])

    overlap = framebuffer.color[20:45, 20:45]
    assert np.all(overlap == (255, 0, 0))


def test_redrawing_same_triangle_is_idempotent(framebuffer, rasterizer, uniforms, red_shader, unit_face):
    positions = np.array([[0.1, 0.2, -1.0], [0.8, 0.3, -1.5], [0.3, 0.9, -2.0]])
    first = draw_triangles(rasterizer, red_shader, uniforms, positions, [unit_face])
    color, depth = framebuffer.color.copy(), framebuffer.depth.copy()

    second = draw_triangles(rasterizer, EmissiveShader((0.0, 1.0, 0.0)), uniforms, positions, [unit_face])

    assert first > 0
    assert second == 0
    assert np.array_equal(framebuffer.color, color)
    assert np.array_equal(framebuffer.depth, depth)


def test_shared_edge_pixels_are_drawn_exactly_once():
    fb = FrameBuffer(10, 10)
    rast = Rasterizer(fb)
    u = ortho_uniforms(10)
    # square split along the diagonal through the pixel centers
    positions = np.array([[0.0, 0.0, -1.0], [1.0, 0.0, -1.0], [1.0, 1.0, -1.0], [0.0, 1.0, -1.0]])
    n1 = draw_triangles(rast, EmissiveShader((1.0, 0.0, 0.0)), u, positions, [Face((0, 1, 2))])
    # second half slightly nearer so it would overwrite any shared pixel
    positions = positions + np.array([0.0, 0.0, 0.5])
    n2 = draw_triangles(rast, EmissiveShader((0.0, 1.0, 0.0)), u, positions, [Face((0, 2, 3))])

    assert n1 + n2 == 100
    assert np.isfinite(fb.depth).all()


def covered_pixels(size, corners):
    """Pixels scan_triangle reports for an (x, y) triangle on an empty depth buffer."""
    xs = [float(x) for x, _ in corners]
    ys = [float(y) for _, y in corners]
    minx, maxx, miny, maxy = bounding_box(xs, ys, size, size)
    n_max = (maxx - minx + 1) * (maxy - miny + 1)
    out_x = np.empty(n_max, dtype=np.int64)
    out_y = np.empty(n_max, dtype=np.int64)
    out_bary = np.empty((n_max, 3), dtype=np.float64)
    out_z = np.empty(n_max, dtype=np.float64)
    n = scan_triangle(np.full((size, size), np.inf),
                      xs[0], ys[0], 0.5, xs[1], ys[1], 0.5, xs[2], ys[2], 0.5,
                      minx, maxx, miny, maxy, out_x, out_y, out_bary, out_z)
    return set(zip(out_x[:n].tolist(), out_y[:n].tolist()))


def test_edge_function_is_antisymmetric():
    a, b = (3.0 + 7 * 0.1, 1.0 + 3 * 0.1), (9.0 + 0.1, 14.0 + 6 * 0.1)
    for px, py in [(5.5, 6.5), (0.5, 0.5), (11.5, 2.5)]:
        assert edge_function(*b, *a, px, py) == -edge_function(*a, *b, px, py)


def test_fractional_shared_edge_is_split_without_overlap_or_gap():
    size = 64
    rng = np.random.RandomState(1234)
    for _ in range(300):
        cx, cy = rng.randint(20, 40, size=2) + 0.5
        dx, dy = 0, 0
        while dx == 0 and dy == 0:
            dx, dy = rng.randint(-3, 4, size=2)
        k = rng.randint(1, 10)
        steps = rng.randint(2, 5)
        # shared edge A -> B runs through the pixel centers C + i*(dx, dy)
        a = (cx + k * 0.1 * dx, cy + k * 0.1 * dy)
        b = (cx + (k * 0.1 + steps) * dx, cy + (k * 0.1 + steps) * dy)
        mid = ((a[0] + b[0]) / 2.0, (a[1] + b[1]) / 2.0)
        h = 1.0 + 4.0 * rng.rand()
        left = (mid[0] - dy * h, mid[1] + dx * h)
        right = (mid[0] + dy * h, mid[1] - dx * h)

        # both counter-clockwise, walking the shared edge in opposite directions
        first = covered_pixels(size, [a, b, left])
        second = covered_pixels(size, [b, a, right])

        assert not first & second
        on_edge = {(int(cx + i * dx - 0.5), int(cy + i * dy - 0.5)) for i in range(1, steps + 1)}
        assert on_edge <= first | second


def test_back_faces_are_culled(rasterizer, uniforms, framebuffer):
    shader = PhongShader()
    positions = np.array([[0.0, 0.0, -1.0], [0.0, 1.0, -1.0], [1.0, 0.0, -1.0]])  # clockwise
    written = draw_triangles(rasterizer, shader, uniforms, positions, [Face((0, 1, 2))])
    assert written == 0
    assert rasterizer.stats.culled == 1
    assert np.isinf(framebuffer.depth).all()


def test_emissive_shader_draws_back_faces(rasterizer, uniforms):
    positions = np.array([[0.0, 0.0, -1.0], [0.0, 1.0, -1.0], [1.0, 0.0, -1.0]])
    assert draw_triangles(rasterizer, EmissiveShader(), uniforms, positions, [Face((0, 1, 2))]) > 0


def test_degenerate_triangle_contributes_nothing(rasterizer, uniforms, red_shader, unit_face):
    positions = np.array([[0.0, 0.0, -1.0], [0.5, 0.5, -1.0], [1.0, 1.0, -1.0]])
    assert draw_triangles(rasterizer, red_shader, uniforms, positions, [unit_face]) == 0
    assert rasterizer.stats.degenerate == 1


def test_oversized_triangle_is_clamped_to_buffer(framebuffer, rasterizer, uniforms, red_shader, unit_face):
    positions = np.array([[-20.0, -20.0, -1.0], [40.0, -20.0, -1.0], [-20.0, 40.0, -1.0]])
    assert draw_triangles(rasterizer, red_shader, uniforms, positions, [unit_face]) == 100 * 100
    assert np.all(framebuffer.color == (255, 0, 0))


def test_unclipped_triangle_is_rejected(rasterizer, uniforms, red_shader):
    tri = Triangle(np.array([[0.0, 0.0, 0.0, 1.0], [1.0, 0.0, 0.0, -1.0], [0.0, 1.0, 0.0, 1.0]]))
    with pytest.raises(ValueError):
        rasterizer.draw(tri, red_shader, uniforms)


def test_discarded_fragments_write_nothing(framebuffer, rasterizer, uniforms):
    class DiscardLeft(EmissiveShader):
        def fragment(self, bary, varyings, uniforms):
            colors, _ = super().fragment(bary, varyings, uniforms)
            return colors, varyings["world"][:, 0] >= 0.5

    positions = np.array([[0.0, 0.0, -1.0], [1.0, 0.0, -1.0], [0.0, 1.0, -1.0]])
    draw_triangles(rasterizer, DiscardLeft(), uniforms, positions, [Face((0, 1, 2))])

    assert np.isinf(framebuffer.depth[:, :49]).all()
    assert np.all(framebuffer.color[:, :49] == (10, 10, 18))
    assert np.isfinite(framebuffer.depth[0:5, 60:90]).all()
    assert rasterizer.stats.discarded > 0


def _steep_scene(perspective_correct):
    size = 200
    fb = FrameBuffer(size, size)
    rast = Rasterizer(fb, perspective_correct=perspective_correct)
    u = Uniforms(
        model=Mat4.identity(),
        view=Mat4.identity(),
        projection=perspective(90.0, 1.0, 0.1, 50.0),
        viewport=viewport(size, size),
        light=Light(Vec3(0.0, 0.0, 0.0)),
        camera=Vec3(0.0, 0.0, 0.0),
    )
    positions = np.array([[-1.0, -1.0, -1.5], [1.0, -1.0, -1.5], [0.0, 1.0, -6.0]])
    uvs = np.array([[0.0, 0.0], [1.0, 0.0], [0.5, 1.0]])
    draw_triangles(rast, UVShader(), u, positions, [Face((0, 1, 2), (0, 1, 2))], uvs)

    centroid = positions.mean(axis=0)
    clip = u.projection.mul_vec4(vec3_to_vec4(Vec3(*centroid)))
    screen = u.viewport.mul_vec4(vec3_to_vec4(clip.perspective_divide()))
    px, py = int(screen.x), int(screen.y)
    return fb, fb.color[py, px].astype(float) / 255.0


def test_perspective_correct_interpolation_matches_surface():
    _, uv = _steep_scene(perspective_correct=True)
    # centroid of the triangle carries the mean texcoord
    assert uv[0] == pytest.approx(0.5, abs=0.03)
    assert uv[1] == pytest.approx(1.0 / 3.0, abs=0.03)


def test_affine_interpolation_warps_under_perspective():
    fb_correct, _ = _steep_scene(perspective_correct=True)
    fb_affine, uv = _steep_scene(perspective_correct=False)
    # screen-space weights at that pixel are (1/6, 1/6, 2/3)
    assert uv[1] == pytest.approx(2.0 / 3.0, abs=0.03)
    diff = np.abs(fb_correct.color.astype(int) - fb_affine.color.astype(int))
    assert diff.max() > 40


def test_framebuffer_image_is_flipped():
    fb = FrameBuffer(2, 2)
    fb.write(np.array([0]), np.array([0]), np.array([[255, 255, 255]], dtype=np.uint8), np.array([0.5]))
    img = fb.image()
    assert tuple(img[1, 0]) == (255, 255, 255)
    assert tuple(img[0, 0]) == (0, 0, 0)
    img[0, 0] = 7
    assert tuple(fb.color[1, 0]) == (0, 0, 0)


def test_clear_resets_color_and_depth(framebuffer):
    framebuffer.write(np.array([3]), np.array([4]), np.array([[1, 2, 3]], dtype=np.uint8), np.array([0.1]))
    framebuffer.clear()
    assert np.all(framebuffer.color == (10, 10, 18))
    assert np.isinf(framebuffer.depth).all()


def test_downsample_box_filter():
    img = np.zeros((4, 4, 3), dtype=np.uint8)
    img[0:2, 0:2] = 200
    img[0, 0] = 0
    out = downsample(img, 2)
    assert out.shape == (2, 2, 3)
    assert tuple(out[0, 0]) == (150, 150, 150)
    assert tuple(out[1, 1]) == (0, 0, 0)


def test_to_rgb8_clamps():
    assert to_rgb8(np.array([[-1.0, 0.5, 2.0]])).tolist() == [[0, 128, 255]]
