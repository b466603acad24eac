import math

from .errors import ConfigError
from .linalg import DegenerateVectorError, Mat4, Vec3


# ============================================================
#  Affine transforms
# ============================================================

def translate(tx, ty, tz) -> Mat4:
    """
    Translation matrix.

    Applies: (x, y, z) -> (x + tx, y + ty, z + tz)
    """
    return Mat4([
        [1.0, 0.0, 0.0, tx],
        [0.0, 1.0, 0.0, ty],
        [0.0, 0.0, 1.0, tz],
        [0.0, 0.0, 0.0, 1.0],
    ])

def scale(sx, sy, sz) -> Mat4:
    """
    Scaling matrix.

    Applies: (x, y, z) -> (sx*x, sy*y, sz*z)
    """
    return Mat4([
        [sx, 0.0, 0.0, 0.0],
        [0.0, sy, 0.0, 0.0],
        [0.0, 0.0, sz, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ])

def rotate_x(a) -> Mat4:
    """Rotation around X axis by angle a (radians)."""
    c, s = math.cos(a), math.sin(a)
    return Mat4([
        [1.0, 0.0, 0.0, 0.0],
        [0.0, c, -s, 0.0],
        [0.0, s, c, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ])

def rotate_y(a) -> Mat4:
    """Rotation around Y axis by angle a (radians)."""
    c, s = math.cos(a), math.sin(a)
    return Mat4([
        [c, 0.0, s, 0.0],
        [0.0, 1.0, 0.0, 0.0],
        [-s, 0.0, c, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ])

def rotate_z(a) -> Mat4:
    """Rotation around Z axis by angle a (radians)."""
    c, s = math.cos(a), math.sin(a)
    return Mat4([
        [c, -s, 0.0, 0.0],
        [s, c, 0.0, 0.0],
        [0.0, 0.0, 1.0, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ])


# ============================================================
#  Camera
# ============================================================

def look_at(eye: Vec3, target: Vec3, up: Vec3) -> Mat4:
    """
    View matrix (world -> camera space), right-handed.

      forward = normalize(target - eye)
      right   = normalize(cross(forward, up))
      up'     = cross(right, forward)

    The camera looks towards -Z in camera space, so the rows are
    (right, up', -forward) and the translation is -eye expressed in that
    basis.

    Raises ConfigError when eye == target or up is parallel to the viewing
    direction; such a camera has no defined orientation.
    """
    try:
        forward = (target - eye).normalize()
        right = forward.cross(up).normalize()
    except DegenerateVectorError as exc:
        raise ConfigError(f"degenerate camera eye={eye} target={target} up={up}") from exc
    true_up = right.cross(forward)
    return Mat4([
        [right.x, right.y, right.z, -right.dot(eye)],
        [true_up.x, true_up.y, true_up.z, -true_up.dot(eye)],
        [-forward.x, -forward.y, -forward.z, forward.dot(eye)],
        [0.0, 0.0, 0.0, 1.0],
    ])


# ============================================================
#  Projections
# ============================================================

def perspective(fov_y_degrees, aspect, z_near, z_far) -> Mat4:
    """
    Perspective projection matrix.

    Parameters:
      fov_y_degrees - vertical field of view in degrees
      aspect        - width / height
      z_near        - near plane distance (positive)
      z_far         - far plane distance (positive)

    Notes:
      - Camera looks towards -Z in view space.
      - This projection produces clip-space with w = -z_view, i.e. w is the
        distance in front of the camera; clipping against w = z_near is
        exactly the near plane.
      - After the divide, z_ndc goes from -1 (near) to +1 (far).
    """
    if not 0.0 < fov_y_degrees < 180.0:
        raise ConfigError(f"field of view must be in (0, 180) degrees, got {fov_y_degrees}")
    if aspect <= 0.0:
        raise ConfigError(f"aspect ratio must be positive, got {aspect}")
    if not 0.0 < z_near < z_far:
        raise ConfigError(f"need 0 < near < far, got near={z_near} far={z_far}")
    f = 1.0 / math.tan(math.radians(fov_y_degrees) / 2.0)
    return Mat4([
        [f / aspect, 0.0, 0.0, 0.0],
        [0.0, f, 0.0, 0.0],
        [0.0, 0.0, (z_far + z_near) / (z_near - z_far), (2.0 * z_far * z_near) / (z_near - z_far)],
        [0.0, 0.0, -1.0, 0.0],
    ])

def orthographic(left, right, bottom, top, z_near, z_far) -> Mat4:
    """
    Orthographic projection; w stays 1 so no perspective effects.

    Maps the box [left,right]x[bottom,top]x[-near,-far] to NDC [-1,1]^3.
    """
    if right == left or top == bottom:
        raise ConfigError("orthographic volume has zero width or height")
    if z_near == z_far:
        raise ConfigError("orthographic volume has zero depth")
    return Mat4([
        [2.0 / (right - left), 0.0, 0.0, -(right + left) / (right - left)],
        [0.0, 2.0 / (top - bottom), 0.0, -(top + bottom) / (top - bottom)],
        [0.0, 0.0, -2.0 / (z_far - z_near), -(z_far + z_near) / (z_far - z_near)],
        [0.0, 0.0, 0.0, 1.0],
    ])

def viewport(width, height) -> Mat4:
    """
    NDC -> pixel coordinates.

      x: [-1, 1] -> [0, width)
      y: [-1, 1] -> [0, height)   (y up; the frame is flipped on output)
      z: [-1, 1] -> [0, 1]        (0 = near, 1 = far)

    Pixel (i, j) covers [i, i+1) x [j, j+1), its center is (i+0.5, j+0.5).
    """
    if width <= 0 or height <= 0:
        raise ConfigError(f"viewport needs a positive size, got {width}x{height}")
    return Mat4([
        [width / 2.0, 0.0, 0.0, width / 2.0],
        [0.0, height / 2.0, 0.0, height / 2.0],
        [0.0, 0.0, 0.5, 0.5],
        [0.0, 0.0, 0.0, 1.0],
    ])
