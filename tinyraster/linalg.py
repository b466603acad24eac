import math
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np


class DegenerateVectorError(ArithmeticError):
    """Raised when normalizing a vector whose length is (almost) zero."""


EPS = 1e-12


# ============================================================
#  Vectors
# ============================================================

@dataclass(frozen=True)
class Vec3:
    """
    3D vector for positions, directions and colors.

    Used for configuration-level values (camera eye/target/up, light
    position). Bulk per-vertex data lives in numpy arrays instead.
    """
    x: float
    y: float
    z: float

    def __add__(self, o): return Vec3(self.x + o.x, self.y + o.y, self.z + o.z)
    def __sub__(self, o): return Vec3(self.x - o.x, self.y - o.y, self.z - o.z)
    def __mul__(self, k: float): return Vec3(self.x * k, self.y * k, self.z * k)
    def __neg__(self): return Vec3(-self.x, -self.y, -self.z)

    def dot(self, o) -> float:
        """Dot product (scalar product)."""
        return self.x * o.x + self.y * o.y + self.z * o.z

    def cross(self, o):
        """Cross product (vector product)."""
        return Vec3(
            self.y * o.z - self.z * o.y,
            self.z * o.x - self.x * o.z,
            self.x * o.y - self.y * o.x
        )

    def norm(self) -> float:
        """Euclidean length."""
        return math.sqrt(self.dot(self))

    def normalize(self):
        """
        Return normalized vector (length=1).

        A zero-length vector has no direction, so this raises
        DegenerateVectorError instead of inventing one. Callers that can
        tolerate a degenerate input must check norm() first.
        """
        n = self.norm()
        if n <= EPS:
            raise DegenerateVectorError(f"cannot normalize zero-length vector {self}")
        return self * (1.0 / n)

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @staticmethod
    def from_iter(values: Iterable[float]) -> "Vec3":
        x, y, z = (float(v) for v in values)
        return Vec3(x, y, z)


@dataclass(frozen=True)
class Vec4:
    """
    4D homogeneous vector.
    """
    x: float
    y: float
    z: float
    w: float

    def __add__(self, o): return Vec4(self.x + o.x, self.y + o.y, self.z + o.z, self.w + o.w)
    def __sub__(self, o): return Vec4(self.x - o.x, self.y - o.y, self.z - o.z, self.w - o.w)
    def __mul__(self, k: float): return Vec4(self.x * k, self.y * k, self.z * k, self.w * k)

    def dot(self, o) -> float:
        return self.x * o.x + self.y * o.y + self.z * o.z + self.w * o.w

    def perspective_divide(self) -> Vec3:
        """Homogeneous division: (x/w, y/w, z/w)."""
        if abs(self.w) <= EPS:
            raise DegenerateVectorError(f"cannot divide by w={self.w}")
        inv = 1.0 / self.w
        return Vec3(self.x * inv, self.y * inv, self.z * inv)

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z, self.w], dtype=np.float64)


def vec3_to_vec4(v: Vec3, w: float = 1.0) -> Vec4:
    """Convert Vec3 to homogeneous Vec4."""
    return Vec4(v.x, v.y, v.z, w)


# ============================================================
#  Matrices
# ============================================================

class Mat4:
    """
    4x4 matrix (row-major), immutable once built.

    Multiplication:
      - Matrix @ Matrix      => Mat4
      - Matrix.mul_vec4(v)   => Vec4
      - Matrix.apply(points) => (N,4) array, points given as (N,3) or (N,4)

    The backing numpy array is marked read-only so per-frame matrices
    cannot be modified while a frame is rasterized.
    """
    __slots__ = ("m",)

    def __init__(self, m: Optional[Iterable] = None):
        arr = np.zeros((4, 4), dtype=np.float64) if m is None else np.array(m, dtype=np.float64)
        if arr.shape != (4, 4):
            raise ValueError(f"Mat4 needs a 4x4 array, got shape {arr.shape}")
        arr.flags.writeable = False
        self.m = arr

    @staticmethod
    def identity() -> "Mat4":
        """Create identity matrix."""
        return Mat4(np.eye(4))

    def __matmul__(self, o: "Mat4") -> "Mat4":
        """Matrix multiplication (Mat4 @ Mat4)."""
        return Mat4(self.m @ o.m)

    def __eq__(self, o):
        return isinstance(o, Mat4) and np.array_equal(self.m, o.m)

    def __hash__(self):
        return hash(self.m.tobytes())

    def __repr__(self):
        return f"Mat4({self.m.tolist()})"

    def mul_vec4(self, v: Vec4) -> Vec4:
        """Multiply matrix by a Vec4 (Mat4 * Vec4)."""
        x, y, z, w = self.m @ v.to_array()
        return Vec4(float(x), float(y), float(z), float(w))

    def transpose(self) -> "Mat4":
        return Mat4(self.m.T)

    def inverse(self) -> "Mat4":
        return Mat4(np.linalg.inv(self.m))

    def apply(self, points: np.ndarray, w: float = 1.0) -> np.ndarray:
        """
        Transform many points at once.

        points - (N,3) array (promoted with the given w) or (N,4) array.
        Returns an (N,4) array of homogeneous results.
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim != 2 or pts.shape[1] not in (3, 4):
            raise ValueError(f"expected (N,3) or (N,4) points, got shape {pts.shape}")
        if pts.shape[1] == 3:
            pts = np.hstack([pts, np.full((len(pts), 1), w)])
        return pts @ self.m.T

    def normal_matrix(self) -> np.ndarray:
        """
        Inverse-transpose of the upper-left 3x3.

        Correct for non-uniform scale too. A singular 3x3 (e.g. a zero
        scale) falls back to the plain 3x3 part.
        """
        m3 = self.m[:3, :3]
        try:
            return np.linalg.inv(m3).T
        except np.linalg.LinAlgError:
            return m3.copy()


# ============================================================
#  Bulk helpers
# ============================================================

def normalize_rows(v: np.ndarray) -> np.ndarray:
    """
    Normalize each row of an (N,k) array.

    Rows with (near) zero length come back as zero rows: inside the
    pipeline a degenerate direction contributes nothing instead of failing
    the whole frame.
    """
    v = np.asarray(v, dtype=np.float64)
    n = np.linalg.norm(v, axis=-1, keepdims=True)
    safe = np.where(n > EPS, n, 1.0)
    return np.where(n > EPS, v / safe, 0.0)
