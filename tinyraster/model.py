from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .errors import MeshFormatError, UnresolvedMaterialError


# ============================================================
#  Textures & materials
# ============================================================

class Texture:
    """
    2D grid of RGB samples, shape (H, W, 3), dtype uint8.

    Sampling convention:
      - u goes left -> right, v goes bottom -> top (OBJ convention), so
        row 0 of the array is v = 1
      - UVs are clamped to [0..1] (no wrap-around)
      - "nearest" picks the texel
            tx = int(u * (W - 1)),  ty = int((1 - v) * (H - 1))
      - "bilinear" blends the four surrounding texels
    """
    FILTERS = ("nearest", "bilinear")

    def __init__(self, data: np.ndarray, filter: str = "nearest", name: str = ""):
        arr = np.asarray(data)
        if arr.ndim == 2:
            arr = np.repeat(arr[:, :, None], 3, axis=2)
        if arr.ndim != 3 or arr.shape[2] < 3 or arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValueError(f"texture must be HxWx3, got shape {arr.shape}")
        if filter not in self.FILTERS:
            raise ValueError(f"unknown texture filter {filter!r}")
        self.data = np.ascontiguousarray(arr[:, :, :3], dtype=np.uint8)
        self.filter = filter
        self.name = name

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    def sample(self, uv: np.ndarray) -> np.ndarray:
        """Sample at (N,2) UVs; returns (N,3) float colors in [0..1]."""
        uv = np.clip(np.asarray(uv, dtype=np.float64), 0.0, 1.0)
        u, v = uv[:, 0], uv[:, 1]
        th, tw = self.height, self.width
        if self.filter == "nearest":
            tx = (u * (tw - 1)).astype(np.intp)
            ty = ((1.0 - v) * (th - 1)).astype(np.intp)
            return self.data[ty, tx].astype(np.float64) / 255.0

        fx = u * (tw - 1)
        fy = (1.0 - v) * (th - 1)
        x0 = np.floor(fx).astype(np.intp)
        y0 = np.floor(fy).astype(np.intp)
        x1 = np.minimum(x0 + 1, tw - 1)
        y1 = np.minimum(y0 + 1, th - 1)
        ax = (fx - x0)[:, None]
        ay = (fy - y0)[:, None]
        d = self.data.astype(np.float64)
        top = d[y0, x0] * (1.0 - ax) + d[y0, x1] * ax
        bottom = d[y1, x0] * (1.0 - ax) + d[y1, x1] * ax
        return (top * (1.0 - ay) + bottom * ay) / 255.0


@dataclass
class Material:
    """
    Surface description referenced by name from each object.

    Every map is optional:
      - no diffuse map  -> diffuse_color (white by default)
      - no specular map -> specular strength 0
      - no normal map   -> geometric (interpolated) normal
    """
    name: str
    diffuse: Optional[Texture] = None
    specular: Optional[Texture] = None
    normal: Optional[Texture] = None
    diffuse_color: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    shininess: float = 32.0


# ============================================================
#  Mesh
# ============================================================

@dataclass
class Face:
    """
    Single triangle face, indices into:
      - v:  vertex positions
      - vt: texture coords (-1 if absent)
      - vn: vertex normals (-1 if absent)

    Indices are 0-based.
    """
    v: Tuple[int, int, int]
    vt: Tuple[int, int, int] = (-1, -1, -1)
    vn: Tuple[int, int, int] = (-1, -1, -1)


@dataclass
class MeshObject:
    """Named group of faces sharing one material."""
    name: str
    material: str
    faces: List[Face] = field(default_factory=list)


@dataclass
class Model:
    """
    In-memory mesh shared by all objects.

    positions (N,3), texcoords (T,2) and normals (M,3) are flat stores;
    each object keeps its own ordered face list and a material name that
    must resolve in `materials`.
    """
    positions: np.ndarray
    texcoords: np.ndarray
    normals: np.ndarray
    objects: Dict[str, MeshObject] = field(default_factory=dict)
    materials: Dict[str, Material] = field(default_factory=dict)

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        self.texcoords = np.asarray(self.texcoords, dtype=np.float64).reshape(-1, 2)
        self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)

    @property
    def face_count(self) -> int:
        return sum(len(o.faces) for o in self.objects.values())

    def material_for(self, obj: MeshObject) -> Material:
        """Resolve an object's material; a missing one is fatal."""
        try:
            return self.materials[obj.material]
        except KeyError:
            raise UnresolvedMaterialError(obj.name, obj.material) from None

    def validate(self) -> "Model":
        """
        Check the structural invariants the pipeline relies on.

        Raises MeshFormatError for an out-of-range index and
        UnresolvedMaterialError for an object whose material is missing.
        """
        n_v, n_t, n_n = len(self.positions), len(self.texcoords), len(self.normals)
        for obj in self.objects.values():
            self.material_for(obj)
            for face in obj.faces:
                if any(not 0 <= i < n_v for i in face.v):
                    raise MeshFormatError(f"{obj.name}: position index out of range in {face}")
                if any(not -1 <= i < n_t for i in face.vt):
                    raise MeshFormatError(f"{obj.name}: texcoord index out of range in {face}")
                if any(not -1 <= i < n_n for i in face.vn):
                    raise MeshFormatError(f"{obj.name}: normal index out of range in {face}")
        return self

    def normalized(self) -> "Model":
        """
        Copy of the model fitted into the cube [-1, 1]^3 around the origin.

        Center of the bounding box goes to the origin, the largest half
        extent becomes 1. Normals and texcoords are shared unchanged.
        """
        if len(self.positions) == 0:
            return self
        lo = self.positions.min(axis=0)
        hi = self.positions.max(axis=0)
        center = (lo + hi) / 2.0
        half = float((hi - lo).max()) / 2.0
        k = 1.0 / half if half > 0.0 else 1.0
        return Model((self.positions - center) * k, self.texcoords, self.normals,
                     self.objects, self.materials)


def marker_mesh(size: float = 0.05, material: str = "light_marker") -> Model:
    """
    Small octahedron centered at the origin, used as the light indicator.

    Faces are counter-clockwise seen from outside.
    """
    s = float(size)
    positions = [
        (s, 0, 0), (-s, 0, 0),
        (0, s, 0), (0, -s, 0),
        (0, 0, s), (0, 0, -s),
    ]
    tris = [
        (0, 2, 4), (2, 1, 4), (1, 3, 4), (3, 0, 4),
        (2, 0, 5), (1, 2, 5), (3, 1, 5), (0, 3, 5),
    ]
    obj = MeshObject("marker", material, [Face(t) for t in tris])
    return Model(positions, np.zeros((0, 2)), np.zeros((0, 3)),
                 {"marker": obj}, {material: Material(material)})
