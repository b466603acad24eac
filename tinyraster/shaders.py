"""
Programmable shading stages.

A shader is driven through the same three operations for every variant:

  load(positions, normals, texcoords)  bind the frame's vertex arrays
  vertex(uniforms)                     bulk transform every bound vertex
  fragment(bary, varyings, uniforms)   color a batch of covered pixels

plus varyings(face), which gathers one triangle's per-vertex outputs so the
clipper and rasterizer can interpolate them without knowing which channels
a variant uses. The rasterizer is written once against this contract.

Uniforms are immutable and rebuilt every frame; switching the active
material produces a new Uniforms value instead of mutating shader fields.
"""
import enum
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .errors import ShaderStateError
from .linalg import Mat4, Vec3, normalize_rows
from .model import Face, Material


# ============================================================
#  Per-frame and per-triangle data
# ============================================================

@dataclass(frozen=True)
class Light:
    """Point light in world space."""
    position: Vec3
    color: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    ambient: float = 0.1


@dataclass(frozen=True)
class Uniforms:
    """Per-frame constants, replaced wholesale every frame."""
    model: Mat4
    view: Mat4
    projection: Mat4
    viewport: Mat4
    light: Light
    camera: Vec3
    material: Optional[Material] = None

    def with_material(self, material: Material) -> "Uniforms":
        return replace(self, material=material)

    def with_model(self, model: Mat4) -> "Uniforms":
        return replace(self, model=model)


@dataclass
class Triangle:
    """
    One triangle on its way through clipping and rasterization.

    clip     - (3,4) clip-space positions
    varyings - name -> (3,k) per-vertex values, interpolated channel-wise
    """
    clip: np.ndarray
    varyings: Dict[str, np.ndarray] = field(default_factory=dict)


@dataclass
class VertexOutput:
    """Bulk result of the vertex stage, one row per bound vertex."""
    clip: np.ndarray
    world: np.ndarray
    normals: np.ndarray
    texcoords: np.ndarray


class ShaderState(enum.Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    VERTEX_SHADED = "vertex_shaded"


# ============================================================
#  Base contract
# ============================================================

class Shader:
    """
    Base shader: the vertex stage is shared, fragment() is per variant.

    Subclasses override fragment() and, when they need extra per-vertex
    channels, varyings().
    """
    cull_backfaces = True

    def __init__(self):
        self.state = ShaderState.UNLOADED
        self._positions = None
        self._normals = None
        self._texcoords = None
        self._out: Optional[VertexOutput] = None

    # --- stage 1

    def load(self, positions, normals, texcoords, faces: Optional[Sequence[Face]] = None):
        """
        Bind vertex arrays for the frame.

        When faces are given, every index is checked against the array
        lengths; an inconsistent binding raises ShaderStateError.
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        normals = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
        texcoords = np.asarray(texcoords, dtype=np.float64).reshape(-1, 2)
        if faces is not None:
            for face in faces:
                if (any(not 0 <= i < len(positions) for i in face.v)
                        or any(not -1 <= i < len(texcoords) for i in face.vt)
                        or any(not -1 <= i < len(normals) for i in face.vn)):
                    raise ShaderStateError(f"face {face} does not fit the bound vertex arrays")
        self._positions = positions
        self._normals = normals
        self._texcoords = texcoords
        self._out = None
        self.state = ShaderState.LOADED

    # --- stage 2

    def vertex(self, uniforms: Uniforms) -> VertexOutput:
        """
        Transform every bound vertex: object -> world -> camera -> clip.

        Normals go through the inverse-transpose of the model matrix and are
        renormalized; texcoords pass through unchanged.
        """
        if self.state is ShaderState.UNLOADED:
            raise ShaderStateError("vertex() called before load()")
        world4 = uniforms.model.apply(self._positions)
        clip = (uniforms.projection @ uniforms.view).apply(world4)
        normals = normalize_rows(self._normals @ uniforms.model.normal_matrix().T)
        self._out = VertexOutput(clip, world4[:, :3], normals, self._texcoords)
        self.state = ShaderState.VERTEX_SHADED
        return self._out

    # --- per triangle

    def varyings(self, face: Face) -> Triangle:
        """
        Gather the per-vertex outputs of one face.

        Channels: world (3,3), normal (3,3), uv (3,2). A face without
        normals gets its geometric normal at all three corners, a face
        without texcoords gets (0, 0).
        """
        if self.state is not ShaderState.VERTEX_SHADED:
            raise ShaderStateError(f"varyings() needs vertex-shaded data, state is {self.state.value}")
        out = self._out
        v = list(face.v)
        world = out.world[v]
        if min(face.vn) >= 0:
            normal = out.normals[list(face.vn)]
        else:
            normal = np.repeat(face_normal(world)[None, :], 3, axis=0)
        if min(face.vt) >= 0:
            uv = out.texcoords[list(face.vt)]
        else:
            uv = np.zeros((3, 2))
        return Triangle(out.clip[v], {"world": world, "normal": normal, "uv": uv})

    # --- stage 3

    def fragment(self, bary: np.ndarray, varyings: Dict[str, np.ndarray],
                 uniforms: Uniforms) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """
        Shade K fragments.

        bary     - (K,3) screen-space barycentric weights
        varyings - name -> (K,k) perspective-correct interpolated values

        Returns (colors, keep): colors is (K,3) in [0..1]; keep is a (K,)
        bool mask (False = discard) or None when every fragment is kept.
        Must not mutate the shader.
        """
        raise NotImplementedError


def face_normal(world: np.ndarray) -> np.ndarray:
    """Unit normal of a counter-clockwise triangle; zero for a degenerate one."""
    n = np.cross(world[1] - world[0], world[2] - world[0])
    return normalize_rows(n[None, :])[0]


def _albedo(material: Optional[Material], uv: np.ndarray) -> np.ndarray:
    if material is not None and material.diffuse is not None:
        return material.diffuse.sample(uv)
    color = material.diffuse_color if material is not None else (1.0, 1.0, 1.0)
    return np.broadcast_to(np.asarray(color, dtype=np.float64), (len(uv), 3))


# ============================================================
#  Variants
# ============================================================

def intensity_bands(intensity: np.ndarray) -> np.ndarray:
    """Quantize intensity into three bands: 0.4, 0.8, 1.0."""
    return np.where(intensity <= 0.4, 0.4, np.where(intensity <= 0.8, 0.8, 1.0))


class UnlitShader(Shader):
    """
    Flat debug shading.

    Intensity is the face normal dotted with the direction from the
    fragment to the camera, optionally multiplied with the diffuse texture
    and optionally quantized into bands. Fragments of faces turned away from the camera are
    discarded.
    """

    def __init__(self, textured: bool = True, bands: bool = False):
        super().__init__()
        self.textured = textured
        self.bands = bands

    def varyings(self, face: Face) -> Triangle:
        tri = super().varyings(face)
        tri.varyings["face_normal"] = np.repeat(face_normal(tri.varyings["world"])[None, :], 3, axis=0)
        return tri

    def fragment(self, bary, varyings, uniforms):
        n = normalize_rows(varyings["face_normal"])
        to_eye = normalize_rows(uniforms.camera.to_array()[None, :] - varyings["world"])
        intensity = np.einsum("ij,ij->i", n, to_eye)
        keep = intensity > 0.0
        intensity = np.clip(intensity, 0.0, 1.0)
        if self.bands:
            intensity = intensity_bands(intensity)
        if self.textured:
            base = _albedo(uniforms.material, varyings["uv"])
        else:
            base = np.ones((len(intensity), 3))
        return base * intensity[:, None], keep


class PhongShader(Shader):
    """
    Per-pixel Blinn-Phong lighting.

      color = albedo * (ambient + max(0, N.L) * light) + ks * max(0, N.H)^shininess * light

    albedo comes from the diffuse map (or the material color), ks from the
    specular map (0 without one), and N is perturbed by a tangent-space
    normal map when the material has one. The tangent frame is an extra
    per-vertex channel computed from the face's positions and UVs.
    """

    def varyings(self, face: Face) -> Triangle:
        tri = super().varyings(face)
        tangent, bitangent = tangent_frame(tri.varyings["world"], tri.varyings["uv"])
        tri.varyings["tangent"] = np.repeat(tangent[None, :], 3, axis=0)
        tri.varyings["bitangent"] = np.repeat(bitangent[None, :], 3, axis=0)
        return tri

    def fragment(self, bary, varyings, uniforms):
        material = uniforms.material
        light = uniforms.light
        world = varyings["world"]
        uv = varyings["uv"]
        n = normalize_rows(varyings["normal"])

        if material is not None and material.normal is not None:
            n = self._perturb(n, varyings, material.normal.sample(uv))

        l = normalize_rows(light.position.to_array()[None, :] - world)
        v = normalize_rows(uniforms.camera.to_array()[None, :] - world)
        h = normalize_rows(l + v)

        diff = np.maximum(0.0, np.einsum("ij,ij->i", n, l))
        spec = np.maximum(0.0, np.einsum("ij,ij->i", n, h))
        shininess = material.shininess if material is not None else 32.0
        spec = np.where(diff > 0.0, spec ** shininess, 0.0)

        if material is not None and material.specular is not None:
            ks = material.specular.sample(uv).mean(axis=1)
        else:
            ks = np.zeros(len(world))

        light_color = np.asarray(light.color, dtype=np.float64)[None, :]
        albedo = _albedo(material, uv)
        color = albedo * (light.ambient + diff[:, None] * light_color) + (ks * spec)[:, None] * light_color
        return np.clip(color, 0.0, 1.0), None

    @staticmethod
    def _perturb(n, varyings, texel):
        """Rotate the tangent-space normal map sample into world space."""
        t = varyings["tangent"]
        t = normalize_rows(t - n * np.einsum("ij,ij->i", n, t)[:, None])
        b = np.cross(n, t)
        flip = np.einsum("ij,ij->i", b, varyings["bitangent"]) < 0.0
        b = np.where(flip[:, None], -b, b)
        ts = texel * 2.0 - 1.0
        mapped = normalize_rows(t * ts[:, 0:1] + b * ts[:, 1:2] + n * ts[:, 2:3])
        # faces without a usable UV layout keep the geometric normal
        usable = np.linalg.norm(t, axis=1) > 0.0
        return np.where(usable[:, None], mapped, n)


class EmissiveShader(Shader):
    """Constant color, no lighting; drawn from any side (no culling)."""
    cull_backfaces = False

    def __init__(self, color=(1.0, 1.0, 0.6)):
        super().__init__()
        self.color = np.asarray(color, dtype=np.float64)

    def fragment(self, bary, varyings, uniforms):
        return np.broadcast_to(self.color, (len(bary), 3)), None


def tangent_frame(world: np.ndarray, uv: np.ndarray):
    """
    Tangent and bitangent of a triangle from its positions and UVs.

    Returns zero vectors when the UV mapping is degenerate.
    """
    e1 = world[1] - world[0]
    e2 = world[2] - world[0]
    du1, dv1 = uv[1] - uv[0]
    du2, dv2 = uv[2] - uv[0]
    r = du1 * dv2 - du2 * dv1
    if abs(r) < 1e-12:
        return np.zeros(3), np.zeros(3)
    tangent = (e1 * dv2 - e2 * dv1) / r
    bitangent = (e2 * du1 - e1 * du2) / r
    return normalize_rows(tangent[None, :])[0], normalize_rows(bitangent[None, :])[0]


SHADERS = {
    "unlit": UnlitShader,
    "phong": PhongShader,
    "emissive": EmissiveShader,
}
