import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

import numpy as np
from PIL import Image

from .errors import MeshFormatError
from .model import Face, Material, MeshObject, Model, Texture

log = logging.getLogger(__name__)

PathLike = Union[str, Path]

DEFAULT_OBJECT = "default"
DEFAULT_MATERIAL = "default"


# ============================================================
#  Textures
# ============================================================

def load_texture(path: PathLike, filter: str = "nearest") -> Texture:
    """Decode an image file (any format Pillow reads) into a Texture."""
    with Image.open(path) as img:
        data = np.array(img.convert("RGB"), dtype=np.uint8)  # HxWx3
    return Texture(data, filter=filter, name=Path(path).name)


def _optional_texture(path: Path, filter: str) -> Optional[Texture]:
    if not path.is_file():
        log.warning("texture %s not found, using material defaults", path)
        return None
    try:
        return load_texture(path, filter)
    except OSError as exc:
        raise MeshFormatError(f"cannot decode texture {path}: {exc}") from exc


# ============================================================
#  MTL loader
# ============================================================

def load_mtl(path: PathLike, texture_filter: str = "nearest") -> Dict[str, Material]:
    """
    Minimal MTL parser.

    Supported:
      newmtl name
      Kd r g b
      Ns shininess
      map_Kd file              (diffuse)
      map_Ks file              (specular)
      map_Bump / bump / norm   (tangent-space normal map)

    Map options (e.g. "-bm 1.0") are skipped; the last token is the file,
    resolved relative to the MTL file.
    """
    path = Path(path)
    base = path.parent
    materials: Dict[str, Material] = {}
    current: Optional[Material] = None

    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split()
            key = parts[0]
            if key == "newmtl":
                name = " ".join(parts[1:])
                current = materials[name] = Material(name)
                continue
            if current is None:
                continue
            try:
                if key == "Kd" and len(parts) >= 4:
                    current.diffuse_color = (float(parts[1]), float(parts[2]), float(parts[3]))
                elif key == "Ns" and len(parts) >= 2:
                    current.shininess = float(parts[1])
                elif key == "map_Kd" and len(parts) >= 2:
                    current.diffuse = _optional_texture(base / parts[-1], texture_filter)
                elif key == "map_Ks" and len(parts) >= 2:
                    current.specular = _optional_texture(base / parts[-1], texture_filter)
                elif key in ("map_Bump", "map_bump", "bump", "norm") and len(parts) >= 2:
                    current.normal = _optional_texture(base / parts[-1], texture_filter)
            except ValueError as exc:
                raise MeshFormatError(f"{path}:{lineno}: {exc}") from exc

    log.debug("loaded %d materials from %s", len(materials), path)
    return materials


# ============================================================
#  OBJ loader
# ============================================================

def _resolve(index: str, count: int) -> int:
    """OBJ index (1-based, negative = relative to the end) -> 0-based."""
    i = int(index)
    if i > 0:
        return i - 1
    if i < 0:
        return count + i
    raise ValueError("OBJ indices start at 1")


def load_obj(path: PathLike, texture_filter: str = "nearest") -> Model:
    """
    OBJ parser.

    Supported:
      v  x y z
      vt u v
      vn x y z
      f  v  |  v/vt  |  v//vn  |  v/vt/vn   (polygons are fan-triangulated)
      o name / g name      start a new object
      usemtl name          material of the following faces
      mtllib file          material library, relative to the OBJ file

    Faces are grouped per (object, material); an object that switches
    material midway is split into "object:material" parts. Faces before
    any usemtl use a plain white "default" material. A usemtl naming a
    material no library defines is kept as is, so rendering will fail with
    UnresolvedMaterialError.
    """
    path = Path(path)
    verts: List[List[float]] = []
    uvs: List[List[float]] = []
    normals: List[List[float]] = []
    objects: Dict[str, MeshObject] = {}
    materials: Dict[str, Material] = {}

    obj_name = DEFAULT_OBJECT
    material = DEFAULT_MATERIAL
    uses_default = False

    def current() -> MeshObject:
        obj = objects.get(obj_name)
        if obj is not None and obj.material != material:
            key = f"{obj_name}:{material}"
            obj = objects.get(key)
            if obj is None:
                obj = objects[key] = MeshObject(key, material)
            return obj
        if obj is None:
            obj = objects[obj_name] = MeshObject(obj_name, material)
        return obj

    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split()
            key = parts[0]
            try:
                if key == "v" and len(parts) >= 4:
                    verts.append([float(parts[1]), float(parts[2]), float(parts[3])])
                elif key == "vt" and len(parts) >= 3:
                    uvs.append([float(parts[1]), float(parts[2])])
                elif key == "vn" and len(parts) >= 4:
                    normals.append([float(parts[1]), float(parts[2]), float(parts[3])])
                elif key == "f":
                    if len(parts) < 4:
                        raise ValueError("face needs at least 3 vertices")
                    corners = []
                    for token in parts[1:]:
                        comps = token.split("/")
                        vi = _resolve(comps[0], len(verts))
                        vti = _resolve(comps[1], len(uvs)) if len(comps) > 1 and comps[1] else -1
                        vni = _resolve(comps[2], len(normals)) if len(comps) > 2 and comps[2] else -1
                        corners.append((vi, vti, vni))
                    if material == DEFAULT_MATERIAL:
                        uses_default = True
                    obj = current()
                    for i in range(1, len(corners) - 1):
                        c0, c1, c2 = corners[0], corners[i], corners[i + 1]
                        obj.faces.append(Face((c0[0], c1[0], c2[0]),
                                              (c0[1], c1[1], c2[1]),
                                              (c0[2], c1[2], c2[2])))
                elif key in ("o", "g") and len(parts) >= 2:
                    obj_name = " ".join(parts[1:])
                elif key == "usemtl" and len(parts) >= 2:
                    material = " ".join(parts[1:])
                elif key == "mtllib" and len(parts) >= 2:
                    mtl = path.parent / " ".join(parts[1:])
                    if mtl.is_file():
                        materials.update(load_mtl(mtl, texture_filter))
                    else:
                        log.warning("material library %s not found", mtl)
            except ValueError as exc:
                raise MeshFormatError(f"{path}:{lineno}: {exc}") from exc

    if not verts:
        raise MeshFormatError(f"{path}: no geometry found")
    if uses_default and DEFAULT_MATERIAL not in materials:
        materials[DEFAULT_MATERIAL] = Material(DEFAULT_MATERIAL)

    objects = {name: obj for name, obj in objects.items() if obj.faces}
    model = Model(np.array(verts), np.array(uvs).reshape(-1, 2), np.array(normals).reshape(-1, 3),
                  objects, materials)
    log.info("loaded %s: %d vertices, %d faces, %d objects, %d materials",
             path.name, len(verts), model.face_count, len(objects), len(materials))
    return model
