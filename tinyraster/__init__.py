"""Software triangle rasterizer: transforms, clipping, z-buffer and shaders on the CPU."""
from .clipper import clip_near
from .encoder import GifSink, MultiSink, PreviewSink
from .errors import (ConfigError, MeshFormatError, RenderError, ShaderStateError,
                     UnresolvedMaterialError)
from .frame import FrameRenderer, RenderConfig, orbit_camera, render_animation, render_frame
from .linalg import DegenerateVectorError, Mat4, Vec3, Vec4
from .loader import load_mtl, load_obj, load_texture
from .model import Face, Material, MeshObject, Model, Texture, marker_mesh
from .raster import FrameBuffer, Rasterizer, downsample
from .shaders import (EmissiveShader, Light, PhongShader, Shader, Triangle, Uniforms,
                      UnlitShader)
from .transforms import look_at, orthographic, perspective, viewport

__version__ = "0.1.0"
