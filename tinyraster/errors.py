"""
Exception types raised by the renderer.

Fatal conditions (bad configuration, unresolved materials, shader misuse)
surface as RenderError subclasses so the command line driver can report them
in one place. Locally recoverable geometry problems (zero-area triangles,
zero-length normals inside the pipeline) never raise; they simply contribute
nothing to the frame.
"""


class RenderError(Exception):
    """Base class for every fatal renderer error."""


class ConfigError(RenderError, ValueError):
    """Invalid configuration detected before any frame is rendered."""


class UnresolvedMaterialError(RenderError, KeyError):
    """An object references a material name the model does not define."""

    def __init__(self, obj_name: str, material_name: str):
        super().__init__(f"unresolved material {material_name!r} for object {obj_name!r}")
        self.obj_name = obj_name
        self.material_name = material_name

    def __str__(self):
        return self.args[0]


class ShaderStateError(RenderError, RuntimeError):
    """A shader stage was invoked out of order or with inconsistent data."""


class MeshFormatError(RenderError, ValueError):
    """The mesh or material file could not be turned into a valid Model."""
