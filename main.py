import argparse
import logging
import sys

from tinyraster.encoder import GifSink, MultiSink, PreviewSink
from tinyraster.errors import RenderError
from tinyraster.frame import RenderConfig, render_animation
from tinyraster.linalg import Vec3
from tinyraster.loader import load_obj
from tinyraster.shaders import SHADERS, UnlitShader

log = logging.getLogger("tinyraster")


def vec3(text: str) -> Vec3:
    """argparse type for "x,y,z"."""
    try:
        return Vec3.from_iter(text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected x,y,z, got {text!r}") from None


def build_parser() -> argparse.ArgumentParser:
    d = RenderConfig()
    parser = argparse.ArgumentParser(
        description="Render an OBJ model into an orbiting-camera GIF with a software rasterizer.")
    parser.add_argument("obj", help="path to the .obj file (materials via its mtllib)")
    parser.add_argument("--out", default="result.gif", help="output GIF path")
    parser.add_argument("--width", type=int, default=d.width)
    parser.add_argument("--height", type=int, default=d.height)
    parser.add_argument("--frames", type=int, default=d.frames, help="orbit subdivisions")
    parser.add_argument("--delay", type=int, default=d.delay_ms, help="frame delay in ms")
    parser.add_argument("--fov", type=float, default=d.fov, help="vertical field of view, degrees")
    parser.add_argument("--near", type=float, default=d.near)
    parser.add_argument("--far", type=float, default=d.far)
    parser.add_argument("--eye", type=vec3, default=d.eye, help="camera position x,y,z")
    parser.add_argument("--target", type=vec3, default=d.target)
    parser.add_argument("--up", type=vec3, default=d.up)
    parser.add_argument("--light", type=vec3, default=d.light, help="light position x,y,z")
    parser.add_argument("--fixed-light", action="store_true", help="do not orbit the light")
    parser.add_argument("--no-light-marker", action="store_true")
    parser.add_argument("--shader", choices=sorted(SHADERS), default=d.shader)
    parser.add_argument("--bands", action="store_true", help="banded intensity (unlit shader)")
    parser.add_argument("--filter", choices=("nearest", "bilinear"), default="nearest",
                        help="texture filtering")
    parser.add_argument("--antialias", type=int, default=d.antialias,
                        help="render k times larger and box-filter down")
    parser.add_argument("--affine", action="store_true",
                        help="affine (not perspective-correct) varying interpolation")
    parser.add_argument("--no-normalize", action="store_true",
                        help="keep model coordinates instead of fitting into [-1, 1]")
    parser.add_argument("--preview", action="store_true", help="show frames in a window")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.bands and args.shader != "unlit":
        parser.error("--bands only applies to --shader unlit")
    logging.basicConfig(
        level=logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = RenderConfig(
            width=args.width, height=args.height, frames=args.frames,
            fov=args.fov, near=args.near, far=args.far,
            eye=args.eye, target=args.target, up=args.up,
            light=args.light, orbit_light=not args.fixed_light,
            show_light=not args.no_light_marker,
            shader=args.shader, antialias=args.antialias, delay_ms=args.delay,
            perspective_correct=not args.affine,
        ).validate()

        model = load_obj(args.obj, texture_filter=args.filter)
        if not args.no_normalize:
            model = model.normalized()

        shader = UnlitShader(bands=True) if args.bands else None
        sink = GifSink(args.out, delay_ms=config.delay_ms)
        if args.preview:
            sink = MultiSink(sink, PreviewSink(config.width, config.height))
        render_animation(model, config, sink, shader)
    except RenderError as exc:
        log.error("%s", exc)
        return 1
    except OSError as exc:
        log.error("I/O error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
