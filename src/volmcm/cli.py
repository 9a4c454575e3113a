"""Command-line front end.

Renders a raw volume with the progressive MCM simulation and writes the
result as PNG or PPM.

Usage:
    volmcm-render --volume head.raw --volume-dimensions 256 256 113 [options]

Options:
    --volume PATH                 Raw 8-bit volume file (required)
    --volume-dimensions W H D     Volume size (inferred from the file size)
    --tf PATH                     Transfer function, raw RGBA bytes or image
    --camera-position X Y Z       Camera position, looking at the origin
    --out-resolution W H          Output size in pixels (default: 512 512)
    --output PATH                 Output file, .png or .ppm (default: output.png)
    --steps N                     Collision events per pass (default: 100)
    --iterations N                Simulation passes (default: 100)
    --anisotropy G                Henyey-Greenstein g (default: 0)
    --extinction SIGMA            Extinction coefficient (default: 100)
    --bounces N                   Maximum scattering events (default: 8)
    --linear                      Trilinear volume sampling
    --seed N                      Random seed for a reproducible render
    --levels LOW MID HIGH         Tone levels (default: 0 0.5 1)
    --saturation S                Saturation (default: 1)
    --gamma G                     Display gamma (default: 1)
    --arch {auto,cpu,gpu,...}     Taichi backend (default: auto)
    --quiet                       Suppress progress output

Example:
    volmcm-render --volume head.raw --tf tf.png --iterations 50 --gamma 2.2
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Sequence
from pathlib import Path

import taichi as ti

from volmcm.core.config import (
    DEFAULT_ANISOTROPY,
    DEFAULT_EXTINCTION,
    DEFAULT_MAX_BOUNCES,
    DEFAULT_STEPS,
)
from volmcm.errors import RenderError

logger = logging.getLogger(__name__)

DEFAULT_FOV = 0.512

ARCHITECTURES = {
    "cpu": ti.cpu,
    "gpu": ti.gpu,
    "cuda": ti.cuda,
    "vulkan": ti.vulkan,
    "metal": ti.metal,
}


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="volmcm-render",
        description="Render a volume with Monte Carlo multiple scattering.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--volume", type=Path, required=True, help="Raw 8-bit volume file")
    parser.add_argument(
        "--volume-dimensions",
        type=int,
        nargs=3,
        metavar=("W", "H", "D"),
        default=None,
        help="Volume dimensions (default: inferred from the file size)",
    )
    parser.add_argument(
        "--tf",
        type=Path,
        default=None,
        help="Transfer function: raw RGBA bytes or an image (default: black to red)",
    )
    parser.add_argument(
        "--camera-position",
        type=float,
        nargs=3,
        metavar=("X", "Y", "Z"),
        default=[-1.0, -1.0, 1.0],
        help="Camera position; the camera looks at the origin (default: -1 -1 1)",
    )
    parser.add_argument(
        "--out-resolution",
        type=int,
        nargs=2,
        metavar=("W", "H"),
        default=[512, 512],
        help="Output resolution in pixels (default: 512 512)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("output.png"),
        help="Output file, .png or .ppm (default: output.png)",
    )
    parser.add_argument(
        "--steps",
        type=int,
        default=DEFAULT_STEPS,
        help=f"Collision events per pass (default: {DEFAULT_STEPS})",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=100,
        help="Number of simulation passes (default: 100)",
    )
    parser.add_argument(
        "--anisotropy",
        type=float,
        default=DEFAULT_ANISOTROPY,
        help=f"Henyey-Greenstein anisotropy in [-1, 1] (default: {DEFAULT_ANISOTROPY:g})",
    )
    parser.add_argument(
        "--extinction",
        type=float,
        default=DEFAULT_EXTINCTION,
        help=f"Extinction coefficient (default: {DEFAULT_EXTINCTION:g})",
    )
    parser.add_argument(
        "--bounces",
        type=int,
        default=DEFAULT_MAX_BOUNCES,
        help=f"Maximum scattering events per path (default: {DEFAULT_MAX_BOUNCES})",
    )
    parser.add_argument("--linear", action="store_true", help="Use trilinear volume sampling")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--levels",
        type=float,
        nargs=3,
        metavar=("LOW", "MID", "HIGH"),
        default=[0.0, 0.5, 1.0],
        help="Tone levels (default: 0 0.5 1)",
    )
    parser.add_argument("--saturation", type=float, default=1.0, help="Saturation (default: 1)")
    parser.add_argument("--gamma", type=float, default=1.0, help="Display gamma (default: 1)")
    parser.add_argument(
        "--arch",
        choices=["auto", *ARCHITECTURES],
        default="auto",
        help="Taichi backend; auto tries the GPU first (default: auto)",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args(argv)


def init_taichi(arch: str, quiet: bool = False) -> None:
    """Initialize Taichi, falling back to the CPU when no GPU is usable."""
    if arch != "auto":
        ti.init(arch=ARCHITECTURES[arch])
        return

    try:
        ti.init(arch=ti.gpu)
        if not quiet:
            print("Using GPU backend")
    except RuntimeError as exc:
        logger.warning("GPU backend unavailable (%s), using CPU", exc)
        ti.init(arch=ti.cpu)
        if not quiet:
            print("Using CPU backend")


def render_volume(args: argparse.Namespace) -> Path:
    """Load inputs, render and save the image described by ``args``.

    Returns:
        Path to the saved image file.
    """
    from volmcm.camera.perspective import Camera
    from volmcm.core.config import RenderParameters
    from volmcm.core.math3d import Vector3
    from volmcm.core.renderer import render
    from volmcm.preview.display import ToneMapSettings
    from volmcm.preview.export import save_image
    from volmcm.volume.loader import load_raw_volume, load_transfer_function

    quiet = args.quiet
    width, height = args.out_resolution

    params = RenderParameters(
        width=width,
        height=height,
        iterations=args.iterations,
        extinction=args.extinction,
        anisotropy=args.anisotropy,
        max_bounces=args.bounces,
        steps=args.steps,
        linear_filter=args.linear,
        seed=args.seed,
    )
    tone_map = ToneMapSettings(
        levels=tuple(args.levels), saturation=args.saturation, gamma=args.gamma
    )

    volume = load_raw_volume(args.volume, args.volume_dimensions)
    transfer_function = load_transfer_function(args.tf)

    camera = Camera(fov_x=DEFAULT_FOV, fov_y=DEFAULT_FOV)
    camera.set_position(Vector3.from_sequence(args.camera_position))
    camera.look_at(Vector3(0.0, 0.0, 0.0))
    camera.update_matrices()

    if not quiet:
        print(f"Rendering {volume.dimensions} volume at {width}x{height}...")

    start_time = time.time()

    def progress_callback(current: int, target: int) -> None:
        if not quiet:
            elapsed = time.time() - start_time
            progress_pct = (current / target) * 100 if target > 0 else 0
            rate = current / elapsed if elapsed > 0 else 0
            print(
                f"\r  Progress: {current}/{target} iterations "
                f"({progress_pct:.1f}%) - {rate:.1f} it/s",
                end="",
                flush=True,
            )

    output = render(
        params,
        volume,
        transfer_function,
        camera,
        tone_map=tone_map,
        callback=progress_callback,
    )

    if not quiet:
        print()

    output_file = save_image(output, args.output)

    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {time.time() - start_time:.2f}s")

    return output_file


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    init_taichi(args.arch, args.quiet)

    try:
        render_volume(args)
        return 0
    except RenderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
