#!/usr/bin/env python3
"""Render a synthetic sphere phantom.

Builds a soft-edged sphere density volume in memory, maps it through a
warm transfer function and renders it with progressive MCM iterations.
Useful as a smoke test when no scanned volume is at hand.

Usage:
    python -m examples.render_sphere_phantom [options]

Options:
    --size N            Voxels per side of the phantom (default: 64)
    --width WIDTH       Image width in pixels (default: 256)
    --height HEIGHT     Image height in pixels (default: 256)
    --iterations N      Number of simulation passes (default: 50)
    --output OUTPUT     Output file path (default: sphere_phantom.png)
    --quiet             Suppress progress output

Example:
    python -m examples.render_sphere_phantom --size 32 --iterations 20
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

import numpy as np
import taichi as ti


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a synthetic sphere phantom.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--size", type=int, default=64, help="Voxels per side (default: 64)")
    parser.add_argument("--width", type=int, default=256, help="Image width in pixels (default: 256)")
    parser.add_argument("--height", type=int, default=256, help="Image height in pixels (default: 256)")
    parser.add_argument(
        "--iterations",
        type=int,
        default=50,
        help="Number of simulation passes (default: 50)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="sphere_phantom.png",
        help="Output file path (default: sphere_phantom.png)",
    )
    parser.add_argument("--quiet", action="store_true", help="Suppress progress output")
    return parser.parse_args()


def sphere_phantom(size: int) -> np.ndarray:
    """Density grid indexed [x, y, z]: a sphere that fades out toward its rim."""
    coords = (np.arange(size, dtype=np.float32) + 0.5) / size - 0.5
    x, y, z = np.meshgrid(coords, coords, coords, indexing="ij")
    radius = np.sqrt(x * x + y * y + z * z)
    density = np.clip(1.0 - radius / 0.4, 0.0, 1.0)
    return (density * 255.0).astype(np.uint8)


def render_sphere_phantom(
    size: int = 64,
    width: int = 256,
    height: int = 256,
    iterations: int = 50,
    output_path: str = "sphere_phantom.png",
    quiet: bool = False,
) -> Path:
    """Render the phantom and save to file.

    Args:
        size: Voxels per side of the cubic volume.
        width: Image width in pixels.
        height: Image height in pixels.
        iterations: Number of simulation passes.
        output_path: Output file path (PNG or PPM).
        quiet: If True, suppress progress output.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from volmcm.camera.perspective import Camera
    from volmcm.core.config import RenderParameters
    from volmcm.core.math3d import Vector3
    from volmcm.core.renderer import render
    from volmcm.preview.display import ToneMapSettings
    from volmcm.preview.export import save_image
    from volmcm.volume.resources import TransferFunction, VolumeDescriptor

    if not quiet:
        print(f"Creating {size}^3 sphere phantom...")

    volume = VolumeDescriptor.from_array(sphere_phantom(size))
    transfer_function = TransferFunction.from_rgba(
        [
            (0.0, 0.0, 0.0, 0.0),
            (0.9, 0.5, 0.2, 0.3),
            (1.0, 0.9, 0.7, 1.0),
        ]
    )

    camera = Camera(fov_x=0.512, fov_y=0.512 * height / width)
    camera.set_position(Vector3(-1.0, -1.0, 1.0))
    camera.look_at(Vector3(0.0, 0.0, 0.0))
    camera.update_matrices()

    params = RenderParameters(
        width=width,
        height=height,
        iterations=iterations,
        extinction=60.0,
        anisotropy=0.2,
        linear_filter=True,
        seed=7,
    )

    if not quiet:
        print(f"Rendering {iterations} iterations...")

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
        tone_map=ToneMapSettings(gamma=2.2),
        callback=progress_callback,
    )

    if not quiet:
        print()

    output_file = save_image(output, output_path)

    total_time = time.time() - start_time
    if not quiet:
        print(f"Saved to: {output_file.absolute()}")
        print(f"Total time: {total_time:.2f}s")

    return output_file


def main() -> int:
    """Main entry point."""
    args = parse_args()

    # Use GPU if available, fall back to CPU
    try:
        ti.init(arch=ti.gpu)
        if not args.quiet:
            print("Using GPU backend")
    except RuntimeError:
        ti.init(arch=ti.cpu)
        if not args.quiet:
            print("Using CPU backend")

    from volmcm.errors import RenderError

    try:
        render_sphere_phantom(
            size=args.size,
            width=args.width,
            height=args.height,
            iterations=args.iterations,
            output_path=args.output,
            quiet=args.quiet,
        )
        return 0
    except RenderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
