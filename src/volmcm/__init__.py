"""Progressive Monte Carlo multiple-scattering volume renderer.

This package renders density volumes by simulating photon transport on a
Taichi compute backend, with support for:
- Quaternion cameras with off-axis perspective projection
- Double-buffered per-pixel photon state advanced one pass at a time
- Arbitrary RGBA transfer functions and raw volume files
- Levels / saturation / gamma tone mapping and 8-bit export

Subpackages:
    core: Math library, photon state, render parameters, scheduler, render()
    camera: Perspective camera and the combined inverse transform
    volume: Volume and transfer-function resources and file loading
    engine: Compute-engine boundary, Taichi kernels and backend
    preview: Tone mapping, quantization and image export
"""

__version__ = "0.1.0"
