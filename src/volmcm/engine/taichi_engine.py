"""Taichi implementation of the compute engine.

Buffers are ``ti.ndarray`` objects, so several renders (and both photon
generations) can coexist without the module-level fields a ``ti.field``
design would need. Kernels are looked up by name in a registry that also
records which binding descriptor each kernel accepts.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from volmcm.engine import BufferSpec, TaichiEngine
    >>> engine = TaichiEngine()
    >>> buf = engine.allocate(BufferSpec("unproject", (16,)))
    >>> engine.readback(buf).shape
    (16,)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from volmcm.engine.base import BufferSpec, DeviceBuffer
from volmcm.engine.bindings import ResetBindings, StepBindings
from volmcm.engine.kernels import mcm_reset, mcm_step
from volmcm.errors import ResourceError

logger = logging.getLogger(__name__)

# Launcher receives the validated bindings and dispatches the Taichi kernel
KernelLauncher = Callable[[Any], None]

TAICHI_DTYPES = {
    "f32": ti.f32,
    "i32": ti.i32,
}


def _launch_reset(b: ResetBindings) -> None:
    g = b.target
    mcm_reset(
        b.width,
        b.height,
        b.seed,
        b.unproject.array,
        g.position.array,
        g.direction.array,
        g.transmittance.array,
        g.radiance.array,
        g.samples.array,
        g.bounces.array,
    )


def _launch_step(b: StepBindings) -> None:
    src = b.source
    dst = b.target
    mcm_step(
        b.width,
        b.height,
        b.seed,
        b.extinction,
        b.anisotropy,
        b.max_bounces,
        b.steps,
        int(b.linear_filter),
        tm.vec3(*b.environment),
        b.unproject.array,
        b.volume.array,
        b.transfer_function.array,
        src.position.array,
        src.direction.array,
        src.transmittance.array,
        src.radiance.array,
        src.samples.array,
        src.bounces.array,
        dst.position.array,
        dst.direction.array,
        dst.transmittance.array,
        dst.radiance.array,
        dst.samples.array,
        dst.bounces.array,
    )


class TaichiEngine:
    """Compute engine running kernels through Taichi.

    ``ti.init`` must have been called before the engine allocates anything.
    """

    def __init__(self) -> None:
        self._kernels: dict[str, tuple[type, KernelLauncher]] = {
            "mcm_reset": (ResetBindings, _launch_reset),
            "mcm_step": (StepBindings, _launch_step),
        }

    @property
    def kernel_names(self) -> list[str]:
        return sorted(self._kernels)

    def register_kernel(self, name: str, bindings_type: type, launcher: KernelLauncher) -> None:
        """Add (or replace) a kernel in the registry.

        Args:
            name: Name passed to ``run_kernel``.
            bindings_type: Descriptor class the kernel accepts.
            launcher: Callable receiving the validated bindings.
        """
        self._kernels[name] = (bindings_type, launcher)

    def allocate(self, spec: BufferSpec) -> DeviceBuffer:
        """Allocate a zero-initialized ``ti.ndarray`` for ``spec``.

        Raises:
            ResourceError: If Taichi fails to allocate device memory.
        """
        dtype = TAICHI_DTYPES[spec.dtype]
        try:
            if spec.channels == 1:
                array = ti.ndarray(dtype=dtype, shape=spec.shape)
            else:
                array = ti.ndarray(dtype=ti.types.vector(spec.channels, dtype), shape=spec.shape)
        except RuntimeError as exc:
            raise ResourceError(f"Failed to allocate {spec.name} {spec.shape}: {exc}") from exc

        logger.debug("Allocated %s %s (%d bytes)", spec.name, spec.host_shape, spec.nbytes)
        return DeviceBuffer(spec=spec, array=array)

    def upload(self, buffer: DeviceBuffer, data: npt.ArrayLike) -> None:
        """Copy host data into ``buffer``.

        Raises:
            ResourceError: If the data shape does not match the buffer.
        """
        host = np.ascontiguousarray(data, dtype=buffer.spec.numpy_dtype)
        if host.shape != buffer.spec.host_shape:
            raise ResourceError(
                f"Upload to {buffer.name} expects shape {buffer.spec.host_shape}, got {host.shape}"
            )
        try:
            buffer.array.from_numpy(host)
        except RuntimeError as exc:
            raise ResourceError(f"Upload to {buffer.name} failed: {exc}") from exc

    def readback(self, buffer: DeviceBuffer) -> npt.NDArray:
        """Copy ``buffer`` to a new NumPy array once pending work has finished."""
        try:
            ti.sync()
            return buffer.array.to_numpy()
        except RuntimeError as exc:
            raise ResourceError(f"Readback of {buffer.name} failed: {exc}") from exc

    def run_kernel(self, name: str, domain: tuple[int, int], bindings: Any) -> None:
        """Run one data-parallel pass and wait for it to finish.

        Args:
            name: Registered kernel name.
            domain: (padded width, height) of the pass.
            bindings: Instance of the kernel's descriptor class.

        Raises:
            KeyError: If no kernel is registered under ``name``.
            TypeError: If ``bindings`` has the wrong descriptor type.
            ValueError: If ``domain`` does not match the photon arrays.
            ResourceError: If the device fails during the pass.
        """
        if name not in self._kernels:
            raise KeyError(f"Unknown kernel: {name}")
        bindings_type, launcher = self._kernels[name]

        if not isinstance(bindings, bindings_type):
            raise TypeError(
                f"Kernel {name} takes {bindings_type.__name__}, got {type(bindings).__name__}"
            )

        domain = tuple(domain)
        photon_generations = getattr(bindings, "photon_generations", None)
        if photon_generations is not None:
            for generation in photon_generations():
                if generation.shape != domain:
                    raise ValueError(
                        f"Kernel {name} domain {domain} does not match "
                        f"generation {generation.index} shape {generation.shape}"
                    )

        logger.debug("Running %s over %s", name, domain)
        try:
            launcher(bindings)
            ti.sync()
        except RuntimeError as exc:
            raise ResourceError(f"Kernel failed: {exc}", stage=name) from exc

    def __repr__(self) -> str:
        return f"TaichiEngine(kernels={self.kernel_names})"
