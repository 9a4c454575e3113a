"""Compute-engine boundary and its Taichi backend.

Components:
    base: BufferSpec, DeviceBuffer and the ComputeEngine protocol
    bindings: Typed binding descriptors for each simulation kernel
    sampling: PCG random numbers and Henyey-Greenstein sampling (Taichi funcs)
    kernels: The mcm_reset / mcm_step Taichi kernels
    taichi_engine: TaichiEngine, the ndarray-backed engine

The engine is always passed explicitly; nothing here keeps a global
instance. Call ``ti.init`` before creating a TaichiEngine.
"""

from volmcm.engine.base import BufferSpec, ComputeEngine, DeviceBuffer, ScalarType
from volmcm.engine.bindings import ResetBindings, StepBindings
from volmcm.engine.taichi_engine import TaichiEngine

__all__ = [
    "BufferSpec",
    "ComputeEngine",
    "DeviceBuffer",
    "ScalarType",
    "ResetBindings",
    "StepBindings",
    "TaichiEngine",
]
