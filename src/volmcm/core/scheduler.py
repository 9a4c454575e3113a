"""Iteration scheduler for the progressive MCM simulation.

The scheduler drives a render through four stages:

    INIT      allocate both photon generations, upload the camera transform,
              the volume and the transfer function
    RESET     spawn camera photons into generation 0
    STEP x N  pass i reads generation i % 2 and writes (i + 1) % 2
    FINALIZE  read radiance from generation N % 2

Steps are strictly sequential: every ``run_kernel`` call returns only after
the pass has completed, so a step never starts before the previous one has
written its generation. Each pass receives a fresh random seed drawn from a
generator seeded with ``RenderParameters.seed``.

Example:
    >>> scheduler = IterationScheduler(engine, params, volume, tf, unproject)
    >>> for done, total in scheduler.run_progressive():
    ...     print(f"{done}/{total}")
    >>> image = scheduler.finalize()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from enum import Enum

import numpy as np
import numpy.typing as npt

from volmcm.core.config import RenderParameters
from volmcm.core.math3d import Matrix4
from volmcm.core.photon_state import (
    PhotonStateStore,
    final_generation,
    source_generation,
    target_generation,
)
from volmcm.engine.base import BufferSpec, ComputeEngine, DeviceBuffer
from volmcm.engine.bindings import ResetBindings, StepBindings
from volmcm.errors import ConfigurationError
from volmcm.volume.resources import TransferFunction, VolumeDescriptor

logger = logging.getLogger(__name__)

# Callback receives (completed_iterations, total_iterations)
ProgressCallback = Callable[[int, int], None]

SEED_LIMIT = 2**32


class SchedulerState(Enum):
    """Last stage the scheduler completed."""

    NEW = "new"
    INIT = "init"
    RESET = "reset"
    STEP = "step"
    FINALIZE = "finalize"


class IterationScheduler:
    """Runs one render on a compute engine.

    The scheduler exclusively owns both photon generations for the duration
    of the render; nothing else reads them while a pass is running.

    Attributes:
        params: Validated render parameters.
        state: Last completed stage.
    """

    def __init__(
        self,
        engine: ComputeEngine,
        params: RenderParameters,
        volume: VolumeDescriptor,
        transfer_function: TransferFunction,
        unproject: Matrix4,
    ) -> None:
        """Prepare a render without touching the device.

        Args:
            engine: Compute engine executing the passes.
            params: Render parameters.
            volume: Density grid bound into every pass.
            transfer_function: RGBA lookup bound into every pass.
            unproject: Combined inverse transform from
                ``combined_inverse_transform``; constant for the whole run.
        """
        self._engine = engine
        self.params = params
        self._volume = volume
        self._transfer_function = transfer_function
        self._unproject = unproject

        self._rng = np.random.default_rng(params.seed)
        self._store: PhotonStateStore | None = None
        self._unproject_buffer: DeviceBuffer | None = None
        self._volume_buffer: DeviceBuffer | None = None
        self._tf_buffer: DeviceBuffer | None = None

        self._iterations_done = 0
        self.state = SchedulerState.NEW

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def iterations_done(self) -> int:
        """Steps completed since the last reset."""
        return self._iterations_done

    @property
    def current_generation(self) -> int:
        """Generation holding the newest data."""
        return final_generation(self._iterations_done)

    @property
    def stride(self) -> int:
        """Padded execution width; available after ``initialize``."""
        return self._require_store().stride

    @property
    def store(self) -> PhotonStateStore:
        return self._require_store()

    def _require_store(self) -> PhotonStateStore:
        if self._store is None:
            raise ConfigurationError("Scheduler has not been initialized", stage="init")
        return self._store

    def _expect(self, stage: str, *allowed: SchedulerState) -> None:
        if self.state not in allowed:
            expected = ", ".join(s.name for s in allowed)
            raise ConfigurationError(
                f"Cannot {stage} in state {self.state.name} (expected {expected})",
                stage=stage,
            )

    def _next_seed(self) -> int:
        return int(self._rng.integers(0, SEED_LIMIT, dtype=np.uint64))

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """INIT: allocate photon generations and bind read-only resources."""
        self._expect("init", SchedulerState.NEW)
        params = self.params

        self._store = PhotonStateStore(self._engine, params.width, params.height, params.alignment)

        self._unproject_buffer = self._engine.allocate(BufferSpec("unproject", (16,), "f32"))
        self._engine.upload(self._unproject_buffer, self._unproject.flatten())

        self._volume_buffer = self._engine.allocate(
            BufferSpec("volume", tuple(self._volume.dimensions), "f32")
        )
        self._engine.upload(self._volume_buffer, self._volume.normalized_grid())

        entries = self._transfer_function.entries
        self._tf_buffer = self._engine.allocate(
            BufferSpec("transfer_function", (entries.shape[0],), "f32", 4)
        )
        self._engine.upload(self._tf_buffer, entries)

        self.state = SchedulerState.INIT
        logger.info(
            "Initialized %dx%d render (stride %d), volume %s, %d transfer function entries",
            params.width,
            params.height,
            self._store.stride,
            self._volume.dimensions,
            len(self._transfer_function),
        )

    def reset(self) -> None:
        """RESET: spawn fresh camera photons into generation 0.

        May also be called after steps to restart accumulation.
        """
        self._expect(
            "reset",
            SchedulerState.INIT,
            SchedulerState.RESET,
            SchedulerState.STEP,
            SchedulerState.FINALIZE,
        )
        store = self._require_store()

        bindings = ResetBindings(
            width=self.params.width,
            height=self.params.height,
            seed=self._next_seed(),
            unproject=self._unproject_buffer,
            target=store.generation(0),
        )
        self._engine.run_kernel("mcm_reset", store.domain, bindings)

        self._iterations_done = 0
        self.state = SchedulerState.RESET
        logger.debug("Reset photon generation 0")

    def step(self) -> None:
        """STEP: advance the simulation by one pass."""
        self._expect("step", SchedulerState.RESET, SchedulerState.STEP, SchedulerState.FINALIZE)
        store = self._require_store()
        params = self.params
        i = self._iterations_done

        bindings = StepBindings(
            width=params.width,
            height=params.height,
            seed=self._next_seed(),
            extinction=params.extinction,
            anisotropy=params.anisotropy,
            max_bounces=params.max_bounces,
            steps=params.steps,
            linear_filter=params.linear_filter,
            environment=params.environment,
            unproject=self._unproject_buffer,
            volume=self._volume_buffer,
            transfer_function=self._tf_buffer,
            source=store.generation(source_generation(i)),
            target=store.generation(target_generation(i)),
        )
        self._engine.run_kernel("mcm_step", store.domain, bindings)

        self._iterations_done = i + 1
        self.state = SchedulerState.STEP
        logger.debug(
            "Step %d: generation %d -> %d", i, source_generation(i), target_generation(i)
        )

    def finalize(self) -> npt.NDArray[np.float32]:
        """FINALIZE: read back the radiance of the newest generation.

        Returns:
            Linear RGB radiance of shape (height, width, 3), padding removed.
        """
        self._expect(
            "finalize", SchedulerState.RESET, SchedulerState.STEP, SchedulerState.FINALIZE
        )
        generation = self.current_generation
        image = self._require_store().read_radiance(generation)
        self.state = SchedulerState.FINALIZE
        logger.info(
            "Finalized after %d iterations (generation %d)", self._iterations_done, generation
        )
        return image

    # -------------------------------------------------------------------------
    # Drivers
    # -------------------------------------------------------------------------

    def _prepare(self) -> None:
        if self.state is SchedulerState.NEW:
            self.initialize()
        self.reset()

    def run(self, callback: ProgressCallback | None = None) -> npt.NDArray[np.float32]:
        """Run every stage and return the final radiance.

        Args:
            callback: Optional callable receiving (completed, total) after
                each step.

        Returns:
            Linear RGB radiance of shape (height, width, 3).
        """
        for completed, total in self.run_progressive():
            if callback is not None:
                callback(completed, total)
        return self.finalize()

    def run_progressive(self) -> Generator[tuple[int, int], None, None]:
        """Initialize, reset and step, yielding progress after each step.

        Call ``finalize()`` once the generator is exhausted.

        Yields:
            Tuple of (completed_iterations, total_iterations).
        """
        self._prepare()
        total = self.params.iterations
        logger.info("Running %d iterations of %d steps", total, self.params.steps)
        for _ in range(total):
            self.step()
            yield (self._iterations_done, total)

    def __repr__(self) -> str:
        return (
            f"IterationScheduler(state={self.state.name}, "
            f"iterations={self._iterations_done}/{self.params.iterations})"
        )
