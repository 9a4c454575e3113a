"""Error hierarchy for the volume renderer.

Every error raised by a render names the stage it came from, so a failed run
can be traced back to configuration, resource binding or device execution.
A render is all-or-nothing: none of these errors leave a usable image behind.
"""


class RenderError(Exception):
    """Base class for all render failures.

    Attributes:
        stage: Name of the pipeline stage that failed (e.g. "configure",
            "init", "step", "readback").
    """

    def __init__(self, message: str, stage: str = "render") -> None:
        super().__init__(message)
        self.stage = stage
        self.message = message

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class ConfigurationError(RenderError, ValueError):
    """Invalid render inputs, rejected before any device work starts."""

    def __init__(self, message: str, stage: str = "configure") -> None:
        super().__init__(message, stage)


class ResourceError(RenderError, RuntimeError):
    """Compute-engine failure (allocation, upload, kernel launch, readback).

    Device work is not safely idempotent, so these are never retried.
    """

    def __init__(self, message: str, stage: str = "engine") -> None:
        super().__init__(message, stage)
