"""Volume and transfer-function inputs."""

from volmcm.volume.loader import infer_dimensions, load_raw_volume, load_transfer_function
from volmcm.volume.resources import (
    DEFAULT_TRANSFER_FUNCTION,
    TransferFunction,
    VolumeDescriptor,
)

__all__ = [
    "VolumeDescriptor",
    "TransferFunction",
    "DEFAULT_TRANSFER_FUNCTION",
    "infer_dimensions",
    "load_raw_volume",
    "load_transfer_function",
]
