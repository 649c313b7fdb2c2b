"""TensorRT meter detection pipeline: letterbox, infer, decode and suppress."""

from meter_infer.errors import (
    AllocationError,
    ConfigError,
    InferenceError,
    LoadError,
    LoadFailure,
    MeterInferError,
    PreprocessError,
)

__all__ = [
    "AllocationError",
    "ConfigError",
    "InferenceError",
    "LoadError",
    "LoadFailure",
    "MeterInferError",
    "PreprocessError",
]
