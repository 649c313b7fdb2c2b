from __future__ import annotations

from enum import Enum


class LoadFailure(Enum):
    """Why an engine artifact could not be turned into a usable engine."""

    FILE_UNREADABLE = "FILE_UNREADABLE"
    EMPTY_ARTIFACT = "EMPTY_ARTIFACT"
    RUNTIME_UNAVAILABLE = "RUNTIME_UNAVAILABLE"
    DESERIALIZE_FAILED = "DESERIALIZE_FAILED"
    CONTEXT_FAILED = "CONTEXT_FAILED"
    BINDINGS_UNREADABLE = "BINDINGS_UNREADABLE"
    INVALID_ARITY = "INVALID_ARITY"
    UNRESOLVED_SHAPE = "UNRESOLVED_SHAPE"
    STREAM_FAILED = "STREAM_FAILED"


class MeterInferError(Exception):
    """Base class for every error raised by the detection pipeline."""


class ConfigError(MeterInferError, ValueError):
    """Raised when a detector configuration value is out of range."""


class LoadError(MeterInferError):
    """The engine artifact could not be loaded; the engine is not usable."""

    def __init__(self, reason: LoadFailure, path: str, detail: str = "") -> None:
        self.reason = reason
        self.path = path
        self.detail = detail
        message = f"{reason.value}: {path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class AllocationError(MeterInferError):
    """Device or pinned host memory could not be reserved for a binding."""

    def __init__(self, binding: str, nbytes: int, memory: str, detail: str = "") -> None:
        self.binding = binding
        self.nbytes = nbytes
        self.memory = memory
        self.detail = detail
        message = f"failed to allocate {nbytes} bytes of {memory} memory for binding '{binding}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InferenceError(MeterInferError):
    """A single inference call failed; the engine buffers stay valid."""

    def __init__(self, stage: str, detail: str = "") -> None:
        self.stage = stage
        self.detail = detail
        super().__init__(f"inference failed during {stage}" + (f": {detail}" if detail else ""))


class PreprocessError(MeterInferError):
    """The source image cannot be letterboxed into the model input."""
