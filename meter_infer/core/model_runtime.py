from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

import numpy as np

from meter_infer.core.binding import Binding


class ModelRuntime(ABC):
    """Contract for an accelerator SDK that can run a serialized detector.

    Handles returned by one method are opaque to the pipeline and only ever
    passed back into the same runtime instance.  One runtime instance belongs
    to exactly one engine.
    """

    @abstractmethod
    def deserialize(self, blob: bytes) -> Any | None:
        """Turn a serialized artifact into a model handle, or None when the blob is corrupt."""

    @abstractmethod
    def create_context(self, model: Any) -> Any | None:
        """Create an execution context for the model, or None on failure."""

    @abstractmethod
    def get_bindings(self, model: Any, context: Any) -> list[Binding]:
        """Enumerate every binding with a resolved shape.

        Dynamic input shapes are fixed to the maximum of the first optimisation
        profile on ``context`` before output shapes are read.
        """

    @abstractmethod
    def create_stream(self) -> Any:
        """Create the asynchronous stream all engine work is enqueued on."""

    @abstractmethod
    def allocate_device(self, nbytes: int) -> Any:
        """Reserve ``nbytes`` of device memory."""

    @abstractmethod
    def allocate_host(self, nbytes: int) -> Any:
        """Reserve ``nbytes`` of pinned host memory."""

    @abstractmethod
    def set_input_shape(self, context: Any, name: str, shape: Sequence[int]) -> bool:
        """Set the runtime shape of an input binding for the next execution."""

    @abstractmethod
    def copy_async(self, dst: Any, src: Any, stream: Any) -> None:
        """Enqueue a byte copy from ``src`` to ``dst`` on ``stream``.

        Either side may be a runtime buffer; ``src`` may also be a host
        ``numpy.ndarray``.
        """

    @abstractmethod
    def enqueue(self, context: Any, buffers: Mapping[str, Any], stream: Any) -> bool:
        """Bind device buffers by binding name and enqueue one execution on ``stream``."""

    @abstractmethod
    def synchronize(self, stream: Any) -> None:
        """Block until all work enqueued on ``stream`` has completed."""

    @abstractmethod
    def host_view(self, host_buffer: Any) -> np.ndarray:
        """Return a uint8 numpy view over a pinned host buffer."""

    @abstractmethod
    def destroy_context(self, context: Any) -> None:
        """Release an execution context."""

    @abstractmethod
    def destroy_model(self, model: Any) -> None:
        """Release a deserialized model."""

    @abstractmethod
    def shutdown(self) -> None:
        """Release the runtime handle itself."""

    @abstractmethod
    def destroy_stream(self, stream: Any) -> None:
        """Release a stream created by :meth:`create_stream`."""

    @abstractmethod
    def free_device(self, buffer: Any) -> None:
        """Release device memory returned by :meth:`allocate_device`."""

    @abstractmethod
    def free_host(self, buffer: Any) -> None:
        """Release pinned host memory returned by :meth:`allocate_host`."""
