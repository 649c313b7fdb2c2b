from __future__ import annotations

from typing import Any, Callable, Iterable

from meter_infer.core.binding import Binding
from meter_infer.core.model_runtime import ModelRuntime
from meter_infer.errors import AllocationError
from meter_infer.logger import FilteredLogger, LogChannel, get_logger


class DeviceBufferSet:
    """Device memory for every binding plus pinned host memory for every output.

    Buffers are sized ``element_count * element_byte_size`` exactly and reused
    in place across inference calls.  :meth:`release` frees device memory
    before host memory and only acts once.
    """

    def __init__(self, runtime: ModelRuntime, log: FilteredLogger | None = None) -> None:
        self._runtime = runtime
        self._log = log or get_logger()
        self.device: dict[str, Any] = {}
        self.host: dict[str, Any] = {}
        self.sizes: dict[str, int] = {}
        self._released = False

    @classmethod
    def allocate(
        cls,
        runtime: ModelRuntime,
        bindings: Iterable[Binding],
        log: FilteredLogger | None = None,
    ) -> "DeviceBufferSet":
        """Allocate buffers for ``bindings``; partial allocations are freed on failure."""
        buffers = cls(runtime, log)
        ordered = sorted(bindings, key=lambda binding: (not binding.is_input, binding.index))
        try:
            for binding in ordered:
                buffers._allocate_binding(binding)
        except AllocationError:
            buffers.release()
            raise
        buffers._log.info(
            LogChannel.ENGINE,
            f"Allocated {len(buffers.device)} device / {len(buffers.host)} pinned host buffers "
            f"({buffers.total_bytes} bytes)",
        )
        return buffers

    def _allocate_binding(self, binding: Binding) -> None:
        nbytes = binding.nbytes
        self.sizes[binding.name] = nbytes
        self.device[binding.name] = self._reserve(self._runtime.allocate_device, binding, "device")
        if not binding.is_input:
            self.host[binding.name] = self._reserve(self._runtime.allocate_host, binding, "pinned host")
        self._log.debug(LogChannel.ENGINE, f"binding {binding.name}: {binding.shape} -> {nbytes} bytes")

    @staticmethod
    def _reserve(allocator: Callable[[int], Any], binding: Binding, memory: str) -> Any:
        try:
            return allocator(binding.nbytes)
        except (RuntimeError, MemoryError) as exc:
            raise AllocationError(binding.name, binding.nbytes, memory, str(exc)) from exc

    @property
    def released(self) -> bool:
        return self._released

    @property
    def total_bytes(self) -> int:
        device_bytes = sum(self.sizes[name] for name in self.device)
        host_bytes = sum(self.sizes[name] for name in self.host)
        return device_bytes + host_bytes

    def release(self) -> bool:
        """Free all buffers; returns False when they were already released."""
        if self._released:
            return False
        self._released = True
        for buffer in self.device.values():
            self._runtime.free_device(buffer)
        self.device.clear()
        for buffer in self.host.values():
            self._runtime.free_host(buffer)
        self.host.clear()
        return True
