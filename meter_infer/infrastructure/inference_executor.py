from __future__ import annotations

import time

import numpy as np

from meter_infer.config import DetectorConfig
from meter_infer.core.binding import Binding
from meter_infer.errors import InferenceError
from meter_infer.infrastructure.engine_loader import Engine
from meter_infer.logger import FilteredLogger, LogChannel, get_logger


class InferenceExecutor:
    """Runs one inference pass on an engine's stream.

    Copy-in, execution and copy-out are enqueued on the engine stream without
    blocking; the only wait is the final stream synchronization.  The engine
    lock is held for the whole sequence because buffers are reused in place.
    """

    def __init__(self, engine: Engine, config: DetectorConfig, log: FilteredLogger | None = None) -> None:
        self.engine = engine
        self.config = config
        self._log = log or get_logger()
        self.last_perf: dict[str, float] = {"enqueue_ms": 0.0, "stream_sync_ms": 0.0}
        inputs = engine.inputs
        outputs = engine.outputs
        if not inputs or not outputs:
            raise ValueError(f"Engine {engine.path} exposes no input or no output binding")
        self.input_binding = self._select(inputs, config.input_name)
        self.output_bindings = outputs

    @staticmethod
    def _select(bindings: tuple[Binding, ...], name: str) -> Binding:
        for binding in bindings:
            if binding.name == name:
                return binding
        return bindings[0]

    def _shares_batch_axis(self, binding: Binding) -> bool:
        return bool(binding.shape) and binding.shape[0] == self.input_binding.shape[0]

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        """Return the first output binding's contents for ``tensor``.

        Raises :class:`InferenceError`; the engine stays usable afterwards.
        """
        outputs = self.infer_all(tensor)
        return outputs[self.output_bindings[0].name]

    def infer_all(self, tensor: np.ndarray) -> dict[str, np.ndarray]:
        engine = self.engine
        runtime = engine.runtime
        input_binding = self.input_binding
        with engine.lock:
            if engine.closed or engine.buffers is None:
                raise InferenceError("precondition", f"engine {engine.path} is closed or has no buffers")
            buffers = engine.buffers

            host_tensor = np.ascontiguousarray(tensor, dtype=np.dtype(input_binding.dtype))
            capacity = buffers.sizes[input_binding.name]
            if host_tensor.shape[1:] != input_binding.shape[1:] or host_tensor.nbytes > capacity:
                raise InferenceError(
                    "copy_in",
                    f"tensor {host_tensor.shape} ({host_tensor.nbytes} bytes) does not fit binding "
                    f"'{input_binding.name}' {input_binding.shape} ({capacity} bytes)",
                )

            batch_shape = (int(host_tensor.shape[0]),) + tuple(input_binding.shape[1:])
            try:
                shape_ok = runtime.set_input_shape(engine.context, input_binding.name, batch_shape)
            except Exception as exc:
                raise InferenceError("set_input_shape", str(exc)) from exc
            if not shape_ok:
                raise InferenceError("set_input_shape", f"{input_binding.name} rejected shape {batch_shape}")

            try:
                runtime.copy_async(buffers.device[input_binding.name], host_tensor, engine.stream)
            except Exception as exc:
                raise InferenceError("copy_in", str(exc)) from exc

            enqueue_start_ns = time.perf_counter_ns()
            try:
                ok = runtime.enqueue(engine.context, buffers.device, engine.stream)
            except Exception as exc:
                raise InferenceError("enqueue", str(exc)) from exc
            if not ok:
                raise InferenceError("enqueue", "execution could not be enqueued")
            self.last_perf["enqueue_ms"] = (time.perf_counter_ns() - enqueue_start_ns) / 1_000_000.0

            try:
                for binding in self.output_bindings:
                    runtime.copy_async(buffers.host[binding.name], buffers.device[binding.name], engine.stream)
            except Exception as exc:
                raise InferenceError("copy_out", str(exc)) from exc

            sync_start_ns = time.perf_counter_ns()
            try:
                runtime.synchronize(engine.stream)
            except Exception as exc:
                raise InferenceError("synchronize", str(exc)) from exc
            self.last_perf["stream_sync_ms"] = (time.perf_counter_ns() - sync_start_ns) / 1_000_000.0

            # Copy out of the pinned buffer: the next call overwrites it in place.
            # Rows past the executed batch were not written by this pass.
            results: dict[str, np.ndarray] = {}
            for binding in self.output_bindings:
                raw = runtime.host_view(buffers.host[binding.name])
                output = raw.view(np.dtype(binding.dtype)).reshape(binding.shape)
                if self._shares_batch_axis(binding):
                    output = output[: batch_shape[0]]
                results[binding.name] = output.copy()

        self._log.debug(
            LogChannel.INFERENCE,
            f"enqueue {self.last_perf['enqueue_ms']:.2f} ms, sync {self.last_perf['stream_sync_ms']:.2f} ms",
        )
        return results

    def warmup(self, iterations: int | None = None) -> int:
        """Run full passes on a zeroed input so lazy kernel setup happens before real frames."""
        count = self.config.warmup_iterations if iterations is None else int(iterations)
        if count <= 0:
            return 0
        zeros = np.zeros(self.input_binding.shape, dtype=np.dtype(self.input_binding.dtype))
        for _ in range(count):
            self.infer_all(zeros)
        self._log.info(LogChannel.INFERENCE, f"model warmup {count} times")
        return count
