from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from meter_infer.config import DetectorConfig
from meter_infer.core.binding import Binding
from meter_infer.core.model_runtime import ModelRuntime
from meter_infer.errors import LoadError, LoadFailure
from meter_infer.infrastructure.device_buffer_set import DeviceBufferSet
from meter_infer.logger import FilteredLogger, LogChannel, get_logger


class Engine:
    """Owns a deserialized model, its execution context, stream and buffers.

    Teardown order is fixed: context, model, runtime, stream, then buffers
    (device before pinned host), so no memory is freed while something that
    may still reference it is alive.  ``lock`` serializes every use of the
    shared stream and buffers.
    """

    def __init__(self, path: str, runtime: ModelRuntime, log: FilteredLogger | None = None) -> None:
        self.path = path
        self.runtime = runtime
        self.model: Any | None = None
        self.context: Any | None = None
        self.stream: Any | None = None
        self.bindings: tuple[Binding, ...] = ()
        self.buffers: DeviceBufferSet | None = None
        self.lock = threading.Lock()
        self._log = log or get_logger()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def inputs(self) -> tuple[Binding, ...]:
        return tuple(binding for binding in self.bindings if binding.is_input)

    @property
    def outputs(self) -> tuple[Binding, ...]:
        return tuple(binding for binding in self.bindings if not binding.is_input)

    def binding(self, name: str) -> Binding:
        for binding in self.bindings:
            if binding.name == name:
                return binding
        raise KeyError(f"Unknown binding: {name}")

    def attach_buffers(self, buffers: DeviceBufferSet) -> None:
        if self.buffers is not None:
            raise RuntimeError(f"Engine {self.path} already owns a buffer set")
        self.buffers = buffers

    def close(self) -> None:
        """Release every owned resource exactly once."""
        with self.lock:
            if self._closed:
                return
            self._closed = True
            if self.context is not None:
                self.runtime.destroy_context(self.context)
                self.context = None
            if self.model is not None:
                self.runtime.destroy_model(self.model)
                self.model = None
            self.runtime.shutdown()
            if self.stream is not None:
                self.runtime.destroy_stream(self.stream)
                self.stream = None
            if self.buffers is not None:
                self.buffers.release()
                self.buffers = None
        self._log.info(LogChannel.ENGINE, f"Engine released: {self.path}")

    def __enter__(self) -> "Engine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class EngineLoader:
    """Reads a serialized engine artifact and builds a validated :class:`Engine`."""

    def __init__(self, config: DetectorConfig, runtime: ModelRuntime, log: FilteredLogger | None = None) -> None:
        self.config = config
        self.runtime = runtime
        self._log = log or get_logger()
        self._used = False

    def load(self, path: str | None = None) -> Engine:
        """Build the one engine this loader's runtime belongs to.

        The engine shuts the runtime down when it closes, so a loader is
        single-use: a second call raises ``RuntimeError``.
        """
        if self._used:
            raise RuntimeError("EngineLoader already handed its runtime to an engine; create a new loader")
        self._used = True
        engine_path = path or self.config.engine_path
        engine = Engine(engine_path, self.runtime, self._log)
        try:
            blob = self._read_artifact(engine_path)
            self._log.info(LogChannel.ENGINE, f"engine file loaded: {engine_path} ({len(blob)} bytes)")
            self._populate(engine, blob)
        except BaseException as exc:
            self._log.error(LogChannel.ENGINE, f"engine load failed: {exc}")
            engine.close()
            raise

        self._log.info(
            LogChannel.ENGINE,
            f"Successfully loaded engine {engine_path}: "
            f"{len(engine.inputs)} input(s), {len(engine.outputs)} output(s)",
        )
        for binding in engine.bindings:
            self._log.info(
                LogChannel.ENGINE,
                f"  [{binding.index}] {binding.name}: {binding.role.value} shape={binding.shape} "
                f"dtype={binding.dtype} size={binding.nbytes} bytes",
            )
        return engine

    def _populate(self, engine: Engine, blob: bytes) -> None:
        path = engine.path
        try:
            model = self.runtime.deserialize(blob)
        except Exception as exc:
            raise LoadError(LoadFailure.DESERIALIZE_FAILED, path, str(exc)) from exc
        if model is None:
            raise LoadError(LoadFailure.DESERIALIZE_FAILED, path, "runtime returned no model")
        engine.model = model

        try:
            context = self.runtime.create_context(model)
        except Exception as exc:
            raise LoadError(LoadFailure.CONTEXT_FAILED, path, str(exc)) from exc
        if context is None:
            raise LoadError(LoadFailure.CONTEXT_FAILED, path, "runtime returned no execution context")
        engine.context = context

        try:
            bindings = self.runtime.get_bindings(model, context)
        except Exception as exc:
            raise LoadError(LoadFailure.BINDINGS_UNREADABLE, path, str(exc)) from exc
        self._check_arity(path, bindings)
        unresolved = [binding.name for binding in bindings if not binding.is_resolved]
        if unresolved:
            raise LoadError(LoadFailure.UNRESOLVED_SHAPE, path, f"bindings without a concrete shape: {unresolved}")
        engine.bindings = tuple(bindings)
        try:
            engine.stream = self.runtime.create_stream()
        except Exception as exc:
            raise LoadError(LoadFailure.STREAM_FAILED, path, str(exc)) from exc

    def _check_arity(self, path: str, bindings: list[Binding]) -> None:
        expected = self.config.expected_bindings
        num_inputs = sum(1 for binding in bindings if binding.is_input)
        num_outputs = len(bindings) - num_inputs
        if len(bindings) != expected or num_inputs == 0 or num_outputs == 0:
            raise LoadError(
                LoadFailure.INVALID_ARITY,
                path,
                f"expected {expected} bindings, found {len(bindings)} "
                f"({num_inputs} input(s), {num_outputs} output(s))",
            )

    @staticmethod
    def _read_artifact(path: str) -> bytes:
        try:
            blob = Path(path).read_bytes()
        except OSError as exc:
            raise LoadError(LoadFailure.FILE_UNREADABLE, path, str(exc)) from exc
        if not blob:
            raise LoadError(LoadFailure.EMPTY_ARTIFACT, path, "file is empty")
        return blob
