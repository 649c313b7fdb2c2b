from __future__ import annotations

from typing import Callable

import numpy as np

from meter_infer.config import DetectorConfig
from meter_infer.core.detection import Detection
from meter_infer.core.model_runtime import ModelRuntime
from meter_infer.errors import InferenceError, LoadError, LoadFailure, PreprocessError
from meter_infer.infrastructure.device_buffer_set import DeviceBufferSet
from meter_infer.infrastructure.engine_loader import Engine, EngineLoader
from meter_infer.infrastructure.inference_executor import InferenceExecutor
from meter_infer.infrastructure.letterbox_preprocessor import LetterboxPreprocessor
from meter_infer.infrastructure.yolo_decoder import YoloDecoder
from meter_infer.logger import FilteredLogger, LogChannel, get_logger


RuntimeFactory = Callable[[DetectorConfig], ModelRuntime]


def tensorrt_runtime_factory(config: DetectorConfig) -> ModelRuntime:
    from meter_infer.infrastructure.tensorrt_runtime import TensorRTRuntime

    return TensorRTRuntime(device=config.device)


class MeterDetector:
    """Locates meters in frames with one engine loaded once and reused per frame."""

    def __init__(
        self,
        config: DetectorConfig,
        runtime_factory: RuntimeFactory | None = None,
        log: FilteredLogger | None = None,
    ) -> None:
        self.config = config
        self._runtime_factory = runtime_factory or tensorrt_runtime_factory
        self._log = log or get_logger()
        self.preprocessor = LetterboxPreprocessor(config, self._log)
        self.decoder = YoloDecoder(config, self._log)
        self.engine: Engine | None = None
        self.executor: InferenceExecutor | None = None

    @property
    def is_open(self) -> bool:
        return self.engine is not None and not self.engine.closed

    def open(self) -> "MeterDetector":
        """Load the engine, allocate its buffers and warm it up.

        Raises :class:`LoadError` or :class:`AllocationError`; nothing stays
        allocated when either is raised.
        """
        if self.is_open:
            return self
        try:
            runtime = self._runtime_factory(self.config)
        except RuntimeError as exc:
            raise LoadError(LoadFailure.RUNTIME_UNAVAILABLE, self.config.engine_path, str(exc)) from exc

        engine = EngineLoader(self.config, runtime, self._log).load()
        try:
            engine.attach_buffers(DeviceBufferSet.allocate(runtime, engine.bindings, self._log))
            executor = InferenceExecutor(engine, self.config, self._log)
            executor.warmup()
        except BaseException:
            engine.close()
            raise
        self.engine = engine
        self.executor = executor
        return self

    def detect(self, image: np.ndarray) -> list[Detection]:
        """Return detections for one frame; a failed frame yields an empty list."""
        if self.executor is None or not self.is_open:
            raise RuntimeError("MeterDetector.open() must succeed before detect()")
        try:
            prepared = self.preprocessor.letterbox(image)
            raw_output = self.executor.infer(prepared.tensor)
            detections = self.decoder.decode_and_suppress(raw_output, prepared.transform)
        except (PreprocessError, InferenceError) as exc:
            self._log.error(LogChannel.GLOBAL, f"frame skipped: {exc}")
            return []
        self._log.debug(LogChannel.GLOBAL, f"{len(detections)} detection(s)")
        return detections

    def close(self) -> None:
        if self.engine is not None:
            self.engine.close()
        self.engine = None
        self.executor = None

    def __enter__(self) -> "MeterDetector":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
