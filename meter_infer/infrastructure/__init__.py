from __future__ import annotations

from meter_infer.infrastructure.device_buffer_set import DeviceBufferSet
from meter_infer.infrastructure.engine_loader import Engine, EngineLoader
from meter_infer.infrastructure.inference_executor import InferenceExecutor
from meter_infer.infrastructure.letterbox_preprocessor import LetterboxPreprocessor
from meter_infer.infrastructure.yolo_decoder import YoloDecoder, non_max_suppression

__all__ = [
    "DeviceBufferSet",
    "Engine",
    "EngineLoader",
    "InferenceExecutor",
    "LetterboxPreprocessor",
    "YoloDecoder",
    "non_max_suppression",
]
