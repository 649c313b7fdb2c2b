from __future__ import annotations

from meter_infer.application.meter_detector import MeterDetector, tensorrt_runtime_factory

__all__ = ["MeterDetector", "tensorrt_runtime_factory"]
