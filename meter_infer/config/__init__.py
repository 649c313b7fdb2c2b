from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from meter_infer.config.detector_config import DetectorConfig
from meter_infer.env_utils import read_str_env


_CONFIG_FILE = Path(__file__).parent / "detector.yaml"


def load_detector_config(path: str | Path | None = None) -> DetectorConfig:
    """Load the detector settings from YAML; ``METER_INFER_ENGINE_PATH`` overrides the engine path."""
    config_file = Path(path) if path is not None else _CONFIG_FILE
    if not config_file.exists():
        raise FileNotFoundError(f"Missing detector config: {config_file}")
    with config_file.open("r", encoding="utf-8") as stream:
        raw: dict[str, Any] = yaml.safe_load(stream) or {}
    section = raw.get("detector", raw)
    engine_override = read_str_env("METER_INFER_ENGINE_PATH")
    if engine_override is not None:
        section = {**section, "engine_path": engine_override}
    return DetectorConfig.from_dict(section)


__all__ = ["DetectorConfig", "load_detector_config"]
