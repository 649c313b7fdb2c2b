from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from meter_infer.logger import FilteredLogger, get_logger


_LOG_CONFIG_FILE = Path(__file__).parent / "log.yaml"


def load_log_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load the log configuration that defines active debug channels."""
    config_file = Path(path) if path is not None else _LOG_CONFIG_FILE
    if not config_file.exists():
        raise FileNotFoundError(f"Missing log config: {config_file}")
    with config_file.open("r", encoding="utf-8") as stream:
        return yaml.safe_load(stream) or {}


def apply_log_config(path: str | Path | None = None, logger: FilteredLogger | None = None) -> FilteredLogger:
    """Apply the channel flags to ``logger`` (the shared logger by default) and return it."""
    config = load_log_config(path)
    channels: Dict[str, bool] = config.get("channels", {})
    target = logger or get_logger()
    target.configure(
        extreme_debug=channels.get("global"),
        engine_debug=channels.get("engine"),
        preprocess_debug=channels.get("preprocess"),
        postprocess_debug=channels.get("postprocess"),
    )
    return target
