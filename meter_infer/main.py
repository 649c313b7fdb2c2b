from __future__ import annotations

import argparse
import sys

from meter_infer.application import MeterDetector
from meter_infer.config import load_detector_config
from meter_infer.config.log_config import apply_log_config
from meter_infer.errors import AllocationError, LoadError
from meter_infer.logger import LogChannel


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Detect meters in a single image with a TensorRT engine")
    parser.add_argument("image", help="Path to a BGR image readable by OpenCV")
    parser.add_argument("--config", default=None, help="Detector YAML (defaults to the packaged detector.yaml)")
    parser.add_argument("--engine", default=None, help="Override the engine path from the config")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    import cv2

    args = _parse_args(argv)
    log = apply_log_config()
    config = load_detector_config(args.config)
    if args.engine:
        config = type(config).from_dict({**config.to_dict(), "engine_path": args.engine})

    image = cv2.imread(args.image)
    if image is None:
        log.error(LogChannel.GLOBAL, f"cannot read image: {args.image}")
        return 2

    try:
        with MeterDetector(config, log=log) as detector:
            detections = detector.detect(image)
    except (LoadError, AllocationError) as exc:
        log.error(LogChannel.GLOBAL, str(exc))
        return 1

    for detection in detections:
        log.info(LogChannel.GLOBAL, str(detection.as_dict()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
