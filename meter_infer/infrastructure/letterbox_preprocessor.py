from __future__ import annotations

import math
from typing import Any

import numpy as np

from meter_infer.config import DetectorConfig
from meter_infer.core.affine_transform import AffineTransform
from meter_infer.core.letterbox_result import LetterboxResult
from meter_infer.core.preprocessor import Preprocessor
from meter_infer.errors import PreprocessError
from meter_infer.logger import FilteredLogger, LogChannel, get_logger

try:
    import cv2
except ImportError:  # pragma: no cover
    cv2 = None


class LetterboxPreprocessor(Preprocessor):
    """Letterboxes a BGR frame into the normalized planar RGB tensor the detector expects."""

    def __init__(self, config: DetectorConfig, log: FilteredLogger | None = None) -> None:
        self.config = config
        self.target_width = config.target_width
        self.target_height = config.target_height
        self._log = log or get_logger()

    def process(self, image: np.ndarray) -> LetterboxResult:
        return self.letterbox(image)

    def letterbox(
        self,
        image: np.ndarray,
        target_width: int | None = None,
        target_height: int | None = None,
    ) -> LetterboxResult:
        """Return a ``[1, 3, H, W]`` float32 tensor and the forward/inverse affine pair.

        The frame is scaled uniformly to fit the target, centred, and the
        uncovered border is filled with ``padding_value`` gray.  The tensor is
        RGB, scaled to ``[0, 1]`` and channel-first.
        """
        if cv2 is None:
            raise RuntimeError("cv2 is required for letterbox preprocessing but is not available.")
        height, width = self._validate(image)
        out_w = target_width or self.target_width
        out_h = target_height or self.target_height

        transform = AffineTransform.letterbox(width, height, out_w, out_h)
        if not math.isfinite(transform.scale) or transform.scale <= 0.0:
            raise PreprocessError(f"image {width}x{height} yields unusable scale {transform.scale}")
        self._log.debug(
            LogChannel.PREPROCESS,
            f"image size: {width}x{height}, scale: {transform.scale:.6f}, offset: {transform.offset}",
        )

        pad = float(self.config.padding_value)
        canvas = cv2.warpAffine(
            image,
            transform.forward,
            (out_w, out_h),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(pad, pad, pad),
        )
        if self.config.letterbox_dump_path:
            cv2.imwrite(self.config.letterbox_dump_path, canvas)

        tensor = cv2.dnn.blobFromImage(
            canvas,
            scalefactor=1.0 / 255.0,
            size=(out_w, out_h),
            mean=(0.0, 0.0, 0.0),
            swapRB=True,
            crop=False,
            ddepth=cv2.CV_32F,
        )
        self._log.debug(LogChannel.PREPROCESS, f"input size after preprocess: {list(tensor.shape)}")
        return LetterboxResult(tensor=tensor, transform=transform)

    @staticmethod
    def _validate(image: Any) -> tuple[int, int]:
        if not isinstance(image, np.ndarray):
            raise PreprocessError(f"expected a numpy image, got {type(image).__name__}")
        if image.ndim != 3 or image.shape[2] != 3:
            raise PreprocessError(f"expected an HxWx3 color image, got shape {image.shape}")
        height, width = int(image.shape[0]), int(image.shape[1])
        if width <= 0 or height <= 0:
            raise PreprocessError(f"zero-area image: {width}x{height}")
        return height, width
