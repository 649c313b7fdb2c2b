from __future__ import annotations

from typing import Protocol, Sequence, TypeVar

import numpy as np

from meter_infer.config import DetectorConfig
from meter_infer.core.affine_transform import AffineTransform
from meter_infer.core.detection import Detection, DetectionCandidate, Rect
from meter_infer.core.postprocessor import Postprocessor
from meter_infer.errors import InferenceError
from meter_infer.logger import FilteredLogger, LogChannel, get_logger


# Channel layout of one anchor column in the raw [batch, 7, N] output.
CX, CY, W, H, CONF, CLASS_ID = range(6)
MIN_CHANNELS = 6


class _Scored(Protocol):
    rect: Rect
    confidence: float
    class_id: int


ScoredT = TypeVar("ScoredT", bound=_Scored)


def non_max_suppression(
    candidates: Sequence[ScoredT],
    iou_threshold: float,
    *,
    class_agnostic: bool = True,
) -> list[ScoredT]:
    """Greedy NMS; survivors are returned in descending confidence order.

    The sort is stable, so equal confidences keep their input order.  With
    ``class_agnostic`` a box suppresses any later overlapping box regardless of
    class; otherwise only boxes sharing its class id.
    """
    ordered = sorted(candidates, key=lambda candidate: candidate.confidence, reverse=True)
    keep = [True] * len(ordered)
    for i, current in enumerate(ordered):
        if not keep[i]:
            continue
        for j in range(i + 1, len(ordered)):
            if not keep[j]:
                continue
            other = ordered[j]
            if not class_agnostic and other.class_id != current.class_id:
                continue
            if current.rect.iou(other.rect) > iou_threshold:
                keep[j] = False
    return [candidate for candidate, kept in zip(ordered, keep) if kept]


class YoloDecoder(Postprocessor):
    """Decodes the detector's ``[batch, 7, N]`` output into suppressed detections.

    Each anchor column is ``[cx, cy, w, h, confidence, class_id, reserved]`` in
    tensor pixels.  Anchors whose confidence is strictly greater than the
    threshold become candidates; NMS then removes overlaps.
    """

    def __init__(self, config: DetectorConfig, log: FilteredLogger | None = None) -> None:
        self.config = config
        self.confidence_threshold = config.confidence_threshold
        self.iou_threshold = config.nms_iou_threshold
        self.class_agnostic = config.class_agnostic_nms
        self._log = log or get_logger()

    def process(self, raw_output: np.ndarray, transform: AffineTransform | None = None) -> list[Detection]:
        return self.decode_and_suppress(raw_output, transform)

    def decode_and_suppress(self, raw_output: np.ndarray, transform: AffineTransform | None = None) -> list[Detection]:
        candidates = self.decode(raw_output)
        self._log.debug(LogChannel.POSTPROCESS, f"{len(candidates)} results before nms")
        kept = non_max_suppression(candidates, self.iou_threshold, class_agnostic=self.class_agnostic)
        self._log.debug(LogChannel.POSTPROCESS, f"{len(kept)} results after nms")
        map_back = transform is not None and self.config.map_to_source
        return [
            Detection(
                rect=candidate.rect,
                confidence=candidate.confidence,
                class_id=candidate.class_id,
                class_name=self.config.class_name(candidate.class_id),
                source_rect=transform.rect_to_source(candidate.rect) if map_back else None,
            )
            for candidate in kept
        ]

    def decode(self, raw_output: np.ndarray) -> list[DetectionCandidate]:
        """Return above-threshold candidates in anchor order, batch by batch."""
        output = np.asarray(raw_output, dtype=np.float32)
        if output.ndim == 2:
            output = output[np.newaxis]
        if output.ndim != 3 or output.shape[1] < MIN_CHANNELS:
            raise InferenceError("decode", f"unexpected output shape {output.shape}")

        candidates: list[DetectionCandidate] = []
        for batch in output:
            confidences = batch[CONF]
            for anchor in np.flatnonzero(confidences > self.confidence_threshold):
                cx, cy, w, h = (float(v) for v in batch[CX:H + 1, anchor])
                candidates.append(
                    DetectionCandidate(
                        rect=Rect.from_center(cx, cy, w, h),
                        confidence=float(confidences[anchor]),
                        class_id=int(batch[CLASS_ID, anchor]),
                    )
                )
        return candidates
