from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned box given by its top-left corner and size."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> "Rect":
        return cls(cx - width / 2.0, cy - height / 2.0, width, height)

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "Rect":
        return cls(x1, y1, x2 - x1, y2 - y1)

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        if self.width <= 0 or self.height <= 0:
            return 0.0
        return self.width * self.height

    def iou(self, other: "Rect") -> float:
        """Intersection over union; 0 when the union is empty."""
        inter_w = min(self.x2, other.x2) - max(self.x, other.x)
        inter_h = min(self.y2, other.y2) - max(self.y, other.y)
        intersection = max(0.0, inter_w) * max(0.0, inter_h)
        union = self.area + other.area - intersection
        if union <= 0.0:
            return 0.0
        return intersection / union

    def as_xyxy(self) -> tuple[float, float, float, float]:
        return (self.x, self.y, self.x2, self.y2)


@dataclass(frozen=True, slots=True)
class DetectionCandidate:
    """Above-threshold anchor in tensor pixel space, before suppression."""

    rect: Rect
    confidence: float
    class_id: int


@dataclass(frozen=True, slots=True)
class Detection:
    """Final detection handed to the meter reader."""

    rect: Rect
    confidence: float
    class_id: int
    class_name: str = ""
    source_rect: Rect | None = None

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "bbox": list(self.rect.as_xyxy()),
            "conf": round(float(self.confidence), 4),
            "class_id": self.class_id,
            "label": self.class_name,
        }
        if self.source_rect is not None:
            payload["source_bbox"] = list(self.source_rect.as_xyxy())
        return payload
