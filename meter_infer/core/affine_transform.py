from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from meter_infer.core.detection import Rect


@dataclass(frozen=True, slots=True, eq=False)
class AffineTransform:
    """Forward (source -> tensor) and inverse (tensor -> source) 2x3 affine pair.

    ``forward`` maps source-image pixels into the letterboxed tensor canvas and
    ``inverse`` maps them back.  Both are float64 so a round trip stays within
    floating point epsilon.
    """

    forward: np.ndarray
    inverse: np.ndarray
    source_width: int
    source_height: int
    target_width: int
    target_height: int

    @classmethod
    def letterbox(cls, source_width: int, source_height: int, target_width: int, target_height: int) -> "AffineTransform":
        """Uniform scale to fit the target, centred with equal padding on each axis."""
        scale = min(target_width / source_width, target_height / source_height)
        dx = (target_width - scale * source_width) / 2.0
        dy = (target_height - scale * source_height) / 2.0
        forward = np.array([[scale, 0.0, dx], [0.0, scale, dy]], dtype=np.float64)
        return cls(
            forward=forward,
            inverse=invert_affine(forward),
            source_width=int(source_width),
            source_height=int(source_height),
            target_width=int(target_width),
            target_height=int(target_height),
        )

    @property
    def scale(self) -> float:
        return float(self.forward[0, 0])

    @property
    def offset(self) -> tuple[float, float]:
        return float(self.forward[0, 2]), float(self.forward[1, 2])

    def to_tensor(self, points: np.ndarray) -> np.ndarray:
        return _apply(self.forward, points)

    def to_source(self, points: np.ndarray) -> np.ndarray:
        return _apply(self.inverse, points)

    def rect_to_source(self, rect: Rect, *, clip: bool = True) -> Rect:
        """Map a tensor-space rect into source pixels, optionally clipped to the image."""
        corners = self.to_source(np.array([[rect.x, rect.y], [rect.x2, rect.y2]], dtype=np.float64))
        x1, y1 = corners[0]
        x2, y2 = corners[1]
        if clip:
            x1, x2 = np.clip([x1, x2], 0.0, float(self.source_width))
            y1, y2 = np.clip([y1, y2], 0.0, float(self.source_height))
        return Rect.from_corners(float(x1), float(y1), float(x2), float(y2))


def invert_affine(matrix: np.ndarray) -> np.ndarray:
    """Return the 2x3 inverse of a 2x3 affine matrix."""
    full = np.vstack([np.asarray(matrix, dtype=np.float64), [0.0, 0.0, 1.0]])
    return np.linalg.inv(full)[:2, :]


def _apply(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return pts @ matrix[:, :2].T + matrix[:, 2]
