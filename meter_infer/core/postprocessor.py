from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from meter_infer.core.affine_transform import AffineTransform
from meter_infer.core.detection import Detection


class Postprocessor(ABC):
    """Post-process raw inference outputs into final detections."""

    @abstractmethod
    def process(self, raw_output: np.ndarray, transform: AffineTransform | None = None) -> Sequence[Detection]:
        """Return the surviving detections in descending confidence order."""
