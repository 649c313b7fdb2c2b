from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from meter_infer.core.affine_transform import AffineTransform


@dataclass(frozen=True, slots=True, eq=False)
class LetterboxResult:
    """Planar float32 tensor ``[1, 3, H, W]`` and the affine pair that produced it."""

    tensor: np.ndarray
    transform: AffineTransform

    @property
    def forward(self) -> np.ndarray:
        return self.transform.forward

    @property
    def inverse(self) -> np.ndarray:
        return self.transform.inverse
