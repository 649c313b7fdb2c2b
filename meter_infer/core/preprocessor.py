from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

from meter_infer.core.letterbox_result import LetterboxResult


class Preprocessor(ABC):
    """Turns one source frame into the model's input tensor."""

    @abstractmethod
    def process(self, image: np.ndarray) -> LetterboxResult:
        """Return the input tensor plus the transform relating it to the source image."""
