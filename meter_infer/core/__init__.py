from __future__ import annotations

from meter_infer.core.affine_transform import AffineTransform, invert_affine
from meter_infer.core.binding import Binding, BindingRole
from meter_infer.core.detection import Detection, DetectionCandidate, Rect
from meter_infer.core.letterbox_result import LetterboxResult
from meter_infer.core.model_runtime import ModelRuntime
from meter_infer.core.postprocessor import Postprocessor
from meter_infer.core.preprocessor import Preprocessor

__all__ = [
    "AffineTransform",
    "Binding",
    "BindingRole",
    "Detection",
    "DetectionCandidate",
    "LetterboxResult",
    "ModelRuntime",
    "Postprocessor",
    "Preprocessor",
    "Rect",
    "invert_affine",
]
