from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict

from meter_infer.errors import ConfigError


@dataclass(frozen=True)
class DetectorConfig:
    """Settings for one detector engine, passed to every pipeline component."""

    engine_path: str = ""
    input_name: str = "images"
    output_name: str = "output0"
    target_width: int = 640
    target_height: int = 640
    batch_size: int = 1
    confidence_threshold: float = 0.25
    nms_iou_threshold: float = 0.45
    expected_bindings: int = 2
    warmup_iterations: int = 10
    padding_value: int = 114
    class_names: tuple[str, ...] = field(default_factory=lambda: ("meter", "water", "level"))
    class_agnostic_nms: bool = True
    map_to_source: bool = True
    device: str = "cuda"
    letterbox_dump_path: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "class_names", tuple(str(name) for name in self.class_names))
        self.validate()

    def validate(self) -> None:
        if self.target_width <= 0 or self.target_height <= 0:
            raise ConfigError(f"target size must be positive, got {self.target_width}x{self.target_height}")
        if self.batch_size <= 0:
            raise ConfigError(f"batch_size must be positive, got {self.batch_size}")
        for key in ("confidence_threshold", "nms_iou_threshold"):
            value = getattr(self, key)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{key} must be within [0, 1], got {value}")
        if self.expected_bindings < 2:
            raise ConfigError(f"expected_bindings must be >= 2, got {self.expected_bindings}")
        if self.warmup_iterations < 0:
            raise ConfigError(f"warmup_iterations must be >= 0, got {self.warmup_iterations}")
        if not 0 <= self.padding_value <= 255:
            raise ConfigError(f"padding_value must be within [0, 255], got {self.padding_value}")

    @property
    def input_shape(self) -> tuple[int, int, int, int]:
        return (self.batch_size, 3, self.target_height, self.target_width)

    def class_name(self, class_id: int) -> str:
        if 0 <= class_id < len(self.class_names):
            return self.class_names[class_id]
        return str(class_id)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectorConfig":
        defaults = cls()
        return cls(
            engine_path=str(d.get("engine_path", defaults.engine_path) or ""),
            input_name=d.get("input_name", defaults.input_name),
            output_name=d.get("output_name", defaults.output_name),
            target_width=int(d.get("target_width", defaults.target_width)),
            target_height=int(d.get("target_height", defaults.target_height)),
            batch_size=int(d.get("batch_size", defaults.batch_size)),
            confidence_threshold=float(d.get("confidence_threshold", defaults.confidence_threshold)),
            nms_iou_threshold=float(d.get("nms_iou_threshold", defaults.nms_iou_threshold)),
            expected_bindings=int(d.get("expected_bindings", defaults.expected_bindings)),
            warmup_iterations=int(d.get("warmup_iterations", defaults.warmup_iterations)),
            padding_value=int(d.get("padding_value", defaults.padding_value)),
            class_names=tuple(d.get("class_names", defaults.class_names)),
            class_agnostic_nms=bool(d.get("class_agnostic_nms", defaults.class_agnostic_nms)),
            map_to_source=bool(d.get("map_to_source", defaults.map_to_source)),
            device=str(d.get("device", defaults.device)),
            letterbox_dump_path=d.get("letterbox_dump_path", defaults.letterbox_dump_path),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["class_names"] = list(self.class_names)
        return d
