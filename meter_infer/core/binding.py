from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import StrEnum


class BindingRole(StrEnum):
    """Direction of a tensor slot exposed by a loaded model."""

    INPUT = "INPUT"
    OUTPUT = "OUTPUT"


@dataclass(frozen=True, slots=True)
class Binding:
    """One named input or output tensor slot of a loaded engine."""

    name: str
    role: BindingRole
    shape: tuple[int, ...]
    element_byte_size: int
    dtype: str = "float32"
    index: int = 0
    element_count: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "shape", tuple(int(dim) for dim in self.shape))
        object.__setattr__(self, "element_count", int(math.prod(self.shape)))

    @property
    def nbytes(self) -> int:
        return self.element_count * self.element_byte_size

    @property
    def is_input(self) -> bool:
        return self.role == BindingRole.INPUT

    @property
    def is_resolved(self) -> bool:
        return bool(self.shape) and all(dim > 0 for dim in self.shape)
