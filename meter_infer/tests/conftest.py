from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import numpy as np
import pytest

from meter_infer.config import DetectorConfig
from meter_infer.core.binding import Binding, BindingRole
from meter_infer.core.model_runtime import ModelRuntime


# ---------------------------------------------------------------------------
# Fake accelerator runtime
# ---------------------------------------------------------------------------
# Buffers are plain uint8 numpy arrays and every "async" operation completes
# immediately.  Each call is appended to ``calls`` so tests can assert the
# issue order of copies, enqueues and releases.

INPUT_SHAPE = (1, 3, 640, 640)
OUTPUT_SHAPE = (1, 7, 8400)


def default_bindings() -> list[Binding]:
    return [
        Binding("images", BindingRole.INPUT, INPUT_SHAPE, 4, dtype="float32", index=0),
        Binding("output0", BindingRole.OUTPUT, OUTPUT_SHAPE, 4, dtype="float32", index=1),
    ]


class FakeRuntime(ModelRuntime):
    def __init__(
        self,
        bindings: Sequence[Binding] | None = None,
        model_fn: Callable[[np.ndarray], np.ndarray] | None = None,
    ) -> None:
        self.bindings = list(bindings) if bindings is not None else default_bindings()
        self.model_fn = model_fn
        self.calls: list[str] = []
        self.inputs_seen: list[np.ndarray] = []
        self.fail_deserialize = False
        self.fail_context = False
        self.fail_enqueue = False
        self.fail_host_alloc = False
        self.reject_shape = False
        self.fail_bindings: Exception | None = None
        self.fail_stream: Exception | None = None
        # byte written into fresh device memory; non-zero mimics uninitialized torch.empty
        self.device_fill = 0
        self.input_shape: tuple[int, ...] | None = None

    def deserialize(self, blob: bytes) -> Any | None:
        self.calls.append("deserialize")
        if self.fail_deserialize:
            return None
        return {"blob": blob}

    def create_context(self, model: Any) -> Any | None:
        self.calls.append("create_context")
        if self.fail_context:
            return None
        return {"model": model}

    def get_bindings(self, model: Any, context: Any) -> list[Binding]:
        self.calls.append("get_bindings")
        if self.fail_bindings is not None:
            raise self.fail_bindings
        return list(self.bindings)

    def create_stream(self) -> Any:
        self.calls.append("create_stream")
        if self.fail_stream is not None:
            raise self.fail_stream
        return "stream"

    def allocate_device(self, nbytes: int) -> Any:
        self.calls.append("allocate_device")
        return np.full(nbytes, self.device_fill, dtype=np.uint8)

    def allocate_host(self, nbytes: int) -> Any:
        self.calls.append("allocate_host")
        if self.fail_host_alloc:
            raise MemoryError("pinned memory exhausted")
        return np.zeros(nbytes, dtype=np.uint8)

    def set_input_shape(self, context: Any, name: str, shape: Sequence[int]) -> bool:
        self.calls.append("set_input_shape")
        self.input_shape = tuple(shape)
        return not self.reject_shape

    def copy_async(self, dst: Any, src: Any, stream: Any) -> None:
        self.calls.append("copy_async")
        raw = np.ascontiguousarray(src).reshape(-1).view(np.uint8)
        dst[: raw.size] = raw

    def enqueue(self, context: Any, buffers: Mapping[str, Any], stream: Any) -> bool:
        self.calls.append("enqueue")
        if self.fail_enqueue:
            return False
        inputs = [b for b in self.bindings if b.role == BindingRole.INPUT]
        outputs = [b for b in self.bindings if b.role == BindingRole.OUTPUT]
        shape = self.input_shape or inputs[0].shape
        count = int(np.prod(shape))
        tensor = buffers[inputs[0].name].view(np.dtype(inputs[0].dtype))[:count].reshape(shape)
        self.inputs_seen.append(tensor.copy())
        if self.model_fn is not None:
            result = np.ascontiguousarray(self.model_fn(tensor), dtype=np.dtype(outputs[0].dtype))
            raw = result.reshape(-1).view(np.uint8)
            # only the rows of the executed batch are written
            buffers[outputs[0].name][: raw.size] = raw
        return True

    def synchronize(self, stream: Any) -> None:
        self.calls.append("synchronize")

    def host_view(self, host_buffer: Any) -> np.ndarray:
        return host_buffer

    def destroy_context(self, context: Any) -> None:
        self.calls.append("destroy_context")

    def destroy_model(self, model: Any) -> None:
        self.calls.append("destroy_model")

    def shutdown(self) -> None:
        self.calls.append("shutdown")

    def destroy_stream(self, stream: Any) -> None:
        self.calls.append("destroy_stream")

    def free_device(self, buffer: Any) -> None:
        self.calls.append("free_device")

    def free_host(self, buffer: Any) -> None:
        self.calls.append("free_host")


def make_raw_output(anchors: Sequence[Sequence[float]], num_anchors: int = OUTPUT_SHAPE[2]) -> np.ndarray:
    """Build a ``[1, 7, N]`` tensor; each anchor is ``(cx, cy, w, h, conf, class_id)``."""
    output = np.zeros((1, 7, num_anchors), dtype=np.float32)
    for slot, anchor in enumerate(anchors):
        index = 100 + slot * 37
        output[0, : len(anchor), index] = anchor
    return output


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def engine_file(tmp_path: Path) -> Path:
    path = tmp_path / "meter_det.engine"
    path.write_bytes(b"\x7fserialized-engine")
    return path


@pytest.fixture
def detector_config(engine_file: Path) -> DetectorConfig:
    return DetectorConfig(engine_path=str(engine_file), warmup_iterations=0)


@pytest.fixture
def runtime_factory() -> type[FakeRuntime]:
    """The fake runtime class, for tests that need custom bindings or a model function."""
    return FakeRuntime


@pytest.fixture
def raw_output() -> Callable[..., np.ndarray]:
    return make_raw_output
