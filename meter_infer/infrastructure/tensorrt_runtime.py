from __future__ import annotations

from typing import Any, Mapping, Sequence

import numpy as np

from meter_infer.core.binding import Binding, BindingRole
from meter_infer.core.model_runtime import ModelRuntime

try:
    import tensorrt as trt
    # TRT registers the first logger handed to trt.Runtime() as a process-global
    # singleton.  It must outlive every runtime, so keep one module-level instance.
    _TRT_LOGGER: "trt.Logger | None" = trt.Logger(trt.Logger.WARNING)
except Exception:  # pragma: no cover
    trt = None  # type: ignore[assignment]
    _TRT_LOGGER = None

try:
    import torch
except Exception:  # pragma: no cover
    torch = None  # type: ignore[assignment]


class TensorRTRuntime(ModelRuntime):
    """TensorRT engine execution with CUDA memory and streams managed by PyTorch."""

    def __init__(self, device: str = "cuda") -> None:
        if trt is None:
            raise RuntimeError("tensorrt python package unavailable")
        if torch is None or not torch.cuda.is_available():
            raise RuntimeError("CUDA-enabled PyTorch is required for TensorRT execution")
        self.device = torch.device(device)
        self._runtime: Any | None = trt.Runtime(_TRT_LOGGER)

    def deserialize(self, blob: bytes) -> Any | None:
        if self._runtime is None:
            raise RuntimeError("runtime already shut down")
        return self._runtime.deserialize_cuda_engine(blob)

    def create_context(self, model: Any) -> Any | None:
        return model.create_execution_context()

    def get_bindings(self, model: Any, context: Any) -> list[Binding]:
        names = [model.get_tensor_name(index) for index in range(int(model.num_io_tensors))]
        roles = {
            name: BindingRole.INPUT if model.get_tensor_mode(name) == trt.TensorIOMode.INPUT else BindingRole.OUTPUT
            for name in names
        }

        # Inputs first: output shapes stay undetermined until every input shape is fixed.
        shapes: dict[str, tuple[int, ...]] = {}
        for name in names:
            if roles[name] != BindingRole.INPUT:
                continue
            shape = tuple(int(dim) for dim in model.get_tensor_shape(name))
            if any(dim < 0 for dim in shape):
                _min_shape, _opt_shape, max_shape = model.get_tensor_profile_shape(name, 0)
                shape = tuple(int(dim) for dim in max_shape)
                context.set_input_shape(name, shape)
            shapes[name] = shape
        for name in names:
            if roles[name] == BindingRole.OUTPUT:
                shapes[name] = tuple(int(dim) for dim in context.get_tensor_shape(name))

        bindings: list[Binding] = []
        for index, name in enumerate(names):
            dtype = np.dtype(trt.nptype(model.get_tensor_dtype(name)))
            bindings.append(
                Binding(
                    name=name,
                    role=roles[name],
                    shape=shapes[name],
                    element_byte_size=dtype.itemsize,
                    dtype=dtype.name,
                    index=index,
                )
            )
        return bindings

    def create_stream(self) -> Any:
        return torch.cuda.Stream(device=self.device)

    def allocate_device(self, nbytes: int) -> Any:
        return torch.empty(int(nbytes), dtype=torch.uint8, device=self.device)

    def allocate_host(self, nbytes: int) -> Any:
        return torch.empty(int(nbytes), dtype=torch.uint8, pin_memory=True)

    def set_input_shape(self, context: Any, name: str, shape: Sequence[int]) -> bool:
        return bool(context.set_input_shape(name, tuple(int(dim) for dim in shape)))

    def copy_async(self, dst: Any, src: Any, stream: Any) -> None:
        if isinstance(src, np.ndarray):
            src = torch.from_numpy(np.ascontiguousarray(src).reshape(-1).view(np.uint8))
        target = dst if dst.numel() == src.numel() else dst[: src.numel()]
        with torch.cuda.stream(stream):
            target.copy_(src, non_blocking=True)

    def enqueue(self, context: Any, buffers: Mapping[str, Any], stream: Any) -> bool:
        for name, buffer in buffers.items():
            context.set_tensor_address(name, int(buffer.data_ptr()))
        return bool(context.execute_async_v3(int(stream.cuda_stream)))

    def synchronize(self, stream: Any) -> None:
        stream.synchronize()

    def host_view(self, host_buffer: Any) -> np.ndarray:
        return host_buffer.numpy()

    def destroy_context(self, context: Any) -> None:
        """No-op: the Engine drops the last reference to the context."""

    def destroy_model(self, model: Any) -> None:
        """No-op: the Engine drops the last reference to the model."""

    def shutdown(self) -> None:
        self._runtime = None

    def destroy_stream(self, stream: Any) -> None:
        stream.synchronize()

    def free_device(self, buffer: Any) -> None:
        """No-op: the DeviceBufferSet drops the last reference to the tensor."""

    def free_host(self, buffer: Any) -> None:
        """No-op: the DeviceBufferSet drops the last reference to the pinned tensor."""
