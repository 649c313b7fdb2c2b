"""Unit tests for meter_infer.infrastructure.engine_loader.

Loading runs against the in-memory fake runtime from conftest, so every
failure branch can be driven without a TensorRT installation.
"""

from __future__ import annotations

import pytest

from meter_infer.core.binding import Binding, BindingRole
from meter_infer.errors import LoadError, LoadFailure
from meter_infer.infrastructure.device_buffer_set import DeviceBufferSet
from meter_infer.infrastructure.engine_loader import EngineLoader


def _three_bindings() -> list[Binding]:
    return [
        Binding("images", BindingRole.INPUT, (1, 3, 640, 640), 4, index=0),
        Binding("output0", BindingRole.OUTPUT, (1, 7, 8400), 4, index=1),
        Binding("proto", BindingRole.OUTPUT, (1, 32, 160, 160), 4, index=2),
    ]


# ---------------------------------------------------------------------------
# Successful load
# ---------------------------------------------------------------------------


class TestLoad:
    def test_load_exposes_bindings_and_stream(self, detector_config, fake_runtime):
        engine = EngineLoader(detector_config, fake_runtime).load()
        assert [b.name for b in engine.inputs] == ["images"]
        assert [b.name for b in engine.outputs] == ["output0"]
        assert engine.stream == "stream"
        assert not engine.closed
        assert fake_runtime.calls == ["deserialize", "create_context", "get_bindings", "create_stream"]

    def test_explicit_path_overrides_config(self, detector_config, fake_runtime, tmp_path):
        other = tmp_path / "other.engine"
        other.write_bytes(b"plan")
        engine = EngineLoader(detector_config, fake_runtime).load(str(other))
        assert engine.path == str(other)
        assert engine.model == {"blob": b"plan"}

    def test_loader_is_single_use(self, detector_config, fake_runtime):
        loader = EngineLoader(detector_config, fake_runtime)
        first = loader.load()
        with pytest.raises(RuntimeError):
            loader.load()
        assert "shutdown" not in fake_runtime.calls
        assert not first.closed
        first.close()
        assert fake_runtime.calls.count("shutdown") == 1

    def test_binding_lookup(self, detector_config, fake_runtime):
        engine = EngineLoader(detector_config, fake_runtime).load()
        assert engine.binding("output0").shape == (1, 7, 8400)
        with pytest.raises(KeyError):
            engine.binding("missing")


# ---------------------------------------------------------------------------
# Load failures
# ---------------------------------------------------------------------------


class TestLoadFailures:
    def test_missing_file(self, detector_config, fake_runtime, tmp_path):
        with pytest.raises(LoadError) as excinfo:
            EngineLoader(detector_config, fake_runtime).load(str(tmp_path / "absent.engine"))
        assert excinfo.value.reason is LoadFailure.FILE_UNREADABLE
        assert "deserialize" not in fake_runtime.calls
        assert fake_runtime.calls == ["shutdown"]

    def test_empty_file(self, detector_config, fake_runtime, tmp_path):
        empty = tmp_path / "empty.engine"
        empty.write_bytes(b"")
        with pytest.raises(LoadError) as excinfo:
            EngineLoader(detector_config, fake_runtime).load(str(empty))
        assert excinfo.value.reason is LoadFailure.EMPTY_ARTIFACT
        assert str(empty) in str(excinfo.value)

    def test_deserialize_failure(self, detector_config, fake_runtime):
        fake_runtime.fail_deserialize = True
        with pytest.raises(LoadError) as excinfo:
            EngineLoader(detector_config, fake_runtime).load()
        assert excinfo.value.reason is LoadFailure.DESERIALIZE_FAILED
        assert fake_runtime.calls == ["deserialize", "shutdown"]

    def test_deserialize_exception_is_wrapped(self, detector_config, fake_runtime, monkeypatch):
        def boom(blob):
            raise RuntimeError("version mismatch")

        monkeypatch.setattr(fake_runtime, "deserialize", boom)
        with pytest.raises(LoadError, match="version mismatch") as excinfo:
            EngineLoader(detector_config, fake_runtime).load()
        assert excinfo.value.reason is LoadFailure.DESERIALIZE_FAILED

    def test_context_failure_releases_model(self, detector_config, fake_runtime):
        fake_runtime.fail_context = True
        with pytest.raises(LoadError) as excinfo:
            EngineLoader(detector_config, fake_runtime).load()
        assert excinfo.value.reason is LoadFailure.CONTEXT_FAILED
        assert fake_runtime.calls[-2:] == ["destroy_model", "shutdown"]

    def test_three_bindings_is_invalid_arity(self, detector_config, runtime_factory):
        runtime = runtime_factory(_three_bindings())
        with pytest.raises(LoadError) as excinfo:
            EngineLoader(detector_config, runtime).load()
        assert excinfo.value.reason is LoadFailure.INVALID_ARITY
        assert "found 3" in str(excinfo.value)
        assert runtime.calls[-3:] == ["destroy_context", "destroy_model", "shutdown"]
        assert "create_stream" not in runtime.calls

    def test_two_inputs_without_output_is_invalid_arity(self, detector_config, runtime_factory):
        runtime = runtime_factory([
            Binding("images", BindingRole.INPUT, (1, 3, 640, 640), 4, index=0),
            Binding("mask", BindingRole.INPUT, (1, 1, 640, 640), 4, index=1),
        ])
        with pytest.raises(LoadError) as excinfo:
            EngineLoader(detector_config, runtime).load()
        assert excinfo.value.reason is LoadFailure.INVALID_ARITY

    def test_expected_binding_count_is_configurable(self, detector_config, runtime_factory):
        config = type(detector_config).from_dict({**detector_config.to_dict(), "expected_bindings": 3})
        engine = EngineLoader(config, runtime_factory(_three_bindings())).load()
        assert len(engine.outputs) == 2

    def test_binding_query_failure_is_wrapped(self, detector_config, fake_runtime):
        fake_runtime.fail_bindings = TypeError("data type not understood")
        with pytest.raises(LoadError, match="data type not understood") as excinfo:
            EngineLoader(detector_config, fake_runtime).load()
        assert excinfo.value.reason is LoadFailure.BINDINGS_UNREADABLE
        assert fake_runtime.calls[-3:] == ["destroy_context", "destroy_model", "shutdown"]

    def test_stream_failure_is_wrapped(self, detector_config, fake_runtime):
        fake_runtime.fail_stream = RuntimeError("CUDA error: out of memory")
        with pytest.raises(LoadError) as excinfo:
            EngineLoader(detector_config, fake_runtime).load()
        assert excinfo.value.reason is LoadFailure.STREAM_FAILED
        assert fake_runtime.calls[-3:] == ["destroy_context", "destroy_model", "shutdown"]

    def test_unresolved_shape(self, detector_config, runtime_factory):
        runtime = runtime_factory([
            Binding("images", BindingRole.INPUT, (-1, 3, 640, 640), 4, index=0),
            Binding("output0", BindingRole.OUTPUT, (1, 7, 8400), 4, index=1),
        ])
        with pytest.raises(LoadError) as excinfo:
            EngineLoader(detector_config, runtime).load()
        assert excinfo.value.reason is LoadFailure.UNRESOLVED_SHAPE


# ---------------------------------------------------------------------------
# Teardown
# ---------------------------------------------------------------------------


class TestEngineClose:
    def test_release_order(self, detector_config, fake_runtime):
        engine = EngineLoader(detector_config, fake_runtime).load()
        engine.attach_buffers(DeviceBufferSet.allocate(fake_runtime, engine.bindings))
        fake_runtime.calls.clear()

        engine.close()

        assert fake_runtime.calls == [
            "destroy_context",
            "destroy_model",
            "shutdown",
            "destroy_stream",
            "free_device",
            "free_device",
            "free_host",
        ]
        assert engine.closed
        assert engine.context is None and engine.buffers is None

    def test_close_is_idempotent(self, detector_config, fake_runtime):
        engine = EngineLoader(detector_config, fake_runtime).load()
        engine.close()
        fake_runtime.calls.clear()
        engine.close()
        assert fake_runtime.calls == []

    def test_context_manager_closes(self, detector_config, fake_runtime):
        with EngineLoader(detector_config, fake_runtime).load() as engine:
            assert not engine.closed
        assert engine.closed

    def test_buffers_can_only_be_attached_once(self, detector_config, fake_runtime):
        engine = EngineLoader(detector_config, fake_runtime).load()
        engine.attach_buffers(DeviceBufferSet.allocate(fake_runtime, engine.bindings))
        with pytest.raises(RuntimeError):
            engine.attach_buffers(DeviceBufferSet.allocate(fake_runtime, engine.bindings))
