"""Tests for the ONNX Runtime engine wrapper."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from multilabel.config import Settings
from multilabel.errors import ModelLoadError
from multilabel.ml.engine import OnnxEngine

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "device": "cpu",
        "intra_op_threads": 0,
        "inter_op_threads": 1,
        "gpu_mem_limit": 2_147_483_648,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


def _mock_session(
    input_shapes: list[list[object]] | None = None,
    output_shapes: list[list[object]] | None = None,
) -> MagicMock:
    input_shapes = input_shapes if input_shapes is not None else [[1, 3, 224, 224]]
    output_shapes = output_shapes if output_shapes is not None else [[1, 2], [1, 5]]
    session = MagicMock()
    session.get_inputs.return_value = [
        SimpleNamespace(name=f"data{i}", shape=shape) for i, shape in enumerate(input_shapes)
    ]
    session.get_outputs.return_value = [
        SimpleNamespace(name=f"prob{i}", shape=shape) for i, shape in enumerate(output_shapes)
    ]
    session.get_providers.return_value = ["CPUExecutionProvider"]
    return session


@pytest.fixture()
def model_file(tmp_path: Path) -> Path:
    path = tmp_path / "net.onnx"
    path.write_bytes(b"onnx")
    return path


# ---------------------------------------------------------------------------
# OnnxEngine tests
# ---------------------------------------------------------------------------


class TestOnnxEngine:
    def test_missing_model_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ModelLoadError, match="not found"):
            OnnxEngine(tmp_path / "absent.onnx", _make_settings())

    @patch("multilabel.ml.engine.InferenceSession")
    def test_session_failure_wrapped(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.side_effect = RuntimeError("bad protobuf")
        with pytest.raises(ModelLoadError, match="bad protobuf"):
            OnnxEngine(model_file, _make_settings())

    @patch("multilabel.ml.engine.InferenceSession")
    def test_session_built_with_providers(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.return_value = _mock_session()
        engine = OnnxEngine(model_file, _make_settings())

        args, kwargs = mock_session_cls.call_args
        assert args == (str(model_file),)
        assert kwargs["providers"] == ["CPUExecutionProvider"]
        assert kwargs["sess_options"] is engine._session_options

    @patch("multilabel.ml.engine.InferenceSession")
    def test_shape_metadata(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.return_value = _mock_session(
            input_shapes=[["batch", 3, 227, 200]],
            output_shapes=[[1, 2], ["batch", 5, 1, 1]],
        )
        engine = OnnxEngine(model_file, _make_settings())

        assert engine.num_inputs == 1
        assert engine.input_shape == (3, 227, 200)
        assert engine.output_dims == [2, 5]

    @patch("multilabel.ml.engine.InferenceSession")
    def test_symbolic_input_dims_raise(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.return_value = _mock_session(input_shapes=[[1, 3, "height", "width"]])
        engine = OnnxEngine(model_file, _make_settings())
        with pytest.raises(ModelLoadError, match="symbolic"):
            _ = engine.input_shape

    @patch("multilabel.ml.engine.InferenceSession")
    def test_non_image_input_raises(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.return_value = _mock_session(input_shapes=[[1, 128]])
        engine = OnnxEngine(model_file, _make_settings())
        with pytest.raises(ModelLoadError, match="4-D"):
            _ = engine.input_shape

    @patch("multilabel.ml.engine.InferenceSession")
    def test_symbolic_output_dim_raises(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.return_value = _mock_session(output_shapes=[[1, 2], [1, "classes"]])
        engine = OnnxEngine(model_file, _make_settings())
        with pytest.raises(ModelLoadError, match="prob1"):
            _ = engine.output_dims

    @patch("multilabel.ml.engine.InferenceSession")
    def test_forward_feeds_first_input(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        session = _mock_session()
        session.run.return_value = [np.array([[0.1, 0.9]]), np.array([[0.2, 0.2, 0.2, 0.2, 0.2]])]
        mock_session_cls.return_value = session
        engine = OnnxEngine(model_file, _make_settings())
        tensor = np.zeros((1, 3, 224, 224), dtype=np.float32)

        outputs = engine.forward(tensor)

        session.run.assert_called_once_with(None, {"data0": tensor})
        assert [o.dtype for o in outputs] == [np.float32, np.float32]

    @patch("multilabel.ml.engine.InferenceSession")
    def test_provider_building_cuda(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.return_value = _mock_session()
        engine = OnnxEngine(model_file, _make_settings(device="cuda", gpu_mem_limit=1024))
        assert len(engine._providers) == 2
        provider_name, provider_opts = engine._providers[0]  # type: ignore[misc]
        assert provider_name == "CUDAExecutionProvider"
        assert provider_opts["gpu_mem_limit"] == 1024
        assert engine._providers[1] == "CPUExecutionProvider"

    @patch("multilabel.ml.engine.InferenceSession")
    def test_provider_building_openvino(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.return_value = _mock_session()
        engine = OnnxEngine(model_file, _make_settings(device="openvino"))
        provider_name, _provider_opts = engine._providers[0]  # type: ignore[misc]
        assert provider_name == "OpenVINOExecutionProvider"
        assert engine._providers[1] == "CPUExecutionProvider"

    @patch("multilabel.ml.engine.InferenceSession")
    def test_session_threading_options(self, mock_session_cls: MagicMock, model_file: Path) -> None:
        mock_session_cls.return_value = _mock_session()
        engine = OnnxEngine(model_file, _make_settings(intra_op_threads=4, inter_op_threads=2))
        assert engine._session_options.intra_op_num_threads == 4
        assert engine._session_options.inter_op_num_threads == 2
