"""Inference engine: ONNX Runtime session plus the shape metadata the Predictor needs.

The model is a single ONNX file carrying both the network definition and its
trained weights.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import numpy as np
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from multilabel.errors import ModelLoadError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from multilabel.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol (kept for test mocking)
# ---------------------------------------------------------------------------


class InferenceEngine(Protocol):
    """Protocol for a loaded network."""

    @property
    def num_inputs(self) -> int:
        """Return the number of declared network inputs."""
        ...

    @property
    def input_shape(self) -> tuple[int, int, int]:
        """Return the first input's (channels, height, width)."""
        ...

    @property
    def output_dims(self) -> list[int]:
        """Return the class count (channel dimension) of every output."""
        ...

    def forward(self, tensor: NDArray[np.float32]) -> list[NDArray[np.float32]]:
        """Run one forward pass over a (1, C, H, W) tensor."""
        ...


# ---------------------------------------------------------------------------
# ONNX Runtime implementation
# ---------------------------------------------------------------------------


class OnnxEngine:
    """Wraps an ONNX Runtime InferenceSession built from Settings."""

    def __init__(self, model_path: str | Path, settings: Settings) -> None:
        self._settings = settings
        self._model_path = Path(model_path)
        if not self._model_path.is_file():
            raise ModelLoadError(f"Model file not found: {self._model_path}")

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

        try:
            self._session = InferenceSession(
                str(self._model_path),
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:  # pybind error types, not RuntimeError subclasses
            raise ModelLoadError(f"Unable to load model {self._model_path}: {exc}") from exc

        self._inputs = self._session.get_inputs()
        self._outputs = self._session.get_outputs()
        logger.info(
            "Loaded %s (inputs=%d, outputs=%d, providers=%s)",
            self._model_path.name,
            len(self._inputs),
            len(self._outputs),
            self._session.get_providers(),
        )

    # -- Public API ---------------------------------------------------------

    @property
    def num_inputs(self) -> int:
        return len(self._inputs)

    @property
    def input_shape(self) -> tuple[int, int, int]:
        shape = self._inputs[0].shape
        if len(shape) != 4:
            raise ModelLoadError(f"Input '{self._inputs[0].name}' should be 4-D (N, C, H, W), got {shape}")
        channels, height, width = shape[1:]
        if not all(isinstance(dim, int) for dim in (channels, height, width)):
            raise ModelLoadError(f"Input '{self._inputs[0].name}' has symbolic dimensions {shape}")
        return channels, height, width

    @property
    def output_dims(self) -> list[int]:
        dims: list[int] = []
        for output in self._outputs:
            shape = output.shape
            if len(shape) < 2 or not isinstance(shape[1], int):
                raise ModelLoadError(f"Output '{output.name}' has no fixed class dimension: {shape}")
            dims.append(shape[1])
        return dims

    def forward(self, tensor: NDArray[np.float32]) -> list[NDArray[np.float32]]:
        results = self._session.run(None, {self._inputs[0].name: tensor})
        return [np.asarray(result, dtype=np.float32) for result in results]

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
