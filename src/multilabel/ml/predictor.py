"""Two-head predictor built on an inference engine.

The network has one image input and (at least) two classification outputs,
each paired with a label table. ``classify`` returns the raw confidence
vectors; ``predict`` turns them into ranked label/confidence pairs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

import numpy as np

from multilabel.errors import ModelLoadError
from multilabel.manifest import load_label_table
from multilabel.ml.engine import OnnxEngine
from multilabel.ml.preprocessing import channel_mean, load_mean, prepare_input
from multilabel.ml.topn import top_n

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from numpy.typing import NDArray

    from multilabel.config import Settings
    from multilabel.ml.engine import InferenceEngine

logger = logging.getLogger(__name__)

NUM_HEADS = 2

ConfidenceVector: TypeAlias = "NDArray[np.float32]"


@dataclass(frozen=True)
class Prediction:
    """A single label prediction for one head."""

    label: str
    confidence: float


class Predictor:
    """Classifies images with a two-head network.

    Args:
        engine: Loaded network.
        mean: Planar mean image, shape (C, H, W).
        label_tables: Exactly two label tables, one per output head.

    Raises:
        ModelLoadError: If the network, mean and label tables disagree.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        mean: NDArray[np.floating],
        label_tables: Sequence[Sequence[str]],
    ) -> None:
        if len(label_tables) != NUM_HEADS:
            raise ModelLoadError(f"Expected {NUM_HEADS} label tables, got {len(label_tables)}")
        if engine.num_inputs != 1:
            raise ModelLoadError(f"Network should have exactly one input, got {engine.num_inputs}")

        channels, height, width = engine.input_shape
        if channels not in (1, 3):
            raise ModelLoadError(f"Input layer should have 1 or 3 channels, got {channels}")

        output_dims = engine.output_dims
        if len(output_dims) < NUM_HEADS:
            raise ModelLoadError(f"Network should have {NUM_HEADS} outputs, got {len(output_dims)}")
        if len(output_dims) > NUM_HEADS:
            logger.warning("Network declares %d outputs; only the first %d are used", len(output_dims), NUM_HEADS)

        self._engine = engine
        self._num_channels = channels
        self._geometry = (width, height)
        self._mean_pixel = channel_mean(mean, channels)

        for head, (labels, dim) in enumerate(zip(label_tables, output_dims, strict=False)):
            if len(labels) != dim:
                raise ModelLoadError(
                    f"Number of labels for head {head} ({len(labels)}) is different "
                    f"from the output layer dimension ({dim})"
                )
        self._labels: tuple[tuple[str, ...], ...] = tuple(tuple(labels) for labels in label_tables)
        self._output_dims = tuple(output_dims[:NUM_HEADS])

        logger.info(
            "Predictor ready (input=%dx%dx%d, heads=%s, mean=%s)",
            channels,
            height,
            width,
            list(self._output_dims),
            np.round(self._mean_pixel, 3).tolist(),
        )

    @classmethod
    def from_files(
        cls,
        model_path: str | Path,
        mean_path: str | Path,
        label_paths: Sequence[str | Path],
        settings: Settings,
    ) -> Predictor:
        """Load the ONNX model, mean file and label tables from disk."""
        engine = OnnxEngine(model_path, settings)
        mean = load_mean(mean_path)
        label_tables = [load_label_table(path) for path in label_paths]
        return cls(engine, mean, label_tables)

    @property
    def labels(self) -> tuple[tuple[str, ...], ...]:
        """Label tables, one per head."""
        return self._labels

    @property
    def input_geometry(self) -> tuple[int, int]:
        """Network input size as (width, height)."""
        return self._geometry

    @property
    def num_channels(self) -> int:
        return self._num_channels

    @property
    def mean_pixel(self) -> NDArray[np.float32]:
        return self._mean_pixel

    def classify(self, image: NDArray[np.generic]) -> tuple[ConfidenceVector, ConfidenceVector]:
        """Return one confidence vector per head for a decoded image.

        The vectors are fresh read-only copies owned by the caller.
        """
        tensor = prepare_input(image, self._geometry, self._mean_pixel)
        outputs = self._engine.forward(tensor)

        vectors: list[ConfidenceVector] = []
        for output, dim in zip(outputs, self._output_dims, strict=False):
            flat = np.asarray(output, dtype=np.float32).reshape(-1)
            if flat.size < dim:
                raise ModelLoadError(f"Output has {flat.size} values, expected at least {dim}")
            vector = flat[:dim].copy()
            vector.setflags(write=False)
            vectors.append(vector)
        if len(vectors) < NUM_HEADS:
            raise ModelLoadError(f"Forward pass returned {len(outputs)} outputs, expected {NUM_HEADS}")
        return vectors[0], vectors[1]

    def predict(self, image: NDArray[np.generic], n: int = 5) -> tuple[list[Prediction], list[Prediction]]:
        """Return the top ``n`` predictions of each head, best first."""
        vectors = self.classify(image)
        head1, head2 = (
            [Prediction(labels[idx], float(vector[idx])) for idx in top_n(vector, min(n, len(labels)))]
            for vector, labels in zip(vectors, self._labels, strict=True)
        )
        return head1, head2
