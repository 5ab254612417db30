"""Shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import cv2
import numpy as np
import pytest

from multilabel.ml.predictor import Predictor

from fakes import FakeEngine, labels_for

if TYPE_CHECKING:
    from collections.abc import Callable


@pytest.fixture()
def make_predictor() -> Callable[..., Predictor]:
    """Factory building a Predictor over a FakeEngine with numeric labels."""

    def _make(engine: FakeEngine | None = None, mean_value: float = 0.0) -> Predictor:
        engine = engine or FakeEngine()
        channels, height, width = engine.input_shape
        mean = np.full((channels, height, width), mean_value, dtype=np.float32)
        return Predictor(engine, mean, [labels_for(dim) for dim in engine.output_dims[:2]])

    return _make


@pytest.fixture()
def write_image(tmp_path: Path) -> Callable[..., Path]:
    """Write a small uniform BGR image and return its path."""

    def _write(name: str = "img.png", value: int = 128, size: tuple[int, int] = (10, 12)) -> Path:
        height, width = size
        path = tmp_path / name
        image = np.full((height, width, 3), value, dtype=np.uint8)
        assert cv2.imwrite(str(path), image)
        return path

    return _write
