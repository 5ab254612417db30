"""Top-1 accuracy evaluation over a manifest.

Architecture:
    manifest rows -> image loader -> Predictor.predict -> top-1 label id -> per-head counters

The Evaluator moves through INIT -> RUNNING -> FINISHED. In fail-fast mode
(the default) the first unreadable image or unparseable label aborts the run
and the counters keep only the rows completed before it.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from multilabel.errors import ImageDecodeError, MultilabelError, ParseError
from multilabel.ml.preprocessing import load_image

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    import numpy as np
    from numpy.typing import NDArray

    from multilabel.config import Settings
    from multilabel.manifest import ManifestRow
    from multilabel.ml.predictor import Prediction

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class SupportsPredict(Protocol):
    """Anything that yields top-N predictions for both heads."""

    def predict(self, image: NDArray[np.generic], n: int = 5) -> tuple[list[Prediction], list[Prediction]]: ...


class EvaluatorState(StrEnum):
    INIT = "init"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass
class AccuracyCounter:
    """Correct/total tally for one head. Only ever incremented."""

    correct: int = 0
    total: int = 0

    def record(self, hit: bool) -> None:
        if hit:
            self.correct += 1
        self.total += 1

    @property
    def accuracy(self) -> float:
        return self.correct / self.total if self.total else 0.0

    def snapshot(self) -> AccuracyCounter:
        return AccuracyCounter(self.correct, self.total)


@dataclass(frozen=True)
class RowOutcome:
    """Result of scoring a single manifest row."""

    row: ManifestRow
    predictions: tuple[list[Prediction], list[Prediction]]
    predicted_labels: tuple[int, int]
    hits: tuple[bool, bool]
    counters: tuple[AccuracyCounter, AccuracyCounter]


@dataclass(frozen=True)
class EvaluationReport:
    """Final numbers of an evaluation run."""

    counters: tuple[AccuracyCounter, AccuracyCounter]
    manifest_size: int
    elapsed_seconds: float
    errors: int = 0
    failed_rows: tuple[int, ...] = ()

    @property
    def accuracies(self) -> tuple[float, float]:
        """Per-head accuracy.

        Over the whole manifest when every row was scored, otherwise over the
        rows that were scored.
        """
        if self.errors:
            return self.counters[0].accuracy, self.counters[1].accuracy
        if self.manifest_size == 0:
            return 0.0, 0.0
        return (
            self.counters[0].correct / self.manifest_size,
            self.counters[1].correct / self.manifest_size,
        )


def parse_label_id(label: str) -> int:
    """Extract the leading integer of a label text, e.g. ``"1 male"`` -> 1.

    Raises:
        ParseError: If the label does not start with an integer.
    """
    match = _LEADING_INT.match(label)
    if match is None:
        raise ParseError(f"Predicted label {label!r} is not an integer class id")
    return int(match.group(1))


class Evaluator:
    """Runs a predictor over manifest rows and keeps per-head accuracy."""

    def __init__(
        self,
        predictor: SupportsPredict,
        settings: Settings,
        image_loader: Callable[[Path], NDArray[np.generic]] = load_image,
    ) -> None:
        self._predictor = predictor
        self._top_n = settings.top_n
        self._fail_fast = settings.fail_fast
        self._image_loader = image_loader

        self.state = EvaluatorState.INIT
        self.counters = (AccuracyCounter(), AccuracyCounter())
        self.errors = 0
        self._failed_rows: list[int] = []

    def score_row(self, row: ManifestRow) -> RowOutcome:
        """Predict one row and update the counters.

        Raises:
            ImageDecodeError: If the row's image cannot be read.
            ParseError: If a predicted top-1 label is not an integer.
        """
        image = self._image_loader(row.image_path)
        predictions = self._predictor.predict(image, self._top_n)
        predicted = (parse_label_id(predictions[0][0].label), parse_label_id(predictions[1][0].label))

        hits = (predicted[0] == row.true_label1, predicted[1] == row.true_label2)
        for counter, hit in zip(self.counters, hits, strict=True):
            counter.record(hit)

        return RowOutcome(
            row=row,
            predictions=predictions,
            predicted_labels=predicted,
            hits=hits,
            counters=(self.counters[0].snapshot(), self.counters[1].snapshot()),
        )

    def run(
        self,
        rows: Sequence[ManifestRow],
        on_row: Callable[[RowOutcome], None] | None = None,
        started: float | None = None,
    ) -> EvaluationReport:
        """Score every row in order and return the final report.

        ``on_row`` is called after each scored row, for running display.
        ``started`` is a ``time.monotonic()`` reading to measure elapsed time
        from; it defaults to the start of this call.
        """
        if self.state is not EvaluatorState.INIT:
            raise MultilabelError(f"Evaluator already used (state={self.state})")

        self.state = EvaluatorState.RUNNING
        if started is None:
            started = time.monotonic()
        logger.info("Evaluating %d images (top_n=%d, fail_fast=%s)", len(rows), self._top_n, self._fail_fast)

        for row in rows:
            try:
                outcome = self.score_row(row)
            except (ImageDecodeError, ParseError) as exc:
                if self._fail_fast:
                    logger.error("Aborting at manifest line %d (%s): %s", row.line_number, row.image_path, exc)
                    raise
                self.errors += 1
                self._failed_rows.append(row.line_number)
                logger.warning("Skipping manifest line %d (%s): %s", row.line_number, row.image_path, exc)
                continue
            if on_row is not None:
                on_row(outcome)

        elapsed = time.monotonic() - started
        self.state = EvaluatorState.FINISHED
        report = EvaluationReport(
            counters=(self.counters[0].snapshot(), self.counters[1].snapshot()),
            manifest_size=len(rows),
            elapsed_seconds=elapsed,
            errors=self.errors,
            failed_rows=tuple(self._failed_rows),
        )
        logger.info("Evaluation finished in %.3fs (errors=%d)", elapsed, self.errors)
        return report
