"""Command-line entry point: evaluate top-1 accuracy of a two-head classifier."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import TYPE_CHECKING, NoReturn, TextIO

from multilabel.config import get_settings
from multilabel.errors import MultilabelError
from multilabel.evaluation import Evaluator
from multilabel.manifest import read_manifest
from multilabel.ml.predictor import Predictor

if TYPE_CHECKING:
    from collections.abc import Sequence

    from multilabel.evaluation import EvaluationReport, RowOutcome

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with exit code 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="multilabel-eval",
        description="Run a two-head ONNX classifier over a manifest and report top-1 accuracy per head.",
    )
    parser.add_argument("model", help="ONNX model (network definition and trained weights)")
    parser.add_argument("mean", help="Mean image saved as a .npy array (CxHxW)")
    parser.add_argument("labels1", help="Label table for the first head, one label per line")
    parser.add_argument("labels2", help="Label table for the second head, one label per line")
    parser.add_argument("manifest", help="Test list: 'image_path label1 label2' per line")
    parser.add_argument("--top-n", type=int, default=None, help="Predictions computed per head (default: 5)")
    parser.add_argument("--device", choices=["cpu", "cuda", "openvino"], default=None)
    parser.add_argument("--image-root", default=None, help="Directory for relative image paths")
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Count unreadable rows as errors instead of aborting",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def _print_row(outcome: RowOutcome, head_names: tuple[str, str], out: TextIO) -> None:
    print(f"-- Prediction for {outcome.row.image_path} --", file=out)
    for name, predictions in zip(head_names, outcome.predictions, strict=True):
        best = predictions[0]
        print(f'{name.capitalize()}: "{best.label}" - {best.confidence:.4f}', file=out)
    for name, counter in zip(head_names, outcome.counters, strict=True):
        print(
            f"Count_{name.capitalize()}: {counter.correct} / {counter.total} = {counter.accuracy:.4f}",
            file=out,
        )


def _print_summary(report: EvaluationReport, head_names: tuple[str, str], out: TextIO) -> None:
    print("\n---------------- Summary ----------------", file=out)
    for name, counter, accuracy in zip(head_names, report.counters, report.accuracies, strict=True):
        denominator = counter.total if report.errors else report.manifest_size
        print(f"{name.capitalize()} Accuracy: {counter.correct}/{denominator} = {accuracy:.4f}", file=out)
    if report.errors:
        print(f"Errors: {report.errors} (manifest lines {list(report.failed_rows)})", file=out)
    print(f"Time used: {report.elapsed_seconds:.3f} seconds.", file=out)


def run(args: argparse.Namespace, out: TextIO | None = None) -> int:
    """Build settings and predictor from parsed arguments, then evaluate."""
    out = out or sys.stdout
    overrides: dict[str, object] = {}
    if args.top_n is not None:
        overrides["top_n"] = args.top_n
    if args.device is not None:
        overrides["device"] = args.device
    if args.image_root is not None:
        overrides["image_root"] = args.image_root
    if args.keep_going:
        overrides["fail_fast"] = False
    if args.verbose:
        overrides["log_level"] = "DEBUG"

    settings = get_settings(**overrides)
    logging.getLogger().setLevel(settings.log_level)

    predictor = Predictor.from_files(args.model, args.mean, [args.labels1, args.labels2], settings)
    started = time.monotonic()
    rows = read_manifest(args.manifest, image_root=settings.image_root)

    evaluator = Evaluator(predictor, settings)
    report = evaluator.run(
        rows,
        on_row=lambda outcome: _print_row(outcome, settings.head_names, out),
        started=started,
    )
    _print_summary(report, settings.head_names, out)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        return run(args)
    except MultilabelError as exc:
        logger.critical("%s: %s", type(exc).__name__, exc)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
