"""Manifest and label-table readers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from multilabel.errors import ModelLoadError, ParseError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManifestRow:
    """One test image with its ground truth for both heads."""

    image_path: Path
    true_label1: int
    true_label2: int
    line_number: int = 0

    @property
    def true_labels(self) -> tuple[int, int]:
        return self.true_label1, self.true_label2


def parse_manifest(lines: Iterable[str], image_root: str | Path | None = None) -> list[ManifestRow]:
    """Parse ``path label1 label2`` lines into manifest rows.

    Blank lines are skipped. Relative paths are resolved against
    ``image_root`` when one is given.

    Raises:
        ParseError: If a line does not have exactly three fields or a label
            is not an integer.
    """
    root = Path(image_root) if image_root is not None else None
    rows: list[ManifestRow] = []
    for line_number, line in enumerate(lines, start=1):
        fields = line.split()
        if not fields:
            continue
        if len(fields) != 3:
            raise ParseError(
                f"expected 'path label1 label2', got {len(fields)} field(s): {line.strip()!r}",
                line_number=line_number,
            )
        path_text, label1, label2 = fields
        try:
            true_label1, true_label2 = int(label1), int(label2)
        except ValueError:
            raise ParseError(f"labels must be integers: {label1!r} {label2!r}", line_number=line_number) from None

        image_path = Path(path_text)
        if root is not None and not image_path.is_absolute():
            image_path = root / image_path
        rows.append(ManifestRow(image_path, true_label1, true_label2, line_number))
    return rows


def _decode_lines(lines: Iterable[bytes], path: str | Path) -> Iterator[str]:
    for line_number, raw in enumerate(lines, start=1):
        try:
            yield raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"{path} is not valid UTF-8: {exc.reason}", line_number=line_number) from exc


def read_manifest(path: str | Path, image_root: str | Path | None = None) -> list[ManifestRow]:
    """Read and parse a UTF-8 manifest file.

    Raises:
        ParseError: If the file cannot be read, a line is not valid UTF-8 or
            a line is malformed.
    """
    try:
        with open(path, "rb") as f:
            rows = parse_manifest(_decode_lines(f, path), image_root=image_root)
    except OSError as exc:
        raise ParseError(f"Unable to read manifest {path}: {exc}") from exc
    logger.info("Read %d manifest rows from %s", len(rows), path)
    return rows


def load_label_table(path: str | Path) -> tuple[str, ...]:
    """Read a newline-delimited label file, one label per line.

    Every line counts, so the table stays index-aligned with the network's
    output channels. Bytes that are not UTF-8 (e.g. GBK label text) are
    replaced with U+FFFD; only the leading class id is ever parsed.
    """
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            labels = tuple(line.rstrip("\r\n") for line in f)
    except OSError as exc:
        raise ModelLoadError(f"Unable to open labels file {path}: {exc}") from exc
    logger.debug("Loaded %d labels from %s", len(labels), path)
    return labels
