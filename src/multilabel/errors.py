"""Exception hierarchy for multilabel."""

from __future__ import annotations


class MultilabelError(Exception):
    """Base class for all errors raised by multilabel."""


class ConfigurationError(MultilabelError):
    """Invalid settings or command-line invocation."""


class ModelLoadError(MultilabelError):
    """The model, mean file or label tables cannot be used together."""


class ImageDecodeError(MultilabelError):
    """An image file is missing, unreadable or corrupt."""


class ParseError(MultilabelError):
    """Malformed manifest row or non-numeric predicted label."""

    def __init__(self, message: str, *, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


class InvalidArgumentError(MultilabelError, ValueError):
    """An argument is outside its accepted domain."""
