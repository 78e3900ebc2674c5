# tabml/errors.py

"""
Exceptions raised by tabml.

Everything fatal derives from TabMLError so callers (and the prediction
service) can catch the whole family at once. ConvergenceWarning is a
warning, not an error: the trainer keeps the parameters it reached.
"""

from typing import Any

from sklearn.exceptions import ConvergenceWarning as _SklearnConvergenceWarning


class TabMLError(Exception):
    """Base class for tabml errors."""


class SchemaError(TabMLError):
    """Duplicate, missing or mistyped columns; also bad pipeline wiring."""


class ParseError(TabMLError):
    """A cell of a text table could not be converted to its declared type."""

    def __init__(self, row: int, column: str, value: Any, reason: str = ""):
        self.row = row
        self.column = column
        self.value = value
        msg = f"Cannot parse row {row}, column '{column}': {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class UnknownCategoryError(TabMLError):
    """A value was not seen when the stage was fitted."""

    def __init__(self, column: str, value: Any):
        self.column = column
        self.value = value
        super().__init__(f"Value {value!r} of column '{column}' was not seen during fit")


class InsufficientDataError(TabMLError):
    """Too few rows (or classes) for the requested configuration."""


class ExhaustedTableError(TabMLError):
    """A single-pass table was iterated a second time."""


class ModelFormatError(TabMLError):
    """A blob does not contain a saved tabml pipeline."""


class ConvergenceWarning(_SklearnConvergenceWarning):
    """An iterative trainer stopped at its iteration cap."""
