# tabml/schema.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import SchemaError


class ColumnType(str, Enum):
    NUMERIC = "numeric"
    VECTOR = "vector"
    TEXT = "text"
    BOOLEAN = "boolean"
    KEY = "key"


_TRUE = {"1", "true", "yes"}
_FALSE = {"0", "false", "no"}


@dataclass(frozen=True)
class Column:
    """
    One named, typed column.
    - size: vector length for VECTOR columns, key count for KEY columns.
      None means "fixed when the producing stage is fitted".
    """
    name: str
    type: ColumnType
    size: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            raise SchemaError("Column name must be a non-empty string")
        if self.size is not None and self.size < 0:
            raise SchemaError(f"Column '{self.name}' has a negative size")

    @property
    def is_numeric(self) -> bool:
        return self.type in (ColumnType.NUMERIC, ColumnType.VECTOR)

    @property
    def width(self) -> Optional[int]:
        """Number of floats this column contributes to a feature vector."""
        if self.type == ColumnType.VECTOR:
            return self.size
        return 1

    def parse(self, cell: str) -> Any:
        """Convert a raw text cell to this column's type; raises ValueError."""
        if self.type == ColumnType.TEXT:
            return cell
        text = cell.strip()
        if self.type == ColumnType.NUMERIC:
            return float(text)
        if self.type == ColumnType.BOOLEAN:
            lowered = text.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError("expected one of 0/1/true/false")
        if self.type == ColumnType.KEY:
            key = int(text)
            if key < 0:
                raise ValueError("keys must be non-negative")
            return key
        raise ValueError(f"{self.type.value} columns cannot be read from text")

    def validate(self, value: Any) -> Any:
        """Check (and normalise) an in-memory value; raises SchemaError."""
        t = self.type
        if t == ColumnType.NUMERIC:
            if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, float, np.integer, np.floating)):
                raise SchemaError(f"Column '{self.name}' expects a number, got {value!r}")
            return float(value)
        if t == ColumnType.VECTOR:
            arr = np.asarray(value, dtype=float)
            if arr.ndim != 1 or (self.size is not None and arr.shape != (self.size,)):
                raise SchemaError(
                    f"Column '{self.name}' expects a vector of length {self.size}, got shape {arr.shape}"
                )
            return arr
        if t == ColumnType.TEXT:
            if not isinstance(value, str):
                raise SchemaError(f"Column '{self.name}' expects text, got {value!r}")
            return value
        if t == ColumnType.BOOLEAN:
            if not isinstance(value, (bool, np.bool_)):
                raise SchemaError(f"Column '{self.name}' expects a boolean, got {value!r}")
            return bool(value)
        # KEY
        if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, np.integer)):
            raise SchemaError(f"Column '{self.name}' expects an integer key, got {value!r}")
        if value < 0 or (self.size is not None and value >= self.size):
            raise SchemaError(f"Key {value} out of range for column '{self.name}'")
        return int(value)


ColumnSpec = Union[Column, Tuple[str, ColumnType], Tuple[str, ColumnType, int]]


def _as_column(spec: ColumnSpec) -> Column:
    if isinstance(spec, Column):
        return spec
    return Column(*spec)


class Schema:
    """
    Ordered list of uniquely named columns.

    Schemas are immutable; add() and select() return new schemas.
    """

    def __init__(self, columns: Iterable[ColumnSpec]):
        cols = [_as_column(c) for c in columns]
        seen = set()
        for c in cols:
            if c.name in seen:
                raise SchemaError(f"Duplicate column name: '{c.name}'")
            seen.add(c.name)
        self._columns: Tuple[Column, ...] = tuple(cols)
        self._index: Dict[str, int] = {c.name: i for i, c in enumerate(cols)}

    @property
    def columns(self) -> Tuple[Column, ...]:
        return self._columns

    @property
    def names(self) -> List[str]:
        return [c.name for c in self._columns]

    def __len__(self) -> int:
        return len(self._columns)

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __getitem__(self, name: str) -> Column:
        try:
            return self._columns[self._index[name]]
        except KeyError:
            raise SchemaError(f"Unknown column: '{name}' (have {self.names})") from None

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Schema) and self._columns == other._columns

    def __hash__(self) -> int:
        return hash(self._columns)

    def __repr__(self) -> str:
        parts = []
        for c in self._columns:
            suffix = f"[{c.size}]" if c.size is not None else ""
            parts.append(f"{c.name}:{c.type.value}{suffix}")
        return f"Schema({', '.join(parts)})"

    def require(self, name: str, *types: ColumnType) -> Column:
        """Return column `name`, checking it exists and (optionally) its type."""
        if name not in self._index:
            raise SchemaError(f"Column '{name}' is not in the input schema {self.names}")
        col = self[name]
        if types and col.type not in types:
            allowed = "/".join(t.value for t in types)
            raise SchemaError(f"Column '{name}' must be {allowed}, got {col.type.value}")
        return col

    def add(self, *columns: ColumnSpec) -> "Schema":
        """Append new columns; a column with an existing name replaces it in place."""
        cols = list(self._columns)
        for spec in columns:
            col = _as_column(spec)
            if col.name in self._index:
                cols[self._index[col.name]] = col
            else:
                cols.append(col)
        return Schema(cols)

    def select(self, names: Sequence[str]) -> "Schema":
        return Schema([self[n] for n in names])

    def validate_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        """Validate every declared value of a row; missing columns are errors."""
        out = {}
        for c in self._columns:
            if c.name not in row:
                raise SchemaError(f"Row is missing column '{c.name}'")
            out[c.name] = c.validate(row[c.name])
        return out
