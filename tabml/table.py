# tabml/table.py

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split as _sk_train_test_split

from .errors import ExhaustedTableError, InsufficientDataError, SchemaError
from .schema import ColumnType, Schema

Row = Dict[str, Any]


class Table:
    """
    A schema plus a source of rows.

    `source` is a zero-argument callable returning an iterable of rows
    (dicts keyed by column name). Restartable tables call it again on every
    rows(); single-pass tables may only be iterated once.
    """

    def __init__(
        self,
        schema: Schema,
        source: Callable[[], Iterable[Row]],
        restartable: bool = True,
    ):
        self.schema = schema
        self._source = source
        self.restartable = restartable
        self._records: Optional[List[Row]] = None
        self._consumed = False

    # ---------- Constructors ----------

    @classmethod
    def from_records(cls, schema: Schema, records: Iterable[Row], validate: bool = True) -> "Table":
        """In-memory table; every value is checked against its column type."""
        rows = [schema.validate_row(r) for r in records] if validate else list(records)
        table = cls(schema, lambda: rows)
        table._records = rows
        return table

    @classmethod
    def from_iterator(cls, schema: Schema, iterator: Iterable[Row]) -> "Table":
        """Single-pass table over a one-shot iterator."""
        it = iter(iterator)
        return cls(schema, lambda: it, restartable=False)

    @classmethod
    def from_frame(cls, schema: Schema, df: pd.DataFrame) -> "Table":
        missing = [n for n in schema.names if n not in df.columns]
        if missing:
            raise SchemaError(f"DataFrame is missing columns {missing}")
        records = df[schema.names].to_dict(orient="records")
        return cls.from_records(schema, records)

    # ---------- Access ----------

    @property
    def is_materialized(self) -> bool:
        return self._records is not None

    def rows(self) -> Iterator[Row]:
        if self._records is not None:
            return iter(self._records)
        if not self.restartable:
            if self._consumed:
                raise ExhaustedTableError(
                    "This table reads from a single-pass source and was already iterated"
                )
            self._consumed = True
        return iter(self._source())

    def materialize(self) -> "Table":
        """Return an in-memory table holding every row."""
        if self._records is not None:
            return self
        rows = list(self.rows())
        table = Table(self.schema, lambda: rows)
        table._records = rows
        return table

    def __len__(self) -> int:
        if self._records is None:
            raise TypeError("len() needs a materialized table; call materialize() first")
        return len(self._records)

    def __iter__(self) -> Iterator[Row]:
        return self.rows()

    def __repr__(self) -> str:
        n = len(self._records) if self._records is not None else "?"
        return f"Table(rows={n}, {self.schema!r})"

    def column(self, name: str) -> List[Any]:
        self.schema.require(name)
        return [r[name] for r in self.rows()]

    def matrix(self, name: str) -> np.ndarray:
        """Stack a numeric scalar or vector column into a 2D float array."""
        col = self.schema.require(name, ColumnType.NUMERIC, ColumnType.VECTOR)
        values = self.column(name)
        if not values:
            return np.empty((0, col.width or 0), dtype=float)
        return np.vstack([np.atleast_1d(np.asarray(v, dtype=float)) for v in values])

    # ---------- Derived tables ----------

    def map_rows(self, schema: Schema, fn: Callable[[Row], Row]) -> "Table":
        """Lazily apply `fn` to every row, producing a table with `schema`."""
        return Table(schema, lambda: (fn(r) for r in self.rows()), restartable=self.restartable)

    def filter(self, predicate: Callable[[Row], bool]) -> "Table":
        return Table(
            self.schema,
            lambda: (r for r in self.rows() if predicate(r)),
            restartable=self.restartable,
        )

    def to_frame(self) -> pd.DataFrame:
        """Materialize into a pandas DataFrame (vector cells stay as arrays)."""
        return pd.DataFrame(list(self.rows()), columns=self.schema.names)


def train_test_split(table: Table, test_fraction: float = 0.2, seed: int = 0) -> Tuple[Table, Table]:
    """
    Seeded random split into (train, test) in-memory tables.
    """
    rows = list(table.materialize().rows())
    if len(rows) < 2:
        raise InsufficientDataError(f"Need at least 2 rows to split, got {len(rows)}")

    train_idx, test_idx = _sk_train_test_split(
        np.arange(len(rows)), test_size=test_fraction, random_state=seed
    )
    train = Table.from_records(table.schema, [rows[i] for i in train_idx], validate=False)
    test = Table.from_records(table.schema, [rows[i] for i in test_idx], validate=False)
    return train, test
