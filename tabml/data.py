# tabml/data.py

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Iterator, Optional, Sequence, Union

import pandas as pd

from .errors import ParseError, SchemaError
from .schema import Schema
from .table import Row, Table

logger = logging.getLogger(__name__)

_LINE_RE = re.compile(r"line (\d+)")


def load_text_table(
    path: Union[str, Path],
    schema: Schema,
    positions: Optional[Sequence[int]] = None,
    has_header: bool = False,
    separator: str = ",",
    quoting: int = csv.QUOTE_MINIMAL,
    chunk_size: int = 10_000,
) -> Table:
    """
    Lazily read a delimited text file into a Table.

    File column positions[i] feeds schema column i; by default column i
    feeds column i and any extra file columns are ignored. The file is
    re-opened on every rows() call, so the table is restartable.

    Rows are numbered from 1 after the (optional) header; a cell that does
    not convert to its declared type raises ParseError with that number.
    """
    path = Path(path)
    if positions is None:
        positions = list(range(len(schema)))
    if len(positions) != len(schema):
        raise SchemaError(
            f"Got {len(positions)} positions for a schema of {len(schema)} columns"
        )
    if len(set(positions)) != len(positions):
        raise SchemaError(f"Positions must be distinct, got {list(positions)}")

    columns = schema.columns
    # read_csv returns usecols in file order; remember where each schema column lands
    file_order = sorted(positions)

    def _rows() -> Iterator[Row]:
        logger.debug("Reading %s", path)
        try:
            reader = pd.read_csv(
                path,
                sep=separator,
                header=None,
                skiprows=1 if has_header else 0,
                usecols=file_order,
                dtype=str,
                keep_default_na=False,
                quoting=quoting,
                skip_blank_lines=True,
                chunksize=chunk_size,
            )
            row_number = 0
            for chunk in reader:
                for values in chunk.itertuples(index=False, name=None):
                    row_number += 1
                    by_position = dict(zip(file_order, values))
                    row = {}
                    for col, pos in zip(columns, positions):
                        cell = by_position[pos]
                        if not isinstance(cell, str):
                            raise ParseError(row_number, col.name, cell, "missing value")
                        try:
                            row[col.name] = col.parse(cell)
                        except ValueError as exc:
                            raise ParseError(row_number, col.name, cell, str(exc)) from exc
                    yield row
        except pd.errors.EmptyDataError:
            logger.warning("%s has no data rows", path)
            return
        except pd.errors.ParserError as exc:
            match = _LINE_RE.search(str(exc))
            line = int(match.group(1)) if match else 0
            raise ParseError(line, "*", None, str(exc)) from exc

    return Table(schema, _rows)
