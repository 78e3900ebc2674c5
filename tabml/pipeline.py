# tabml/pipeline.py

"""
Stages, pipelines and their fitted counterparts.

A Stage knows which columns it reads and what it adds to a schema; fit()
turns it into an immutable FittedStage that transforms tables (or single
rows). A Pipeline is an ordered list of named stages, validated against its
input schema as soon as it is built.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence, Tuple

from .errors import SchemaError
from .schema import Column, Schema
from .table import Row, Table

logger = logging.getLogger(__name__)


class FittedStage(ABC):
    """
    Immutable result of fitting a stage.

    Subclasses set `inputs` (columns read when transforming) and
    `outputs` (columns added or replaced) and override transform_row(),
    transform(), or both.
    """

    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()

    def __init__(self, input_schema: Schema, output_schema: Schema):
        self.input_schema = input_schema
        self.output_schema = output_schema

    @property
    def output_columns(self) -> List[Column]:
        return [self.output_schema[n] for n in self.outputs]

    def check_schema(self, schema: Schema) -> None:
        """The columns this stage reads must match what it was fitted on."""
        for name in self.inputs:
            col = schema.require(name)
            expected = self.input_schema[name]
            if col != expected:
                raise SchemaError(
                    f"Column '{name}' is {col}, but the stage was fitted on {expected}"
                )

    def result_schema(self, schema: Schema) -> Schema:
        return schema.add(*self.output_columns)

    def transform(self, table: Table) -> Table:
        self.check_schema(table.schema)
        return table.map_rows(self.result_schema(table.schema), self.transform_row)

    def transform_row(self, row: Row) -> Row:
        schema = self.input_schema.select([n for n in self.input_schema.names if n in row])
        single = Table.from_records(schema, [row], validate=False)
        return next(self.transform(single).rows())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(inputs={list(self.inputs)}, outputs={list(self.outputs)})"


class BatchFittedStage(FittedStage):
    """Fitted stage that scores rows in batches (vectorised trainers)."""

    batch_size = 4096

    @abstractmethod
    def transform_batch(self, rows: List[Row]) -> List[Row]:
        """Return new rows with this stage's outputs added."""

    def transform(self, table: Table) -> Table:
        self.check_schema(table.schema)

        def _rows():
            batch: List[Row] = []
            for row in table.rows():
                batch.append(row)
                if len(batch) >= self.batch_size:
                    yield from self.transform_batch(batch)
                    batch = []
            if batch:
                yield from self.transform_batch(batch)

        return Table(self.result_schema(table.schema), _rows, restartable=table.restartable)

    def transform_row(self, row: Row) -> Row:
        return self.transform_batch([row])[0]


class Stage(ABC):
    """A transform or trainer that has not been fitted yet."""

    @abstractmethod
    def output_schema(self, input_schema: Schema) -> Schema:
        """Validate the wiring against `input_schema` and return the result schema."""

    @abstractmethod
    def fit(self, table: Table) -> FittedStage:
        """Learn from `table` (one scan or more) and return the fitted stage."""

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in vars(self).items() if not k.startswith("_"))
        return f"{type(self).__name__}({params})"


class FittedPipeline(FittedStage):
    """Fitted stages applied in order; behaves as one composed stage."""

    def __init__(
        self,
        input_schema: Schema,
        output_schema: Schema,
        steps: Sequence[Tuple[str, FittedStage]],
    ):
        super().__init__(input_schema, output_schema)
        self.steps: Tuple[Tuple[str, FittedStage], ...] = tuple(steps)

        needed: List[str] = []
        produced = set()
        for _, fitted in self.steps:
            for name in fitted.inputs:
                if name not in produced and name not in needed:
                    needed.append(name)
            produced.update(fitted.outputs)
        self.inputs = tuple(needed)
        self.outputs = tuple(n for n in output_schema.names if n in produced)

    @property
    def named_steps(self) -> Dict[str, FittedStage]:
        return dict(self.steps)

    def transform(self, table: Table) -> Table:
        current = table
        for _, fitted in self.steps:
            current = fitted.transform(current)
        return current

    def transform_row(self, row: Row) -> Row:
        current = row
        for _, fitted in self.steps:
            current = fitted.transform_row(current)
        return current

    def predict(self, row: Dict[str, Any]) -> Row:
        """
        Score one input row. Only the original input columns that some
        stage reads at transform time are required (labels are not).
        """
        values = {}
        for name in self.inputs:
            if name not in row:
                raise SchemaError(f"Input row is missing column '{name}'")
            values[name] = self.input_schema[name].validate(row[name])
        extra = {k: v for k, v in row.items() if k not in values}
        return self.transform_row({**extra, **values})

    def __repr__(self) -> str:
        return f"FittedPipeline(steps={[n for n, _ in self.steps]})"


class Pipeline:
    """
    Ordered, named stages wired against an input schema.

    Wiring mistakes (a stage reading a column nobody provides, a type
    mismatch, duplicate step names) raise SchemaError here, not in fit().
    """

    def __init__(self, input_schema: Schema, steps: Sequence[Tuple[str, Stage]] = ()):
        self.input_schema = input_schema
        self.steps: Tuple[Tuple[str, Stage], ...] = tuple(steps)

        names = [n for n, _ in self.steps]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise SchemaError(f"Duplicate step names: {dupes}")

        schema = input_schema
        for name, stage in self.steps:
            try:
                schema = stage.output_schema(schema)
            except SchemaError as exc:
                raise SchemaError(f"Step '{name}': {exc}") from exc
        self.output_schema = schema

    def append(self, name: str, stage: Stage) -> "Pipeline":
        return Pipeline(self.input_schema, self.steps + ((name, stage),))

    def __len__(self) -> int:
        return len(self.steps)

    def __repr__(self) -> str:
        return f"Pipeline(steps={[n for n, _ in self.steps]})"

    def fit(self, table: Table) -> FittedPipeline:
        for col in self.input_schema:
            actual = table.schema.require(col.name)
            if actual != col:
                raise SchemaError(f"Table column {actual} does not match pipeline input {col}")

        current = table.materialize()
        fitted_steps: List[Tuple[str, FittedStage]] = []
        logger.info("Fitting pipeline %s on %d rows", [n for n, _ in self.steps], len(current))

        last = len(self.steps) - 1
        for i, (name, stage) in enumerate(self.steps):
            logger.debug("Fitting step '%s': %r", name, stage)
            fitted = stage.fit(current)
            current = fitted.transform(current)
            if i < last:
                # later stages may scan it more than once
                current = current.materialize()
            fitted_steps.append((name, fitted))

        logger.info("Pipeline fitted")
        # fitted output schema carries the sizes learned during fit
        return FittedPipeline(self.input_schema, current.schema, fitted_steps)


def fit(pipeline: Pipeline, table: Table) -> FittedPipeline:
    return pipeline.fit(table)
