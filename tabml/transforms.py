# tabml/transforms.py

"""
Column transforms: copy, concatenate, one-hot encode, map to keys and
text featurization. Vocabulary-based stages learn their mapping with one
scan of the training table.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
from scipy import sparse
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.preprocessing import normalize

from .errors import InsufficientDataError, SchemaError, UnknownCategoryError
from .pipeline import FittedStage, Stage
from .schema import Column, ColumnType, Schema
from .table import Row, Table

logger = logging.getLogger(__name__)

# Column types that can act as a category
CATEGORICAL_TYPES = (ColumnType.TEXT, ColumnType.KEY, ColumnType.NUMERIC, ColumnType.BOOLEAN)


def _first_seen(table: Table, column: str) -> Tuple[Any, ...]:
    seen: Dict[Any, None] = {}
    for row in table.rows():
        seen.setdefault(row[column], None)
    return tuple(seen)


# ---------- CopyColumns ----------

class CopyColumnsModel(FittedStage):
    def __init__(self, input_schema: Schema, output_schema: Schema, output: str, input: str):
        super().__init__(input_schema, output_schema)
        self.inputs = (input,)
        self.outputs = (output,)

    def transform_row(self, row: Row) -> Row:
        out = dict(row)
        out[self.outputs[0]] = row[self.inputs[0]]
        return out


class CopyColumns(Stage):
    """Copy `input` to a new column `output` (e.g. a label column)."""

    def __init__(self, output: str, input: str):
        self.output = output
        self.input = input

    def output_schema(self, input_schema: Schema) -> Schema:
        col = input_schema.require(self.input)
        return input_schema.add(Column(self.output, col.type, col.size))

    def fit(self, table: Table) -> CopyColumnsModel:
        return CopyColumnsModel(table.schema, self.output_schema(table.schema), self.output, self.input)


# ---------- Concatenate ----------

class ConcatenateModel(FittedStage):
    def __init__(self, input_schema: Schema, output_schema: Schema, output: str, inputs: Sequence[str]):
        super().__init__(input_schema, output_schema)
        self.inputs = tuple(inputs)
        self.outputs = (output,)

    def transform_row(self, row: Row) -> Row:
        out = dict(row)
        out[self.outputs[0]] = np.concatenate(
            [np.atleast_1d(np.asarray(row[n], dtype=float)) for n in self.inputs]
        )
        return out


class Concatenate(Stage):
    """Join numeric scalars and vectors, in order, into one vector column."""

    def __init__(self, output: str, inputs: Sequence[str]):
        if isinstance(inputs, str):
            inputs = [inputs]
        if not inputs:
            raise SchemaError("Concatenate needs at least one input column")
        self.output = output
        self.inputs = list(inputs)

    def output_schema(self, input_schema: Schema) -> Schema:
        size: Optional[int] = 0
        for name in self.inputs:
            col = input_schema.require(name, ColumnType.NUMERIC, ColumnType.VECTOR)
            size = None if size is None or col.width is None else size + col.width
        return input_schema.add(Column(self.output, ColumnType.VECTOR, size))

    def fit(self, table: Table) -> ConcatenateModel:
        return ConcatenateModel(table.schema, self.output_schema(table.schema), self.output, self.inputs)


# ---------- OneHotEncode ----------

class OneHotEncodeModel(FittedStage):
    """Indicator vectors over the categories seen in fit; unseen -> all zeros."""

    def __init__(self, input_schema: Schema, output: str, input: str, categories: Sequence[Any]):
        self.categories = tuple(categories)
        self._index = {v: i for i, v in enumerate(self.categories)}
        output_schema = input_schema.add(Column(output, ColumnType.VECTOR, len(self.categories)))
        super().__init__(input_schema, output_schema)
        self.inputs = (input,)
        self.outputs = (output,)

    def transform_row(self, row: Row) -> Row:
        vec = np.zeros(len(self.categories))
        idx = self._index.get(row[self.inputs[0]])
        if idx is not None:
            vec[idx] = 1.0
        out = dict(row)
        out[self.outputs[0]] = vec
        return out


class OneHotEncode(Stage):
    def __init__(self, output: str, input: str):
        self.output = output
        self.input = input

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.input, *CATEGORICAL_TYPES)
        return input_schema.add(Column(self.output, ColumnType.VECTOR))

    def fit(self, table: Table) -> OneHotEncodeModel:
        self.output_schema(table.schema)
        categories = _first_seen(table, self.input)
        logger.debug("OneHotEncode '%s': %d categories", self.input, len(categories))
        return OneHotEncodeModel(table.schema, self.output, self.input, categories)


# ---------- MapValueToKey ----------

class MapValueToKeyModel(FittedStage):
    """Dense keys from 0 in first-seen order; unseen values are an error."""

    def __init__(self, input_schema: Schema, output: str, input: str, categories: Sequence[Any]):
        self.categories = tuple(categories)
        self._keys = {v: i for i, v in enumerate(self.categories)}
        output_schema = input_schema.add(Column(output, ColumnType.KEY, len(self.categories)))
        super().__init__(input_schema, output_schema)
        self.inputs = (input,)
        self.outputs = (output,)

    def knows(self, value: Any) -> bool:
        return value in self._keys

    def key_of(self, value: Any) -> int:
        try:
            return self._keys[value]
        except KeyError:
            raise UnknownCategoryError(self.inputs[0], value) from None

    def transform_row(self, row: Row) -> Row:
        out = dict(row)
        out[self.outputs[0]] = self.key_of(row[self.inputs[0]])
        return out


class MapValueToKey(Stage):
    def __init__(self, output: str, input: str):
        self.output = output
        self.input = input

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.input, *CATEGORICAL_TYPES)
        return input_schema.add(Column(self.output, ColumnType.KEY))

    def fit(self, table: Table) -> MapValueToKeyModel:
        self.output_schema(table.schema)
        categories = _first_seen(table, self.input)
        logger.debug("MapValueToKey '%s': %d keys", self.input, len(categories))
        return MapValueToKeyModel(table.schema, self.output, self.input, categories)


# ---------- FeaturizeText ----------

class FeaturizeTextModel(FittedStage):
    def __init__(self, input_schema: Schema, output: str, input: str, vectorizers: Sequence[TfidfVectorizer]):
        self.vectorizers = tuple(vectorizers)
        self.dimension = sum(len(v.vocabulary_) for v in self.vectorizers)
        output_schema = input_schema.add(Column(output, ColumnType.VECTOR, self.dimension))
        super().__init__(input_schema, output_schema)
        self.inputs = (input,)
        self.outputs = (output,)

    def featurize(self, texts: Sequence[str]) -> np.ndarray:
        blocks = [v.transform(texts) for v in self.vectorizers]
        combined = normalize(sparse.hstack(blocks).tocsr(), norm="l2")
        return combined.toarray()

    def transform_row(self, row: Row) -> Row:
        out = dict(row)
        out[self.outputs[0]] = self.featurize([row[self.inputs[0]]])[0]
        return out


class FeaturizeText(Stage):
    """
    Bag of n-grams over a text column.

    Word n-grams (and optionally character n-grams) are counted, the counts
    of all blocks are concatenated and the vector is L2-normalised. The
    vocabulary, and so the dimension, is fixed at fit.
    """

    def __init__(
        self,
        output: str,
        input: str,
        word_ngrams: Tuple[int, int] = (1, 2),
        char_ngrams: Optional[Tuple[int, int]] = None,
        lowercase: bool = True,
    ):
        self.output = output
        self.input = input
        self.word_ngrams = tuple(word_ngrams)
        self.char_ngrams = tuple(char_ngrams) if char_ngrams else None
        self.lowercase = lowercase

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.input, ColumnType.TEXT)
        return input_schema.add(Column(self.output, ColumnType.VECTOR))

    def _vectorizers(self):
        vecs = [
            TfidfVectorizer(
                ngram_range=self.word_ngrams,
                lowercase=self.lowercase,
                token_pattern=r"(?u)\b\w+\b",
                use_idf=False,
                norm=None,
            )
        ]
        if self.char_ngrams:
            vecs.append(
                TfidfVectorizer(
                    analyzer="char_wb",
                    ngram_range=self.char_ngrams,
                    lowercase=self.lowercase,
                    use_idf=False,
                    norm=None,
                )
            )
        return vecs

    def fit(self, table: Table) -> FeaturizeTextModel:
        self.output_schema(table.schema)
        texts = table.column(self.input)
        vectorizers = self._vectorizers()
        try:
            for v in vectorizers:
                v.fit(texts)
        except ValueError as exc:
            raise InsufficientDataError(f"Cannot build a vocabulary for '{self.input}': {exc}") from exc

        model = FeaturizeTextModel(table.schema, self.output, self.input, vectorizers)
        logger.info("FeaturizeText '%s': %d features", self.input, model.dimension)
        return model
