# tabml/__init__.py

"""
tabml: typed tabular pipelines.

Declare a schema, chain transform and trainer stages into a Pipeline, fit
it on a table and score new rows with the resulting FittedPipeline.
"""

from . import config, data, datasets, metrics, models, persistence, pipeline, schema, table
from .errors import (
    ConvergenceWarning,
    ExhaustedTableError,
    InsufficientDataError,
    ModelFormatError,
    ParseError,
    SchemaError,
    TabMLError,
    UnknownCategoryError,
)
from .pipeline import FittedPipeline, FittedStage, Pipeline, Stage, fit
from .schema import Column, ColumnType, Schema
from .table import Table, train_test_split

__version__ = "0.1.0"
