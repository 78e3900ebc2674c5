import numpy as np
import pytest

from tabml.datasets import IRIS_SCHEMA
from tabml.schema import ColumnType, Schema
from tabml.table import Table


@pytest.fixture(scope="session")
def seed():
    return 0


@pytest.fixture
def iris_table(seed):
    """
    Three well separated blobs in 4 dimensions, 20 rows each, shaped like
    the iris measurements (one blob sits around the setosa flower).
    """
    rng = np.random.default_rng(seed)
    centers = np.array([
        [5.0, 3.4, 1.5, 0.2],
        [5.9, 2.8, 4.3, 1.3],
        [6.8, 3.0, 5.7, 2.1],
    ])
    rows = []
    for c in centers:
        for point in c + rng.normal(scale=0.1, size=(20, 4)):
            rows.append(dict(zip(IRIS_SCHEMA.names, (float(v) for v in point))))
    return Table.from_records(IRIS_SCHEMA, rows)


@pytest.fixture
def vector_schema():
    return Schema([
        ("Features", ColumnType.VECTOR, 2),
        ("Label", ColumnType.NUMERIC),
    ])


@pytest.fixture
def write_text(tmp_path):
    def _write(content, name="data.csv"):
        p = tmp_path / name
        p.write_text(content)
        return p
    return _write
