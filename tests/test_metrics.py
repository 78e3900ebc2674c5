import math

import numpy as np
import pytest
from scipy.special import expit

from tabml.errors import InsufficientDataError
from tabml.metrics import evaluate_binary_classification, evaluate_clustering, evaluate_regression
from tabml.schema import ColumnType, Schema
from tabml.table import Table

BINARY = Schema([
    ("Label", ColumnType.BOOLEAN),
    ("Score", ColumnType.NUMERIC),
    ("Probability", ColumnType.NUMERIC),
    ("PredictedLabel", ColumnType.BOOLEAN),
])

REGRESSION = Schema([("Label", ColumnType.NUMERIC), ("Score", ColumnType.NUMERIC)])


def _binary(labels, scores):
    rows = [
        {"Label": y, "Score": s, "Probability": float(expit(s)), "PredictedLabel": bool(expit(s) >= 0.5)}
        for y, s in zip(labels, scores)
    ]
    return Table.from_records(BINARY, rows)


def test_binary_classification_metrics():
    m = evaluate_binary_classification(_binary([True, True, False, False], [2.0, -0.5, -1.0, -2.0]))
    assert m.accuracy == pytest.approx(0.75)
    assert m.auc == pytest.approx(1.0)
    assert m.precision == pytest.approx(1.0)
    assert m.recall == pytest.approx(0.5)
    assert m.f1_score == pytest.approx(2 / 3)
    assert m.log_loss > 0
    assert m.n_rows == 4


def test_binary_single_class_has_no_auc():
    m = evaluate_binary_classification(_binary([True, True], [1.0, 2.0]))
    assert m.auc is None
    assert m.log_loss is None
    assert m.accuracy == 1.0


def test_regression_metrics():
    table = Table.from_records(REGRESSION, [
        {"Label": 1.0, "Score": 1.0},
        {"Label": 2.0, "Score": 2.0},
        {"Label": 3.0, "Score": 4.0},
    ])
    m = evaluate_regression(table)
    assert m.mse == pytest.approx(1 / 3)
    assert m.rmse == pytest.approx(math.sqrt(1 / 3))
    assert m.mae == pytest.approx(1 / 3)
    assert m.r_squared == pytest.approx(0.5)
    assert m.as_dict()["n_rows"] == 3


def test_regression_single_row():
    table = Table.from_records(REGRESSION, [{"Label": 1.0, "Score": 1.5}])
    m = evaluate_regression(table)
    assert math.isnan(m.r_squared)
    assert m.mae == pytest.approx(0.5)


def test_clustering_metrics():
    schema = Schema([
        ("Features", ColumnType.VECTOR, 2),
        ("Score", ColumnType.VECTOR, 2),
        ("PredictedLabel", ColumnType.KEY, 2),
        ("Label", ColumnType.NUMERIC),
    ])
    rows = [
        {"Features": [0.0, 0.0], "Score": [0.25, 200.0], "PredictedLabel": 0, "Label": 1.0},
        {"Features": [0.0, 1.0], "Score": [0.25, 180.0], "PredictedLabel": 0, "Label": 1.0},
        {"Features": [10.0, 10.0], "Score": [200.0, 0.25], "PredictedLabel": 1, "Label": 2.0},
        {"Features": [10.0, 11.0], "Score": [180.0, 0.25], "PredictedLabel": 1, "Label": 2.0},
    ]
    m = evaluate_clustering(Table.from_records(schema, rows), label="Label")
    assert m.average_distance == pytest.approx(0.25)
    assert m.davies_bouldin_index is not None and m.davies_bouldin_index < 0.2
    assert m.normalized_mutual_information == pytest.approx(1.0)


def test_empty_table_cannot_be_evaluated():
    with pytest.raises(InsufficientDataError):
        evaluate_regression(Table.from_records(REGRESSION, []))


def test_evaluate_scored_pipeline_output(iris_table):
    from tabml.cli.iris_clustering import build_pipeline

    model = build_pipeline(seed=0).fit(iris_table)
    m = evaluate_clustering(model.transform(iris_table))
    assert m.n_rows == 60
    assert 0 <= m.average_distance < 0.2
    assert np.isfinite(m.davies_bouldin_index)
