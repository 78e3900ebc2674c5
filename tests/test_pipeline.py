import numpy as np
import pytest

from tabml.datasets import IRIS_SCHEMA
from tabml.errors import SchemaError
from tabml.pipeline import FittedPipeline, Pipeline, fit
from tabml.schema import ColumnType, Schema
from tabml.table import Table
from tabml.trainers import KMeansTrainer
from tabml.transforms import Concatenate, CopyColumns, CopyColumnsModel, OneHotEncode


def _iris_pipeline(seed=0):
    return Pipeline(IRIS_SCHEMA, [
        ("features", Concatenate("Features", IRIS_SCHEMA.names)),
        ("kmeans", KMeansTrainer("Features", n_clusters=3, seed=seed)),
    ])


def test_wiring_errors_are_raised_at_construction():
    with pytest.raises(SchemaError, match="kmeans"):
        Pipeline(IRIS_SCHEMA, [("kmeans", KMeansTrainer("Features", n_clusters=3))])


def test_later_stage_may_use_earlier_output():
    pipeline = _iris_pipeline()
    assert "Features" in pipeline.output_schema
    assert pipeline.output_schema["PredictedLabel"].type == ColumnType.KEY


def test_duplicate_step_names_rejected():
    with pytest.raises(SchemaError, match="Duplicate"):
        Pipeline(IRIS_SCHEMA, [
            ("features", Concatenate("Features", IRIS_SCHEMA.names)),
            ("features", Concatenate("Other", IRIS_SCHEMA.names)),
        ])


def test_append_builds_a_new_pipeline():
    base = Pipeline(IRIS_SCHEMA, [("features", Concatenate("Features", IRIS_SCHEMA.names))])
    longer = base.append("kmeans", KMeansTrainer("Features", n_clusters=2))
    assert len(base) == 1 and len(longer) == 2


def test_fit_rejects_mismatched_table(iris_table):
    other = Schema([("SepalLength", ColumnType.TEXT)])
    pipeline = Pipeline(other, [("copy", CopyColumns("x", "SepalLength"))])
    with pytest.raises(SchemaError):
        pipeline.fit(iris_table)


def test_fit_is_deterministic(iris_table, seed):
    a = fit(_iris_pipeline(seed), iris_table)
    b = fit(_iris_pipeline(seed), iris_table)
    for row in iris_table.rows():
        pa, pb = a.predict(row), b.predict(row)
        assert pa["PredictedLabel"] == pb["PredictedLabel"]
        assert np.array_equal(pa["Score"], pb["Score"])


def test_fitted_pipeline_composes_stages(iris_table):
    model = _iris_pipeline().fit(iris_table)
    assert isinstance(model, FittedPipeline)
    assert list(model.named_steps) == ["features", "kmeans"]
    assert model.inputs == tuple(IRIS_SCHEMA.names)
    assert set(model.outputs) == {"Features", "PredictedLabel", "Score"}

    # applying the pipeline equals applying each fitted stage in turn
    row = next(iris_table.rows())
    step_by_step = row
    for _, stage in model.steps:
        step_by_step = stage.transform_row(step_by_step)
    whole = model.predict(row)
    assert whole["PredictedLabel"] == step_by_step["PredictedLabel"]
    assert np.array_equal(whole["Score"], step_by_step["Score"])


def test_transform_matches_predict(iris_table):
    model = _iris_pipeline().fit(iris_table)
    scored = list(model.transform(iris_table).rows())
    for row, out in zip(iris_table.rows(), scored):
        assert model.predict(row)["PredictedLabel"] == out["PredictedLabel"]


def test_predict_requires_input_columns(iris_table):
    model = _iris_pipeline().fit(iris_table)
    with pytest.raises(SchemaError, match="PetalWidth"):
        model.predict({"SepalLength": 5.1, "SepalWidth": 3.5, "PetalLength": 1.4})


def test_predict_does_not_need_columns_only_read_at_fit():
    schema = Schema([
        ("VendorId", ColumnType.TEXT),
        ("Distance", ColumnType.NUMERIC),
        ("Unused", ColumnType.NUMERIC),
    ])
    rows = [{"VendorId": v, "Distance": float(i), "Unused": 0.0} for i, v in enumerate("ABAB")]
    table = Table.from_records(schema, rows)
    model = Pipeline(schema, [
        ("vendor", OneHotEncode("VendorEncoded", "VendorId")),
        ("features", Concatenate("Features", ["VendorEncoded", "Distance"])),
    ]).fit(table)
    assert model.inputs == ("VendorId", "Distance")
    out = model.predict({"VendorId": "B", "Distance": 2.5})
    assert out["Features"].tolist() == [0.0, 1.0, 2.5]


def test_fit_accepts_single_pass_table(iris_table):
    one_shot = Table.from_iterator(IRIS_SCHEMA, iter(list(iris_table.rows())))
    model = _iris_pipeline().fit(one_shot)
    assert model.named_steps["kmeans"].n_clusters == 3


def test_each_stage_output_is_computed_once_during_fit():
    calls = []

    class CountingCopyModel(CopyColumnsModel):
        def transform_row(self, row):
            calls.append(row["color"])
            return super().transform_row(row)

    class CountingCopy(CopyColumns):
        def fit(self, table):
            return CountingCopyModel(table.schema, self.output_schema(table.schema), self.output, self.input)

    schema = Schema([("color", ColumnType.TEXT)])
    table = Table.from_records(schema, [{"color": c} for c in ["red", "green", "red", "blue"]])
    model = Pipeline(schema, [
        ("copy", CountingCopy("shade", "color")),
        ("first", OneHotEncode("firstEncoded", "shade")),
        ("second", OneHotEncode("secondEncoded", "shade")),
    ]).fit(table)

    # both encoders scanned the copied column, but the copy ran once per row
    assert calls == ["red", "green", "red", "blue"]
    assert model.named_steps["second"].categories == ("red", "green", "blue")
