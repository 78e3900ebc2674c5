import io
import json

import numpy as np
import pytest
from joblib import dump

from tabml import persistence
from tabml.errors import ModelFormatError, SchemaError
from tabml.persistence import load, load_from_file, save, save_model, save_to_file
from tabml.pipeline import Pipeline
from tabml.predict import load_trained_model
from tabml.schema import ColumnType, Schema
from tabml.table import Table
from tabml.trainers import FastTreeRegression, MatrixFactorizationTrainer, SdcaLogisticRegression
from tabml.transforms import Concatenate, CopyColumns, FeaturizeText, MapValueToKey, OneHotEncode

from tabml.cli.iris_clustering import build_pipeline as iris_pipeline


def _same_predictions(a, b, rows, columns):
    for row in rows:
        pa, pb = a.predict(row), b.predict(row)
        for c in columns:
            assert np.array_equal(np.asarray(pa[c]), np.asarray(pb[c]))


def test_kmeans_round_trip(iris_table):
    model = iris_pipeline(seed=0).fit(iris_table)
    restored = load(save(model))
    _same_predictions(model, restored, iris_table.rows(), ["PredictedLabel", "Score"])
    assert restored.inputs == model.inputs
    assert restored.output_schema == model.output_schema


def test_trip_pipeline_round_trip(tmp_path):
    schema = Schema([
        ("VendorId", ColumnType.TEXT),
        ("PaymentType", ColumnType.TEXT),
        ("TripDistance", ColumnType.NUMERIC),
        ("FareAmount", ColumnType.NUMERIC),
    ])
    rng = np.random.default_rng(0)
    rows = []
    for i in range(60):
        d = float(rng.uniform(0.5, 10))
        rows.append({
            "VendorId": "CMT" if i % 2 else "VTS",
            "PaymentType": "CRD" if i % 3 else "CSH",
            "TripDistance": d,
            "FareAmount": 2.5 + 2.0 * d,
        })
    table = Table.from_records(schema, rows)
    model = Pipeline(schema, [
        ("label", CopyColumns("Label", "FareAmount")),
        ("vendor", OneHotEncode("VendorIdEncoded", "VendorId")),
        ("payment", OneHotEncode("PaymentTypeEncoded", "PaymentType")),
        ("features", Concatenate("Features", ["VendorIdEncoded", "PaymentTypeEncoded", "TripDistance"])),
        ("trees", FastTreeRegression(n_trees=10, min_examples_per_leaf=5)),
    ]).fit(table)

    path = save_to_file(model, tmp_path / "taxi" / "model.joblib")
    restored = load_from_file(path)
    _same_predictions(model, restored, rows[:10], ["Score", "Features"])


def test_text_and_factorization_round_trip():
    text_schema = Schema([("SentimentText", ColumnType.TEXT), ("Label", ColumnType.BOOLEAN)])
    texts = Table.from_records(text_schema, [
        {"SentimentText": "great food", "Label": True},
        {"SentimentText": "awful service", "Label": False},
        {"SentimentText": "great service", "Label": True},
        {"SentimentText": "awful food", "Label": False},
    ])
    text_model = Pipeline(text_schema, [
        ("featurize", FeaturizeText("Features", "SentimentText")),
        ("lr", SdcaLogisticRegression()),
    ]).fit(texts)
    _same_predictions(text_model, load(save(text_model)), texts.rows(), ["Score", "Probability"])

    ratings_schema = Schema([("u", ColumnType.NUMERIC), ("m", ColumnType.NUMERIC), ("Label", ColumnType.NUMERIC)])
    ratings = Table.from_records(ratings_schema, [
        {"u": float(u), "m": float(m), "Label": float(1 + (u + m) % 5)} for u in range(4) for m in range(3)
    ])
    mf_model = Pipeline(ratings_schema, [
        ("u_key", MapValueToKey("uKey", "u")),
        ("m_key", MapValueToKey("mKey", "m")),
        ("mf", MatrixFactorizationTrainer("uKey", "mKey", rank=2, n_iterations=3)),
    ]).fit(ratings)
    _same_predictions(mf_model, load(save(mf_model)), ratings.rows(), ["Score"])


def test_restored_pipeline_still_validates_inputs(iris_table):
    restored = load(save(iris_pipeline().fit(iris_table)))
    with pytest.raises(SchemaError):
        restored.predict({"SepalLength": 5.1})


def _blob(obj):
    buf = io.BytesIO()
    dump(obj, buf)
    return buf.getvalue()


def test_foreign_blobs_are_rejected(iris_table):
    with pytest.raises(ModelFormatError):
        load(_blob({"weights": [1, 2, 3]}))
    with pytest.raises(ModelFormatError):
        load(_blob(["not", "a", "model"]))

    model = iris_pipeline().fit(iris_table)
    newer = {"format": persistence.FORMAT_NAME, "version": persistence.FORMAT_VERSION + 1, "pipeline": model}
    with pytest.raises(ModelFormatError, match="version"):
        load(_blob(newer))


def test_garbage_bytes_are_rejected():
    with pytest.raises(ModelFormatError):
        load(b"not a model")


@pytest.mark.parametrize("blob", [
    # a pickled reference to a module that is not installed
    b"cno_such_module_for_tabml\nFittedThing\n.",
    # and to a class that no longer exists in tabml
    b"ctabml.persistence\nNoSuchFittedStage\n.",
])
def test_blob_with_missing_class_is_rejected(blob):
    with pytest.raises(ModelFormatError):
        load(blob)


def test_save_rejects_unfitted_pipeline():
    with pytest.raises(TypeError):
        save(iris_pipeline())


def test_save_model_and_load_by_name(iris_table, tmp_path):
    model = iris_pipeline().fit(iris_table)
    summary = save_model(
        model,
        "iris_clustering",
        metrics={"average_distance": 0.05},
        extra={"dataset": "iris", "output_columns": ["PredictedLabel"]},
        root=tmp_path,
    )
    assert summary["model_path"].endswith("model.joblib")

    meta = json.loads((tmp_path / "iris_clustering" / "meta.json").read_text())
    assert meta["steps"] == ["features", "kmeans"]
    assert meta["inputs"] == ["SepalLength", "SepalWidth", "PetalLength", "PetalWidth"]

    loaded = load_trained_model("iris_clustering", root=tmp_path)
    assert loaded.name == "iris_clustering"
    assert loaded.dataset == "iris"
    assert loaded.output_columns == ["PredictedLabel"]
    row = next(iris_table.rows())
    assert loaded.pipeline.predict(row)["PredictedLabel"] == model.predict(row)["PredictedLabel"]


def test_missing_model_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_trained_model("nothing_here", root=tmp_path)
