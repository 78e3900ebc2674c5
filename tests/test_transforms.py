import numpy as np
import pytest

from tabml.errors import InsufficientDataError, SchemaError, UnknownCategoryError
from tabml.pipeline import Pipeline
from tabml.schema import ColumnType, Schema
from tabml.table import Table
from tabml.transforms import Concatenate, CopyColumns, FeaturizeText, MapValueToKey, OneHotEncode

COLORS = Schema([("color", ColumnType.TEXT), ("size", ColumnType.NUMERIC)])


@pytest.fixture
def colors():
    rows = [
        {"color": "red", "size": 1.0},
        {"color": "green", "size": 2.0},
        {"color": "red", "size": 3.0},
        {"color": "blue", "size": 4.0},
    ]
    return Table.from_records(COLORS, rows)


def test_one_hot_first_seen_order(colors):
    model = OneHotEncode("colorEncoded", "color").fit(colors)
    assert model.categories == ("red", "green", "blue")
    assert model.output_schema["colorEncoded"].size == 3

    out = model.transform_row({"color": "green", "size": 0.0})
    assert out["colorEncoded"].tolist() == [0.0, 1.0, 0.0]


def test_one_hot_seen_value_has_single_one(colors):
    model = OneHotEncode("colorEncoded", "color").fit(colors)
    for row in model.transform(colors).rows():
        vec = row["colorEncoded"]
        assert vec.sum() == 1.0
        assert vec[model.categories.index(row["color"])] == 1.0


def test_one_hot_unseen_value_is_all_zero(colors):
    model = OneHotEncode("colorEncoded", "color").fit(colors)
    out = model.transform_row({"color": "purple", "size": 0.0})
    assert out["colorEncoded"].tolist() == [0.0, 0.0, 0.0]


def test_map_value_to_key(colors):
    model = MapValueToKey("colorKey", "color").fit(colors)
    keys = model.transform(colors).column("colorKey")
    assert keys == [0, 1, 0, 2]
    assert model.output_schema["colorKey"].type == ColumnType.KEY
    assert model.output_schema["colorKey"].size == 3
    # same value, same key, every time
    assert model.key_of("blue") == model.key_of("blue") == 2
    assert model.knows("red") and not model.knows("purple")


def test_map_value_to_key_unseen_value_fails(colors):
    model = MapValueToKey("colorKey", "color").fit(colors)
    with pytest.raises(UnknownCategoryError) as info:
        model.transform_row({"color": "purple", "size": 0.0})
    assert info.value.column == "color"
    assert info.value.value == "purple"


def test_copy_columns(colors):
    model = CopyColumns("Label", "size").fit(colors)
    out = list(model.transform(colors).rows())
    assert [r["Label"] for r in out] == [1.0, 2.0, 3.0, 4.0]
    assert model.output_schema["Label"].type == ColumnType.NUMERIC


def test_concatenate_scalars_and_vectors(colors):
    pipeline = Pipeline(COLORS, [
        ("onehot", OneHotEncode("colorEncoded", "color")),
        ("features", Concatenate("Features", ["size", "colorEncoded"])),
    ])
    model = pipeline.fit(colors)
    first = next(model.transform(colors).rows())
    assert first["Features"].tolist() == [1.0, 1.0, 0.0, 0.0]
    assert model.output_schema["Features"].size == 4


def test_concatenate_missing_column_fails_at_construction():
    with pytest.raises(SchemaError, match="nope"):
        Pipeline(COLORS, [("features", Concatenate("Features", ["size", "nope"]))])


def test_concatenate_rejects_text():
    with pytest.raises(SchemaError):
        Pipeline(COLORS, [("features", Concatenate("Features", ["color"]))])


TEXT = Schema([("text", ColumnType.TEXT)])


@pytest.fixture
def sentences():
    rows = [
        {"text": "the food was great"},
        {"text": "the service was terrible"},
        {"text": "Great food, great place"},
    ]
    return Table.from_records(TEXT, rows)


def test_featurize_text_dimension_fixed_at_fit(sentences):
    model = FeaturizeText("Features", "text").fit(sentences)
    dim = model.dimension
    assert dim > 0
    assert model.output_schema["Features"].size == dim

    vec = model.transform_row({"text": "great food"})["Features"]
    assert vec.shape == (dim,)
    assert np.isclose(np.linalg.norm(vec), 1.0)


def test_featurize_text_unseen_tokens_contribute_nothing(sentences):
    model = FeaturizeText("Features", "text").fit(sentences)
    vec = model.transform_row({"text": "zebra xylophone"})["Features"]
    assert not vec.any()


def test_featurize_text_is_deterministic(sentences):
    a = FeaturizeText("Features", "text", char_ngrams=(3, 3)).fit(sentences)
    b = FeaturizeText("Features", "text", char_ngrams=(3, 3)).fit(sentences)
    assert a.dimension == b.dimension
    row = {"text": "the place was great"}
    assert np.array_equal(a.transform_row(row)["Features"], b.transform_row(row)["Features"])


def test_featurize_text_needs_a_vocabulary():
    empty = Table.from_records(TEXT, [{"text": "   "}])
    with pytest.raises(InsufficientDataError):
        FeaturizeText("Features", "text").fit(empty)
