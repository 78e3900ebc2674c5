# tabml/cli/iris_clustering.py

"""
Cluster iris flowers into three groups with k-means.

Reads Data/iris.data, fits Concatenate -> KMeans, saves the fitted
pipeline under artifacts/pretrained/iris_clustering/ and prints the
cluster of a single setosa flower.
"""

from __future__ import annotations

from tabml import config
from tabml.datasets import IRIS_SCHEMA, load_iris
from tabml.metrics import evaluate_clustering
from tabml.models import create_trainer
from tabml.persistence import save_model
from tabml.pipeline import Pipeline
from tabml.predict import PredictionEngine
from tabml.transforms import Concatenate

FEATURES = "Features"
N_CLUSTERS = 3
MODEL_NAME = "iris_clustering"
OUTPUT_COLUMNS = ["PredictedLabel", "Score"]

SETOSA = {
    "SepalLength": 5.1,
    "SepalWidth": 3.5,
    "PetalLength": 1.4,
    "PetalWidth": 0.2,
}


def build_pipeline(seed: int = config.RANDOM_SEED) -> Pipeline:
    return Pipeline(
        IRIS_SCHEMA,
        steps=[
            ("features", Concatenate(FEATURES, IRIS_SCHEMA.names)),
            ("kmeans", create_trainer("kmeans", seed=seed, features=FEATURES, n_clusters=N_CLUSTERS)),
        ],
    )


def main():
    config.configure_logging()

    data = load_iris()
    model = build_pipeline().fit(data)

    metrics = evaluate_clustering(model.transform(data), features=FEATURES)
    summary = save_model(
        model,
        MODEL_NAME,
        metrics=metrics.as_dict(),
        extra={"dataset": "iris", "output_columns": OUTPUT_COLUMNS},
    )
    print(f"Saved model to {summary['model_path']}")
    print(f"Average distance: {metrics.average_distance:.4f}")

    engine = PredictionEngine(model, OUTPUT_COLUMNS)
    prediction = engine.predict(SETOSA)
    print(f"Cluster: {prediction['PredictedLabel']}")
    print(f"Distances: {' '.join(f'{d:.4f}' for d in prediction['Score'])}")


if __name__ == "__main__":
    main()
