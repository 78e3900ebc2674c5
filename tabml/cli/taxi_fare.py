# tabml/cli/taxi_fare.py

"""
Predict New York taxi fares with boosted regression trees.

Categorical trip attributes are one-hot encoded and joined with the
numeric ones into a feature vector; FareAmount is copied to Label.
"""

from __future__ import annotations

from tabml import config
from tabml.datasets import TAXI_SCHEMA, load_taxi_splits
from tabml.metrics import evaluate_regression
from tabml.models import create_trainer
from tabml.persistence import save_model
from tabml.pipeline import Pipeline
from tabml.predict import PredictionEngine
from tabml.transforms import Concatenate, CopyColumns, OneHotEncode

FEATURES = "Features"
MODEL_NAME = "taxi_fare"

TAXI_TRIP_SAMPLE = {
    "VendorId": "VTS",
    "RateCode": "1",
    "PassengerCount": 1,
    "TripTime": 1140,
    "TripDistance": 3.75,
    "PaymentType": "CRD",
    "FareAmount": 0,  # to predict; actual fare is 15.5
}
ACTUAL_FARE = 15.5


def build_pipeline(seed: int = config.RANDOM_SEED) -> Pipeline:
    return Pipeline(
        TAXI_SCHEMA,
        steps=[
            ("label", CopyColumns("Label", "FareAmount")),
            ("vendor", OneHotEncode("VendorIdEncoded", "VendorId")),
            ("rate_code", OneHotEncode("RateCodeEncoded", "RateCode")),
            ("payment_type", OneHotEncode("PaymentTypeEncoded", "PaymentType")),
            (
                "features",
                Concatenate(
                    FEATURES,
                    ["VendorIdEncoded", "RateCodeEncoded", "PassengerCount", "TripDistance", "PaymentTypeEncoded"],
                ),
            ),
            ("fast_tree", create_trainer("fast_tree", seed=seed, features=FEATURES, label="Label")),
        ],
    )


def main():
    config.configure_logging()

    data = load_taxi_splits()
    model = build_pipeline().fit(data.train)

    metrics = evaluate_regression(model.transform(data.test))
    print()
    print("*************************************************")
    print("*       Model quality metrics evaluation         ")
    print("*------------------------------------------------")
    print(f"*       RSquared Score:      {metrics.r_squared:0.2f}")
    print(f"*       Root Mean Squared Error:      {metrics.rmse:.2f}")

    save_model(
        model,
        MODEL_NAME,
        metrics=metrics.as_dict(),
        extra={"dataset": "taxi_fare", "output_columns": ["Score"]},
    )

    engine = PredictionEngine(model, ["Score"])
    prediction = engine.predict(TAXI_TRIP_SAMPLE)
    print("**********************************************************************")
    print(f"Predicted fare: {prediction['Score']:0.4f}, actual fare: {ACTUAL_FARE}")
    print("**********************************************************************")


if __name__ == "__main__":
    main()
