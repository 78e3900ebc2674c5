# tabml/cli/sentiment_analysis.py

"""
Classify Yelp review sentences as positive or negative.

Text is featurized into n-gram counts and a logistic regression is
trained on 80% of the sentences; the rest are used for evaluation.
"""

from __future__ import annotations

from tabml import config
from tabml.datasets import SENTIMENT_SCHEMA, train_test_sentiment
from tabml.metrics import evaluate_binary_classification
from tabml.models import create_trainer
from tabml.pipeline import Pipeline
from tabml.predict import PredictionEngine
from tabml.transforms import FeaturizeText

FEATURES = "Features"
TEST_FRACTION = 0.2
OUTPUT_COLUMNS = ["PredictedLabel", "Probability", "Score"]

SINGLE_SAMPLE = "This was a very bad steak"
BATCH_SAMPLES = [
    "This was a horrible meal",
    "I love this spaghetti.",
]


def build_pipeline(seed: int = config.RANDOM_SEED) -> Pipeline:
    return Pipeline(
        SENTIMENT_SCHEMA,
        steps=[
            ("featurize", FeaturizeText(FEATURES, "SentimentText")),
            ("sdca", create_trainer("sdca_logistic_regression", seed=seed, features=FEATURES, label="Label")),
        ],
    )


def _describe(text: str, prediction) -> str:
    sentiment = "Positive" if prediction["PredictedLabel"] else "Negative"
    return f"Sentiment: {text} | Prediction: {sentiment} | Probability: {prediction['Probability']:.4f} "


def main():
    config.configure_logging()

    splits = train_test_sentiment(test_fraction=TEST_FRACTION, seed=config.RANDOM_SEED)

    print("=============== Create and Train the Model ===============")
    model = build_pipeline().fit(splits.train)
    print("=============== End of training ===============")
    print()

    print("=============== Evaluating Model accuracy with Test data===============")
    metrics = evaluate_binary_classification(model.transform(splits.test))
    print()
    print("Model quality metrics evaluation")
    print("--------------------------------")
    print(f"Accuracy: {metrics.accuracy:.2%}")
    print(f"Auc: {metrics.auc:.2%}" if metrics.auc is not None else "Auc: n/a")
    print(f"F1Score: {metrics.f1_score:.2%}")
    print("=============== End of model evaluation ===============")

    engine = PredictionEngine(model, OUTPUT_COLUMNS)

    print()
    print("=============== Prediction Test of model with a single sample and test dataset ===============")
    print()
    print(_describe(SINGLE_SAMPLE, engine.predict({"SentimentText": SINGLE_SAMPLE})))
    print("=============== End of Predictions ===============")
    print()

    print("=============== Prediction Test of loaded model with multiple samples ===============")
    predictions = engine.predict_many({"SentimentText": t} for t in BATCH_SAMPLES)
    for text, prediction in zip(BATCH_SAMPLES, predictions):
        print(_describe(text, prediction))
    print("=============== End of predictions ===============")


if __name__ == "__main__":
    main()
