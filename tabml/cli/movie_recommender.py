# tabml/cli/movie_recommender.py

"""
Recommend movies with matrix factorization.

userId and movieId are mapped to dense keys, then an ALS factorization of
the rating matrix is fitted. Test ratings whose user or movie never
appears in the training file cannot be scored and are left out of the
evaluation.
"""

from __future__ import annotations

from tabml import config
from tabml.datasets import RATINGS_SCHEMA, load_ratings
from tabml.metrics import evaluate_regression
from tabml.models import create_trainer
from tabml.persistence import save_model
from tabml.pipeline import FittedPipeline, Pipeline
from tabml.predict import PredictionEngine
from tabml.transforms import MapValueToKey

MODEL_NAME = "movie_recommender"

APPROXIMATION_RANK = 100
NUMBER_OF_ITERATIONS = 100
RECOMMEND_THRESHOLD = 3.5

TEST_USER = 6
TEST_MOVIE = 10


def build_pipeline(seed: int = config.RANDOM_SEED) -> Pipeline:
    return Pipeline(
        RATINGS_SCHEMA,
        steps=[
            ("userIdEncoded", MapValueToKey("userIdEncoded", "userId")),
            ("movieIdEncoded", MapValueToKey("movieIdEncoded", "movieId")),
            (
                "matrix_factorization",
                create_trainer(
                    "matrix_factorization",
                    seed=seed,
                    row_key="userIdEncoded",
                    column_key="movieIdEncoded",
                    label="Label",
                    rank=APPROXIMATION_RANK,
                    n_iterations=NUMBER_OF_ITERATIONS,
                ),
            ),
        ],
    )


def can_score(model: FittedPipeline, user_id: float, movie_id: float) -> bool:
    users = model.named_steps["userIdEncoded"]
    movies = model.named_steps["movieIdEncoded"]
    return users.knows(user_id) and movies.knows(movie_id)


def main():
    config.configure_logging()

    data = load_ratings()

    print("=============== Training the model ===============")
    model = build_pipeline().fit(data.train)

    print("=============== Evaluating the model ===============")
    known = data.test.filter(lambda r: can_score(model, r["userId"], r["movieId"])).materialize()
    metrics = evaluate_regression(model.transform(known))
    print(f"Scored {metrics.n_rows} test ratings with known users and movies")
    print(f"Root Mean Squared Error : {metrics.rmse}")
    print(f"RSquared: {metrics.r_squared}")

    print("=============== Making a prediction ===============")
    if can_score(model, TEST_USER, TEST_MOVIE):
        engine = PredictionEngine(model, ["Score"])
        score = engine.predict({"userId": TEST_USER, "movieId": TEST_MOVIE})["Score"]
        if round(score, 1) > RECOMMEND_THRESHOLD:
            print(f"Movie {TEST_MOVIE} is recommended for user {TEST_USER}")
        else:
            print(f"Movie {TEST_MOVIE} is not recommended for user {TEST_USER}")
    else:
        print(f"User {TEST_USER} or movie {TEST_MOVIE} was not in the training data")

    print("=============== Saving the model to a file ===============")
    summary = save_model(
        model,
        MODEL_NAME,
        metrics=metrics.as_dict(),
        extra={"dataset": "movie_ratings", "output_columns": ["Score"]},
    )
    print(f"Saved model to {summary['model_path']}")


if __name__ == "__main__":
    main()
