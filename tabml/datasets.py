# tabml/datasets.py

"""
Schemas and loaders for the example datasets under DATA_DIR.

Column positions are fixed ahead of time; nothing is inferred from the
files.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import DATA_DIR, RANDOM_SEED
from .data import load_text_table
from .schema import ColumnType, Schema
from .table import Table, train_test_split


# ---------- Paths to the example files ----------

IRIS_PATH = DATA_DIR / "iris.data"
RATINGS_TRAIN_PATH = DATA_DIR / "recommendation-ratings-train.csv"
RATINGS_TEST_PATH = DATA_DIR / "recommendation-ratings-test.csv"
SENTIMENT_PATH = DATA_DIR / "yelp_labelled.txt"
TAXI_TRAIN_PATH = DATA_DIR / "taxi-fare-train.csv"
TAXI_TEST_PATH = DATA_DIR / "taxi-fare-test.csv"
PRODUCT_SALES_PATH = DATA_DIR / "product-sales.csv"


# ---------- Schemas ----------

# iris.data: sepal length, sepal width, petal length, petal width, class name (ignored)
IRIS_SCHEMA = Schema([
    ("SepalLength", ColumnType.NUMERIC),
    ("SepalWidth", ColumnType.NUMERIC),
    ("PetalLength", ColumnType.NUMERIC),
    ("PetalWidth", ColumnType.NUMERIC),
])

# userId, movieId, rating[, timestamp]
RATINGS_SCHEMA = Schema([
    ("userId", ColumnType.NUMERIC),
    ("movieId", ColumnType.NUMERIC),
    ("Label", ColumnType.NUMERIC),
])

# sentence <TAB> 0/1
SENTIMENT_SCHEMA = Schema([
    ("SentimentText", ColumnType.TEXT),
    ("Label", ColumnType.BOOLEAN),
])

# vendor_id, rate_code, passenger_count, trip_time_in_secs, trip_distance, payment_type, fare_amount
TAXI_SCHEMA = Schema([
    ("VendorId", ColumnType.TEXT),
    ("RateCode", ColumnType.TEXT),
    ("PassengerCount", ColumnType.NUMERIC),
    ("TripTime", ColumnType.NUMERIC),
    ("TripDistance", ColumnType.NUMERIC),
    ("PaymentType", ColumnType.TEXT),
    ("FareAmount", ColumnType.NUMERIC),
])

# Month, numSales
PRODUCT_SALES_SCHEMA = Schema([
    ("Month", ColumnType.TEXT),
    ("numSales", ColumnType.NUMERIC),
])


# ---------- Simple containers ----------

@dataclass
class TrainTestTables:
    train: Table
    test: Table


# ---------- Loaders ----------

def load_iris(path: Optional[Path] = None) -> Table:
    return load_text_table(path or IRIS_PATH, IRIS_SCHEMA, has_header=False)


def load_ratings(train_path: Optional[Path] = None, test_path: Optional[Path] = None) -> TrainTestTables:
    """
    Movie ratings, already split into train and test files.
    """
    return TrainTestTables(
        train=load_text_table(train_path or RATINGS_TRAIN_PATH, RATINGS_SCHEMA, has_header=True),
        test=load_text_table(test_path or RATINGS_TEST_PATH, RATINGS_SCHEMA, has_header=True),
    )


def load_sentiment(path: Optional[Path] = None) -> Table:
    # sentences contain stray quotes; the file is not quoted
    return load_text_table(
        path or SENTIMENT_PATH,
        SENTIMENT_SCHEMA,
        has_header=False,
        separator="\t",
        quoting=csv.QUOTE_NONE,
    )


def train_test_sentiment(
    test_fraction: float = 0.2,
    seed: int = RANDOM_SEED,
    path: Optional[Path] = None,
) -> TrainTestTables:
    """
    Split the labelled sentences into train/test tables.
    """
    train, test = train_test_split(load_sentiment(path), test_fraction=test_fraction, seed=seed)
    return TrainTestTables(train=train, test=test)


def load_taxi_trips(path: Optional[Path] = None) -> Table:
    return load_text_table(path or TAXI_TRAIN_PATH, TAXI_SCHEMA, has_header=True)


def load_taxi_splits(train_path: Optional[Path] = None, test_path: Optional[Path] = None) -> TrainTestTables:
    return TrainTestTables(
        train=load_taxi_trips(train_path or TAXI_TRAIN_PATH),
        test=load_taxi_trips(test_path or TAXI_TEST_PATH),
    )


def load_product_sales(path: Optional[Path] = None) -> Table:
    return load_text_table(path or PRODUCT_SALES_PATH, PRODUCT_SALES_SCHEMA, has_header=True)
