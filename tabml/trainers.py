# tabml/trainers.py

"""
Trainer stages.

Each trainer reads one numeric feature vector column (plus a label for the
supervised ones) and fits an immutable scoring stage. The numerical work is
delegated to scikit-learn where it has an equivalent estimator; matrix
factorization is solved here with alternating least squares.
"""

from __future__ import annotations

import logging
import warnings
from typing import Dict, List

import numpy as np
from scipy.special import expit
from sklearn.cluster import KMeans
from sklearn.ensemble import HistGradientBoostingRegressor
from sklearn.exceptions import ConvergenceWarning as SklearnConvergenceWarning
from sklearn.linear_model import LogisticRegression

from .errors import ConvergenceWarning, InsufficientDataError, SchemaError, UnknownCategoryError
from .pipeline import BatchFittedStage, Stage
from .schema import Column, ColumnType, Schema
from .table import Row, Table

logger = logging.getLogger(__name__)


def _frozen(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


def _feature_matrix(rows: List[Row], column: str) -> np.ndarray:
    return np.vstack([np.asarray(r[column], dtype=float) for r in rows])


# ---------- K-means clustering ----------

class KMeansModel(BatchFittedStage):
    """Nearest-centroid scoring: cluster id plus squared distances to every centroid."""

    def __init__(self, input_schema: Schema, features: str, centroids, score: str, predicted_label: str):
        self.centroids = _frozen(centroids)
        k = self.centroids.shape[0]
        output_schema = input_schema.add(
            Column(predicted_label, ColumnType.KEY, k),
            Column(score, ColumnType.VECTOR, k),
        )
        super().__init__(input_schema, output_schema)
        self.inputs = (features,)
        self.outputs = (predicted_label, score)

    @property
    def n_clusters(self) -> int:
        return self.centroids.shape[0]

    def distances(self, X: np.ndarray) -> np.ndarray:
        diff = X[:, None, :] - self.centroids[None, :, :]
        return np.einsum("ijk,ijk->ij", diff, diff)

    def transform_batch(self, rows: List[Row]) -> List[Row]:
        dist = self.distances(_feature_matrix(rows, self.inputs[0]))
        labels = dist.argmin(axis=1)
        predicted_label, score = self.outputs
        out = []
        for row, label, d in zip(rows, labels, dist):
            new = dict(row)
            new[predicted_label] = int(label)
            new[score] = d
            out.append(new)
        return out


class KMeansTrainer(Stage):
    """
    k-means with k-means++ seeding and Lloyd iterations.

    A single seeded initialisation is used, so fit is reproducible for a
    given seed.
    """

    def __init__(
        self,
        features: str = "Features",
        n_clusters: int = 5,
        max_iter: int = 1000,
        tol: float = 1e-7,
        seed: int = 0,
        score: str = "Score",
        predicted_label: str = "PredictedLabel",
    ):
        if n_clusters < 1:
            raise ValueError(f"n_clusters must be >= 1, got {n_clusters}")
        self.features = features
        self.n_clusters = n_clusters
        self.max_iter = max_iter
        self.tol = tol
        self.seed = seed
        self.score = score
        self.predicted_label = predicted_label

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.features, ColumnType.VECTOR)
        return input_schema.add(
            Column(self.predicted_label, ColumnType.KEY, self.n_clusters),
            Column(self.score, ColumnType.VECTOR, self.n_clusters),
        )

    def fit(self, table: Table) -> KMeansModel:
        self.output_schema(table.schema)
        X = table.matrix(self.features)
        if X.shape[0] < self.n_clusters:
            raise InsufficientDataError(
                f"Need at least {self.n_clusters} rows for {self.n_clusters} clusters, got {X.shape[0]}"
            )

        km = KMeans(
            n_clusters=self.n_clusters,
            init="k-means++",
            n_init=1,
            max_iter=self.max_iter,
            tol=self.tol,
            random_state=self.seed,
        )
        km.fit(X)
        if km.n_iter_ >= self.max_iter:
            warnings.warn(
                f"k-means stopped after {km.n_iter_} iterations without stabilising",
                ConvergenceWarning,
            )
        logger.info("k-means: %d clusters, %d iterations, inertia %.4f", self.n_clusters, km.n_iter_, km.inertia_)
        return KMeansModel(table.schema, self.features, km.cluster_centers_, self.score, self.predicted_label)


# ---------- Matrix factorization ----------

class MatrixFactorizationModel(BatchFittedStage):
    """
    Predicted value = dot product of the row and column factor vectors.

    Only keys that had at least one rating during fit can be scored.
    """

    def __init__(self, input_schema: Schema, row_key: str, column_key: str, row_factors, column_factors,
                 score: str, seen_rows, seen_columns):
        self.row_factors = _frozen(row_factors)
        self.column_factors = _frozen(column_factors)
        self.seen_rows = np.array(seen_rows, dtype=bool)
        self.seen_rows.setflags(write=False)
        self.seen_columns = np.array(seen_columns, dtype=bool)
        self.seen_columns.setflags(write=False)
        super().__init__(input_schema, input_schema.add(Column(score, ColumnType.NUMERIC)))
        self.inputs = (row_key, column_key)
        self.outputs = (score,)

    @property
    def rank(self) -> int:
        return self.row_factors.shape[1]

    def _keys(self, rows: List[Row], column: str, seen: np.ndarray) -> np.ndarray:
        keys = np.array([r[column] for r in rows], dtype=int)
        bad = (keys < 0) | (keys >= len(seen))
        bad[~bad] = ~seen[keys[~bad]]
        if bad.any():
            raise UnknownCategoryError(column, int(keys[bad][0]))
        return keys

    def transform_batch(self, rows: List[Row]) -> List[Row]:
        row_key, column_key = self.inputs
        r = self._keys(rows, row_key, self.seen_rows)
        c = self._keys(rows, column_key, self.seen_columns)
        scores = np.einsum("ij,ij->i", self.row_factors[r], self.column_factors[c])
        out = []
        for row, s in zip(rows, scores):
            new = dict(row)
            new[self.outputs[0]] = float(s)
            out.append(new)
        return out


def _solve_side(fixed: np.ndarray, groups: Dict[int, np.ndarray], other_idx: np.ndarray,
                y: np.ndarray, target: np.ndarray, reg: float) -> None:
    rank = fixed.shape[1]
    eye = np.eye(rank)
    for entity, obs in groups.items():
        F = fixed[other_idx[obs]]
        A = F.T @ F + reg * len(obs) * eye
        target[entity] = np.linalg.solve(A, F.T @ y[obs])


def _group(keys: np.ndarray) -> Dict[int, np.ndarray]:
    order = np.argsort(keys, kind="stable")
    uniq, starts = np.unique(keys[order], return_index=True)
    bounds = list(starts[1:]) + [len(order)]
    return {int(k): order[s:e] for k, s, e in zip(uniq, starts, bounds)}


class MatrixFactorizationTrainer(Stage):
    """
    Low-rank factorization of a sparse (row key, column key, value) matrix.

    Factors start from a seeded Gaussian and are refined by alternating
    least squares (weighted-lambda regularisation) for a fixed number of
    passes. Both index columns must be KEY columns, usually produced by
    MapValueToKey.
    """

    def __init__(
        self,
        row_key: str,
        column_key: str,
        label: str = "Label",
        rank: int = 8,
        n_iterations: int = 20,
        regularization: float = 0.1,
        seed: int = 0,
        score: str = "Score",
    ):
        if rank < 1:
            raise ValueError(f"rank must be >= 1, got {rank}")
        self.row_key = row_key
        self.column_key = column_key
        self.label = label
        self.rank = rank
        self.n_iterations = n_iterations
        self.regularization = regularization
        self.seed = seed
        self.score = score

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.row_key, ColumnType.KEY)
        input_schema.require(self.column_key, ColumnType.KEY)
        input_schema.require(self.label, ColumnType.NUMERIC)
        return input_schema.add(Column(self.score, ColumnType.NUMERIC))

    def fit(self, table: Table) -> MatrixFactorizationModel:
        self.output_schema(table.schema)
        n_rows = table.schema[self.row_key].size
        n_cols = table.schema[self.column_key].size
        if n_rows is None or n_cols is None:
            raise SchemaError("Matrix factorization needs key columns with a known key count")

        triples = [(r[self.row_key], r[self.column_key], r[self.label]) for r in table.rows()]
        if not triples:
            raise InsufficientDataError("Matrix factorization needs at least one rating")
        r_idx = np.array([t[0] for t in triples], dtype=int)
        c_idx = np.array([t[1] for t in triples], dtype=int)
        y = np.array([t[2] for t in triples], dtype=float)

        rng = np.random.default_rng(self.seed)
        P = rng.normal(0.0, 0.1, size=(n_rows, self.rank))
        Q = rng.normal(0.0, 0.1, size=(n_cols, self.rank))
        by_row = _group(r_idx)
        by_col = _group(c_idx)

        logger.info(
            "Matrix factorization: %d x %d, %d ratings, rank %d, %d iterations",
            n_rows, n_cols, len(y), self.rank, self.n_iterations,
        )
        for it in range(self.n_iterations):
            _solve_side(Q, by_row, c_idx, y, P, self.regularization)
            _solve_side(P, by_col, r_idx, y, Q, self.regularization)
            if logger.isEnabledFor(logging.DEBUG):
                pred = np.einsum("ij,ij->i", P[r_idx], Q[c_idx])
                logger.debug("iteration %d: train RMSE %.4f", it + 1, np.sqrt(np.mean((pred - y) ** 2)))

        seen_rows = np.zeros(n_rows, dtype=bool)
        seen_rows[list(by_row)] = True
        seen_columns = np.zeros(n_cols, dtype=bool)
        seen_columns[list(by_col)] = True
        return MatrixFactorizationModel(
            table.schema, self.row_key, self.column_key, P, Q, self.score, seen_rows, seen_columns,
        )


# ---------- Logistic regression (dual coordinate ascent) ----------

class LogisticRegressionModel(BatchFittedStage):
    def __init__(self, input_schema: Schema, features: str, weights, bias: float,
                 score: str, probability: str, predicted_label: str, threshold: float = 0.5):
        self.weights = _frozen(weights)
        self.bias = float(bias)
        self.threshold = threshold
        output_schema = input_schema.add(
            Column(score, ColumnType.NUMERIC),
            Column(probability, ColumnType.NUMERIC),
            Column(predicted_label, ColumnType.BOOLEAN),
        )
        super().__init__(input_schema, output_schema)
        self.inputs = (features,)
        self.outputs = (score, probability, predicted_label)

    def transform_batch(self, rows: List[Row]) -> List[Row]:
        margins = _feature_matrix(rows, self.inputs[0]) @ self.weights + self.bias
        probs = expit(margins)
        score, probability, predicted_label = self.outputs
        out = []
        for row, m, p in zip(rows, margins, probs):
            new = dict(row)
            new[score] = float(m)
            new[probability] = float(p)
            new[predicted_label] = bool(p >= self.threshold)
            out.append(new)
        return out


class SdcaLogisticRegression(Stage):
    """
    Binary logistic regression, L2-regularised, solved in the dual by
    coordinate ascent (liblinear).

    l2_regularization is the per-example weight of the L2 term; None keeps
    liblinear's default C=1.
    """

    def __init__(
        self,
        features: str = "Features",
        label: str = "Label",
        l2_regularization: float = None,
        max_iter: int = 1000,
        tol: float = 1e-4,
        seed: int = 0,
        score: str = "Score",
        probability: str = "Probability",
        predicted_label: str = "PredictedLabel",
    ):
        self.features = features
        self.label = label
        self.l2_regularization = l2_regularization
        self.max_iter = max_iter
        self.tol = tol
        self.seed = seed
        self.score = score
        self.probability = probability
        self.predicted_label = predicted_label

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.features, ColumnType.VECTOR)
        input_schema.require(self.label, ColumnType.BOOLEAN)
        return input_schema.add(
            Column(self.score, ColumnType.NUMERIC),
            Column(self.probability, ColumnType.NUMERIC),
            Column(self.predicted_label, ColumnType.BOOLEAN),
        )

    def fit(self, table: Table) -> LogisticRegressionModel:
        self.output_schema(table.schema)
        X = table.matrix(self.features)
        y = np.array(table.column(self.label), dtype=int)
        if len(np.unique(y)) < 2:
            raise InsufficientDataError("Logistic regression needs both label values in the training data")

        C = 1.0 if self.l2_regularization is None else 1.0 / (self.l2_regularization * len(y))
        clf = LogisticRegression(
            solver="liblinear",
            dual=True,
            C=C,
            max_iter=self.max_iter,
            tol=self.tol,
            random_state=self.seed,
        )
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", SklearnConvergenceWarning)
            clf.fit(X, y)
        n_iter = int(np.max(clf.n_iter_))
        if n_iter >= self.max_iter:
            warnings.warn(
                f"Logistic regression stopped after {n_iter} passes without converging",
                ConvergenceWarning,
            )
        logger.info("Logistic regression: %d rows, %d features, %d passes", X.shape[0], X.shape[1], n_iter)
        return LogisticRegressionModel(
            table.schema, self.features, clf.coef_[0], clf.intercept_[0],
            self.score, self.probability, self.predicted_label,
        )


# ---------- Boosted regression trees ----------

class FastTreeRegressionModel(BatchFittedStage):
    def __init__(self, input_schema: Schema, features: str, estimator: HistGradientBoostingRegressor, score: str):
        self.estimator = estimator
        super().__init__(input_schema, input_schema.add(Column(score, ColumnType.NUMERIC)))
        self.inputs = (features,)
        self.outputs = (score,)

    @property
    def n_trees(self) -> int:
        return self.estimator.n_iter_

    def transform_batch(self, rows: List[Row]) -> List[Row]:
        preds = self.estimator.predict(_feature_matrix(rows, self.inputs[0]))
        out = []
        for row, p in zip(rows, preds):
            new = dict(row)
            new[self.outputs[0]] = float(p)
            out.append(new)
        return out


class FastTreeRegression(Stage):
    """
    Gradient-boosted regression trees on binned features: each tree fits
    the residual of the ensemble so far and is shrunk by learning_rate.
    """

    def __init__(
        self,
        features: str = "Features",
        label: str = "Label",
        n_trees: int = 100,
        n_leaves: int = 20,
        min_examples_per_leaf: int = 10,
        learning_rate: float = 0.2,
        seed: int = 0,
        score: str = "Score",
    ):
        self.features = features
        self.label = label
        self.n_trees = n_trees
        self.n_leaves = n_leaves
        self.min_examples_per_leaf = min_examples_per_leaf
        self.learning_rate = learning_rate
        self.seed = seed
        self.score = score

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.features, ColumnType.VECTOR)
        input_schema.require(self.label, ColumnType.NUMERIC)
        return input_schema.add(Column(self.score, ColumnType.NUMERIC))

    def fit(self, table: Table) -> FastTreeRegressionModel:
        self.output_schema(table.schema)
        X = table.matrix(self.features)
        y = np.array(table.column(self.label), dtype=float)
        if len(y) < 2 * self.min_examples_per_leaf:
            raise InsufficientDataError(
                f"Need at least {2 * self.min_examples_per_leaf} rows to grow a tree, got {len(y)}"
            )

        est = HistGradientBoostingRegressor(
            max_iter=self.n_trees,
            max_leaf_nodes=self.n_leaves,
            min_samples_leaf=self.min_examples_per_leaf,
            learning_rate=self.learning_rate,
            early_stopping=False,
            random_state=self.seed,
        )
        est.fit(X, y)
        logger.info("Boosted trees: %d rows, %d features, %d trees", X.shape[0], X.shape[1], est.n_iter_)
        return FastTreeRegressionModel(table.schema, self.features, est, self.score)
