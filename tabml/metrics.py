# tabml/metrics.py

"""
Evaluation of scored tables (the output of FittedPipeline.transform).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import numpy as np
from sklearn.metrics import (
    accuracy_score,
    davies_bouldin_score,
    f1_score,
    log_loss,
    mean_absolute_error,
    mean_squared_error,
    normalized_mutual_info_score,
    precision_score,
    r2_score,
    recall_score,
    roc_auc_score,
)

from .errors import InsufficientDataError
from .schema import ColumnType
from .table import Table


@dataclass
class BinaryClassificationMetrics:
    accuracy: float
    auc: Optional[float]
    f1_score: float
    precision: float
    recall: float
    log_loss: Optional[float]
    n_rows: int

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RegressionMetrics:
    r_squared: float
    rmse: float
    mae: float
    mse: float
    n_rows: int

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ClusteringMetrics:
    average_distance: float
    davies_bouldin_index: Optional[float]
    normalized_mutual_information: Optional[float]
    n_rows: int

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _scored(table: Table, *names: str) -> Table:
    for n in names:
        table.schema.require(n)
    scored = table.materialize()
    if len(scored) == 0:
        raise InsufficientDataError("Cannot evaluate an empty table")
    return scored


def evaluate_binary_classification(
    table: Table,
    label: str = "Label",
    score: str = "Score",
    probability: str = "Probability",
    predicted_label: str = "PredictedLabel",
) -> BinaryClassificationMetrics:
    """
    Accuracy, AUC, F1, precision, recall and log-loss.

    AUC and log-loss are None when the table holds a single class.
    """
    scored = _scored(table, label, score, probability, predicted_label)
    y_true = np.array(scored.column(label), dtype=int)
    y_pred = np.array(scored.column(predicted_label), dtype=int)
    y_score = np.array(scored.column(score), dtype=float)
    y_proba = np.array(scored.column(probability), dtype=float)

    auc = None
    loss = None
    if len(np.unique(y_true)) == 2:
        auc = float(roc_auc_score(y_true, y_score))
        loss = float(log_loss(y_true, np.clip(y_proba, 1e-15, 1 - 1e-15), labels=[0, 1]))

    return BinaryClassificationMetrics(
        accuracy=float(accuracy_score(y_true, y_pred)),
        auc=auc,
        f1_score=float(f1_score(y_true, y_pred, zero_division=0)),
        precision=float(precision_score(y_true, y_pred, zero_division=0)),
        recall=float(recall_score(y_true, y_pred, zero_division=0)),
        log_loss=loss,
        n_rows=len(scored),
    )


def evaluate_regression(table: Table, label: str = "Label", score: str = "Score") -> RegressionMetrics:
    scored = _scored(table, label, score)
    y_true = np.array(scored.column(label), dtype=float)
    y_pred = np.array(scored.column(score), dtype=float)
    mse = float(mean_squared_error(y_true, y_pred))

    # r2 is undefined for a single row
    r2 = float(r2_score(y_true, y_pred)) if len(y_true) > 1 else float("nan")

    return RegressionMetrics(
        r_squared=r2,
        rmse=float(np.sqrt(mse)),
        mae=float(mean_absolute_error(y_true, y_pred)),
        mse=mse,
        n_rows=len(scored),
    )


def evaluate_clustering(
    table: Table,
    features: str = "Features",
    score: str = "Score",
    predicted_label: str = "PredictedLabel",
    label: Optional[str] = None,
) -> ClusteringMetrics:
    """
    Average squared distance to the assigned centroid, Davies-Bouldin index
    (when at least two clusters are populated) and, if a reference label
    column is given, normalised mutual information.
    """
    names = (features, score, predicted_label) + ((label,) if label else ())
    scored = _scored(table, *names)
    X = scored.matrix(features)
    assigned = np.array(scored.column(predicted_label), dtype=int)
    distances = scored.matrix(score)
    avg = float(distances[np.arange(len(assigned)), assigned].mean())

    dbi = None
    n_populated = len(np.unique(assigned))
    if 2 <= n_populated < len(assigned):
        dbi = float(davies_bouldin_score(X, assigned))

    nmi = None
    if label:
        ref = scored.column(label)
        if scored.schema[label].type == ColumnType.NUMERIC:
            ref = np.asarray(ref, dtype=float)
        nmi = float(normalized_mutual_info_score(ref, assigned))

    return ClusteringMetrics(
        average_distance=avg,
        davies_bouldin_index=dbi,
        normalized_mutual_information=nmi,
        n_rows=len(scored),
    )
