# tabml/models.py

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict

from .anomaly import IidChangePointDetector, IidSpikeDetector
from .pipeline import Stage
from .trainers import (
    FastTreeRegression,
    KMeansTrainer,
    MatrixFactorizationTrainer,
    SdcaLogisticRegression,
)


class TrainerFamily(str, Enum):
    CLUSTERING = "clustering"
    RECOMMENDATION = "recommendation"
    BINARY_CLASSIFICATION = "binary_classification"
    REGRESSION = "regression"
    ANOMALY_DETECTION = "anomaly_detection"


@dataclass
class TrainerSpec:
    """
    High-level description of a trainer.
    - family: what kind of task it solves
    - factory: the Stage class to instantiate
    - seeded: whether the trainer takes a `seed` option
    - defaults: options applied unless the caller overrides them
    """
    family: TrainerFamily
    factory: type
    seeded: bool = True
    defaults: Dict[str, Any] = field(default_factory=dict)


_TRAINERS: Dict[str, TrainerSpec] = {
    "kmeans": TrainerSpec(TrainerFamily.CLUSTERING, KMeansTrainer),
    "matrix_factorization": TrainerSpec(TrainerFamily.RECOMMENDATION, MatrixFactorizationTrainer),
    "sdca_logistic_regression": TrainerSpec(TrainerFamily.BINARY_CLASSIFICATION, SdcaLogisticRegression),
    "fast_tree": TrainerSpec(TrainerFamily.REGRESSION, FastTreeRegression),
    "iid_spike": TrainerSpec(TrainerFamily.ANOMALY_DETECTION, IidSpikeDetector, seeded=False),
    "iid_changepoint": TrainerSpec(TrainerFamily.ANOMALY_DETECTION, IidChangePointDetector, seeded=False),
}

# Short aliases
_ALIASES = {
    "sdca": "sdca_logistic_regression",
    "logreg": "sdca_logistic_regression",
    "fasttree": "fast_tree",
    "mf": "matrix_factorization",
}


def get_trainer_spec(name: str) -> TrainerSpec:
    """
    Map a short, user-facing trainer name to its spec.
    """
    key = _ALIASES.get(name, name)
    try:
        return _TRAINERS[key]
    except KeyError:
        raise ValueError(f"Unknown trainer name: {name}") from None


def create_trainer(name: str, seed: int = None, **options: Any) -> Stage:
    """
    Instantiate a trainer stage by name. `seed` is forwarded only to the
    trainers that use randomness.
    """
    spec = get_trainer_spec(name)
    kwargs = dict(spec.defaults)
    kwargs.update(options)
    if spec.seeded and seed is not None:
        kwargs["seed"] = seed
    return spec.factory(**kwargs)


def list_trainers(family: TrainerFamily = None):
    return sorted(n for n, s in _TRAINERS.items() if family is None or s.family == family)
