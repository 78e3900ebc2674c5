# tabml/predict.py

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import json
import logging

import numpy as np

from .config import PRETRAINED_DIR
from .errors import SchemaError
from .persistence import META_FILENAME, MODEL_FILENAME, load_from_file
from .pipeline import FittedPipeline

logger = logging.getLogger(__name__)


@dataclass
class LoadedModel:
    pipeline: FittedPipeline
    meta: Dict[str, Any]
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def dataset(self) -> Optional[str]:
        extra = self.meta.get("extra", {})
        if isinstance(extra, dict):
            return extra.get("dataset")
        return None

    @property
    def output_columns(self) -> List[str]:
        """Columns reported by predictions: meta 'extra.output_columns', else every output."""
        extra = self.meta.get("extra", {})
        if isinstance(extra, dict) and extra.get("output_columns"):
            return list(extra["output_columns"])
        return list(self.pipeline.outputs)


def load_trained_model(name: str, root: Optional[Path] = None) -> LoadedModel:
    """
    Load a fitted pipeline and its metadata from artifacts/pretrained/<name>/.

    Assumes:
      - model.joblib
      - meta.json  (optional)
    """
    model_dir = Path(root or PRETRAINED_DIR) / name
    pipeline = load_from_file(model_dir / MODEL_FILENAME)

    meta: Dict[str, Any] = {}
    meta_fp = model_dir / META_FILENAME
    if meta_fp.exists():
        try:
            meta = json.loads(meta_fp.read_text())
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable %s", meta_fp)

    return LoadedModel(pipeline=pipeline, meta=meta, path=model_dir)


def to_builtin(value: Any) -> Any:
    """numpy values -> plain Python (for printing and JSON)."""
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value


class PredictionEngine:
    """
    Score single rows with a fitted pipeline and keep only the named output
    columns, e.g. PredictionEngine(model, ["PredictedLabel", "Score"]).

    The fitted pipeline is immutable, so an engine may be shared.
    """

    def __init__(self, pipeline: FittedPipeline, output_columns: Optional[Sequence[str]] = None):
        self.pipeline = pipeline
        if output_columns is None:
            output_columns = pipeline.outputs
        for name in output_columns:
            pipeline.output_schema.require(name)
        self.output_columns = list(output_columns)

    def predict(self, row: Dict[str, Any]) -> Dict[str, Any]:
        scored = self.pipeline.predict(row)
        return {name: scored[name] for name in self.output_columns}

    def predict_many(self, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.predict(r) for r in rows]


def predict_records(loaded: LoadedModel, records: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Score a list of plain dict records (e.g. a JSON request body) and
    return JSON-friendly prediction records.
    """
    if not isinstance(records, (list, tuple)):
        raise SchemaError(f"Expected a list of records, got {type(records)}")
    engine = PredictionEngine(loaded.pipeline, loaded.output_columns)
    return [
        {k: to_builtin(v) for k, v in engine.predict(r).items()}
        for r in records
    ]
