# tabml/persistence.py

"""
Saving and loading fitted pipelines.

A saved model is a joblib pickle of a small versioned envelope around the
FittedPipeline (schemas plus every fitted stage's learned parameters).
Only load blobs you produced yourself: unpickling runs arbitrary code.
"""

from __future__ import annotations

import io
import json
import logging
import pickle
from pathlib import Path
from typing import Any, Dict, Optional, Union

from joblib import dump, load as joblib_load

from .config import PRETRAINED_DIR
from .errors import ModelFormatError
from .pipeline import FittedPipeline

logger = logging.getLogger(__name__)

FORMAT_NAME = "tabml.fitted_pipeline"
FORMAT_VERSION = 1

MODEL_FILENAME = "model.joblib"
META_FILENAME = "meta.json"


def save(fitted: FittedPipeline) -> bytes:
    """Serialize a fitted pipeline to bytes."""
    if not isinstance(fitted, FittedPipeline):
        raise TypeError(f"Expected FittedPipeline, got {type(fitted)}")
    buf = io.BytesIO()
    dump({"format": FORMAT_NAME, "version": FORMAT_VERSION, "pipeline": fitted}, buf)
    return buf.getvalue()


def load(blob: bytes) -> FittedPipeline:
    """Rebuild a fitted pipeline from save() output."""
    try:
        envelope = joblib_load(io.BytesIO(blob))
    except (pickle.UnpicklingError, EOFError, ValueError, KeyError, IndexError, TypeError,
            AttributeError, ImportError) as exc:
        raise ModelFormatError(f"Not a saved tabml model: {exc}") from exc

    if not isinstance(envelope, dict) or envelope.get("format") != FORMAT_NAME:
        raise ModelFormatError("Not a saved tabml model")
    if envelope.get("version") != FORMAT_VERSION:
        raise ModelFormatError(f"Unsupported model format version: {envelope.get('version')}")
    pipeline = envelope.get("pipeline")
    if not isinstance(pipeline, FittedPipeline):
        raise ModelFormatError("Saved model does not contain a fitted pipeline")
    return pipeline


def save_to_file(fitted: FittedPipeline, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(save(fitted))
    logger.info("Saved model to %s", path)
    return path


def load_from_file(path: Union[str, Path]) -> FittedPipeline:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")
    return load(path.read_bytes())


def save_model(
    fitted: FittedPipeline,
    name: str,
    metrics: Optional[Dict[str, Any]] = None,
    extra: Optional[Dict[str, Any]] = None,
    root: Optional[Path] = None,
) -> Dict[str, Any]:
    """
    Save model + metadata to <root>/<name>/ (root defaults to artifacts/pretrained).

    Returns a summary with the model path, metrics and extra info.
    """
    model_dir = Path(root or PRETRAINED_DIR) / name
    model_fp = save_to_file(fitted, model_dir / MODEL_FILENAME)

    meta = {
        "name": name,
        "inputs": list(fitted.inputs),
        "outputs": list(fitted.outputs),
        "steps": [step for step, _ in fitted.steps],
        "metrics": metrics or {},
        "extra": extra or {},
    }
    (model_dir / META_FILENAME).write_text(json.dumps(meta, indent=2))

    return {
        "model_path": str(model_fp),
        "metrics": meta["metrics"],
        "extra": meta["extra"],
    }
