# tabml/serve.py

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from . import config
from .errors import TabMLError
from .predict import load_trained_model, predict_records


# ---------- Request / Response schemas ----------

class PredictRequest(BaseModel):
    # each record is a dict of input column -> value
    records: List[Dict[str, Any]]


class PredictResponse(BaseModel):
    model_name: str
    dataset: Optional[str] = None
    n_instances: int
    predictions: List[Dict[str, Any]]


# ---------- FastAPI app ----------

app = FastAPI(title="tabml Prediction API")


@lru_cache(maxsize=1)
def get_loaded_model():
    """Load and cache the fitted pipeline named by TABML_MODEL_NAME."""
    return load_trained_model(config.DEFAULT_MODEL_NAME)


@app.get("/health")
def health():
    loaded = get_loaded_model()
    return {
        "status": "ok",
        "model_name": loaded.name,
        "dataset": loaded.dataset,
        "inputs": list(loaded.pipeline.inputs),
        "outputs": loaded.output_columns,
    }


@app.post("/predict", response_model=PredictResponse)
def predict(req: PredictRequest):
    """
    Score records with the loaded pipeline.

    Expects:
      {
        "records": [
          {"SepalLength": 5.1, "SepalWidth": 3.5, "PetalLength": 1.4, "PetalWidth": 0.2},
          {...}
        ]
      }
    """
    loaded = get_loaded_model()

    if not req.records:
        raise HTTPException(status_code=400, detail="No records provided.")

    try:
        preds = predict_records(loaded, req.records)
    except TabMLError as e:
        raise HTTPException(status_code=400, detail=f"Error during prediction: {e}")

    return PredictResponse(
        model_name=loaded.name,
        dataset=loaded.dataset,
        n_instances=len(preds),
        predictions=preds,
    )
