# tabml/config.py

from pathlib import Path
import logging
import os

# Root of the project; overridable via env for containers
PROJECT_ROOT = Path(
    os.getenv("TABML_ROOT", Path(__file__).resolve().parents[1])
)

# Example datasets are read from ./Data relative to the working directory
DATA_DIR = Path(os.getenv("TABML_DATA_DIR", Path.cwd() / "Data"))

# Base artifacts directory (saved models and their meta.json)
ARTIFACTS_DIR = Path(os.getenv("TABML_ARTIFACTS_DIR", PROJECT_ROOT / "artifacts"))

# Where fitted pipelines are stored, one folder per model name
PRETRAINED_DIR = ARTIFACTS_DIR / "pretrained"

# Global random seed (overridable via env); passed explicitly to every fit
RANDOM_SEED = int(os.getenv("TABML_RANDOM_SEED", "0"))

# Model served by tabml.serve
DEFAULT_MODEL_NAME = os.getenv("TABML_MODEL_NAME", "iris_clustering")

LOG_LEVEL = os.getenv("TABML_LOG_LEVEL", "INFO")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Set up root logging for the command line entry points."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
