# tabml/cli/serve.py

import argparse
import os

import uvicorn

from tabml import config


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve a saved tabml pipeline via FastAPI.")
    parser.add_argument(
        "--model-name",
        default="iris_clustering",
        help="Saved model directory under artifacts/pretrained/ to load.",
    )
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args()


def main():
    args = parse_args()

    # Tell tabml.serve which model to load
    os.environ["TABML_MODEL_NAME"] = args.model_name
    config.DEFAULT_MODEL_NAME = args.model_name

    uvicorn.run(
        "tabml.serve:app",
        host=args.host,
        port=args.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
