# tabml/cli/product_sales_anomaly.py

"""
Find spikes and change points in monthly product sales.

Both detectors are configured with 95% confidence and a history of a
quarter of the dataset's 36 months.
"""

from __future__ import annotations

from tabml import config
from tabml.anomaly import IidChangePointDetector, IidSpikeDetector
from tabml.datasets import PRODUCT_SALES_SCHEMA, load_product_sales
from tabml.pipeline import FittedPipeline, Pipeline
from tabml.table import Table

DOC_SIZE = 36
CONFIDENCE = 95.0
PREDICTION = "Prediction"


def spike_pipeline(history_length: int = DOC_SIZE // 4) -> Pipeline:
    return Pipeline(
        PRODUCT_SALES_SCHEMA,
        steps=[(
            "spike",
            IidSpikeDetector(PREDICTION, "numSales", confidence=CONFIDENCE, pvalue_history_length=history_length),
        )],
    )


def changepoint_pipeline(history_length: int = DOC_SIZE // 4) -> Pipeline:
    return Pipeline(
        PRODUCT_SALES_SCHEMA,
        steps=[(
            "changepoint",
            IidChangePointDetector(PREDICTION, "numSales", confidence=CONFIDENCE, change_history_length=history_length),
        )],
    )


def _fit_empty(pipeline: Pipeline) -> FittedPipeline:
    # the detectors learn nothing up front; fitting only needs the schema
    return pipeline.fit(Table.from_records(PRODUCT_SALES_SCHEMA, []))


def detect_spikes(sales: Table) -> None:
    model = _fit_empty(spike_pipeline())
    print("Alert\tScore\tP-Value")
    for row in model.transform(sales).rows():
        alert, score, p_value = row[PREDICTION]
        line = f"{int(alert)}\t{score:.2f}\t{p_value:.2f}"
        if alert == 1:
            line += " <-- Spike detected"
        print(line)
    print()


def detect_changepoints(sales: Table) -> None:
    model = _fit_empty(changepoint_pipeline())
    print("Alert\tScore\tP-Value\tMartingale value")
    for row in model.transform(sales).rows():
        alert, score, p_value, martingale = row[PREDICTION]
        line = f"{int(alert)}\t{score:.2f}\t{p_value:.2f}\t{martingale:.2f}"
        if alert == 1:
            line += " <-- alert is on, predicted changepoint"
        print(line)
    print()


def main():
    config.configure_logging()

    sales = load_product_sales()
    detect_spikes(sales)
    detect_changepoints(sales)


if __name__ == "__main__":
    main()
