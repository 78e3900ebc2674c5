# tabml/anomaly.py

"""
IID time-series anomaly detectors.

Both detectors are a pure fold over the rows of a table, in order:

    state  = (window of the last N values, last N log-martingale updates)
    output = [alert, raw value, p-value]            (spike)
             [alert, raw value, p-value, martingale] (change point)

p-value of a new value x against the window w_1..w_n: Gaussian kernel
density with Silverman's bandwidth h = 1.06 * std(w) * n^(-1/5), floored at
a tiny positive value so a constant window still works:

    two-sided: mean_i 2 * P(Z > |x - w_i| / h)
    positive : mean_i P(Z > (x - w_i) / h)     (only large values are odd)
    negative : mean_i P(Z < (x - w_i) / h)     (only small values are odd)

An empty window gives p = 0.5.

Spike: alert when p < 1 - confidence / 100.

Change point: power martingale with update eps * p^(eps - 1); the
martingale is the product of the last N updates. Under the no-change
hypothesis the martingale exceeds c with probability at most 1/c (Ville's
inequality), so the alert threshold is 1 / (1 - confidence / 100), i.e. 20
at 95% confidence. The update history is cleared after an alert.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from .pipeline import FittedStage, Stage
from .schema import Column, ColumnType, Schema
from .table import Row, Table

SIDES = ("two_sided", "positive", "negative")

_MIN_BANDWIDTH = 1e-12
_MIN_P_VALUE = 1e-12


def kernel_p_value(window: Sequence[float], x: float, side: str = "two_sided") -> float:
    n = len(window)
    if n == 0:
        return 0.5
    w = np.asarray(window, dtype=float)
    h = 1.06 * w.std() * n ** (-0.2)
    h = max(h, _MIN_BANDWIDTH * max(1.0, float(np.abs(w).max())))
    z = (x - w) / h
    if side == "positive":
        p = norm.sf(z).mean()
    elif side == "negative":
        p = norm.cdf(z).mean()
    else:
        p = (2.0 * norm.sf(np.abs(z))).mean()
    return float(min(1.0, p))


@dataclass(frozen=True)
class DetectorState:
    window: Tuple[float, ...] = ()
    log_updates: Tuple[float, ...] = ()


def _check_confidence(confidence: float) -> None:
    if not 0.0 < confidence < 100.0:
        raise ValueError(f"confidence must be in (0, 100), got {confidence}")


def _check_history(length: int) -> None:
    if length < 1:
        raise ValueError(f"history length must be >= 1, got {length}")


class IidDetectorModel(FittedStage):
    """Base for the sequential detectors; subclasses implement step()."""

    width = 3

    def __init__(self, input_schema: Schema, output: str, input: str, confidence: float, history_length: int):
        super().__init__(input_schema, input_schema.add(Column(output, ColumnType.VECTOR, self.width)))
        self.inputs = (input,)
        self.outputs = (output,)
        self.confidence = confidence
        self.history_length = history_length

    def initial_state(self) -> DetectorState:
        return DetectorState()

    def _push(self, window: Tuple[float, ...], value: float) -> Tuple[float, ...]:
        return (window + (value,))[-self.history_length:]

    def step(self, state: DetectorState, value: float) -> Tuple[DetectorState, np.ndarray]:
        raise NotImplementedError

    def detect(self, values: Sequence[float]) -> List[np.ndarray]:
        """Run the detector over a plain sequence of values."""
        state = self.initial_state()
        outputs = []
        for v in values:
            state, out = self.step(state, float(v))
            outputs.append(out)
        return outputs

    def transform(self, table: Table) -> Table:
        self.check_schema(table.schema)
        name_in, name_out = self.inputs[0], self.outputs[0]

        def _rows():
            state = self.initial_state()
            for row in table.rows():
                state, out = self.step(state, float(row[name_in]))
                new = dict(row)
                new[name_out] = out
                yield new

        return Table(self.result_schema(table.schema), _rows, restartable=table.restartable)

    def transform_row(self, row: Row) -> Row:
        _, out = self.step(self.initial_state(), float(row[self.inputs[0]]))
        new = dict(row)
        new[self.outputs[0]] = out
        return new


class IidSpikeModel(IidDetectorModel):
    width = 3

    def __init__(self, input_schema: Schema, output: str, input: str,
                 confidence: float, history_length: int, side: str):
        super().__init__(input_schema, output, input, confidence, history_length)
        self.side = side
        self.threshold = 1.0 - confidence / 100.0

    def step(self, state: DetectorState, value: float) -> Tuple[DetectorState, np.ndarray]:
        p = kernel_p_value(state.window, value, self.side)
        alert = 1.0 if p < self.threshold else 0.0
        new_state = DetectorState(self._push(state.window, value), state.log_updates)
        return new_state, np.array([alert, value, p])


class IidChangePointModel(IidDetectorModel):
    width = 4

    def __init__(self, input_schema: Schema, output: str, input: str,
                 confidence: float, history_length: int, epsilon: float):
        super().__init__(input_schema, output, input, confidence, history_length)
        self.epsilon = epsilon
        self.threshold = 1.0 / (1.0 - confidence / 100.0)
        self._log_threshold = math.log(self.threshold)

    def step(self, state: DetectorState, value: float) -> Tuple[DetectorState, np.ndarray]:
        p = kernel_p_value(state.window, value)
        update = math.log(self.epsilon) + (self.epsilon - 1.0) * math.log(max(p, _MIN_P_VALUE))
        log_updates = self._push(state.log_updates, update)
        log_martingale = math.fsum(log_updates)

        alert = log_martingale >= self._log_threshold
        martingale = math.exp(log_martingale)
        if alert:
            log_updates = ()

        new_state = DetectorState(self._push(state.window, value), log_updates)
        return new_state, np.array([1.0 if alert else 0.0, value, p, martingale])


class IidSpikeDetector(Stage):
    """Flags single points whose p-value under the recent window is too small."""

    def __init__(self, output: str, input: str, confidence: float = 95.0,
                 pvalue_history_length: int = 100, side: str = "two_sided"):
        _check_confidence(confidence)
        _check_history(pvalue_history_length)
        if side not in SIDES:
            raise ValueError(f"side must be one of {SIDES}, got {side!r}")
        self.output = output
        self.input = input
        self.confidence = confidence
        self.pvalue_history_length = pvalue_history_length
        self.side = side

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.input, ColumnType.NUMERIC)
        return input_schema.add(Column(self.output, ColumnType.VECTOR, IidSpikeModel.width))

    def fit(self, table: Table) -> IidSpikeModel:
        # nothing to learn: the window is filled while transforming
        self.output_schema(table.schema)
        return IidSpikeModel(
            table.schema, self.output, self.input,
            self.confidence, self.pvalue_history_length, self.side,
        )


class IidChangePointDetector(Stage):
    """Flags the start of a persistent shift using a power martingale over p-values."""

    def __init__(self, output: str, input: str, confidence: float = 95.0,
                 change_history_length: int = 20, epsilon: float = 0.1):
        _check_confidence(confidence)
        _check_history(change_history_length)
        if not 0.0 < epsilon < 1.0:
            raise ValueError(f"epsilon must be in (0, 1), got {epsilon}")
        self.output = output
        self.input = input
        self.confidence = confidence
        self.change_history_length = change_history_length
        self.epsilon = epsilon

    def output_schema(self, input_schema: Schema) -> Schema:
        input_schema.require(self.input, ColumnType.NUMERIC)
        return input_schema.add(Column(self.output, ColumnType.VECTOR, IidChangePointModel.width))

    def fit(self, table: Table) -> IidChangePointModel:
        self.output_schema(table.schema)
        return IidChangePointModel(
            table.schema, self.output, self.input,
            self.confidence, self.change_history_length, self.epsilon,
        )
