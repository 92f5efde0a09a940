"""
Continuous Backtesting — Walk-forward validation of the baseline forecasters.

For every split index from min_history_days to n-1 the model is refit on
the prefix [0, split) and asked for a one-step-ahead forecast, which is then
compared against the observed value at the split.

Metrics:
  - MAE:   mean absolute residual
  - SMAPE: mean of 2|a - p| / (|a| + |p|), a term is 0 when both are 0
  - MASE:  MAE / mean |first difference| of the full series.
           On a perfectly flat series the naive scale is 0 and MASE is
           reported as the raw MAE.
  - residual_std_dev: population std of the residuals, feeds interval width
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ml.forecasting import ModelType, train_model
from ml.stats import mean, population_std, round_metric


@dataclass(frozen=True)
class BacktestMetrics:
    mae: float
    smape: float
    mase: float
    sample_size: int
    residual_std_dev: float

    def summary(self) -> dict:
        return {
            "mae": self.mae,
            "smape": self.smape,
            "mase": self.mase,
            "sample_size": self.sample_size,
        }

    def to_json(self) -> str:
        # Stored shape is shared with the sync layer readers.
        return json.dumps(
            {"mae": self.mae, "smape": self.smape, "mase": self.mase, "sampleSize": self.sample_size}
        )


def naive_scale(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return float(np.abs(np.diff(np.asarray(values, dtype=float))).mean())


def calculate_backtest_metrics(
    values: Sequence[float],
    model_type: ModelType,
    min_history_days: int,
) -> BacktestMetrics:
    actuals: list[float] = []
    predictions: list[float] = []

    for split in range(min_history_days, len(values)):
        model = train_model(model_type, values[:split])
        predictions.append(max(0.0, model.predict(1)))
        actuals.append(values[split])

    actual = np.asarray(actuals, dtype=float)
    predicted = np.asarray(predictions, dtype=float)
    residuals = actual - predicted

    denominator = np.abs(actual) + np.abs(predicted)
    smape_terms = np.divide(
        2 * np.abs(residuals),
        denominator,
        out=np.zeros_like(residuals),
        where=denominator != 0,
    )

    mae = mean(np.abs(residuals))
    smape = mean(smape_terms)
    scale = naive_scale(values)
    mase = mae if scale == 0 else mae / scale

    return BacktestMetrics(
        mae=round_metric(mae),
        smape=round_metric(smape),
        mase=round_metric(mase),
        sample_size=int(residuals.size),
        residual_std_dev=round_metric(population_std(residuals)),
    )
