"""
Model Training — Closed-form baseline forecasters.

Two families, both cheap enough to refit at every backtest split:
  - holt-winters: double exponential smoothing (level + trend, no seasonal term)
  - linear-regression: OLS trend line over the integer index

Each trainer returns a ModelState carrying a serializable config and a
predict(horizon_days) closure. Forecasts are clamped at zero.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from ml.stats import round_metric

ModelType = Literal["holt-winters", "linear-regression"]

MODEL_TYPES: tuple[ModelType, ...] = ("holt-winters", "linear-regression")
MODEL_VERSION = "v1"

HOLT_ALPHA = 0.4
HOLT_BETA = 0.2


@dataclass(frozen=True)
class ModelState:
    model_type: ModelType
    version: str
    config: dict[str, Any]
    predictor: Callable[[int], float] = field(repr=False, compare=False)

    def predict(self, horizon_days: int) -> float:
        return self.predictor(horizon_days)


def _zero(_: int) -> float:
    return 0.0


def train_linear_regression(values: Sequence[float]) -> ModelState:
    n = len(values)
    if n == 0:
        return ModelState(
            model_type="linear-regression",
            version=MODEL_VERSION,
            config={"strategy": "trend-line", "slope": 0.0, "intercept": 0.0},
            predictor=_zero,
        )

    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for x, y in enumerate(values):
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_xx += x * x

    denominator = n * sum_xx - sum_x * sum_x
    slope = 0.0 if denominator == 0 else (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    def predict(horizon_days: int) -> float:
        return max(0.0, intercept + slope * (n - 1 + horizon_days))

    return ModelState(
        model_type="linear-regression",
        version=MODEL_VERSION,
        config={
            "strategy": "trend-line",
            "slope": round_metric(slope),
            "intercept": round_metric(intercept),
        },
        predictor=predict,
    )


def train_holt_winters(values: Sequence[float]) -> ModelState:
    if len(values) == 0:
        return ModelState(
            model_type="holt-winters",
            version=MODEL_VERSION,
            config={
                "strategy": "double-exponential",
                "alpha": HOLT_ALPHA,
                "beta": HOLT_BETA,
                "level": 0.0,
                "trend": 0.0,
            },
            predictor=_zero,
        )

    level = float(values[0])
    trend = float(values[1]) - level if len(values) >= 2 else 0.0

    for value in values[1:]:
        previous_level = level
        level = HOLT_ALPHA * value + (1 - HOLT_ALPHA) * (level + trend)
        trend = HOLT_BETA * (level - previous_level) + (1 - HOLT_BETA) * trend

    def predict(horizon_days: int) -> float:
        return max(0.0, level + horizon_days * trend)

    return ModelState(
        model_type="holt-winters",
        version=MODEL_VERSION,
        config={
            "strategy": "double-exponential",
            "alpha": HOLT_ALPHA,
            "beta": HOLT_BETA,
            "level": round_metric(level),
            "trend": round_metric(trend),
        },
        predictor=predict,
    )


def train_model(model_type: ModelType, values: Sequence[float]) -> ModelState:
    if model_type == "holt-winters":
        return train_holt_winters(values)
    return train_linear_regression(values)
