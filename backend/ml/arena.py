"""
Model Arena — Quality gate and deterministic ranking of baseline models.

Lifecycle of one training run:
  1. Backtest every model family on the full series
  2. Refit on the full series and build the forecast band
  3. Rank by (smape, mae, model_type) ascending
  4. Gate: smape <= smape_max AND mase <= mase_max
  5. First passing model -> 'active', other passing -> 'shadow',
     failing -> 'rejected'

At most one evaluation per run is ever 'active'.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Literal

import structlog

from ml.backtest import BacktestMetrics, calculate_backtest_metrics
from ml.forecasting import MODEL_TYPES, ModelType, train_model
from ml.predict import ForecastPoint, build_forecast_points
from ml.series import SeriesPoint

logger = structlog.get_logger()

ModelStatus = Literal["active", "shadow", "rejected"]


@dataclass(frozen=True)
class QualityGate:
    smape_max: float = 0.35
    mase_max: float = 2.0

    def passes(self, metrics: BacktestMetrics) -> bool:
        return metrics.smape <= self.smape_max and metrics.mase <= self.mase_max


@dataclass(frozen=True)
class ModelEvaluation:
    model_type: ModelType
    version: str
    config: dict[str, Any]
    metrics: BacktestMetrics
    status: ModelStatus = "rejected"
    predictions: list[ForecastPoint] = field(default_factory=list)


def _ranking_key(evaluation: ModelEvaluation) -> tuple[float, float, str]:
    return (evaluation.metrics.smape, evaluation.metrics.mae, evaluation.model_type)


def assign_statuses(
    evaluations: Sequence[ModelEvaluation],
    quality_gate: QualityGate,
) -> list[ModelEvaluation]:
    """Rank evaluations and stamp each with active/shadow/rejected."""
    ranked = sorted(evaluations, key=_ranking_key)
    result: list[ModelEvaluation] = []
    has_active = False

    for evaluation in ranked:
        if not quality_gate.passes(evaluation.metrics):
            status: ModelStatus = "rejected"
        elif not has_active:
            status = "active"
            has_active = True
        else:
            status = "shadow"
        result.append(replace(evaluation, status=status))

    return result


def evaluate_models(
    series: Sequence[SeriesPoint],
    horizon_days: int,
    min_history_days: int,
    quality_gate: QualityGate,
) -> list[ModelEvaluation]:
    if not series:
        return []

    values = [point.value for point in series]
    latest_date = series[-1].date

    evaluations: list[ModelEvaluation] = []
    for model_type in MODEL_TYPES:
        metrics = calculate_backtest_metrics(values, model_type, min_history_days)
        model = train_model(model_type, values)
        predictions = build_forecast_points(model, latest_date, horizon_days, metrics.residual_std_dev)
        evaluations.append(
            ModelEvaluation(
                model_type=model_type,
                version=model.version,
                config=model.config,
                metrics=metrics,
                predictions=predictions,
            )
        )

    ranked = assign_statuses(evaluations, quality_gate)
    logger.debug(
        "arena.ranked",
        ranking=[(e.model_type, e.status, e.metrics.smape, e.metrics.mase) for e in ranked],
    )
    return ranked
