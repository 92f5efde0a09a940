"""
Forecast Baseline — Train, backtest, gate and publish per-channel forecasts.

Pipeline:
  series -> backtest both families -> quality gate -> p10/p50/p90 band
  -> one transaction: demote previous active model, insert models,
     backtests and predictions

A series shorter than min_history_days is a successful
'insufficient_data' result and performs no writes.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ml.arena import ModelEvaluation, QualityGate, evaluate_models
from ml.errors import MLInputError, SeriesEmptyError
from ml.predict import ForecastPoint
from ml.repository import MLRepository
from ml.series import ensure_channel_id, ensure_metric, get_metric_series
from ml.stats import isoformat_utc, to_utc_naive, utc_now

logger = structlog.get_logger()

DEFAULT_HORIZON_DAYS = 7
DEFAULT_MIN_HISTORY_DAYS = 30


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _validate_run_input(channel_id: str, horizon_days: Any, min_history_days: Any) -> None:
    ensure_channel_id(channel_id)
    if not _is_positive_int(horizon_days):
        raise MLInputError(
            "ML_INVALID_INPUT",
            "Forecast horizon must be a positive integer.",
            {"horizon_days": horizon_days},
        )
    if not _is_positive_int(min_history_days):
        raise MLInputError(
            "ML_INVALID_INPUT",
            "Minimum history must be a positive integer.",
            {"min_history_days": min_history_days},
        )


async def _persist_evaluations(
    repository: MLRepository,
    channel_id: str,
    target_metric: str,
    evaluations: list[ModelEvaluation],
    source_sync_run_id: int | None,
    trained_at: datetime,
) -> list[int]:
    async def write() -> list[int]:
        await repository.clear_active_models(channel_id, target_metric)

        model_ids: list[int] = []
        for evaluation in evaluations:
            model_id = await repository.insert_model(
                channel_id=channel_id,
                target_metric=target_metric,
                model_type=evaluation.model_type,
                version=evaluation.version,
                status=evaluation.status,
                is_active=1 if evaluation.status == "active" else 0,
                config_json=json.dumps(evaluation.config),
                metrics_json=evaluation.metrics.to_json(),
                source_sync_run_id=source_sync_run_id,
                trained_at=trained_at,
            )
            await repository.insert_backtest(
                model_id=model_id,
                channel_id=channel_id,
                target_metric=target_metric,
                mae=evaluation.metrics.mae,
                smape=evaluation.metrics.smape,
                mase=evaluation.metrics.mase,
                sample_size=evaluation.metrics.sample_size,
                metadata_json=json.dumps({"modelType": evaluation.model_type, "version": evaluation.version}),
                created_at=trained_at,
            )
            for point in evaluation.predictions:
                await repository.insert_prediction(
                    model_id=model_id,
                    channel_id=channel_id,
                    target_metric=target_metric,
                    prediction_date=point.date,
                    horizon_days=point.horizon_days,
                    predicted_value=point.predicted,
                    actual_value=None,
                    p10=point.p10,
                    p50=point.p50,
                    p90=point.p90,
                    generated_at=trained_at,
                )
            model_ids.append(model_id)
        return model_ids

    return await repository.run_in_transaction(write)


async def run_baseline(
    db: AsyncSession,
    channel_id: str,
    target_metric: str = "views",
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    min_history_days: int = DEFAULT_MIN_HISTORY_DAYS,
    quality_gate: QualityGate | None = None,
    source_sync_run_id: int | None = None,
    clock: Callable[[], datetime] | None = None,
    repository: MLRepository | None = None,
) -> dict:
    """
    Train both baseline families and publish the winning forecast.

    Returns:
        dict with {channel_id, target_metric, status, reason,
        active_model_type, trained_at, predictions_generated, models}

    Raises:
        MLInputError: bad channel_id, metric, horizon or min history (before any I/O).
        SeriesReadError / SeriesInvalidError: series could not be read.
        SeriesEmptyError: the channel has no rows at all.
        RepositoryError: a write step failed; nothing was committed.
    """
    _validate_run_input(channel_id, horizon_days, min_history_days)
    ensure_metric(target_metric)
    quality_gate = quality_gate or QualityGate()
    clock = clock or utc_now
    repository = repository or MLRepository(db)

    trained_at = to_utc_naive(clock())

    series = await get_metric_series(db, channel_id, target_metric)
    if not series:
        raise SeriesEmptyError(
            "ML_SERIES_EMPTY",
            "No time series data for the requested channel.",
            {"channel_id": channel_id, "target_metric": target_metric},
        )

    if len(series) < min_history_days:
        logger.info(
            "ml_baseline.insufficient_data",
            channel_id=channel_id,
            target_metric=target_metric,
            points=len(series),
            min_history_days=min_history_days,
        )
        return {
            "channel_id": channel_id,
            "target_metric": target_metric,
            "status": "insufficient_data",
            "reason": f"Not enough history to train (at least {min_history_days} days required).",
            "active_model_type": None,
            "trained_at": None,
            "predictions_generated": 0,
            "models": [],
        }

    logger.info(
        "ml_baseline.started",
        channel_id=channel_id,
        target_metric=target_metric,
        points=len(series),
        horizon_days=horizon_days,
    )

    evaluations = evaluate_models(series, horizon_days, min_history_days, quality_gate)
    model_ids = await _persist_evaluations(
        repository,
        channel_id,
        target_metric,
        evaluations,
        source_sync_run_id,
        trained_at,
    )

    active = next((e for e in evaluations if e.status == "active"), None)
    models = [
        {
            "model_id": model_id,
            "model_type": evaluation.model_type,
            "status": evaluation.status,
            "metrics": evaluation.metrics.summary(),
        }
        for model_id, evaluation in zip(model_ids, evaluations)
    ]
    predictions_generated = sum(len(e.predictions) for e in evaluations)

    logger.info(
        "ml_baseline.completed",
        channel_id=channel_id,
        target_metric=target_metric,
        active_model_type=active.model_type if active else None,
        predictions_generated=predictions_generated,
    )

    return {
        "channel_id": channel_id,
        "target_metric": target_metric,
        "status": "completed",
        "reason": None,
        "active_model_type": active.model_type if active else None,
        "trained_at": isoformat_utc(trained_at),
        "predictions_generated": predictions_generated,
        "models": models,
    }


async def get_latest_forecast(
    db: AsyncSession,
    channel_id: str,
    target_metric: str = "views",
) -> dict:
    """Forecast points of the current active model, or an empty result."""
    ensure_channel_id(channel_id)
    ensure_metric(target_metric)
    repository = MLRepository(db)

    model = await repository.get_latest_active_model(channel_id, target_metric)
    if model is None:
        return {
            "channel_id": channel_id,
            "target_metric": target_metric,
            "model_type": None,
            "trained_at": None,
            "points": [],
        }

    predictions = await repository.get_predictions_by_model(model.id)
    return {
        "channel_id": channel_id,
        "target_metric": target_metric,
        "model_type": model.model_type,
        "trained_at": isoformat_utc(model.trained_at),
        "points": [
            ForecastPoint(
                date=row.prediction_date,
                horizon_days=row.horizon_days,
                predicted=row.predicted_value,
                p10=row.p10,
                p50=row.p50,
                p90=row.p90,
            ).to_dict()
            for row in predictions
        ],
    }
