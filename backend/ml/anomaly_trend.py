"""
Anomaly & Trend Analysis — Detect, persist and query anomalies; serve trend.

run_anomaly_trend() scores the full series, keeps what falls inside the
requested window and replaces the persisted anomalies for that window in a
single transaction. get_trend() is stateless: decomposition and change points
are recomputed on every call and never stored.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ml.anomaly import DetectedAnomaly, detect_anomalies
from ml.changepoints import detect_change_points
from ml.decomposition import decompose_series
from ml.errors import MLInputError
from ml.repository import MLRepository
from ml.series import (
    ensure_channel_id,
    ensure_metric,
    get_days_since_last_video_by_date,
    get_metric_series,
)
from ml.stats import isoformat_utc, mean, round_metric, to_utc_naive, utc_now

logger = structlog.get_logger()

DEFAULT_SEASONALITY_DAYS = 7

DateInput = date | str | None


# ─── Validation ─────────────────────────────────────────────────────────────


def _parse_date(value: DateInput, field: str) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise MLInputError(
            "ML_TREND_INVALID_DATE",
            "Analysis date range is invalid.",
            {field: value},
        ) from exc


def validate_date_range(date_from: DateInput, date_to: DateInput) -> tuple[date | None, date | None]:
    start = _parse_date(date_from, "date_from")
    end = _parse_date(date_to, "date_to")
    if start is not None and end is not None and start > end:
        raise MLInputError(
            "ML_TREND_INVALID_RANGE",
            "date_from cannot be later than date_to.",
            {"date_from": start.isoformat(), "date_to": end.isoformat()},
        )
    return start, end


def _require_range(date_from: DateInput, date_to: DateInput) -> tuple[date, date]:
    if date_from is None or date_to is None:
        raise MLInputError(
            "ML_TREND_INVALID_DATE",
            "Both date_from and date_to are required.",
            {"date_from": date_from, "date_to": date_to},
        )
    start, end = validate_date_range(date_from, date_to)
    return start, end


def _validate_period(seasonality_period_days: int) -> None:
    if isinstance(seasonality_period_days, bool) or not isinstance(seasonality_period_days, int) or seasonality_period_days <= 0:
        raise MLInputError(
            "ML_INVALID_INPUT",
            "Seasonality period must be a positive integer.",
            {"seasonality_period_days": seasonality_period_days},
        )


def is_within_range(day: date, date_from: date | None, date_to: date | None) -> bool:
    if date_from is not None and day < date_from:
        return False
    if date_to is not None and day > date_to:
        return False
    return True


# ─── Persistence ────────────────────────────────────────────────────────────


async def _replace_anomalies(
    repository: MLRepository,
    channel_id: str,
    target_metric: str,
    anomalies: Sequence[DetectedAnomaly],
    date_from: date | None,
    date_to: date | None,
    detected_at: datetime,
    source_sync_run_id: int | None,
) -> None:
    async def write() -> None:
        await repository.delete_anomalies(channel_id, target_metric, date_from, date_to)
        for anomaly in anomalies:
            await repository.insert_anomaly(
                channel_id=channel_id,
                target_metric=target_metric,
                date=anomaly.date,
                metric_value=anomaly.value,
                baseline_value=anomaly.baseline,
                deviation_ratio=anomaly.deviation_ratio,
                z_score=anomaly.z_score,
                iqr_lower=anomaly.iqr_lower,
                iqr_upper=anomaly.iqr_upper,
                method=anomaly.method,
                confidence=anomaly.confidence,
                severity=anomaly.severity,
                explanation=anomaly.explanation,
                source_sync_run_id=source_sync_run_id,
                detected_at=detected_at,
            )

    await repository.run_in_transaction(write)


# ─── Public operations ──────────────────────────────────────────────────────


async def run_anomaly_trend(
    db: AsyncSession,
    channel_id: str,
    target_metric: str = "views",
    date_from: DateInput = None,
    date_to: DateInput = None,
    seasonality_period_days: int = DEFAULT_SEASONALITY_DAYS,
    source_sync_run_id: int | None = None,
    clock: Callable[[], datetime] | None = None,
    repository: MLRepository | None = None,
) -> dict:
    """
    Detect anomalies and change points, replacing stored anomalies in the window.

    Returns:
        dict with {channel_id, target_metric, analyzed_points,
        anomalies_detected, change_points_detected, generated_at}
    """
    ensure_channel_id(channel_id)
    start, end = validate_date_range(date_from, date_to)
    ensure_metric(target_metric)
    _validate_period(seasonality_period_days)
    clock = clock or utc_now
    repository = repository or MLRepository(db)
    generated_at = to_utc_naive(clock())

    series = await get_metric_series(db, channel_id, target_metric)
    if not series:
        logger.info("anomaly_trend.empty_series", channel_id=channel_id, target_metric=target_metric)
        return {
            "channel_id": channel_id,
            "target_metric": target_metric,
            "analyzed_points": 0,
            "anomalies_detected": 0,
            "change_points_detected": 0,
            "generated_at": isoformat_utc(generated_at),
        }

    days_since = await get_days_since_last_video_by_date(db, channel_id)

    anomalies = [
        anomaly
        for anomaly in detect_anomalies(series, target_metric, days_since)
        if is_within_range(anomaly.date, start, end)
    ]
    decomposition = decompose_series(series, seasonality_period_days)
    change_points = [
        change_point
        for change_point in detect_change_points(decomposition, seasonality_period_days)
        if is_within_range(change_point.date, start, end)
    ]

    await _replace_anomalies(
        repository,
        channel_id,
        target_metric,
        anomalies,
        start,
        end,
        generated_at,
        source_sync_run_id,
    )

    analyzed_points = sum(1 for point in series if is_within_range(point.date, start, end))
    logger.info(
        "anomaly_trend.persisted",
        channel_id=channel_id,
        target_metric=target_metric,
        analyzed_points=analyzed_points,
        anomalies=len(anomalies),
        change_points=len(change_points),
    )

    return {
        "channel_id": channel_id,
        "target_metric": target_metric,
        "analyzed_points": analyzed_points,
        "anomalies_detected": len(anomalies),
        "change_points_detected": len(change_points),
        "generated_at": isoformat_utc(generated_at),
    }


async def get_anomalies(
    db: AsyncSession,
    channel_id: str,
    target_metric: str = "views",
    date_from: DateInput = None,
    date_to: DateInput = None,
    severities: Sequence[str] | None = None,
) -> dict:
    ensure_channel_id(channel_id)
    start, end = _require_range(date_from, date_to)
    ensure_metric(target_metric)
    normalized = [severity for severity in (severities or []) if severity]

    rows = await MLRepository(db).get_persisted_anomalies(channel_id, target_metric, start, end, normalized)
    items = [
        {
            "id": row.id,
            "channel_id": row.channel_id,
            "target_metric": row.target_metric,
            "date": row.date.isoformat(),
            "metric_value": row.metric_value,
            "baseline_value": row.baseline_value,
            "deviation_ratio": row.deviation_ratio,
            "z_score": row.z_score,
            "iqr_lower": row.iqr_lower,
            "iqr_upper": row.iqr_upper,
            "method": row.method,
            "confidence": row.confidence,
            "severity": row.severity,
            "explanation": row.explanation,
            "source_sync_run_id": row.source_sync_run_id,
            "detected_at": isoformat_utc(row.detected_at),
        }
        for row in rows
    ]

    return {
        "channel_id": channel_id,
        "target_metric": target_metric,
        "date_from": start.isoformat(),
        "date_to": end.isoformat(),
        "total": len(items),
        "items": items,
    }


def trend_direction(delta: float, average: float) -> str:
    threshold = max(1.0, abs(average) * 0.01)
    if abs(delta) <= threshold:
        return "flat"
    return "up" if delta > 0 else "down"


async def get_trend(
    db: AsyncSession,
    channel_id: str,
    target_metric: str = "views",
    date_from: DateInput = None,
    date_to: DateInput = None,
    seasonality_period_days: int = DEFAULT_SEASONALITY_DAYS,
) -> dict:
    """Decomposition points and change points inside the window, plus a summary."""
    ensure_channel_id(channel_id)
    start, end = _require_range(date_from, date_to)
    ensure_metric(target_metric)
    _validate_period(seasonality_period_days)

    result = {
        "channel_id": channel_id,
        "target_metric": target_metric,
        "date_from": start.isoformat(),
        "date_to": end.isoformat(),
        "seasonality_period_days": seasonality_period_days,
        "summary": {"trend_direction": "flat", "trend_delta": 0.0},
        "points": [],
        "change_points": [],
    }

    series = await get_metric_series(db, channel_id, target_metric)
    if not series:
        return result

    decomposition = decompose_series(series, seasonality_period_days)
    in_range = [point for point in decomposition if is_within_range(point.date, start, end)]
    change_points = {
        change_point.date: change_point
        for change_point in detect_change_points(decomposition, seasonality_period_days)
        if is_within_range(change_point.date, start, end)
    }

    if in_range:
        trend_delta = round_metric(in_range[-1].trend - in_range[0].trend)
        trend_average = mean([point.trend for point in in_range])
        result["summary"] = {
            "trend_direction": trend_direction(trend_delta, trend_average),
            "trend_delta": trend_delta,
        }

    result["points"] = [
        {
            "date": point.date.isoformat(),
            "value": point.value,
            "trend": point.trend,
            "seasonal": point.seasonal,
            "residual": point.residual,
            "is_change_point": point.date in change_points,
        }
        for point in in_range
    ]
    result["change_points"] = [change_points[day].to_dict() for day in sorted(change_points)]
    return result
