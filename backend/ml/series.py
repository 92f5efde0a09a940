"""
Series Reader — Daily metric series and side signals for one channel.

The series is read in full, ordered by date, and validated row by row.
A single malformed row fails the whole read (fail-closed); there is no
per-row skipping here, unlike the tolerant CSV ingestion path.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Literal

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ChannelDay, ChannelFeature
from ml.errors import MLInputError, SeriesInvalidError, SeriesReadError

logger = structlog.get_logger()

TargetMetric = Literal["views", "subscribers"]
SUPPORTED_METRICS: tuple[str, ...] = ("views", "subscribers")


@dataclass(frozen=True)
class SeriesPoint:
    date: date
    value: float


class SeriesPointRow(BaseModel):
    """Schema every stored series row must satisfy."""

    model_config = ConfigDict(strict=False, allow_inf_nan=False)

    date: date
    value: float = Field(ge=0)


def ensure_metric(target_metric: str) -> str:
    if target_metric not in SUPPORTED_METRICS:
        raise MLInputError(
            "ML_INVALID_INPUT",
            f"Unsupported target metric '{target_metric}'.",
            {"target_metric": target_metric, "supported": list(SUPPORTED_METRICS)},
        )
    return target_metric


def ensure_channel_id(channel_id: str) -> str:
    if not isinstance(channel_id, str) or not channel_id.strip():
        raise MLInputError(
            "ML_INVALID_INPUT",
            "channel_id is required.",
            {"channel_id": channel_id},
        )
    return channel_id


async def get_metric_series(
    db: AsyncSession,
    channel_id: str,
    target_metric: str = "views",
) -> list[SeriesPoint]:
    """
    Read the ordered (date, value) series for a channel and metric.

    Raises:
        SeriesReadError: storage query failed.
        SeriesInvalidError: any row failed schema validation.
    """
    ensure_metric(target_metric)
    column = getattr(ChannelDay, target_metric)

    try:
        result = await db.execute(
            select(ChannelDay.date.label("date"), column.label("value"))
            .where(ChannelDay.channel_id == channel_id)
            .order_by(ChannelDay.date.asc())
        )
        rows = result.all()
    except SQLAlchemyError as exc:
        logger.error("series.read_failed", channel_id=channel_id, target_metric=target_metric, error=str(exc))
        raise SeriesReadError(
            "ML_SERIES_READ_FAILED",
            "Failed to read the metric series.",
            {"channel_id": channel_id, "target_metric": target_metric},
        ) from exc

    points: list[SeriesPoint] = []
    for row_index, row in enumerate(rows):
        try:
            parsed = SeriesPointRow.model_validate({"date": row.date, "value": row.value})
        except ValidationError as exc:
            logger.warning(
                "series.row_invalid",
                channel_id=channel_id,
                target_metric=target_metric,
                row_index=row_index,
            )
            raise SeriesInvalidError(
                "ML_SERIES_ROW_INVALID",
                "Metric series row has an invalid format.",
                {
                    "channel_id": channel_id,
                    "target_metric": target_metric,
                    "row_index": row_index,
                    "issues": exc.errors(include_url=False),
                },
            ) from exc
        points.append(SeriesPoint(date=parsed.date, value=float(parsed.value)))

    return points


async def get_days_since_last_video_by_date(
    db: AsyncSession,
    channel_id: str,
) -> dict[date, int | None]:
    """
    Map each feature date to the days elapsed since the previous upload.

    Used only to enrich anomaly explanations. When several feature-set
    versions exist for one date, the later version wins.
    """
    try:
        result = await db.execute(
            select(ChannelFeature.date, ChannelFeature.days_since_last_video)
            .where(ChannelFeature.channel_id == channel_id)
            .order_by(ChannelFeature.date.asc(), ChannelFeature.feature_set_version.asc())
        )
        rows = result.all()
    except SQLAlchemyError as exc:
        raise SeriesReadError(
            "ML_FEATURES_READ_FAILED",
            "Failed to read channel features for anomaly explanations.",
            {"channel_id": channel_id},
        ) from exc

    return {row.date: row.days_since_last_video for row in rows}
