"""
ML Router — Forecast baseline, anomaly and trend endpoints.

Defaults for horizon, history, quality gate and seasonality come from
Settings when a request leaves them out.
"""

from typing import Literal, NoReturn

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from core.config import get_settings
from ml.anomaly_trend import get_anomalies, get_trend, run_anomaly_trend
from ml.arena import QualityGate
from ml.baseline import get_latest_forecast, run_baseline
from ml.errors import MLError, MLInputError, SeriesEmptyError
from ml.series import TargetMetric

router = APIRouter(prefix="/api/v1/ml", tags=["ml"])
logger = structlog.get_logger()


# ─── Schemas ────────────────────────────────────────────────────────────────


class QualityGateRequest(BaseModel):
    smape_max: float | None = Field(None, ge=0)
    mase_max: float | None = Field(None, ge=0)


class RunBaselineRequest(BaseModel):
    channel_id: str = Field(..., min_length=1)
    target_metric: TargetMetric = "views"
    horizon_days: int | None = Field(None, gt=0)
    min_history_days: int | None = Field(None, gt=0)
    quality_gate: QualityGateRequest | None = None
    source_sync_run_id: int | None = None


class ModelMetricsResponse(BaseModel):
    mae: float
    smape: float
    mase: float
    sample_size: int


class ModelRunSummary(BaseModel):
    model_id: int
    model_type: str
    status: str
    metrics: ModelMetricsResponse


class RunBaselineResponse(BaseModel):
    channel_id: str
    target_metric: str
    status: Literal["completed", "insufficient_data"]
    reason: str | None
    active_model_type: str | None
    trained_at: str | None
    predictions_generated: int
    models: list[ModelRunSummary]


class ForecastPointResponse(BaseModel):
    date: str
    horizon_days: int
    predicted: float
    p10: float
    p50: float
    p90: float


class ForecastResponse(BaseModel):
    channel_id: str
    target_metric: str
    model_type: str | None
    trained_at: str | None
    points: list[ForecastPointResponse]


class RunAnomalyTrendRequest(BaseModel):
    channel_id: str = Field(..., min_length=1)
    target_metric: TargetMetric = "views"
    date_from: str | None = None
    date_to: str | None = None
    seasonality_period_days: int | None = Field(None, gt=0)
    source_sync_run_id: int | None = None


class RunAnomalyTrendResponse(BaseModel):
    channel_id: str
    target_metric: str
    analyzed_points: int
    anomalies_detected: int
    change_points_detected: int
    generated_at: str


class AnomalyResponse(BaseModel):
    id: int
    channel_id: str
    target_metric: str
    date: str
    metric_value: float
    baseline_value: float
    deviation_ratio: float
    z_score: float | None
    iqr_lower: float | None
    iqr_upper: float | None
    method: str
    confidence: str
    severity: str
    explanation: str
    source_sync_run_id: int | None
    detected_at: str


class AnomalyListResponse(BaseModel):
    channel_id: str
    target_metric: str
    date_from: str
    date_to: str
    total: int
    items: list[AnomalyResponse]


class TrendSummary(BaseModel):
    trend_direction: Literal["up", "down", "flat"]
    trend_delta: float


class TrendPoint(BaseModel):
    date: str
    value: float
    trend: float
    seasonal: float
    residual: float
    is_change_point: bool


class ChangePointResponse(BaseModel):
    date: str
    direction: Literal["up", "down"]
    magnitude: float
    score: float


class TrendResponse(BaseModel):
    channel_id: str
    target_metric: str
    date_from: str
    date_to: str
    seasonality_period_days: int
    summary: TrendSummary
    points: list[TrendPoint]
    change_points: list[ChangePointResponse]


# ─── Error mapping ──────────────────────────────────────────────────────────


def _raise_http(exc: MLError) -> NoReturn:
    if isinstance(exc, MLInputError):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, SeriesEmptyError):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        logger.error("ml_api.failed", code=exc.code, message=exc.message, context=exc.context)
    raise HTTPException(
        status_code=status_code,
        detail={"code": exc.code, "message": exc.message},
    ) from exc


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/forecast/run", response_model=RunBaselineResponse)
async def run_forecast_baseline(
    body: RunBaselineRequest,
    db: AsyncSession = Depends(get_db),
):
    """Train both baseline models and publish the forecast of the gate winner."""
    settings = get_settings()
    gate = body.quality_gate or QualityGateRequest()
    quality_gate = QualityGate(
        smape_max=gate.smape_max if gate.smape_max is not None else settings.ml_quality_gate_smape_max,
        mase_max=gate.mase_max if gate.mase_max is not None else settings.ml_quality_gate_mase_max,
    )
    try:
        return await run_baseline(
            db,
            channel_id=body.channel_id,
            target_metric=body.target_metric,
            horizon_days=body.horizon_days or settings.ml_forecast_horizon_days,
            min_history_days=body.min_history_days or settings.ml_min_history_days,
            quality_gate=quality_gate,
            source_sync_run_id=body.source_sync_run_id,
        )
    except MLError as exc:
        _raise_http(exc)


@router.get("/forecast", response_model=ForecastResponse)
async def latest_forecast(
    channel_id: str = Query(..., min_length=1),
    target_metric: TargetMetric = "views",
    db: AsyncSession = Depends(get_db),
):
    """Forecast points of the currently active model."""
    try:
        return await get_latest_forecast(db, channel_id, target_metric)
    except MLError as exc:
        _raise_http(exc)


@router.post("/anomalies/run", response_model=RunAnomalyTrendResponse)
async def run_anomaly_analysis(
    body: RunAnomalyTrendRequest,
    db: AsyncSession = Depends(get_db),
):
    """Detect anomalies and change points, replacing stored anomalies in the window."""
    settings = get_settings()
    try:
        return await run_anomaly_trend(
            db,
            channel_id=body.channel_id,
            target_metric=body.target_metric,
            date_from=body.date_from,
            date_to=body.date_to,
            seasonality_period_days=body.seasonality_period_days or settings.ml_seasonality_period_days,
            source_sync_run_id=body.source_sync_run_id,
        )
    except MLError as exc:
        _raise_http(exc)


@router.get("/anomalies", response_model=AnomalyListResponse)
async def list_anomalies(
    channel_id: str = Query(..., min_length=1),
    date_from: str = Query(...),
    date_to: str = Query(...),
    target_metric: TargetMetric = "views",
    severity: list[str] | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Persisted anomalies in the window, newest first."""
    try:
        return await get_anomalies(db, channel_id, target_metric, date_from, date_to, severity)
    except MLError as exc:
        _raise_http(exc)


@router.get("/trend", response_model=TrendResponse)
async def channel_trend(
    channel_id: str = Query(..., min_length=1),
    date_from: str = Query(...),
    date_to: str = Query(...),
    target_metric: TargetMetric = "views",
    seasonality_period_days: int | None = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
):
    """Trend decomposition with change points for the window."""
    settings = get_settings()
    try:
        return await get_trend(
            db,
            channel_id,
            target_metric,
            date_from,
            date_to,
            seasonality_period_days or settings.ml_seasonality_period_days,
        )
    except MLError as exc:
        _raise_http(exc)
