"""
ML Repository — Transactional write ports and read queries for ML artifacts.

Each write port maps a storage failure to a RepositoryError whose code names
the step that failed. run_in_transaction() commits once at the end and, on
any exception, rolls back and re-raises that same exception object.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import date, datetime
from typing import TypeVar

import structlog
from sqlalchemy import case, delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import MLAnomaly, MLBacktest, MLModel, MLPrediction
from ml.errors import RepositoryError, SeriesReadError

logger = structlog.get_logger()

T = TypeVar("T")


class MLRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Transactions ───────────────────────────────────────────────────

    async def run_in_transaction(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await operation()
            await self.db.commit()
        except Exception as exc:
            await self.db.rollback()
            logger.warning("ml_repository.rolled_back", error_type=type(exc).__name__)
            raise
        return result

    # ─── Model writes ───────────────────────────────────────────────────

    async def clear_active_models(self, channel_id: str, target_metric: str) -> None:
        """Demote the current active model: is_active -> 0, 'active' -> 'shadow'."""
        try:
            await self.db.execute(
                update(MLModel)
                .where(
                    MLModel.channel_id == channel_id,
                    MLModel.target_metric == target_metric,
                    or_(MLModel.is_active == 1, MLModel.status == "active"),
                )
                .values(
                    is_active=0,
                    status=case((MLModel.status == "active", "shadow"), else_=MLModel.status),
                )
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "DB_ML_CLEAR_ACTIVE_FAILED",
                "Failed to clear the active model flag.",
                {"channel_id": channel_id, "target_metric": target_metric},
            ) from exc

    async def insert_model(
        self,
        *,
        channel_id: str,
        target_metric: str,
        model_type: str,
        version: str,
        status: str,
        is_active: int,
        config_json: str,
        metrics_json: str | None,
        source_sync_run_id: int | None,
        trained_at: datetime,
    ) -> int:
        row = MLModel(
            channel_id=channel_id,
            target_metric=target_metric,
            model_type=model_type,
            version=version,
            status=status,
            is_active=is_active,
            config_json=config_json,
            metrics_json=metrics_json,
            source_sync_run_id=source_sync_run_id,
            trained_at=trained_at,
        )
        try:
            self.db.add(row)
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "DB_ML_MODEL_INSERT_FAILED",
                "Failed to insert the model row.",
                {"channel_id": channel_id, "target_metric": target_metric, "model_type": model_type},
            ) from exc
        return row.id

    async def insert_backtest(
        self,
        *,
        model_id: int,
        channel_id: str,
        target_metric: str,
        mae: float,
        smape: float,
        mase: float,
        sample_size: int,
        metadata_json: str,
        created_at: datetime,
    ) -> None:
        try:
            self.db.add(
                MLBacktest(
                    model_id=model_id,
                    channel_id=channel_id,
                    target_metric=target_metric,
                    mae=mae,
                    smape=smape,
                    mase=mase,
                    sample_size=sample_size,
                    metadata_json=metadata_json,
                    created_at=created_at,
                )
            )
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "DB_ML_BACKTEST_INSERT_FAILED",
                "Failed to insert the backtest row.",
                {"model_id": model_id},
            ) from exc

    async def insert_prediction(
        self,
        *,
        model_id: int,
        channel_id: str,
        target_metric: str,
        prediction_date: date,
        horizon_days: int,
        predicted_value: float,
        actual_value: float | None,
        p10: float,
        p50: float,
        p90: float,
        generated_at: datetime,
    ) -> None:
        try:
            self.db.add(
                MLPrediction(
                    model_id=model_id,
                    channel_id=channel_id,
                    target_metric=target_metric,
                    prediction_date=prediction_date,
                    horizon_days=horizon_days,
                    predicted_value=predicted_value,
                    actual_value=actual_value,
                    p10=p10,
                    p50=p50,
                    p90=p90,
                    generated_at=generated_at,
                )
            )
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "DB_ML_PREDICTION_INSERT_FAILED",
                "Failed to insert the prediction row.",
                {"model_id": model_id, "horizon_days": horizon_days},
            ) from exc

    # ─── Anomaly writes ─────────────────────────────────────────────────

    async def delete_anomalies(
        self,
        channel_id: str,
        target_metric: str,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> int:
        stmt = delete(MLAnomaly).where(
            MLAnomaly.channel_id == channel_id,
            MLAnomaly.target_metric == target_metric,
        )
        if date_from is not None:
            stmt = stmt.where(MLAnomaly.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(MLAnomaly.date <= date_to)

        try:
            result = await self.db.execute(stmt.execution_options(synchronize_session="fetch"))
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "DB_ML_ANOMALY_DELETE_FAILED",
                "Failed to delete anomalies in the date window.",
                {
                    "channel_id": channel_id,
                    "target_metric": target_metric,
                    "date_from": date_from.isoformat() if date_from else None,
                    "date_to": date_to.isoformat() if date_to else None,
                },
            ) from exc
        return result.rowcount or 0

    async def insert_anomaly(self, **values) -> None:
        try:
            self.db.add(MLAnomaly(**values))
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise RepositoryError(
                "DB_ML_ANOMALY_INSERT_FAILED",
                "Failed to insert the anomaly row.",
                {
                    "channel_id": values.get("channel_id"),
                    "date": values["date"].isoformat() if values.get("date") else None,
                    "method": values.get("method"),
                },
            ) from exc

    # ─── Reads ──────────────────────────────────────────────────────────

    async def get_latest_active_model(self, channel_id: str, target_metric: str) -> MLModel | None:
        try:
            result = await self.db.execute(
                select(MLModel)
                .where(
                    MLModel.channel_id == channel_id,
                    MLModel.target_metric == target_metric,
                    MLModel.is_active == 1,
                )
                .order_by(MLModel.trained_at.desc(), MLModel.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise SeriesReadError(
                "ML_FORECAST_READ_FAILED",
                "Failed to read the active model.",
                {"channel_id": channel_id, "target_metric": target_metric},
            ) from exc

    async def get_predictions_by_model(self, model_id: int) -> Sequence[MLPrediction]:
        try:
            result = await self.db.execute(
                select(MLPrediction)
                .where(MLPrediction.model_id == model_id)
                .order_by(
                    MLPrediction.horizon_days.asc(),
                    MLPrediction.prediction_date.asc(),
                    MLPrediction.id.asc(),
                )
            )
            return result.scalars().all()
        except SQLAlchemyError as exc:
            raise SeriesReadError(
                "ML_FORECAST_READ_FAILED",
                "Failed to read forecast points.",
                {"model_id": model_id},
            ) from exc

    async def get_persisted_anomalies(
        self,
        channel_id: str,
        target_metric: str,
        date_from: date,
        date_to: date,
        severities: Sequence[str] | None = None,
    ) -> Sequence[MLAnomaly]:
        stmt = select(MLAnomaly).where(
            MLAnomaly.channel_id == channel_id,
            MLAnomaly.target_metric == target_metric,
            MLAnomaly.date.between(date_from, date_to),
        )
        if severities:
            stmt = stmt.where(MLAnomaly.severity.in_(list(severities)))
        stmt = stmt.order_by(MLAnomaly.date.desc(), MLAnomaly.id.desc())

        try:
            result = await self.db.execute(stmt)
            return result.scalars().all()
        except SQLAlchemyError as exc:
            raise SeriesReadError(
                "ML_ANOMALY_READ_FAILED",
                "Failed to read persisted anomalies.",
                {"channel_id": channel_id, "target_metric": target_metric},
            ) from exc
