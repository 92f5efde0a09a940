"""
ChannelLens Database Models

Tables:
  Read side (owned by the channel sync layer):
  1. channel_days       - One row per channel and calendar day (views, subscribers, ...)
  2. channel_features   - Derived per-day features (rolling aggregates, publish gap)

  ML artifacts (owned by the analytics core):
  3. ml_models          - Trained model runs with active/shadow/rejected status
  4. ml_backtests       - Walk-forward metrics per model run
  5. ml_predictions     - p10/p50/p90 forecast points per model run
  6. ml_anomalies       - Detected anomalies, replaced wholesale per date window
"""

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from db.session import Base

# ─── 1. Channel Days ───────────────────────────────────────────────────────


class ChannelDay(Base):
    __tablename__ = "channel_days"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(String(64), nullable=False)
    date = Column(Date, nullable=False)
    views = Column(Float, nullable=True)
    subscribers = Column(Float, nullable=True)
    videos = Column(Integer, nullable=True)
    likes = Column(Integer, nullable=True)
    comments = Column(Integer, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("channel_id", "date", name="uq_channel_day"),
        Index("ix_channel_days_channel_date", "channel_id", "date"),
    )


# ─── 2. Channel Features ───────────────────────────────────────────────────


class ChannelFeature(Base):
    __tablename__ = "channel_features"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(String(64), nullable=False)
    date = Column(Date, nullable=False)
    feature_set_version = Column(String(20), nullable=False, default="v1")
    views_7d = Column(Float, nullable=True)
    views_30d = Column(Float, nullable=True)
    days_since_last_video = Column(Integer, nullable=True)
    generated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("channel_id", "date", "feature_set_version", name="uq_channel_feature"),
    )


# ─── 3. ML Models ──────────────────────────────────────────────────────────


class MLModel(Base):
    """
    One row per model family per training run.

    Only one row per (channel_id, target_metric) carries is_active=1.
    A new run demotes the previous active row to 'shadow' before inserting.
    """

    __tablename__ = "ml_models"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(String(64), nullable=False)
    target_metric = Column(String(32), nullable=False)
    model_type = Column(String(32), nullable=False)  # 'holt-winters', 'linear-regression'
    version = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)
    is_active = Column(Integer, nullable=False, default=0)
    config_json = Column(Text, nullable=False)
    metrics_json = Column(Text, nullable=True)
    source_sync_run_id = Column(Integer, nullable=True)
    trained_at = Column(DateTime, nullable=False)

    backtests = relationship("MLBacktest", back_populates="model", cascade="all, delete-orphan")
    predictions = relationship("MLPrediction", back_populates="model", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_ml_models_channel_target_time", "channel_id", "target_metric", "trained_at", "id"),
        Index("ix_ml_models_active", "channel_id", "target_metric", "is_active", "trained_at", "id"),
        CheckConstraint("status IN ('active', 'shadow', 'rejected')", name="ck_ml_model_status"),
        CheckConstraint("is_active IN (0, 1)", name="ck_ml_model_is_active"),
    )


# ─── 4. ML Backtests ───────────────────────────────────────────────────────


class MLBacktest(Base):
    __tablename__ = "ml_backtests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Integer, ForeignKey("ml_models.id", ondelete="CASCADE"), nullable=False)
    channel_id = Column(String(64), nullable=False)
    target_metric = Column(String(32), nullable=False)
    mae = Column(Float, nullable=False)
    smape = Column(Float, nullable=False)
    mase = Column(Float, nullable=False)
    sample_size = Column(Integer, nullable=False)
    metadata_json = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False)

    model = relationship("MLModel", back_populates="backtests")

    __table_args__ = (
        Index("ix_ml_backtests_model_time", "model_id", "created_at", "id"),
        CheckConstraint("sample_size >= 0", name="ck_ml_backtest_sample_size"),
    )


# ─── 5. ML Predictions ─────────────────────────────────────────────────────


class MLPrediction(Base):
    __tablename__ = "ml_predictions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Integer, ForeignKey("ml_models.id", ondelete="CASCADE"), nullable=False)
    channel_id = Column(String(64), nullable=False)
    target_metric = Column(String(32), nullable=False)
    prediction_date = Column(Date, nullable=False)
    horizon_days = Column(Integer, nullable=False)
    predicted_value = Column(Float, nullable=False)
    actual_value = Column(Float, nullable=True)  # Filled once the day is observed
    p10 = Column(Float, nullable=False)
    p50 = Column(Float, nullable=False)
    p90 = Column(Float, nullable=False)
    generated_at = Column(DateTime, nullable=False)

    model = relationship("MLModel", back_populates="predictions")

    __table_args__ = (
        Index("ix_ml_predictions_channel_target_date", "channel_id", "target_metric", "prediction_date"),
        CheckConstraint("horizon_days > 0", name="ck_ml_prediction_horizon"),
        CheckConstraint("predicted_value >= 0", name="ck_ml_prediction_value"),
        CheckConstraint("p10 >= 0 AND p50 >= 0 AND p90 >= 0", name="ck_ml_prediction_quantiles"),
    )


# ─── 6. ML Anomalies ───────────────────────────────────────────────────────


class MLAnomaly(Base):
    __tablename__ = "ml_anomalies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel_id = Column(String(64), nullable=False)
    target_metric = Column(String(32), nullable=False)
    date = Column(Date, nullable=False)
    metric_value = Column(Float, nullable=False)
    baseline_value = Column(Float, nullable=False)
    deviation_ratio = Column(Float, nullable=False)
    z_score = Column(Float, nullable=True)
    iqr_lower = Column(Float, nullable=True)
    iqr_upper = Column(Float, nullable=True)
    method = Column(String(20), nullable=False)
    confidence = Column(String(20), nullable=False)
    severity = Column(String(20), nullable=False)
    explanation = Column(Text, nullable=False)
    source_sync_run_id = Column(Integer, nullable=True)
    detected_at = Column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("channel_id", "target_metric", "date", "method", name="uq_ml_anomaly"),
        Index("ix_ml_anomalies_channel_date", "channel_id", "target_metric", "date"),
        Index("ix_ml_anomalies_severity", "channel_id", "target_metric", "severity", "date"),
        CheckConstraint("metric_value >= 0", name="ck_ml_anomaly_value"),
        CheckConstraint("baseline_value >= 0", name="ck_ml_anomaly_baseline"),
        CheckConstraint("method IN ('zscore', 'iqr', 'consensus')", name="ck_ml_anomaly_method"),
        CheckConstraint("confidence IN ('low', 'medium', 'high')", name="ck_ml_anomaly_confidence"),
        CheckConstraint("severity IN ('low', 'medium', 'high', 'critical')", name="ck_ml_anomaly_severity"),
    )
