"""
Small numeric helpers shared by the forecasting, decomposition and anomaly
modules.

All helpers are deterministic and operate on plain sequences; population
statistics (divide by n) are used throughout.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date, datetime, timedelta, timezone

import numpy as np

METRIC_DECIMALS = 6


def round_metric(value: float) -> float:
    """Round to 6 decimals; NaN and infinities collapse to 0."""
    if value is None or not math.isfinite(value):
        return 0.0
    return float(round(float(value), METRIC_DECIMALS))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def population_std(values: Sequence[float], sample_mean: float | None = None) -> float:
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    if sample_mean is None:
        return float(np.std(arr))
    return float(np.sqrt(np.mean((arr - sample_mean) ** 2)))


def quantile(values: Sequence[float], q: float) -> float:
    """Linear-interpolated quantile (same convention as numpy's default)."""
    if len(values) == 0:
        return 0.0
    return float(np.quantile(np.asarray(values, dtype=float), q))


# ─── Dates ──────────────────────────────────────────────────────────────────


def shift_date(day: date, days: int) -> date:
    return day + timedelta(days=days)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_naive(ts: datetime) -> datetime:
    """Normalize to naive UTC for storage; naive input is assumed to be UTC."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(ts: datetime) -> str:
    """``2026-02-12T12:00:00.000Z`` style timestamp."""
    naive = to_utc_naive(ts)
    return naive.isoformat(timespec="milliseconds") + "Z"
