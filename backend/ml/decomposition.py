"""
Trend Decomposition — Additive two-pass LOESS decomposition.

    value = trend + seasonal + residual

Pass 1 smooths the raw series to estimate a rough trend, the detrended
values are averaged per phase of the seasonal period (then centered), and
pass 2 re-smooths the deseasonalized series for the final trend.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from ml.series import SeriesPoint
from ml.stats import mean, round_half_up, round_metric

LOESS_SPAN_RATIO = 0.25


@dataclass(frozen=True)
class DecompositionPoint:
    date: date
    value: float
    trend: float
    seasonal: float
    residual: float


def tricube(value: float) -> float:
    abs_value = abs(value)
    if abs_value >= 1:
        return 0.0
    return (1 - abs_value**3) ** 3


def loess_smooth(values: Sequence[float], span_ratio: float = LOESS_SPAN_RATIO) -> list[float]:
    """
    Locally weighted linear regression, evaluated at every index.

    The window holds a constant number of points: at the edges it is shifted
    inward rather than truncated.
    """
    n = len(values)
    if n == 0:
        return []
    if n <= 2:
        return [float(v) for v in values]

    span = max(3, min(n, round_half_up(n * span_ratio)))
    radius = span // 2
    smoothed: list[float] = []

    for index in range(n):
        start = max(0, index - radius)
        end = min(n - 1, index + radius)
        if end - start + 1 < span:
            if start == 0:
                end = min(n - 1, start + span - 1)
            elif end == n - 1:
                start = max(0, end - span + 1)

        max_distance = max(index - start, end - index, 1)
        sum_w = sum_wx = sum_wy = sum_wxx = sum_wxy = 0.0

        for point_index in range(start, end + 1):
            x = point_index - index
            y = values[point_index]
            weight = tricube(x / max_distance)
            sum_w += weight
            sum_wx += weight * x
            sum_wy += weight * y
            sum_wxx += weight * x * x
            sum_wxy += weight * x * y

        if sum_w == 0:
            smoothed.append(float(values[index]))
            continue

        denominator = sum_w * sum_wxx - sum_wx * sum_wx
        if denominator == 0:
            smoothed.append(sum_wy / sum_w)
            continue

        # Intercept of the local fit at x=0, i.e. the center point.
        smoothed.append((sum_wy * sum_wxx - sum_wx * sum_wxy) / denominator)

    return smoothed


def seasonal_pattern(detrended: Sequence[float], period: int) -> list[float]:
    pattern = [mean(detrended[phase::period]) for phase in range(period)]
    center = mean(pattern)
    return [value - center for value in pattern]


def decompose_series(points: Sequence[SeriesPoint], seasonality_period_days: int) -> list[DecompositionPoint]:
    values = [point.value for point in points]
    initial_trend = loess_smooth(values)
    detrended = [value - initial_trend[i] for i, value in enumerate(values)]

    pattern = seasonal_pattern(detrended, seasonality_period_days)
    seasonal = [pattern[i % seasonality_period_days] for i in range(len(values))]
    trend = loess_smooth([value - seasonal[i] for i, value in enumerate(values)])

    return [
        DecompositionPoint(
            date=point.date,
            value=point.value,
            trend=round_metric(trend[i]),
            seasonal=round_metric(seasonal[i]),
            residual=round_metric(point.value - trend[i] - seasonal[i]),
        )
        for i, point in enumerate(points)
    ]
