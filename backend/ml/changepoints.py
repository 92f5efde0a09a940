"""
Change-Point Detection — Two-sided CUSUM over the deseasonalized series.

The first clamp(round(n * 0.2), 8, 21) points form the reference baseline.
Each trip of either accumulator emits a change point, resets both sums and
re-baselines on the trailing window ending at the trip index. Nearby trips
(within max(2, P // 2) indices) are collapsed, keeping the higher score.

A flat baseline window gets a floor std of max(1, 2% of its mean), so the
trip threshold is always at least 5.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Literal

from ml.decomposition import DecompositionPoint
from ml.stats import mean, population_std, round_half_up, round_metric

MIN_POINTS = 12
BASELINE_RATIO = 0.2
BASELINE_MIN = 8
BASELINE_MAX = 21


@dataclass(frozen=True)
class ChangePoint:
    index: int
    date: date
    direction: Literal["up", "down"]
    magnitude: float
    score: float

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "direction": self.direction,
            "magnitude": self.magnitude,
            "score": self.score,
        }


def _baseline_stats(values: Sequence[float]) -> tuple[float, float]:
    baseline_mean = mean(values)
    baseline_std = population_std(values, baseline_mean)
    if baseline_std == 0:
        baseline_std = max(1.0, baseline_mean * 0.02)
    return baseline_mean, baseline_std


def deduplicate_change_points(points: Sequence[ChangePoint], min_distance: int) -> list[ChangePoint]:
    result: list[ChangePoint] = []
    for point in points:
        if not result or point.index - result[-1].index > min_distance:
            result.append(point)
        elif point.score > result[-1].score:
            result[-1] = point
    return result


def detect_change_points(
    decomposition: Sequence[DecompositionPoint],
    seasonality_period_days: int,
) -> list[ChangePoint]:
    n = len(decomposition)
    if n < MIN_POINTS:
        return []

    deseasonalized = [point.value - point.seasonal for point in decomposition]
    window = max(BASELINE_MIN, min(BASELINE_MAX, round_half_up(n * BASELINE_RATIO)))

    baseline_mean, baseline_std = _baseline_stats(deseasonalized[:window])
    drift = baseline_std * 0.5
    threshold = baseline_std * 5

    raw: list[ChangePoint] = []
    positive = 0.0
    negative = 0.0

    for index in range(window, n):
        value = deseasonalized[index]
        positive = max(0.0, positive + (value - baseline_mean - drift))
        negative = min(0.0, negative + (value - baseline_mean + drift))

        if positive <= threshold and negative >= -threshold:
            continue

        direction: Literal["up", "down"] = "up" if positive > threshold else "down"
        cusum = positive if direction == "up" else negative
        raw.append(
            ChangePoint(
                index=index,
                date=decomposition[index].date,
                direction=direction,
                magnitude=round_metric(value - baseline_mean),
                score=round_metric(abs(cusum) / max(threshold, 1)),
            )
        )

        positive = 0.0
        negative = 0.0
        baseline_mean, baseline_std = _baseline_stats(deseasonalized[max(0, index - window + 1) : index + 1])
        drift = baseline_std * 0.5
        threshold = max(baseline_std * 5, 1.0)

    return deduplicate_change_points(raw, max(2, seasonality_period_days // 2))
