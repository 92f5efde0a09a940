"""
Anomaly Detection — Local z-score plus global IQR fences.

Each point is compared against the mean of up to 7 preceding points (local
z-score) and against Tukey fences computed once over the whole series:
  - z flag:   |z| >= 2.8
  - IQR flag: value outside [Q1 - 1.5*IQR, Q3 + 1.5*IQR]
  - method:   both -> 'consensus', only z -> 'zscore', only IQR -> 'iqr'

Severity (critical/high/medium/low) is graded on the deviation ratio and
|z|; confidence is 'high' for consensus hits.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Literal

from ml.series import SeriesPoint
from ml.stats import mean, population_std, quantile, round_half_up, round_metric

AnomalyMethod = Literal["zscore", "iqr", "consensus"]
AnomalyConfidence = Literal["low", "medium", "high"]
AnomalySeverity = Literal["low", "medium", "high", "critical"]

BASELINE_WINDOW = 7
Z_SCORE_THRESHOLD = 2.8
IQR_MULTIPLIER = 1.5

METRIC_LABELS = {"views": "Views", "subscribers": "Subscribers"}


@dataclass(frozen=True)
class DetectedAnomaly:
    date: date
    value: float
    baseline: float
    deviation_ratio: float
    z_score: float | None
    method: AnomalyMethod
    confidence: AnomalyConfidence
    severity: AnomalySeverity
    iqr_lower: float
    iqr_upper: float
    explanation: str


def classify_severity(deviation_ratio: float, z_score: float | None) -> AnomalySeverity:
    abs_deviation = abs(deviation_ratio)
    abs_z = abs(z_score or 0.0)
    if abs_deviation >= 1 or abs_z >= 5:
        return "critical"
    if abs_deviation >= 0.5 or abs_z >= 4:
        return "high"
    if abs_deviation >= 0.25 or abs_z >= 3:
        return "medium"
    return "low"


def classify_confidence(method: AnomalyMethod, z_score: float | None, deviation_ratio: float) -> AnomalyConfidence:
    if method == "consensus":
        return "high"
    if abs(z_score or 0.0) >= 4 or abs(deviation_ratio) >= 0.5:
        return "medium"
    return "low"


def explain_anomaly(
    target_metric: str,
    deviation_ratio: float,
    baseline: float,
    value: float,
    days_since_last_video: int | None,
) -> str:
    """Human-readable summary, with a publish-gap hint for views."""
    label = METRIC_LABELS.get(target_metric, target_metric.capitalize())

    if baseline == 0 and value > 0:
        return f"{label} appeared after a period of inactivity."

    direction = "rose" if deviation_ratio >= 0 else "fell"
    percent = abs(deviation_ratio * 100)
    explanation = f"{label} {direction} by {percent:.1f}% versus the 7-day average ({round_half_up(baseline)})."

    if target_metric == "views" and days_since_last_video is not None:
        if days_since_last_video >= 5 and deviation_ratio < 0:
            explanation += f" Likely cause: no upload for {days_since_last_video} days."
        elif days_since_last_video <= 1 and deviation_ratio > 0:
            explanation += " Possible cause: a fresh upload."

    return explanation


def iqr_fences(values: Sequence[float]) -> tuple[float, float]:
    q1 = quantile(values, 0.25)
    q3 = quantile(values, 0.75)
    iqr = q3 - q1
    return q1 - IQR_MULTIPLIER * iqr, q3 + IQR_MULTIPLIER * iqr


def detect_anomalies(
    points: Sequence[SeriesPoint],
    target_metric: str,
    days_since_last_video: Mapping[date, int | None] | None = None,
) -> list[DetectedAnomaly]:
    if not points:
        return []

    days_since_last_video = days_since_last_video or {}
    values = [point.value for point in points]
    iqr_lower, iqr_upper = iqr_fences(values)
    anomalies: list[DetectedAnomaly] = []

    for index, point in enumerate(points):
        window = values[max(0, index - BASELINE_WINDOW) : index]
        baseline = mean(window) if window else point.value
        baseline_std = population_std(window, baseline)
        if baseline_std == 0:
            baseline_std = max(1.0, baseline * 0.05)

        deviation = point.value - baseline
        if baseline == 0:
            deviation_ratio = 1.0 if point.value > 0 else 0.0
        else:
            deviation_ratio = deviation / baseline
        z_score = deviation / baseline_std if baseline_std > 0 else None

        z_flag = z_score is not None and abs(z_score) >= Z_SCORE_THRESHOLD
        iqr_flag = point.value < iqr_lower or point.value > iqr_upper
        if not z_flag and not iqr_flag:
            continue

        if z_flag and iqr_flag:
            method: AnomalyMethod = "consensus"
        elif z_flag:
            method = "zscore"
        else:
            method = "iqr"

        anomalies.append(
            DetectedAnomaly(
                date=point.date,
                value=point.value,
                baseline=max(0.0, baseline),
                deviation_ratio=round_metric(deviation_ratio),
                z_score=None if z_score is None else round_metric(z_score),
                method=method,
                confidence=classify_confidence(method, z_score, deviation_ratio),
                severity=classify_severity(deviation_ratio, z_score),
                iqr_lower=round_metric(iqr_lower),
                iqr_upper=round_metric(iqr_upper),
                explanation=explain_anomaly(
                    target_metric,
                    deviation_ratio,
                    baseline,
                    point.value,
                    days_since_last_video.get(point.date),
                ),
            )
        )

    return anomalies
