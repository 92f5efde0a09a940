"""
Forecast Points — p10/p50/p90 bands around a trained baseline model.

The band is an 80% central interval built from the backtest residual spread:
margin = z * residual_std_dev * sqrt(step), so width never shrinks with the
horizon. All quantiles are clamped at zero and ordered p10 <= p50 <= p90.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date

from ml.forecasting import ModelState
from ml.stats import round_metric, shift_date

# z-score for the 10th/90th percentile of a standard normal
Z_SCORE_P10_P90 = 1.28155


@dataclass(frozen=True)
class ForecastPoint:
    date: date
    horizon_days: int
    predicted: float
    p10: float
    p50: float
    p90: float

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "horizon_days": self.horizon_days,
            "predicted": self.predicted,
            "p10": self.p10,
            "p50": self.p50,
            "p90": self.p90,
        }


def build_forecast_points(
    model: ModelState,
    latest_date: date,
    horizon_days: int,
    residual_std_dev: float,
) -> list[ForecastPoint]:
    points: list[ForecastPoint] = []
    for step in range(1, horizon_days + 1):
        p50 = max(0.0, model.predict(step))
        margin = Z_SCORE_P10_P90 * residual_std_dev * math.sqrt(step)
        p10 = max(0.0, p50 - margin)
        p90 = max(p50, p50 + margin)

        points.append(
            ForecastPoint(
                date=shift_date(latest_date, step),
                horizon_days=step,
                predicted=round_metric(p50),
                p10=round_metric(p10),
                p50=round_metric(p50),
                p90=round_metric(p90),
            )
        )
    return points
