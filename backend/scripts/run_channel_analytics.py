#!/usr/bin/env python3
"""
Channel Analytics Runner — Baseline forecast and anomaly/trend analysis.

Usage:
  python scripts/run_channel_analytics.py --channel-id UC123
  python scripts/run_channel_analytics.py --channel-id UC123 --skip-anomalies --horizon-days 14
  python scripts/run_channel_analytics.py --channel-id UC123 --skip-baseline --date-from 2026-01-01 --date-to 2026-02-01

Runs against the database configured by DATABASE_URL.
"""

import argparse
import asyncio
import json
import os
import sys

# Add backend to path so imports work
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ChannelLens channel analytics")
    parser.add_argument("--channel-id", required=True, help="Channel to analyze")
    parser.add_argument(
        "--metric",
        choices=["views", "subscribers"],
        default="views",
        help="Target metric (default: views)",
    )
    parser.add_argument("--horizon-days", type=int, default=None, help="Forecast horizon (default: settings)")
    parser.add_argument("--min-history-days", type=int, default=None, help="Minimum history (default: settings)")
    parser.add_argument("--smape-max", type=float, default=None, help="Quality gate SMAPE ceiling")
    parser.add_argument("--mase-max", type=float, default=None, help="Quality gate MASE ceiling")
    parser.add_argument("--date-from", default=None, help="Anomaly window start (YYYY-MM-DD)")
    parser.add_argument("--date-to", default=None, help="Anomaly window end (YYYY-MM-DD)")
    parser.add_argument("--seasonality-days", type=int, default=None, help="Seasonal period (default: settings)")
    parser.add_argument("--skip-baseline", action="store_true", help="Do not train forecast models")
    parser.add_argument("--skip-anomalies", action="store_true", help="Do not run anomaly/trend analysis")
    return parser


def _pick(value, default):
    """Explicit CLI values win, even falsy ones."""
    return default if value is None else value


async def run(args: argparse.Namespace) -> dict:
    from core.config import get_settings
    from db.session import AsyncSessionLocal, Base, engine
    from ml.anomaly_trend import run_anomaly_trend
    from ml.arena import QualityGate
    from ml.baseline import run_baseline

    settings = get_settings()
    report: dict = {"channel_id": args.channel_id, "target_metric": args.metric}
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with AsyncSessionLocal() as db:
            if not args.skip_baseline:
                report["baseline"] = await run_baseline(
                    db,
                    channel_id=args.channel_id,
                    target_metric=args.metric,
                    horizon_days=_pick(args.horizon_days, settings.ml_forecast_horizon_days),
                    min_history_days=_pick(args.min_history_days, settings.ml_min_history_days),
                    quality_gate=QualityGate(
                        smape_max=_pick(args.smape_max, settings.ml_quality_gate_smape_max),
                        mase_max=_pick(args.mase_max, settings.ml_quality_gate_mase_max),
                    ),
                )
            if not args.skip_anomalies:
                report["anomalies"] = await run_anomaly_trend(
                    db,
                    channel_id=args.channel_id,
                    target_metric=args.metric,
                    date_from=args.date_from,
                    date_to=args.date_to,
                    seasonality_period_days=_pick(args.seasonality_days, settings.ml_seasonality_period_days),
                )
    finally:
        await engine.dispose()
    return report


def main() -> int:
    args = build_parser().parse_args()

    from ml.errors import MLError

    try:
        report = asyncio.run(run(args))
    except MLError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
