from datetime import date, timedelta

import pytest

from ml.anomaly import (
    classify_confidence,
    classify_severity,
    detect_anomalies,
    explain_anomaly,
    iqr_fences,
)
from ml.series import SeriesPoint

START = date(2026, 1, 1)


def _series(values):
    return [SeriesPoint(date=START + timedelta(days=i), value=float(v)) for i, v in enumerate(values)]


class TestSeverity:
    @pytest.mark.parametrize(
        "deviation_ratio,z_score,expected",
        [
            (1.0, 0.0, "critical"),
            (0.1, 5.0, "critical"),
            (-0.6, 0.0, "high"),
            (0.0, -4.2, "high"),
            (0.3, 1.0, "medium"),
            (0.0, 3.0, "medium"),
            (0.1, 2.9, "low"),
            (0.1, None, "low"),
        ],
    )
    def test_buckets(self, deviation_ratio, z_score, expected):
        assert classify_severity(deviation_ratio, z_score) == expected


class TestConfidence:
    def test_consensus_is_high(self):
        assert classify_confidence("consensus", 0.0, 0.0) == "high"

    def test_strong_single_signal_is_medium(self):
        assert classify_confidence("zscore", 4.5, 0.1) == "medium"
        assert classify_confidence("iqr", None, -0.5) == "medium"

    def test_weak_single_signal_is_low(self):
        assert classify_confidence("zscore", 2.9, 0.2) == "low"


class TestExplanation:
    def test_views_drop_after_publish_gap(self):
        text = explain_anomaly("views", -0.5, 1000.0, 500.0, 6)
        assert text == (
            "Views fell by 50.0% versus the 7-day average (1000). Likely cause: no upload for 6 days."
        )

    def test_views_spike_after_fresh_upload(self):
        text = explain_anomaly("views", 0.25, 800.0, 1000.0, 1)
        assert text == "Views rose by 25.0% versus the 7-day average (800). Possible cause: a fresh upload."

    def test_subscribers_have_no_publish_hint(self):
        text = explain_anomaly("subscribers", -0.5, 1000.0, 500.0, 9)
        assert text == "Subscribers fell by 50.0% versus the 7-day average (1000)."

    def test_activity_after_silence(self):
        assert explain_anomaly("views", 1.0, 0.0, 50.0, None) == "Views appeared after a period of inactivity."


def test_iqr_fences():
    lower, upper = iqr_fences([1, 2, 3, 4])
    assert lower == pytest.approx(1.75 - 1.5 * 1.5)
    assert upper == pytest.approx(3.25 + 1.5 * 1.5)


def test_single_spike_is_a_consensus_anomaly():
    values = [100] * 20 + [500] + [100] * 9

    anomalies = detect_anomalies(_series(values), "views", {START + timedelta(days=20): 0})

    assert len(anomalies) == 1
    spike = anomalies[0]
    assert spike.date == START + timedelta(days=20)
    assert spike.method == "consensus"
    assert spike.confidence == "high"
    assert spike.severity == "critical"
    assert spike.baseline == 100.0
    assert spike.deviation_ratio == 4.0
    assert spike.z_score == 80.0
    assert spike.iqr_lower == spike.iqr_upper == 100.0
    assert spike.explanation.endswith("Possible cause: a fresh upload.")


def test_activity_after_zero_baseline():
    anomalies = detect_anomalies(_series([0] * 10 + [50]), "views")

    assert len(anomalies) == 1
    assert anomalies[0].deviation_ratio == 1.0
    assert anomalies[0].baseline == 0.0
    assert anomalies[0].severity == "critical"
    assert anomalies[0].explanation == "Views appeared after a period of inactivity."


def test_steady_series_has_no_anomalies():
    assert detect_anomalies(_series([100] * 30), "views") == []


def test_empty_series():
    assert detect_anomalies([], "views") == []


def test_method_labels_follow_the_two_flags(anomaly_scenario_values):
    anomalies = detect_anomalies(_series(anomaly_scenario_values), "views")

    assert anomalies
    for anomaly in anomalies:
        z_flag = anomaly.z_score is not None and abs(anomaly.z_score) >= 2.8
        iqr_flag = anomaly.value < anomaly.iqr_lower or anomaly.value > anomaly.iqr_upper
        expected = "consensus" if z_flag and iqr_flag else "zscore" if z_flag else "iqr"
        assert anomaly.method == expected
