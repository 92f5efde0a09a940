import pytest

from ml.backtest import calculate_backtest_metrics, naive_scale


@pytest.mark.parametrize("model_type", ["holt-winters", "linear-regression"])
def test_perfectly_linear_series_has_zero_error(model_type):
    values = [100 + 10 * i for i in range(40)]

    metrics = calculate_backtest_metrics(values, model_type, 30)

    assert metrics.sample_size == 10
    assert metrics.mae == pytest.approx(0.0, abs=1e-6)
    assert metrics.smape == pytest.approx(0.0, abs=1e-6)
    assert metrics.mase == pytest.approx(0.0, abs=1e-6)
    assert metrics.residual_std_dev == pytest.approx(0.0, abs=1e-6)


def test_flat_series_reports_raw_mae_as_mase():
    # Naive scale is 0 on a flat series; MASE falls back to MAE.
    metrics = calculate_backtest_metrics([5, 5, 5], "holt-winters", 0)

    assert metrics.sample_size == 3
    assert metrics.mae == pytest.approx(1.666667)
    assert metrics.mase == metrics.mae
    assert metrics.smape == pytest.approx(0.666667)
    assert metrics.residual_std_dev == pytest.approx(2.357023)


def test_zero_actual_and_prediction_contribute_zero_smape():
    metrics = calculate_backtest_metrics([0, 0, 0, 0], "linear-regression", 1)

    assert metrics.sample_size == 3
    assert metrics.smape == 0.0
    assert metrics.mae == 0.0


def test_mase_scales_by_naive_difference():
    values = [10, 20, 10, 20, 10, 20]
    metrics = calculate_backtest_metrics(values, "holt-winters", 4)

    assert naive_scale(values) == 10.0
    assert metrics.mase == pytest.approx(metrics.mae / 10.0, abs=1e-6)


def test_history_longer_than_series_yields_empty_backtest():
    metrics = calculate_backtest_metrics([1, 2, 3], "holt-winters", 10)

    assert metrics.sample_size == 0
    assert metrics.mae == 0.0
    assert metrics.smape == 0.0
    assert metrics.mase == 0.0


def test_storage_shape_uses_camel_case_sample_size():
    metrics = calculate_backtest_metrics([1, 2, 3, 4, 5], "linear-regression", 2)

    assert metrics.summary()["sample_size"] == 3
    assert '"sampleSize": 3' in metrics.to_json()
