import pytest

from ml.forecasting import train_holt_winters, train_linear_regression, train_model


class TestHoltWinters:
    def test_linear_input_is_tracked_exactly(self):
        model = train_holt_winters([10, 12, 14, 16])

        assert model.model_type == "holt-winters"
        assert model.version == "v1"
        assert model.config["strategy"] == "double-exponential"
        assert model.config["alpha"] == 0.4
        assert model.config["beta"] == 0.2
        assert model.config["level"] == pytest.approx(16.0)
        assert model.config["trend"] == pytest.approx(2.0)
        assert model.predict(1) == pytest.approx(18.0)
        assert model.predict(3) == pytest.approx(22.0)

    def test_single_point_has_zero_trend(self):
        model = train_holt_winters([5])
        assert model.config["trend"] == 0.0
        assert model.predict(1) == 5.0
        assert model.predict(10) == 5.0

    def test_empty_series_predicts_zero(self):
        model = train_holt_winters([])
        assert model.config == {
            "strategy": "double-exponential",
            "alpha": 0.4,
            "beta": 0.2,
            "level": 0.0,
            "trend": 0.0,
        }
        assert model.predict(1) == 0.0

    def test_forecast_is_clamped_at_zero(self):
        model = train_holt_winters([30, 20, 10])
        assert model.predict(1) == pytest.approx(0.0)
        assert model.predict(5) == 0.0


class TestLinearRegression:
    def test_fits_trend_line(self):
        model = train_linear_regression([1, 3, 5, 7])

        assert model.model_type == "linear-regression"
        assert model.config["strategy"] == "trend-line"
        assert model.config["slope"] == pytest.approx(2.0)
        assert model.config["intercept"] == pytest.approx(1.0)
        # x = n - 1 + h
        assert model.predict(1) == pytest.approx(9.0)
        assert model.predict(2) == pytest.approx(11.0)

    def test_single_point_defaults_slope_to_zero(self):
        model = train_linear_regression([42])
        assert model.config["slope"] == 0.0
        assert model.config["intercept"] == pytest.approx(42.0)
        assert model.predict(7) == pytest.approx(42.0)

    def test_falling_trend_is_clamped_at_zero(self):
        model = train_linear_regression([10, 5, 0])
        assert model.config["slope"] == pytest.approx(-5.0)
        assert model.predict(1) == 0.0

    def test_empty_series_predicts_zero(self):
        model = train_linear_regression([])
        assert model.config == {"strategy": "trend-line", "slope": 0.0, "intercept": 0.0}
        assert model.predict(3) == 0.0


def test_train_model_dispatches_by_type():
    assert train_model("holt-winters", [1, 2, 3]).model_type == "holt-winters"
    assert train_model("linear-regression", [1, 2, 3]).model_type == "linear-regression"
