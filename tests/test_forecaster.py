import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
import pandas as pd
from scipy import stats

from sarima.estimator import SARIMAEstimator
from sarima.exceptions import InvalidArgumentError
from sarima.forecaster import SARIMAForecaster, critical_value
from sarima.models import ModelOrder


@pytest.fixture
def forecaster():
    return SARIMAForecaster()


@pytest.fixture
def arima_fit(integrated_ar2_series):
    return SARIMAEstimator().fit(integrated_ar2_series, ModelOrder(1, 1, 1))


@pytest.fixture
def random_walk_fit(random_walk):
    return SARIMAEstimator().fit(random_walk, ModelOrder(0, 1, 0))


def test_critical_value():
    assert critical_value(0.95) == pytest.approx(1.959964, abs=1e-5)
    assert critical_value(0.8) == pytest.approx(stats.norm.ppf(0.9))
    for level in (0.0, 1.0, -0.5, 1.5):
        with pytest.raises(InvalidArgumentError):
            critical_value(level)


@pytest.mark.parametrize("steps", [0, -3, 2.5, True])
def test_invalid_horizon(forecaster, arima_fit, steps):
    with pytest.raises(InvalidArgumentError):
        forecaster.forecast(arima_fit, arima_fit.differenced, steps, 0.95)


def test_invalid_confidence_level(forecaster, arima_fit):
    with pytest.raises(InvalidArgumentError):
        forecaster.forecast(arima_fit, steps=5, confidence_level=1.0)


def test_unknown_interval_method():
    with pytest.raises(InvalidArgumentError):
        SARIMAForecaster(interval_method='bootstrap')


@pytest.mark.parametrize("interval_method", ['integrate', 'psi'])
def test_interval_width_non_decreasing(arima_fit, interval_method):
    forecast = SARIMAForecaster(interval_method=interval_method).forecast(arima_fit, steps=24)
    widths = np.array([p.width for p in forecast])
    assert len(forecast) == 24
    assert np.all(widths > 0)
    assert np.all(np.diff(widths) >= -1e-9)
    for point in forecast:
        assert point.lower_bound <= point.point_estimate <= point.upper_bound


def test_seasonal_interval_width_non_decreasing(seasonal_series):
    fitted = SARIMAEstimator().fit(seasonal_series, ModelOrder(1, 0, 0, 1, 1, 0, 4))
    forecast = SARIMAForecaster().forecast(fitted, steps=16)
    widths = np.array([p.width for p in forecast])
    assert np.all(np.diff(widths) >= -1e-9)


def test_random_walk_forecast(random_walk_fit, random_walk):
    """A random walk forecasts its last value with intervals growing in the horizon"""
    z = critical_value(0.95)
    sigma = np.sqrt(random_walk_fit.residual_variance)

    forecast = SARIMAForecaster(interval_method='psi').forecast(random_walk_fit, steps=4)
    for h, point in enumerate(forecast, start=1):
        assert point.point_estimate == pytest.approx(random_walk[-1])
        assert point.upper_bound - point.point_estimate == pytest.approx(z * sigma * np.sqrt(h))

    forecast = SARIMAForecaster(interval_method='integrate').forecast(random_walk_fit, steps=4)
    for h, point in enumerate(forecast, start=1):
        assert point.point_estimate == pytest.approx(random_walk[-1])
        assert point.upper_bound - point.point_estimate == pytest.approx(z * sigma * h)


def test_stationary_forecast_reverts_to_mean(ar1_series):
    fitted = SARIMAEstimator().fit(ar1_series, ModelOrder(1, 0, 0))
    forecast = SARIMAForecaster().forecast(fitted, steps=100)
    assert forecast[-1].point_estimate == pytest.approx(fitted.intercept, abs=1e-6)
    # Long-horizon variance converges to the process variance
    phi = fitted.ar_coeffs[0]
    expected = critical_value(0.95) * np.sqrt(fitted.residual_variance / (1 - phi ** 2))
    assert forecast[-1].upper_bound - forecast[-1].point_estimate == pytest.approx(expected, rel=1e-4)


def test_one_step_forecast_matches_recursion(ar1_series):
    fitted = SARIMAEstimator(method='css').fit(ar1_series, ModelOrder(1, 0, 0))
    forecast = SARIMAForecaster().forecast(fitted, steps=1)
    mu, phi = fitted.intercept, fitted.ar_coeffs[0]
    assert forecast[0].point_estimate == pytest.approx(mu + phi * (ar1_series[-1] - mu))


def test_synthesized_labels(forecaster, monthly_series):
    fitted = SARIMAEstimator().fit(monthly_series, ModelOrder(1, 1, 0))
    forecast = forecaster.forecast(fitted, steps=3)
    assert [p.timestamp for p in forecast] == ['2020-01-01', '2020-02-01', '2020-03-01']


def test_positional_labels_for_bare_values(forecaster, arima_fit):
    forecast = forecaster.forecast(arima_fit, steps=3)
    assert [p.timestamp for p in forecast] == ['T+1', 'T+2', 'T+3']


def test_caller_supplied_labels(forecaster, arima_fit):
    labels = ['a', 'b', 'c']
    forecast = forecaster.forecast(arima_fit, steps=3, future_labels=labels)
    assert [p.timestamp for p in forecast] == labels
    with pytest.raises(InvalidArgumentError):
        forecaster.forecast(arima_fit, steps=4, future_labels=labels)


def test_history_must_match_order(forecaster, arima_fit, integrated_ar2_series):
    other = forecaster.preprocessor.difference(integrated_ar2_series, d=2)
    with pytest.raises(InvalidArgumentError):
        forecaster.forecast(arima_fit, other, steps=3)


def test_forecast_frame(forecaster, arima_fit):
    frame = forecaster.forecast_frame(arima_fit, steps=5)
    assert isinstance(frame, pd.DataFrame)
    assert list(frame.columns) == ['timestamp', 'forecast', 'lower', 'upper']
    assert len(frame) == 5
    assert (frame['lower'] <= frame['upper']).all()
