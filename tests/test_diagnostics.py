import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import dataclasses

import pytest
import numpy as np

from conftest import simulate_arma
from sarima.diagnostics import (ModelDiagnostics, ljung_box, stationarity_test,
                                suggest_differencing)
from sarima.estimator import SARIMAEstimator
from sarima.exceptions import DegenerateModelError, InvalidArgumentError
from sarima.models import ModelOrder


@pytest.fixture
def diagnostics():
    return ModelDiagnostics()


def test_aic_prefers_correct_order(diagnostics, integrated_ar2_series):
    """ARIMA(2,1,0) beats a random walk on a cumulated AR(2) sample"""
    estimator = SARIMAEstimator()
    correct = estimator.fit(integrated_ar2_series, ModelOrder(2, 1, 0))
    naive = estimator.fit(integrated_ar2_series, ModelOrder(0, 1, 0))
    correct_report = diagnostics.evaluate(correct, ModelOrder(2, 1, 0))
    naive_report = diagnostics.evaluate(naive, ModelOrder(0, 1, 0))
    assert correct_report.aic < naive_report.aic
    assert correct_report.bic < naive_report.bic


def test_information_criteria_formula(diagnostics, ar1_series):
    fitted = SARIMAEstimator().fit(ar1_series, ModelOrder(1, 0, 0))
    report = diagnostics.evaluate(fitted)
    k, n = 2, len(ar1_series)
    assert report.aic == pytest.approx(2 * k - 2 * fitted.log_likelihood)
    assert report.bic == pytest.approx(k * np.log(n) - 2 * fitted.log_likelihood)
    assert report.aicc == pytest.approx(report.aic + 2 * k * (k + 1) / (n - k - 1))
    assert report.aic == pytest.approx(fitted.aic)


def test_non_finite_likelihood_is_degenerate(diagnostics, ar1_series):
    fitted = SARIMAEstimator().fit(ar1_series, ModelOrder(1, 0, 0))
    broken = dataclasses.replace(fitted, log_likelihood=float('-inf'), _criteria={})
    with pytest.raises(DegenerateModelError):
        diagnostics.evaluate(broken)


def test_order_mismatch(diagnostics, ar1_series):
    fitted = SARIMAEstimator().fit(ar1_series, ModelOrder(1, 0, 0))
    with pytest.raises(InvalidArgumentError):
        diagnostics.evaluate(fitted, ModelOrder(2, 0, 0))


def test_report_contents(diagnostics, ar1_series):
    fitted = SARIMAEstimator().fit(ar1_series, ModelOrder(1, 0, 0))
    report = diagnostics.evaluate(fitted)
    assert report.stationarity == 'Stationary'
    assert report.ljung_box is not None
    assert report.ljung_box.lags == 10
    assert 0.0 <= report.ljung_box.p_value <= 1.0
    assert 'Ljung-Box' in report.description
    assert 'ADF' in report.description
    assert set(report.to_dict()) == {'aic', 'bic', 'stationarity', 'description'}


def test_stationarity_labels():
    np.random.seed(42)
    noise = np.random.normal(size=300)
    assert stationarity_test(noise).label == 'Stationary'

    trend = 0.5 * np.arange(300) + np.random.normal(size=300)
    result = stationarity_test(trend)
    assert result.label == 'Trend-Stationary'
    assert result.trend == 'ct'

    integrated_twice = np.cumsum(np.cumsum(np.random.normal(size=300)))
    assert stationarity_test(integrated_twice).label == 'Non-Stationary'


def test_short_series_not_stationary():
    result = stationarity_test([1.0, 3.0, 2.0, 5.0, 4.0])
    assert result.label == 'Non-Stationary'
    assert np.isnan(result.statistic)


def test_stationarity_is_deterministic(random_walk):
    assert stationarity_test(random_walk) == stationarity_test(random_walk)


def test_ljung_box_detects_autocorrelation():
    persistent = simulate_arma(400, ar=[0.9], seed=5)
    result = ljung_box(persistent, lags=10)
    assert not result.passed
    assert result.p_value < 0.01


def test_ljung_box_skips_short_residuals():
    assert ljung_box(np.array([0.1, -0.2, 0.3]), model_df=2) is None


def test_suggest_differencing():
    np.random.seed(42)
    noise = np.random.normal(size=300)
    assert suggest_differencing(noise) == 0
    assert suggest_differencing(np.cumsum(np.cumsum(noise))) in (1, 2)


def test_invalid_significance():
    with pytest.raises(InvalidArgumentError):
        ModelDiagnostics(significance=1.5)
