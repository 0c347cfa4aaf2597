import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pytest
import pandas as pd

from backtest.evaluator import BacktestEvaluator
from sarima.estimator import SARIMAEstimator
from sarima.forecaster import SARIMAForecaster
from sarima.models import ModelOrder
from utils.visualization import ForecastVisualizer


@pytest.fixture
def visualizer():
    vis = ForecastVisualizer()
    yield vis
    vis.close_all()


@pytest.fixture
def fitted(monthly_series):
    return SARIMAEstimator(method='css').fit(monthly_series, ModelOrder(1, 1, 0))


def test_plot_forecast(visualizer, monthly_series, fitted, tmp_path):
    forecast = SARIMAForecaster().forecast(fitted, steps=6)
    save_path = tmp_path / "forecast.png"
    fig = visualizer.plot_forecast(monthly_series, forecast, title="monthly", save_path=save_path)
    assert isinstance(fig, plt.Figure)
    assert save_path.exists()


def test_plot_backtest(visualizer, monthly_series, tmp_path):
    result = BacktestEvaluator(estimator=SARIMAEstimator(method='css')).run(
        monthly_series, ModelOrder(1, 1, 0), 0.8)
    save_path = tmp_path / "backtest.png"
    fig = visualizer.plot_backtest(monthly_series.iloc[:result.split_index], result,
                                   save_path=save_path)
    assert isinstance(fig, plt.Figure)
    assert save_path.exists()


def test_plot_residual_diagnostics(visualizer, fitted, tmp_path):
    save_path = tmp_path / "residuals.png"
    fig = visualizer.plot_residual_diagnostics(fitted, lags=10, save_path=save_path)
    assert len(fig.axes) == 3
    assert save_path.exists()


def test_empty_input_rejected(visualizer, fitted):
    forecast = SARIMAForecaster().forecast(fitted, steps=2)
    with pytest.raises(ValueError):
        visualizer.plot_forecast(pd.Series(dtype=float), forecast)


def test_close_all(visualizer, monthly_series, fitted):
    visualizer.plot_forecast(monthly_series, SARIMAForecaster().forecast(fitted, steps=3))
    assert plt.get_fignums()
    visualizer.close_all()
    assert not plt.get_fignums()
