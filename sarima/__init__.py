"""
SARIMA modeling package.
Differencing, estimation, forecasting and diagnostics for seasonal ARIMA models.
"""

from .data_prep import SeriesPreprocessor
from .estimator import SARIMAEstimator
from .forecaster import SARIMAForecaster
from .diagnostics import ModelDiagnostics
from .selection import OrderSelector, PRESETS
from .checkpoint import FitCache
from .exceptions import (SARIMAError, InsufficientDataError, InvalidOrderError,
                         InvalidArgumentError, InsufficientSplitError,
                         DegenerateModelError, NonConvergenceError, FitCancelledError)
from .models import (Observation, ModelOrder, DifferencedSeries, FittedModel,
                     ForecastPoint, BacktestMetrics, BacktestResult, DiagnosticsReport)

__all__ = [
    'SeriesPreprocessor', 'SARIMAEstimator', 'SARIMAForecaster', 'ModelDiagnostics',
    'OrderSelector', 'PRESETS', 'FitCache',
    'SARIMAError', 'InsufficientDataError', 'InvalidOrderError', 'InvalidArgumentError',
    'InsufficientSplitError', 'DegenerateModelError', 'NonConvergenceError',
    'FitCancelledError',
    'Observation', 'ModelOrder', 'DifferencedSeries', 'FittedModel', 'ForecastPoint',
    'BacktestMetrics', 'BacktestResult', 'DiagnosticsReport',
]
