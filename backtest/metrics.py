"""Forecast accuracy metrics"""

import logging
from typing import Optional, Sequence

import numpy as np

from sarima.exceptions import InvalidArgumentError
from sarima.models import BacktestMetrics, ForecastPoint

logger = logging.getLogger(__name__)


def _as_arrays(actual: Sequence[float], predicted: Sequence[float]):
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if actual.shape != predicted.shape or actual.ndim != 1:
        raise InvalidArgumentError(
            f"Actual and predicted must be 1-D and of equal length, "
            f"got {actual.shape} and {predicted.shape}"
        )
    if len(actual) == 0:
        raise InvalidArgumentError("Cannot score an empty forecast")
    return actual, predicted


def mean_absolute_error(actual: Sequence[float], predicted: Sequence[float]) -> float:
    actual, predicted = _as_arrays(actual, predicted)
    return float(np.mean(np.abs(actual - predicted)))


def root_mean_squared_error(actual: Sequence[float], predicted: Sequence[float]) -> float:
    actual, predicted = _as_arrays(actual, predicted)
    return float(np.sqrt(np.mean((actual - predicted) ** 2)))


def mean_absolute_percentage_error(actual: Sequence[float], predicted: Sequence[float]) -> float:
    """MAPE in percent over points where actual != 0; NaN when there are none"""
    actual, predicted = _as_arrays(actual, predicted)
    eligible = actual != 0
    if not np.any(eligible):
        return float('nan')
    return float(np.mean(np.abs((actual[eligible] - predicted[eligible]) / actual[eligible])) * 100)


def interval_coverage(actual: Sequence[float], lower: Sequence[float],
                      upper: Sequence[float]) -> float:
    """Percentage of actuals falling inside [lower, upper]"""
    actual, lower = _as_arrays(actual, lower)
    _, upper = _as_arrays(actual, upper)
    inside = (actual >= lower) & (actual <= upper)
    return float(np.mean(inside) * 100)


def compute_metrics(actual: Sequence[float], predicted: Sequence[float],
                    lower: Optional[Sequence[float]] = None,
                    upper: Optional[Sequence[float]] = None) -> BacktestMetrics:
    """
    Score predictions against actuals paired by position.

    Args:
        actual: Held-out values
        predicted: Point forecasts, same length as actual
        lower, upper: Optional interval bounds for the coverage percentage

    Returns:
        BacktestMetrics with MAE, RMSE, MAPE (percent) and coverage
    """
    actual, predicted = _as_arrays(actual, predicted)
    coverage = float('nan')
    if lower is not None and upper is not None:
        coverage = interval_coverage(actual, lower, upper)
    return BacktestMetrics(
        mae=mean_absolute_error(actual, predicted),
        rmse=root_mean_squared_error(actual, predicted),
        mape=mean_absolute_percentage_error(actual, predicted),
        coverage=coverage,
        n_points=len(actual),
    )


def score_forecast(actual: Sequence[float], forecast: Sequence[ForecastPoint]) -> BacktestMetrics:
    """Metrics for a list of ForecastPoints aligned positionally with actuals"""
    return compute_metrics(
        actual,
        [point.point_estimate for point in forecast],
        [point.lower_bound for point in forecast],
        [point.upper_bound for point in forecast],
    )
