from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd
from scipy import stats as scipy_stats

from .data_prep import SeriesPreprocessor, future_labels as synthesize_labels
from .exceptions import InvalidArgumentError
from .models import DifferencedSeries, FittedModel, ForecastPoint
from .polynomials import (ar_polynomial, css_residuals, differencing_polynomial,
                          ma_polynomial, psi_weights)

logger = logging.getLogger(__name__)

INTERVAL_METHODS = ('integrate', 'psi')
DEFAULT_STEPS = 12
DEFAULT_CONFIDENCE = 0.95


def critical_value(confidence_level: float) -> float:
    """Two-sided standard normal critical value, e.g. 1.96 for 0.95"""
    if not 0.0 < confidence_level < 1.0:
        raise InvalidArgumentError(
            f"Confidence level must lie strictly between 0 and 1, got {confidence_level}"
        )
    return float(scipy_stats.norm.ppf(0.5 + confidence_level / 2.0))


class SARIMAForecaster:
    """Multi-step forecasts with confidence intervals from a fitted SARIMA model.

    Forecasts are produced on the differenced scale by running the ARMA recursion
    forward with future innovations set to zero, then integrated back. The
    forecast error variance at horizon h is sigma2 * sum(psi_j^2, j < h), so
    interval width never shrinks with the horizon. Very long horizons are
    allowed; for integrated models the intervals keep widening without bound.
    """

    def __init__(self, preprocessor: Optional[SeriesPreprocessor] = None,
                 interval_method: str = 'integrate'):
        """
        Args:
            preprocessor: Differencing helper used to integrate forecasts
            interval_method: 'integrate' builds bounds on the differenced scale and
                integrates them exactly like the point forecast; 'psi' takes the
                psi-weight variance of the integrated model on the original scale
        """
        if interval_method not in INTERVAL_METHODS:
            raise InvalidArgumentError(
                f"Unknown interval method '{interval_method}', expected one of {INTERVAL_METHODS}"
            )
        self.preprocessor = preprocessor or SeriesPreprocessor()
        self.interval_method = interval_method
        self.logger = logging.getLogger('sarima.forecaster')

    def forecast(self, fitted: FittedModel,
                 history: Optional[DifferencedSeries] = None,
                 steps: int = DEFAULT_STEPS,
                 confidence_level: float = DEFAULT_CONFIDENCE,
                 future_labels: Optional[Sequence[str]] = None) -> List[ForecastPoint]:
        """
        Forecast ``steps`` periods after the end of ``history``.

        Args:
            fitted: Result of SARIMAEstimator.fit
            history: Differenced series to continue; defaults to the series the
                model was fitted on
            steps: Forecast horizon, must be positive
            confidence_level: Coverage of the intervals, strictly between 0 and 1
            future_labels: Labels for the forecast periods; synthesized when omitted

        Returns:
            Forward-ordered ForecastPoints starting right after the last observation
        """
        if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)) or steps <= 0:
            raise InvalidArgumentError(f"Forecast horizon must be a positive integer, got {steps!r}")
        steps = int(steps)
        z = critical_value(confidence_level)

        history = history if history is not None else fitted.differenced
        if history is None:
            raise InvalidArgumentError("No history supplied and the fitted model carries none")
        self._check_history(fitted, history)

        if future_labels is not None:
            labels = tuple(str(label) for label in future_labels)
            if len(labels) != steps:
                raise InvalidArgumentError(
                    f"Got {len(labels)} future labels for a {steps}-step forecast"
                )
        else:
            labels = synthesize_labels(history.timestamps, steps)

        point_diff, variance_diff = self.forecast_differenced(fitted, history, steps)
        point = self.preprocessor.integrate(point_diff, history)

        if self.interval_method == 'integrate':
            half_width = z * np.sqrt(variance_diff)
            lower = self.preprocessor.integrate(point_diff - half_width, history)
            upper = self.preprocessor.integrate(point_diff + half_width, history)
        else:
            half_width = z * np.sqrt(self.integrated_variance(fitted, steps))
            lower = point - half_width
            upper = point + half_width

        self.logger.info(
            f"Forecast {steps} steps from {fitted.order.label}: "
            f"first={point[0]:.4f}, last={point[-1]:.4f}, "
            f"final interval width={upper[-1] - lower[-1]:.4f}"
        )
        return [
            ForecastPoint(timestamp=label,
                          point_estimate=float(p),
                          lower_bound=float(lo),
                          upper_bound=float(hi))
            for label, p, lo, hi in zip(labels, point, lower, upper)
        ]

    def forecast_differenced(self, fitted: FittedModel, history: DifferencedSeries,
                             steps: int) -> Tuple[np.ndarray, np.ndarray]:
        """Point forecasts and error variances on the differenced scale"""
        order = fitted.order
        ar_poly = ar_polynomial(fitted.ar_coeffs, fitted.seasonal_ar_coeffs, order.s)
        ma_poly = ma_polynomial(fitted.ma_coeffs, fitted.seasonal_ma_coeffs, order.s)
        ar = -ar_poly[1:]
        ma = ma_poly[1:]

        x = np.asarray(history.values, dtype=float) - fitted.intercept
        n = len(x)
        warmup = min(order.ar_lag, n)
        residuals = css_residuals(x, ar_poly, ma_poly, warmup)

        x_ext = np.concatenate([x, np.zeros(steps)])
        e_ext = np.concatenate([np.zeros(warmup), residuals, np.zeros(steps)])
        for h in range(steps):
            t = n + h
            value = 0.0
            for k in range(1, len(ar) + 1):
                if t - k >= 0:
                    value += ar[k - 1] * x_ext[t - k]
            for k in range(1, len(ma) + 1):
                if t - k >= 0:
                    value += ma[k - 1] * e_ext[t - k]
            x_ext[t] = value

        psi = psi_weights(ar_poly, ma_poly, steps)
        variance = fitted.residual_variance * np.cumsum(psi ** 2)
        return x_ext[n:] + fitted.intercept, variance

    def integrated_variance(self, fitted: FittedModel, steps: int) -> np.ndarray:
        """Forecast error variance on the original scale from the integrated AR polynomial"""
        order = fitted.order
        ar_poly = np.convolve(
            ar_polynomial(fitted.ar_coeffs, fitted.seasonal_ar_coeffs, order.s),
            differencing_polynomial(order.d, order.D, order.s),
        )
        ma_poly = ma_polynomial(fitted.ma_coeffs, fitted.seasonal_ma_coeffs, order.s)
        psi = psi_weights(ar_poly, ma_poly, steps)
        return fitted.residual_variance * np.cumsum(psi ** 2)

    def forecast_frame(self, fitted: FittedModel,
                       history: Optional[DifferencedSeries] = None,
                       steps: int = DEFAULT_STEPS,
                       confidence_level: float = DEFAULT_CONFIDENCE,
                       future_labels: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Forecast as a DataFrame with columns timestamp, forecast, lower, upper"""
        points = self.forecast(fitted, history, steps, confidence_level, future_labels)
        return pd.DataFrame({
            'timestamp': [p.timestamp for p in points],
            'forecast': [p.point_estimate for p in points],
            'lower': [p.lower_bound for p in points],
            'upper': [p.upper_bound for p in points],
        })

    def _check_history(self, fitted: FittedModel, history: DifferencedSeries) -> None:
        order = fitted.order
        if history.d != order.d or history.D != order.D or (order.D and history.s != order.s):
            raise InvalidArgumentError(
                f"History differenced with d={history.d}, D={history.D}, s={history.s} "
                f"does not match {order.label}"
            )
        if len(history.values) == 0:
            raise InvalidArgumentError("History is empty after differencing")
