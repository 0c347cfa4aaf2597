"""
Train/test backtests of SARIMA forecasts.
"""

import itertools
import logging
import math
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from sarima.checkpoint import FitCache
from sarima.data_prep import split_series
from sarima.estimator import SARIMAEstimator
from sarima.exceptions import InsufficientSplitError, InvalidArgumentError, SARIMAError
from sarima.forecaster import DEFAULT_CONFIDENCE, SARIMAForecaster
from sarima.models import BacktestResult, ModelOrder, as_order
from utils.progress import ProgressMonitor

from .metrics import score_forecast

logger = logging.getLogger(__name__)


def split_index(n: int, train_ratio: float) -> int:
    """floor(n * train_ratio), rejecting ratios outside [0, 1] and empty partitions"""
    if isinstance(train_ratio, bool) or not isinstance(train_ratio, (int, float, np.floating)):
        raise InvalidArgumentError(f"Train ratio must be a number, got {train_ratio!r}")
    if not 0.0 <= train_ratio <= 1.0:
        raise InvalidArgumentError(f"Train ratio must lie in [0, 1], got {train_ratio}")
    split = int(math.floor(n * train_ratio))
    if split < 1 or n - split < 1:
        raise InsufficientSplitError(
            f"Splitting {n} observations at ratio {train_ratio} leaves "
            f"{split} training and {n - split} test points"
        )
    return split


def _labelled(series: Any) -> Tuple[np.ndarray, Tuple[str, ...]]:
    values, labels = split_series(series)
    if labels is None:
        labels = tuple(str(i) for i in range(len(values)))
    return values, labels


class BacktestEvaluator:
    """Fits on a training prefix and scores the forecast of the held-out suffix"""

    def __init__(self, estimator: Optional[SARIMAEstimator] = None,
                 forecaster: Optional[SARIMAForecaster] = None,
                 confidence_level: float = DEFAULT_CONFIDENCE,
                 cache: Optional[FitCache] = None):
        """
        Args:
            estimator: Fitting engine, default SARIMAEstimator()
            forecaster: Forecasting engine, default SARIMAForecaster()
            confidence_level: Interval level used when run() is not given one
            cache: Optional FitCache shared between runs
        """
        self.estimator = estimator or SARIMAEstimator()
        self.forecaster = forecaster or SARIMAForecaster()
        self.confidence_level = confidence_level
        self.cache = cache
        self.logger = logging.getLogger('backtest.evaluator')

    def run(self, series: Any, order: Any, train_ratio: float = 0.8,
            confidence_level: Optional[float] = None) -> BacktestResult:
        """
        Backtest one order at one split.

        The forecast covers exactly the held-out points and is paired with them
        by position; its labels are the held-out labels.

        Args:
            series: Observations, pandas Series or numeric sequence
            order: ModelOrder, mapping or tuple
            train_ratio: Fraction of points used for training
            confidence_level: Interval level, defaults to the evaluator's

        Returns:
            BacktestResult with forecast, metrics, split index and actuals
        """
        order = as_order(order)
        level = self.confidence_level if confidence_level is None else confidence_level
        values, labels = _labelled(series)

        try:
            split = split_index(len(values), train_ratio)
            train = pd.Series(values[:split], index=list(labels[:split]))
            actual = values[split:]
            self.logger.info(
                f"Backtest {order.label}: {split} training / {len(actual)} test points"
            )

            fitted = self._fit(train, order)
            forecast = self.forecaster.forecast(
                fitted,
                steps=len(actual),
                confidence_level=level,
                future_labels=labels[split:],
            )
            metrics = score_forecast(actual, forecast)
        except SARIMAError as e:
            self.logger.error(f"Error backtesting {order.label}: {str(e)}")
            raise

        self.logger.info(
            f"Backtest {order.label}: MAE={metrics.mae:.4f}, RMSE={metrics.rmse:.4f}, "
            f"MAPE={metrics.mape:.2f}%, coverage={metrics.coverage:.1f}%"
        )
        return BacktestResult(forecast=forecast, metrics=metrics, split_index=split,
                              actual=actual, fitted=fitted)

    def _fit(self, train: pd.Series, order: ModelOrder):
        if self.cache is None:
            return self.estimator.fit(train, order)
        return self.cache.get_or_fit(train, order, self.estimator.settings(),
                                     lambda: self.estimator.fit(train, order))

    def estimator_kwargs(self) -> Dict[str, Any]:
        return {
            'method': self.estimator.method,
            'optimizer': self.estimator.optimizer,
            'maxiter': self.estimator.maxiter,
            'tol': self.estimator.tol,
            'include_intercept': self.estimator.include_intercept,
        }

    def sweep(self, series: Any, orders: Sequence[Any], train_ratios: Sequence[float],
              max_workers: int = 1) -> pd.DataFrame:
        """
        Backtest every (order, train_ratio) combination.

        Failed combinations are logged and kept as rows with an error message
        and NaN metrics.

        Parameters:
        - series: Series to backtest
        - orders: Orders to evaluate
        - train_ratios: Split ratios to evaluate
        - max_workers: Runs go to a process pool when above 1
        """
        if max_workers < 1:
            raise InvalidArgumentError(f"max_workers must be positive, got {max_workers}")
        combos = [(as_order(order), ratio)
                  for order, ratio in itertools.product(orders, train_ratios)]
        kwargs = self.estimator_kwargs()
        interval_method = self.forecaster.interval_method
        rows: Dict[int, Dict[str, Any]] = {}

        progress = ProgressMonitor(len(combos), desc="Backtest sweep", logger=self.logger,
                                   disable=True)
        try:
            if max_workers == 1:
                for i, (order, ratio) in enumerate(combos):
                    rows[i] = self._sweep_row(series, order, ratio)
                    progress.update(failed=rows[i]['error'] is not None)
            else:
                with ProcessPoolExecutor(max_workers=max_workers) as executor:
                    futures = {
                        executor.submit(run_backtest, series, order, ratio,
                                        self.confidence_level, kwargs, interval_method): i
                        for i, (order, ratio) in enumerate(combos)
                    }
                    for future in as_completed(futures):
                        i = futures[future]
                        order, ratio = combos[i]
                        try:
                            rows[i] = _result_row(order, ratio, future.result())
                        except SARIMAError as e:
                            self.logger.warning(f"Backtest {order.label} at {ratio} failed: {str(e)}")
                            rows[i] = _error_row(order, ratio, e)
                        progress.update(failed=rows[i]['error'] is not None)
        finally:
            progress.close()

        return pd.DataFrame([rows[i] for i in range(len(combos))])

    def _sweep_row(self, series: Any, order: ModelOrder, ratio: float) -> Dict[str, Any]:
        try:
            return _result_row(order, ratio, self.run(series, order, ratio))
        except SARIMAError as e:
            self.logger.warning(f"Backtest {order.label} at {ratio} failed: {str(e)}")
            return _error_row(order, ratio, e)


def run_backtest(series: Any, order: Any, train_ratio: float,
                 confidence_level: float = DEFAULT_CONFIDENCE,
                 estimator_kwargs: Optional[Dict[str, Any]] = None,
                 interval_method: str = 'integrate') -> BacktestResult:
    """Module-level backtest, picklable for process pools"""
    evaluator = BacktestEvaluator(
        estimator=SARIMAEstimator(**(estimator_kwargs or {})),
        forecaster=SARIMAForecaster(interval_method=interval_method),
        confidence_level=confidence_level,
    )
    return evaluator.run(series, order, train_ratio)


def _result_row(order: ModelOrder, ratio: float, result: BacktestResult) -> Dict[str, Any]:
    row: Dict[str, Any] = {'order': order.label, **order.to_dict(), 'train_ratio': ratio,
                           'split_index': result.split_index}
    row.update(result.metrics.to_dict())
    row['aic'] = result.fitted.aic if result.fitted is not None else float('nan')
    row['error'] = None
    return row


def _error_row(order: ModelOrder, ratio: float, error: Exception) -> Dict[str, Any]:
    nan = float('nan')
    row: Dict[str, Any] = {'order': order.label, **order.to_dict(), 'train_ratio': ratio,
                           'split_index': -1}
    row.update({'mae': nan, 'rmse': nan, 'mape': nan, 'coverage': nan, 'n_points': 0,
                'aic': nan, 'error': f"{type(error).__name__}: {error}"})
    return row
