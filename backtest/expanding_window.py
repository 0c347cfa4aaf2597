"""Expanding window (rolling origin) backtests"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from sarima.estimator import SARIMAEstimator
from sarima.exceptions import InsufficientSplitError, InvalidArgumentError, SARIMAError
from sarima.forecaster import DEFAULT_CONFIDENCE, SARIMAForecaster
from sarima.models import as_order
from utils.progress import ProgressMonitor

from .evaluator import _labelled
from .metrics import score_forecast

logger = logging.getLogger(__name__)


class ExpandingWindowBacktest:
    def __init__(self, min_train_size: int = 24, horizon: int = 1, step_size: int = 1,
                 estimator: Optional[SARIMAEstimator] = None,
                 forecaster: Optional[SARIMAForecaster] = None,
                 confidence_level: float = DEFAULT_CONFIDENCE):
        """
        Initialize expanding window backtest

        Parameters:
        - min_train_size: Observations in the first training window
        - horizon: Steps forecast from each origin
        - step_size: Observations added between consecutive origins
        """
        for name, value in (('min_train_size', min_train_size), ('horizon', horizon),
                            ('step_size', step_size)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidArgumentError(f"{name} must be a positive integer, got {value!r}")
        self.min_train_size = min_train_size
        self.horizon = horizon
        self.step_size = step_size
        self.estimator = estimator or SARIMAEstimator()
        self.forecaster = forecaster or SARIMAForecaster()
        self.confidence_level = confidence_level

    def get_windows(self, n: int) -> List[Dict[str, int]]:
        """Training end positions (exclusive) for every origin with a full horizon"""
        windows = [
            {'train_end': end, 'test_end': end + self.horizon}
            for end in range(self.min_train_size, n - self.horizon + 1, self.step_size)
        ]
        if not windows:
            raise InsufficientSplitError(
                f"{n} observations cannot hold a {self.min_train_size}-point training window "
                f"plus a {self.horizon}-step horizon"
            )
        logger.info(
            f"Created {len(windows)} expanding windows: first trains on "
            f"{windows[0]['train_end']} points, last on {windows[-1]['train_end']}"
        )
        return windows

    def run(self, series: Any, order: Any) -> pd.DataFrame:
        """
        Refit on each growing prefix and score the following horizon.

        Windows whose fit fails are logged and reported with an error message.

        Returns:
            DataFrame with one row per origin: train_end, origin label, metrics, error
        """
        order = as_order(order)
        values, labels = _labelled(series)
        windows = self.get_windows(len(values))

        rows = []
        progress = ProgressMonitor(len(windows), desc=f"Expanding window {order.label}",
                                   logger=logger, disable=True)
        try:
            for window in windows:
                end, stop = window['train_end'], window['test_end']
                row = {'train_end': end, 'origin': labels[end - 1], 'n_train': end,
                       'horizon': self.horizon}
                try:
                    train = pd.Series(values[:end], index=list(labels[:end]))
                    fitted = self.estimator.fit(train, order)
                    forecast = self.forecaster.forecast(
                        fitted, steps=self.horizon,
                        confidence_level=self.confidence_level,
                        future_labels=labels[end:stop],
                    )
                    row.update(score_forecast(values[end:stop], forecast).to_dict())
                    row['error'] = None
                except SARIMAError as e:
                    logger.warning(f"Window ending at {labels[end - 1]} failed: {str(e)}")
                    row.update({'mae': np.nan, 'rmse': np.nan, 'mape': np.nan,
                                'coverage': np.nan, 'n_points': 0, 'error': str(e)})
                rows.append(row)
                progress.update(failed=row['error'] is not None)
        finally:
            progress.close()

        return pd.DataFrame(rows)

    @staticmethod
    def summarize(results: pd.DataFrame) -> Dict[str, float]:
        """Average metrics over the windows that succeeded"""
        ok = results[results['error'].isna()]
        summary = {'n_windows': int(len(results)), 'n_failed': int(len(results) - len(ok))}
        for column in ('mae', 'rmse', 'mape', 'coverage'):
            summary[column] = float(ok[column].mean()) if len(ok) else float('nan')
        return summary
