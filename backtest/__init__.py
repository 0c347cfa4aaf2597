"""
Backtesting package for SARIMA forecasts.
Train/test evaluation, parameter sweeps and expanding window validation.
"""

from .evaluator import BacktestEvaluator
from .expanding_window import ExpandingWindowBacktest
from .metrics import compute_metrics

__all__ = ['BacktestEvaluator', 'ExpandingWindowBacktest', 'compute_metrics']
