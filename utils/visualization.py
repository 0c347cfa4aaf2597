from typing import List, Optional, Sequence
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path
import logging
from statsmodels.tsa.stattools import acf

from sarima.models import BacktestResult, FittedModel, ForecastPoint

logger = logging.getLogger(__name__)


class ForecastVisualizer:
    """Visualization utilities for SARIMA forecasts and backtests"""

    def __init__(self, style: str = 'seaborn-v0_8-whitegrid'):
        """
        Initialize visualizer

        Parameters:
        -----------
        style : str
            Matplotlib style to use. Default is 'seaborn-v0_8-whitegrid'.
            Available styles can be listed with `plt.style.available`
        """
        # Set style safely with fallback options
        try:
            plt.style.use(style)
        except OSError:
            # Fall back to seaborn's own theme
            sns.set_theme(style='whitegrid')
            logger.warning(f"Style '{style}' not found, using seaborn whitegrid theme")

        self.colors = plt.rcParams['axes.prop_cycle'].by_key()['color']

    def plot_forecast(self,
                      history: pd.Series,
                      forecast: List[ForecastPoint],
                      title: Optional[str] = None,
                      save_path: Optional[Path] = None) -> plt.Figure:
        """
        Plot history followed by the forecast and its confidence band

        Parameters:
        -----------
        history : Series
            Observed values, index used as x labels
        forecast : list of ForecastPoint
            Forecast continuing the history
        title : str, optional
            Plot title
        save_path : Path, optional
            Path to save figure
        """
        if len(history) == 0 or len(forecast) == 0:
            raise ValueError("Empty input data")

        n_hist = len(history)
        x_hist = np.arange(n_hist)
        x_fc = np.arange(n_hist, n_hist + len(forecast))

        fig, ax = plt.subplots(figsize=(12, 6))
        ax.plot(x_hist, history.to_numpy(dtype=float), label='Observed', color=self.colors[0])
        ax.plot(x_fc, [p.point_estimate for p in forecast], label='Forecast',
                color=self.colors[1], linestyle='--')
        ax.fill_between(x_fc,
                        [p.lower_bound for p in forecast],
                        [p.upper_bound for p in forecast],
                        color=self.colors[1], alpha=0.2, label='Confidence interval')

        labels = [str(label) for label in history.index] + [p.timestamp for p in forecast]
        self._set_sparse_ticks(ax, labels)
        ax.set_ylabel('Value')
        if title:
            ax.set_title(title)
        ax.legend()

        if save_path:
            fig.savefig(save_path)

        return fig

    def plot_backtest(self,
                      train: pd.Series,
                      result: BacktestResult,
                      title: Optional[str] = None,
                      save_path: Optional[Path] = None) -> plt.Figure:
        """
        Plot training data, held-out actuals and the backtest forecast

        Parameters:
        -----------
        train : Series
            Training prefix
        result : BacktestResult
            Output of BacktestEvaluator.run
        title : str, optional
            Plot title
        save_path : Path, optional
            Path to save figure
        """
        n_train = len(train)
        x_test = np.arange(n_train, n_train + len(result.actual))

        fig, ax = plt.subplots(figsize=(12, 6))
        ax.plot(np.arange(n_train), train.to_numpy(dtype=float), label='Train',
                color=self.colors[0])
        ax.plot(x_test, result.actual, label='Actual', color=self.colors[2])
        ax.plot(x_test, [p.point_estimate for p in result.forecast], label='Forecast',
                color=self.colors[1], linestyle='--')
        ax.fill_between(x_test,
                        [p.lower_bound for p in result.forecast],
                        [p.upper_bound for p in result.forecast],
                        color=self.colors[1], alpha=0.2)
        ax.axvline(n_train - 0.5, color='grey', linestyle=':', linewidth=1)

        m = result.metrics
        ax.text(0.01, 0.97, f"MAE {m.mae:.3f}  RMSE {m.rmse:.3f}  MAPE {m.mape:.2f}%",
                transform=ax.transAxes, va='top')
        labels = [str(label) for label in train.index] + [p.timestamp for p in result.forecast]
        self._set_sparse_ticks(ax, labels)
        if title:
            ax.set_title(title)
        ax.legend()

        if save_path:
            fig.savefig(save_path)

        return fig

    def plot_residual_diagnostics(self,
                                  fitted: FittedModel,
                                  lags: int = 20,
                                  title: Optional[str] = None,
                                  save_path: Optional[Path] = None) -> plt.Figure:
        """
        Plot residual series, histogram and autocorrelations

        Parameters:
        -----------
        fitted : FittedModel
            Model whose residuals are plotted
        lags : int
            Number of autocorrelation lags
        """
        resid = np.asarray(fitted.residuals, dtype=float)
        if len(resid) < 3:
            raise ValueError("Too few residuals to plot")
        lags = min(lags, len(resid) - 1)

        fig, (ax1, ax2, ax3) = plt.subplots(3, 1, figsize=(12, 10))

        ax1.plot(resid, color=self.colors[0])
        ax1.axhline(0, color='grey', linewidth=1)
        ax1.set_ylabel('Residual')

        sns.histplot(resid, kde=True, ax=ax2, color=self.colors[0])
        ax2.set_xlabel('Residual')

        correlations = acf(resid, nlags=lags, fft=True)
        bound = 1.96 / np.sqrt(len(resid))
        ax3.bar(np.arange(1, lags + 1), correlations[1:], color=self.colors[0])
        ax3.axhline(bound, color='grey', linestyle='--')
        ax3.axhline(-bound, color='grey', linestyle='--')
        ax3.set_xlabel('Lag')
        ax3.set_ylabel('ACF')

        fig.suptitle(title or f"{fitted.order.label} residuals")
        plt.tight_layout()

        if save_path:
            fig.savefig(save_path)

        return fig

    def _set_sparse_ticks(self, ax, labels: Sequence[str], max_ticks: int = 10):
        step = max(1, len(labels) // max_ticks)
        positions = np.arange(0, len(labels), step)
        ax.set_xticks(positions)
        ax.set_xticklabels([labels[i] for i in positions], rotation=45, ha='right')

    def close_all(self):
        """Close all figures"""
        plt.close('all')
