import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import math

import pytest
import numpy as np
import pandas as pd

from backtest.evaluator import BacktestEvaluator, split_index
from backtest.expanding_window import ExpandingWindowBacktest
from backtest.metrics import compute_metrics, interval_coverage
from sarima.checkpoint import FitCache
from sarima.estimator import SARIMAEstimator
from sarima.exceptions import InsufficientSplitError, InvalidArgumentError
from sarima.models import ModelOrder, Observation


@pytest.fixture
def evaluator():
    return BacktestEvaluator(estimator=SARIMAEstimator(method='css'))


@pytest.fixture
def short_series(integrated_ar2_series):
    return integrated_ar2_series[:60]


def test_metric_values():
    metrics = compute_metrics([10, 20, 0, 40], [12, 18, 5, 42])
    assert metrics.mae == pytest.approx(2.75)
    assert metrics.rmse == pytest.approx(math.sqrt(9.25))
    assert metrics.mape == pytest.approx(35.0 / 3.0)
    assert metrics.n_points == 4
    assert math.isnan(metrics.coverage)


def test_mape_undefined_without_nonzero_actuals():
    metrics = compute_metrics([0.0, 0.0], [1.0, -1.0])
    assert metrics.mae == pytest.approx(1.0)
    assert math.isnan(metrics.mape)


def test_metrics_reject_mismatched_lengths():
    with pytest.raises(InvalidArgumentError):
        compute_metrics([1.0, 2.0], [1.0])
    with pytest.raises(InvalidArgumentError):
        compute_metrics([], [])


def test_interval_coverage():
    assert interval_coverage([1, 2, 3, 4], [0, 0, 0, 5], [2, 2, 2, 6]) == pytest.approx(50.0)


def test_split_index():
    assert split_index(10, 0.8) == 8
    assert split_index(7, 0.5) == 3
    for ratio in (0.0, 1.0, 0.05):
        with pytest.raises(InsufficientSplitError):
            split_index(10, ratio)
    for ratio in (-0.1, 1.5, float('nan'), '0.5', True):
        with pytest.raises(InvalidArgumentError):
            split_index(10, ratio)


def test_run_splits_and_scores(evaluator, short_series):
    result = evaluator.run(short_series, ModelOrder(1, 1, 0), train_ratio=0.8)
    assert result.split_index == 48
    assert len(result.forecast) == 12
    np.testing.assert_allclose(result.actual, short_series[48:])
    assert result.metrics.n_points == 12
    assert result.metrics.mae > 0
    assert result.metrics.rmse >= result.metrics.mae
    assert 0.0 <= result.metrics.coverage <= 100.0
    # Positional labels for bare values
    assert [p.timestamp for p in result.forecast] == [str(i) for i in range(48, 60)]


def test_forecast_labels_follow_held_out_labels(evaluator, monthly_series):
    result = evaluator.run(monthly_series, ModelOrder(1, 1, 0), train_ratio=0.9)
    held_out = [ts.strftime('%Y-%m-%d') for ts in monthly_series.index[result.split_index:]]
    assert [p.timestamp for p in result.forecast] == held_out


def test_run_on_observations(evaluator, short_series):
    observations = [Observation(f"obs-{i}", float(v)) for i, v in enumerate(short_series)]
    result = evaluator.run(observations, (0, 1, 1), train_ratio=0.75)
    assert result.split_index == 45
    assert result.forecast[0].timestamp == 'obs-45'


def test_run_rejects_bad_split(evaluator, short_series):
    with pytest.raises(InsufficientSplitError):
        evaluator.run(short_series, ModelOrder(1, 1, 0), train_ratio=1.0)
    with pytest.raises(InvalidArgumentError):
        evaluator.run(short_series, ModelOrder(1, 1, 0), train_ratio=2.0)


def test_run_uses_cache(short_series):
    cache = FitCache()
    evaluator = BacktestEvaluator(estimator=SARIMAEstimator(method='css'), cache=cache)
    first = evaluator.run(short_series, ModelOrder(1, 1, 0))
    second = evaluator.run(short_series, ModelOrder(1, 1, 0))
    assert cache.misses == 1
    assert cache.hits == 1
    assert second.fitted is first.fitted


def test_sweep(evaluator, short_series):
    orders = [ModelOrder(1, 1, 0), ModelOrder(0, 1, 1), ModelOrder(8, 0, 0)]
    results = evaluator.sweep(short_series, orders, [0.2, 0.8])
    assert isinstance(results, pd.DataFrame)
    assert len(results) == 6
    assert list(results['train_ratio']) == [0.2, 0.8] * 3
    # Twelve training points cannot support eight lags plus a mean
    failed = results[(results['order'] == ModelOrder(8, 0, 0).label) & (results['train_ratio'] == 0.2)]
    assert failed['error'].iloc[0].startswith('InsufficientDataError')
    ok = results[results['error'].isna()]
    assert len(ok) >= 4
    assert ok['mae'].notna().all()


def test_sweep_in_process_pool(evaluator, short_series):
    orders = [ModelOrder(1, 1, 0), ModelOrder(0, 1, 1)]
    serial = evaluator.sweep(short_series, orders, [0.8])
    parallel = evaluator.sweep(short_series, orders, [0.8], max_workers=2)
    np.testing.assert_allclose(parallel['mae'], serial['mae'], rtol=1e-8)


def test_expanding_window(short_series):
    backtest = ExpandingWindowBacktest(min_train_size=40, horizon=5, step_size=5,
                                       estimator=SARIMAEstimator(method='css'))
    results = backtest.run(short_series, ModelOrder(1, 1, 0))
    assert list(results['train_end']) == [40, 45, 50, 55]
    assert results['error'].isna().all()
    summary = ExpandingWindowBacktest.summarize(results)
    assert summary['n_windows'] == 4
    assert summary['n_failed'] == 0
    assert summary['mae'] == pytest.approx(results['mae'].mean())


def test_expanding_window_needs_data():
    backtest = ExpandingWindowBacktest(min_train_size=40, horizon=5)
    with pytest.raises(InsufficientSplitError):
        backtest.get_windows(44)
    with pytest.raises(InvalidArgumentError):
        ExpandingWindowBacktest(min_train_size=0)
