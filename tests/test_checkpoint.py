import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import threading
import time

import pytest
import numpy as np
import pandas as pd

from sarima.checkpoint import FitCache, series_digest
from sarima.estimator import SARIMAEstimator
from sarima.models import ModelOrder


@pytest.fixture
def estimator():
    return SARIMAEstimator(method='css')


def test_series_digest_is_value_based(ar1_series):
    assert series_digest(ar1_series) == series_digest(list(ar1_series))
    assert series_digest(ar1_series) != series_digest(ar1_series + 1.0)


def test_at_most_one_fit_per_key(estimator, ar1_series):
    cache = FitCache()
    order = ModelOrder(1, 0, 0)
    calls = []
    lock = threading.Lock()

    def fit():
        with lock:
            calls.append(1)
        time.sleep(0.05)
        return estimator.fit(ar1_series, order)

    results = [None] * 8

    def worker(i):
        results[i] = cache.get_or_fit(ar1_series, order, 'css', fit)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert all(result is results[0] for result in results)
    assert cache.hits == 7
    assert cache.misses == 1


def test_distinct_keys_fit_separately(estimator, ar1_series):
    cache = FitCache()
    first = cache.get_or_fit(ar1_series, (1, 0, 0), 'css',
                             lambda: estimator.fit(ar1_series, (1, 0, 0)))
    second = cache.get_or_fit(ar1_series, (2, 0, 0), 'css',
                              lambda: estimator.fit(ar1_series, (2, 0, 0)))
    assert first is not second
    assert len(cache) == 2
    cache.clear()
    assert len(cache) == 0


def test_checkpoint_directory_persists(estimator, ar1_series, tmp_path):
    order = ModelOrder(1, 0, 0)
    cache = FitCache(tmp_path / "checkpoints")
    fitted = cache.get_or_fit(ar1_series, order, 'css', lambda: estimator.fit(ar1_series, order))
    assert len(list((tmp_path / "checkpoints").glob("*.pkl"))) == 1

    def fail():
        raise AssertionError("should load from checkpoint")

    reloaded = FitCache(tmp_path / "checkpoints").get_or_fit(ar1_series, order, 'css', fail)
    np.testing.assert_allclose(reloaded.ar_coeffs, fitted.ar_coeffs)
    assert reloaded.order == order


def test_labels_are_part_of_key(ar1_series):
    from sarima.forecaster import SARIMAForecaster
    values = ar1_series[:120]
    monthly = pd.Series(values, index=pd.date_range('2000-01-01', periods=120, freq='MS'))
    daily = pd.Series(values, index=pd.date_range('2020-01-01', periods=120, freq='D'))
    estimator = SARIMAEstimator(method='css')
    cache = FitCache()

    cache.get_or_fit(monthly, (1, 0, 0), estimator.settings(),
                     lambda: estimator.fit(monthly, (1, 0, 0)))
    fitted = cache.get_or_fit(daily, (1, 0, 0), estimator.settings(),
                              lambda: estimator.fit(daily, (1, 0, 0)))
    assert cache.misses == 2
    forecast = SARIMAForecaster().forecast(fitted, steps=1)
    assert forecast[0].timestamp == '2020-04-30'


def test_estimator_settings_are_part_of_key(ar1_series):
    cache = FitCache()
    with_mean = SARIMAEstimator(method='css')
    without_mean = SARIMAEstimator(method='css', include_intercept=False)
    first = cache.get_or_fit(ar1_series, (1, 0, 0), with_mean.settings(),
                             lambda: with_mean.fit(ar1_series, (1, 0, 0)))
    second = cache.get_or_fit(ar1_series, (1, 0, 0), without_mean.settings(),
                              lambda: without_mean.fit(ar1_series, (1, 0, 0)))
    assert first.has_intercept
    assert not second.has_intercept
    assert len(cache) == 2


def test_counters_across_keys(ar1_series):
    cache = FitCache()
    orders = [ModelOrder(p, 0, 0) for p in (1, 2)] * 4

    def worker(order):
        cache.get_or_fit(ar1_series, order, 'css', lambda: SARIMAEstimator(method='css').fit(
            ar1_series, order))

    threads = [threading.Thread(target=worker, args=(order,)) for order in orders]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert cache.misses == 2
    assert cache.hits + cache.misses == len(orders)
