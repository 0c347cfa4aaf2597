import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import matplotlib
matplotlib.use('Agg')

import pytest
import numpy as np
import pandas as pd
from scipy import signal


def simulate_arma(n, ar=(), ma=(), seed=42, burn_in=200, sigma=1.0):
    """ARMA sample with x_t = sum(ar_i x_{t-i}) + e_t + sum(ma_i e_{t-i})"""
    rng = np.random.RandomState(seed)
    e = rng.normal(0, sigma, n + burn_in)
    ar_poly = np.concatenate([[1.0], -np.asarray(ar, dtype=float)])
    ma_poly = np.concatenate([[1.0], np.asarray(ma, dtype=float)])
    return signal.lfilter(ma_poly, ar_poly, e)[burn_in:]


@pytest.fixture
def ar1_series():
    """AR(1) with coefficient 0.6 around a mean of 10"""
    return 10.0 + simulate_arma(500, ar=[0.6], seed=42)


@pytest.fixture
def ma1_series():
    """MA(1) with coefficient 0.5"""
    return simulate_arma(500, ma=[0.5], seed=7)


@pytest.fixture
def integrated_ar2_series():
    """Cumulated AR(2) process: correctly specified as ARIMA(2,1,0)"""
    return np.cumsum(simulate_arma(300, ar=[0.6, -0.3], seed=42)) + 100.0


@pytest.fixture
def seasonal_series():
    """Seasonal AR(1) at lag 4 with coefficient 0.7"""
    rng = np.random.RandomState(3)
    n, s, phi = 600, 4, 0.7
    e = rng.normal(0, 1, n + 200)
    x = np.zeros(n + 200)
    for t in range(s, n + 200):
        x[t] = phi * x[t - s] + e[t]
    return x[200:]


@pytest.fixture
def random_walk():
    rng = np.random.RandomState(11)
    return np.cumsum(rng.normal(0, 1, 200)) + 50.0


@pytest.fixture
def monthly_series(integrated_ar2_series):
    """Integrated AR(2) sample indexed by month starts"""
    values = integrated_ar2_series[:120]
    index = pd.date_range('2010-01-01', periods=len(values), freq='MS')
    return pd.Series(values, index=index)
