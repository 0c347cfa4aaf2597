"""Common data models used across the forecasting core."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import math

import numpy as np

from .exceptions import InvalidOrderError

MAX_ORDER = 10  # Upper bound for p, d, q, P, D, Q
MAX_PERIOD = 365


@dataclass(frozen=True)
class Observation:
    """Single labelled value of a regularly spaced series"""
    timestamp: str
    value: float


@dataclass(frozen=True)
class ModelOrder:
    """SARIMA(p,d,q)(P,D,Q)s order.

    With ``s == 0`` there is no seasonal component and P, D, Q are forced to 0.
    """
    p: int = 0
    d: int = 0
    q: int = 0
    P: int = 0
    D: int = 0
    Q: int = 0
    s: int = 0

    def __post_init__(self):
        for name in ('p', 'd', 'q', 'P', 'D', 'Q', 's'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise InvalidOrderError(f"Order '{name}' must be an integer, got {value!r}")
            if value < 0:
                raise InvalidOrderError(f"Order '{name}' must be non-negative, got {value}")
            limit = MAX_PERIOD if name == 's' else MAX_ORDER
            if value > limit:
                raise InvalidOrderError(f"Order '{name}'={value} exceeds maximum {limit}")
            object.__setattr__(self, name, int(value))

        if self.s == 0:
            object.__setattr__(self, 'P', 0)
            object.__setattr__(self, 'D', 0)
            object.__setattr__(self, 'Q', 0)
        elif self.s == 1 and (self.P or self.D or self.Q):
            raise InvalidOrderError("Seasonal period s=1 duplicates the non-seasonal lags")

    @property
    def is_seasonal(self) -> bool:
        return self.s > 0 and (self.P > 0 or self.D > 0 or self.Q > 0)

    @property
    def n_arma_params(self) -> int:
        return self.p + self.q + self.P + self.Q

    @property
    def is_degenerate(self) -> bool:
        """Pure mean model: no ARMA terms and no differencing"""
        return self.n_arma_params == 0 and self.d + self.D == 0

    @property
    def ar_lag(self) -> int:
        """Largest lag of the multiplicative AR polynomial"""
        return self.p + self.P * self.s

    @property
    def ma_lag(self) -> int:
        return self.q + self.Q * self.s

    @property
    def n_consumed(self) -> int:
        """Leading observations dropped by differencing"""
        return self.d + self.D * self.s

    @property
    def label(self) -> str:
        return f"SARIMA({self.p},{self.d},{self.q})({self.P},{self.D},{self.Q},{self.s})"

    def as_tuple(self) -> Tuple[int, ...]:
        return (self.p, self.d, self.q, self.P, self.D, self.Q, self.s)

    def to_dict(self) -> Dict[str, int]:
        return {'p': self.p, 'd': self.d, 'q': self.q,
                'P': self.P, 'D': self.D, 'Q': self.Q, 's': self.s}

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> 'ModelOrder':
        """Build from a mapping with keys p, d, q, P, D, Q, s (missing keys are 0)"""
        unknown = set(params) - {'p', 'd', 'q', 'P', 'D', 'Q', 's'}
        if unknown:
            raise InvalidOrderError(f"Unknown order keys: {sorted(unknown)}")
        return cls(**params)

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True, eq=False)
class DifferencingPass:
    """One differencing pass at a given lag.

    ``head`` holds the first ``lag`` values and ``tail`` the last ``lag`` values of
    the series as it was *before* this pass.
    """
    lag: int
    head: np.ndarray
    tail: np.ndarray


@dataclass(frozen=True, eq=False)
class DifferencedSeries:
    """Series after d ordinary and D seasonal differences plus integration history"""
    values: np.ndarray
    original: np.ndarray
    d: int
    D: int
    s: int
    passes: Tuple[DifferencingPass, ...]
    timestamps: Optional[Tuple[str, ...]] = None

    def __len__(self) -> int:
        return len(self.values)

    @property
    def n_dropped(self) -> int:
        return len(self.original) - len(self.values)


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Container for SARIMA estimation results"""
    order: ModelOrder
    ar_coeffs: np.ndarray
    ma_coeffs: np.ndarray
    seasonal_ar_coeffs: np.ndarray
    seasonal_ma_coeffs: np.ndarray
    intercept: float
    residual_variance: float
    log_likelihood: float
    residuals: np.ndarray
    has_intercept: bool = False
    method: str = 'css'
    nobs: int = 0  # Length of the differenced series used for fitting
    n_iterations: int = 0
    converged: bool = True  # False when css-ml had to keep the CSS estimate
    differenced: Optional[DifferencedSeries] = None
    _criteria: Dict[str, float] = field(default_factory=dict, repr=False, compare=False)

    @property
    def n_params(self) -> int:
        """Parameter count used by information criteria (variance excluded)"""
        return self.order.n_arma_params + (1 if self.has_intercept else 0)

    @property
    def aic(self) -> float:
        if 'aic' not in self._criteria:
            self._criteria['aic'] = 2 * self.n_params - 2 * self.log_likelihood
        return self._criteria['aic']

    @property
    def bic(self) -> float:
        if 'bic' not in self._criteria:
            self._criteria['bic'] = (self.n_params * math.log(max(self.nobs, 1))
                                     - 2 * self.log_likelihood)
        return self._criteria['bic']

    def params(self) -> Dict[str, float]:
        """Flat mapping of named coefficients"""
        named = {}
        if self.has_intercept:
            named['intercept'] = float(self.intercept)
        for prefix, values in (('ar.L', self.ar_coeffs), ('ma.L', self.ma_coeffs)):
            for i, value in enumerate(values, start=1):
                named[f'{prefix}{i}'] = float(value)
        for prefix, values in (('ar.S.L', self.seasonal_ar_coeffs),
                               ('ma.S.L', self.seasonal_ma_coeffs)):
            for i, value in enumerate(values, start=1):
                named[f'{prefix}{i * self.order.s}'] = float(value)
        named['sigma2'] = float(self.residual_variance)
        return named

    def to_dict(self) -> Dict[str, Any]:
        return {
            'order': self.order.to_dict(),
            'method': self.method,
            'params': self.params(),
            'log_likelihood': float(self.log_likelihood),
            'aic': float(self.aic),
            'bic': float(self.bic),
            'nobs': self.nobs,
            'converged': self.converged,
        }


@dataclass(frozen=True)
class ForecastPoint:
    """Forecast with its confidence bounds"""
    timestamp: str
    point_estimate: float
    lower_bound: float
    upper_bound: float

    @property
    def width(self) -> float:
        return self.upper_bound - self.lower_bound


@dataclass(frozen=True)
class BacktestMetrics:
    """Accuracy of a forecast against held-out actuals; mape is a percentage"""
    mae: float
    rmse: float
    mape: float
    coverage: float = float('nan')
    n_points: int = 0

    def to_dict(self) -> Dict[str, float]:
        return {'mae': self.mae, 'rmse': self.rmse, 'mape': self.mape,
                'coverage': self.coverage, 'n_points': self.n_points}


@dataclass(frozen=True)
class WhiteNoiseTest:
    """Ljung-Box residual check"""
    statistic: float
    p_value: float
    lags: int
    passed: bool


@dataclass(frozen=True)
class StationarityTest:
    """ADF decision on the original series"""
    label: str
    statistic: float
    critical_value: float
    p_value: float
    trend: str
    lags: int


@dataclass(frozen=True)
class DiagnosticsReport:
    aic: float
    bic: float
    aicc: float
    stationarity: str
    description: str
    ljung_box: Optional[WhiteNoiseTest] = None
    adf: Optional[StationarityTest] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'aic': self.aic, 'bic': self.bic, 'stationarity': self.stationarity,
                'description': self.description}


@dataclass(frozen=True, eq=False)
class BacktestResult:
    """Forecast of the held-out suffix and its accuracy"""
    forecast: List[ForecastPoint]
    metrics: BacktestMetrics
    split_index: int
    actual: np.ndarray
    fitted: Optional[FittedModel] = None


def as_order(order: Any) -> ModelOrder:
    """Coerce a ModelOrder, mapping or 7-sequence into a ModelOrder"""
    if isinstance(order, ModelOrder):
        return order
    if isinstance(order, dict):
        return ModelOrder.from_dict(order)
    if isinstance(order, Sequence) and len(order) in (3, 7):
        return ModelOrder(*order)
    raise InvalidOrderError(f"Cannot interpret {order!r} as a model order")
