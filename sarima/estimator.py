"""
Maximum-likelihood and conditional-sum-of-squares estimation of SARIMA models.
"""

from typing import Any, Callable, Dict, Optional, Tuple
from dataclasses import dataclass
import logging
import threading
import time

import numpy as np
from scipy import linalg
from scipy.optimize import minimize

from .data_prep import SeriesPreprocessor
from .exceptions import (DegenerateModelError, FitCancelledError, InsufficientDataError,
                         InvalidArgumentError, InvalidOrderError, NonConvergenceError,
                         SARIMAError)
from .models import DifferencedSeries, FittedModel, ModelOrder, as_order
from .polynomials import (ar_polynomial, arma_innovations, constrain_stationary,
                          css_residuals, is_stationary, ma_polynomial, reflect_roots,
                          unconstrain_stationary)

logger = logging.getLogger(__name__)

METHODS = ('css', 'ml', 'css-ml')
OPTIMIZERS = ('L-BFGS-B', 'BFGS', 'Nelder-Mead', 'Powell')

_PENALTY = 1e10  # Objective value for proposals where the likelihood breaks down
_START_PACF_LIMIT = 0.95  # Starting partial autocorrelations are kept off the boundary


@dataclass(frozen=True)
class _Layout:
    """Positions of each coefficient block in the unconstrained parameter vector"""
    k_mean: int
    p: int
    P: int
    q: int
    Q: int

    @property
    def size(self) -> int:
        return self.k_mean + self.p + self.P + self.q + self.Q

    def split(self, params: np.ndarray) -> Tuple[float, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        i = self.k_mean
        mean = float(params[0]) if self.k_mean else 0.0
        x_ar = params[i:i + self.p]
        i += self.p
        x_sar = params[i:i + self.P]
        i += self.P
        x_ma = params[i:i + self.q]
        i += self.q
        x_sma = params[i:i + self.Q]
        return mean, x_ar, x_sar, x_ma, x_sma


class SARIMAEstimator:
    """Estimates multiplicative SARIMA coefficients by numerical optimization"""

    def __init__(self, method: str = 'css-ml',
                 optimizer: str = 'L-BFGS-B',
                 maxiter: int = 500,
                 tol: float = 1e-8,
                 include_intercept: Optional[bool] = None,
                 preprocessor: Optional[SeriesPreprocessor] = None):
        """
        Initialize estimator

        Args:
            method: 'css' (conditional sum of squares), 'ml' (exact Gaussian
                likelihood via Kalman filter) or 'css-ml' (CSS start, ML refinement,
                CSS fallback if the ML stage fails)
            optimizer: scipy.optimize.minimize method for the first attempt;
                Nelder-Mead polishes any attempt that reports failure
            maxiter: Iteration budget per optimizer run
            tol: Convergence tolerance on the objective
            include_intercept: Estimate a mean for the differenced series. None
                means only when the order has no differencing
            preprocessor: Differencing helper, created when omitted
        """
        if method not in METHODS:
            raise InvalidArgumentError(f"Unknown method '{method}', expected one of {METHODS}")
        if optimizer not in OPTIMIZERS:
            raise InvalidArgumentError(
                f"Unknown optimizer '{optimizer}', expected one of {OPTIMIZERS}"
            )
        if maxiter < 1:
            raise InvalidArgumentError(f"maxiter must be positive, got {maxiter}")
        self.method = method
        self.optimizer = optimizer
        self.maxiter = maxiter
        self.tol = tol
        self.include_intercept = include_intercept
        self.preprocessor = preprocessor or SeriesPreprocessor()
        self.logger = logging.getLogger('sarima.estimator')

    def settings(self) -> Dict[str, Any]:
        """Configuration that determines the fitted result, used to key cached fits"""
        return {
            'method': self.method,
            'optimizer': self.optimizer,
            'maxiter': self.maxiter,
            'tol': self.tol,
            'include_intercept': self.include_intercept,
            'min_observations': self.preprocessor.min_observations,
        }

    def fit(self, series: Any, order: Any,
            deadline: Optional[float] = None,
            cancel_event: Optional[threading.Event] = None) -> FittedModel:
        """
        Fit a SARIMA model.

        Args:
            series: DifferencedSeries produced for this order, or a raw series
                (Observations, pandas Series, numeric sequence) to difference here
            order: ModelOrder, mapping or 7-tuple
            deadline: Wall-clock budget in seconds for the whole fit
            cancel_event: Event that aborts the fit when set

        Returns:
            FittedModel with coefficients, residuals and log-likelihood
        """
        order = as_order(order)
        if order.is_degenerate:
            raise InvalidOrderError(
                f"{order.label} has no AR, MA or differencing terms (pure mean model)"
            )

        if isinstance(series, DifferencedSeries):
            differenced = series
            if (differenced.d, differenced.D) != (order.d, order.D) or \
                    (order.D and differenced.s != order.s):
                raise InvalidArgumentError(
                    f"Series differenced with d={differenced.d}, D={differenced.D}, "
                    f"s={differenced.s} does not match {order.label}"
                )
        else:
            differenced = self.preprocessor.difference(series, order.d, order.D, order.s)

        stop_at = time.monotonic() + deadline if deadline is not None else None
        check = self._make_cancel_check(stop_at, cancel_event, order)

        self.logger.info(
            f"Fitting {order.label} by {self.method} on {len(differenced)} differenced observations"
        )
        try:
            fitted = self._fit(differenced, order, check)
        except SARIMAError as e:
            self.logger.error(f"Error fitting {order.label}: {str(e)}")
            raise

        self.logger.info(
            f"Fitted {order.label} ({fitted.method}): log-likelihood={fitted.log_likelihood:.4f}, "
            f"sigma2={fitted.residual_variance:.6g}, iterations={fitted.n_iterations}"
        )
        return fitted

    def _make_cancel_check(self, stop_at: Optional[float],
                           cancel_event: Optional[threading.Event],
                           order: ModelOrder) -> Callable[[], None]:
        def check():
            if cancel_event is not None and cancel_event.is_set():
                raise FitCancelledError(f"Fit of {order.label} cancelled")
            if stop_at is not None and time.monotonic() > stop_at:
                raise FitCancelledError(f"Fit of {order.label} exceeded its deadline")
        return check

    def _fit(self, differenced: DifferencedSeries, order: ModelOrder,
             check: Callable[[], None]) -> FittedModel:
        w = np.asarray(differenced.values, dtype=float)
        intercept = self.include_intercept
        if intercept is None:
            intercept = order.d + order.D == 0
        layout = _Layout(k_mean=1 if intercept else 0,
                         p=order.p, P=order.P, q=order.q, Q=order.Q)

        n = len(w)
        warmup = order.ar_lag
        if n - warmup <= layout.size:
            raise InsufficientDataError(
                f"{n} differenced observations leave {n - warmup} after the {warmup}-lag "
                f"warm-up, not enough for {layout.size} parameters"
            )

        if layout.size and np.ptp(w) == 0.0:
            raise DegenerateModelError(
                f"Differenced series is constant; the likelihood of {order.label} is unbounded"
            )

        # Optimize on a rescaled copy for conditioning; only centred when a mean is estimated
        center = float(np.mean(w)) if layout.k_mean else 0.0
        scale = float(np.sqrt(np.mean((w - center) ** 2)))
        if not np.isfinite(scale) or scale == 0.0:
            scale = 1.0
        z = (w - center) / scale

        start = self._starting_values(z, order, layout)

        if layout.size == 0:
            params, method, n_iter, converged = start, 'css', 0, True
        elif self.method == 'css':
            params, n_iter = self._optimize(self._css_objective, start, z, order, layout, check)
            method, converged = 'css', True
        elif self.method == 'ml':
            params, n_iter = self._optimize(self._ml_objective, start, z, order, layout, check)
            method, converged = 'ml', True
        else:
            params, n_iter = self._optimize(self._css_objective, start, z, order, layout, check)
            # Converged only when the exact-likelihood stage is accepted
            method, converged = 'css', False
            try:
                ml_params, ml_iter = self._optimize(self._ml_objective, params, z, order,
                                                    layout, check)
                if np.isfinite(self._ml_objective(ml_params, z, order, layout)):
                    params, method, converged = ml_params, 'css-ml', True
                    n_iter += ml_iter
            except FitCancelledError:
                raise
            except NonConvergenceError as e:
                self.logger.warning(
                    f"Exact likelihood stage failed for {order.label} ({str(e)}); "
                    f"keeping conditional sum-of-squares estimate"
                )

        return self._build_result(params, w, z, center, scale, order, layout,
                                  differenced, method, n_iter, converged)

    def _polynomials(self, params: np.ndarray, order: ModelOrder,
                     layout: _Layout) -> Tuple[float, np.ndarray, np.ndarray,
                                               np.ndarray, np.ndarray]:
        """Map unconstrained parameters to the mean and constrained coefficient blocks"""
        mean, x_ar, x_sar, x_ma, x_sma = layout.split(params)
        ar = constrain_stationary(x_ar)
        sar = constrain_stationary(x_sar)
        ma = -constrain_stationary(x_ma)
        sma = -constrain_stationary(x_sma)
        return mean, ar, sar, ma, sma

    def _css_objective(self, params: np.ndarray, z: np.ndarray, order: ModelOrder,
                       layout: _Layout) -> float:
        mean, ar, sar, ma, sma = self._polynomials(params, order, layout)
        e = css_residuals(z - mean, ar_polynomial(ar, sar, order.s),
                          ma_polynomial(ma, sma, order.s), order.ar_lag)
        sse = float(e @ e)
        if not np.isfinite(sse) or sse <= 0.0:
            return _PENALTY
        n_eff = len(e)
        return 0.5 * n_eff * np.log(sse / n_eff)

    def _ml_objective(self, params: np.ndarray, z: np.ndarray, order: ModelOrder,
                      layout: _Layout) -> float:
        mean, ar, sar, ma, sma = self._polynomials(params, order, layout)
        filtered = arma_innovations(z - mean, ar_polynomial(ar, sar, order.s),
                                    ma_polynomial(ma, sma, order.s))
        if filtered is None:
            return _PENALTY
        v, F = filtered
        sigma2 = float(np.mean(v ** 2 / F))
        if not np.isfinite(sigma2) or sigma2 <= 0.0:
            return _PENALTY
        value = 0.5 * len(v) * np.log(sigma2) + 0.5 * float(np.sum(np.log(F)))
        return value if np.isfinite(value) else _PENALTY

    def _optimize(self, objective: Callable, start: np.ndarray, z: np.ndarray,
                  order: ModelOrder, layout: _Layout,
                  check: Callable[[], None]) -> Tuple[np.ndarray, int]:
        """Minimize with the configured optimizer, polishing with Nelder-Mead on failure"""
        def wrapped(params):
            check()
            return objective(params, z, order, layout)

        result = minimize(wrapped, start, method=self.optimizer, tol=self.tol,
                          options={'maxiter': self.maxiter})
        n_iter = int(getattr(result, 'nit', 0))
        if result.success and np.isfinite(result.fun) and result.fun < _PENALTY:
            return result.x, n_iter

        self.logger.warning(
            f"{self.optimizer} did not converge for {order.label} ({result.message}); "
            f"polishing with Nelder-Mead"
        )
        x0 = result.x if np.all(np.isfinite(result.x)) else start
        polish = minimize(wrapped, x0, method='Nelder-Mead',
                          options={'maxiter': self.maxiter * max(layout.size, 1),
                                   'xatol': 1e-6, 'fatol': self.tol})
        n_iter += int(getattr(polish, 'nit', 0))
        if polish.success and np.isfinite(polish.fun) and polish.fun < _PENALTY:
            return polish.x, n_iter

        raise NonConvergenceError(
            f"Optimizer did not converge for {order.label} within {self.maxiter} iterations: "
            f"{polish.message}"
        )

    def _starting_values(self, z: np.ndarray, order: ModelOrder, layout: _Layout) -> np.ndarray:
        """Yule-Walker starts for AR blocks, zeros for MA blocks, sample mean for the intercept"""
        parts = []
        centered = z
        if layout.k_mean:
            mean = float(np.mean(z))
            parts.append(np.array([mean]))
            centered = z - mean
        parts.append(self._ar_start(centered, order.p, 1, order))
        parts.append(self._ar_start(centered, order.P, order.s, order))
        parts.append(np.zeros(order.q))
        parts.append(np.zeros(order.Q))
        return np.concatenate(parts) if parts else np.zeros(0)

    def _ar_start(self, x: np.ndarray, k: int, lag: int, order: ModelOrder) -> np.ndarray:
        if k == 0:
            return np.zeros(0)
        n = len(x)
        if n <= k * lag + 1:
            return np.zeros(k)
        acov = np.array([x[:n - j] @ x[j:] / n for j in range(0, k * lag + 1, lag)])
        if acov[0] <= 0:
            return np.zeros(k)
        try:
            coeffs = linalg.solve_toeplitz(acov[:k], acov[1:k + 1])
        except (linalg.LinAlgError, ValueError):
            return np.zeros(k)
        if not np.all(np.isfinite(coeffs)):
            return np.zeros(k)
        if not is_stationary(coeffs):
            self.logger.warning(
                f"Re-projecting non-stationary starting values {np.round(coeffs, 4)} "
                f"for {order.label}"
            )
            coeffs = reflect_roots(coeffs)
        return unconstrain_stationary(coeffs, max_pacf=_START_PACF_LIMIT)

    def _build_result(self, params: np.ndarray, w: np.ndarray, z: np.ndarray,
                      center: float, scale: float, order: ModelOrder, layout: _Layout,
                      differenced: DifferencedSeries, method: str,
                      n_iter: int, converged: bool) -> FittedModel:
        mean_std, ar, sar, ma, sma = self._polynomials(params, order, layout)
        mean = center + scale * mean_std if layout.k_mean else 0.0
        ar_poly = ar_polynomial(ar, sar, order.s)
        ma_poly = ma_polynomial(ma, sma, order.s)

        residuals = css_residuals(w - mean, ar_poly, ma_poly, order.ar_lag)
        n = len(w)
        with np.errstate(divide='ignore'):
            if method == 'css' or layout.size == 0:
                n_eff = len(residuals)
                sigma2 = float(residuals @ residuals) / n_eff
                log_likelihood = -0.5 * n_eff * (np.log(2 * np.pi * sigma2) + 1.0)
            else:
                filtered = arma_innovations(z - mean_std, ar_poly, ma_poly)
                if filtered is None:
                    raise DegenerateModelError(
                        f"Kalman filter broke down at the fitted {order.label} coefficients"
                    )
                v, F = filtered
                sigma2_std = float(np.mean(v ** 2 / F))
                sigma2 = sigma2_std * scale ** 2
                log_likelihood = (-0.5 * n * (np.log(2 * np.pi) + 1.0 + np.log(sigma2))
                                  - 0.5 * float(np.sum(np.log(F))))

        return FittedModel(
            order=order,
            ar_coeffs=ar,
            ma_coeffs=ma,
            seasonal_ar_coeffs=sar,
            seasonal_ma_coeffs=sma,
            intercept=float(mean),
            residual_variance=float(sigma2),
            log_likelihood=float(log_likelihood),
            residuals=residuals,
            has_intercept=bool(layout.k_mean),
            method=method,
            nobs=n,
            n_iterations=n_iter,
            converged=converged,
            differenced=differenced,
        )


def fit_order(series: Any, order: Any, estimator_kwargs: Optional[Dict[str, Any]] = None) -> FittedModel:
    """Module-level fit, picklable for process pools"""
    estimator = SARIMAEstimator(**(estimator_kwargs or {}))
    return estimator.fit(series, order)
