"""
Lag-polynomial helpers for multiplicative SARIMA models.

Conventions used throughout the package:
    AR polynomial  phi(B) Phi(B^s) = 1 - sum(a_k B^k), stored as [1, -a_1, ..., -a_m]
    MA polynomial  theta(B) Theta(B^s) = 1 + sum(b_k B^k), stored as [1, b_1, ..., b_n]
"""

import logging
from typing import Optional, Tuple

import numpy as np
from scipy import linalg, signal

logger = logging.getLogger(__name__)

# Roots closer to the unit circle than this are pushed out when re-projecting
ROOT_MARGIN = 1.01


def lag_polynomial(coeffs: np.ndarray, lag: int = 1, sign: float = -1.0) -> np.ndarray:
    """Expand coefficients c_i into 1 + sign * sum(c_i B^(i*lag))"""
    coeffs = np.asarray(coeffs, dtype=float)
    poly = np.zeros(len(coeffs) * lag + 1)
    poly[0] = 1.0
    if len(coeffs):
        poly[lag::lag] = sign * coeffs
    return poly


def ar_polynomial(ar: np.ndarray, seasonal_ar: np.ndarray, s: int) -> np.ndarray:
    """Multiplicative AR polynomial phi(B) * Phi(B^s)"""
    poly = lag_polynomial(ar, 1, -1.0)
    if len(seasonal_ar):
        poly = np.convolve(poly, lag_polynomial(seasonal_ar, s, -1.0))
    return poly


def ma_polynomial(ma: np.ndarray, seasonal_ma: np.ndarray, s: int) -> np.ndarray:
    """Multiplicative MA polynomial theta(B) * Theta(B^s)"""
    poly = lag_polynomial(ma, 1, 1.0)
    if len(seasonal_ma):
        poly = np.convolve(poly, lag_polynomial(seasonal_ma, s, 1.0))
    return poly


def differencing_polynomial(d: int, D: int, s: int) -> np.ndarray:
    """(1 - B)^d (1 - B^s)^D"""
    poly = np.array([1.0])
    for _ in range(d):
        poly = np.convolve(poly, [1.0, -1.0])
    for _ in range(D):
        seasonal = np.zeros(s + 1)
        seasonal[0], seasonal[s] = 1.0, -1.0
        poly = np.convolve(poly, seasonal)
    return poly


def constrain_stationary(unconstrained: np.ndarray) -> np.ndarray:
    """Map unconstrained reals to AR coefficients of a stationary polynomial.

    Each value becomes a partial autocorrelation through tanh, and the
    Durbin-Levinson recursion turns those into coefficients c with all roots
    of 1 - sum(c_i z^i) outside the unit circle. For a single lag this is
    simply c = tanh(x).
    """
    x = np.asarray(unconstrained, dtype=float)
    n = len(x)
    if n == 0:
        return x.copy()
    r = np.tanh(x)
    y = np.zeros((n, n))
    for k in range(n):
        for i in range(k):
            y[k, i] = y[k - 1, i] - r[k] * y[k - 1, k - i - 1]
        y[k, k] = r[k]
    return y[n - 1].copy()


def unconstrain_stationary(constrained: np.ndarray, max_pacf: float = 1 - 1e-8) -> np.ndarray:
    """Inverse of constrain_stationary; the input must already be stationary"""
    c = np.asarray(constrained, dtype=float)
    n = len(c)
    if n == 0:
        return c.copy()
    y = np.zeros((n, n))
    y[n - 1] = c
    for k in range(n - 1, 0, -1):
        rk = y[k, k]
        denom = 1.0 - rk ** 2
        for i in range(k):
            y[k - 1, i] = (y[k, i] + rk * y[k, k - i - 1]) / denom
    r = np.clip(np.diag(y), -max_pacf, max_pacf)
    return np.arctanh(r)


def polynomial_roots(coeffs: np.ndarray) -> np.ndarray:
    """Roots of 1 - sum(c_i z^i)"""
    coeffs = np.asarray(coeffs, dtype=float)
    if len(coeffs) == 0 or not np.any(coeffs):
        return np.array([], dtype=complex)
    ascending = np.concatenate([[1.0], -coeffs])
    return np.roots(ascending[::-1])


def is_stationary(coeffs: np.ndarray) -> bool:
    """True when all roots of 1 - sum(c_i z^i) lie outside the unit circle"""
    roots = polynomial_roots(coeffs)
    return bool(np.all(np.abs(roots) > 1.0))


def reflect_roots(coeffs: np.ndarray, margin: float = ROOT_MARGIN) -> np.ndarray:
    """Re-project coefficients so every root lies outside the unit circle.

    Roots inside are replaced by their reciprocal conjugate, roots on or near
    the circle are pushed out to ``margin``. Stationary input is returned unchanged.
    """
    coeffs = np.asarray(coeffs, dtype=float)
    if is_stationary(coeffs) and np.all(np.abs(polynomial_roots(coeffs)) >= margin):
        return coeffs.copy()
    roots = polynomial_roots(coeffs)
    moved = []
    for root in roots:
        if abs(root) < 1.0:
            root = 1.0 / np.conj(root)
        if abs(root) < margin:
            root = root / abs(root) * margin
        moved.append(root)
    # Pi(1 - z/r_i) has constant term 1
    descending = np.real(np.poly(moved))
    ascending = descending[::-1] / descending[-1]
    # np.roots drops trailing zero coefficients, so pad back to the input length
    reflected = np.zeros(len(coeffs))
    reflected[:len(ascending) - 1] = -ascending[1:]
    return reflected


def css_residuals(x: np.ndarray, ar_poly: np.ndarray, ma_poly: np.ndarray,
                  warmup: Optional[int] = None) -> np.ndarray:
    """Conditional residuals of theta(B) e_t = phi(B) x_t.

    The first ``warmup`` observations (default: the AR polynomial degree) only
    seed the recursion; residuals before them are taken as zero. Returns
    ``len(x) - warmup`` residuals.
    """
    x = np.asarray(x, dtype=float)
    m = len(ar_poly) - 1 if warmup is None else warmup
    u = signal.lfilter(ar_poly, [1.0], x)[m:]
    if len(ma_poly) == 1:
        return u
    return signal.lfilter([1.0], ma_poly, u)


def psi_weights(ar_poly: np.ndarray, ma_poly: np.ndarray, n: int) -> np.ndarray:
    """First n weights of the MA(infinity) representation psi(B) = theta(B) / phi(B)"""
    impulse = np.zeros(n)
    impulse[0] = 1.0
    return signal.lfilter(ma_poly, ar_poly, impulse)


def arma_innovations(x: np.ndarray, ar_poly: np.ndarray, ma_poly: np.ndarray,
                     tol: float = 1e-10) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """Kalman filter innovations of a zero-mean ARMA process with unit variance.

    Uses the Harvey state-space form with the stationary initial covariance
    from a discrete Lyapunov solve. Once the prediction covariance stops
    changing the filter switches to its steady-state gain.

    Returns:
        (innovations, innovation variances), or None when the filter breaks down
    """
    x = np.asarray(x, dtype=float)
    phi = -np.asarray(ar_poly[1:], dtype=float)
    theta = np.asarray(ma_poly[1:], dtype=float)
    r = max(len(phi), len(theta) + 1)

    T = np.zeros((r, r))
    T[:len(phi), 0] = phi
    if r > 1:
        T[:-1, 1:] = np.eye(r - 1)
    R = np.zeros(r)
    R[0] = 1.0
    R[1:len(theta) + 1] = theta
    RR = np.outer(R, R)

    try:
        P = linalg.solve_discrete_lyapunov(T, RR)
    except (linalg.LinAlgError, ValueError):
        return None
    if not np.all(np.isfinite(P)):
        return None

    n = len(x)
    v = np.empty(n)
    F = np.empty(n)
    a = np.zeros(r)
    K = np.zeros(r)
    steady = False
    for t in range(n):
        F_t = P[0, 0]
        if not np.isfinite(F_t) or F_t <= 0:
            return None
        v_t = x[t] - a[0]
        v[t] = v_t
        F[t] = F_t
        if not steady:
            K = T @ P[:, 0] / F_t
            P_next = T @ P @ T.T + RR - np.outer(K, K) * F_t
            P_next = 0.5 * (P_next + P_next.T)
            steady = np.max(np.abs(P_next - P)) < tol
            P = P_next
        a = T @ a + K * v_t
    return v, F
