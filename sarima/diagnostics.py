"""
Model diagnostics: information criteria, unit-root decision and residual checks.
"""

from typing import Any, Optional
import logging
import math

import numpy as np
from arch.unitroot import ADF
from arch.utility.exceptions import InfeasibleTestException
from statsmodels.stats.diagnostic import acorr_ljungbox

from .data_prep import split_series
from .exceptions import DegenerateModelError, InvalidArgumentError
from .models import (DiagnosticsReport, FittedModel, ModelOrder, StationarityTest,
                     WhiteNoiseTest, as_order)

logger = logging.getLogger(__name__)

STATIONARY = 'Stationary'
NON_STATIONARY = 'Non-Stationary'
TREND_STATIONARY = 'Trend-Stationary'

MIN_ADF_OBSERVATIONS = 10
ADF_CRITICAL_LEVEL = '5%'


def _adf_max_lags(n: int) -> int:
    """Schwert bound, capped so the trend regression keeps spare degrees of freedom"""
    schwert = int(12 * (n / 100.0) ** 0.25)
    return max(0, min(schwert, (n - 8) // 3))


def stationarity_test(series: Any) -> StationarityTest:
    """
    Label a series Stationary, Trend-Stationary or Non-Stationary.

    Decision rule:
        1. ADF with constant; statistic below the 5% critical value -> Stationary
        2. ADF with constant and trend; below its 5% critical value -> Trend-Stationary
        3. otherwise Non-Stationary

    Lags are chosen by AIC up to a capped Schwert bound, so the result is
    deterministic. Series shorter than 10 points cannot reject a unit root and are
    labelled Non-Stationary.
    """
    values, _ = split_series(series)
    values = values[np.isfinite(values)]
    n = len(values)
    nan = float('nan')

    if n > 0 and np.ptp(values) == 0.0:
        return StationarityTest(STATIONARY, nan, nan, nan, 'c', 0)
    if n < MIN_ADF_OBSERVATIONS:
        logger.warning(f"Series of {n} points too short for an ADF test; assuming a unit root")
        return StationarityTest(NON_STATIONARY, nan, nan, nan, 'c', 0)

    max_lags = _adf_max_lags(n)
    last = None
    for trend, label in (('c', STATIONARY), ('ct', TREND_STATIONARY)):
        try:
            adf = ADF(values, trend=trend, max_lags=max_lags, method='aic')
            stat = float(adf.stat)
            critical = float(adf.critical_values[ADF_CRITICAL_LEVEL])
            last = StationarityTest(NON_STATIONARY, stat, critical, float(adf.pvalue),
                                    trend, int(adf.lags))
        except (InfeasibleTestException, ValueError, np.linalg.LinAlgError) as e:
            logger.warning(f"ADF test with trend '{trend}' could not be computed: {str(e)}")
            continue
        if stat < critical:
            return StationarityTest(label, stat, critical, float(adf.pvalue), trend, int(adf.lags))

    if last is None:
        return StationarityTest(NON_STATIONARY, nan, nan, nan, 'c', 0)
    return last


def ljung_box(residuals: np.ndarray, lags: Optional[int] = None, model_df: int = 0,
              significance: float = 0.05, period: int = 0) -> Optional[WhiteNoiseTest]:
    """
    Ljung-Box test that residual autocorrelations up to ``lags`` are zero.

    The default lag is min(10, n/5), or 2*period for seasonal models when the
    residual series is long enough. Returns None when too few residuals remain.
    """
    resid = np.asarray(residuals, dtype=float)
    resid = resid[np.isfinite(resid)]
    n = len(resid)
    if lags is None:
        lags = min(10, n // 5)
        if period and 2 * period < n // 2:
            lags = max(lags, 2 * period)
        lags = max(lags, model_df + 1)
    if lags < 1 or lags >= n or lags <= model_df or np.ptp(resid) == 0.0:
        logger.warning(f"Skipping Ljung-Box test: {n} residuals, {lags} lags, {model_df} model df")
        return None

    table = acorr_ljungbox(resid, lags=[lags], model_df=model_df)
    statistic = float(table['lb_stat'].iloc[-1])
    p_value = float(table['lb_pvalue'].iloc[-1])
    return WhiteNoiseTest(statistic=statistic, p_value=p_value, lags=int(lags),
                          passed=bool(p_value > significance))


def suggest_differencing(series: Any, max_d: int = 2) -> int:
    """Smallest d in 0..max_d for which the ADF test with constant rejects a unit root"""
    values, _ = split_series(series)
    for d in range(max_d + 1):
        current = np.diff(values, n=d) if d else values
        if stationarity_test(current).label == STATIONARY:
            return d
    return max_d


class ModelDiagnostics:
    """Information criteria, stationarity and residual checks for a fitted model"""

    def __init__(self, significance: float = 0.05, ljung_box_lags: Optional[int] = None):
        if not 0.0 < significance < 1.0:
            raise InvalidArgumentError(f"Significance must lie in (0, 1), got {significance}")
        self.significance = significance
        self.ljung_box_lags = ljung_box_lags
        self.logger = logging.getLogger('sarima.diagnostics')

    def information_criteria(self, fitted: FittedModel, order: Optional[ModelOrder] = None):
        """(aic, bic, aicc) with k = p+q+P+Q (+1 for an intercept) and n = differenced length"""
        order = order or fitted.order
        if not math.isfinite(fitted.log_likelihood):
            raise DegenerateModelError(
                f"Log-likelihood of {order.label} is {fitted.log_likelihood}; "
                f"information criteria are undefined"
            )
        k = order.n_arma_params + (1 if fitted.has_intercept else 0)
        n = fitted.nobs
        aic = 2 * k - 2 * fitted.log_likelihood
        bic = k * math.log(n) - 2 * fitted.log_likelihood
        aicc = aic + 2 * k * (k + 1) / (n - k - 1) if n - k - 1 > 0 else float('inf')
        return aic, bic, aicc

    def evaluate(self, fitted: FittedModel, order: Any = None) -> DiagnosticsReport:
        """
        Diagnose a fitted model.

        Args:
            fitted: Result of SARIMAEstimator.fit
            order: Order the model was fitted with; defaults to fitted.order

        Returns:
            DiagnosticsReport with aic, bic, stationarity label and description
        """
        order = as_order(order) if order is not None else fitted.order
        if order != fitted.order:
            raise InvalidArgumentError(
                f"Order {order.label} does not match fitted model {fitted.order.label}"
            )

        try:
            aic, bic, aicc = self.information_criteria(fitted, order)
        except DegenerateModelError as e:
            self.logger.error(f"Error evaluating {order.label}: {str(e)}")
            raise

        original = fitted.differenced.original if fitted.differenced is not None else None
        if original is not None:
            adf = stationarity_test(original)
        else:
            adf = StationarityTest(NON_STATIONARY, float('nan'), float('nan'),
                                   float('nan'), 'c', 0)

        white_noise = ljung_box(fitted.residuals, lags=self.ljung_box_lags,
                                model_df=order.n_arma_params,
                                significance=self.significance,
                                period=order.s if order.is_seasonal else 0)

        description = self._describe(fitted, order, adf, white_noise)
        self.logger.info(f"Diagnostics for {order.label}: AIC={aic:.3f}, BIC={bic:.3f}, "
                         f"stationarity={adf.label}")
        return DiagnosticsReport(aic=aic, bic=bic, aicc=aicc, stationarity=adf.label,
                                 description=description, ljung_box=white_noise, adf=adf)

    def _describe(self, fitted: FittedModel, order: ModelOrder,
                  adf: StationarityTest, white_noise: Optional[WhiteNoiseTest]) -> str:
        parts = [f"{order.label} estimated by {fitted.method.upper()} on "
                 f"{fitted.nobs} differenced observations "
                 f"(sigma2={fitted.residual_variance:.4g})."]
        if math.isfinite(adf.statistic):
            parts.append(f"ADF ({adf.trend}, {adf.lags} lags) on the original series: "
                         f"statistic {adf.statistic:.3f} vs 5% critical value "
                         f"{adf.critical_value:.3f} -> {adf.label}.")
        else:
            parts.append(f"Original series labelled {adf.label} without an ADF statistic.")
        if white_noise is None:
            parts.append("Too few residuals for a Ljung-Box check.")
        else:
            verdict = 'consistent with white noise' if white_noise.passed else \
                'show remaining autocorrelation'
            parts.append(f"Ljung-Box Q({white_noise.lags})={white_noise.statistic:.3f}, "
                         f"p={white_noise.p_value:.3f}: residuals {verdict}.")
        return ' '.join(parts)
