"""Error kinds raised by the SARIMA core."""


class SARIMAError(Exception):
    """Base class for every failure raised by the forecasting core"""


class InsufficientDataError(SARIMAError, ValueError):
    """Too few observations for the requested differencing or order"""


class InvalidOrderError(SARIMAError, ValueError):
    """Degenerate or out-of-range model order"""


class InvalidArgumentError(SARIMAError, ValueError):
    """Bad horizon, confidence level, ratio or input values"""


class InsufficientSplitError(SARIMAError, ValueError):
    """Backtest split leaves an empty train or test partition"""


class DegenerateModelError(SARIMAError, ValueError):
    """Log-likelihood is not finite, so information criteria are undefined"""


class NonConvergenceError(SARIMAError, RuntimeError):
    """Optimizer exhausted its iteration budget without meeting tolerance"""


class FitCancelledError(NonConvergenceError):
    """Fit aborted by a caller deadline or cancel event"""
