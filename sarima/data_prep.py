"""
Prepare series for SARIMA estimation: validation, differencing and its inverse.
"""

import logging
import re
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import InsufficientDataError, InvalidArgumentError
from .models import DifferencedSeries, DifferencingPass, Observation

logger = logging.getLogger(__name__)

MIN_OBSERVATIONS = 5

_RELATIVE_LABEL = re.compile(r"^T([+-]\d+)$")


def split_series(series: Any) -> Tuple[np.ndarray, Optional[Tuple[str, ...]]]:
    """Split input into float values and optional string labels.

    Accepts a list of Observation, a pandas Series (index used as labels), or a
    plain sequence/array of numbers (no labels).
    """
    if isinstance(series, pd.Series):
        values = series.to_numpy(dtype=float)
        labels = tuple(_format_label(label) for label in series.index)
        return values, _unique(labels)
    if isinstance(series, DifferencedSeries):
        return series.original.copy(), series.timestamps
    items = list(series)
    if items and isinstance(items[0], Observation):
        values = np.array([obs.value for obs in items], dtype=float)
        labels = tuple(str(obs.timestamp) for obs in items)
        return values, _unique(labels)
    try:
        values = np.asarray(items, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Series values must be numeric: {e}") from e
    if values.ndim != 1:
        raise InvalidArgumentError(f"Series must be one-dimensional, got shape {values.shape}")
    return values, None


def _format_label(label: Any) -> str:
    if isinstance(label, pd.Timestamp):
        if label == label.normalize():
            return label.strftime('%Y-%m-%d')
        return label.isoformat()
    return str(label)


def future_labels(timestamps: Optional[Sequence[str]], steps: int) -> Tuple[str, ...]:
    """Synthesize labels for the ``steps`` periods following ``timestamps``.

    Date-like labels with an inferable frequency continue the date range, integer
    labels keep counting, anything else becomes T+1, T+2, ...
    """
    fallback = tuple(f"T+{i}" for i in range(1, steps + 1))
    if not timestamps:
        return fallback

    labels = list(timestamps)
    # T-n / T+n offsets from the present: forecasts count forward from T+1
    offsets = [_RELATIVE_LABEL.match(str(label)) for label in labels]
    if all(offsets):
        start = max(int(offsets[-1].group(1)), 0)
        return tuple(f"T+{start + i}" for i in range(1, steps + 1))

    try:
        numbers = [int(label) for label in labels]
    except (TypeError, ValueError):
        numbers = None
    if numbers is not None:
        step = numbers[-1] - numbers[-2] if len(numbers) > 1 else 1
        step = step or 1
        return tuple(str(numbers[-1] + step * i) for i in range(1, steps + 1))

    if len(labels) < 3:
        return fallback
    try:
        dates = pd.DatetimeIndex(pd.to_datetime(labels, format='ISO8601'))
    except (TypeError, ValueError, OverflowError):
        return fallback
    if not dates.is_monotonic_increasing:
        return fallback
    freq = pd.infer_freq(dates)
    if freq is None:
        return fallback
    try:
        future = pd.date_range(start=dates[-1], periods=steps + 1, freq=freq)[1:]
        return tuple(_format_label(date) for date in future)
    except (ValueError, OverflowError, NotImplementedError) as e:
        logger.debug(f"Cannot continue date labels past {labels[-1]}: {str(e)}")
        return fallback


def _unique(labels: Tuple[str, ...]) -> Tuple[str, ...]:
    """Reject repeated timestamps; the series must be strictly ordered in time"""
    if len(set(labels)) != len(labels):
        duplicates = sorted({label for label in labels if labels.count(label) > 1})
        raise InvalidArgumentError(
            f"Series has duplicate timestamps: {', '.join(duplicates[:5])}"
        )
    return labels


class SeriesPreprocessor:
    """Differences a series and undoes the differencing for forecasts"""

    def __init__(self, min_observations: int = MIN_OBSERVATIONS):
        """
        Args:
            min_observations: Minimum series length accepted for fitting
        """
        self.min_observations = min_observations
        self.logger = logging.getLogger('sarima.data_prep')

    def validate(self, values: np.ndarray, d: int = 0, D: int = 0, s: int = 0) -> None:
        """Check length and finiteness of a raw series before differencing"""
        n = len(values)
        if n < self.min_observations:
            raise InsufficientDataError(
                f"Insufficient observations: {n} < {self.min_observations}"
            )
        if n <= d + D * s + 1:
            raise InsufficientDataError(
                f"Series of length {n} too short for d={d}, D={D}, s={s}: "
                f"need more than {d + D * s + 1} observations"
            )
        if not np.all(np.isfinite(values)):
            bad = int(np.sum(~np.isfinite(values)))
            raise InvalidArgumentError(f"Series contains {bad} missing or non-finite values")

    def difference(self, series: Any, d: int = 0, D: int = 0, s: int = 0) -> DifferencedSeries:
        """
        Apply d ordinary then D seasonal (lag s) differences.

        Args:
            series: Observations, pandas Series or numeric sequence
            d: Number of ordinary differences
            D: Number of seasonal differences
            s: Seasonal period (ignored when D == 0)

        Returns:
            DifferencedSeries carrying the values dropped by each pass
        """
        if D > 0 and s < 2:
            raise InvalidArgumentError(f"Seasonal differencing needs a period s >= 2, got s={s}")
        values, labels = split_series(series)
        self.validate(values, d, D, s if D else 0)

        current = values.copy()
        passes = []
        for lag in [1] * d + [s] * D:
            passes.append(DifferencingPass(lag=lag,
                                           head=current[:lag].copy(),
                                           tail=current[-lag:].copy()))
            current = current[lag:] - current[:-lag]

        self.logger.debug(
            f"Differenced {len(values)} observations with d={d}, D={D}, s={s}: "
            f"{len(current)} remain"
        )
        return DifferencedSeries(
            values=current,
            original=values,
            d=d,
            D=D,
            s=s,
            passes=tuple(passes),
            timestamps=labels,
        )

    def integrate(self, forecast: np.ndarray, history: DifferencedSeries) -> np.ndarray:
        """
        Undo differencing for values that continue the series past its end.

        Passes are undone last-applied-first, each one adding back the value one
        lag earlier, seeded with the trailing values retained from the series.
        """
        values = np.asarray(forecast, dtype=float)
        for diff_pass in reversed(history.passes):
            lag = diff_pass.lag
            extended = np.concatenate([diff_pass.tail, np.zeros(len(values))])
            for i in range(len(values)):
                extended[lag + i] = values[i] + extended[i]
            values = extended[lag:]
        return values

    def restore(self, differenced: DifferencedSeries,
                values: Optional[np.ndarray] = None) -> np.ndarray:
        """Rebuild the original-scale series from differenced values and dropped leading values"""
        current = differenced.values if values is None else np.asarray(values, dtype=float)
        if len(current) != len(differenced.values):
            raise InvalidArgumentError(
                f"Expected {len(differenced.values)} differenced values, got {len(current)}"
            )
        for diff_pass in reversed(differenced.passes):
            lag = diff_pass.lag
            rebuilt = np.concatenate([diff_pass.head, np.zeros(len(current))])
            for i in range(len(current)):
                rebuilt[lag + i] = current[i] + rebuilt[i]
            current = rebuilt
        return current
