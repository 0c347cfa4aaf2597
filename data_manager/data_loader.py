"""
Load observation series from CSV files, DataFrames and Series.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import pandas as pd

from data_manager.data_validator import ObservationValidator
from sarima.exceptions import InvalidArgumentError
from sarima.models import Observation

logger = logging.getLogger(__name__)

DELIMITERS = r'[,;\t]'


class DataLoader:
    def __init__(self, validator: Optional[ObservationValidator] = None):
        """Initialize data loader with an optional validator run on every load."""
        self.validator = validator
        self.logger = logging.getLogger('data_manager.data_loader')

    def load_csv(self, file_path: Union[str, Path], header: Optional[bool] = None) -> List[Observation]:
        """
        Load a CSV of observations.

        Rows are either ``label,value`` or a bare value; comma, semicolon and tab
        all act as delimiters. Bare values are labelled T-n ... T-1, counting back
        from the last row.

        Args:
            file_path: Path to the CSV file
            header: True if the first row is a header, False if not, None to
                detect it from a non-numeric first value

        Returns:
            List of Observation in file order
        """
        try:
            raw = pd.read_csv(file_path, sep=DELIMITERS, engine='python', header=None,
                              dtype=str, skip_blank_lines=True, keep_default_na=False)
        except pd.errors.EmptyDataError:
            raise InvalidArgumentError(f"No observations found in {file_path}") from None
        except Exception as e:
            self.logger.error(f"Error reading {file_path}: {str(e)}")
            raise

        raw = raw.apply(lambda column: column.str.strip())
        raw = raw[(raw != '').any(axis=1)]
        two_column = raw.shape[1] >= 2 and (raw.iloc[:, 1] != '').any()
        value_column = raw.iloc[:, 1] if two_column else raw.iloc[:, 0]

        if header is None:
            header = len(raw) > 0 and pd.isna(pd.to_numeric(value_column.iloc[0], errors='coerce'))
        if header:
            raw = raw.iloc[1:]
            value_column = value_column.iloc[1:]

        values = pd.to_numeric(value_column, errors='coerce')
        bad = values.isna()
        if bad.any():
            first = value_column[bad].iloc[0]
            raise InvalidArgumentError(
                f"{int(bad.sum())} non-numeric values in {file_path}, first: {first!r}"
            )

        if two_column:
            labels = raw.iloc[:, 0].tolist()
        else:
            labels = [f"T-{len(values) - i}" for i in range(len(values))]
        observations = [Observation(timestamp=str(label), value=float(value))
                        for label, value in zip(labels, values.to_numpy(dtype=float))]

        self.logger.info(f"Loaded {len(observations)} observations from {file_path}")
        return self._validated(observations)

    def from_frame(self, df: pd.DataFrame, value_column: str = 'value',
                   label_column: Optional[str] = None) -> List[Observation]:
        """Observations from a DataFrame column, labelled by another column or the index"""
        if value_column not in df.columns:
            raise InvalidArgumentError(f"Column '{value_column}' not found in {list(df.columns)}")
        values = pd.Series(df[value_column].to_numpy(),
                           index=df[label_column] if label_column else df.index)
        return self.from_series(values)

    def from_series(self, series: pd.Series) -> List[Observation]:
        """Observations from a pandas Series; the index supplies the labels"""
        values = pd.to_numeric(series, errors='coerce')
        if values.isna().any() and not series.isna().equals(values.isna()):
            raise InvalidArgumentError("Series contains non-numeric values")
        index = series.index
        if isinstance(index, pd.DatetimeIndex):
            labels = [ts.strftime('%Y-%m-%d') if ts == ts.normalize() else ts.isoformat()
                      for ts in index]
        else:
            labels = [str(label) for label in index]
        observations = [Observation(timestamp=label, value=float(value))
                        for label, value in zip(labels, values.to_numpy(dtype=float))]
        return self._validated(observations)

    @staticmethod
    def to_frame(observations: List[Observation]) -> pd.DataFrame:
        """Observations as a DataFrame with columns timestamp and value"""
        return pd.DataFrame({
            'timestamp': [obs.timestamp for obs in observations],
            'value': np.array([obs.value for obs in observations], dtype=float),
        })

    def _validated(self, observations: List[Observation]) -> List[Observation]:
        if self.validator is not None:
            self.validator.check(observations)
        return observations
