"""
Data management package for forecasting inputs and results.
Handles series loading, validation, and storage.
"""

from .data_loader import DataLoader
from .data_validator import ObservationValidator
from .database import ForecastDatabase

__all__ = ['DataLoader', 'ObservationValidator', 'ForecastDatabase']
