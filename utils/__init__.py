"""Utility functions and classes for SARIMA analysis"""

from .progress import ProgressMonitor
from .visualization import ForecastVisualizer

__all__ = ['ProgressMonitor', 'ForecastVisualizer']
