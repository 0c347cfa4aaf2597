"""
Automatic order selection by information-criterion grid search.
"""

import itertools
import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from utils.progress import ProgressMonitor

from .data_prep import split_series
from .diagnostics import suggest_differencing
from .estimator import fit_order
from .exceptions import InsufficientDataError, InvalidArgumentError, SARIMAError
from .models import FittedModel, ModelOrder

logger = logging.getLogger(__name__)

CRITERIA = ('aic', 'bic')

PRESETS: Dict[str, ModelOrder] = {
    'random_walk': ModelOrder(0, 1, 0),
    'ar2': ModelOrder(2, 0, 0),
    'ma1': ModelOrder(0, 0, 1),
}

DEFAULT_ORDER = ModelOrder(1, 1, 1)


def preset_order(name: str) -> ModelOrder:
    """Look up a named preset order"""
    try:
        return PRESETS[name]
    except KeyError:
        raise InvalidArgumentError(
            f"Unknown preset '{name}', expected one of {sorted(PRESETS)}"
        ) from None


@dataclass(frozen=True, eq=False)
class SelectionResult:
    """Best order found by the search plus the ranked candidate table"""
    order: ModelOrder
    fitted: FittedModel
    criterion: str
    candidates: pd.DataFrame


class OrderSelector:
    """Grid search over (p, q, P, Q) for a fixed differencing order"""

    def __init__(self, max_p: int = 2, max_q: int = 2, max_P: int = 1, max_Q: int = 1,
                 max_d: int = 2, criterion: str = 'aic', max_workers: int = 1,
                 estimator_kwargs: Optional[Dict[str, Any]] = None,
                 show_progress: bool = False):
        """
        Parameters:
        - max_p, max_q: Largest non-seasonal AR / MA orders tried
        - max_P, max_Q: Largest seasonal AR / MA orders tried (only with a period)
        - max_d: Largest ordinary differencing order considered
        - criterion: 'aic' or 'bic'
        - max_workers: Candidates are fitted in a process pool when above 1
        - estimator_kwargs: Passed to SARIMAEstimator for every candidate
        """
        if criterion not in CRITERIA:
            raise InvalidArgumentError(f"Unknown criterion '{criterion}', expected one of {CRITERIA}")
        if max_workers < 1:
            raise InvalidArgumentError(f"max_workers must be positive, got {max_workers}")
        self.max_p = max_p
        self.max_q = max_q
        self.max_P = max_P
        self.max_Q = max_Q
        self.max_d = max_d
        self.criterion = criterion
        self.max_workers = max_workers
        self.estimator_kwargs = dict(estimator_kwargs or {})
        self.show_progress = show_progress
        self.logger = logging.getLogger('sarima.selection')

    def candidate_orders(self, d: int, D: int = 0, s: int = 0) -> List[ModelOrder]:
        """Every non-degenerate order in the search grid"""
        seasonal = s > 1
        P_range = range(self.max_P + 1) if seasonal else [0]
        Q_range = range(self.max_Q + 1) if seasonal else [0]
        orders = []
        for p, q, P, Q in itertools.product(range(self.max_p + 1), range(self.max_q + 1),
                                            P_range, Q_range):
            order = ModelOrder(p, d, q, P, D if seasonal else 0, Q, s if seasonal else 0)
            if not order.is_degenerate:
                orders.append(order)
        return orders

    def select(self, series: Any, s: int = 0, d: Optional[int] = None,
               D: int = 0) -> SelectionResult:
        """
        Fit every candidate order and keep the one with the lowest criterion.

        Args:
            series: Observations, pandas Series or numeric sequence
            s: Seasonal period, 0 for none
            d: Ordinary differencing order; chosen by repeated ADF tests when None
            D: Seasonal differencing order

        Returns:
            SelectionResult with the best order, its fitted model and all candidates
        """
        values, labels = split_series(series)
        if d is None:
            d = suggest_differencing(values, self.max_d)
            self.logger.info(f"Selected d={d} by repeated ADF tests")

        orders = self.candidate_orders(d, D, s)
        self.logger.info(f"Searching {len(orders)} candidate orders by {self.criterion.upper()}")
        source = pd.Series(values, index=list(labels)) if labels is not None else values

        fitted_models = self._fit_candidates(source, orders)
        if not fitted_models:
            raise InsufficientDataError(
                f"None of the {len(orders)} candidate orders could be fitted"
            )

        rows = []
        for order, fitted in fitted_models.items():
            rows.append({**order.to_dict(), 'label': order.label, 'method': fitted.method,
                         'log_likelihood': fitted.log_likelihood,
                         'aic': fitted.aic, 'bic': fitted.bic})
        table = pd.DataFrame(rows)
        table = table[np.isfinite(table[self.criterion])]
        if table.empty:
            raise InsufficientDataError("No candidate produced a finite information criterion")
        table = table.sort_values([self.criterion, 'label']).reset_index(drop=True)

        best_label = table['label'].iloc[0]
        best = next(order for order in fitted_models if order.label == best_label)
        self.logger.info(
            f"Best order {best.label}: {self.criterion.upper()}="
            f"{table[self.criterion].iloc[0]:.3f}"
        )
        return SelectionResult(order=best, fitted=fitted_models[best],
                               criterion=self.criterion, candidates=table)

    def _fit_candidates(self, series: Any,
                        orders: List[ModelOrder]) -> Dict[ModelOrder, FittedModel]:
        results: Dict[ModelOrder, FittedModel] = {}
        progress = ProgressMonitor(len(orders), desc="Order search", logger=self.logger,
                                   disable=not self.show_progress)
        try:
            if self.max_workers == 1:
                for order in orders:
                    outcome = self._fit_one(series, order)
                    if outcome is not None:
                        results[order] = outcome
                        progress.record_best(order.label, getattr(outcome, self.criterion))
                    progress.update(failed=outcome is None)
            else:
                with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
                    futures = {
                        executor.submit(fit_order, series, order, self.estimator_kwargs): order
                        for order in orders
                    }
                    for future in as_completed(futures):
                        order = futures[future]
                        try:
                            results[order] = future.result()
                        except SARIMAError as e:
                            self.logger.warning(f"Skipping {order.label}: {str(e)}")
                            progress.update(failed=True)
                            continue
                        progress.record_best(order.label, getattr(results[order], self.criterion))
                        progress.update()
        finally:
            progress.close()
        # Preserve grid order regardless of completion order
        return {order: results[order] for order in orders if order in results}

    def _fit_one(self, series: Any, order: ModelOrder) -> Optional[FittedModel]:
        try:
            return fit_order(series, order, self.estimator_kwargs)
        except SARIMAError as e:
            self.logger.warning(f"Skipping {order.label}: {str(e)}")
            return None

