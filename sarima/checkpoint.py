from pathlib import Path
import hashlib
import pickle
import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import numpy as np

from .data_prep import split_series
from .models import FittedModel, ModelOrder, as_order

CacheKey = Tuple[str, Tuple[int, ...], str]


def series_digest(series: Any) -> str:
    """Stable hash of the values and timestamps of a series"""
    values, labels = split_series(series)
    digest = hashlib.sha1(np.ascontiguousarray(values, dtype=float).tobytes())
    if labels is not None:
        digest.update('\x1f'.join(labels).encode('utf-8'))
    return digest.hexdigest()


def settings_digest(settings: Union[str, Mapping[str, Any]]) -> str:
    """Hash of the estimator settings; a bare string is taken as the method"""
    if isinstance(settings, str):
        settings = {'method': settings}
    text = repr(sorted((str(name), repr(value)) for name, value in settings.items()))
    return hashlib.sha1(text.encode('utf-8')).hexdigest()


class FitCache:
    """Thread-safe cache of fitted models keyed by (series, order, estimator settings).

    The series part covers timestamps as well as values, since forecasts take
    their labels from the fitted history. Concurrent requests for the same key
    fit once; the others wait on the key's lock and receive the stored model.
    With a checkpoint directory, models are also pickled to disk and reloaded
    by later runs.
    """

    def __init__(self, checkpoint_dir: Optional[Path] = None):
        self.checkpoint_dir = Path(checkpoint_dir) if checkpoint_dir is not None else None
        if self.checkpoint_dir is not None:
            self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger('sarima.checkpoint')
        self._models: Dict[CacheKey, FittedModel] = {}
        self._locks: Dict[CacheKey, threading.Lock] = {}
        self._guard = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(series: Any, order: Any,
                 settings: Union[str, Mapping[str, Any]]) -> CacheKey:
        order = as_order(order)
        return series_digest(series), order.as_tuple(), settings_digest(settings)

    def _key_lock(self, key: CacheKey) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _checkpoint_file(self, key: CacheKey) -> Path:
        digest, order, settings = key
        order_tag = '_'.join(str(v) for v in order)
        return self.checkpoint_dir / f"fit_{digest[:16]}_{order_tag}_{settings[:12]}.pkl"

    def get(self, key: CacheKey) -> Optional[FittedModel]:
        """Cached model for key, loading its checkpoint if one exists"""
        with self._guard:
            model = self._models.get(key)
        if model is not None or self.checkpoint_dir is None:
            return model
        checkpoint_file = self._checkpoint_file(key)
        if checkpoint_file.exists():
            with open(checkpoint_file, 'rb') as f:
                model = pickle.load(f)
            with self._guard:
                self._models[key] = model
            self.logger.debug(f"Loaded checkpoint {checkpoint_file.name}")
        return model

    def put(self, key: CacheKey, model: FittedModel) -> None:
        """Store a fitted model, writing its checkpoint when enabled"""
        with self._guard:
            self._models[key] = model
        if self.checkpoint_dir is not None:
            checkpoint_file = self._checkpoint_file(key)
            with open(checkpoint_file, 'wb') as f:
                pickle.dump(model, f)

    def get_or_fit(self, series: Any, order: Any, settings: Union[str, Mapping[str, Any]],
                   fit: Callable[[], FittedModel]) -> FittedModel:
        """
        Return the cached model or run ``fit`` once for this key

        Args:
            series: Series the model is fitted on
            order: ModelOrder or tuple
            settings: SARIMAEstimator.settings() of the fitting estimator, or a
                method name when nothing else varies
            fit: Produces the model on a miss
        """
        key = self.make_key(series, order, settings)
        with self._key_lock(key):
            model = self.get(key)
            if model is not None:
                with self._guard:
                    self.hits += 1
                return model
            with self._guard:
                self.misses += 1
            model = fit()
            self.put(key, model)
            self.logger.debug(f"Cached fit of {ModelOrder(*key[1]).label}")
            return model

    def clear(self) -> None:
        with self._guard:
            self._models.clear()
            self._locks.clear()
            self.hits = self.misses = 0

    def __len__(self) -> int:
        with self._guard:
            return len(self._models)
