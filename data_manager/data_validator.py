"""
Validation of observation series before modeling.
"""

import logging
import math
from collections import Counter
from typing import List, Sequence, Tuple

from sarima.data_prep import MIN_OBSERVATIONS
from sarima.exceptions import InsufficientDataError, InvalidArgumentError
from sarima.models import Observation

logger = logging.getLogger(__name__)


class ObservationValidator:
    """Validates labelled observation series."""

    def __init__(self, min_observations: int = MIN_OBSERVATIONS):
        self.min_observations = min_observations

    def validate(self, observations: Sequence[Observation]) -> Tuple[bool, List[str]]:
        """
        Validates an observation series.

        Args:
            observations: Observations in time order

        Returns:
            Tuple of (is_valid, list_of_issues)
        """
        issues = []

        if len(observations) < self.min_observations:
            issues.append(
                f"Only {len(observations)} observations, need at least {self.min_observations}"
            )

        counts = Counter(obs.timestamp for obs in observations)
        duplicates = sorted(label for label, count in counts.items() if count > 1)
        if duplicates:
            issues.append(f"Duplicate timestamps: {duplicates[:5]}")

        bad = [obs.timestamp for obs in observations
               if not isinstance(obs.value, (int, float)) or not math.isfinite(obs.value)]
        if bad:
            issues.append(f"{len(bad)} missing or non-finite values, first at {bad[0]}")

        blank = sum(1 for obs in observations if not str(obs.timestamp).strip())
        if blank:
            issues.append(f"{blank} observations have an empty timestamp")

        return len(issues) == 0, issues

    def check(self, observations: Sequence[Observation]) -> None:
        """Raise on the first class of problem found by validate()"""
        is_valid, issues = self.validate(observations)
        if is_valid:
            return
        for issue in issues:
            logger.warning(f"Validation issue: {issue}")
        if len(observations) < self.min_observations:
            raise InsufficientDataError(issues[0])
        raise InvalidArgumentError('; '.join(issues))
