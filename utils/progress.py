from typing import Optional
import logging
from tqdm import tqdm
import time


class ProgressMonitor:
    """Progress bar and periodic log lines for batches of model fits"""

    def __init__(self, total: int, desc: str = "Fitting",
                 logger: Optional[logging.Logger] = None,
                 log_every: int = 25, disable: bool = False):
        """Initialize progress monitor with total fits and description"""
        self.logger = logger or logging.getLogger('progress')
        self.pbar = tqdm(total=total, desc=desc, unit="fit", disable=disable)
        self.total = total
        self.current = 0
        self.failed = 0
        self.best = None
        self.log_every = log_every
        self.start_time = time.time()
        self.description = desc

    def update(self, n: int = 1, failed: bool = False, status: str = ""):
        """Advance by n fits, counting them as failures when ``failed`` is set"""
        self.current += n
        if failed:
            self.failed += n
            self.pbar.set_postfix(self._postfix())
        self.pbar.update(n)

        if status:
            self.logger.info(f"{self.description}: {status}")

        if self.log_every and self.total and self.current % self.log_every == 0:
            elapsed = time.time() - self.start_time
            progress = self.current / self.total
            eta = (elapsed / progress) * (1 - progress)
            self.logger.info(
                f"{self.description}: {self.current}/{self.total} "
                f"({progress*100:.1f}%), {self.failed} failed - "
                f"Elapsed: {elapsed:.1f}s - ETA: {eta:.1f}s"
            )

    def record_best(self, label: str, score: float):
        """Keep the lowest score seen so far and show it next to the bar"""
        if self.best is None or score < self.best[1]:
            self.best = (label, score)
            self.pbar.set_postfix(self._postfix())

    def _postfix(self):
        postfix = {'failed': self.failed}
        if self.best is not None:
            postfix['best'] = f"{self.best[0]} ({self.best[1]:.2f})"
        return postfix

    def close(self):
        """Close progress bar and log final statistics"""
        self.pbar.close()
        total_time = time.time() - self.start_time
        summary = f"Completed {self.description}: {self.current - self.failed}/{self.total} succeeded"
        if self.best is not None:
            summary += f", best {self.best[0]} ({self.best[1]:.3f})"
        self.logger.info(f"{summary} in {total_time:.2f} seconds")
