import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import logging

from utils.progress import ProgressMonitor


def test_counts_failures_and_best(caplog):
    monitor = ProgressMonitor(4, desc="Order search", logger=logging.getLogger('test.progress'),
                              log_every=2, disable=True)
    with caplog.at_level(logging.INFO, logger='test.progress'):
        monitor.record_best('ARIMA(1,0,0)', 120.0)
        monitor.update()
        monitor.record_best('ARIMA(2,0,0)', 130.0)
        monitor.update(failed=True)
        monitor.record_best('ARIMA(0,0,1)', 110.0)
        monitor.update(2)
        monitor.close()

    assert monitor.current == 4
    assert monitor.failed == 1
    assert monitor.best == ('ARIMA(0,0,1)', 110.0)
    assert "3/4 succeeded" in caplog.text
    assert "1 failed" in caplog.text
