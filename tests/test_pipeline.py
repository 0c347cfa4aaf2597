import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import logging

import matplotlib
matplotlib.use('Agg')
import pytest

from data_manager.database import ForecastDatabase
from run_analysis import main, parse_order
from sarima.models import ModelOrder


@pytest.fixture
def csv_path(tmp_path, integrated_ar2_series):
    path = tmp_path / "sales.csv"
    rows = ["month,sales"] + [f"M{i:03d},{value:.6f}"
                              for i, value in enumerate(integrated_ar2_series[:100])]
    path.write_text("\n".join(rows) + "\n")
    return path


@pytest.fixture(autouse=True)
def restore_root_handlers():
    root = logging.getLogger()
    handlers = list(root.handlers)
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            handler.close()
            root.removeHandler(handler)


def test_parse_order():
    assert parse_order('1,1,0') == ModelOrder(1, 1, 0)
    assert parse_order('0,1,1', '0,1,1,12') == ModelOrder(0, 1, 1, 0, 1, 1, 12)


def test_pipeline_end_to_end(csv_path, tmp_path):
    output_dir = tmp_path / "out"
    results = main([str(csv_path), '--output-dir', str(output_dir), '--no-plots',
                    '--order', '1,1,0', '--steps', '6', '--method', 'css'])

    assert results['fitted'].order == ModelOrder(1, 1, 0)
    assert [p.timestamp for p in results['forecast']] == [f"T+{h}" for h in range(1, 7)]
    assert results['backtest'].split_index == 80
    assert results['diagnostics'].aic == pytest.approx(results['fitted'].aic)
    assert list((output_dir / "logs").glob("*.log"))

    db = ForecastDatabase(output_dir / "sarima_results.db")
    try:
        assert list(db.get_models('sales')['model_id']) == [results['model_id']]
        assert len(db.get_forecast(results['model_id'])) == 6
        assert len(db.get_backtests('sales')) == 1
    finally:
        db.close()


def test_pipeline_with_preset_and_plots(csv_path, tmp_path):
    output_dir = tmp_path / "out"
    results = main([str(csv_path), '--output-dir', str(output_dir), '--preset', 'random_walk',
                    '--series-name', 'rw', '--steps', '3'])
    assert results['fitted'].order == ModelOrder(0, 1, 0)
    assert (output_dir / "plots" / "rw_forecast.png").exists()
    assert (output_dir / "plots" / "rw_residuals.png").exists()
