#!/usr/bin/env python
"""
SARIMA analysis pipeline for a single series.
Coordinates loading, estimation, forecasting, diagnostics, backtesting and storage.
"""
import sys
import argparse
from pathlib import Path
import logging
from datetime import datetime
import time
import traceback
from typing import Dict, List, Optional

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from backtest.evaluator import BacktestEvaluator
from data_manager.data_loader import DataLoader
from data_manager.data_validator import ObservationValidator
from data_manager.database import ForecastDatabase
from sarima.checkpoint import FitCache
from sarima.diagnostics import ModelDiagnostics
from sarima.estimator import SARIMAEstimator
from sarima.forecaster import SARIMAForecaster
from sarima.models import ModelOrder, Observation
from sarima.selection import DEFAULT_ORDER, OrderSelector, preset_order
from utils.visualization import ForecastVisualizer


class StageTimer:
    """Tracks and reports duration of pipeline stages"""
    def __init__(self):
        self.start_time = time.time()
        self.last_checkpoint = self.start_time
        self.checkpoints = {}

    def checkpoint(self, name: str):
        """Record timing for a stage"""
        now = time.time()
        self.checkpoints[name] = now - self.last_checkpoint
        self.last_checkpoint = now

    def report(self) -> str:
        total_time = time.time() - self.start_time
        report = ["Timing Report:", "-----------------"]
        for name, duration in self.checkpoints.items():
            report.append(f"{name}: {duration:.2f} seconds")
        report.append("-----------------")
        report.append(f"Total Time: {total_time:.2f} seconds")
        return "\n".join(report)


def setup_logging(output_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """
    Configure logging with both file and console handlers

    Parameters:
    -----------
    output_dir : Path
        Directory for log file

    Returns:
    --------
    logging.Logger
        Pipeline logger
    """
    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"sarima_analysis_{timestamp}.log"

    root = logging.getLogger()
    root.setLevel(level)

    # File handler
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('%(message)s'))

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    return logging.getLogger("sarima_analysis")


def parse_order(text: str, seasonal: Optional[str] = None) -> ModelOrder:
    """Parse 'p,d,q' and optional 'P,D,Q,s' strings"""
    values = [int(v) for v in text.split(',')]
    if seasonal:
        values += [int(v) for v in seasonal.split(',')]
    return ModelOrder(*values)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fit, forecast and backtest a SARIMA model")
    parser.add_argument('csv', type=Path, help="CSV of label,value rows or bare values")
    parser.add_argument('--series-name', default=None, help="Name stored with results")
    order_group = parser.add_mutually_exclusive_group()
    order_group.add_argument('--order', default=None, help="Non-seasonal order p,d,q")
    order_group.add_argument('--preset', default=None, help="random_walk, ar2 or ma1")
    order_group.add_argument('--auto', action='store_true', help="Select the order by AIC")
    parser.add_argument('--seasonal', default=None, help="Seasonal order P,D,Q,s")
    parser.add_argument('--period', type=int, default=0, help="Seasonal period for --auto")
    parser.add_argument('--method', default='css-ml', choices=['css', 'ml', 'css-ml'])
    parser.add_argument('--steps', type=int, default=12)
    parser.add_argument('--confidence', type=float, default=0.95)
    parser.add_argument('--train-ratio', type=float, default=0.8)
    parser.add_argument('--output-dir', type=Path, default=project_root / "results")
    parser.add_argument('--no-plots', action='store_true')
    parser.add_argument('--workers', type=int, default=1)
    return parser


def initialize_components(args: argparse.Namespace, output_dir: Path,
                          logger: logging.Logger) -> Dict:
    """Initialize all analysis components"""
    logger.info("Creating estimator and forecaster...")
    estimator = SARIMAEstimator(method=args.method)
    forecaster = SARIMAForecaster()
    cache = FitCache(output_dir / "checkpoints")

    components = {
        'loader': DataLoader(validator=ObservationValidator()),
        'estimator': estimator,
        'forecaster': forecaster,
        'diagnostics': ModelDiagnostics(),
        'evaluator': BacktestEvaluator(estimator=estimator, forecaster=forecaster,
                                       confidence_level=args.confidence, cache=cache),
        'selector': OrderSelector(max_workers=args.workers,
                                  estimator_kwargs={'method': args.method}),
        'cache': cache,
        'database': ForecastDatabase(output_dir / "sarima_results.db"),
    }
    if not args.no_plots:
        components['visualizer'] = ForecastVisualizer()
    return components


def choose_order(args: argparse.Namespace, observations: List[Observation],
                 components: Dict, logger: logging.Logger) -> ModelOrder:
    if args.auto:
        result = components['selector'].select(observations, s=args.period)
        logger.info(f"Candidate ranking:\n{result.candidates.head(10).to_string()}")
        return result.order
    if args.preset:
        return preset_order(args.preset)
    if args.order:
        return parse_order(args.order, args.seasonal)
    return DEFAULT_ORDER


def run_analysis(components: Dict, observations: List[Observation], order: ModelOrder,
                 args: argparse.Namespace, output_dir: Path, series_name: str,
                 logger: logging.Logger, timer: StageTimer) -> Dict:
    """Run the analysis pipeline for one series and order"""
    logger.info(f"Starting analysis of {series_name} with {order.label}...")

    try:
        estimator = components['estimator']
        cache = components['cache']
        fitted = cache.get_or_fit(observations, order, estimator.settings(),
                                  lambda: estimator.fit(observations, order))
        timer.checkpoint('fit')

        forecast = components['forecaster'].forecast(
            fitted, steps=args.steps, confidence_level=args.confidence
        )
        timer.checkpoint('forecast')

        report = components['diagnostics'].evaluate(fitted)
        logger.info(report.description)
        timer.checkpoint('diagnostics')

        backtest = components['evaluator'].run(observations, order, args.train_ratio)
        timer.checkpoint('backtest')

        db = components['database']
        model_id = db.store_model(fitted, series_name)
        db.store_forecast(model_id, forecast, args.confidence)
        db.store_backtest(backtest, order, series_name, args.train_ratio)
        timer.checkpoint('storage')

        if 'visualizer' in components:
            logger.info("Generating visualizations...")
            plot_dir = output_dir / "plots"
            plot_dir.mkdir(parents=True, exist_ok=True)
            visualizer = components['visualizer']
            history = DataLoader.to_frame(observations).set_index('timestamp')['value']
            visualizer.plot_forecast(history, forecast, title=f"{series_name} {order.label}",
                                     save_path=plot_dir / f"{series_name}_forecast.png")
            visualizer.plot_backtest(history.iloc[:backtest.split_index], backtest,
                                     title=f"{series_name} backtest",
                                     save_path=plot_dir / f"{series_name}_backtest.png")
            visualizer.plot_residual_diagnostics(
                fitted, save_path=plot_dir / f"{series_name}_residuals.png")
            visualizer.close_all()
            timer.checkpoint('plots')

        forecast_df = pd.DataFrame([vars(point) for point in forecast])
        logger.info(f"Forecast:\n{forecast_df.to_string(index=False)}")
        return {
            'fitted': fitted,
            'forecast': forecast,
            'diagnostics': report,
            'backtest': backtest,
            'model_id': model_id,
        }

    except Exception as e:
        logger.error(f"Error in analysis pipeline: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


def cleanup(components: Dict, logger: logging.Logger):
    """Clean up resources"""
    try:
        components['database'].close()
        if 'visualizer' in components:
            components['visualizer'].close_all()
    except Exception as e:
        logger.error(f"Error during cleanup: {str(e)}")


def main(argv: Optional[List[str]] = None) -> Dict:
    """Main entry point with configuration and setup"""
    args = build_parser().parse_args(argv)
    output_dir = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)
    logger = setup_logging(output_dir)
    timer = StageTimer()
    components = None

    try:
        logger.info("Starting SARIMA analysis pipeline...")
        components = initialize_components(args, output_dir, logger)

        observations = components['loader'].load_csv(args.csv)
        series_name = args.series_name or args.csv.stem
        timer.checkpoint('load')

        order = choose_order(args, observations, components, logger)
        timer.checkpoint('order selection')

        results = run_analysis(components, observations, order, args, output_dir,
                               series_name, logger, timer)
        logger.info(timer.report())
        logger.info("Pipeline completed successfully")
        return results

    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        raise
    finally:
        if components is not None:
            cleanup(components, logger)


if __name__ == '__main__':
    main()
