import logging
from pathlib import Path
from typing import List, Optional, Union
import json
import os
import duckdb
import pandas as pd

from sarima.models import BacktestResult, FittedModel, ForecastPoint, ModelOrder

logger = logging.getLogger(__name__)


class ForecastDatabase:
    def __init__(self, db_path: Union[str, Path]):
        """Initialize database connection"""
        self.logger = logging.getLogger(__name__)
        self.db_path = str(db_path)

        # Create database directory if it doesn't exist
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

        try:
            self.conn = duckdb.connect(self.db_path)
            self._initialize_tables()
        except Exception as e:
            self.logger.error(f"Failed to open database at {self.db_path}: {str(e)}")
            raise

        self.logger.info(f"Initialized database at {self.db_path}")

    def _initialize_tables(self):
        """Create tables if they don't exist"""
        self.conn.execute("""
            CREATE SEQUENCE IF NOT EXISTS model_id_seq;
            CREATE SEQUENCE IF NOT EXISTS backtest_id_seq;

            CREATE TABLE IF NOT EXISTS fitted_models (
                model_id INTEGER PRIMARY KEY DEFAULT nextval('model_id_seq'),
                series_name VARCHAR NOT NULL,
                order_label VARCHAR NOT NULL,
                p INTEGER, d INTEGER, q INTEGER,
                sp INTEGER, sd INTEGER, sq INTEGER, s INTEGER,
                method VARCHAR NOT NULL,
                parameters VARCHAR NOT NULL,
                log_likelihood DOUBLE,
                aic DOUBLE,
                bic DOUBLE,
                nobs INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS forecasts (
                model_id INTEGER NOT NULL,
                step INTEGER NOT NULL,
                label VARCHAR NOT NULL,
                point_estimate DOUBLE,
                lower_bound DOUBLE,
                upper_bound DOUBLE,
                confidence_level DOUBLE,
                PRIMARY KEY (model_id, step)
            );

            CREATE TABLE IF NOT EXISTS backtests (
                backtest_id INTEGER PRIMARY KEY DEFAULT nextval('backtest_id_seq'),
                series_name VARCHAR NOT NULL,
                order_label VARCHAR NOT NULL,
                train_ratio DOUBLE,
                split_index INTEGER,
                mae DOUBLE,
                rmse DOUBLE,
                mape DOUBLE,
                coverage DOUBLE,
                n_points INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
        """)

    def store_model(self, fitted: FittedModel, series_name: str) -> int:
        """Store a fitted model and return its id

        Args:
            fitted: Result of SARIMAEstimator.fit
            series_name: Identifier of the modeled series
        """
        order = fitted.order
        try:
            row = self.conn.execute("""
                INSERT INTO fitted_models (
                    series_name, order_label, p, d, q, sp, sd, sq, s,
                    method, parameters, log_likelihood, aic, bic, nobs
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING model_id
            """, (
                series_name, order.label, order.p, order.d, order.q,
                order.P, order.D, order.Q, order.s,
                fitted.method,
                json.dumps(fitted.params()),
                float(fitted.log_likelihood),
                float(fitted.aic),
                float(fitted.bic),
                int(fitted.nobs),
            )).fetchone()
        except Exception as e:
            self.logger.error(f"Error storing model {order.label}: {str(e)}")
            raise
        self.logger.info(f"Stored {order.label} for {series_name} as model {row[0]}")
        return int(row[0])

    def store_forecast(self, model_id: int, forecast: List[ForecastPoint],
                       confidence_level: float) -> None:
        """Store forecast points for a stored model"""
        try:
            self.conn.begin()
            self.conn.executemany("""
                INSERT OR REPLACE INTO forecasts (
                    model_id, step, label, point_estimate, lower_bound, upper_bound,
                    confidence_level
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, [
                (model_id, step, point.timestamp, point.point_estimate,
                 point.lower_bound, point.upper_bound, confidence_level)
                for step, point in enumerate(forecast, start=1)
            ])
            self.conn.commit()
        except Exception as e:
            self.logger.error(f"Error storing forecast for model {model_id}: {str(e)}")
            self.conn.rollback()
            raise
        self.logger.info(f"Stored {len(forecast)} forecast points for model {model_id}")

    def store_backtest(self, result: BacktestResult, order: ModelOrder,
                       series_name: str, train_ratio: float) -> int:
        """Store backtest metrics and return the backtest id"""
        metrics = result.metrics
        try:
            row = self.conn.execute("""
                INSERT INTO backtests (
                    series_name, order_label, train_ratio, split_index,
                    mae, rmse, mape, coverage, n_points
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING backtest_id
            """, (
                series_name, order.label, float(train_ratio), int(result.split_index),
                metrics.mae, metrics.rmse, metrics.mape, metrics.coverage,
                int(metrics.n_points),
            )).fetchone()
        except Exception as e:
            self.logger.error(f"Error storing backtest of {order.label}: {str(e)}")
            raise
        return int(row[0])

    def get_models(self, series_name: Optional[str] = None) -> pd.DataFrame:
        """Stored models, newest last; parameters decoded from JSON"""
        query = "SELECT * FROM fitted_models"
        params = []
        if series_name:
            query += " WHERE series_name = ?"
            params.append(series_name)
        query += " ORDER BY model_id"
        df = self.conn.execute(query, params).df()
        df['parameters'] = df['parameters'].apply(json.loads)
        return df

    def get_forecast(self, model_id: int) -> pd.DataFrame:
        return self.conn.execute("""
            SELECT step, label, point_estimate, lower_bound, upper_bound, confidence_level
            FROM forecasts
            WHERE model_id = ?
            ORDER BY step
        """, [model_id]).df()

    def get_backtests(self, series_name: Optional[str] = None) -> pd.DataFrame:
        query = "SELECT * FROM backtests"
        params = []
        if series_name:
            query += " WHERE series_name = ?"
            params.append(series_name)
        query += " ORDER BY backtest_id"
        return self.conn.execute(query, params).df()

    def close(self):
        """Close database connection"""
        if hasattr(self, 'conn'):
            self.conn.close()
