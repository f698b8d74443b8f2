# forecast_lab/database.py
from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Sequence

import pandas as pd

from .model import (
    FeatureParams,
    ModelFamily,
    ModelRecord,
    RateSample,
    TrainingDatasetRow,
    deserialize_model,
    serialize_model,
)

log = logging.getLogger(__name__)

# Canonical DDL (kept for fresh databases)
_DDL: str = """
CREATE TABLE IF NOT EXISTS rates(
    ts    INTEGER,
    pair  TEXT,
    rate  REAL,
    PRIMARY KEY (ts, pair)
);
CREATE TABLE IF NOT EXISTS forecast_models(
    pair                TEXT,
    model_no            INTEGER,
    model_type          TEXT,
    model_data          BLOB,
    input_data_size     INTEGER,
    feature_params      TEXT,
    feature_params_hash TEXT NOT NULL,
    performance_mse     REAL,
    performance_rmse    REAL,
    memo                TEXT,
    created_at          TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at          TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (pair, model_no)
);
CREATE TABLE IF NOT EXISTS training_datasets(
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    pair        TEXT,
    input_data  TEXT,
    truth       REAL,
    memo        TEXT,
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS training_generations(
    run_id      TEXT,
    pair        TEXT,
    generation  INTEGER,
    best_mse    REAL,
    diversity   REAL,
    params      TEXT,
    memo        TEXT,
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (run_id, generation)
);
CREATE INDEX IF NOT EXISTS idx_rates_pair_ts
    ON rates(pair, ts);
"""

_MODEL_COLUMNS: str = (
    "pair, model_no, model_type, model_data, input_data_size, feature_params, "
    "feature_params_hash, performance_mse, performance_rmse, memo"
)


def _to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class Database:
    """SQLite helper handling rate history + forecast model slots."""

    def __init__(self, db_path: str | Path = "forecast_lab.db") -> None:
        self._conn = sqlite3.connect(str(db_path))
        with self._conn:
            # Ensure base objects exist (no-op if already present)
            self._conn.executescript(_DDL)

    def close(self) -> None:
        self._conn.close()

    # ------------------------------ rates --------------------------- #
    def save_rates(self, df: pd.DataFrame) -> None:
        """Saves a DataFrame with ts (ms), pair and rate columns."""
        required_cols = ["ts", "pair", "rate"]
        if not all(col in df.columns for col in required_cols):
            raise ValueError(f"DataFrame is missing required columns. Got {df.columns}")

        with self._conn:
            self._conn.executemany(
                "INSERT OR REPLACE INTO rates(ts, pair, rate) VALUES (?,?,?)",
                [(int(r.ts), str(r.pair), float(r.rate)) for r in df[required_cols].itertuples(index=False)],
            )

    def get_latest_timestamp(self, pair: str) -> int | None:
        """Gets the most recent timestamp (ms) stored for a pair."""
        cur = self._conn.execute("SELECT MAX(ts) FROM rates WHERE pair = ?", (pair,))
        result = cur.fetchone()[0]
        return result if result else None

    def select_rate_history(
        self,
        pair: str,
        begin: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> List[RateSample]:
        """Rates of a pair ordered by time, ``begin`` and ``end`` inclusive."""
        query = "SELECT ts, rate FROM rates WHERE pair = ?"
        params: list[int | str] = [pair]
        if begin is not None:
            query += " AND ts >= ?"
            params.append(_to_ms(begin))
        if end is not None:
            query += " AND ts <= ?"
            params.append(_to_ms(end))

        if limit is not None:
            # newest ``limit`` rows, still returned oldest first
            query = f"SELECT ts, rate FROM ({query} ORDER BY ts DESC LIMIT ?) ORDER BY ts ASC"
            params.append(int(limit))
        else:
            query += " ORDER BY ts ASC"

        log.debug("query: %s, params: %s", query, params)
        with self._conn:
            rows = self._conn.execute(query, params).fetchall()
        return [RateSample(datetime.fromtimestamp(ts / 1000, tz=timezone.utc), float(rate)) for ts, rate in rows]

    # ---------------------------- models ---------------------------- #
    def upsert_model(self, record: ModelRecord) -> None:
        """Create or replace the row keyed by (pair, model_no)."""
        with self._conn:
            self._conn.execute(
                f"""
                INSERT INTO forecast_models ({_MODEL_COLUMNS})
                VALUES (?,?,?,?,?,?,?,?,?,?)
                ON CONFLICT(pair, model_no) DO UPDATE SET
                    model_type = excluded.model_type,
                    model_data = excluded.model_data,
                    input_data_size = excluded.input_data_size,
                    feature_params = excluded.feature_params,
                    feature_params_hash = excluded.feature_params_hash,
                    performance_mse = excluded.performance_mse,
                    performance_rmse = excluded.performance_rmse,
                    memo = excluded.memo,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    record.pair,
                    record.model_no,
                    record.family.value,
                    serialize_model(record.model),
                    record.input_data_size,
                    record.feature_params.to_json(),
                    record.feature_params_hash,
                    record.mse,
                    record.rmse,
                    record.memo,
                ),
            )

    def copy_model(self, pair: str, from_no: int, to_no: int) -> int:
        """Duplicate a slot inside one statement, overwriting ``to_no``. Returns the rows written."""
        with self._conn:
            cur = self._conn.execute(
                f"""
                INSERT INTO forecast_models ({_MODEL_COLUMNS})
                SELECT pair, ?, model_type, model_data, input_data_size, feature_params,
                       feature_params_hash, performance_mse, performance_rmse, memo
                FROM forecast_models
                WHERE pair = ? AND model_no = ?
                ON CONFLICT(pair, model_no) DO UPDATE SET
                    model_type = excluded.model_type,
                    model_data = excluded.model_data,
                    input_data_size = excluded.input_data_size,
                    feature_params = excluded.feature_params,
                    feature_params_hash = excluded.feature_params_hash,
                    performance_mse = excluded.performance_mse,
                    performance_rmse = excluded.performance_rmse,
                    memo = excluded.memo,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (to_no, pair, from_no),
            )
        return cur.rowcount

    def select_model(self, pair: str, model_no: int) -> ModelRecord | None:
        """Loads one slot; a row whose parameter hash does not match is treated as absent."""
        with self._conn:
            row = self._conn.execute(
                f"SELECT {_MODEL_COLUMNS}, created_at, updated_at FROM forecast_models "
                "WHERE pair = ? AND model_no = ?",
                (pair, model_no),
            ).fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def select_models(self, pair: str) -> List[ModelRecord]:
        with self._conn:
            rows = self._conn.execute(
                f"SELECT {_MODEL_COLUMNS}, created_at, updated_at FROM forecast_models "
                "WHERE pair = ? ORDER BY model_no",
                (pair,),
            ).fetchall()
        records = [self._row_to_record(row) for row in rows]
        return [r for r in records if r is not None]

    def _row_to_record(self, row: Sequence) -> ModelRecord | None:
        (
            pair,
            model_no,
            model_type,
            model_data,
            input_data_size,
            feature_params_raw,
            feature_params_hash,
            mse,
            rmse,
            memo,
            created_at,
            updated_at,
        ) = row

        params = FeatureParams.from_json(feature_params_raw)
        if params.to_hash() != feature_params_hash:
            log.warning("model not found, unmatch feature params hash, pair:%s, model_no:%s", pair, model_no)
            return None

        return ModelRecord(
            pair=pair,
            model_no=int(model_no),
            family=ModelFamily.parse(model_type),
            model=deserialize_model(model_data),
            input_data_size=int(input_data_size),
            feature_params=params,
            feature_params_hash=feature_params_hash,
            mse=float(mse),
            rmse=float(rmse),
            memo=memo or "",
            created_at=_parse_ts(created_at),
            updated_at=_parse_ts(updated_at),
        )

    def get_model_summaries(self, pair: str | None = None) -> pd.DataFrame:
        query = (
            "SELECT pair, model_no, model_type, input_data_size, feature_params, performance_mse, "
            "performance_rmse, memo, updated_at FROM forecast_models"
        )
        params: list[str] = []
        if pair:
            query += " WHERE pair = ?"
            params.append(pair)
        return pd.read_sql_query(query + " ORDER BY pair, model_no", self._conn, params=params)

    # ------------------------ training audit ------------------------ #
    def insert_training_dataset_rows(self, rows: Iterable[TrainingDatasetRow]) -> None:
        with self._conn:
            self._conn.executemany(
                "INSERT INTO training_datasets(pair, input_data, truth, memo) VALUES (?,?,?,?)",
                [(r.pair, json.dumps(r.input_data), r.truth, r.memo) for r in rows],
            )

    def count_training_dataset_rows(self, pair: str) -> int:
        cur = self._conn.execute("SELECT COUNT(*) FROM training_datasets WHERE pair = ?", (pair,))
        return int(cur.fetchone()[0])

    def save_generation(
        self,
        run_id: str,
        pair: str,
        generation: int,
        best_mse: float | None,
        diversity: float,
        params: FeatureParams | None,
        memo: str = "",
    ) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO training_generations
                (run_id, pair, generation, best_mse, diversity, params, memo)
                VALUES (?,?,?,?,?,?,?)
                """,
                (run_id, pair, generation, best_mse, diversity, params.to_json() if params else None, memo),
            )

    def load_generations(self, pair: str, run_id: str | None = None) -> pd.DataFrame:
        query = (
            "SELECT run_id, generation, best_mse, diversity, params, memo, created_at "
            "FROM training_generations WHERE pair = ?"
        )
        params: list[str] = [pair]
        if run_id:
            query += " AND run_id = ?"
            params.append(run_id)
        return pd.read_sql_query(query + " ORDER BY created_at, run_id, generation", self._conn, params=params)
