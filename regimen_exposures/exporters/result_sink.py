"""
Result Sinks
============

Persist the regimen exposure table. Every sink replaces an existing table of
the same name, and reports the outcome as a WriteResult instead of raising:
a failed write leaves the in-memory result usable by the caller.

Sinks:
- ParquetSink: <output_dir>/<table_name>.parquet
- CsvSink: <output_dir>/<table_name>.csv
- SqliteSink: table <table_name> in a SQLite database file
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """Outcome of a sink write."""

    destination: str
    n_rows: int
    success: bool
    error: Optional[str] = None

    def message(self) -> str:
        if self.success:
            return f"Regimen table with {self.n_rows:,} rows saved to {self.destination}"
        return f"Writing regimen table to {self.destination} failed: {self.error}"


class ResultSink:
    """Base class: subclasses implement _write() and destination()."""

    def destination(self, table_name: str) -> str:
        raise NotImplementedError

    def _write(self, df: pd.DataFrame, table_name: str):
        raise NotImplementedError

    def write(self, df: pd.DataFrame, table_name: str) -> WriteResult:
        """Write df as table_name, replacing any existing table."""
        destination = self.destination(table_name)
        try:
            self._write(df, table_name)
        except (OSError, ValueError, sqlite3.Error) as e:
            result = WriteResult(destination, len(df), False, str(e))
            logger.warning(result.message())
            return result

        result = WriteResult(destination, len(df), True)
        logger.info(result.message())
        return result


class ParquetSink(ResultSink):
    """Write to <output_dir>/<table_name>.parquet."""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def destination(self, table_name: str) -> str:
        return str(self.output_dir / f"{table_name}.parquet")

    def _write(self, df: pd.DataFrame, table_name: str):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        df.to_parquet(self.destination(table_name), index=False)


class CsvSink(ResultSink):
    """Write to <output_dir>/<table_name>.csv."""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def destination(self, table_name: str) -> str:
        return str(self.output_dir / f"{table_name}.csv")

    def _write(self, df: pd.DataFrame, table_name: str):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        df.to_csv(self.destination(table_name), index=False, date_format='%Y-%m-%d')


class SqliteSink(ResultSink):
    """Write to a table in a SQLite database (DROP TABLE IF EXISTS semantics)."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)

    def destination(self, table_name: str) -> str:
        return f"{self.db_path}:{table_name}"

    def _write(self, df: pd.DataFrame, table_name: str):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        out = df.copy()
        # SQLite has no date type; store ISO dates
        for col in out.select_dtypes(include=['datetime']).columns:
            out[col] = out[col].dt.strftime('%Y-%m-%d')

        conn = sqlite3.connect(self.db_path)
        try:
            out.to_sql(table_name, conn, if_exists='replace', index=False)
            conn.commit()
        finally:
            conn.close()


SINKS = {
    'parquet': ParquetSink,
    'csv': CsvSink,
    'sqlite': SqliteSink,
}


def get_sink(kind: str, location: Union[str, Path]) -> ResultSink:
    """
    Build a sink by name.

    Args:
        kind: 'parquet', 'csv' or 'sqlite'
        location: Output directory, or database file for 'sqlite'
    """
    if kind not in SINKS:
        raise ValueError(f"Unknown sink '{kind}', expected one of {sorted(SINKS)}")
    return SINKS[kind](location)
