"""
Regimen Exposure Exporters
==========================

Destination formats for the regimen table:
- Parquet file
- CSV file
- SQLite table
"""

from .result_sink import (
    WriteResult,
    ResultSink,
    ParquetSink,
    CsvSink,
    SqliteSink,
    get_sink,
)

__all__ = ['WriteResult', 'ResultSink', 'ParquetSink', 'CsvSink', 'SqliteSink', 'get_sink']
