"""Writer sinks — persist enriched records to PostgreSQL, DuckDB or JSON Lines."""

from processing.loaders.base import BatchResult, SinkState, WriterSink
from processing.loaders.cnpj_local_loader import DuckDBWriter
from processing.loaders.jsonl_writer import JsonlWriter
from processing.loaders.postgres_loader import PostgresWriter
from processing.loaders.schema import create_tables, drop_tables

__all__ = [
    "BatchResult",
    "DuckDBWriter",
    "JsonlWriter",
    "PostgresWriter",
    "SinkState",
    "WriterSink",
    "create_tables",
    "drop_tables",
]
