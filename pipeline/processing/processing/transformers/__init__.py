"""Transformers — turn raw CNPJ CSV rows into record schemas."""

from processing.transformers.base import DatasetStats, TransformReport
from processing.transformers.cnpj import SCHEMAS, DatasetSchema, enrich_row, schema_for

__all__ = [
    "DatasetSchema",
    "DatasetStats",
    "SCHEMAS",
    "TransformReport",
    "enrich_row",
    "schema_for",
]
