"""Base classes for SQLAlchemy ORM tables and Pydantic record schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for every CNPJ snapshot table."""


class BaseSchema(BaseModel):
    """Pydantic base schema with common configuration.

    Records are immutable once the enricher builds them: they flow through
    the writer channel and are dropped after the batch commits.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @classmethod
    def column_names(cls) -> list[str]:
        """Field names in declaration order, used as the SQL column list."""
        return list(cls.model_fields.keys())
