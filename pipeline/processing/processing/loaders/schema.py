"""Create and drop the snapshot tables from the SQLAlchemy models (``rfb db create|drop``)."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateSchema

from models import Base

from processing.errors import WriterError

logger = logging.getLogger(__name__)


def sqlalchemy_url(url: str) -> str:
    """Point plain ``postgresql://`` URLs at the psycopg 3 dialect."""
    parsed = make_url(url)
    if parsed.drivername in ("postgres", "postgresql"):
        parsed = parsed.set(drivername="postgresql+psycopg")
    return parsed.render_as_string(hide_password=False)


def _engine(url: str) -> Engine:
    return create_engine(sqlalchemy_url(url))


def create_tables(url: str, schema: Optional[str] = "public") -> list[str]:
    """Create the schema (PostgreSQL only) and every table that is missing.

    Returns:
        Names of the tables in the metadata, in creation order.
    """
    engine = _engine(url)
    try:
        with engine.begin() as conn:
            if schema and engine.dialect.name == "postgresql":
                conn.execute(CreateSchema(schema, if_not_exists=True))
            conn = conn.execution_options(schema_translate_map={None: schema})
            Base.metadata.create_all(conn)
    except SQLAlchemyError as exc:
        raise WriterError("schema", f"create failed: {exc}") from exc
    finally:
        engine.dispose()
    tables = [t.name for t in Base.metadata.sorted_tables]
    logger.info("Created tables in %s: %s", schema or "default schema", ", ".join(tables))
    return tables


def drop_tables(url: str, schema: Optional[str] = "public") -> list[str]:
    """Drop every snapshot table; the schema itself is left in place."""
    engine = _engine(url)
    try:
        with engine.begin() as conn:
            conn = conn.execution_options(schema_translate_map={None: schema})
            Base.metadata.drop_all(conn)
    except SQLAlchemyError as exc:
        raise WriterError("schema", f"drop failed: {exc}") from exc
    finally:
        engine.dispose()
    tables = [t.name for t in reversed(Base.metadata.sorted_tables)]
    logger.info("Dropped tables in %s: %s", schema or "default schema", ", ".join(tables))
    return tables
