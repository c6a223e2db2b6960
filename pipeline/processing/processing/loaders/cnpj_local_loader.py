"""DuckDBWriter — load the CNPJ snapshot into a local DuckDB file for fast queries."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import duckdb

from models.base import BaseSchema

from processing.errors import WriterError
from processing.loaders.base import (
    CONFLICT_COLUMNS,
    FULL_REFRESH_TABLES,
    MERGES,
    TABLES,
    BatchResult,
    WriterSink,
    merge_statement,
    table_for,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# DDL (mirrors the SQLAlchemy models, minus foreign keys and secondary indexes)
# ---------------------------------------------------------------------------

_DDL_COMPANY_BASES = """
CREATE TABLE IF NOT EXISTS company_bases (
    cnpj_basico                           VARCHAR PRIMARY KEY,
    razao_social                          VARCHAR,
    codigo_natureza_juridica              INTEGER,
    natureza_juridica                     VARCHAR,
    qualificacao_do_responsavel           INTEGER,
    descricao_qualificacao_do_responsavel VARCHAR,
    capital_social                        DECIMAL(20,2),
    codigo_porte                          INTEGER,
    porte                                 VARCHAR,
    ente_federativo_responsavel           VARCHAR
)
"""

_DDL_COMPANIES = """
CREATE TABLE IF NOT EXISTS companies (
    cnpj                                  VARCHAR PRIMARY KEY,
    cnpj_basico                           VARCHAR NOT NULL,
    identificador_matriz_filial           INTEGER,
    descricao_identificador_matriz_filial VARCHAR,
    nome_fantasia                         VARCHAR,
    situacao_cadastral                    INTEGER,
    descricao_situacao_cadastral          VARCHAR,
    data_situacao_cadastral               DATE,
    motivo_situacao_cadastral             INTEGER,
    descricao_motivo_situacao_cadastral   VARCHAR,
    situacao_especial                     VARCHAR,
    data_situacao_especial                DATE,
    nome_cidade_no_exterior               VARCHAR,
    codigo_pais                           INTEGER,
    pais                                  VARCHAR,
    descricao_tipo_de_logradouro          VARCHAR,
    logradouro                            VARCHAR,
    numero                                VARCHAR,
    complemento                           VARCHAR,
    bairro                                VARCHAR,
    cep                                   VARCHAR,
    uf                                    VARCHAR,
    codigo_municipio                      INTEGER,
    codigo_municipio_ibge                 INTEGER,
    municipio                             VARCHAR,
    ddd_telefone_1                        VARCHAR,
    ddd_telefone_2                        VARCHAR,
    ddd_fax                               VARCHAR,
    email                                 VARCHAR,
    data_inicio_atividade                 DATE,
    cnae_fiscal                           INTEGER,
    cnae_fiscal_descricao                 VARCHAR,
    cnae_fiscal_secundaria                VARCHAR,
    opcao_pelo_simples                    BOOLEAN,
    data_opcao_pelo_simples               DATE,
    data_exclusao_do_simples              DATE,
    opcao_pelo_mei                        BOOLEAN,
    data_opcao_pelo_mei                   DATE,
    data_exclusao_do_mei                  DATE,
    razao_social                          VARCHAR,
    codigo_natureza_juridica              INTEGER,
    natureza_juridica                     VARCHAR,
    qualificacao_do_responsavel           INTEGER,
    descricao_qualificacao_do_responsavel VARCHAR,
    capital_social                        DECIMAL(20,2),
    codigo_porte                          INTEGER,
    porte                                 VARCHAR,
    ente_federativo_responsavel           VARCHAR
)
"""

_DDL_PARTNERS_SEQUENCE = "CREATE SEQUENCE IF NOT EXISTS partners_id_seq"

_DDL_PARTNERS = """
CREATE TABLE IF NOT EXISTS partners (
    id                                      BIGINT PRIMARY KEY DEFAULT nextval('partners_id_seq'),
    cnpj_basico                             VARCHAR NOT NULL,
    identificador_socio                     INTEGER,
    descricao_identificador_socio           VARCHAR,
    nome_socio                              VARCHAR,
    cnpj_cpf_socio                          VARCHAR,
    codigo_qualificacao_socio               INTEGER,
    qualificacao_socio                      VARCHAR,
    data_entrada_sociedade                  DATE,
    codigo_pais                             INTEGER,
    pais                                    VARCHAR,
    cpf_representante_legal                 VARCHAR,
    nome_representante_legal                VARCHAR,
    codigo_qualificacao_representante_legal INTEGER,
    qualificacao_representante_legal        VARCHAR,
    codigo_faixa_etaria                     INTEGER,
    faixa_etaria                            VARCHAR
)
"""

_DDL_TAX_REGIMES = """
CREATE TABLE IF NOT EXISTS tax_regimes (
    cnpj_basico              VARCHAR PRIMARY KEY,
    opcao_pelo_simples       BOOLEAN,
    data_opcao_pelo_simples  DATE,
    data_exclusao_do_simples DATE,
    opcao_pelo_mei           BOOLEAN,
    data_opcao_pelo_mei      DATE,
    data_exclusao_do_mei     DATE
)
"""

_ALL_DDL = [
    _DDL_COMPANY_BASES,
    _DDL_COMPANIES,
    _DDL_PARTNERS_SEQUENCE,
    _DDL_PARTNERS,
    _DDL_TAX_REGIMES,
]


class DuckDBWriter(WriterSink):
    """Write each fact dataset in one DuckDB transaction.

    DuckDB has no savepoints, so a batch the database refuses aborts the
    whole dataset instead of being retried row by row.
    """

    kind = "duckdb"

    def __init__(self, db_path: str | Path) -> None:
        """
        Args:
            db_path: Path to the local database file (``":memory:"`` for tests).
        """
        super().__init__()
        self._db_path = str(db_path)
        try:
            self._conn = duckdb.connect(self._db_path)
        except duckdb.Error as exc:
            raise WriterError("duckdb", f"cannot open {self._db_path}: {exc}") from exc
        self._statements: dict[tuple[str, ...], str] = {}
        self.create_tables()
        logger.info("DuckDBWriter initialised (path=%s)", self._db_path)

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        return self._conn

    def create_tables(self) -> None:
        """Create the snapshot tables if they do not already exist."""
        for ddl in _ALL_DDL:
            self._conn.execute(ddl)
        logger.debug("CNPJ tables ensured")

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
        logger.info("DuckDBWriter connection closed (%s)", self._db_path)

    # ------------------------------------------------------------------
    # WriterSink hooks
    # ------------------------------------------------------------------

    def _begin(self, name: str) -> None:
        table = table_for(name)
        try:
            self._conn.begin()
            if table in FULL_REFRESH_TABLES:
                self._conn.execute(f"DELETE FROM {table}")
        except duckdb.Error as exc:
            self._conn.rollback()
            raise WriterError(name, f"cannot begin: {exc}") from exc

    def _write(self, name: str, rows: Sequence[BaseSchema]) -> BatchResult:
        table = TABLES[name]
        columns = type(rows[0]).column_names()
        stmt = self._statement_for(table, columns)
        params = [tuple(getattr(r, c) for c in columns) for r in rows]
        try:
            self._conn.executemany(stmt, params)
        except duckdb.Error as exc:
            raise WriterError(name, str(exc)) from exc
        return BatchResult(written=len(params))

    def _end(self, name: str) -> None:
        try:
            merge = MERGES.get(name)
            if merge is not None:
                self._conn.execute(merge_statement(merge))
                logger.info("Merged %s into %s", merge.source, merge.target)
            self._conn.commit()
        except duckdb.Error as exc:
            raise WriterError(name, f"commit failed: {exc}") from exc

    def _rollback(self, name: Optional[str]) -> None:
        try:
            self._conn.rollback()
        except duckdb.Error as exc:
            raise WriterError(name or "duckdb", f"rollback failed: {exc}") from exc

    def _finalize(self) -> None:
        try:
            self._conn.execute("CHECKPOINT")
        except duckdb.Error as exc:
            raise WriterError("duckdb", f"checkpoint failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _statement_for(self, table: str, columns: list[str]) -> str:
        """INSERT OR REPLACE for keyed tables, plain INSERT for partners."""
        key = (table, *columns)
        stmt = self._statements.get(key)
        if stmt is None:
            placeholders = ", ".join(["?"] * len(columns))
            col_names = ", ".join(columns)
            verb = "INSERT OR REPLACE INTO" if CONFLICT_COLUMNS[table] else "INSERT INTO"
            stmt = f"{verb} {table} ({col_names}) VALUES ({placeholders})"
            self._statements[key] = stmt
        return stmt
