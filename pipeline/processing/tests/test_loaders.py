"""Tests for the writer sinks — state machine, JSON Lines, DuckDB and SQL builders."""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Optional, Sequence

import pytest
from sqlalchemy import create_engine, inspect

from bulk.errors import InternalError
from models import CompanyBaseRecord, EstablishmentRecord, PartnerRecord, TaxRegimeRecord
from processing.errors import WriterError
from processing.loaders import BatchResult, DuckDBWriter, JsonlWriter, SinkState, WriterSink
from processing.loaders.base import MERGES, Merge, merge_statement, table_for
from processing.loaders.postgres_loader import build_merge, build_upsert
from processing.loaders.schema import create_tables, drop_tables, sqlalchemy_url


class RecordingSink(WriterSink):
    """In-memory sink logging every hook call."""

    kind = "recording"

    def __init__(self, fail_write: bool = False, fail_rollback: bool = False) -> None:
        super().__init__()
        self.calls: list[tuple[str, Optional[str]]] = []
        self.fail_write = fail_write
        self.fail_rollback = fail_rollback

    def _begin(self, name: str) -> None:
        self.calls.append(("begin", name))

    def _write(self, name: str, rows: Sequence) -> BatchResult:
        self.calls.append(("write", name))
        if self.fail_write:
            raise WriterError(name, "disk full")
        return BatchResult(written=len(rows))

    def _end(self, name: str) -> None:
        self.calls.append(("end", name))

    def _rollback(self, name: Optional[str]) -> None:
        self.calls.append(("rollback", name))
        if self.fail_rollback:
            raise WriterError(name or "recording", "connection lost")

    def _finalize(self) -> None:
        self.calls.append(("finalize", None))


def _base(basico: str = "12345678", name: str = "ACME LTDA") -> CompanyBaseRecord:
    return CompanyBaseRecord(cnpj_basico=basico, razao_social=name, capital_social=Decimal("10.00"))


def _establishment(cnpj: str = "12345678000195") -> EstablishmentRecord:
    return EstablishmentRecord(cnpj=cnpj, cnpj_basico=cnpj[:8], nome_fantasia="ACME")


class TestWriterSinkStateMachine:
    def test_happy_path(self):
        sink = RecordingSink()
        sink.begin_dataset("simples")
        assert sink.state is SinkState.STREAMING
        assert sink.dataset == "simples"
        assert sink.write_batch("simples", [object(), object()]) == BatchResult(written=2)
        sink.end_dataset("simples")
        sink.commit()
        assert sink.state is SinkState.IDLE
        assert sink.calls == [
            ("begin", "simples"),
            ("write", "simples"),
            ("end", "simples"),
            ("finalize", None),
        ]

    def test_empty_batch_skips_hook(self):
        sink = RecordingSink()
        sink.begin_dataset("simples")
        assert sink.write_batch("simples", []) == BatchResult()
        assert ("write", "simples") not in sink.calls

    def test_begin_while_streaming(self):
        sink = RecordingSink()
        sink.begin_dataset("simples")
        with pytest.raises(InternalError):
            sink.begin_dataset("partners")

    def test_write_to_other_dataset(self):
        sink = RecordingSink()
        sink.begin_dataset("simples")
        with pytest.raises(InternalError):
            sink.write_batch("partners", [object()])

    def test_write_without_begin(self):
        with pytest.raises(InternalError):
            RecordingSink().write_batch("simples", [object()])

    def test_commit_while_streaming(self):
        sink = RecordingSink()
        sink.begin_dataset("simples")
        with pytest.raises(InternalError):
            sink.commit()

    def test_write_failure_rolls_back(self):
        sink = RecordingSink(fail_write=True)
        sink.begin_dataset("simples")
        with pytest.raises(WriterError, match="disk full"):
            sink.write_batch("simples", [object()])
        assert sink.state is SinkState.IDLE
        assert sink.calls[-1] == ("rollback", "simples")

    def test_abort_when_idle_is_noop(self):
        sink = RecordingSink()
        sink.abort()
        assert sink.calls == []

    def test_failed_rollback_logged(self, caplog):
        sink = RecordingSink(fail_rollback=True)
        sink.begin_dataset("simples")
        with caplog.at_level(logging.ERROR):
            sink.abort()
        assert sink.state is SinkState.IDLE
        assert "connection lost" in caplog.text

    def test_context_manager_aborts_open_dataset(self):
        with RecordingSink() as sink:
            sink.begin_dataset("partners")
        assert sink.calls[-1] == ("rollback", "partners")


class TestTableMapping:
    def test_fact_tables(self):
        assert table_for("companies-base") == "company_bases"
        assert table_for("establishments") == "companies"
        assert table_for("partners") == "partners"
        assert table_for("simples") == "tax_regimes"

    def test_lookup_has_no_table(self):
        with pytest.raises(InternalError):
            table_for("cnaes")

    def test_merge_statement(self):
        stmt = merge_statement(Merge("tax_regimes", ("opcao_pelo_simples", "opcao_pelo_mei")))
        assert stmt == (
            "UPDATE companies SET opcao_pelo_simples = s.opcao_pelo_simples, "
            "opcao_pelo_mei = s.opcao_pelo_mei FROM tax_regimes AS s "
            "WHERE companies.cnpj_basico = s.cnpj_basico"
        )

    def test_merges_run_after_their_source(self):
        assert MERGES["establishments"].source == "company_bases"
        assert MERGES["simples"].source == "tax_regimes"
        assert "partners" not in MERGES


class TestPostgresStatements:
    """Statements are rendered without a server connection."""

    def test_upsert(self):
        query = build_upsert("companies", ["cnpj", "uf"], ["cnpj"]).as_string(None)
        assert query == (
            'INSERT INTO "companies" ("cnpj", "uf") VALUES (%(cnpj)s, %(uf)s) '
            'ON CONFLICT ("cnpj") DO UPDATE SET "uf" = EXCLUDED."uf"'
        )

    def test_plain_insert_without_conflict_key(self):
        query = build_upsert("partners", ["cnpj_basico", "nome_socio"], ()).as_string(None)
        assert query == (
            'INSERT INTO "partners" ("cnpj_basico", "nome_socio") '
            "VALUES (%(cnpj_basico)s, %(nome_socio)s)"
        )

    def test_key_only_table_does_nothing_on_conflict(self):
        query = build_upsert("t", ["k"], ["k"]).as_string(None)
        assert query.endswith('ON CONFLICT ("k") DO NOTHING')

    def test_merge(self):
        query = build_merge(Merge("company_bases", ("razao_social",))).as_string(None)
        assert query == (
            'UPDATE "companies" SET "razao_social" = s."razao_social" '
            'FROM "company_bases" AS s WHERE "companies"."cnpj_basico" = s."cnpj_basico"'
        )


class TestJsonlWriter:
    def test_part_file_renamed_on_end(self, tmp_path):
        writer = JsonlWriter(tmp_path)
        writer.begin_dataset("companies-base")
        writer.write_batch("companies-base", [_base()])
        assert (tmp_path / "companies-base.jsonl.part").exists()
        assert not (tmp_path / "companies-base.jsonl").exists()

        writer.end_dataset("companies-base")
        assert not (tmp_path / "companies-base.jsonl.part").exists()
        line = (tmp_path / "companies-base.jsonl").read_text(encoding="utf-8").strip()
        assert json.loads(line)["razao_social"] == "ACME LTDA"

    def test_abort_removes_part_file(self, tmp_path):
        writer = JsonlWriter(tmp_path)
        writer.begin_dataset("partners")
        writer.write_batch("partners", [PartnerRecord(cnpj_basico="12345678")])
        writer.abort()
        assert list(tmp_path.iterdir()) == []

    def test_write_without_open_file(self, tmp_path):
        with pytest.raises(WriterError, match="no open output file") as excinfo:
            JsonlWriter(tmp_path)._write("partners", [PartnerRecord(cnpj_basico="12345678")])
        assert excinfo.value.dataset == "partners"

    def test_manifest(self, tmp_path):
        with JsonlWriter(tmp_path) as writer:
            for name, record in (("companies-base", _base()), ("simples", TaxRegimeRecord(cnpj_basico="12345678"))):
                writer.begin_dataset(name)
                writer.write_batch(name, [record, record])
                writer.end_dataset(name)
            writer.commit()

        manifest = json.loads((tmp_path / "manifest.json").read_text(encoding="utf-8"))
        assert manifest["datasets"] == {
            "companies-base": {"file": "companies-base.jsonl", "rows": 2},
            "simples": {"file": "simples.jsonl", "rows": 2},
        }
        assert "generated_at" in manifest


@pytest.fixture
def duck():
    writer = DuckDBWriter(":memory:")
    yield writer
    writer.close()


def _count(writer: DuckDBWriter, table: str) -> int:
    return writer.connection.execute(f"SELECT count(*) FROM {table}").fetchone()[0]


class TestDuckDBWriter:
    def test_tables_created(self, duck):
        names = {r[0] for r in duck.connection.execute("SELECT table_name FROM information_schema.tables").fetchall()}
        assert {"company_bases", "companies", "partners", "tax_regimes"} <= names

    def test_upsert_replaces_by_key(self, duck):
        for name in ("OLD", "NEW"):
            duck.begin_dataset("companies-base")
            duck.write_batch("companies-base", [_base(name=name)])
            duck.end_dataset("companies-base")

        rows = duck.connection.execute("SELECT razao_social FROM company_bases").fetchall()
        assert rows == [("NEW",)]

    def test_establishments_merge_base_columns(self, duck):
        duck.begin_dataset("companies-base")
        duck.write_batch("companies-base", [_base()])
        duck.end_dataset("companies-base")
        duck.begin_dataset("establishments")
        duck.write_batch("establishments", [_establishment(), _establishment("12345678000276")])
        duck.end_dataset("establishments")

        rows = duck.connection.execute("SELECT razao_social, capital_social FROM companies").fetchall()
        assert rows == [("ACME LTDA", Decimal("10.00"))] * 2

    def test_partners_fully_refreshed(self, duck):
        for _ in range(2):
            duck.begin_dataset("partners")
            duck.write_batch("partners", [PartnerRecord(cnpj_basico="12345678", nome_socio="A")])
            duck.end_dataset("partners")
        assert _count(duck, "partners") == 1

    def test_failed_batch_rolls_back_dataset(self, duck):
        duck.begin_dataset("companies-base")
        duck.write_batch("companies-base", [_base()])
        duck.end_dataset("companies-base")

        duck.begin_dataset("partners")
        duck.write_batch("partners", [PartnerRecord(cnpj_basico="12345678")])
        with pytest.raises(WriterError) as excinfo:
            # company base columns do not exist in partners
            duck.write_batch("partners", [_base("87654321")])
        assert excinfo.value.dataset == "partners"
        assert duck.state is SinkState.IDLE
        assert _count(duck, "partners") == 0
        assert _count(duck, "company_bases") == 1

    def test_commit_checkpoints(self, duck):
        duck.commit()
        assert duck.state is SinkState.IDLE


class TestSchema:
    def test_sqlalchemy_url(self):
        assert sqlalchemy_url("postgresql://u:p@db/rfb") == "postgresql+psycopg://u:p@db/rfb"
        assert sqlalchemy_url("postgres://u:p@db/rfb") == "postgresql+psycopg://u:p@db/rfb"
        assert sqlalchemy_url("sqlite:///rfb.db") == "sqlite:///rfb.db"

    def test_create_and_drop(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'rfb.db'}"
        created = create_tables(url, schema=None)
        assert set(created) == {"company_bases", "companies", "partners", "tax_regimes"}

        engine = create_engine(url)
        assert set(inspect(engine).get_table_names()) == set(created)

        drop_tables(url, schema=None)
        assert inspect(engine).get_table_names() == []
        engine.dispose()

    def test_create_is_repeatable(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'rfb.db'}"
        assert create_tables(url, schema=None) == create_tables(url, schema=None)

    def test_bad_url_is_writer_error(self, tmp_path):
        missing = tmp_path / "missing" / "rfb.db"
        with pytest.raises(WriterError):
            create_tables(f"sqlite:///{missing}", schema=None)
