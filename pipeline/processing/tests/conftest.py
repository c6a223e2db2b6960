"""Shared fixtures: sample upstream rows, lookups and a small dump directory."""

from __future__ import annotations

import zipfile
from pathlib import Path
from types import SimpleNamespace

import pytest

from bulk.catalog import Dataset
from processing.lookups import Lookups

LOOKUP_ROWS = {
    "Cnaes.zip": ("F.K03200$Z.D51108.CNAECSV", '"6201501";"Desenvolvimento de programas de computador sob encomenda"\n'),
    "Motivos.zip": ("F.K03200$Z.D51108.MOTICSV", '"00";"SEM MOTIVO"\n"01";"EXTINCAO POR ENCERRAMENTO"\n'),
    "Municipios.zip": ("F.K03200$Z.D51108.MUNICCSV", '"7107";"SAO PAULO"\n"0001";"GUAJARA-MIRIM"\n'),
    "Naturezas.zip": ("F.K03200$Z.D51108.NATJUCSV", '"2062";"Sociedade Empresária Limitada"\n'),
    "Paises.zip": ("F.K03200$Z.D51108.PAISCSV", '"105";"BRASIL"\n'),
    "Qualificacoes.zip": ("F.K03200$Z.D51108.QUALSCSV", '"49";"Sócio-Administrador"\n"05";"Administrador"\n'),
}


def company_base_row(basico: str = "12345678", capital: str = "1.000,50") -> list[str]:
    return [basico, "ACME LTDA", "2062", "49", capital, "01", ""]


def establishment_row(basico: str = "12345678", ordem: str = "0001", dv: str = "95") -> list[str]:
    row = [""] * 30
    row[0:3] = [basico, ordem, dv]
    row[3] = "1"
    row[4] = "ACME"
    row[5] = "02"
    row[6] = "20220115"
    row[7] = "00"
    row[9] = "105"
    row[10] = "20100301"
    row[11] = "6201501"
    row[12] = "6202300,6203100"
    row[13] = "RUA"
    row[14] = "DAS FLORES"
    row[15] = "123"
    row[17] = "CENTRO"
    row[18] = "01001000"
    row[19] = "SP"
    row[20] = "7107"
    row[21:23] = ["11", "55551234"]
    row[27] = "contato@acme.test"
    return row


def partner_row(basico: str = "12345678", name: str = "FULANO DE TAL 12345678901") -> list[str]:
    return [basico, "2", name, "***456789**", "49", "20200101", "", "***111222**", "BELTRANO", "05", "4"]


def simples_row(basico: str = "12345678") -> list[str]:
    return [basico, "S", "20180101", "00000000", "N", "", ""]


def _csv(rows: list[list[str]]) -> str:
    return "".join(";".join(f'"{v}"' for v in row) + "\n" for row in rows)


def write_zip(path: Path, member: str, text: str, encoding: str = "latin-1") -> Path:
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(member, text.encode(encoding))
    return path


def write_lookups(data_dir: Path) -> None:
    for filename, (member, text) in LOOKUP_ROWS.items():
        write_zip(data_dir / filename, member, text)


def write_fact(data_dir: Path, filename: str, rows: list[list[str]]) -> Path:
    return write_zip(data_dir / filename, filename.replace(".zip", ".CSV"), _csv(rows))


@pytest.fixture
def lookups() -> Lookups:
    return Lookups.from_tables(
        {
            Dataset.CNAES: {6201501: "Desenvolvimento de programas de computador sob encomenda"},
            Dataset.MOTIVES: {0: "SEM MOTIVO", 1: "EXTINCAO POR ENCERRAMENTO"},
            Dataset.MUNICIPALITIES: {7107: "SAO PAULO"},
            Dataset.LEGAL_NATURES: {2062: "Sociedade Empresária Limitada"},
            Dataset.COUNTRIES: {105: "BRASIL"},
            Dataset.QUALIFICATIONS: {49: "Sócio-Administrador", 5: "Administrador"},
        }
    )


@pytest.fixture
def dump_dir(tmp_path) -> Path:
    """A data directory holding every lookup archive and two partitions of each fact dataset."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    write_lookups(data_dir)
    write_fact(data_dir, "Empresas0.zip", [company_base_row("12345678"), company_base_row("bad-id")])
    write_fact(data_dir, "Empresas1.zip", [company_base_row("87654321", capital="0,00")])
    write_fact(
        data_dir,
        "Estabelecimentos0.zip",
        [establishment_row("12345678", "0001", "95"), establishment_row("12345678", "0002", "76")],
    )
    write_fact(
        data_dir,
        "Estabelecimentos1.zip",
        [establishment_row("87654321", "0001", "10"), ["too", "short"]],
    )
    write_fact(data_dir, "Socios0.zip", [partner_row("12345678"), partner_row("87654321", "CICLANO")])
    write_fact(data_dir, "Simples.zip", [simples_row("12345678")])
    return data_dir


@pytest.fixture
def rows() -> SimpleNamespace:
    """Builders for raw upstream rows, one per fact dataset."""
    return SimpleNamespace(
        company_base=company_base_row,
        establishment=establishment_row,
        partner=partner_row,
        simples=simples_row,
    )


@pytest.fixture
def archives() -> SimpleNamespace:
    """Helpers writing upstream-style ZIP archives."""
    return SimpleNamespace(zip=write_zip, fact=write_fact, lookups=write_lookups)
