"""Tests for the row enricher — parsing, code resolution, masking and rejects."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from bulk.catalog import Dataset
from models import CompanyBaseRecord, EstablishmentRecord, PartnerRecord, TaxRegimeRecord
from processing.errors import RowRejected
from processing.transformers.cnpj import (
    SCHEMAS,
    _parse_capital,
    _parse_date,
    _parse_int,
    _pad_identifier,
    enrich_row,
    schema_for,
)


def _enrich(dataset, row, lookups, privacy=False):
    return enrich_row(row, schema_for(dataset), lookups, privacy)


class TestParseInt:
    def test_plain(self):
        assert _parse_int("2062") == 2062

    def test_leading_zeros(self):
        assert _parse_int("02") == 2

    def test_signed(self):
        assert _parse_int("-1") == -1

    def test_empty(self):
        assert _parse_int("") is None

    def test_non_numeric(self):
        assert _parse_int("1_000") is None


class TestParseDate:
    def test_valid_date(self):
        assert _parse_date("20220115") == date(2022, 1, 15)

    def test_zeros(self):
        assert _parse_date("00000000") is None

    def test_empty(self):
        assert _parse_date("") is None

    def test_short(self):
        assert _parse_date("2022") is None

    def test_impossible_date(self):
        assert _parse_date("20221340") is None


class TestParseCapital:
    def test_brazilian_format(self):
        assert _parse_capital("1.500.000,00") == Decimal("1500000.00")

    def test_two_decimals(self):
        assert _parse_capital("100,5") == Decimal("100.50")

    def test_rounded_to_cents(self):
        assert str(_parse_capital("0,125")) in ("0.12", "0.13")

    def test_empty(self):
        assert _parse_capital("") is None

    def test_invalid(self):
        with pytest.raises(RowRejected):
            _parse_capital("abc")

    def test_too_many_digits(self):
        with pytest.raises(RowRejected):
            _parse_capital("1" * 21 + ",00")


class TestPadIdentifier:
    def test_short_value_padded(self):
        assert _pad_identifier("123", 8) == "00000123"

    def test_exact(self):
        assert _pad_identifier("12345678000195", 14) == "12345678000195"

    def test_too_long(self):
        with pytest.raises(RowRejected):
            _pad_identifier("123456789", 8)

    @pytest.mark.parametrize("value", ["", "12.345.678", "1234567a", "１２３"])
    def test_malformed(self, value):
        with pytest.raises(RowRejected):
            _pad_identifier(value, 8)


class TestSchemas:
    def test_widths(self):
        assert {d: s.width for d, s in SCHEMAS.items()} == {
            Dataset.COMPANIES_BASE: 7,
            Dataset.ESTABLISHMENTS: 30,
            Dataset.PARTNERS: 11,
            Dataset.SIMPLES: 7,
        }

    def test_lookup_dataset_has_no_schema(self):
        with pytest.raises(ValueError):
            schema_for(Dataset.CNAES)


class TestCompanyBase:
    def test_enriched(self, lookups, rows):
        record = _enrich(Dataset.COMPANIES_BASE, rows.company_base(), lookups)
        assert isinstance(record, CompanyBaseRecord)
        assert record.cnpj_basico == "12345678"
        assert record.natureza_juridica == "Sociedade Empresária Limitada"
        assert record.descricao_qualificacao_do_responsavel == "Sócio-Administrador"
        assert record.capital_social == Decimal("1000.50")
        assert record.codigo_porte == 1
        assert record.porte == "MICRO EMPRESA"
        assert record.ente_federativo_responsavel is None

    def test_basico_padded(self, lookups, rows):
        record = _enrich(Dataset.COMPANIES_BASE, rows.company_base("345678"), lookups)
        assert record.cnpj_basico == "00345678"

    def test_bad_capital_rejected(self, lookups, rows):
        with pytest.raises(RowRejected, match="capital"):
            _enrich(Dataset.COMPANIES_BASE, rows.company_base(capital="1,2,3"), lookups)

    def test_mei_name_masked_in_privacy_mode(self, lookups, rows):
        row = rows.company_base()
        row[1] = "JOAO SILVA 12345678901"
        assert _enrich(Dataset.COMPANIES_BASE, row, lookups).razao_social == "JOAO SILVA 12345678901"
        masked = _enrich(Dataset.COMPANIES_BASE, row, lookups, privacy=True)
        assert masked.razao_social == "JOAO SILVA ***678***901***"


class TestEstablishment:
    def test_enriched(self, lookups, rows):
        record = _enrich(Dataset.ESTABLISHMENTS, rows.establishment(), lookups)
        assert isinstance(record, EstablishmentRecord)
        assert record.cnpj == "12345678000195"
        assert record.cnpj_basico == "12345678"
        assert record.descricao_identificador_matriz_filial == "MATRIZ"
        assert record.data_situacao_cadastral == date(2022, 1, 15)
        assert record.descricao_motivo_situacao_cadastral == "SEM MOTIVO"
        assert record.pais == "BRASIL"
        assert record.cnae_fiscal == 6201501
        assert record.cnae_fiscal_descricao.startswith("Desenvolvimento")
        assert record.cnae_fiscal_secundaria == "6202300,6203100"
        assert record.municipio == "SAO PAULO"
        assert record.codigo_municipio_ibge is None
        assert record.ddd_telefone_1 == "1155551234"
        assert record.ddd_telefone_2 is None
        assert record.complemento is None

    def test_status_resolution(self, lookups, rows):
        """Status 2 is ATIVA; an unknown status keeps its code with no label."""
        active = _enrich(Dataset.ESTABLISHMENTS, rows.establishment(), lookups)
        assert active.situacao_cadastral == 2
        assert active.descricao_situacao_cadastral == "ATIVA"

        row = rows.establishment()
        row[5] = "99"
        unknown = _enrich(Dataset.ESTABLISHMENTS, row, lookups)
        assert unknown.situacao_cadastral == 99
        assert unknown.descricao_situacao_cadastral is None

    def test_unknown_cnae_gives_null_label(self, lookups, rows):
        row = rows.establishment()
        row[11] = "1111111"
        record = _enrich(Dataset.ESTABLISHMENTS, row, lookups)
        assert record.cnae_fiscal == 1111111
        assert record.cnae_fiscal_descricao is None

    def test_short_identifier_padded(self, lookups, rows):
        record = _enrich(Dataset.ESTABLISHMENTS, rows.establishment("345678", "0001", "95"), lookups)
        assert record.cnpj == "00345678000195"
        assert len(record.cnpj) == 14

    def test_each_identifier_part_padded_separately(self, lookups, rows):
        record = _enrich(Dataset.ESTABLISHMENTS, rows.establishment("12345678", "1", "95"), lookups)
        assert record.cnpj == "12345678000195"
        assert record.cnpj_basico == "12345678"

        record = _enrich(Dataset.ESTABLISHMENTS, rows.establishment("12345678", "0001", "5"), lookups)
        assert record.cnpj == "12345678000105"

    def test_long_ordem_rejected(self, lookups, rows):
        with pytest.raises(RowRejected, match="longer than 4 digits"):
            _enrich(Dataset.ESTABLISHMENTS, rows.establishment("1234567", "00001", "95"), lookups)

    def test_long_identifier_rejected(self, lookups, rows):
        with pytest.raises(RowRejected):
            _enrich(Dataset.ESTABLISHMENTS, rows.establishment("123456789", "0001", "95"), lookups)

    def test_non_digit_identifier_rejected(self, lookups, rows):
        with pytest.raises(RowRejected):
            _enrich(Dataset.ESTABLISHMENTS, rows.establishment("1234567X"), lookups)

    def test_bad_date_is_null_not_reject(self, lookups, rows):
        row = rows.establishment()
        row[10] = "2010-03-01"
        assert _enrich(Dataset.ESTABLISHMENTS, row, lookups).data_inicio_atividade is None

    def test_wrong_field_count_rejected(self, lookups, rows):
        with pytest.raises(RowRejected, match="expected 30 fields, got 29") as excinfo:
            _enrich(Dataset.ESTABLISHMENTS, rows.establishment()[:-1], lookups)
        assert excinfo.value.row is not None

    def test_identifier_always_fourteen_digits(self, lookups, rows):
        for basico in ("1", "12", "1234567", "12345678"):
            record = _enrich(Dataset.ESTABLISHMENTS, rows.establishment(basico), lookups)
            assert len(record.cnpj) == 14
            assert record.cnpj.isdigit()


class TestPartner:
    def test_enriched(self, lookups, rows):
        record = _enrich(Dataset.PARTNERS, rows.partner(), lookups)
        assert isinstance(record, PartnerRecord)
        assert record.descricao_identificador_socio == "PESSOA FÍSICA"
        assert record.qualificacao_socio == "Sócio-Administrador"
        assert record.data_entrada_sociedade == date(2020, 1, 1)
        assert record.codigo_pais is None
        assert record.pais is None
        assert record.qualificacao_representante_legal == "Administrador"
        assert record.faixa_etaria == "31 a 40 anos"
        assert record.cnpj_cpf_socio == "***456789**"

    def test_privacy_masks_documents_and_names(self, lookups, rows):
        record = _enrich(Dataset.PARTNERS, rows.partner(), lookups, privacy=True)
        assert record.nome_socio == "FULANO DE TAL ***678***901***"
        assert record.cnpj_cpf_socio == "*" * 11
        assert record.cpf_representante_legal == "*" * 11
        assert record.nome_representante_legal == "BELTRANO"

    def test_empty_document_stays_null(self, lookups, rows):
        row = rows.partner()
        row[7] = ""
        record = _enrich(Dataset.PARTNERS, row, lookups, privacy=True)
        assert record.cpf_representante_legal is None


class TestTaxRegime:
    def test_flags_and_dates(self, lookups, rows):
        record = _enrich(Dataset.SIMPLES, rows.simples(), lookups)
        assert isinstance(record, TaxRegimeRecord)
        assert record.opcao_pelo_simples is True
        assert record.data_opcao_pelo_simples == date(2018, 1, 1)
        assert record.data_exclusao_do_simples is None
        assert record.opcao_pelo_mei is False
        assert record.data_opcao_pelo_mei is None

    def test_unknown_flag_is_null(self, lookups, rows):
        row = rows.simples()
        row[1] = "X"
        assert _enrich(Dataset.SIMPLES, row, lookups).opcao_pelo_simples is None
