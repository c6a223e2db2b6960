"""Receita Federal CNPJ row enricher — raw CSV fields to record schemas.

Each fact dataset has a static :class:`DatasetSchema`: the expected field
count, the record model and a builder mapping positional fields to record
attributes. :func:`enrich_row` is the single entry point used by the
stream transformer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Mapping, Optional, Sequence

from bulk.catalog import Dataset
from models import CompanyBaseRecord, EstablishmentRecord, PartnerRecord, TaxRegimeRecord
from models.base import BaseSchema
from models.codes import (
    FAIXA_ETARIA,
    IDENTIFICADOR_SOCIO,
    MATRIZ_FILIAL,
    OPCAO_FLAG,
    PORTE_EMPRESA,
    SITUACAO_CADASTRAL,
    describe,
)
from pii import mask_document, mask_name
from pydantic import ValidationError

from processing.errors import RowRejected
from processing.lookups import Lookups

logger = logging.getLogger(__name__)

CNPJ_LENGTH = 14
CNPJ_BASICO_LENGTH = 8
CNPJ_ORDEM_LENGTH = 4
CNPJ_DV_LENGTH = 2
CAPITAL_MAX_DIGITS = 20

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_CENTS = Decimal("0.01")

RowBuilder = Callable[[Sequence[str], Lookups, bool], dict]


# ------------------------------------------------------------------ #
# Field parsers                                                        #
# ------------------------------------------------------------------ #


def _clean(value: str) -> Optional[str]:
    value = value.strip()
    return value or None


def _parse_int(value: str) -> Optional[int]:
    """Base-10 code; empty or non-numeric values become ``None``."""
    value = value.strip()
    if not _INTEGER_RE.match(value):
        return None
    return int(value)


def _parse_date(value: str) -> Optional[date]:
    """``YYYYMMDD``; ``00000000``, empty and malformed values become ``None``."""
    value = value.strip()
    if len(value) != 8 or not value.isdigit() or value == "00000000":
        return None
    try:
        return datetime.strptime(value, "%Y%m%d").date()
    except ValueError:
        return None


def _parse_capital(value: str) -> Optional[Decimal]:
    """Parse ``1.234,56`` style capital to a two-decimal :class:`Decimal`.

    Raises:
        RowRejected: when the value is not a number or does not fit in
            ``NUMERIC(20, 2)``.
    """
    value = value.strip()
    if not value:
        return None
    try:
        amount = Decimal(value.replace(".", "").replace(",", "."))
        if not amount.is_finite():
            raise InvalidOperation
        amount = amount.quantize(_CENTS)
    except InvalidOperation as exc:
        raise RowRejected(f"invalid capital {value!r}") from exc
    if len(amount.as_tuple().digits) > CAPITAL_MAX_DIGITS:
        raise RowRejected(f"capital {value!r} exceeds {CAPITAL_MAX_DIGITS} digits")
    return amount


def _parse_flag(value: str) -> Optional[bool]:
    return OPCAO_FLAG.get(value.strip().upper())


def _pad_identifier(value: str, length: int) -> str:
    """Zero-left-pad a numeric identifier to *length* digits.

    Raises:
        RowRejected: on an empty, non-digit or too long value.
    """
    value = value.strip()
    if not value or not value.isascii() or not value.isdigit():
        raise RowRejected(f"malformed identifier {value!r}")
    if len(value) > length:
        raise RowRejected(f"identifier {value!r} longer than {length} digits")
    return value.zfill(length)


def _phone(ddd: str, number: str) -> Optional[str]:
    return _clean(ddd.strip() + number.strip())


def _masked_name(value: str, privacy: bool) -> Optional[str]:
    name = _clean(value)
    if name is None or not privacy:
        return name
    return mask_name(name)


def _masked_document(value: str, privacy: bool) -> Optional[str]:
    document = _clean(value)
    if document is None or not privacy:
        return document
    return mask_document(document)


# ------------------------------------------------------------------ #
# Per-dataset builders                                                 #
# ------------------------------------------------------------------ #


def _build_company_base(row: Sequence[str], lookups: Lookups, privacy: bool) -> dict:
    natureza = _parse_int(row[2])
    qualificacao = _parse_int(row[3])
    porte = _parse_int(row[5])
    return {
        "cnpj_basico": _pad_identifier(row[0], CNPJ_BASICO_LENGTH),
        "razao_social": _masked_name(row[1], privacy),
        "codigo_natureza_juridica": natureza,
        "natureza_juridica": lookups.resolve_legal_nature(natureza),
        "qualificacao_do_responsavel": qualificacao,
        "descricao_qualificacao_do_responsavel": lookups.resolve_qualification(qualificacao),
        "capital_social": _parse_capital(row[4]),
        "codigo_porte": porte,
        "porte": describe(PORTE_EMPRESA, porte),
        "ente_federativo_responsavel": _clean(row[6]),
    }


def _build_establishment(row: Sequence[str], lookups: Lookups, privacy: bool) -> dict:
    basico = _pad_identifier(row[0], CNPJ_BASICO_LENGTH)
    cnpj = basico + _pad_identifier(row[1], CNPJ_ORDEM_LENGTH) + _pad_identifier(row[2], CNPJ_DV_LENGTH)
    matriz_filial = _parse_int(row[3])
    situacao = _parse_int(row[5])
    motivo = _parse_int(row[7])
    pais = _parse_int(row[9])
    cnae = _parse_int(row[11])
    municipio = _parse_int(row[20])
    return {
        "cnpj": cnpj,
        "cnpj_basico": basico,
        "identificador_matriz_filial": matriz_filial,
        "descricao_identificador_matriz_filial": describe(MATRIZ_FILIAL, matriz_filial),
        "nome_fantasia": _masked_name(row[4], privacy),
        "situacao_cadastral": situacao,
        "descricao_situacao_cadastral": describe(SITUACAO_CADASTRAL, situacao),
        "data_situacao_cadastral": _parse_date(row[6]),
        "motivo_situacao_cadastral": motivo,
        "descricao_motivo_situacao_cadastral": lookups.resolve_motive(motivo),
        "nome_cidade_no_exterior": _clean(row[8]),
        "codigo_pais": pais,
        "pais": lookups.resolve_country(pais),
        "data_inicio_atividade": _parse_date(row[10]),
        "cnae_fiscal": cnae,
        "cnae_fiscal_descricao": lookups.resolve_cnae(cnae),
        "cnae_fiscal_secundaria": _clean(row[12]),
        "descricao_tipo_de_logradouro": _clean(row[13]),
        "logradouro": _clean(row[14]),
        "numero": _clean(row[15]),
        "complemento": _clean(row[16]),
        "bairro": _clean(row[17]),
        "cep": _clean(row[18]),
        "uf": _clean(row[19]),
        "codigo_municipio": municipio,
        # the origin does not publish the RFB -> IBGE municipality mapping
        "codigo_municipio_ibge": None,
        "municipio": lookups.resolve_municipality(municipio),
        "ddd_telefone_1": _phone(row[21], row[22]),
        "ddd_telefone_2": _phone(row[23], row[24]),
        "ddd_fax": _phone(row[25], row[26]),
        "email": _clean(row[27]),
        "situacao_especial": _clean(row[28]),
        "data_situacao_especial": _parse_date(row[29]),
    }


def _build_partner(row: Sequence[str], lookups: Lookups, privacy: bool) -> dict:
    identificador = _parse_int(row[1])
    qualificacao = _parse_int(row[4])
    pais = _parse_int(row[6])
    qualificacao_representante = _parse_int(row[9])
    faixa_etaria = _parse_int(row[10])
    return {
        "cnpj_basico": _pad_identifier(row[0], CNPJ_BASICO_LENGTH),
        "identificador_socio": identificador,
        "descricao_identificador_socio": describe(IDENTIFICADOR_SOCIO, identificador),
        "nome_socio": _masked_name(row[2], privacy),
        "cnpj_cpf_socio": _masked_document(row[3], privacy),
        "codigo_qualificacao_socio": qualificacao,
        "qualificacao_socio": lookups.resolve_qualification(qualificacao),
        "data_entrada_sociedade": _parse_date(row[5]),
        "codigo_pais": pais,
        "pais": lookups.resolve_country(pais),
        "cpf_representante_legal": _masked_document(row[7], privacy),
        "nome_representante_legal": _masked_name(row[8], privacy),
        "codigo_qualificacao_representante_legal": qualificacao_representante,
        "qualificacao_representante_legal": lookups.resolve_qualification(
            qualificacao_representante
        ),
        "codigo_faixa_etaria": faixa_etaria,
        "faixa_etaria": describe(FAIXA_ETARIA, faixa_etaria),
    }


def _build_tax_regime(row: Sequence[str], lookups: Lookups, privacy: bool) -> dict:
    return {
        "cnpj_basico": _pad_identifier(row[0], CNPJ_BASICO_LENGTH),
        "opcao_pelo_simples": _parse_flag(row[1]),
        "data_opcao_pelo_simples": _parse_date(row[2]),
        "data_exclusao_do_simples": _parse_date(row[3]),
        "opcao_pelo_mei": _parse_flag(row[4]),
        "data_opcao_pelo_mei": _parse_date(row[5]),
        "data_exclusao_do_mei": _parse_date(row[6]),
    }


@dataclass(frozen=True)
class DatasetSchema:
    """Static description of one fact dataset's CSV layout."""

    dataset: Dataset
    width: int
    record_type: type[BaseSchema]
    build: RowBuilder


SCHEMAS: Mapping[Dataset, DatasetSchema] = {
    Dataset.COMPANIES_BASE: DatasetSchema(
        Dataset.COMPANIES_BASE, 7, CompanyBaseRecord, _build_company_base
    ),
    Dataset.ESTABLISHMENTS: DatasetSchema(
        Dataset.ESTABLISHMENTS, 30, EstablishmentRecord, _build_establishment
    ),
    Dataset.PARTNERS: DatasetSchema(Dataset.PARTNERS, 11, PartnerRecord, _build_partner),
    Dataset.SIMPLES: DatasetSchema(Dataset.SIMPLES, 7, TaxRegimeRecord, _build_tax_regime),
}


def schema_for(dataset: Dataset) -> DatasetSchema:
    try:
        return SCHEMAS[dataset]
    except KeyError:
        raise ValueError(f"{dataset} is not a fact dataset") from None


def enrich_row(
    row: Sequence[str], schema: DatasetSchema, lookups: Lookups, privacy: bool = False
) -> BaseSchema:
    """Parse, resolve and optionally mask one raw CSV row.

    Unknown codes keep the code and get a ``None`` label; malformed dates
    and codes become ``None``.

    Raises:
        RowRejected: on a wrong field count, a malformed identifier or an
            unrepresentable capital value.
    """
    if len(row) != schema.width:
        raise RowRejected(
            f"{schema.dataset}: expected {schema.width} fields, got {len(row)}", row
        )
    try:
        values = schema.build(row, lookups, privacy)
        return schema.record_type(**values)
    except RowRejected as exc:
        raise RowRejected(f"{schema.dataset}: {exc.reason}", row) from exc
    except ValidationError as exc:
        raise RowRejected(f"{schema.dataset}: {exc.error_count()} invalid field(s)", row) from exc
