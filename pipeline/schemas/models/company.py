"""Company — establishment-level ``companies`` table, ``company_bases`` and their record schemas.

The upstream dump splits a legal entity across three datasets: the base
(``Empresas``), one row per establishment (``Estabelecimentos``) and the
Simples/MEI options (``Simples``). The ``companies`` table is the
denormalized join of all three, keyed by the 14-digit CNPJ.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import Field
from sqlalchemy import Boolean, Date, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, BaseSchema

CNPJ_PATTERN = r"^\d{14}$"
CNPJ_BASICO_PATTERN = r"^\d{8}$"

# Columns copied from company_bases into companies once both are loaded
BASE_MERGE_COLUMNS: tuple[str, ...] = (
    "razao_social",
    "codigo_natureza_juridica",
    "natureza_juridica",
    "qualificacao_do_responsavel",
    "descricao_qualificacao_do_responsavel",
    "capital_social",
    "codigo_porte",
    "porte",
    "ente_federativo_responsavel",
)


class CompanyBase(Base):
    __tablename__ = "company_bases"

    cnpj_basico: Mapped[str] = mapped_column(String(8), primary_key=True)
    razao_social: Mapped[Optional[str]] = mapped_column(Text)
    codigo_natureza_juridica: Mapped[Optional[int]] = mapped_column(Integer)
    natureza_juridica: Mapped[Optional[str]] = mapped_column(Text)
    qualificacao_do_responsavel: Mapped[Optional[int]] = mapped_column(Integer)
    descricao_qualificacao_do_responsavel: Mapped[Optional[str]] = mapped_column(Text)
    capital_social: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 2))
    codigo_porte: Mapped[Optional[int]] = mapped_column(Integer)
    porte: Mapped[Optional[str]] = mapped_column(String(50))
    ente_federativo_responsavel: Mapped[Optional[str]] = mapped_column(Text)


class Company(Base):
    __tablename__ = "companies"
    __table_args__ = (
        Index("idx_companies_cnpj_basico", "cnpj_basico"),
        Index("idx_companies_razao_social", "razao_social"),
        Index("idx_companies_nome_fantasia", "nome_fantasia"),
        Index("idx_companies_uf", "uf"),
        Index("idx_companies_municipio", "codigo_municipio"),
        Index("idx_companies_cnae", "cnae_fiscal"),
    )

    # identity
    cnpj: Mapped[str] = mapped_column(String(14), primary_key=True)
    cnpj_basico: Mapped[str] = mapped_column(String(8), nullable=False)
    identificador_matriz_filial: Mapped[Optional[int]] = mapped_column(Integer)
    descricao_identificador_matriz_filial: Mapped[Optional[str]] = mapped_column(String(50))
    nome_fantasia: Mapped[Optional[str]] = mapped_column(Text)

    # status
    situacao_cadastral: Mapped[Optional[int]] = mapped_column(Integer)
    descricao_situacao_cadastral: Mapped[Optional[str]] = mapped_column(String(50))
    data_situacao_cadastral: Mapped[Optional[date]] = mapped_column(Date)
    motivo_situacao_cadastral: Mapped[Optional[int]] = mapped_column(Integer)
    descricao_motivo_situacao_cadastral: Mapped[Optional[str]] = mapped_column(Text)
    situacao_especial: Mapped[Optional[str]] = mapped_column(Text)
    data_situacao_especial: Mapped[Optional[date]] = mapped_column(Date)

    # location
    nome_cidade_no_exterior: Mapped[Optional[str]] = mapped_column(Text)
    codigo_pais: Mapped[Optional[int]] = mapped_column(Integer)
    pais: Mapped[Optional[str]] = mapped_column(String(100))
    descricao_tipo_de_logradouro: Mapped[Optional[str]] = mapped_column(String(100))
    logradouro: Mapped[Optional[str]] = mapped_column(Text)
    numero: Mapped[Optional[str]] = mapped_column(Text)
    complemento: Mapped[Optional[str]] = mapped_column(Text)
    bairro: Mapped[Optional[str]] = mapped_column(Text)
    cep: Mapped[Optional[str]] = mapped_column(String(8))
    uf: Mapped[Optional[str]] = mapped_column(String(2))
    codigo_municipio: Mapped[Optional[int]] = mapped_column(Integer)
    codigo_municipio_ibge: Mapped[Optional[int]] = mapped_column(Integer)
    municipio: Mapped[Optional[str]] = mapped_column(String(100))

    # contact
    ddd_telefone_1: Mapped[Optional[str]] = mapped_column(String(20))
    ddd_telefone_2: Mapped[Optional[str]] = mapped_column(String(20))
    ddd_fax: Mapped[Optional[str]] = mapped_column(String(20))
    email: Mapped[Optional[str]] = mapped_column(Text)

    # classification
    data_inicio_atividade: Mapped[Optional[date]] = mapped_column(Date)
    cnae_fiscal: Mapped[Optional[int]] = mapped_column(Integer)
    cnae_fiscal_descricao: Mapped[Optional[str]] = mapped_column(Text)
    cnae_fiscal_secundaria: Mapped[Optional[str]] = mapped_column(Text)

    # fiscal (folded in from tax_regimes)
    opcao_pelo_simples: Mapped[Optional[bool]] = mapped_column(Boolean)
    data_opcao_pelo_simples: Mapped[Optional[date]] = mapped_column(Date)
    data_exclusao_do_simples: Mapped[Optional[date]] = mapped_column(Date)
    opcao_pelo_mei: Mapped[Optional[bool]] = mapped_column(Boolean)
    data_opcao_pelo_mei: Mapped[Optional[date]] = mapped_column(Date)
    data_exclusao_do_mei: Mapped[Optional[date]] = mapped_column(Date)

    # base (folded in from company_bases)
    razao_social: Mapped[Optional[str]] = mapped_column(Text)
    codigo_natureza_juridica: Mapped[Optional[int]] = mapped_column(Integer)
    natureza_juridica: Mapped[Optional[str]] = mapped_column(Text)
    qualificacao_do_responsavel: Mapped[Optional[int]] = mapped_column(Integer)
    descricao_qualificacao_do_responsavel: Mapped[Optional[str]] = mapped_column(Text)
    capital_social: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 2))
    codigo_porte: Mapped[Optional[int]] = mapped_column(Integer)
    porte: Mapped[Optional[str]] = mapped_column(String(50))
    ente_federativo_responsavel: Mapped[Optional[str]] = mapped_column(Text)


class CompanyBaseRecord(BaseSchema):
    """One enriched ``Empresas`` row, keyed by the 8-digit CNPJ base."""

    cnpj_basico: str = Field(pattern=CNPJ_BASICO_PATTERN)
    razao_social: Optional[str] = None
    codigo_natureza_juridica: Optional[int] = None
    natureza_juridica: Optional[str] = None
    qualificacao_do_responsavel: Optional[int] = None
    descricao_qualificacao_do_responsavel: Optional[str] = None
    capital_social: Optional[Decimal] = Field(default=None, max_digits=20, decimal_places=2)
    codigo_porte: Optional[int] = None
    porte: Optional[str] = None
    ente_federativo_responsavel: Optional[str] = None


class EstablishmentRecord(BaseSchema):
    """One enriched ``Estabelecimentos`` row — the establishment half of a ``companies`` row."""

    cnpj: str = Field(pattern=CNPJ_PATTERN)
    cnpj_basico: str = Field(pattern=CNPJ_BASICO_PATTERN)
    identificador_matriz_filial: Optional[int] = None
    descricao_identificador_matriz_filial: Optional[str] = None
    nome_fantasia: Optional[str] = None
    situacao_cadastral: Optional[int] = None
    descricao_situacao_cadastral: Optional[str] = None
    data_situacao_cadastral: Optional[date] = None
    motivo_situacao_cadastral: Optional[int] = None
    descricao_motivo_situacao_cadastral: Optional[str] = None
    situacao_especial: Optional[str] = None
    data_situacao_especial: Optional[date] = None
    nome_cidade_no_exterior: Optional[str] = None
    codigo_pais: Optional[int] = None
    pais: Optional[str] = None
    descricao_tipo_de_logradouro: Optional[str] = None
    logradouro: Optional[str] = None
    numero: Optional[str] = None
    complemento: Optional[str] = None
    bairro: Optional[str] = None
    cep: Optional[str] = None
    uf: Optional[str] = None
    codigo_municipio: Optional[int] = None
    codigo_municipio_ibge: Optional[int] = None
    municipio: Optional[str] = None
    ddd_telefone_1: Optional[str] = None
    ddd_telefone_2: Optional[str] = None
    ddd_fax: Optional[str] = None
    email: Optional[str] = None
    data_inicio_atividade: Optional[date] = None
    cnae_fiscal: Optional[int] = None
    cnae_fiscal_descricao: Optional[str] = None
    cnae_fiscal_secundaria: Optional[str] = None
