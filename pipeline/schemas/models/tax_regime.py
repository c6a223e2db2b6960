"""TaxRegime — Simples Nacional / MEI options per CNPJ base."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import Field
from sqlalchemy import Boolean, Date, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, BaseSchema
from models.company import CNPJ_BASICO_PATTERN

# Columns copied from tax_regimes into companies; names match on both sides
FISCAL_MERGE_COLUMNS: tuple[str, ...] = (
    "opcao_pelo_simples",
    "data_opcao_pelo_simples",
    "data_exclusao_do_simples",
    "opcao_pelo_mei",
    "data_opcao_pelo_mei",
    "data_exclusao_do_mei",
)


class TaxRegime(Base):
    __tablename__ = "tax_regimes"

    cnpj_basico: Mapped[str] = mapped_column(String(8), primary_key=True)
    opcao_pelo_simples: Mapped[Optional[bool]] = mapped_column(Boolean)
    data_opcao_pelo_simples: Mapped[Optional[date]] = mapped_column(Date)
    data_exclusao_do_simples: Mapped[Optional[date]] = mapped_column(Date)
    opcao_pelo_mei: Mapped[Optional[bool]] = mapped_column(Boolean)
    data_opcao_pelo_mei: Mapped[Optional[date]] = mapped_column(Date)
    data_exclusao_do_mei: Mapped[Optional[date]] = mapped_column(Date)


class TaxRegimeRecord(BaseSchema):
    cnpj_basico: str = Field(pattern=CNPJ_BASICO_PATTERN)
    opcao_pelo_simples: Optional[bool] = None
    data_opcao_pelo_simples: Optional[date] = None
    data_exclusao_do_simples: Optional[date] = None
    opcao_pelo_mei: Optional[bool] = None
    data_opcao_pelo_mei: Optional[date] = None
    data_exclusao_do_mei: Optional[date] = None
