"""Partner (sócio) — SQLAlchemy model and Pydantic record schema."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import Field
from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, BaseSchema
from models.company import CNPJ_BASICO_PATTERN


class Partner(Base):
    __tablename__ = "partners"
    __table_args__ = (
        Index("idx_partners_cnpj_basico", "cnpj_basico"),
        Index("idx_partners_nome", "nome_socio"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cnpj_basico: Mapped[str] = mapped_column(
        String(8), ForeignKey("company_bases.cnpj_basico"), nullable=False
    )
    identificador_socio: Mapped[Optional[int]] = mapped_column(Integer)
    descricao_identificador_socio: Mapped[Optional[str]] = mapped_column(String(50))
    nome_socio: Mapped[Optional[str]] = mapped_column(Text)
    cnpj_cpf_socio: Mapped[Optional[str]] = mapped_column(String(14))
    codigo_qualificacao_socio: Mapped[Optional[int]] = mapped_column(Integer)
    qualificacao_socio: Mapped[Optional[str]] = mapped_column(Text)
    data_entrada_sociedade: Mapped[Optional[date]] = mapped_column(Date)
    codigo_pais: Mapped[Optional[int]] = mapped_column(Integer)
    pais: Mapped[Optional[str]] = mapped_column(String(100))
    cpf_representante_legal: Mapped[Optional[str]] = mapped_column(String(11))
    nome_representante_legal: Mapped[Optional[str]] = mapped_column(Text)
    codigo_qualificacao_representante_legal: Mapped[Optional[int]] = mapped_column(Integer)
    qualificacao_representante_legal: Mapped[Optional[str]] = mapped_column(Text)
    codigo_faixa_etaria: Mapped[Optional[int]] = mapped_column(Integer)
    faixa_etaria: Mapped[Optional[str]] = mapped_column(String(50))


class PartnerRecord(BaseSchema):
    """One enriched ``Socios`` row. ``id`` is assigned by the database."""

    cnpj_basico: str = Field(pattern=CNPJ_BASICO_PATTERN)
    identificador_socio: Optional[int] = None
    descricao_identificador_socio: Optional[str] = None
    nome_socio: Optional[str] = None
    cnpj_cpf_socio: Optional[str] = None
    codigo_qualificacao_socio: Optional[int] = None
    qualificacao_socio: Optional[str] = None
    data_entrada_sociedade: Optional[date] = None
    codigo_pais: Optional[int] = None
    pais: Optional[str] = None
    cpf_representante_legal: Optional[str] = None
    nome_representante_legal: Optional[str] = None
    codigo_qualificacao_representante_legal: Optional[int] = None
    qualificacao_representante_legal: Optional[str] = None
    codigo_faixa_etaria: Optional[int] = None
    faixa_etaria: Optional[str] = None
