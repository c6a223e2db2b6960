"""CNPJ snapshot schemas — SQLAlchemy ORM tables and Pydantic record schemas."""

from models.base import Base, BaseSchema
from models.company import (
    BASE_MERGE_COLUMNS,
    Company,
    CompanyBase,
    CompanyBaseRecord,
    EstablishmentRecord,
)
from models.partner import Partner, PartnerRecord
from models.tax_regime import FISCAL_MERGE_COLUMNS, TaxRegime, TaxRegimeRecord

__all__ = [
    "Base",
    "BaseSchema",
    "BASE_MERGE_COLUMNS",
    "FISCAL_MERGE_COLUMNS",
    "Company",
    "CompanyBase",
    "CompanyBaseRecord",
    "EstablishmentRecord",
    "Partner",
    "PartnerRecord",
    "TaxRegime",
    "TaxRegimeRecord",
]
