"""Receita Federal CNPJ source catalog.

The origin publishes one directory per month with a fixed set of 37 ZIP
archives: ten partitions of each large fact dataset, the Simples options
and six code-lookup tables.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Iterable, Optional

from bulk.config import DEFAULT_BASE_URL
from bulk.errors import InvalidPeriodError

PARTITIONS = 10

_PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class Dataset(StrEnum):
    COMPANIES_BASE = "companies-base"
    ESTABLISHMENTS = "establishments"
    PARTNERS = "partners"
    SIMPLES = "simples"
    CNAES = "cnaes"
    MOTIVES = "motives"
    MUNICIPALITIES = "municipalities"
    LEGAL_NATURES = "legal-natures"
    COUNTRIES = "countries"
    QUALIFICATIONS = "qualifications"


# Remote archive prefix per dataset
_PREFIXES: dict[Dataset, str] = {
    Dataset.ESTABLISHMENTS: "Estabelecimentos",
    Dataset.COMPANIES_BASE: "Empresas",
    Dataset.PARTNERS: "Socios",
    Dataset.CNAES: "Cnaes",
    Dataset.MOTIVES: "Motivos",
    Dataset.MUNICIPALITIES: "Municipios",
    Dataset.LEGAL_NATURES: "Naturezas",
    Dataset.COUNTRIES: "Paises",
    Dataset.QUALIFICATIONS: "Qualificacoes",
    Dataset.SIMPLES: "Simples",
}

# Download order: partitioned datasets first, then the singletons
_PARTITIONED = (Dataset.ESTABLISHMENTS, Dataset.COMPANIES_BASE, Dataset.PARTNERS)
_SINGLETONS = (
    Dataset.CNAES,
    Dataset.MOTIVES,
    Dataset.MUNICIPALITIES,
    Dataset.LEGAL_NATURES,
    Dataset.COUNTRIES,
    Dataset.QUALIFICATIONS,
    Dataset.SIMPLES,
)

# Load order: every committed snapshot keeps partner/company foreign keys valid
FACT_DATASETS: tuple[Dataset, ...] = (
    Dataset.COMPANIES_BASE,
    Dataset.ESTABLISHMENTS,
    Dataset.PARTNERS,
    Dataset.SIMPLES,
)

LOOKUP_DATASETS: tuple[Dataset, ...] = (
    Dataset.CNAES,
    Dataset.MOTIVES,
    Dataset.MUNICIPALITIES,
    Dataset.LEGAL_NATURES,
    Dataset.COUNTRIES,
    Dataset.QUALIFICATIONS,
)


@dataclass(frozen=True)
class CatalogEntry:
    url: str
    dataset: Dataset
    partition: Optional[int]
    filename: str

    @property
    def stem(self) -> str:
        """Archive name without the ``.zip`` suffix, e.g. ``Empresas3``."""
        return self.filename.rsplit(".", 1)[0]


def current_period(now: Optional[datetime] = None) -> str:
    """Return the ``YYYY-MM`` period for *now* (UTC wall clock by default)."""
    now = now or datetime.now(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"


def validate_period(period: str) -> str:
    if not isinstance(period, str) or not _PERIOD_RE.match(period):
        raise InvalidPeriodError(f"period must be YYYY-MM, got {period!r}")
    return period


def filename_from_url(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1]


def build_catalog(period: str, base_url: str = DEFAULT_BASE_URL) -> tuple[CatalogEntry, ...]:
    """Enumerate the 37 remote artifacts published for *period*.

    Raises:
        InvalidPeriodError: if *period* is not ``YYYY-MM``.
    """
    validate_period(period)
    base = f"{base_url.rstrip('/')}/{period}/"

    entries: list[CatalogEntry] = []
    for dataset in _PARTITIONED:
        for part in range(PARTITIONS):
            url = f"{base}{_PREFIXES[dataset]}{part}.zip"
            entries.append(CatalogEntry(url, dataset, part, filename_from_url(url)))
    for dataset in _SINGLETONS:
        url = f"{base}{_PREFIXES[dataset]}.zip"
        entries.append(CatalogEntry(url, dataset, None, filename_from_url(url)))
    return tuple(entries)


def entries_for(catalog: Iterable[CatalogEntry], dataset: Dataset) -> list[CatalogEntry]:
    """Entries of *dataset* in partition order."""
    return sorted(
        (e for e in catalog if e.dataset == dataset),
        key=lambda e: -1 if e.partition is None else e.partition,
    )
