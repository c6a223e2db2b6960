"""Code-lookup tables (CNAEs, motives, municipalities, legal natures, countries, qualifications).

Each table is a two-column ``code;label`` CSV. The maps are built once
before any fact row is read and then shared read-only by every worker.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from bulk.catalog import LOOKUP_DATASETS, Dataset

from processing.errors import LookupLoadError
from processing.readers import iter_csv_rows

logger = logging.getLogger(__name__)

_EMPTY: Mapping[int, str] = MappingProxyType({})


@dataclass(frozen=True)
class Lookups:
    """Immutable handle over the six code→label maps."""

    cnaes: Mapping[int, str] = field(default_factory=lambda: _EMPTY)
    motives: Mapping[int, str] = field(default_factory=lambda: _EMPTY)
    municipalities: Mapping[int, str] = field(default_factory=lambda: _EMPTY)
    legal_natures: Mapping[int, str] = field(default_factory=lambda: _EMPTY)
    countries: Mapping[int, str] = field(default_factory=lambda: _EMPTY)
    qualifications: Mapping[int, str] = field(default_factory=lambda: _EMPTY)

    @classmethod
    def from_tables(cls, tables: Mapping[Dataset, Mapping[int, str]]) -> Lookups:
        """Build from a ``{Dataset: {code: label}}`` dict; maps are frozen on the way in."""
        kwargs = {}
        for dataset, table in tables.items():
            if dataset not in LOOKUP_DATASETS:
                raise ValueError(f"{dataset} is not a lookup dataset")
            kwargs[_attribute(dataset)] = MappingProxyType(dict(table))
        return cls(**kwargs)

    def sizes(self) -> dict[str, int]:
        return {f.name: len(getattr(self, f.name)) for f in fields(self)}

    @staticmethod
    def resolve(table: Mapping[int, str], code: Optional[int]) -> Optional[str]:
        """Label for *code*, or ``None`` when the code is empty or unknown."""
        if code is None:
            return None
        return table.get(code)

    def resolve_cnae(self, code: Optional[int]) -> Optional[str]:
        return self.resolve(self.cnaes, code)

    def resolve_motive(self, code: Optional[int]) -> Optional[str]:
        return self.resolve(self.motives, code)

    def resolve_municipality(self, code: Optional[int]) -> Optional[str]:
        return self.resolve(self.municipalities, code)

    def resolve_legal_nature(self, code: Optional[int]) -> Optional[str]:
        return self.resolve(self.legal_natures, code)

    def resolve_country(self, code: Optional[int]) -> Optional[str]:
        return self.resolve(self.countries, code)

    def resolve_qualification(self, code: Optional[int]) -> Optional[str]:
        return self.resolve(self.qualifications, code)


def _attribute(dataset: Dataset) -> str:
    return dataset.value.replace("-", "_")


def parse_lookup_rows(
    rows: Iterable[Sequence[str]], source: str = "<rows>"
) -> dict[int, str]:
    """Turn ``code;label[;...]`` rows into a dict.

    Extra columns are ignored. Blank lines, single-column rows and rows
    with an empty label are left out, so their code resolves to ``None``.

    Raises:
        LookupLoadError: on a non-integer code.
    """
    table: dict[int, str] = {}
    for line_no, row in enumerate(rows, start=1):
        if not row or not any(cell.strip() for cell in row):
            continue
        if len(row) < 2:
            logger.warning("%s:%d: expected 2 columns, got %d, skipping", source, line_no, len(row))
            continue
        raw_code, label = row[0].strip(), row[1].strip()
        try:
            code = int(raw_code)
        except ValueError as exc:
            raise LookupLoadError(f"{source}:{line_no}: invalid code {raw_code!r}") from exc
        if not label:
            continue
        if code in table and table[code] != label:
            logger.warning(
                "%s:%d: duplicate code %d (%r), keeping %r", source, line_no, code, label, table[code]
            )
            continue
        table[code] = label
    return table


def load_lookup_files(dataset: Dataset, paths: Sequence[Path]) -> dict[int, str]:
    """Load one lookup table from the CSV file(s) extracted from its archive."""
    if not paths:
        raise LookupLoadError(f"{dataset}: no CSV files found")
    table: dict[int, str] = {}
    for path in paths:
        try:
            for code, label in parse_lookup_rows(iter_csv_rows(path), source=path.name).items():
                table.setdefault(code, label)
        except (OSError, csv.Error) as exc:
            raise LookupLoadError(f"{dataset}: cannot read {path}: {exc}") from exc
    logger.info("Loaded %s: %d codes", dataset, len(table))
    return table


def load_lookups(sources: Mapping[Dataset, Sequence[Path]]) -> Lookups:
    """Phase A: load all six code tables.

    Raises:
        LookupLoadError: if any table is missing or unreadable; nothing is
            returned in that case.
    """
    missing = [d for d in LOOKUP_DATASETS if d not in sources]
    if missing:
        raise LookupLoadError(f"missing lookup tables: {', '.join(missing)}")
    tables = {dataset: load_lookup_files(dataset, sources[dataset]) for dataset in LOOKUP_DATASETS}
    return Lookups.from_tables(tables)
