"""WriterSink — the dataset-scoped transactional contract every loader implements.

A sink moves through ``idle -> streaming(name) -> committing(name) -> idle``.
A :class:`~processing.errors.WriterError` raised while streaming or
committing moves it to ``aborting(name)``: the dataset is rolled back and
the error propagates to the transformer. Calls are serialized by an
internal lock, so producers never coordinate among themselves.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Sequence

from bulk.catalog import Dataset
from bulk.errors import InternalError
from models import BASE_MERGE_COLUMNS, FISCAL_MERGE_COLUMNS
from models.base import BaseSchema

from processing.errors import WriterError

logger = logging.getLogger(__name__)

# Fact dataset -> destination table
TABLES: dict[str, str] = {
    Dataset.COMPANIES_BASE: "company_bases",
    Dataset.ESTABLISHMENTS: "companies",
    Dataset.PARTNERS: "partners",
    Dataset.SIMPLES: "tax_regimes",
}

# Upsert keys; partners have a surrogate key and are always inserted
CONFLICT_COLUMNS: dict[str, tuple[str, ...]] = {
    "company_bases": ("cnpj_basico",),
    "companies": ("cnpj",),
    "partners": (),
    "tax_regimes": ("cnpj_basico",),
}

# Tables emptied when their dataset begins
FULL_REFRESH_TABLES = frozenset({"partners"})


@dataclass(frozen=True)
class Merge:
    """Columns copied from a staging table into ``companies`` by CNPJ base."""

    source: str
    columns: tuple[str, ...]
    target: str = "companies"
    key: str = "cnpj_basico"


# Run when the named dataset ends; its source table is loaded by then
MERGES: dict[str, Merge] = {
    Dataset.ESTABLISHMENTS: Merge("company_bases", BASE_MERGE_COLUMNS),
    Dataset.SIMPLES: Merge("tax_regimes", FISCAL_MERGE_COLUMNS),
}


def table_for(dataset: str) -> str:
    try:
        return TABLES[dataset]
    except KeyError:
        raise InternalError(f"no table for dataset {dataset!r}") from None


def merge_statement(merge: Merge) -> str:
    """``UPDATE ... FROM`` statement for *merge*; valid in PostgreSQL and DuckDB."""
    sets = ", ".join(f"{c} = s.{c}" for c in merge.columns)
    return (
        f"UPDATE {merge.target} SET {sets} FROM {merge.source} AS s "
        f"WHERE {merge.target}.{merge.key} = s.{merge.key}"
    )


class SinkState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMMITTING = "committing"
    ABORTING = "aborting"


@dataclass(frozen=True)
class BatchResult:
    """Rows persisted and rows the store refused in one ``write_batch``."""

    written: int = 0
    failed: int = 0


class WriterSink(ABC):
    """Base class for dataset-transactional writers.

    Subclasses implement the ``_begin`` / ``_write`` / ``_end`` /
    ``_rollback`` / ``_finalize`` hooks and translate driver exceptions
    into :class:`WriterError`.
    """

    kind: str = "sink"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = SinkState.IDLE
        self._dataset: Optional[str] = None

    @property
    def state(self) -> SinkState:
        return self._state

    @property
    def dataset(self) -> Optional[str]:
        return self._dataset

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def begin_dataset(self, name: str) -> None:
        with self._lock:
            if self._state is not SinkState.IDLE:
                raise InternalError(f"begin_dataset({name}) while {self._state} {self._dataset}")
            self._begin(name)
            self._state = SinkState.STREAMING
            self._dataset = name
        logger.info("%s: dataset %s started", self.kind, name)

    def write_batch(self, name: str, rows: Sequence[BaseSchema]) -> BatchResult:
        """Persist one homogeneous batch inside the open dataset transaction."""
        with self._lock:
            self._expect(SinkState.STREAMING, name)
            if not rows:
                return BatchResult()
            try:
                return self._write(name, rows)
            except WriterError:
                self._abort_locked()
                raise

    def end_dataset(self, name: str) -> None:
        """Run post-load steps and commit the dataset transaction."""
        with self._lock:
            self._expect(SinkState.STREAMING, name)
            self._state = SinkState.COMMITTING
            try:
                self._end(name)
            except WriterError:
                self._abort_locked()
                raise
            self._state = SinkState.IDLE
            self._dataset = None
        logger.info("%s: dataset %s committed", self.kind, name)

    def commit(self) -> None:
        """Finish the snapshot once every dataset has been committed."""
        with self._lock:
            if self._state is not SinkState.IDLE:
                raise InternalError(f"commit() while {self._state} {self._dataset}")
            self._finalize()

    def abort(self) -> None:
        """Roll back the open dataset, if any. Committed datasets stay."""
        with self._lock:
            self._abort_locked()

    def close(self) -> None:
        """Release connections and file handles."""

    def __enter__(self) -> WriterSink:
        return self

    def __exit__(self, *exc: object) -> None:
        self.abort()
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _expect(self, state: SinkState, name: str) -> None:
        if self._state is not state or self._dataset != name:
            raise InternalError(
                f"expected {state} {name}, sink is {self._state} {self._dataset}"
            )

    def _abort_locked(self) -> None:
        if self._state is SinkState.IDLE:
            return
        name = self._dataset
        self._state = SinkState.ABORTING
        logger.warning("%s: rolling back dataset %s", self.kind, name)
        try:
            self._rollback(name)
        except WriterError as exc:
            logger.error("%s: rollback of %s failed: %s", self.kind, name, exc)
        finally:
            self._state = SinkState.IDLE
            self._dataset = None

    @abstractmethod
    def _begin(self, name: str) -> None: ...

    @abstractmethod
    def _write(self, name: str, rows: Sequence[BaseSchema]) -> BatchResult: ...

    @abstractmethod
    def _end(self, name: str) -> None: ...

    @abstractmethod
    def _rollback(self, name: Optional[str]) -> None: ...

    def _finalize(self) -> None:
        """Hook run by :meth:`commit`; nothing by default."""
