"""Errors raised by the transform and load stages."""

from __future__ import annotations

from typing import Optional

from bulk.errors import RfbError


class TransformError(RfbError):
    """Fatal failure of the transform stage."""


class LookupLoadError(TransformError):
    """A code table could not be loaded; Phase A is aborted."""


class TransformCancelled(TransformError):
    """The run was interrupted; the open dataset was rolled back."""


class RowRejected(Exception):
    """A single raw row cannot be turned into a record.

    Counted and dropped by the transformer; never fatal.
    """

    def __init__(self, reason: str, row: Optional[list[str]] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.row = row


class WriterError(TransformError):
    """The writer sink failed; the current dataset was rolled back."""

    def __init__(self, dataset: str, message: str) -> None:
        super().__init__(f"{dataset}: {message}")
        self.dataset = dataset


class PartitionsFailed(TransformError):
    """Some partition archives could not be read.

    Raised after the rest of the run was committed, so the exit status
    still reports the gap.
    """

    def __init__(self, filenames: list[str]) -> None:
        super().__init__(f"{len(filenames)} archive(s) could not be transformed: {', '.join(filenames)}")
        self.filenames = filenames
