"""JsonlWriter — one JSON Lines file per dataset plus a run manifest."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Optional, Sequence

from models.base import BaseSchema

from processing.errors import WriterError
from processing.loaders.base import BatchResult, WriterSink

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


class JsonlWriter(WriterSink):
    """Write ``<output_dir>/<dataset>.jsonl``.

    Rows go to ``<dataset>.jsonl.part``, renamed into place when the
    dataset ends, so a finished file is never partial. :meth:`commit`
    writes ``manifest.json`` with the row count of each dataset.
    """

    kind = "jsonl"

    def __init__(self, output_dir: Path) -> None:
        super().__init__()
        self._output_dir = output_dir
        self._fh: Optional[IO[str]] = None
        self._rows = 0
        self._counts: dict[str, int] = {}

    def path_for(self, name: str) -> Path:
        return self._output_dir / f"{name}.jsonl"

    def _part_path(self, name: str) -> Path:
        return self._output_dir / f"{name}.jsonl.part"

    def _begin(self, name: str) -> None:
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            self._fh = self._part_path(name).open("w", encoding="utf-8")
        except OSError as exc:
            raise WriterError(name, f"cannot open output: {exc}") from exc
        self._rows = 0

    def _write(self, name: str, rows: Sequence[BaseSchema]) -> BatchResult:
        if self._fh is None:
            raise WriterError(name, "no open output file")
        try:
            self._fh.writelines(r.model_dump_json() + "\n" for r in rows)
        except OSError as exc:
            raise WriterError(name, str(exc)) from exc
        self._rows += len(rows)
        return BatchResult(written=len(rows))

    def _end(self, name: str) -> None:
        try:
            self._close_file()
            os.replace(self._part_path(name), self.path_for(name))
        except OSError as exc:
            raise WriterError(name, f"cannot finalize output: {exc}") from exc
        self._counts[name] = self._rows
        logger.info("Wrote %d row(s) to %s", self._rows, self.path_for(name))

    def _rollback(self, name: Optional[str]) -> None:
        try:
            self._close_file()
            if name is not None:
                self._part_path(name).unlink(missing_ok=True)
        except OSError as exc:
            raise WriterError(name or "jsonl", f"cleanup failed: {exc}") from exc

    def _finalize(self) -> None:
        manifest = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "datasets": {
                name: {"file": self.path_for(name).name, "rows": count}
                for name, count in self._counts.items()
            },
        }
        path = self._output_dir / MANIFEST_NAME
        try:
            self._output_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        except OSError as exc:
            raise WriterError("jsonl", f"cannot write manifest: {exc}") from exc
        logger.info("Manifest written to %s", path)

    def _close_file(self) -> None:
        fh, self._fh = self._fh, None
        if fh is not None:
            fh.close()

    def close(self) -> None:
        self._close_file()
