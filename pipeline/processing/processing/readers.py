"""Streaming readers for the upstream semicolon-separated CSV files.

The dump has no header row, quotes fields with ``"`` and is published in
Latin-1 most months and UTF-8 in others; the encoding is sniffed per file.
"""

from __future__ import annotations

import codecs
import csv
import logging
from pathlib import Path
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 64 * 1024
# Fraction of U+FFFD characters in the decoded sample above which the
# file is read as Latin-1 instead of UTF-8
REPLACEMENT_THRESHOLD = 0.001

DELIMITER = ";"
QUOTECHAR = '"'


def detect_encoding(sample: bytes) -> str:
    """Guess the encoding of a CSV file from its first bytes.

    A UTF-8 BOM wins outright. Otherwise the sample is decoded as UTF-8
    with replacement; too many replacement characters means Latin-1. A
    multi-byte sequence cut by the end of the sample is not counted.
    """
    if sample.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    text = decoder.decode(sample, final=False)
    if not text:
        return "utf-8"
    if text.count("�") / len(text) > REPLACEMENT_THRESHOLD:
        return "latin-1"
    return "utf-8"


def sniff_file_encoding(path: Path) -> str:
    with path.open("rb") as fh:
        return detect_encoding(fh.read(SAMPLE_SIZE))


def iter_csv_rows(
    path: Path,
    encoding: Optional[str] = None,
    on_error: Optional[Callable[[csv.Error], None]] = None,
) -> Iterator[list[str]]:
    """Yield the rows of *path* one at a time.

    Args:
        path: CSV file extracted from an upstream archive.
        encoding: Force an encoding instead of sniffing it.
        on_error: Called for every line the csv module cannot parse; the
            line is skipped. Without it the :class:`csv.Error` propagates.
    """
    encoding = encoding or sniff_file_encoding(path)
    logger.debug("Reading %s as %s", path.name, encoding)
    with path.open(encoding=encoding, errors="replace", newline="") as fh:
        reader = csv.reader(fh, delimiter=DELIMITER, quotechar=QUOTECHAR)
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error as exc:
                if on_error is None:
                    raise
                on_error(exc)
                continue
            yield row
