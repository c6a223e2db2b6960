"""ZIP archive integrity check and extraction for downloaded CNPJ files."""

from __future__ import annotations

import logging
import shutil
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path

from bulk.errors import ArchiveCorruptError

logger = logging.getLogger(__name__)

_READ_SIZE = 1024 * 1024

# What a damaged member raises while being decompressed
_MEMBER_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, OSError)


def verify_archive(path: Path) -> int:
    """Decode every member of *path*, letting the zip reader check each CRC.

    Returns:
        Number of file members checked.

    Raises:
        ArchiveCorruptError: if the central directory cannot be read or any
            member fails to decompress.
    """
    try:
        archive = zipfile.ZipFile(path)
    except (zipfile.BadZipFile, OSError) as exc:
        raise ArchiveCorruptError(path, str(exc)) from exc

    checked = 0
    with archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            try:
                with archive.open(info) as member:
                    while member.read(_READ_SIZE):
                        pass
            except _MEMBER_ERRORS as exc:
                raise ArchiveCorruptError(path, str(exc), info.filename) from exc
            checked += 1
    return checked


def _member_target(staging_dir: Path, name: str, archive_path: Path) -> Path:
    target = (staging_dir / name).resolve()
    if not target.is_relative_to(staging_dir.resolve()):
        raise ArchiveCorruptError(archive_path, "member escapes the staging directory", name)
    return target


def extract_archive(path: Path, staging_dir: Path) -> list[Path]:
    """Stream every member of *path* into *staging_dir*.

    Existing targets are overwritten. On a failing member the extraction
    stops; members already written stay in place.

    Returns:
        Paths of the extracted files, in archive order.

    Raises:
        ArchiveCorruptError: naming the member that failed.
    """
    staging_dir.mkdir(parents=True, exist_ok=True)
    try:
        archive = zipfile.ZipFile(path)
    except (zipfile.BadZipFile, OSError) as exc:
        raise ArchiveCorruptError(path, str(exc)) from exc

    extracted: list[Path] = []
    with archive:
        for info in archive.infolist():
            target = _member_target(staging_dir, info.filename, path)
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                with archive.open(info) as src, target.open("wb") as dst:
                    shutil.copyfileobj(src, dst, _READ_SIZE)
            except _MEMBER_ERRORS as exc:
                raise ArchiveCorruptError(path, str(exc), info.filename) from exc
            extracted.append(target)

    logger.info("Extracted %d file(s) from %s into %s", len(extracted), path.name, staging_dir)
    return extracted


@dataclass
class CheckReport:
    """Summary of a directory integrity check."""

    checked: int = 0
    corrupt: list[ArchiveCorruptError] = field(default_factory=list)
    deleted: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.corrupt


def check_directory(directory: Path, delete: bool = False) -> CheckReport:
    """Verify every ``*.zip`` under *directory*; optionally delete corrupt ones."""
    report = CheckReport()
    for path in sorted(directory.rglob("*.zip")):
        report.checked += 1
        try:
            members = verify_archive(path)
        except ArchiveCorruptError as exc:
            logger.error("%s", exc)
            report.corrupt.append(exc)
            if delete:
                try:
                    path.unlink()
                except OSError as unlink_exc:
                    logger.error("Failed to delete %s: %s", path, unlink_exc)
                else:
                    logger.info("Deleted corrupt file %s", path)
                    report.deleted.append(path)
            continue
        logger.info("%s OK (%d member(s))", path, members)

    logger.info("Checked %d file(s), %d corrupt", report.checked, len(report.corrupt))
    return report
