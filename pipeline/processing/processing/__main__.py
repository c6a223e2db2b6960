"""CLI entry point: rfb {download,transform,check,db} (also python -m processing)

Runs one stage of the CNPJ pipeline:
  download   fetch the monthly archives into a data directory
  transform  load lookups, enrich the fact CSVs and write them to a sink
  check      verify every archive in a directory, optionally deleting bad ones
  db         create or drop the relational tables
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, Optional, Sequence

from bulk.archive import check_directory
from bulk.catalog import CatalogEntry, build_catalog, current_period
from bulk.cnpj_downloader import DownloadOutcome, Downloader
from bulk.config import (
    DEFAULT_BASE_URL,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECS,
    DownloadConfig,
)
from bulk.errors import ConfigError, RfbError

from processing.loaders import DuckDBWriter, JsonlWriter, PostgresWriter, WriterSink
from processing.loaders.schema import create_tables, drop_tables
from processing.stream_transformer import DEFAULT_BATCH_SIZE, StreamTransformer, TransformConfig

logger = logging.getLogger("processing")

DEFAULT_DATA_DIR = Path(os.environ.get("RFB_DATA_DIR", "data"))


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging and tracebacks.")

    parser = argparse.ArgumentParser(
        prog="rfb",
        description="Receita Federal CNPJ open data pipeline — download, check, transform, load.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    # download
    download = commands.add_parser("download", parents=[common], help="Fetch the monthly archives.")
    download.add_argument(
        "--directory",
        type=Path,
        default=DEFAULT_DATA_DIR,
        help="Where archives are stored. Falls back to $RFB_DATA_DIR (default: data).",
    )
    download.add_argument(
        "--skip-existing",
        action="store_true",
        help="Leave out archives already present in the directory, whatever their size.",
    )
    download.add_argument("--parallel", type=int, default=DEFAULT_MAX_PARALLEL)
    download.add_argument(
        "--restart",
        action="store_true",
        help="Discard partial files and download from scratch.",
    )
    download.add_argument("--period", help="Snapshot month as YYYY-MM (default: current month, UTC).")
    download.add_argument(
        "--base-url",
        default=os.environ.get("RFB_BASE_URL", DEFAULT_BASE_URL),
        help="Origin directory listing. Falls back to $RFB_BASE_URL env var.",
    )
    download.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_SECS, help="Per-request timeout in seconds.")
    download.add_argument("--retries", type=int, default=DEFAULT_MAX_RETRIES, help="Attempts per request.")
    download.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Range window in bytes.")
    download.set_defaults(handler=_cmd_download)

    # transform
    transform = commands.add_parser(
        "transform", parents=[common], help="Enrich the archives and write them to a sink."
    )
    transform.add_argument("--directory", type=Path, default=DEFAULT_DATA_DIR)
    transform.add_argument("--output", type=Path, help="Write JSON Lines files into this directory.")
    transform.add_argument("--privacy", action="store_true", help="Mask personal names and documents.")
    transform.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", ""),
        help="PostgreSQL DSN. Falls back to $DATABASE_URL env var.",
    )
    transform.add_argument("--schema", default="public")
    transform.add_argument(
        "--duckdb",
        type=Path,
        default=os.environ.get("RFB_DUCKDB_PATH") or None,
        help="Write to a local DuckDB file. Falls back to $RFB_DUCKDB_PATH env var.",
    )
    transform.add_argument("--workers", type=int, default=DEFAULT_MAX_PARALLEL)
    transform.add_argument("--batch-size", type=int, default=DEFAULT_BATCH_SIZE)
    transform.set_defaults(handler=_cmd_transform)

    # check
    check = commands.add_parser("check", parents=[common], help="Verify downloaded archives.")
    check.add_argument("--directory", type=Path, default=DEFAULT_DATA_DIR)
    check.add_argument("--delete", action="store_true", help="Delete corrupt archives.")
    check.set_defaults(handler=_cmd_check)

    # db
    db = commands.add_parser("db", parents=[common], help="Create or drop the relational tables.")
    db.add_argument("action", choices=["create", "drop"])
    db.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", ""),
        help="SQLAlchemy or PostgreSQL URL. Falls back to $DATABASE_URL env var.",
    )
    db.add_argument("--schema", default="public")
    db.set_defaults(handler=_cmd_db)

    return parser


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


def _cmd_download(args: argparse.Namespace) -> int:
    config = DownloadConfig(
        data_dir=args.directory,
        base_url=args.base_url,
        timeout_secs=args.timeout,
        max_retries=args.retries,
        max_parallel=args.parallel,
        chunk_size=args.chunk_size,
        skip_existing=args.skip_existing,
        restart=args.restart,
    ).validate()
    period = args.period or current_period()
    catalog = build_catalog(period, config.base_url)
    logger.info("=== CNPJ download: %s ===", period)
    outcomes = asyncio.run(_download(config, catalog))
    logger.info("=== Done: %d file(s) ===", len(outcomes))
    return 0


async def _download(
    config: DownloadConfig, catalog: Sequence[CatalogEntry]
) -> list[DownloadOutcome]:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop_requested(cancel.set))
        except NotImplementedError:
            logger.debug("Signal handlers unavailable on this platform")
    return await Downloader(config, catalog, cancel=cancel).download()


def _open_writer(args: argparse.Namespace) -> WriterSink:
    if args.output:
        return JsonlWriter(args.output)
    if args.duckdb:
        return DuckDBWriter(args.duckdb)
    if args.database_url:
        return PostgresWriter(args.database_url, schema=args.schema)
    raise ConfigError("no destination: pass --output, --duckdb or --database-url")


def _cmd_transform(args: argparse.Namespace) -> int:
    config = TransformConfig(
        data_dir=args.directory,
        privacy=args.privacy,
        max_workers=args.workers,
        batch_size=args.batch_size,
    ).validate()
    cancel = threading.Event()
    handler = _stop_requested(cancel.set)
    previous = {
        sig: signal.signal(sig, lambda signum, frame: handler())
        for sig in (signal.SIGINT, signal.SIGTERM)
    }

    logger.info("=== CNPJ transform: %s ===", config.data_dir)
    try:
        with _open_writer(args) as writer:
            StreamTransformer(config, writer, cancel=cancel).run()
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)
    logger.info("=== Done ===")
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    if not args.directory.is_dir():
        raise ConfigError(f"{args.directory} is not a directory")
    report = check_directory(args.directory, delete=args.delete)
    if not report.ok:
        print(
            f"error: {len(report.corrupt)} of {report.checked} archive(s) corrupt",
            file=sys.stderr,
        )
        return 1
    return 0


def _cmd_db(args: argparse.Namespace) -> int:
    if not args.database_url:
        raise ConfigError("no database: pass --database-url or set $DATABASE_URL")
    if args.action == "create":
        create_tables(args.database_url, args.schema or None)
    else:
        drop_tables(args.database_url, args.schema or None)
    return 0


def _stop_requested(stop: Callable[[], None]) -> Callable[[], None]:
    def handler() -> None:
        logger.warning("Interrupt received, finishing in-flight work and stopping")
        stop()

    return handler


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return args.handler(args)
    except RfbError as exc:
        logger.error("%s", exc, exc_info=args.verbose)
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code


if __name__ == "__main__":
    sys.exit(main())
