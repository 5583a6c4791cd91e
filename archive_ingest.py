#!/usr/bin/env python3
"""
archive_ingest.py - bulk import of a MegaMek unit_files.zip (or an unpacked folder).

Behavior:
  - Seeds eras, factions and the dataset_metadata row for --version
  - Walks every entry; .mtf goes to the MTF parser, .blk to the BLK parser with a
    default unit type taken from the parent folder name (vehicle/vee, fighter/aero)
  - Entries that are not UTF-8 text, or that parse to nothing, are skipped and counted
  - Each unit is committed on its own; a failed unit is rolled back, logged to
    loader_log and counted, and the walk continues
  - --max-errors N aborts the run once N units have failed (0 = unlimited)

Exit codes:
  0 success
  1 source missing or error ceiling reached
  130 interrupted
"""

import sys
import logging
import argparse
import zipfile
from pathlib import Path, PurePosixPath
from typing import Dict, Iterator, Optional, Tuple

from tqdm import tqdm

from mtf_ingest import (
    LoaderLog, USE_POSTGRES, get_engine_and_session, initialize_db, parse_mtf_text,
)
from blk_ingest import parse_blk_text
from unit_writer import EquipmentCache, import_unit, refresh_observed_locations
from seed_data import seed_eras, seed_factions, seed_metadata
from console_log import configure_logging, print_summary

log = logging.getLogger(__name__)

UNIT_EXTENSIONS = {".mtf", ".blk"}


class ImportAbortedError(RuntimeError):
    """Raised when the per-unit error ceiling is reached."""


def classify(path: str) -> Optional[Tuple[str, str]]:
    """
    Returns (format, default_unit_type) for unit files, None for anything to skip.
    BLK default types come from the parent directory name.
    """
    lower = path.replace("\\", "/").lower()
    if lower.endswith("/"):
        return None
    p = PurePosixPath(lower)
    if p.suffix == ".mtf":
        return "mtf", "mek"
    if p.suffix == ".blk":
        parent = p.parent.name
        if "vehicle" in parent or "vee" in parent:
            return "blk", "vehicle"
        if "fighter" in parent or "aero" in parent:
            return "blk", "fighter"
        return "blk", "other"
    return None


def _dir_files(source: Path):
    return sorted(p for p in source.rglob("*") if p.is_file())


def _check_zip(source: Path):
    if not zipfile.is_zipfile(source):
        raise ValueError(f"{source} is neither a directory nor a zip archive")


def count_entries(source: Path) -> int:
    if source.is_dir():
        return len(_dir_files(source))
    _check_zip(source)
    with zipfile.ZipFile(source) as zf:
        return sum(1 for info in zf.infolist() if not info.is_dir())


def iter_entries(source: Path) -> Iterator[Tuple[str, bytes]]:
    """Yield (entry_name, raw_bytes) from a zip archive or a directory tree."""
    if source.is_dir():
        for f in _dir_files(source):
            yield f.relative_to(source).as_posix(), f.read_bytes()
        return
    _check_zip(source)
    with zipfile.ZipFile(source) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            yield info.filename, zf.read(info)


def parse_entry(name: str, data: bytes) -> Tuple[str, object]:
    """
    Returns ("skipped", reason) or ("parsed", ParsedUnit).
    Never raises for bad content.
    """
    kind = classify(name)
    if kind is None:
        return "skipped", "not a unit file"
    fmt, default_type = kind
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return "skipped", "non-UTF-8 content"
    unit = parse_mtf_text(text) if fmt == "mtf" else parse_blk_text(text, default_type)
    if unit is None:
        return "skipped", "missing chassis or tonnage"
    return "parsed", unit


def import_archive(session, source: Path, max_errors: int = 0, cache: Optional[EquipmentCache] = None,
                   progress: bool = True) -> Dict[str, int]:
    """
    Walk the archive and import every parsable unit, committing per unit.
    Raises ImportAbortedError once errors reach max_errors (when > 0).
    """
    cache = cache if cache is not None else EquipmentCache()
    stats = {"total_entries": 0, "parsed": 0, "imported": 0, "errors": 0, "skipped": 0}

    entries = iter_entries(source)
    for name, data in tqdm(entries, desc="entries", total=count_entries(source), disable=not progress):
        stats["total_entries"] += 1
        outcome, payload = parse_entry(name, data)
        if outcome == "skipped":
            if Path(name).suffix.lower() in UNIT_EXTENSIONS:
                log.warning("Skipping %s: %s", name, payload)
            stats["skipped"] += 1
            continue

        stats["parsed"] += 1
        try:
            import_unit(session, payload, cache, source_filename=name)
            session.commit()
            cache.commit()
            stats["imported"] += 1
        except KeyboardInterrupt:
            session.rollback()
            cache.rollback()
            raise
        except Exception as e:
            session.rollback()
            cache.rollback()
            stats["errors"] += 1
            msg = f"import_error: {type(e).__name__}: {e}"
            log.error("Failed to import %s: %s", name, msg)
            session.add(LoaderLog(file_name=name, status="failed", message=msg))
            session.commit()
            if max_errors > 0 and stats["errors"] >= max_errors:
                raise ImportAbortedError(
                    f"error ceiling reached ({stats['errors']}/{max_errors}) at {name}; aborting"
                ) from e

    return stats


def run_import(session, source: Path, version: str = "unknown", max_errors: int = 0,
               progress: bool = True) -> Dict[str, int]:
    """Seed reference data, walk the archive, then refresh equipment observed locations."""
    eras = seed_eras(session)
    factions = seed_factions(session)
    seed_metadata(session, version)
    session.commit()
    log.info("Reference data seeded: %d eras, %d factions, version %s", eras, factions, version)

    cache = EquipmentCache()
    stats = import_archive(session, source, max_errors=max_errors, cache=cache, progress=progress)
    stats["equipment_cache_hits"] = cache.hits
    stats["equipment_cache_misses"] = cache.misses
    log.debug("Equipment cache: %d ids, %d hits, %d misses", len(cache), cache.hits, cache.misses)

    stats["observed_locations_updated"] = refresh_observed_locations(session)
    session.commit()
    return stats


def main():
    parser = argparse.ArgumentParser(description="Import MegaMek .mtf/.blk unit files from a zip archive or folder.")
    parser.add_argument("--zip", "--source", dest="source", required=True, help="unit_files.zip from a MegaMek release, or an unpacked folder")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy URL (default: env DATABASE_URL, else POSTGRES_DSN/SQLite per config)")
    parser.add_argument("--use-postgres", action="store_true", help="Temporarily override USE_POSTGRES (connect to POSTGRES_DSN)")
    parser.add_argument("--version", default="unknown", help="MegaMek version string stored in dataset_metadata")
    parser.add_argument("--max-errors", type=int, default=0, help="Stop after this many unit import errors (0 = unlimited)")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(args.verbose)

    source = Path(args.source)
    if not source.exists():
        log.error("Source doesn't exist: %s", source)
        sys.exit(1)

    engine, Session = get_engine_and_session(USE_POSTGRES or args.use_postgres, args.database_url)
    log.info("Connecting to %s", engine.url.render_as_string(hide_password=True))
    initialize_db(engine)
    session = Session()

    try:
        stats = run_import(session, source, version=args.version, max_errors=args.max_errors,
                           progress=not args.no_progress)
        print_summary("Import complete", stats)
        rc = 0
    except (ImportAbortedError, ValueError) as e:
        log.error("%s", e)
        rc = 1
    except KeyboardInterrupt:
        log.warning("Interrupted by user")
        rc = 130
    finally:
        session.close()
    sys.exit(rc)


if __name__ == "__main__":
    main()
