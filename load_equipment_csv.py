#!/usr/bin/env python3
"""
load_equipment_csv.py

Loads weapon/equipment stats from a CSV file onto equipment rows created by
the archive import.

The archive import only knows equipment by name; tonnage, crits, damage, heat,
ranges and BV come from this seed. Rows are looked up by slug, falling back to
SLUG_ALIASES for the readable slugs used in the CSV. By default only NULL
columns are filled; --force overwrites everything.

CSV columns: slug,tonnage,crits,damage,heat,range_min,range_short,range_medium,range_long,bv
"""

import re
import csv
import sys
import logging
import argparse
from pathlib import Path
from typing import Dict, Optional
from datetime import datetime

from mtf_ingest import Equipment, USE_POSTGRES, get_engine_and_session, initialize_db
from console_log import configure_logging, print_summary

log = logging.getLogger(__name__)

STAT_COLUMNS = [
    "tonnage", "crits", "damage", "heat",
    "range_min", "range_short", "range_medium", "range_long", "bv",
]
INT_COLUMNS = {"crits", "heat", "range_min", "range_short", "range_medium", "range_long", "bv"}

# Readable CSV slug -> slug of the source-file equipment name
# (e.g. "CLERLargeLaser" slugifies to "clerlargelaser")
SLUG_ALIASES = {
    # Clan energy
    "clan-er-large-laser": "clerlargelaser",
    "clan-er-medium-laser": "clermediumlaser",
    "clan-er-small-laser": "clersmalllaser",
    "clan-er-ppc": "clerppc",
    "clan-large-pulse-laser": "cllargepulselaser",
    "clan-medium-pulse-laser": "clmediumpulselaser",
    "clan-small-pulse-laser": "clsmallpulselaser",
    "clan-er-flamer": "clerflamer",
    "clan-plasma-cannon": "clplasmacannon",
    # IS pulse lasers
    "pulse-large-laser": "islargepulselaser",
    "pulse-medium-laser": "ismediumpulselaser",
    "pulse-small-laser": "issmallpulselaser",
    # IS ballistic
    "ultra-autocannon-2": "isultraac2",
    "ultra-autocannon-5": "isultraac5",
    "ultra-autocannon-10": "isultraac10",
    "ultra-autocannon-20": "isultraac20",
    "rotary-autocannon-5": "isrotaryac5",
    "light-autocannon-5": "light-ac-5",
    # Clan ballistic
    "clan-ultra-autocannon-2": "clultraac2",
    "clan-ultra-autocannon-5": "clultraac5",
    "clan-ultra-autocannon-10": "clultraac10",
    "clan-ultra-autocannon-20": "clultraac20",
    "clan-lb-2-x-ac": "cllbxac2",
    "clan-lb-5-x-ac": "cllbxac5",
    "clan-lb-10-x-ac": "cllbxac10",
    "clan-lb-20-x-ac": "cllbxac20",
    "clan-gauss-rifle": "clgaussrifle",
    # Clan missiles
    "clan-srm-2": "clsrm2",
    "clan-srm-4": "clsrm4",
    "clan-srm-6": "clsrm6",
    "clan-lrm-5": "cllrm5",
    "clan-lrm-10": "cllrm10",
    "clan-lrm-15": "cllrm15",
    "clan-lrm-20": "cllrm20",
    "clan-streak-srm-2": "clstreaksrm2",
    "clan-streak-srm-4": "clstreaksrm4",
    "clan-streak-srm-6": "clstreaksrm6",
    "clan-arrow-iv": "clarrowiv",
    # IS missiles
    "narc-missile-beacon": "narc",
    # Electronics
    "guardian-ecm-suite": "isguardianecmsuite",
    "clan-ecm-suite": "clecmsuite",
    "beagle-active-probe": "beagleactiveprobe",
    "clan-active-probe": "clactiveprobe",
    "clan-anti-missile-system": "clantimissilesystem",
    "targeting-computer": "istargeting-computer",
    "artemis-iv-fcs": "isartemisiv",
    "c3-master-computer": "isc3mastercomputer",
    "c3-slave-unit": "isc3slaveunit",
}


def _parse_int(value) -> Optional[int]:
    """Parse integer from string, dropping stray non-numeric characters"""
    if not value:
        return None
    cleaned = re.sub(r"[^\d\-]", "", str(value))
    try:
        return int(cleaned) if cleaned else None
    except ValueError:
        return None


def _parse_float(value) -> Optional[float]:
    if not value:
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def parse_stats_row(row: Dict[str, str]) -> Dict[str, object]:
    stats = {}
    for col in STAT_COLUMNS:
        raw = (row.get(col) or "").strip()
        if col == "tonnage":
            stats[col] = _parse_float(raw)
        elif col in INT_COLUMNS:
            stats[col] = _parse_int(raw)
        else:
            stats[col] = raw or None
    return stats


def find_equipment(session, slug: str):
    """Returns (row, via_alias); row is None when neither slug nor alias exists."""
    eq = session.query(Equipment).filter(Equipment.slug == slug).one_or_none()
    if eq is not None:
        return eq, False
    alt = SLUG_ALIASES.get(slug)
    if alt is None:
        return None, False
    eq = session.query(Equipment).filter(Equipment.slug == alt).one_or_none()
    return eq, eq is not None


def apply_stats(eq: Equipment, stats: Dict[str, object], force: bool) -> bool:
    """Write stats onto eq. Returns True when any column changed."""
    changed = False
    for col, value in stats.items():
        current = getattr(eq, col)
        if force:
            if current != value:
                setattr(eq, col, value)
                changed = True
        elif current is None and value is not None:
            setattr(eq, col, value)
            changed = True
    if changed:
        if force or eq.stats_source is None:
            eq.stats_source = "seed"
        eq.stats_updated_at = datetime.utcnow()
    return changed


def load_equipment_stats(session, csv_path: Path, force: bool = False) -> Dict[str, int]:
    counts = {"updated": 0, "alias_hits": 0, "not_found": 0, "unchanged": 0}

    with open(csv_path, "r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            slug = (row.get("slug") or "").strip()
            if not slug:
                continue
            eq, via_alias = find_equipment(session, slug)
            if eq is None:
                log.warning("No equipment row for %s", slug)
                counts["not_found"] += 1
                continue
            if via_alias:
                counts["alias_hits"] += 1
            if apply_stats(eq, parse_stats_row(row), force):
                counts["updated"] += 1
            else:
                counts["unchanged"] += 1

    session.commit()
    return counts


def main():
    parser = argparse.ArgumentParser(description="Load equipment stats from a CSV seed file into the database")
    parser.add_argument("--csv", default="equipment_stats.csv", help="Path to the stats CSV (default: equipment_stats.csv)")
    parser.add_argument("--force", action="store_true", help="Overwrite existing stats instead of filling NULL columns")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy URL (default: env DATABASE_URL, else POSTGRES_DSN/SQLite per config)")
    parser.add_argument("--use-postgres", action="store_true", help="Use PostgreSQL instead of SQLite")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(args.verbose)

    csv_path = Path(args.csv)
    if not csv_path.exists():
        log.error("%s not found", csv_path)
        sys.exit(1)

    engine, Session = get_engine_and_session(USE_POSTGRES or args.use_postgres, args.database_url)
    initialize_db(engine)
    session = Session()
    try:
        counts = load_equipment_stats(session, csv_path, force=args.force)
    finally:
        session.close()

    print_summary("Equipment stats", counts)


if __name__ == "__main__":
    main()
