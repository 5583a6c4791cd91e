#!/usr/bin/env python3
"""
mul_import.py - reconcile a pull.py snapshot with the local unit store.

Behavior:
  - Loads every quicklist-*.json in --data-dir and matches each MUL unit to a
    local unit (see mul_matcher for the strategy order)
  - Matched units get BV, cost, intro year, role and Clan name merged in;
    values MUL doesn't have (or reports as 0) never overwrite what is stored
  - Unmatched units are written to <data-dir>/unmatched_mul_units.csv
  - Availability is read from details/<mul_id>.html and replaces the unit's
    era/faction rows; units that already have rows are skipped unless --force
  - Unknown faction names are skipped with a warning, or created when
    --create-factions is given

Exit codes:
  0 success
  1 data dir missing or snapshot/override file unreadable
  130 interrupted
"""

import sys
import logging
import argparse
from datetime import datetime
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Tuple

from tqdm import tqdm

from mtf_ingest import (
    Era, Faction, Unit, UnitAvailability, USE_POSTGRES,
    get_engine_and_session, initialize_db,
)
from mul_quicklist import RegistryUnit, load_quicklist_dir
from mul_detail import STATUS_UNRECOGNIZED, AvailabilityRecord, extract_availability
from mul_mappings import ERA_MAPPINGS, FACTION_MAPPINGS, infer_faction_type
from mul_matcher import Matcher, MatchResult, extract_clan_name, load_overrides, write_unmatched_csv
from unit_slugs import to_slug
from console_log import configure_logging, print_summary

log = logging.getLogger(__name__)

UNMATCHED_CSV = "unmatched_mul_units.csv"


class FieldChanges(NamedTuple):
    bv_changed: bool
    cost_changed: bool
    intro_year_changed: bool
    role_assigned: bool


# -----------------------------
# Lookups
# -----------------------------
def load_db_units(session) -> Tuple[Dict[str, int], Dict[str, Tuple[str, int]]]:
    """(slug -> id, lower-cased full name -> (slug, id))"""
    by_slug: Dict[str, int] = {}
    by_name: Dict[str, Tuple[str, int]] = {}
    for unit_id, slug, full_name in session.query(Unit.id, Unit.slug, Unit.full_name):
        by_slug[slug] = unit_id
        if full_name:
            by_name[full_name.lower()] = (slug, unit_id)
    return by_slug, by_name


def load_era_map(session) -> Dict[str, int]:
    return {slug: era_id for era_id, slug in session.query(Era.id, Era.slug)}


def load_faction_map(session) -> Dict[str, int]:
    """Faction ids keyed by both display name and slug."""
    out: Dict[str, int] = {}
    for faction_id, slug, name in session.query(Faction.id, Faction.slug, Faction.name):
        out[name] = faction_id
        out[slug] = faction_id
    return out


# -----------------------------
# Writes
# -----------------------------
def update_mul_fields(session, db_id: int, unit: RegistryUnit) -> FieldChanges:
    """
    Merge MUL values into units row db_id. Only values MUL actually has are
    written; everything else keeps its stored value.
    """
    row = session.get(Unit, db_id)
    if row is None:
        raise ValueError(f"unit id {db_id} not found")

    bv = unit.bv()
    cost = unit.cost_value()
    intro_year = unit.intro_year()
    role = unit.role_name()
    clan_name = extract_clan_name(unit.name)

    changes = FieldChanges(
        bv_changed=bv is not None and bv != row.bv,
        cost_changed=cost is not None and cost != row.cost,
        intro_year_changed=intro_year is not None and intro_year != row.intro_year,
        role_assigned=role is not None and role != row.role,
    )

    if row.mul_id != unit.id:
        holder = session.query(Unit.id).filter(Unit.mul_id == unit.id, Unit.id != db_id).first()
        if holder is None:
            row.mul_id = unit.id
        else:
            log.warning("MUL id %s already belongs to unit %s; leaving %s without it", unit.id, holder[0], row.slug)

    if bv is not None:
        row.bv = bv
        row.bv_source = "mul"
    if cost is not None:
        row.cost = cost
    if intro_year is not None:
        row.intro_year = intro_year
        row.intro_year_source = "mul"
    if role is not None:
        row.role = role
    if clan_name is not None:
        row.clan_name = clan_name
    row.last_mul_import_at = datetime.utcnow()
    session.flush()
    return changes


def ensure_faction(session, slug: str, name: str, faction_type: str, is_clan: bool) -> int:
    faction = session.query(Faction).filter(Faction.slug == slug).one_or_none()
    if faction is None:
        faction = Faction(slug=slug, name=name, faction_type=faction_type, is_clan=is_clan)
        session.add(faction)
        session.flush()
    return faction.id


def resolve_availability(session, records: List[AvailabilityRecord], era_ids: Dict[str, int],
                         faction_ids: Dict[str, int], create_factions: bool = False,
                         mul_id: Optional[int] = None) -> Tuple[List[Tuple[int, int]], int]:
    """
    Turn (era name, faction name) records into sorted, de-duplicated
    (faction_id, era_id) pairs. faction_ids is updated in place as names are
    resolved. Returns (pairs, factions_created).
    """
    pairs = set()
    created = 0
    for rec in records:
        era_slug = ERA_MAPPINGS.get(rec.era_name)
        if era_slug is None:
            log.warning("Unmapped era %r on MUL unit %s; skipping", rec.era_name, mul_id)
            continue
        era_id = era_ids.get(era_slug)
        if era_id is None:
            log.warning("Era %s is not in the database; skipping", era_slug)
            continue

        faction_id = faction_ids.get(rec.faction_name)
        if faction_id is None:
            mapped = FACTION_MAPPINGS.get(rec.faction_name)
            if mapped is not None:
                faction_id = faction_ids.get(mapped)
                if faction_id is None:
                    log.warning("Faction %r maps to %s which is not in the database; skipping", rec.faction_name, mapped)
                    continue
            elif create_factions:
                slug = to_slug(rec.faction_name)
                faction_type = infer_faction_type(rec.faction_name)
                faction_id = ensure_faction(session, slug, rec.faction_name, faction_type,
                                            rec.faction_name.startswith("Clan "))
                log.info("Created faction %s (%s, %s)", rec.faction_name, slug, faction_type)
                created += 1
            else:
                log.warning("Unmapped faction %r on MUL unit %s; skipping", rec.faction_name, mul_id)
                continue
            faction_ids[rec.faction_name] = faction_id

        pairs.add((faction_id, era_id))
    return sorted(pairs), created


def replace_availability(session, unit_id: int, rows: List[Tuple[int, int]]) -> int:
    """Swap the unit's availability rows for rows in a single commit. Returns rows written."""
    rows = sorted(set(rows))
    try:
        session.query(UnitAvailability).filter(UnitAvailability.unit_id == unit_id).delete()
        for faction_id, era_id in rows:
            session.add(UnitAvailability(unit_id=unit_id, faction_id=faction_id, era_id=era_id))
        session.commit()
    except Exception:
        session.rollback()
        raise
    return len(rows)


def has_availability(session, unit_id: int) -> bool:
    return session.query(UnitAvailability).filter(UnitAvailability.unit_id == unit_id).first() is not None


# -----------------------------
# Run
# -----------------------------
def run_import(session, data_dir: Path, overrides_path: Optional[Path] = None, skip_availability: bool = False,
               force: bool = False, create_factions: bool = False, progress: bool = True) -> Dict[str, int]:
    data_dir = Path(data_dir)
    by_slug, by_name = load_db_units(session)
    log.info("Loaded %d local units for matching", len(by_slug))

    overrides = load_overrides(overrides_path) if overrides_path else {}
    if overrides:
        log.info("Loaded %d override mappings", len(overrides))
    matcher = Matcher(overrides, by_slug, by_name)

    mul_units = load_quicklist_dir(data_dir)
    log.info("%d unique MUL units to process", len(mul_units))

    stats = {
        "total_mul_units": len(mul_units), "matched": 0, "unmatched": 0,
        "bv_changed": 0, "cost_changed": 0, "intro_year_changed": 0, "role_assigned": 0,
    }
    unmatched = []
    matched: Dict[int, int] = {}

    for unit in tqdm(mul_units, desc="matching", disable=not progress):
        result = matcher.match_unit(unit.id, unit.name, unit.tonnage)
        if not isinstance(result, MatchResult):
            unmatched.append(result)
            continue
        log.debug("MUL %s %r -> %s via %s", unit.id, unit.name, result.db_slug, result.strategy)
        stats["matched"] += 1
        matched[unit.id] = result.db_id
        try:
            changes = update_mul_fields(session, result.db_id, unit)
            session.commit()
        except Exception:
            session.rollback()
            raise
        for field, changed in changes._asdict().items():
            stats[field] += int(changed)

    stats["unmatched"] = len(unmatched)
    if unmatched:
        csv_path = data_dir / UNMATCHED_CSV
        write_unmatched_csv(csv_path, unmatched)
        log.info("Wrote %d unmatched units to %s", len(unmatched), csv_path)

    if skip_availability:
        log.info("Skipping availability import")
        return stats

    stats.update({"availability_units": 0, "availability_rows": 0, "availability_skipped": 0,
                  "availability_unrecognized": 0, "new_factions": 0})
    era_ids = load_era_map(session)
    faction_ids = load_faction_map(session)
    details_dir = data_dir / "details"

    for mul_id, db_id in tqdm(sorted(matched.items()), desc="availability", disable=not progress):
        path = details_dir / f"{mul_id}.html"
        if not path.exists():
            continue
        if not force and has_availability(session, db_id):
            stats["availability_skipped"] += 1
            continue

        try:
            html = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            log.warning("%s is not valid UTF-8 (%s); re-fetch it with pull.py --force", path, e.reason)
            stats["availability_unrecognized"] += 1
            continue

        extraction = extract_availability(html)
        if not extraction.records:
            if extraction.status == STATUS_UNRECOGNIZED:
                log.warning("%s doesn't look like a MUL detail page", path)
                stats["availability_unrecognized"] += 1
            continue

        try:
            pairs, created = resolve_availability(
                session, extraction.records, era_ids, faction_ids,
                create_factions=create_factions, mul_id=mul_id,
            )
        except Exception:
            session.rollback()
            raise
        stats["new_factions"] += created
        if pairs:
            stats["availability_rows"] += replace_availability(session, db_id, pairs)
            stats["availability_units"] += 1
        elif created:
            session.commit()

    return stats


def main():
    parser = argparse.ArgumentParser(description="Merge a MUL snapshot (from pull.py) into the unit database.")
    parser.add_argument("--data-dir", default="mul-data", help="Directory written by pull.py (default: mul-data)")
    parser.add_argument("--overrides", default=None, help="JSON file of MUL id -> unit slug overrides")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy URL (default: env DATABASE_URL, else POSTGRES_DSN/SQLite per config)")
    parser.add_argument("--use-postgres", action="store_true", help="Temporarily override USE_POSTGRES (connect to POSTGRES_DSN)")
    parser.add_argument("--skip-availability", action="store_true", help="Only merge QuickList fields")
    parser.add_argument("--force", action="store_true", help="Replace availability even for units that already have it")
    parser.add_argument("--create-factions", action="store_true", help="Create factions for unmapped MUL faction names")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    configure_logging(args.verbose)

    data_dir = Path(args.data_dir)
    if not data_dir.is_dir():
        log.error("Data dir doesn't exist: %s", data_dir)
        sys.exit(1)

    engine, Session = get_engine_and_session(USE_POSTGRES or args.use_postgres, args.database_url)
    initialize_db(engine)
    session = Session()

    try:
        stats = run_import(
            session, data_dir,
            overrides_path=Path(args.overrides) if args.overrides else None,
            skip_availability=args.skip_availability,
            force=args.force,
            create_factions=args.create_factions,
            progress=not args.no_progress,
        )
        print_summary("MUL import complete", stats)
        rc = 0
    except (ValueError, OSError) as e:
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
