"""
unit_writer.py

Idempotent persistence of ParsedUnit records.

Every upsert is keyed by a slug and rewrites all mutable columns, so importing
the same file twice leaves the store unchanged. Child rows (locations, loadout,
quirks) are replaced wholesale for the parent unit. Callers own the session
and commit once per unit.
"""

import json
import logging
from collections import defaultdict
from typing import Dict, List, Optional

from mtf_ingest import (
    ParsedUnit, Unit, UnitChassis, UnitLocation, UnitLoadout, Equipment,
    Quirk, UnitQuirk, UnitMechData, LoaderLog,
)
from unit_slugs import to_slug, categorize_equipment, equipment_tech_base

log = logging.getLogger(__name__)


class EquipmentCache:
    """
    Equipment slug -> id map shared across one import run.
    Single writer: the archive walk imports units one at a time.

    Ids learned inside the current transaction stay pending until commit();
    rollback() forgets them since the rows they point at are gone.
    """

    def __init__(self):
        self._ids: Dict[str, int] = {}
        self._pending = set()
        self.hits = 0
        self.misses = 0

    def get(self, slug: str) -> Optional[int]:
        eq_id = self._ids.get(slug)
        if eq_id is None:
            self.misses += 1
        else:
            self.hits += 1
        return eq_id

    def put(self, slug: str, eq_id: int):
        self._ids[slug] = eq_id
        self._pending.add(slug)

    def commit(self):
        self._pending.clear()

    def rollback(self):
        for slug in self._pending:
            self._ids.pop(slug, None)
        self._pending.clear()

    def __len__(self):
        return len(self._ids)

    def __contains__(self, slug):
        return slug in self._ids


def chassis_slug(unit: ParsedUnit) -> str:
    return f"{to_slug(unit.chassis)}-{unit.unit_type}"


def unit_slug(unit: ParsedUnit) -> str:
    return to_slug(unit.full_name)


def upsert_equipment(session, slug: str, name: str, category: str, tech_base: str, rules_level: str) -> int:
    if not slug:
        raise ValueError(f"Empty equipment slug for {name!r}")
    eq = session.query(Equipment).filter(Equipment.slug == slug).one_or_none()
    if eq is None:
        eq = Equipment(slug=slug)
        session.add(eq)
    eq.name = name
    eq.category = category
    eq.tech_base = tech_base
    eq.rules_level = rules_level
    session.flush()
    return eq.id


def upsert_chassis(session, unit: ParsedUnit) -> int:
    slug = chassis_slug(unit)
    ch = session.query(UnitChassis).filter(UnitChassis.slug == slug).one_or_none()
    if ch is None:
        ch = UnitChassis(slug=slug)
        session.add(ch)
    ch.name = unit.chassis
    ch.unit_type = unit.unit_type
    ch.tech_base = unit.tech_base
    ch.tonnage = unit.tonnage
    ch.intro_year = unit.intro_year
    ch.description = unit.description
    session.flush()
    return ch.id


def upsert_unit(session, unit: ParsedUnit, chassis_id: int) -> int:
    """
    Insert or update the variant row. Registry-owned columns (bv, cost, role,
    clan_name, *_source) are left to mul_import; a mul_id carried by the source
    file only fills an empty column.
    """
    slug = unit_slug(unit)
    if not slug:
        raise ValueError(f"Cannot derive unit slug from {unit.full_name!r}")
    row = session.query(Unit).filter(Unit.slug == slug).one_or_none()
    if row is None:
        row = Unit(slug=slug)
        session.add(row)
    row.chassis_id = chassis_id
    row.variant = unit.model
    row.full_name = unit.full_name
    row.tech_base = unit.tech_base
    row.rules_level = unit.rules_level
    row.tonnage = unit.tonnage
    row.intro_year = unit.intro_year
    row.source_book = unit.source
    row.description = unit.description

    if unit.mul_id is not None and row.mul_id is None:
        holder = session.query(Unit.id).filter(Unit.mul_id == unit.mul_id).first()
        if holder is None:
            row.mul_id = unit.mul_id
        else:
            log.warning("mul_id %s already assigned to unit %s; not setting it on %s", unit.mul_id, holder[0], slug)
    session.flush()
    return row.id


def replace_locations(session, unit_id: int, unit: ParsedUnit):
    session.query(UnitLocation).filter(UnitLocation.unit_id == unit_id).delete(synchronize_session=False)
    for loc in unit.locations:
        session.add(UnitLocation(
            unit_id=unit_id,
            location=loc.location,
            armor_points=loc.armor,
            rear_armor=loc.rear_armor,
            structure_points=loc.structure,
        ))
    session.flush()


def resolve_equipment_id(session, name: str, rules_level: str, cache: EquipmentCache) -> int:
    slug = to_slug(name)
    eq_id = cache.get(slug)
    if eq_id is None:
        eq_id = upsert_equipment(
            session, slug, name,
            categorize_equipment(name),
            equipment_tech_base(name),
            rules_level,
        )
        cache.put(slug, eq_id)
    return eq_id


def replace_loadout(session, unit_id: int, unit: ParsedUnit, cache: EquipmentCache):
    session.query(UnitLoadout).filter(UnitLoadout.unit_id == unit_id).delete(synchronize_session=False)
    for entry in unit.loadout:
        eq_id = resolve_equipment_id(session, entry.equipment, unit.rules_level, cache)
        session.add(UnitLoadout(
            unit_id=unit_id,
            equipment_id=eq_id,
            location=entry.location,
            quantity=entry.quantity,
            is_rear_facing=entry.is_rear,
        ))
    session.flush()


def ensure_quirk(session, slug: str) -> int:
    q = session.query(Quirk).filter(Quirk.slug == slug).one_or_none()
    if q:
        return q.id
    # display names are not present in the source files
    q = Quirk(slug=slug, name=slug)
    session.add(q)
    session.flush()
    return q.id


def replace_quirks(session, unit_id: int, quirks: List[str]):
    session.query(UnitQuirk).filter(UnitQuirk.unit_id == unit_id).delete()
    seen = set()
    for slug in quirks:
        if slug in seen:
            continue
        seen.add(slug)
        session.add(UnitQuirk(unit_id=unit_id, quirk_id=ensure_quirk(session, slug)))
    session.flush()


def upsert_mech_data(session, unit_id: int, unit: ParsedUnit):
    data = unit.mech_data
    if data is None:
        return
    row = session.get(UnitMechData, unit_id)
    if row is None:
        row = UnitMechData(unit_id=unit_id)
        session.add(row)
    for field, value in data.model_dump().items():
        setattr(row, field, value)
    session.flush()


def import_unit(session, unit: ParsedUnit, cache: EquipmentCache, source_filename: Optional[str] = None) -> int:
    """
    Write one parsed unit. Loadout and quirks always mirror the latest parse,
    even when it found none. Locations are replaced only when the format
    carries armor data (locations_parsed), so a BLK re-import keeps them.
    Returns the unit id; the caller commits or rolls back.
    """
    chassis_id = upsert_chassis(session, unit)
    unit_id = upsert_unit(session, unit, chassis_id)

    if unit.locations_parsed:
        replace_locations(session, unit_id, unit)
    replace_loadout(session, unit_id, unit, cache)
    replace_quirks(session, unit_id, unit.quirks)
    upsert_mech_data(session, unit_id, unit)

    if source_filename:
        session.add(LoaderLog(file_name=source_filename, status="ok", message=f"imported {unit_slug(unit)}"))
        session.flush()
    return unit_id


def refresh_observed_locations(session) -> int:
    """Store the sorted distinct loadout locations on each equipment row. Returns rows updated."""
    locs_by_eq = defaultdict(set)
    rows = session.query(UnitLoadout.equipment_id, UnitLoadout.location).filter(UnitLoadout.location.isnot(None)).distinct()
    for eq_id, location in rows:
        locs_by_eq[eq_id].add(location)

    updated = 0
    for eq in session.query(Equipment).filter(Equipment.id.in_(list(locs_by_eq))).all():
        value = json.dumps(sorted(locs_by_eq[eq.id]))
        if eq.observed_locations != value:
            eq.observed_locations = value
            updated += 1
    session.flush()
    return updated
