#!/usr/bin/env python3
"""
blk_ingest.py

Parses BattleTech .blk (block) files for vehicles, aerospace, etc. into the
same ParsedUnit model the .mtf parser produces.

The BLK surface read here carries no per-location armor, so parsed units come
back with an empty location list and locations_parsed=False; the writer leaves
stored locations alone for such units.
"""

import re
from typing import List, Dict, Optional, Tuple

from mtf_ingest import (
    ParsedUnit, ParsedLoadoutEntry,
    dedup_loadout, is_empty_token, tech_base_from_str, rules_level_from_type_str,
    try_int, try_float,
)
from unit_slugs import to_slug

# BLK format uses XML-like tags: <TagName>\nvalue\n</TagName>
TAG_RE = re.compile(r"^<([^/>][^>]*)>$")
CLOSE_TAG_RE = re.compile(r"^</([^>]+)>$")

EQUIPMENT_SUFFIX = "equipment"

BLK_LOCATIONS = {
    "front": "front",
    "rear": "rear",
    "right": "right_side",
    "left": "left_side",
    "turret": "turret",
    "body": "body",
    "left arm": "left_arm",
    "right arm": "right_arm",
}

VEHICLE_UNIT_TYPES = {"tank", "vtol", "naval", "wheeled vehicle", "tracked vehicle"}
FIGHTER_UNIT_TYPES = {"aero", "aerospacespacefighter", "conv_fighter", "conventional fighter"}


def scan_tags(text: str) -> Tuple[Dict[str, str], List[Tuple[str, str]]]:
    """
    Collect flat tag values (keyed by lower-cased tag name) and per-location
    equipment lines from tags ending in "equipment".
    """
    tags: Dict[str, str] = {}
    equipment: List[Tuple[str, str]] = []

    current_tag: Optional[str] = None
    current_lines: List[str] = []

    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("#"):
            continue

        open_match = TAG_RE.match(line)
        if open_match:
            current_tag = open_match.group(1).strip()
            current_lines = []
            continue

        if CLOSE_TAG_RE.match(line):
            if current_tag is None:
                continue
            tag_lower = current_tag.lower()
            if tag_lower.endswith(EQUIPMENT_SUFFIX):
                loc = tag_lower[:-len(EQUIPMENT_SUFFIX)].strip()
                for eq in current_lines:
                    if eq:
                        equipment.append((loc, eq))
            else:
                tags[tag_lower] = "\n".join(current_lines).strip()
            current_tag = None
            continue

        if current_tag is not None:
            current_lines.append(line)

    return tags, equipment


def blk_unit_type(raw: Optional[str], default_unit_type: str) -> str:
    value = (raw or "").strip().lower()
    if value in VEHICLE_UNIT_TYPES:
        return "vehicle"
    if value in FIGHTER_UNIT_TYPES:
        return "fighter"
    return default_unit_type


def parse_blk_text(text: str, default_unit_type: str = "other") -> Optional[ParsedUnit]:
    """
    Parse BLK file format with XML-like tags.
    Tags can contain spaces and special characters (e.g., "mul id:", "Body Equipment").
    Returns None when Name or a positive tonnage is missing.
    """
    tags, equipment = scan_tags(text)

    chassis = (tags.get("name") or "").strip()
    tonnage = try_float(tags.get("tonnage"))
    if not chassis or tonnage is None or tonnage <= 0:
        return None

    mul_id_raw = tags.get("mul id:")
    if mul_id_raw is None:
        mul_id_raw = tags.get("mul id")

    type_str = tags.get("type", "")

    description = tags.get("overview")
    if description is not None:
        description = description.strip('"') or None

    loadout = []
    for loc_tag, name in equipment:
        if is_empty_token(name):
            continue
        loadout.append(ParsedLoadoutEntry(equipment=name, location=BLK_LOCATIONS.get(loc_tag)))

    quirks = []
    for line in (tags.get("quirks") or "").splitlines():
        slug = to_slug(line)
        if slug:
            quirks.append(slug)

    return ParsedUnit(
        chassis=chassis,
        model=(tags.get("model") or "").strip(),
        mul_id=try_int(mul_id_raw),
        unit_type=blk_unit_type(tags.get("unittype"), default_unit_type),
        tech_base=tech_base_from_str(type_str),
        rules_level=rules_level_from_type_str(type_str),
        intro_year=try_int(tags.get("year")),
        source=tags.get("source") or None,
        tonnage=tonnage,
        locations=[],
        loadout=dedup_loadout(loadout),
        quirks=quirks,
        description=description,
        locations_parsed=False,
    )
