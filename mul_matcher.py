"""
mul_matcher.py

Resolves MUL unit names to local unit slugs.

Strategies are tried in order and the first hit wins:
  1. manual override (MUL id -> slug), when the slug exists locally
  2. exact slug of the MUL name
  3. dual Clan/IS name: "Dasher (Fire Moth) A" -> "Dasher A", "Fire Moth A"
  4. normalized slug: trailing parenthetical dropped, whitespace collapsed
  5. case-insensitive full name, then its dual-name and normalized forms

Anything left over becomes an UnmatchedUnit for the review CSV.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple, Union

from unit_slugs import to_slug

log = logging.getLogger(__name__)

UNMATCHED_COLUMNS = ["mul_id", "mul_name", "computed_slug", "tonnage"]


class MatchResult(NamedTuple):
    db_slug: str
    db_id: int
    strategy: str


class UnmatchedUnit(NamedTuple):
    mul_id: int
    mul_name: str
    computed_slug: str
    tonnage: float


def split_parenthetical(name: str) -> Optional[Tuple[str, str, str]]:
    """Split "Outer (Inner) Suffix" into its three trimmed parts."""
    trimmed = name.strip()
    open_idx = trimmed.find("(")
    if open_idx < 0:
        return None
    close_idx = trimmed.find(")", open_idx)
    if close_idx < 0:
        return None
    return (
        trimmed[:open_idx].strip(),
        trimmed[open_idx + 1:close_idx].strip(),
        trimmed[close_idx + 1:].strip(),
    )


def dual_name_alternatives(name: str) -> List[str]:
    """
    "Dasher (Fire Moth) A" -> ["Dasher A", "Fire Moth A"].
    A trailing parenthetical with nothing after it is a pilot or custom
    name ("Awesome AWS-8Q (Smith)"), not a dual name, and yields nothing.
    """
    parts = split_parenthetical(name)
    if parts is None:
        return []
    outer, inner, suffix = parts
    if not outer or not inner or not suffix:
        return []
    return [f"{outer} {suffix}", f"{inner} {suffix}"]


def extract_clan_name(name: str) -> Optional[str]:
    """The inner (Clan) reporting name of a dual-named unit, with its suffix."""
    parts = split_parenthetical(name)
    if parts is None:
        return None
    _, inner, suffix = parts
    if not inner or not suffix:
        return None
    return f"{inner} {suffix}"


def normalize_name(name: str) -> str:
    trimmed = name.strip()
    idx = trimmed.rfind("(")
    if idx >= 0:
        trimmed = trimmed[:idx]
    return " ".join(trimmed.split())


class Matcher:
    def __init__(self, overrides: Dict[int, str], units_by_slug: Dict[str, int],
                 units_by_name: Dict[str, Tuple[str, int]]):
        self.overrides = overrides
        self.units_by_slug = units_by_slug
        self.units_by_name = units_by_name
        self.strategies: List[Tuple[str, Callable[[int, str], Optional[Tuple[str, int]]]]] = [
            ("override", self.by_override),
            ("exact_slug", self.by_exact_slug),
            ("dual_name", self.by_dual_name),
            ("normalized_slug", self.by_normalized_slug),
            ("full_name", self.by_full_name),
        ]

    def _slug_hit(self, slug: str) -> Optional[Tuple[str, int]]:
        db_id = self.units_by_slug.get(slug)
        return (slug, db_id) if db_id is not None else None

    def by_override(self, mul_id: int, name: str):
        slug = self.overrides.get(mul_id)
        if slug is None:
            return None
        hit = self._slug_hit(slug)
        if hit is None:
            log.warning("Override for MUL id %s points at unknown slug %r", mul_id, slug)
        return hit

    def by_exact_slug(self, mul_id: int, name: str):
        return self._slug_hit(to_slug(name))

    def by_dual_name(self, mul_id: int, name: str):
        for alt in dual_name_alternatives(name):
            hit = self._slug_hit(to_slug(alt))
            if hit:
                return hit
        return None

    def by_normalized_slug(self, mul_id: int, name: str):
        norm_slug = to_slug(normalize_name(name))
        if norm_slug == to_slug(name):
            return None
        return self._slug_hit(norm_slug)

    def by_full_name(self, mul_id: int, name: str):
        candidates = [name] + dual_name_alternatives(name) + [normalize_name(name)]
        tried = set()
        for candidate in candidates:
            key = candidate.lower()
            if key in tried:
                continue
            tried.add(key)
            hit = self.units_by_name.get(key)
            if hit:
                return hit
        return None

    def match_unit(self, mul_id: int, name: str, tonnage: float) -> Union[MatchResult, UnmatchedUnit]:
        for strategy_name, strategy in self.strategies:
            hit = strategy(mul_id, name)
            if hit:
                slug, db_id = hit
                return MatchResult(slug, db_id, strategy_name)
        return UnmatchedUnit(mul_id, name, to_slug(name), tonnage)


def load_overrides(path: Path) -> Dict[int, str]:
    """Read {"142": "atlas-as7-d-dc", ...}; keys must be integer MUL ids."""
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: overrides must be a JSON object of MUL id -> slug")
    overrides = {}
    for key, slug in raw.items():
        try:
            mul_id = int(key)
        except ValueError as e:
            raise ValueError(f"{path}: override key {key!r} is not an integer MUL id") from e
        overrides[mul_id] = str(slug)
    return overrides


def write_unmatched_csv(path: Path, unmatched: List[UnmatchedUnit]):
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(UNMATCHED_COLUMNS)
        for u in unmatched:
            writer.writerow([u.mul_id, u.mul_name, u.computed_slug, f"{u.tonnage:g}"])
