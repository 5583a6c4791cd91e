"""
unit_slugs.py

Slug and equipment-name helpers shared by the parsers, the writer and the
registry matcher. Kept free of database and HTTP imports so it can be tested
on its own.
"""

import re
from typing import Optional, Tuple

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
MAX_QUANTITY_PREFIX = 99

# ordered: first keyword group that matches wins
EQUIPMENT_CATEGORY_RULES = [
    ("ammunition", ("ammo",)),
    ("heat_sink", ("heat sink",)),
    ("jump_jet", ("jump jet",)),
    ("targeting_computer", ("targeting computer",)),
    ("gyro", ("gyro",)),
    ("cockpit", ("cockpit",)),
    ("structure", ("endo steel", "structure")),
    ("armor", ("ferro", "reactive armor", "stealth")),
    ("engine", ("engine",)),
    ("energy_weapon", ("laser", "ppc", "flamer", "plasma rifle")),
    ("missile_weapon", ("lrm", "srm", "streak", "narc", "ams", "mml", "atm",
                        "rocket", "arrow", "thunderbolt")),
    ("ballistic_weapon", ("autocannon", "ac/", "gauss", "rifle", "lbx", "ultra",
                          "rotary", "hag")),
]


def to_slug(s: Optional[str]) -> str:
    """Lower-case ASCII alphanumerics joined by single hyphens.

    >>> to_slug("Clan Wolf")
    'clan-wolf'
    >>> to_slug("Atlas AS7-D (Kerensky)")
    'atlas-as7-d-kerensky'
    """
    if not s:
        return ""
    # only ASCII letters/digits survive; accented characters act as separators
    lowered = "".join(c.lower() if c.isascii() else " " for c in s)
    return _NON_ALNUM_RE.sub("-", lowered).strip("-")


def categorize_equipment(name: str) -> str:
    lower = (name or "").lower()
    for category, keywords in EQUIPMENT_CATEGORY_RULES:
        if any(kw in lower for kw in keywords):
            return category
    return "equipment"


def equipment_tech_base(name: str) -> str:
    if not name:
        return "inner_sphere"
    if name.startswith("CL") or name.lower().startswith("clan"):
        return "clan"
    return "inner_sphere"


def split_quantity(text: str) -> Tuple[int, str]:
    """
    Split "2 LRM 20" into (2, "LRM 20").
    The leading token is treated as a count only when it is an integer in
    1..MAX_QUANTITY_PREFIX and something follows it. "Medium Laser" stays
    (1, "Medium Laser") and a year-style designation such as "3058 Laser"
    keeps its number as part of the name.
    """
    text = (text or "").strip()
    head, sep, rest = text.partition(" ")
    if sep and rest.strip() and head.isdigit():
        qty = int(head)
        if 0 < qty <= MAX_QUANTITY_PREFIX:
            return qty, rest.strip()
    return 1, text
