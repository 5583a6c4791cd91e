"""
mul_quicklist.py

Model for one row of the MUL QuickList JSON and helpers to load snapshot files.
Records are frozen: they are read once per run and only ever fed to the matcher.
"""

import re
import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

log = logging.getLogger(__name__)

YEAR_RE = re.compile(r"\d{4}")


class IdName(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[int] = Field(default=None, alias="Id")
    name: Optional[str] = Field(default=None, alias="Name")


class RegistryUnit(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int = Field(alias="Id")
    name: str = Field(alias="Name")
    class_name: Optional[str] = Field(default=None, alias="Class")
    variant: Optional[str] = Field(default=None, alias="Variant")
    tonnage: float = Field(default=0.0, alias="Tonnage")
    battle_value: Optional[int] = Field(default=None, alias="BattleValue")
    cost: Optional[int] = Field(default=None, alias="Cost")
    rules: Optional[str] = Field(default=None, alias="Rules")
    date_introduced: Optional[str] = Field(default=None, alias="DateIntroduced")
    technology: Optional[IdName] = Field(default=None, alias="Technology")
    role: Optional[IdName] = Field(default=None, alias="Role")
    unit_type: Optional[IdName] = Field(default=None, alias="Type")

    @field_validator("date_introduced", mode="before")
    @classmethod
    def _date_as_text(cls, v):
        return None if v is None else str(v)

    @field_validator("battle_value", "cost", mode="before")
    @classmethod
    def _whole_number(cls, v):
        if v is None or v == "":
            return None
        return int(float(v))

    def intro_year(self) -> Optional[int]:
        """First four-digit run in DateIntroduced."""
        if not self.date_introduced:
            return None
        m = YEAR_RE.search(self.date_introduced)
        return int(m.group(0)) if m else None

    def role_name(self) -> Optional[str]:
        if self.role is None or not self.role.name:
            return None
        return self.role.name.strip() or None

    # MUL reports 0 for unknown BV and cost
    def bv(self) -> Optional[int]:
        return self.battle_value if self.battle_value and self.battle_value > 0 else None

    def cost_value(self) -> Optional[int]:
        return self.cost if self.cost and self.cost > 0 else None


def units_from_payload(payload) -> Optional[list]:
    """Accept both {"Units": [...]} and a bare top-level array."""
    if isinstance(payload, dict):
        units = payload.get("Units")
        return units if isinstance(units, list) else None
    if isinstance(payload, list):
        return payload
    return None


def parse_quicklist(text: str) -> List[RegistryUnit]:
    units = units_from_payload(json.loads(text))
    if units is None:
        raise ValueError("unexpected QuickList shape: expected {'Units': [...]} or a JSON array")
    return [RegistryUnit.model_validate(u) for u in units]


def load_quicklist_dir(data_dir: Path) -> List[RegistryUnit]:
    """
    Load every quicklist-*.json in data_dir (sorted by name) and drop repeated
    MUL ids, keeping the first occurrence.
    """
    seen = set()
    out: List[RegistryUnit] = []
    for path in sorted(Path(data_dir).glob("quicklist-*.json")):
        units = parse_quicklist(path.read_text(encoding="utf-8"))
        log.info("Loaded %d units from %s", len(units), path.name)
        for u in units:
            if u.id in seen:
                continue
            seen.add(u.id)
            out.append(u)
    return out
