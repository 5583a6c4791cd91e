"""
mul_detail.py

Extracts era/faction availability from a MUL unit detail page.

The page is an accordion: each .panel is one era (name in the heading link,
followed by a "(2571 - 2780)" range), and each table row in the panel body is
one faction (name in the row's first link).
"""

import logging
from typing import List, NamedTuple

from bs4 import BeautifulSoup

log = logging.getLogger(__name__)

PANEL_SELECTOR = ".panel.panel-default"
HEADING_LINK_SELECTOR = ".panel-heading .media-body a"
BODY_SELECTOR = ".panel-body"
ROW_SELECTOR = "tbody tr"

STATUS_OK = "ok"
# looks like a detail page but yielded nothing: the markup changed
STATUS_EMPTY = "empty"
# not a detail page at all: missing or corrupt fetch
STATUS_UNRECOGNIZED = "unrecognized"


class AvailabilityRecord(NamedTuple):
    era_name: str
    faction_name: str


class DetailExtraction(NamedTuple):
    records: List[AvailabilityRecord]
    status: str


def strip_year_range(text: str) -> str:
    """Drop a trailing year range: "Star League (2571 - 2780)" becomes "Star League"."""
    name = text.strip()
    paren = name.find("(")
    return name[:paren].strip() if paren >= 0 else name


def extract_availability(html: str) -> DetailExtraction:
    soup = BeautifulSoup(html or "", "html.parser")
    records: List[AvailabilityRecord] = []

    for panel in soup.select(PANEL_SELECTOR):
        link = panel.select_one(HEADING_LINK_SELECTOR)
        if link is None:
            continue
        era_name = strip_year_range(link.get_text())
        body = panel.select_one(BODY_SELECTOR)
        if body is None or not era_name:
            continue
        for row in body.select(ROW_SELECTOR):
            faction_link = row.find("a")
            if faction_link is None:
                continue
            faction_name = faction_link.get_text(strip=True)
            if faction_name:
                records.append(AvailabilityRecord(era_name, faction_name))

    if records:
        return DetailExtraction(records, STATUS_OK)
    if soup.find("h2") is not None:
        log.warning("Parsed detail page but found zero availability records")
        return DetailExtraction(records, STATUS_EMPTY)
    return DetailExtraction(records, STATUS_UNRECOGNIZED)
