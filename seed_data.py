"""
seed_data.py

Standard eras and factions, seeded before unit import so availability rows
have something to point at. Re-running only inserts missing slugs.
"""

from typing import Dict, List

from mtf_ingest import Era, Faction, DatasetMetadata

ERAS: List[Dict] = [
    {"slug": "age-of-war", "name": "Age of War", "start_year": 2398, "end_year": 2570,
     "description": "The period of interstellar warfare that preceded the Star League."},
    {"slug": "star-league", "name": "Star League", "start_year": 2571, "end_year": 2780,
     "description": "The golden age of humanity spanning the Star League era."},
    {"slug": "early-succession-wars", "name": "Early Succession Wars", "start_year": 2781, "end_year": 2900,
     "description": "The First and Second Succession Wars; rapid technological decline."},
    {"slug": "late-succession-wars", "name": "Late Succession Wars (LosTech)", "start_year": 2901, "end_year": 3019,
     "description": "Era of LosTech; Third and early Fourth Succession Wars."},
    {"slug": "renaissance", "name": "Renaissance", "start_year": 3020, "end_year": 3049,
     "description": "Technological renaissance; Helm Memory Core; Fourth Succession War."},
    {"slug": "clan-invasion", "name": "Clan Invasion", "start_year": 3050, "end_year": 3061,
     "description": "Clan forces attack the Inner Sphere; Operation Revival."},
    {"slug": "civil-war", "name": "Civil War", "start_year": 3062, "end_year": 3067,
     "description": "FedCom Civil War; growing tensions across the Inner Sphere."},
    {"slug": "jihad", "name": "Jihad", "start_year": 3068, "end_year": 3080,
     "description": "Word of Blake Jihad; widespread destruction across known space."},
    {"slug": "dark-age", "name": "Dark Age", "start_year": 3081, "end_year": 3150,
     "description": "The Republic era and the collapse of HPG communications."},
    {"slug": "ilclan", "name": "ilClan", "start_year": 3151, "end_year": None,
     "description": "Recognition of a new ilClan; reshaping of the Inner Sphere."},
]

# (slug, name, short_name, faction_type, is_clan)
FACTIONS = [
    # Inner Sphere Great Houses
    ("steiner", "Lyran Commonwealth", "LC", "great_house", False),
    ("davion", "Federated Suns", "FS", "great_house", False),
    ("kurita", "Draconis Combine", "DC", "great_house", False),
    ("marik", "Free Worlds League", "FWL", "great_house", False),
    ("liao", "Capellan Confederation", "CC", "great_house", False),
    # Star League / Successors
    ("star-league", "Star League", "SL", "star_league", False),
    ("comstar", "ComStar", "CS", "independent", False),
    ("word-of-blake", "Word of Blake", "WoB", "independent", False),
    ("republic", "Republic of the Sphere", "RS", "inner_sphere", False),
    # Clans
    ("clan-wolf", "Clan Wolf", "CW", "clan", True),
    ("clan-jade-falcon", "Clan Jade Falcon", "CJF", "clan", True),
    ("clan-ghost-bear", "Clan Ghost Bear", "CGB", "clan", True),
    ("clan-smoke-jaguar", "Clan Smoke Jaguar", "CSJ", "clan", True),
    ("clan-nova-cat", "Clan Nova Cat", "CNC", "clan", True),
    ("clan-steel-viper", "Clan Steel Viper", "CSV", "clan", True),
    ("clan-diamond-shark", "Clan Diamond Shark", "CDS", "clan", True),
    ("clan-goliath-scorpion", "Clan Goliath Scorpion", "CGS", "clan", True),
    ("clan-ice-hellion", "Clan Ice Hellion", "CIH", "clan", True),
    ("clan-star-adder", "Clan Star Adder", "CSA", "clan", True),
    ("clan-hell-horses", "Clan Hell's Horses", "CHH", "clan", True),
    ("clan-blood-spirit", "Clan Blood Spirit", "CBS", "clan", True),
    ("clan-coyote", "Clan Coyote", "CCY", "clan", True),
    ("clan-fire-mandrill", "Clan Fire Mandrill", "CFM", "clan", True),
    ("clan-mongoose", "Clan Mongoose", "CMG", "clan", True),
    ("clan-widowmaker", "Clan Widowmaker", "CWM", "clan", True),
    ("clan-wolverine", "Clan Wolverine", "CWOV", "clan", True),
    # Periphery
    ("periphery-general", "Periphery (General)", "PER", "periphery", False),
    ("taurian-concordat", "Taurian Concordat", "TC", "periphery", False),
    ("magistracy-canopus", "Magistracy of Canopus", "MOC", "periphery", False),
    ("outworlds-alliance", "Outworlds Alliance", "OA", "periphery", False),
    ("marian-hegemony", "Marian Hegemony", "MH", "periphery", False),
    # Mercenaries / General
    ("mercenary", "Mercenary", "MER", "mercenary", False),
    ("general", "General (All)", "GEN", "general", False),
]


def seed_eras(session) -> int:
    existing = {slug for (slug,) in session.query(Era.slug)}
    inserted = 0
    for era in ERAS:
        if era["slug"] in existing:
            continue
        session.add(Era(**era))
        inserted += 1
    session.flush()
    return inserted


def seed_factions(session) -> int:
    existing = {slug for (slug,) in session.query(Faction.slug)}
    inserted = 0
    for slug, name, short_name, faction_type, is_clan in FACTIONS:
        if slug in existing:
            continue
        session.add(Faction(slug=slug, name=name, short_name=short_name, faction_type=faction_type, is_clan=is_clan))
        inserted += 1
    session.flush()
    return inserted


def seed_metadata(session, version: str):
    """Replace the dataset_metadata row for this source release."""
    session.query(DatasetMetadata).filter(DatasetMetadata.version == version).delete(synchronize_session=False)
    session.add(DatasetMetadata(version=version, schema_version=1, description=f"Imported from MegaMek {version}"))
    session.flush()
