"""
MUL display names -> local era/faction slugs.
"""

# MUL era heading (year range already stripped) -> eras.slug
ERA_MAPPINGS = {
    "Age of War": "age-of-war",
    "Star League": "star-league",
    "Early Succession War": "early-succession-wars",
    "Early Succession Wars": "early-succession-wars",
    "Late Succession War - LosTech": "late-succession-wars",
    "Late Succession War - Renaissance": "renaissance",
    "Clan Invasion": "clan-invasion",
    "Civil War": "civil-war",
    "Jihad": "jihad",
    "Dark Age": "dark-age",
    "Early Republic": "dark-age",
    "Late Republic": "dark-age",
    "ilClan": "ilclan",
}

# MUL faction name -> factions.slug; several successor states share a slug
FACTION_MAPPINGS = {
    # Great Houses
    "Lyran Commonwealth": "steiner",
    "Lyran Alliance": "steiner",
    "Federated Suns": "davion",
    "Federated Commonwealth": "davion",
    "Draconis Combine": "kurita",
    "Free Worlds League": "marik",
    "Capellan Confederation": "liao",
    # Star League and successors
    "Star League Regular": "star-league",
    "Star League Royal": "star-league",
    "Star League": "star-league",
    "ComStar": "comstar",
    "Word of Blake": "word-of-blake",
    "Republic of the Sphere": "republic",
    # Clans
    "Clan Wolf": "clan-wolf",
    "Clan Wolf (in Exile)": "clan-wolf",
    "Clan Jade Falcon": "clan-jade-falcon",
    "Clan Ghost Bear": "clan-ghost-bear",
    "Rasalhague Dominion": "clan-ghost-bear",
    "Clan Smoke Jaguar": "clan-smoke-jaguar",
    "Clan Nova Cat": "clan-nova-cat",
    "Clan Steel Viper": "clan-steel-viper",
    "Clan Diamond Shark": "clan-diamond-shark",
    "Clan Sea Fox": "clan-diamond-shark",
    "Clan Goliath Scorpion": "clan-goliath-scorpion",
    "Clan Ice Hellion": "clan-ice-hellion",
    "Clan Star Adder": "clan-star-adder",
    "Clan Hell's Horses": "clan-hell-horses",
    "Clan Blood Spirit": "clan-blood-spirit",
    "Clan Coyote": "clan-coyote",
    "Clan Fire Mandrill": "clan-fire-mandrill",
    "Clan Mongoose": "clan-mongoose",
    "Clan Widowmaker": "clan-widowmaker",
    "Clan Wolverine": "clan-wolverine",
    # Periphery
    "Taurian Concordat": "taurian-concordat",
    "Magistracy of Canopus": "magistracy-canopus",
    "Outworlds Alliance": "outworlds-alliance",
    "Marian Hegemony": "marian-hegemony",
    # General lists
    "Inner Sphere General": "general",
    "Clan General": "general",
    "Mercenary": "mercenary",
}

PERIPHERY_MARKERS = ("Periphery", "Concordat", "Canopus", "Alliance", "Hegemony", "Magistracy")


def infer_faction_type(name: str) -> str:
    """Best guess at faction_type for a faction we have to create on the fly."""
    if name.startswith("Clan "):
        return "clan"
    if any(marker in name for marker in PERIPHERY_MARKERS):
        return "periphery"
    if "Mercenary" in name or "mercenary" in name:
        return "mercenary"
    return "other"
