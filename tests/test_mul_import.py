import csv
import json
import shutil
import tempfile
import unittest
from pathlib import Path

from mtf_ingest import (
    get_engine_and_session, initialize_db, ParsedUnit, Unit, Faction, Era, UnitAvailability,
)
from mul_quicklist import RegistryUnit
from mul_detail import AvailabilityRecord
from mul_import import (
    load_db_units, load_faction_map, update_mul_fields, resolve_availability, replace_availability, run_import,
)
from seed_data import seed_eras, seed_factions
from unit_writer import EquipmentCache, import_unit

QUICKLIST = {"Units": [
    {"Id": 140, "Name": "Atlas AS7-D", "Tonnage": 100, "BattleValue": 1897, "Cost": 9626000,
     "DateIntroduced": "2755", "Role": {"Id": 5, "Name": "Juggernaut"}},
    {"Id": 900, "Name": "Dasher (Fire Moth) A", "Tonnage": 20, "BattleValue": 0, "Cost": 0,
     "DateIntroduced": "3052", "Role": None},
    {"Id": 901, "Name": "Nonexistent NX-1", "Tonnage": 35},
]}


def panel(era, factions):
    rows = "".join(f'<tr><td><a href="#">{f}</a></td></tr>' for f in factions)
    return (
        '<div class="panel panel-default"><div class="panel-heading"><div class="media-body">'
        f'<a href="#">{era}</a></div></div><div class="panel-body"><table><tbody>{rows}</tbody></table></div></div>'
    )


ATLAS_DETAIL = "<html><body><h2>Atlas AS7-D</h2>" + "".join([
    panel("Star League (2571 - 2780)", ["Star League Regular", "ComStar", "ComStar"]),
    panel("Clan Invasion (3050 - 3061)", ["Lyran Alliance", "Nova Cat Remnants"]),
    panel("Succession Wars Lite (2781 - 2900)", ["ComStar"]),
]) + "</body></html>"


class MulImportTests(unittest.TestCase):
    def setUp(self):
        engine, Session = get_engine_and_session(database_url="sqlite://")
        initialize_db(engine)
        self.session = Session()
        seed_eras(self.session)
        seed_factions(self.session)
        cache = EquipmentCache()
        self.atlas_id = import_unit(self.session, ParsedUnit(chassis="Atlas", model="AS7-D", tonnage=100), cache)
        self.dasher_id = import_unit(self.session, ParsedUnit(chassis="Dasher", model="A", tonnage=20), cache)
        self.session.commit()

        self.data_dir = Path(tempfile.mkdtemp())
        (self.data_dir / "quicklist-18.json").write_text(json.dumps(QUICKLIST), encoding="utf-8")
        (self.data_dir / "details").mkdir()
        (self.data_dir / "details" / "140.html").write_text(ATLAS_DETAIL, encoding="utf-8")

    def tearDown(self):
        self.session.close()
        shutil.rmtree(self.data_dir)

    def availability(self, unit_id):
        rows = self.session.query(UnitAvailability).filter(UnitAvailability.unit_id == unit_id).all()
        out = set()
        for r in rows:
            out.add((self.session.get(Faction, r.faction_id).slug, self.session.get(Era, r.era_id).slug))
        return out

    def test_fields_merged_and_unmatched_reported(self):
        stats = run_import(self.session, self.data_dir, progress=False)
        self.assertEqual(stats["total_mul_units"], 3)
        self.assertEqual(stats["matched"], 2)
        self.assertEqual(stats["unmatched"], 1)
        self.assertEqual(stats["bv_changed"], 1)

        atlas = self.session.get(Unit, self.atlas_id)
        self.assertEqual((atlas.mul_id, atlas.bv, atlas.cost, atlas.intro_year, atlas.role),
                         (140, 1897, 9626000, 2755, "Juggernaut"))
        self.assertEqual(atlas.bv_source, "mul")
        self.assertEqual(atlas.intro_year_source, "mul")
        self.assertIsNotNone(atlas.last_mul_import_at)

        dasher = self.session.get(Unit, self.dasher_id)
        self.assertEqual(dasher.mul_id, 900)
        self.assertEqual(dasher.clan_name, "Fire Moth A")
        self.assertIsNone(dasher.bv)
        self.assertIsNone(dasher.bv_source)

        with open(self.data_dir / "unmatched_mul_units.csv", newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        self.assertEqual(rows[1], ["901", "Nonexistent NX-1", "nonexistent-nx-1", "35"])

    def test_zero_bv_never_downgrades(self):
        dasher = self.session.get(Unit, self.dasher_id)
        dasher.bv = 1000
        dasher.cost = 500000
        self.session.commit()

        changes = update_mul_fields(self.session, self.dasher_id, RegistryUnit.model_validate(QUICKLIST["Units"][1]))
        self.session.commit()
        self.assertFalse(changes.bv_changed)
        self.assertFalse(changes.cost_changed)
        self.assertTrue(changes.intro_year_changed)
        dasher = self.session.get(Unit, self.dasher_id)
        self.assertEqual((dasher.bv, dasher.cost, dasher.intro_year), (1000, 500000, 3052))

    def test_mul_id_held_by_another_unit(self):
        self.session.get(Unit, self.dasher_id).mul_id = 140
        self.session.commit()
        update_mul_fields(self.session, self.atlas_id, RegistryUnit.model_validate(QUICKLIST["Units"][0]))
        self.session.commit()
        self.assertIsNone(self.session.get(Unit, self.atlas_id).mul_id)
        self.assertEqual(self.session.get(Unit, self.atlas_id).bv, 1897)

    def test_availability_imported(self):
        stats = run_import(self.session, self.data_dir, progress=False)
        self.assertEqual(stats["availability_units"], 1)
        self.assertEqual(stats["availability_rows"], 3)
        self.assertEqual(stats["new_factions"], 0)
        self.assertEqual(self.availability(self.atlas_id), {
            ("star-league", "star-league"),
            ("comstar", "star-league"),
            ("steiner", "clan-invasion"),
        })

    def test_existing_availability_skipped_unless_forced(self):
        run_import(self.session, self.data_dir, progress=False)
        stats = run_import(self.session, self.data_dir, progress=False)
        self.assertEqual(stats["availability_skipped"], 1)
        self.assertEqual(stats["availability_units"], 0)

        stats = run_import(self.session, self.data_dir, force=True, progress=False)
        self.assertEqual(stats["availability_rows"], 3)
        self.assertEqual(len(self.availability(self.atlas_id)), 3)

    def test_corrupt_detail_page_counted_not_fatal(self):
        (self.data_dir / "details" / "140.html").write_bytes(b"<h2>Atlas</h2>\xe2\x80")
        (self.data_dir / "details" / "900.html").write_text(ATLAS_DETAIL, encoding="utf-8")
        stats = run_import(self.session, self.data_dir, progress=False)
        self.assertEqual(stats["availability_unrecognized"], 1)
        self.assertEqual(stats["availability_units"], 1)
        self.assertEqual(self.availability(self.atlas_id), set())
        self.assertEqual(len(self.availability(self.dasher_id)), 3)

    def test_non_detail_page_counted_unrecognized(self):
        (self.data_dir / "details" / "140.html").write_text("<html><body>Service Unavailable</body></html>",
                                                            encoding="utf-8")
        stats = run_import(self.session, self.data_dir, progress=False)
        self.assertEqual(stats["availability_unrecognized"], 1)
        self.assertEqual(stats["availability_units"], 0)

    def test_create_factions(self):
        stats = run_import(self.session, self.data_dir, create_factions=True, progress=False)
        self.assertEqual(stats["new_factions"], 1)
        self.assertEqual(stats["availability_rows"], 4)
        created = self.session.query(Faction).filter(Faction.slug == "nova-cat-remnants").one()
        self.assertEqual(created.faction_type, "other")
        self.assertFalse(created.is_clan)

    def test_skip_availability(self):
        stats = run_import(self.session, self.data_dir, skip_availability=True, progress=False)
        self.assertNotIn("availability_rows", stats)
        self.assertEqual(self.session.query(UnitAvailability).count(), 0)

    def test_override_file(self):
        overrides = self.data_dir / "overrides.json"
        overrides.write_text(json.dumps({"901": "dasher-a"}), encoding="utf-8")
        stats = run_import(self.session, self.data_dir, overrides_path=overrides, skip_availability=True,
                           progress=False)
        self.assertEqual(stats["unmatched"], 0)
        self.assertFalse((self.data_dir / "unmatched_mul_units.csv").exists())


class AvailabilityHelperTests(unittest.TestCase):
    def setUp(self):
        engine, Session = get_engine_and_session(database_url="sqlite://")
        initialize_db(engine)
        self.session = Session()
        seed_eras(self.session)
        seed_factions(self.session)
        self.unit_id = import_unit(self.session, ParsedUnit(chassis="Atlas", model="AS7-D", tonnage=100),
                                   EquipmentCache())
        self.session.commit()
        self.era_ids = {e.slug: e.id for e in self.session.query(Era)}

    def tearDown(self):
        self.session.close()

    def test_unmapped_era_skipped(self):
        faction_ids = load_faction_map(self.session)
        pairs, created = resolve_availability(
            self.session, [AvailabilityRecord("Far Future", "ComStar")], self.era_ids, faction_ids,
        )
        self.assertEqual((pairs, created), ([], 0))

    def test_mapped_alias_cached_by_name(self):
        faction_ids = load_faction_map(self.session)
        self.assertNotIn("Clan Sea Fox", faction_ids)
        pairs, _ = resolve_availability(
            self.session, [AvailabilityRecord("ilClan", "Clan Sea Fox")], self.era_ids, faction_ids,
        )
        self.assertEqual(pairs, [(faction_ids["clan-diamond-shark"], self.era_ids["ilclan"])])
        self.assertEqual(faction_ids["Clan Sea Fox"], faction_ids["clan-diamond-shark"])

    def test_replace_availability_dedups(self):
        steiner = load_faction_map(self.session)["steiner"]
        era = self.era_ids["civil-war"]
        self.assertEqual(replace_availability(self.session, self.unit_id, [(steiner, era), (steiner, era)]), 1)
        self.assertEqual(replace_availability(self.session, self.unit_id, [(steiner, era)]), 1)
        self.assertEqual(self.session.query(UnitAvailability).count(), 1)

    def test_load_db_units(self):
        by_slug, by_name = load_db_units(self.session)
        self.assertEqual(by_slug, {"atlas-as7-d": self.unit_id})
        self.assertEqual(by_name, {"atlas as7-d": ("atlas-as7-d", self.unit_id)})


if __name__ == '__main__':
    unittest.main()
