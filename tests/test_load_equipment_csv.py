import shutil
import tempfile
import unittest
from pathlib import Path

from mtf_ingest import get_engine_and_session, initialize_db, Equipment
from load_equipment_csv import load_equipment_stats, parse_stats_row, _parse_int

CSV_TEXT = """\
slug,tonnage,crits,damage,heat,range_min,range_short,range_medium,range_long,bv
medium-laser,1,1,5,3,0,3,6,9,46
clan-er-large-laser,4,1,10,12,0,8,15,25,248
gauss-rifle,15,7,15,1,2,7,15,22,320
"""


class EquipmentStatsTests(unittest.TestCase):
    def setUp(self):
        engine, Session = get_engine_and_session(database_url="sqlite://")
        initialize_db(engine)
        self.session = Session()
        self.session.add_all([
            Equipment(slug="medium-laser", name="Medium Laser", category="energy_weapon"),
            Equipment(slug="clerlargelaser", name="CLERLargeLaser", category="energy_weapon", heat=99),
        ])
        self.session.commit()
        self.tmp = Path(tempfile.mkdtemp())
        self.csv_path = self.tmp / "equipment_stats.csv"
        self.csv_path.write_text(CSV_TEXT, encoding="utf-8")

    def tearDown(self):
        self.session.close()
        shutil.rmtree(self.tmp)

    def eq(self, slug):
        return self.session.query(Equipment).filter(Equipment.slug == slug).one()

    def test_fill_nulls_with_alias_lookup(self):
        counts = load_equipment_stats(self.session, self.csv_path)
        self.assertEqual(counts, {"updated": 2, "alias_hits": 1, "not_found": 1, "unchanged": 0})

        ml = self.eq("medium-laser")
        self.assertEqual((ml.tonnage, ml.crits, ml.damage, ml.heat, ml.range_long, ml.bv), (1.0, 1, "5", 3, 9, 46))
        self.assertEqual(ml.stats_source, "seed")
        self.assertIsNotNone(ml.stats_updated_at)

        erll = self.eq("clerlargelaser")
        # existing values are kept without --force
        self.assertEqual(erll.heat, 99)
        self.assertEqual(erll.bv, 248)

    def test_second_run_unchanged(self):
        load_equipment_stats(self.session, self.csv_path)
        counts = load_equipment_stats(self.session, self.csv_path)
        self.assertEqual(counts["updated"], 0)
        self.assertEqual(counts["unchanged"], 2)

    def test_force_overwrites(self):
        counts = load_equipment_stats(self.session, self.csv_path, force=True)
        self.assertEqual(counts["updated"], 2)
        self.assertEqual(self.eq("clerlargelaser").heat, 12)


class ParseTests(unittest.TestCase):
    def test_parse_row(self):
        stats = parse_stats_row({"slug": "x", "tonnage": "0.5", "crits": "", "damage": "2/Msl", "bv": "1,200"})
        self.assertEqual(stats["tonnage"], 0.5)
        self.assertIsNone(stats["crits"])
        self.assertEqual(stats["damage"], "2/Msl")
        self.assertEqual(stats["bv"], 1200)
        self.assertIsNone(stats["heat"])

    def test_parse_int(self):
        self.assertIsNone(_parse_int(""))
        self.assertIsNone(_parse_int("n/a"))
        self.assertEqual(_parse_int("-1"), -1)


if __name__ == '__main__':
    unittest.main()
