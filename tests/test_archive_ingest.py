import shutil
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest.mock import patch

from mtf_ingest import get_engine_and_session, initialize_db, Unit, Era, Faction, LoaderLog, DatasetMetadata
from archive_ingest import (
    ImportAbortedError, classify, parse_entry, iter_entries, import_archive, run_import,
)

ATLAS_MTF = """\
chassis:Atlas
model:AS7-D
mass:100
Config:Biped
engine:300 Fusion Engine

CT armor:47

Weapons:1
1 Medium Laser, Center Torso

Center Torso:
Fusion Engine
Medium Laser
"""

DEMOLISHER_BLK = """\
<Name>
Demolisher Heavy Tank
</Name>
<tonnage>
80
</tonnage>
<Front Equipment>
Autocannon/20
</Front Equipment>
"""


class ClassifyTests(unittest.TestCase):
    def test_formats(self):
        self.assertEqual(classify("data/mekfiles/Atlas AS7-D.mtf"), ("mtf", "mek"))
        self.assertEqual(classify("data/vehicles/Demolisher.BLK"), ("blk", "vehicle"))
        self.assertEqual(classify("data/aero/Stuka.blk"), ("blk", "fighter"))
        self.assertEqual(classify("data/protomeks/Minotaur.blk"), ("blk", "other"))
        self.assertIsNone(classify("data/readme.txt"))
        self.assertIsNone(classify("data/mekfiles/"))

    def test_parse_entry_skips(self):
        self.assertEqual(parse_entry("readme.txt", b"hello")[0], "skipped")
        self.assertEqual(parse_entry("bad.mtf", b"\xff\xfe\x00chassis")[0], "skipped")
        self.assertEqual(parse_entry("empty.mtf", b"model:X\n")[0], "skipped")
        outcome, unit = parse_entry("Atlas.mtf", ATLAS_MTF.encode("utf-8"))
        self.assertEqual(outcome, "parsed")
        self.assertEqual(unit.full_name, "Atlas AS7-D")


class ArchiveImportTests(unittest.TestCase):
    def setUp(self):
        engine, Session = get_engine_and_session(database_url="sqlite://")
        initialize_db(engine)
        self.session = Session()
        self.tmp = Path(tempfile.mkdtemp())
        self.zip_path = self.tmp / "unit_files.zip"
        with zipfile.ZipFile(self.zip_path, "w") as zf:
            zf.writestr("meks/Atlas AS7-D.mtf", ATLAS_MTF)
            zf.writestr("docs/readme.txt", "not a unit")

    def tearDown(self):
        self.session.close()
        shutil.rmtree(self.tmp)

    def test_zip_import_counts(self):
        stats = import_archive(self.session, self.zip_path, progress=False)
        self.assertEqual(stats, {"total_entries": 2, "parsed": 1, "imported": 1, "errors": 0, "skipped": 1})
        self.assertEqual(self.session.query(Unit).count(), 1)

    def test_undecodable_unit_file_skipped(self):
        broken = self.tmp / "with_garbage.zip"
        with zipfile.ZipFile(broken, "w") as zf:
            zf.writestr("meks/Atlas AS7-D.mtf", ATLAS_MTF)
            zf.writestr("meks/Broken.mtf", b"\xff\xfe\x00chassis:\x80\x81")
        stats = import_archive(self.session, broken, progress=False)
        self.assertEqual(stats, {"total_entries": 2, "parsed": 1, "imported": 1, "errors": 0, "skipped": 1})
        self.assertEqual(self.session.query(LoaderLog).filter(LoaderLog.status == "failed").count(), 0)

    def test_reimport_leaves_row_counts(self):
        import_archive(self.session, self.zip_path, progress=False)
        first = self.session.query(Unit).count()
        stats = import_archive(self.session, self.zip_path, progress=False)
        self.assertEqual(stats["imported"], 1)
        self.assertEqual(self.session.query(Unit).count(), first)

    def test_directory_source(self):
        src = self.tmp / "unpacked"
        (src / "vehicles").mkdir(parents=True)
        (src / "vehicles" / "Demolisher.blk").write_text(DEMOLISHER_BLK, encoding="utf-8")
        self.assertEqual([name for name, _ in iter_entries(src)], ["vehicles/Demolisher.blk"])

        stats = import_archive(self.session, src, progress=False)
        self.assertEqual(stats["imported"], 1)
        unit = self.session.query(Unit).one()
        self.assertEqual(unit.chassis.unit_type, "vehicle")
        self.assertEqual(unit.chassis.slug, "demolisher-heavy-tank-vehicle")

    def test_not_an_archive(self):
        bogus = self.tmp / "units.tar"
        bogus.write_text("nope", encoding="utf-8")
        with self.assertRaises(ValueError):
            import_archive(self.session, bogus, progress=False)

    def test_failed_unit_is_logged_and_counted(self):
        with patch("archive_ingest.import_unit", side_effect=RuntimeError("boom")):
            stats = import_archive(self.session, self.zip_path, progress=False)
        self.assertEqual(stats["errors"], 1)
        self.assertEqual(stats["imported"], 0)
        failed = self.session.query(LoaderLog).filter(LoaderLog.status == "failed").one()
        self.assertEqual(failed.file_name, "meks/Atlas AS7-D.mtf")
        self.assertIn("boom", failed.message)

    def test_error_ceiling_aborts(self):
        with patch("archive_ingest.import_unit", side_effect=RuntimeError("boom")):
            with self.assertRaises(ImportAbortedError) as ctx:
                import_archive(self.session, self.zip_path, max_errors=1, progress=False)
        self.assertIn("ceiling", str(ctx.exception))

    def test_run_import_seeds_and_refreshes(self):
        stats = run_import(self.session, self.zip_path, version="0.50.02", progress=False)
        self.assertEqual(self.session.query(Era).count(), 10)
        self.assertEqual(self.session.query(Faction).count(), 33)
        self.assertEqual(self.session.query(DatasetMetadata).one().version, "0.50.02")
        self.assertEqual(stats["observed_locations_updated"], 1)
        self.assertEqual((stats["equipment_cache_hits"], stats["equipment_cache_misses"]), (0, 1))


if __name__ == '__main__':
    unittest.main()
