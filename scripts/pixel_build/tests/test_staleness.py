"""
Tests for full-build staleness and watch event classification.
"""

import os
import shutil
import tempfile
import time
from pathlib import Path

from ..context import WatchEvent
from ..processing.staleness import REBUILD, REMOVE, SheetChange, StalenessChecker
from .ase_fixtures import write_strip


class TestStalenessChecker:
    """Test StalenessChecker in both modes."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir).resolve()
        self.sprites = self.root / "assets" / "sprites"
        self.images = self.root / "www" / "sprites"
        self.modules = self.root / "client" / "sprites"
        self.checker = StalenessChecker(self.sprites, self.images, self.modules)

        write_strip(self.sprites / "units" / "hero-16x16.png", 32, 16)
        write_strip(self.sprites / "props" / "tree-8x8.png", 8, 8)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _touch_artifacts(self, sheet: str, mtime: float) -> None:
        for path in self.checker.artifact_paths(sheet):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"x")
            os.utime(path, (mtime, mtime))

    def _set_sources_mtime(self, sheet: str, mtime: float) -> None:
        sheet_dir = self.sprites / sheet
        for path in sheet_dir.iterdir():
            os.utime(path, (mtime, mtime))
        os.utime(sheet_dir, (mtime, mtime))

    def test_artifact_paths(self):
        names = [p.name for p in self.checker.artifact_paths("units")]
        assert names == [
            "units-diffuse.png", "units-emissive.png", "units-normal.png", "units-specular.png",
            "units.ts", "units.json",
        ]
        assert self.checker.artifact_paths("units")[0].parent == self.images
        assert self.checker.artifact_paths("units")[-1].parent == self.modules

    def test_missing_artifacts_are_stale(self):
        changes = self.checker.stale_sheets()
        assert changes == [SheetChange("props", REBUILD), SheetChange("units", REBUILD)]

    def test_up_to_date_sheet(self):
        now = time.time()
        for sheet in ("units", "props"):
            self._set_sources_mtime(sheet, now - 100)
            self._touch_artifacts(sheet, now)

        assert self.checker.stale_sheets() == []
        assert len(self.checker.stale_sheets(clean=True)) == 2

    def test_modified_member_makes_sheet_stale(self):
        now = time.time()
        for sheet in ("units", "props"):
            self._set_sources_mtime(sheet, now - 100)
            self._touch_artifacts(sheet, now - 50)

        os.utime(self.sprites / "units" / "hero-16x16.png", (now, now))
        assert self.checker.stale_sheets() == [SheetChange("units", REBUILD)]

    def test_one_missing_artifact(self):
        now = time.time()
        self._set_sources_mtime("units", now - 100)
        self._touch_artifacts("units", now)
        (self.modules / "units.json").unlink()

        assert self.checker.is_stale("units")

    def test_files_at_root_are_not_sheets(self):
        (self.sprites / "README.md").write_text("notes")
        assert "README.md" not in self.checker.sheet_names()

    def test_source_files_skip_unrecognized(self):
        (self.sprites / "units" / "hero-16x16.png~").write_bytes(b"")
        (self.sprites / "units" / "b-8x8.png").write_bytes(b"")
        assert [p.name for p in self.checker.source_files("units")] == ["b-8x8.png", "hero-16x16.png"]

    def test_classify_sheet_directory(self):
        sheet_dir = str(self.sprites / "units")
        assert self.checker.classify(WatchEvent("create", sheet_dir)) == SheetChange("units", REBUILD)
        assert self.checker.classify(WatchEvent("update", sheet_dir)) == SheetChange("units", REBUILD)
        assert self.checker.classify(WatchEvent("delete", sheet_dir)) == SheetChange("units", REMOVE)

    def test_classify_member(self):
        member = str(self.sprites / "units" / "hero-16x16.png")
        assert self.checker.classify(WatchEvent("update", member)) == SheetChange("units", REBUILD)
        assert self.checker.classify(WatchEvent("delete", member)) == SheetChange("units", REBUILD)

    def test_classify_ignores(self):
        assert self.checker.classify(WatchEvent("update", str(self.sprites / "units" / ".hero.png.swp"))) is None
        assert self.checker.classify(WatchEvent("update", str(self.root / "elsewhere" / "a-1x1.png"))) is None
        assert self.checker.classify(WatchEvent("update", str(self.sprites))) is None

    def test_coalesce_one_change_per_sheet(self):
        member = str(self.sprites / "units" / "hero-16x16.png")
        events = [WatchEvent("update", member)] * 3 + [WatchEvent("create", str(self.sprites / "props"))]
        assert self.checker.coalesce(events) == [SheetChange("units", REBUILD), SheetChange("props", REBUILD)]

    def test_coalesce_latest_action_wins(self):
        sheet_dir = str(self.sprites / "units")
        member = str(self.sprites / "units" / "hero-16x16.png")

        removed_last = [WatchEvent("update", member), WatchEvent("delete", sheet_dir)]
        assert self.checker.coalesce(removed_last) == [SheetChange("units", REMOVE)]

        rebuilt_last = [WatchEvent("delete", sheet_dir), WatchEvent("create", sheet_dir)]
        assert self.checker.coalesce(rebuilt_last) == [SheetChange("units", REBUILD)]

    def test_vanished_sheet_is_removed(self):
        sheet_dir = self.sprites / "units"
        shutil.rmtree(sheet_dir)

        assert self.checker.classify(WatchEvent("delete", str(sheet_dir / "hero-16x16.png"))) == SheetChange("units", REMOVE)
        assert self.checker.classify(WatchEvent("update", str(sheet_dir))) == SheetChange("units", REMOVE)

    def test_coalesce_renamed_sheet(self):
        old_dir = self.sprites / "units"
        new_dir = self.sprites / "army"
        old_dir.rename(new_dir)

        events = [
            WatchEvent("delete", str(old_dir)),
            WatchEvent("create", str(new_dir)),
            WatchEvent("delete", str(old_dir / "hero-16x16.png")),
            WatchEvent("create", str(new_dir / "hero-16x16.png")),
        ]
        assert self.checker.coalesce(events) == [SheetChange("units", REMOVE), SheetChange("army", REBUILD)]
