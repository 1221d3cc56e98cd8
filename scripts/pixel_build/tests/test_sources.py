"""
Tests for sprite source resolution and loading.
"""

import tempfile
import unittest
from pathlib import Path

from ..processing.sources import (
    InvalidDimensionsError,
    LayeredDocument,
    SourceKind,
    SpriteSourceError,
    StaticStrip,
    UnknownSpriteFormatError,
    is_sprite_source,
    load_source,
    parse_strip_name,
    source_kind,
)
from .ase_fixtures import write_layered_sprite, write_strip


class TestSourceKind(unittest.TestCase):
    """Test cases for extension based dispatch."""

    def test_recognized_extensions(self):
        self.assertEqual(source_kind("hero-16x32.png"), SourceKind.STATIC_STRIP)
        self.assertEqual(source_kind("hero.ase"), SourceKind.LAYERED_DOCUMENT)
        self.assertEqual(source_kind("hero.ASEPRITE"), SourceKind.LAYERED_DOCUMENT)

    def test_editor_temp_files_are_ignored(self):
        for name in ("hero.png~", ".hero.ase.swp", "notes.txt", "hero.psd"):
            self.assertFalse(is_sprite_source(name), name)


class TestParseStripName(unittest.TestCase):

    def test_valid_name(self):
        self.assertEqual(parse_strip_name("hero-16x32.png"), ("hero", 16, 32))
        self.assertEqual(parse_strip_name("tree_big-64x64.png"), ("tree_big", 64, 64))

    def test_missing_size(self):
        with self.assertRaises(UnknownSpriteFormatError):
            parse_strip_name("hero.png")

    def test_invalid_identifier(self):
        with self.assertRaises(UnknownSpriteFormatError):
            parse_strip_name("1hero-16x16.png")

    def test_zero_size(self):
        with self.assertRaises(InvalidDimensionsError):
            parse_strip_name("hero-0x16.png")


class TestLoadSource(unittest.TestCase):
    """Test cases for load_source."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_static_strip(self):
        path = write_strip(self.root / "hero-16x32.png", 64, 32)
        source = load_source(path)

        self.assertIsInstance(source, StaticStrip)
        self.assertEqual(source.name, "hero")
        self.assertEqual((source.frame_width, source.frame_height), (16, 32))
        self.assertEqual(source.frame_count, 4)
        self.assertEqual(source.image.mode, "RGBA")

    def test_layered_document(self):
        path = write_layered_sprite(self.root / "knight.aseprite")
        source = load_source(path)

        self.assertIsInstance(source, LayeredDocument)
        self.assertEqual((source.width, source.height), (8, 8))

    def test_corrupt_png(self):
        path = self.root / "hero-16x16.png"
        path.write_bytes(b"not a png")
        with self.assertRaises(SpriteSourceError) as context:
            load_source(path)
        self.assertEqual(context.exception.source, "hero-16x16.png")

    def test_corrupt_document(self):
        path = self.root / "hero.ase"
        path.write_bytes(b"\0" * 200)
        with self.assertRaises(SpriteSourceError):
            load_source(path)

    def test_unknown_extension(self):
        path = self.root / "hero.bmp"
        path.write_bytes(b"")
        with self.assertRaises(UnknownSpriteFormatError):
            load_source(path)


if __name__ == '__main__':
    unittest.main()
