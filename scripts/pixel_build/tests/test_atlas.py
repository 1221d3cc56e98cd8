"""
Tests for sprite sheet composition and rasterization.
"""

import tempfile
import unittest
from pathlib import Path

import numpy as np

from ..processing.atlas import (
    CompositeQueue,
    DuplicateSpriteError,
    FrameRect,
    Sheet,
    SpriteRecord,
    compose_sheet,
    flip_frame,
    rasterize_sheet,
    strip_sprite,
)
from ..processing.normals import FLAT_NORMAL_RGBA
from ..processing.sources import InvalidDimensionsError, MissingDiffuseLayerError, load_source
from .ase_fixtures import solid_pixels, write_document, write_layered_sprite, write_strip


class TestStripSprite(unittest.TestCase):
    """Test cases for static strips."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_four_frames_left_to_right(self):
        strip = load_source(write_strip(self.root / "hero-16x32.png", 64, 32))
        queue = CompositeQueue()
        sprite = strip_sprite(strip, queue, top=0)

        self.assertEqual((sprite.width, sprite.height), (16, 32))
        self.assertEqual(sprite.frames, [
            FrameRect(top=0, left=0, bottom=32, right=16),
            FrameRect(top=0, left=16, bottom=32, right=32),
            FrameRect(top=0, left=32, bottom=32, right=48),
            FrameRect(top=0, left=48, bottom=32, right=64),
        ])
        self.assertEqual(len(queue.diffuse), 1)
        self.assertEqual(queue.normal, [])

    def test_width_not_multiple(self):
        strip = load_source(write_strip(self.root / "hero-16x32.png", 60, 32))
        with self.assertRaises(InvalidDimensionsError):
            strip_sprite(strip, CompositeQueue(), top=0)

    def test_height_mismatch(self):
        strip = load_source(write_strip(self.root / "hero-16x32.png", 64, 30))
        with self.assertRaises(InvalidDimensionsError):
            strip_sprite(strip, CompositeQueue(), top=0)


class TestComposeSheet(unittest.TestCase):
    """Test cases for compose_sheet and rasterize_sheet."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_vertical_stacking_and_indexes(self):
        sources = [
            load_source(write_strip(self.root / "hero-16x32.png", 64, 32)),
            load_source(write_strip(self.root / "tree-8x8.png", 24, 8)),
        ]
        sheet, _ = compose_sheet("units", sources)

        self.assertEqual((sheet.width, sheet.height), (64, 40))
        self.assertEqual(sheet.indexes(), ["", "hero", "tree"])
        self.assertEqual(sheet.reverse_index(), {"hero": 1, "tree": 2})
        self.assertEqual(sheet.sprites["tree"].frames[0], FrameRect(top=32, left=0, bottom=40, right=8))

    def test_lookup_flips_y(self):
        sheet, _ = compose_sheet("units", [load_source(write_strip(self.root / "hero-16x32.png", 32, 32)),
                                           load_source(write_strip(self.root / "tree-8x8.png", 8, 8))])
        lookup = sheet.lookup()

        self.assertEqual(lookup["hero"]["frames"][0], {"top": 40, "left": 0, "bottom": 8, "right": 16})
        self.assertEqual(lookup["tree"]["frames"][0], {"top": 8, "left": 0, "bottom": 0, "right": 8})
        self.assertEqual(lookup["tree"]["index"], 2)

    def test_layered_document_one_sprite_per_tag(self):
        path = write_layered_sprite(self.root / "knight.aseprite", size=8,
                                    tags=(("idle", 0, 1), ("attack", 2, 4)))
        sheet, queue = compose_sheet("units", [load_source(path)])

        self.assertEqual(list(sheet.sprites), ["idle", "attack"])
        self.assertEqual(len(sheet.sprites["idle"].frames), 2)
        self.assertEqual(len(sheet.sprites["attack"].frames), 3)
        self.assertEqual((sheet.width, sheet.height), (24, 16))
        self.assertEqual(sheet.sprites["attack"].frames[2], FrameRect(top=8, left=16, bottom=16, right=24))
        self.assertEqual(len(queue.diffuse), 5)
        self.assertEqual(len(queue.normal), 5)
        self.assertEqual(len(queue.specular), 5)
        self.assertEqual(queue.emissive, [])

    def test_placeholders_for_missing_layers(self):
        diffuse = solid_pixels(4, 4, (9, 9, 9, 255))
        path = write_document(self.root / "rock.ase", 4, 4, ["diffuse"], [{"diffuse": diffuse}], [("rock", 0, 0)])
        sheet, queue = compose_sheet("props", [load_source(path)])
        images = rasterize_sheet(sheet, queue)

        self.assertEqual(images["normal"].getpixel((1, 1)), FLAT_NORMAL_RGBA)
        self.assertEqual(images["specular"].mode, "L")
        self.assertEqual(images["specular"].getpixel((1, 1)), 0)
        self.assertEqual(images["emissive"].getpixel((1, 1)), (0, 0, 0, 0))
        self.assertEqual(images["diffuse"].getpixel((1, 1)), (9, 9, 9, 255))

    def test_missing_diffuse(self):
        path = write_layered_sprite(self.root / "ghost.ase", with_diffuse=False)
        with self.assertRaises(MissingDiffuseLayerError) as context:
            compose_sheet("units", [load_source(path)])
        self.assertEqual(context.exception.source, "ghost.ase")

    def test_duplicate_sprite_name(self):
        sources = [
            load_source(write_strip(self.root / "a" / "hero-8x8.png", 8, 8)),
            load_source(write_strip(self.root / "b" / "hero-8x8.png", 8, 8)),
        ]
        with self.assertRaises(DuplicateSpriteError):
            compose_sheet("units", sources)

    def test_rasterize_sizes_and_backgrounds(self):
        sheet, queue = compose_sheet("units", [
            load_source(write_strip(self.root / "hero-16x32.png", 64, 32)),
            load_source(write_strip(self.root / "tree-8x8.png", 8, 8)),
        ])
        images = rasterize_sheet(sheet, queue, max_workers=2)

        self.assertEqual(set(images), {"diffuse", "emissive", "normal", "specular"})
        for image in images.values():
            self.assertEqual(image.size, (64, 40))
        # Right of the short tree strip nothing is drawn
        self.assertEqual(images["diffuse"].getpixel((40, 36)), (0, 0, 0, 0))
        self.assertEqual(images["normal"].getpixel((40, 36)), FLAT_NORMAL_RGBA)
        self.assertEqual(images["specular"].getpixel((40, 36)), 0)

    def test_layered_normals_and_specular(self):
        path = write_layered_sprite(self.root / "knight.ase", size=8, tags=(("idle", 0, 0),))
        sheet, queue = compose_sheet("units", [load_source(path)])
        images = rasterize_sheet(sheet, queue)

        self.assertEqual(images["normal"].getpixel((0, 0)), FLAT_NORMAL_RGBA)
        self.assertNotEqual(images["normal"].getpixel((4, 4)), FLAT_NORMAL_RGBA)
        self.assertEqual(images["specular"].getpixel((2, 2)), 255)


class TestSheet(unittest.TestCase):

    def test_flip_frame(self):
        rect = FrameRect(top=10, left=0, bottom=20, right=5)
        self.assertEqual(flip_frame(rect, 100), FrameRect(top=90, left=0, bottom=80, right=5))

    def test_indexes_start_at_one(self):
        sheet = Sheet("units")
        sheet.add_sprite("a", SpriteRecord(1, 1))
        sheet.add_sprite("b", SpriteRecord(1, 1))
        self.assertEqual(sheet.sprites["a"].index, 1)
        self.assertEqual(sheet.sprites["b"].index, 2)
        self.assertEqual(sheet.indexes()[0], "")


if __name__ == '__main__':
    unittest.main()
