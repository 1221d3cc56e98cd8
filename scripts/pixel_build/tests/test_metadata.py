"""
Tests for sheet descriptor and reverse index generation.
"""

import json
import tempfile
import unittest
from pathlib import Path

from ..processing.atlas import FrameRect, Sheet, SpriteRecord
from ..processing.metadata import MetadataGenerationError, MetadataGenerator


class TestMetadataGenerator(unittest.TestCase):
    """Test cases for MetadataGenerator class."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.generator = MetadataGenerator()

        self.sheet = Sheet("units", width=32, height=24)
        self.sheet.add_sprite("hero", SpriteRecord(16, 16, [
            FrameRect(top=0, left=0, bottom=16, right=16),
            FrameRect(top=0, left=16, bottom=16, right=32),
        ]))
        self.sheet.add_sprite("tree", SpriteRecord(8, 8, [FrameRect(top=16, left=0, bottom=24, right=8)]))
        self.urls = {"diffuse": "/sprites/units-diffuse.png?v=abc"}

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_build_descriptor(self):
        descriptor = self.generator.build_descriptor(self.sheet, self.urls)

        self.assertEqual(descriptor["name"], "units")
        self.assertEqual(descriptor["urls"], self.urls)
        self.assertEqual(descriptor["indexes"], ["", "hero", "tree"])
        self.assertEqual(descriptor["sprites"]["hero"]["index"], 1)
        self.assertEqual(descriptor["sprites"]["tree"]["frames"], [
            {"top": 8, "left": 0, "bottom": 0, "right": 8}
        ])

    def test_render_descriptor_module(self):
        descriptor = self.generator.build_descriptor(self.sheet, self.urls)
        content = self.generator.render_descriptor(descriptor)

        self.assertTrue(content.startswith("// Generated from sprites/units"))
        self.assertIn("const Sheet = {", content)
        self.assertTrue(content.rstrip().endswith("export default Sheet;"))

        body = content.split("const Sheet = ", 1)[1].rsplit(";\nexport default", 1)[0]
        self.assertEqual(json.loads(body), descriptor)

    def test_reverse_index(self):
        content = self.generator.render_reverse_index(self.sheet)
        self.assertEqual(json.loads(content), {"hero": 1, "tree": 2})

    def test_write_sheet_metadata(self):
        output_dir = self.root / "client" / "sprites"
        descriptor = self.generator.write_sheet_metadata(self.sheet, self.urls, output_dir)

        self.assertTrue((output_dir / "units.ts").exists())
        self.assertEqual(json.loads((output_dir / "units.json").read_text()), {"hero": 1, "tree": 2})
        self.assertEqual(descriptor["name"], "units")

    def test_missing_template(self):
        generator = MetadataGenerator(self.root / "no-templates")
        with self.assertRaises(MetadataGenerationError):
            generator.render_descriptor({"name": "units"})


if __name__ == '__main__':
    unittest.main()
