"""
Metadata generation for built sprite sheets.

Each sheet produces a descriptor module consumed by the game client
(atlas URLs, per-sprite lookup, index list) and a flat reverse index
(sprite name to numeric index) consumed by the map-tile compositor.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, TemplateError

from ..utils.image import ImageUtils
from .atlas import Sheet


DESCRIPTOR_TEMPLATE = "sheet.ts.j2"


def to_json(value: Any) -> str:
    return json.dumps(value, indent=2)


class MetadataGenerator:
    """Handles generation of sheet descriptors and reverse indexes."""

    def __init__(self, template_dir: Optional[Union[str, Path]] = None):
        """
        Initialize metadata generator.

        Args:
            template_dir: Directory containing Jinja2 templates
        """
        if template_dir is None:
            template_dir = Path(__file__).parent.parent / "templates"

        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False
        )
        self.env.filters['to_json'] = to_json

    def build_descriptor(self, sheet: Sheet, urls: Dict[str, str]) -> Dict[str, Any]:
        """Descriptor for a finished sheet: urls, sprites and the index list."""
        return {
            "name": sheet.name,
            "urls": dict(urls),
            "sprites": sheet.lookup(),
            "indexes": sheet.indexes(),
        }

    def render_descriptor(self, descriptor: Dict[str, Any]) -> str:
        """
        Render the descriptor module.

        Raises:
            MetadataGenerationError: If template processing fails
        """
        try:
            template = self.env.get_template(DESCRIPTOR_TEMPLATE)
            return template.render(descriptor=descriptor)
        except TemplateError as e:
            raise MetadataGenerationError(f"Cannot render sheet descriptor: {e}")

    def render_reverse_index(self, sheet: Sheet) -> str:
        return json.dumps(sheet.reverse_index(), indent=2) + "\n"

    def write_sheet_metadata(self, sheet: Sheet, urls: Dict[str, str],
                             output_dir: Union[str, Path]) -> Dict[str, Any]:
        """
        Write ``<sheet>.ts`` and ``<sheet>.json`` into ``output_dir``.

        Returns:
            The descriptor that was written
        """
        output_dir = Path(output_dir)
        descriptor = self.build_descriptor(sheet, urls)

        ImageUtils.write_text(output_dir / f"{sheet.name}.ts", self.render_descriptor(descriptor))
        ImageUtils.write_text(output_dir / f"{sheet.name}.json", self.render_reverse_index(sheet))
        return descriptor


class MetadataGenerationError(Exception):
    """Exception raised when metadata generation fails."""

    def __init__(self, message: str):
        super().__init__(message)
