"""
Sprite source documents.

A sheet directory holds two kinds of source: static strips (a PNG whose
name encodes the frame size, ``<name>-<W>x<H>.png``) and layered
documents (Aseprite files with diffuse/height/specular/emissive layers and
one tag per sprite). The kind is resolved once per file from its
extension.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image

from ..utils.aseprite import AseDocument, AsepriteFormatError, AsepriteReader
from ..utils.image import ImageUtils


STRIP_NAME_REGEX = re.compile(r'^([a-zA-Z_][a-zA-Z0-9_]*)-([0-9]+)x([0-9]+)$')


class SourceKind(Enum):
    STATIC_STRIP = "static_strip"
    LAYERED_DOCUMENT = "layered_document"


SOURCE_EXTENSIONS = {
    '.png': SourceKind.STATIC_STRIP,
    '.ase': SourceKind.LAYERED_DOCUMENT,
    '.aseprite': SourceKind.LAYERED_DOCUMENT,
}


def source_kind(path: Union[str, Path]) -> Optional[SourceKind]:
    """Kind of sprite source for a path, or None for anything else."""
    return SOURCE_EXTENSIONS.get(Path(path).suffix.lower())


def is_sprite_source(path: Union[str, Path]) -> bool:
    return source_kind(path) is not None


@dataclass
class StaticStrip:
    """Equal-width frames laid out in one horizontal row."""
    path: Path
    name: str
    frame_width: int
    frame_height: int
    image: Image.Image

    @property
    def frame_count(self) -> int:
        return self.image.width // self.frame_width


@dataclass
class LayeredDocument:
    """A multi-frame, multi-layer tagged animation source."""
    path: Path
    document: AseDocument

    @property
    def width(self) -> int:
        return self.document.width

    @property
    def height(self) -> int:
        return self.document.height


SourceDocument = Union[StaticStrip, LayeredDocument]


class SpriteError(Exception):
    """Base exception for errors local to one sprite sheet."""

    def __init__(self, message: str, source: str = ""):
        super().__init__(message)
        self.source = source


class InvalidDimensionsError(SpriteError):
    """Exception raised when a strip's size does not match its declared frame size."""


class MissingDiffuseLayerError(SpriteError):
    """Exception raised when a layered document frame has no diffuse cel."""


class UnknownSpriteFormatError(SpriteError):
    """Exception raised for sources whose kind or naming is not recognized."""


class SpriteSourceError(SpriteError):
    """Exception raised when a source cannot be read or decoded."""


def parse_strip_name(path: Union[str, Path]) -> Tuple[str, int, int]:
    """
    Split a static strip filename into (name, frame width, frame height).

    Raises:
        UnknownSpriteFormatError: If the name does not encode a frame size
    """
    path = Path(path)
    match = STRIP_NAME_REGEX.match(path.stem)
    if not match:
        raise UnknownSpriteFormatError(
            f"Invalid sprite name '{path.name}', expected <name>-<width>x<height>{path.suffix}",
            path.name
        )
    name, width, height = match.group(1), int(match.group(2)), int(match.group(3))
    if width <= 0 or height <= 0:
        raise InvalidDimensionsError(f"Invalid frame size {width}x{height} in '{path.name}'", path.name)
    return name, width, height


def load_source(path: Union[str, Path]) -> SourceDocument:
    """
    Read a sprite source, dispatching on its extension.

    Raises:
        UnknownSpriteFormatError: For unrecognized extensions or strip names
        SpriteSourceError: If the file cannot be read or decoded
    """
    path = Path(path)
    kind = source_kind(path)

    if kind is SourceKind.STATIC_STRIP:
        name, frame_width, frame_height = parse_strip_name(path)
        try:
            image = ImageUtils.ensure_rgba(ImageUtils.load_image(path))
        except ValueError as e:
            raise SpriteSourceError(str(e), path.name)
        return StaticStrip(path, name, frame_width, frame_height, image)

    elif kind is SourceKind.LAYERED_DOCUMENT:
        try:
            document = AsepriteReader.read_file(path)
        except (OSError, AsepriteFormatError) as e:
            raise SpriteSourceError(f"Cannot read layered document '{path.name}': {e}", path.name)
        return LayeredDocument(path, document)

    raise UnknownSpriteFormatError(f"Invalid sprite format: {path.name}", path.name)
