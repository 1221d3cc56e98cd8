"""
Sprite processing modules for source parsing, normal synthesis, atlas composition, metadata and staleness.
"""

from .normals import synthesize_normals, FLAT_NORMAL_RGBA
from .sources import (
    SourceKind,
    StaticStrip,
    LayeredDocument,
    SpriteError,
    InvalidDimensionsError,
    MissingDiffuseLayerError,
    UnknownSpriteFormatError,
    SpriteSourceError,
    load_source,
    is_sprite_source,
)
from .atlas import Sheet, SpriteRecord, FrameRect, compose_sheet, rasterize_sheet, flip_frame
from .metadata import MetadataGenerator, MetadataGenerationError
from .staleness import StalenessChecker, SheetChange

__all__ = [
    "synthesize_normals",
    "FLAT_NORMAL_RGBA",
    "SourceKind",
    "StaticStrip",
    "LayeredDocument",
    "SpriteError",
    "InvalidDimensionsError",
    "MissingDiffuseLayerError",
    "UnknownSpriteFormatError",
    "SpriteSourceError",
    "load_source",
    "is_sprite_source",
    "Sheet",
    "SpriteRecord",
    "FrameRect",
    "compose_sheet",
    "rasterize_sheet",
    "flip_frame",
    "MetadataGenerator",
    "MetadataGenerationError",
    "StalenessChecker",
    "SheetChange",
]
