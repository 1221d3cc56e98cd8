"""
Sprite sheet atlas composition.

Sprites are stacked vertically in discovery order: each sprite occupies a
band as tall as one of its frames, with its frames laid out left to right.
Pixels destined for the four output channels are collected in composite
queues and rasterized once per sheet.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from PIL import Image

from ..utils.image import ImageUtils, OPAQUE_BLACK, RGBA, TRANSPARENT
from .normals import FLAT_NORMAL_RGBA, synthesize_normals
from .sources import (
    LayeredDocument,
    MissingDiffuseLayerError,
    SourceDocument,
    SpriteError,
    StaticStrip,
    InvalidDimensionsError,
    UnknownSpriteFormatError,
)


DIFFUSE_LAYER = "diffuse"
HEIGHT_LAYER = "height"
SPECULAR_LAYER = "specular"
EMISSIVE_LAYER = "emissive"
NORMAL_LAYER = "normal"

# Output channels, in the order they are written
LAYERS = (DIFFUSE_LAYER, EMISSIVE_LAYER, NORMAL_LAYER, SPECULAR_LAYER)

LAYER_BACKGROUNDS: Dict[str, RGBA] = {
    DIFFUSE_LAYER: TRANSPARENT,
    EMISSIVE_LAYER: TRANSPARENT,
    NORMAL_LAYER: FLAT_NORMAL_RGBA,
    SPECULAR_LAYER: OPAQUE_BLACK,
}


@dataclass(frozen=True)
class FrameRect:
    """Pixel rectangle locating one frame within the atlas."""
    top: int
    left: int
    bottom: int
    right: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return abs(self.bottom - self.top)

    def to_dict(self) -> Dict[str, int]:
        return {"top": self.top, "left": self.left, "bottom": self.bottom, "right": self.right}


def flip_frame(rect: FrameRect, atlas_height: int) -> FrameRect:
    """Convert a top-down rect into the renderer's bottom-up texture coordinates."""
    return FrameRect(
        top=atlas_height - rect.top,
        left=rect.left,
        bottom=atlas_height - rect.bottom,
        right=rect.right,
    )


@dataclass
class SpriteRecord:
    """Metadata for one named sprite or animation in a sheet."""
    width: int
    height: int
    frames: List[FrameRect] = field(default_factory=list)
    index: int = 0


@dataclass
class Placement:
    """A pixel buffer waiting to be composited at (left, top)."""
    pixels: np.ndarray
    left: int
    top: int


@dataclass
class CompositeQueue:
    """Pending placements for each output channel."""
    diffuse: List[Placement] = field(default_factory=list)
    normal: List[Placement] = field(default_factory=list)
    specular: List[Placement] = field(default_factory=list)
    emissive: List[Placement] = field(default_factory=list)

    def layer(self, name: str) -> List[Placement]:
        return getattr(self, name)


@dataclass
class Sheet:
    """One atlas under construction. Sprite insertion order is numbering order."""
    name: str
    width: int = 0
    height: int = 0
    sprites: Dict[str, SpriteRecord] = field(default_factory=dict)

    def add_sprite(self, name: str, sprite: SpriteRecord) -> None:
        if name in self.sprites:
            raise DuplicateSpriteError(f"Sprite '{name}' is defined more than once in sheet {self.name}", name)
        self.sprites[name] = sprite
        sprite.index = len(self.sprites)

    def indexes(self) -> List[str]:
        """Sprite names by index; slot 0 is reserved for "absent"."""
        return [""] + list(self.sprites)

    def reverse_index(self) -> Dict[str, int]:
        return {name: sprite.index for name, sprite in self.sprites.items()}

    def lookup(self) -> Dict[str, Dict]:
        """Sprite name to index, size and renderer-space frame rects."""
        return {
            name: {
                "width": sprite.width,
                "height": sprite.height,
                "index": sprite.index,
                "frames": [flip_frame(f, self.height).to_dict() for f in sprite.frames],
            }
            for name, sprite in self.sprites.items()
        }


class DuplicateSpriteError(SpriteError):
    """Exception raised when two sources in a sheet define the same sprite name."""


def strip_sprite(strip: StaticStrip, queue: CompositeQueue, top: int) -> SpriteRecord:
    """
    Queue a static strip's pixels at ``top`` and describe its frames.

    Raises:
        InvalidDimensionsError: If the image is not a whole number of frames
            wide or its height differs from the frame height
    """
    image_width, image_height = strip.image.size
    if image_width == 0 or image_width % strip.frame_width != 0:
        raise InvalidDimensionsError(
            f"Invalid sprite width {image_width}, must be a multiple of {strip.frame_width}",
            strip.path.name
        )
    if image_height != strip.frame_height:
        raise InvalidDimensionsError(
            f"Invalid sprite height {image_height}, must be equal to {strip.frame_height}",
            strip.path.name
        )

    queue.diffuse.append(Placement(ImageUtils.to_array(strip.image), 0, top))

    width, height = strip.frame_width, strip.frame_height
    frames = [
        FrameRect(top=top, left=i * width, bottom=top + height, right=(i + 1) * width)
        for i in range(strip.frame_count)
    ]
    return SpriteRecord(width, height, frames)


def layered_sprites(source: LayeredDocument, queue: CompositeQueue,
                    top: int) -> List[Tuple[str, SpriteRecord]]:
    """
    Queue every tag of a layered document, one sprite per tag.

    Each tag's band starts where the previous one ended, beginning at ``top``.

    Raises:
        MissingDiffuseLayerError: If any frame of any tag lacks a diffuse cel
    """
    document = source.document
    width, height = document.width, document.height
    size = (width, height)
    sprites = []

    for tag in document.tags:
        frames = document.frames[tag.start:tag.end + 1]
        record = SpriteRecord(width, height, [
            FrameRect(top=top, left=i * width, bottom=top + height, right=(i + 1) * width)
            for i in range(len(frames))
        ])

        for i, frame in enumerate(frames):
            left = i * width
            has_diffuse = False
            normal: Optional[np.ndarray] = None
            specular: Optional[np.ndarray] = None

            for cel in frame.cels:
                layer = document.layer_name(cel).lower()
                offset = (cel.x, cel.y)

                if layer == DIFFUSE_LAYER:
                    has_diffuse = True
                    queue.diffuse.append(Placement(
                        ImageUtils.normalize_cell(cel.pixels, offset, size, TRANSPARENT), left, top
                    ))
                elif layer == EMISSIVE_LAYER:
                    queue.emissive.append(Placement(
                        ImageUtils.normalize_cell(cel.pixels, offset, size, TRANSPARENT), left, top
                    ))
                elif layer == HEIGHT_LAYER:
                    normal = ImageUtils.normalize_cell(
                        synthesize_normals(cel.pixels), offset, size, FLAT_NORMAL_RGBA
                    )
                elif layer == SPECULAR_LAYER:
                    specular = ImageUtils.to_greyscale(
                        ImageUtils.normalize_cell(cel.pixels, offset, size, TRANSPARENT)
                    )

            if not has_diffuse:
                raise MissingDiffuseLayerError(
                    f'No "diffuse" layer found in tag {tag.name} frame {tag.start + i}',
                    source.path.name
                )

            if specular is None:
                specular = ImageUtils.solid(size, OPAQUE_BLACK)
            if normal is None:
                normal = ImageUtils.solid(size, FLAT_NORMAL_RGBA)
            queue.specular.append(Placement(specular, left, top))
            queue.normal.append(Placement(normal, left, top))

        sprites.append((tag.name, record))
        top += height

    return sprites


def source_sprites(source: SourceDocument, queue: CompositeQueue,
                   top: int) -> List[Tuple[str, SpriteRecord]]:
    """Queue one source document at ``top``, dispatching on its kind."""
    if isinstance(source, StaticStrip):
        return [(source.name, strip_sprite(source, queue, top))]
    elif isinstance(source, LayeredDocument):
        return layered_sprites(source, queue, top)
    raise UnknownSpriteFormatError(f"Unsupported sprite source {source!r}")


def compose_sheet(name: str, sources: Iterable[SourceDocument]) -> Tuple[Sheet, CompositeQueue]:
    """
    Stack every source of a sheet, in order, into a fresh sheet and queue.

    The running atlas height is threaded through the loop as ``offset``;
    each source is placed at the current offset and advances it by the
    height of every sprite it yields.
    """
    sheet = Sheet(name)
    queue = CompositeQueue()
    offset = 0

    for source in sources:
        for sprite_name, sprite in source_sprites(source, queue, offset):
            sheet.add_sprite(sprite_name, sprite)
            sheet.width = max(sheet.width, sprite.width * len(sprite.frames))
            offset += sprite.height

    sheet.height = offset
    return sheet, queue


def rasterize_layer(sheet: Sheet, layer: str, placements: List[Placement]) -> Image.Image:
    """Composite one channel's placements over its background."""
    canvas = Image.new('RGBA', (sheet.width, sheet.height), LAYER_BACKGROUNDS[layer])
    for placement in placements:
        canvas.alpha_composite(Image.fromarray(placement.pixels), dest=(placement.left, placement.top))

    if layer == SPECULAR_LAYER:
        return canvas.convert('L')
    return canvas


def rasterize_sheet(sheet: Sheet, queue: CompositeQueue, max_workers: int = 4) -> Dict[str, Image.Image]:
    """Rasterize the four channels concurrently; returns once all are done."""
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(LAYERS)))) as executor:
        futures = {
            layer: executor.submit(rasterize_layer, sheet, layer, queue.layer(layer))
            for layer in LAYERS
        }
        return {layer: future.result() for layer, future in futures.items()}
