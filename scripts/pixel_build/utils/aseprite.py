"""
Reader for Aseprite (.ase / .aseprite) documents.

Only the parts the sprite compositor needs are decoded: canvas size,
layers, per-frame cels (raw, linked and compressed image cels) with their
offsets, tags, and the palette for indexed documents. Every cel is
returned as an RGBA ``(rows, cols, 4)`` uint8 array.
"""

import struct
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np


FILE_MAGIC = 0xA5E0
FRAME_MAGIC = 0xF1FA

HEADER_SIZE = 128
FRAME_HEADER_SIZE = 16
CHUNK_HEADER_SIZE = 6

CHUNK_OLD_PALETTE = 0x0004
CHUNK_OLD_PALETTE_64 = 0x0011
CHUNK_LAYER = 0x2004
CHUNK_CEL = 0x2005
CHUNK_TAGS = 0x2018
CHUNK_PALETTE = 0x2019

CEL_RAW = 0
CEL_LINKED = 1
CEL_COMPRESSED = 2
CEL_COMPRESSED_TILEMAP = 3

DEPTH_RGBA = 32
DEPTH_GRAYSCALE = 16
DEPTH_INDEXED = 8

LAYER_TILEMAP = 2


@dataclass
class AseLayer:
    """A layer as declared in the first frame."""
    name: str
    flags: int
    layer_type: int
    child_level: int
    opacity: int


@dataclass
class AseCel:
    """Pixels of one layer on one frame, positioned on the canvas."""
    layer_index: int
    x: int
    y: int
    opacity: int
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]


@dataclass
class AseFrame:
    duration: int
    cels: List[AseCel] = field(default_factory=list)


@dataclass
class AseTag:
    """A named, inclusive frame range."""
    name: str
    start: int
    end: int
    direction: int = 0

    @property
    def frame_count(self) -> int:
        return self.end - self.start + 1


@dataclass
class AseDocument:
    width: int
    height: int
    color_depth: int
    layers: List[AseLayer]
    frames: List[AseFrame]
    tags: List[AseTag]

    def layer_name(self, cel: AseCel) -> str:
        return self.layers[cel.layer_index].name


class AsepriteFormatError(Exception):
    """Exception raised when a document cannot be decoded."""

    def __init__(self, message: str, source: str = ""):
        super().__init__(f"{source}: {message}" if source else message)
        self.source = source


class _Reader:
    """Little-endian cursor over a byte buffer."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def unpack(self, fmt: str) -> Tuple:
        size = struct.calcsize(fmt)
        if self.offset + size > len(self.data):
            raise AsepriteFormatError("unexpected end of data")
        values = struct.unpack_from(fmt, self.data, self.offset)
        self.offset += size
        return values

    def byte(self) -> int:
        return self.unpack('<B')[0]

    def word(self) -> int:
        return self.unpack('<H')[0]

    def short(self) -> int:
        return self.unpack('<h')[0]

    def dword(self) -> int:
        return self.unpack('<I')[0]

    def skip(self, count: int) -> None:
        self.offset += count

    def string(self) -> str:
        length = self.word()
        raw = self.data[self.offset:self.offset + length]
        self.offset += length
        return raw.decode('utf-8', errors='replace')

    def rest(self, end: int) -> bytes:
        raw = self.data[self.offset:end]
        self.offset = end
        return raw


class AsepriteReader:
    """Decodes one Aseprite document."""

    def __init__(self, data: bytes, source: str = ""):
        self.data = data
        self.source = source
        self.palette: Dict[int, Tuple[int, int, int, int]] = {}
        self.transparent_index = 0

    @classmethod
    def read_file(cls, path: Union[str, Path]) -> AseDocument:
        path = Path(path)
        return cls(path.read_bytes(), path.name).parse()

    def parse(self) -> AseDocument:
        try:
            return self._parse()
        except (struct.error, zlib.error, ValueError) as e:
            raise AsepriteFormatError(str(e), self.source)
        except AsepriteFormatError as e:
            if e.source:
                raise
            raise AsepriteFormatError(str(e), self.source)

    def _parse(self) -> AseDocument:
        if len(self.data) < HEADER_SIZE:
            raise AsepriteFormatError("file shorter than header")

        header = _Reader(self.data)
        header.dword()  # file size
        magic = header.word()
        if magic != FILE_MAGIC:
            raise AsepriteFormatError(f"bad magic number 0x{magic:04X}")
        frame_count = header.word()
        width = header.word()
        height = header.word()
        color_depth = header.word()
        if color_depth not in (DEPTH_RGBA, DEPTH_GRAYSCALE, DEPTH_INDEXED):
            raise AsepriteFormatError(f"unsupported color depth {color_depth}")
        header.dword()  # flags
        header.word()  # deprecated speed
        header.skip(8)
        self.transparent_index = header.byte()

        layers: List[AseLayer] = []
        frames: List[AseFrame] = []
        tags: List[AseTag] = []
        offset = HEADER_SIZE

        for _ in range(frame_count):
            reader = _Reader(self.data, offset)
            frame_size = reader.dword()
            if reader.word() != FRAME_MAGIC:
                raise AsepriteFormatError(f"bad frame magic at offset {offset}")
            old_chunk_count = reader.word()
            duration = reader.word()
            reader.skip(2)
            new_chunk_count = reader.dword()
            chunk_count = new_chunk_count or old_chunk_count

            frame = AseFrame(duration)
            for _ in range(chunk_count):
                chunk_start = reader.offset
                chunk_size = reader.dword()
                chunk_type = reader.word()
                chunk_end = chunk_start + chunk_size

                if chunk_type == CHUNK_LAYER:
                    layers.append(self._read_layer(reader))
                elif chunk_type == CHUNK_CEL:
                    cel = self._read_cel(reader, chunk_end, color_depth, frames, layers)
                    if cel is not None:
                        frame.cels.append(cel)
                elif chunk_type == CHUNK_TAGS:
                    tags.extend(self._read_tags(reader))
                elif chunk_type == CHUNK_PALETTE:
                    self._read_palette(reader)
                elif chunk_type in (CHUNK_OLD_PALETTE, CHUNK_OLD_PALETTE_64) and not self.palette:
                    self._read_old_palette(reader, scale=chunk_type == CHUNK_OLD_PALETTE_64)

                reader.offset = chunk_end

            frames.append(frame)
            offset += frame_size

        for tag in tags:
            if tag.start > tag.end or tag.end >= len(frames):
                raise AsepriteFormatError(f"tag '{tag.name}' has invalid range {tag.start}-{tag.end}")

        return AseDocument(width, height, color_depth, layers, frames, tags)

    def _read_layer(self, reader: _Reader) -> AseLayer:
        flags = reader.word()
        layer_type = reader.word()
        child_level = reader.word()
        reader.skip(4)  # default width/height
        reader.word()  # blend mode
        opacity = reader.byte()
        reader.skip(3)
        name = reader.string()
        return AseLayer(name, flags, layer_type, child_level, opacity)

    def _read_cel(self, reader: _Reader, chunk_end: int, color_depth: int,
                  frames: List[AseFrame], layers: List[AseLayer]) -> Optional[AseCel]:
        layer_index = reader.word()
        x = reader.short()
        y = reader.short()
        opacity = reader.byte()
        cel_type = reader.word()
        reader.skip(7)  # z-index and reserved

        if layer_index >= len(layers):
            raise AsepriteFormatError(f"cel references unknown layer {layer_index}")

        if cel_type == CEL_LINKED:
            linked_frame = reader.word()
            if linked_frame >= len(frames):
                raise AsepriteFormatError(f"cel links to missing frame {linked_frame}")
            for cel in frames[linked_frame].cels:
                if cel.layer_index == layer_index:
                    return AseCel(layer_index, x, y, opacity, cel.pixels)
            return None

        if cel_type in (CEL_RAW, CEL_COMPRESSED):
            cols = reader.word()
            rows = reader.word()
            raw = reader.rest(chunk_end)
            if cel_type == CEL_COMPRESSED:
                raw = zlib.decompress(raw)
            return AseCel(layer_index, x, y, opacity, self._to_rgba(raw, cols, rows, color_depth))

        # Tilemap cels carry no pixels of their own
        return None

    def _to_rgba(self, raw: bytes, cols: int, rows: int, color_depth: int) -> np.ndarray:
        bytes_per_pixel = color_depth // 8
        expected = cols * rows * bytes_per_pixel
        if len(raw) < expected:
            raise AsepriteFormatError(f"cel data has {len(raw)} bytes, expected {expected}")
        values = np.frombuffer(raw[:expected], dtype=np.uint8)

        if color_depth == DEPTH_RGBA:
            return values.reshape(rows, cols, 4).copy()

        if color_depth == DEPTH_GRAYSCALE:
            pairs = values.reshape(rows, cols, 2)
            result = np.empty((rows, cols, 4), dtype=np.uint8)
            result[..., :3] = pairs[..., :1]
            result[..., 3] = pairs[..., 1]
            return result

        lookup = np.zeros((256, 4), dtype=np.uint8)
        for index, color in self.palette.items():
            if 0 <= index < 256:
                lookup[index] = color
        lookup[self.transparent_index] = (0, 0, 0, 0)
        return lookup[values.reshape(rows, cols)]

    def _read_tags(self, reader: _Reader) -> List[AseTag]:
        count = reader.word()
        reader.skip(8)
        tags = []
        for _ in range(count):
            start = reader.word()
            end = reader.word()
            direction = reader.byte()
            reader.word()  # repeat
            reader.skip(6)
            reader.skip(4)  # deprecated colour
            name = reader.string()
            tags.append(AseTag(name, start, end, direction))
        return tags

    def _read_palette(self, reader: _Reader) -> None:
        reader.dword()  # new palette size
        first = reader.dword()
        last = reader.dword()
        reader.skip(8)
        for index in range(first, last + 1):
            flags = reader.word()
            self.palette[index] = reader.unpack('<4B')
            if flags & 1:
                reader.string()

    def _read_old_palette(self, reader: _Reader, scale: bool) -> None:
        index = 0
        for _ in range(reader.word()):
            index += reader.byte()
            count = reader.byte() or 256
            for _ in range(count):
                r, g, b = reader.unpack('<3B')
                if scale:
                    r, g, b = (min(255, c * 4) for c in (r, g, b))
                self.palette[index] = (r, g, b, 255)
                index += 1
