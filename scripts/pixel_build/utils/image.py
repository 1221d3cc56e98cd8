"""
Image processing utilities for the build pipeline.
"""

import hashlib
import io
import os
import tempfile
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image


RGBA = Tuple[int, int, int, int]

TRANSPARENT: RGBA = (0, 0, 0, 0)
OPAQUE_BLACK: RGBA = (0, 0, 0, 255)


class ImageUtils:
    """Utility class for common image processing operations."""

    @staticmethod
    def load_image(data: Union[bytes, str, Path, Image.Image]) -> Image.Image:
        """
        Load image from various sources.

        Args:
            data: Image data as bytes, file path, or PIL Image

        Returns:
            PIL Image object with pixel data loaded

        Raises:
            ValueError: If data cannot be loaded as image
        """
        if isinstance(data, Image.Image):
            return data
        elif isinstance(data, bytes):
            try:
                image = Image.open(io.BytesIO(data))
                image.load()
                return image
            except Exception as e:
                raise ValueError(f"Cannot load image from bytes: {e}")
        elif isinstance(data, (str, Path)):
            try:
                with Image.open(data) as image:
                    image.load()
                    return image.copy()
            except Exception as e:
                raise ValueError(f"Cannot load image from path '{data}': {e}")
        else:
            raise ValueError(f"Unsupported image data type: {type(data)}")

    @staticmethod
    def save_image(image: Image.Image, path: Union[str, Path], compress_level: int = 6) -> None:
        """
        Write a PNG atomically: readers never observe a partially written file.

        Args:
            image: Image to save
            path: Output file path
            compress_level: zlib level, 0-9
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, 'wb') as f:
                image.save(f, format='PNG', compress_level=compress_level)
            os.replace(temp_path, path)
        except BaseException:
            Path(temp_path).unlink(missing_ok=True)
            raise

    @staticmethod
    def write_text(path: Union[str, Path], content: str) -> None:
        """Atomically replace a text file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
            os.replace(temp_path, path)
        except BaseException:
            Path(temp_path).unlink(missing_ok=True)
            raise

    @staticmethod
    def file_hash(path: Union[str, Path]) -> str:
        """SHA-256 of a file's contents, or '' if it does not exist."""
        digest = hashlib.sha256()
        try:
            with open(path, 'rb') as f:
                for chunk in iter(lambda: f.read(65536), b''):
                    digest.update(chunk)
        except FileNotFoundError:
            return ""
        return digest.hexdigest()

    @staticmethod
    def ensure_rgba(image: Image.Image) -> Image.Image:
        """Convert image to RGBA mode if not already."""
        if image.mode != 'RGBA':
            return image.convert('RGBA')
        return image

    @staticmethod
    def to_array(image: Image.Image) -> np.ndarray:
        """RGBA pixels as a ``(height, width, 4)`` uint8 array."""
        return np.array(ImageUtils.ensure_rgba(image), dtype=np.uint8)

    @staticmethod
    def solid(size: Tuple[int, int], color: RGBA) -> np.ndarray:
        """A ``(height, width, 4)`` buffer filled with one colour."""
        width, height = size
        buffer = np.empty((height, width, 4), dtype=np.uint8)
        buffer[...] = color
        return buffer

    @staticmethod
    def to_greyscale(pixels: np.ndarray) -> np.ndarray:
        """Collapse RGB to one intensity channel, replicated, alpha kept."""
        luma = Image.fromarray(np.ascontiguousarray(pixels[..., :3]), 'RGB').convert('L')
        result = pixels.copy()
        result[..., :3] = np.asarray(luma, dtype=np.uint8)[..., None]
        return result

    @staticmethod
    def normalize_cell(pixels: np.ndarray, offset: Tuple[int, int], size: Tuple[int, int],
                       background: RGBA = TRANSPARENT) -> np.ndarray:
        """
        Place a cell's pixels on a ``size`` canvas at ``offset``.

        Content smaller than the canvas is padded with ``background`` on
        whichever edges are needed so it lands at its authored offset;
        content extending past the canvas (or at negative offsets) is clipped.

        Args:
            pixels: ``(rows, cols, 4)`` source buffer
            offset: ``(x, y)`` of the source's top-left corner on the canvas
            size: ``(width, height)`` of the canvas

        Returns:
            ``(height, width, 4)`` uint8 buffer
        """
        width, height = size
        x, y = offset
        rows, cols = pixels.shape[:2]

        result = ImageUtils.solid(size, background)

        extract_width = min(cols + min(x, 0), width - max(x, 0))
        extract_height = min(rows + min(y, 0), height - max(y, 0))
        if extract_width <= 0 or extract_height <= 0:
            return result

        src_left = -min(x, 0)
        src_top = -min(y, 0)
        dest_left = max(x, 0)
        dest_top = max(y, 0)

        result[dest_top:dest_top + extract_height, dest_left:dest_left + extract_width] = \
            pixels[src_top:src_top + extract_height, src_left:src_left + extract_width]
        return result
