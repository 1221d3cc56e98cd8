"""
Utility modules for image processing and Aseprite document decoding.
"""

from .image import ImageUtils
from .aseprite import AsepriteReader, AsepriteFormatError, AseDocument

__all__ = [
    "ImageUtils",
    "AsepriteReader",
    "AsepriteFormatError",
    "AseDocument",
]
