"""
Tangent-space normal map synthesis from authored height data.

Heights are taken from each pixel's red channel, with fully transparent
pixels counting as height 0. Sobel gradients over the 3x3 neighbourhood
perturb the canonical tangent and binormal; their cross product is the
local normal, which is then moved into tangent space and encoded as
colour.
"""

from typing import Tuple

import numpy as np


# Canonical surface frame
TANGENT = np.array([0.0, 1.0, 0.0])
NORMAL = np.array([0.0, 0.0, 1.0])
BINORMAL = np.cross(TANGENT, NORMAL)

# Rows of the TBN matrix are the tangent, binormal and normal
TBN = np.array([TANGENT, BINORMAL, NORMAL])
TO_TANGENT_SPACE = TBN.T

NORMAL_ROUGHNESS = 0.001
GRADIENT_GAIN = 2.0

SOBEL_X = np.array([
    [1.0, 0.0, -1.0],
    [2.0, 0.0, -2.0],
    [1.0, 0.0, -1.0],
])
SOBEL_Y = np.array([
    [1.0, 2.0, 1.0],
    [0.0, 0.0, 0.0],
    [-1.0, -2.0, -1.0],
])


def _normalize(vectors: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(vectors, axis=-1, keepdims=True)
    return vectors / np.where(lengths == 0, 1.0, lengths)


def encode_normal(vectors: np.ndarray) -> np.ndarray:
    """Map signed unit components to bytes as ``value * 128 + 127``."""
    return np.clip(vectors * 128.0 + 127.0, 0, 255).astype(np.uint8)


def _flat_normal_rgba() -> Tuple[int, int, int, int]:
    flat = _normalize(TO_TANGENT_SPACE @ NORMAL)
    r, g, b = (int(c) for c in encode_normal(flat))
    return (r, g, b, 255)


# Colour of an unperturbed surface, used as the normal layer background
FLAT_NORMAL_RGBA = _flat_normal_rgba()


def height_field(pixels: np.ndarray) -> np.ndarray:
    """Height of each RGBA pixel: min(red, alpha)."""
    return np.minimum(pixels[..., 0], pixels[..., 3]).astype(np.float64)


def _correlate3x3(heights: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Apply a 3x3 kernel with out-of-bounds samples clamped to the edge."""
    padded = np.pad(heights, 1, mode='edge')
    rows, cols = heights.shape
    result = np.zeros_like(heights)
    for ky in range(3):
        for kx in range(3):
            weight = kernel[ky, kx]
            if weight:
                result += weight * padded[ky:ky + rows, kx:kx + cols]
    return result


def sobel_gradients(heights: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Horizontal and vertical edge gradients of a height field."""
    gx = GRADIENT_GAIN * _correlate3x3(heights, SOBEL_X)
    gy = GRADIENT_GAIN * _correlate3x3(heights, SOBEL_Y)
    return gx, gy


def synthesize_normals(pixels: np.ndarray) -> np.ndarray:
    """
    Convert an RGBA height image into an RGBA tangent-space normal image.

    Args:
        pixels: ``(height, width, 4)`` uint8 array

    Returns:
        ``(height, width, 4)`` uint8 array with opaque alpha
    """
    rows, cols = pixels.shape[:2]
    if rows == 0 or cols == 0:
        return np.zeros((rows, cols, 4), dtype=np.uint8)

    gx, gy = sobel_gradients(height_field(pixels))

    tangent = _normalize(TANGENT - NORMAL * (gy * NORMAL_ROUGHNESS)[..., None])
    binormal = _normalize(BINORMAL - NORMAL * (gx * NORMAL_ROUGHNESS)[..., None])
    local_normal = np.cross(binormal, tangent)
    tangent_normal = _normalize(local_normal @ TO_TANGENT_SPACE.T)

    result = np.empty((rows, cols, 4), dtype=np.uint8)
    result[..., :3] = encode_normal(tangent_normal)
    result[..., 3] = 255
    return result
