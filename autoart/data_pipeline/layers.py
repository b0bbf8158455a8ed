"""Color layer extraction and stray-pixel cleanup.

A layer is everything the actuator draws with one color: a boolean mask of
the opaque pixels that carry exactly that RGB value.

Provides:
    - remove_stray_pixels: recolor isolated single pixels from their neighbours
    - extract_layers: one ColorLayer per color of a quantized image
    - layer_preview: small nearest-neighbour thumbnail of a layer mask

Invariants:
    - Masks of one image are pairwise disjoint
    - Union of all masks == opaque pixels of the quantized image
    - Masks are read-only once extracted
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import cv2
import numpy as np

from .quantize import pack_rgb, unpack_rgb

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class ColorLayer:
    """One drawable color.

    Attributes
    ----------
    index : int
        Position in the layer list (0 = most pixels)
    color : RGB
        (r, g, b) of the layer
    hex_color : str
        Uppercase RRGGBB
    mask : np.ndarray
        (H, W) bool, True where the layer is drawn
    pixel_count : int
        Number of True pixels in mask
    """
    index: int
    color: RGB
    hex_color: str
    mask: np.ndarray
    pixel_count: int


def hex_color(rgb: RGB) -> str:
    r, g, b = rgb
    return f"{r:02X}{g:02X}{b:02X}"


def remove_stray_pixels(quantized: np.ndarray) -> np.ndarray:
    """Recolor opaque pixels that share no color with their 4-neighbours.

    Only interior pixels are examined. A stray pixel takes the color that is
    most frequent among its opaque 4-neighbours; ties go to the lowest packed
    RGB value. A stray pixel without opaque neighbours keeps its color, and
    alpha is never changed. All decisions read the input image, so the result
    does not depend on scan order.

    Parameters
    ----------
    quantized : np.ndarray
        (H, W, 4) uint8 RGBA image

    Returns
    -------
    np.ndarray
        Cleaned copy; images with width or height <= 2 are returned as a
        plain copy
    """
    out = quantized.copy()
    H, W = quantized.shape[:2]
    if H <= 2 or W <= 2:
        return out

    packed = pack_rgb(quantized[..., :3])
    opaque = quantized[..., 3] > 0

    centre = packed[1:-1, 1:-1]
    centre_opaque = opaque[1:-1, 1:-1]
    # Up, down, left, right
    shifts = ((0, 1), (2, 1), (1, 0), (1, 2))
    nb = np.stack([packed[y:y + H - 2, x:x + W - 2] for y, x in shifts])
    nb_opaque = np.stack([opaque[y:y + H - 2, x:x + W - 2] for y, x in shifts])

    same = np.any(nb_opaque & (nb == centre[None]), axis=0)
    stray = centre_opaque & ~same & np.any(nb_opaque, axis=0)
    if not stray.any():
        return out

    # Votes for each neighbour's color among the opaque neighbours
    votes = np.sum(
        (nb[:, None] == nb[None, :]) & nb_opaque[None, :],
        axis=1,
    )
    # Most votes first, then lowest packed value
    score = np.where(nb_opaque, votes * (1 << 24) + (0xFFFFFF - nb), -1)
    winner = np.take_along_axis(nb, np.argmax(score, axis=0)[None], axis=0)[0]

    ys, xs = np.nonzero(stray)
    new_rgb = winner[ys, xs]
    out[ys + 1, xs + 1, 0] = (new_rgb >> 16) & 0xFF
    out[ys + 1, xs + 1, 1] = (new_rgb >> 8) & 0xFF
    out[ys + 1, xs + 1, 2] = new_rgb & 0xFF

    logger.info(f"Recolored {ys.size} stray pixels")
    return out


def extract_layers(quantized: np.ndarray, color_counts: Dict[RGB, int]) -> List[ColorLayer]:
    """Split a quantized image into per-color layers.

    Parameters
    ----------
    quantized : np.ndarray
        (H, W, 4) uint8 RGBA image
    color_counts : Dict[RGB, int]
        Colors to extract, in layer order

    Returns
    -------
    List[ColorLayer]
        Non-empty layers; a pixel belongs to a layer when its RGB matches
        exactly and its alpha is nonzero
    """
    packed = pack_rgb(quantized[..., :3])
    opaque = quantized[..., 3] > 0

    layers: List[ColorLayer] = []
    for rgb in color_counts:
        key = int(pack_rgb(np.asarray(rgb, dtype=np.uint8)))
        mask = (packed == key) & opaque
        count = int(mask.sum())
        if count == 0:
            logger.debug(f"Skipping empty layer {hex_color(rgb)}")
            continue
        mask.setflags(write=False)
        rgb = unpack_rgb(key)
        layers.append(ColorLayer(
            index=len(layers),
            color=rgb,
            hex_color=hex_color(rgb),
            mask=mask,
            pixel_count=count,
        ))

    logger.info(f"Extracted {len(layers)} layers")
    return layers


def layer_preview(layer: ColorLayer, size: int = 64) -> np.ndarray:
    """Nearest-neighbour thumbnail of a layer mask.

    Parameters
    ----------
    layer : ColorLayer
        Source layer
    size : int
        Edge length of the square preview, default 64

    Returns
    -------
    np.ndarray
        (size, size) bool mask
    """
    if size < 1:
        raise ValueError(f"Preview size must be >= 1, got {size}")
    img = layer.mask.astype(np.uint8) * 255
    small = cv2.resize(img, (size, size), interpolation=cv2.INTER_NEAREST)
    return small > 0
