"""8-connected chunking of a layer mask.

A chunk is a maximal set of ink pixels connected through their 8
neighbours; each chunk can be drawn without lifting the pen across
background.

Chunks are returned largest first; equal sizes keep the raster order of
their first pixel (scipy.ndimage.label numbers components in that order).
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)

Point = Tuple[int, int]

_EIGHT_CONNECTED = np.ones((3, 3), dtype=bool)


@dataclass
class Chunk:
    """Connected ink region.

    Attributes
    ----------
    points : List[Point]
        (x, y) pixel coordinates in raster order
    """
    points: List[Point]

    @property
    def size(self) -> int:
        return len(self.points)

    def bbox(self) -> Tuple[int, int, int, int]:
        """(min_x, min_y, max_x, max_y), inclusive."""
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        return min(xs), min(ys), max(xs), max(ys)


def label_chunks(mask: np.ndarray) -> Tuple[np.ndarray, int]:
    """8-connected component labels (0 = background) and component count."""
    labeled, count = ndimage.label(np.asarray(mask, dtype=bool), structure=_EIGHT_CONNECTED)
    return labeled, int(count)


def find_chunks(mask: np.ndarray) -> List[Chunk]:
    """Split a mask into 8-connected chunks.

    Parameters
    ----------
    mask : np.ndarray
        (H, W) bool ink mask

    Returns
    -------
    List[Chunk]
        Chunks sorted by descending size
    """
    labeled, count = label_chunks(mask)
    if count == 0:
        return []

    W = labeled.shape[1]
    flat = labeled.ravel()
    ink = np.flatnonzero(flat)
    # Stable sort keeps raster order inside each component
    ink = ink[np.argsort(flat[ink], kind="stable")]
    sizes = np.bincount(flat[ink], minlength=count + 1)[1:]
    bounds = np.concatenate([[0], np.cumsum(sizes)])

    chunks = []
    for c in range(count):
        idx = ink[bounds[c]:bounds[c + 1]]
        chunks.append(Chunk(points=list(zip((idx % W).tolist(), (idx // W).tolist()))))

    chunks.sort(key=lambda ch: -ch.size)
    logger.debug(f"Found {count} chunks, largest {chunks[0].size} px")
    return chunks
