"""Perceptual color simplification.

Merges palette colors a viewer cannot tell apart so near-duplicate layers
are drawn once.

Algorithm (agglomerative, complete linkage):
    1. Every color starts as its own group
    2. Group distance = MAXIMUM pairwise distance between their members
    3. Repeatedly merge the globally closest pair (first in row-major order
       on ties) while that distance <= threshold and more than
       max(1, ceil(n * min_preservation_ratio)) groups remain
    4. Representative = centroid of the group members in the distance space,
       converted back to sRGB and rounded; single-member groups keep their
       exact color

Complete linkage prevents chaining: A~B and B~C never pulls A and C together
unless A~C as well.

Distance spaces:
    - cielab (default): CIE76 ΔE, threshold 2.5 ≈ just-noticeable difference
    - oklab: Euclidean OKLab scaled by 100 (same order of magnitude as ΔE)
    - rgb: Euclidean 8-bit RGB
"""

import logging
import math
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np
import torch

from ..utils import color
from .quantize import count_colors, pack_rgb

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]

DEFAULT_THRESHOLD = 2.5
DEFAULT_PRESERVATION_RATIO = 0.5


def _distance_coords(colors: np.ndarray, space: color.ColorSpace) -> np.ndarray:
    if space == color.ColorSpace.RGB:
        return colors.astype(np.float64)
    coords = color.rgb_to_lab_np(colors, space)
    if space == color.ColorSpace.OKLAB:
        coords = coords * 100.0
    return coords


def _coords_to_rgb(coords: np.ndarray, space: color.ColorSpace) -> RGB:
    if space == color.ColorSpace.RGB:
        rgb = color.to_rgb8(coords)
    else:
        if space == color.ColorSpace.OKLAB:
            coords = coords / 100.0
        rgb = color.to_rgb8(color.lab_to_rgb_np(coords, space))
    return int(rgb[0]), int(rgb[1]), int(rgb[2])


def min_group_count(n_colors: int, min_preservation_ratio: float) -> int:
    """Fewest groups simplification may leave for n_colors inputs."""
    return max(1, math.ceil(n_colors * min_preservation_ratio))


def build_color_groups(
    colors: Sequence[RGB],
    threshold: float = DEFAULT_THRESHOLD,
    color_space: Union[color.ColorSpace, str] = color.ColorSpace.CIELAB,
    min_preservation_ratio: float = DEFAULT_PRESERVATION_RATIO,
) -> List[List[RGB]]:
    """Group perceptually near-identical colors.

    Parameters
    ----------
    colors : Sequence[RGB]
        Distinct (r, g, b) colors; order decides ties
    threshold : float
        Maximum complete-linkage distance for a merge
    color_space : ColorSpace or str
        Space the distances are measured in
    min_preservation_ratio : float
        Fraction of the input colors that must survive as groups

    Returns
    -------
    List[List[RGB]]
        Groups in order of their first member's original position
    """
    space = color.resolve_space(color_space)
    groups = [[tuple(int(v) for v in c)] for c in colors]
    n = len(groups)
    if n <= 1:
        return groups

    coords = _distance_coords(np.asarray(groups, dtype=np.uint8).reshape(n, 3), space)
    t = torch.from_numpy(coords)
    dist = color.delta_e76(t[:, None, :], t[None, :, :]).numpy()

    floor = min_group_count(n, min_preservation_ratio)
    while len(groups) > floor:
        m = len(groups)
        upper = np.where(np.triu(np.ones((m, m), dtype=bool), k=1), dist, np.inf)
        flat = int(np.argmin(upper))
        i, j = divmod(flat, m)
        if upper[i, j] > threshold:
            break

        groups[i].extend(groups[j])
        del groups[j]
        # Complete linkage: merged group is as far as its farthest member
        dist[i, :] = np.maximum(dist[i, :], dist[j, :])
        dist[:, i] = dist[i, :]
        dist = np.delete(np.delete(dist, j, axis=0), j, axis=1)

    logger.debug(f"Color groups: {n} colors → {len(groups)} groups (floor {floor}, threshold {threshold})")
    return groups


def group_representative(group: Sequence[RGB], color_space: Union[color.ColorSpace, str]) -> RGB:
    """Centroid color of a group; a single color is returned unchanged."""
    if len(group) == 1:
        return tuple(group[0])
    space = color.resolve_space(color_space)
    coords = _distance_coords(np.asarray(group, dtype=np.uint8), space)
    return _coords_to_rgb(coords.mean(axis=0), space)


def simplify_colors(
    colors: Sequence[RGB],
    threshold: float = DEFAULT_THRESHOLD,
    color_space: Union[color.ColorSpace, str] = color.ColorSpace.CIELAB,
    min_preservation_ratio: float = DEFAULT_PRESERVATION_RATIO,
) -> Dict[RGB, RGB]:
    """Map every input color to its group representative.

    Returns
    -------
    Dict[RGB, RGB]
        original color → representative color
    """
    mapping: Dict[RGB, RGB] = {}
    for group in build_color_groups(colors, threshold, color_space, min_preservation_ratio):
        rep = group_representative(group, color_space)
        for c in group:
            mapping[c] = rep
    return mapping


def simplify_quantized(
    quantized: np.ndarray,
    color_counts: Dict[RGB, int],
    threshold: float = DEFAULT_THRESHOLD,
    color_space: Union[color.ColorSpace, str] = color.ColorSpace.CIELAB,
    min_preservation_ratio: float = DEFAULT_PRESERVATION_RATIO,
) -> Tuple[np.ndarray, Dict[RGB, int]]:
    """Apply color simplification to a quantized image.

    Parameters
    ----------
    quantized : np.ndarray
        (H, W, 4) uint8 RGBA image from quantize()
    color_counts : Dict[RGB, int]
        Its color tally; key order decides merge ties

    Returns
    -------
    image : np.ndarray
        Recolored copy (the input itself when nothing merged)
    counts : Dict[RGB, int]
        Tally of the recolored image, descending count
    """
    mapping = simplify_colors(list(color_counts), threshold, color_space, min_preservation_ratio)
    if all(src == dst for src, dst in mapping.items()):
        logger.info(f"Simplification kept all {len(color_counts)} colors")
        return quantized, color_counts

    src_packed = pack_rgb(np.asarray(list(mapping.keys()), dtype=np.uint8))
    dst_rgb = np.asarray(list(mapping.values()), dtype=np.uint8)
    order = np.argsort(src_packed)
    src_sorted = src_packed[order]

    out = quantized.copy()
    opaque = out[..., 3] > 0
    pixels = pack_rgb(out[..., :3][opaque])
    pos = np.searchsorted(src_sorted, pixels)
    pos = np.clip(pos, 0, src_sorted.size - 1)
    known = src_sorted[pos] == pixels
    if not known.all():
        logger.warning(f"{int((~known).sum())} opaque pixels use colors missing from color_counts")
    recolored = out[..., :3][opaque]
    recolored[known] = dst_rgb[order[pos[known]]]
    out[..., :3][opaque] = recolored

    counts = count_colors(out)
    logger.info(f"Simplification merged {len(color_counts)} colors into {len(counts)}")
    return out, counts
