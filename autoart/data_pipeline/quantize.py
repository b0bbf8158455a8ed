"""Palette quantization of a pixel buffer.

Turns an RGBA image into an image that uses exactly `color_count` palette
colors (fewer only when the input has fewer distinct colors, in which case
duplicate palette entries are logged).

Pipeline:
    1. Opaque pixels (alpha > 0) become samples in the working space
       (OKLab, CIELab or raw RGB); transparent pixels never enter color math
    2. Clustering:
         - median_cut: Median-Cut bins
         - kmeans: K-Means (K-Means++ or Median-Cut seeded), optionally over
           superpixel means with the cluster broadcast back to member pixels
    3. Palette centroids are converted back to 8-bit sRGB (rounded, saturated)
    4. Every opaque pixel takes its cluster color and keeps its alpha;
       transparent pixels become (0, 0, 0, 0)
    5. Opaque pixels are tallied per color

Color count ordering:
    Descending pixel count, ties by ascending packed RGB (r << 16 | g << 8 | b),
    so the largest layer always comes first.

Usage:
    from autoart.data_pipeline.quantize import quantize
    from autoart.utils.validators import SplitConfig

    result = quantize(rgba_u8, SplitConfig(color_count=8))
    result.quantized      # (H, W, 4) uint8
    result.color_counts   # {(r, g, b): pixels}
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

import numpy as np

from ..utils import color
from ..utils.errors import DegenerateInputError, InvalidConfigurationError
from ..utils.pixel_buffer import PixelBuffer, as_pixel_buffer
from ..utils.validators import Algorithm, SplitConfig
from .kmeans import kmeans
from .median_cut import median_cut
from .superpixels import generate_superpixels, region_means, segmentation_lab

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class QuantizeResult:
    """Output of quantize().

    Attributes
    ----------
    quantized : np.ndarray
        (H, W, 4) uint8 RGBA image using only palette colors
    color_counts : Dict[RGB, int]
        Opaque pixels per color, ordered by descending count
    palette : np.ndarray
        (k, 3) uint8 palette in cluster order (may contain duplicates)
    labels : np.ndarray
        (H, W) int64 cluster index per pixel, -1 for transparent pixels
    """
    quantized: np.ndarray
    color_counts: Dict[RGB, int]
    palette: np.ndarray
    labels: np.ndarray


def pack_rgb(rgb: np.ndarray) -> np.ndarray:
    """Pack (..., 3) uint8 RGB into (...) int64 r << 16 | g << 8 | b."""
    rgb = rgb.astype(np.int64)
    return (rgb[..., 0] << 16) | (rgb[..., 1] << 8) | rgb[..., 2]


def unpack_rgb(packed: int) -> RGB:
    packed = int(packed)
    return (packed >> 16) & 0xFF, (packed >> 8) & 0xFF, packed & 0xFF


def count_colors(rgba: np.ndarray) -> Dict[RGB, int]:
    """Tally opaque pixels per RGB color.

    Parameters
    ----------
    rgba : np.ndarray
        (H, W, 4) uint8 image

    Returns
    -------
    Dict[RGB, int]
        Ordered by descending count, ties by ascending packed RGB
    """
    opaque = rgba[..., 3] > 0
    packed = pack_rgb(rgba[..., :3][opaque])
    values, counts = np.unique(packed, return_counts=True)
    # np.unique sorts values ascending; lexsort keeps that as the tie-break
    order = np.lexsort((values, -counts))
    return {unpack_rgb(values[i]): int(counts[i]) for i in order}


def working_samples(rgb: np.ndarray, space: color.ColorSpace) -> np.ndarray:
    """Convert (..., 3) uint8 RGB to float64 samples in the working space."""
    if space == color.ColorSpace.RGB:
        return rgb.astype(np.float64)
    return color.rgb_to_lab_np(rgb, space)


def palette_to_rgb(centroids: np.ndarray, space: color.ColorSpace) -> np.ndarray:
    """Convert working-space centroids to a (k, 3) uint8 palette."""
    if space == color.ColorSpace.RGB:
        return color.to_rgb8(centroids)
    return color.to_rgb8(color.lab_to_rgb_np(centroids, space))


def _cluster_superpixels(
    rgb: np.ndarray,
    samples: np.ndarray,
    opaque: np.ndarray,
    config: SplitConfig,
    rng: np.random.Generator,
    max_workers: Optional[int],
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """K-Means over superpixel means; returns (centroids, per-pixel labels).

    Returns None when the segmentation yields fewer populated superpixels
    than requested colors; the caller then clusters individual pixels.
    """
    seg = segmentation_lab(rgb, config.color_space)
    sp_labels, sp_count = generate_superpixels(
        seg,
        config.color_count * config.superpixels_per_color,
        iterations=config.superpixel_iterations,
        edge_weight=config.edge_weight,
        mask=opaque,
    )

    means, members = region_means(samples, sp_labels, sp_count, mask=opaque)
    populated = np.flatnonzero(members > 0)
    if populated.size < config.color_count:
        logger.info(
            f"Only {populated.size} superpixels for {config.color_count} colors, "
            f"clustering pixels directly"
        )
        return None

    centroids, cluster = kmeans(
        means[populated],
        config.color_count,
        max_iter=config.iterations,
        init=config.initializer.value,
        rng=rng,
        max_workers=max_workers,
    )

    region_to_cluster = np.full(sp_count, -1, dtype=np.int64)
    region_to_cluster[populated] = cluster
    logger.debug(f"Clustered {populated.size} superpixels into {config.color_count} colors")
    return centroids, region_to_cluster[sp_labels]


def quantize(
    image: Union[PixelBuffer, np.ndarray],
    config: Optional[SplitConfig] = None,
    max_workers: Optional[int] = None,
) -> QuantizeResult:
    """Reduce an image to a fixed-size palette.

    Parameters
    ----------
    image : PixelBuffer or np.ndarray
        Source image; arrays must be (H, W, 4) RGBA or (H, W, 3) RGB uint8
    config : SplitConfig, optional
        Quantization settings; defaults when None
    max_workers : int, optional
        Threads for K-Means assignment

    Returns
    -------
    QuantizeResult

    Raises
    ------
    DegenerateInputError
        If the image has no opaque pixels or is malformed
    InvalidConfigurationError
        If color_count exceeds the number of opaque pixels
    """
    config = config or SplitConfig()
    buf = as_pixel_buffer(image)
    rgb = buf.rgb()
    alpha = buf.alpha()
    opaque = alpha > 0

    n_opaque = int(opaque.sum())
    if n_opaque == 0:
        raise DegenerateInputError(f"Image {buf.width}x{buf.height} has no opaque pixels")
    k = config.color_count
    if k > n_opaque:
        raise InvalidConfigurationError(
            f"color_count={k} exceeds the {n_opaque} opaque pixels of the image"
        )

    space = config.color_space
    rng = np.random.default_rng(config.seed)
    logger.info(
        f"Quantizing {buf.width}x{buf.height} image ({n_opaque} opaque px) to {k} colors "
        f"[{config.algorithm.value}, {space.value}]"
    )

    labels = np.full(buf.shape, -1, dtype=np.int64)
    pixel_samples = working_samples(rgb, space)

    clustered = None
    if config.algorithm == Algorithm.KMEANS and config.use_superpixels:
        clustered = _cluster_superpixels(rgb, pixel_samples, opaque, config, rng, max_workers)
        if clustered is not None:
            centroids, sp_pixel_labels = clustered
            labels[opaque] = sp_pixel_labels[opaque]

    if clustered is None:
        samples = pixel_samples[opaque]
        if config.algorithm == Algorithm.MEDIAN_CUT:
            centroids, sample_labels = median_cut(samples, k)
        else:
            centroids, sample_labels = kmeans(
                samples,
                k,
                max_iter=config.iterations,
                init=config.initializer.value,
                rng=rng,
                max_workers=max_workers,
            )
        labels[opaque] = sample_labels

    palette = palette_to_rgb(centroids, space)
    distinct = np.unique(pack_rgb(palette)).size
    if distinct < k:
        logger.warning(
            f"Palette has {k - distinct} duplicate entries: the image has fewer "
            f"distinct colors than the requested {k}"
        )

    quantized = np.zeros((buf.height, buf.width, 4), dtype=np.uint8)
    quantized[..., :3][opaque] = palette[labels[opaque]]
    quantized[..., 3] = np.where(opaque, alpha, 0)

    color_counts = count_colors(quantized)
    logger.info(f"Quantized to {len(color_counts)} distinct colors")
    return QuantizeResult(
        quantized=quantized,
        color_counts=color_counts,
        palette=palette,
        labels=labels,
    )
