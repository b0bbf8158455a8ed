"""Median-Cut palette reduction.

Used both as a standalone quantizer and as a K-Means initializer.

Algorithm:
    1. One bin holding every sample
    2. Pick the bin whose largest single-dimension variance is highest
       (only bins with at least two samples can be split)
    3. Sort it along that dimension, split at the median index, replace it
       by the two halves (appended at the end of the bin list)
    4. Repeat until there are k bins
    5. Palette entry = per-dimension mean of the bin members

Bins are index arrays into the sample matrix, so membership doubles as the
final assignment and no palette entry can be empty.

When all splittable bins have zero variance (duplicate samples) the split
still happens and yields duplicate palette entries; this only occurs when
the input has fewer distinct samples than requested colors.
"""

import logging
from typing import List, Tuple

import numpy as np

from ..utils.errors import InvalidConfigurationError

logger = logging.getLogger(__name__)


def bin_max_variance(samples: np.ndarray) -> Tuple[float, int]:
    """Largest per-dimension population variance of a bin and its axis."""
    variances = samples.var(axis=0)
    axis = int(np.argmax(variances))
    return float(variances[axis]), axis


def split_bin(samples: np.ndarray, indices: np.ndarray, axis: int) -> Tuple[np.ndarray, np.ndarray]:
    """Split a bin at the median along one axis.

    Parameters
    ----------
    samples : np.ndarray
        (N, D) sample matrix
    indices : np.ndarray
        Row indices of the bin members (at least 2)
    axis : int
        Dimension to split on

    Returns
    -------
    lower, upper : np.ndarray
        Index arrays; lower holds the floor(n/2) smallest members
    """
    order = np.argsort(samples[indices, axis], kind="stable")
    ordered = indices[order]
    mid = ordered.size // 2
    return ordered[:mid], ordered[mid:]


def median_cut_bins(samples: np.ndarray, k: int) -> List[np.ndarray]:
    """Partition samples into k bins.

    Parameters
    ----------
    samples : np.ndarray
        (N, D) samples in the working space, N >= k
    k : int
        Number of bins

    Returns
    -------
    list of np.ndarray
        k non-empty index arrays

    Raises
    ------
    InvalidConfigurationError
        If k < 1 or N < k
    """
    n = samples.shape[0]
    if k < 1 or n < k:
        raise InvalidConfigurationError(f"Cannot cut {n} samples into {k} bins")

    bins = [np.arange(n)]
    variance = [bin_max_variance(samples)]

    while len(bins) < k:
        best = -1
        best_var = -1.0
        for i, idx in enumerate(bins):
            if idx.size < 2:
                continue
            if variance[i][0] > best_var:
                best, best_var = i, variance[i][0]

        axis = variance[best][1]
        target = bins.pop(best)
        variance.pop(best)

        for half in split_bin(samples, target, axis):
            bins.append(half)
            variance.append(bin_max_variance(samples[half]))

    return bins


def median_cut(samples: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
    """Median-Cut quantization of a sample matrix.

    Parameters
    ----------
    samples : np.ndarray
        (N, D) samples, N >= k
    k : int
        Palette size

    Returns
    -------
    centroids : np.ndarray
        (k, D) float64 bin means
    labels : np.ndarray
        (N,) int64 bin index of every sample
    """
    samples = np.asarray(samples, dtype=np.float64)
    bins = median_cut_bins(samples, k)

    centroids = np.empty((k, samples.shape[1]), dtype=np.float64)
    labels = np.empty(samples.shape[0], dtype=np.int64)
    for i, idx in enumerate(bins):
        centroids[i] = samples[idx].mean(axis=0)
        labels[idx] = i

    logger.debug(f"Median cut: {samples.shape[0]} samples → {k} bins, "
                 f"sizes min={min(b.size for b in bins)} max={max(b.size for b in bins)}")
    return centroids, labels
