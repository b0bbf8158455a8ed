"""K-Means clustering over color samples.

Algorithm:
    1. Initialize k centroids with K-Means++ or a Median-Cut pass
    2. Assign every sample to its nearest centroid (squared Euclidean)
    3. Stop when no assignment changed, else recompute centroids as means
    4. A centroid left without members is reseeded to a random sample
    5. After the loop every empty cluster steals one random sample from a
       cluster with more than one member, so all k clusters are populated

Concurrency:
    Assignment runs over contiguous sample partitions in a thread pool
    (numpy releases the GIL inside the distance kernels). Each partition
    writes a disjoint slice of the label array and returns its own partial
    sums; partials are reduced in partition order, so results do not depend
    on thread scheduling. Centroids are only updated after every partition
    has finished.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np

from ..utils.errors import InvalidConfigurationError
from .median_cut import median_cut

logger = logging.getLogger(__name__)

# Samples per partition for assignment and partial sums
PARTITION_SIZE = 65536


def _partitions(n: int, size: Optional[int] = None) -> List[slice]:
    size = size or PARTITION_SIZE
    return [slice(start, min(start + size, n)) for start in range(0, n, size)]


def nearest_centroid(samples: np.ndarray, centroids: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Index of and squared distance to the nearest centroid for each sample.

    Ties resolve to the lowest centroid index.
    """
    d2 = (
        np.sum(samples * samples, axis=1)[:, None]
        - 2.0 * samples @ centroids.T
        + np.sum(centroids * centroids, axis=1)[None, :]
    )
    np.maximum(d2, 0.0, out=d2)
    labels = np.argmin(d2, axis=1)
    return labels.astype(np.int64), d2[np.arange(samples.shape[0]), labels]


def _assign_partition(
    samples: np.ndarray,
    centroids: np.ndarray,
    labels: np.ndarray,
    part: slice,
    k: int,
) -> Tuple[bool, np.ndarray, np.ndarray]:
    """Assign one partition; return (changed, partial_sums, partial_counts)."""
    chunk = samples[part]
    new_labels, _ = nearest_centroid(chunk, centroids)
    changed = bool(np.any(new_labels != labels[part]))
    labels[part] = new_labels

    counts = np.bincount(new_labels, minlength=k)
    sums = np.stack(
        [np.bincount(new_labels, weights=chunk[:, d], minlength=k) for d in range(chunk.shape[1])],
        axis=1,
    )
    return changed, sums, counts


def assign(
    samples: np.ndarray,
    centroids: np.ndarray,
    labels: np.ndarray,
    executor: Optional[ThreadPoolExecutor] = None,
) -> Tuple[bool, np.ndarray, np.ndarray]:
    """Assign all samples in place and reduce the partial cluster sums.

    Parameters
    ----------
    samples : np.ndarray
        (N, D) samples
    centroids : np.ndarray
        (k, D) current centroids
    labels : np.ndarray
        (N,) label array, updated in place
    executor : ThreadPoolExecutor, optional
        Pool for partition work; runs inline when None

    Returns
    -------
    changed : bool
        Whether any sample changed cluster
    sums : np.ndarray
        (k, D) per-cluster sums
    counts : np.ndarray
        (k,) per-cluster member counts
    """
    k = centroids.shape[0]
    parts = _partitions(samples.shape[0])
    if executor is None or len(parts) == 1:
        results = [_assign_partition(samples, centroids, labels, p, k) for p in parts]
    else:
        futures = [executor.submit(_assign_partition, samples, centroids, labels, p, k) for p in parts]
        results = [f.result() for f in futures]

    changed = False
    sums = np.zeros((k, samples.shape[1]), dtype=np.float64)
    counts = np.zeros(k, dtype=np.int64)
    for part_changed, part_sums, part_counts in results:
        changed |= part_changed
        sums += part_sums
        counts += part_counts
    return changed, sums, counts


def kmeans_plus_plus(samples: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """K-Means++ seeding.

    The first centroid is a uniformly random sample; each next one is drawn
    with probability proportional to the squared distance to the nearest
    centroid chosen so far (uniformly when every distance is zero).
    """
    n = samples.shape[0]
    centroids = np.empty((k, samples.shape[1]), dtype=np.float64)
    centroids[0] = samples[rng.integers(n)]
    closest = np.sum((samples - centroids[0]) ** 2, axis=1)

    for i in range(1, k):
        total = closest.sum()
        if total > 0:
            idx = int(rng.choice(n, p=closest / total))
        else:
            idx = int(rng.integers(n))
        centroids[i] = samples[idx]
        closest = np.minimum(closest, np.sum((samples - centroids[i]) ** 2, axis=1))

    return centroids


def _fill_empty_clusters(
    samples: np.ndarray,
    centroids: np.ndarray,
    labels: np.ndarray,
    rng: np.random.Generator,
) -> int:
    """Give every empty cluster one sample taken from a multi-member cluster."""
    k = centroids.shape[0]
    counts = np.bincount(labels, minlength=k)
    filled = 0
    for cluster in np.flatnonzero(counts == 0):
        donors = np.flatnonzero(counts[labels] > 1)
        if donors.size == 0:
            break
        idx = int(donors[rng.integers(donors.size)])
        counts[labels[idx]] -= 1
        labels[idx] = cluster
        counts[cluster] = 1
        centroids[cluster] = samples[idx]
        filled += 1
    return filled


def kmeans(
    samples: np.ndarray,
    k: int,
    max_iter: int = 12,
    init: str = "kmeans++",
    rng: Optional[np.random.Generator] = None,
    max_workers: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Cluster samples into exactly k groups.

    Parameters
    ----------
    samples : np.ndarray
        (N, D) samples in the working space, N >= k
    k : int
        Number of clusters
    max_iter : int
        Iteration cap, default 12
    init : str
        "kmeans++" (default) or "median_cut"
    rng : np.random.Generator, optional
        Source of randomness; a fresh unseeded generator when None
    max_workers : int, optional
        Threads for the assignment step; inline when 1

    Returns
    -------
    centroids : np.ndarray
        (k, D) float64 centroids
    labels : np.ndarray
        (N,) int64 cluster of every sample; every cluster has a member

    Raises
    ------
    InvalidConfigurationError
        If k < 1, N < k or init is unknown
    """
    samples = np.asarray(samples, dtype=np.float64)
    n = samples.shape[0]
    if k < 1 or n < k:
        raise InvalidConfigurationError(f"Cannot form {k} clusters from {n} samples")
    rng = rng if rng is not None else np.random.default_rng()

    if init == "kmeans++":
        centroids = kmeans_plus_plus(samples, k, rng)
    elif init == "median_cut":
        centroids, _ = median_cut(samples, k)
    else:
        raise InvalidConfigurationError(f"Unknown initializer: {init}. Use 'kmeans++' or 'median_cut'.")

    labels = np.full(n, -1, dtype=np.int64)
    executor = ThreadPoolExecutor(max_workers=max_workers) if max_workers != 1 else None
    try:
        for iteration in range(max_iter):
            changed, sums, counts = assign(samples, centroids, labels, executor)
            if not changed:
                logger.debug(f"K-Means converged after {iteration} iterations")
                break

            populated = counts > 0
            centroids[populated] = sums[populated] / counts[populated, None]
            for cluster in np.flatnonzero(~populated):
                centroids[cluster] = samples[rng.integers(n)]
            if not populated.all():
                logger.debug(f"K-Means iteration {iteration}: reseeded {int((~populated).sum())} empty clusters")
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    filled = _fill_empty_clusters(samples, centroids, labels, rng)
    if filled:
        logger.debug(f"K-Means: assigned a sample to {filled} empty clusters")

    return centroids, labels
