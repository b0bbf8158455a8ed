"""Action-set optimizer.

Layers with stippling or fine detail produce thousands of tiny action sets,
and every set costs a pen lift, a travel move and a pen drop. The optimizer
merges clusters of small nearby sets and orders strokes to cut travel.

Algorithm:
    1. Partition sets into small (len <= small_set_threshold) and large
    2. Fewer small sets than min_cluster_size: only spatial ordering applies
    3. Cluster small sets transitively: two sets share a cluster when their
       centroids are within cluster_distance (directly or through a chain)
    4. Clusters with >= min_cluster_size members are pooled into one point
       set and split into connected components (points within
       max_connected_distance touch); each component becomes one stroke,
       ordered by a greedy nearest-neighbour walk from its top-left point
    5. Output = large sets, then small sets of undersized clusters, then
       merged components (before optional ordering)
    6. Optional serpentine ordering: centroids are binned into horizontal
       bands of height max(30, span / 20); even bands run left to right,
       odd bands right to left

Component splitting means the pen never draws across a gap between pixels
that did not touch in the mask. The result is deterministic for a fixed
input order and thresholds.

Usage:
    from autoart.data_pipeline.optimizer import optimize_action_sets
    optimized = optimize_action_sets(actions, OptimizerConfig(cluster_distance=15))
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree

from ..utils.validators import OptimizerConfig

logger = logging.getLogger(__name__)

Point = Tuple[int, int]
ActionSet = List[Point]

MIN_ROW_HEIGHT = 30.0
ROW_DIVISIONS = 20


# ============================================================================
# STATISTICS
# ============================================================================

@dataclass(frozen=True)
class ActionSetStatistics:
    """Size distribution of a layer's action sets."""
    total_action_sets: int
    total_points: int
    small_action_sets: int
    large_action_sets: int
    min_set_size: int
    max_set_size: int
    average_set_size: float

    def __str__(self) -> str:
        return (
            f"ActionSets: {self.total_action_sets} (Small: {self.small_action_sets}, "
            f"Large: {self.large_action_sets}), Points: {self.total_points}, "
            f"Size: min={self.min_set_size}, max={self.max_set_size}, avg={self.average_set_size:.1f}"
        )


def analyze_action_sets(actions: Sequence[ActionSet], small_set_threshold: int = 10) -> ActionSetStatistics:
    """Summarize action-set sizes without modifying them."""
    sizes = [len(a) for a in actions]
    small = sum(1 for s in sizes if s <= small_set_threshold)
    return ActionSetStatistics(
        total_action_sets=len(sizes),
        total_points=sum(sizes),
        small_action_sets=small,
        large_action_sets=len(sizes) - small,
        min_set_size=min(sizes) if sizes else 0,
        max_set_size=max(sizes) if sizes else 0,
        average_set_size=float(np.mean(sizes)) if sizes else 0.0,
    )


def discard_small_action_sets(actions: Sequence[ActionSet], min_size: int = 100) -> List[ActionSet]:
    """Drop action sets shorter than min_size points (simplified drawing)."""
    kept = [a for a in actions if len(a) >= min_size]
    if len(kept) < len(actions):
        logger.info(f"Simplified mode discarded {len(actions) - len(kept)} of {len(actions)} action sets")
    return kept


# ============================================================================
# GEOMETRY HELPERS
# ============================================================================

def centroid(points: Sequence[Point]) -> np.ndarray:
    """Mean (x, y) of a point list; (0, 0) when empty."""
    if not points:
        return np.zeros(2)
    return np.asarray(points, dtype=np.float64).mean(axis=0)


def _components_in_order(n: int, pairs: np.ndarray) -> List[List[int]]:
    """Connected components of an undirected graph given as index pairs.

    Components are numbered by their lowest member index, members ascending.
    """
    if pairs.size:
        graph = coo_matrix(
            (np.ones(len(pairs), dtype=np.int8), (pairs[:, 0], pairs[:, 1])), shape=(n, n)
        )
    else:
        graph = coo_matrix((n, n), dtype=np.int8)
    _, labels = connected_components(graph, directed=False)

    groups: dict = {}
    for idx, label in enumerate(labels.tolist()):
        groups.setdefault(label, []).append(idx)
    return list(groups.values())


def cluster_by_proximity(centroids: np.ndarray, max_distance: float) -> List[List[int]]:
    """Transitive clusters of centroids within max_distance of each other."""
    if len(centroids) == 0:
        return []
    pairs = cKDTree(centroids).query_pairs(r=max_distance, output_type="ndarray")
    return _components_in_order(len(centroids), pairs)


def nearest_neighbour_path(points: Sequence[Point]) -> ActionSet:
    """Greedy nearest-neighbour ordering starting at the top-left point.

    Ties go to the earliest point in the input order.
    """
    if len(points) <= 1:
        return list(points)
    coords = np.asarray(points, dtype=np.float64)
    remaining = np.ones(len(points), dtype=bool)

    current = min(range(len(points)), key=lambda i: (points[i][1], points[i][0]))
    path = [points[current]]
    remaining[current] = False
    for _ in range(len(points) - 1):
        d2 = np.sum((coords - coords[current]) ** 2, axis=1)
        d2[~remaining] = np.inf
        current = int(np.argmin(d2))
        path.append(points[current])
        remaining[current] = False
    return path


def merge_into_connected_paths(sets: Sequence[ActionSet], max_connected_distance: float) -> List[ActionSet]:
    """Pool the points of several sets and return one path per connected component."""
    unique = list(dict.fromkeys(p for s in sets for p in s))
    if not unique:
        return []
    pairs = cKDTree(np.asarray(unique, dtype=np.float64)).query_pairs(
        r=max_connected_distance, output_type="ndarray"
    )
    return [
        nearest_neighbour_path([unique[i] for i in component])
        for component in _components_in_order(len(unique), pairs)
    ]


def sort_spatially(actions: Sequence[ActionSet], centroids: Optional[np.ndarray] = None) -> List[ActionSet]:
    """Serpentine (boustrophedon) ordering of action sets by centroid."""
    if len(actions) <= 1:
        return list(actions)
    if centroids is None:
        centroids = np.stack([centroid(a) for a in actions])

    ys = centroids[:, 1]
    min_y = float(ys.min())
    height = float(ys.max()) - min_y
    row_height = max(MIN_ROW_HEIGHT, height / ROW_DIVISIONS)
    n_rows = max(1, int(np.ceil(height / row_height)))
    rows = np.minimum(n_rows - 1, ((ys - min_y) / row_height).astype(np.int64))

    ordered: List[ActionSet] = []
    for r in range(n_rows):
        members = np.flatnonzero(rows == r)
        if members.size == 0:
            continue
        xs = centroids[members, 0]
        key = xs if r % 2 == 0 else -xs
        for i in members[np.argsort(key, kind="stable")]:
            ordered.append(actions[i])

    logger.debug(f"Spatial ordering: {n_rows} rows, serpentine pattern")
    return ordered


# ============================================================================
# PUBLIC API
# ============================================================================

def optimize_action_sets(
    actions: Sequence[ActionSet],
    config: Optional[OptimizerConfig] = None,
) -> List[ActionSet]:
    """Merge clusters of small action sets and order strokes spatially.

    Parameters
    ----------
    actions : Sequence[ActionSet]
        Action sets from path generation
    config : OptimizerConfig, optional
        Thresholds; defaults when None

    Returns
    -------
    List[ActionSet]
        Optimized action sets covering the same points
    """
    config = config or OptimizerConfig()
    actions = list(actions)
    if not config.enabled or not actions:
        return actions

    small = [i for i, a in enumerate(actions) if len(a) <= config.small_set_threshold]
    large = [i for i, a in enumerate(actions) if len(a) > config.small_set_threshold]

    if len(small) < config.min_cluster_size:
        return sort_spatially(actions) if config.spatial_ordering else actions

    small_centroids = np.stack([centroid(actions[i]) for i in small])
    clusters = cluster_by_proximity(small_centroids, config.cluster_distance)

    unmerged: List[ActionSet] = []
    merged: List[ActionSet] = []
    for cluster in clusters:
        members = [actions[small[c]] for c in cluster]
        if len(members) >= config.min_cluster_size:
            merged.extend(merge_into_connected_paths(members, config.max_connected_distance))
        else:
            unmerged.extend(members)

    result = [actions[i] for i in large] + unmerged + merged
    if config.spatial_ordering:
        result = sort_spatially(result)

    reduction = len(actions) - len(result)
    if reduction > 0:
        logger.info(
            f"Reduced action sets from {len(actions)} to {len(result)} "
            f"(-{reduction}, {100.0 * reduction / len(actions):.1f}% reduction)"
        )
    elif reduction < 0:
        logger.info(
            f"Action sets changed from {len(actions)} to {len(result)} "
            f"(+{-reduction} from connected component splitting)"
        )
    return result
