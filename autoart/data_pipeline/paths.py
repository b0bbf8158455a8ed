"""Stroke (action set) generation for one layer mask.

Each chunk of a layer is turned into one or more action sets: ordered
(x, y) point lists the actuator traces with the pen down.

Grid states:
    0 = background, 1 = ink not yet drawn, 2 = ink already emitted

The grid is shared by all chunks of one layer. Every still-undrawn pixel
met while scanning a chunk in raster order seeds a new action set.

Algorithms:
    dfs:
        Iterative depth-first search over the 8 neighbours (pushed in the
        order up, right, down, left, TL, TR, BR, BL and marked on push).
        When a popped pixel is not adjacent to the previously emitted one,
        the gap is bridged with an 8-connected A* path over ink pixels
        (Manhattan heuristic, unit step cost); bridge cells are emitted
        again and marked drawn. If no bridge exists a new action set starts.
    edge_follow:
        Wall-following walk starting with heading "right": try turning
        left, straight, right, reverse, then the diagonals TL, TR, BR, BL.
        Cardinal moves update the heading; diagonal moves keep it. The walk
        ends when no undrawn neighbour remains.

Invariant: consecutive points of one action set are 8-adjacent and every
point lies on the mask.
"""

import heapq
import itertools
import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..utils.errors import InvalidConfigurationError
from ..utils.validators import PathAlgorithm
from .chunking import Chunk, find_chunks

logger = logging.getLogger(__name__)

Point = Tuple[int, int]
ActionSet = List[Point]

BACKGROUND = 0
INK = 1
DRAWN = 2

# Up, right, down, left, top-left, top-right, bottom-right, bottom-left as (dx, dy)
DIRECTIONS: Tuple[Point, ...] = (
    (0, -1), (1, 0), (0, 1), (-1, 0),
    (-1, -1), (1, -1), (1, 1), (-1, 1),
)


def is_adjacent(a: Point, b: Point) -> bool:
    """True when b is one of the 8 neighbours of a."""
    dx = abs(a[0] - b[0])
    dy = abs(a[1] - b[1])
    return max(dx, dy) == 1


def make_grid(mask: np.ndarray) -> np.ndarray:
    """Traversal grid: INK where mask is set, BACKGROUND elsewhere."""
    return np.where(np.asarray(mask, dtype=bool), INK, BACKGROUND).astype(np.uint8)


def _in_bounds(grid: np.ndarray, x: int, y: int) -> bool:
    return 0 <= y < grid.shape[0] and 0 <= x < grid.shape[1]


def astar(start: Point, goal: Point, grid: np.ndarray) -> Optional[List[Point]]:
    """Shortest 8-connected path over non-background cells.

    Parameters
    ----------
    start, goal : Point
        (x, y) endpoints
    grid : np.ndarray
        (H, W) traversal grid; any nonzero cell is passable

    Returns
    -------
    List[Point] or None
        Path from start to goal inclusive, None if unreachable
    """
    gx, gy = goal
    counter = itertools.count()
    open_heap = [(abs(start[0] - gx) + abs(start[1] - gy), next(counter), start)]
    g_score: Dict[Point, int] = {start: 0}
    came_from: Dict[Point, Point] = {}
    closed = set()

    while open_heap:
        _, _, current = heapq.heappop(open_heap)
        if current == goal:
            path = [current]
            while current in came_from:
                current = came_from[current]
                path.append(current)
            path.reverse()
            return path
        if current in closed:
            continue
        closed.add(current)

        cx, cy = current
        for dx, dy in DIRECTIONS:
            nx, ny = cx + dx, cy + dy
            nxt = (nx, ny)
            if not _in_bounds(grid, nx, ny) or grid[ny, nx] == BACKGROUND or nxt in closed:
                continue
            tentative = g_score[current] + 1
            if tentative < g_score.get(nxt, np.iinfo(np.int64).max):
                came_from[nxt] = current
                g_score[nxt] = tentative
                f = tentative + abs(nx - gx) + abs(ny - gy)
                heapq.heappush(open_heap, (f, next(counter), nxt))

    return None


def dfs_action_sets(start: Point, grid: np.ndarray) -> List[ActionSet]:
    """Depth-first traversal from one seed, bridging gaps with A*.

    Usually returns a single action set; a new one starts only when A*
    cannot reach the next popped pixel.
    """
    sets: List[ActionSet] = []
    path: ActionSet = []
    stack = [start]
    grid[start[1], start[0]] = DRAWN

    while stack:
        current = stack.pop()

        if path and not is_adjacent(path[-1], current):
            bridge = astar(path[-1], current, grid)
            if bridge is None:
                sets.append(path)
                path = []
            else:
                for x, y in bridge[1:-1]:
                    grid[y, x] = DRAWN
                path.extend(bridge[1:-1])

        path.append(current)

        cx, cy = current
        for dx, dy in DIRECTIONS:
            nx, ny = cx + dx, cy + dy
            if _in_bounds(grid, nx, ny) and grid[ny, nx] == INK:
                grid[ny, nx] = DRAWN
                stack.append((nx, ny))

    sets.append(path)
    return sets


def _turn_order(heading: int) -> Tuple[int, ...]:
    return ((heading + 3) % 4, heading, (heading + 1) % 4, (heading + 2) % 4, 4, 5, 6, 7)


def edge_follow_action_set(start: Point, grid: np.ndarray) -> ActionSet:
    """Left-hand wall-following walk from a seed pixel."""
    path: ActionSet = [start]
    grid[start[1], start[0]] = DRAWN
    x, y = start
    heading = 1

    while True:
        for d in _turn_order(heading):
            dx, dy = DIRECTIONS[d]
            nx, ny = x + dx, y + dy
            if _in_bounds(grid, nx, ny) and grid[ny, nx] == INK:
                grid[ny, nx] = DRAWN
                path.append((nx, ny))
                x, y = nx, ny
                if d < 4:
                    heading = d
                break
        else:
            return path


def generate_action_sets(
    mask: np.ndarray,
    algorithm: Union[PathAlgorithm, str] = PathAlgorithm.DFS,
    chunks: Optional[Sequence[Chunk]] = None,
) -> List[ActionSet]:
    """Generate action sets covering every ink pixel of a mask.

    Parameters
    ----------
    mask : np.ndarray
        (H, W) bool layer mask
    algorithm : PathAlgorithm or str
        "dfs" (default) or "edge_follow"
    chunks : Sequence[Chunk], optional
        Precomputed chunks of mask; computed when None

    Returns
    -------
    List[ActionSet]
        Action sets in generation order

    Raises
    ------
    InvalidConfigurationError
        If algorithm names no supported traversal
    """
    try:
        algorithm = PathAlgorithm(algorithm)
    except ValueError as e:
        allowed = [a.value for a in PathAlgorithm]
        raise InvalidConfigurationError(
            f"Unsupported path algorithm {algorithm!r}, expected one of {allowed}"
        ) from e
    grid = make_grid(mask)
    if chunks is None:
        chunks = find_chunks(mask)

    actions: List[ActionSet] = []
    for chunk in chunks:
        for x, y in chunk.points:
            if grid[y, x] != INK:
                continue
            if algorithm == PathAlgorithm.DFS:
                actions.extend(dfs_action_sets((x, y), grid))
            else:
                actions.append(edge_follow_action_set((x, y), grid))

    logger.debug(
        f"{algorithm.value}: {len(chunks)} chunks → {len(actions)} action sets, "
        f"{sum(len(a) for a in actions)} points"
    )
    return actions
