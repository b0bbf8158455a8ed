"""Lightweight wall-clock timing for pipeline stages.

Provides:
    - timer(): context manager measuring one block, reporting to a sink
    - StageTimings: thread-safe accumulator of per-stage totals

Used to measure:
    - Quantization (superpixels + clustering)
    - Simplification and stray-pixel cleanup
    - Per-layer chunking, path generation and optimization

No heavy dependencies (no cProfile overhead on per-pixel loops).
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None):
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name
    sink : Optional[Callable[[str, float], None]]
        Callback(name, elapsed_seconds); logs at DEBUG when None

    Examples
    --------
    >>> timings = StageTimings()
    >>> with timer("quantize", sink=timings.add):
    ...     result = quantize(buf, cfg)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            logger.debug(f"{name}: {elapsed:.3f} s")


class StageTimings:
    """Accumulate elapsed seconds per stage name.

    Layer workers report into the same instance, so updates are locked.
    """

    def __init__(self):
        self._totals: Dict[str, float] = {}
        self._counts: Dict[str, int] = {}
        self._lock = threading.Lock()

    def add(self, name: str, elapsed: float) -> None:
        with self._lock:
            self._totals[name] = self._totals.get(name, 0.0) + elapsed
            self._counts[name] = self._counts.get(name, 0) + 1

    def total(self, name: str) -> float:
        with self._lock:
            return self._totals.get(name, 0.0)

    def count(self, name: str) -> int:
        with self._lock:
            return self._counts.get(name, 0)

    def as_dict(self) -> Dict[str, float]:
        """Snapshot of stage totals in seconds."""
        with self._lock:
            return dict(self._totals)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v:.3f}s" for k, v in self.as_dict().items())
        return f"StageTimings({body})"
