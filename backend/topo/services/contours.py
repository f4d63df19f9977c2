"""
Extracting every contour of a mesh at a fixed interval.

``extract_contours`` sweeps the levels ``i * interval`` spanning the
surface's elevation range.  For each level it collects the seed sites,
clears the visitation marks, traces each seed that an earlier trace has
not already crossed, and finally looks inside every triangle for loops
that touch no edge.  Levels share nothing but the cleared mark set, so
running the extraction twice on the same mesh yields the same contours
in the same order.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .tin import Mesh
from .tracing import (
    AnomalyLog,
    Polyline,
    VisitMarks,
    find_seeds,
    trace_boundary,
    trace_interior,
)

logger = logging.getLogger(__name__)


@dataclass
class ContourSet:
    """Raw contour polylines keyed by level, lowest level first."""

    interval: float
    levels: Dict[float, List[Polyline]] = field(default_factory=dict)
    anomalies: AnomalyLog = field(default_factory=AnomalyLog)

    def add(self, poly: Polyline) -> None:
        self.levels.setdefault(poly.elevation, []).append(poly)

    def at(self, level: float) -> List[Polyline]:
        return self.levels.get(level, [])

    def __iter__(self) -> Iterator[Polyline]:
        for polys in self.levels.values():
            yield from polys

    def __len__(self) -> int:
        return sum(len(polys) for polys in self.levels.values())


def check_interval(interval: float) -> float:
    interval = float(interval)
    if not math.isfinite(interval) or interval <= 0.0:
        raise ValueError(f"contour interval must be a positive number, got {interval!r}")
    return interval


def sweep_level(
    mesh: Mesh,
    level: float,
    marks: VisitMarks,
    log: AnomalyLog,
) -> List[Polyline]:
    """Trace every contour at one level.

    ``marks`` is cleared before tracing and left holding every site the
    traces crossed.
    """
    found: List[Polyline] = []
    seeds = find_seeds(mesh, level)
    marks.clear()
    for seed in seeds:
        if marks.is_marked(seed):
            continue
        poly = trace_boundary(mesh, seed, level, marks, log)
        poly.dedup()
        if poly.is_degenerate():
            logger.debug("sweep_level: dropping degenerate contour at %s (%d points)", level, len(poly))
            continue
        found.append(poly)
    for tri in mesh.triangles:
        poly = trace_interior(mesh, tri.index, level, log)
        if poly is not None:
            found.append(poly)
    return found


def extract_contours(
    mesh: Mesh,
    interval: float,
    log: Optional[AnomalyLog] = None,
) -> ContourSet:
    """Extract contours of ``mesh`` at every multiple of ``interval``.

    Args:
        mesh: The surface to contour.
        interval: Vertical distance between levels.  Must be positive.
        log: Optional anomaly log to append to; a new one is created
            otherwise and attached to the result.

    Returns:
        A fresh :class:`ContourSet`.

    Raises:
        ValueError: If ``interval`` is not a positive finite number.
    """
    interval = check_interval(interval)
    result = ContourSet(interval, anomalies=log if log is not None else AnomalyLog())
    lo, hi = mesh.elevation_range()
    marks = VisitMarks()
    first = math.floor(lo / interval)
    last = math.ceil(hi / interval)
    logger.info(
        "Extracting contours: interval=%s range=[%s, %s] levels=%d",
        interval,
        lo,
        hi,
        last - first + 1,
    )
    for i in range(first, last + 1):
        level = i * interval
        for poly in sweep_level(mesh, level, marks, result.anomalies):
            result.add(poly)
    logger.info(
        "Extracted %d contours with %d anomalies", len(result), len(result.anomalies)
    )
    return result
