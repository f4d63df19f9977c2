"""
Tracing contour polylines across the mesh.

A contour at a given level crosses mesh edges at *sites* identified by
:class:`OrientedEdgeHandle`.  Tracing starts from a seed site, walks the
contour through the sub‑triangle grid of each triangle it enters with
:meth:`CrossingLocator.proceed`, and hops to the neighbouring triangle
whenever it leaves through a mesh edge.  Every site crossed is recorded
in a :class:`VisitMarks` set so that each contour is traced exactly once
per level: meeting a marked site means the contour has closed on itself.

Contours that never touch a mesh edge (a small loop around a bump in
the middle of one triangle) are found separately by
:func:`trace_interior`.

Data pathologies never raise.  They are logged and collected in an
:class:`AnomalyLog`, and the affected trace ends early as an open
polyline.  Verbose per‑site logging is enabled with the
``CONTOUR_DEBUG`` environment variable.
"""

from __future__ import annotations

import enum
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Set

from .crossing import OrientedEdgeHandle, StepKind, SubPosition
from .tin import Mesh, Point3

logger = logging.getLogger(__name__)

# Maximum number of sub-triangles crossed by one walk inside a triangle
ITERATION_LIMIT = 256


class AnomalyKind(str, enum.Enum):
    REPEATED_POINT = "repeated_point"
    STALLED_EDGE = "stalled_edge"
    MID_TRIANGLE_STOP = "mid_triangle_stop"
    ITERATION_LIMIT = "iteration_limit"
    START_ON_NAN = "start_on_nan"
    LOCATION_FAILURE = "location_failure"
    SPLIT_REJECTED = "split_rejected"


@dataclass
class Anomaly:
    kind: AnomalyKind
    elevation: float
    detail: str


class AnomalyLog:
    """Collects data anomalies met while tracing and smoothing."""

    def __init__(self) -> None:
        self.records: List[Anomaly] = []

    def report(self, kind: AnomalyKind, elevation: float, message: str, *args: object) -> None:
        detail = message % args if args else message
        logger.warning("%s at elevation %s: %s", kind.value, elevation, detail)
        self.records.append(Anomaly(kind, elevation, detail))

    def count(self, kind: AnomalyKind) -> int:
        return sum(1 for r in self.records if r.kind is kind)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Anomaly]:
        return iter(self.records)


class VisitMarks:
    """Sites already traced at the current level."""

    def __init__(self) -> None:
        self._marked: Set[OrientedEdgeHandle] = set()

    def mark(self, handle: OrientedEdgeHandle) -> None:
        self._marked.add(handle)

    def is_marked(self, handle: OrientedEdgeHandle) -> bool:
        return handle in self._marked

    def clear(self) -> None:
        self._marked.clear()

    def __len__(self) -> int:
        return len(self._marked)


@dataclass
class Polyline:
    """An ordered run of points at one elevation.

    A closed polyline does not repeat its first point at the end.
    """

    elevation: float
    points: List[Point3] = field(default_factory=list)
    closed: bool = True

    def append(self, pt: Point3) -> None:
        self.points.append(pt)

    def dedup(self) -> None:
        """Drop consecutive duplicates, including a closing repeat of the first point."""
        kept: List[Point3] = []
        for pt in self.points:
            if not kept or pt != kept[-1]:
                kept.append(pt)
        if self.closed and len(kept) > 1 and kept[0] == kept[-1]:
            kept.pop()
        self.points = kept

    def is_degenerate(self) -> bool:
        distinct = len(set(self.points))
        return distinct < (3 if self.closed else 2)

    def length(self) -> float:
        pts = self.points
        total = sum(math.hypot(q[0] - p[0], q[1] - p[1]) for p, q in zip(pts, pts[1:]))
        if self.closed and len(pts) > 2:
            total += math.hypot(pts[0][0] - pts[-1][0], pts[0][1] - pts[-1][1])
        return total

    def __len__(self) -> int:
        return len(self.points)


def find_seeds(mesh: Mesh, level: float) -> List[OrientedEdgeHandle]:
    """Return the sites at which tracing may start for ``level``.

    Boundary edges are scanned first and every crossing on them is a seed,
    since nothing outside the mesh can lead to them.  Interior edges follow;
    each of their crossings is listed once, from the triangle that sees it
    as upleft.  Within each pass edges are taken in storage order.
    """
    seeds: List[OrientedEdgeHandle] = []
    n = mesh.subdivisions
    for interior in (False, True):
        for edge in mesh.edges:
            if edge.is_interior() != interior:
                continue
            owners = [t for t in (edge.tria, edge.trib) if t is not None]
            loc = mesh.locator(owners[0])
            for part in range(n):
                handle = OrientedEdgeHandle(edge.index, part)
                if not loc.crosses(loc.subdir(handle).segment, level):
                    continue
                if interior and sum(_is_upleft(mesh, t, handle) for t in owners) != 1:
                    continue
                seeds.append(handle)
    if os.getenv("CONTOUR_DEBUG"):
        logger.debug("find_seeds: level=%s seeds=%d", level, len(seeds))
    return seeds


def _is_upleft(mesh: Mesh, tri: int, handle: OrientedEdgeHandle) -> bool:
    loc = mesh.locator(tri)
    return loc.upleft(loc.subdir(handle))


def _start_triangle(mesh: Mesh, seed: OrientedEdgeHandle) -> int:
    edge = mesh.edges[seed.edge]
    if edge.tria is None or edge.trib is None:
        return edge.tria if edge.tria is not None else edge.trib  # type: ignore[return-value]
    return edge.tria if _is_upleft(mesh, edge.tria, seed) else edge.trib


def trace_boundary(
    mesh: Mesh,
    seed: OrientedEdgeHandle,
    level: float,
    marks: VisitMarks,
    log: AnomalyLog,
) -> Polyline:
    """Trace the contour through ``seed`` until it closes or leaves the mesh.

    Returns a closed polyline if the trace came back to a marked site and
    an open one if it reached the mesh boundary or had to stop early.
    """
    ret = Polyline(level)
    tri = _start_triangle(mesh, seed)
    loc = mesh.locator(tri)
    marks.mark(seed)
    position = loc.subdir(seed)
    first = loc.contourcept(position.segment, level)
    if first is None:
        log.report(AnomalyKind.START_ON_NAN, level, "crossing at seed %s is indeterminate", seed)
        ret.closed = False
        return ret
    last = first
    ret.append(first)
    handle = seed

    while True:
        prev_handle = handle
        steps = 0
        step = loc.proceed(position, level)
        while step.kind is StepKind.PROGRESSED:
            cept = loc.contourcept(step.segment, level)
            if cept is not None:
                if cept != last:
                    ret.append(cept)
                else:
                    log.report(
                        AnomalyKind.REPEATED_POINT,
                        level,
                        "repeated crossing in triangle %d after %d points",
                        tri,
                        len(ret),
                    )
                last = cept
            elif os.getenv("CONTOUR_DEBUG"):
                logger.debug("trace: indeterminate crossing skipped in triangle %d", tri)
            position = step.position  # type: ignore[assignment]
            steps += 1
            if steps >= ITERATION_LIMIT:
                log.report(
                    AnomalyKind.ITERATION_LIMIT,
                    level,
                    "walk through triangle %d exceeded %d steps",
                    tri,
                    ITERATION_LIMIT,
                )
                ret.closed = False
                return ret
            step = loc.proceed(position, level)

        if step.kind is StepKind.STALLED:
            # A stalled walk ends the trace as an open polyline
            log.report(
                AnomalyKind.MID_TRIANGLE_STOP,
                level,
                "tracing stopped in the middle of triangle %d after %d points",
                tri,
                len(ret),
            )
            ret.closed = False
            return ret

        handle = loc.edgepart(step.segment)  # type: ignore[assignment]
        if handle is None or handle == prev_handle:
            log.report(
                AnomalyKind.STALLED_EDGE,
                level,
                "edge did not change leaving triangle %d",
                tri,
            )
            ret.closed = False
            return ret

        was_marked = marks.is_marked(handle)
        if was_marked:
            break
        cept = loc.contourcept(step.segment, level)
        if cept is not None and cept != last and cept != first:
            ret.append(cept)
        if cept is not None:
            last = cept
        marks.mark(handle)
        next_tri = mesh.edges[handle.edge].other(tri)
        if next_tri is None:
            ret.closed = False
            break
        tri = next_tri
        loc = mesh.locator(tri)
        position = loc.subdir(handle)

    if os.getenv("CONTOUR_DEBUG"):
        logger.debug(
            "trace: level=%s seed=%s points=%d closed=%s", level, seed, len(ret), ret.closed
        )
    return ret


def trace_interior(mesh: Mesh, tri: int, level: float, log: AnomalyLog) -> Optional[Polyline]:
    """Return the contour loop lying wholly inside triangle ``tri``, if any.

    Walks start from each crossed interior sub‑segment in turn.  A walk
    that leaves the triangle belongs to a contour the boundary tracer has
    already followed; one that reaches a sub‑segment numbered below its
    start belongs to a walk already tried.  A walk that returns to its
    start is the interior loop.  A quadratic patch holds at most one.
    """
    loc = mesh.locator(tri)
    zlo, zhi = loc.z_range()
    if not (zlo < level <= zhi):
        return None
    grid = loc.grid
    for segment in range(grid.boundary_count, len(grid.segments)):
        if not loc.crosses(segment, level):
            continue
        sides = grid.segment_tris[segment]
        start = SubPosition(segment, sides[0])
        if not loc.upleft(start):
            start = SubPosition(segment, sides[1])
        visited = [segment]
        position = start
        closed = False
        for _ in range(ITERATION_LIMIT):
            step = loc.proceed(position, level, start=start)
            if step.kind is StepKind.CLOSED:
                closed = True
                break
            if step.kind is not StepKind.PROGRESSED or step.segment < segment:
                break
            visited.append(step.segment)
            position = step.position  # type: ignore[assignment]
        else:
            log.report(
                AnomalyKind.ITERATION_LIMIT,
                level,
                "interior walk in triangle %d exceeded %d steps",
                tri,
                ITERATION_LIMIT,
            )
            continue
        if not closed:
            continue
        ret = Polyline(level, closed=True)
        for s in visited:
            cept = loc.contourcept(s, level)
            if cept is not None:
                ret.append(cept)
        ret.dedup()
        if ret.is_degenerate():
            return None
        return ret
    return None
