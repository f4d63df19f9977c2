"""
Turning raw contour polylines into smooth spiral‑arc chains.

Each contour is refined in two passes.  The first treats the polyline
as straight segments and allows half a contour interval of vertical
error; the second sets a bearing at every vertex, so consecutive
segments become tangent spiral arcs, and allows a tenth of an interval.

Within a pass the segments are visited with a stride relatively prime to
their number, which reaches every segment while keeping consecutive
visits apart.  For each segment the surface is compared with the curve
at two clamp points, ``CCHALONG`` and ``1 - CCHALONG`` of the way along.
If either difference is out of tolerance the segment is split: a probe
line is dropped across the chord at the split fraction, and the point on
that probe where the surface reaches the contour's elevation becomes a
new vertex.  Any insertion restarts the sweep of that contour, and the
pass ends once a full sweep inserts nothing.

The split fraction comes from ``SPLIT_TABLE``, indexed by the ratio of
the smaller clamp difference to the larger.  Equal differences give the
middle; a lopsided pair moves the split toward the worse side.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .contours import ContourSet, check_interval
from .curves import Segment, SpiralArc, bearing, normalize_angle, relprime
from .quadindex import SpatialIndex
from .tin import Mesh, Point3
from .tracing import AnomalyKind, AnomalyLog, Polyline

logger = logging.getLogger(__name__)

# Fraction of the way along a segment at which clamp values are measured.
CCHALONG = 0.5 - math.sqrt(3.0) / 6.0

SPLIT_TABLE: Tuple[float, ...] = (
    0.2113, 0.2123, 0.2134, 0.2145, 0.2156, 0.2167, 0.2179, 0.2191, 0.2204, 0.2216, 0.2229, 0.2244, 0.2257,
    0.2272, 0.2288, 0.2303, 0.2319, 0.2337, 0.2354, 0.2372, 0.2390, 0.2410, 0.2430, 0.2451, 0.2472, 0.2495,
    0.2519, 0.2544, 0.2570, 0.2597, 0.2625, 0.2654, 0.2684, 0.2716, 0.2750, 0.2786, 0.2823, 0.2861, 0.2902,
    0.2945, 0.2990, 0.3038, 0.3088, 0.3141, 0.3198, 0.3258, 0.3320, 0.3386, 0.3454, 0.3527, 0.3605, 0.3687,
    0.3773, 0.3862, 0.3955, 0.4053, 0.4153, 0.4256, 0.4362, 0.4469, 0.4577, 0.4684, 0.4792, 0.4897, 0.5000,
)

# Tolerance of each pass as a fraction of the contour interval.
PASS_TOLERANCES = (0.5, 0.1)

# A pass stops inserting once a contour has this many times its starting size.
MAX_GROWTH = 64


def splitpoint(leftclamp: float, rightclamp: float, tolerance: float) -> float:
    """Return where to split a segment, as a fraction of its length, or 0 to keep it.

    Args:
        leftclamp: Curve minus surface elevation at the first clamp point,
            NaN if the surface is unknown there.
        rightclamp: The same at the second clamp point.
        tolerance: Allowed vertical error.
    """
    if math.isnan(leftclamp):
        return CCHALONG
    if math.isnan(rightclamp):
        return 1.0 - CCHALONG
    left, right = abs(leftclamp), abs(rightclamp)
    if left * 27.0 > tolerance * 23.0 or right * 27.0 > tolerance * 23.0:
        right_big = right > left
        ratio = left / right if right_big else right / left
        sp = SPLIT_TABLE[int(round((ratio + 1.0) * 32.0))]
        return 1.0 - sp if right_big else sp
    return 0.0


class ContourCurve:
    """One contour as a chain of segments through its vertices.

    Before :meth:`smooth` the segments are straight.  Afterwards each
    vertex has a bearing and each segment is a :class:`SpiralArc` leaving
    and arriving along the bearings of its end vertices.
    """

    def __init__(self, elevation: float, points: Sequence[Point3], closed: bool) -> None:
        self.elevation = elevation
        self.points: List[Point3] = list(points)
        self.closed = closed
        self.bearings: Optional[List[float]] = None

    @classmethod
    def from_polyline(cls, poly: Polyline) -> "ContourCurve":
        return cls(poly.elevation, poly.points, poly.closed)

    def segment_count(self) -> int:
        n = len(self.points)
        if self.closed and n > 2:
            return n
        return max(n - 1, 0)

    def segment(self, i: int) -> Segment:
        n = len(self.points)
        p, q = self.points[i], self.points[(i + 1) % n]
        if self.bearings is None:
            return Segment(p, q)
        return SpiralArc(p, q, self.bearings[i], self.bearings[(i + 1) % n])

    def segments(self) -> List[Segment]:
        return [self.segment(i) for i in range(self.segment_count())]

    def length(self) -> float:
        return sum(seg.length() for seg in self.segments())

    def _through_bearing(self, i: int) -> float:
        n = len(self.points)
        return bearing(self.points[(i - 1) % n], self.points[(i + 1) % n])

    def _vertex_bearing(self, i: int) -> float:
        pts = self.points
        n = len(pts)
        if self.closed and n > 2:
            return self._through_bearing(i)
        if n < 3:
            return bearing(pts[0], pts[-1])
        if 0 < i < n - 1:
            return self._through_bearing(i)
        # End vertices mirror the neighbouring bearing about the end chord,
        # making the end segment a circular arc.
        if i == 0:
            chord = bearing(pts[0], pts[1])
            return chord - normalize_angle(self._through_bearing(1) - chord)
        chord = bearing(pts[n - 2], pts[n - 1])
        return chord - normalize_angle(self._through_bearing(n - 2) - chord)

    def smooth(self) -> None:
        """Set a bearing at every vertex."""
        self.bearings = [self._vertex_bearing(i) for i in range(len(self.points))]

    def insert(self, pt: Point3, index: int) -> None:
        """Insert a vertex before position ``index``, keeping bearings current."""
        self.points.insert(index, pt)
        if self.bearings is None:
            return
        self.bearings.insert(index, 0.0)
        n = len(self.points)
        if self.closed and n > 2:
            touched = {(index + k) % n for k in (-1, 0, 1)}
        else:
            touched = {k for k in (index - 1, index, index + 1) if 0 <= k < n}
        interior = sorted(k for k in touched if self.closed or 0 < k < n - 1)
        for k in interior:
            self.bearings[k] = self._vertex_bearing(k)
        if not self.closed:
            self.bearings[0] = self._vertex_bearing(0)
            self.bearings[n - 1] = self._vertex_bearing(n - 1)

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class SplitAttempt:
    """A proposed split, kept for diagnostic overlays."""

    elevation: float
    contour: int
    pass_number: int
    fraction: float
    probe: Optional[Tuple[Point3, Point3]]
    point: Optional[Point3]
    accepted: bool


@dataclass
class SmoothContourSet:
    """Smoothed contours keyed by level, lowest level first."""

    interval: float
    levels: Dict[float, List[ContourCurve]] = field(default_factory=dict)
    anomalies: AnomalyLog = field(default_factory=AnomalyLog)
    splits: List[SplitAttempt] = field(default_factory=list)

    def add(self, curve: ContourCurve) -> None:
        self.levels.setdefault(curve.elevation, []).append(curve)

    def at(self, level: float) -> List[ContourCurve]:
        return self.levels.get(level, [])

    def __iter__(self) -> Iterator[ContourCurve]:
        for curves in self.levels.values():
            yield from curves

    def __len__(self) -> int:
        return sum(len(curves) for curves in self.levels.values())


class _Smoother:
    def __init__(
        self,
        mesh: Mesh,
        index: SpatialIndex,
        interval: float,
        result: SmoothContourSet,
        record_splits: bool,
    ) -> None:
        self.mesh = mesh
        self.index = index
        self.interval = interval
        self.result = result
        self.record_splits = record_splits

    def refine(self, curve: ContourCurve, number: int, pass_number: int, tolerance: float) -> int:
        """Split segments of ``curve`` until all are within ``tolerance``; return the insert count."""
        orig = size = curve.segment_count()
        if size == 0:
            return 0
        inserted = 0
        n = 0
        j = 0
        while j < size:
            j += 1
            n = (n + relprime(size)) % size
            wide = size / orig if size > 2 * orig else 1.0
            seg = curve.segment(n)
            fraction = self.split_fraction(seg, curve.elevation, tolerance * wide, number, n)
            if not fraction or seg.length() <= self.interval:
                continue
            if size >= orig * MAX_GROWTH:
                logger.warning(
                    "smooth_contours: contour %d at %s reached %d segments; stopping pass %d",
                    number,
                    curve.elevation,
                    size,
                    pass_number,
                )
                break
            pt, probe = self.split(seg, fraction, curve.elevation)
            accepted = pt is not None and pt != seg.start and pt != seg.end
            if self.record_splits:
                self.result.splits.append(
                    SplitAttempt(
                        curve.elevation,
                        number,
                        pass_number,
                        fraction,
                        (probe.start, probe.end) if probe is not None else None,
                        pt,
                        accepted,
                    )
                )
            if accepted:
                curve.insert(pt, n + 1)  # type: ignore[arg-type]
                size = curve.segment_count()
                inserted += 1
                j = 0
        return inserted

    def split_fraction(
        self, seg: Segment, level: float, tolerance: float, number: int, n: int
    ) -> float:
        length = seg.length()
        lpt = seg.station(length * CCHALONG)
        rpt = seg.station(length * (1.0 - CCHALONG))
        if not all(math.isfinite(c) for c in lpt + rpt):
            return 0.0
        mid = ((seg.start[0] + seg.end[0]) / 2.0, (seg.start[1] + seg.end[1]) / 2.0)
        tri = self.index.locate(mid)
        mesh = self.mesh
        if tri is not None and all(mesh.contains(tri, p) for p in (seg.start, seg.end, lpt, rpt)):
            lz = mesh.triangle_elevation(tri, lpt)
            rz = mesh.triangle_elevation(tri, rpt)
        else:
            lz = mesh.elevation(lpt, self.index)
            rz = mesh.elevation(rpt, self.index)
            if math.isnan(lz) and math.isnan(rz):
                self.result.anomalies.report(
                    AnomalyKind.LOCATION_FAILURE,
                    level,
                    "no surface under segment %d of contour %d; splitting at the middle",
                    n,
                    number,
                )
                return 0.5
        return splitpoint(lpt[2] - lz, rpt[2] - rz, tolerance)

    def split(
        self, seg: Segment, fraction: float, level: float
    ) -> Tuple[Optional[Point3], Optional[Segment]]:
        spt = (
            seg.start[0] + fraction * (seg.end[0] - seg.start[0]),
            seg.start[1] + fraction * (seg.end[1] - seg.start[1]),
        )
        tri = self.index.locate(spt)
        if tri is None:
            self.result.anomalies.report(
                AnomalyKind.LOCATION_FAILURE,
                level,
                "split point (%.6f, %.6f) is off the surface",
                spt[0],
                spt[1],
            )
            return None, None
        probe = self.mesh.dirclip(tri, spt, bearing(seg.end, seg.start) + math.pi / 2.0)
        if probe is None:
            self._reject(level, spt, "no transverse line through triangle %d" % tri)
            return None, None
        near = math.hypot(spt[0] - probe.start[0], spt[1] - probe.start[1])
        along = probe.contourcept(level, near)
        if along is None:
            self._reject(level, spt, "transverse line does not reach the level")
            return None, probe
        p = probe.station(along)
        if not (math.isfinite(p[0]) and math.isfinite(p[1])):
            self._reject(level, spt, "crossing on the transverse line is not finite")
            return None, probe
        return (p[0], p[1], level), probe

    def _reject(self, level: float, spt: Tuple[float, float], reason: str) -> None:
        self.result.anomalies.report(
            AnomalyKind.SPLIT_REJECTED,
            level,
            "split at (%.6f, %.6f) rejected: %s",
            spt[0],
            spt[1],
            reason,
        )


def smooth_contours(
    contours: ContourSet,
    mesh: Mesh,
    index: SpatialIndex,
    interval: Optional[float] = None,
    record_splits: bool = False,
) -> SmoothContourSet:
    """Convert raw contours into spiral‑arc chains within tolerance of the surface.

    Args:
        contours: Output of :func:`extract_contours`.
        mesh: The surface the contours were traced on.
        index: Spatial index built over ``mesh``.
        interval: Contour interval; defaults to ``contours.interval``.
        record_splits: Keep every split attempt in the result's ``splits``.

    Returns:
        A new :class:`SmoothContourSet` sharing the anomaly log of ``contours``.
    """
    interval = check_interval(contours.interval if interval is None else interval)
    result = SmoothContourSet(interval, anomalies=contours.anomalies)
    smoother = _Smoother(mesh, index, interval, result, record_splits)
    total = len(contours)
    for number, poly in enumerate(contours):
        curve = ContourCurve.from_polyline(poly)
        for pass_number, fraction in enumerate(PASS_TOLERANCES):
            if pass_number:
                curve.smooth()
            inserted = smoother.refine(curve, number, pass_number, interval * fraction)
            logger.debug(
                "smooth_contours %d/%d elev %s pass %d: %d points added",
                number + 1,
                total,
                curve.elevation,
                pass_number,
                inserted,
            )
        result.add(curve)
    return result
