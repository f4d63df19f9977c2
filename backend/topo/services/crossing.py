"""
Locating contour crossings inside a single triangle.

Every triangle is divided into ``n * n`` congruent sub‑triangles by a
regular grid with ``n`` steps along each side.  The grid edges are the
*sub‑segments*: a contour level crosses a sub‑segment when one of its
end nodes is at or above the level and the other is below.  Because each
sub‑triangle has three nodes, a contour entering it through one
sub‑segment leaves through exactly one other, so following a contour
through a triangle is a walk from sub‑triangle to sub‑triangle.

Sub‑segments are numbered with the ``3 * n`` boundary ones first, side
by side in counter‑clockwise order starting at the triangle's first
vertex, followed by the interior ones.  Boundary sub‑segments map back
to a mesh edge and a position along it through
:class:`OrientedEdgeHandle`.

The walk is expressed with :class:`SubPosition` (the sub‑segment being
crossed and the sub‑triangle about to be entered) and each advance
returns a :class:`Step` whose :class:`StepKind` says whether the walk
moved on, left the triangle, came back to where it started or stalled.
"""

from __future__ import annotations

import enum
import functools
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .tin import Mesh

from .tin import Point3, bernstein_root


@dataclass(frozen=True)
class OrientedEdgeHandle:
    """A crossing site on a mesh edge.

    Attributes:
        edge: Index into ``Mesh.edges``.
        part: Sub‑segment position along the edge, counted from the
            edge's canonical start vertex.
    """

    edge: int
    part: int


@dataclass(frozen=True)
class SubPosition:
    """Standing on sub‑segment ``segment``, about to enter sub‑triangle ``into``."""

    segment: int
    into: int


class StepKind(enum.Enum):
    PROGRESSED = "progressed"
    EXITED = "exited"
    CLOSED = "closed"
    STALLED = "stalled"


@dataclass(frozen=True)
class Step:
    """Outcome of advancing one sub‑triangle along a contour.

    ``segment`` is the sub‑segment the contour leaves through.  ``position``
    is set for ``PROGRESSED`` and ``CLOSED`` steps.
    """

    kind: StepKind
    segment: int
    position: Optional[SubPosition] = None


class SubdivisionGrid:
    """Topology of the sub‑triangle grid shared by all triangles with ``n`` steps.

    Nodes are addressed by integer grid coordinates ``(i, j)`` with
    barycentric weights ``((n - i - j)/n, i/n, j/n)`` on the triangle's
    vertices.  In these coordinates the triangle is counter‑clockwise, and
    so is every sub‑triangle as stored.
    """

    def __init__(self, n: int) -> None:
        self.n = n
        self.nodes: List[Tuple[int, int]] = []
        node_ids: Dict[Tuple[int, int], int] = {}
        for j in range(n + 1):
            for i in range(n + 1 - j):
                node_ids[(i, j)] = len(self.nodes)
                self.nodes.append((i, j))

        self.segments: List[Tuple[int, int]] = []
        seg_ids: Dict[frozenset, int] = {}

        def add_segment(p: int, q: int) -> int:
            key = frozenset((p, q))
            idx = seg_ids.get(key)
            if idx is None:
                idx = len(self.segments)
                seg_ids[key] = idx
                self.segments.append((p, q))
            return idx

        for side in range(3):
            for k in range(n):
                add_segment(node_ids[self.side_node(side, k)], node_ids[self.side_node(side, k + 1)])
        self.boundary_count = len(self.segments)

        self.subtriangles: List[Tuple[int, int, int]] = []
        for j in range(n):
            for i in range(n - j):
                self.subtriangles.append((node_ids[(i, j)], node_ids[(i + 1, j)], node_ids[(i, j + 1)]))
                if i + j <= n - 2:
                    self.subtriangles.append(
                        (node_ids[(i + 1, j)], node_ids[(i + 1, j + 1)], node_ids[(i, j + 1)])
                    )

        self.tri_segments: List[Tuple[int, int, int]] = []
        self.segment_tris: List[List[int]] = []
        # (segment, sub-triangle) -> end nodes ordered with the sub-triangle on the left
        self.left_ends: Dict[Tuple[int, int], Tuple[int, int]] = {}
        for t, (a, b, c) in enumerate(self.subtriangles):
            segs = []
            for p, q in ((a, b), (b, c), (c, a)):
                s = add_segment(p, q)
                segs.append(s)
                self.left_ends[(s, t)] = (p, q)
            self.tri_segments.append((segs[0], segs[1], segs[2]))
        self.segment_tris = [[] for _ in self.segments]
        for t, segs in enumerate(self.tri_segments):
            for s in segs:
                self.segment_tris[s].append(t)

    def side_node(self, side: int, k: int) -> Tuple[int, int]:
        """Grid coordinates of the ``k``-th node along a side, counter‑clockwise."""
        n = self.n
        if side == 0:
            return (k, 0)
        if side == 1:
            return (n - k, k)
        return (0, n - k)

    def is_boundary(self, segment: int) -> bool:
        return segment < self.boundary_count


@functools.lru_cache(maxsize=None)
def subdivision_grid(n: int) -> SubdivisionGrid:
    return SubdivisionGrid(n)


class CrossingLocator:
    """Per‑triangle crossing queries for one mesh triangle.

    Node elevations are sampled once when the locator is built.  Nodes on
    the triangle's sides are sampled through the mesh edge so neighbouring
    locators agree on them exactly.
    """

    def __init__(self, mesh: "Mesh", tri: int) -> None:
        self.mesh = mesh
        self.tri = tri
        self.triangle = mesh.triangles[tri]
        self.grid = subdivision_grid(mesh.subdivisions)
        n = self.grid.n
        self.node_xy: List[Tuple[float, float]] = []
        self.node_z: List[float] = []
        corners = [mesh.points[v] for v in self.triangle.vertices]
        for i, j in self.grid.nodes:
            side_step = self._side_step(i, j)
            if side_step is not None:
                edge, step = side_step
                t = step / n
                self.node_xy.append(mesh.edge_position(edge, t))
                self.node_z.append(mesh.edge_elevation(edge, t))
            else:
                u, v, w = (n - i - j) / n, i / n, j / n
                self.node_xy.append(
                    (
                        u * corners[0][0] + v * corners[1][0] + w * corners[2][0],
                        u * corners[0][1] + v * corners[1][1] + w * corners[2][1],
                    )
                )
                self.node_z.append(mesh.patch_elevation(tri, u, v, w))

    def _side_step(self, i: int, j: int) -> Optional[Tuple[int, int]]:
        """Map a boundary node to ``(edge, integer step from the edge's start)``."""
        n = self.grid.n
        if j == 0:
            side, k = 0, i
        elif i + j == n:
            side, k = 1, j
        elif i == 0:
            side, k = 2, n - j
        else:
            return None
        edge_index = self.triangle.edges[side]
        edge = self.mesh.edges[edge_index]
        aligned = self.triangle.vertices[side] == edge.a
        return edge_index, (k if aligned else n - k)

    def z_range(self) -> Tuple[float, float]:
        return min(self.node_z), max(self.node_z)

    def crosses(self, segment: int, level: float) -> bool:
        p, q = self.grid.segments[segment]
        return (self.node_z[p] >= level) != (self.node_z[q] >= level)

    def upleft(self, position: SubPosition) -> bool:
        """True if the higher end of the sub‑segment lies ahead of the entered sub‑triangle.

        Seen from the sub‑triangle on the other side the ends swap, so for a
        crossing exactly one of the two directions is upleft.
        """
        p, q = self.grid.left_ends[(position.segment, position.into)]
        return self.node_z[q] > self.node_z[p]

    def proceed(self, position: SubPosition, level: float, start: Optional[SubPosition] = None) -> Step:
        """Cross the sub‑triangle ``position.into`` along the contour at ``level``."""
        nxt: Optional[int] = None
        for s in self.grid.tri_segments[position.into]:
            if s != position.segment and self.crosses(s, level):
                nxt = s
                break
        if nxt is None:
            return Step(StepKind.STALLED, position.segment)
        beyond = [t for t in self.grid.segment_tris[nxt] if t != position.into]
        if not beyond:
            return Step(StepKind.EXITED, nxt)
        following = SubPosition(nxt, beyond[0])
        if start is not None and following == start:
            return Step(StepKind.CLOSED, nxt, following)
        return Step(StepKind.PROGRESSED, nxt, following)

    def contourcept(self, segment: int, level: float) -> Optional[Point3]:
        """Point where ``level`` crosses a sub‑segment, or ``None`` if indeterminate."""
        handle = self.edgepart(segment)
        if handle is not None:
            return self.mesh.edge_crossing(handle.edge, handle.part, level)
        p, q = self.grid.segments[segment]
        n = self.grid.n
        (ip, jp), (iq, jq) = self.grid.nodes[p], self.grid.nodes[q]
        im, jm = (ip + iq) / (2 * n), (jp + jq) / (2 * n)
        zm = self.mesh.patch_elevation(self.tri, 1.0 - im - jm, im, jm)
        z0, z1 = self.node_z[p], self.node_z[q]
        t = bernstein_root(z0, 2.0 * zm - (z0 + z1) / 2.0, z1, level)
        if t is None:
            return None
        (x0, y0), (x1, y1) = self.node_xy[p], self.node_xy[q]
        pt = ((1.0 - t) * x0 + t * x1, (1.0 - t) * y0 + t * y1, level)
        if not (math.isfinite(pt[0]) and math.isfinite(pt[1])):
            return None
        return pt

    def edgepart(self, segment: int) -> Optional[OrientedEdgeHandle]:
        """Mesh edge site of a boundary sub‑segment; ``None`` for interior ones."""
        if not self.grid.is_boundary(segment):
            return None
        n = self.grid.n
        side, k = divmod(segment, n)
        edge_index = self.triangle.edges[side]
        aligned = self.triangle.vertices[side] == self.mesh.edges[edge_index].a
        return OrientedEdgeHandle(edge_index, k if aligned else n - 1 - k)

    def subdir(self, handle: OrientedEdgeHandle) -> SubPosition:
        """Position entering this triangle through a mesh edge site."""
        n = self.grid.n
        side = self.triangle.edges.index(handle.edge)
        aligned = self.triangle.vertices[side] == self.mesh.edges[handle.edge].a
        segment = side * n + (handle.part if aligned else n - 1 - handle.part)
        return SubPosition(segment, self.grid.segment_tris[segment][0])
