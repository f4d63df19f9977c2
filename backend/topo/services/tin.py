"""
Triangulated irregular network consumed by the contouring engine.

The mesh is handed to the engine already triangulated: a list of
``(x, y, z)`` points and a list of vertex‑index triples.  This module
wires the triangles into an edge/adjacency structure and defines the
surface over each triangle.

Surface model
-------------

Each triangle carries a quadratic Bézier patch.  The patch is fixed by
the three vertex elevations and one control elevation per edge; the
edge control is stored on the shared ``Edge`` so neighbouring patches
agree exactly along their common side.  With the default control (the
mean of the two end elevations) every patch is the plane through its
vertices.  Supplying vertex gradients bends the patches so the surface
can bulge above or dip below its vertices, which is what produces
contours lying wholly inside a single triangle.

Elevations and crossing points on an edge are always evaluated through
the edge in its canonical direction (``a`` to ``b``).  Both triangles
that share an edge therefore obtain bit‑identical values, which keeps
the above/below classification of a level consistent across the mesh.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .curves import Segment

if TYPE_CHECKING:  # pragma: no cover
    from .crossing import CrossingLocator
    from .quadindex import SpatialIndex

logger = logging.getLogger(__name__)

Point3 = Tuple[float, float, float]

# Number of sub‑segments along each triangle side used to locate crossings.
DEFAULT_SUBDIVISIONS = 8


def bernstein_root(z0: float, m: float, z1: float, level: float) -> Optional[float]:
    """Find where a quadratic Bernstein polynomial reaches ``level`` on ``[0, 1]``.

    The polynomial is ``z0*(1-t)**2 + 2*m*(1-t)*t + z1*t**2``.  Returns the
    parameter ``t`` of the crossing, or ``None`` when it cannot be
    determined (flat profile, no real root in range, non‑finite input).
    """
    if not (math.isfinite(z0) and math.isfinite(m) and math.isfinite(z1)):
        return None
    c = z0 - level
    b = 2.0 * (m - z0)
    a = z0 - 2.0 * m + z1
    scale = max(abs(z0), abs(m), abs(z1), abs(level), 1e-300)
    if abs(a) <= 1e-12 * scale:
        if b == 0.0:
            return None
        roots = [-c / b]
    else:
        disc = b * b - 4.0 * a * c
        if disc < 0.0:
            if disc < -1e-12 * scale * scale:
                return None
            disc = 0.0
        q = -0.5 * (b + math.copysign(math.sqrt(disc), b))
        roots = [q / a]
        if q != 0.0:
            roots.append(c / q)
    in_range = [t for t in roots if math.isfinite(t) and -1e-9 <= t <= 1.0 + 1e-9]
    if not in_range:
        return None
    return min(max(min(in_range), 0.0), 1.0)


@dataclass
class Edge:
    """An undirected mesh edge stored in its canonical direction ``a -> b``.

    Attributes:
        index: Position in ``Mesh.edges``.
        a: Index of the start vertex (the smaller index).
        b: Index of the end vertex.
        tria: Triangle on the left of ``a -> b``, or ``None`` on the boundary.
        trib: Triangle on the right of ``a -> b``, or ``None`` on the boundary.
        control: Bézier control elevation of the edge.
    """

    index: int
    a: int
    b: int
    tria: Optional[int] = None
    trib: Optional[int] = None
    control: float = 0.0

    def is_interior(self) -> bool:
        return self.tria is not None and self.trib is not None

    def other(self, tri: int) -> Optional[int]:
        """Return the triangle across this edge from ``tri``."""
        if tri == self.tria:
            return self.trib
        if tri == self.trib:
            return self.tria
        raise ValueError(f"triangle {tri} does not border edge {self.index}")


@dataclass
class Triangle:
    """A mesh triangle with counter‑clockwise vertices.

    ``edges[s]`` joins ``vertices[s]`` and ``vertices[(s + 1) % 3]``.
    """

    index: int
    vertices: Tuple[int, int, int]
    edges: Tuple[int, int, int]


class Mesh:
    """A TIN with quadratic patches over its triangles.

    Args:
        points: Sequence of ``(x, y, z)`` vertices.
        triangles: Sequence of vertex‑index triples, in either winding.
        subdivisions: Sub‑segments per triangle side used by the crossing
            locators.

    Raises:
        ValueError: If the mesh is empty or malformed.
    """

    def __init__(
        self,
        points: Sequence[Sequence[float]],
        triangles: Sequence[Sequence[int]],
        subdivisions: int = DEFAULT_SUBDIVISIONS,
    ) -> None:
        if len(points) == 0:
            raise ValueError("mesh has no points")
        if len(triangles) == 0:
            raise ValueError("mesh has no triangles")
        if int(subdivisions) < 1:
            raise ValueError("subdivisions must be at least 1")
        self.subdivisions = int(subdivisions)
        self.points: List[Point3] = []
        for i, p in enumerate(points):
            if len(p) != 3:
                raise ValueError(f"point {i} must have three coordinates")
            pt = (float(p[0]), float(p[1]), float(p[2]))
            if not all(math.isfinite(c) for c in pt):
                raise ValueError(f"point {i} has a non-finite coordinate")
            self.points.append(pt)
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        extent = max(max(xs) - min(xs), max(ys) - min(ys), 1e-300)

        self.edges: List[Edge] = []
        self.triangles: List[Triangle] = []
        edge_lookup: Dict[Tuple[int, int], int] = {}
        npts = len(self.points)
        for t_index, tri in enumerate(triangles):
            if len(tri) != 3:
                raise ValueError(f"triangle {t_index} must have three vertices")
            i, j, k = (int(v) for v in tri)
            if not all(0 <= v < npts for v in (i, j, k)):
                raise ValueError(f"triangle {t_index} references a missing point")
            area = self._signed_area(i, j, k)
            if abs(area) <= 1e-14 * extent * extent:
                raise ValueError(f"triangle {t_index} has zero area")
            if area < 0.0:
                j, k = k, j
            verts = (i, j, k)
            edge_ids: List[int] = []
            for s in range(3):
                p, q = verts[s], verts[(s + 1) % 3]
                key = (p, q) if p < q else (q, p)
                e_index = edge_lookup.get(key)
                if e_index is None:
                    e_index = len(self.edges)
                    edge_lookup[key] = e_index
                    za, zb = self.points[key[0]][2], self.points[key[1]][2]
                    self.edges.append(Edge(e_index, key[0], key[1], control=(za + zb) / 2.0))
                edge = self.edges[e_index]
                if p == edge.a:
                    if edge.tria is not None:
                        raise ValueError(
                            f"edge {edge.a}-{edge.b} is used twice on the same side (overlapping triangles)"
                        )
                    edge.tria = t_index
                else:
                    if edge.trib is not None:
                        raise ValueError(
                            f"edge {edge.a}-{edge.b} is used twice on the same side (overlapping triangles)"
                        )
                    edge.trib = t_index
                edge_ids.append(e_index)
            self.triangles.append(Triangle(t_index, verts, (edge_ids[0], edge_ids[1], edge_ids[2])))
        self._locators: Dict[int, "CrossingLocator"] = {}
        logger.debug(
            "Mesh built: %d points, %d edges, %d triangles",
            len(self.points),
            len(self.edges),
            len(self.triangles),
        )

    def _signed_area(self, i: int, j: int, k: int) -> float:
        a, b, c = self.points[i], self.points[j], self.points[k]
        return 0.5 * ((b[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (b[1] - a[1]))

    # -- edges ---------------------------------------------------------

    def edge_elevation(self, edge_index: int, t: float) -> float:
        """Elevation at parameter ``t`` along an edge from ``a`` to ``b``."""
        edge = self.edges[edge_index]
        za = self.points[edge.a][2]
        zb = self.points[edge.b][2]
        s = 1.0 - t
        return za * s * s + 2.0 * edge.control * s * t + zb * t * t

    def edge_position(self, edge_index: int, t: float) -> Tuple[float, float]:
        edge = self.edges[edge_index]
        pa = self.points[edge.a]
        pb = self.points[edge.b]
        s = 1.0 - t
        return (pa[0] * s + pb[0] * t, pa[1] * s + pb[1] * t)

    def edge_crossing(self, edge_index: int, part: int, level: float) -> Optional[Point3]:
        """Return where ``level`` crosses sub‑segment ``part`` of an edge."""
        n = self.subdivisions
        t0 = part / n
        t1 = (part + 1) / n
        z0 = self.edge_elevation(edge_index, t0)
        z1 = self.edge_elevation(edge_index, t1)
        zm = self.edge_elevation(edge_index, (2 * part + 1) / (2 * n))
        s = bernstein_root(z0, 2.0 * zm - (z0 + z1) / 2.0, z1, level)
        if s is None:
            return None
        x0, y0 = self.edge_position(edge_index, t0)
        x1, y1 = self.edge_position(edge_index, t1)
        return ((1.0 - s) * x0 + s * x1, (1.0 - s) * y0 + s * y1, level)

    # -- triangles -----------------------------------------------------

    def locator(self, tri: int) -> "CrossingLocator":
        """Return the (cached) crossing locator of a triangle."""
        loc = self._locators.get(tri)
        if loc is None:
            # Imported lazily to avoid a circular import
            from .crossing import CrossingLocator

            loc = CrossingLocator(self, tri)
            self._locators[tri] = loc
        return loc

    def barycentric(self, tri: int, pt: Sequence[float]) -> Tuple[float, float, float]:
        a, b, c = (self.points[v] for v in self.triangles[tri].vertices)
        det = (b[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (b[1] - a[1])
        v = ((pt[0] - a[0]) * (c[1] - a[1]) - (c[0] - a[0]) * (pt[1] - a[1])) / det
        w = ((b[0] - a[0]) * (pt[1] - a[1]) - (pt[0] - a[0]) * (b[1] - a[1])) / det
        return (1.0 - v - w, v, w)

    def patch_elevation(self, tri: int, u: float, v: float, w: float) -> float:
        """Evaluate a triangle's patch at barycentric coordinates ``(u, v, w)``."""
        t = self.triangles[tri]
        za, zb, zc = (self.points[i][2] for i in t.vertices)
        cab, cbc, cca = (self.edges[e].control for e in t.edges)
        return (
            za * u * u
            + zb * v * v
            + zc * w * w
            + 2.0 * (cab * u * v + cbc * v * w + cca * w * u)
        )

    def triangle_elevation(self, tri: int, pt: Sequence[float]) -> float:
        u, v, w = self.barycentric(tri, pt)
        return self.patch_elevation(tri, u, v, w)

    def contains(self, tri: int, pt: Sequence[float], eps: float = 1e-9) -> bool:
        return min(self.barycentric(tri, pt)) >= -eps

    def elevation(self, pt: Sequence[float], index: "SpatialIndex") -> float:
        """Mesh‑wide elevation query; NaN when ``pt`` is off the surface."""
        tri = index.locate(pt)
        if tri is None:
            return math.nan
        return self.triangle_elevation(tri, pt)

    def elevation_range(self) -> Tuple[float, float]:
        """Lowest and highest elevation over all sub‑grid nodes."""
        lo = math.inf
        hi = -math.inf
        for t in self.triangles:
            zlo, zhi = self.locator(t.index).z_range()
            lo = min(lo, zlo)
            hi = max(hi, zhi)
        return lo, hi

    def bounds(self) -> Tuple[float, float, float, float]:
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        return (min(xs), min(ys), max(xs), max(ys))

    def dirclip(self, tri: int, pt: Sequence[float], direction: float) -> Optional[Segment]:
        """Clip the line through ``pt`` with bearing ``direction`` to a triangle.

        The returned segment carries the patch's elevation along the line;
        a quadratic restricted to a line is quadratic, so the cubic profile
        of the segment reproduces it exactly.  Returns ``None`` if the line
        misses the triangle or touches it in a single point.
        """
        dx, dy = math.cos(direction), math.sin(direction)
        corners = [self.points[v] for v in self.triangles[tri].vertices]
        params: List[float] = []
        for s in range(3):
            q0 = corners[s]
            q1 = corners[(s + 1) % 3]
            ex, ey = q1[0] - q0[0], q1[1] - q0[1]
            denom = dx * ey - dy * ex
            if abs(denom) < 1e-15 * math.hypot(ex, ey):
                continue
            rx, ry = q0[0] - pt[0], q0[1] - pt[1]
            along = (rx * ey - ry * ex) / denom
            frac = (rx * dy - ry * dx) / denom
            if -1e-12 <= frac <= 1.0 + 1e-12:
                params.append(along)
        if len(params) < 2:
            return None
        lo, hi = min(params), max(params)
        if hi - lo <= 1e-12:
            return None
        p0 = (pt[0] + lo * dx, pt[1] + lo * dy)
        p1 = (pt[0] + hi * dx, pt[1] + hi * dy)
        pm = ((p0[0] + p1[0]) / 2.0, (p0[1] + p1[1]) / 2.0)
        z0 = self.triangle_elevation(tri, p0)
        z1 = self.triangle_elevation(tri, p1)
        zm = self.triangle_elevation(tri, pm)
        m = 2.0 * zm - (z0 + z1) / 2.0
        return Segment(
            (p0[0], p0[1], z0),
            (p1[0], p1[1], z1),
            (z0 + 2.0 * m) / 3.0,
            (2.0 * m + z1) / 3.0,
        )

    # -- gradients -----------------------------------------------------

    def set_gradients(self, gradients: Sequence[Sequence[float]]) -> None:
        """Bend the patches so the surface has the given slope at each vertex.

        Args:
            gradients: One ``(dz/dx, dz/dy)`` pair per point.
        """
        if len(gradients) != len(self.points):
            raise ValueError(
                f"expected {len(self.points)} gradients, got {len(gradients)}"
            )
        grads = [(float(g[0]), float(g[1])) for g in gradients]
        for edge in self.edges:
            pa, pb = self.points[edge.a], self.points[edge.b]
            dx, dy = pb[0] - pa[0], pb[1] - pa[1]
            from_a = pa[2] + (grads[edge.a][0] * dx + grads[edge.a][1] * dy) / 2.0
            from_b = pb[2] - (grads[edge.b][0] * dx + grads[edge.b][1] * dy) / 2.0
            edge.control = (from_a + from_b) / 2.0
        self._locators.clear()

    def estimate_gradients(self) -> List[Tuple[float, float]]:
        """Estimate vertex slopes by least squares over neighbouring vertices and apply them."""
        neighbours: List[List[int]] = [[] for _ in self.points]
        for edge in self.edges:
            neighbours[edge.a].append(edge.b)
            neighbours[edge.b].append(edge.a)
        grads: List[Tuple[float, float]] = []
        for i, p in enumerate(self.points):
            nbrs = neighbours[i]
            if len(nbrs) < 2:
                grads.append((0.0, 0.0))
                continue
            A = np.array([[self.points[j][0] - p[0], self.points[j][1] - p[1]] for j in nbrs])
            rhs = np.array([self.points[j][2] - p[2] for j in nbrs])
            sol, _, rank, _ = np.linalg.lstsq(A, rhs, rcond=None)
            if rank < 2:
                grads.append((0.0, 0.0))
            else:
                grads.append((float(sol[0]), float(sol[1])))
        self.set_gradients(grads)
        return grads
