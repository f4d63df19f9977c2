"""
Quadtree index for locating the mesh triangle under a point.

The index covers a square around the mesh.  Cells are split into four
quadrants while they hold more than a few mesh vertices; each leaf
remembers a triangle near its centre.  A query descends to the leaf
containing the point and walks across the mesh from the leaf's triangle,
stepping through whichever side the point lies beyond, until it reaches
the triangle containing the point or falls off the mesh.  A walk that
falls off a concave outline is retried with a bounding‑box scan so that
points in bays of the mesh are still found.

Quadrants are numbered ``x_high + 2 * y_high``: 0 south‑west, 1
south‑east, 2 north‑west, 3 north‑east.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .tin import Mesh

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuadLeaf:
    triangle: Optional[int]


@dataclass(frozen=True)
class QuadInterior:
    children: Tuple["QuadNode", "QuadNode", "QuadNode", "QuadNode"]


QuadNode = Union[QuadInterior, QuadLeaf]


class SpatialIndex:
    """Point‑to‑triangle locator over a :class:`Mesh`.

    Args:
        mesh: The mesh to index.  The index only reads it.
        leaf_points: Maximum number of vertices in a cell before it splits.
        max_depth: Maximum depth of the tree.
    """

    def __init__(self, mesh: Mesh, leaf_points: int = 3, max_depth: int = 16) -> None:
        self.mesh = mesh
        self.leaf_points = max(1, int(leaf_points))
        self.max_depth = max(0, int(max_depth))
        xmin, ymin, xmax, ymax = mesh.bounds()
        self.side = max(xmax - xmin, ymax - ymin) * 1.0001 or 1.0
        self.x = (xmin + xmax) / 2.0 - self.side / 2.0
        self.y = (ymin + ymax) / 2.0 - self.side / 2.0

        corners = np.array(
            [[mesh.points[v][:2] for v in t.vertices] for t in mesh.triangles], dtype=float
        )
        self._centroids = corners.mean(axis=1)
        self._bbox_min = corners.min(axis=1)
        self._bbox_max = corners.max(axis=1)

        pts = np.array([p[:2] for p in mesh.points], dtype=float)
        self.root = self._build(pts, self.x, self.y, self.side, 0)
        logger.debug(
            "SpatialIndex built over %d triangles: origin=(%s, %s) side=%s",
            len(mesh.triangles),
            self.x,
            self.y,
            self.side,
        )

    def _build(self, pts: np.ndarray, x: float, y: float, side: float, depth: int) -> QuadNode:
        if len(pts) <= self.leaf_points or depth >= self.max_depth:
            centre = np.array([x + side / 2.0, y + side / 2.0])
            nearest = int(np.argmin(((self._centroids - centre) ** 2).sum(axis=1)))
            return QuadLeaf(nearest)
        half = side / 2.0
        east = pts[:, 0] >= x + half
        north = pts[:, 1] >= y + half
        children: List[QuadNode] = []
        for q in range(4):
            mask = (east == bool(q & 1)) & (north == bool(q & 2))
            children.append(
                self._build(pts[mask], x + half * (q & 1), y + half * ((q >> 1) & 1), half, depth + 1)
            )
        return QuadInterior((children[0], children[1], children[2], children[3]))

    def _leaf(self, pt: Sequence[float]) -> QuadLeaf:
        node = self.root
        x, y, side = self.x, self.y, self.side
        while isinstance(node, QuadInterior):
            half = side / 2.0
            q = int(pt[0] >= x + half) + 2 * int(pt[1] >= y + half)
            x += half * (q & 1)
            y += half * ((q >> 1) & 1)
            side = half
            node = node.children[q]
        return node

    def locate(self, pt: Sequence[float]) -> Optional[int]:
        """Return the index of the triangle containing ``pt``, or ``None``."""
        if not (np.isfinite(pt[0]) and np.isfinite(pt[1])):
            return None
        leaf = self._leaf(pt)
        if leaf.triangle is not None:
            found = self._walk(leaf.triangle, pt)
            if found is not None:
                return found
        return self._scan(pt)

    def _walk(self, start: int, pt: Sequence[float]) -> Optional[int]:
        mesh = self.mesh
        tri = start
        for _ in range(len(mesh.triangles) + 1):
            bary = mesh.barycentric(tri, pt)
            worst = min(range(3), key=lambda k: bary[k])
            if bary[worst] >= -1e-9:
                return tri
            # The side opposite the most negative weight faces the point
            edge = mesh.triangles[tri].edges[(worst + 1) % 3]
            nxt = mesh.edges[edge].other(tri)
            if nxt is None:
                return None
            tri = nxt
        return None

    def _scan(self, pt: Sequence[float]) -> Optional[int]:
        x, y = float(pt[0]), float(pt[1])
        inside = (
            (self._bbox_min[:, 0] <= x)
            & (x <= self._bbox_max[:, 0])
            & (self._bbox_min[:, 1] <= y)
            & (y <= self._bbox_max[:, 1])
        )
        for tri in np.nonzero(inside)[0]:
            if self.mesh.contains(int(tri), pt):
                return int(tri)
        return None
