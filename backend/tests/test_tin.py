"""
Tests for the TIN model in tin.py.

These cover mesh validation, the adjacency built from the triangle list,
the quadratic patch surface and the helpers the tracer and smoother rely
on (edge crossings, directional clipping and gradient estimation).
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from topo.services.quadindex import SpatialIndex
from topo.services.tin import Mesh, bernstein_root

from meshes import bump, grid_mesh


def right_triangle() -> Mesh:
    # Plane z = x + 2y
    return Mesh([(0.0, 0.0, 0.0), (10.0, 0.0, 10.0), (0.0, 10.0, 20.0)], [(0, 1, 2)])


def test_bernstein_root_linear_profile() -> None:
    """A control at the mean of the ends gives a straight profile."""
    assert bernstein_root(0.0, 5.0, 10.0, 5.0) == pytest.approx(0.5)
    assert bernstein_root(0.0, 5.0, 10.0, 2.5) == pytest.approx(0.25)


def test_bernstein_root_out_of_range_or_flat() -> None:
    assert bernstein_root(0.0, 5.0, 10.0, 20.0) is None
    assert bernstein_root(3.0, 3.0, 3.0, 4.0) is None
    assert bernstein_root(math.nan, 1.0, 2.0, 1.5) is None


def test_bernstein_root_curved_profile() -> None:
    """Profile 0 -> 10 -> 0 peaks at 5 and reaches 3.75 at t = 0.25 first."""
    assert bernstein_root(0.0, 10.0, 0.0, 3.75) == pytest.approx(0.25)


@pytest.mark.parametrize(
    "points, triangles",
    [
        ([], [(0, 1, 2)]),
        ([(0, 0, 0), (1, 0, 0), (0, 1, 0)], []),
        ([(0, 0, 0), (1, 0, 0), (0, 1, 0)], [(0, 1, 3)]),
        ([(0, 0, 0), (1, 0, 0), (2, 0, 0)], [(0, 1, 2)]),
        ([(0, 0, 0), (1, 0), (0, 1, 0)], [(0, 1, 2)]),
        ([(0, 0, 0), (1, 0, math.inf), (0, 1, 0)], [(0, 1, 2)]),
        ([(0, 0, 0), (1, 0, 0), (0, 1, 0)], [(0, 1, 2), (0, 1, 2)]),
    ],
)
def test_malformed_mesh_rejected(points, triangles) -> None:
    with pytest.raises(ValueError):
        Mesh(points, triangles)


def test_clockwise_triangle_is_rewound() -> None:
    mesh = Mesh([(0.0, 0.0, 0.0), (10.0, 0.0, 0.0), (0.0, 10.0, 0.0)], [(0, 2, 1)])
    assert mesh.triangles[0].vertices == (0, 1, 2)


def test_adjacency_of_a_square() -> None:
    mesh = grid_mesh(1, 1, lambda x, y: 0.0)
    assert len(mesh.triangles) == 2
    assert len(mesh.edges) == 5
    interior = [e for e in mesh.edges if e.is_interior()]
    assert len(interior) == 1
    diagonal = interior[0]
    assert {diagonal.tria, diagonal.trib} == {0, 1}
    assert diagonal.other(0) == 1
    boundary = [e for e in mesh.edges if not e.is_interior()]
    assert all(e.other(e.tria if e.tria is not None else e.trib) is None for e in boundary)
    with pytest.raises(ValueError):
        boundary[0].other(99)


def test_default_patch_is_planar() -> None:
    mesh = right_triangle()
    assert mesh.triangle_elevation(0, (2.0, 3.0)) == pytest.approx(8.0)
    assert mesh.edge_elevation(0, 0.5) == pytest.approx(5.0)
    lo, hi = mesh.elevation_range()
    assert (lo, hi) == (0.0, 20.0)


def test_elevation_off_the_surface_is_nan() -> None:
    mesh = right_triangle()
    index = SpatialIndex(mesh)
    assert mesh.elevation((1.0, 1.0), index) == pytest.approx(3.0)
    assert math.isnan(mesh.elevation((9.0, 9.0), index))


def test_edge_crossing_lies_on_the_level() -> None:
    mesh = right_triangle()
    # Edge 0 runs from (0, 0, 0) to (10, 0, 10); level 5 is in part 3 of 8.
    pt = mesh.edge_crossing(0, 3, 5.0)
    assert pt == pytest.approx((5.0, 0.0, 5.0))
    assert mesh.edge_crossing(0, 0, 5.0) is None


def test_dirclip_follows_the_plane() -> None:
    mesh = right_triangle()
    seg = mesh.dirclip(0, (2.0, 2.0), 0.0)
    assert seg is not None
    assert seg.start == pytest.approx((0.0, 2.0, 4.0))
    assert seg.end == pytest.approx((8.0, 2.0, 12.0))
    along = seg.contourcept(10.0)
    assert along == pytest.approx(6.0)
    assert seg.station(along)[:2] == pytest.approx((6.0, 2.0))


def test_dirclip_misses_triangle() -> None:
    mesh = right_triangle()
    assert mesh.dirclip(0, (20.0, 20.0), 0.0) is None


def test_estimated_gradients_keep_a_plane_flat() -> None:
    mesh = right_triangle()
    grads = mesh.estimate_gradients()
    assert len(grads) == 3
    for g in grads:
        assert g == pytest.approx((1.0, 2.0))
    assert mesh.triangle_elevation(0, (2.0, 3.0)) == pytest.approx(8.0)


def test_gradients_bend_the_patch() -> None:
    mesh = bump()
    assert all(e.control == pytest.approx(10.0) for e in mesh.edges)
    centroid = (5.0, 5.0 * math.sqrt(3.0) / 3.0)
    assert mesh.triangle_elevation(0, centroid) == pytest.approx(20.0 / 3.0)


def test_set_gradients_checks_length() -> None:
    mesh = right_triangle()
    with pytest.raises(ValueError):
        mesh.set_gradients([(0.0, 0.0)])
