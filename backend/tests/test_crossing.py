"""
Tests for the sub-triangle grid and per-triangle crossing queries.

The checks here are the ones the tracer leans on: the numbering of the
grid, the mapping between boundary sub-segments and mesh edge sites,
and agreement between the two triangles sharing an edge about which
sub-segments a level crosses, including levels that pass exactly
through vertices.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from topo.services.crossing import (
    OrientedEdgeHandle,
    StepKind,
    SubPosition,
    SubdivisionGrid,
    subdivision_grid,
)

from meshes import equilateral, pyramid


@pytest.mark.parametrize("n", [1, 2, 5, 8])
def test_grid_counts(n: int) -> None:
    grid = SubdivisionGrid(n)
    assert len(grid.nodes) == (n + 1) * (n + 2) // 2
    assert len(grid.subtriangles) == n * n
    assert len(grid.segments) == 3 * n * (n + 1) // 2
    assert grid.boundary_count == 3 * n
    for s, tris in enumerate(grid.segment_tris):
        assert len(tris) == (1 if grid.is_boundary(s) else 2)


def test_boundary_segments_run_counter_clockwise() -> None:
    grid = subdivision_grid(4)
    for side in range(3):
        for k in range(4):
            p, q = grid.segments[side * 4 + k]
            ends = {grid.nodes[p], grid.nodes[q]}
            assert ends == {grid.side_node(side, k), grid.side_node(side, k + 1)}


def test_edgepart_and_subdir_are_inverse() -> None:
    mesh = pyramid()
    for tri in mesh.triangles:
        loc = mesh.locator(tri.index)
        for seg in range(loc.grid.boundary_count):
            handle = loc.edgepart(seg)
            assert handle is not None
            assert handle.edge in tri.edges
            assert loc.subdir(handle).segment == seg
        assert loc.edgepart(loc.grid.boundary_count) is None


@pytest.mark.parametrize("level", [2.5, 5.0, 10.0, 12.5, 15.0])
def test_neighbours_agree_on_shared_edges(level: float) -> None:
    """Both triangles of an interior edge see the same crossings, with opposite upleft."""
    mesh = pyramid()
    n = mesh.subdivisions
    for edge in mesh.edges:
        if not edge.is_interior():
            continue
        la, lb = mesh.locator(edge.tria), mesh.locator(edge.trib)
        for part in range(n):
            handle = OrientedEdgeHandle(edge.index, part)
            pa, pb = la.subdir(handle), lb.subdir(handle)
            crosses = la.crosses(pa.segment, level)
            assert crosses == lb.crosses(pb.segment, level)
            if crosses:
                assert la.upleft(pa) != lb.upleft(pb)
                assert la.contourcept(pa.segment, level) == lb.contourcept(pb.segment, level)


def test_proceed_never_stalls_on_a_crossing() -> None:
    mesh = equilateral()
    loc = mesh.locator(0)
    for seg in range(len(loc.grid.segments)):
        if not loc.crosses(seg, 10.0):
            continue
        for into in loc.grid.segment_tris[seg]:
            step = loc.proceed(SubPosition(seg, into), 10.0)
            assert step.kind in (StepKind.PROGRESSED, StepKind.EXITED)
            assert loc.crosses(step.segment, 10.0)
            assert step.segment != seg


def test_contourcept_is_on_the_level_between_the_nodes() -> None:
    mesh = equilateral()
    loc = mesh.locator(0)
    found = 0
    for seg in range(len(loc.grid.segments)):
        if not loc.crosses(seg, 7.0):
            continue
        pt = loc.contourcept(seg, 7.0)
        assert pt is not None
        assert pt[2] == 7.0
        assert mesh.triangle_elevation(0, pt) == pytest.approx(7.0)
        p, q = loc.grid.segments[seg]
        (x0, y0), (x1, y1) = loc.node_xy[p], loc.node_xy[q]
        assert min(x0, x1) - 1e-9 <= pt[0] <= max(x0, x1) + 1e-9
        assert min(y0, y1) - 1e-9 <= pt[1] <= max(y0, y1) + 1e-9
        found += 1
    assert found > 0


def test_z_range_covers_the_vertices() -> None:
    mesh = equilateral()
    assert mesh.locator(0).z_range() == (0.0, 20.0)
