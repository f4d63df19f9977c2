"""
Tests for the split-point table and the contour smoother.
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from topo.services.contours import ContourSet, extract_contours
from topo.services.curves import SpiralArc, normalize_angle
from topo.services.quadindex import SpatialIndex
from topo.services.smoothing import (
    CCHALONG,
    SPLIT_TABLE,
    ContourCurve,
    smooth_contours,
    splitpoint,
)
from topo.services.tin import Mesh
from topo.services.tracing import AnomalyKind, Polyline

from meshes import equilateral, grid_mesh, pyramid


def test_split_table_shape() -> None:
    assert len(SPLIT_TABLE) == 65
    assert SPLIT_TABLE[0] == pytest.approx(CCHALONG, abs=1e-4)
    assert SPLIT_TABLE[-1] == 0.5
    assert list(SPLIT_TABLE) == sorted(SPLIT_TABLE)


def test_splitpoint_unknown_surface() -> None:
    assert splitpoint(math.nan, 0.02, 0.01) == pytest.approx(0.2113, abs=1e-4)
    assert splitpoint(math.nan, 0.02, 0.01) == CCHALONG
    assert splitpoint(0.02, math.nan, 0.01) == 1.0 - CCHALONG


def test_splitpoint_within_tolerance() -> None:
    assert splitpoint(0.001, 0.001, 0.01) == 0.0
    assert splitpoint(0.0, 0.0, 0.01) == 0.0


def test_splitpoint_symmetric_deviation_splits_in_the_middle() -> None:
    assert splitpoint(0.03, -0.03, 0.01) == pytest.approx(0.5)
    assert splitpoint(0.03, 0.03, 0.01) == pytest.approx(0.5)


def test_splitpoint_leans_toward_the_larger_deviation() -> None:
    left = splitpoint(0.05, 0.0, 0.01)
    right = splitpoint(0.0, 0.05, 0.01)
    assert left == SPLIT_TABLE[32]
    assert right == pytest.approx(1.0 - left)
    assert splitpoint(0.04, 0.02, 0.01) < 0.5 < splitpoint(0.02, 0.04, 0.01)


def test_open_curve_end_bearings_mirror_about_the_end_chords() -> None:
    curve = ContourCurve(0.0, [(0.0, 0.0, 0.0), (10.0, 0.0, 0.0), (20.0, 10.0, 0.0)], closed=False)
    curve.smooth()
    middle = math.atan2(10.0, 20.0)
    assert curve.bearings[1] == pytest.approx(middle)
    assert curve.bearings[0] == pytest.approx(-middle)
    assert normalize_angle(curve.bearings[2] - (math.pi / 2.0 - middle)) == pytest.approx(0.0, abs=1e-12)


def test_insert_keeps_bearings_in_step() -> None:
    curve = ContourCurve(
        0.0, [(0.0, 0.0, 0.0), (10.0, 0.0, 0.0), (10.0, 10.0, 0.0), (0.0, 10.0, 0.0)], closed=True
    )
    assert curve.segment_count() == 4
    curve.smooth()
    curve.insert((12.0, 5.0, 0.0), 2)
    assert curve.segment_count() == 5
    fresh = ContourCurve(0.0, curve.points, closed=True)
    fresh.smooth()
    assert curve.bearings == pytest.approx(fresh.bearings)


def test_smoothing_a_plane_adds_nothing() -> None:
    mesh = grid_mesh(3, 3, lambda x, y: 0.5 * x + 0.25 * y)
    raw = extract_contours(mesh, 2.0)
    before = [list(p.points) for p in raw]
    smooth = smooth_contours(raw, mesh, SpatialIndex(mesh), record_splits=True)
    assert smooth.splits == []
    assert [c.points for c in smooth] == before
    assert len(smooth) == len(raw)


def test_smoothing_the_sloping_triangle() -> None:
    mesh = equilateral()
    raw = extract_contours(mesh, 10.0)
    smooth = smooth_contours(raw, mesh, SpatialIndex(mesh))
    curves = smooth.at(10.0)
    assert len(curves) == 1
    assert curves[0].points == raw.at(10.0)[0].points
    assert not curves[0].closed


def test_smoothed_closed_contours_are_tangent_continuous() -> None:
    mesh = pyramid()
    raw = extract_contours(mesh, 5.0)
    smooth = smooth_contours(raw, mesh, SpatialIndex(mesh))
    for level in (5.0, 10.0, 15.0):
        (curve,) = smooth.at(level)
        assert curve.closed
        assert len(curve.points) >= len(raw.at(level)[0].points)
        assert all(p[2] == level for p in curve.points)
        segs = curve.segments()
        assert all(isinstance(s, SpiralArc) for s in segs)
        for a, b in zip(segs, segs[1:] + segs[:1]):
            gap = normalize_angle(a.bearing_at(a.length()) - b.bearing_at(0.0))
            assert gap == pytest.approx(0.0, abs=1e-6)


def test_off_contour_vertex_is_refined_back_onto_the_surface() -> None:
    """A contour drawn through a point above its level gains vertices on the level."""
    mesh = Mesh(
        [(0.0, 0.0, 0.0), (100.0, 0.0, 0.0), (0.0, 100.0, 100.0), (100.0, 100.0, 100.0)],
        [(0, 1, 3), (0, 3, 2)],
    )
    raw = ContourSet(10.0)
    raw.add(Polyline(50.0, [(0.0, 50.0, 50.0), (50.0, 60.0, 50.0), (100.0, 50.0, 50.0)], closed=False))
    smooth = smooth_contours(raw, mesh, SpatialIndex(mesh), record_splits=True)
    (curve,) = smooth.at(50.0)
    assert len(curve.points) > 3
    assert curve.points[0] == (0.0, 50.0, 50.0)
    assert curve.points[-1] == (100.0, 50.0, 50.0)
    accepted = [s for s in smooth.splits if s.accepted]
    assert accepted
    for s in accepted:
        assert s.point[1] == pytest.approx(50.0, abs=1e-6)
        assert s.probe is not None
    assert smooth.anomalies.count(AnomalyKind.LOCATION_FAILURE) == 0


def test_smoothing_rejects_bad_interval() -> None:
    mesh = equilateral()
    raw = extract_contours(mesh, 10.0)
    with pytest.raises(ValueError):
        smooth_contours(raw, mesh, SpatialIndex(mesh), interval=0.0)


def test_contour_off_the_mesh_splits_in_the_middle_and_is_reported() -> None:
    mesh = equilateral()
    raw = ContourSet(10.0)
    far = [(100.0, 100.0, 5.0), (200.0, 100.0, 5.0)]
    raw.add(Polyline(5.0, list(far), closed=False))
    smooth = smooth_contours(raw, mesh, SpatialIndex(mesh), record_splits=True)
    (curve,) = smooth.at(5.0)
    assert curve.points == far
    assert smooth.splits
    assert smooth.splits[0].fraction == 0.5
    assert all(not s.accepted and s.probe is None for s in smooth.splits)
    assert smooth.anomalies.count(AnomalyKind.LOCATION_FAILURE) >= 1
    assert smooth.anomalies.count(AnomalyKind.SPLIT_REJECTED) == 0


def test_rejected_split_is_reported() -> None:
    """On a flat surface the transverse line never reaches a level above it."""
    mesh = Mesh(
        [(0.0, 0.0, 0.0), (100.0, 0.0, 0.0), (0.0, 100.0, 0.0), (100.0, 100.0, 0.0)],
        [(0, 1, 3), (0, 3, 2)],
    )
    raw = ContourSet(10.0)
    line = [(10.0, 30.0, 8.0), (90.0, 30.0, 8.0)]
    raw.add(Polyline(8.0, list(line), closed=False))
    smooth = smooth_contours(raw, mesh, SpatialIndex(mesh), record_splits=True)
    (curve,) = smooth.at(8.0)
    assert curve.points == line
    assert smooth.splits
    assert all(not s.accepted and s.probe is not None for s in smooth.splits)
    assert smooth.anomalies.count(AnomalyKind.SPLIT_REJECTED) == len(smooth.splits)
    assert smooth.anomalies.count(AnomalyKind.LOCATION_FAILURE) == 0
