"""
API routes for contour extraction.

This module defines the endpoint that contours a stored TIN.  The raw
contours are traced across the mesh at every multiple of the requested
interval and, by default, smoothed into chains of spiral arcs that stay
within a tenth of the interval of the surface.

The response lists the contours level by level, any data anomalies met
on the way, optionally every split attempted while smoothing, and a
metadata section with counts and timings.  Responses are cached per
TIN, interval and flags.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Union

from fastapi import APIRouter, HTTPException, Query

from ..services.contour_cache import (
    ContourCacheKey,
    get_contours_from_cache,
    put_contours_in_cache,
)
from ..services.contouring import contour_tin
from ..services.contours import ContourSet
from ..services.curves import SpiralArc
from ..services.smoothing import SmoothContourSet
from ..services.storage import get_tin_or_404
from .models import (
    AnomalyInfo,
    ArcInfo,
    ContourInfo,
    ContourLevel,
    ContourSetResponse,
    SplitInfo,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _xyz(pt) -> List[float]:
    return [float(pt[0]), float(pt[1]), float(pt[2])]


def _arc_info(seg) -> ArcInfo:
    if isinstance(seg, SpiralArc):
        start_bearing = seg.bearing_at(0.0)
        end_bearing = seg.bearing_at(seg.length())
    else:
        start_bearing = end_bearing = seg.bearing_at(0.0)
    return ArcInfo(
        start=_xyz(seg.start),
        end=_xyz(seg.end),
        startBearing=start_bearing,
        endBearing=end_bearing,
        startCurvature=seg.start_curvature,
        endCurvature=seg.end_curvature,
        length=seg.length(),
    )


def _build_response(
    tin_id: str,
    result: Union[ContourSet, SmoothContourSet],
    timings: Dict[str, float],
    include_splits: bool,
) -> ContourSetResponse:
    smoothed = isinstance(result, SmoothContourSet)
    levels: List[ContourLevel] = []
    total_points = 0
    for elevation, lines in result.levels.items():
        contours: List[ContourInfo] = []
        for line in lines:
            total_points += len(line.points)
            if smoothed:
                arcs = [_arc_info(seg) for seg in line.segments()]
                length = sum(a.length for a in arcs)
            else:
                arcs = None
                length = line.length()
            contours.append(
                ContourInfo(
                    elevation=elevation,
                    closed=line.closed,
                    points=[_xyz(p) for p in line.points],
                    length=length,
                    arcs=arcs,
                )
            )
        levels.append(ContourLevel(elevation=elevation, contours=contours))
    anomalies = [
        AnomalyInfo(kind=a.kind.value, elevation=a.elevation, detail=a.detail)
        for a in result.anomalies
    ]
    splits = None
    if smoothed and include_splits:
        splits = [
            SplitInfo(
                elevation=s.elevation,
                contour=s.contour,
                passNumber=s.pass_number,
                fraction=s.fraction,
                probe=[_xyz(s.probe[0]), _xyz(s.probe[1])] if s.probe is not None else None,
                point=_xyz(s.point) if s.point is not None else None,
                accepted=s.accepted,
            )
            for s in result.splits  # type: ignore[union-attr]
        ]
    meta: Dict[str, Any] = {
        "totalLevels": len(levels),
        "totalContours": len(result),
        "totalPoints": total_points,
        "totalAnomalies": len(anomalies),
        "timings": timings,
    }
    return ContourSetResponse(
        tinId=tin_id,
        interval=result.interval,
        smoothed=smoothed,
        levels=levels,
        anomalies=anomalies,
        splits=splits,
        meta=meta,
    )


@router.get("/tins/{tin_id}/contours", response_model=ContourSetResponse)
def get_contours(
    tin_id: str,
    interval: float = Query(..., description="Vertical distance between contour levels"),
    smooth: bool = Query(True, description="Smooth contours into spiral arcs"),
    includeSplits: bool = Query(
        False, description="Include every split attempted while smoothing"
    ),
) -> Dict[str, Any]:
    """
    Contour a stored TIN at a fixed interval.

    Returns:
        The contours grouped by level, the anomaly list, optional split
        diagnostics and summary metadata.

    Raises:
        HTTPException: 400 for a non-positive interval, 404 for an unknown
            TIN, 500 if contouring fails unexpectedly.
    """
    get_tin_or_404(tin_id)
    key = ContourCacheKey(
        tin_id=tin_id, interval=interval, smoothed=smooth, include_splits=includeSplits
    )
    cached = get_contours_from_cache(key)
    if cached is not None:
        return cached
    try:
        result, timings = contour_tin(tin_id, interval, smooth=smooth, record_splits=includeSplits)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("contour endpoint error for tin_id=%s: %s", tin_id, exc)
        raise HTTPException(status_code=500, detail=f"Failed to compute contours: {exc}")
    payload = _build_response(tin_id, result, timings, includeSplits).model_dump()
    put_contours_in_cache(key, payload)
    return payload
