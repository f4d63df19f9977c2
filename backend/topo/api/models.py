"""
Pydantic data models for the contour service API.

These models define the shapes of requests and responses used by the
backend.  Points travel as ``[x, y, z]`` arrays and bearings in radians
counter‑clockwise from the +x axis, matching the engine.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TinCreateRequest(BaseModel):
    """Request body for storing a TIN."""

    name: str = Field(default="", description="Display name for the TIN")
    points: List[List[float]] = Field(..., description="Vertices as [x, y, z] triples")
    triangles: List[List[int]] = Field(..., description="Triangles as triples of vertex indices")
    gradients: Optional[List[List[float]]] = Field(
        default=None,
        description="Optional [dz/dx, dz/dy] slope per vertex; bends the triangle patches",
    )
    estimateGradients: bool = Field(
        default=False,
        description="Estimate vertex slopes from neighbouring vertices when no gradients are given",
    )


class TinInfo(BaseModel):
    """Summary information about a stored TIN."""

    tinId: str = Field(..., description="Unique identifier for the TIN")
    name: str = Field(..., description="Display name supplied when the TIN was stored")
    createdAt: Any = Field(..., description="Timestamp of when the TIN was stored")
    pointCount: int
    triangleCount: int
    hasGradients: bool
    elevationRange: List[float] = Field(..., description="Lowest and highest surface elevation")


class TinMeshResponse(BaseModel):
    """The arrays of a stored TIN."""

    tinId: str
    points: List[List[float]]
    triangles: List[List[int]]
    gradients: Optional[List[List[float]]] = None


class ArcInfo(BaseModel):
    """One spiral arc of a smoothed contour."""

    start: List[float]
    end: List[float]
    startBearing: float
    endBearing: float
    startCurvature: float
    endCurvature: float
    length: float


class ContourInfo(BaseModel):
    """A single contour line."""

    elevation: float
    closed: bool
    points: List[List[float]] = Field(..., description="Vertices; a closed contour does not repeat its first point")
    length: float = Field(..., description="Horizontal length of the contour")
    arcs: Optional[List[ArcInfo]] = Field(
        default=None, description="Spiral arcs between consecutive vertices (smoothed output only)"
    )


class ContourLevel(BaseModel):
    elevation: float
    contours: List[ContourInfo]


class AnomalyInfo(BaseModel):
    """A data anomaly met while tracing or smoothing."""

    kind: str
    elevation: float
    detail: str


class SplitInfo(BaseModel):
    """A proposed split of a contour segment during smoothing."""

    elevation: float
    contour: int
    passNumber: int
    fraction: float
    probe: Optional[List[List[float]]] = None
    point: Optional[List[float]] = None
    accepted: bool


class ContourSetResponse(BaseModel):
    """Response returned for a contour request."""

    tinId: str
    interval: float
    smoothed: bool
    levels: List[ContourLevel]
    anomalies: List[AnomalyInfo] = Field(default_factory=list)
    splits: Optional[List[SplitInfo]] = None
    meta: Dict[str, Any] = Field(
        default_factory=dict, description="Summary figures such as counts and timings"
    )
