"""
Routes for storing and retrieving TINs.

A TIN is posted as JSON arrays of points and vertex‑index triangles.
It is validated by building the engine's mesh from it before anything
is written, so a malformed surface is rejected with ``400`` and never
reaches the contour endpoints.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException

from ..services.mesh_cache import load_tin_archive
from ..services.storage import delete_tin as delete_stored_tin
from ..services.storage import get_tin_or_404, save_tin
from ..services.tin_store import TinRecord
from ..services.tin_store import list_tins as list_tin_records
from .models import TinCreateRequest, TinInfo, TinMeshResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def _tin_info(record: TinRecord) -> TinInfo:
    return TinInfo(
        tinId=record.tin_id,
        name=record.name,
        createdAt=record.created_at,
        pointCount=record.point_count,
        triangleCount=record.triangle_count,
        hasGradients=record.has_gradients,
        elevationRange=[record.min_z, record.max_z],
    )


@router.post("/tins", response_model=TinInfo, status_code=201)
async def create_tin(body: TinCreateRequest) -> TinInfo:
    """Store a TIN and return its metadata.

    Raises:
        HTTPException: 400 if the TIN is malformed.
    """
    try:
        record = save_tin(
            body.name,
            body.points,
            body.triangles,
            gradients=body.gradients,
            estimate_gradients=body.estimateGradients,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _tin_info(record)


@router.get("/tins", response_model=list[TinInfo])
async def list_tins() -> list[TinInfo]:
    """Return all stored TINs."""
    return [_tin_info(r) for r in list_tin_records()]


@router.get("/tins/{tin_id}", response_model=TinInfo)
async def get_tin(tin_id: str) -> TinInfo:
    """Return metadata for a single TIN.

    Raises:
        HTTPException: If the TIN does not exist.
    """
    return _tin_info(get_tin_or_404(tin_id))


@router.get("/tins/{tin_id}/mesh", response_model=TinMeshResponse)
async def get_tin_mesh(tin_id: str) -> TinMeshResponse:
    """Return the stored arrays of a TIN."""
    record = get_tin_or_404(tin_id)
    try:
        points, triangles, gradients = load_tin_archive(Path(record.archive_path))
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="TIN archive not found")
    return TinMeshResponse(tinId=tin_id, points=points, triangles=triangles, gradients=gradients)


@router.delete("/tins/{tin_id}", status_code=204)
async def delete_tin(tin_id: str) -> None:
    """Delete a TIN, its archive once unused, and any cached contours."""
    delete_stored_tin(tin_id)
    return None
