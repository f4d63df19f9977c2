"""
Local storage service for TINs.

Uploaded TINs are validated by building a :class:`Mesh` from them, then
written to ``<storage>/tins/{hash}.npz``.  The hash is the SHA‑256 of
the canonical arrays, so uploading the same surface twice reuses one
archive while each upload still gets its own identifier and metadata
record.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from pathlib import Path
from typing import Optional, Sequence

from fastapi import HTTPException

from .db import STORAGE_DIR
from .mesh_cache import canonical_arrays, load_tin_archive, save_tin_archive
from .tin import Mesh
from .tin_store import (
    TinRecord,
    count_archive_users,
    delete_tin_record,
    find_archive_by_hash,
    get_tin_record,
    insert_tin_record,
)

logger = logging.getLogger(__name__)

STORAGE_TINS_DIR = STORAGE_DIR / "tins"
STORAGE_TINS_DIR.mkdir(parents=True, exist_ok=True)


def save_tin(
    name: str,
    points: Sequence[Sequence[float]],
    triangles: Sequence[Sequence[int]],
    gradients: Optional[Sequence[Sequence[float]]] = None,
    estimate_gradients: bool = False,
) -> TinRecord:
    """Validate and persist a TIN, returning its metadata record.

    Args:
        name: Display name supplied by the client.
        points: ``(x, y, z)`` vertices.
        triangles: Vertex‑index triples.
        gradients: Optional ``(dz/dx, dz/dy)`` per vertex.
        estimate_gradients: Estimate vertex slopes from the neighbouring
            vertices when ``gradients`` is not given.

    Raises:
        ValueError: If the TIN is malformed.
    """
    logger.info("Saving TIN %r: %d points, %d triangles", name, len(points), len(triangles))
    points_arr, triangles_arr, gradients_arr = canonical_arrays(points, triangles, gradients)
    mesh = Mesh(points_arr.tolist(), triangles_arr.tolist())
    if gradients_arr is not None:
        mesh.set_gradients(gradients_arr.tolist())
    elif estimate_gradients:
        gradients_arr = canonical_arrays(points_arr, triangles_arr, mesh.estimate_gradients())[2]

    sha256 = hashlib.sha256()
    sha256.update(points_arr.tobytes())
    sha256.update(triangles_arr.tobytes())
    if gradients_arr is not None:
        sha256.update(gradients_arr.tobytes())
    content_hash = sha256.hexdigest()

    archive = find_archive_by_hash(content_hash)
    if archive is None or not Path(archive).exists():
        path = STORAGE_TINS_DIR / f"{content_hash}.npz"
        save_tin_archive(path, points_arr, triangles_arr, gradients_arr)
        archive = str(path)
    else:
        logger.debug("TIN %r reuses archive %s", name, archive)

    lo, hi = mesh.elevation_range()
    record = TinRecord(
        tin_id=uuid.uuid4().hex,
        name=name,
        content_hash=content_hash,
        archive_path=archive,
        point_count=len(mesh.points),
        triangle_count=len(mesh.triangles),
        has_gradients=gradients_arr is not None,
        min_z=lo,
        max_z=hi,
    )
    insert_tin_record(record)
    return record


def get_tin_or_404(tin_id: str) -> TinRecord:
    record = get_tin_record(tin_id)
    if record is None:
        raise HTTPException(status_code=404, detail="TIN not found")
    return record


def load_tin(tin_id: str) -> Mesh:
    """Rebuild the :class:`Mesh` of a stored TIN.

    Raises:
        HTTPException: 404 if the TIN or its archive cannot be found.
    """
    record = get_tin_or_404(tin_id)
    try:
        points, triangles, gradients = load_tin_archive(Path(record.archive_path))
    except FileNotFoundError:
        logger.error("Archive %s of TIN %s is missing", record.archive_path, tin_id)
        raise HTTPException(status_code=404, detail="TIN archive not found")
    mesh = Mesh(points, triangles)
    if gradients is not None:
        mesh.set_gradients(gradients)
    return mesh


def delete_tin(tin_id: str) -> None:
    """Delete a TIN record and its archive once no other record uses it."""
    archive_path = delete_tin_record(tin_id)
    if archive_path is None:
        raise HTTPException(status_code=404, detail="TIN not found")
    if count_archive_users(archive_path) == 0:
        Path(archive_path).unlink(missing_ok=True)
        logger.info("Removed archive %s", archive_path)
    # Imported lazily to avoid a circular import
    from .contour_cache import invalidate_tin

    invalidate_tin(tin_id)
