"""
TIN archive serialization utilities.

This module saves and loads the arrays that define a TIN using
compressed NumPy archives (``.npz``).  An archive holds the ``(N, 3)``
point array, the ``(M, 3)`` triangle index array and, when the surface
was given vertex slopes, an ``(N, 2)`` gradient array.  Points are kept
in float64: contour positions are compared for exact equality across
shared edges, so the round trip must not lose precision.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np


def canonical_arrays(
    points: Sequence[Sequence[float]],
    triangles: Sequence[Sequence[int]],
    gradients: Optional[Sequence[Sequence[float]]] = None,
) -> Tuple[np.ndarray, np.ndarray, Optional[np.ndarray]]:
    """Convert TIN input into the arrays stored in an archive.

    Raises:
        ValueError: If the inputs do not have the expected shapes.
    """
    points_arr = np.asarray(points, dtype=np.float64)
    triangles_arr = np.asarray(triangles, dtype=np.int64)
    if points_arr.ndim != 2 or points_arr.shape[1] != 3:
        raise ValueError("points must be a list of [x, y, z] triples")
    if triangles_arr.ndim != 2 or triangles_arr.shape[1] != 3:
        raise ValueError("triangles must be a list of [i, j, k] index triples")
    gradients_arr = None
    if gradients is not None:
        gradients_arr = np.asarray(gradients, dtype=np.float64)
        if gradients_arr.shape != (len(points_arr), 2):
            raise ValueError("gradients must hold one [dz/dx, dz/dy] pair per point")
    return points_arr, triangles_arr, gradients_arr


def save_tin_archive(
    path: Path,
    points: np.ndarray,
    triangles: np.ndarray,
    gradients: Optional[np.ndarray] = None,
) -> None:
    """Write TIN arrays to a compressed ``.npz`` file.

    Args:
        path: Destination file path.  Parent directories will not be
            created; callers should ensure the directory exists.
        points: ``(N, 3)`` array of vertex coordinates.
        triangles: ``(M, 3)`` array of vertex indices.
        gradients: Optional ``(N, 2)`` array of vertex slopes.
    """
    arrays = {
        "points": np.asarray(points, dtype=np.float64),
        "triangles": np.asarray(triangles, dtype=np.uint32),
    }
    if gradients is not None:
        arrays["gradients"] = np.asarray(gradients, dtype=np.float64)
    np.savez_compressed(path, **arrays)


def load_tin_archive(
    path: Path,
) -> Tuple[List[List[float]], List[List[int]], Optional[List[List[float]]]]:
    """Load TIN arrays from a compressed ``.npz`` file.

    Returns:
        A tuple of ``(points, triangles, gradients)`` as nested lists;
        ``gradients`` is ``None`` when the archive has none.

    Raises:
        FileNotFoundError: If the specified path does not exist.
        ValueError: If the archive does not contain the expected fields.
    """
    if not path.exists():
        raise FileNotFoundError(f"TIN archive not found: {path}")
    with np.load(path, allow_pickle=False) as data:
        required_keys = {"points", "triangles"}
        if not required_keys.issubset(data.files):
            missing = required_keys - set(data.files)
            raise ValueError(f"TIN archive is missing fields: {missing}")
        points = data["points"].astype(np.float64).tolist()
        triangles = data["triangles"].astype(np.int64).tolist()
        gradients = None
        if "gradients" in data.files:
            gradients = data["gradients"].astype(np.float64).tolist()
    return points, triangles, gradients
