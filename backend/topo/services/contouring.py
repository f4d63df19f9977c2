"""
Running the contour engine on a stored TIN.

``contour_tin`` loads a TIN, builds its spatial index, extracts the raw
contours at the requested interval and, unless told otherwise, smooths
them into spiral‑arc chains.  Elapsed time of each stage is returned
alongside the result so the API can report it.
"""

from __future__ import annotations

import logging
import time
from typing import Dict, Tuple, Union

from .contours import ContourSet, check_interval, extract_contours
from .quadindex import SpatialIndex
from .smoothing import SmoothContourSet, smooth_contours
from .storage import load_tin

logger = logging.getLogger(__name__)


def contour_tin(
    tin_id: str,
    interval: float,
    smooth: bool = True,
    record_splits: bool = False,
) -> Tuple[Union[ContourSet, SmoothContourSet], Dict[str, float]]:
    """Contour a stored TIN.

    Args:
        tin_id: Identifier of the stored TIN.
        interval: Contour interval.
        smooth: Run the smoothing pass.
        record_splits: Keep split diagnostics (smoothing only).

    Returns:
        ``(contours, timings)`` where ``timings`` maps stage names to
        seconds.

    Raises:
        ValueError: If ``interval`` is not a positive number.
        HTTPException: 404 if the TIN is unknown.
    """
    interval = check_interval(interval)
    global_start = time.perf_counter()
    timings: Dict[str, float] = {}

    t0 = time.perf_counter()
    mesh = load_tin(tin_id)
    timings["load"] = time.perf_counter() - t0

    t0 = time.perf_counter()
    raw = extract_contours(mesh, interval)
    timings["extract"] = time.perf_counter() - t0

    result: Union[ContourSet, SmoothContourSet] = raw
    if smooth:
        t0 = time.perf_counter()
        index = SpatialIndex(mesh)
        timings["index"] = time.perf_counter() - t0
        t0 = time.perf_counter()
        result = smooth_contours(raw, mesh, index, interval, record_splits=record_splits)
        timings["smooth"] = time.perf_counter() - t0

    timings["total"] = time.perf_counter() - global_start
    logger.info(
        "Contoured TIN %s at interval %s: %d contours in %.3fs",
        tin_id,
        interval,
        len(result),
        timings["total"],
    )
    return result, timings
