"""
Plane curves used to approximate contours.

Two curve types live here.  ``Segment`` is a straight 3D segment whose
elevation follows a cubic Bézier vertical curve, the same profile used
by road design software for grade changes.  ``SpiralArc`` extends it
with a clothoid horizontal alignment: curvature varies linearly with
arc length, so a chain of spiral arcs meeting with equal bearings has
continuous tangents.  A spiral arc is defined by its two end points and
the bearing of the curve at each of them; the curvature parameters and
arc length are solved numerically.

Bearings are angles in radians measured counter‑clockwise from the +x
axis.  Points are ``(x, y, z)`` tuples as elsewhere in the engine.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Point3 = Tuple[float, float, float]

# Gauss–Legendre nodes and weights mapped onto [0, 1].  Sixteen nodes
# integrate the heading of any spiral that turns less than a half circle
# to well below a micrometre per kilometre.
_GL_X, _GL_W = np.polynomial.legendre.leggauss(16)
_GL_U = (_GL_X + 1.0) / 2.0
_GL_W = _GL_W / 2.0

# Bearings further than this from the chord cannot be fitted with a single
# spiral; such segments fall back to straight lines.
MAX_DEFLECTION = math.pi / 2


def bearing(p: Tuple[float, ...], q: Tuple[float, ...]) -> float:
    """Return the direction from ``p`` to ``q`` in radians."""
    return math.atan2(q[1] - p[1], q[0] - p[0])


def normalize_angle(angle: float) -> float:
    """Wrap ``angle`` into ``[-pi, pi)``."""
    return (angle + math.pi) % (2.0 * math.pi) - math.pi


def relprime(n: int) -> int:
    """Return a stride near ``n`` divided by the golden ratio that is relatively prime to ``n``.

    Stepping through ``range(n)`` with such a stride visits every index once
    per ``n`` steps while scattering consecutive visits across the range.
    """
    if n < 3:
        return 1
    target = int(round(n * (math.sqrt(5.0) - 1.0) / 2.0))
    for delta in range(n):
        for cand in (target - delta, target + delta):
            if 0 < cand < n and math.gcd(cand, n) == 1:
                return cand
    return 1


def vcurve(a: float, b: float, c: float, d: float, p: float) -> float:
    """Evaluate the cubic Bézier with control values ``a, b, c, d`` at ``p``."""
    q = 1.0 - p
    return a * q * q * q + 3.0 * b * q * q * p + 3.0 * c * q * p * p + d * p * p * p


class Segment:
    """A straight segment with a cubic vertical profile.

    Attributes:
        start: First end point.
        end: Second end point.
        control1: Elevation of the first interior Bézier control.  Defaults
            to one third of the way from the start to the end elevation,
            which gives a uniform grade.
        control2: Elevation of the second interior control.
    """

    def __init__(
        self,
        start: Point3,
        end: Point3,
        control1: Optional[float] = None,
        control2: Optional[float] = None,
    ) -> None:
        self.start = (float(start[0]), float(start[1]), float(start[2]))
        self.end = (float(end[0]), float(end[1]), float(end[2]))
        if control1 is None:
            control1 = (2.0 * self.start[2] + self.end[2]) / 3.0
        if control2 is None:
            control2 = (self.start[2] + 2.0 * self.end[2]) / 3.0
        self.control1 = float(control1)
        self.control2 = float(control2)

    def chord_length(self) -> float:
        return math.hypot(self.end[0] - self.start[0], self.end[1] - self.start[1])

    def length(self) -> float:
        return self.chord_length()

    def elevation(self, along: float) -> float:
        length = self.length()
        if length == 0.0:
            return self.start[2]
        return vcurve(self.start[2], self.control1, self.control2, self.end[2], along / length)

    def station(self, along: float) -> Point3:
        """Return the point ``along`` units from the start."""
        length = self.length()
        if length == 0.0:
            return self.start
        p = along / length
        q = 1.0 - p
        return (
            self.start[0] * q + self.end[0] * p,
            self.start[1] * q + self.end[1] * p,
            self.elevation(along),
        )

    def bearing_at(self, along: float) -> float:
        return bearing(self.start, self.end)

    def curvature(self, along: float) -> float:
        return 0.0

    @property
    def start_curvature(self) -> float:
        return self.curvature(0.0)

    @property
    def end_curvature(self) -> float:
        return self.curvature(self.length())

    def contourcept(self, level: float, near: Optional[float] = None) -> Optional[float]:
        """Return the distance along the segment at which the profile equals ``level``.

        When the profile reaches ``level`` more than once, the crossing
        closest to ``near`` (a distance along the segment, defaulting to
        the middle) is returned.  ``None`` means the profile never reaches
        ``level`` between the end points.
        """
        length = self.length()
        if length == 0.0:
            return None
        a, b, c, d = self.start[2], self.control1, self.control2, self.end[2]
        coeffs = [d - a + 3.0 * (b - c), 3.0 * (a - 2.0 * b + c), 3.0 * (b - a), a - level]
        if not all(math.isfinite(x) for x in coeffs):
            return None
        # Rounding leaves tiny leading terms on straight grades
        scale = max(abs(x) for x in coeffs[:3])
        if scale == 0.0:
            return None
        while abs(coeffs[0]) <= 1e-12 * scale:
            coeffs.pop(0)
        roots = np.roots(coeffs)
        candidates: List[float] = []
        for r in roots:
            if abs(r.imag) > 1e-9:
                continue
            p = float(r.real)
            if -1e-9 <= p <= 1.0 + 1e-9:
                candidates.append(min(max(p, 0.0), 1.0))
        if not candidates:
            return None
        target = 0.5 if near is None else near / length
        best = min(candidates, key=lambda p: abs(p - target))
        return best * length

    def approx_points(self, step: float) -> List[Point3]:
        """Sample the curve at intervals no longer than ``step``."""
        length = self.length()
        count = max(1, int(math.ceil(length / step))) if step > 0 else 1
        return [self.station(length * i / count) for i in range(count + 1)]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(start={self.start!r}, end={self.end!r})"


class SpiralArc(Segment):
    """A clothoid segment joining two points with prescribed end bearings.

    The heading relative to the chord is ``r0 + a*u + b*u**2`` where ``u``
    is the fraction of arc length travelled.  ``a + b`` is fixed by the
    end bearings; ``b`` is chosen so the curve ends on the chord, and the
    arc length follows from the chord length.
    """

    def __init__(
        self,
        start: Point3,
        end: Point3,
        start_bearing: float,
        end_bearing: float,
        control1: Optional[float] = None,
        control2: Optional[float] = None,
    ) -> None:
        super().__init__(start, end, control1, control2)
        chord = self.chord_length()
        self.chord_bearing = bearing(self.start, self.end)
        self.rel_start = normalize_angle(start_bearing - self.chord_bearing)
        self.rel_end = normalize_angle(end_bearing - self.chord_bearing)
        self._a = 0.0
        self._b = 0.0
        self._length = chord
        if chord == 0.0:
            self.rel_start = self.rel_end = 0.0
            return
        if abs(self.rel_start) < 1e-12 and abs(self.rel_end) < 1e-12:
            return
        if not self._fit(chord):
            logger.debug(
                "SpiralArc: cannot fit bearings %.6f/%.6f to chord; using a straight segment",
                self.rel_start,
                self.rel_end,
            )
            self.rel_start = self.rel_end = 0.0
            self._a = self._b = 0.0
            self._length = chord

    def _fit(self, chord: float) -> bool:
        r0 = self.rel_start
        delta = self.rel_end - self.rel_start
        if abs(self.rel_start) > MAX_DEFLECTION or abs(self.rel_end) > MAX_DEFLECTION:
            return False
        u = _GL_U
        shape = u * u - u
        b = 3.0 * (self.rel_start + self.rel_end)
        for _ in range(30):
            theta = r0 + (delta - b) * u + b * u * u
            f = float(np.dot(_GL_W, np.sin(theta)))
            df = float(np.dot(_GL_W, np.cos(theta) * shape))
            if abs(f) < 1e-14:
                break
            if df == 0.0:
                return False
            b -= f / df
        else:
            return False
        theta = r0 + (delta - b) * u + b * u * u
        along_chord = float(np.dot(_GL_W, np.cos(theta)))
        if not math.isfinite(along_chord) or along_chord <= 0.0:
            return False
        self._a = delta - b
        self._b = b
        self._length = chord / along_chord
        return True

    def length(self) -> float:
        return self._length

    @property
    def delta(self) -> float:
        """Total change of bearing from start to end."""
        return self._a + self._b

    @property
    def clothance(self) -> float:
        """Rate of change of curvature per unit length."""
        if self._length == 0.0:
            return 0.0
        return 2.0 * self._b / (self._length * self._length)

    def _heading(self, u: float) -> float:
        return self.chord_bearing + self.rel_start + self._a * u + self._b * u * u

    def bearing_at(self, along: float) -> float:
        if self._length == 0.0:
            return self.chord_bearing
        return self._heading(along / self._length)

    def curvature(self, along: float) -> float:
        if self._length == 0.0:
            return 0.0
        u = along / self._length
        return (self._a + 2.0 * self._b * u) / self._length

    def station(self, along: float) -> Point3:
        length = self._length
        if length == 0.0 or along <= 0.0:
            return (self.start[0], self.start[1], self.elevation(0.0))
        if along >= length:
            return (self.end[0], self.end[1], self.elevation(length))
        u1 = along / length
        us = _GL_U * u1
        theta = self.chord_bearing + self.rel_start + self._a * us + self._b * us * us
        dx = length * u1 * float(np.dot(_GL_W, np.cos(theta)))
        dy = length * u1 * float(np.dot(_GL_W, np.sin(theta)))
        return (self.start[0] + dx, self.start[1] + dy, self.elevation(along))
