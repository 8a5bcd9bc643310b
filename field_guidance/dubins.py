"""Dubins shortest paths for a forward-only vehicle with a minimum turn radius.

Evaluates the six classic words (LSL, RSR, LSR, RSL, RLR, LRL) in the
normalized frame (unit radius, start at the origin) and keeps the shortest.
Internally the math frame is used (x = easting, y = northing, theta counter-
clockwise from east); inputs and outputs use compass headings.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .geometry import TWO_PI, Point3, normalize_heading


class Segment(Enum):
    LEFT = "L"
    STRAIGHT = "S"
    RIGHT = "R"


WORDS: Dict[str, Tuple[Segment, Segment, Segment]] = {
    word: tuple(Segment(c) for c in word)  # type: ignore[misc]
    for word in ("LSL", "RSR", "LSR", "RSL", "RLR", "LRL")
}


def _mod2pi(angle: float) -> float:
    return angle - TWO_PI * math.floor(angle / TWO_PI)


def _compass_to_math(heading: float) -> float:
    return _mod2pi(math.pi / 2.0 - heading)


def _math_to_compass(theta: float) -> float:
    return normalize_heading(math.pi / 2.0 - theta)


# ============================================================================
# Word Solvers (normalized: unit radius, d = distance / radius)
# ============================================================================


def _lsl(alpha: float, beta: float, d: float) -> Optional[Tuple[float, float, float]]:
    sa, sb, ca, cb = math.sin(alpha), math.sin(beta), math.cos(alpha), math.cos(beta)
    tmp0 = d + sa - sb
    p_sq = 2.0 + d * d - 2.0 * math.cos(alpha - beta) + 2.0 * d * (sa - sb)
    if p_sq < 0.0:
        return None
    tmp1 = math.atan2(cb - ca, tmp0)
    return _mod2pi(tmp1 - alpha), math.sqrt(p_sq), _mod2pi(beta - tmp1)


def _rsr(alpha: float, beta: float, d: float) -> Optional[Tuple[float, float, float]]:
    sa, sb, ca, cb = math.sin(alpha), math.sin(beta), math.cos(alpha), math.cos(beta)
    tmp0 = d - sa + sb
    p_sq = 2.0 + d * d - 2.0 * math.cos(alpha - beta) + 2.0 * d * (sb - sa)
    if p_sq < 0.0:
        return None
    tmp1 = math.atan2(ca - cb, tmp0)
    return _mod2pi(alpha - tmp1), math.sqrt(p_sq), _mod2pi(tmp1 - beta)


def _lsr(alpha: float, beta: float, d: float) -> Optional[Tuple[float, float, float]]:
    sa, sb, ca, cb = math.sin(alpha), math.sin(beta), math.cos(alpha), math.cos(beta)
    p_sq = -2.0 + d * d + 2.0 * math.cos(alpha - beta) + 2.0 * d * (sa + sb)
    if p_sq < 0.0:
        return None
    p = math.sqrt(p_sq)
    tmp0 = math.atan2(-ca - cb, d + sa + sb) - math.atan2(-2.0, p)
    return _mod2pi(tmp0 - alpha), p, _mod2pi(tmp0 - _mod2pi(beta))


def _rsl(alpha: float, beta: float, d: float) -> Optional[Tuple[float, float, float]]:
    sa, sb, ca, cb = math.sin(alpha), math.sin(beta), math.cos(alpha), math.cos(beta)
    p_sq = -2.0 + d * d + 2.0 * math.cos(alpha - beta) - 2.0 * d * (sa + sb)
    if p_sq < 0.0:
        return None
    p = math.sqrt(p_sq)
    tmp0 = math.atan2(ca + cb, d - sa - sb) - math.atan2(2.0, p)
    return _mod2pi(alpha - tmp0), p, _mod2pi(beta - tmp0)


def _rlr(alpha: float, beta: float, d: float) -> Optional[Tuple[float, float, float]]:
    sa, sb, ca, cb = math.sin(alpha), math.sin(beta), math.cos(alpha), math.cos(beta)
    tmp0 = (6.0 - d * d + 2.0 * math.cos(alpha - beta) + 2.0 * d * (sa - sb)) / 8.0
    if abs(tmp0) > 1.0:
        return None
    phi = math.atan2(ca - cb, d - sa + sb)
    p = _mod2pi(TWO_PI - math.acos(tmp0))
    t = _mod2pi(alpha - phi + _mod2pi(p / 2.0))
    return t, p, _mod2pi(alpha - beta - t + _mod2pi(p))


def _lrl(alpha: float, beta: float, d: float) -> Optional[Tuple[float, float, float]]:
    sa, sb, ca, cb = math.sin(alpha), math.sin(beta), math.cos(alpha), math.cos(beta)
    tmp0 = (6.0 - d * d + 2.0 * math.cos(alpha - beta) + 2.0 * d * (sb - sa)) / 8.0
    if abs(tmp0) > 1.0:
        return None
    phi = math.atan2(ca - cb, d + sa - sb)
    p = _mod2pi(TWO_PI - math.acos(tmp0))
    t = _mod2pi(-alpha - phi + p / 2.0)
    return t, p, _mod2pi(_mod2pi(beta) - alpha - t + _mod2pi(p))


_SOLVERS = {
    "LSL": _lsl,
    "RSR": _rsr,
    "LSR": _lsr,
    "RSL": _rsl,
    "RLR": _rlr,
    "LRL": _lrl,
}


# ============================================================================
# Paths
# ============================================================================


@dataclass(frozen=True)
class DubinsPath:
    """One Dubins word between two poses.

    Attributes:
        start: Start pose (compass heading).
        radius: Turn radius (meters).
        word: Segment word, e.g. "LSL".
        lengths: Normalized segment lengths (multiply by radius for meters).
    """

    start: Point3
    radius: float
    word: str
    lengths: Tuple[float, float, float]

    @property
    def length(self) -> float:
        return sum(self.lengths) * self.radius

    def point_at(self, distance: float) -> Point3:
        """Pose at a distance (meters) along the path, clamped to its ends."""
        remaining = max(0.0, min(distance, self.length)) / self.radius
        x, y = 0.0, 0.0
        theta = _compass_to_math(self.start.heading)

        for segment, seg_length in zip(WORDS[self.word], self.lengths):
            step = min(remaining, seg_length)
            x, y, theta = _advance(x, y, theta, segment, step)
            remaining -= step
            if remaining <= 0.0:
                break

        return Point3(
            self.start.easting + x * self.radius,
            self.start.northing + y * self.radius,
            _math_to_compass(theta),
        )

    def sample(self, step: float) -> List[Point3]:
        """Sample the path every step meters, always including both ends."""
        if step <= 0.0:
            raise ValueError(f"Sample step must be positive, got {step}")
        total = self.length
        count = max(int(math.ceil(total / step)), 1)
        return [self.point_at(total * i / count) for i in range(count + 1)]


def _advance(x: float, y: float, theta: float, segment: Segment, t: float) -> Tuple[float, float, float]:
    if segment is Segment.LEFT:
        return (
            x + math.sin(theta + t) - math.sin(theta),
            y - math.cos(theta + t) + math.cos(theta),
            theta + t,
        )
    if segment is Segment.RIGHT:
        return (
            x - math.sin(theta - t) + math.sin(theta),
            y + math.cos(theta - t) - math.cos(theta),
            theta - t,
        )
    return x + math.cos(theta) * t, y + math.sin(theta) * t, theta


class DubinsPlanner:
    """Shortest Dubins paths at a fixed turn radius."""

    def __init__(self, radius: float):
        """Initialize the planner.

        Args:
            radius: Minimum turn radius (meters), must be positive.

        Raises:
            ValueError: If radius is not positive.
        """
        if radius <= 0.0:
            raise ValueError(f"Turn radius must be positive, got {radius}")
        self.radius = radius

    def candidates(self, start: Point3, goal: Point3) -> List[DubinsPath]:
        """All feasible words between two poses."""
        dx = goal.easting - start.easting
        dy = goal.northing - start.northing
        d = math.hypot(dx, dy) / self.radius
        theta = _mod2pi(math.atan2(dy, dx)) if d > 1e-12 else 0.0
        alpha = _mod2pi(_compass_to_math(start.heading) - theta)
        beta = _mod2pi(_compass_to_math(goal.heading) - theta)

        paths = []
        for word, solver in _SOLVERS.items():
            lengths = solver(alpha, beta, d)
            if lengths is not None:
                paths.append(DubinsPath(start, self.radius, word, lengths))
        return paths

    def shortest(self, start: Point3, goal: Point3) -> Optional[DubinsPath]:
        """Shortest feasible path, or None when no word applies."""
        paths = self.candidates(start, goal)
        if not paths:
            return None
        return min(paths, key=lambda path: path.length)
