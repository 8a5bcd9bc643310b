"""Track nudging: perpendicular offsets of AB lines and curves.

A positive distance shifts a track to the right of its own direction:
the offset vector is distance * (sin(h + pi/2), cos(h + pi/2)) for heading h.

AB lines translate in closed form. Curves go through four passes:
1. Translate each point along its own heading's perpendicular, dropping points
   that fold back onto the original curve or crowd the previous kept point.
2. Reject the result when fewer than MIN_CURVE_POINTS survive.
3. Recompute forward-difference headings.
4. Re-densify with a Catmull-Rom spline and recompute centered headings.
"""

import logging
import math
from typing import List, Sequence

import numpy as np

from . import config
from .geometry import (
    PI_BY_2,
    Point2,
    Point3,
    as_array,
    catmull_rom,
    compute_forward_headings,
    compute_headings,
)
from .models import ABLine, Curve, Track


def nudge_ab_line(line: ABLine, distance: float) -> ABLine:
    """Translate an AB line perpendicular to its heading.

    Args:
        line: Line to offset.
        distance: Signed offset (meters, positive = right of A -> B).

    Returns:
        New ABLine with the same heading. Degenerate input propagates unchanged
        through the arithmetic.

    Example:
        >>> line = ABLine.from_points((0, 0), (0, 100))
        >>> nudged = nudge_ab_line(line, 3.0)
        >>> # nudged runs from (3, 0) to (3, 100)
    """
    perp = line.heading + PI_BY_2
    offset = Point2(math.sin(perp) * distance, math.cos(perp) * distance)
    return ABLine(line.point_a + offset, line.point_b + offset, line.heading)


def _nearest_sq_distances(
    queries: np.ndarray, targets: np.ndarray, chunk_rows: int = config.NUDGE_FILTER_CHUNK_ROWS
) -> np.ndarray:
    """Squared distance from each query point to its nearest target point.

    Queries are handled chunk_rows at a time, so peak memory grows with
    chunk_rows * len(targets) rather than len(queries) * len(targets).
    """
    nearest = np.empty(len(queries))
    for start in range(0, len(queries), chunk_rows):
        block = queries[start : start + chunk_rows]
        deltas = block[:, np.newaxis, :] - targets[np.newaxis, :, :]
        nearest[start : start + len(block)] = np.min(np.einsum("ijk,ijk->ij", deltas, deltas), axis=1)
    return nearest


def _translate_and_filter(points: Sequence[Point3], distance: float) -> List[Point2]:
    """First pass of a curve nudge: offset, fold-back filter and spacing filter."""
    originals = as_array(points)
    headings = np.array([p.heading for p in points]) + PI_BY_2
    shifted = originals + distance * np.column_stack((np.sin(headings), np.cos(headings)))

    nearest_sq = _nearest_sq_distances(shifted, originals)
    dist_sq_away = distance * distance - config.NUDGE_COLLISION_MARGIN

    min_spacing_sq = config.NUDGE_MIN_POINT_SPACING * config.NUDGE_MIN_POINT_SPACING
    kept: List[Point2] = []
    for (easting, northing), clearance_sq in zip(shifted, nearest_sq):
        if clearance_sq < dist_sq_away:
            continue
        if kept:
            de = easting - kept[-1].easting
            dn = northing - kept[-1].northing
            if de * de + dn * dn <= min_spacing_sq:
                continue
        kept.append(Point2(float(easting), float(northing)))
    return kept


def _densify(points: Sequence[Point3], spacing: float) -> List[Point3]:
    """Insert Catmull-Rom points wherever a span is longer than spacing.

    The first point and the last two points are kept verbatim; every interior
    span uses its neighbours as spline control points.
    """
    count = len(points)
    result: List[Point3] = [points[0]]
    for i in range(count - 3):
        result.append(points[i + 1])
        gap = points[i + 1].distance_to(points[i + 2])
        if gap > spacing:
            loop_times = int(gap / spacing + 1)
            for j in range(1, loop_times):
                result.append(
                    catmull_rom(j / loop_times, points[i], points[i + 1], points[i + 2], points[i + 3])
                )
    result.append(points[count - 2])
    result.append(points[count - 1])
    return result


def nudge_curve(curve: Curve, distance: float) -> Curve:
    """Offset a curve perpendicular to its local heading and re-smooth it.

    Args:
        curve: Curve to offset; it is never mutated.
        distance: Signed offset (meters, positive = right of travel direction).

    Returns:
        New Curve carrying the input's closed flag, or an empty Curve when the
        input or the filtered result has fewer than MIN_CURVE_POINTS points.
    """
    if len(curve.points) < config.MIN_CURVE_POINTS:
        logging.warning(
            f"Curve nudge rejected: {len(curve.points)} points, "
            f"need at least {config.MIN_CURVE_POINTS}"
        )
        return Curve()

    kept = _translate_and_filter(curve.points, distance)
    if len(kept) < config.MIN_CURVE_POINTS:
        logging.warning(
            f"Curve nudge by {distance:.2f} m left {len(kept)} points after filtering"
        )
        return Curve()

    headed = compute_forward_headings(kept)
    smoothed = _densify(headed, config.CATMULL_SPACING)
    logging.debug(
        f"Nudged curve by {distance:.2f} m: {len(curve.points)} -> {len(kept)} -> "
        f"{len(smoothed)} points"
    )
    return Curve(tuple(compute_headings(smoothed)), curve.is_closed)


def nudge_track(track: Track, distance: float) -> Track:
    """Offset any track by a signed perpendicular distance."""
    if isinstance(track, ABLine):
        return nudge_ab_line(track, distance)
    return nudge_curve(track, distance)


# ============================================================================
# Curve Limits
# ============================================================================


def min_radius_of_curvature(curve: Curve) -> float:
    """Smallest circumradius over consecutive point triples (meters).

    Straight curves, and curves with fewer than three points, return inf.
    """
    xy = as_array(curve.points)
    if len(xy) < 3:
        return math.inf

    a = xy[:-2]
    b = xy[1:-1]
    c = xy[2:]
    ab = np.hypot(*(b - a).T)
    bc = np.hypot(*(c - b).T)
    ca = np.hypot(*(a - c).T)
    twice_area = np.abs((b[:, 0] - a[:, 0]) * (c[:, 1] - a[:, 1]) - (b[:, 1] - a[:, 1]) * (c[:, 0] - a[:, 0]))

    valid = twice_area > 1e-9
    if not np.any(valid):
        return math.inf
    radii = ab[valid] * bc[valid] * ca[valid] / (2.0 * twice_area[valid])
    return float(np.min(radii))


def max_inward_passes(curve: Curve, pass_width: float) -> int:
    """Number of inward passes a curve can take before its tightest bend collapses.

    Args:
        curve: Reference curve.
        pass_width: Distance between passes (meters).

    Returns:
        Pass count; a straight curve or a non-positive width returns 0 meaning
        "no limit applies".
    """
    radius = min_radius_of_curvature(curve)
    if pass_width <= 0.0 or math.isinf(radius):
        return 0
    return int(config.MAX_INWARD_PASS_FRACTION * radius / pass_width)
