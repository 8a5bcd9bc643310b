"""Headland lines and headland detection.

Headland lines are boundary rings offset into the worked area: the outer ring
shrinks by the headland distance and every hole grows by it. The work area is
everything inside the outer headland line and outside the hole headland lines.
Turn areas use the same test but let the vehicle cross drive-through holes.

HeadlandDetector classifies the tool against the headland once per tick:
- per-section corner and look-ahead containment
- left/right/outer tool flags
- nearest headland vertex, its distance and a threshold warning
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import shapely
from shapely import MultiPolygon, Polygon

from . import config
from .geometry import AnyPoint, Point2, Point3, as_array, point_in_polygon
from .models import Boundary, HeadlandLine, ToolSection


# ============================================================================
# Headland Line Construction
# ============================================================================


def build_headland_line(boundary: Boundary, distance: float, source_index: int = 0) -> HeadlandLine:
    """Offset one boundary ring into its headland line.

    Args:
        boundary: Source ring.
        distance: Headland width (meters). Index 0 is shrunk, holes are grown.
        source_index: Position of the boundary in its field (0 = outer).

    Returns:
        HeadlandLine with per-vertex headings, or an empty line when the inset
        collapses the ring.
    """
    if len(boundary.points) < 3:
        return HeadlandLine((), source_index, distance, boundary.is_drive_through)

    polygon = Polygon([p.as_tuple() for p in boundary.points])
    if not polygon.is_valid:
        polygon = polygon.buffer(0)

    offset = -distance if source_index == 0 else distance
    buffered = polygon.buffer(offset, join_style="mitre", mitre_limit=config.HEADLAND_MITRE_LIMIT)

    if buffered.is_empty:
        logging.debug(
            f"Headland line for boundary {source_index} collapsed at {distance:.1f} m"
        )
        return HeadlandLine((), source_index, distance, boundary.is_drive_through)

    if isinstance(buffered, MultiPolygon):
        # Narrow necks split the inset; keep the largest piece
        buffered = max(buffered.geoms, key=lambda geom: geom.area)

    ring = Boundary.from_points(list(buffered.exterior.coords)[:-1])
    return HeadlandLine(ring.points, source_index, distance, boundary.is_drive_through)


def build_headland_lines(boundaries: Sequence[Boundary], distance: float) -> List[HeadlandLine]:
    """Build headland lines for a whole field, outer ring first."""
    return [build_headland_line(b, distance, i) for i, b in enumerate(boundaries)]


def area_index(
    point: AnyPoint, rings: Sequence[HeadlandLine], skip_drive_through: bool = False
) -> int:
    """Locate a point relative to a set of headland (or turn) lines.

    Args:
        point: Point to locate.
        rings: Outer line first, then hole lines.
        skip_drive_through: Ignore holes flagged drive-through. Turn areas do,
            headland detection does not.

    Returns:
        0 when inside the outer ring and outside every considered hole, the hole
        index when inside such a hole, and -1 when outside the outer ring (or
        when there is no usable outer ring).
    """
    if not rings or rings[0].is_empty():
        return -1
    if not point_in_polygon(point, rings[0].points):
        return -1

    for i in range(1, len(rings)):
        ring = rings[i]
        if ring.is_empty() or (skip_drive_through and ring.is_drive_through):
            continue
        if point_in_polygon(point, ring.points):
            return i
    return 0


def is_point_in_work_area(
    point: AnyPoint, rings: Sequence[HeadlandLine], skip_drive_through: bool = False
) -> bool:
    """True when a point lies in the worked area bounded by the given lines."""
    return area_index(point, rings, skip_drive_through) == 0


def work_area_polygon(
    rings: Sequence[HeadlandLine], skip_drive_through: bool = False
) -> Optional[Polygon]:
    """Shapely polygon of the work area (outer line minus hole lines).

    Returns:
        Prepared polygon for fast vectorized containment, or None without a
        usable outer line.
    """
    if not rings or rings[0].is_empty():
        return None
    area = Polygon([p.as_tuple() for p in rings[0].points])
    if not area.is_valid:
        area = area.buffer(0)
    for ring in rings[1:]:
        if ring.is_empty() or (skip_drive_through and ring.is_drive_through):
            continue
        area = area.difference(Polygon([p.as_tuple() for p in ring.points]))
    shapely.prepare(area)
    return area


def boundaries_as_lines(boundaries: Sequence[Boundary]) -> List[HeadlandLine]:
    """Wrap raw boundaries as zero-distance lines for containment tests."""
    return [
        HeadlandLine(b.points, i, 0.0, b.is_drive_through) for i, b in enumerate(boundaries)
    ]


# ============================================================================
# Headland Detection
# ============================================================================


@dataclass(frozen=True)
class LookAheadConfig:
    """Section look-ahead configuration.

    Attributes:
        left_distance: Look-ahead at the left tool edge (display units, scaled by
            LOOKAHEAD_SCALE to meters).
        right_distance: Look-ahead at the right tool edge (display units).
        total_width: Full tool width (meters).
        warning_distance: Warning threshold to the nearest headland vertex (meters).
    """

    left_distance: float = 0.0
    right_distance: float = 0.0
    total_width: float = 0.0
    warning_distance: float = config.HEADLAND_WARNING_DISTANCE

    def __post_init__(self) -> None:
        if self.total_width < 0.0:
            raise ValueError(f"Tool width must be non-negative, got {self.total_width}")


@dataclass(frozen=True)
class HeadlandDetectionRequest:
    headland_lines: Tuple[HeadlandLine, ...]
    vehicle_position: Point3
    sections: Tuple[ToolSection, ...] = ()
    look_ahead: LookAheadConfig = LookAheadConfig()
    is_headland_on: bool = True


@dataclass(frozen=True)
class SectionStatus:
    """Headland state of one section.

    Attributes:
        is_in_headland: Both section corners are outside the work area.
        is_look_ahead_in_headland: Both look-ahead points are outside the work area.
    """

    is_in_headland: bool
    is_look_ahead_in_headland: bool


@dataclass(frozen=True)
class HeadlandDetectionResult:
    is_tool_outer_points_in_headland: bool = False
    is_left_side_in_headland: bool = False
    is_right_side_in_headland: bool = False
    is_vehicle_in_headland: bool = False
    section_status: Tuple[SectionStatus, ...] = ()
    nearest_point: Optional[Point2] = None
    distance: float = math.inf
    should_trigger_warning: bool = False


def find_nearest_vertex(
    point: AnyPoint, rings: Sequence[HeadlandLine]
) -> Tuple[Optional[Point2], float]:
    """Nearest headland vertex by linear scan over every ring.

    Ties go to the first vertex found in ring traversal order.

    Returns:
        Tuple of (nearest vertex, distance), or (None, inf) without vertices.
    """
    best_point: Optional[Point2] = None
    best_distance = math.inf
    for ring in rings:
        if ring.is_empty():
            continue
        xy = as_array(ring.points)
        distances = np.hypot(xy[:, 0] - point.easting, xy[:, 1] - point.northing)
        # argmin returns the first index among equal minima
        index = int(np.argmin(distances))
        if distances[index] < best_distance:
            best_distance = float(distances[index])
            best_point = Point2(float(xy[index, 0]), float(xy[index, 1]))
    return best_point, best_distance


class HeadlandDetector:
    """Classifies tool sections and the vehicle against headland lines."""

    def detect(self, request: HeadlandDetectionRequest) -> HeadlandDetectionResult:
        """Run one headland classification.

        Args:
            request: Headland lines, vehicle pose, tool sections and look-ahead.

        Returns:
            Classification record. Missing or empty outer lines give a neutral
            result.
        """
        lines = request.headland_lines
        if not lines or lines[0].is_empty():
            return HeadlandDetectionResult()

        section_status, left_in, right_in = self._classify_sections(request)

        vehicle_in_headland = not is_point_in_work_area(request.vehicle_position, lines)

        nearest_point: Optional[Point2] = None
        distance = math.inf
        warning = False
        if request.is_headland_on:
            nearest_point, distance = find_nearest_vertex(request.vehicle_position, lines)
            warning = distance <= request.look_ahead.warning_distance

        return HeadlandDetectionResult(
            is_tool_outer_points_in_headland=left_in and right_in,
            is_left_side_in_headland=left_in,
            is_right_side_in_headland=right_in,
            is_vehicle_in_headland=vehicle_in_headland,
            section_status=tuple(section_status),
            nearest_point=nearest_point,
            distance=distance,
            should_trigger_warning=warning,
        )

    def _classify_sections(
        self, request: HeadlandDetectionRequest
    ) -> Tuple[List[SectionStatus], bool, bool]:
        sections = request.sections
        if not sections:
            return [], False, False

        lines = request.headland_lines
        heading = request.vehicle_position.heading
        forward = Point2(math.sin(heading), math.cos(heading))
        look_ahead = request.look_ahead

        left_ahead = look_ahead.left_distance * config.LOOKAHEAD_SCALE
        right_ahead = look_ahead.right_distance * config.LOOKAHEAD_SCALE
        slope = 0.0
        if look_ahead.total_width > 0.0:
            slope = (right_ahead - left_ahead) / look_ahead.total_width

        statuses: List[SectionStatus] = []
        position = 0.0
        previous_right_out: Optional[bool] = None
        previous_right_ahead_out: Optional[bool] = None
        for section in sections:
            # Neighbouring sections share a corner, reuse the previous right test
            if previous_right_out is None:
                left_out = not is_point_in_work_area(section.left_point, lines)
                left_ahead_point = section.left_point + forward * (left_ahead + slope * position)
                left_ahead_out = not is_point_in_work_area(left_ahead_point, lines)
            else:
                left_out = previous_right_out
                left_ahead_out = previous_right_ahead_out

            position += section.width
            right_out = not is_point_in_work_area(section.right_point, lines)
            right_ahead_point = section.right_point + forward * (left_ahead + slope * position)
            right_ahead_out = not is_point_in_work_area(right_ahead_point, lines)

            statuses.append(SectionStatus(left_out and right_out, left_ahead_out and right_ahead_out))
            previous_right_out = right_out
            previous_right_ahead_out = right_ahead_out

        first = sections[0]
        last = sections[-1]
        left_in = not is_point_in_work_area(first.left_point, lines)
        right_in = not is_point_in_work_area(last.right_point, lines)
        return statuses, left_in, right_in
