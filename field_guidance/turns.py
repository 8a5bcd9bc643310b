"""Turn path creation at the end of a guidance line.

A turn request carries the current track, the vehicle pose and the field. The
creator:
1. Picks the destination path index per skip mode.
2. Finds where the current line meets the turn line ahead of the vehicle.
3. Builds the turn shape at the vehicle's turn radius:
   - omega: Dubins path, used when the offset is at most two radii
   - wide: quarter arc, straight, quarter arc, used for larger offsets
   - K-style: forward arc plus straight tail, finished by reversing
4. Moves the shape back until it fits inside the turn line, then forward until
   it touches it.
5. Adds entry and exit legs, resamples the path and flags boundary crossings.

Infeasible requests come back as a failed result with a reason; nothing here
raises during normal operation.
"""

import logging
import math
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Sequence, Tuple

import numpy as np
import shapely
from shapely import LinearRing, LineString

from . import config
from .dubins import DubinsPlanner
from .geometry import (
    Point2,
    Point3,
    angle_diff,
    as_array,
    compute_headings,
    heading_vector,
    normalize_heading,
    ray_ring_intersection,
    resample_polyline,
    right_vector,
)
from .headland import area_index, boundaries_as_lines, build_headland_lines, work_area_polygon
from .models import (
    ABLine,
    Boundary,
    Curve,
    HeadlandLine,
    SkipMode,
    Track,
    TurnPath,
    TurnShape,
    TurnStyle,
)
from .nudging import nudge_track
from .vehicle import VehicleConfig


@dataclass(frozen=True)
class TurnSettings:
    """Operator turn configuration.

    Attributes:
        style: Albin (omega/wide) or K-style.
        skip_mode: Destination selection rule.
        row_skips_width: Paths skipped on a normal turn.
        alternate_skips_width: Paths skipped on every other turn in alternative mode.
        tool_width: Implement width (meters).
        overlap: Overlap between passes (meters).
        tool_offset: Lateral tool offset from the vehicle centerline (meters,
            positive = right). The turn offset grows by twice this on right
            turns and shrinks by twice this on left turns.
        turn_radius: Turn radius (meters); None uses the vehicle's minimum radius.
        turn_line_distance: Turn line inset from the boundaries (meters).
        headland_width: Headland width used to size the legs (meters).
        leg_multiplier: Leg length as a multiple of the headland width.
    """

    style: TurnStyle = TurnStyle.ALBIN
    skip_mode: SkipMode = SkipMode.NORMAL
    row_skips_width: int = 0
    alternate_skips_width: int = 1
    tool_width: float = 6.0
    overlap: float = 0.0
    tool_offset: float = 0.0
    turn_radius: Optional[float] = None
    turn_line_distance: float = config.TURN_LINE_DISTANCE
    headland_width: float = config.HEADLAND_WIDTH
    leg_multiplier: float = config.TURN_LEG_MULTIPLIER

    def __post_init__(self) -> None:
        if self.tool_width <= 0.0:
            raise ValueError(f"Tool width must be positive, got {self.tool_width}")
        if not 0.0 <= self.overlap < self.tool_width:
            raise ValueError(f"Overlap must be in [0, tool width), got {self.overlap}")
        if 2.0 * abs(self.tool_offset) >= self.path_width:
            raise ValueError(f"Tool offset must be under half the path width, got {self.tool_offset}")
        if self.row_skips_width < 0 or self.alternate_skips_width < 0:
            raise ValueError("Skip widths must be non-negative")
        if self.turn_radius is not None and self.turn_radius <= 0.0:
            raise ValueError(f"Turn radius must be positive, got {self.turn_radius}")

    @property
    def path_width(self) -> float:
        """Distance between neighbouring guidance paths (meters)."""
        return self.tool_width - self.overlap


@dataclass(frozen=True)
class TurnRequest:
    """Everything needed to create one turn.

    Attributes:
        track: Reference track; path index 0.
        vehicle: Pivot pose.
        boundaries: Field boundaries, outer ring first.
        settings: Turn configuration.
        vehicle_config: Vehicle geometry, sizes the default turn radius.
        turn_left: Turn toward the left of the travel direction.
        paths_away: Index of the path currently driven.
        turn_count: Turns made so far; alternative mode uses its parity.
        worked_tracks: Path indices already worked.
        turn_lines: Precomputed turn lines; built from the boundaries when None.
        turn_offset: Explicit lateral offset (meters) overriding the skip width.
    """

    track: Track
    vehicle: Point3
    boundaries: Tuple[Boundary, ...]
    settings: TurnSettings = TurnSettings()
    vehicle_config: VehicleConfig = VehicleConfig()
    turn_left: bool = False
    paths_away: int = 0
    turn_count: int = 0
    worked_tracks: FrozenSet[int] = frozenset()
    turn_lines: Optional[Tuple[HeadlandLine, ...]] = None
    turn_offset: Optional[float] = None


@dataclass(frozen=True)
class TurnCreationResult:
    """Outcome of a turn creation.

    Attributes:
        success: True when a turn path was produced.
        failure_reason: Caller-facing reason when success is False.
        turn_path: Generated path.
        next_paths_away: Path index the turn ends on.
        distance_pivot_to_turn_line: Pivot to turn line distance along the track (meters).
        in_closest_turn_point: Start of the turn shape.
        out_closest_turn_point: End of the turn shape.
    """

    success: bool
    failure_reason: str = ""
    turn_path: Optional[TurnPath] = None
    next_paths_away: int = 0
    distance_pivot_to_turn_line: float = 0.0
    in_closest_turn_point: Optional[Point2] = None
    out_closest_turn_point: Optional[Point2] = None

    @classmethod
    def failure(cls, reason: str, paths_away: int = 0) -> "TurnCreationResult":
        logging.info(f"Turn creation failed: {reason}")
        return cls(success=False, failure_reason=reason, next_paths_away=paths_away)

    @property
    def is_out_of_bounds(self) -> bool:
        return self.turn_path is not None and self.turn_path.is_out_of_bounds

    @property
    def is_out_same_curve(self) -> bool:
        return self.turn_path is not None and self.turn_path.is_out_same_curve

    @property
    def is_going_straight_through(self) -> bool:
        return self.turn_path is not None and self.turn_path.is_going_straight_through


@dataclass(frozen=True)
class _TurnPoint:
    point: Point2
    heading: float
    distance: float


# ============================================================================
# Shape Generation (local frame: x to the right, y forward)
# ============================================================================


def _arc(
    center_x: float, center_y: float, radius: float, start: float, end: float, step: float
) -> np.ndarray:
    count = max(int(math.ceil(abs(end - start) * radius / step)), 2)
    angles = np.linspace(start, end, count + 1)
    return np.column_stack((center_x + radius * np.cos(angles), center_y + radius * np.sin(angles)))


def wide_shape(offset: float, radius: float, step: float) -> np.ndarray:
    """Quarter arc, straight across, quarter arc back (offset > 2 * radius)."""
    first = _arc(radius, 0.0, radius, math.pi, math.pi / 2.0, step)
    second = _arc(offset - radius, 0.0, radius, math.pi / 2.0, 0.0, step)
    return np.vstack((first, second))


def omega_shape(offset: float, radius: float, step: float) -> Optional[np.ndarray]:
    """Shortest Dubins path from heading forward to heading back, offset to the right."""
    path = DubinsPlanner(radius).shortest(Point3(0.0, 0.0, 0.0), Point3(offset, 0.0, math.pi))
    if path is None:
        return None
    return as_array(path.sample(step))


def k_style_shape(offset: float, radius: float, step: float) -> np.ndarray:
    """Forward arc through K_STYLE_ARC_ANGLE followed by a straight tail."""
    arc = _arc(radius, 0.0, radius, math.pi, math.pi - config.K_STYLE_ARC_ANGLE, step)
    tail_length = max(config.K_STYLE_TAIL_FACTOR * offset, radius)
    angle = config.K_STYLE_ARC_ANGLE
    end = arc[-1] + tail_length * np.array([math.sin(angle), math.cos(angle)])
    return np.vstack((arc, end))


def _leg_length(settings: TurnSettings, radius: float) -> float:
    return max(settings.leg_multiplier * settings.headland_width, 2.0 * radius)


def _walk_curve(points: Sequence[Point3], anchor: Point2, step: int, length: float) -> List[Point2]:
    """Collect curve points from the one nearest the anchor, walking step by step."""
    xy = as_array(points)
    index = int(np.argmin(np.hypot(xy[:, 0] - anchor.easting, xy[:, 1] - anchor.northing)))
    result = [anchor]
    travelled = 0.0
    index += step
    while 0 <= index < len(points) and travelled < length:
        point = points[index].to_point2()
        travelled += point.distance_to(result[-1])
        result.append(point)
        index += step
    return result


def _straight_leg(start: Point2, heading: float, length: float) -> List[Point2]:
    direction = heading_vector(heading)
    count = max(int(math.ceil(length / config.TURN_LEG_SPACING)), 1)
    return [start + direction * (length * i / count) for i in range(count + 1)]


# ============================================================================
# Turn Creator
# ============================================================================


class TurnPathCreator:
    """Builds turn paths from a current track to the next guidance path."""

    def create_turn(self, request: TurnRequest) -> TurnCreationResult:
        """Create a turn for the given request.

        Args:
            request: Track, vehicle pose, field and turn configuration.

        Returns:
            TurnCreationResult; success is False with a reason when no valid
            destination or geometry exists.
        """
        settings = request.settings
        track = request.track
        paths_away = request.paths_away

        if isinstance(track, ABLine):
            if not track.is_valid():
                return TurnCreationResult.failure("invalid track: zero-length AB line", paths_away)
        elif not track.is_valid():
            return TurnCreationResult.failure("invalid track: curve has too few points", paths_away)
        elif track.is_closed:
            return TurnCreationResult.failure("closed tracks have no turn ends", paths_away)

        turn_lines = request.turn_lines
        if turn_lines is None:
            turn_lines = tuple(build_headland_lines(request.boundaries, settings.turn_line_distance))
        work_area = work_area_polygon(turn_lines, skip_drive_through=True)
        if work_area is None or work_area.is_empty:
            return TurnCreationResult.failure("no turn line available", paths_away)

        radius = settings.turn_radius or request.vehicle_config.min_turn_radius
        current = nudge_track(track, paths_away * settings.path_width) if paths_away else track
        if isinstance(current, Curve) and current.is_empty():
            return TurnCreationResult.failure("current path could not be built", paths_away)

        same_way = self._is_heading_same_way(current, request.vehicle)
        direction = 1 if (not request.turn_left) == same_way else -1

        skip = self._select_skip(request, direction)
        if skip is None:
            return TurnCreationResult.failure("no unworked track found", paths_away)

        offset = skip * settings.path_width if request.turn_offset is None else request.turn_offset
        is_out_same_curve = offset < 1e-6
        side = -1.0 if request.turn_left else 1.0
        if not is_out_same_curve:
            offset += side * 2.0 * settings.tool_offset
        next_paths_away = paths_away if is_out_same_curve else paths_away + direction * skip

        turn_point = self._find_turn_point(current, request.vehicle, same_way, turn_lines)
        if turn_point is None:
            return TurnCreationResult.failure("no turn line ahead", paths_away)

        if request.boundaries:
            probe = request.vehicle.to_point2() + right_vector(turn_point.heading) * (side * offset)
            if area_index(probe, boundaries_as_lines(request.boundaries), True) != 0:
                return TurnCreationResult.failure(
                    "no further track: destination path lies outside the field", paths_away
                )

        shape, shape_type = self._build_shape(settings.style, offset, radius)
        if shape is None:
            return TurnCreationResult.failure("no turn geometry for this offset", paths_away)
        shape[:, 0] *= side

        placed = self._place_shape(shape, turn_point, work_area)
        if placed is None:
            return TurnCreationResult.failure("turn radius exceeds available space", paths_away)

        turn_path = self._assemble(
            request, current, placed, shape_type, turn_point, same_way, next_paths_away, radius, is_out_same_curve
        )

        logging.debug(
            f"Created {shape_type.value} turn: offset {offset:.2f} m, radius {radius:.2f} m, "
            f"{len(turn_path.points)} points, paths away {paths_away} -> {next_paths_away}"
        )
        return TurnCreationResult(
            success=True,
            turn_path=turn_path,
            next_paths_away=next_paths_away,
            distance_pivot_to_turn_line=turn_point.distance,
            in_closest_turn_point=Point2(float(placed[0, 0]), float(placed[0, 1])),
            out_closest_turn_point=Point2(float(placed[-1, 0]), float(placed[-1, 1])),
        )

    # ------------------------------------------------------------------------
    # Destination
    # ------------------------------------------------------------------------

    def _is_heading_same_way(self, track: Track, vehicle: Point3) -> bool:
        if isinstance(track, ABLine):
            return angle_diff(vehicle.heading, track.heading) < math.pi / 2.0
        xy = as_array(track.points)
        index = int(np.argmin(np.hypot(xy[:, 0] - vehicle.easting, xy[:, 1] - vehicle.northing)))
        return angle_diff(vehicle.heading, track.points[index].heading) < math.pi / 2.0

    def _select_skip(self, request: TurnRequest, direction: int) -> Optional[int]:
        settings = request.settings
        base = settings.row_skips_width + 1

        if settings.skip_mode is SkipMode.ALTERNATIVE:
            if request.turn_count % 2 == 1:
                return settings.alternate_skips_width + 1
            return base

        if settings.skip_mode is SkipMode.IGNORE_WORKED_TRACKS:
            for skip in range(base, base + config.MAX_WORKED_TRACK_SCAN):
                if request.paths_away + direction * skip not in request.worked_tracks:
                    return skip
            return None

        return base

    def _find_turn_point(
        self,
        track: Track,
        vehicle: Point3,
        same_way: bool,
        turn_lines: Sequence[HeadlandLine],
    ) -> Optional[_TurnPoint]:
        if isinstance(track, ABLine):
            heading = track.heading if same_way else normalize_heading(track.heading + math.pi)
            # Project the pivot onto the infinite line
            along = (vehicle.to_point2() - track.point_a).dot(heading_vector(track.heading))
            origin = track.point_a + heading_vector(track.heading) * along
            return self._cast_to_turn_line(origin, heading, vehicle, turn_lines)

        points = track.points
        xy = as_array(points)
        index = int(np.argmin(np.hypot(xy[:, 0] - vehicle.easting, xy[:, 1] - vehicle.northing)))
        step = 1 if same_way else -1
        previous = index
        index += step
        while 0 <= index < len(points):
            if area_index(points[index], turn_lines, True) != 0:
                point = points[previous]
                heading = point.heading if same_way else normalize_heading(point.heading + math.pi)
                return _TurnPoint(point.to_point2(), heading, point.distance_to(vehicle))
            previous = index
            index += step

        # The curve ends inside the turn area: extend it straight from its end
        end = points[previous]
        heading = end.heading if same_way else normalize_heading(end.heading + math.pi)
        return self._cast_to_turn_line(end.to_point2(), heading, vehicle, turn_lines)

    def _cast_to_turn_line(
        self,
        origin: Point2,
        heading: float,
        vehicle: Point3,
        turn_lines: Sequence[HeadlandLine],
    ) -> Optional[_TurnPoint]:
        best: Optional[Tuple[Point2, float]] = None
        for i, line in enumerate(turn_lines):
            if line.is_empty() or (i > 0 and line.is_drive_through):
                continue
            hit = ray_ring_intersection(origin, heading, line.points, config.TURN_RAY_LENGTH)
            if hit is not None and (best is None or hit[1] < best[1]):
                best = hit
        if best is None:
            return None
        distance = (best[0] - vehicle.to_point2()).dot(heading_vector(heading))
        return _TurnPoint(best[0], heading, distance)

    # ------------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------------

    def _build_shape(
        self, style: TurnStyle, offset: float, radius: float
    ) -> Tuple[Optional[np.ndarray], TurnShape]:
        step = radius * config.TURN_ARC_SPACING_FACTOR
        if style is TurnStyle.K_STYLE:
            return k_style_shape(offset, radius, step), TurnShape.K_STYLE
        if offset > 2.0 * radius:
            return wide_shape(offset, radius, step), TurnShape.WIDE
        return omega_shape(offset, radius, step), TurnShape.OMEGA

    def _place_shape(
        self, shape: np.ndarray, turn_point: _TurnPoint, work_area
    ) -> Optional[np.ndarray]:
        """Fit the local shape inside the work area, as close to the turn line as possible.

        Returns:
            World coordinates of the placed shape, or None when it cannot fit
            ahead of the vehicle.
        """
        forward = heading_vector(turn_point.heading)
        right = right_vector(turn_point.heading)
        world_e = turn_point.point.easting + shape[:, 0] * right.easting + shape[:, 1] * forward.easting
        world_n = turn_point.point.northing + shape[:, 0] * right.northing + shape[:, 1] * forward.northing

        def fits(back: float) -> bool:
            xs = world_e - back * forward.easting
            ys = world_n - back * forward.northing
            return bool(np.all(shapely.contains_xy(work_area, xs, ys)))

        def too_close(back: float) -> bool:
            return turn_point.distance - back < config.MIN_TURN_START_DISTANCE

        back = 0.0
        steps = 0
        while not fits(back):
            back += config.TURN_MOVE_BACK_STEP
            steps += 1
            if steps > config.TURN_MAX_MOVE_STEPS or too_close(back):
                return None

        # Creep forward until the next step would touch the turn line
        while steps < config.TURN_MAX_MOVE_STEPS and back >= config.TURN_MOVE_FORWARD_STEP:
            if not fits(back - config.TURN_MOVE_FORWARD_STEP):
                break
            back -= config.TURN_MOVE_FORWARD_STEP
            steps += 1

        return np.column_stack((world_e - back * forward.easting, world_n - back * forward.northing))

    def _assemble(
        self,
        request: TurnRequest,
        current: Track,
        placed: np.ndarray,
        shape_type: TurnShape,
        turn_point: _TurnPoint,
        same_way: bool,
        next_paths_away: int,
        radius: float,
        is_out_same_curve: bool,
    ) -> TurnPath:
        settings = request.settings
        leg_length = _leg_length(settings, radius)
        start = Point2(float(placed[0, 0]), float(placed[0, 1]))
        end = Point2(float(placed[-1, 0]), float(placed[-1, 1]))
        exit_heading = normalize_heading(turn_point.heading + math.pi)
        walk = 1 if same_way else -1

        if isinstance(current, Curve):
            entry = list(reversed(_walk_curve(current.points, start, -walk, leg_length)))
            destination = current if is_out_same_curve else nudge_track(
                request.track, next_paths_away * settings.path_width
            )
            if isinstance(destination, Curve) and not destination.is_empty():
                exit_leg = _walk_curve(destination.points, end, -walk, leg_length)
            else:
                exit_leg = _straight_leg(end, exit_heading, leg_length)
        else:
            entry = list(reversed(_straight_leg(start, exit_heading, leg_length)))
            exit_leg = _straight_leg(end, exit_heading, leg_length)

        spacing = config.TURN_POINT_SPACING
        entry_points = resample_polyline(entry, spacing) if len(entry) > 1 else compute_headings(entry)
        shape_points = resample_polyline(
            [Point2(float(e), float(n)) for e, n in placed], spacing
        )

        points: List[Point2] = [p.to_point2() for p in entry_points]
        points.extend(p.to_point2() for p in shape_points[1:])
        entry_leg_end_index = len(entry_points) - 1
        exit_leg_start_index = len(points) - 1

        if shape_type is not TurnShape.K_STYLE:
            exit_points = resample_polyline(exit_leg, spacing) if len(exit_leg) > 1 else []
            points.extend(p.to_point2() for p in exit_points[1:])

        headed = tuple(compute_headings(points))
        is_straight_through = False
        if len(headed) >= 4:
            is_straight_through = (
                angle_diff(headed[1].heading, headed[-2].heading) < config.STRAIGHT_THROUGH_ANGLE
            )

        return TurnPath(
            points=headed,
            shape=shape_type,
            turn_left=request.turn_left,
            is_out_same_curve=is_out_same_curve,
            is_going_straight_through=is_straight_through,
            is_out_of_bounds=is_path_out_of_bounds(headed, request.boundaries),
            entry_leg_end_index=entry_leg_end_index,
            exit_leg_start_index=exit_leg_start_index,
        )


def is_path_out_of_bounds(points: Sequence[Point3], boundaries: Sequence[Boundary]) -> bool:
    """True when the polyline touches or crosses any boundary ring."""
    if len(points) < 2:
        return False
    line = LineString([p.as_tuple() for p in points])
    for boundary in boundaries:
        if len(boundary.points) < 3:
            continue
        if line.intersects(LinearRing([p.as_tuple() for p in boundary.points])):
            return True
    return False
