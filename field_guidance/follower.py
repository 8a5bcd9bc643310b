"""Turn and track guidance controller.

This module computes one steering decision per guidance tick for a track (AB
line or curve) or a generated turn path:
- Finds the closest path segment (global scan on the first tick, windowed after)
- Computes signed cross-track and heading errors
- Steers with Pure Pursuit or Stanley, selected per call
- Tracks turn progress (Following -> Completing -> Complete)

The controller itself holds only its configuration. Progress lives in an
immutable GuidanceSession that each step takes and returns.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from . import config
from .geometry import (
    TWO_PI,
    Point2,
    Point3,
    angle_diff,
    as_array,
    cross_track_error,
    distance_to_segment,
    fold_heading_error,
    heading_between,
    heading_vector,
    lerp,
    right_vector,
    to_degrees,
)
from .models import (
    ABLine,
    CompletionPolicy,
    Curve,
    GuidanceOutput,
    GuidancePath,
    TurnPath,
    TurnShape,
    VehicleState,
)
from .vehicle import VehicleConfig


class GuidanceStatus(Enum):
    IDLE = "idle"
    FOLLOWING = "following"
    COMPLETING = "completing"
    COMPLETE = "complete"


class ControlLaw(Enum):
    PURE_PURSUIT = "pure_pursuit"
    STANLEY = "stanley"


@dataclass(frozen=True)
class IntegralState:
    """Integral term memory carried between ticks.

    Attributes:
        integral: Current integral value (radians for Pure Pursuit, meters for Stanley).
        pivot_error: Low-pass filtered pivot cross-track error (meters).
        pivot_error_last: Filtered error at the last derivative sample (meters).
        derivative: Last error derivative sample.
        counter: Ticks since the last derivative sample.
    """

    integral: float = 0.0
    pivot_error: float = 0.0
    pivot_error_last: float = 0.0
    derivative: float = 0.0
    counter: int = 0


@dataclass(frozen=True)
class GuidanceSession:
    """Path being followed and progress along it.

    A session is replaced, never mutated: assigning a new path discards the
    previous one.
    """

    path: Optional[GuidancePath] = None
    status: GuidanceStatus = GuidanceStatus.IDLE
    current_index: int = 0
    find_global: bool = True
    integral: IntegralState = IntegralState()

    @classmethod
    def start(cls, path: GuidancePath) -> "GuidanceSession":
        """Begin following a path.

        Curves shorter than MIN_CURVE_POINTS and other paths with fewer than
        2 points complete at once.
        """
        if not is_followable(path):
            logging.warning(f"Rejected guidance path with {len(path)} point(s)")
            return cls(path=path, status=GuidanceStatus.COMPLETE)
        return cls(path=path, status=GuidanceStatus.FOLLOWING)

    def cancel(self) -> "GuidanceSession":
        return GuidanceSession()

    @property
    def is_active(self) -> bool:
        return self.status in (GuidanceStatus.FOLLOWING, GuidanceStatus.COMPLETING)


def _default_completion_policies() -> Dict[TurnShape, CompletionPolicy]:
    return {
        TurnShape(shape): CompletionPolicy(policy)
        for shape, policy in config.COMPLETION_POLICY_BY_STYLE.items()
    }


@dataclass(frozen=True)
class GuidanceSettings:
    """Controller gains and limits.

    Attributes:
        control_law: Pure Pursuit or Stanley.
        goal_point_distance: Pure Pursuit look-ahead along the path (meters).
        stanley_heading_gain: Stanley heading error gain.
        stanley_distance_gain: Stanley cross-track error gain.
        uturn_compensation: Steer multiplier while following a turn.
        pure_pursuit_integral_gain: 0 disables the Pure Pursuit integral.
        stanley_integral_gain: 0 disables the Stanley integral.
        completion_radius: Proximity completion radius (meters).
        off_path_limit: Turn abandon distance (meters).
        search_window: Extra segments searched either side of the last index.
        completion_policies: Completion rule per turn shape.
    """

    control_law: ControlLaw = ControlLaw.PURE_PURSUIT
    goal_point_distance: float = config.GOAL_POINT_DISTANCE
    stanley_heading_gain: float = config.STANLEY_HEADING_GAIN
    stanley_distance_gain: float = config.STANLEY_DISTANCE_GAIN
    uturn_compensation: float = config.UTURN_COMPENSATION
    pure_pursuit_integral_gain: float = config.PURE_PURSUIT_INTEGRAL_GAIN
    stanley_integral_gain: float = config.STANLEY_INTEGRAL_GAIN
    completion_radius: float = config.TURN_COMPLETION_RADIUS
    off_path_limit: float = config.TURN_OFF_PATH_LIMIT
    search_window: int = config.SEARCH_WINDOW_POINTS
    completion_policies: Dict[TurnShape, CompletionPolicy] = field(
        default_factory=_default_completion_policies
    )

    def __post_init__(self) -> None:
        if self.goal_point_distance <= 0.0:
            raise ValueError(f"Goal point distance must be positive, got {self.goal_point_distance}")


@dataclass(frozen=True)
class _IntegralProfile:
    same_side_rate: float
    rate: float
    limit: float
    decay: float
    derivative_scale: float


_INTEGRAL_PROFILES = {
    ControlLaw.PURE_PURSUIT: _IntegralProfile(-0.04, -0.02, 0.2, 0.95, 2.0),
    ControlLaw.STANLEY: _IntegralProfile(-0.06, -0.02, 2.0, 0.97, 1.0),
}


# ============================================================================
# Path Helpers
# ============================================================================


def find_nearest_segment(
    points: Sequence[Point3],
    position: Point3,
    is_closed: bool,
    current_index: int = 0,
    find_global: bool = True,
    window: int = config.SEARCH_WINDOW_POINTS,
) -> Tuple[int, int]:
    """Find the path segment closest to a position.

    Args:
        points: Path points (at least 2).
        position: Query position.
        is_closed: Wrap the last point back to the first.
        current_index: Segment found on the previous tick.
        find_global: Scan every segment instead of the window around current_index.
        window: Segments searched either side of current_index.

    Returns:
        Tuple of (index_a, index_b) of adjacent points.
    """
    xy = as_array(points)
    count = len(xy)
    segment_count = count if is_closed else count - 1

    if find_global:
        candidates = np.arange(segment_count)
    else:
        offsets = np.arange(current_index - window, current_index + window + 1)
        if is_closed:
            candidates = np.unique(offsets % segment_count)
        else:
            candidates = offsets[(offsets >= 0) & (offsets < segment_count)]
        if candidates.size == 0:
            candidates = np.arange(segment_count)

    start = xy[candidates]
    delta = xy[(candidates + 1) % count] - start
    length_sq = np.sum(delta * delta, axis=1)
    position_xy = np.array([position.easting, position.northing])
    with np.errstate(divide="ignore", invalid="ignore"):
        t = np.where(length_sq > 1e-12, np.sum((position_xy - start) * delta, axis=1) / length_sq, 0.0)
    t = np.clip(t, 0.0, 1.0)
    projected = start + delta * t[:, None]
    distances = np.hypot(projected[:, 0] - position_xy[0], projected[:, 1] - position_xy[1])

    best = int(candidates[int(np.argmin(distances))])
    return best, (best + 1) % count


def project_to_line(point: Point3, a: Point3, b: Point3) -> Point2:
    """Foot of the perpendicular from a point onto the infinite line a-b."""
    dx = b.easting - a.easting
    dn = b.northing - a.northing
    u = ((point.easting - a.easting) * dx + (point.northing - a.northing) * dn) / (dx * dx + dn * dn)
    return Point2(a.easting + u * dx, a.northing + u * dn)


def walk_goal_point(
    points: Sequence[Point3],
    index_a: int,
    index_b: int,
    start: Point2,
    distance: float,
    forward: bool,
    is_closed: bool,
) -> Tuple[Point2, bool]:
    """Walk a distance along the path from a start point.

    The walk starts at index_b when driving forward along the path and at
    index_a when driving against it, so the goal never falls behind the
    current segment.

    Returns:
        Tuple of (goal point, reached_end). reached_end is True when an open
        path ran out before the distance was covered; the goal is then the end.
    """
    step = 1 if forward else -1
    index = index_b if forward else index_a
    count = len(points)
    current = start
    travelled = 0.0

    for _ in range(count + 1):
        target = points[index]
        segment = current.distance_to(target)
        if travelled + segment > distance:
            return lerp(current, target, (distance - travelled) / segment), False

        travelled += segment
        current = target.to_point2()
        index += step
        if is_closed:
            index %= count
        elif index < 0 or index >= count:
            return current, True

    return current, False


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _fixed_point_mm(distance: float) -> int:
    millimeters = _round_half_away(distance * 1000.0)
    return max(-config.FIXED_POINT_LIMIT, min(config.FIXED_POINT_LIMIT, millimeters))


def _sentinel_output(**kwargs) -> GuidanceOutput:
    return GuidanceOutput(distance_off_mm=config.DISTANCE_SENTINEL, **kwargs)


def is_followable(path: GuidancePath) -> bool:
    """Whether a path has enough points to steer along."""
    if isinstance(path, Curve):
        return path.is_valid()
    return len(path) >= 2


# ============================================================================
# Controller
# ============================================================================


class GuidanceController:
    """Pure Pursuit / Stanley steering for tracks and turn paths."""

    def __init__(
        self,
        settings: Optional[GuidanceSettings] = None,
        vehicle: Optional[VehicleConfig] = None,
    ):
        """Initialize the controller.

        Args:
            settings: Gains and limits. Defaults come from config.
            vehicle: Vehicle geometry (wheelbase, steer limit).
        """
        self.settings = settings or GuidanceSettings()
        self.vehicle = vehicle or VehicleConfig()

    def step(
        self,
        session: GuidanceSession,
        state: VehicleState,
        control_law: Optional[ControlLaw] = None,
    ) -> Tuple[GuidanceOutput, GuidanceSession]:
        """Compute one steering decision.

        Args:
            session: Current path and progress.
            state: Vehicle snapshot for this tick.
            control_law: Overrides the configured control law for this call.

        Returns:
            Tuple of (output, next session). Invalid or degenerate geometry
            yields a neutral output carrying the distance sentinel; nothing
            here raises.
        """
        law = control_law or self.settings.control_law
        path = session.path

        if path is None or session.status is GuidanceStatus.IDLE:
            return _sentinel_output(), session
        if session.status is GuidanceStatus.COMPLETE:
            return self._complete_output(path), session

        points = path.points
        if not is_followable(path):
            return self._complete_output(path), replace(session, status=GuidanceStatus.COMPLETE)

        is_turn = isinstance(path, TurnPath)
        pivot = state.pivot

        if isinstance(path, ABLine):
            index_a, index_b = 0, 1
        else:
            window = int(self.settings.goal_point_distance / 2.0) + self.settings.search_window
            index_a, index_b = find_nearest_segment(
                points, pivot, path.is_closed, session.current_index, session.find_global, window
            )
        session = replace(session, current_index=index_a, find_global=False)

        point_a = points[index_a]
        point_b = points[index_b]
        if point_a.distance_to(point_b) < 1e-12:
            return _sentinel_output(index_a=index_a, index_b=index_b), session

        if is_turn:
            finished, status = self._check_turn_progress(path, state, index_a, index_b)
            if finished:
                return self._complete_output(path), replace(session, status=GuidanceStatus.COMPLETE)
            session = replace(session, status=status)

        if law is ControlLaw.STANLEY:
            output, session = self._stanley(session, state, point_a, point_b, index_a, index_b)
        else:
            output, session = self._pure_pursuit(session, state, point_a, point_b, index_a, index_b)

        if is_turn and output.is_turn_complete:
            logging.info("Turn complete: goal point ran past the end of the turn")
            return output, replace(session, status=GuidanceStatus.COMPLETE)
        if output.is_at_end_of_track:
            logging.info(f"End of track reached at index {index_b}")
            return output, replace(session, status=GuidanceStatus.COMPLETE)
        return output, session

    # ------------------------------------------------------------------------
    # Turn progress
    # ------------------------------------------------------------------------

    def _check_turn_progress(
        self, path: TurnPath, state: VehicleState, index_a: int, index_b: int
    ) -> Tuple[bool, GuidanceStatus]:
        """Decide whether a turn is finished.

        Returns:
            Tuple of (finished, status while not finished).
        """
        pivot = state.pivot
        points = path.points
        last = points[-1]

        if path.shape is TurnShape.K_STYLE and state.is_reverse:
            logging.info("K-style turn complete: vehicle reversing")
            return True, GuidanceStatus.COMPLETE

        off_path = distance_to_segment(pivot, points[index_a], points[index_b])
        if index_a > 0 and off_path > self.settings.off_path_limit:
            logging.warning(f"Turn abandoned: pivot {off_path:.2f} m off the turn path")
            return True, GuidanceStatus.COMPLETE

        if index_b >= len(points) - 1:
            logging.info("Turn complete: reached the last turn point")
            return True, GuidanceStatus.COMPLETE

        completing_from = path.exit_leg_start_index
        if completing_from >= len(points) - 1:
            # No exit leg (K-style): the maneuver itself is the final stretch
            completing_from = path.entry_leg_end_index
        if index_a < completing_from:
            return False, GuidanceStatus.FOLLOWING

        policy = self.settings.completion_policies.get(
            path.shape, CompletionPolicy.PERPENDICULAR_CROSSING
        )
        if policy is CompletionPolicy.PROXIMITY_RADIUS:
            if pivot.distance_to(last) <= self.settings.completion_radius:
                logging.info("Turn complete: within completion radius of the last point")
                return True, GuidanceStatus.COMPLETE
        elif (pivot.to_point2() - last.to_point2()).dot(heading_vector(last.heading)) >= 0.0:
            logging.info("Turn complete: crossed the line through the last point")
            return True, GuidanceStatus.COMPLETE

        return False, GuidanceStatus.COMPLETING

    def _complete_output(self, path: GuidancePath) -> GuidanceOutput:
        return GuidanceOutput(
            is_turn_complete=isinstance(path, TurnPath),
            is_at_end_of_track=not isinstance(path, TurnPath),
        )

    # ------------------------------------------------------------------------
    # Integral term
    # ------------------------------------------------------------------------

    def _update_integral(
        self,
        previous: IntegralState,
        pivot_error: float,
        state: VehicleState,
        gain: float,
        law: ControlLaw,
    ) -> IntegralState:
        """Advance the integral term by one tick.

        The pivot error is low-pass filtered; every fifth tick a derivative
        sample is taken. The integral only moves while the vehicle is above
        INTEGRAL_MIN_SPEED and the error is steady, otherwise it decays.
        """
        if gain == 0.0 or state.is_reverse:
            return IntegralState(pivot_error_last=previous.pivot_error_last, counter=previous.counter)

        profile = _INTEGRAL_PROFILES[law]
        alpha = config.INTEGRAL_ERROR_ALPHA
        filtered = pivot_error * alpha + previous.pivot_error * (1.0 - alpha)
        counter = previous.counter + 1

        if counter > 4:
            derivative = (filtered - previous.pivot_error_last) * profile.derivative_scale
            error_last = filtered
            counter = 0
        else:
            derivative = 0.0
            error_last = previous.pivot_error_last

        integral = previous.integral
        if state.speed_kmh > config.INTEGRAL_MIN_SPEED and abs(derivative) < config.INTEGRAL_DERIVATIVE_LIMIT:
            if previous.integral * pivot_error > 0.0:
                # Error and integral agree: the vehicle crossed the line the wrong way
                integral += filtered * gain * profile.same_side_rate
            elif abs(pivot_error) > config.INTEGRAL_DEADBAND:
                integral += filtered * gain * profile.rate
                integral = max(-profile.limit, min(profile.limit, integral))
        else:
            integral *= profile.decay

        return IntegralState(integral, filtered, error_last, derivative, counter)

    # ------------------------------------------------------------------------
    # Control laws
    # ------------------------------------------------------------------------

    def _direction(self, path: GuidancePath, state: VehicleState, point_a: Point3) -> Tuple[bool, bool]:
        """Return (same_way, walk_forward) for the current segment."""
        if isinstance(path, TurnPath):
            return True, not state.is_reverse
        same_way = angle_diff(state.pivot.heading, point_a.heading) < math.pi / 2.0
        walk_forward = (not same_way) if state.is_reverse else same_way
        return same_way, walk_forward

    def _goal_point(
        self,
        path: GuidancePath,
        state: VehicleState,
        closest: Point2,
        index_a: int,
        index_b: int,
        same_way: bool,
        walk_forward: bool,
    ) -> Tuple[Point2, bool, bool]:
        """Goal point plus (turn_done, end_of_track) flags."""
        distance = self.settings.goal_point_distance
        if isinstance(path, ABLine):
            direction = heading_vector(path.heading)
            if state.is_reverse != same_way:
                return closest + direction * distance, False, False
            return closest - direction * distance, False, False

        points = path.points
        goal, reached_end = walk_goal_point(
            points, index_a, index_b, closest, distance, walk_forward, path.is_closed
        )
        if isinstance(path, TurnPath):
            return goal, reached_end, False

        at_end = False
        if not path.is_closed and not state.is_reverse:
            end_point = points[-1] if same_way else points[0]
            at_end = goal.distance_to(end_point) < config.END_OF_TRACK_TOLERANCE
        return goal, False, at_end

    def _pure_pursuit(
        self,
        session: GuidanceSession,
        state: VehicleState,
        point_a: Point3,
        point_b: Point3,
        index_a: int,
        index_b: int,
    ) -> Tuple[GuidanceOutput, GuidanceSession]:
        path = session.path
        pivot = state.pivot
        is_turn = isinstance(path, TurnPath)
        same_way, walk_forward = self._direction(path, state, point_a)

        distance_from_line = cross_track_error(pivot, point_a, point_b)
        closest = project_to_line(pivot, point_a, point_b)

        integral_state = IntegralState()
        if not is_turn:
            integral_state = self._update_integral(
                session.integral,
                distance_from_line,
                state,
                self.settings.pure_pursuit_integral_gain,
                ControlLaw.PURE_PURSUIT,
            )

        goal, turn_done, at_end = self._goal_point(
            path, state, closest, index_a, index_b, same_way, walk_forward
        )

        integral = integral_state.integral
        local_heading = TWO_PI - pivot.heading + (integral if walk_forward else -integral)
        goal_dist_sq = (goal.easting - pivot.easting) ** 2 + (goal.northing - pivot.northing) ** 2
        lateral = (goal.easting - pivot.easting) * math.cos(local_heading) + (
            goal.northing - pivot.northing
        ) * math.sin(local_heading)

        limit = config.PURE_PURSUIT_RADIUS_LIMIT
        if goal_dist_sq < 1e-12 or abs(lateral) < 1e-12:
            steer_angle = 0.0
            radius = limit
        else:
            steer_angle = to_degrees(math.atan(2.0 * lateral * self.vehicle.wheelbase / goal_dist_sq))
            radius = goal_dist_sq / (2.0 * lateral)

        if is_turn:
            steer_angle *= self.settings.uturn_compensation

        max_steer = self.vehicle.max_steer_angle
        steer_angle = max(-max_steer, min(max_steer, steer_angle))
        radius = max(-limit, min(limit, radius))
        radius_point = Point2(
            pivot.easting + radius * math.cos(local_heading),
            pivot.northing + radius * math.sin(local_heading),
        )

        if not same_way:
            distance_from_line = -distance_from_line
        heading_error = fold_heading_error(pivot.heading - point_a.heading)

        output = GuidanceOutput(
            steer_angle=steer_angle,
            cross_track_error=distance_from_line,
            heading_error=to_degrees(heading_error),
            goal_point=goal,
            pursuit_radius=radius,
            radius_point=radius_point,
            closest_point=closest,
            is_turn_complete=turn_done,
            is_at_end_of_track=at_end,
            index_a=index_a,
            index_b=index_b,
            remaining_points=self._remaining(path, index_a, index_b, walk_forward),
            distance_off_mm=_fixed_point_mm(distance_from_line),
            steer_angle_centideg=int(steer_angle * 100),
        )
        return output, replace(session, integral=integral_state)

    def _stanley(
        self,
        session: GuidanceSession,
        state: VehicleState,
        point_a: Point3,
        point_b: Point3,
        index_a: int,
        index_b: int,
    ) -> Tuple[GuidanceOutput, GuidanceSession]:
        path = session.path
        pivot = state.pivot
        steer = state.steer
        is_turn = isinstance(path, TurnPath)
        same_way, walk_forward = self._direction(path, state, point_a)

        distance_pivot = cross_track_error(pivot, point_a, point_b)
        closest = project_to_line(pivot, point_a, point_b)

        # Integral offsets a virtual line sideways from the track
        offset = 0.0 if is_turn else session.integral.integral
        steer_a = point_a.to_point2() + right_vector(point_a.heading) * offset
        steer_b = point_b.to_point2() + right_vector(point_b.heading) * offset
        if steer_a.distance_to(steer_b) < 1e-12:
            return _sentinel_output(index_a=index_a, index_b=index_b), session

        distance_steer = cross_track_error(steer, steer_a, steer_b)
        heading_error = fold_heading_error(steer.heading - heading_between(steer_a, steer_b))

        if not same_way:
            distance_pivot = -distance_pivot
            distance_steer = -distance_steer

        integral_state = IntegralState()
        if not is_turn:
            integral_state = self._update_integral(
                session.integral,
                distance_pivot,
                state,
                self.settings.stanley_integral_gain,
                ControlLaw.STANLEY,
            )

        speed = state.speed_kmh * config.KMH_TO_MS
        heading_term = heading_error * self.settings.stanley_heading_gain
        if is_turn:
            component_limit = config.STANLEY_TURN_COMPONENT_LIMIT
            distance_term = math.atan(self.settings.stanley_distance_gain * distance_steer / (speed + 1.0))
            distance_term = max(-component_limit, min(component_limit, distance_term))
            heading_term = max(-component_limit, min(component_limit, heading_term))
            heading_term *= self.settings.uturn_compensation
        else:
            speed = max(speed, config.STANLEY_MIN_SPEED)
            distance_term = math.atan(self.settings.stanley_distance_gain * distance_steer / speed)

        steer_angle = to_degrees(-(heading_term + distance_term))
        if state.is_reverse:
            steer_angle = -steer_angle

        max_steer = self.vehicle.max_steer_angle
        steer_angle = max(-max_steer, min(max_steer, steer_angle))

        turn_done = False
        at_end = False
        if not isinstance(path, ABLine):
            _, turn_done, at_end = self._goal_point(
                path, state, closest, index_a, index_b, same_way, walk_forward
            )

        output = GuidanceOutput(
            steer_angle=steer_angle,
            cross_track_error=distance_pivot,
            heading_error=to_degrees(heading_error),
            closest_point=closest,
            is_turn_complete=turn_done,
            is_at_end_of_track=at_end,
            index_a=index_a,
            index_b=index_b,
            remaining_points=self._remaining(path, index_a, index_b, walk_forward),
            distance_off_mm=_fixed_point_mm(distance_pivot),
            steer_angle_centideg=int(steer_angle * 100),
        )
        return output, replace(session, integral=integral_state)

    def _remaining(self, path: GuidancePath, index_a: int, index_b: int, walk_forward: bool) -> int:
        if path.is_closed:
            return len(path)
        if walk_forward:
            return len(path) - 1 - index_b
        return index_a
