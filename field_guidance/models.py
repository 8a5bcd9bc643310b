"""Data model shared by the guidance engine.

All entities are immutable snapshots (frozen dataclasses holding tuples). The
engine never mutates caller-owned geometry; every transform returns a new value.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple, Union

from . import config
from .geometry import (
    AnyPoint,
    Point2,
    Point3,
    compute_headings,
    heading_between,
    normalize_heading,
)


def _as_point2(point: Union[AnyPoint, Tuple[float, float]]) -> Point2:
    if isinstance(point, (Point2, Point3)):
        return Point2(point.easting, point.northing)
    return Point2(float(point[0]), float(point[1]))


# ============================================================================
# Tracks
# ============================================================================


@dataclass(frozen=True)
class ABLine:
    """Straight guidance line through two points.

    Attributes:
        point_a: First reference point.
        point_b: Second reference point.
        heading: Line heading from A to B (radians, [0, 2*pi)).
    """

    point_a: Point2
    point_b: Point2
    heading: float

    @classmethod
    def from_points(cls, point_a, point_b) -> "ABLine":
        a = _as_point2(point_a)
        b = _as_point2(point_b)
        return cls(a, b, heading_between(a, b))

    @property
    def points(self) -> Tuple[Point3, Point3]:
        return (
            Point3(self.point_a.easting, self.point_a.northing, self.heading),
            Point3(self.point_b.easting, self.point_b.northing, self.heading),
        )

    @property
    def is_closed(self) -> bool:
        return False

    def is_valid(self) -> bool:
        return self.point_a.distance_to(self.point_b) > 1e-9

    def __len__(self) -> int:
        return 2


@dataclass(frozen=True)
class Curve:
    """Ordered polyline guidance track; traversal order is point order."""

    points: Tuple[Point3, ...] = ()
    is_closed: bool = False

    @classmethod
    def from_points(cls, points: Iterable, is_closed: bool = False) -> "Curve":
        """Build a curve from bare coordinates, computing per-point headings."""
        return cls(tuple(compute_headings([_as_point2(p) for p in points])), is_closed)

    def is_empty(self) -> bool:
        return len(self.points) == 0

    def is_valid(self) -> bool:
        return len(self.points) >= config.MIN_CURVE_POINTS

    def __len__(self) -> int:
        return len(self.points)


Track = Union[ABLine, Curve]


# ============================================================================
# Boundaries
# ============================================================================


@dataclass(frozen=True)
class Boundary:
    """Closed field ring. The first boundary of a field is the outer ring."""

    points: Tuple[Point3, ...]
    is_drive_through: bool = False

    @classmethod
    def from_points(cls, points: Iterable, is_drive_through: bool = False) -> "Boundary":
        return cls(tuple(compute_headings([_as_point2(p) for p in points])), is_drive_through)

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class HeadlandLine:
    """Boundary ring offset inward (outer) or outward (holes) by a distance.

    Headland lines are derived values: rebuild them when the source boundary
    changes instead of editing them.
    """

    points: Tuple[Point3, ...]
    source_index: int = 0
    distance: float = 0.0
    is_drive_through: bool = False

    def is_empty(self) -> bool:
        return len(self.points) < 3

    def __len__(self) -> int:
        return len(self.points)


@dataclass(frozen=True)
class Field:
    """Boundaries of one field, outer ring first."""

    boundaries: Tuple[Boundary, ...] = ()

    @property
    def outer(self) -> Optional[Boundary]:
        return self.boundaries[0] if self.boundaries else None

    @property
    def holes(self) -> Tuple[Boundary, ...]:
        return self.boundaries[1:]


# ============================================================================
# Tool and Vehicle
# ============================================================================


@dataclass(frozen=True)
class ToolSection:
    """One implement section as seen this tick."""

    left_point: Point2
    right_point: Point2
    width: float


@dataclass(frozen=True)
class VehicleState:
    """Vehicle pose snapshot for one guidance tick.

    Attributes:
        pivot: Rear axle (pivot) position and heading.
        steer: Steer axle position and heading.
        speed_kmh: Ground speed (km/h, non-negative).
        is_reverse: True while driving backwards.
    """

    pivot: Point3
    steer: Point3
    speed_kmh: float = 0.0
    is_reverse: bool = False

    @property
    def heading(self) -> float:
        return self.pivot.heading

    @classmethod
    def at(
        cls,
        easting: float,
        northing: float,
        heading: float,
        wheelbase: float = config.WHEELBASE,
        speed_kmh: float = 0.0,
        is_reverse: bool = False,
    ) -> "VehicleState":
        """Build a state from the pivot pose, placing the steer axle ahead of it."""
        heading = normalize_heading(heading)
        pivot = Point3(float(easting), float(northing), heading)
        steer = Point3(
            easting + math.sin(heading) * wheelbase,
            northing + math.cos(heading) * wheelbase,
            heading,
        )
        return cls(pivot, steer, speed_kmh, is_reverse)


# ============================================================================
# Turns
# ============================================================================


class TurnStyle(Enum):
    """Turn style selected by the operator."""

    ALBIN = "albin"
    K_STYLE = "k_style"


class TurnShape(Enum):
    """Geometry actually generated for a turn."""

    OMEGA = "omega"
    WIDE = "wide"
    K_STYLE = "k_style"


class SkipMode(Enum):
    """How the destination path is chosen."""

    NORMAL = "normal"
    ALTERNATIVE = "alternative"
    IGNORE_WORKED_TRACKS = "ignore_worked_tracks"


class CompletionPolicy(Enum):
    PERPENDICULAR_CROSSING = "perpendicular_crossing"
    PROXIMITY_RADIUS = "proximity_radius"


@dataclass(frozen=True)
class TurnPath:
    """Generated turn maneuver.

    Attributes:
        points: Path points in driving order.
        shape: Generated geometry.
        turn_left: True when the destination lies left of the travel direction.
        is_out_same_curve: Destination is the current line, doubled back.
        is_going_straight_through: Entry and exit headings differ by less than 90 degrees.
        is_out_of_bounds: Path crosses at least one boundary ring.
        entry_leg_end_index: Last index of the straight entry leg.
        exit_leg_start_index: First index of the exit leg.
    """

    points: Tuple[Point3, ...]
    shape: TurnShape = TurnShape.OMEGA
    turn_left: bool = False
    is_out_same_curve: bool = False
    is_going_straight_through: bool = False
    is_out_of_bounds: bool = False
    entry_leg_end_index: int = 0
    exit_leg_start_index: int = 0

    @property
    def is_closed(self) -> bool:
        return False

    def __len__(self) -> int:
        return len(self.points)


GuidancePath = Union[TurnPath, ABLine, Curve]


@dataclass(frozen=True)
class GuidanceOutput:
    """Steering decision for one tick.

    Attributes:
        steer_angle: Steer angle (degrees, negative = left).
        cross_track_error: Pivot distance from the line (meters, positive = right).
        heading_error: Vehicle heading minus path heading (degrees).
        goal_point: Pure Pursuit goal point.
        pursuit_radius: Pure Pursuit radius, clamped for display (meters).
        radius_point: Center of the pursuit circle.
        closest_point: Pivot projection on the path.
        is_turn_complete: Turn finished or abandoned this tick.
        is_at_end_of_track: Goal point reached the end of an open curve.
        index_a: Start index of the segment in use.
        index_b: End index of the segment in use.
        remaining_points: Points left after index_b.
        distance_off_mm: Cross-track error in millimeters (int16).
        steer_angle_centideg: Steer angle in centidegrees (int16).
    """

    steer_angle: float = 0.0
    cross_track_error: float = 0.0
    heading_error: float = 0.0
    goal_point: Optional[Point2] = None
    pursuit_radius: float = 0.0
    radius_point: Optional[Point2] = None
    closest_point: Optional[Point2] = None
    is_turn_complete: bool = False
    is_at_end_of_track: bool = False
    index_a: int = 0
    index_b: int = 0
    remaining_points: int = 0
    distance_off_mm: int = 0
    steer_angle_centideg: int = 0
