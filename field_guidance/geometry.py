"""Geometry kernel for field guidance.

Planar vector math in a local easting/northing frame (meters). Headings follow
the compass convention used throughout the package: radians, clockwise from
north, computed as atan2(delta_easting, delta_northing) and normalized into
[0, 2*pi). Every function here is pure and total: degenerate input (zero-length
segments, empty rings) returns a neutral value instead of raising.
"""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

TWO_PI = 2.0 * math.pi
PI_BY_2 = math.pi / 2.0


@dataclass(frozen=True)
class Point2:
    """Immutable 2D point (easting, northing) in meters."""

    easting: float
    northing: float

    def __add__(self, other: "Point2") -> "Point2":
        return Point2(self.easting + other.easting, self.northing + other.northing)

    def __sub__(self, other: "Point2") -> "Point2":
        return Point2(self.easting - other.easting, self.northing - other.northing)

    def __mul__(self, scale: float) -> "Point2":
        return Point2(self.easting * scale, self.northing * scale)

    __rmul__ = __mul__

    def dot(self, other: "Point2") -> float:
        return self.easting * other.easting + self.northing * other.northing

    def cross(self, other: "Point2") -> float:
        """Z component of the 3D cross product (self x other)."""
        return self.easting * other.northing - self.northing * other.easting

    def length(self) -> float:
        return math.hypot(self.easting, self.northing)

    def normalized(self) -> "Point2":
        """Unit vector in the same direction; the zero vector stays zero."""
        length = self.length()
        if length < 1e-12:
            return Point2(0.0, 0.0)
        return Point2(self.easting / length, self.northing / length)

    def distance_to(self, other: "AnyPoint") -> float:
        return math.hypot(self.easting - other.easting, self.northing - other.northing)

    def to_point2(self) -> "Point2":
        return self

    def as_tuple(self) -> Tuple[float, float]:
        return (self.easting, self.northing)


@dataclass(frozen=True)
class Point3:
    """Immutable 2D point with heading (radians, clockwise from north)."""

    easting: float
    northing: float
    heading: float = 0.0

    @classmethod
    def of(cls, easting: float, northing: float, heading: float = 0.0) -> "Point3":
        """Build a Point3 with its heading normalized into [0, 2*pi)."""
        return cls(float(easting), float(northing), normalize_heading(heading))

    def to_point2(self) -> Point2:
        return Point2(self.easting, self.northing)

    def distance_to(self, other: "AnyPoint") -> float:
        return math.hypot(self.easting - other.easting, self.northing - other.northing)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.easting, self.northing)


AnyPoint = Union[Point2, Point3]


# ============================================================================
# Angles
# ============================================================================


def normalize_heading(heading: float) -> float:
    """Wrap a heading into [0, 2*pi)."""
    wrapped = math.fmod(heading, TWO_PI)
    if wrapped < 0.0:
        wrapped += TWO_PI
    # fmod of a tiny negative value can round up to exactly 2*pi
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


def wrap_to_pi(angle: float) -> float:
    """Wrap an angle into [-pi, pi]."""
    return math.atan2(math.sin(angle), math.cos(angle))


def angle_diff(a: float, b: float) -> float:
    """Smallest absolute difference between two headings, in [0, pi]."""
    return abs(wrap_to_pi(a - b))


def fold_heading_error(error: float) -> float:
    """Fold a heading error into [-pi/2, pi/2].

    A track can be driven in either direction, so a vehicle heading 180 degrees
    off the line direction is aligned with it. Folding removes that ambiguity.
    """
    error = wrap_to_pi(error)
    if error > PI_BY_2:
        error -= math.pi
    elif error < -PI_BY_2:
        error += math.pi
    return error


def heading_between(start: AnyPoint, end: AnyPoint) -> float:
    """Compass heading of the vector start -> end, in [0, 2*pi)."""
    return normalize_heading(
        math.atan2(end.easting - start.easting, end.northing - start.northing)
    )


def heading_vector(heading: float) -> Point2:
    """Unit vector pointing along a compass heading."""
    return Point2(math.sin(heading), math.cos(heading))


def right_vector(heading: float) -> Point2:
    """Unit vector pointing to the right of a compass heading."""
    return heading_vector(heading + PI_BY_2)


def to_degrees(radians: float) -> float:
    return radians * 180.0 / math.pi


def to_radians(degrees: float) -> float:
    return degrees * math.pi / 180.0


# ============================================================================
# Points and Segments
# ============================================================================


def lerp(a: AnyPoint, b: AnyPoint, t: float) -> Point2:
    """Linear interpolation between two points."""
    return Point2(
        a.easting + (b.easting - a.easting) * t,
        a.northing + (b.northing - a.northing) * t,
    )


def project_to_segment(point: AnyPoint, a: AnyPoint, b: AnyPoint) -> Tuple[Point2, float]:
    """Project a point onto segment a-b.

    Args:
        point: Point to project.
        a: Segment start.
        b: Segment end.

    Returns:
        Tuple of (closest point on the segment, t) with t clamped to [0, 1].
        A zero-length segment returns (a, 0.0).
    """
    dx = b.easting - a.easting
    dn = b.northing - a.northing
    length_sq = dx * dx + dn * dn
    if length_sq < 1e-12:
        return Point2(a.easting, a.northing), 0.0

    t = ((point.easting - a.easting) * dx + (point.northing - a.northing) * dn) / length_sq
    t = max(0.0, min(1.0, t))
    return Point2(a.easting + dx * t, a.northing + dn * t), t


def distance_to_segment(point: AnyPoint, a: AnyPoint, b: AnyPoint) -> float:
    closest, _ = project_to_segment(point, a, b)
    return closest.distance_to(point)


def cross_track_error(point: AnyPoint, a: AnyPoint, b: AnyPoint) -> float:
    """Signed perpendicular distance from a point to the infinite line a -> b.

    Positive when the point lies to the right of the direction a -> b.
    A zero-length line returns 0.0.
    """
    dx = b.easting - a.easting
    dn = b.northing - a.northing
    length = math.hypot(dx, dn)
    if length < 1e-12:
        return 0.0
    return (
        dn * point.easting
        - dx * point.northing
        + b.easting * a.northing
        - b.northing * a.easting
    ) / length


def catmull_rom(
    t: float, p0: AnyPoint, p1: AnyPoint, p2: AnyPoint, p3: AnyPoint
) -> Point3:
    """Evaluate a uniform Catmull-Rom spline between p1 and p2.

    Args:
        t: Parameter in [0, 1]; 0 returns p1, 1 returns p2.
        p0: Control point before the span.
        p1: Span start.
        p2: Span end.
        p3: Control point after the span.

    Returns:
        Interpolated point. Its heading is 0.0; callers recompute headings over
        the whole sequence afterwards.
    """
    tt = t * t
    ttt = tt * t

    q1 = -ttt + 2.0 * tt - t
    q2 = 3.0 * ttt - 5.0 * tt + 2.0
    q3 = -3.0 * ttt + 4.0 * tt + t
    q4 = ttt - tt

    easting = 0.5 * (p0.easting * q1 + p1.easting * q2 + p2.easting * q3 + p3.easting * q4)
    northing = 0.5 * (
        p0.northing * q1 + p1.northing * q2 + p2.northing * q3 + p3.northing * q4
    )
    return Point3(easting, northing, 0.0)


def segment_intersection(
    p1: AnyPoint, p2: AnyPoint, p3: AnyPoint, p4: AnyPoint
) -> Optional[Point2]:
    """Intersection point of segments p1-p2 and p3-p4, or None.

    Parallel and collinear segments report no intersection.
    """
    s1e = p2.easting - p1.easting
    s1n = p2.northing - p1.northing
    s2e = p4.easting - p3.easting
    s2n = p4.northing - p3.northing

    denom = -s2e * s1n + s1e * s2n
    if abs(denom) < 1e-12:
        return None

    s = (-s1n * (p1.easting - p3.easting) + s1e * (p1.northing - p3.northing)) / denom
    t = (s2e * (p1.northing - p3.northing) - s2n * (p1.easting - p3.easting)) / denom

    if 0.0 <= s <= 1.0 and 0.0 <= t <= 1.0:
        return Point2(p1.easting + t * s1e, p1.northing + t * s1n)
    return None


def ray_ring_intersection(
    origin: AnyPoint, heading: float, ring: Sequence[AnyPoint], max_length: float
) -> Optional[Tuple[Point2, float]]:
    """Cast a ray against every edge of a closed ring.

    Args:
        origin: Ray start.
        heading: Ray direction (compass heading, radians).
        ring: Closed ring of points (last point connects back to the first).
        max_length: Ray length (meters).

    Returns:
        Tuple of (nearest hit point, distance from origin), or None.
    """
    if len(ring) < 2:
        return None

    end = Point2(
        origin.easting + math.sin(heading) * max_length,
        origin.northing + math.cos(heading) * max_length,
    )
    best: Optional[Tuple[Point2, float]] = None
    count = len(ring)
    for i in range(count):
        hit = segment_intersection(origin, end, ring[i], ring[(i + 1) % count])
        if hit is None:
            continue
        distance = hit.distance_to(origin)
        if best is None or distance < best[1]:
            best = (hit, distance)
    return best


# ============================================================================
# Rings and Polylines
# ============================================================================


def as_array(points: Iterable[AnyPoint]) -> np.ndarray:
    """Stack point coordinates into an (N, 2) array of (easting, northing)."""
    coords = [(p.easting, p.northing) for p in points]
    if not coords:
        return np.empty((0, 2))
    return np.asarray(coords, dtype=float)


def point_in_polygon(point: AnyPoint, ring: Union[Sequence[AnyPoint], np.ndarray]) -> bool:
    """Even-odd crossing test of a point against a closed ring.

    Args:
        point: Point to test.
        ring: Ring vertices, either points or an (N, 2) array. The closing edge
            from the last vertex back to the first is implied.

    Returns:
        True when the point is inside. Rings with fewer than three vertices
        contain nothing.
    """
    xy = ring if isinstance(ring, np.ndarray) else as_array(ring)
    if len(xy) < 3:
        return False

    x, y = point.easting, point.northing
    xi, yi = xy[:, 0], xy[:, 1]
    xj, yj = np.roll(xi, 1), np.roll(yi, 1)

    straddles = (yi > y) != (yj > y)
    with np.errstate(divide="ignore", invalid="ignore"):
        x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
    crossings = np.count_nonzero(straddles & (x < x_cross))
    return bool(crossings % 2 == 1)


def polyline_length(points: Sequence[AnyPoint]) -> float:
    xy = as_array(points)
    if len(xy) < 2:
        return 0.0
    return float(np.sum(np.hypot(np.diff(xy[:, 0]), np.diff(xy[:, 1]))))


def compute_headings(points: Sequence[AnyPoint]) -> List[Point3]:
    """Assign headings to a polyline.

    The first point uses the forward difference, the last the backward
    difference and interior points the centered difference between their
    neighbours. Sequences of fewer than two points keep heading 0.
    """
    count = len(points)
    if count < 2:
        return [Point3.of(p.easting, p.northing, 0.0) for p in points]

    result = [Point3.of(points[0].easting, points[0].northing, heading_between(points[0], points[1]))]
    for i in range(1, count - 1):
        heading = heading_between(points[i - 1], points[i + 1])
        result.append(Point3.of(points[i].easting, points[i].northing, heading))
    result.append(
        Point3.of(
            points[-1].easting,
            points[-1].northing,
            heading_between(points[-2], points[-1]),
        )
    )
    return result


def compute_forward_headings(points: Sequence[AnyPoint]) -> List[Point3]:
    """Assign forward-difference headings; the last point copies the one before."""
    count = len(points)
    if count < 2:
        return [Point3.of(p.easting, p.northing, 0.0) for p in points]

    result = []
    for i in range(count - 1):
        heading = heading_between(points[i], points[i + 1])
        result.append(Point3.of(points[i].easting, points[i].northing, heading))
    result.append(Point3.of(points[-1].easting, points[-1].northing, result[-1].heading))
    return result


def resample_polyline(points: Sequence[AnyPoint], spacing: float) -> List[Point3]:
    """Resample a polyline at a fixed arc-length spacing.

    The first and last points are always kept. Headings are recomputed with
    compute_headings.

    Args:
        points: Polyline vertices.
        spacing: Target spacing (meters), must be positive.

    Raises:
        ValueError: If spacing is not positive.
    """
    if spacing <= 0.0:
        raise ValueError(f"Resample spacing must be positive, got {spacing}")
    if len(points) < 2:
        return compute_headings(points)

    xy = as_array(points)
    seg = np.hypot(np.diff(xy[:, 0]), np.diff(xy[:, 1]))
    cumulative = np.concatenate(([0.0], np.cumsum(seg)))
    total = cumulative[-1]
    if total < 1e-9:
        return compute_headings([points[0]])

    count = max(int(math.floor(total / spacing)), 1)
    stations = np.linspace(0.0, count * spacing, count + 1)
    if total - stations[-1] > 1e-6:
        stations = np.append(stations, total)

    eastings = np.interp(stations, cumulative, xy[:, 0])
    northings = np.interp(stations, cumulative, xy[:, 1])
    return compute_headings([Point2(float(e), float(n)) for e, n in zip(eastings, northings)])
