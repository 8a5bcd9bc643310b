"""Tests for turn path creation."""

import math

import pytest
from shapely import LinearRing, LineString, Polygon

from field_guidance.geometry import Point2, Point3, angle_diff
from field_guidance.headland import build_headland_lines
from field_guidance.models import ABLine, Boundary, Curve, SkipMode, TurnShape, TurnStyle
from field_guidance.turns import (
    TurnPathCreator,
    TurnRequest,
    TurnSettings,
    is_path_out_of_bounds,
    k_style_shape,
    omega_shape,
    wide_shape,
)
from field_guidance.vehicle import VehicleConfig

from .conftest import make_straight_curve


def make_request(track, pivot, boundaries, **kwargs) -> TurnRequest:
    settings = kwargs.pop("settings", TurnSettings())
    return TurnRequest(track=track, vehicle=pivot, boundaries=tuple(boundaries), settings=settings, **kwargs)


def sine_curve() -> Curve:
    """Northbound S-curve 30 m in from the west edge, one point every 2 m."""
    return Curve.from_points(
        [(30.0 + 5.0 * math.sin(n / 40.0), float(n)) for n in range(20, 181, 2)]
    )


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------


class TestShapes:
    def test_wide_shape_ends_at_offset(self):
        shape = wide_shape(18.0, 4.0, 0.4)
        assert list(shape[0]) == pytest.approx([0.0, 0.0], abs=1e-9)
        assert list(shape[-1]) == pytest.approx([18.0, 0.0], abs=1e-9)
        assert shape[:, 1].max() == pytest.approx(4.0)

    def test_omega_shape_ends_at_offset(self):
        shape = omega_shape(6.0, 4.7, 0.47)
        assert shape is not None
        assert list(shape[0]) == pytest.approx([0.0, 0.0], abs=1e-9)
        assert list(shape[-1]) == pytest.approx([6.0, 0.0], abs=1e-6)

    def test_k_style_shape_tail(self):
        """The tail runs at least one radius past the arc."""
        shape = k_style_shape(6.0, 4.7, 0.47)
        tail = math.hypot(*(shape[-1] - shape[-2]))
        assert tail == pytest.approx(9.0)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestTurnSettings:
    def test_path_width(self):
        assert TurnSettings(tool_width=6.0, overlap=0.5).path_width == pytest.approx(5.5)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"tool_width": 0.0},
            {"overlap": 6.0},
            {"row_skips_width": -1},
            {"turn_radius": -2.0},
            {"tool_offset": 3.0},
            {"tool_offset": -3.5},
        ],
    )
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValueError):
            TurnSettings(**kwargs)


# ---------------------------------------------------------------------------
# AB line turns
# ---------------------------------------------------------------------------


class TestABLineTurns:
    def test_omega_turn_to_next_path(self, rect_field, field_line, field_pivot):
        """One tool width over at the minimum radius gives an omega turn."""
        result = TurnPathCreator().create_turn(make_request(field_line, field_pivot, rect_field))

        assert result.success
        assert result.next_paths_away == 1
        turn = result.turn_path
        assert turn.shape is TurnShape.OMEGA
        assert not result.is_out_of_bounds
        assert not result.is_going_straight_through
        assert not result.is_out_same_curve
        assert angle_diff(turn.points[0].heading, 0.0) < 1e-6
        assert angle_diff(turn.points[-1].heading, math.pi) < 1e-6
        assert turn.points[-1].easting == pytest.approx(36.0, abs=1e-6)

    def test_turn_stays_inside_turn_line(self, rect_field, field_line, field_pivot):
        result = TurnPathCreator().create_turn(make_request(field_line, field_pivot, rect_field))
        area = Polygon([(3.0, 3.0), (117.0, 3.0), (117.0, 197.0), (3.0, 197.0)]).buffer(1e-6)
        assert area.contains(LineString([p.as_tuple() for p in result.turn_path.points]))

    def test_turn_point_distance(self, rect_field, field_line, field_pivot):
        """The turn line sits 3 m inside the 200 m edge, 47 m ahead of the pivot."""
        result = TurnPathCreator().create_turn(make_request(field_line, field_pivot, rect_field))
        assert result.distance_pivot_to_turn_line == pytest.approx(47.0)

    def test_leg_indices(self, rect_field, field_line, field_pivot):
        turn = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field)
        ).turn_path
        assert 0 < turn.entry_leg_end_index < turn.exit_leg_start_index < len(turn.points) - 1
        assert all(p.easting == pytest.approx(30.0) for p in turn.points[: turn.entry_leg_end_index])

    def test_points_evenly_spaced(self, rect_field, field_line, field_pivot):
        points = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field)
        ).turn_path.points
        gaps = [a.distance_to(b) for a, b in zip(points, points[1:])]
        assert max(gaps) <= 0.5 + 1e-6

    def test_wide_turn_with_skips(self, rect_field, field_line, field_pivot):
        """Skipping two paths puts the destination three tool widths over."""
        settings = TurnSettings(row_skips_width=2)
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, settings=settings)
        )
        assert result.success
        assert result.next_paths_away == 3
        assert result.turn_path.shape is TurnShape.WIDE
        assert result.turn_path.points[-1].easting == pytest.approx(48.0, abs=1e-6)

    def test_left_turn(self, rect_field, field_line, field_pivot):
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, turn_left=True)
        )
        assert result.success
        assert result.next_paths_away == -1
        assert result.turn_path.turn_left
        assert result.turn_path.points[-1].easting == pytest.approx(24.0, abs=1e-6)

    def test_tool_offset_widens_right_turn(self, rect_field, field_line, field_pivot):
        """A tool 1 m right of the pivot puts the pivot 2 m further over after a right turn."""
        settings = TurnSettings(tool_offset=1.0)
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, settings=settings)
        )
        assert result.success
        assert result.next_paths_away == 1
        assert result.turn_path.points[-1].easting == pytest.approx(38.0, abs=1e-6)

    def test_tool_offset_narrows_left_turn(self, rect_field, field_line, field_pivot):
        settings = TurnSettings(tool_offset=1.0)
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, settings=settings, turn_left=True)
        )
        assert result.success
        assert result.next_paths_away == -1
        assert result.turn_path.points[-1].easting == pytest.approx(26.0, abs=1e-6)

    def test_driving_against_the_line(self, rect_field, field_line):
        """Heading south on a northbound line, a right turn moves to path -1."""
        pivot = Point3.of(30.0, 50.0, math.pi)
        result = TurnPathCreator().create_turn(make_request(field_line, pivot, rect_field))
        assert result.success
        assert result.next_paths_away == -1
        assert result.turn_path.points[-1].easting == pytest.approx(24.0, abs=1e-6)
        assert angle_diff(result.turn_path.points[-1].heading, 0.0) < 1e-6

    def test_k_style_turn(self, rect_field, field_line, field_pivot):
        settings = TurnSettings(style=TurnStyle.K_STYLE)
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, settings=settings)
        )
        assert result.success
        turn = result.turn_path
        assert turn.shape is TurnShape.K_STYLE
        assert turn.exit_leg_start_index == len(turn.points) - 1

    def test_explicit_zero_offset_stays_on_line(self, rect_field, field_line, field_pivot):
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, paths_away=2, turn_offset=0.0)
        )
        assert result.success
        assert result.is_out_same_curve
        assert result.next_paths_away == 2


# ---------------------------------------------------------------------------
# Skip modes
# ---------------------------------------------------------------------------


class TestSkipModes:
    def test_alternative_mode_on_odd_turn(self, rect_field, field_line, field_pivot):
        settings = TurnSettings(skip_mode=SkipMode.ALTERNATIVE, alternate_skips_width=1)
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, settings=settings, turn_count=1)
        )
        assert result.next_paths_away == 2

    def test_alternative_mode_on_even_turn(self, rect_field, field_line, field_pivot):
        settings = TurnSettings(skip_mode=SkipMode.ALTERNATIVE, alternate_skips_width=1)
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, settings=settings, turn_count=2)
        )
        assert result.next_paths_away == 1

    def test_ignore_worked_tracks(self, rect_field, field_line, field_pivot):
        """Worked paths 1 and 2 are passed over for path 3."""
        settings = TurnSettings(skip_mode=SkipMode.IGNORE_WORKED_TRACKS)
        result = TurnPathCreator().create_turn(
            make_request(
                field_line, field_pivot, rect_field, settings=settings, worked_tracks=frozenset({1, 2})
            )
        )
        assert result.success
        assert result.next_paths_away == 3

    def test_everything_worked(self, rect_field, field_line, field_pivot):
        settings = TurnSettings(skip_mode=SkipMode.IGNORE_WORKED_TRACKS)
        result = TurnPathCreator().create_turn(
            make_request(
                field_line,
                field_pivot,
                rect_field,
                settings=settings,
                worked_tracks=frozenset(range(1, 100)),
            )
        )
        assert not result.success
        assert result.failure_reason == "no unworked track found"


# ---------------------------------------------------------------------------
# Failures and bounds
# ---------------------------------------------------------------------------


class TestTurnFailures:
    def test_radius_too_large(self, rect_field, field_line, field_pivot):
        settings = TurnSettings(turn_radius=100.0)
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, settings=settings)
        )
        assert not result.success
        assert result.failure_reason == "turn radius exceeds available space"
        assert result.turn_path is None
        assert not result.is_out_of_bounds

    def test_destination_outside_field(self, rect_field):
        track = ABLine.from_points((115.0, 20.0), (115.0, 180.0))
        result = TurnPathCreator().create_turn(
            make_request(track, Point3.of(115.0, 150.0, 0.0), rect_field)
        )
        assert not result.success
        assert result.failure_reason == "no further track: destination path lies outside the field"
        assert result.next_paths_away == 0

    def test_zero_length_line(self, rect_field, field_pivot):
        track = ABLine.from_points((30.0, 20.0), (30.0, 20.0))
        result = TurnPathCreator().create_turn(make_request(track, field_pivot, rect_field))
        assert not result.success

    def test_closed_curve(self, rect_field, field_pivot):
        curve = Curve(make_straight_curve().points, is_closed=True)
        result = TurnPathCreator().create_turn(make_request(curve, field_pivot, rect_field))
        assert not result.success
        assert result.failure_reason == "closed tracks have no turn ends"

    def test_no_boundaries(self, field_line, field_pivot):
        result = TurnPathCreator().create_turn(make_request(field_line, field_pivot, ()))
        assert not result.success
        assert result.failure_reason == "no turn line available"

    def test_turn_lines_outside_boundary(self, rect_field, field_line, field_pivot):
        """Turn lines grown past the boundary produce a turn that crosses it."""
        turn_lines = tuple(build_headland_lines(rect_field, -5.0))
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, turn_lines=turn_lines)
        )
        assert result.success
        assert result.is_out_of_bounds
        ring = LinearRing([p.as_tuple() for p in rect_field[0].points])
        assert LineString([p.as_tuple() for p in result.turn_path.points]).intersects(ring)


class TestOutOfBounds:
    def test_path_inside(self, rect_field):
        points = [Point3.of(10.0, 10.0), Point3.of(10.0, 50.0)]
        assert not is_path_out_of_bounds(points, rect_field)

    def test_path_crossing(self, rect_field):
        points = [Point3.of(10.0, 190.0), Point3.of(10.0, 210.0)]
        assert is_path_out_of_bounds(points, rect_field)

    def test_path_crossing_hole(self, rect_field):
        hole = Boundary.from_points([(50.0, 50.0), (60.0, 50.0), (60.0, 60.0), (50.0, 60.0)])
        points = [Point3.of(55.0, 40.0), Point3.of(55.0, 70.0)]
        assert is_path_out_of_bounds(points, rect_field + (hole,))


# ---------------------------------------------------------------------------
# Curve turns
# ---------------------------------------------------------------------------


class TestCurveTurns:
    def test_curve_turn(self, rect_field):
        curve = sine_curve()
        start = min(curve.points, key=lambda p: abs(p.northing - 150.0))
        result = TurnPathCreator().create_turn(
            make_request(curve, Point3.of(start.easting, start.northing, start.heading), rect_field)
        )
        assert result.success
        assert result.next_paths_away == 1
        assert result.turn_path.shape is TurnShape.OMEGA
        assert not result.is_out_of_bounds
        assert not result.is_going_straight_through

    def test_vehicle_config_sizes_radius(self, rect_field, field_line, field_pivot):
        """A longer wheelbase turns wider, so six meters no longer fits an omega."""
        vehicle = VehicleConfig(wheelbase=6.0, max_steer_angle=20.0)
        settings = TurnSettings(row_skips_width=3)
        result = TurnPathCreator().create_turn(
            make_request(field_line, field_pivot, rect_field, settings=settings, vehicle_config=vehicle)
        )
        assert result.success
        # 24 m offset against a 16.5 m radius: still an omega
        assert result.turn_path.shape is TurnShape.OMEGA
        assert result.in_closest_turn_point is not None
        assert isinstance(result.out_closest_turn_point, Point2)
