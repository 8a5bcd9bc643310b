"""Tests for headland line construction and headland detection."""

import math

import pytest

from field_guidance.geometry import Point2, Point3
from field_guidance.headland import (
    HeadlandDetectionRequest,
    HeadlandDetector,
    LookAheadConfig,
    area_index,
    build_headland_line,
    build_headland_lines,
    find_nearest_vertex,
    is_point_in_work_area,
    work_area_polygon,
)
from field_guidance.models import Boundary, Field, ToolSection

from .conftest import make_square


def make_hole(drive_through: bool = False) -> Boundary:
    return Boundary.from_points(
        [(40.0, 40.0), (60.0, 40.0), (60.0, 60.0), (40.0, 60.0)], is_drive_through=drive_through
    )


def make_sections(northing: float, count: int = 2, width: float = 5.0, start: float = 40.0):
    """Tool sections side by side along a west-east row."""
    return tuple(
        ToolSection(
            Point2(start + i * width, northing),
            Point2(start + (i + 1) * width, northing),
            width,
        )
        for i in range(count)
    )


# ---------------------------------------------------------------------------
# Headland lines
# ---------------------------------------------------------------------------


class TestHeadlandLines:
    def test_outer_ring_shrinks(self):
        """A 10 m headland on a 100 m square spans 10..90."""
        line = build_headland_line(make_square(), 10.0)
        assert not line.is_empty()
        eastings = [p.easting for p in line.points]
        northings = [p.northing for p in line.points]
        assert min(eastings) == pytest.approx(10.0)
        assert max(eastings) == pytest.approx(90.0)
        assert min(northings) == pytest.approx(10.0)
        assert max(northings) == pytest.approx(90.0)

    def test_hole_grows(self):
        line = build_headland_line(make_hole(), 5.0, source_index=1)
        eastings = [p.easting for p in line.points]
        assert min(eastings) == pytest.approx(35.0)
        assert max(eastings) == pytest.approx(65.0)

    def test_collapsed_ring_is_empty(self):
        """Insetting a 100 m square by 60 m leaves nothing."""
        assert build_headland_line(make_square(), 60.0).is_empty()

    def test_degenerate_boundary_is_empty(self):
        boundary = Boundary.from_points([(0.0, 0.0), (10.0, 0.0)])
        assert build_headland_line(boundary, 1.0).is_empty()

    def test_drive_through_flag_carried(self):
        lines = build_headland_lines((make_square(), make_hole(drive_through=True)), 5.0)
        assert not lines[0].is_drive_through
        assert lines[1].is_drive_through
        assert lines[1].source_index == 1

    def test_headings_recomputed(self):
        line = build_headland_line(make_square(), 10.0)
        assert all(0.0 <= p.heading < 2 * math.pi for p in line.points)

    def test_field_outer_and_holes(self):
        field = Field((make_square(), make_hole()))
        lines = build_headland_lines(field.boundaries, 5.0)
        assert field.outer is field.boundaries[0]
        assert len(field.holes) == 1
        assert [line.source_index for line in lines] == [0, 1]
        assert Field().outer is None


# ---------------------------------------------------------------------------
# Work area
# ---------------------------------------------------------------------------


class TestWorkArea:
    def test_area_index(self):
        lines = build_headland_lines((make_square(), make_hole()), 5.0)
        assert area_index(Point2(20.0, 20.0), lines) == 0
        assert area_index(Point2(50.0, 50.0), lines) == 1
        assert area_index(Point2(2.0, 2.0), lines) == -1

    def test_drive_through_hole_skipped_for_turn_areas(self):
        lines = build_headland_lines((make_square(), make_hole(drive_through=True)), 5.0)
        assert area_index(Point2(50.0, 50.0), lines) == 1
        assert area_index(Point2(50.0, 50.0), lines, skip_drive_through=True) == 0

    def test_no_outer_line(self):
        assert area_index(Point2(0.0, 0.0), []) == -1
        assert not is_point_in_work_area(Point2(0.0, 0.0), [])

    def test_work_area_polygon_excludes_holes(self):
        lines = build_headland_lines((make_square(), make_hole()), 5.0)
        area = work_area_polygon(lines)
        assert area is not None
        assert area.area == pytest.approx(80.0 * 80.0 - 30.0 * 30.0)

    def test_work_area_polygon_missing(self):
        assert work_area_polygon([]) is None


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


class TestHeadlandDetector:
    @pytest.fixture
    def lines(self):
        return tuple(build_headland_lines((make_square(),), 10.0))

    def test_no_lines_gives_neutral_result(self):
        result = HeadlandDetector().detect(
            HeadlandDetectionRequest((), Point3.of(50.0, 50.0, 0.0))
        )
        assert not result.is_vehicle_in_headland
        assert result.nearest_point is None
        assert math.isinf(result.distance)

    def test_vehicle_in_work_area(self, lines):
        result = HeadlandDetector().detect(
            HeadlandDetectionRequest(lines, Point3.of(50.0, 50.0, 0.0), make_sections(50.0))
        )
        assert not result.is_vehicle_in_headland
        assert not result.is_left_side_in_headland
        assert not result.is_right_side_in_headland
        assert all(not s.is_in_headland for s in result.section_status)
        assert not result.should_trigger_warning

    def test_vehicle_in_headland(self, lines):
        result = HeadlandDetector().detect(
            HeadlandDetectionRequest(lines, Point3.of(50.0, 95.0, 0.0), make_sections(95.0))
        )
        assert result.is_vehicle_in_headland
        assert result.is_tool_outer_points_in_headland
        assert all(s.is_in_headland for s in result.section_status)

    def test_look_ahead_reaches_headland_first(self, lines):
        """100 display units of look-ahead put the section 10 m ahead, in the headland."""
        look_ahead = LookAheadConfig(left_distance=100.0, right_distance=100.0, total_width=10.0)
        result = HeadlandDetector().detect(
            HeadlandDetectionRequest(
                lines, Point3.of(50.0, 85.0, 0.0), make_sections(85.0), look_ahead
            )
        )
        assert len(result.section_status) == 2
        for status in result.section_status:
            assert not status.is_in_headland
            assert status.is_look_ahead_in_headland

    def test_warning_near_vertex(self, lines):
        result = HeadlandDetector().detect(
            HeadlandDetectionRequest(lines, Point3.of(12.0, 12.0, 0.0))
        )
        assert result.should_trigger_warning
        assert result.nearest_point.easting == pytest.approx(10.0)
        assert result.nearest_point.northing == pytest.approx(10.0)
        assert result.distance == pytest.approx(math.hypot(2.0, 2.0))

    def test_headland_off_skips_distance(self, lines):
        result = HeadlandDetector().detect(
            HeadlandDetectionRequest(lines, Point3.of(12.0, 12.0, 0.0), is_headland_on=False)
        )
        assert result.nearest_point is None
        assert not result.should_trigger_warning

    def test_negative_tool_width_rejected(self):
        with pytest.raises(ValueError):
            LookAheadConfig(total_width=-1.0)


class TestNearestVertex:
    def test_first_vertex_wins_ties(self):
        lines = build_headland_lines((make_square(),), 10.0)
        point, distance = find_nearest_vertex(Point2(50.0, 10.0), lines)
        assert distance == pytest.approx(40.0)
        assert point is not None

    def test_no_vertices(self):
        point, distance = find_nearest_vertex(Point2(0.0, 0.0), [])
        assert point is None
        assert math.isinf(distance)
