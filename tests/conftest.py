"""Shared fixtures for the field guidance tests."""

import matplotlib

matplotlib.use("Agg")

import pytest

from field_guidance.geometry import Point3
from field_guidance.models import ABLine, Boundary, Curve


def make_square(size: float = 100.0, origin: float = 0.0) -> Boundary:
    """Square boundary ring with its lower-left corner at (origin, origin)."""
    return Boundary.from_points(
        [
            (origin, origin),
            (origin + size, origin),
            (origin + size, origin + size),
            (origin, origin + size),
        ]
    )


def make_straight_curve(count: int = 10, spacing: float = 10.0, easting: float = 0.0) -> Curve:
    """Northbound straight curve starting at the origin."""
    return Curve.from_points([(easting, i * spacing) for i in range(count)])


@pytest.fixture
def square_field():
    """100 m square field without obstacles."""
    return (make_square(),)


@pytest.fixture
def rect_field():
    """120 m x 200 m field, long side running north."""
    return (Boundary.from_points([(0.0, 0.0), (120.0, 0.0), (120.0, 200.0), (0.0, 200.0)]),)


@pytest.fixture
def north_line():
    """AB line along the northing axis."""
    return ABLine.from_points((0.0, 0.0), (0.0, 100.0))


@pytest.fixture
def field_line():
    """Northbound AB line 30 m in from the west edge of rect_field."""
    return ABLine.from_points((30.0, 20.0), (30.0, 180.0))


@pytest.fixture
def field_pivot():
    """Pivot heading north on field_line, 47 m short of the turn line."""
    return Point3.of(30.0, 150.0, 0.0)
