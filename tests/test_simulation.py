"""Closed-loop tests: the controller driving the vehicle model."""

import numpy as np
import pytest

from field_guidance.follower import ControlLaw, GuidanceSettings, GuidanceStatus
from field_guidance.models import Curve, VehicleState
from field_guidance.simulation import SimulationResult, simulate_path
from field_guidance.turns import TurnPathCreator, TurnRequest, TurnSettings


def sine_curve() -> Curve:
    return Curve.from_points(
        [(30.0 + 5.0 * np.sin(n / 40.0), float(n)) for n in np.arange(20.0, 181.0, 2.0)]
    )


class TestTrackFollowing:
    @pytest.mark.parametrize("law", [ControlLaw.PURE_PURSUIT, ControlLaw.STANLEY])
    def test_converges_onto_ab_line(self, field_line, law):
        """Starting 2 m right of the line, the error settles near zero."""
        state = VehicleState.at(32.0, 20.0, 0.0, speed_kmh=8.0)
        result = simulate_path(
            field_line, state, settings=GuidanceSettings(control_law=law), max_steps=600
        )
        assert result.completed_step is None
        assert result.cross_track_errors[0] == pytest.approx(2.0)
        assert np.max(np.abs(result.cross_track_errors[-100:])) < 0.05

    def test_curve_completes_at_end(self):
        curve = sine_curve()
        first = curve.points[0]
        state = VehicleState.at(first.easting, first.northing, first.heading, speed_kmh=8.0)
        result = simulate_path(curve, state)
        assert result.completed_step is not None
        assert result.final_status is GuidanceStatus.COMPLETE
        assert result.max_abs_xte < 0.5
        assert result.trajectory[-1, 1] > 170.0


class TestTurnFollowing:
    def test_wide_turn_completes(self, rect_field, field_line, field_pivot):
        settings = TurnSettings(row_skips_width=2, turn_radius=8.0)
        turn = TurnPathCreator().create_turn(
            TurnRequest(field_line, field_pivot, rect_field, settings=settings)
        ).turn_path
        start = turn.points[0]
        state = VehicleState.at(start.easting, start.northing, start.heading, speed_kmh=8.0)

        result = simulate_path(turn, state)

        assert result.completed_step is not None
        last = turn.points[-1]
        final = result.trajectory[-1]
        assert np.hypot(final[0] - last.easting, final[1] - last.northing) < 6.0
        assert result.max_abs_xte < 2.5


class TestSimulationResult:
    def test_summary(self):
        result = SimulationResult(
            trajectory=np.zeros((3, 3)),
            cross_track_errors=np.array([0.1, -0.3, 0.2]),
            steer_angles=np.zeros(3),
            completed_step=None,
            final_status=GuidanceStatus.FOLLOWING,
        )
        assert result.mean_abs_xte == pytest.approx(0.2)
        assert result.max_abs_xte == pytest.approx(0.3)
        assert "Completed: never" in str(result)

    def test_empty_errors(self):
        result = SimulationResult(
            trajectory=np.zeros((0, 3)),
            cross_track_errors=np.array([]),
            steer_angles=np.array([]),
            completed_step=0,
            final_status=GuidanceStatus.COMPLETE,
        )
        assert result.mean_abs_xte == 0.0
        assert result.max_abs_xte == 0.0
