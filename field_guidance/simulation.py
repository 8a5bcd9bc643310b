"""Closed-loop simulation of the guidance controller.

Drives the kinematic bicycle model along a guidance path with the controller in
the loop. Used by the command line demo and by the tests that check the
controller converges onto a line and completes turns.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from . import config
from .follower import GuidanceController, GuidanceSession, GuidanceSettings, GuidanceStatus
from .models import GuidanceOutput, GuidancePath, VehicleState
from .vehicle import VehicleConfig, advance


@dataclass
class SimulationResult:
    """Trajectory and error summary of one simulated run."""

    trajectory: np.ndarray  # (N, 3) easting, northing, heading of the pivot
    cross_track_errors: np.ndarray
    steer_angles: np.ndarray
    completed_step: Optional[int]  # None when the step limit was hit first
    final_status: GuidanceStatus

    @property
    def mean_abs_xte(self) -> float:
        if self.cross_track_errors.size == 0:
            return 0.0
        return float(np.mean(np.abs(self.cross_track_errors)))

    @property
    def max_abs_xte(self) -> float:
        if self.cross_track_errors.size == 0:
            return 0.0
        return float(np.max(np.abs(self.cross_track_errors)))

    def __str__(self) -> str:
        completed = "never" if self.completed_step is None else f"step {self.completed_step}"
        return (
            f"Steps: {len(self.trajectory)} | "
            f"Mean |XTE|: {self.mean_abs_xte:.3f} m | "
            f"Max |XTE|: {self.max_abs_xte:.3f} m | "
            f"Completed: {completed}"
        )


def simulate_path(
    path: GuidancePath,
    initial_state: VehicleState,
    vehicle: Optional[VehicleConfig] = None,
    settings: Optional[GuidanceSettings] = None,
    dt: float = config.SIM_DT,
    max_steps: int = config.SIM_MAX_STEPS,
    recorder=None,
) -> SimulationResult:
    """Follow a path with the controller until it completes or max_steps elapse.

    Args:
        path: Track or turn path to follow.
        initial_state: Starting vehicle state (speed and direction included).
        vehicle: Vehicle geometry.
        settings: Controller settings.
        dt: Time step (seconds).
        max_steps: Step limit.
        recorder: Optional DataCollector receiving every tick.

    Returns:
        SimulationResult with the pivot trajectory and per-tick errors.
    """
    vehicle = vehicle or VehicleConfig()
    controller = GuidanceController(settings, vehicle)
    session = GuidanceSession.start(path)
    state = initial_state

    poses: List[List[float]] = []
    errors: List[float] = []
    steers: List[float] = []
    completed_step: Optional[int] = None

    if recorder is not None:
        recorder.log_path(path)

    for step in range(max_steps):
        output: GuidanceOutput
        output, session = controller.step(session, state)
        poses.append([state.pivot.easting, state.pivot.northing, state.pivot.heading])

        if session.status is GuidanceStatus.COMPLETE:
            completed_step = step
            break

        errors.append(output.cross_track_error)
        steers.append(output.steer_angle)
        if recorder is not None:
            recorder.log_tick(step * dt, state, output, session.status)

        state = advance(state, output.steer_angle, dt, vehicle)

    if completed_step is None:
        logging.warning(f"Simulation stopped after {max_steps} steps without completing the path")
    else:
        logging.debug(f"Simulation completed after {completed_step} steps")

    return SimulationResult(
        trajectory=np.asarray(poses, dtype=float).reshape(-1, 3),
        cross_track_errors=np.asarray(errors, dtype=float),
        steer_angles=np.asarray(steers, dtype=float),
        completed_step=completed_step,
        final_status=session.status,
    )
