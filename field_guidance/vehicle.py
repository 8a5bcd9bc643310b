"""
Kinematic bicycle model of a front-steered tractor.

This module provides the vehicle geometry used to size turns (minimum turn
radius from wheelbase and maximum steer angle) and the forward kinematics used
by the closed-loop simulation harness.
"""

import math
from dataclasses import dataclass

from . import config
from .geometry import Point3, normalize_heading, to_radians
from .models import VehicleState


@dataclass(frozen=True)
class VehicleConfig:
    """Vehicle geometry.

    Attributes:
        wheelbase: Pivot (rear axle) to steer axle distance (meters).
        max_steer_angle: Steer angle limit (degrees).
    """

    wheelbase: float = config.WHEELBASE
    max_steer_angle: float = config.MAX_STEER_ANGLE

    def __post_init__(self) -> None:
        if self.wheelbase <= 0.0:
            raise ValueError(f"Wheelbase must be positive, got {self.wheelbase}")
        if not config.MIN_STEER_ANGLE_FOR_RADIUS <= self.max_steer_angle < 90.0:
            raise ValueError(
                f"Max steer angle must be in [{config.MIN_STEER_ANGLE_FOR_RADIUS}, 90) "
                f"degrees, got {self.max_steer_angle}"
            )

    @property
    def min_turn_radius(self) -> float:
        """Tightest turn radius of the pivot (meters): wheelbase / tan(max steer)."""
        return self.wheelbase / math.tan(to_radians(self.max_steer_angle))


def steer_axle_position(pivot: Point3, wheelbase: float) -> Point3:
    """Steer axle pose one wheelbase ahead of the pivot along its heading."""
    return Point3(
        pivot.easting + math.sin(pivot.heading) * wheelbase,
        pivot.northing + math.cos(pivot.heading) * wheelbase,
        pivot.heading,
    )


def advance(
    state: VehicleState, steer_angle: float, dt: float, vehicle: VehicleConfig
) -> VehicleState:
    """
    Integrate the bicycle model over one time step.

    The pivot moves along its heading at the state's speed while the heading
    rotates at

        heading_rate = v * tan(steer) / wheelbase

    with positive steer turning right (clockwise, increasing compass heading).
    Reverse driving moves the pivot backwards with the same steering geometry.

    Args:
        state: Current vehicle state.
        steer_angle: Commanded steer angle (degrees), clamped to the vehicle limit.
        dt: Time step (seconds).
        vehicle: Vehicle geometry.

    Returns:
        VehicleState after dt, with the steer axle recomputed from the new pivot.

    Example:
        >>> state = VehicleState.at(0.0, 0.0, 0.0, speed_kmh=7.2)
        >>> state = advance(state, 0.0, 1.0, VehicleConfig())
        >>> # pivot moved 2 m north
    """
    steer = max(-vehicle.max_steer_angle, min(vehicle.max_steer_angle, steer_angle))
    speed = state.speed_kmh * config.KMH_TO_MS
    if state.is_reverse:
        speed = -speed

    heading = state.pivot.heading
    heading_rate = speed * math.tan(to_radians(steer)) / vehicle.wheelbase

    # Midpoint integration keeps arcs closer to the true circle
    mid_heading = heading + heading_rate * dt / 2.0
    easting = state.pivot.easting + speed * math.sin(mid_heading) * dt
    northing = state.pivot.northing + speed * math.cos(mid_heading) * dt
    new_heading = normalize_heading(heading + heading_rate * dt)

    pivot = Point3(easting, northing, new_heading)
    return VehicleState(
        pivot=pivot,
        steer=steer_axle_position(pivot, vehicle.wheelbase),
        speed_kmh=state.speed_kmh,
        is_reverse=state.is_reverse,
    )
