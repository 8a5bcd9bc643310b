"""Field Guidance - Path Planning and Steering for Agricultural Vehicles

A guidance core that turns field geometry and a vehicle pose into steering
decisions, one call per positioning fix.

## Architecture Overview

### Geometry (geometry.py, models.py)
Planar vector math in a local easting/northing frame with compass headings,
and the immutable data model (tracks, boundaries, headland lines, turn paths).

### Track Nudging (nudging.py)
Shifts AB lines and curves sideways. Curves are translated point by point,
filtered for fold-back and re-densified with Catmull-Rom splines.

### Headland Detection (headland.py)
Offsets boundaries into headland lines with shapely and classifies tool
sections, look-ahead points and the vehicle against them.

### Turn Path Creation (turns.py, dubins.py)
Builds omega, wide and K-style turns toward the next path chosen by skip mode,
fitted inside the turn line and flagged when they cross a boundary.

### Guidance Controller (follower.py)
Pure Pursuit or Stanley steering for tracks and turns, with progress carried
in an immutable GuidanceSession.

## Modules

- `config.py` - Centralized configuration parameters with documentation
- `vehicle.py` - Vehicle geometry and kinematic bicycle model
- `simulation.py` - Closed-loop simulation harness
- `data_collector.py` - CSV logging of simulated runs
- `plot_styles.py`, `visualization.py` - Plan views and error plots
- `cli.py` - Command-line demo (`field-guidance` or `python -m field_guidance`)

## Quick Start

```python
from field_guidance import ABLine, GuidanceController, GuidanceSession, VehicleState

line = ABLine.from_points((0.0, 0.0), (0.0, 100.0))
controller = GuidanceController()
session = GuidanceSession.start(line)
output, session = controller.step(session, VehicleState.at(1.0, 10.0, 0.0, speed_kmh=8.0))
print(output.steer_angle)  # negative: steer left, back toward the line
```

## Version

0.1.0 - Initial implementation
"""

__version__ = "0.1.0"

from .follower import ControlLaw, GuidanceController, GuidanceSession, GuidanceSettings, GuidanceStatus
from .geometry import Point2, Point3
from .headland import HeadlandDetectionRequest, HeadlandDetector, LookAheadConfig, build_headland_lines
from .models import ABLine, Boundary, Curve, Field, GuidanceOutput, HeadlandLine, TurnPath, VehicleState
from .nudging import nudge_track
from .turns import TurnCreationResult, TurnPathCreator, TurnRequest, TurnSettings
from .vehicle import VehicleConfig

__all__ = [
    "Point2",
    "Point3",
    "ABLine",
    "Curve",
    "Boundary",
    "Field",
    "HeadlandLine",
    "TurnPath",
    "VehicleState",
    "VehicleConfig",
    "GuidanceOutput",
    "nudge_track",
    "build_headland_lines",
    "HeadlandDetector",
    "HeadlandDetectionRequest",
    "LookAheadConfig",
    "TurnPathCreator",
    "TurnRequest",
    "TurnSettings",
    "TurnCreationResult",
    "GuidanceController",
    "GuidanceSession",
    "GuidanceSettings",
    "GuidanceStatus",
    "ControlLaw",
]
