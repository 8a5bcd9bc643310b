"""Configuration parameters for the field guidance engine.

This module centralizes all configuration parameters including:
- Vehicle geometry defaults
- Track nudging and curve smoothing constants
- Headland detection thresholds
- Turn creation limits
- Pure Pursuit and Stanley controller gains and clamps
- Visualization settings

Runtime parameter objects (GuidanceSettings, TurnSettings, VehicleConfig,
LookAheadConfig) take their defaults from here, so a caller can override any of
them per call without touching module state.
"""

import math

# ============================================================================
# Vehicle Parameters
# ============================================================================

WHEELBASE = 3.3
"""Distance from rear (pivot) axle to steer axle (meters).
Typical mid-size row-crop tractor."""

MAX_STEER_ANGLE = 35.0
"""Maximum steer angle of the front wheels (degrees).
Both control laws clamp their output to +/- this value."""

MIN_STEER_ANGLE_FOR_RADIUS = 1.0
"""Smallest steer angle (degrees) accepted when deriving a turn radius.
Below this the derived radius becomes unbounded."""


# ============================================================================
# Track Nudging and Curve Processing
# ============================================================================

MIN_CURVE_POINTS = 6
"""Minimum number of points a curve needs for nudging or guidance.

Shorter curves cannot be re-densified with a four point Catmull-Rom window
and are rejected rather than padded.
"""

NUDGE_COLLISION_MARGIN = 0.01
"""Squared-distance slack (m^2) for the fold-back filter.

A translated point is discarded when it lies closer than
sqrt(distance^2 - NUDGE_COLLISION_MARGIN) to any original point.
"""

NUDGE_MIN_POINT_SPACING = 1.0
"""Minimum spacing between consecutive kept points after translation (meters)."""

NUDGE_FILTER_CHUNK_ROWS = 256
"""Translated points checked per batch by the fold-back filter.

Each batch allocates a chunk x curve-length distance table, so this bounds
the filter's memory on long curves.
"""

CATMULL_SPACING = 1.2
"""Spacing target for Catmull-Rom re-densification (meters)."""

MAX_INWARD_PASS_FRACTION = 0.8
"""Fraction of the minimum radius of curvature usable by inward passes.

Nudging a curve inward by more than its radius of curvature collapses the
tight bends; 80% leaves room for smoothing.
"""


# ============================================================================
# Headland Detection
# ============================================================================

LOOKAHEAD_SCALE = 0.1
"""Scale from configured section look-ahead units to meters.

Look-ahead distances are configured in display units (decimeters) and scaled
down before they are projected ahead of the tool corners.
"""

HEADLAND_WARNING_DISTANCE = 10.0
"""Default warning distance to the nearest headland vertex (meters).

The warning is a plain threshold test; any debouncing is left to the caller.
"""

HEADLAND_MITRE_LIMIT = 5.0
"""Mitre limit passed to shapely when offsetting boundaries into headland lines."""


# ============================================================================
# Turn Creation
# ============================================================================

TURN_LINE_DISTANCE = 3.0
"""Default distance from the field boundary to the turn line (meters).

Turns are placed so that every point stays inside the turn line."""

HEADLAND_WIDTH = 12.0
"""Default headland width (meters), used to size turn entry and exit legs."""

TURN_LEG_MULTIPLIER = 2.5
"""Entry/exit leg length as a multiple of the headland width.

Legs are never shorter than twice the turn radius.
"""

TURN_LEG_SPACING = 1.0
"""Point spacing on entry and exit legs (meters)."""

TURN_ARC_SPACING_FACTOR = 0.1
"""Arc sampling step as a fraction of the turn radius."""

TURN_POINT_SPACING = 0.5
"""Final spacing of the resampled turn path (meters)."""

TURN_MOVE_BACK_STEP = 1.0
"""Step used when moving a turn back until it fits inside the turn line (meters)."""

TURN_MOVE_FORWARD_STEP = 0.1
"""Step used when moving a fitted turn forward until it touches the turn line (meters)."""

TURN_MAX_MOVE_STEPS = 1000
"""Maximum number of placement steps before giving up."""

MIN_TURN_START_DISTANCE = 3.0
"""A turn whose start falls within this distance of the pivot is rejected (meters)."""

TURN_RAY_LENGTH = 1000.0
"""Length of the ray cast along the travel heading to find the turn line (meters)."""

K_STYLE_ARC_ANGLE = 2.2
"""Heading change of the forward arc of a K-style turn (radians)."""

K_STYLE_TAIL_FACTOR = 1.5
"""Straight tail length of a K-style turn as a multiple of the turn offset."""

MAX_WORKED_TRACK_SCAN = 20
"""Maximum number of paths scanned outward when skipping worked tracks."""

STRAIGHT_THROUGH_ANGLE = math.pi / 2
"""Heading difference below which a turn is a straight-through continuation (radians)."""


# ============================================================================
# Guidance Controller
# ============================================================================

GOAL_POINT_DISTANCE = 4.0
"""Pure Pursuit look-ahead distance along the path (meters)."""

UTURN_COMPENSATION = 1.0
"""Multiplier applied to the steer angle while following a turn path."""

PURE_PURSUIT_RADIUS_LIMIT = 500.0
"""Pursuit radius reported for display is clamped to +/- this value (meters)."""

STANLEY_HEADING_GAIN = 1.0
"""Stanley heading error gain (dimensionless)."""

STANLEY_DISTANCE_GAIN = 0.8
"""Stanley cross-track error gain (1/s)."""

STANLEY_MIN_SPEED = 0.1
"""Floor for the Stanley speed term (m/s).

Prevents the atan(k * xte / v) term from blowing up at standstill.
"""

STANLEY_TURN_COMPONENT_LIMIT = 0.74
"""Clamp on each Stanley component while following a turn path (radians)."""

KMH_TO_MS = 0.277777
"""Conversion factor from km/h to m/s."""

SEARCH_WINDOW_POINTS = 8
"""Half-width of the windowed closest-segment search (points).

The effective window also grows with half the goal point distance.
"""

TURN_OFF_PATH_LIMIT = 4.0
"""A turn is abandoned when the pivot strays further than this from the path (meters)."""

TURN_COMPLETION_RADIUS = 2.0
"""Proximity radius around the last turn point for proximity completion (meters)."""

END_OF_TRACK_TOLERANCE = 0.5
"""Goal point distance to the end of an open curve that flags end of track (meters)."""

DISTANCE_SENTINEL = 32000
"""Fixed-point cross-track value reported when guidance cannot be computed."""

FIXED_POINT_LIMIT = 32767
"""Largest magnitude representable in the int16 fixed-point mirrors."""

COMPLETION_POLICY_BY_STYLE = {
    "omega": "perpendicular_crossing",
    "wide": "perpendicular_crossing",
    "k_style": "proximity_radius",
}
"""Completion policy applied to each turn shape.

perpendicular_crossing: complete once the pivot passes the line through the
    last turn point perpendicular to its heading.
proximity_radius: complete once the pivot comes within TURN_COMPLETION_RADIUS
    of the last turn point.
"""

# Integral terms (zero gain disables them)
PURE_PURSUIT_INTEGRAL_GAIN = 0.0
"""Pure Pursuit integral gain. 0 disables the integral term."""

STANLEY_INTEGRAL_GAIN = 0.0
"""Stanley integral gain. 0 disables the integral term."""

INTEGRAL_MIN_SPEED = 2.5
"""Integral terms only accumulate above this speed (km/h)."""

INTEGRAL_ERROR_ALPHA = 0.2
"""Low-pass filter weight of the newest pivot error sample."""

INTEGRAL_DERIVATIVE_LIMIT = 0.1
"""Integral freezes while the filtered error changes faster than this (m per window)."""

INTEGRAL_DEADBAND = 0.02
"""Cross-track errors smaller than this do not feed the integral (meters)."""


# ============================================================================
# Simulation
# ============================================================================

SIM_DT = 0.1
"""Closed-loop simulation time step (seconds), a 10 Hz guidance tick."""

SIM_SPEED_KMH = 8.0
"""Default simulated ground speed (km/h)."""

SIM_MAX_STEPS = 3000
"""Default step limit for one simulated run."""


# ============================================================================
# Visualization
# ============================================================================

FIELD_COLOR = "#2e7d32"
"""Field boundary color."""

HEADLAND_COLOR = "#ffa726"
"""Headland and turn line color."""

TRACK_COLOR = "#2374f7"
"""Guidance track color."""

TURN_COLOR = "#f74823"
"""Turn path color."""

TRAJECTORY_COLOR = "#0d1b2a"
"""Simulated vehicle trajectory color."""

BACKGROUND_COLOR = "#fffdee"
"""Figure background color."""

# Terminal color codes
TERM_GREEN = "\033[38;2;46;125;50m"
"""Terminal color for success messages."""

TERM_BLUE = "\033[38;2;35;116;247m"
"""Terminal color for informational messages."""

TERM_RESET = "\033[0m"
"""Terminal color reset code."""
