"""Command-line interface for the field guidance engine.

Runs the engine on a built-in demo field:
- nudge: shift the demo track sideways and report the result
- turn: create a turn at the end of the demo track
- simulate: follow the demo track (or a turn) with the controller in the loop
- plot: plot cross-track error and steering of a recorded run
"""

import argparse
import logging
import math
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np

from . import config
from .data_collector import DataCollector
from .follower import ControlLaw, GuidanceSettings
from .geometry import Point3
from .headland import build_headland_lines
from .models import ABLine, Boundary, Curve, SkipMode, Track, TurnStyle, VehicleState
from .nudging import nudge_track
from .simulation import simulate_path
from .turns import TurnPathCreator, TurnRequest, TurnSettings
from .vehicle import VehicleConfig
from .visualization import plot_cross_track, plot_field


class CustomFormatter(logging.Formatter):
    """Logging formatter that prints INFO messages bare.

    WARNING, ERROR and DEBUG messages keep their timestamp and level.
    """

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno == logging.INFO:
            return record.getMessage()
        return f"{self.formatTime(record, self.datefmt)} - {record.levelname} - {record.getMessage()}"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbose: If True, show all levels with timestamps. If False, show INFO
                 without timestamps and WARNING/ERROR with timestamps.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(CustomFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
        logger = logging.getLogger()
        logger.setLevel(logging.INFO)
        logger.addHandler(handler)


# ============================================================================
# Demo Field
# ============================================================================

DEMO_WIDTH = 120.0
DEMO_LENGTH = 200.0
DEMO_TRACK_EASTING = 30.0


def demo_boundaries(with_hole: bool = False) -> Tuple[Boundary, ...]:
    """Rectangular demo field, optionally with a square obstacle in the middle."""
    outer = Boundary.from_points(
        [(0.0, 0.0), (DEMO_WIDTH, 0.0), (DEMO_WIDTH, DEMO_LENGTH), (0.0, DEMO_LENGTH)]
    )
    if not with_hole:
        return (outer,)
    hole = Boundary.from_points([(70.0, 90.0), (80.0, 90.0), (80.0, 100.0), (70.0, 100.0)])
    return (outer, hole)


def demo_track(curved: bool = False) -> Track:
    """Northbound demo track: an AB line, or a gentle S-curve sampled every 2 m."""
    if not curved:
        return ABLine.from_points((DEMO_TRACK_EASTING, 20.0), (DEMO_TRACK_EASTING, 180.0))
    northings = np.arange(20.0, 181.0, 2.0)
    eastings = DEMO_TRACK_EASTING + 5.0 * np.sin(northings / 40.0)
    return Curve.from_points(zip(eastings, northings))


def _describe_track(track: Track) -> str:
    if isinstance(track, ABLine):
        return (
            f"AB line ({track.point_a.easting:.2f}, {track.point_a.northing:.2f}) -> "
            f"({track.point_b.easting:.2f}, {track.point_b.northing:.2f}), "
            f"heading {math.degrees(track.heading):.1f} deg"
        )
    if track.is_empty():
        return "empty curve"
    first, last = track.points[0], track.points[-1]
    return (
        f"curve with {len(track)} points from ({first.easting:.2f}, {first.northing:.2f}) "
        f"to ({last.easting:.2f}, {last.northing:.2f})"
    )


# ============================================================================
# Commands
# ============================================================================


def run_nudge(args: argparse.Namespace) -> int:
    track = demo_track(args.curve)
    logging.info(f"Original: {_describe_track(track)}")
    nudged = nudge_track(track, args.distance)
    logging.info(f"Nudged {args.distance:+.2f} m: {_describe_track(nudged)}")
    return 0 if not (isinstance(nudged, Curve) and nudged.is_empty()) else 1


def _turn_request(args: argparse.Namespace, vehicle: VehicleConfig) -> TurnRequest:
    track = demo_track(args.curve)
    settings = TurnSettings(
        style=TurnStyle(args.style),
        skip_mode=SkipMode(args.skip_mode),
        row_skips_width=args.skips,
        tool_width=args.tool_width,
    )
    start_northing = 150.0
    pivot = Point3.of(DEMO_TRACK_EASTING, start_northing, 0.0)
    if isinstance(track, Curve):
        nearest = min(track.points, key=lambda p: abs(p.northing - start_northing))
        pivot = Point3.of(nearest.easting, nearest.northing, nearest.heading)
    return TurnRequest(
        track=track,
        vehicle=pivot,
        boundaries=demo_boundaries(args.hole),
        settings=settings,
        vehicle_config=vehicle,
        turn_left=args.left,
    )


def run_turn(args: argparse.Namespace) -> int:
    vehicle = VehicleConfig()
    request = _turn_request(args, vehicle)
    result = TurnPathCreator().create_turn(request)
    if not result.success:
        logging.error(f"Turn creation failed: {result.failure_reason}")
        return 1

    turn = result.turn_path
    logging.info(
        f"{config.TERM_GREEN}✓ Created {turn.shape.value} turn with {len(turn)} points{config.TERM_RESET}"
    )
    logging.info(f"  Next path index: {result.next_paths_away}")
    logging.info(f"  Distance to turn line: {result.distance_pivot_to_turn_line:.1f} m")
    logging.info(f"  Out of bounds: {result.is_out_of_bounds}")

    if args.output:
        lines = build_headland_lines(request.boundaries, request.settings.turn_line_distance)
        fig = plot_field(
            request.boundaries, lines, [request.track, turn], title="Turn", save_path=Path(args.output)
        )
        plt.close(fig)
        logging.info(f"Saved plot to {args.output}")
    return 0


def run_simulate(args: argparse.Namespace) -> int:
    vehicle = VehicleConfig()
    settings = GuidanceSettings(control_law=ControlLaw(args.law))

    if args.turn:
        request = _turn_request(args, vehicle)
        result = TurnPathCreator().create_turn(request)
        if not result.success:
            logging.error(f"Turn creation failed: {result.failure_reason}")
            return 1
        path = result.turn_path
        start = path.points[0]
        state = VehicleState.at(
            start.easting, start.northing, start.heading, vehicle.wheelbase, args.speed
        )
        boundaries = request.boundaries
    else:
        path = demo_track(args.curve)
        first = path.points[0]
        state = VehicleState.at(
            first.easting + args.offset, first.northing, 0.0, vehicle.wheelbase, args.speed
        )
        boundaries = demo_boundaries()

    if args.record:
        with DataCollector(output_dir=args.results_dir) as recorder:
            result = simulate_path(path, state, vehicle, settings, recorder=recorder)
            run_dir: Optional[Path] = recorder.run_dir
    else:
        result = simulate_path(path, state, vehicle, settings)
        run_dir = None

    logging.info(f"{config.TERM_GREEN}✓ {result}{config.TERM_RESET}")

    if args.output or run_dir is not None:
        save_path = Path(args.output) if args.output else run_dir / "trajectory.png"
        fig = plot_field(boundaries, (), [path], result.trajectory, title="Simulated run", save_path=save_path)
        plt.close(fig)
        logging.info(f"Saved plot to {save_path}")
    return 0


def find_latest_run(results_dir: Path) -> Path:
    """Find the most recent run directory.

    Raises:
        FileNotFoundError: If no run directories are found.
    """
    if not results_dir.exists():
        raise FileNotFoundError(f"Results directory not found: {results_dir}")

    run_dirs = sorted(d for d in results_dir.iterdir() if d.is_dir() and d.name.startswith("run_"))
    if not run_dirs:
        raise FileNotFoundError(f"No run directories found in {results_dir}")
    return run_dirs[-1]


def run_plot(args: argparse.Namespace) -> int:
    results_dir = Path(args.results_dir) / "results"
    try:
        run_dir = results_dir / args.run if args.run else find_latest_run(results_dir)
        save_path = run_dir / "guidance_errors.png"
        fig = plot_cross_track(run_dir, title=run_dir.name, save_path=save_path)
    except FileNotFoundError as e:
        logging.error(f"Error: {e}")
        return 1

    logging.info(f"{config.TERM_BLUE}✓ Saved plot to {save_path}{config.TERM_RESET}")
    if args.show:
        plt.show()
    plt.close(fig)
    return 0


def _add_turn_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--style",
        choices=[style.value for style in TurnStyle],
        default=TurnStyle.ALBIN.value,
        help="Turn style (default: albin)",
    )
    parser.add_argument(
        "--skip-mode",
        choices=[mode.value for mode in SkipMode],
        default=SkipMode.NORMAL.value,
        help="Destination selection rule (default: normal)",
    )
    parser.add_argument("--skips", type=int, default=0, help="Paths to skip (default: 0)")
    parser.add_argument(
        "--tool-width", type=float, default=6.0, help="Implement width in meters (default: 6.0)"
    )
    parser.add_argument("--left", action="store_true", help="Turn left instead of right")
    parser.add_argument("--hole", action="store_true", help="Add an obstacle to the demo field")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Optional command-line arguments (for testing).

    Returns:
        Exit code (0 for success).
    """
    parser = argparse.ArgumentParser(
        description="Field guidance engine: nudging, turns and steering on a demo field",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Shift the curved demo track 3 m to the right
  field-guidance nudge --curve --distance 3

  # Create a K-style turn and save a plot of it
  field-guidance turn --style k_style -o turn.png

  # Follow the AB line with Stanley from 2 m off, recording the run
  field-guidance simulate --law stanley --offset 2 --record

  # Plot the most recent recorded run
  field-guidance plot
        """,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging with timestamps"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    nudge_parser = subparsers.add_parser("nudge", help="Nudge the demo track")
    nudge_parser.add_argument("--distance", type=float, default=3.0, help="Offset in meters (+ = right)")
    nudge_parser.add_argument("--curve", action="store_true", help="Use the curved demo track")

    turn_parser = subparsers.add_parser("turn", help="Create a turn at the end of the demo track")
    turn_parser.add_argument("--curve", action="store_true", help="Use the curved demo track")
    turn_parser.add_argument("--output", "-o", help="Save a plot of the turn to this path")
    _add_turn_arguments(turn_parser)

    sim_parser = subparsers.add_parser("simulate", help="Simulate following the demo track")
    sim_parser.add_argument(
        "--law",
        choices=[law.value for law in ControlLaw],
        default=ControlLaw.PURE_PURSUIT.value,
        help="Control law (default: pure_pursuit)",
    )
    sim_parser.add_argument("--curve", action="store_true", help="Use the curved demo track")
    sim_parser.add_argument("--turn", action="store_true", help="Simulate a turn instead of the track")
    sim_parser.add_argument(
        "--offset", type=float, default=2.0, help="Initial lateral offset in meters (default: 2.0)"
    )
    sim_parser.add_argument(
        "--speed", type=float, default=config.SIM_SPEED_KMH, help="Ground speed in km/h"
    )
    sim_parser.add_argument("--record", action="store_true", help="Record the run to CSV")
    sim_parser.add_argument(
        "--results-dir", default=".", help="Base directory for recorded runs (default: .)"
    )
    sim_parser.add_argument("--output", "-o", help="Save a trajectory plot to this path")
    _add_turn_arguments(sim_parser)

    plot_parser = subparsers.add_parser("plot", help="Plot a recorded run")
    plot_parser.add_argument("--run", help="Run directory name (default: most recent)")
    plot_parser.add_argument(
        "--results-dir", default=".", help="Base directory for recorded runs (default: .)"
    )
    plot_parser.add_argument("--show", action="store_true", help="Display the plot interactively")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "nudge":
        return run_nudge(args)
    elif args.command == "turn":
        return run_turn(args)
    elif args.command == "simulate":
        return run_simulate(args)
    elif args.command == "plot":
        return run_plot(args)
    else:
        logging.error(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
