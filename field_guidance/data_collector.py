"""CSV logging of simulated guidance runs.

This module records:
- The guidance path being followed
- Per-tick vehicle pose, steering output and errors
"""

import csv
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO

from .config import TERM_BLUE, TERM_RESET
from .follower import GuidanceStatus
from .models import GuidanceOutput, GuidancePath, VehicleState


class DataCollector:
    """Manages CSV files for one simulated guidance run.

    Attributes:
        run_dir: Directory path for this run's output files.
        guidance_output_path: Per-tick guidance CSV.
        path_output_path: Guidance path CSV.
    """

    def __init__(self, output_dir: str = ".", run_dir: Optional[str] = None) -> None:
        """Initialize the data collector.

        Args:
            output_dir: Base directory for output files (default: current directory).
            run_dir: Optional specific run directory. If None, creates a
                timestamped directory under output_dir/results.

        Raises:
            ValueError: If output_dir is not a valid directory.
        """
        output_path = Path(output_dir)
        if output_path.exists() and not output_path.is_dir():
            raise ValueError(f"Output path exists but is not a directory: {output_dir}")

        self.guidance_csv_file: Optional[TextIO] = None
        self.guidance_csv_writer: Any = None

        if run_dir:
            self.run_dir: Path = Path(run_dir)
        else:
            # results/run_YYYYMMDD_HHMMSS/
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.run_dir = output_path / "results" / f"run_{timestamp}"

        self.run_dir.mkdir(parents=True, exist_ok=True)

        self.guidance_output_path: Path = self.run_dir / "guidance_data.csv"
        self.path_output_path: Path = self.run_dir / "path.csv"

    def setup(self) -> None:
        """Open the per-tick CSV and write its header. Must be called before logging."""
        self.guidance_csv_file = open(self.guidance_output_path, "w", newline="")
        self.guidance_csv_writer = csv.writer(self.guidance_csv_file)
        self.guidance_csv_writer.writerow(
            [
                "time",
                "easting",
                "northing",
                "heading",
                "speed_kmh",
                "steer_angle",
                "cross_track_error",
                "heading_error",
                "distance_off_mm",
                "index_a",
                "status",
            ]
        )
        self.guidance_csv_file.flush()

        print(f"{TERM_BLUE}✓ Initialized data collection to {self.run_dir}/{TERM_RESET}")

    def log_path(self, path: GuidancePath) -> None:
        """Write the guidance path points (easting, northing, heading)."""
        with open(self.path_output_path, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["easting", "northing", "heading"])
            for point in path.points:
                writer.writerow([point.easting, point.northing, point.heading])

    def log_tick(
        self,
        time: float,
        state: VehicleState,
        output: GuidanceOutput,
        status: GuidanceStatus,
    ) -> None:
        """Log one guidance tick.

        Args:
            time: Simulation time (seconds).
            state: Vehicle state the output was computed for.
            output: Controller output.
            status: Session status after the tick.
        """
        self.guidance_csv_writer.writerow(
            [
                f"{time:.3f}",
                state.pivot.easting,
                state.pivot.northing,
                state.pivot.heading,
                state.speed_kmh,
                output.steer_angle,
                output.cross_track_error,
                output.heading_error,
                output.distance_off_mm,
                output.index_a,
                status.value,
            ]
        )
        if self.guidance_csv_file:
            self.guidance_csv_file.flush()

    def cleanup(self) -> None:
        """Close the CSV file and report the output location."""
        if self.guidance_csv_file:
            self.guidance_csv_file.close()
            self.guidance_csv_file = None

        print(f"{TERM_BLUE}✓ Saved guidance data to {self.run_dir}/{TERM_RESET}")

    def __enter__(self) -> "DataCollector":
        self.setup()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cleanup()
