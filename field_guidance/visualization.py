"""
Visualization of fields, guidance paths and simulated runs.

This module plots plan views (boundaries, headland lines, tracks, turn paths
and driven trajectories) and cross-track error traces from recorded runs.
"""

from pathlib import Path
from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from .config import (
    FIELD_COLOR,
    HEADLAND_COLOR,
    TRACK_COLOR,
    TRAJECTORY_COLOR,
    TURN_COLOR,
)
from .geometry import as_array
from .models import Boundary, GuidancePath, HeadlandLine, TurnPath
from .plot_styles import add_legend, load_csv_to_dict, style_axis


def _closed(xy: np.ndarray) -> np.ndarray:
    return np.vstack((xy, xy[:1])) if len(xy) else xy


def plot_field(
    boundaries: Sequence[Boundary],
    headland_lines: Sequence[HeadlandLine] = (),
    paths: Sequence[GuidancePath] = (),
    trajectory: Optional[np.ndarray] = None,
    title: str = "Field",
    save_path: Optional[Path] = None,
) -> Figure:
    """Plot a plan view of a field.

    Args:
        boundaries: Field boundaries, outer ring first.
        headland_lines: Headland or turn lines to overlay.
        paths: Tracks and turn paths to overlay.
        trajectory: Optional (N, 2+) array of driven pivot positions.
        title: Plot title.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.
    """
    fig, ax = plt.subplots(figsize=(10, 8))

    for i, boundary in enumerate(boundaries):
        xy = _closed(as_array(boundary.points))
        if len(xy):
            ax.plot(
                xy[:, 0],
                xy[:, 1],
                "-",
                color=FIELD_COLOR,
                linewidth=2.0,
                label="Boundary" if i == 0 else None,
            )

    for i, line in enumerate(headland_lines):
        if line.is_empty():
            continue
        xy = _closed(as_array(line.points))
        ax.plot(
            xy[:, 0],
            xy[:, 1],
            "--",
            color=HEADLAND_COLOR,
            linewidth=1.5,
            label="Headland" if i == 0 else None,
        )

    labelled = set()
    for guidance_path in paths:
        xy = as_array(guidance_path.points)
        if len(xy) < 2:
            continue
        is_turn = isinstance(guidance_path, TurnPath)
        label = "Turn" if is_turn else "Track"
        ax.plot(
            xy[:, 0],
            xy[:, 1],
            "-",
            color=TURN_COLOR if is_turn else TRACK_COLOR,
            linewidth=1.5,
            label=label if label not in labelled else None,
        )
        labelled.add(label)

    if trajectory is not None and len(trajectory):
        ax.plot(
            trajectory[:, 0],
            trajectory[:, 1],
            "-",
            color=TRAJECTORY_COLOR,
            linewidth=1.0,
            alpha=0.8,
            label="Trajectory",
        )
        ax.plot(trajectory[0, 0], trajectory[0, 1], "o", color=TRAJECTORY_COLOR, markersize=6)

    style_axis(ax, title=title, xlabel="Easting (m)", ylabel="Northing (m)", equal=True)
    add_legend(ax)
    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig


def plot_cross_track(
    run_dir: Path, title: str = "Guidance Errors", save_path: Optional[Path] = None
) -> Figure:
    """Plot cross-track error and steer angle from a recorded run.

    Args:
        run_dir: Run directory containing guidance_data.csv.
        title: Figure title.
        save_path: Optional path to save the figure.

    Returns:
        Matplotlib figure object.

    Raises:
        FileNotFoundError: If the run has no guidance_data.csv.
    """
    data = load_csv_to_dict(Path(run_dir) / "guidance_data.csv")
    time = data["time"]

    fig, (ax_xte, ax_steer) = plt.subplots(2, 1, figsize=(10, 7), sharex=True)
    fig.suptitle(title, fontsize=14, fontweight="bold")

    ax_xte.plot(time, data["cross_track_error"], color=TRACK_COLOR, linewidth=1.5)
    ax_xte.axhline(0.0, color=TRAJECTORY_COLOR, linewidth=0.8, alpha=0.5)
    style_axis(ax_xte, ylabel="Cross-track error (m)")

    ax_steer.plot(time, data["steer_angle"], color=TURN_COLOR, linewidth=1.5)
    style_axis(ax_steer, xlabel="Time (s)", ylabel="Steer angle (deg)")

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    return fig
