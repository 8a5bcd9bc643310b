"""Plot helpers shared by the field guidance figures.

Recorded runs are read back column-wise; text columns such as the guidance
status stay strings, everything else becomes float arrays.
"""

import csv
from pathlib import Path
from typing import Dict, Iterable

import numpy as np
from matplotlib.axes import Axes

from .config import BACKGROUND_COLOR, TRAJECTORY_COLOR

__all__ = [
    "load_csv_to_dict",
    "style_axis",
    "add_legend",
]

TEXT_COLUMNS = ("status",)


# ============================================================================
# Run Files
# ============================================================================


def load_csv_to_dict(
    csv_path: Path, text_columns: Iterable[str] = TEXT_COLUMNS
) -> Dict[str, np.ndarray]:
    """Read a recorded run CSV into one array per column.

    Args:
        csv_path: guidance_data.csv or path.csv of a run directory.
        text_columns: Columns kept as strings.

    Returns:
        Column name -> array. Unparseable numeric cells become NaN.

    Raises:
        FileNotFoundError: If csv_path does not exist.
    """
    csv_path = Path(csv_path)
    if not csv_path.is_file():
        raise FileNotFoundError(f"No run data at {csv_path}")

    with csv_path.open(newline="") as f:
        rows = list(csv.DictReader(f))
        columns = list(rows[0].keys()) if rows else []

    text = set(text_columns)
    result: Dict[str, np.ndarray] = {}
    for name in columns:
        cells = [row[name] for row in rows]
        if name in text:
            result[name] = np.array(cells, dtype=str)
        else:
            result[name] = np.array([_to_float(cell) for cell in cells], dtype=float)
    return result


def _to_float(cell: str) -> float:
    try:
        return float(cell)
    except (TypeError, ValueError):
        return float("nan")


# ============================================================================
# Axes
# ============================================================================


def style_axis(
    ax: Axes,
    title: str = "",
    xlabel: str = "",
    ylabel: str = "",
    grid: bool = True,
    equal: bool = False,
) -> None:
    """Label an axis and apply the package look.

    Args:
        ax: Axis to style.
        title: Bold axis title, skipped when empty.
        xlabel: X label, skipped when empty.
        ylabel: Y label, skipped when empty.
        grid: Draw a light dashed grid.
        equal: Equal aspect ratio, for plan views in meters.
    """
    for text, setter in ((xlabel, ax.set_xlabel), (ylabel, ax.set_ylabel)):
        if text:
            setter(text)
    if title:
        ax.set_title(title, fontweight="bold")
    if grid:
        ax.grid(True, alpha=0.3, linestyle="--", linewidth=0.5)
    if equal:
        ax.set_aspect("equal", adjustable="datalim")
    ax.set_facecolor(BACKGROUND_COLOR)


def add_legend(ax: Axes, **kwargs) -> None:
    """Legend in the package style; kwargs override the defaults."""
    options = dict(loc="best", framealpha=0.9, edgecolor=TRAJECTORY_COLOR)
    options.update(kwargs)
    ax.legend(**options)
