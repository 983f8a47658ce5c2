"""
Debug utilities for okrcanvas.

Tools for understanding why an arrow was routed the way it was.

Key Components:
- GridInspector: ASCII rendering and queries over an ObstacleGrid
- visual_diff: Compare two ASCII grid dumps character-by-character
- describe_path: One-line summary of a polyline

Usage:
    >>> from okrcanvas.edge_routing import build_obstacle_grid
    >>> from okrcanvas.debug import GridInspector
    >>> grid = build_obstacle_grid((120, 30), (380, 30), [obstacle])
    >>> print(GridInspector(grid).render(path_cells))

    # For comparing an expected grid picture with the actual one:
    >>> from okrcanvas.debug import visual_diff
    >>> print(visual_diff(expected, actual))
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from .edge_routing import Cell, ObstacleGrid
from .models import Point

BLOCKED_CHAR = "#"
FREE_CHAR = "."
PATH_CHAR = "*"


class GridInspector:
    """
    Utilities for inspecting an obstacle grid.

    Provides rendering of the grid as text and queries for blocked cells,
    rows, columns and rectangular regions.
    """

    def __init__(self, grid: ObstacleGrid):
        """
        Initialize the inspector.

        Args:
            grid: The grid to inspect
        """
        self._grid = grid

    def render(
        self,
        path: Optional[Iterable[Cell]] = None,
        start: Optional[Cell] = None,
        end: Optional[Cell] = None,
    ) -> str:
        """
        Render the grid, optionally overlaying a path.

        ``#`` blocked, ``.`` free, ``*`` path, ``S``/``E`` endpoints.
        """
        return "\n".join(self._grid.to_ascii(path, start, end))

    def blocked_count(self) -> int:
        return len(self._grid.blocked)

    def free_count(self) -> int:
        return self._grid.cols * self._grid.rows - self.blocked_count()

    def get_row(self, row: int) -> str:
        """Get a single row as a string."""
        if 0 <= row < self._grid.rows:
            return self._grid.to_ascii()[row]
        return ""

    def get_column(self, col: int) -> str:
        """Get a single column as a string (top to bottom)."""
        if not 0 <= col < self._grid.cols:
            return ""
        return "".join(
            BLOCKED_CHAR if self._grid.is_blocked((col, row)) else FREE_CHAR
            for row in range(self._grid.rows)
        )

    def get_region(self, col: int, row: int, width: int, height: int) -> str:
        """
        Get a rectangular region of the grid.

        Cells outside the grid are shown as spaces.
        """
        lines = []
        for r in range(row, row + height):
            line = ""
            for c in range(col, col + width):
                if not self._grid.in_bounds((c, r)):
                    line += " "
                elif self._grid.is_blocked((c, r)):
                    line += BLOCKED_CHAR
                else:
                    line += FREE_CHAR
            lines.append(line)
        return "\n".join(lines)

    def blocked_bounds(self) -> Optional[Tuple[int, int, int, int]]:
        """(min_col, min_row, max_col, max_row) of the blocked cells, or None."""
        if not self._grid.blocked:
            return None
        cols = [c for c, _ in self._grid.blocked]
        rows = [r for _, r in self._grid.blocked]
        return (min(cols), min(rows), max(cols), max(rows))

    def path_is_free(self, path: Iterable[Cell]) -> bool:
        """True if every cell of ``path`` is inside the grid and walkable."""
        return all(self._grid.is_free(cell) for cell in path)


def describe_path(points: Sequence[Point]) -> str:
    """
    One-line summary of a polyline, e.g. ``4 points, 2 bends: (0,0) -> ...``.
    """
    if not points:
        return "empty path"
    coords = " -> ".join(f"({x:g},{y:g})" for x, y in points)
    bends = max(0, len(points) - 2)
    return f"{len(points)} points, {bends} bends: {coords}"


def visual_diff(expected: str, actual: str, context_lines: int = 2) -> str:
    """
    Generate a character-by-character diff between two ASCII grid dumps.

    Args:
        expected: The expected grid picture
        actual: The actual grid picture
        context_lines: Number of matching lines to show around differences

    Returns:
        A formatted string showing the differences
    """
    exp_lines = expected.split("\n")
    act_lines = actual.split("\n")

    output: List[str] = ["=" * 60, "GRID DIFF", "=" * 60]

    max_lines = max(len(exp_lines), len(act_lines))
    diff_rows = [
        i
        for i in range(max_lines)
        if (exp_lines[i] if i < len(exp_lines) else "")
        != (act_lines[i] if i < len(act_lines) else "")
    ]

    if not diff_rows:
        output.append("No differences found.")
        return "\n".join(output)

    output.append(f"Found {len(diff_rows)} differing row(s)")
    output.append("")

    shown = set()
    for idx in diff_rows:
        for ctx in range(max(0, idx - context_lines), min(max_lines, idx + context_lines + 1)):
            shown.add(ctx)

    prev_shown = -2
    for i in sorted(shown):
        if i > prev_shown + 1:
            output.append("...")

        exp_line = exp_lines[i] if i < len(exp_lines) else ""
        act_line = act_lines[i] if i < len(act_lines) else ""

        if exp_line == act_line:
            output.append(f"{i:3d}:   {act_line}")
        else:
            output.append(f"{i:3d}: E |{exp_line}|")
            output.append(f"     A |{act_line}|")
            cols = [
                j
                for j in range(max(len(exp_line), len(act_line)))
                if (exp_line[j] if j < len(exp_line) else "")
                != (act_line[j] if j < len(act_line) else "")
            ]
            marker = [" "] * (max(len(exp_line), len(act_line)) + 8)
            for col in cols:
                marker[col + 8] = "^"
            output.append("".join(marker).rstrip())
            output.append(
                f"     Diff at col(s): {cols[:5]}{'...' if len(cols) > 5 else ''}"
            )

        prev_shown = i

    return "\n".join(output)
