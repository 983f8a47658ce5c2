"""
Edge routing module for the OKR canvas.

Routes a relation arrow between two anchors while avoiding every other
card and group on the canvas:

- Fast path: when nothing intersects the corridor between the two stubs
  the deterministic orthogonal fallback is used without building a grid.
- Slow path: obstacles are rasterised into a binary occupancy grid and a
  4-directional A* search (networkx) finds the shortest free path.
- Any search failure degrades to the orthogonal fallback; routing never
  raises for geometric reasons.

The resulting polyline is snapped to the exact anchor and stub points,
simplified, straightened and emitted as an SVG path with rounded corners.
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Tuple

import networkx as nx

from .anchors import AnchorLike, as_anchor, get_anchor_point, get_stub_point
from .models import Anchor, Point, Rect
from .orthogonal import orthogonal_route
from .path_simplify import reduce_orthogonal_bends, simplify_path, waypoints_to_svg_path
from .placement import rects_overlap
from .tracer import (
    STRATEGY_ASTAR,
    STRATEGY_CORRIDOR_CLEAR,
    STRATEGY_DIRECT,
    STRATEGY_FALLBACK_NO_PATH,
    STRATEGY_FALLBACK_OUT_OF_BOUNDS,
    RouteDecision,
    RouteTrace,
)

# =============================================================================
# ROUTING CONFIGURATION - Adjust these values to tune routing behavior
# =============================================================================

# Size of one occupancy grid cell in pixels
# Smaller cells give tighter routes but larger search graphs
DEFAULT_GRID_SIZE = 10

# Clearance kept between an arrow and any obstacle
DEFAULT_OBSTACLE_PADDING = 12

# Free margin added around the bounding box of stubs and obstacles
DEFAULT_BOUNDS_PADDING = 50

# Preferred radius of rounded corners
DEFAULT_CORNER_RADIUS = 8

# Straight lead-out in front of each anchor before the first bend
DEFAULT_STUB_LENGTH = 20

# =============================================================================

Cell = Tuple[int, int]


@dataclass(frozen=True)
class RoutingConfig:
    """Tunable routing parameters (all in canvas pixels)."""

    grid_size: float = DEFAULT_GRID_SIZE
    obstacle_padding: float = DEFAULT_OBSTACLE_PADDING
    bounds_padding: float = DEFAULT_BOUNDS_PADDING
    corner_radius: float = DEFAULT_CORNER_RADIUS
    stub_length: float = DEFAULT_STUB_LENGTH

    def __post_init__(self):
        if self.grid_size <= 0:
            raise ValueError(f"grid_size must be positive, got {self.grid_size}")
        for name in ("obstacle_padding", "bounds_padding", "corner_radius", "stub_length"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must not be negative, got {value}")


@dataclass
class RoutedEdge:
    """
    A routed arrow.

    Attributes:
        path: SVG path ``d`` attribute.
        waypoints: Polyline from the exact source anchor point to the exact
            target anchor point.
        routed: True only when obstacle avoidance (grid search) produced
            the path.
        start: Source anchor point.
        end: Target anchor point.
    """

    path: str
    waypoints: List[Point] = field(default_factory=list)
    routed: bool = False
    start: Point = (0.0, 0.0)
    end: Point = (0.0, 0.0)


class ObstacleGrid:
    """
    Binary occupancy grid over a rectangular canvas region.

    Cell (col, row) covers the square starting at
    (offset_x + col * grid_size, offset_y + row * grid_size). Only blocked
    cells are stored.
    """

    def __init__(self, offset_x: float, offset_y: float, cols: int, rows: int, grid_size: float):
        """
        Initialize an empty grid.

        Args:
            offset_x: Canvas x of the left edge of column 0
            offset_y: Canvas y of the top edge of row 0
            cols: Number of columns
            rows: Number of rows
            grid_size: Cell size in pixels
        """
        self.offset_x = offset_x
        self.offset_y = offset_y
        self.cols = cols
        self.rows = rows
        self.grid_size = grid_size
        self.blocked: Set[Cell] = set()

    def in_bounds(self, cell: Cell) -> bool:
        col, row = cell
        return 0 <= col < self.cols and 0 <= row < self.rows

    def is_blocked(self, cell: Cell) -> bool:
        return cell in self.blocked

    def is_free(self, cell: Cell) -> bool:
        """Check if a cell is inside the grid and walkable."""
        return self.in_bounds(cell) and cell not in self.blocked

    def cell_of(self, point: Point) -> Cell:
        """Grid cell containing a canvas point (may be out of bounds)."""
        col = math.floor((point[0] - self.offset_x) / self.grid_size)
        row = math.floor((point[1] - self.offset_y) / self.grid_size)
        return (col, row)

    def cell_center(self, cell: Cell) -> Point:
        col, row = cell
        return (
            self.offset_x + (col + 0.5) * self.grid_size,
            self.offset_y + (row + 0.5) * self.grid_size,
        )

    def block_rect(self, rect: Rect) -> None:
        """Mark every cell overlapping ``rect`` as blocked."""
        col_start = math.floor((rect.x - self.offset_x) / self.grid_size)
        col_end = math.ceil((rect.x2 - self.offset_x) / self.grid_size)
        row_start = math.floor((rect.y - self.offset_y) / self.grid_size)
        row_end = math.ceil((rect.y2 - self.offset_y) / self.grid_size)

        for row in range(max(0, row_start), min(self.rows, row_end)):
            for col in range(max(0, col_start), min(self.cols, col_end)):
                self.blocked.add((col, row))

    def unblock(self, cell: Cell) -> None:
        self.blocked.discard(cell)

    def to_graph(self) -> nx.Graph:
        """4-connected graph of the free cells, nodes are (col, row)."""
        graph = nx.grid_2d_graph(self.cols, self.rows)
        graph.remove_nodes_from(self.blocked)
        return graph

    def to_ascii(
        self,
        path: Optional[Iterable[Cell]] = None,
        start: Optional[Cell] = None,
        end: Optional[Cell] = None,
    ) -> List[str]:
        """
        Render the grid as text rows.

        ``#`` is blocked, ``.`` free, ``*`` a path cell, ``S``/``E`` the
        start and end cells.
        """
        path_cells = set(path or [])
        lines = []
        for row in range(self.rows):
            chars = []
            for col in range(self.cols):
                cell = (col, row)
                if cell == start:
                    chars.append("S")
                elif cell == end:
                    chars.append("E")
                elif cell in path_cells:
                    chars.append("*")
                elif cell in self.blocked:
                    chars.append("#")
                else:
                    chars.append(".")
            lines.append("".join(chars))
        return lines


def build_obstacle_grid(
    start: Point,
    end: Point,
    obstacles: Sequence[Rect],
    config: Optional[RoutingConfig] = None,
) -> ObstacleGrid:
    """
    Rasterise obstacles into an occupancy grid.

    The grid covers the bounding box of both points and every obstacle,
    grown by ``bounds_padding``. Cells overlapping an obstacle grown by
    ``obstacle_padding`` are blocked; the cells holding ``start`` and
    ``end`` are always left free.

    Args:
        start: First search endpoint (normally the source stub).
        end: Second search endpoint (normally the target stub).
        obstacles: Rectangles to avoid.
        config: Routing parameters.

    Returns:
        The populated ObstacleGrid.
    """
    config = config or RoutingConfig()

    min_x = min(start[0], end[0])
    min_y = min(start[1], end[1])
    max_x = max(start[0], end[0])
    max_y = max(start[1], end[1])
    for obs in obstacles:
        min_x = min(min_x, obs.x)
        min_y = min(min_y, obs.y)
        max_x = max(max_x, obs.x2)
        max_y = max(max_y, obs.y2)

    min_x -= config.bounds_padding
    min_y -= config.bounds_padding
    max_x += config.bounds_padding
    max_y += config.bounds_padding

    cols = math.ceil((max_x - min_x) / config.grid_size)
    rows = math.ceil((max_y - min_y) / config.grid_size)
    grid = ObstacleGrid(min_x, min_y, cols, rows, config.grid_size)

    for obs in obstacles:
        grid.block_rect(obs.expanded(config.obstacle_padding))

    grid.unblock(grid.cell_of(start))
    grid.unblock(grid.cell_of(end))
    return grid


def segment_intersects_rect(a: Point, b: Point, rect: Rect) -> bool:
    """
    Check if an axis-aligned segment passes through a rectangle's interior.

    Segments running along the border do not count.
    """
    if a[1] == b[1]:
        y = a[1]
        return rect.y < y < rect.y2 and max(a[0], b[0]) > rect.x and min(a[0], b[0]) < rect.x2
    if a[0] == b[0]:
        x = a[0]
        return rect.x < x < rect.x2 and max(a[1], b[1]) > rect.y and min(a[1], b[1]) < rect.y2
    # Diagonal segments only appear in manual paths; test the bounding box
    box = Rect(min(a[0], b[0]), min(a[1], b[1]), abs(b[0] - a[0]), abs(b[1] - a[1]))
    return rects_overlap(box, rect)


def corridor_is_clear(start: Point, end: Point, obstacles: Sequence[Rect], padding: float) -> bool:
    """True if no obstacle touches the padded bounding box of two points."""
    corridor = Rect(
        min(start[0], end[0]),
        min(start[1], end[1]),
        abs(end[0] - start[0]),
        abs(end[1] - start[1]),
    ).expanded(padding)
    return not any(rects_overlap(corridor, obs) for obs in obstacles)


def _manhattan(a: Cell, b: Cell) -> float:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


def find_grid_path(grid: ObstacleGrid, start_cell: Cell, end_cell: Cell) -> List[Cell]:
    """
    Shortest 4-directional path between two cells.

    Raises:
        networkx.NetworkXNoPath: If the cells are not connected.
        networkx.NodeNotFound: If either cell is blocked or off the grid.
    """
    return nx.astar_path(grid.to_graph(), start_cell, end_cell, heuristic=_manhattan)


def _elbow(a: Point, b: Point, horizontal_first: bool) -> List[Point]:
    """Corner needed to join two points orthogonally (empty if already aligned)."""
    if a[0] == b[0] or a[1] == b[1]:
        return []
    if horizontal_first:
        return [(b[0], a[1])]
    return [(a[0], b[1])]


def _snap_to_stubs(
    centers: List[Point], stub_start: Point, stub_end: Point, horizontal_first: bool
) -> List[Point]:
    """
    Move the ends of a simplified cell-centre path onto the exact stubs.

    The first and last centres are replaced by the stub points and their
    neighbours are shifted along the shared axis, so every segment stays
    axis-aligned. A stub lies inside its cell, so no shift exceeds half a
    cell and no segment changes direction.
    """
    if len(centers) < 3:
        if len(centers) == 2:
            horizontal_first = centers[0][1] == centers[1][1]
        return [stub_start] + _elbow(stub_start, stub_end, horizontal_first) + [stub_end]

    snapped = list(centers)
    first_horizontal = centers[0][1] == centers[1][1]
    last_horizontal = centers[-2][1] == centers[-1][1]

    if first_horizontal:
        snapped[1] = (snapped[1][0], stub_start[1])
    else:
        snapped[1] = (stub_start[0], snapped[1][1])
    if last_horizontal:
        snapped[-2] = (snapped[-2][0], stub_end[1])
    else:
        snapped[-2] = (stub_end[0], snapped[-2][1])

    snapped[0] = stub_start
    snapped[-1] = stub_end
    return snapped


def _fallback(
    start: Point,
    start_anchor: Anchor,
    end: Point,
    end_anchor: Anchor,
    from_rect: Rect,
    to_rect: Rect,
    config: RoutingConfig,
) -> RoutedEdge:
    points = orthogonal_route(
        start, start_anchor, end, end_anchor, from_rect, to_rect, config.stub_length
    )
    return RoutedEdge(
        path=waypoints_to_svg_path(points, config.corner_radius),
        waypoints=points,
        routed=False,
        start=start,
        end=end,
    )


def route_edge(
    from_rect: Rect,
    from_anchor: AnchorLike,
    to_rect: Rect,
    to_anchor: AnchorLike,
    obstacles: Sequence[Rect],
    config: Optional[RoutingConfig] = None,
    trace: Optional[RouteTrace] = None,
    relation_id: str = "",
) -> RoutedEdge:
    """
    Calculate an obstacle-avoiding orthogonal path between two anchors.

    Args:
        from_rect: Source element rectangle (canvas-absolute).
        from_anchor: Side of the source the arrow leaves from.
        to_rect: Target element rectangle (canvas-absolute).
        to_anchor: Side of the target the arrow arrives at.
        obstacles: Rectangles to avoid; must not include the endpoints.
        config: Routing parameters.
        trace: Optional trace that receives a RouteDecision.
        relation_id: Id recorded in the trace.

    Returns:
        RoutedEdge with SVG path, waypoints and routing status.
    """
    config = config or RoutingConfig()
    from_anchor = as_anchor(from_anchor)
    to_anchor = as_anchor(to_anchor)

    start = get_anchor_point(from_rect, from_anchor)
    end = get_anchor_point(to_rect, to_anchor)
    stub_start = get_stub_point(start, from_anchor, config.stub_length)
    stub_end = get_stub_point(end, to_anchor, config.stub_length)

    def fallback(strategy: str, reason: str, grid: Optional[ObstacleGrid] = None) -> RoutedEdge:
        edge = _fallback(start, from_anchor, end, to_anchor, from_rect, to_rect, config)
        _record(trace, relation_id, strategy, reason, grid, edge)
        return edge

    if not obstacles:
        return fallback(STRATEGY_DIRECT, "no obstacles")

    if corridor_is_clear(stub_start, stub_end, obstacles, config.obstacle_padding):
        return fallback(STRATEGY_CORRIDOR_CLEAR, "no obstacle in corridor")

    grid = build_obstacle_grid(stub_start, stub_end, obstacles, config)
    start_cell = grid.cell_of(stub_start)
    end_cell = grid.cell_of(stub_end)

    if not (grid.in_bounds(start_cell) and grid.in_bounds(end_cell)):
        return fallback(STRATEGY_FALLBACK_OUT_OF_BOUNDS, "endpoint cell outside grid", grid)

    try:
        cells = find_grid_path(grid, start_cell, end_cell)
    except (nx.NetworkXNoPath, nx.NodeNotFound):
        return fallback(STRATEGY_FALLBACK_NO_PATH, "no free path on grid", grid)

    centers = simplify_path([grid.cell_center(c) for c in cells])
    raw = [start]
    raw.extend(_snap_to_stubs(centers, stub_start, stub_end, from_anchor.is_horizontal))
    raw.append(end)

    padded = [obs.expanded(config.obstacle_padding) for obs in obstacles]

    def is_clear(a: Point, b: Point) -> bool:
        return not any(segment_intersects_rect(a, b, r) for r in padded)

    points = reduce_orthogonal_bends(simplify_path(raw), is_clear)
    # a stub running straight into the first grid run is collinear with it
    if points[1] != stub_start:
        points.insert(1, stub_start)
    if points[-2] != stub_end:
        points.insert(len(points) - 1, stub_end)
    edge = RoutedEdge(
        path=waypoints_to_svg_path(points, config.corner_radius),
        waypoints=points,
        routed=True,
        start=start,
        end=end,
    )

    if trace is not None:
        trace.add_stage(
            f"grid:{relation_id}" if relation_id else "grid",
            {
                "cols": grid.cols,
                "rows": grid.rows,
                "blocked": len(grid.blocked),
                "path_cells": len(cells),
            },
            grid.to_ascii(cells, start_cell, end_cell),
        )
    _record(trace, relation_id, STRATEGY_ASTAR, f"{len(cells)} cells searched path", grid, edge)
    return edge


def _record(
    trace: Optional[RouteTrace],
    relation_id: str,
    strategy: str,
    reason: str,
    grid: Optional[ObstacleGrid],
    edge: RoutedEdge,
) -> None:
    if trace is None:
        return
    trace.add_decision(
        RouteDecision(
            relation_id=relation_id,
            strategy=strategy,
            reason=reason,
            grid_cols=grid.cols if grid else 0,
            grid_rows=grid.rows if grid else 0,
            waypoint_count=len(edge.waypoints),
        )
    )
