"""
Manual waypoint paths.

A relation that carries user-placed bend points is drawn straight through
them instead of being searched. This module builds that path and
implements the waypoint edits (insert, move, remove) on a Relation.
"""

import math
from dataclasses import replace
from typing import List, Optional, Sequence

from .anchors import AnchorLike, get_stub_point
from .edge_routing import RoutedEdge, RoutingConfig
from .models import Point, Relation
from .path_simplify import simplify_path, waypoints_to_svg_path
from .tracer import STRATEGY_MANUAL, RouteDecision, RouteTrace


def point_to_segment_distance(point: Point, a: Point, b: Point) -> float:
    """
    Euclidean distance from a point to the closed segment a-b.

    The projection parameter is clamped to [0, 1]; a zero-length segment
    degrades to point distance.
    """
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(point[0] - a[0], point[1] - a[1])

    t = ((point[0] - a[0]) * dx + (point[1] - a[1]) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    proj_x = a[0] + t * dx
    proj_y = a[1] + t * dy
    return math.hypot(point[0] - proj_x, point[1] - proj_y)


def find_best_insert_index(point: Point, path: Sequence[Point]) -> int:
    """
    Index of the path segment closest to ``point``.

    Segment ``i`` joins ``path[i]`` and ``path[i + 1]``. Equidistant
    segments resolve to the earlier one.

    Args:
        point: Where the user clicked.
        path: Polyline ``[start, *waypoints, end]``.

    Returns:
        The segment index, which is also the waypoint list index at which
        the new point should be inserted. 0 for paths with fewer than two
        points.
    """
    if len(path) < 2:
        return 0

    best_index = 0
    best_dist = math.inf
    for i in range(len(path) - 1):
        dist = point_to_segment_distance(point, path[i], path[i + 1])
        if dist < best_dist:
            best_dist = dist
            best_index = i
    return best_index


def build_waypoint_path(
    start: Point,
    start_anchor: AnchorLike,
    end: Point,
    end_anchor: AnchorLike,
    waypoints: Sequence[Point],
    config: Optional[RoutingConfig] = None,
    trace: Optional[RouteTrace] = None,
    relation_id: str = "",
) -> RoutedEdge:
    """
    Build an arrow through user-defined bend points.

    The polyline is ``[start, stub_start, *waypoints, stub_end, end]`` with
    collinear points removed. No search is performed, so ``routed`` is
    always False.
    """
    config = config or RoutingConfig()
    points: List[Point] = [start, get_stub_point(start, start_anchor, config.stub_length)]
    points.extend(tuple(p) for p in waypoints)
    points.append(get_stub_point(end, end_anchor, config.stub_length))
    points.append(end)
    points = simplify_path(points)

    if trace is not None:
        trace.add_decision(
            RouteDecision(
                relation_id=relation_id,
                strategy=STRATEGY_MANUAL,
                reason=f"{len(waypoints)} manual waypoints",
                waypoint_count=len(points),
            )
        )

    return RoutedEdge(
        path=waypoints_to_svg_path(points, config.corner_radius),
        waypoints=points,
        routed=False,
        start=start,
        end=end,
    )


def _check_index(relation: Relation, index: int) -> List[Point]:
    waypoints = list(relation.waypoints or ())
    if not 0 <= index < len(waypoints):
        raise IndexError(
            f"Waypoint index {index} out of range for relation {relation.id} "
            f"({len(waypoints)} waypoints)"
        )
    return waypoints


def insert_waypoint(relation: Relation, point: Point, start: Point, end: Point) -> Relation:
    """
    Add a bend point on the segment nearest to ``point``.

    Args:
        relation: Relation to edit.
        point: New waypoint in canvas coordinates.
        start: Current source anchor point.
        end: Current target anchor point.

    Returns:
        A copy of the relation with the waypoint spliced in.
    """
    waypoints = list(relation.waypoints or ())
    index = find_best_insert_index(point, [start, *waypoints, end])
    waypoints.insert(index, (point[0], point[1]))
    return replace(relation, waypoints=tuple(waypoints))


def move_waypoint(relation: Relation, index: int, point: Point) -> Relation:
    """Replace the waypoint at ``index``; raises IndexError if absent."""
    waypoints = _check_index(relation, index)
    waypoints[index] = (point[0], point[1])
    return replace(relation, waypoints=tuple(waypoints))


def remove_waypoint(relation: Relation, index: int) -> Relation:
    """
    Delete the waypoint at ``index``.

    Removing the last waypoint returns the relation to automatic routing
    (``waypoints`` becomes None, never an empty tuple).
    """
    waypoints = _check_index(relation, index)
    del waypoints[index]
    return replace(relation, waypoints=tuple(waypoints) if waypoints else None)


def clear_waypoints(relation: Relation) -> Relation:
    return replace(relation, waypoints=None)
