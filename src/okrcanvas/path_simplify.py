"""
Path simplification and SVG emission.

Routed and manual arrow paths pass through three steps before they reach
the render boundary:

1. ``simplify_path`` drops collinear intermediate points.
2. ``reduce_orthogonal_bends`` collapses grid staircases into the fewest
   bends that keep the same start and end (routed paths only).
3. ``waypoints_to_svg_path`` emits an SVG ``d`` attribute with rounded
   corners.
"""

import math
from typing import Callable, List, Optional, Sequence

from .models import Point

# =============================================================================
# SIMPLIFICATION CONFIGURATION
# =============================================================================

# Cross products within this distance of zero count as collinear
COLLINEAR_EPSILON = 0.01

# Corners whose effective radius falls below this are drawn sharp
MIN_CORNER_RADIUS = 0.5

# =============================================================================

SegmentPredicate = Callable[[Point, Point], bool]


def simplify_path(points: Sequence[Point]) -> List[Point]:
    """
    Remove collinear intermediate points.

    Kept points form a stack. Before each point is pushed, the top of the
    stack is popped while it is collinear with the point below it and the
    incoming point, i.e. while the cross product of (top - below) and
    (incoming - top) is within COLLINEAR_EPSILON of zero. Zero-length
    segments and straight back-tracks are collinear too, so dropping a
    spike re-checks the point it left behind. The first and last points are
    always kept and the result is a fixed point of the function.

    Args:
        points: Polyline vertices.

    Returns:
        A new list of vertices.
    """
    if len(points) <= 2:
        return list(points)

    simplified = [points[0]]

    for curr in points[1:]:
        while len(simplified) >= 2 and _collinear(simplified[-2], simplified[-1], curr):
            simplified.pop()
        simplified.append(curr)

    return simplified


def _collinear(prev: Point, curr: Point, nxt: Point) -> bool:
    dx1 = curr[0] - prev[0]
    dy1 = curr[1] - prev[1]
    dx2 = nxt[0] - curr[0]
    dy2 = nxt[1] - curr[1]
    return abs(dx1 * dy2 - dy1 * dx2) <= COLLINEAR_EPSILON


def _direction(a: Point, b: Point) -> Point:
    """Sign vector of the segment a -> b."""
    return (_sign(b[0] - a[0]), _sign(b[1] - a[1]))


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def _is_monotone(values: Sequence[float]) -> bool:
    rising = all(b >= a for a, b in zip(values, values[1:]))
    falling = all(b <= a for a, b in zip(values, values[1:]))
    return rising or falling


def _reverses(leg: Point, neighbour: Point) -> bool:
    """True if ``leg`` points straight back along ``neighbour``."""
    return leg[0] * neighbour[0] + leg[1] * neighbour[1] < 0


def _corner_for_run(
    points: Sequence[Point],
    i: int,
    j: int,
    is_clear: SegmentPredicate,
) -> Optional[Point]:
    """
    Pick a single corner that can replace ``points[i+1:j]``.

    The corner that continues the incoming direction is tried first so the
    bend at ``points[i]`` disappears after re-simplification.
    """
    a = points[i]
    b = points[j]
    incoming = _direction(points[i - 1], a)
    outgoing = _direction(b, points[j + 1])

    horizontal_first = (b[0], a[1])
    vertical_first = (a[0], b[1])
    if incoming[1] != 0 and incoming[0] == 0:
        candidates = [vertical_first, horizontal_first]
    else:
        candidates = [horizontal_first, vertical_first]

    for corner in candidates:
        if _reverses(_direction(a, corner), incoming):
            continue
        if _reverses(_direction(corner, b), outgoing):
            continue
        if not (is_clear(a, corner) and is_clear(corner, b)):
            continue
        return corner

    return None


def reduce_orthogonal_bends(
    points: Sequence[Point],
    is_clear: Optional[SegmentPredicate] = None,
) -> List[Point]:
    """
    Collapse staircase runs of an orthogonal polyline.

    Grid search produces paths that alternate between short horizontal and
    vertical steps. Any run of at least three segments that is monotone in
    both x and y can be replaced by a single L-shaped corner without
    changing its length. Runs are extended greedily as far as possible.
    The first and last segments (the anchor stubs) are never touched.

    Args:
        points: Orthogonal polyline, ideally already simplified.
        is_clear: Optional predicate that rejects a candidate segment
            (for example one crossing an obstacle).

    Returns:
        A simplified polyline with the same start and end.
    """
    result = simplify_path(points)
    if len(result) < 6:
        return result

    check = is_clear or (lambda a, b: True)

    i = 1
    while i < len(result) - 4:
        replaced = False
        for j in range(len(result) - 2, i + 2, -1):
            run = result[i : j + 1]
            if not (_is_monotone([p[0] for p in run]) and _is_monotone([p[1] for p in run])):
                continue
            corner = _corner_for_run(result, i, j, check)
            if corner is None:
                continue
            result = simplify_path(result[: i + 1] + [corner] + result[j:])
            replaced = True
            break
        if not replaced:
            i += 1

    return result


def _fmt(value: float) -> str:
    """Format a coordinate with at most two decimals."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    if text == "-0":
        return "0"
    return text


def waypoints_to_svg_path(points: Sequence[Point], corner_radius: float) -> str:
    """
    Generate an SVG path ``d`` attribute with rounded corners.

    Two points produce a straight segment. Each interior point of a longer
    path becomes a quadratic bezier corner whose radius is clamped to half
    of each adjacent segment; corners that would be smaller than
    MIN_CORNER_RADIUS are drawn sharp.

    Args:
        points: Polyline vertices in canvas coordinates.
        corner_radius: Preferred corner radius in pixels.

    Returns:
        The path string, or "" for fewer than two points.
    """
    if len(points) < 2:
        return ""

    first = points[0]
    parts = [f"M {_fmt(first[0])} {_fmt(first[1])}"]

    for i in range(1, len(points) - 1):
        prev = points[i - 1]
        curr = points[i]
        nxt = points[i + 1]

        dx1 = curr[0] - prev[0]
        dy1 = curr[1] - prev[1]
        dist1 = math.hypot(dx1, dy1)
        dx2 = nxt[0] - curr[0]
        dy2 = nxt[1] - curr[1]
        dist2 = math.hypot(dx2, dy2)

        radius = min(dist1 / 2, dist2 / 2, corner_radius)
        if radius < MIN_CORNER_RADIUS:
            parts.append(f"L {_fmt(curr[0])} {_fmt(curr[1])}")
            continue

        before_x = curr[0] - dx1 / dist1 * radius
        before_y = curr[1] - dy1 / dist1 * radius
        after_x = curr[0] + dx2 / dist2 * radius
        after_y = curr[1] + dy2 / dist2 * radius

        parts.append(f"L {_fmt(before_x)} {_fmt(before_y)}")
        parts.append(
            f"Q {_fmt(curr[0])} {_fmt(curr[1])}, {_fmt(after_x)} {_fmt(after_y)}"
        )

    last = points[-1]
    parts.append(f"L {_fmt(last[0])} {_fmt(last[1])}")
    return " ".join(parts)
