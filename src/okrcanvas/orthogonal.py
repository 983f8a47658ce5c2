"""
Deterministic orthogonal fallback routes.

When there is nothing to avoid, or the grid search cannot help, an arrow
is drawn with one of four closed-form shapes chosen from the anchor
orientations and the relative position of the two stubs:

- one-bend corner for perpendicular anchors
- S-shape through the midpoint gap for converging anchors
- U-shape around both rectangles for anchors facing the same way
- Z-shape through the best free gap for diverging anchors

Only the horizontal cases are implemented directly. Vertical anchor pairs
are transposed (x and y swapped) into the horizontal case and the result
is transposed back.
"""

from typing import List, Sequence

from .anchors import AnchorLike, as_anchor, get_stub_point
from .models import Anchor, Point, Rect
from .path_simplify import simplify_path

_TRANSPOSED_ANCHORS = {
    Anchor.TOP: Anchor.LEFT,
    Anchor.BOTTOM: Anchor.RIGHT,
    Anchor.LEFT: Anchor.TOP,
    Anchor.RIGHT: Anchor.BOTTOM,
}


def _swap(point: Point) -> Point:
    return (point[1], point[0])


def _swap_rect(rect: Rect) -> Rect:
    return Rect(rect.y, rect.x, rect.h, rect.w)


def orthogonal_route(
    start: Point,
    start_anchor: AnchorLike,
    end: Point,
    end_anchor: AnchorLike,
    from_rect: Rect,
    to_rect: Rect,
    stub_length: float,
) -> List[Point]:
    """
    Build the fallback polyline between two anchor points.

    Args:
        start: Exact source anchor point.
        start_anchor: Side of ``from_rect`` the arrow leaves from.
        end: Exact target anchor point.
        end_anchor: Side of ``to_rect`` the arrow arrives at.
        from_rect: Source element rectangle.
        to_rect: Target element rectangle.
        stub_length: Straight lead-out length in front of each anchor.

    Returns:
        Simplified orthogonal polyline from ``start`` to ``end``.
    """
    start_anchor = as_anchor(start_anchor)
    end_anchor = as_anchor(end_anchor)

    if start_anchor.is_horizontal != end_anchor.is_horizontal:
        points = _perpendicular(start, start_anchor, end, end_anchor, stub_length)
    elif start_anchor.is_horizontal:
        points = _horizontal(
            start, start_anchor, end, end_anchor, from_rect, to_rect, stub_length
        )
    else:
        transposed = _horizontal(
            _swap(start),
            _TRANSPOSED_ANCHORS[start_anchor],
            _swap(end),
            _TRANSPOSED_ANCHORS[end_anchor],
            _swap_rect(from_rect),
            _swap_rect(to_rect),
            stub_length,
        )
        points = [_swap(p) for p in transposed]

    return simplify_path(points)


def _perpendicular(
    start: Point,
    start_anchor: Anchor,
    end: Point,
    end_anchor: Anchor,
    stub_length: float,
) -> List[Point]:
    s = get_stub_point(start, start_anchor, stub_length)
    e = get_stub_point(end, end_anchor, stub_length)

    # The corner sits on the start anchor's axis through the end stub
    if start_anchor.is_horizontal:
        corner = (e[0], s[1])
        alternate = (s[0], e[1])
    else:
        corner = (s[0], e[1])
        alternate = (e[0], s[1])

    sx, sy = start_anchor.normal
    ex, ey = end_anchor.normal
    leaves_forward = (corner[0] - s[0]) * sx + (corner[1] - s[1]) * sy >= 0
    arrives_inward = (e[0] - corner[0]) * ex + (e[1] - corner[1]) * ey <= 0

    if leaves_forward and arrives_inward:
        return [start, s, corner, e, end]
    return [start, s, alternate, e, end]


def _horizontal(
    start: Point,
    start_anchor: Anchor,
    end: Point,
    end_anchor: Anchor,
    from_rect: Rect,
    to_rect: Rect,
    stub_length: float,
) -> List[Point]:
    """Route between two left/right anchors."""
    ns = start_anchor.normal[0]
    ne = end_anchor.normal[0]

    if ns == ne:
        return _u_shape(start, end, ns, from_rect, to_rect, stub_length)

    if (end[0] - start[0]) * ns > 0:
        # Converging: bend in the middle of the gap between the facing edges
        mid_x = (start[0] + end[0]) / 2
        return [start, (mid_x, start[1]), (mid_x, end[1]), end]

    return _z_shape(start, start_anchor, end, end_anchor, from_rect, to_rect, stub_length)


def _u_shape(
    start: Point,
    end: Point,
    direction: int,
    from_rect: Rect,
    to_rect: Rect,
    stub_length: float,
) -> List[Point]:
    if direction > 0:
        loop_x = max(from_rect.x2, to_rect.x2) + stub_length
    else:
        loop_x = min(from_rect.x, to_rect.x) - stub_length
    return [start, (loop_x, start[1]), (loop_x, end[1]), end]


def _z_shape(
    start: Point,
    start_anchor: Anchor,
    end: Point,
    end_anchor: Anchor,
    from_rect: Rect,
    to_rect: Rect,
    stub_length: float,
) -> List[Point]:
    s = get_stub_point(start, start_anchor, stub_length)
    e = get_stub_point(end, end_anchor, stub_length)

    if from_rect.y2 <= to_rect.y:
        gap_y = (from_rect.y2 + to_rect.y) / 2
    elif to_rect.y2 <= from_rect.y:
        gap_y = (to_rect.y2 + from_rect.y) / 2
    else:
        above = min(from_rect.y, to_rect.y) - stub_length
        below = max(from_rect.y2, to_rect.y2) + stub_length
        if _detour(s, e, below) < _detour(s, e, above):
            gap_y = below
        else:
            gap_y = above

    return [start, s, (s[0], gap_y), (e[0], gap_y), e, end]


def _detour(s: Point, e: Point, y: float) -> float:
    return abs(s[1] - y) + abs(e[1] - y)


def count_bends(points: Sequence[Point]) -> int:
    """Number of direction changes in a simplified polyline."""
    return max(0, len(simplify_path(points)) - 2)
