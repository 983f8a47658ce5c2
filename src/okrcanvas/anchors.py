"""
Anchor geometry.

Pure functions that locate the four attachment points of a rectangle and
pick sensible anchors when the user has not chosen them explicitly.
"""

import math
from typing import Tuple, Union

from .models import ALL_ANCHORS, Anchor, Point, Rect

AnchorLike = Union[Anchor, str]

# Percent offsets of each anchor inside the element's own box (left, top)
_ANCHOR_OFFSETS = {
    Anchor.TOP: (50.0, 0.0),
    Anchor.BOTTOM: (50.0, 100.0),
    Anchor.LEFT: (0.0, 50.0),
    Anchor.RIGHT: (100.0, 50.0),
}


def as_anchor(anchor: AnchorLike) -> Anchor:
    """Accept either an Anchor or its string value."""
    if isinstance(anchor, Anchor):
        return anchor
    return Anchor(anchor)


def get_anchor_point(rect: Rect, anchor: AnchorLike) -> Point:
    """
    Calculate the canvas position of an anchor on a rectangle.

    Args:
        rect: Element rectangle in canvas coordinates.
        anchor: Which side to attach to.

    Returns:
        (x, y) of the midpoint of that side.
    """
    anchor = as_anchor(anchor)
    if anchor == Anchor.TOP:
        return (rect.center_x, rect.y)
    elif anchor == Anchor.BOTTOM:
        return (rect.center_x, rect.y2)
    elif anchor == Anchor.LEFT:
        return (rect.x, rect.center_y)
    else:  # right
        return (rect.x2, rect.center_y)


def get_anchor_offset(anchor: AnchorLike) -> Tuple[float, float]:
    """
    Percentage placement of the anchor affordance within the element box.

    Returns:
        (left_percent, top_percent), e.g. (50.0, 0.0) for the top anchor.
    """
    return _ANCHOR_OFFSETS[as_anchor(anchor)]


def get_stub_point(point: Point, anchor: AnchorLike, length: float) -> Point:
    """Extend an anchor point ``length`` pixels along the anchor's outward normal."""
    nx, ny = as_anchor(anchor).normal
    return (point[0] + nx * length, point[1] + ny * length)


def find_nearest_anchor(rect: Rect, point: Point) -> Anchor:
    """
    Find the anchor on ``rect`` closest to ``point``.

    Ties are broken by enumeration order: top, bottom, left, right.
    """
    nearest = Anchor.TOP
    min_dist = math.inf

    for anchor in ALL_ANCHORS:
        ax, ay = get_anchor_point(rect, anchor)
        dist = math.hypot(ax - point[0], ay - point[1])
        if dist < min_dist:
            min_dist = dist
            nearest = anchor

    return nearest


def suggest_anchor_pair(from_rect: Rect, to_rect: Rect) -> Tuple[Anchor, Anchor]:
    """
    Pick a default (from_anchor, to_anchor) pair for two rectangles.

    Horizontal separation wins when |dx| >= |dy|.
    """
    dx = to_rect.center_x - from_rect.center_x
    dy = to_rect.center_y - from_rect.center_y

    if abs(dx) >= abs(dy):
        if dx >= 0:
            return (Anchor.RIGHT, Anchor.LEFT)
        return (Anchor.LEFT, Anchor.RIGHT)
    if dy >= 0:
        return (Anchor.BOTTOM, Anchor.TOP)
    return (Anchor.TOP, Anchor.BOTTOM)
