"""
Spatial placement and group hit-testing.

Deterministic default positions for new cards and groups, plus the
deepest-match group lookup used when a dragged item is dropped.
"""

import math
from typing import Collection, Iterable, List, Optional, Sequence

from .coordinates import GroupsLike, get_group_depth, group_content_rect, index_groups
from .models import (
    AREA_PAD,
    DEFAULT_GROUP_H,
    DEFAULT_GROUP_W,
    GAP,
    MAX_PLACEMENT_ROWS,
    CanvasDocument,
    Card,
    Group,
    Point,
    Rect,
)


def rects_overlap(a: Rect, b: Rect) -> bool:
    """
    Half-open AABB overlap test.

    Rectangles that only touch along an edge do not overlap.
    """
    return a.x < b.x2 and a.x2 > b.x and a.y < b.y2 and a.y2 > b.y


def assign_default_position(
    occupied: Sequence[Rect],
    item_w: float,
    item_h: float,
    container_w: float,
) -> Point:
    """
    Find the first free grid cell for a new item.

    Cells are laid out row-major from (AREA_PAD, AREA_PAD) with a pitch of
    (item_w + GAP, item_h + GAP). When no free cell exists within
    MAX_PLACEMENT_ROWS rows, the item goes below the lowest occupied rect.

    Args:
        occupied: Rectangles already present in the container.
        item_w: Width of the new item.
        item_h: Height of the new item.
        container_w: Width available for the row layout.

    Returns:
        (x, y) of the chosen cell, in the container's coordinate space.
    """
    cols = max(1, math.floor((container_w - AREA_PAD * 2) / (item_w + GAP)))

    for row in range(MAX_PLACEMENT_ROWS):
        for col in range(cols):
            cx = AREA_PAD + col * (item_w + GAP)
            cy = AREA_PAD + row * (item_h + GAP)
            candidate = Rect(cx, cy, item_w, item_h)
            if not any(rects_overlap(candidate, o) for o in occupied):
                return (cx, cy)

    max_y = max((o.y2 for o in occupied), default=0)
    return (AREA_PAD, max_y + GAP)


def occupied_rects(
    document: CanvasDocument,
    kr_id: str,
    parent_group_id: Optional[str] = None,
) -> List[Rect]:
    """
    Local-space rectangles of every item that shares a container.

    For a parent group these are its member cards and direct subgroups; for
    the canvas root they are the KR's ungrouped cards and top-level groups.
    """
    if parent_group_id:
        cards: Iterable[Card] = [c for c in document.cards if c.group_id == parent_group_id]
        groups: Iterable[Group] = [
            g for g in document.groups if g.parent_group_id == parent_group_id
        ]
    else:
        cards = [c for c in document.cards_for_kr(kr_id) if not c.group_id]
        groups = [g for g in document.groups_for_kr(kr_id) if not g.parent_group_id]

    rects = [Rect(c.x, c.y, c.w, c.h) for c in cards]
    rects.extend(
        Rect(g.x, g.y, g.w or DEFAULT_GROUP_W, g.h or DEFAULT_GROUP_H) for g in groups
    )
    return rects


def hit_test_group(
    x: float,
    y: float,
    groups: GroupsLike,
    exclude: Collection[str] = (),
    max_container_depth: Optional[int] = None,
) -> Optional[str]:
    """
    Find the deepest group whose content area contains (x, y).

    The header band is not part of the content area. Among candidates of
    equal depth the one listed first wins.

    Args:
        x: Canvas-absolute x of the probe point.
        y: Canvas-absolute y of the probe point.
        groups: All groups of the canvas.
        exclude: Group ids that may not be returned.
        max_container_depth: If set, groups deeper than this are skipped.

    Returns:
        The id of the matching group, or None.
    """
    by_id = index_groups(groups)
    depths = {gid: get_group_depth(gid, by_id) for gid in by_id}
    candidates = sorted(
        (g for g in by_id.values() if g.id not in exclude),
        key=lambda g: -depths[g.id],
    )

    for group in candidates:
        if max_container_depth is not None and depths[group.id] > max_container_depth:
            continue
        if group_content_rect(group, by_id).contains_point(x, y):
            return group.id

    return None
