"""
Coordinate space helpers for nested groups.

Every group stores its position relative to the content origin of its
immediate parent (the point just below the parent's header band). This
module converts between that local space and canvas-absolute space across
any nesting depth, and answers structural questions about the group
forest (depth, ancestors, descendants).

All functions accept groups either as an iterable of Group objects or as a
mapping of id -> Group; lookups are done through a dictionary built once
per call.

Walking the parent chain always guards against dangling or cyclic
``parent_group_id`` values so a corrupted document cannot hang the UI.
"""

from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .models import GROUP_HEADER_H, MAX_GROUP_DEPTH, Card, Group, Point, Rect

GroupsLike = Union[Mapping[str, Group], Iterable[Group]]


def index_groups(groups: GroupsLike) -> Dict[str, Group]:
    """Return a dict of id -> Group for either supported input shape."""
    if isinstance(groups, Mapping):
        return dict(groups)
    return {g.id: g for g in groups}


def to_absolute_coords(
    local_x: float,
    local_y: float,
    parent_group_id: Optional[str],
    groups: GroupsLike,
) -> Point:
    """
    Convert group-local coordinates to canvas-absolute coordinates.

    Walks up the parent chain, adding each parent's position plus its
    header height, and stops at the first ancestor without a parent.

    Args:
        local_x: X relative to the parent's content origin.
        local_y: Y relative to the parent's content origin.
        parent_group_id: Immediate parent group, or None for canvas root.
        groups: All groups of the canvas.

    Returns:
        (x, y) in canvas-absolute pixels.
    """
    by_id = index_groups(groups)
    abs_x = local_x
    abs_y = local_y
    current_id = parent_group_id
    visited = set()

    while current_id and current_id not in visited:
        parent = by_id.get(current_id)
        if parent is None:
            break
        visited.add(current_id)
        abs_x += parent.x
        abs_y += parent.y + GROUP_HEADER_H
        current_id = parent.parent_group_id

    return (abs_x, abs_y)


def to_local_coords(
    abs_x: float,
    abs_y: float,
    target_group_id: Optional[str],
    groups: GroupsLike,
) -> Point:
    """Convert canvas-absolute coordinates into ``target_group_id``'s local space."""
    origin_x, origin_y = to_absolute_coords(0, 0, target_group_id, groups)
    return (abs_x - origin_x, abs_y - origin_y)


def get_group_depth(
    group_id: str,
    groups: GroupsLike,
    max_depth: int = MAX_GROUP_DEPTH,
) -> int:
    """
    Depth of a group in the nesting forest (1 = top-level).

    Stops counting once the depth exceeds ``max_depth`` so a cyclic parent
    chain terminates.
    """
    by_id = index_groups(groups)
    depth = 1
    current = by_id.get(group_id)

    while current is not None and current.parent_group_id:
        depth += 1
        current = by_id.get(current.parent_group_id)
        if depth > max_depth:
            break

    return depth


def get_ancestor_group_ids(group_id: Optional[str], groups: GroupsLike) -> List[str]:
    """Ids of ``group_id`` and every group above it, innermost first."""
    by_id = index_groups(groups)
    result: List[str] = []
    current_id = group_id

    while current_id and current_id not in result:
        group = by_id.get(current_id)
        if group is None:
            break
        result.append(current_id)
        current_id = group.parent_group_id

    return result


def get_descendant_group_ids(group_id: str, groups: GroupsLike) -> List[str]:
    """All descendant group ids (children, grandchildren, ...) in BFS order."""
    children = _children_by_parent(index_groups(groups).values())
    result: List[str] = []
    seen = {group_id}
    queue = deque([group_id])

    while queue:
        current = queue.popleft()
        for child in children.get(current, []):
            if child.id in seen:
                continue
            seen.add(child.id)
            result.append(child.id)
            queue.append(child.id)

    return result


def get_subtree_height(group_id: str, groups: GroupsLike) -> int:
    """Number of nesting levels in the subtree rooted at ``group_id`` (a leaf is 1)."""
    children = _children_by_parent(index_groups(groups).values())

    def height(gid: str, seen: frozenset) -> int:
        kids = [c for c in children.get(gid, []) if c.id not in seen]
        if not kids:
            return 1
        return 1 + max(height(c.id, seen | {c.id}) for c in kids)

    return height(group_id, frozenset([group_id]))


def absolute_group_rect(group: Group, groups: GroupsLike) -> Rect:
    """Canvas-absolute rectangle of a group, header included."""
    x, y = to_absolute_coords(group.x, group.y, group.parent_group_id, groups)
    return Rect(x, y, group.w, group.h)


def group_content_rect(group: Group, groups: GroupsLike) -> Rect:
    """Canvas-absolute rectangle of a group's content area (header band excluded)."""
    outer = absolute_group_rect(group, groups)
    return Rect(outer.x, outer.y + GROUP_HEADER_H, outer.w, max(0, outer.h - GROUP_HEADER_H))


def absolute_card_rect(card: Card, groups: GroupsLike) -> Rect:
    """Canvas-absolute rectangle of a card."""
    x, y = to_absolute_coords(card.x, card.y, card.group_id, groups)
    return Rect(x, y, card.w, card.h)


@dataclass
class GroupNode:
    """
    A node of the group containment tree.

    The tree is rebuilt from the flat group list whenever it is needed;
    it is a view, never the stored form.

    Attributes:
        group: The group itself.
        depth: Nesting depth (1 = top-level).
        rect: Canvas-absolute rectangle.
        children: Child nodes in ``order`` order.
    """

    group: Group
    depth: int
    rect: Rect
    children: List["GroupNode"] = field(default_factory=list)

    def walk(self) -> Iterable["GroupNode"]:
        """Yield this node and all descendants, parents before children."""
        yield self
        for child in self.children:
            yield from child.walk()


def build_group_tree(groups: GroupsLike) -> List[GroupNode]:
    """
    Build the containment forest from a flat group list.

    Groups whose parent is missing are treated as roots. Groups caught in a
    parent cycle are unreachable from any root and are left out.

    Returns:
        Root nodes sorted by ``order``.
    """
    by_id = index_groups(groups)
    children = _children_by_parent(by_id.values())

    def make(group: Group, depth: int, origin: Point) -> GroupNode:
        x = origin[0] + group.x
        y = origin[1] + group.y
        node = GroupNode(group=group, depth=depth, rect=Rect(x, y, group.w, group.h))
        content_origin = (x, y + GROUP_HEADER_H)
        for child in sorted(children.get(group.id, []), key=lambda g: g.order):
            node.children.append(make(child, depth + 1, content_origin))
        return node

    roots = [
        g for g in by_id.values() if not g.parent_group_id or g.parent_group_id not in by_id
    ]
    return [make(g, 1, (0, 0)) for g in sorted(roots, key=lambda g: g.order)]


def _children_by_parent(groups: Iterable[Group]) -> Dict[str, List[Group]]:
    children: Dict[str, List[Group]] = defaultdict(list)
    for group in groups:
        if group.parent_group_id:
            children[group.parent_group_id].append(group)
    return children
