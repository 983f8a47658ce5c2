"""
Drag-and-drop state machine.

A drag session starts on pointer-down over a card or group, becomes a real
drag once the pointer has travelled DRAG_THRESHOLD canvas units along
either axis, and ends on pointer-up. Nothing is written to the document
until release; a press that never crossed the threshold is a click and
changes nothing.

On release the dropped item is hit-tested against the group content areas
to find its new container:

- card: the deepest group under the card's centre becomes its owner
- group: the deepest eligible group under its centre becomes its parent,
  where eligible means the moved subtree still fits within
  MAX_GROUP_DEPTH and the target is not the group itself or one of its
  descendants
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .coordinates import (
    get_descendant_group_ids,
    get_subtree_height,
    to_absolute_coords,
    to_local_coords,
)
from .errors import DragSessionError, UnknownElementError
from .models import CARD_H, CARD_W, DRAG_THRESHOLD, MAX_GROUP_DEPTH, CanvasDocument, Point
from .placement import hit_test_group


class DragState(Enum):
    """Phase of the pointer interaction."""

    IDLE = "idle"
    ARMED = "armed"
    DRAGGING = "dragging"


class DragItemType(Enum):
    CARD = "card"
    GROUP = "group"


@dataclass
class DragSession:
    """
    Transient state between pointer-down and pointer-up.

    Attributes:
        item_type: Whether a card or a group is being moved.
        item_id: Id of the moved item.
        origin_group_id: Container the item was in when the drag began.
        start_pointer: Screen position of the pointer-down.
        start_position: Stored (local) position of the item at pointer-down.
        current_position: Live local position while dragging.
        state: ARMED until the threshold is crossed, then DRAGGING.
    """

    item_type: DragItemType
    item_id: str
    origin_group_id: Optional[str]
    start_pointer: Point
    start_position: Point
    current_position: Point
    state: DragState = DragState.ARMED


@dataclass(frozen=True)
class DropResult:
    """
    Where a dropped item ends up.

    ``x``/``y`` are local to ``group_id`` (canvas-absolute when it is None).
    """

    item_type: DragItemType
    item_id: str
    x: float
    y: float
    group_id: Optional[str]
    reparented: bool = False


def clamp_drag_position(x: float, y: float, parent_group_id: Optional[str]) -> Point:
    """Ungrouped items may not be dragged to negative canvas coordinates."""
    if parent_group_id:
        return (x, y)
    return (max(0.0, x), max(0.0, y))


def resolve_card_drop(
    document: CanvasDocument, card_id: str, local_x: float, local_y: float
) -> DropResult:
    """
    Find the owner of a card dropped at a position local to its old group.

    Args:
        document: Current document.
        card_id: Dropped card.
        local_x: Drop x in the card's current container space.
        local_y: Drop y in the card's current container space.

    Returns:
        The resolved position and owner.
    """
    card = document.card(card_id)
    if card is None:
        raise UnknownElementError("card", card_id)

    groups = document.groups_for_kr(card.key_result_id)
    abs_x, abs_y = to_absolute_coords(local_x, local_y, card.group_id, document.groups)
    target = hit_test_group(abs_x + CARD_W / 2, abs_y + CARD_H / 2, groups)

    if target == card.group_id and target is not None:
        return DropResult(DragItemType.CARD, card_id, local_x, local_y, target)

    if target is not None:
        x, y = to_local_coords(abs_x, abs_y, target, document.groups)
        return DropResult(
            DragItemType.CARD, card_id, max(0.0, x), max(0.0, y), target, reparented=True
        )

    return DropResult(
        DragItemType.CARD, card_id, abs_x, abs_y, None, reparented=card.group_id is not None
    )


def resolve_group_drop(
    document: CanvasDocument,
    group_id: str,
    local_x: float,
    local_y: float,
    max_group_depth: int = MAX_GROUP_DEPTH,
) -> DropResult:
    """
    Find the parent of a group dropped at a position local to its old parent.

    Candidate parents whose depth would push the moved subtree past
    ``max_group_depth`` are skipped, so such a drop lands in a shallower
    containing group or on the canvas root instead.
    """
    group = document.group(group_id)
    if group is None:
        raise UnknownElementError("group", group_id)

    groups = document.groups_for_kr(group.key_result_id)
    abs_x, abs_y = to_absolute_coords(local_x, local_y, group.parent_group_id, document.groups)
    excluded = {group_id, *get_descendant_group_ids(group_id, document.groups)}
    height = get_subtree_height(group_id, document.groups)

    target = hit_test_group(
        abs_x + group.w / 2,
        abs_y + group.h / 2,
        groups,
        exclude=excluded,
        max_container_depth=max_group_depth - height,
    )

    if target == group.parent_group_id:
        if target is None:
            local_x, local_y = clamp_drag_position(local_x, local_y, None)
        return DropResult(DragItemType.GROUP, group_id, local_x, local_y, target)

    if target is not None:
        x, y = to_local_coords(abs_x, abs_y, target, document.groups)
        return DropResult(
            DragItemType.GROUP, group_id, max(0.0, x), max(0.0, y), target, reparented=True
        )

    x, y = clamp_drag_position(abs_x, abs_y, None)
    return DropResult(DragItemType.GROUP, group_id, x, y, None, reparented=True)


def apply_drop(document: CanvasDocument, drop: DropResult) -> CanvasDocument:
    """Commit a resolved drop to the document."""
    if drop.item_type == DragItemType.CARD:
        cards = tuple(
            replace(c, x=drop.x, y=drop.y, group_id=drop.group_id) if c.id == drop.item_id else c
            for c in document.cards
        )
        return replace(document, cards=cards)

    groups = tuple(
        replace(g, x=drop.x, y=drop.y, parent_group_id=drop.group_id)
        if g.id == drop.item_id
        else g
        for g in document.groups
    )
    return replace(document, groups=groups)


class DragEngine:
    """
    Single-session pointer state machine.

    Usage:
        >>> drag = DragEngine()
        >>> drag.pointer_down(DragItemType.CARD, "c1", 100, 100, document)
        >>> drag.pointer_move(180, 140, zoom=1.0)
        >>> drop = drag.pointer_up(document)
    """

    def __init__(
        self,
        drag_threshold: float = DRAG_THRESHOLD,
        max_group_depth: int = MAX_GROUP_DEPTH,
    ):
        """
        Initialize the drag engine.

        Args:
            drag_threshold: Canvas units the pointer must travel on one axis
                before a press becomes a drag
            max_group_depth: Nesting limit enforced when groups are dropped
        """
        self.drag_threshold = drag_threshold
        self.max_group_depth = max_group_depth
        self.session: Optional[DragSession] = None

    @property
    def state(self) -> DragState:
        if self.session is None:
            return DragState.IDLE
        return self.session.state

    @property
    def is_active(self) -> bool:
        return self.session is not None

    def pointer_down(
        self,
        item_type: DragItemType,
        item_id: str,
        pointer_x: float,
        pointer_y: float,
        document: CanvasDocument,
        connect_mode: bool = False,
    ) -> Optional[DragSession]:
        """
        Arm a drag session for an item.

        Returns None without arming when connect mode is on, since anchor
        clicks then belong to relation authoring.

        Raises:
            DragSessionError: If a session is already active.
            UnknownElementError: If the item does not exist.
        """
        if self.session is not None:
            raise DragSessionError(
                f"Drag session for {self.session.item_id} is still active"
            )
        if connect_mode:
            return None

        if item_type == DragItemType.CARD:
            card = document.card(item_id)
            if card is None:
                raise UnknownElementError("card", item_id)
            origin = card.group_id
            position = (card.x, card.y)
        else:
            group = document.group(item_id)
            if group is None:
                raise UnknownElementError("group", item_id)
            origin = group.parent_group_id
            position = (group.x, group.y)

        self.session = DragSession(
            item_type=item_type,
            item_id=item_id,
            origin_group_id=origin,
            start_pointer=(pointer_x, pointer_y),
            start_position=position,
            current_position=position,
        )
        return self.session

    def pointer_move(self, pointer_x: float, pointer_y: float, zoom: float = 1.0) -> Point:
        """
        Track the pointer and return the live local position of the item.

        The screen delta is divided by ``zoom`` to get canvas units.
        """
        session = self._require_session()
        dx = (pointer_x - session.start_pointer[0]) / zoom
        dy = (pointer_y - session.start_pointer[1]) / zoom

        if session.state == DragState.ARMED:
            if abs(dx) < self.drag_threshold and abs(dy) < self.drag_threshold:
                return session.current_position
            session.state = DragState.DRAGGING

        session.current_position = clamp_drag_position(
            session.start_position[0] + dx,
            session.start_position[1] + dy,
            session.origin_group_id,
        )
        return session.current_position

    def pointer_up(self, document: CanvasDocument) -> Optional[DropResult]:
        """
        End the session.

        Returns:
            The resolved drop, or None if the press was a click.
        """
        session = self._require_session()
        self.session = None

        if session.state != DragState.DRAGGING:
            return None

        x, y = session.current_position
        if session.item_type == DragItemType.CARD:
            return resolve_card_drop(document, session.item_id, x, y)
        return resolve_group_drop(document, session.item_id, x, y, self.max_group_depth)

    def _require_session(self) -> DragSession:
        if self.session is None:
            raise DragSessionError("No drag session is active")
        return self.session
