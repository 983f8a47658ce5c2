"""
Data models for the OKR canvas engine.

This module contains the dataclasses that describe a Key Result canvas:
cards, resizable nested groups, relations between anchors and the virtual
tickets that placeholder cards point at. It also holds the canvas layout
constants shared by the placement, coordinate and drag modules.

Positions follow one rule throughout the package: an element that belongs
to a group stores (x, y) relative to the content origin of its *immediate*
parent group (just below the group header). Elements without a parent store
canvas-absolute coordinates.

Classes:
    Rect: Axis-aligned box in canvas-absolute pixels.
    Anchor: One of the four attachment points on a rectangle.
    EndpointType: Whether a relation endpoint is a card or a group.
    Endpoint: One side of a relation.
    Card: A Jira issue or virtual ticket placed on the canvas.
    Group: A resizable container of cards and subgroups.
    Relation: A directed arrow between two endpoints.
    VirtualTicket: A planned ticket that does not exist in Jira yet.
    IssueInfo: Read-only issue data used for labels and colours.
    CanvasDocument: The full document snapshot.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

Point = Tuple[float, float]

# =============================================================================
# CANVAS CONFIGURATION
# =============================================================================

# Card size (cards are not resizable)
CARD_W = 200
CARD_H = 90

# Height of the title band at the top of every group; member positions are
# measured from just below it
GROUP_HEADER_H = 36

# Padding between a container edge and the first placement cell
AREA_PAD = 16

# Gap between placement cells
GAP = 10

# Pointer travel (in canvas units) before a press becomes a drag
DRAG_THRESHOLD = 3

MIN_ZOOM = 0.1
MAX_ZOOM = 3.0

# Maximum nesting depth; top-level groups have depth 1
MAX_GROUP_DEPTH = 3

DEFAULT_GROUP_W = 320
DEFAULT_GROUP_H = 200
DEFAULT_SUBGROUP_W = 280
DEFAULT_SUBGROUP_H = 160

# Width used when placing new top-level items on the canvas
DEFAULT_CONTAINER_W = 800

# Number of placement rows scanned before stacking below everything
MAX_PLACEMENT_ROWS = 50

# =============================================================================


class Anchor(Enum):
    """A fixed attachment point on a rectangle's perimeter."""

    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"

    @property
    def is_horizontal(self) -> bool:
        """True for anchors whose outward normal points along the x axis."""
        return self in (Anchor.LEFT, Anchor.RIGHT)

    @property
    def normal(self) -> Tuple[int, int]:
        """Unit vector pointing away from the rectangle."""
        return _NORMALS[self]

    @property
    def opposite(self) -> "Anchor":
        return _OPPOSITES[self]


_NORMALS = {
    Anchor.TOP: (0, -1),
    Anchor.BOTTOM: (0, 1),
    Anchor.LEFT: (-1, 0),
    Anchor.RIGHT: (1, 0),
}

_OPPOSITES = {
    Anchor.TOP: Anchor.BOTTOM,
    Anchor.BOTTOM: Anchor.TOP,
    Anchor.LEFT: Anchor.RIGHT,
    Anchor.RIGHT: Anchor.LEFT,
}

# Enumeration order used for deterministic tie-breaking
ALL_ANCHORS: List[Anchor] = [Anchor.TOP, Anchor.BOTTOM, Anchor.LEFT, Anchor.RIGHT]


class EndpointType(Enum):
    """Kind of element a relation endpoint refers to."""

    LINK = "link"
    GROUP = "group"


class CardKind(Enum):
    """Whether a card shows a Jira issue or a virtual ticket."""

    JIRA = "jira"
    VIRTUAL = "virtual"


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in canvas-absolute pixels."""

    x: float
    y: float
    w: float
    h: float

    @property
    def x2(self) -> float:
        return self.x + self.w

    @property
    def y2(self) -> float:
        return self.y + self.h

    @property
    def center_x(self) -> float:
        return self.x + self.w / 2

    @property
    def center_y(self) -> float:
        return self.y + self.h / 2

    @property
    def center(self) -> Point:
        return (self.center_x, self.center_y)

    def expanded(self, amount: float) -> "Rect":
        """Return a copy grown by ``amount`` on every side."""
        return Rect(self.x - amount, self.y - amount, self.w + 2 * amount, self.h + 2 * amount)

    def contains_point(self, x: float, y: float) -> bool:
        """Closed containment test (points on the border are inside)."""
        return self.x <= x <= self.x2 and self.y <= y <= self.y2

    def contains_point_strict(self, x: float, y: float) -> bool:
        """Open containment test (points on the border are outside)."""
        return self.x < x < self.x2 and self.y < y < self.y2


@dataclass(frozen=True)
class Endpoint:
    """
    One side of a relation.

    Attributes:
        type: Whether ``id`` names a card ("link") or a group.
        id: Id of the card or group.
        anchor: Which side of the element the arrow attaches to.
    """

    type: EndpointType
    id: str
    anchor: Anchor

    def same_element(self, other: "Endpoint") -> bool:
        """True if both endpoints refer to the same element, ignoring anchors."""
        return self.type == other.type and self.id == other.id


@dataclass(frozen=True)
class Card:
    """
    A card on a Key Result canvas.

    Attributes:
        id: Card (link) id.
        key_result_id: Key Result whose canvas owns the card.
        kind: Jira issue or virtual ticket.
        order: Display order among the KR's cards.
        x: X position (group-relative if group_id is set, else canvas-absolute).
        y: Y position (same convention as x).
        group_id: Owning group, if any.
        issue_key: Jira issue key for jira cards.
        virtual_ticket_id: Virtual ticket id for virtual cards.
    """

    id: str
    key_result_id: str
    kind: CardKind = CardKind.JIRA
    order: int = 0
    x: float = 0
    y: float = 0
    group_id: Optional[str] = None
    issue_key: Optional[str] = None
    virtual_ticket_id: Optional[str] = None

    @property
    def w(self) -> int:
        return CARD_W

    @property
    def h(self) -> int:
        return CARD_H


@dataclass(frozen=True)
class Group:
    """
    A resizable rectangular container.

    Attributes:
        id: Group id.
        key_result_id: Key Result whose canvas owns the group.
        title: Header title.
        order: Display order among siblings.
        x: X position relative to the parent's content origin (or canvas).
        y: Y position relative to the parent's content origin (or canvas).
        w: Width in pixels.
        h: Height in pixels, header included.
        parent_group_id: Immediate parent group, if nested.
    """

    id: str
    key_result_id: str
    title: str = ""
    order: int = 0
    x: float = 0
    y: float = 0
    w: float = DEFAULT_GROUP_W
    h: float = DEFAULT_GROUP_H
    parent_group_id: Optional[str] = None


@dataclass(frozen=True)
class Relation:
    """
    A directed arrow between two endpoints.

    When ``waypoints`` is set the arrow bends through those user-authored
    points instead of being routed automatically. An empty waypoint list is
    never stored; it is normalised to None.
    """

    id: str
    source: Endpoint
    target: Endpoint
    waypoints: Optional[Tuple[Point, ...]] = None
    label: Optional[str] = None

    @property
    def has_manual_waypoints(self) -> bool:
        return bool(self.waypoints)

    def touches(self, endpoint_type: EndpointType, element_id: str) -> bool:
        """True if either endpoint refers to the given element."""
        return (self.source.type == endpoint_type and self.source.id == element_id) or (
            self.target.type == endpoint_type and self.target.id == element_id
        )


@dataclass(frozen=True)
class VirtualTicket:
    """A planned ticket shown on the canvas before it exists in Jira."""

    id: str
    title: str
    issue_type: str = "task"
    assignee: Optional[str] = None
    description: Optional[str] = None
    created_at: str = ""


@dataclass(frozen=True)
class IssueInfo:
    """
    Read-only issue data supplied by the sync collaborator.

    Attributes:
        key: Jira issue key.
        summary: Issue title.
        status: Display name of the workflow status.
        status_category: "new", "indeterminate" or "done".
        issue_type: Issue type name.
        assignee: Display name of the assignee, if any.
    """

    key: str
    summary: str = ""
    status: str = ""
    status_category: str = "new"
    issue_type: str = ""
    assignee: Optional[str] = None


@dataclass(frozen=True)
class CanvasDocument:
    """
    Full document snapshot.

    Objectives and key results are carried as opaque dictionaries: the
    engine never interprets them, it only hands them back unchanged to the
    persistence collaborator.
    """

    cards: Tuple[Card, ...] = ()
    groups: Tuple[Group, ...] = ()
    relations: Tuple[Relation, ...] = ()
    virtual_tickets: Tuple[VirtualTicket, ...] = ()
    objectives: Tuple[Dict[str, Any], ...] = ()
    key_results: Tuple[Dict[str, Any], ...] = ()
    updated_at: str = ""
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def card(self, card_id: str) -> Optional[Card]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def group(self, group_id: str) -> Optional[Group]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def relation(self, relation_id: str) -> Optional[Relation]:
        for relation in self.relations:
            if relation.id == relation_id:
                return relation
        return None

    def cards_for_kr(self, kr_id: str) -> List[Card]:
        return [c for c in self.cards if c.key_result_id == kr_id]

    def groups_for_kr(self, kr_id: str) -> List[Group]:
        return [g for g in self.groups if g.key_result_id == kr_id]
