"""
Relation lifecycle and document cascade rules.

Every function here is pure: it takes a CanvasDocument and returns a new
one, leaving the input untouched. The CanvasEngine routes all document
updates through these functions so there is exactly one place where each
cascade rule lives.

Rules:
- At most one relation links two elements, regardless of direction.
- Deleting a card removes every relation touching it; a virtual ticket
  that no card references any more is removed with it.
- Deleting a group removes its whole subtree of groups, detaches (never
  deletes) the cards inside them and removes every relation touching any
  removed group.
"""

import uuid
from dataclasses import dataclass, replace
from typing import Callable, Collection, Iterable, List, Optional, Sequence, Tuple, Union

from .coordinates import get_descendant_group_ids, get_group_depth, to_absolute_coords
from .errors import CanvasError, UnknownElementError
from .models import (
    CARD_H,
    CARD_W,
    DEFAULT_CONTAINER_W,
    DEFAULT_GROUP_H,
    DEFAULT_GROUP_W,
    DEFAULT_SUBGROUP_H,
    DEFAULT_SUBGROUP_W,
    MAX_GROUP_DEPTH,
    Anchor,
    CanvasDocument,
    Card,
    CardKind,
    Endpoint,
    EndpointType,
    Group,
    Relation,
    VirtualTicket,
)
from .placement import assign_default_position, occupied_rects

IdFactory = Callable[[], str]

# Subgroups are laid out inside the parent minus its border
SUBGROUP_CONTAINER_INSET = 8


def default_id_factory() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Pending connection state
# =============================================================================


@dataclass(frozen=True)
class Idle:
    """No connection source chosen yet."""


@dataclass(frozen=True)
class ArmedWithSource:
    """The first anchor of a new relation has been clicked."""

    source: Endpoint


ConnectState = Union[Idle, ArmedWithSource]


class ConnectController:
    """
    Two-click relation authoring.

    The first anchor click arms the controller with a source endpoint; the
    second click on a different element produces a new relation. Clicking
    the armed element again cancels. Connect mode stays on after a
    relation is created so several arrows can be drawn in a row.
    """

    def __init__(self, id_factory: Optional[IdFactory] = None):
        self.id_factory = id_factory or default_id_factory
        self.active = False
        self.state: ConnectState = Idle()

    def enter(self) -> None:
        self.active = True
        self.state = Idle()

    def exit(self) -> None:
        self.active = False
        self.state = Idle()

    @property
    def pending_source(self) -> Optional[Endpoint]:
        if isinstance(self.state, ArmedWithSource):
            return self.state.source
        return None

    def click(self, endpoint: Endpoint, relations: Sequence[Relation]) -> Optional[Relation]:
        """
        Handle an anchor click.

        Args:
            endpoint: Element and anchor that was clicked.
            relations: Relations currently on the canvas.

        Returns:
            The relation to add, or None when the click only changed state
            (armed, cancelled or rejected as a duplicate).

        Raises:
            CanvasError: If connect mode is not active.
        """
        if not self.active:
            raise CanvasError("Connect mode is not active")

        if isinstance(self.state, Idle):
            self.state = ArmedWithSource(endpoint)
            return None

        source = self.state.source
        self.state = Idle()

        if source.same_element(endpoint):
            return None
        if relation_exists(relations, source.type, source.id, endpoint.type, endpoint.id):
            return None

        return Relation(id=self.id_factory(), source=source, target=endpoint)


# =============================================================================
# Relation queries
# =============================================================================


def relation_exists(
    relations: Iterable[Relation],
    type1: EndpointType,
    id1: str,
    type2: EndpointType,
    id2: str,
) -> bool:
    """True if a relation links the two elements in either direction."""
    for rel in relations:
        forward = (
            rel.source.type == type1
            and rel.source.id == id1
            and rel.target.type == type2
            and rel.target.id == id2
        )
        backward = (
            rel.source.type == type2
            and rel.source.id == id2
            and rel.target.type == type1
            and rel.target.id == id1
        )
        if forward or backward:
            return True
    return False


def filter_relations_excluding(
    relations: Iterable[Relation],
    endpoint_type: EndpointType,
    ids: Collection[str],
) -> List[Relation]:
    """Relations that touch none of ``ids`` (of the given endpoint type)."""
    id_set = set(ids)
    return [
        rel
        for rel in relations
        if not (
            (rel.source.type == endpoint_type and rel.source.id in id_set)
            or (rel.target.type == endpoint_type and rel.target.id in id_set)
        )
    ]


def _endpoint_in_kr(
    endpoint: Endpoint, cards: Iterable[Card], groups: Iterable[Group], kr_id: str
) -> bool:
    if endpoint.type == EndpointType.LINK:
        return any(c.id == endpoint.id and c.key_result_id == kr_id for c in cards)
    return any(g.id == endpoint.id and g.key_result_id == kr_id for g in groups)


def is_relation_in_kr(
    relation: Relation,
    cards: Sequence[Card],
    groups: Sequence[Group],
    kr_id: str,
) -> bool:
    """True if both endpoints of ``relation`` live on the KR's canvas."""
    return _endpoint_in_kr(relation.source, cards, groups, kr_id) and _endpoint_in_kr(
        relation.target, cards, groups, kr_id
    )


def element_exists(document: CanvasDocument, endpoint_type: EndpointType, element_id: str) -> bool:
    if endpoint_type == EndpointType.LINK:
        return document.card(element_id) is not None
    return document.group(element_id) is not None


# =============================================================================
# Relation edits
# =============================================================================


def add_relation(
    document: CanvasDocument,
    source: Endpoint,
    target: Endpoint,
    id_factory: Optional[IdFactory] = None,
    label: Optional[str] = None,
) -> Tuple[CanvasDocument, Optional[Relation]]:
    """
    Add a relation unless an equivalent one already exists.

    Returns:
        (document, relation); relation is None and the document unchanged
        when the relation would duplicate an existing one or join an
        element to itself.

    Raises:
        UnknownElementError: If either endpoint does not exist.
    """
    for endpoint in (source, target):
        if not element_exists(document, endpoint.type, endpoint.id):
            raise UnknownElementError(endpoint.type.value, endpoint.id)

    if source.same_element(target):
        return document, None
    if relation_exists(document.relations, source.type, source.id, target.type, target.id):
        return document, None

    relation = Relation(
        id=(id_factory or default_id_factory)(), source=source, target=target, label=label
    )
    return replace(document, relations=document.relations + (relation,)), relation


def replace_relation(document: CanvasDocument, relation: Relation) -> CanvasDocument:
    """Swap in an edited relation with the same id."""
    if document.relation(relation.id) is None:
        raise UnknownElementError("relation", relation.id)
    return replace(
        document,
        relations=tuple(relation if r.id == relation.id else r for r in document.relations),
    )


def delete_relation(document: CanvasDocument, relation_id: str) -> CanvasDocument:
    if document.relation(relation_id) is None:
        raise UnknownElementError("relation", relation_id)
    return replace(
        document, relations=tuple(r for r in document.relations if r.id != relation_id)
    )


# =============================================================================
# Cascading deletes
# =============================================================================


def compute_delete_group(document: CanvasDocument, group_id: str) -> CanvasDocument:
    """
    Delete a group together with all of its descendant groups.

    Cards inside any removed group are detached: ``group_id`` is cleared
    and their position converted to canvas-absolute so they stay where
    they were drawn. Relations touching any removed group are removed.
    """
    if document.group(group_id) is None:
        raise UnknownElementError("group", group_id)

    removed = {group_id, *get_descendant_group_ids(group_id, document.groups)}

    cards = []
    for card in document.cards:
        if card.group_id in removed:
            abs_x, abs_y = to_absolute_coords(card.x, card.y, card.group_id, document.groups)
            card = replace(card, x=abs_x, y=abs_y, group_id=None)
        cards.append(card)

    return replace(
        document,
        groups=tuple(g for g in document.groups if g.id not in removed),
        cards=tuple(cards),
        relations=tuple(filter_relations_excluding(document.relations, EndpointType.GROUP, removed)),
    )


def compute_unlink(document: CanvasDocument, card_id: str) -> CanvasDocument:
    """
    Remove a card from the canvas.

    Relations touching the card are removed. If the card was the last one
    pointing at a virtual ticket, the ticket is removed as well.
    """
    card = document.card(card_id)
    if card is None:
        raise UnknownElementError("card", card_id)

    cards = tuple(c for c in document.cards if c.id != card_id)
    tickets = document.virtual_tickets
    if card.virtual_ticket_id and not any(
        c.virtual_ticket_id == card.virtual_ticket_id for c in cards
    ):
        tickets = tuple(t for t in tickets if t.id != card.virtual_ticket_id)

    return replace(
        document,
        cards=cards,
        virtual_tickets=tickets,
        relations=tuple(
            filter_relations_excluding(document.relations, EndpointType.LINK, [card_id])
        ),
    )


def compute_delete_virtual_ticket(document: CanvasDocument, ticket_id: str) -> CanvasDocument:
    """Remove a virtual ticket, every card showing it and their relations."""
    if not any(t.id == ticket_id for t in document.virtual_tickets):
        raise UnknownElementError("virtual ticket", ticket_id)

    doomed = [c.id for c in document.cards if c.virtual_ticket_id == ticket_id]
    return replace(
        document,
        virtual_tickets=tuple(t for t in document.virtual_tickets if t.id != ticket_id),
        cards=tuple(c for c in document.cards if c.virtual_ticket_id != ticket_id),
        relations=tuple(filter_relations_excluding(document.relations, EndpointType.LINK, doomed)),
    )


# =============================================================================
# Element creation
# =============================================================================


def add_group(
    document: CanvasDocument,
    kr_id: str,
    title: str,
    parent_group_id: Optional[str] = None,
    id_factory: Optional[IdFactory] = None,
) -> Tuple[CanvasDocument, Group]:
    """
    Create a group at the first free spot of its container.

    Top-level groups are 320x200 and laid out across an 800px container.
    Subgroups are 280x160 and laid out across the parent's width minus its
    inset.

    Raises:
        UnknownElementError: If ``parent_group_id`` does not exist.
        CanvasError: If the parent already sits at the maximum depth.
    """
    if parent_group_id:
        parent = document.group(parent_group_id)
        if parent is None:
            raise UnknownElementError("group", parent_group_id)
        if get_group_depth(parent_group_id, document.groups) >= MAX_GROUP_DEPTH:
            raise CanvasError(
                f"Cannot nest deeper than {MAX_GROUP_DEPTH} levels (parent {parent_group_id})"
            )
        w, h = DEFAULT_SUBGROUP_W, DEFAULT_SUBGROUP_H
        container_w = parent.w - SUBGROUP_CONTAINER_INSET
    else:
        w, h = DEFAULT_GROUP_W, DEFAULT_GROUP_H
        container_w = DEFAULT_CONTAINER_W

    x, y = assign_default_position(
        occupied_rects(document, kr_id, parent_group_id), w, h, container_w
    )
    siblings = [
        g
        for g in document.groups_for_kr(kr_id)
        if (g.parent_group_id or None) == (parent_group_id or None)
    ]
    group = Group(
        id=(id_factory or default_id_factory)(),
        key_result_id=kr_id,
        title=title,
        order=len(siblings),
        x=x,
        y=y,
        w=w,
        h=h,
        parent_group_id=parent_group_id or None,
    )
    return replace(document, groups=document.groups + (group,)), group


def add_card(
    document: CanvasDocument,
    kr_id: str,
    issue_key: Optional[str] = None,
    virtual_ticket_id: Optional[str] = None,
    group_id: Optional[str] = None,
    id_factory: Optional[IdFactory] = None,
) -> Tuple[CanvasDocument, Card]:
    """
    Place a Jira issue or virtual ticket card at the first free spot.

    Exactly one of ``issue_key`` and ``virtual_ticket_id`` must be given.
    """
    if bool(issue_key) == bool(virtual_ticket_id):
        raise CanvasError("A card needs exactly one of issue_key or virtual_ticket_id")
    if virtual_ticket_id and not any(t.id == virtual_ticket_id for t in document.virtual_tickets):
        raise UnknownElementError("virtual ticket", virtual_ticket_id)

    if group_id:
        parent = document.group(group_id)
        if parent is None:
            raise UnknownElementError("group", group_id)
        container_w = parent.w - SUBGROUP_CONTAINER_INSET
    else:
        container_w = DEFAULT_CONTAINER_W

    x, y = assign_default_position(
        occupied_rects(document, kr_id, group_id), CARD_W, CARD_H, container_w
    )
    card = Card(
        id=(id_factory or default_id_factory)(),
        key_result_id=kr_id,
        kind=CardKind.VIRTUAL if virtual_ticket_id else CardKind.JIRA,
        order=len(document.cards_for_kr(kr_id)),
        x=x,
        y=y,
        group_id=group_id or None,
        issue_key=issue_key,
        virtual_ticket_id=virtual_ticket_id,
    )
    return replace(document, cards=document.cards + (card,)), card


def add_virtual_ticket(
    document: CanvasDocument,
    title: str,
    issue_type: str = "task",
    assignee: Optional[str] = None,
    description: Optional[str] = None,
    created_at: str = "",
    id_factory: Optional[IdFactory] = None,
) -> Tuple[CanvasDocument, VirtualTicket]:
    ticket = VirtualTicket(
        id=(id_factory or default_id_factory)(),
        title=title,
        issue_type=issue_type,
        assignee=assignee,
        description=description,
        created_at=created_at,
    )
    return replace(document, virtual_tickets=document.virtual_tickets + (ticket,)), ticket


# =============================================================================
# Legacy format
# =============================================================================


def migrate_legacy_relation(data: dict) -> dict:
    """
    Upgrade an old ``{id, fromLinkId, toLinkId}`` relation record.

    Old relations could only join two cards and were always drawn from the
    right side of the source to the left side of the target. Records that
    already use the endpoint format are returned unchanged.
    """
    if "fromLinkId" not in data or "fromId" in data:
        return data

    upgraded = {k: v for k, v in data.items() if k not in ("fromLinkId", "toLinkId")}
    upgraded.update(
        {
            "fromType": EndpointType.LINK.value,
            "fromId": data["fromLinkId"],
            "fromAnchor": Anchor.RIGHT.value,
            "toType": EndpointType.LINK.value,
            "toId": data["toLinkId"],
            "toAnchor": Anchor.LEFT.value,
        }
    )
    return upgraded
