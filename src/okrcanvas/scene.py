"""
Render-boundary descriptors.

``compute_scene`` turns a document into everything a renderer needs for
one Key Result canvas: absolute rectangles for cards and groups and one
arrow descriptor (SVG path, ordered waypoints, endpoint coordinates) per
relation. It does not paint anything.

Element rectangles are looked up through an injected callable so a UI can
feed measured on-screen boxes instead of the stored geometry.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Set

from .anchors import get_anchor_point
from .coordinates import (
    absolute_card_rect,
    absolute_group_rect,
    build_group_tree,
    get_ancestor_group_ids,
    group_content_rect,
    index_groups,
)
from .edge_routing import RoutedEdge, RoutingConfig, route_edge
from .models import CanvasDocument, CardKind, Endpoint, EndpointType, IssueInfo, Point, Rect, Relation
from .relations import is_relation_in_kr
from .tracer import RouteTrace
from .waypoints import build_waypoint_path

RectLookup = Callable[[EndpointType, str], Optional[Rect]]

STATUS_COLORS = {
    "new": "#9CA3AF",
    "indeterminate": "#3B82F6",
    "done": "#22C55E",
}
UNKNOWN_STATUS_COLOR = STATUS_COLORS["new"]
VIRTUAL_CARD_COLOR = "#A855F7"


def status_color(category: Optional[str]) -> str:
    """Colour for an issue status category; unknown categories are grey."""
    return STATUS_COLORS.get(category or "", UNKNOWN_STATUS_COLOR)


@dataclass(frozen=True)
class CardBox:
    id: str
    rect: Rect
    color: str
    title: str = ""
    group_id: Optional[str] = None


@dataclass(frozen=True)
class GroupBox:
    id: str
    rect: Rect
    content_rect: Rect
    depth: int
    title: str = ""


@dataclass(frozen=True)
class ArrowPath:
    """
    One relation arrow as the renderer receives it.

    Attributes:
        relation_id: Relation the arrow belongs to.
        path: SVG path ``d`` attribute.
        waypoints: Ordered polyline from start to end.
        start: Source anchor point.
        end: Target anchor point.
        routed: True if obstacle avoidance produced the path.
        manual: True if the path follows user waypoints.
    """

    relation_id: str
    path: str
    waypoints: List[Point]
    start: Point
    end: Point
    routed: bool = False
    manual: bool = False
    label: Optional[str] = None


@dataclass
class Scene:
    """Everything drawn for one Key Result canvas."""

    cards: List[CardBox] = field(default_factory=list)
    groups: List[GroupBox] = field(default_factory=list)
    arrows: List[ArrowPath] = field(default_factory=list)

    def arrow(self, relation_id: str) -> Optional[ArrowPath]:
        for arrow in self.arrows:
            if arrow.relation_id == relation_id:
                return arrow
        return None

    def card(self, card_id: str) -> Optional[CardBox]:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def group(self, group_id: str) -> Optional[GroupBox]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def item_rects(self) -> List[Rect]:
        """Rectangles of every card and group (for fit-to-view)."""
        return [c.rect for c in self.cards] + [g.rect for g in self.groups]


def document_rect_lookup(document: CanvasDocument) -> RectLookup:
    """Rect lookup backed by the stored document geometry."""
    by_id = index_groups(document.groups)
    cards = {c.id: c for c in document.cards}

    def lookup(endpoint_type: EndpointType, element_id: str) -> Optional[Rect]:
        if endpoint_type == EndpointType.LINK:
            card = cards.get(element_id)
            return absolute_card_rect(card, by_id) if card else None
        group = by_id.get(element_id)
        return absolute_group_rect(group, by_id) if group else None

    return lookup


def _containers(document: CanvasDocument, endpoint: Endpoint) -> Set[str]:
    """Groups that enclose an endpoint (the endpoint itself excluded)."""
    if endpoint.type == EndpointType.LINK:
        card = document.card(endpoint.id)
        start = card.group_id if card else None
    else:
        group = document.group(endpoint.id)
        start = group.parent_group_id if group else None
    return set(get_ancestor_group_ids(start, document.groups))


def collect_obstacles(
    document: CanvasDocument,
    kr_id: str,
    relation: Relation,
    rect_lookup: RectLookup,
) -> List[Rect]:
    """
    Rectangles a relation's arrow must avoid.

    Every card and group of the KR except the two endpoints and the groups
    that contain either endpoint.
    """
    skip_cards: Set[str] = set()
    skip_groups: Set[str] = set()
    for endpoint in (relation.source, relation.target):
        if endpoint.type == EndpointType.LINK:
            skip_cards.add(endpoint.id)
        else:
            skip_groups.add(endpoint.id)
        skip_groups |= _containers(document, endpoint)

    obstacles = []
    for card in document.cards_for_kr(kr_id):
        if card.id in skip_cards:
            continue
        rect = rect_lookup(EndpointType.LINK, card.id)
        if rect is not None:
            obstacles.append(rect)
    for group in document.groups_for_kr(kr_id):
        if group.id in skip_groups:
            continue
        rect = rect_lookup(EndpointType.GROUP, group.id)
        if rect is not None:
            obstacles.append(rect)
    return obstacles


def route_relation(
    document: CanvasDocument,
    kr_id: str,
    relation: Relation,
    rect_lookup: RectLookup,
    config: Optional[RoutingConfig] = None,
    trace: Optional[RouteTrace] = None,
) -> Optional[RoutedEdge]:
    """Route one relation, or None if an endpoint has no rectangle."""
    from_rect = rect_lookup(relation.source.type, relation.source.id)
    to_rect = rect_lookup(relation.target.type, relation.target.id)
    if from_rect is None or to_rect is None:
        return None

    if relation.has_manual_waypoints:
        return build_waypoint_path(
            get_anchor_point(from_rect, relation.source.anchor),
            relation.source.anchor,
            get_anchor_point(to_rect, relation.target.anchor),
            relation.target.anchor,
            relation.waypoints,
            config,
            trace,
            relation.id,
        )

    return route_edge(
        from_rect,
        relation.source.anchor,
        to_rect,
        relation.target.anchor,
        collect_obstacles(document, kr_id, relation, rect_lookup),
        config,
        trace,
        relation.id,
    )


def compute_scene(
    document: CanvasDocument,
    kr_id: str,
    config: Optional[RoutingConfig] = None,
    issues: Optional[Mapping[str, IssueInfo]] = None,
    rect_lookup: Optional[RectLookup] = None,
    trace: Optional[RouteTrace] = None,
) -> Scene:
    """
    Compute the render descriptors of one Key Result canvas.

    Args:
        document: Current document.
        kr_id: Key Result whose canvas is drawn.
        config: Routing parameters.
        issues: Issue repository view used for card titles and colours.
        rect_lookup: Element rectangle provider (default: stored geometry).
        trace: Optional debug trace.

    Returns:
        The Scene.
    """
    issues = issues or {}
    lookup = rect_lookup or document_rect_lookup(document)
    scene = Scene()

    kr_groups = document.groups_for_kr(kr_id)
    for root in build_group_tree(kr_groups):
        for node in root.walk():
            scene.groups.append(
                GroupBox(
                    id=node.group.id,
                    rect=lookup(EndpointType.GROUP, node.group.id) or node.rect,
                    content_rect=group_content_rect(node.group, kr_groups),
                    depth=node.depth,
                    title=node.group.title,
                )
            )

    tickets: Dict[str, str] = {t.id: t.title for t in document.virtual_tickets}
    for card in sorted(document.cards_for_kr(kr_id), key=lambda c: c.order):
        rect = lookup(EndpointType.LINK, card.id)
        if rect is None:
            continue
        if card.kind == CardKind.VIRTUAL:
            color = VIRTUAL_CARD_COLOR
            title = tickets.get(card.virtual_ticket_id or "", "")
        else:
            issue = issues.get(card.issue_key or "")
            color = status_color(issue.status_category if issue else None)
            title = issue.summary if issue else (card.issue_key or "")
        scene.cards.append(CardBox(card.id, rect, color, title, card.group_id))

    if trace is not None:
        trace.add_stage(
            "elements",
            {"kr": kr_id, "cards": len(scene.cards), "groups": len(scene.groups)},
        )

    cards = document.cards
    groups = document.groups
    for relation in document.relations:
        if not is_relation_in_kr(relation, cards, groups, kr_id):
            continue
        edge = route_relation(document, kr_id, relation, lookup, config, trace)
        if edge is None:
            continue
        scene.arrows.append(
            ArrowPath(
                relation_id=relation.id,
                path=edge.path,
                waypoints=list(edge.waypoints),
                start=edge.start,
                end=edge.end,
                routed=edge.routed,
                manual=relation.has_manual_waypoints,
                label=relation.label,
            )
        )

    if trace is not None:
        trace.add_stage(
            "arrows",
            {
                "arrows": len(scene.arrows),
                "routed": sum(1 for a in scene.arrows if a.routed),
                "manual": sum(1 for a in scene.arrows if a.manual),
            },
        )
    return scene


class RecalcScheduler:
    """
    Coalesce recompute requests to at most one per animation frame.

    Any number of ``request()`` calls between two frames trigger a single
    call of ``compute`` on the next ``on_frame()``.
    """

    def __init__(self, compute: Callable[[], Scene]):
        self.compute = compute
        self.pending = False
        self.scene: Optional[Scene] = None
        self.compute_count = 0

    def request(self) -> None:
        self.pending = True

    def on_frame(self) -> Optional[Scene]:
        """Run the pending recompute, if any, and return the latest scene."""
        if self.pending:
            self.pending = False
            self.scene = self.compute()
            self.compute_count += 1
        return self.scene
