"""
Canvas engine facade.

Wires the geometry, routing, drag and relation modules together for one
Key Result canvas. Every document change goes through ``_commit``, which
swaps in the new immutable snapshot and schedules a scene recompute for
the next animation frame.
"""

from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

from .anchors import get_anchor_point
from .changeset import (
    CanvasChanges,
    build_canvas_context,
    merge_canvas_changes,
    parse_canvas_response,
)
from .document import dump_document, dumps, load_document, loads
from .drag import DragEngine, DragItemType, DragSession, DragState, DropResult, apply_drop
from .edge_routing import RoutingConfig
from .errors import CanvasError, UnknownElementError
from .models import (
    Anchor,
    CanvasDocument,
    Card,
    Endpoint,
    EndpointType,
    Group,
    IssueInfo,
    Point,
    Relation,
)
from .relations import (
    ConnectController,
    IdFactory,
    add_card,
    add_group,
    add_relation,
    add_virtual_ticket,
    compute_delete_group,
    compute_delete_virtual_ticket,
    compute_unlink,
    default_id_factory,
    delete_relation,
    element_exists,
    replace_relation,
)
from .scene import RecalcScheduler, RectLookup, Scene, compute_scene, document_rect_lookup
from .tracer import RouteTrace
from .viewport import Viewport
from .waypoints import clear_waypoints, insert_waypoint, move_waypoint, remove_waypoint


class CanvasEngine:
    """
    Interactive state of one Key Result canvas.

    Example:
        >>> engine = CanvasEngine("kr-1")
        >>> card = engine.add_card(issue_key="OKR-1")
        >>> group = engine.add_group("Backend")
        >>> engine.add_relation(
        ...     Endpoint(EndpointType.LINK, card.id, Anchor.RIGHT),
        ...     Endpoint(EndpointType.GROUP, group.id, Anchor.LEFT),
        ... )
        >>> scene = engine.compute_scene()

    Debug Mode Example:
        >>> engine = CanvasEngine("kr-1", debug=True)
        >>> engine.compute_scene()
        >>> print(engine.get_trace().summary())
    """

    def __init__(
        self,
        kr_id: str,
        document: Optional[CanvasDocument] = None,
        routing_config: Optional[RoutingConfig] = None,
        debug: bool = False,
        id_factory: Optional[IdFactory] = None,
        issues: Optional[Mapping[str, IssueInfo]] = None,
        rect_lookup: Optional[RectLookup] = None,
    ):
        """
        Initialize the canvas engine.

        Args:
            kr_id: Key Result whose canvas this engine edits
            document: Initial document (default: empty)
            routing_config: Arrow routing parameters
            debug: Record a RouteTrace on every scene recompute
            id_factory: Source of new ids (default: uuid4 strings)
            issues: Issue repository view keyed by issue key
            rect_lookup: Measured element rectangles; the stored geometry is
                used when omitted
        """
        if not kr_id:
            raise ValueError("kr_id must be a non-empty Key Result id")

        self.kr_id = kr_id
        self.routing_config = routing_config or RoutingConfig()
        self.id_factory = id_factory or default_id_factory
        self.issues: Dict[str, IssueInfo] = dict(issues or {})
        self.rect_lookup = rect_lookup
        self.debug = debug

        self.viewport = Viewport()
        self.drag = DragEngine()
        self.connect = ConnectController(self.id_factory)
        self.scheduler = RecalcScheduler(self.compute_scene)

        self._document = document or CanvasDocument()
        self._trace: Optional[RouteTrace] = RouteTrace(key_result_id=kr_id) if debug else None
        self.scheduler.request()

    # =========================================================================
    # Document
    # =========================================================================

    @property
    def document(self) -> CanvasDocument:
        return self._document

    def _commit(self, document: CanvasDocument) -> CanvasDocument:
        self._document = document
        self.scheduler.request()
        return document

    def load(self, snapshot: Dict[str, Any]) -> CanvasDocument:
        """Replace the document with a persisted snapshot."""
        return self._commit(load_document(snapshot))

    def loads(self, text: str) -> CanvasDocument:
        return self._commit(loads(text))

    def snapshot(self) -> Dict[str, Any]:
        """The document in the persistence collaborator's format."""
        return dump_document(self._document)

    def dumps(self) -> str:
        return dumps(self._document)

    def set_issues(self, issues: Mapping[str, IssueInfo]) -> None:
        """Replace the issue repository view (status colours change)."""
        self.issues = dict(issues)
        self.scheduler.request()

    # =========================================================================
    # Cards, groups and virtual tickets
    # =========================================================================

    def add_card(
        self,
        issue_key: Optional[str] = None,
        virtual_ticket_id: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> Card:
        document, card = add_card(
            self._document,
            self.kr_id,
            issue_key=issue_key,
            virtual_ticket_id=virtual_ticket_id,
            group_id=group_id,
            id_factory=self.id_factory,
        )
        self._commit(document)
        return card

    def add_virtual_card(
        self,
        title: str,
        group_id: Optional[str] = None,
        issue_type: str = "task",
        assignee: Optional[str] = None,
        description: Optional[str] = None,
        created_at: str = "",
    ) -> Card:
        """Create a virtual ticket and place a card showing it."""
        if group_id and self._document.group(group_id) is None:
            raise UnknownElementError("group", group_id)
        document, ticket = add_virtual_ticket(
            self._document,
            title,
            issue_type=issue_type,
            assignee=assignee,
            description=description,
            created_at=created_at,
            id_factory=self.id_factory,
        )
        document, card = add_card(
            document,
            self.kr_id,
            virtual_ticket_id=ticket.id,
            group_id=group_id,
            id_factory=self.id_factory,
        )
        self._commit(document)
        return card

    def add_group(self, title: str, parent_group_id: Optional[str] = None) -> Group:
        document, group = add_group(
            self._document,
            self.kr_id,
            title,
            parent_group_id=parent_group_id,
            id_factory=self.id_factory,
        )
        self._commit(document)
        return group

    def resize_group(self, group_id: str, w: float, h: float) -> Group:
        """Set a group's size; arrows around it are rerouted next frame."""
        group = self._document.group(group_id)
        if group is None:
            raise UnknownElementError("group", group_id)
        if w <= 0 or h <= 0:
            raise CanvasError(f"Group size must be positive, got {w}x{h}")
        resized = replace(group, w=w, h=h)
        self._commit(
            replace(
                self._document,
                groups=tuple(resized if g.id == group_id else g for g in self._document.groups),
            )
        )
        return resized

    def rename_group(self, group_id: str, title: str) -> Group:
        group = self._document.group(group_id)
        if group is None:
            raise UnknownElementError("group", group_id)
        renamed = replace(group, title=title)
        self._commit(
            replace(
                self._document,
                groups=tuple(renamed if g.id == group_id else g for g in self._document.groups),
            )
        )
        return renamed

    def unlink_card(self, card_id: str) -> None:
        self._commit(compute_unlink(self._document, card_id))

    def delete_group(self, group_id: str) -> None:
        self._commit(compute_delete_group(self._document, group_id))

    def delete_virtual_ticket(self, ticket_id: str) -> None:
        self._commit(compute_delete_virtual_ticket(self._document, ticket_id))

    # =========================================================================
    # Relations
    # =========================================================================

    @property
    def connect_mode(self) -> bool:
        return self.connect.active

    def enter_connect_mode(self) -> None:
        self.connect.enter()

    def exit_connect_mode(self) -> None:
        self.connect.exit()

    def click_anchor(
        self, endpoint_type: EndpointType, element_id: str, anchor: Anchor
    ) -> Optional[Relation]:
        """
        Handle an anchor click in connect mode.

        Returns:
            The created relation, or None if the click armed, cancelled or
            was rejected as a duplicate.
        """
        if not element_exists(self._document, endpoint_type, element_id):
            raise UnknownElementError(endpoint_type.value, element_id)

        relation = self.connect.click(
            Endpoint(endpoint_type, element_id, anchor), self._document.relations
        )
        if relation is not None:
            self._commit(
                replace(self._document, relations=self._document.relations + (relation,))
            )
        return relation

    def add_relation(
        self, source: Endpoint, target: Endpoint, label: Optional[str] = None
    ) -> Optional[Relation]:
        document, relation = add_relation(
            self._document, source, target, id_factory=self.id_factory, label=label
        )
        if relation is not None:
            self._commit(document)
        return relation

    def delete_relation(self, relation_id: str) -> None:
        self._commit(delete_relation(self._document, relation_id))

    def _relation(self, relation_id: str) -> Relation:
        relation = self._document.relation(relation_id)
        if relation is None:
            raise UnknownElementError("relation", relation_id)
        return relation

    def _endpoint_point(self, endpoint: Endpoint) -> Point:
        lookup = self.rect_lookup or document_rect_lookup(self._document)
        rect = lookup(endpoint.type, endpoint.id)
        if rect is None:
            raise UnknownElementError(endpoint.type.value, endpoint.id)
        return get_anchor_point(rect, endpoint.anchor)

    def insert_waypoint(self, relation_id: str, point: Point) -> Relation:
        """Add a bend point on the segment of the arrow nearest to ``point``."""
        relation = self._relation(relation_id)
        updated = insert_waypoint(
            relation,
            point,
            self._endpoint_point(relation.source),
            self._endpoint_point(relation.target),
        )
        self._commit(replace_relation(self._document, updated))
        return updated

    def move_waypoint(self, relation_id: str, index: int, point: Point) -> Relation:
        updated = move_waypoint(self._relation(relation_id), index, point)
        self._commit(replace_relation(self._document, updated))
        return updated

    def remove_waypoint(self, relation_id: str, index: int) -> Relation:
        updated = remove_waypoint(self._relation(relation_id), index)
        self._commit(replace_relation(self._document, updated))
        return updated

    def clear_waypoints(self, relation_id: str) -> Relation:
        updated = clear_waypoints(self._relation(relation_id))
        self._commit(replace_relation(self._document, updated))
        return updated

    # =========================================================================
    # Drag and drop
    # =========================================================================

    def pointer_down(
        self, item_type: DragItemType, item_id: str, screen_x: float, screen_y: float
    ) -> Optional[DragSession]:
        """Arm a drag; ignored (None) while connect mode is on."""
        return self.drag.pointer_down(
            item_type, item_id, screen_x, screen_y, self._document, self.connect.active
        )

    def pointer_move(self, screen_x: float, screen_y: float) -> Point:
        position = self.drag.pointer_move(screen_x, screen_y, self.viewport.zoom)
        if self.drag.state == DragState.DRAGGING:
            self.scheduler.request()
        return position

    def pointer_up(self) -> Optional[DropResult]:
        """
        Release the pointer.

        Returns:
            The committed drop, or None if the press was a click.
        """
        drop = self.drag.pointer_up(self._document)
        if drop is not None:
            self._commit(apply_drop(self._document, drop))
        else:
            self.scheduler.request()
        return drop

    def _live_document(self) -> CanvasDocument:
        """The document with an in-flight drag shown at its live position."""
        session = self.drag.session
        if session is None or session.state != DragState.DRAGGING:
            return self._document
        x, y = session.current_position
        if session.item_type == DragItemType.CARD:
            return replace(
                self._document,
                cards=tuple(
                    replace(c, x=x, y=y) if c.id == session.item_id else c
                    for c in self._document.cards
                ),
            )
        return replace(
            self._document,
            groups=tuple(
                replace(g, x=x, y=y) if g.id == session.item_id else g
                for g in self._document.groups
            ),
        )

    # =========================================================================
    # Change-sets from the automation collaborator
    # =========================================================================

    def canvas_context(self) -> Dict[str, Any]:
        return build_canvas_context(self._document, self.kr_id, self.issues)

    def apply_changes(self, changes: CanvasChanges, now: Optional[str] = None) -> CanvasDocument:
        return self._commit(
            merge_canvas_changes(
                self._document, self.kr_id, changes, id_factory=self.id_factory, now=now
            )
        )

    def apply_response(self, raw: str, now: Optional[str] = None) -> bool:
        """
        Parse and merge a raw automation response.

        Returns:
            False (document untouched) if nothing valid could be parsed.
        """
        changes = parse_canvas_response(raw)
        if changes is None or not changes.has_changes:
            return False
        self.apply_changes(changes, now=now)
        return True

    # =========================================================================
    # Scene and viewport
    # =========================================================================

    def compute_scene(self) -> Scene:
        """Recompute the scene immediately."""
        if self._trace is not None:
            self._trace.clear()
        return compute_scene(
            self._live_document(),
            self.kr_id,
            self.routing_config,
            self.issues,
            self.rect_lookup,
            self._trace,
        )

    def request_recalc(self) -> None:
        self.scheduler.request()

    def on_frame(self) -> Optional[Scene]:
        """Animation-frame hook: recompute at most once if anything changed."""
        return self.scheduler.on_frame()

    def fit_to_view(self, viewport_w: float, viewport_h: float) -> None:
        scene = self.compute_scene()
        self.viewport.fit_to_view(scene.item_rects(), viewport_w, viewport_h)
        self.scheduler.request()

    def get_trace(self) -> Optional[RouteTrace]:
        """
        Get the trace of the last scene recompute.

        Returns:
            RouteTrace if debug mode is on, None otherwise
        """
        return self._trace
