"""
Batch change-sets from the automation collaborator.

The collaborator reads a KR-scoped summary of the canvas
(``build_canvas_context``) and answers with a JSON change-set of group,
card, virtual ticket and relation edits. Entries may refer to new elements
through caller-chosen temporary ids; ``merge_canvas_changes`` mints real
ids for them before any edit is applied so a batch can create an element
and reference it in the same pass.

Positions in a change-set are canvas-absolute and are converted into the
local space of the element's resulting container during the merge.

Malformed entries are dropped while parsing. Entries that reference an id
that does not exist are skipped one by one during the merge; the rest of
the batch still applies.
"""

import json
import re
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .coordinates import (
    get_descendant_group_ids,
    get_group_depth,
    get_subtree_height,
    to_absolute_coords,
    to_local_coords,
)
from .models import (
    DEFAULT_CONTAINER_W,
    DEFAULT_GROUP_H,
    DEFAULT_GROUP_W,
    DEFAULT_SUBGROUP_H,
    DEFAULT_SUBGROUP_W,
    MAX_GROUP_DEPTH,
    Anchor,
    CanvasDocument,
    CardKind,
    Endpoint,
    EndpointType,
    Group,
    IssueInfo,
    Relation,
)
from .placement import assign_default_position, occupied_rects
from .relations import (
    SUBGROUP_CONTAINER_INSET,
    IdFactory,
    add_card,
    add_virtual_ticket,
    compute_delete_group,
    default_id_factory,
    relation_exists,
)

DEFAULT_FROM_ANCHOR = Anchor.BOTTOM
DEFAULT_TO_ANCHOR = Anchor.TOP

_CODE_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


class _Change(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GroupChange(_Change):
    action: Literal["add", "update", "delete"]
    id: Optional[str] = None
    title: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    w: Optional[float] = None
    h: Optional[float] = None
    parent_group_id: Optional[str] = Field(default=None, alias="parentGroupId")

    @model_validator(mode="after")
    def check_required(self) -> "GroupChange":
        if self.action == "add" and self.title is None:
            raise ValueError("group add needs a title")
        if self.action in ("update", "delete") and self.id is None:
            raise ValueError(f"group {self.action} needs an id")
        return self


class LinkChange(_Change):
    action: Literal["update"]
    id: str
    x: Optional[float] = None
    y: Optional[float] = None
    group_id: Optional[str] = Field(default=None, alias="groupId")


class RelationChange(_Change):
    action: Literal["add", "delete"]
    id: Optional[str] = None
    from_id: Optional[str] = Field(default=None, alias="fromId")
    to_id: Optional[str] = Field(default=None, alias="toId")
    from_anchor: Optional[Any] = Field(default=None, alias="fromAnchor")
    to_anchor: Optional[Any] = Field(default=None, alias="toAnchor")
    label: Optional[str] = None

    @model_validator(mode="after")
    def check_required(self) -> "RelationChange":
        if self.action == "add" and (self.from_id is None or self.to_id is None):
            raise ValueError("relation add needs fromId and toId")
        if self.action == "delete" and self.id is None:
            raise ValueError("relation delete needs an id")
        return self

    @property
    def resolved_from_anchor(self) -> Anchor:
        return _coerce_anchor(self.from_anchor, DEFAULT_FROM_ANCHOR)

    @property
    def resolved_to_anchor(self) -> Anchor:
        return _coerce_anchor(self.to_anchor, DEFAULT_TO_ANCHOR)


class VirtualTicketChange(_Change):
    action: Literal["add"]
    title: str
    id: Optional[str] = None
    issue_type: Optional[str] = Field(default=None, alias="issueType")
    assignee: Optional[str] = None
    description: Optional[str] = None
    group_id: Optional[str] = Field(default=None, alias="groupId")


class CanvasChanges(BaseModel):
    """A validated change-set; every list holds only well-formed entries."""

    groups: List[GroupChange] = Field(default_factory=list)
    links: List[LinkChange] = Field(default_factory=list)
    relations: List[RelationChange] = Field(default_factory=list)
    virtual_tickets: List[VirtualTicketChange] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.groups or self.links or self.relations or self.virtual_tickets)


def _coerce_anchor(value: Any, default: Anchor) -> Anchor:
    if isinstance(value, str):
        try:
            return Anchor(value)
        except ValueError:
            return default
    return default


def _valid_entries(model: type, entries: Any) -> list:
    if not isinstance(entries, list):
        return []
    valid = []
    for entry in entries:
        try:
            valid.append(model.model_validate(entry))
        except ValidationError:
            continue
    return valid


def validate_canvas_changes(data: Any) -> Optional[CanvasChanges]:
    """
    Keep only the structurally valid entries of a raw change-set.

    Returns:
        The change-set, or None if nothing valid remains.
    """
    if not isinstance(data, dict):
        return None

    changes = CanvasChanges(
        groups=_valid_entries(GroupChange, data.get("groups")),
        links=_valid_entries(LinkChange, data.get("links")),
        relations=_valid_entries(RelationChange, data.get("relations")),
        virtual_tickets=_valid_entries(VirtualTicketChange, data.get("virtualTickets")),
    )
    return changes if changes.has_changes else None


def parse_canvas_response(raw: str) -> Optional[CanvasChanges]:
    """
    Extract a change-set from a free-text collaborator answer.

    A fenced ```json block is preferred; otherwise the outermost ``{...}``
    of the text is used. Anything that does not parse yields None.
    """
    text = raw.strip()
    match = _CODE_BLOCK.search(text)
    if match:
        text = match.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return validate_canvas_changes(data)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def merge_canvas_changes(
    document: CanvasDocument,
    kr_id: str,
    changes: CanvasChanges,
    id_factory: Optional[IdFactory] = None,
    now: Optional[str] = None,
) -> CanvasDocument:
    """
    Apply a change-set to the canvas of one Key Result.

    Order of application: groups, cards, virtual tickets, relations. Every
    temporary id carried by an ``add`` entry is mapped to a freshly minted
    id up front and the map is consulted for every reference field.

    Args:
        document: Current document.
        kr_id: Key Result whose canvas is edited.
        changes: Validated change-set.
        id_factory: Source of new ids.
        now: Timestamp for ``updated_at`` and new tickets (default: UTC now).

    Returns:
        The merged document.
    """
    mint = id_factory or default_id_factory
    timestamp = now or _utc_now()

    temp_ids: Dict[str, str] = {}
    group_ids: List[str] = []
    for change in changes.groups:
        if change.action == "add":
            new_id = mint()
            group_ids.append(new_id)
            if change.id:
                temp_ids[change.id] = new_id
    ticket_ids: List[str] = []
    for change in changes.virtual_tickets:
        new_id = mint()
        ticket_ids.append(new_id)
        if change.id:
            temp_ids[change.id] = new_id

    def resolve(ref: str) -> str:
        return temp_ids.get(ref, ref)

    doc = document
    new_group_ids = iter(group_ids)
    for change in changes.groups:
        if change.action == "add":
            doc = _add_group(doc, kr_id, change, next(new_group_ids), resolve)
        elif change.action == "update":
            doc = _update_group(doc, change, resolve)
        elif doc.group(change.id) is not None:
            doc = compute_delete_group(doc, change.id)

    for change in changes.links:
        doc = _update_link(doc, change, resolve)

    new_ticket_ids = iter(ticket_ids)
    for change in changes.virtual_tickets:
        ticket_id = next(new_ticket_ids)
        group_id = resolve(change.group_id) if change.group_id else None
        if group_id and doc.group(group_id) is None:
            continue
        doc, _ = add_virtual_ticket(
            doc,
            change.title,
            issue_type=change.issue_type or "task",
            assignee=change.assignee,
            description=change.description,
            created_at=timestamp,
            id_factory=lambda: ticket_id,
        )
        doc, _ = add_card(doc, kr_id, virtual_ticket_id=ticket_id, group_id=group_id, id_factory=mint)

    for change in changes.relations:
        doc = _apply_relation(doc, change, resolve, mint)

    return replace(doc, updated_at=timestamp)


def _add_group(doc: CanvasDocument, kr_id: str, change: GroupChange, new_id: str, resolve) -> CanvasDocument:
    parent_id = resolve(change.parent_group_id) if change.parent_group_id else None
    if parent_id:
        parent = doc.group(parent_id)
        if parent is None or get_group_depth(parent_id, doc.groups) >= MAX_GROUP_DEPTH:
            return doc
        w = change.w or DEFAULT_SUBGROUP_W
        h = change.h or DEFAULT_SUBGROUP_H
        container_w = parent.w - SUBGROUP_CONTAINER_INSET
    else:
        w = change.w or DEFAULT_GROUP_W
        h = change.h or DEFAULT_GROUP_H
        container_w = DEFAULT_CONTAINER_W

    if change.x is not None and change.y is not None:
        x, y = to_local_coords(change.x, change.y, parent_id, doc.groups)
    else:
        x, y = assign_default_position(occupied_rects(doc, kr_id, parent_id), w, h, container_w)

    order = len([g for g in doc.groups_for_kr(kr_id) if g.parent_group_id == parent_id])
    group = Group(
        id=new_id,
        key_result_id=kr_id,
        title=change.title,
        order=order,
        x=x,
        y=y,
        w=w,
        h=h,
        parent_group_id=parent_id,
    )
    return replace(doc, groups=doc.groups + (group,))


def _update_group(doc: CanvasDocument, change: GroupChange, resolve) -> CanvasDocument:
    group = doc.group(change.id)
    if group is None:
        return doc

    parent_id = group.parent_group_id
    if "parent_group_id" in change.model_fields_set:
        parent_id = resolve(change.parent_group_id) if change.parent_group_id else None
        if parent_id:
            if parent_id == group.id or parent_id in get_descendant_group_ids(group.id, doc.groups):
                return doc
            if doc.group(parent_id) is None:
                return doc
            depth = get_group_depth(parent_id, doc.groups)
            if depth + get_subtree_height(group.id, doc.groups) > MAX_GROUP_DEPTH:
                return doc

    abs_x, abs_y = to_absolute_coords(group.x, group.y, group.parent_group_id, doc.groups)
    if change.x is not None:
        abs_x = change.x
    if change.y is not None:
        abs_y = change.y
    x, y = to_local_coords(abs_x, abs_y, parent_id, doc.groups)

    updated = replace(
        group,
        title=change.title if change.title is not None else group.title,
        w=change.w if change.w is not None else group.w,
        h=change.h if change.h is not None else group.h,
        x=x,
        y=y,
        parent_group_id=parent_id,
    )
    return replace(doc, groups=tuple(updated if g.id == group.id else g for g in doc.groups))


def _update_link(doc: CanvasDocument, change: LinkChange, resolve) -> CanvasDocument:
    card = doc.card(change.id)
    if card is None:
        return doc

    group_id = card.group_id
    if "group_id" in change.model_fields_set:
        group_id = resolve(change.group_id) if change.group_id else None
        if group_id and doc.group(group_id) is None:
            return doc

    abs_x, abs_y = to_absolute_coords(card.x, card.y, card.group_id, doc.groups)
    if change.x is not None:
        abs_x = change.x
    if change.y is not None:
        abs_y = change.y
    x, y = to_local_coords(abs_x, abs_y, group_id, doc.groups)

    updated = replace(card, x=x, y=y, group_id=group_id)
    return replace(doc, cards=tuple(updated if c.id == card.id else c for c in doc.cards))


def _endpoint_type(doc: CanvasDocument, element_id: str) -> Optional[EndpointType]:
    if doc.group(element_id) is not None:
        return EndpointType.GROUP
    if doc.card(element_id) is not None:
        return EndpointType.LINK
    return None


def _apply_relation(doc: CanvasDocument, change: RelationChange, resolve, mint) -> CanvasDocument:
    if change.action == "delete":
        if doc.relation(change.id) is None:
            return doc
        return replace(doc, relations=tuple(r for r in doc.relations if r.id != change.id))

    from_id = resolve(change.from_id)
    to_id = resolve(change.to_id)
    from_type = _endpoint_type(doc, from_id)
    to_type = _endpoint_type(doc, to_id)
    if from_type is None or to_type is None:
        return doc
    if from_type == to_type and from_id == to_id:
        return doc
    if relation_exists(doc.relations, from_type, from_id, to_type, to_id):
        return doc

    relation = Relation(
        id=mint(),
        source=Endpoint(from_type, from_id, change.resolved_from_anchor),
        target=Endpoint(to_type, to_id, change.resolved_to_anchor),
        label=change.label,
    )
    return replace(doc, relations=doc.relations + (relation,))


def build_canvas_context(
    document: CanvasDocument,
    kr_id: str,
    issues: Optional[Mapping[str, IssueInfo]] = None,
) -> Dict[str, Any]:
    """
    Summarise one Key Result canvas for the automation collaborator.

    Card titles, statuses and assignees come from the issue repository for
    Jira cards and from the virtual ticket for virtual cards. Positions are
    reported canvas-absolute.
    """
    issues = issues or {}
    cards = document.cards_for_kr(kr_id)
    groups = document.groups_for_kr(kr_id)
    card_ids = {c.id for c in cards}
    group_ids = {g.id for g in groups}
    tickets = {t.id: t for t in document.virtual_tickets}

    def in_kr(endpoint: Endpoint) -> bool:
        if endpoint.type == EndpointType.LINK:
            return endpoint.id in card_ids
        return endpoint.id in group_ids

    links = []
    for card in cards:
        x, y = to_absolute_coords(card.x, card.y, card.group_id, document.groups)
        entry: Dict[str, Any] = {"id": card.id, "type": card.kind.value}
        if card.kind == CardKind.JIRA:
            issue = issues.get(card.issue_key or "")
            entry.update(
                {
                    "issueKey": card.issue_key,
                    "title": issue.summary if issue else card.issue_key,
                    "status": issue.status if issue else None,
                    "issueType": issue.issue_type if issue else None,
                    "assignee": issue.assignee if issue else None,
                }
            )
        else:
            ticket = tickets.get(card.virtual_ticket_id or "")
            entry.update(
                {
                    "virtualTicketId": card.virtual_ticket_id,
                    "title": ticket.title if ticket else "Virtual ticket",
                    "issueType": ticket.issue_type if ticket else None,
                    "assignee": ticket.assignee if ticket else None,
                }
            )
        entry.update({"groupId": card.group_id, "x": x, "y": y})
        links.append({k: v for k, v in entry.items() if v is not None})

    context_groups = []
    for group in groups:
        x, y = to_absolute_coords(group.x, group.y, group.parent_group_id, document.groups)
        entry = {
            "id": group.id,
            "title": group.title,
            "parentGroupId": group.parent_group_id,
            "x": x,
            "y": y,
            "w": group.w,
            "h": group.h,
        }
        context_groups.append({k: v for k, v in entry.items() if v is not None})

    relations = [
        {
            k: v
            for k, v in {
                "id": r.id,
                "fromId": r.source.id,
                "toId": r.target.id,
                "label": r.label,
            }.items()
            if v is not None
        }
        for r in document.relations
        if in_kr(r.source) or in_kr(r.target)
    ]

    used_tickets = {c.virtual_ticket_id for c in cards if c.kind == CardKind.VIRTUAL}
    virtual_tickets = [
        {
            k: v
            for k, v in {
                "id": t.id,
                "title": t.title,
                "issueType": t.issue_type,
                "assignee": t.assignee,
            }.items()
            if v is not None
        }
        for t in document.virtual_tickets
        if t.id in used_tickets
    ]

    kr_title = ""
    for kr in document.key_results:
        if kr.get("id") == kr_id:
            kr_title = kr.get("title", "")
            break

    return {
        "krTitle": kr_title,
        "links": links,
        "groups": context_groups,
        "relations": relations,
        "virtualTickets": virtual_tickets,
    }
