"""
Document snapshot schema.

The persistence collaborator stores the whole OKR document as one JSON
object (objectives, keyResults, virtualTickets, links, groups, relations,
updatedAt). This module validates that payload with pydantic, converts it
to the engine's dataclasses and back.

Old relation records that only carried ``fromLinkId``/``toLinkId`` are
upgraded while loading.
"""

import json
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import DocumentError
from .models import (
    DEFAULT_GROUP_H,
    DEFAULT_GROUP_W,
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
from .relations import migrate_legacy_relation

AnchorName = Literal["top", "bottom", "left", "right"]
EndpointTypeName = Literal["link", "group"]


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PointSchema(_Schema):
    x: float
    y: float


class VirtualTicketSchema(_Schema):
    id: str
    title: str
    description: Optional[str] = None
    issue_type: str = Field(alias="issueType")
    assignee: Optional[str] = None
    created_at: str = Field(alias="createdAt")


class LinkSchema(_Schema):
    id: str
    key_result_id: str = Field(alias="keyResultId")
    type: Literal["jira", "virtual"]
    group_id: Optional[str] = Field(default=None, alias="groupId")
    order: Union[int, float]
    x: Optional[float] = None
    y: Optional[float] = None
    issue_key: Optional[str] = Field(default=None, alias="issueKey")
    virtual_ticket_id: Optional[str] = Field(default=None, alias="virtualTicketId")

    @model_validator(mode="after")
    def check_reference(self) -> "LinkSchema":
        if self.type == "jira" and not self.issue_key:
            raise ValueError(f"Jira link {self.id} has no issueKey")
        if self.type == "virtual" and not self.virtual_ticket_id:
            raise ValueError(f"Virtual link {self.id} has no virtualTicketId")
        return self


class GroupSchema(_Schema):
    id: str
    key_result_id: str = Field(alias="keyResultId")
    parent_group_id: Optional[str] = Field(default=None, alias="parentGroupId")
    title: str
    order: Union[int, float]
    x: Optional[float] = None
    y: Optional[float] = None
    w: Optional[float] = None
    h: Optional[float] = None


class RelationSchema(_Schema):
    id: str
    from_type: EndpointTypeName = Field(alias="fromType")
    from_id: str = Field(alias="fromId")
    from_anchor: AnchorName = Field(alias="fromAnchor")
    to_type: EndpointTypeName = Field(alias="toType")
    to_id: str = Field(alias="toId")
    to_anchor: AnchorName = Field(alias="toAnchor")
    waypoints: Optional[List[PointSchema]] = None
    label: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return migrate_legacy_relation(data)
        return data

    @field_validator("waypoints", mode="after")
    @classmethod
    def drop_empty_waypoints(cls, value: Optional[List[PointSchema]]) -> Optional[List[PointSchema]]:
        return value or None


class DocumentSchema(_Schema):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    objectives: List[Dict[str, Any]] = Field(default_factory=list)
    key_results: List[Dict[str, Any]] = Field(default_factory=list, alias="keyResults")
    virtual_tickets: List[VirtualTicketSchema] = Field(
        default_factory=list, alias="virtualTickets"
    )
    links: List[LinkSchema] = Field(default_factory=list)
    groups: List[GroupSchema] = Field(default_factory=list)
    relations: List[RelationSchema] = Field(default_factory=list)
    updated_at: str = Field(default="", alias="updatedAt")


def load_document(data: Dict[str, Any]) -> CanvasDocument:
    """
    Validate a stored snapshot and convert it to a CanvasDocument.

    Raises:
        DocumentError: If the payload does not match the snapshot schema.
    """
    try:
        schema = DocumentSchema.model_validate(data)
    except ValidationError as e:
        raise DocumentError(f"Invalid canvas document: {e}") from e

    cards = tuple(
        Card(
            id=link.id,
            key_result_id=link.key_result_id,
            kind=CardKind(link.type),
            order=link.order,
            x=link.x or 0,
            y=link.y or 0,
            group_id=link.group_id or None,
            issue_key=link.issue_key,
            virtual_ticket_id=link.virtual_ticket_id,
        )
        for link in schema.links
    )
    groups = tuple(
        Group(
            id=g.id,
            key_result_id=g.key_result_id,
            title=g.title,
            order=g.order,
            x=g.x or 0,
            y=g.y or 0,
            w=g.w or DEFAULT_GROUP_W,
            h=g.h or DEFAULT_GROUP_H,
            parent_group_id=g.parent_group_id or None,
        )
        for g in schema.groups
    )
    relations = tuple(
        Relation(
            id=r.id,
            source=Endpoint(EndpointType(r.from_type), r.from_id, Anchor(r.from_anchor)),
            target=Endpoint(EndpointType(r.to_type), r.to_id, Anchor(r.to_anchor)),
            waypoints=tuple((p.x, p.y) for p in r.waypoints) if r.waypoints else None,
            label=r.label,
        )
        for r in schema.relations
    )
    tickets = tuple(
        VirtualTicket(
            id=t.id,
            title=t.title,
            issue_type=t.issue_type,
            assignee=t.assignee,
            description=t.description,
            created_at=t.created_at,
        )
        for t in schema.virtual_tickets
    )

    return CanvasDocument(
        cards=cards,
        groups=groups,
        relations=relations,
        virtual_tickets=tickets,
        objectives=tuple(schema.objectives),
        key_results=tuple(schema.key_results),
        updated_at=schema.updated_at,
        extra=dict(schema.model_extra or {}),
    )


def dump_document(document: CanvasDocument) -> Dict[str, Any]:
    """Convert a CanvasDocument back to the stored snapshot format."""
    schema = DocumentSchema(
        objectives=list(document.objectives),
        key_results=list(document.key_results),
        virtual_tickets=[
            VirtualTicketSchema(
                id=t.id,
                title=t.title,
                description=t.description,
                issue_type=t.issue_type,
                assignee=t.assignee,
                created_at=t.created_at,
            )
            for t in document.virtual_tickets
        ],
        links=[
            LinkSchema(
                id=c.id,
                key_result_id=c.key_result_id,
                type=c.kind.value,
                group_id=c.group_id,
                order=c.order,
                x=c.x,
                y=c.y,
                issue_key=c.issue_key,
                virtual_ticket_id=c.virtual_ticket_id,
            )
            for c in document.cards
        ],
        groups=[
            GroupSchema(
                id=g.id,
                key_result_id=g.key_result_id,
                parent_group_id=g.parent_group_id,
                title=g.title,
                order=g.order,
                x=g.x,
                y=g.y,
                w=g.w,
                h=g.h,
            )
            for g in document.groups
        ],
        relations=[
            RelationSchema(
                id=r.id,
                from_type=r.source.type.value,
                from_id=r.source.id,
                from_anchor=r.source.anchor.value,
                to_type=r.target.type.value,
                to_id=r.target.id,
                to_anchor=r.target.anchor.value,
                waypoints=[PointSchema(x=x, y=y) for x, y in r.waypoints]
                if r.waypoints
                else None,
                label=r.label,
            )
            for r in document.relations
        ],
        updated_at=document.updated_at,
    )
    data = schema.model_dump(by_alias=True, exclude_none=True)
    data.update(document.extra)
    return data


def loads(text: str) -> CanvasDocument:
    """Parse a JSON snapshot string."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DocumentError(f"Snapshot is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise DocumentError("Snapshot must be a JSON object")
    return load_document(data)


def dumps(document: CanvasDocument, indent: Optional[int] = 2) -> str:
    return json.dumps(dump_document(document), indent=indent, ensure_ascii=False)
