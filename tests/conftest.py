"""Pytest configuration and shared fixtures for okrcanvas tests."""

import itertools

import pytest

from okrcanvas.models import (
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

KR = "kr-1"


@pytest.fixture
def kr_id():
    """Key Result id used by the sample documents."""
    return KR


@pytest.fixture
def id_factory():
    """Deterministic id source: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def nested_groups():
    """Three levels of nesting: g1 > g2 > g3, plus a separate top-level g4."""
    return (
        Group(id="g1", key_result_id=KR, title="Platform", x=100, y=100, w=600, h=500),
        Group(id="g2", key_result_id=KR, title="Backend", x=20, y=20, w=400, h=300,
              parent_group_id="g1"),
        Group(id="g3", key_result_id=KR, title="API", x=10, y=10, w=300, h=200,
              parent_group_id="g2"),
        Group(id="g4", key_result_id=KR, title="Frontend", x=900, y=100, w=320, h=200),
    )


@pytest.fixture
def nested_document(nested_groups):
    """
    Document with nested groups, grouped and ungrouped cards and relations.

    c1 lives in g1, c2 in g3, c3 is ungrouped and c4 is a virtual card.
    r1 touches g2, r2 joins c1 and c3, r3 joins c3 and g4.
    """
    return CanvasDocument(
        cards=(
            Card(id="c1", key_result_id=KR, order=0, x=450, y=20, group_id="g1",
                 issue_key="OKR-1"),
            Card(id="c2", key_result_id=KR, order=1, x=10, y=10, group_id="g3",
                 issue_key="OKR-2"),
            Card(id="c3", key_result_id=KR, order=2, x=100, y=700, issue_key="OKR-3"),
            Card(id="c4", key_result_id=KR, kind=CardKind.VIRTUAL, order=3, x=900, y=400,
                 virtual_ticket_id="vt1"),
        ),
        groups=nested_groups,
        relations=(
            Relation(
                id="r1",
                source=Endpoint(EndpointType.GROUP, "g2", Anchor.RIGHT),
                target=Endpoint(EndpointType.GROUP, "g4", Anchor.LEFT),
            ),
            Relation(
                id="r2",
                source=Endpoint(EndpointType.LINK, "c1", Anchor.BOTTOM),
                target=Endpoint(EndpointType.LINK, "c3", Anchor.TOP),
            ),
            Relation(
                id="r3",
                source=Endpoint(EndpointType.LINK, "c3", Anchor.RIGHT),
                target=Endpoint(EndpointType.GROUP, "g4", Anchor.BOTTOM),
            ),
        ),
        virtual_tickets=(VirtualTicket(id="vt1", title="Spike", created_at="2024-01-01"),),
        key_results=({"id": KR, "title": "Ship the canvas"},),
    )


@pytest.fixture
def two_cards_document():
    """Two ungrouped cards 300px apart on the same row."""
    return CanvasDocument(
        cards=(
            Card(id="a", key_result_id=KR, x=0, y=0, issue_key="OKR-1"),
            Card(id="b", key_result_id=KR, order=1, x=500, y=0, issue_key="OKR-2"),
        ),
    )


@pytest.fixture
def sample_snapshot():
    """A stored snapshot in the persistence collaborator's format."""
    return {
        "objectives": [{"id": "o1", "title": "Grow"}],
        "keyResults": [{"id": KR, "objectiveId": "o1", "title": "Ship the canvas"}],
        "virtualTickets": [
            {
                "id": "vt1",
                "title": "Spike",
                "issueType": "task",
                "createdAt": "2024-01-01T00:00:00Z",
            }
        ],
        "links": [
            {"id": "c1", "keyResultId": KR, "type": "jira", "order": 0, "x": 16, "y": 16,
             "issueKey": "OKR-1"},
            {"id": "c2", "keyResultId": KR, "type": "virtual", "groupId": "g1", "order": 1,
             "x": 16, "y": 16, "virtualTicketId": "vt1"},
        ],
        "groups": [
            {"id": "g1", "keyResultId": KR, "title": "Backend", "order": 0, "x": 400, "y": 16,
             "w": 320, "h": 200},
        ],
        "relations": [
            {"id": "r1", "fromType": "link", "fromId": "c1", "fromAnchor": "right",
             "toType": "group", "toId": "g1", "toAnchor": "left",
             "waypoints": [{"x": 300, "y": 61}], "label": "blocks"},
        ],
        "updatedAt": "2024-01-02T00:00:00Z",
    }
