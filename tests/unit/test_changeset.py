"""Tests for automation change-sets."""

import json

import pytest

from okrcanvas.changeset import (
    CanvasChanges,
    GroupChange,
    RelationChange,
    build_canvas_context,
    merge_canvas_changes,
    parse_canvas_response,
    validate_canvas_changes,
)
from okrcanvas.models import Anchor, CanvasDocument, CardKind, EndpointType, IssueInfo

NOW = "2024-05-01T12:00:00+00:00"


class TestParseCanvasResponse:
    """Tests for parse_canvas_response."""

    def test_fenced_block(self):
        """Test extracting a ```json block from surrounding prose."""
        raw = (
            "Here is the plan:\n```json\n"
            '{"groups": [{"action": "add", "title": "Backend"}]}\n'
            "```\nLet me know."
        )
        changes = parse_canvas_response(raw)
        assert [g.title for g in changes.groups] == ["Backend"]

    def test_outermost_braces(self):
        """Test extracting an unfenced object."""
        raw = 'Sure! {"relations": [{"action": "delete", "id": "r1"}]} Done.'
        changes = parse_canvas_response(raw)
        assert changes.relations[0].id == "r1"

    @pytest.mark.parametrize("raw", ["no json here", "{not json}", "[1, 2]", "{}"])
    def test_unusable(self, raw):
        """Test that unusable answers yield None."""
        assert parse_canvas_response(raw) is None

    def test_invalid_entries_dropped(self):
        """Test that malformed entries are filtered individually."""
        data = {
            "groups": [
                {"action": "add"},
                {"action": "update"},
                {"action": "rename", "id": "g1"},
                {"action": "add", "title": "Kept"},
            ],
            "links": [{"action": "update"}],
            "relations": [{"action": "add", "fromId": "a"}],
        }
        changes = parse_canvas_response(json.dumps(data))
        assert len(changes.groups) == 1
        assert changes.links == []
        assert changes.relations == []

    def test_all_invalid(self):
        """Test that a change-set without valid entries is None."""
        assert validate_canvas_changes({"groups": [{"action": "add"}]}) is None
        assert validate_canvas_changes("not a dict") is None


class TestAnchorCoercion:
    """Tests for relation anchor defaults."""

    def test_missing_anchors(self):
        """Test the bottom -> top default."""
        change = RelationChange(action="add", from_id="a", to_id="b")
        assert change.resolved_from_anchor == Anchor.BOTTOM
        assert change.resolved_to_anchor == Anchor.TOP

    def test_invalid_anchor(self):
        """Test that unknown anchor names fall back to the defaults."""
        change = RelationChange.model_validate(
            {"action": "add", "fromId": "a", "toId": "b", "fromAnchor": "diagonal",
             "toAnchor": 3}
        )
        assert change.resolved_from_anchor == Anchor.BOTTOM
        assert change.resolved_to_anchor == Anchor.TOP

    def test_valid_anchor(self):
        """Test that valid names are kept."""
        change = RelationChange.model_validate(
            {"action": "add", "fromId": "a", "toId": "b", "fromAnchor": "right",
             "toAnchor": "left"}
        )
        assert change.resolved_from_anchor == Anchor.RIGHT
        assert change.resolved_to_anchor == Anchor.LEFT


class TestMergeCanvasChanges:
    """Tests for merge_canvas_changes."""

    def test_temp_ids_resolved(self, nested_document, kr_id, id_factory):
        """Test creating a group, a ticket in it and a relation in one pass."""
        changes = validate_canvas_changes(
            {
                "groups": [{"action": "add", "id": "tmp-g", "title": "Research"}],
                "virtualTickets": [
                    {"action": "add", "id": "tmp-t", "title": "Survey", "groupId": "tmp-g"}
                ],
                "relations": [
                    {"action": "add", "fromId": "tmp-g", "toId": "c3", "label": "informs"},
                    {"action": "add", "fromId": "missing", "toId": "c3"},
                ],
            }
        )
        doc = merge_canvas_changes(nested_document, kr_id, changes, id_factory, now=NOW)

        new_group = doc.group("id-1")
        assert new_group.title == "Research"
        assert new_group.parent_group_id is None

        ticket = doc.virtual_tickets[-1]
        assert (ticket.id, ticket.title, ticket.created_at) == ("id-2", "Survey", NOW)

        card = doc.card("id-3")
        assert card.kind == CardKind.VIRTUAL
        assert card.virtual_ticket_id == "id-2"
        assert card.group_id == "id-1"

        relation = doc.relation("id-4")
        assert relation.source.type == EndpointType.GROUP
        assert relation.source.id == "id-1"
        assert relation.target.id == "c3"
        assert relation.label == "informs"
        assert len(doc.relations) == 4
        assert doc.updated_at == NOW

    def test_link_update_converts_to_local(self, nested_document, kr_id):
        """Test that absolute change-set positions become group-local."""
        changes = validate_canvas_changes(
            {"links": [{"action": "update", "id": "c3", "x": 150, "y": 200, "groupId": "g1"}]}
        )
        doc = merge_canvas_changes(nested_document, kr_id, changes, now=NOW)
        card = doc.card("c3")
        assert (card.x, card.y, card.group_id) == (50, 64, "g1")

    def test_link_update_keeps_position(self, nested_document, kr_id):
        """Test moving a card to the canvas root without coordinates."""
        changes = validate_canvas_changes(
            {"links": [{"action": "update", "id": "c1", "groupId": None}]}
        )
        doc = merge_canvas_changes(nested_document, kr_id, changes, now=NOW)
        card = doc.card("c1")
        assert (card.x, card.y, card.group_id) == (550, 156, None)

    def test_group_delete_cascades(self, nested_document, kr_id):
        """Test that a change-set delete removes the subtree and its relations."""
        changes = validate_canvas_changes({"groups": [{"action": "delete", "id": "g1"}]})
        doc = merge_canvas_changes(nested_document, kr_id, changes, now=NOW)
        assert [g.id for g in doc.groups] == ["g4"]
        assert [r.id for r in doc.relations] == ["r2", "r3"]

    def test_group_update_rejects_cycle(self, nested_document, kr_id):
        """Test that a group cannot be moved into its own descendant."""
        changes = validate_canvas_changes(
            {"groups": [{"action": "update", "id": "g1", "parentGroupId": "g3"}]}
        )
        doc = merge_canvas_changes(nested_document, kr_id, changes, now=NOW)
        assert doc.group("g1") == nested_document.group("g1")

    def test_group_update_rename(self, nested_document, kr_id):
        """Test renaming and resizing without moving."""
        changes = validate_canvas_changes(
            {"groups": [{"action": "update", "id": "g2", "title": "Services", "w": 450}]}
        )
        doc = merge_canvas_changes(nested_document, kr_id, changes, now=NOW)
        g2 = doc.group("g2")
        assert (g2.title, g2.w, g2.x, g2.y, g2.parent_group_id) == ("Services", 450, 20, 20, "g1")

    def test_subgroup_past_max_depth_skipped(self, nested_document, kr_id, id_factory):
        """Test that a group added under a depth-3 parent is skipped."""
        changes = validate_canvas_changes(
            {"groups": [{"action": "add", "title": "Deep", "parentGroupId": "g3"}]}
        )
        doc = merge_canvas_changes(nested_document, kr_id, changes, id_factory, now=NOW)
        assert len(doc.groups) == 4

    def test_duplicate_and_self_relations_skipped(self, nested_document, kr_id):
        """Test that duplicate and self relations are not added."""
        changes = CanvasChanges(
            relations=[
                RelationChange(action="add", from_id="c3", to_id="c1"),
                RelationChange(action="add", from_id="c2", to_id="c2"),
            ]
        )
        doc = merge_canvas_changes(nested_document, kr_id, changes, now=NOW)
        assert doc.relations == nested_document.relations

    def test_relation_delete(self, nested_document, kr_id):
        """Test deleting an existing and ignoring a missing relation."""
        changes = CanvasChanges(
            relations=[
                RelationChange(action="delete", id="r2"),
                RelationChange(action="delete", id="r9"),
            ]
        )
        doc = merge_canvas_changes(nested_document, kr_id, changes, now=NOW)
        assert [r.id for r in doc.relations] == ["r1", "r3"]

    def test_group_add_with_position(self, kr_id, id_factory):
        """Test an explicit absolute position for a new group."""
        changes = CanvasChanges(groups=[GroupChange(action="add", title="Pinned", x=40, y=60)])
        doc = merge_canvas_changes(CanvasDocument(), kr_id, changes, id_factory, now=NOW)
        pinned = doc.group("id-1")
        assert (pinned.x, pinned.y, pinned.w, pinned.h) == (40, 60, 320, 200)


class TestBuildCanvasContext:
    """Tests for build_canvas_context."""

    def test_context(self, nested_document, kr_id):
        """Test the summary handed to the automation collaborator."""
        issues = {"OKR-1": IssueInfo(key="OKR-1", summary="Login flow", status="Done",
                                     status_category="done", issue_type="Story")}
        context = build_canvas_context(nested_document, kr_id, issues)

        assert context["krTitle"] == "Ship the canvas"
        links = {link["id"]: link for link in context["links"]}
        assert links["c1"]["title"] == "Login flow"
        assert links["c1"]["status"] == "Done"
        assert (links["c1"]["x"], links["c1"]["y"]) == (550, 156)
        assert links["c2"]["title"] == "OKR-2"
        assert links["c4"]["title"] == "Spike"
        assert "groupId" not in links["c3"]

        groups = {g["id"]: g for g in context["groups"]}
        assert (groups["g2"]["x"], groups["g2"]["y"]) == (120, 156)
        assert "parentGroupId" not in groups["g1"]

        assert len(context["relations"]) == 3
        assert context["virtualTickets"] == [{"id": "vt1", "title": "Spike", "issueType": "task"}]

    def test_other_kr_is_empty(self, nested_document):
        """Test that another Key Result sees nothing."""
        context = build_canvas_context(nested_document, "kr-2")
        assert context["links"] == []
        assert context["groups"] == []
        assert context["relations"] == []
        assert context["krTitle"] == ""
