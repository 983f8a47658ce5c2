"""Tests for scene computation and recompute scheduling."""

from dataclasses import replace

from okrcanvas.models import (
    Anchor,
    Card,
    Endpoint,
    EndpointType,
    Group,
    IssueInfo,
    Rect,
    Relation,
)
from okrcanvas.scene import (
    UNKNOWN_STATUS_COLOR,
    VIRTUAL_CARD_COLOR,
    RecalcScheduler,
    Scene,
    collect_obstacles,
    compute_scene,
    document_rect_lookup,
    status_color,
)
from okrcanvas.tracer import STRATEGY_MANUAL, RouteTrace


class TestStatusColor:
    """Tests for status_color."""

    def test_known_categories(self):
        """Test the three status categories."""
        assert status_color("new") == "#9CA3AF"
        assert status_color("indeterminate") == "#3B82F6"
        assert status_color("done") == "#22C55E"

    def test_unknown_category(self):
        """Test that unknown or missing categories are grey."""
        assert status_color("blocked") == UNKNOWN_STATUS_COLOR
        assert status_color(None) == UNKNOWN_STATUS_COLOR


class TestComputeScene:
    """Tests for compute_scene."""

    def test_cards_and_colors(self, nested_document, kr_id):
        """Test card rectangles, titles and colours."""
        issues = {"OKR-1": IssueInfo(key="OKR-1", summary="Login", status_category="done")}
        scene = compute_scene(nested_document, kr_id, issues=issues)

        assert [c.id for c in scene.cards] == ["c1", "c2", "c3", "c4"]
        c1 = scene.card("c1")
        assert c1.rect == Rect(550, 156, 200, 90)
        assert c1.title == "Login"
        assert c1.color == "#22C55E"
        assert scene.card("c2").rect == Rect(140, 248, 200, 90)
        assert scene.card("c3").color == UNKNOWN_STATUS_COLOR
        assert scene.card("c3").title == "OKR-3"
        assert scene.card("c4").color == VIRTUAL_CARD_COLOR
        assert scene.card("c4").title == "Spike"

    def test_groups_parents_first(self, nested_document, kr_id):
        """Test group order and depth."""
        scene = compute_scene(nested_document, kr_id)
        assert [(g.id, g.depth) for g in scene.groups] == [
            ("g1", 1),
            ("g2", 2),
            ("g3", 3),
            ("g4", 1),
        ]
        g3 = scene.group("g3")
        assert g3.rect == Rect(130, 202, 300, 200)
        assert g3.content_rect == Rect(130, 238, 300, 164)

    def test_one_arrow_per_relation(self, nested_document, kr_id):
        """Test that every in-KR relation gets an arrow."""
        scene = compute_scene(nested_document, kr_id)
        assert [a.relation_id for a in scene.arrows] == ["r1", "r2", "r3"]
        for arrow in scene.arrows:
            assert arrow.path.startswith("M ")
            assert arrow.waypoints[0] == arrow.start
            assert arrow.waypoints[-1] == arrow.end

    def test_arrow_endpoints_on_anchors(self, nested_document, kr_id):
        """Test that arrows start and end at the anchor midpoints."""
        scene = compute_scene(nested_document, kr_id)
        r2 = scene.arrow("r2")
        assert r2.start == (650, 246)
        assert r2.end == (200, 700)

    def test_other_kr_relations_skipped(self, nested_document, kr_id):
        """Test that relations to another KR's elements are not drawn."""
        foreign = Card(id="x", key_result_id="kr-2", x=0, y=0, issue_key="OTHER-1")
        cross = Relation(
            id="cross",
            source=Endpoint(EndpointType.LINK, "c3", Anchor.LEFT),
            target=Endpoint(EndpointType.LINK, "x", Anchor.RIGHT),
        )
        doc = replace(
            nested_document,
            cards=nested_document.cards + (foreign,),
            relations=nested_document.relations + (cross,),
        )
        scene = compute_scene(doc, kr_id)
        assert scene.arrow("cross") is None
        assert scene.card("x") is None

    def test_manual_waypoints(self, nested_document, kr_id):
        """Test that user waypoints are followed and flagged."""
        doc = replace(
            nested_document,
            relations=tuple(
                replace(r, waypoints=((400, 650),)) if r.id == "r2" else r
                for r in nested_document.relations
            ),
        )
        trace = RouteTrace()
        scene = compute_scene(doc, kr_id, trace=trace)
        r2 = scene.arrow("r2")
        assert r2.manual is True
        assert r2.routed is False
        assert (400, 650) in r2.waypoints
        assert trace.get_decision("r2").strategy == STRATEGY_MANUAL

    def test_trace_stages(self, nested_document, kr_id):
        """Test the summary stages of a traced recompute."""
        trace = RouteTrace()
        compute_scene(nested_document, kr_id, trace=trace)
        assert trace.get_stage("elements").data["cards"] == 4
        assert trace.get_stage("arrows").data["arrows"] == 3
        assert len(trace.decisions) == 3

    def test_custom_rect_lookup(self, two_cards_document, kr_id):
        """Test that an injected lookup replaces the stored geometry."""
        measured = {"a": Rect(0, 0, 100, 40), "b": Rect(300, 0, 100, 40)}

        def lookup(endpoint_type, element_id):
            return measured.get(element_id)

        doc = replace(
            two_cards_document,
            relations=(
                Relation(
                    id="r",
                    source=Endpoint(EndpointType.LINK, "a", Anchor.RIGHT),
                    target=Endpoint(EndpointType.LINK, "b", Anchor.LEFT),
                ),
            ),
        )
        scene = compute_scene(doc, kr_id, rect_lookup=lookup)
        assert scene.card("a").rect == Rect(0, 0, 100, 40)
        assert scene.arrow("r").path == "M 100 20 L 300 20"

    def test_missing_rect_skips_arrow(self, two_cards_document, kr_id):
        """Test that an endpoint without a rectangle produces no arrow."""
        doc = replace(
            two_cards_document,
            relations=(
                Relation(
                    id="r",
                    source=Endpoint(EndpointType.LINK, "a", Anchor.RIGHT),
                    target=Endpoint(EndpointType.LINK, "b", Anchor.LEFT),
                ),
            ),
        )
        scene = compute_scene(doc, kr_id, rect_lookup=lambda t, i: None)
        assert scene.arrows == []
        assert scene.cards == []

    def test_item_rects(self, nested_document, kr_id):
        """Test the fit-to-view rectangles."""
        assert len(compute_scene(nested_document, kr_id).item_rects()) == 8


class TestCollectObstacles:
    """Tests for collect_obstacles."""

    def test_excludes_endpoints_and_containers(self, nested_document, kr_id):
        """Test that the endpoints and their enclosing groups are skipped."""
        lookup = document_rect_lookup(nested_document)
        r1 = nested_document.relation("r1")
        obstacles = collect_obstacles(nested_document, kr_id, r1, lookup)

        # g2 -> g4: g1 encloses g2, g3 is inside g2 and still an obstacle
        assert Rect(100, 100, 600, 500) not in obstacles
        assert Rect(900, 100, 320, 200) not in obstacles
        assert Rect(130, 202, 300, 200) in obstacles
        assert len(obstacles) == 5

    def test_card_endpoint_containers(self, nested_document, kr_id):
        """Test a card nested three levels deep."""
        lookup = document_rect_lookup(nested_document)
        relation = Relation(
            id="deep",
            source=Endpoint(EndpointType.LINK, "c2", Anchor.RIGHT),
            target=Endpoint(EndpointType.LINK, "c3", Anchor.TOP),
        )
        obstacles = collect_obstacles(nested_document, kr_id, relation, lookup)
        # c1, c4 and g4 remain
        assert len(obstacles) == 3


class TestRecalcScheduler:
    """Tests for RecalcScheduler."""

    def test_coalesces_requests(self):
        """Test that many requests cause one recompute."""
        scheduler = RecalcScheduler(Scene)
        for _ in range(5):
            scheduler.request()
        first = scheduler.on_frame()
        assert isinstance(first, Scene)
        assert scheduler.compute_count == 1

    def test_idle_frame_reuses_scene(self):
        """Test that a frame without requests returns the last scene."""
        scheduler = RecalcScheduler(Scene)
        assert scheduler.on_frame() is None
        scheduler.request()
        first = scheduler.on_frame()
        assert scheduler.on_frame() is first
        assert scheduler.compute_count == 1

    def test_group_rect_from_lookup(self, kr_id):
        """Test that a group box uses the lookup rectangle when given."""
        from okrcanvas.models import CanvasDocument

        doc = CanvasDocument(groups=(Group(id="g", key_result_id=kr_id, x=0, y=0),))
        scene = compute_scene(doc, kr_id, rect_lookup=lambda t, i: Rect(5, 5, 50, 50))
        assert scene.group("g").rect == Rect(5, 5, 50, 50)
