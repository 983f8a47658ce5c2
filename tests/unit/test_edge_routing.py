"""Tests for obstacle-avoiding edge routing."""

import networkx as nx
import pytest

from okrcanvas.edge_routing import (
    ObstacleGrid,
    RoutingConfig,
    build_obstacle_grid,
    corridor_is_clear,
    find_grid_path,
    route_edge,
    segment_intersects_rect,
)
from okrcanvas.models import Anchor, Rect
from okrcanvas.tracer import (
    STRATEGY_ASTAR,
    STRATEGY_CORRIDOR_CLEAR,
    STRATEGY_DIRECT,
    STRATEGY_FALLBACK_NO_PATH,
    RouteTrace,
)

SOURCE = Rect(0, 0, 100, 60)
TARGET = Rect(400, 0, 100, 60)
BLOCKER = Rect(200, 0, 100, 60)


def assert_orthogonal(points):
    for a, b in zip(points, points[1:]):
        assert a[0] == b[0] or a[1] == b[1], f"diagonal segment {a} -> {b}"


class TestRoutingConfig:
    """Tests for RoutingConfig validation."""

    def test_defaults(self):
        """Test the default routing parameters."""
        config = RoutingConfig()
        assert config.grid_size == 10
        assert config.obstacle_padding == 12
        assert config.bounds_padding == 50
        assert config.corner_radius == 8
        assert config.stub_length == 20

    def test_rejects_non_positive_grid(self):
        """Test that a zero grid size is refused."""
        with pytest.raises(ValueError, match="grid_size"):
            RoutingConfig(grid_size=0)

    def test_rejects_negative_padding(self):
        """Test that negative paddings are refused."""
        with pytest.raises(ValueError, match="obstacle_padding"):
            RoutingConfig(obstacle_padding=-1)


class TestObstacleGrid:
    """Tests for the occupancy grid."""

    def test_cell_mapping(self):
        """Test point -> cell and cell -> centre."""
        grid = ObstacleGrid(-50, -50, 20, 20, 10)
        assert grid.cell_of((0, 0)) == (5, 5)
        assert grid.cell_of((-51, 0)) == (-1, 5)
        assert grid.cell_center((5, 5)) == (5, 5)

    def test_block_rect(self):
        """Test that every overlapped cell is blocked."""
        grid = ObstacleGrid(0, 0, 10, 10, 10)
        grid.block_rect(Rect(15, 15, 10, 10))
        assert grid.blocked == {(1, 1), (2, 1), (1, 2), (2, 2)}

    def test_block_rect_clipped_to_grid(self):
        """Test that obstacles larger than the grid do not add outside cells."""
        grid = ObstacleGrid(0, 0, 3, 3, 10)
        grid.block_rect(Rect(-100, -100, 1000, 1000))
        assert len(grid.blocked) == 9
        assert all(grid.in_bounds(c) for c in grid.blocked)

    def test_start_and_end_forced_free(self):
        """Test that endpoint cells are unblocked even inside obstacles."""
        grid = build_obstacle_grid((15, 15), (85, 85), [Rect(0, 0, 100, 100)])
        assert grid.is_free(grid.cell_of((15, 15)))
        assert grid.is_free(grid.cell_of((85, 85)))

    def test_bounds_cover_points_and_obstacles(self):
        """Test the grid extent including bounds padding."""
        grid = build_obstacle_grid((120, 30), (380, 30), [BLOCKER])
        assert (grid.offset_x, grid.offset_y) == (70, -50)
        assert (grid.cols, grid.rows) == (36, 16)

    def test_to_ascii(self):
        """Test the text rendering of a grid with a path."""
        grid = ObstacleGrid(0, 0, 4, 2, 10)
        grid.blocked.add((1, 1))
        rows = grid.to_ascii(path=[(0, 0), (1, 0), (2, 0)], start=(0, 0), end=(2, 0))
        assert rows == ["S*E.", ".#.."]


class TestGeometryHelpers:
    """Tests for segment and corridor checks."""

    def test_segment_through_rect(self):
        """Test a horizontal segment crossing a rect."""
        assert segment_intersects_rect((0, 30), (500, 30), BLOCKER)

    def test_segment_along_border(self):
        """Test that grazing an edge is not an intersection."""
        assert not segment_intersects_rect((0, 0), (500, 0), BLOCKER)
        assert not segment_intersects_rect((200, -10), (200, 100), BLOCKER)

    def test_segment_beside_rect(self):
        """Test a vertical segment that misses."""
        assert not segment_intersects_rect((150, -10), (150, 100), BLOCKER)

    def test_corridor(self):
        """Test corridor clearance with padding."""
        assert not corridor_is_clear((120, 30), (380, 30), [BLOCKER], 12)
        assert corridor_is_clear((120, 30), (380, 30), [Rect(200, 100, 50, 50)], 12)
        # within the padding band below the corridor line
        assert not corridor_is_clear((120, 30), (380, 30), [Rect(200, 40, 50, 50)], 12)

    def test_find_grid_path_no_path(self):
        """Test that a walled-in cell raises NetworkXNoPath."""
        grid = ObstacleGrid(0, 0, 3, 3, 10)
        grid.blocked.update({(1, 0), (0, 1), (1, 1)})
        with pytest.raises(nx.NetworkXNoPath):
            find_grid_path(grid, (0, 0), (2, 2))

    def test_find_grid_path_is_4_connected(self):
        """Test that consecutive path cells share an edge."""
        grid = ObstacleGrid(0, 0, 5, 5, 10)
        cells = find_grid_path(grid, (0, 0), (4, 4))
        assert len(cells) == 9
        for a, b in zip(cells, cells[1:]):
            assert abs(a[0] - b[0]) + abs(a[1] - b[1]) == 1


class TestRouteEdge:
    """Tests for route_edge."""

    def test_no_obstacles(self):
        """Test the direct case."""
        edge = route_edge(SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [])
        assert edge.routed is False
        assert edge.path.startswith("M ")
        assert edge.path == "M 100 30 L 400 30"
        assert edge.waypoints == [(100, 30), (400, 30)]
        assert (edge.start, edge.end) == ((100, 30), (400, 30))

    def test_clear_corridor(self):
        """Test that far-away obstacles skip the grid search."""
        trace = RouteTrace()
        edge = route_edge(
            SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [Rect(1000, 1000, 50, 50)],
            trace=trace, relation_id="r1",
        )
        assert edge.routed is False
        assert trace.get_decision("r1").strategy == STRATEGY_CORRIDOR_CLEAR

    def test_routes_around_obstacle(self):
        """Test a blocker between two anchors 300px apart."""
        edge = route_edge(SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [BLOCKER])
        assert edge.routed is True
        assert edge.waypoints[0] == (100, 30)
        assert edge.waypoints[-1] == (400, 30)
        for x, y in edge.waypoints[1:-1]:
            assert not BLOCKER.contains_point_strict(x, y)
        for a, b in zip(edge.waypoints, edge.waypoints[1:]):
            assert not segment_intersects_rect(a, b, BLOCKER)
        assert_orthogonal(edge.waypoints)
        assert edge.path.startswith("M 100 30")

    def test_routed_path_keeps_clearance(self):
        """Test that no segment enters the padded obstacle."""
        config = RoutingConfig()
        edge = route_edge(SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [BLOCKER], config)
        padded = BLOCKER.expanded(config.obstacle_padding)
        for a, b in zip(edge.waypoints, edge.waypoints[1:]):
            assert not segment_intersects_rect(a, b, padded)

    @pytest.mark.parametrize("shift", [0, 3, 5, 7])
    @pytest.mark.parametrize("blocker_y", [-10, 0, 15])
    def test_routed_path_keeps_exact_stubs(self, shift, blocker_y):
        """Test that the path leaves and enters through the exact stub points."""
        source = Rect(shift, 0, 100, 60)
        target = Rect(shift + 400, 0, 100, 60)
        blocker = Rect(shift + 200, blocker_y, 100, 60)
        edge = route_edge(source, Anchor.RIGHT, target, Anchor.LEFT, [blocker])
        assert edge.routed is True
        assert edge.waypoints[0] == (shift + 100, 30)
        assert edge.waypoints[1] == (shift + 120, 30)
        assert edge.waypoints[-2] == (shift + 380, 30)
        assert edge.waypoints[-1] == (shift + 400, 30)
        assert_orthogonal(edge.waypoints)
        for a, b in zip(edge.waypoints, edge.waypoints[1:]):
            assert not segment_intersects_rect(a, b, blocker)

    def test_routed_path_has_few_bends(self):
        """Test that grid staircases were collapsed."""
        edge = route_edge(SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [BLOCKER])
        assert len(edge.waypoints) <= 8

    def test_no_path_falls_back(self):
        """Test that a walled-in stub degrades to the orthogonal fallback."""
        trace = RouteTrace()
        cage = Rect(370, 20, 20, 20)
        edge = route_edge(
            SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [cage], trace=trace, relation_id="r2"
        )
        assert edge.routed is False
        assert edge.waypoints[0] == (100, 30)
        assert edge.waypoints[-1] == (400, 30)
        assert trace.get_decision("r2").strategy == STRATEGY_FALLBACK_NO_PATH

    def test_trace_records_grid(self):
        """Test the trace of a grid search."""
        trace = RouteTrace()
        route_edge(
            SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [BLOCKER], trace=trace, relation_id="r3"
        )
        decision = trace.get_decision("r3")
        assert decision.strategy == STRATEGY_ASTAR
        assert decision.grid_cols == 36
        stage = trace.get_stage("grid:r3")
        assert stage is not None
        assert any("S" in row for row in stage.grid_snapshot)
        assert any("#" in row for row in stage.grid_snapshot)

    def test_direct_decision(self):
        """Test the trace of an unobstructed arrow."""
        trace = RouteTrace()
        route_edge(SOURCE, "right", TARGET, "left", [], trace=trace, relation_id="r4")
        assert trace.get_decisions_by_strategy(STRATEGY_DIRECT)[0].relation_id == "r4"

    def test_deterministic(self):
        """Test that routing the same input twice gives the same path."""
        first = route_edge(SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [BLOCKER])
        second = route_edge(SOURCE, Anchor.RIGHT, TARGET, Anchor.LEFT, [BLOCKER])
        assert first.path == second.path
