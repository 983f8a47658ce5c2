"""
okrcanvas - OKR canvas relationship and layout engine

Geometry, arrow routing and interaction state for a Key Result canvas:
cards and nested groups positioned freely, connected by arrows that route
around obstacles, and moved by drag-and-drop with group reparenting.

Example:
    >>> from okrcanvas import Anchor, CanvasEngine, Endpoint, EndpointType
    >>> engine = CanvasEngine("kr-1")
    >>> a = engine.add_card(issue_key="OKR-1")
    >>> b = engine.add_card(issue_key="OKR-2")
    >>> engine.add_relation(
    ...     Endpoint(EndpointType.LINK, a.id, Anchor.RIGHT),
    ...     Endpoint(EndpointType.LINK, b.id, Anchor.LEFT),
    ... )
    >>> scene = engine.compute_scene()
    >>> print(scene.arrows[0].path)

Debug Mode Example:
    >>> engine = CanvasEngine("kr-1", debug=True)
    >>> scene = engine.compute_scene()
    >>> trace = engine.get_trace()
    >>> print(trace.summary())
"""

from .anchors import find_nearest_anchor, get_anchor_offset, get_anchor_point, suggest_anchor_pair
from .changeset import CanvasChanges, merge_canvas_changes, parse_canvas_response
from .coordinates import get_group_depth, to_absolute_coords, to_local_coords
from .debug import GridInspector, describe_path, visual_diff
from .document import dump_document, dumps, load_document, loads
from .drag import DragEngine, DragItemType, DragState, DropResult
from .edge_routing import ObstacleGrid, RoutedEdge, RoutingConfig, route_edge
from .engine import CanvasEngine
from .errors import CanvasError, DocumentError, DragSessionError, UnknownElementError
from .export import SceneExporter
from .models import (
    Anchor,
    CanvasDocument,
    Card,
    CardKind,
    Endpoint,
    EndpointType,
    Group,
    IssueInfo,
    Rect,
    Relation,
    VirtualTicket,
)
from .orthogonal import orthogonal_route
from .path_simplify import reduce_orthogonal_bends, simplify_path, waypoints_to_svg_path
from .placement import assign_default_position, hit_test_group, rects_overlap
from .relations import ConnectController, relation_exists
from .scene import ArrowPath, Scene, compute_scene
from .tracer import RouteDecision, RouteTrace, TraceStage
from .viewport import Viewport
from .waypoints import find_best_insert_index

__version__ = "0.1.0"

__all__ = [
    # Main API
    "CanvasEngine",
    # Model
    "Anchor",
    "CanvasDocument",
    "Card",
    "CardKind",
    "Endpoint",
    "EndpointType",
    "Group",
    "IssueInfo",
    "Rect",
    "Relation",
    "VirtualTicket",
    # Geometry
    "get_anchor_point",
    "get_anchor_offset",
    "find_nearest_anchor",
    "suggest_anchor_pair",
    "to_absolute_coords",
    "to_local_coords",
    "get_group_depth",
    "rects_overlap",
    "assign_default_position",
    "hit_test_group",
    # Routing
    "RoutingConfig",
    "RoutedEdge",
    "ObstacleGrid",
    "route_edge",
    "orthogonal_route",
    "simplify_path",
    "reduce_orthogonal_bends",
    "waypoints_to_svg_path",
    "find_best_insert_index",
    # Interaction
    "DragEngine",
    "DragItemType",
    "DragState",
    "DropResult",
    "ConnectController",
    "relation_exists",
    "Viewport",
    # Scene
    "Scene",
    "ArrowPath",
    "compute_scene",
    # Persistence and change-sets
    "load_document",
    "dump_document",
    "loads",
    "dumps",
    "CanvasChanges",
    "parse_canvas_response",
    "merge_canvas_changes",
    # Errors
    "CanvasError",
    "DocumentError",
    "DragSessionError",
    "UnknownElementError",
    # Debug/Tracing (for development and debugging)
    "RouteTrace",
    "RouteDecision",
    "TraceStage",
    "GridInspector",
    "describe_path",
    "visual_diff",
    "SceneExporter",
]
