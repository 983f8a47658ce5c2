"""
Debug tracing infrastructure for okrcanvas.

This module provides data structures for capturing how every arrow on a
canvas was routed. When debug mode is enabled, the engine records one
decision per relation (which strategy produced its path and why) plus
snapshots of the intermediate stages of a scene recompute, including an
ASCII picture of any obstacle grid that was searched.

This is primarily useful for:
1. Debugging routing issues (understanding why an arrow bends where it does)
2. Understanding the recompute flow (seeing intermediate states)
3. Writing targeted tests (verifying specific routing decisions)

Usage:
    >>> engine = CanvasEngine("kr-1", document, debug=True)
    >>> scene = engine.compute_scene()
    >>> trace = engine.get_trace()
    >>> print(trace.summary())
    >>> trace.dump_to_file("route_trace.txt")

The trace captures:
- Recompute stages (obstacles collected, grid built, path found)
- Grid snapshots for searched routes
- One routing decision per relation with strategy and reason
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Strategy names recorded in RouteDecision.strategy
STRATEGY_DIRECT = "direct"
STRATEGY_CORRIDOR_CLEAR = "corridor_clear"
STRATEGY_ASTAR = "astar"
STRATEGY_FALLBACK_OUT_OF_BOUNDS = "fallback_out_of_bounds"
STRATEGY_FALLBACK_NO_PATH = "fallback_no_path"
STRATEGY_MANUAL = "manual"


@dataclass
class RouteDecision:
    """
    Record of how a single relation was routed.

    Attributes:
        relation_id: Id of the relation (may be empty for ad-hoc routes)
        strategy: One of the STRATEGY_* names
        reason: Short human-readable explanation
        grid_cols: Columns of the searched grid (0 if no grid was built)
        grid_rows: Rows of the searched grid (0 if no grid was built)
        waypoint_count: Number of points in the final polyline
    """

    relation_id: str
    strategy: str
    reason: str
    grid_cols: int = 0
    grid_rows: int = 0
    waypoint_count: int = 0

    def __str__(self) -> str:
        text = f"{self.relation_id or '<anonymous>'}: {self.strategy} [{self.reason}]"
        if self.grid_cols:
            text += f" grid={self.grid_cols}x{self.grid_rows}"
        return f"{text} points={self.waypoint_count}"


@dataclass
class TraceStage:
    """
    Snapshot of state at a recompute stage.

    Attributes:
        name: Name of this stage
        data: Dictionary of relevant data at this stage
        grid_snapshot: Optional list of ASCII grid rows
    """

    name: str
    data: Dict[str, Any]
    grid_snapshot: Optional[List[str]] = None

    def __str__(self) -> str:
        lines = [f"=== Stage: {self.name} ==="]
        for key, value in self.data.items():
            # Truncate long values
            str_val = str(value)
            if len(str_val) > 100:
                str_val = str_val[:100] + "..."
            lines.append(f"  {key}: {str_val}")
        if self.grid_snapshot:
            lines.append("  Grid preview (first 15 rows):")
            for row in self.grid_snapshot[:15]:
                lines.append(f"    |{row}|")
        return "\n".join(lines)


@dataclass
class RouteTrace:
    """
    Complete trace of a scene recompute.

    Attributes:
        stages: List of recompute stages with their data
        decisions: One routing decision per routed relation
        key_result_id: The canvas the trace belongs to
    """

    stages: List[TraceStage] = field(default_factory=list)
    decisions: List[RouteDecision] = field(default_factory=list)
    key_result_id: str = ""

    def add_stage(
        self,
        name: str,
        data: Dict[str, Any],
        grid_rows: Optional[List[str]] = None,
    ) -> None:
        """
        Add a stage snapshot.

        Args:
            name: Name of the stage (e.g., "obstacles")
            data: Dictionary of relevant data at this stage
            grid_rows: Optional ASCII rendering of an obstacle grid
        """
        snapshot = list(grid_rows) if grid_rows is not None else None
        self.stages.append(TraceStage(name, data.copy(), snapshot))

    def add_decision(self, decision: RouteDecision) -> None:
        self.decisions.append(decision)

    def get_stage(self, name: str) -> Optional[TraceStage]:
        """Get a specific stage by name."""
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def get_decision(self, relation_id: str) -> Optional[RouteDecision]:
        """Get the most recent decision recorded for a relation."""
        for decision in reversed(self.decisions):
            if decision.relation_id == relation_id:
                return decision
        return None

    def get_decisions_by_strategy(self, strategy: str) -> List[RouteDecision]:
        return [d for d in self.decisions if d.strategy == strategy]

    def clear(self) -> None:
        self.stages.clear()
        self.decisions.clear()

    def summary(self) -> str:
        """
        Generate a human-readable summary of the trace.

        Returns a string with the stage overview and decision counts per
        strategy.
        """
        lines = [
            "=" * 60,
            "ROUTE TRACE SUMMARY",
            "=" * 60,
            "",
            f"Key result: {self.key_result_id or '-'}",
            "",
            f"Stages: {len(self.stages)}",
        ]

        for stage in self.stages:
            has_grid = "+" if stage.grid_snapshot else "-"
            lines.append(f"  [{has_grid}] {stage.name}")

        lines.extend(["", f"Routed relations: {len(self.decisions)}", ""])

        strategy_counts: Dict[str, int] = {}
        for d in self.decisions:
            strategy_counts[d.strategy] = strategy_counts.get(d.strategy, 0) + 1

        lines.append("Decisions by strategy:")
        for strategy, count in sorted(strategy_counts.items(), key=lambda x: -x[1]):
            lines.append(f"  {strategy}: {count}")

        return "\n".join(lines)

    def dump(self) -> str:
        """Generate a complete human-readable dump of the trace."""
        lines = [self.summary(), "", "=" * 60, "DETAILED TRACE", "=" * 60, ""]

        lines.append("STAGES:")
        lines.append("-" * 40)
        for stage in self.stages:
            lines.append(str(stage))
            lines.append("")

        lines.append("DECISIONS:")
        lines.append("-" * 40)
        for d in self.decisions:
            lines.append(str(d))

        return "\n".join(lines)

    def dump_to_file(self, filename: str) -> None:
        """Write the complete trace dump to a file."""
        with open(filename, "w", encoding="utf-8") as f:
            f.write(self.dump())
