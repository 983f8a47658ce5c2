"""
Exception hierarchy for okrcanvas.

Geometry and routing functions never raise for geometric reasons; these
exceptions are raised only at API seams where the caller asked for
something that cannot be done.
"""


class CanvasError(Exception):
    """Base class for all canvas engine errors."""

    pass


class DocumentError(CanvasError):
    """Raised when a document snapshot cannot be loaded."""

    pass


class DragSessionError(CanvasError):
    """Raised when a pointer event does not fit the current drag state."""

    pass


class UnknownElementError(CanvasError, KeyError):
    """Raised when an explicit operation names an id that does not exist."""

    def __init__(self, kind: str, element_id: str):
        self.kind = kind
        self.element_id = element_id
        super().__init__(f"Unknown {kind}: {element_id}")

    def __str__(self) -> str:
        return f"Unknown {self.kind}: {self.element_id}"
