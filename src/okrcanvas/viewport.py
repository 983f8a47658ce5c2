"""
Viewport zoom and pan.

The canvas is drawn scaled by ``zoom`` after being translated by ``pan``
(in canvas units), so a canvas point maps to the screen as
``screen = (canvas + pan) * zoom``.
"""

from dataclasses import dataclass
from typing import Sequence

from .models import MAX_ZOOM, MIN_ZOOM, Point, Rect

# Screen padding kept around the content by fit_to_view
FIT_PADDING = 60

# Zoom change per wheel delta unit
WHEEL_ZOOM_FACTOR = 0.001

# Zoom change of the +/- buttons
ZOOM_STEP = 0.1


def clamp_zoom(zoom: float) -> float:
    return min(MAX_ZOOM, max(MIN_ZOOM, zoom))


@dataclass
class Viewport:
    """Current zoom factor and pan offset."""

    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def screen_to_canvas(self, screen_x: float, screen_y: float) -> Point:
        return (screen_x / self.zoom - self.pan_x, screen_y / self.zoom - self.pan_y)

    def canvas_to_screen(self, canvas_x: float, canvas_y: float) -> Point:
        return ((canvas_x + self.pan_x) * self.zoom, (canvas_y + self.pan_y) * self.zoom)

    def wheel_zoom(self, delta_y: float, cursor_x: float, cursor_y: float) -> None:
        """
        Zoom around the cursor.

        The canvas point under (cursor_x, cursor_y) stays under the cursor.
        Cursor coordinates are relative to the viewport's top-left corner.
        """
        anchor_x, anchor_y = self.screen_to_canvas(cursor_x, cursor_y)
        self.zoom = clamp_zoom(self.zoom * (1 - delta_y * WHEEL_ZOOM_FACTOR))
        self.pan_x = cursor_x / self.zoom - anchor_x
        self.pan_y = cursor_y / self.zoom - anchor_y

    def zoom_in(self) -> None:
        self.zoom = clamp_zoom(self.zoom + ZOOM_STEP)

    def zoom_out(self) -> None:
        self.zoom = clamp_zoom(self.zoom - ZOOM_STEP)

    def pan_by(self, screen_dx: float, screen_dy: float) -> None:
        """Pan by a pointer drag delta given in screen pixels."""
        self.pan_x += screen_dx / self.zoom
        self.pan_y += screen_dy / self.zoom

    def fit_to_view(
        self,
        items: Sequence[Rect],
        viewport_w: float,
        viewport_h: float,
        pad: float = FIT_PADDING,
    ) -> None:
        """
        Zoom and pan so every item is visible and centred.

        Zoom never exceeds 1. With no items the view is reset.
        """
        if not items:
            self.zoom = 1.0
            self.pan_x = 0.0
            self.pan_y = 0.0
            return

        min_x = min(r.x for r in items)
        min_y = min(r.y for r in items)
        max_x = max(r.x2 for r in items)
        max_y = max(r.y2 for r in items)

        content_w = max_x - min_x + pad * 2
        content_h = max_y - min_y + pad * 2

        zoom = min(1.0, viewport_w / content_w, viewport_h / content_h)
        self.zoom = zoom
        self.pan_x = -min_x + pad + (viewport_w / zoom - content_w) / 2
        self.pan_y = -min_y + pad + (viewport_h / zoom - content_h) / 2
