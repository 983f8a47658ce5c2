"""
File export for computed scenes.

This module writes a Scene (see scene.py) to disk:
- SVG files (.svg) - Vector output using the same path strings a browser draws
- PNG images - Rasterized snapshot for bug reports and test fixtures
- Text files (.txt) - Route trace dumps

The SceneExporter class handles font loading, bounds calculation,
image rendering and file I/O.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from PIL import Image, ImageDraw, ImageFont

from .models import Point, Rect
from .scene import Scene

GROUP_FILL = "#F9FAFB"
GROUP_OUTLINE = "#D1D5DB"
ARROW_COLOR = "#6B7280"
TEXT_COLOR = "#111827"
ARROW_HEAD = 8


def scene_bounds(scene: Scene) -> Optional[Rect]:
    """Bounding rectangle of every card, group and arrow point, or None."""
    xs: List[float] = []
    ys: List[float] = []
    for rect in scene.item_rects():
        xs += [rect.x, rect.x2]
        ys += [rect.y, rect.y2]
    for arrow in scene.arrows:
        xs += [p[0] for p in arrow.waypoints]
        ys += [p[1] for p in arrow.waypoints]
    if not xs:
        return None
    return Rect(min(xs), min(ys), max(xs) - min(xs), max(ys) - min(ys))


def _arrow_head(points: Sequence[Point]) -> Optional[Tuple[Point, Point, Point]]:
    """Triangle at the last segment of a polyline, pointing at its end."""
    if len(points) < 2:
        return None
    (x1, y1), (x2, y2) = points[-2], points[-1]
    length = ((x2 - x1) ** 2 + (y2 - y1) ** 2) ** 0.5
    if length == 0:
        return None
    ux, uy = (x2 - x1) / length, (y2 - y1) / length
    bx, by = x2 - ux * ARROW_HEAD, y2 - uy * ARROW_HEAD
    half = ARROW_HEAD / 2
    return ((x2, y2), (bx - uy * half, by + ux * half), (bx + uy * half, by - ux * half))


class SceneExporter:
    """
    Exports scenes to various file formats.

    Attributes:
        default_font: Default font name for PNG labels.
    """

    def __init__(self, default_font: Optional[str] = None):
        """
        Initialize the scene exporter.

        Args:
            default_font: Default font name for PNG export (e.g., "DejaVu Sans").
        """
        self.default_font = default_font

    def save_txt(self, text: str, filename: str) -> None:
        """
        Save a text dump (e.g. ``RouteTrace.dump()``) to a file.

        Args:
            text: The text to save.
            filename: Output filename (should end in .txt).
        """
        Path(filename).write_text(text, encoding="utf-8")

    def to_svg(self, scene: Scene, padding: int = 20) -> str:
        """
        Build an SVG document for a scene.

        Arrow ``d`` attributes are the scene's own path strings, so the file
        shows exactly what the canvas draws.
        """
        bounds = scene_bounds(scene) or Rect(0, 0, 0, 0)
        min_x = bounds.x - padding
        min_y = bounds.y - padding
        width = bounds.w + padding * 2
        height = bounds.h + padding * 2

        parts = [
            '<svg xmlns="http://www.w3.org/2000/svg" '
            f'viewBox="{min_x:g} {min_y:g} {width:g} {height:g}" '
            f'width="{width:g}" height="{height:g}">',
            "<defs><marker id=\"arrow\" markerWidth=\"8\" markerHeight=\"8\" "
            "refX=\"8\" refY=\"4\" orient=\"auto\">"
            f"<path d=\"M0,0 L8,4 L0,8 z\" fill=\"{ARROW_COLOR}\"/></marker></defs>",
        ]
        for group in sorted(scene.groups, key=lambda g: g.depth):
            r = group.rect
            parts.append(
                f'<rect x="{r.x:g}" y="{r.y:g}" width="{r.w:g}" height="{r.h:g}" '
                f'rx="6" fill="{GROUP_FILL}" stroke="{GROUP_OUTLINE}"/>'
            )
            parts.append(
                f'<text x="{r.x + 8:g}" y="{r.y + 20:g}" font-size="12">'
                f"{escape(group.title)}</text>"
            )
        for card in scene.cards:
            r = card.rect
            parts.append(
                f'<rect x="{r.x:g}" y="{r.y:g}" width="{r.w:g}" height="{r.h:g}" '
                f'rx="4" fill="#FFFFFF" stroke="{card.color}" stroke-width="2"/>'
            )
            parts.append(
                f'<text x="{r.x + 8:g}" y="{r.y + 20:g}" font-size="12">'
                f"{escape(card.title)}</text>"
            )
        for arrow in scene.arrows:
            parts.append(
                f'<path d="{arrow.path}" fill="none" stroke="{ARROW_COLOR}" '
                'stroke-width="1.5" marker-end="url(#arrow)"/>'
            )
        parts.append("</svg>")
        return "\n".join(parts)

    def save_svg(self, scene: Scene, filename: str, padding: int = 20) -> None:
        Path(filename).write_text(self.to_svg(scene, padding), encoding="utf-8")

    def save_png(
        self,
        scene: Scene,
        filename: str,
        bg_color: str = "#FFFFFF",
        padding: int = 20,
        font_size: int = 12,
        font: Optional[str] = None,
        scale: int = 2,
    ) -> None:
        """
        Save a scene as a PNG image.

        Arrows are drawn as straight polylines through their waypoints;
        rounded corners are not rasterized.

        Args:
            scene: The scene to render.
            filename: Output filename (should end in .png).
            bg_color: Background color as hex string.
            padding: Padding around the content in canvas units.
            font_size: Label font size in points.
            font: Font name to use (overrides default_font if provided).
            scale: Resolution multiplier for crisp output (default 2 for retina).

        Example:
            >>> exporter = SceneExporter()
            >>> exporter.save_png(engine.compute_scene(), "canvas.png")
        """
        bounds = scene_bounds(scene) or Rect(0, 0, 0, 0)
        origin_x = bounds.x - padding
        origin_y = bounds.y - padding

        def px(point: Point) -> Tuple[float, float]:
            return ((point[0] - origin_x) * scale, (point[1] - origin_y) * scale)

        def box(rect: Rect) -> List[float]:
            x1, y1 = px((rect.x, rect.y))
            x2, y2 = px((rect.x2, rect.y2))
            return [x1, y1, x2, y2]

        img_width = max(int((bounds.w + padding * 2) * scale), 100 * scale)
        img_height = max(int((bounds.h + padding * 2) * scale), 100 * scale)
        img = Image.new("RGB", (img_width, img_height), bg_color)
        draw = ImageDraw.Draw(img)
        label_font = self._load_font(font_size * scale, font or self.default_font)

        for group in sorted(scene.groups, key=lambda g: g.depth):
            draw.rectangle(box(group.rect), fill=GROUP_FILL, outline=GROUP_OUTLINE, width=scale)
            x, y = px((group.rect.x + 8, group.rect.y + 8))
            draw.text((x, y), group.title, font=label_font, fill=TEXT_COLOR)

        for card in scene.cards:
            draw.rectangle(box(card.rect), fill="#FFFFFF", outline=card.color, width=2 * scale)
            x, y = px((card.rect.x + 8, card.rect.y + 8))
            draw.text((x, y), card.title, font=label_font, fill=TEXT_COLOR)

        for arrow in scene.arrows:
            if len(arrow.waypoints) < 2:
                continue
            draw.line([px(p) for p in arrow.waypoints], fill=ARROW_COLOR, width=scale, joint="curve")
            head = _arrow_head(arrow.waypoints)
            if head is not None:
                draw.polygon([px(p) for p in head], fill=ARROW_COLOR)

        img.save(Path(filename), "PNG")

    def _load_font(
        self, font_size: int, font_name: Optional[str] = None
    ) -> ImageFont.FreeTypeFont:
        """
        Load a label font.

        Tries the user-specified font, then common system sans fonts, then
        Pillow's default font.
        """
        fonts_to_try = []
        if font_name:
            fonts_to_try.append(font_name)

        fonts_to_try.extend(
            [
                # Linux
                "DejaVuSans",
                "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
                # macOS
                "Helvetica",
                "/System/Library/Fonts/Helvetica.ttc",
                # Windows
                "Arial",
                "C:/Windows/Fonts/arial.ttf",
            ]
        )

        for font in fonts_to_try:
            try:
                return ImageFont.truetype(font, font_size)
            except OSError:
                continue

        try:
            return ImageFont.load_default(size=font_size)
        except TypeError:
            # Older Pillow versions don't support size parameter
            return ImageFont.load_default()
