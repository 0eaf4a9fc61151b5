"""Millimetre drawing surface over a reportlab canvas.

Coordinates are millimetres with the origin at the top-left corner of an A4
page; text ``y`` values are baselines. reportlab works in points from the
bottom-left, so every call converts on the way in.
"""

import io

from reportlab.lib.colors import Color
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

PAGE_WIDTH = A4[0] / mm
PAGE_HEIGHT = A4[1] / mm
LINE_HEIGHT_FACTOR = 1.15

BLACK = (0, 0, 0)
WHITE = (255, 255, 255)
NAVY = (0, 51, 102)

FONTS = {
    "normal": "Helvetica",
    "bold": "Helvetica-Bold",
    "italic": "Helvetica-Oblique",
    "bolditalic": "Helvetica-BoldOblique",
}

RGB = tuple[int, int, int]


def font_name(style: str) -> str:
    return FONTS.get(style, FONTS["normal"])


def text_width(text: str, style: str = "normal", size: float = 10) -> float:
    """Rendered width of ``text`` in millimetres."""
    return stringWidth(text, font_name(style), size) / mm


def chop_word(word: str, max_width: float, style: str = "normal", size: float = 10) -> list[str]:
    """Break one word wider than ``max_width`` mm into character runs that fit."""
    pieces, current = [], ""
    for char in word:
        if current and text_width(current + char, style, size) > max_width:
            pieces.append(current)
            current = ""
        current += char
    pieces.append(current)
    return pieces


def split_text(text: str, max_width: float, style: str = "normal", size: float = 10) -> list[str]:
    """Wrap ``text`` to ``max_width`` mm, breaking words that are wider than a whole line.

    Explicit newlines are kept; empty text is one empty line.
    """
    max_width = max(max_width, 1)
    lines: list[str] = []
    for paragraph in str(text).split("\n"):
        words = []
        for word in paragraph.split(" "):
            if text_width(word, style, size) > max_width:
                words.extend(chop_word(word, max_width, style, size))
            else:
                words.append(word)
        lines.extend(simpleSplit(" ".join(words), font_name(style), size, max_width * mm) or [""])
    return lines or [""]


def line_advance(size: float) -> float:
    """Baseline-to-baseline distance (mm) of consecutive lines in one text call."""
    return size * LINE_HEIGHT_FACTOR / mm


def _color(rgb: RGB) -> Color:
    return Color(rgb[0] / 255, rgb[1] / 255, rgb[2] / 255)


class PageCanvas:
    """One PDF document being drawn page by page."""

    width = PAGE_WIDTH
    height = PAGE_HEIGHT

    def __init__(self, title: str | None = None):
        self._buffer = io.BytesIO()
        self._canvas = canvas.Canvas(self._buffer, pagesize=A4, invariant=1)
        if title:
            self._canvas.setTitle(title)
        self.page_count = 1

    def _y(self, y: float) -> float:
        return (self.height - y) * mm

    def text(
        self,
        x: float,
        y: float,
        text: str | list[str],
        style: str = "normal",
        size: float = 10,
        color: RGB = BLACK,
        align: str = "left",
        leading: float | None = None,
    ) -> None:
        """Draw one or more lines; ``leading`` (mm) defaults to the font's natural line advance."""
        lines = text if isinstance(text, list) else str(text).split("\n")
        c = self._canvas
        c.setFont(font_name(style), size)
        c.setFillColor(_color(color))
        step = leading if leading is not None else line_advance(size)
        for index, line in enumerate(lines):
            baseline = self._y(y + index * step)
            if align == "center":
                c.drawCentredString(x * mm, baseline, line)
            elif align == "right":
                c.drawRightString(x * mm, baseline, line)
            else:
                c.drawString(x * mm, baseline, line)

    def rect(
        self,
        x: float,
        y: float,
        w: float,
        h: float,
        fill: RGB | None = None,
        stroke: RGB | None = None,
        line_width: float = 0.2,
    ) -> None:
        c = self._canvas
        if fill is not None:
            c.setFillColor(_color(fill))
        if stroke is not None:
            c.setStrokeColor(_color(stroke))
            c.setLineWidth(line_width * mm)
        c.rect(x * mm, self._y(y + h), w * mm, h * mm, stroke=int(stroke is not None), fill=int(fill is not None))

    def line(self, x1: float, y1: float, x2: float, y2: float, color: RGB = BLACK, line_width: float = 0.2) -> None:
        c = self._canvas
        c.setStrokeColor(_color(color))
        c.setLineWidth(line_width * mm)
        c.line(x1 * mm, self._y(y1), x2 * mm, self._y(y2))

    def image(self, reader: ImageReader | None, x: float, y: float, w: float, h: float) -> None:
        if reader is None:
            return
        self._canvas.drawImage(reader, x * mm, self._y(y + h), width=w * mm, height=h * mm)

    def flowable(self, flowable, x: float, y: float, max_width: float) -> float:
        """Draw a platypus flowable with its top edge at ``y``; returns its height in mm."""
        _, height = flowable.wrapOn(self._canvas, max_width * mm, self.height * mm)
        flowable.drawOn(self._canvas, x * mm, self._y(y) - height)
        return height / mm

    def new_page(self) -> None:
        self._canvas.showPage()
        self.page_count += 1

    def to_bytes(self) -> bytes:
        self._canvas.save()
        return self._buffer.getvalue()
