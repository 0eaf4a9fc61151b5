"""Draws parsed description HTML onto report pages.

Text flows as inline runs: each run carries the style inherited from its
enclosing tags, and a line is laid out word by word until it is full. Every
finished line and every table row asks the layout for room first, so long
descriptions continue on the next page.
"""

import logging
import re
from dataclasses import dataclass, replace

from pathlab.services.canvas import BLACK, RGB, chop_word, line_advance, split_text, text_width
from pathlab.services.rich_text import (
    CSSStyles,
    Node,
    ParsedTable,
    is_bold_weight,
    parse_color,
    parse_html,
    parse_inline_css,
    parse_table,
    strip_tags,
)

logger = logging.getLogger(__name__)

LINE_HEIGHT = 5
BASE_FONT_SIZE = 9
BULLET = "• "
HEADER_FILL = (240, 240, 240)

_HEADINGS = {"h1": (14, 2), "h2": (12, 2), "h3": (11, 1), "h4": (10, 1), "h5": (10, 1), "h6": (10, 1)}
_SPACED_BLOCKS = {"h1", "h2", "h3", "h4", "h5", "h6", "p", "ul", "ol", "div"}
_BLOCKS = _SPACED_BLOCKS | {"li", "table"}
_SKIPPED = {"thead", "tbody", "tr", "th", "td", "script", "style", "head", "title"}


@dataclass(frozen=True)
class TextStyle:
    bold: bool = False
    italic: bool = False
    size: float = BASE_FONT_SIZE
    color: RGB = BLACK
    background: RGB | None = None

    @property
    def font_style(self) -> str:
        if self.bold and self.italic:
            return "bolditalic"
        if self.bold:
            return "bold"
        if self.italic:
            return "italic"
        return "normal"

    def with_css(self, css: CSSStyles) -> "TextStyle":
        style = self
        if css.font_size:
            style = replace(style, size=css.font_size)
        if css.font_weight is not None:
            style = replace(style, bold=is_bold_weight(css.font_weight))
        if css.font_style is not None:
            style = replace(style, italic=css.font_style.lower() == "italic")
        color = parse_color(css.color)
        if color:
            style = replace(style, color=color)
        return style


def _tag_style(tag: str, style: TextStyle) -> TextStyle:
    if tag in _HEADINGS:
        return replace(style, bold=True, size=_HEADINGS[tag][0])
    if tag in ("strong", "b"):
        return replace(style, bold=True)
    if tag in ("em", "i"):
        return replace(style, italic=True)
    return style


class _Flow:
    def __init__(self, layout, cursor, x: float, max_width: float):
        self.layout = layout
        self.canvas = layout.canvas
        self.cursor = cursor
        self.x = x
        self.max_width = max_width
        self.indent = 0.0
        self.align = "left"
        self.at_start = True
        self._runs: list[tuple[str, TextStyle]] = []
        self._line_x = 0.0
        self._line_width = 0.0

    # -- inline runs -------------------------------------------------------

    def _available(self) -> float:
        return self.max_width - (self._line_x if self._runs else self.indent)

    def _push(self, token: str, style: TextStyle) -> None:
        if not self._runs:
            self._line_x = self.indent
        self._line_width += text_width(token, style.font_style, style.size)
        if self._runs and self._runs[-1][1] == style:
            self._runs[-1] = (self._runs[-1][0] + token, style)
        else:
            self._runs.append((token, style))

    def add_text(self, text: str, style: TextStyle) -> None:
        for token in re.findall(r"\S+|\s+", re.sub(r"\s+", " ", text)):
            if token == " ":
                if self._runs:
                    self._push(token, style)
                continue
            width = text_width(token, style.font_style, style.size)
            if self._runs and self._line_width + width > self._available():
                self.flush()
            if width > self._available():
                pieces = chop_word(token, self._available(), style.font_style, style.size)
                for piece in pieces[:-1]:
                    self._push(piece, style)
                    self.flush()
                token = pieces[-1]
            self._push(token, style)

    def add_bullet(self, style: TextStyle) -> float:
        self.flush()
        self._push(BULLET, style)
        return text_width(BULLET, style.font_style, style.size)

    def flush(self) -> None:
        while self._runs and not self._runs[-1][0].strip():
            self._runs.pop()
        if not self._runs:
            self._line_width = 0.0
            return
        runs = [(text.rstrip(), style) if index == len(self._runs) - 1 else (text, style)
                for index, (text, style) in enumerate(self._runs)]
        height = max(LINE_HEIGHT, max(line_advance(style.size) for _, style in runs))
        self.cursor = self.layout.ensure_space(self.cursor, height)

        total = sum(text_width(text, style.font_style, style.size) for text, style in runs)
        offset = self.x + self._line_x
        if self.align == "center":
            offset += max((self.max_width - self._line_x - total) / 2, 0)
        elif self.align == "right":
            offset += max(self.max_width - self._line_x - total, 0)
        for text, style in runs:
            width = text_width(text, style.font_style, style.size)
            if style.background:
                self.canvas.rect(offset, self.cursor.y, width, height, fill=style.background)
            self.canvas.text(offset, self.cursor.y + height - 1, text, style.font_style, style.size, style.color)
            offset += width

        self.cursor = self.cursor.moved(height)
        self._runs = []
        self._line_width = 0.0
        self.at_start = False

    def line_break(self) -> None:
        if self._runs:
            self.flush()
        else:
            self.cursor = self.cursor.moved(LINE_HEIGHT)
            self.at_start = False

    def space(self, amount: float) -> None:
        self.cursor = self.cursor.moved(amount)

    # -- tree walk ---------------------------------------------------------

    def render(self, root: Node) -> None:
        for child in root.children:
            self.node(child, TextStyle())
        self.flush()

    def node(self, node: Node, style: TextStyle) -> None:
        if node.is_text:
            self.add_text(node.text, style)
            return
        tag = node.tag
        if tag in _SKIPPED:
            return
        if tag == "br":
            self.line_break()
            return
        if tag == "table":
            self.flush()
            self.cursor = render_table(self.layout, parse_table(node), self.cursor, self.x + self.indent,
                                       self.max_width - self.indent)
            self.at_start = False
            return

        css = parse_inline_css(node.attrs.get("style"))
        child_style = _tag_style(tag, style).with_css(css)
        fill = parse_color(css.background_color) if tag in ("div", "span") else None
        if fill:
            child_style = replace(child_style, background=fill)

        if tag in _BLOCKS:
            self.flush()
        if tag in _HEADINGS:
            self.space(_HEADINGS[tag][1])
        elif tag == "p" and not self.at_start:
            self.space(2)
        elif tag in ("ul", "ol"):
            self.space(1)

        saved_indent, saved_align = self.indent, self.align
        if tag in _BLOCKS and css.text_align:
            self.align = css.text_align

        if tag == "li":
            self.indent = saved_indent + self.add_bullet(child_style)

        for child in node.children:
            self.node(child, child_style)

        if tag in _BLOCKS:
            self.flush()
        self.indent, self.align = saved_indent, saved_align
        if tag in _SPACED_BLOCKS:
            self.space(css.margin or 1)


def _render_plain(layout, html: str, cursor, x: float, max_width: float):
    lines = split_text(strip_tags(html), max_width, "normal", BASE_FONT_SIZE)
    for line in lines:
        cursor = layout.ensure_space(cursor, LINE_HEIGHT)
        layout.canvas.text(x, cursor.y + LINE_HEIGHT - 1, line, "normal", BASE_FONT_SIZE)
        cursor = cursor.moved(LINE_HEIGHT)
    return cursor


def render_rich_text(layout, html: str, cursor, x: float, max_width: float):
    """Render an HTML fragment at ``cursor`` within ``max_width`` mm and return the advanced cursor."""
    if not html or not html.strip():
        return cursor
    try:
        root = parse_html(html)
    # html.parser raises AssertionError on malformed marked sections.
    except (AssertionError, ValueError) as exc:
        logger.debug("Falling back to plain text for description markup: %s", exc)
        return _render_plain(layout, html, cursor, x, max_width)

    flow = _Flow(layout, cursor, x, max_width)
    flow.render(root)
    return flow.cursor


def _cell_font(cell) -> TextStyle:
    base = TextStyle(bold=True, size=9) if cell.is_header else TextStyle(size=8)
    return base.with_css(cell.styles)


def table_row_heights(table: ParsedTable, max_width: float) -> list[float]:
    if not table.rows:
        return []
    columns = max(len(row.cells) for row in table.rows) or 1
    column_width = max_width / columns
    heights = []
    for row in table.rows:
        row_height = 0.0
        for cell in row.cells:
            padding = cell.styles.padding or 2
            font = _cell_font(cell)
            lines = split_text(cell.content, column_width * cell.colspan - 2 * padding, font.font_style, font.size)
            row_height = max(row_height, max(len(lines), 1) * LINE_HEIGHT + 2 * padding)
        heights.append(row_height)
    return heights


def render_table(layout, table: ParsedTable, cursor, x: float, max_width: float):
    """Grid table: equal columns by cell count, colspan widens a cell, rowspan is not applied."""
    if not table.rows:
        return cursor
    canvas = layout.canvas
    columns = max(len(row.cells) for row in table.rows) or 1
    column_width = max_width / columns

    for row, row_height in zip(table.rows, table_row_heights(table, max_width)):
        cursor = layout.ensure_space(cursor, row_height)
        cell_x = x
        for cell in row.cells:
            width = column_width * cell.colspan
            padding = cell.styles.padding or 2
            fill = parse_color(cell.styles.background_color)
            if fill is None and cell.is_header and cell.styles.background_color is None:
                fill = HEADER_FILL
            canvas.rect(cell_x, cursor.y, width, row_height, fill=fill,
                        stroke=parse_color(cell.styles.border_color) or BLACK,
                        line_width=cell.styles.border_width or 0.5)

            font = _cell_font(cell)
            align = cell.styles.text_align or "left"
            if align == "center":
                text_x = cell_x + width / 2
            elif align == "right":
                text_x = cell_x + width - padding
            else:
                text_x = cell_x + padding
            lines = split_text(cell.content, width - 2 * padding, font.font_style, font.size)
            for index, line in enumerate(lines):
                canvas.text(text_x, cursor.y + padding + (index + 1) * LINE_HEIGHT, line,
                            font.font_style, font.size, font.color, align=align)
            cell_x += width
        cursor = cursor.moved(row_height)
    return cursor.moved(LINE_HEIGHT)
