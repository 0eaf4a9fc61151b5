"""Parsing side of the rich-text renderer.

Test descriptions are stored as a small HTML subset produced by the result
entry editor. This module turns them into a node tree, reads inline CSS and
colours, decodes entities, and extracts tables into a row/cell model. Drawing
lives in ``rich_text_renderer``.
"""

import re
from dataclasses import dataclass, field, fields
from html.entities import html5
from html.parser import HTMLParser

from pathlab.services.ranges import parse_leading_float

# Entities the report fonts are known to render; html5 covers the rest.
_ENTITIES = {
    "lt": "<",
    "gt": ">",
    "amp": "&",
    "quot": '"',
    "apos": "'",
    "nbsp": " ",
    "ge": "≥",
    "le": "≤",
    "ne": "≠",
    "plusmn": "±",
    "times": "×",
    "divide": "÷",
    "deg": "°",
    "micro": "µ",
    "alpha": "α",
    "beta": "β",
    "gamma": "γ",
    "delta": "δ",
    "omega": "ω",
}

_ENTITY_RE = re.compile(r"&(#[xX][0-9a-fA-F]+|#[0-9]+|[a-zA-Z][a-zA-Z0-9]*);")
_TAG_RE = re.compile(r"<[^>]*>")
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_UNIT_RE = re.compile(r"^([\d.]+)(px|pt|em|rem|%)?$", re.IGNORECASE)
_RGB_RE = re.compile(r"^rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*[\d.]+\s*)?\)$")

VOID_TAGS = {"br", "img", "hr", "meta", "input", "col", "wbr"}

NAMED_COLORS = {
    "red": (255, 0, 0),
    "green": (0, 128, 0),
    "blue": (0, 0, 255),
    "black": (0, 0, 0),
    "white": (255, 255, 255),
    "gray": (128, 128, 128),
    "grey": (128, 128, 128),
    "yellow": (255, 255, 0),
    "orange": (255, 165, 0),
    "purple": (128, 0, 128),
    "pink": (255, 192, 203),
    "brown": (165, 42, 42),
    "navy": (0, 0, 128),
    "teal": (0, 128, 128),
    "lime": (0, 255, 0),
    "cyan": (0, 255, 255),
    "magenta": (255, 0, 255),
    "silver": (192, 192, 192),
    "maroon": (128, 0, 0),
    "olive": (128, 128, 0),
}


def _decode_entity(name: str) -> str | None:
    if name.startswith("#"):
        try:
            code = int(name[2:], 16) if name[1:2] in ("x", "X") else int(name[1:])
            return chr(code)
        except (ValueError, OverflowError):
            return None
    if name in _ENTITIES:
        return _ENTITIES[name]
    return html5.get(f"{name};")


def decode_entities(text: str) -> str:
    """Decode named and numeric entities; unknown ones are left as written."""

    def _replace(match: re.Match) -> str:
        decoded = _decode_entity(match.group(1))
        return match.group(0) if decoded is None else decoded

    return _ENTITY_RE.sub(_replace, text)


def strip_tags(html: str) -> str:
    return decode_entities(_TAG_RE.sub("", _BR_RE.sub("\n", html)))


@dataclass
class Node:
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list["Node"] = field(default_factory=list)
    text: str = ""

    @property
    def is_text(self) -> bool:
        return self.tag == "#text"


class _TreeBuilder(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=False)
        self.root = Node("#root")
        self._stack = [self.root]

    def _append_text(self, text: str) -> None:
        siblings = self._stack[-1].children
        if siblings and siblings[-1].is_text:
            siblings[-1].text += text
        else:
            siblings.append(Node("#text", text=text))

    def handle_starttag(self, tag, attrs):
        node = Node(tag, {key: value or "" for key, value in attrs})
        self._stack[-1].children.append(node)
        if tag not in VOID_TAGS:
            self._stack.append(node)

    def handle_startendtag(self, tag, attrs):
        self._stack[-1].children.append(Node(tag, {key: value or "" for key, value in attrs}))

    def handle_endtag(self, tag):
        for index in range(len(self._stack) - 1, 0, -1):
            if self._stack[index].tag == tag:
                del self._stack[index:]
                return

    def handle_data(self, data):
        self._append_text(data)

    def handle_entityref(self, name):
        decoded = _decode_entity(name)
        self._append_text(f"&{name};" if decoded is None else decoded)

    def handle_charref(self, name):
        decoded = _decode_entity(f"#{name}")
        self._append_text(f"&#{name};" if decoded is None else decoded)


def parse_html(html: str) -> Node:
    builder = _TreeBuilder()
    builder.feed(html or "")
    builder.close()
    return builder.root


@dataclass(frozen=True)
class CSSStyles:
    color: str | None = None
    background_color: str | None = None
    font_weight: str | None = None
    font_style: str | None = None
    font_size: float | None = None
    text_align: str | None = None
    margin: float | None = None
    padding: float | None = None
    border_width: float | None = None
    border_color: str | None = None
    border_style: str | None = None
    width: float | None = None
    height: float | None = None

    def is_empty(self) -> bool:
        return all(getattr(self, item.name) is None for item in fields(self))


def parse_css_unit(value: str | None, base_font_size: float = 9) -> float:
    """Convert a CSS length to points; unparseable lengths are 0."""
    if not value:
        return 0.0
    match = _UNIT_RE.match(value.strip())
    if not match:
        return 0.0
    number = parse_leading_float(match.group(1)) or 0.0
    unit = (match.group(2) or "px").lower()
    if unit == "pt":
        return number
    if unit == "px":
        return number * 0.75
    if unit in ("em", "rem"):
        return number * base_font_size
    return number / 100 * base_font_size


def parse_color(color: str | None) -> tuple[int, int, int] | None:
    if not color:
        return None
    color = color.strip().lower()
    if color.startswith("#"):
        digits = color[1:]
        try:
            if len(digits) == 3:
                return tuple(int(ch * 2, 16) for ch in digits)
            if len(digits) == 6:
                return tuple(int(digits[i:i + 2], 16) for i in (0, 2, 4))
        except ValueError:
            return None
        return None
    match = _RGB_RE.match(color)
    if match:
        return tuple(min(int(part), 255) for part in match.groups())
    return NAMED_COLORS.get(color)


def parse_inline_css(style_attr: str | None) -> CSSStyles:
    if not style_attr:
        return CSSStyles()
    values: dict[str, object] = {}
    for declaration in style_attr.split(";"):
        prop, _, value = declaration.partition(":")
        prop, value = prop.strip().lower(), value.strip()
        if not prop or not value:
            continue
        if prop == "color":
            values["color"] = value
        elif prop in ("background-color", "background"):
            values["background_color"] = value
        elif prop == "font-weight":
            values["font_weight"] = value
        elif prop == "font-style":
            values["font_style"] = value
        elif prop == "text-align":
            values["text_align"] = value.lower()
        elif prop in ("font-size", "margin", "padding", "border-width", "width", "height"):
            values[prop.replace("-", "_")] = parse_css_unit(value)
        elif prop == "border-color":
            values["border_color"] = value
        elif prop == "border-style":
            values["border_style"] = value
        elif prop == "border":
            for part in value.split():
                if part[:1].isdigit():
                    values["border_width"] = parse_css_unit(part)
                elif part in ("solid", "dashed", "dotted"):
                    values["border_style"] = part
                else:
                    values["border_color"] = part
    return CSSStyles(**values)


def is_bold_weight(weight: str | None) -> bool:
    if not weight:
        return False
    if weight.lower() in ("bold", "bolder"):
        return True
    match = re.match(r"^\s*(\d+)", weight)
    return bool(match) and int(match.group(1)) >= 600


@dataclass(frozen=True)
class TableCell:
    content: str
    is_header: bool
    colspan: int = 1
    rowspan: int = 1
    styles: CSSStyles = CSSStyles()


@dataclass(frozen=True)
class TableRow:
    cells: tuple[TableCell, ...]
    styles: CSSStyles = CSSStyles()


@dataclass(frozen=True)
class ParsedTable:
    rows: tuple[TableRow, ...]
    has_header: bool
    styles: CSSStyles = CSSStyles()


def _span(value: str | None) -> int:
    try:
        return max(int(value or "1"), 1)
    except ValueError:
        return 1


def _descendants(node: Node, tag: str) -> list[Node]:
    """Descendants with ``tag`` in document order, not entering nested tables."""
    found: list[Node] = []
    for child in node.children:
        if child.tag == tag:
            found.append(child)
        if not child.is_text and child.tag != "table":
            found.extend(_descendants(child, tag))
    return found


def cell_text(node: Node) -> str:
    """Plain text of a cell: whitespace collapsed, ``<br>`` kept as a newline."""
    parts: list[str] = []

    def _walk(current: Node) -> None:
        for child in current.children:
            if child.is_text:
                parts.append(re.sub(r"\s+", " ", child.text))
            elif child.tag == "br":
                parts.append("\n")
            else:
                _walk(child)

    _walk(node)
    return "\n".join(line.strip() for line in "".join(parts).split("\n"))


def _row(tr: Node, header_row: bool) -> TableRow:
    cells = tuple(
        TableCell(
            content=cell_text(cell),
            is_header=header_row or cell.tag == "th",
            colspan=_span(cell.attrs.get("colspan")),
            rowspan=_span(cell.attrs.get("rowspan")),
            styles=parse_inline_css(cell.attrs.get("style")),
        )
        for cell in tr.children
        if cell.tag in ("th", "td")
    )
    return TableRow(cells=cells, styles=parse_inline_css(tr.attrs.get("style")))


def parse_table(table: Node) -> ParsedTable:
    """Header rows come from ``thead``; body rows from ``tbody`` or any other ``tr``."""
    heads = _descendants(table, "thead")
    bodies = _descendants(table, "tbody")
    header_rows = _descendants(heads[0], "tr") if heads else []
    body_source = _descendants(bodies[0], "tr") if bodies else _descendants(table, "tr")

    rows = [_row(tr, header_row=True) for tr in header_rows]
    rows.extend(_row(tr, header_row=False) for tr in body_source if not any(tr is head for head in header_rows))
    return ParsedTable(rows=tuple(rows), has_header=bool(heads), styles=parse_inline_css(table.attrs.get("style")))
