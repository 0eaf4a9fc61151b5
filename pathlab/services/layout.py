"""Page and section layout for lab reports.

All positions are millimetres on an A4 page with a top-left origin. Drawing
operations take a ``Cursor`` and hand back a new one; a cursor never changes
in place, and every page break goes through ``ReportLayout.ensure_space`` so
the letterhead, patient header and stamps are repeated on each page.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from pathlab.config import settings
from pathlab.schemas.report import (
    AiSuggestions,
    ComparisonSelection,
    HistoricalEntry,
    Parameter,
    PatientContext,
    RecommendationSection,
    TestResult,
)
from pathlab.services.assets import ReportAssets
from pathlab.services.canvas import BLACK, NAVY, WHITE, PageCanvas, line_advance, split_text, text_width
from pathlab.services.ranges import (
    age_in_days,
    display_range,
    format_value,
    is_numeric_text,
    is_out_of_range,
    resolve_range,
)
from pathlab.services.rich_text_renderer import render_rich_text

LEFT_MARGIN = 23.0
FOOTER_MARGIN = 23.0
LINE_HEIGHT = 5.0
HEADER_TOP = 50.0
STAMP_WIDTH = 40.0
STAMP_HEIGHT = 30.0
STAMP_BOTTOM_MARGIN = 21.0
BAND_HEIGHT = 7.0
COMPARISON_LINE_HEIGHT = 4.0
COMPARISON_ROW_PADDING = 1.0
BODY_FONT_SIZE = 9
END_OF_REPORT = "--------------------- END OF REPORT ---------------------"
SUGGESTIONS_TITLE = "AI Expert Suggestion According to Report Value"
CARD_FILL = (245, 245, 245)

_AGE_LABELS = {"year": "Years", "month": "Months", "day": "Days"}


@dataclass(frozen=True)
class Cursor:
    y: float
    page: int = 1
    reported_on: datetime | None = None

    def moved(self, dy: float) -> "Cursor":
        return replace(self, y=self.y + dy)


@dataclass(frozen=True)
class Columns:
    left: float
    param: float
    value: float
    unit: float
    range: float

    @property
    def x_value(self) -> float:
        return self.left + self.param

    @property
    def x_unit(self) -> float:
        return self.x_value + self.value

    @property
    def x_range(self) -> float:
        return self.x_unit + self.unit


@dataclass(frozen=True)
class ComparisonColumns:
    left: float
    param: float
    range: float
    date: float
    date_count: int

    @property
    def x_range(self) -> float:
        return self.left + self.param

    @property
    def x_dates(self) -> float:
        return self.x_range + self.range


def indent_width(indent: int) -> float:
    """Horizontal shift (mm) of a parameter name nested ``indent`` spaces deep."""
    return text_width(" " * indent, "normal", BODY_FONT_SIZE)


def content_width(page_width: float) -> float:
    return page_width - 2 * LEFT_MARGIN


def normal_columns(total_width: float, left: float = LEFT_MARGIN) -> Columns:
    return Columns(
        left=left,
        param=total_width * 0.40,
        value=total_width * 0.15,
        unit=total_width * 0.15,
        range=total_width * 0.30,
    )


def value_span(columns: Columns, unit: str, range_text: str) -> float:
    """Width the value cell may use: it absorbs empty unit (and range) cells to its right."""
    unit_empty = not unit.strip()
    range_empty = not range_text.strip()
    if unit_empty and range_empty:
        return columns.value + columns.unit + columns.range
    if unit_empty:
        return columns.value + columns.unit
    return columns.value


def comparison_columns(date_count: int, total_width: float, left: float = LEFT_MARGIN) -> ComparisonColumns:
    param = total_width * 0.30
    range_width = total_width * 0.20
    count = max(date_count, 1)
    return ComparisonColumns(
        left=left,
        param=param,
        range=range_width,
        date=(total_width - param - range_width) / count,
        date_count=count,
    )


def chunk_tests(test_keys: list[str], size: int) -> list[list[str]]:
    return [test_keys[start:start + size] for start in range(0, len(test_keys), size)]


def to_report_time(value: datetime) -> datetime:
    """Naive timestamps are stored in UTC; reports show the lab's local time."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(ZoneInfo(settings.report_timezone))


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "-"
    return to_report_time(value).strftime("%d/%m/%Y, %I:%M %p")


def format_short_date(value: datetime) -> str:
    return to_report_time(value).strftime("%d %b")


def visible(parameters: list[Parameter]) -> list[Parameter]:
    return [param for param in parameters if (param.visibility or "").lower() != "hidden"]


def find_parameter(parameters: list[Parameter], name: str) -> Parameter | None:
    """Top-level match first, then a depth-first search through subparameters."""
    for param in parameters:
        if param.name == name:
            return param
    for param in parameters:
        found = find_parameter(param.subparameters, name)
        if found is not None:
            return found
    return None


def split_globals(test: TestResult) -> tuple[list[Parameter], list[tuple[str, list[Parameter]]]]:
    """Parameters claimed by no subheading, then each subheading with its claimed parameters."""
    parameters = visible(test.parameters)
    claimed = {name for sub in test.subheadings for name in sub.parameter_names}
    globals_ = [param for param in parameters if param.name not in claimed]
    sections = []
    for sub in test.subheadings:
        names = set(sub.parameter_names)
        rows = [param for param in parameters if param.name in names]
        if rows:
            sections.append((sub.title, rows))
    return globals_, sections


def test_title(test_key: str, test: TestResult) -> str:
    return (test.test_name or test_key.replace("_", " ")).upper()


class ReportLayout:
    def __init__(
        self,
        canvas: PageCanvas,
        patient: PatientContext,
        assets: ReportAssets,
        include_letterhead: bool = True,
        printed_by: str | None = None,
    ):
        self.canvas = canvas
        self.patient = patient
        self.assets = assets
        self.include_letterhead = include_letterhead
        self.printed_by = printed_by or settings.default_printed_by
        self.age_days = age_in_days(patient)
        self.gender = patient.gender
        self.width = canvas.width
        self.height = canvas.height
        self.total_width = content_width(canvas.width)
        self.columns = normal_columns(self.total_width)

    # -- page furniture ----------------------------------------------------

    def draw_cover(self) -> None:
        self.canvas.image(self.assets.cover, 0, 0, self.width, self.height)

    def start_page(self, reported_on: datetime | None, new_page: bool = True) -> Cursor:
        if new_page:
            self.canvas.new_page()
        if self.include_letterhead:
            self.canvas.image(self.assets.letterhead, 0, 0, self.width, self.height)
        y = self.draw_header(reported_on)
        self.draw_stamps()
        return Cursor(y=y, page=self.canvas.page_count, reported_on=reported_on)

    def ensure_space(self, cursor: Cursor, height: float) -> Cursor:
        if cursor.y + height >= self.height - FOOTER_MARGIN:
            return self.start_page(cursor.reported_on)
        return cursor

    def header_rows(self, reported_on: datetime | None) -> tuple[list[tuple[str, str]], list[tuple[str, str]]]:
        patient = self.patient
        name = patient.name.upper()
        if patient.title:
            name = f"{patient.title} {name}"
        age_label = _AGE_LABELS.get((patient.day_type or "year").lower(), "Years")
        left_rows = [
            ("Patient Name", name),
            ("Age/Sex", f"{format_value(patient.age)} {age_label} / {patient.gender or ''}".rstrip()),
            ("Ref Doctor", (patient.doctor_name or "-").upper()),
            ("Client Name", (patient.hospital_name or "-").upper()),
        ]

        registration_id = format_value(patient.registration_id)
        if patient.patient_id and registration_id:
            merged_id = f"{patient.patient_id}-{registration_id}"
        else:
            merged_id = patient.patient_id or registration_id or "-"
        sample_time = patient.sample_collected_at or patient.registration_time
        right_rows = [
            ("Patient ID", merged_id),
            ("Sample Collected on", format_timestamp(sample_time)),
            ("Registration On", format_timestamp(patient.registration_time)),
            ("Reported On", format_timestamp(reported_on)),
        ]
        return left_rows, right_rows

    def draw_header(self, reported_on: datetime | None) -> float:
        """Two-column patient block; returns the y just below it."""
        canvas = self.canvas
        left_rows, right_rows = self.header_rows(reported_on)
        x_left_colon = LEFT_MARGIN + max(text_width(label) for label, _ in left_rows) + 2
        x_left_value = x_left_colon + 2
        x_right_label = self.width / 2 + 10
        x_right_colon = x_right_label + max(text_width(label) for label, _ in right_rows) + 2
        x_right_value = x_right_colon + 2
        left_value_width = x_right_label - x_left_value - 4

        y = HEADER_TOP
        for index, ((label, value), (right_label, right_value)) in enumerate(zip(left_rows, right_rows)):
            canvas.text(LEFT_MARGIN, y, label)
            canvas.text(x_left_colon, y, ":")
            if index == 0:
                lines = split_text(value, left_value_width, "bold", 10)
                canvas.text(x_left_value, y, lines, "bold", 10, leading=LINE_HEIGHT)
            else:
                lines = [value]
                canvas.text(x_left_value, y, value)
            canvas.text(x_right_label, y, right_label)
            canvas.text(x_right_colon, y, ":")
            canvas.text(x_right_value, y, right_value)
            y += len(lines) * LINE_HEIGHT
        return y

    def draw_stamps(self) -> None:
        stamp_y = self.height - STAMP_HEIGHT - STAMP_BOTTOM_MARGIN
        self.canvas.image(self.assets.stamp2, self.width - LEFT_MARGIN - STAMP_WIDTH, stamp_y, STAMP_WIDTH, STAMP_HEIGHT)
        self.canvas.image(self.assets.stamp, (self.width - STAMP_WIDTH) / 2, stamp_y, STAMP_WIDTH, STAMP_HEIGHT)
        self.canvas.text(LEFT_MARGIN, stamp_y + STAMP_HEIGHT - 1, f"Printed by {self.printed_by}")

    def draw_section_title(self, cursor: Cursor, title: str) -> Cursor:
        cursor = self.ensure_space(cursor, 20)
        self.canvas.line(LEFT_MARGIN, cursor.y, self.width - LEFT_MARGIN, cursor.y, NAVY, 0.5)
        self.canvas.text(self.width / 2, cursor.y + 8, title, "bold", 13, NAVY, align="center")
        return cursor.moved(10)

    def draw_band(self, cursor: Cursor, labels: list[tuple[float, str, str]]) -> Cursor:
        cursor = self.ensure_space(cursor, BAND_HEIGHT)
        self.canvas.rect(LEFT_MARGIN, cursor.y, self.total_width, BAND_HEIGHT, fill=NAVY)
        for x, label, align in labels:
            self.canvas.text(x, cursor.y + 5, label, "bold", 10, WHITE, align=align)
        return cursor.moved(BAND_HEIGHT + 2)

    def draw_end_of_report(self, cursor: Cursor) -> Cursor:
        cursor = self.ensure_space(cursor, 20)
        self.canvas.text(self.width / 2, cursor.y + 4, END_OF_REPORT, "italic", 7, BLACK, align="center")
        return cursor.moved(LINE_HEIGHT)

    # -- normal results ----------------------------------------------------

    def resolved_range(self, parameter: Parameter) -> str:
        return display_range(resolve_range(parameter, self.age_days, self.gender))

    def row_layout(self, parameter: Parameter, indent: int = 0) -> dict:
        """Wrapped cell text and the height of one result row."""
        cols = self.columns
        range_text = self.resolved_range(parameter)
        unit = parameter.unit or ""
        value_text = format_value(parameter.value)
        value_text = value_text if value_text != "" else "-"
        unit_empty = not unit.strip()
        fully_merged = unit_empty and not range_text.strip()
        span = value_span(cols, unit, range_text)

        name_offset = indent_width(indent)
        name_lines = split_text(parameter.name, cols.param - 4 - name_offset, "normal", BODY_FONT_SIZE)
        value_lines = split_text(value_text, span - 4, "normal", BODY_FONT_SIZE)
        range_lines = [] if fully_merged else split_text(range_text, cols.range - 4, "normal", BODY_FONT_SIZE)
        unit_lines = [] if unit_empty else split_text(unit, cols.unit - 4, "normal", BODY_FONT_SIZE)
        line_count = max(len(name_lines), len(value_lines), len(range_lines), len(unit_lines))
        return {
            "name": name_lines,
            "name_offset": name_offset,
            "value": value_lines,
            "unit": unit_lines,
            "range": [] if not range_text.strip() else range_lines,
            "height": line_count * LINE_HEIGHT,
            "bold": is_out_of_range(format_value(parameter.value).strip(), range_text),
        }

    def print_row(self, cursor: Cursor, parameter: Parameter, indent: int = 0) -> Cursor:
        row = self.row_layout(parameter, indent)
        cursor = self.ensure_space(cursor, row["height"])
        cols, canvas, baseline = self.columns, self.canvas, cursor.y + 4

        canvas.text(cols.left + row["name_offset"], baseline, row["name"], "normal", BODY_FONT_SIZE,
                    leading=LINE_HEIGHT)
        canvas.text(cols.x_value + 2, baseline, row["value"], "bold" if row["bold"] else "normal", BODY_FONT_SIZE,
                    leading=LINE_HEIGHT)
        if row["unit"]:
            canvas.text(cols.x_unit + 2, baseline, row["unit"], "normal", BODY_FONT_SIZE, leading=LINE_HEIGHT)
        if row["range"]:
            canvas.text(cols.x_range + 2, baseline, row["range"], "normal", BODY_FONT_SIZE, leading=LINE_HEIGHT)
        cursor = cursor.moved(row["height"])

        for sub in visible(parameter.subparameters):
            cursor = self.print_row(cursor, sub, indent + 2)
        return cursor

    def draw_subheading(self, cursor: Cursor, title: str, x: float, min_rows: float = LINE_HEIGHT * 2) -> Cursor:
        cursor = self.ensure_space(cursor, 6 + min_rows)
        self.canvas.text(x, cursor.y + 5, title, "bold", 10, NAVY)
        return cursor.moved(6)

    def print_test(self, cursor: Cursor, test_key: str, test: TestResult) -> Cursor:
        cursor = replace(cursor, reported_on=test.reported_on)
        cols = self.columns
        cursor = self.draw_section_title(cursor, test_title(test_key, test))
        cursor = self.draw_band(cursor, [
            (cols.left + 2, "PARAMETER", "left"),
            (cols.x_value + 2, "VALUE", "left"),
            (cols.x_unit + 2, "UNIT", "left"),
            (cols.x_range + 2, "RANGE", "left"),
        ])

        globals_, sections = split_globals(test)
        for param in globals_:
            cursor = self.print_row(cursor, param)
        for title, rows in sections:
            cursor = self.draw_subheading(cursor, title, cols.left)
            for param in rows:
                cursor = self.print_row(cursor, param, 2)

        cursor = cursor.moved(3)
        if test.descriptions:
            cursor = cursor.moved(4)
            for description in test.descriptions:
                cursor = self.ensure_space(cursor, LINE_HEIGHT * 2)
                self.canvas.text(cols.left, cursor.y + LINE_HEIGHT, description.heading, "bold", 10, NAVY)
                cursor = cursor.moved(LINE_HEIGHT + 2)
                cursor = render_rich_text(self, description.content, cursor, cols.left, self.total_width)
                cursor = cursor.moved(4)
        return cursor

    # -- comparison --------------------------------------------------------

    def comparison_row_layout(
        self,
        parameter: Parameter,
        entries: list[HistoricalEntry],
        cols: ComparisonColumns,
        indent: int = 0,
    ) -> dict:
        latest = find_parameter(entries[0].parameters, parameter.name) if entries else None
        is_text = latest is not None and (
            (latest.value_type or "").lower() == "text" or not is_numeric_text(format_value(latest.value).strip())
        )
        range_text = ""
        unit = parameter.unit or ""
        if latest is not None and not is_text:
            range_text = display_range(resolve_range(latest, self.age_days, self.gender))
            unit = latest.unit or unit

        display_name = f"{parameter.name} ({unit})" if unit and not is_text else parameter.name
        name_offset = indent_width(indent)
        name_lines = split_text(display_name, cols.param - 4 - name_offset, "normal", BODY_FONT_SIZE)
        line_counts = [len(name_lines)]
        cells: list[tuple[list[str], bool]] = []
        range_lines: list[str] = []
        if is_text:
            text_value = format_value(latest.value).strip() or "-"
            span = cols.range + cols.date * cols.date_count
            cells.append((split_text(text_value, span - 4, "normal", BODY_FONT_SIZE), False))
        else:
            range_lines = split_text(range_text, cols.range - 4, "normal", BODY_FONT_SIZE) if range_text else []
            line_counts.append(len(range_lines))
            for entry in entries:
                instance = find_parameter(entry.parameters, parameter.name)
                raw = format_value(instance.value).strip() if instance is not None else ""
                bold = instance is not None and is_out_of_range(raw, range_text)
                cells.append((split_text(raw or "-", cols.date - 4, "normal", BODY_FONT_SIZE), bold))
        line_counts.extend(len(lines) for lines, _ in cells)
        return {
            "name": name_lines,
            "name_offset": name_offset,
            "range": range_lines,
            "cells": cells,
            "is_text": is_text,
            "height": max(COMPARISON_LINE_HEIGHT, max(line_counts) * COMPARISON_LINE_HEIGHT),
        }

    def print_comparison_row(
        self,
        cursor: Cursor,
        parameter: Parameter,
        entries: list[HistoricalEntry],
        cols: ComparisonColumns,
        indent: int = 0,
    ) -> Cursor:
        row = self.comparison_row_layout(parameter, entries, cols, indent)
        cursor = self.ensure_space(cursor, row["height"] + COMPARISON_ROW_PADDING)
        canvas, baseline = self.canvas, cursor.y + 4

        canvas.text(cols.left + 2 + row["name_offset"], baseline, row["name"], "normal", BODY_FONT_SIZE,
                    leading=COMPARISON_LINE_HEIGHT)
        if row["is_text"]:
            lines, _ = row["cells"][0]
            canvas.text(cols.x_range + 2, baseline, lines, "normal", BODY_FONT_SIZE, leading=COMPARISON_LINE_HEIGHT)
        else:
            if row["range"]:
                canvas.text(cols.x_range + 2, baseline, row["range"], "normal", BODY_FONT_SIZE,
                            leading=COMPARISON_LINE_HEIGHT)
            x = cols.x_dates
            for lines, bold in row["cells"]:
                canvas.text(x + cols.date / 2, baseline, lines, "bold" if bold else "normal", BODY_FONT_SIZE,
                            align="center", leading=COMPARISON_LINE_HEIGHT)
                x += cols.date
        cursor = cursor.moved(row["height"] + COMPARISON_ROW_PADDING)

        for sub in visible(parameter.subparameters):
            cursor = self.print_comparison_row(cursor, sub, entries, cols, indent + 2)
        return cursor

    def print_comparison(
        self,
        cursor: Cursor,
        selection: ComparisonSelection,
        entries: list[HistoricalEntry],
        test: TestResult,
    ) -> Cursor:
        """One comparison table; ``entries`` are the chosen reports, newest first."""
        cols = comparison_columns(len(entries), self.total_width)
        cursor = self.draw_section_title(cursor, f"{selection.test_name.upper()} COMPARISON REPORT")
        labels = [(cols.left + 2, "PARAMETER", "left"), (cols.x_range + 2, "RANGE", "left")]
        for index, entry in enumerate(entries):
            labels.append((cols.x_dates + cols.date * index + cols.date / 2, format_short_date(entry.reported_on),
                           "center"))
        cursor = self.draw_band(cursor, labels)

        globals_, sections = split_globals(test)
        for param in globals_:
            cursor = self.print_comparison_row(cursor, param, entries, cols)
        for title, rows in sections:
            cursor = self.draw_subheading(cursor, title, cols.left, COMPARISON_LINE_HEIGHT * 2)
            for param in rows:
                cursor = self.print_comparison_row(cursor, param, entries, cols, 2)
        return cursor.moved(10)

    # -- suggestions -------------------------------------------------------

    def _card_layout(self, section: RecommendationSection, text_width_mm: float) -> dict:
        title_height = line_advance(12)
        description = split_text(section.description, text_width_mm, "normal", 8) if section.description else []
        items = []
        for item in section.items:
            heading = f"• {item.heading}:"
            heading_width = text_width(heading + " ", "bold", 9)
            first, *_ = split_text(item.content, text_width_mm - heading_width, "normal", 8)
            remaining = item.content[len(first):].strip()
            rest = split_text(remaining, text_width_mm, "normal", 8) if remaining else []
            items.append((heading, heading_width, first, rest))
        block = title_height + 2 + len(description) * 4 + 2
        block += sum(4 * (1 + len(rest)) + 1 for *_, rest in items)
        return {"title_height": title_height, "description": description, "items": items, "block": block}

    def draw_recommendation_card(self, cursor: Cursor, section: RecommendationSection, image) -> Cursor:
        padding, image_size, gap = 5.0, 30.0, 5.0
        text_x = LEFT_MARGIN + padding + image_size + gap
        width = self.total_width - 2 * padding - image_size - gap
        card = self._card_layout(section, width)
        card_height = max(card["block"] + 2 * padding, image_size + 2 * padding)

        cursor = self.ensure_space(cursor, card_height + 10)
        top, canvas = cursor.y, self.canvas
        canvas.rect(LEFT_MARGIN, top, self.total_width, card_height, fill=CARD_FILL, stroke=BLACK, line_width=0.2)
        canvas.image(image, LEFT_MARGIN + padding, top + padding, image_size, image_size)

        y = top + padding
        canvas.text(text_x, y + card["title_height"] * 0.8, section.title, "bold", 12, NAVY)
        y += card["title_height"] + 2
        if card["description"]:
            canvas.text(text_x, y + 3, card["description"], "normal", 8, (50, 50, 50), leading=4)
            y += len(card["description"]) * 4
        y += 2
        for heading, heading_width, first, rest in card["items"]:
            canvas.text(text_x, y + 3, heading, "bold", 9)
            canvas.text(text_x + heading_width, y + 3, first, "normal", 8)
            if rest:
                canvas.text(text_x, y + 7, rest, "normal", 8, leading=4)
            y += 4 * (1 + len(rest)) + 1
        return cursor.moved(card_height + 10)

    def draw_suggestions(self, cursor: Cursor, suggestions: AiSuggestions) -> Cursor:
        cursor = self.ensure_space(cursor, 30)
        self.canvas.text(self.width / 2, cursor.y + 10, SUGGESTIONS_TITLE, "bold", 16, NAVY, align="center")
        cursor = cursor.moved(20)
        cursor = self.draw_recommendation_card(cursor, suggestions.diet, self.assets.diet)
        return self.draw_recommendation_card(cursor, suggestions.exercise, self.assets.exercise)
