from datetime import datetime, timezone

import pytest

from pathlab.schemas.report import HistoricalEntry, Parameter, TestResult
from pathlab.services.assets import ReportAssets
from pathlab.services.canvas import PageCanvas, split_text, text_width
from pathlab.services.layout import (
    FOOTER_MARGIN,
    HEADER_TOP,
    LEFT_MARGIN,
    LINE_HEIGHT,
    Cursor,
    ReportLayout,
    chunk_tests,
    comparison_columns,
    content_width,
    find_parameter,
    format_short_date,
    format_timestamp,
    indent_width,
    normal_columns,
    split_globals,
    value_span,
)
from pathlab.services.rich_text_renderer import render_rich_text


@pytest.fixture()
def layout(make_patient):
    patient = make_patient({})
    return ReportLayout(PageCanvas(), patient, ReportAssets(), include_letterhead=False, printed_by="Lab Tech")


def test_normal_columns_split_content_width():
    total = content_width(210)
    cols = normal_columns(total)
    assert cols.param + cols.value + cols.unit + cols.range == pytest.approx(total)
    assert cols.param == pytest.approx(total * 0.4)
    assert cols.x_range == pytest.approx(cols.left + total * 0.7)


def test_value_span_absorbs_empty_cells():
    cols = normal_columns(164)
    assert value_span(cols, "g/dL", "12 - 16") == pytest.approx(cols.value)
    assert value_span(cols, "", "12 - 16") == pytest.approx(cols.value + cols.unit)
    assert value_span(cols, " ", "") == pytest.approx(cols.value + cols.unit + cols.range)
    assert value_span(cols, "g/dL", "") == pytest.approx(cols.value)


@pytest.mark.parametrize("count", [1, 2, 4, 7])
def test_comparison_columns_fill_the_width(count):
    cols = comparison_columns(count, 164)
    assert cols.param + cols.range + cols.date * count == pytest.approx(164)
    assert cols.x_dates == pytest.approx(cols.left + 164 * 0.5)


def test_chunk_tests():
    keys = [f"t{index}" for index in range(7)]
    assert chunk_tests(keys, 5) == [keys[:5], keys[5:]]
    assert chunk_tests([], 5) == []


def test_timestamps_are_shown_in_lab_timezone():
    assert format_timestamp(datetime(2024, 1, 1, 0, 0)) == "01/01/2024, 05:30 AM"
    assert format_timestamp(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)) == "01/01/2024, 05:30 PM"
    assert format_timestamp(None) == "-"
    assert format_short_date(datetime(2024, 3, 9, 20, 0)) == "10 Mar"


def test_find_parameter_searches_subparameters():
    params = [
        Parameter(name="WBC", subparameters=[Parameter(name="Neutrophils", value="60")]),
        Parameter(name="Platelets"),
    ]
    assert find_parameter(params, "Platelets").name == "Platelets"
    assert find_parameter(params, "Neutrophils").value == "60"
    assert find_parameter(params, "Missing") is None


def test_split_globals_groups_by_subheading_and_drops_hidden():
    test = TestResult.model_validate({
        "parameters": [
            {"name": "Hemoglobin"},
            {"name": "Neutrophils"},
            {"name": "Lymphocytes", "visibility": "hidden"},
            {"name": "Platelets"},
        ],
        "subheadings": [
            {"title": "Differential Count", "parameterNames": ["Neutrophils", "Lymphocytes"]},
            {"title": "Empty", "parameterNames": ["Nothing"]},
        ],
    })
    globals_, sections = split_globals(test)
    assert [param.name for param in globals_] == ["Hemoglobin", "Platelets"]
    assert [(title, [param.name for param in rows]) for title, rows in sections] == [
        ("Differential Count", ["Neutrophils"]),
    ]


def test_header_rows_merge_patient_and_registration_ids(layout):
    left, right = layout.header_rows(datetime(2024, 1, 5, 6, 0))
    assert left[0] == ("Patient Name", "Mr RAVI KUMAR")
    assert left[1] == ("Age/Sex", "42 Years / Male")
    assert right[0] == ("Patient ID", "PL-1001-7")
    assert right[3] == ("Reported On", "05/01/2024, 11:30 AM")


def test_row_is_bold_only_when_numeric_value_is_out_of_range(layout):
    high = layout.row_layout(Parameter(name="Hemoglobin", value="18.2", unit="g/dL", range="13 - 17"))
    normal = layout.row_layout(Parameter(name="Hemoglobin", value="14", unit="g/dL", range="13 - 17"))
    text = layout.row_layout(Parameter(name="Colour", value="Pale yellow", range="13 - 17"))
    assert high["bold"] is True
    assert normal["bold"] is False
    assert text["bold"] is False


def test_row_height_follows_the_tallest_cell(layout):
    short = layout.row_layout(Parameter(name="Hb", value="14", unit="g/dL", range="13 - 17"))
    long_name = "Mean corpuscular haemoglobin concentration measured by automated analyser"
    tall = layout.row_layout(Parameter(name=long_name, value="33", unit="g/dL", range="32 - 36"))
    assert short["height"] == LINE_HEIGHT
    assert tall["height"] == len(tall["name"]) * LINE_HEIGHT
    assert len(tall["name"]) > 1


def test_empty_value_is_shown_as_dash(layout):
    row = layout.row_layout(Parameter(name="Remarks", value=""))
    assert row["value"] == ["-"]
    assert row["range"] == []
    assert row["unit"] == []


def test_ensure_space_starts_a_new_page_with_header(layout):
    cursor = Cursor(y=100)
    assert layout.ensure_space(cursor, 10) is cursor

    near_bottom = Cursor(y=layout.height - FOOTER_MARGIN - 3)
    moved = layout.ensure_space(near_bottom, 5)
    assert layout.canvas.page_count == 2
    assert moved.page == 2
    assert moved.y == pytest.approx(HEADER_TOP + 4 * LINE_HEIGHT)


def test_print_test_advances_cursor_and_carries_reported_on(layout):
    reported = datetime(2024, 1, 5, 6, 0, tzinfo=timezone.utc)
    test = TestResult.model_validate({
        "testName": "Blood Sugar",
        "reportedOn": reported.isoformat(),
        "parameters": [{"name": "Fasting", "value": "92", "unit": "mg/dL", "range": "70 - 110"}],
        "descriptions": [{"heading": "Note", "content": "<p>Fasting of <b>8 hours</b> required.</p>"}],
    })
    start = Cursor(y=70)
    end = layout.print_test(start, "blood_sugar", test)
    assert end.y > start.y + LINE_HEIGHT
    assert end.reported_on == reported
    assert end.page == 1


class RecordingCanvas(PageCanvas):
    """PageCanvas that remembers where each line of text was drawn."""

    def __init__(self):
        super().__init__()
        self.drawn = []

    def text(self, x, y, text, style="normal", *args, **kwargs):
        for line in text if isinstance(text, list) else str(text).split("\n"):
            self.drawn.append({"text": line, "x": x, "page": self.page_count, "style": style})
        super().text(x, y, text, style, *args, **kwargs)

    def rect(self, x, y, w, h, fill=None, *args, **kwargs):
        if fill is not None:
            self.drawn.append({"fill": fill, "x": x, "w": w, "page": self.page_count})
        super().rect(x, y, w, h, fill, *args, **kwargs)

    def find(self, text: str) -> dict:
        return next(item for item in self.drawn if item.get("text") == text)

    def fills(self, color) -> list[dict]:
        return [item for item in self.drawn if item.get("fill") == color]


@pytest.fixture()
def recording_layout(make_patient):
    return ReportLayout(RecordingCanvas(), make_patient({}), ReportAssets(), include_letterhead=False)


def _wbc() -> Parameter:
    return Parameter.model_validate({
        "name": "WBC",
        "value": "7200",
        "subparameters": [
            {"name": "Neutrophils", "value": "60", "subparameters": [{"name": "Band Forms", "value": "2"}]},
        ],
    })


def test_subparameters_are_indented_one_step_per_level(recording_layout):
    recording_layout.print_row(Cursor(y=80), _wbc())
    canvas = recording_layout.canvas

    parent, child, grandchild = (canvas.find(name)["x"] for name in ("WBC", "Neutrophils", "Band Forms"))
    assert child > parent
    assert child - parent == pytest.approx(indent_width(2))
    assert grandchild - child == pytest.approx(indent_width(2))


def test_comparison_subparameters_are_indented(recording_layout):
    entries = [HistoricalEntry(registration_id=1, reported_on=datetime(2024, 1, 5), test_key="cbc",
                               parameters=[_wbc()])]
    cols = comparison_columns(1, recording_layout.total_width)
    recording_layout.print_comparison_row(Cursor(y=80), _wbc(), entries, cols)
    canvas = recording_layout.canvas

    assert canvas.find("Neutrophils")["x"] - canvas.find("WBC")["x"] == pytest.approx(indent_width(2))


def test_subparameter_rows_check_for_room_at_each_level(recording_layout):
    start = Cursor(y=recording_layout.height - FOOTER_MARGIN - LINE_HEIGHT - 1)
    end = recording_layout.print_row(start, _wbc())
    canvas = recording_layout.canvas

    assert canvas.find("WBC")["page"] == 1
    assert canvas.find("Neutrophils")["page"] == 2
    assert canvas.find("Band Forms")["page"] == 2
    assert end.page == 2
    assert end.y == pytest.approx(HEADER_TOP + 4 * LINE_HEIGHT + 2 * LINE_HEIGHT)


def test_split_text_breaks_words_wider_than_the_column():
    organism = "Pseudomonasaeruginosaisolatedfromculture"
    lines = split_text(organism, 24.6, "normal", 9)
    assert len(lines) > 1
    assert "".join(lines) == organism
    assert all(text_width(line, "normal", 9) <= 24.6 for line in lines)

    mixed = split_text(f"Growth of {organism} seen", 24.6, "normal", 9)
    assert mixed[0] == "Growth of"
    assert all(text_width(line, "normal", 9) <= 24.6 for line in mixed)


def test_long_unbroken_value_grows_the_row(layout):
    row = layout.row_layout(Parameter(name="Organism", value="Pseudomonasaeruginosaisolatedfromculture",
                                      unit="", range="-"))
    span = value_span(layout.columns, "", "-")
    assert len(row["value"]) > 1
    assert row["height"] == len(row["value"]) * LINE_HEIGHT
    assert all(text_width(line, "normal", 9) <= span - 4 for line in row["value"])


def test_bucketed_range_is_resolved_for_a_45_year_old_woman(make_patient):
    patient = make_patient({}, gender="Female", age=45)
    layout = ReportLayout(PageCanvas(), patient, ReportAssets(), include_letterhead=False)
    bucketed = {
        "male": [{"rangeKey": "18-60y", "rangeValue": "13-17"}],
        "female": [{"rangeKey": "0-17y", "rangeValue": "11-14"}, {"rangeKey": "18-60y", "rangeValue": "12-15"}],
    }

    low = layout.row_layout(Parameter.model_validate({"name": "Hemoglobin", "value": "10", "range": bucketed}))
    normal = layout.row_layout(Parameter.model_validate({"name": "Hemoglobin", "value": "13", "range": bucketed}))
    assert low["range"] == ["12-15"]
    assert low["bold"] is True
    assert normal["bold"] is False


def test_text_parameter_collapses_to_latest_value_in_comparison(layout):
    entries = [
        HistoricalEntry(registration_id=index, reported_on=datetime(2024, month, 1), test_key="urine",
                        parameters=[Parameter(name="Colour", value=value, value_type="text")])
        for index, (month, value) in enumerate([(3, "Pale yellow"), (2, "Straw"), (1, "Amber")], start=1)
    ]
    cols = comparison_columns(len(entries), layout.total_width)

    row = layout.comparison_row_layout(Parameter(name="Colour"), entries, cols)
    assert row["is_text"] is True
    assert row["range"] == []
    assert row["cells"] == [(["Pale yellow"], False)]


def test_description_background_follows_its_line_onto_the_next_page(recording_layout):
    start = Cursor(y=recording_layout.height - FOOTER_MARGIN - 3)
    html = '<div style="background-color: #ffff00">Fasting sample</div>'
    render_rich_text(recording_layout, html, start, LEFT_MARGIN, 100)

    (band,) = recording_layout.canvas.fills((255, 255, 0))
    assert band["page"] == 2
    assert recording_layout.canvas.find("Fasting sample")["page"] == 2


def test_span_background_covers_only_its_own_text(recording_layout):
    html = '<p>Result <span style="background-color: #ffff00">positive</span> today</p>'
    render_rich_text(recording_layout, html, Cursor(y=80), LEFT_MARGIN, 100)

    (band,) = recording_layout.canvas.fills((255, 255, 0))
    assert band["w"] == pytest.approx(text_width("positive", "normal", 9))
    assert band["x"] == pytest.approx(LEFT_MARGIN + text_width("Result ", "normal", 9))
