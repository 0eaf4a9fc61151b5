import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from pathlab.config import settings
from pathlab.schemas.report import (
    AiSuggestions,
    CombinedGroup,
    ComparisonSelection,
    HistoricalEntry,
    PatientContext,
    ReportMode,
    TestResult,
)
from pathlab.services.assets import ReportAssets, load_report_assets
from pathlab.services.canvas import PageCanvas
from pathlab.services.layout import ReportLayout, chunk_tests, visible

logger = logging.getLogger(__name__)


class ReportGenerationError(RuntimeError):
    """Raised when a report cannot be produced from the data supplied."""


def is_printable(test: TestResult | None) -> bool:
    """Outsourced tests and tests without visible parameters never reach the page."""
    if test is None:
        return False
    if (test.type or "").lower() == "outsource":
        return False
    return bool(visible(test.parameters))


def printed_by_for(patient: PatientContext) -> str:
    first = next(iter(patient.bloodtest.values()), None)
    if first is not None and first.entered_by:
        return first.entered_by
    return settings.default_printed_by


def _instant(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def select_comparison_entries(
    selection: ComparisonSelection,
    history: list[HistoricalEntry],
) -> list[HistoricalEntry]:
    """Historical entries whose report date was picked, newest first."""
    wanted = {_instant(value) for value in selection.selected_dates}
    entries = [entry for entry in history if _instant(entry.reported_on) in wanted]
    return sorted(entries, key=lambda entry: _instant(entry.reported_on), reverse=True)


def plan_normal(
    patient: PatientContext,
    selected_tests: Iterable[str],
    combined_groups: list[CombinedGroup],
) -> list[list[str]]:
    """Page blocks for normal mode: each combined group, then each ungrouped test."""
    selected = set(selected_tests)
    tests = patient.bloodtest
    blocks: list[list[str]] = []
    grouped: set[str] = set()
    for group in combined_groups:
        grouped.update(group.tests)
        keys = [key for key in group.tests if key in selected and is_printable(tests.get(key))]
        if keys:
            blocks.append(keys)
    for key, test in tests.items():
        if key in selected and key not in grouped and is_printable(test):
            blocks.append([key])
    return blocks


def plan_combined(patient: PatientContext, selected_tests: Iterable[str], chunk_size: int) -> list[list[str]]:
    """Selected tests in registration order, cut into fixed-size chunks before skipping."""
    selected = set(selected_tests)
    ordered = [key for key in patient.bloodtest if key in selected]
    blocks = []
    for chunk in chunk_tests(ordered, chunk_size):
        keys = [key for key in chunk if is_printable(patient.bloodtest.get(key))]
        if keys:
            blocks.append(keys)
    return blocks


def plan_comparison(
    patient: PatientContext,
    historical_data: Mapping[str, list[HistoricalEntry]],
    comparison_selections: Mapping[str, ComparisonSelection] | Iterable[ComparisonSelection],
) -> list[tuple[ComparisonSelection, list[HistoricalEntry], TestResult]]:
    if isinstance(comparison_selections, Mapping):
        comparison_selections = comparison_selections.values()
    tables = []
    for selection in comparison_selections:
        test = patient.bloodtest.get(selection.slugified_test_name)
        if not selection.selected_dates or not is_printable(test):
            continue
        entries = select_comparison_entries(selection, list(historical_data.get(selection.slugified_test_name, [])))
        if entries:
            tables.append((selection, entries, test))
    return tables


def generate_report_pdf(
    patient: PatientContext | None,
    selected_tests: Iterable[str],
    combined_groups: list[CombinedGroup] | None = None,
    historical_data: Mapping[str, list[HistoricalEntry]] | None = None,
    comparison_selections: Mapping[str, ComparisonSelection] | None = None,
    report_mode: ReportMode | str = ReportMode.NORMAL,
    include_letterhead: bool = True,
    skip_cover: bool = True,
    *,
    assets: ReportAssets | None = None,
    suggestions: AiSuggestions | None = None,
) -> bytes:
    """Lay out a complete lab report and return the PDF bytes.

    Page order is: optional cover image, optional suggestions page, then the
    results. In normal mode each combined group and each remaining test
    starts a fresh page; combined mode packs tests in chunks per page; in
    comparison mode every selected test gets its own comparison table.
    """
    if patient is None:
        raise ReportGenerationError("Patient data is required to generate a report")

    mode = ReportMode(report_mode)
    selected = list(selected_tests or [])
    if assets is None:
        assets = load_report_assets(include_letterhead, skip_cover, suggestions is not None)

    canvas = PageCanvas(title=f"{patient.name} - Lab Report")
    layout = ReportLayout(canvas, patient, assets, include_letterhead, printed_by_for(patient))

    page_used = False
    if not skip_cover:
        layout.draw_cover()
        page_used = True
    if suggestions is not None:
        cursor = layout.start_page(patient.registration_time, new_page=page_used)
        layout.draw_suggestions(cursor, suggestions)
        page_used = True

    tests = patient.bloodtest
    if mode is ReportMode.COMPARISON:
        tables = plan_comparison(patient, historical_data or {}, comparison_selections or {})
        cursor = layout.start_page(patient.registration_time, new_page=page_used)
        for index, (selection, entries, test) in enumerate(tables):
            if index:
                cursor = layout.start_page(patient.registration_time)
            cursor = layout.print_comparison(cursor, selection, entries, test)
    else:
        if mode is ReportMode.COMBINED:
            blocks = plan_combined(patient, selected, settings.combined_chunk_size)
        else:
            blocks = plan_normal(patient, selected, combined_groups or [])
        opening = tests[blocks[0][0]].reported_on if blocks else None
        cursor = layout.start_page(opening or patient.registration_time, new_page=page_used)
        for index, block in enumerate(blocks):
            if index:
                cursor = layout.start_page(tests[block[0]].reported_on)
            for key in block:
                cursor = layout.print_test(cursor, key, tests[key])
                if mode is ReportMode.COMBINED:
                    cursor = cursor.moved(10)

    layout.draw_end_of_report(cursor)
    logger.info("Generated %s report for registration %s: %d pages", mode.value, patient.registration_id,
                canvas.page_count)
    return canvas.to_bytes()
