import json
import logging
import re
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy.orm import Session

from pathlab.config import settings
from pathlab.models.registration import RegistrationRecord
from pathlab.schemas.report import (
    AvailableDate,
    ComparisonSelection,
    HistoricalEntry,
    Parameter,
    PatientContext,
    TestResult,
)

logger = logging.getLogger(__name__)


def slugify_test_name(name: str) -> str:
    return re.sub(r"[.#$\[\]()]", "", re.sub(r"\s+", "_", name.lower()))


def as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def load_json(raw: str | None, default):
    """Decode a JSON text column; anything unreadable or of the wrong shape gives ``default``."""
    if not raw:
        return default
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return default
    return parsed if isinstance(parsed, type(default)) else default


def ordered_tests(registration: RegistrationRecord) -> list[dict]:
    return [item for item in load_json(registration.tests_json, []) if isinstance(item, dict)]


def _ordered_entry(test_key: str, ordered: list[dict]) -> dict | None:
    for item in ordered:
        name = str(item.get("testName") or "")
        if slugify_test_name(name) == test_key or name == test_key:
            return item
    return None


def load_results(registration: RegistrationRecord) -> dict[str, TestResult]:
    """Entered results keyed by test slug, each tagged with its ordered test type."""
    ordered = ordered_tests(registration)
    results: dict[str, TestResult] = {}
    for test_key, payload in load_json(registration.results_json, {}).items():
        if not isinstance(payload, dict):
            continue
        entry = _ordered_entry(test_key, ordered) or {}
        try:
            result = TestResult.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Skipping unreadable results for %s on registration %s: %s", test_key, registration.id, exc)
            continue
        results[test_key] = result.model_copy(update={
            "type": entry.get("testType") or result.type or "inhouse",
            "test_name": result.test_name or entry.get("testName"),
        })
    return results


def _visible_tree(parameters: list[Parameter]) -> list[Parameter]:
    return [
        param.model_copy(update={"subparameters": _visible_tree(param.subparameters)})
        for param in parameters
        if (param.visibility or "").lower() != "hidden"
    ]


def hide_invisible(tests: dict[str, TestResult]) -> dict[str, TestResult]:
    """Drop outsourced tests and every hidden parameter or subparameter."""
    return {
        key: test.model_copy(update={"parameters": _visible_tree(test.parameters)})
        for key, test in tests.items()
        if (test.type or "").lower() != "outsource"
    }


def build_patient_context(registration: RegistrationRecord) -> PatientContext:
    patient = registration.patient
    return PatientContext(
        title=patient.title,
        name=patient.name,
        age=patient.age,
        day_type=patient.day_type or "year",
        total_day=patient.total_day,
        gender=patient.gender,
        patient_id=patient.patient_code,
        registration_id=registration.id,
        doctor_name=registration.doctor_name,
        hospital_name=registration.hospital_name,
        registration_time=registration.registration_time,
        sample_collected_at=registration.sample_collected_at,
        bloodtest=hide_invisible(load_results(registration)),
    )


def build_history(
    registrations: list[RegistrationRecord],
) -> tuple[dict[str, list[HistoricalEntry]], dict[str, ComparisonSelection]]:
    """Aggregate every registration of a patient into per-test history and comparison choices.

    Available dates are sorted oldest first; the newest N are pre-selected
    where ``settings.comparison_default_selection`` names the test.
    """
    history: dict[str, list[HistoricalEntry]] = {}
    names: dict[str, str] = {}
    dates: dict[str, list[AvailableDate]] = {}

    for registration in sorted(registrations, key=lambda item: item.registration_time):
        ordered = ordered_tests(registration)
        for test_key, result in load_results(registration).items():
            reported_on = as_utc(result.reported_on or registration.registration_time)
            entry = _ordered_entry(test_key, ordered)
            names.setdefault(test_key, (entry or {}).get("testName") or test_key.replace("_", " "))
            history.setdefault(test_key, []).append(
                HistoricalEntry(
                    registration_id=registration.id,
                    reported_on=reported_on,
                    test_key=test_key,
                    parameters=result.parameters,
                )
            )
            dates.setdefault(test_key, []).append(
                AvailableDate(
                    date=reported_on,
                    registration_id=registration.id,
                    test_key=test_key,
                    reported_on=reported_on,
                )
            )

    selections: dict[str, ComparisonSelection] = {}
    for test_key, available in dates.items():
        available.sort(key=lambda item: item.reported_on)
        count = settings.comparison_default_selection.get(test_key, 0)
        selected = [item.date for item in available[-count:]] if count > 0 else []
        selections[test_key] = ComparisonSelection(
            test_name=names[test_key],
            slugified_test_name=test_key,
            available_dates=available,
            selected_dates=selected,
        )
    return history, selections


def load_patient_history(
    db: Session,
    patient_id: int,
) -> tuple[dict[str, list[HistoricalEntry]], dict[str, ComparisonSelection]]:
    registrations = (
        db.query(RegistrationRecord)
        .filter(RegistrationRecord.patient_id == patient_id)
        .order_by(RegistrationRecord.registration_time.asc())
        .all()
    )
    return build_history(registrations)
