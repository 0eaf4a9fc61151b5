import json
import logging
import re

from pydantic import ValidationError

from pathlab.config import settings
from pathlab.schemas.report import AiSuggestions, PatientContext, RecommendationItem, RecommendationSection
from pathlab.services.ranges import age_in_days, format_value, parse_leading_float, parse_numeric_range, resolve_range

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTIONS = AiSuggestions(
    diet=RecommendationSection(
        title="Diet Recommendations",
        description="Based on your general health, here are some diet suggestions:",
        items=[
            RecommendationItem(
                heading="Balanced Diet",
                content="Focus on a balanced diet with plenty of fruits, vegetables, and lean proteins.",
            ),
            RecommendationItem(heading="Hydration", content="Ensure adequate water intake throughout the day."),
        ],
    ),
    exercise=RecommendationSection(
        title="Exercise Recommendations",
        description="To maintain good health, consider these exercise tips:",
        items=[
            RecommendationItem(
                heading="Regular Activity",
                content="Aim for at least 30 minutes of moderate physical activity most days.",
            ),
            RecommendationItem(
                heading="Strength & Flexibility",
                content="Incorporate strength training and stretching exercises.",
            ),
        ],
    ),
)


def _status(value, range_text: str) -> str:
    bounds = parse_numeric_range(range_text)
    number = parse_leading_float(value)
    if bounds is None or number is None:
        return ""
    if number < bounds[0]:
        return " (LOW)"
    if number > bounds[1]:
        return " (HIGH)"
    return " (NORMAL)"


def summarize_results(patient: PatientContext) -> str:
    """One line per parameter with its applicable range and LOW/HIGH/NORMAL flag."""
    age_days = age_in_days(patient)
    lines = []
    for test_key, test in patient.bloodtest.items():
        lines.append(f"Test: {test.test_name or test_key.replace('_', ' ')}")
        for param in test.parameters:
            range_text = resolve_range(param, age_days, patient.gender)
            value = format_value(param.value)
            lines.append(
                f"- {param.name}: {value} {param.unit or ''} (Range: {range_text}){_status(value, range_text)}"
            )
    return "\n".join(lines)


def _extract_json_obj(raw_text: str) -> dict | None:
    match = re.search(r"\{.*\}", raw_text, flags=re.DOTALL)
    if not match:
        return None
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _prompt(patient: PatientContext) -> str:
    return f"""
Generate short, professional, and actionable diet and exercise recommendations for a patient based on their blood test report.
Patient: {patient.name}, Age: {format_value(patient.age)} {patient.day_type}(s), Gender: {patient.gender or "-"}.
Blood test results:
{summarize_results(patient)}

Return STRICT JSON only with schema:
{{"diet": {{"title": "...", "description": "...", "items": [{{"heading": "...", "content": "..."}}]}},
  "exercise": {{"title": "...", "description": "...", "items": [{{"heading": "...", "content": "..."}}]}}}}

Rules:
- Two to four items per section, each content one or two sentences.
- If results are unremarkable, give general health advice.
"""


def generate_suggestions(patient: PatientContext) -> AiSuggestions:
    """Diet and exercise advice for the suggestions page; the fixed defaults when no LLM is configured or it fails."""
    if not settings.suggestions_enable_llm or not settings.openai_api_key:
        return DEFAULT_SUGGESTIONS

    from llama_index.llms.openai import OpenAI

    try:
        llm = OpenAI(model=settings.suggestions_model, api_key=settings.openai_api_key, temperature=0.2)
        response = llm.complete(_prompt(patient))
    except Exception:
        logger.exception("Suggestion request failed for registration %s", patient.registration_id)
        return DEFAULT_SUGGESTIONS

    payload = _extract_json_obj(getattr(response, "text", str(response)))
    if payload is None:
        logger.warning("Suggestion response for registration %s was not JSON", patient.registration_id)
        return DEFAULT_SUGGESTIONS
    try:
        return AiSuggestions.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Suggestion response for registration %s had the wrong shape: %s", patient.registration_id, exc)
        return DEFAULT_SUGGESTIONS
