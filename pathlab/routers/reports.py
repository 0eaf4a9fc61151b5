import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from pathlab.database import get_db
from pathlab.models.registration import RegistrationRecord
from pathlab.routers.deps import get_registration
from pathlab.schemas.report import ReportMode, ReportOptions, ReportRequest
from pathlab.services.history import build_patient_context, load_patient_history
from pathlab.services.pdf_generator import ReportGenerationError, generate_report_pdf
from pathlab.services.suggestions import generate_suggestions

router = APIRouter(prefix="/api", tags=["reports"])
logger = logging.getLogger(__name__)


def _pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


def _report_filename(name: str, registration_id) -> str:
    return f"{name}_{registration_id}_report.pdf".replace(" ", "_")


@router.post("/reports/pdf")
def render_report(payload: ReportRequest):
    suggestions = payload.suggestions
    if payload.include_suggestions and suggestions is None and payload.patient is not None:
        suggestions = generate_suggestions(payload.patient)

    try:
        content = generate_report_pdf(
            payload.patient,
            payload.selected_tests,
            combined_groups=payload.combined_groups,
            historical_data=payload.historical_data,
            comparison_selections=payload.comparison_selections,
            report_mode=payload.report_mode,
            include_letterhead=payload.include_letterhead,
            skip_cover=payload.skip_cover,
            suggestions=suggestions,
        )
    except ReportGenerationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _pdf_response(content, _report_filename(payload.patient.name, payload.patient.registration_id))


@router.get("/registrations/{registration_id}/comparison-options")
def comparison_options(
    registration: RegistrationRecord = Depends(get_registration),
    db: Session = Depends(get_db),
):
    history, selections = load_patient_history(db, registration.patient_id)
    return {
        "statusCode": 200,
        "message": "Success",
        "data": {
            "historicalData": {
                key: [entry.model_dump(mode="json", by_alias=True) for entry in entries]
                for key, entries in history.items()
            },
            "comparisonSelections": {
                key: selection.model_dump(mode="json", by_alias=True) for key, selection in selections.items()
            },
        },
    }


@router.post("/registrations/{registration_id}/report")
def render_registration_report(
    options: ReportOptions,
    registration: RegistrationRecord = Depends(get_registration),
    db: Session = Depends(get_db),
):
    patient = build_patient_context(registration)
    historical_data, default_selections = {}, {}
    if options.report_mode is ReportMode.COMPARISON:
        historical_data, default_selections = load_patient_history(db, registration.patient_id)
        if options.selected_tests:
            default_selections = {
                key: selection for key, selection in default_selections.items() if key in options.selected_tests
            }

    suggestions = generate_suggestions(patient) if options.include_suggestions else None
    try:
        content = generate_report_pdf(
            patient,
            options.selected_tests,
            combined_groups=options.combined_groups,
            historical_data=historical_data,
            comparison_selections=options.comparison_selections or default_selections,
            report_mode=options.report_mode,
            include_letterhead=options.include_letterhead,
            skip_cover=options.skip_cover,
            suggestions=suggestions,
        )
    except ReportGenerationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("Rendered %s report for registration %s", options.report_mode.value, registration.id)
    return _pdf_response(content, _report_filename(patient.name, registration.id))


@router.post("/registrations/{registration_id}/suggestions")
def registration_suggestions(registration: RegistrationRecord = Depends(get_registration)):
    suggestions = generate_suggestions(build_patient_context(registration))
    return {"statusCode": 200, "message": "Success", "data": suggestions.model_dump(mode="json", by_alias=True)}
