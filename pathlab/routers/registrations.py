import json
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from pathlab.database import get_db
from pathlab.models.patient import PatientRecord
from pathlab.models.registration import RegistrationRecord
from pathlab.routers.deps import get_registration, to_naive_utc
from pathlab.schemas.registration import (
    PatientCreate,
    RegistrationCreate,
    ReportedOnUpdate,
    ResultsUpdate,
    TimesUpdate,
)
from pathlab.services.billing import calculate_amounts
from pathlab.services.history import build_patient_context, load_json, ordered_tests, slugify_test_name

router = APIRouter(prefix="/api", tags=["registrations"])


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _registration_summary(registration: RegistrationRecord) -> dict:
    amounts = calculate_amounts(registration)
    return {
        "id": registration.id,
        "patient_id": registration.patient_id,
        "patient_code": registration.patient.patient_code,
        "patient_name": registration.patient.name,
        "doctor_name": registration.doctor_name,
        "hospital_name": registration.hospital_name,
        "bill_no": registration.bill_no,
        "registration_time": _iso(registration.registration_time),
        "sample_collected_at": _iso(registration.sample_collected_at),
        "tests": ordered_tests(registration),
        "entered_tests": sorted(load_json(registration.results_json, {}).keys()),
        "test_total": amounts.test_total,
        "remaining": amounts.remaining,
    }


@router.post("/patients")
def create_patient(payload: PatientCreate, db: Session = Depends(get_db)):
    exists = db.query(PatientRecord).filter(PatientRecord.patient_code == payload.patient_code).first()
    if exists:
        raise HTTPException(status_code=400, detail="Patient code already exists")

    patient = PatientRecord(**payload.model_dump())
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return {
        "statusCode": 200,
        "message": "Patient created",
        "data": {"id": patient.id, "patient_code": patient.patient_code, "name": patient.name},
    }


@router.post("/registrations")
def create_registration(payload: RegistrationCreate, db: Session = Depends(get_db)):
    patient = db.query(PatientRecord).filter(PatientRecord.id == payload.patient_id).first()
    if not patient:
        raise HTTPException(status_code=404, detail="Patient not found")

    registration = RegistrationRecord(
        patient_id=patient.id,
        doctor_name=payload.doctor_name,
        hospital_name=payload.hospital_name,
        bill_no=payload.bill_no,
        tpa=payload.tpa,
        discount_amount=payload.discount_amount,
        amount_paid=payload.amount_paid,
        tests_json=json.dumps([test.model_dump(mode="json", by_alias=True, exclude_none=True) for test in payload.tests]),
        results_json="{}",
        payment_history_json=(
            json.dumps(payload.payment_history.model_dump(mode="json", by_alias=True))
            if payload.payment_history
            else None
        ),
        registration_time=to_naive_utc(payload.registration_time) or datetime.utcnow(),
        sample_collected_at=to_naive_utc(payload.sample_collected_at),
    )
    db.add(registration)
    db.commit()
    db.refresh(registration)
    return {"statusCode": 200, "message": "Registration created", "data": _registration_summary(registration)}


@router.get("/registrations")
def list_registrations(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    offset = (page - 1) * limit
    total = db.query(func.count(RegistrationRecord.id)).scalar() or 0
    rows = (
        db.query(RegistrationRecord)
        .order_by(RegistrationRecord.registration_time.desc(), RegistrationRecord.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        "statusCode": 200,
        "message": "Success",
        "data": {
            "registrations": [_registration_summary(row) for row in rows],
            "total": total,
            "page": page,
            "limit": limit,
        },
    }


@router.get("/registrations/{registration_id}")
def get_registration_detail(registration: RegistrationRecord = Depends(get_registration)):
    return {
        "statusCode": 200,
        "message": "Success",
        "data": {
            "registration": _registration_summary(registration),
            "patient": build_patient_context(registration).model_dump(mode="json", by_alias=True),
        },
    }


@router.put("/registrations/{registration_id}/tests/{test_key}")
def save_results(
    test_key: str,
    payload: ResultsUpdate,
    registration: RegistrationRecord = Depends(get_registration),
    db: Session = Depends(get_db),
):
    ordered_keys = {slugify_test_name(str(test.get("testName") or "")) for test in ordered_tests(registration)}
    if test_key not in ordered_keys:
        raise HTTPException(status_code=404, detail="Test is not ordered for this registration")

    results = load_json(registration.results_json, {})
    results[test_key] = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    registration.results_json = json.dumps(results)
    db.add(registration)
    db.commit()
    return {"statusCode": 200, "message": "Results saved", "data": {"registration_id": registration.id, "test": test_key}}


@router.patch("/registrations/{registration_id}/tests/{test_key}/reported-on")
def update_reported_on(
    test_key: str,
    payload: ReportedOnUpdate,
    registration: RegistrationRecord = Depends(get_registration),
    db: Session = Depends(get_db),
):
    results = load_json(registration.results_json, {})
    if not isinstance(results.get(test_key), dict):
        raise HTTPException(status_code=404, detail="No results entered for this test")

    results[test_key]["reportedOn"] = payload.reported_on.isoformat()
    registration.results_json = json.dumps(results)
    db.add(registration)
    db.commit()
    return {
        "statusCode": 200,
        "message": "Reported time updated",
        "data": {"test": test_key, "reportedOn": results[test_key]["reportedOn"]},
    }


@router.patch("/registrations/{registration_id}/times")
def update_times(
    payload: TimesUpdate,
    registration: RegistrationRecord = Depends(get_registration),
    db: Session = Depends(get_db),
):
    if payload.registration_time is None and payload.sample_collected_at is None:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if payload.registration_time is not None:
        registration.registration_time = to_naive_utc(payload.registration_time)
    if payload.sample_collected_at is not None:
        registration.sample_collected_at = to_naive_utc(payload.sample_collected_at)
    db.add(registration)
    db.commit()
    return {"statusCode": 200, "message": "Times updated", "data": _registration_summary(registration)}
