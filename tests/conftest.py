import io
import json
from collections.abc import Generator
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pathlab.config import settings
from pathlab.database import Base, get_db
from pathlab.main import app
from pathlab.models import PatientRecord, RegistrationRecord
from pathlab.schemas.report import PatientContext, TestResult


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch):
    # No artwork downloads and no LLM calls during tests.
    for name in ("letterhead_image", "cover_image", "stamp_image", "stamp2_image", "bill_background_image",
                 "diet_image", "exercise_image"):
        monkeypatch.setattr(settings, name, "")
    monkeypatch.setattr(settings, "openai_api_key", None)
    monkeypatch.setattr(settings, "comparison_default_selection", {"cbc": 4, "lft": 3})
    monkeypatch.setattr(settings, "combined_chunk_size", 5)
    monkeypatch.setattr(settings, "report_timezone", "Asia/Kolkata")


@pytest.fixture()
def db_session() -> Generator:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # Tests use an in-memory DB via dependency override; skip app startup side effects.
    original_startup = list(app.router.on_startup)
    app.router.on_startup.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.router.on_startup[:] = original_startup
    app.dependency_overrides.clear()


@pytest.fixture()
def pdf_text():
    """Extract the text of every page of a PDF."""

    def _extract(content: bytes) -> list[str]:
        reader = PdfReader(io.BytesIO(content))
        return [page.extract_text() or "" for page in reader.pages]

    return _extract


@pytest.fixture()
def make_result():
    """Camel-case result payload for one test, as the result entry screen stores it."""

    def _make(test_name: str, parameters: list[dict], **extra) -> dict:
        payload = {"testName": test_name, "parameters": parameters}
        payload.update(extra)
        return payload

    return _make


@pytest.fixture()
def make_patient():
    def _make(bloodtest: dict[str, dict], **fields) -> PatientContext:
        base = {
            "title": "Mr",
            "name": "Ravi Kumar",
            "age": 42,
            "dayType": "year",
            "gender": "Male",
            "patientId": "PL-1001",
            "registrationId": 7,
            "doctorName": "Dr. Mehta",
            "hospitalName": "City Clinic",
            "registrationTime": "2024-01-05T04:30:00Z",
            "sampleCollectedAt": "2024-01-05T05:00:00Z",
        }
        base.update(fields)
        base["bloodtest"] = {key: TestResult.model_validate(value) for key, value in bloodtest.items()}
        return PatientContext.model_validate(base)

    return _make


@pytest.fixture()
def add_registration(db_session):
    """Persist a registration (creating its patient on first use) with stored results."""

    def _add(
        results: dict[str, dict],
        registered: datetime,
        patient_code: str = "PL-1001",
        tests: list[dict] | None = None,
        **fields,
    ) -> RegistrationRecord:
        patient = db_session.query(PatientRecord).filter(PatientRecord.patient_code == patient_code).first()
        if patient is None:
            patient = PatientRecord(patient_code=patient_code, title="Mr", name="Ravi Kumar", age=42,
                                    day_type="year", gender="Male", contact="9876543210")
            db_session.add(patient)
            db_session.flush()
        if tests is None:
            tests = [{"testName": payload["testName"], "price": 300, "testType": "inhouse"}
                     for payload in results.values()]
        registration = RegistrationRecord(
            patient_id=patient.id,
            doctor_name="Dr. Mehta",
            hospital_name="City Clinic",
            tests_json=json.dumps(tests),
            results_json=json.dumps(results),
            registration_time=registered,
            **fields,
        )
        db_session.add(registration)
        db_session.commit()
        db_session.refresh(registration)
        return registration

    return _add
