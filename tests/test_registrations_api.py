import json

from pathlab.models import RegistrationRecord


def _create_patient(client, code: str = "PL-2001") -> int:
    response = client.post(
        "/api/patients",
        json={"patient_code": code, "title": "Ms", "name": "Neha Shah", "age": 6, "day_type": "month",
              "gender": "Female", "contact": "9999999999"},
    )
    assert response.status_code == 200
    return response.json()["data"]["id"]


def _create_registration(client, patient_id: int, **fields) -> dict:
    payload = {
        "patient_id": patient_id,
        "doctor_name": "Dr. Rao",
        "hospital_name": "Sunrise Hospital",
        "tests": [
            {"testName": "Complete Blood Count", "price": 400, "tpa_price": 300, "testType": "inhouse"},
            {"testName": "Thyroid Profile", "price": 900, "testType": "outsource"},
        ],
        "registration_time": "2024-02-01T10:00:00+05:30",
        "amount_paid": 500,
    }
    payload.update(fields)
    response = client.post("/api/registrations", json=payload)
    assert response.status_code == 200
    return response.json()["data"]


def test_duplicate_patient_code_is_rejected(client):
    _create_patient(client)
    response = client.post("/api/patients", json={"patient_code": "PL-2001", "name": "Other"})
    assert response.status_code == 400
    assert response.json()["message"] == "Patient code already exists"


def test_registration_for_unknown_patient_is_not_found(client):
    response = client.post("/api/registrations", json={"patient_id": 42})
    assert response.status_code == 404
    assert response.json()["message"] == "Patient not found"


def test_create_registration_stores_utc_times_and_amounts(client, db_session):
    registration = _create_registration(client, _create_patient(client))

    assert registration["registration_time"] == "2024-02-01T04:30:00"
    assert registration["test_total"] == 1300
    assert registration["remaining"] == 800
    assert [test["testName"] for test in registration["tests"]] == ["Complete Blood Count", "Thyroid Profile"]

    row = db_session.query(RegistrationRecord).filter(RegistrationRecord.id == registration["id"]).first()
    stored = json.loads(row.tests_json)
    assert stored[0]["tpa_price"] == 300
    assert "tpaPrice" not in stored[0]


def test_registrations_are_paginated_newest_first(client):
    patient_id = _create_patient(client)
    for day in range(1, 4):
        _create_registration(client, patient_id, registration_time=f"2024-03-0{day}T09:00:00Z")

    payload = client.get("/api/registrations", params={"page": 1, "limit": 2}).json()["data"]
    assert payload["total"] == 3
    assert [row["registration_time"][:10] for row in payload["registrations"]] == ["2024-03-03", "2024-03-02"]

    second = client.get("/api/registrations", params={"page": 2, "limit": 2}).json()["data"]
    assert len(second["registrations"]) == 1


def test_results_flow_into_patient_context(client):
    registration = _create_registration(client, _create_patient(client))
    registration_id = registration["id"]

    results = {
        "testName": "Complete Blood Count",
        "parameters": [
            {"name": "Hemoglobin", "value": "10.1", "unit": "g/dL",
             "range": {"female": [{"rangeKey": "0-12m", "rangeValue": "10 - 14"}]}},
            {"name": "QC", "value": "ok", "visibility": "hidden"},
        ],
        "enteredBy": "Tech A",
    }
    response = client.put(f"/api/registrations/{registration_id}/tests/complete_blood_count", json=results)
    assert response.status_code == 200

    outsourced = {"testName": "Thyroid Profile", "parameters": [{"name": "TSH", "value": "2"}]}
    assert client.put(f"/api/registrations/{registration_id}/tests/thyroid_profile", json=outsourced).status_code == 200

    detail = client.get(f"/api/registrations/{registration_id}").json()["data"]
    patient = detail["patient"]
    assert patient["name"] == "Neha Shah"
    assert patient["dayType"] == "month"
    assert list(patient["bloodtest"]) == ["complete_blood_count"]
    cbc = patient["bloodtest"]["complete_blood_count"]
    assert [param["name"] for param in cbc["parameters"]] == ["Hemoglobin"]
    assert cbc["enteredBy"] == "Tech A"
    assert sorted(detail["registration"]["entered_tests"]) == ["complete_blood_count", "thyroid_profile"]


def test_results_for_a_test_not_ordered_are_rejected(client):
    registration = _create_registration(client, _create_patient(client))
    response = client.put(
        f"/api/registrations/{registration['id']}/tests/lipid_profile",
        json={"testName": "Lipid Profile", "parameters": []},
    )
    assert response.status_code == 404


def test_update_reported_on(client):
    registration = _create_registration(client, _create_patient(client))
    url = f"/api/registrations/{registration['id']}/tests/complete_blood_count"

    missing = client.patch(f"{url}/reported-on", json={"reported_on": "2024-02-02T08:00:00Z"})
    assert missing.status_code == 404

    client.put(url, json={"testName": "Complete Blood Count", "parameters": [{"name": "Hemoglobin", "value": "12"}]})
    response = client.patch(f"{url}/reported-on", json={"reported_on": "2024-02-02T08:00:00Z"})
    assert response.status_code == 200

    detail = client.get(f"/api/registrations/{registration['id']}").json()["data"]
    assert detail["patient"]["bloodtest"]["complete_blood_count"]["reportedOn"].startswith("2024-02-02T08:00:00")


def test_update_times(client):
    registration = _create_registration(client, _create_patient(client))
    url = f"/api/registrations/{registration['id']}/times"

    assert client.patch(url, json={}).status_code == 400

    response = client.patch(url, json={"sample_collected_at": "2024-02-01T11:00:00+05:30"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["sample_collected_at"] == "2024-02-01T05:30:00"
    assert data["registration_time"] == "2024-02-01T04:30:00"
