from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.orm import Session

from pathlab.database import get_db
from pathlab.models.registration import RegistrationRecord
from pathlab.routers.deps import get_registration
from pathlab.schemas.registration import BillsRequest
from pathlab.services.billing import bill_filename, calculate_totals, generate_bill_pdf, generate_bills_pdf

router = APIRouter(prefix="/api", tags=["bills"])


def _load_registrations(db: Session, registration_ids: list[int]) -> list[RegistrationRecord]:
    rows = db.query(RegistrationRecord).filter(RegistrationRecord.id.in_(registration_ids)).all()
    by_id = {row.id: row for row in rows}
    missing = [registration_id for registration_id in registration_ids if registration_id not in by_id]
    if missing:
        raise HTTPException(status_code=404, detail=f"Registrations not found: {missing}")
    return [by_id[registration_id] for registration_id in registration_ids]


@router.get("/registrations/{registration_id}/bill")
def registration_bill(registration: RegistrationRecord = Depends(get_registration)):
    return Response(
        content=generate_bill_pdf(registration),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{bill_filename(registration)}"'},
    )


@router.post("/bills")
def combined_bills(payload: BillsRequest, db: Session = Depends(get_db)):
    registrations = _load_registrations(db, payload.registration_ids)
    return Response(
        content=generate_bills_pdf(registrations),
        media_type="application/pdf",
        headers={"Content-Disposition": 'inline; filename="Bills.pdf"'},
    )


@router.post("/bills/totals")
def bill_totals(payload: BillsRequest, db: Session = Depends(get_db)):
    registrations = _load_registrations(db, payload.registration_ids)
    return {"statusCode": 200, "message": "Success", "data": calculate_totals(registrations)}
