from datetime import datetime, timezone

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from pathlab.database import get_db
from pathlab.models.registration import RegistrationRecord


def get_registration(registration_id: int, db: Session = Depends(get_db)) -> RegistrationRecord:
    registration = db.query(RegistrationRecord).filter(RegistrationRecord.id == registration_id).first()
    if not registration:
        raise HTTPException(status_code=404, detail="Registration not found")
    return registration


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Timestamps are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
