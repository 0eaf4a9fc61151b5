from datetime import datetime

from sqlalchemy import BIGINT, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pathlab.database import Base


class PatientRecord(Base):
    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(BIGINT().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    patient_code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    title: Mapped[str | None] = mapped_column(String(20), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    day_type: Mapped[str] = mapped_column(String(10), nullable=False, default="year")
    total_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    gender: Mapped[str | None] = mapped_column(String(20), nullable=True)
    contact: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    registrations = relationship("RegistrationRecord", back_populates="patient", cascade="all, delete-orphan")
