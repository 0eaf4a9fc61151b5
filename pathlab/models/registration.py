from datetime import datetime

from sqlalchemy import BIGINT, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pathlab.database import Base


class RegistrationRecord(Base):
    __tablename__ = "registrations"

    id: Mapped[int] = mapped_column(BIGINT().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id", ondelete="CASCADE"), index=True)
    doctor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hospital_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    bill_no: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tpa: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    discount_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    amount_paid: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    # JSON text blobs: ordered tests, entered results keyed by test slug, payment history.
    tests_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    results_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    payment_history_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    registration_time: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True, nullable=False)
    sample_collected_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    patient = relationship("PatientRecord", back_populates="registrations")
