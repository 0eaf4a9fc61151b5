from datetime import datetime

from pydantic import BaseModel, Field

from pathlab.schemas.report import ReportModel, TestResult


class PatientCreate(BaseModel):
    patient_code: str = Field(min_length=1, max_length=50)
    title: str | None = None
    name: str = Field(min_length=1)
    age: int = Field(default=0, ge=0)
    day_type: str = Field(default="year", pattern="^(year|month|day)$")
    total_day: int | None = Field(default=None, ge=0)
    gender: str | None = None
    contact: str | None = None


class OrderedTest(ReportModel):
    test_id: str | int | None = None
    test_name: str
    price: float = 0.0
    tpa_price: float | None = Field(default=None, alias="tpa_price")
    test_type: str | None = None


class PaymentEntry(ReportModel):
    amount: float
    payment_mode: str | None = None
    time: datetime | None = None


class PaymentHistory(ReportModel):
    total_amount: float
    discount: float = 0.0
    payment_history: list[PaymentEntry] = Field(default_factory=list)


class RegistrationCreate(BaseModel):
    patient_id: int
    doctor_name: str | None = None
    hospital_name: str | None = None
    bill_no: str | None = None
    tpa: bool = False
    discount_amount: float = Field(default=0.0, ge=0)
    amount_paid: float = Field(default=0.0, ge=0)
    tests: list[OrderedTest] = Field(default_factory=list)
    payment_history: PaymentHistory | None = None
    registration_time: datetime | None = None
    sample_collected_at: datetime | None = None


class ResultsUpdate(TestResult):
    """Entered values for one test of a registration."""


class ReportedOnUpdate(BaseModel):
    reported_on: datetime


class TimesUpdate(BaseModel):
    registration_time: datetime | None = None
    sample_collected_at: datetime | None = None


class BillsRequest(BaseModel):
    registration_ids: list[int] = Field(min_length=1)
