import json
from datetime import datetime

import pytest

from pathlab.models import PatientRecord, RegistrationRecord
from pathlab.services.assets import ReportAssets
from pathlab.services.billing import (
    amount_in_words,
    bill_filename,
    calculate_amounts,
    calculate_totals,
    generate_bills_pdf,
    line_price,
)


def _registration(registration_id: int, tests: list[dict], payment_history: dict | None = None, **fields):
    patient = PatientRecord(patient_code=f"PL-{registration_id}", title="Mrs", name="Asha Rao", age=35,
                            day_type="year", gender="Female", contact="9000000000")
    values = {"tpa": False, "discount_amount": 0.0, "amount_paid": 0.0}
    values.update(fields)
    return RegistrationRecord(
        id=registration_id,
        patient=patient,
        doctor_name="Dr. Iyer",
        tests_json=json.dumps(tests),
        results_json="{}",
        payment_history_json=json.dumps(payment_history) if payment_history is not None else None,
        registration_time=datetime(2024, 1, 5, 4, 30),
        **values,
    )


@pytest.mark.parametrize(
    ("amount", "words"),
    [
        (0, "zero"),
        (7, "seven"),
        (40, "forty"),
        (105, "one hundred and five"),
        (1234, "one thousand, two hundred and thirty-four"),
        (20000, "twenty thousand"),
        (1000000, "one million"),
        (12.6, "thirteen"),
        (-20, "minus twenty"),
    ],
)
def test_amount_in_words(amount, words):
    assert amount_in_words(amount) == words


def test_line_price_uses_tpa_price_only_when_numeric():
    assert line_price({"price": 500, "tpa_price": 350}, tpa=True) == 350
    assert line_price({"price": 500, "tpa_price": 350}, tpa=False) == 500
    assert line_price({"price": 500, "tpa_price": "350"}, tpa=True) == 500
    assert line_price({"price": "abc"}, tpa=False) == 0


def test_amounts_without_payment_history_use_registration_columns():
    registration = _registration(1, [{"testName": "CBC", "price": 300}, {"testName": "LFT", "price": 700}],
                                 discount_amount=100.0, amount_paid=500.0)
    amounts = calculate_amounts(registration)
    assert amounts.test_total == 1000
    assert amounts.discount == 100
    assert amounts.total_paid == 500
    assert amounts.remaining == 400


def test_amounts_with_payment_history_sum_the_payments():
    history = {
        "totalAmount": 1000,
        "discount": 50,
        "paymentHistory": [{"amount": 200, "paymentMode": "cash"}, {"amount": 300, "paymentMode": "upi"}],
    }
    registration = _registration(2, [{"testName": "CBC", "price": 1000, "tpa_price": 800}], history,
                                 tpa=True, amount_paid=999.0)
    amounts = calculate_amounts(registration)
    assert amounts.test_total == 800
    assert amounts.total_paid == 500
    assert amounts.discount == 50
    assert amounts.remaining == 250


def test_calculate_totals_across_registrations():
    first = _registration(1, [{"testName": "CBC", "price": 300}], amount_paid=300.0)
    second = _registration(2, [{"testName": "LFT", "price": 700}], discount_amount=70.0, amount_paid=100.0)
    assert calculate_totals([first, second]) == {
        "totalAmount": 1000.0,
        "totalPaid": 400.0,
        "totalDiscount": 70.0,
        "remaining": 530.0,
    }


def test_bills_pdf_has_one_page_per_registration(pdf_text):
    first = _registration(11, [{"testName": "Complete Blood Count", "price": 300}], amount_paid=100.0,
                          bill_no="B-77")
    second = _registration(12, [{"testName": "Lipid Profile", "price": 1234}])
    pages = pdf_text(generate_bills_pdf([first, second], assets=ReportAssets()))

    assert len(pages) == 2
    assert "MRS Asha Rao" in pages[0]
    assert "PL-11-11" in pages[0]
    assert "B-77" in pages[0]
    assert "Complete Blood Count" in pages[0]
    assert "Two hundred only" in pages[0]
    assert "Lipid Profile" in pages[1]
    assert "One thousand two hundred thirty-four only" in pages[1]
    assert "Thank you for choosing our services!" in pages[1]


def test_bill_filename():
    assert bill_filename(_registration(5, [])) == "Bill_Asha_Rao_5.pdf"
