import logging
from dataclasses import dataclass

from num2words import num2words
from reportlab.lib.colors import Color, white
from reportlab.lib.units import mm
from reportlab.platypus import Table, TableStyle

from pathlab.models.registration import RegistrationRecord
from pathlab.services.assets import ReportAssets, load_bill_assets
from pathlab.services.canvas import PageCanvas, split_text
from pathlab.services.history import load_json, ordered_tests
from pathlab.services.layout import to_report_time
from pathlab.services.ranges import format_value

logger = logging.getLogger(__name__)

BILL_MARGIN = 14.0
BILL_TOP = 70.0
BILL_ROW_STEP = 6.0
BILL_HEADER_FILL = Color(30 / 255, 79 / 255, 145 / 255)
THANK_YOU = "Thank you for choosing our services!"

_AGE_SUFFIX = {"month": "m", "day": "d"}


@dataclass(frozen=True)
class BillAmounts:
    test_total: float
    discount: float
    total_paid: float
    remaining: float


def _number(value) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def line_price(test: dict, tpa: bool) -> float:
    """TPA price applies only when the registration is TPA and the test carries a numeric one."""
    tpa_price = test.get("tpa_price")
    if tpa and isinstance(tpa_price, (int, float)) and not isinstance(tpa_price, bool):
        return float(tpa_price)
    return _number(test.get("price"))


def _payment_history(registration: RegistrationRecord) -> dict | None:
    history = load_json(registration.payment_history_json, {})
    return history if "totalAmount" in history else None


def calculate_amounts(registration: RegistrationRecord) -> BillAmounts:
    test_total = sum(line_price(test, bool(registration.tpa)) for test in ordered_tests(registration))
    history = _payment_history(registration)
    if history is not None:
        payments = history.get("paymentHistory") or []
        total_paid = sum(_number(item.get("amount")) for item in payments if isinstance(item, dict))
        discount = _number(history.get("discount"))
    else:
        total_paid = _number(registration.amount_paid)
        discount = _number(registration.discount_amount)
    return BillAmounts(
        test_total=test_total,
        discount=discount,
        total_paid=total_paid,
        remaining=test_total - discount - total_paid,
    )


def calculate_totals(registrations: list[RegistrationRecord]) -> dict[str, float]:
    total_amount = total_paid = total_discount = 0.0
    for registration in registrations:
        amounts = calculate_amounts(registration)
        total_amount += amounts.test_total
        total_paid += amounts.total_paid
        total_discount += amounts.discount
    return {
        "totalAmount": total_amount,
        "totalPaid": total_paid,
        "totalDiscount": total_discount,
        "remaining": total_amount - total_paid - total_discount,
    }


def amount_in_words(amount: float) -> str:
    """English words for a rounded amount: 1234 -> 'one thousand, two hundred and thirty-four'."""
    return num2words(round(amount))


def _bill_rows(registration: RegistrationRecord) -> list[tuple[str, str, str, str]]:
    patient = registration.patient
    name = f"{patient.title.upper()} {patient.name}" if patient.title else patient.name
    merged_id = f"{patient.patient_code}-{registration.id}" if registration.id else patient.patient_code
    age = f"{format_value(patient.age)}{_AGE_SUFFIX.get(patient.day_type or 'year', 'y')} / {patient.gender or ''}"
    registered = (
        to_report_time(registration.registration_time).strftime("%d/%m/%Y") if registration.registration_time else "-"
    )
    rows = [("Name", name, "Patient ID", merged_id)]
    if registration.bill_no:
        rows.append(("Bill No", registration.bill_no, "", ""))
    rows.append(("Age / Gender", age, "Registration Date", registered))
    rows.append(("Ref. Doctor", registration.doctor_name or "N/A", "Contact", patient.contact or "N/A"))
    return rows


def draw_bill(canvas: PageCanvas, registration: RegistrationRecord, assets: ReportAssets) -> None:
    canvas.image(assets.bill_background, 0, 0, canvas.width, canvas.height)
    width = canvas.width - 2 * BILL_MARGIN
    half = canvas.width / 2
    left_value_x = BILL_MARGIN + 44
    right_x = half + BILL_MARGIN

    y = BILL_TOP
    for index, (left_label, left_value, right_label, right_value) in enumerate(_bill_rows(registration)):
        canvas.text(BILL_MARGIN, y, left_label, size=12)
        canvas.text(BILL_MARGIN + 40, y, ":", size=12)
        lines = split_text(left_value, right_x - left_value_x - 4, "normal", 12) if index == 0 else [left_value]
        canvas.text(left_value_x, y, lines, size=12, leading=BILL_ROW_STEP)
        y += (len(lines) - 1) * BILL_ROW_STEP
        if right_label:
            canvas.text(right_x, y, right_label, size=12)
            canvas.text(right_x + 40, y, ":", size=12)
            canvas.text(right_x + 44, y, right_value, size=12)
        y += BILL_ROW_STEP
    y += 4

    tests = ordered_tests(registration)
    test_rows = [["Test Name", "Amount"]]
    test_rows += [[str(test.get("testName") or ""), f"{line_price(test, bool(registration.tpa)):.2f}"] for test in tests]
    grid = Table(test_rows, colWidths=[width * 0.7 * mm, width * 0.3 * mm])
    grid.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 11),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (1, 1), (1, -1), "Helvetica-Bold"),
        ("BACKGROUND", (0, 0), (-1, 0), BILL_HEADER_FILL),
        ("TEXTCOLOR", (0, 0), (-1, 0), white),
        ("GRID", (0, 0), (-1, -1), 0.5, Color(0.7, 0.7, 0.7)),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    y += canvas.flowable(grid, BILL_MARGIN, y, width) + 10

    amounts = calculate_amounts(registration)
    totals = Table(
        [
            ["Description", "Amount"],
            ["Test Total", f"{amounts.test_total:.2f}"],
            ["Discount", f"{amounts.discount:.2f}"],
            ["Amount Paid", f"{amounts.total_paid:.2f}"],
            ["Remaining", f"{amounts.remaining:.2f}"],
        ],
        colWidths=[width * 0.7 * mm, width * 0.3 * mm],
    )
    totals.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 11),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTNAME", (1, 1), (1, -1), "Helvetica-Bold"),
    ]))
    y += canvas.flowable(totals, BILL_MARGIN, y, width) + 8

    words = amount_in_words(amounts.remaining)
    canvas.text(canvas.width - BILL_MARGIN, y, f"({words[:1].upper()}{words[1:]} only)", size=10, align="right")
    y += 12
    canvas.text(canvas.width / 2, y, THANK_YOU, "italic", 10, align="center")


def generate_bills_pdf(registrations: list[RegistrationRecord], assets: ReportAssets | None = None) -> bytes:
    """One bill per page, in the order given."""
    if assets is None:
        assets = load_bill_assets()
    canvas = PageCanvas(title="Bills")
    for index, registration in enumerate(registrations):
        if index:
            canvas.new_page()
        draw_bill(canvas, registration, assets)
    logger.info("Generated %d bill page(s)", canvas.page_count)
    return canvas.to_bytes()


def generate_bill_pdf(registration: RegistrationRecord, assets: ReportAssets | None = None) -> bytes:
    return generate_bills_pdf([registration], assets)


def bill_filename(registration: RegistrationRecord) -> str:
    return f"Bill_{registration.patient.name}_{registration.id}.pdf".replace(" ", "_")
