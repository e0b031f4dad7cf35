from datetime import date, datetime
from decimal import Decimal

import pytest

from schoolhub.models import FeePayment
from schoolhub.services import fees
from schoolhub.services.fees import calculate_late_fee


@pytest.mark.parametrize("payment_date, expected", [
    ("2024-01-10", Decimal("0")),
    ("2024-01-05", Decimal("0")),
    ("2024-01-11", Decimal("10")),
    ("2024-01-15", Decimal("50")),
    ("2024-03-01", Decimal("100")),
])
def test_late_fee_without_app_context(payment_date, expected):
    assert calculate_late_fee(1000, "2024-01-10", payment_date) == expected


def test_late_fee_rounds_partial_days_up():
    due = datetime(2024, 1, 10, 12, 0)
    assert calculate_late_fee(1000, due, datetime(2024, 1, 11, 13, 0)) == Decimal("20")


def test_late_fee_cap_follows_amount():
    assert calculate_late_fee(Decimal("250.00"), date(2024, 1, 10), date(2024, 2, 10)) == Decimal("25.00")


def test_late_fee_reads_configured_rate(app):
    app.config["LATE_FEE_PER_DAY"] = 5
    assert calculate_late_fee(1000, "2024-01-10", "2024-01-15") == Decimal("25")


@pytest.fixture
def tuition(school_id, current_year, school_class):
    result = fees.create_fee_structure(
        school_id, current_year["id"], school_class["id"], "tuition", 1000, date(2024, 1, 10), "Term fee",
    )
    assert result["success"], result
    return result["data"]


@pytest.fixture
def transport(school_id, current_year, school_class):
    result = fees.create_fee_structure(
        school_id, current_year["id"], school_class["id"], "transport", 300, date(2023, 9, 1),
    )
    assert result["success"], result
    return result["data"]


def test_payment_stores_computed_late_fee(school_id, tuition, make_student):
    student = make_student()

    result = fees.record_fee_payment(school_id, student["id"], tuition["id"], 400, "2024-01-15", "cash")
    assert result["success"], result
    assert result["data"]["late_fee"] == 50.0
    assert result["data"]["amount_paid"] == 400.0


def test_payment_amount_must_be_positive(school_id, tuition, make_student):
    student = make_student()
    result = fees.record_fee_payment(school_id, student["id"], tuition["id"], 0, "2024-01-05", "cash")
    assert result["error_type"] == "validation"
    assert FeePayment.query.count() == 0


def test_payment_against_unknown_structure(school_id, make_student):
    student = make_student()
    result = fees.record_fee_payment(school_id, student["id"], 404, 10, "2024-01-05", "cash")
    assert result["error_type"] == "not_found"


def test_payment_against_another_class_structure(school_id, next_year, next_class, make_student):
    student = make_student()
    other = fees.create_fee_structure(
        school_id, next_year["id"], next_class["id"], "tuition", 800, date(2024, 7, 10),
    )["data"]

    result = fees.record_fee_payment(school_id, student["id"], other["id"], 100, "2024-07-01", "cash")
    assert result["error_type"] == "validation"
    assert FeePayment.query.count() == 0


def test_late_fee_is_frozen_when_structure_changes(school_id, tuition, make_student):
    student = make_student()
    payment = fees.record_fee_payment(school_id, student["id"], tuition["id"], 100, "2024-01-15", "upi")["data"]

    updated = fees.update_fee_structure(school_id, tuition["id"], due_date="2024-01-31", amount=2000)
    assert updated["success"], updated

    stored = FeePayment.query.get(payment["id"])
    assert stored.late_fee == Decimal("50.00")


def test_update_requires_fields(school_id, tuition):
    result = fees.update_fee_structure(school_id, tuition["id"])
    assert result["error_type"] == "validation"


def test_dues_exclude_fully_paid_structures(school_id, tuition, transport, make_student):
    student = make_student()
    fees.record_fee_payment(school_id, student["id"], transport["id"], 200, "2023-08-20", "cash")
    fees.record_fee_payment(school_id, student["id"], transport["id"], 100, "2023-08-25", "cash")
    fees.record_fee_payment(school_id, student["id"], tuition["id"], 250, "2024-01-12", "card")

    result = fees.get_student_fee_dues(school_id, student["id"], tuition["academic_year_id"])
    assert result["success"], result
    dues = result["data"]
    assert [d["id"] for d in dues] == [tuition["id"]]
    assert dues[0]["total_paid"] == 250.0
    assert dues[0]["total_late_fee"] == 20.0
    assert dues[0]["balance"] == 750.0


def test_dues_are_ordered_by_due_date(school_id, tuition, transport, make_student):
    student = make_student()
    dues = fees.get_student_fee_dues(school_id, student["id"])["data"]
    assert [d["fee_type"] for d in dues] == ["transport", "tuition"]


def test_overpayment_is_not_a_due(school_id, tuition, make_student):
    student = make_student()
    fees.record_fee_payment(school_id, student["id"], tuition["id"], 1200, "2024-01-01", "cash")
    assert fees.get_student_fee_dues(school_id, student["id"])["data"] == []


def test_fee_structure_needs_open_year(school_id, current_year, next_year, school_class):
    from schoolhub.services import academic_years

    academic_years.close_academic_year(school_id, current_year["id"])
    result = fees.create_fee_structure(
        school_id, current_year["id"], school_class["id"], "library", 50, date(2024, 2, 1),
    )
    assert result["error_type"] == "invalid_state"


def test_list_payments_and_structures(school_id, tuition, transport, make_student):
    first = make_student("A")
    second = make_student("B")
    fees.record_fee_payment(school_id, first["id"], tuition["id"], 100, "2024-01-01", "cash")
    fees.record_fee_payment(school_id, second["id"], tuition["id"], 100, "2024-01-02", "cash")

    payments = fees.list_fee_payments(school_id, student_id=first["id"])
    assert payments["data"]["pagination"]["total"] == 1
    assert payments["data"]["items"][0]["fee_type"] == "tuition"

    structures = fees.list_fee_structures(school_id, fee_type="transport")
    assert [s["id"] for s in structures["data"]["items"]] == [transport["id"]]

    detail = fees.get_fee_structure(school_id, tuition["id"])["data"]
    assert detail["payments_count"] == 2
    assert detail["total_collected"] == 200.0
