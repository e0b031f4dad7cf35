"""Fee structures, payments and student dues.

Late fees are computed once, when a payment is recorded, and stored on the
payment row. Later edits to a fee structure never rewrite them.
"""
import logging
import math
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app, has_app_context
from sqlalchemy import func

from schoolhub.errors import ValidationError
from schoolhub.extensions import db
from schoolhub.models import FeeStructure, FeePayment, SchoolClass, Student
from schoolhub.services.academic_years import ensure_year_open
from schoolhub.utils.access_control import get_owned
from schoolhub.utils.dates import parse_date
from schoolhub.utils.decorators import service_operation
from schoolhub.utils.filters import build_filters
from schoolhub.utils.pagination import apply_pagination_and_search
from schoolhub.utils.responses import success_response, paginated
from schoolhub.utils.serialization import to_dict
from schoolhub.utils.transaction import transaction

logger = logging.getLogger(__name__)

LATE_FEE_PER_DAY = Decimal("10")
LATE_FEE_CAP_RATIO = Decimal("0.10")
CENTS = Decimal("0.01")

STRUCTURE_FIELDS = ("fee_type", "amount", "due_date", "description")


def _to_decimal(value, field="amount"):
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")


def _late_fee_settings():
    if has_app_context():
        return (
            _to_decimal(current_app.config.get("LATE_FEE_PER_DAY", LATE_FEE_PER_DAY)),
            _to_decimal(current_app.config.get("LATE_FEE_CAP_RATIO", LATE_FEE_CAP_RATIO)),
        )
    return LATE_FEE_PER_DAY, LATE_FEE_CAP_RATIO


def _days_late(due_date, payment_date):
    if isinstance(due_date, datetime) and isinstance(payment_date, datetime):
        return math.ceil((payment_date - due_date).total_seconds() / 86400)
    return (parse_date(payment_date, "payment_date") - parse_date(due_date, "due_date")).days


def calculate_late_fee(amount, due_date, payment_date):
    """
    Late fee for a payment of a fee of ``amount``.

    Nothing is due when paying on or before the due date. After that it is a
    flat charge per started day late, capped at a fraction of the fee:

        calculate_late_fee(1000, "2024-01-10", "2024-01-15")  ->  Decimal("50.00")
        calculate_late_fee(1000, "2024-01-10", "2024-03-01")  ->  Decimal("100.00")
    """
    days_late = _days_late(due_date, payment_date)
    if days_late <= 0:
        return Decimal("0.00")

    per_day, cap_ratio = _late_fee_settings()
    fee = min(days_late * per_day, _to_decimal(amount) * cap_ratio)
    return fee.quantize(CENTS, rounding=ROUND_HALF_UP)


def _structure_dict(structure):
    school_class = db.session.get(SchoolClass, structure.class_id)
    return to_dict(structure, class_name=school_class.name if school_class else None)


# ---------- Fee structures ----------

@service_operation("Failed to create fee structure")
def create_fee_structure(school_id, academic_year_id, class_id, fee_type, amount, due_date, description=None):
    if not fee_type:
        raise ValidationError("fee_type is required")
    amount = _to_decimal(amount)
    if amount <= 0:
        raise ValidationError("amount must be positive")
    due_date = parse_date(due_date, "due_date")
    if not due_date:
        raise ValidationError("due_date is required")

    with transaction():
        ensure_year_open(school_id, academic_year_id)
        get_owned(SchoolClass, school_id, class_id, "Class")
        structure = FeeStructure(
            school_id=school_id,
            academic_year_id=academic_year_id,
            class_id=class_id,
            fee_type=fee_type,
            amount=amount,
            due_date=due_date,
            description=description,
        )
        db.session.add(structure)

    return success_response(_structure_dict(structure), "Fee structure created successfully")


@service_operation("Failed to fetch fee structures")
def list_fee_structures(school_id, academic_year_id=None, class_id=None, fee_type=None, page=1, limit=None):
    conditions = build_filters(FeeStructure, equals={
        "academic_year_id": academic_year_id,
        "class_id": class_id,
        "fee_type": fee_type,
    })
    query = FeeStructure.query.filter(FeeStructure.school_id == school_id, *conditions).order_by(
        FeeStructure.due_date, FeeStructure.id
    )
    structures, meta = apply_pagination_and_search(query, FeeStructure, page=page, limit=limit)
    return paginated([_structure_dict(s) for s in structures], meta)


@service_operation("Failed to fetch fee structure")
def get_fee_structure(school_id, fee_structure_id):
    structure = get_owned(FeeStructure, school_id, fee_structure_id, "Fee structure")
    collected, count = (
        db.session.query(func.coalesce(func.sum(FeePayment.amount_paid), 0), func.count(FeePayment.id))
        .filter(FeePayment.fee_structure_id == structure.id)
        .one()
    )
    data = _structure_dict(structure)
    data["payments_count"] = count
    data["total_collected"] = float(collected)
    return success_response(data)


@service_operation("Failed to update fee structure")
def update_fee_structure(school_id, fee_structure_id, **fields):
    changes = {k: v for k, v in fields.items() if k in STRUCTURE_FIELDS and v is not None}
    if not changes:
        raise ValidationError("No fields to update")

    if "amount" in changes:
        changes["amount"] = _to_decimal(changes["amount"])
        if changes["amount"] <= 0:
            raise ValidationError("amount must be positive")
    if "due_date" in changes:
        changes["due_date"] = parse_date(changes["due_date"], "due_date")

    with transaction():
        structure = get_owned(FeeStructure, school_id, fee_structure_id, "Fee structure")
        ensure_year_open(school_id, structure.academic_year_id)
        for key, value in changes.items():
            setattr(structure, key, value)
        structure.touch()

    return success_response(_structure_dict(structure), "Fee structure updated successfully")


# ---------- Payments ----------

@service_operation("Failed to record fee payment")
def record_fee_payment(school_id, student_id, fee_structure_id, amount_paid, payment_date, payment_method,
                       transaction_id=None, remarks=None):
    amount_paid = _to_decimal(amount_paid, "amount_paid")
    if amount_paid <= 0:
        raise ValidationError("amount_paid must be positive")
    if not payment_method:
        raise ValidationError("payment_method is required")
    payment_date = parse_date(payment_date, "payment_date")
    if not payment_date:
        raise ValidationError("payment_date is required")

    with transaction():
        student = get_owned(Student, school_id, student_id, "Student")
        structure = get_owned(FeeStructure, school_id, fee_structure_id, "Fee structure")
        if structure.class_id != student.class_id:
            raise ValidationError("Fee structure does not apply to the student's class")

        payment = FeePayment(
            school_id=school_id,
            student_id=student.id,
            fee_structure_id=structure.id,
            amount_paid=amount_paid,
            late_fee=calculate_late_fee(structure.amount, structure.due_date, payment_date),
            payment_date=payment_date,
            payment_method=payment_method,
            transaction_id=transaction_id,
            remarks=remarks,
        )
        db.session.add(payment)

    logger.info(
        "Recorded payment %s of %s for student %s (late fee %s)",
        payment.id, amount_paid, student_id, payment.late_fee,
    )
    return success_response(to_dict(payment), "Fee payment recorded successfully")


@service_operation("Failed to fetch student fee dues")
def get_student_fee_dues(school_id, student_id, academic_year_id=None):
    student = get_owned(Student, school_id, student_id, "Student")
    year_id = academic_year_id or student.academic_year_id

    structures = (
        FeeStructure.query.filter_by(school_id=school_id, class_id=student.class_id, academic_year_id=year_id)
        .order_by(FeeStructure.due_date, FeeStructure.id)
        .all()
    )

    dues = []
    for structure in structures:
        paid, late = (
            db.session.query(
                func.coalesce(func.sum(FeePayment.amount_paid), 0),
                func.coalesce(func.sum(FeePayment.late_fee), 0),
            )
            .filter(FeePayment.fee_structure_id == structure.id, FeePayment.student_id == student.id)
            .one()
        )
        balance = _to_decimal(structure.amount) - _to_decimal(paid)
        # fully paid structures are not dues
        if balance <= 0:
            continue
        row = _structure_dict(structure)
        row.update(
            total_paid=float(_to_decimal(paid)),
            total_late_fee=float(_to_decimal(late)),
            balance=float(balance),
        )
        dues.append(row)

    return success_response(dues)


@service_operation("Failed to fetch fee payments")
def list_fee_payments(school_id, student_id=None, academic_year_id=None, page=1, limit=None):
    query = FeePayment.query.join(FeeStructure, FeePayment.fee_structure_id == FeeStructure.id).filter(
        FeePayment.school_id == school_id,
        *build_filters(FeePayment, equals={"student_id": student_id}),
        *build_filters(FeeStructure, equals={"academic_year_id": academic_year_id}),
    ).order_by(FeePayment.payment_date.desc(), FeePayment.id.desc())

    payments, meta = apply_pagination_and_search(query, FeePayment, page=page, limit=limit)
    items = [
        to_dict(
            p,
            student_name=p.student.full_name if p.student else None,
            fee_type=p.fee_structure.fee_type,
            total_amount=p.fee_structure.amount,
        )
        for p in payments
    ]
    return paginated(items, meta)
