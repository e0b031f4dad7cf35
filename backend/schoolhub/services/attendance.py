"""Attendance ledger.

One row per (student, date, subject); a second mark for the same key
overwrites the first.
"""
import logging

from schoolhub.errors import ValidationError
from schoolhub.extensions import db
from schoolhub.models import AttendanceRecord, AttendanceStatusEnum, Student, Subject, SchoolClass, Section, User
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


def _parse_status(value):
    try:
        return AttendanceStatusEnum(value)
    except ValueError:
        raise ValidationError(f"Invalid attendance status: {value}")


def _upsert_attendance(school_id, record):
    missing = [f for f in ("student_id", "date", "status") if not record.get(f)]
    if missing:
        raise ValidationError(f"Missing required fields: {missing}")

    status = _parse_status(record["status"])
    on_date = parse_date(record["date"])
    student = get_owned(Student, school_id, record["student_id"], "Student")

    subject_id = record.get("subject_id")
    if subject_id is not None:
        get_owned(Subject, school_id, subject_id, "Subject")

    academic_year_id = record.get("academic_year_id")
    if academic_year_id is not None:
        ensure_year_open(school_id, academic_year_id)
    else:
        academic_year_id = student.academic_year_id

    existing = AttendanceRecord.query.filter_by(
        school_id=school_id,
        student_id=student.id,
        date=on_date,
        subject_id=subject_id,
    ).first()

    if existing:
        existing.status = status
        existing.marked_by = record.get("marked_by")
        existing.remarks = record.get("remarks")
        existing.touch()
        return existing

    attendance = AttendanceRecord(
        school_id=school_id,
        student_id=student.id,
        class_id=record.get("class_id") or student.class_id,
        section_id=record.get("section_id") or student.section_id,
        subject_id=subject_id,
        academic_year_id=academic_year_id,
        date=on_date,
        status=status,
        marked_by=record.get("marked_by"),
        remarks=record.get("remarks"),
    )
    db.session.add(attendance)
    return attendance


@service_operation("Failed to mark attendance")
def mark_attendance(school_id, student_id, date, status, marked_by=None, subject_id=None, remarks=None,
                    class_id=None, section_id=None, academic_year_id=None):
    with transaction():
        attendance = _upsert_attendance(school_id, {
            "student_id": student_id,
            "date": date,
            "status": status,
            "marked_by": marked_by,
            "subject_id": subject_id,
            "remarks": remarks,
            "class_id": class_id,
            "section_id": section_id,
            "academic_year_id": academic_year_id,
        })

    return success_response(to_dict(attendance), "Attendance marked successfully")


@service_operation("Failed to bulk mark attendance")
def bulk_mark_attendance(school_id, records):
    if not records:
        raise ValidationError("No attendance records supplied")

    with transaction():
        results = []
        for record in records:
            results.append(_upsert_attendance(school_id, record))
            # keeps a repeated key within the batch an update, not a second insert
            db.session.flush()

    logger.info("Marked %d attendance records for school %s", len(results), school_id)
    return success_response(
        [to_dict(r) for r in results],
        f"{len(results)} attendance records marked successfully",
    )


def _filtered_query(school_id, student_id=None, class_id=None, section_id=None, subject_id=None,
                    academic_year_id=None, status=None, date_from=None, date_to=None):
    conditions = build_filters(
        AttendanceRecord,
        equals={
            "student_id": student_id,
            "class_id": class_id,
            "section_id": section_id,
            "subject_id": subject_id,
            "academic_year_id": academic_year_id,
            "status": _parse_status(status) if status else None,
        },
        ranges={"date": (parse_date(date_from, "date_from"), parse_date(date_to, "date_to"))},
    )
    return AttendanceRecord.query.filter(AttendanceRecord.school_id == school_id, *conditions)


@service_operation("Failed to fetch attendance")
def list_attendance(school_id, student_id=None, class_id=None, section_id=None, date_from=None, date_to=None,
                    page=1, limit=None):
    query = _filtered_query(
        school_id, student_id=student_id, class_id=class_id, section_id=section_id,
        date_from=date_from, date_to=date_to,
    ).order_by(AttendanceRecord.date.desc(), AttendanceRecord.id)

    records, meta = apply_pagination_and_search(query, AttendanceRecord, page=page, limit=limit)
    items = [
        to_dict(r, student_name=r.student.full_name, admission_number=r.student.admission_number)
        for r in records
    ]
    return paginated(items, meta)


@service_operation("Failed to fetch attendance summary")
def get_student_attendance_summary(school_id, student_id, academic_year_id=None):
    student = get_owned(Student, school_id, student_id, "Student")
    records = _filtered_query(school_id, student_id=student.id, academic_year_id=academic_year_id).all()

    counts = {status.value: 0 for status in AttendanceStatusEnum}
    for record in records:
        counts[record.status.value] += 1

    total = len(records)
    return success_response({
        "student_id": student.id,
        "academic_year_id": academic_year_id,
        "total_days": total,
        "present_days": counts["present"],
        "absent_days": counts["absent"],
        "late_days": counts["late"],
        "excused_days": counts["excused"],
        "attendance_percentage": round(counts["present"] / total * 100, 2) if total else None,
    })


@service_operation("Failed to generate attendance report")
def generate_attendance_report(school_id, **filters):
    """Flat rows for an export layer; no file formatting happens here."""
    records = (
        _filtered_query(school_id, **filters)
        .join(Student, AttendanceRecord.student_id == Student.id)
        .order_by(AttendanceRecord.date.desc(), Student.first_name, Student.last_name)
        .all()
    )

    rows = []
    for record in records:
        school_class = db.session.get(SchoolClass, record.class_id) if record.class_id else None
        section = db.session.get(Section, record.section_id) if record.section_id else None
        marker = db.session.get(User, record.marked_by) if record.marked_by else None
        rows.append({
            "admission_number": record.student.admission_number,
            "student_name": record.student.full_name,
            "class_name": school_class.name if school_class else None,
            "section_name": section.name if section else None,
            "date": record.date.isoformat(),
            "status": record.status.value,
            "remarks": record.remarks,
            "marked_by_name": marker.name if marker else None,
        })
    return success_response(rows)
