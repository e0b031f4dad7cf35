"""Examination marks ledger.

One row per (exam, student, subject); a second entry for the same key
overwrites the first and re-derives the grade.
"""
import logging

from schoolhub.errors import ValidationError
from schoolhub.extensions import db
from schoolhub.models import Exam, Mark, Student, Subject
from schoolhub.services.academic_years import ensure_year_open
from schoolhub.utils.access_control import get_owned
from schoolhub.utils.decorators import service_operation
from schoolhub.utils.filters import build_filters
from schoolhub.utils.pagination import apply_pagination_and_search
from schoolhub.utils.responses import success_response, paginated
from schoolhub.utils.serialization import to_dict
from schoolhub.utils.transaction import transaction

logger = logging.getLogger(__name__)

# inclusive lower bounds, checked top down
GRADE_BOUNDARIES = (
    (90, "A+"),
    (80, "A"),
    (70, "B+"),
    (60, "B"),
    (50, "C+"),
    (40, "C"),
    (33, "D"),
)


def calculate_grade(marks_obtained, total_marks):
    if total_marks == 0:
        return "N/A"

    percentage = (marks_obtained / total_marks) * 100
    for lower_bound, grade in GRADE_BOUNDARIES:
        if percentage >= lower_bound:
            return grade
    return "F"


def _as_number(value, field):
    if value is None:
        raise ValidationError(f"Missing required field: {field}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")


def _validate_scores(marks_obtained, total_marks):
    if total_marks < 0:
        raise ValidationError("total_marks cannot be negative")
    if marks_obtained < 0:
        raise ValidationError("marks_obtained cannot be negative")
    if marks_obtained > total_marks:
        raise ValidationError("marks_obtained cannot exceed total_marks")


def _upsert_mark(school_id, exam, record):
    for field in ("student_id", "subject_id"):
        if not record.get(field):
            raise ValidationError(f"Missing required field: {field}")

    marks_obtained = _as_number(record.get("marks_obtained"), "marks_obtained")
    total = record.get("total_marks")
    total_marks = _as_number(total if total is not None else exam.total_marks, "total_marks")
    _validate_scores(marks_obtained, total_marks)

    student = get_owned(Student, school_id, record["student_id"], "Student")
    subject = get_owned(Subject, school_id, record["subject_id"], "Subject")
    grade = calculate_grade(marks_obtained, total_marks)

    mark = Mark.query.filter_by(exam_id=exam.id, student_id=student.id, subject_id=subject.id).first()
    if mark:
        mark.marks_obtained = marks_obtained
        mark.total_marks = total_marks
        mark.grade = grade
        mark.remarks = record.get("remarks")
        mark.touch()
        return mark

    mark = Mark(
        school_id=school_id,
        exam_id=exam.id,
        student_id=student.id,
        subject_id=subject.id,
        marks_obtained=marks_obtained,
        total_marks=total_marks,
        grade=grade,
        remarks=record.get("remarks"),
    )
    db.session.add(mark)
    return mark


def _load_exam_for_write(school_id, exam_id):
    exam = get_owned(Exam, school_id, exam_id, "Exam")
    ensure_year_open(school_id, exam.academic_year_id)
    return exam


@service_operation("Failed to create mark")
def create_mark(school_id, exam_id, student_id, subject_id, marks_obtained, total_marks=None, remarks=None):
    with transaction():
        exam = _load_exam_for_write(school_id, exam_id)
        mark = _upsert_mark(school_id, exam, {
            "student_id": student_id,
            "subject_id": subject_id,
            "marks_obtained": marks_obtained,
            "total_marks": total_marks,
            "remarks": remarks,
        })

    return success_response(to_dict(mark), "Mark saved successfully")


@service_operation("Failed to bulk create marks")
def bulk_create_marks(school_id, exam_id, records):
    if not records:
        raise ValidationError("No mark records supplied")

    with transaction():
        exam = _load_exam_for_write(school_id, exam_id)
        saved = []
        for record in records:
            saved.append(_upsert_mark(school_id, exam, record))
            db.session.flush()

    logger.info("Saved %d marks for exam %s of school %s", len(saved), exam_id, school_id)
    return success_response([to_dict(m) for m in saved], f"{len(saved)} marks saved successfully")


@service_operation("Failed to fetch marks")
def list_marks(school_id, exam_id=None, student_id=None, subject_id=None, page=1, limit=None):
    conditions = build_filters(Mark, equals={
        "exam_id": exam_id,
        "student_id": student_id,
        "subject_id": subject_id,
    })
    query = Mark.query.filter(Mark.school_id == school_id, *conditions).order_by(Mark.exam_id, Mark.student_id)

    marks, meta = apply_pagination_and_search(query, Mark, page=page, limit=limit)
    items = []
    for mark in marks:
        student = db.session.get(Student, mark.student_id)
        subject = db.session.get(Subject, mark.subject_id)
        items.append(to_dict(
            mark,
            student_name=student.full_name if student else None,
            subject_name=subject.name if subject else None,
            exam_name=mark.exam.name,
        ))
    return paginated(items, meta)


@service_operation("Failed to update mark")
def update_mark(school_id, mark_id, marks_obtained=None, total_marks=None, remarks=None):
    if marks_obtained is None and total_marks is None and remarks is None:
        raise ValidationError("No fields to update")

    with transaction():
        mark = get_owned(Mark, school_id, mark_id, "Mark")
        ensure_year_open(school_id, mark.exam.academic_year_id)

        obtained = _as_number(marks_obtained, "marks_obtained") if marks_obtained is not None else mark.marks_obtained
        total = _as_number(total_marks, "total_marks") if total_marks is not None else mark.total_marks
        _validate_scores(obtained, total)

        mark.marks_obtained = obtained
        mark.total_marks = total
        mark.grade = calculate_grade(obtained, total)
        if remarks is not None:
            mark.remarks = remarks
        mark.touch()

    return success_response(to_dict(mark), "Mark updated successfully")


@service_operation("Failed to fetch student marks")
def get_student_marks(school_id, student_id, academic_year_id=None):
    student = get_owned(Student, school_id, student_id, "Student")
    query = Mark.query.join(Exam, Mark.exam_id == Exam.id).filter(
        Mark.school_id == school_id,
        Mark.student_id == student.id,
        *build_filters(Exam, equals={"academic_year_id": academic_year_id}),
    )
    marks = query.order_by(Exam.start_date.desc(), Mark.subject_id).all()

    items = []
    for mark in marks:
        subject = db.session.get(Subject, mark.subject_id)
        items.append(to_dict(
            mark,
            subject_name=subject.name if subject else None,
            exam_name=mark.exam.name,
            exam_type=mark.exam.exam_type,
        ))
    return success_response(items)
