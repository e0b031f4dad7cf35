import logging

from schoolhub.errors import ConflictError, ValidationError
from schoolhub.extensions import db
from schoolhub.models import Exam, Mark, SchoolClass
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

EXAM_FIELDS = ("name", "exam_type", "start_date", "end_date", "total_marks", "passing_marks", "description")


def _check_dates(start_date, end_date):
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")


def _check_marks(total_marks, passing_marks):
    if total_marks is not None and total_marks <= 0:
        raise ValidationError("total_marks must be positive")
    if passing_marks is not None and total_marks is not None and passing_marks > total_marks:
        raise ValidationError("passing_marks cannot exceed total_marks")


def _exam_dict(exam):
    school_class = db.session.get(SchoolClass, exam.class_id)
    return to_dict(exam, class_name=school_class.name if school_class else None)


@service_operation("Failed to create exam")
def create_exam(school_id, academic_year_id, class_id, name, exam_type=None, start_date=None, end_date=None,
                total_marks=None, passing_marks=None, description=None):
    if not name:
        raise ValidationError("Exam name is required")
    start_date = parse_date(start_date, "start_date")
    end_date = parse_date(end_date, "end_date")
    _check_dates(start_date, end_date)
    _check_marks(total_marks, passing_marks)

    with transaction():
        ensure_year_open(school_id, academic_year_id)
        get_owned(SchoolClass, school_id, class_id, "Class")
        exam = Exam(
            school_id=school_id,
            academic_year_id=academic_year_id,
            class_id=class_id,
            name=name,
            exam_type=exam_type.lower() if exam_type else None,
            start_date=start_date,
            end_date=end_date,
            total_marks=total_marks,
            passing_marks=passing_marks,
            description=description,
        )
        db.session.add(exam)

    return success_response(_exam_dict(exam), "Exam created successfully")


@service_operation("Failed to fetch exams")
def list_exams(school_id, academic_year_id=None, class_id=None, exam_type=None, page=1, limit=None, search=None):
    conditions = build_filters(Exam, equals={
        "academic_year_id": academic_year_id,
        "class_id": class_id,
        "exam_type": exam_type.lower() if exam_type else None,
    })
    query = Exam.query.filter(Exam.school_id == school_id, *conditions).order_by(
        Exam.start_date.desc(), Exam.id.desc()
    )
    exams, meta = apply_pagination_and_search(query, Exam, search, ["name"], page, limit)
    return paginated([_exam_dict(e) for e in exams], meta)


@service_operation("Failed to fetch exam")
def get_exam(school_id, exam_id):
    exam = get_owned(Exam, school_id, exam_id, "Exam")
    data = _exam_dict(exam)
    data["marks_count"] = Mark.query.filter_by(school_id=school_id, exam_id=exam.id).count()
    return success_response(data)


@service_operation("Failed to update exam")
def update_exam(school_id, exam_id, **fields):
    changes = {k: v for k, v in fields.items() if k in EXAM_FIELDS and v is not None}
    if not changes:
        raise ValidationError("No fields to update")

    with transaction():
        exam = get_owned(Exam, school_id, exam_id, "Exam")
        ensure_year_open(school_id, exam.academic_year_id)

        for key in ("start_date", "end_date"):
            if key in changes:
                changes[key] = parse_date(changes[key], key)
        if "exam_type" in changes:
            changes["exam_type"] = changes["exam_type"].lower()
        _check_dates(changes.get("start_date", exam.start_date), changes.get("end_date", exam.end_date))
        _check_marks(changes.get("total_marks", exam.total_marks), changes.get("passing_marks", exam.passing_marks))

        for key, value in changes.items():
            setattr(exam, key, value)
        exam.touch()

    return success_response(_exam_dict(exam), "Exam updated successfully")


@service_operation("Failed to delete exam")
def delete_exam(school_id, exam_id):
    with transaction():
        exam = get_owned(Exam, school_id, exam_id, "Exam")
        if Mark.query.filter_by(exam_id=exam.id).count():
            raise ConflictError("Cannot delete exam with recorded marks")
        db.session.delete(exam)

    logger.info("Deleted exam %s of school %s", exam_id, school_id)
    return success_response(message="Exam deleted successfully")
