"""Promotion engine.

A batch run moves every active student of a class whose aggregate score on
the class's final exam meets the threshold, and appends a PromotionLog row
for every decision. The whole batch commits or rolls back as one unit.
"""
import logging

from sqlalchemy import func

from schoolhub.errors import ValidationError
from schoolhub.extensions import db
from schoolhub.models import (
    AcademicYear, AuditLog, Exam, Mark, PromotionLog, PromotionStatusEnum, SchoolClass, Section, Student,
    StudentStatusEnum,
)
from schoolhub.services.academic_years import ensure_year_open
from schoolhub.utils.access_control import get_owned
from schoolhub.utils.audit import log_event
from schoolhub.utils.decorators import service_operation
from schoolhub.utils.filters import build_filters
from schoolhub.utils.pagination import apply_pagination_and_search
from schoolhub.utils.responses import success_response, paginated
from schoolhub.utils.serialization import to_dict
from schoolhub.utils.transaction import transaction

logger = logging.getLogger(__name__)

FINAL_EXAM_TYPE = "final"
NO_FINAL_EXAM = "No final exam found"
BELOW_THRESHOLD = "Did not meet minimum percentage."


def mark_totals(school_id, student_id, exam_id):
    obtained, maximum = (
        db.session.query(func.sum(Mark.marks_obtained), func.sum(Mark.total_marks))
        .filter(Mark.school_id == school_id, Mark.student_id == student_id, Mark.exam_id == exam_id)
        .one()
    )
    return float(obtained or 0), float(maximum or 0)


def student_percentage(school_id, student_id, exam_id):
    obtained, maximum = mark_totals(school_id, student_id, exam_id)
    if not maximum:
        return 0.0
    return obtained * 100 / maximum


def _final_exam(school_id, class_id, academic_year_id):
    return (
        Exam.query.filter(
            Exam.school_id == school_id,
            Exam.class_id == class_id,
            Exam.academic_year_id == academic_year_id,
            Exam.exam_type == FINAL_EXAM_TYPE,
        )
        .order_by(Exam.start_date.desc(), Exam.id.desc())
        .first()
    )


def _check_target(school_id, to_class_id, to_section_id, to_year_id):
    to_class = get_owned(SchoolClass, school_id, to_class_id, "Target class")
    ensure_year_open(school_id, to_year_id)
    if to_section_id is not None:
        section = get_owned(Section, school_id, to_section_id, "Target section")
        if section.class_id != to_class.id:
            raise ValidationError("Target section does not belong to the target class")
    return to_class


@service_operation("Failed to run promotion")
def run_promotion(school_id, from_class_id, to_class_id, from_year_id, to_year_id, min_percentage,
                  to_section_id=None):
    if min_percentage is None or not 0 <= min_percentage <= 100:
        raise ValidationError("min_percentage must be between 0 and 100")

    promoted, failed = [], []
    with transaction():
        get_owned(SchoolClass, school_id, from_class_id, "Class")
        get_owned(AcademicYear, school_id, from_year_id, "Academic year")
        _check_target(school_id, to_class_id, to_section_id, to_year_id)

        students = (
            Student.query.filter_by(
                school_id=school_id,
                class_id=from_class_id,
                academic_year_id=from_year_id,
                status=StudentStatusEnum.active,
            )
            .order_by(Student.id)
            .all()
        )
        exam = _final_exam(school_id, from_class_id, from_year_id)

        for student in students:
            if exam is None:
                failed.append({"student_id": student.id, "reason": NO_FINAL_EXAM})
                continue

            obtained, maximum = mark_totals(school_id, student.id, exam.id)
            percentage = obtained * 100 / maximum if maximum else 0.0
            log = PromotionLog(
                school_id=school_id,
                student_id=student.id,
                from_class_id=from_class_id,
                to_class_id=to_class_id,
                from_academic_year_id=from_year_id,
                to_academic_year_id=to_year_id,
                percentage=percentage,
            )

            # no marks entered means not eligible, whatever the threshold
            if maximum and percentage >= min_percentage:
                student.class_id = to_class_id
                student.section_id = to_section_id
                student.academic_year_id = to_year_id
                student.touch()
                log.status = PromotionStatusEnum.promoted
                promoted.append({"student_id": student.id, "percentage": percentage})
            else:
                log.status = PromotionStatusEnum.failed
                log.remarks = BELOW_THRESHOLD
                failed.append({"student_id": student.id, "percentage": percentage})

            db.session.add(log)

        summary = {"total": len(students), "promoted_count": len(promoted), "failed_count": len(failed)}
        description = (
            f"class {from_class_id} -> {to_class_id}, year {from_year_id} -> {to_year_id}, "
            f"min {min_percentage}%: {summary['promoted_count']} promoted, {summary['failed_count']} failed"
        )
        db.session.add(AuditLog(school_id=school_id, action="PROMOTION_RUN", details=description))

    log_event("PROMOTION_RUN", school_id, description)
    return success_response(
        {"promoted": promoted, "failed": failed, "summary": summary},
        f"Promotion completed: {len(promoted)} promoted, {len(failed)} failed",
    )


@service_operation("Failed to promote student")
def promote_student(school_id, student_id, to_class_id, to_section_id, to_year_id, remarks="Manual promotion"):
    with transaction():
        student = get_owned(Student, school_id, student_id, "Student")
        _check_target(school_id, to_class_id, to_section_id, to_year_id)

        log = PromotionLog(
            school_id=school_id,
            student_id=student.id,
            from_class_id=student.class_id,
            to_class_id=to_class_id,
            from_academic_year_id=student.academic_year_id,
            to_academic_year_id=to_year_id,
            percentage=None,
            status=PromotionStatusEnum.promoted,
            remarks=remarks or "Manual promotion",
        )
        student.class_id = to_class_id
        student.section_id = to_section_id
        student.academic_year_id = to_year_id
        student.touch()
        db.session.add(log)

    logger.info("Manually promoted student %s of school %s", student_id, school_id)
    return success_response(to_dict(log), "Student promoted successfully")


@service_operation("Failed to calculate percentage")
def calculate_student_percentage(school_id, student_id, exam_id):
    student = get_owned(Student, school_id, student_id, "Student")
    exam = get_owned(Exam, school_id, exam_id, "Exam")
    percentage = student_percentage(school_id, student.id, exam.id)
    return success_response({"student_id": student.id, "exam_id": exam.id, "percentage": percentage})


@service_operation("Failed to fetch promotion logs")
def get_promotion_logs(school_id, academic_year_id=None, page=1, limit=None):
    query = PromotionLog.query.filter(
        PromotionLog.school_id == school_id,
        *build_filters(PromotionLog, equals={"from_academic_year_id": academic_year_id}),
    ).order_by(PromotionLog.created_at.desc(), PromotionLog.id.desc())

    logs, meta = apply_pagination_and_search(query, PromotionLog, page=page, limit=limit)
    items = []
    for log in logs:
        from_class = db.session.get(SchoolClass, log.from_class_id) if log.from_class_id else None
        to_class = db.session.get(SchoolClass, log.to_class_id) if log.to_class_id else None
        items.append(to_dict(
            log,
            student_name=log.student.full_name if log.student else None,
            from_class_name=from_class.name if from_class else None,
            to_class_name=to_class.name if to_class else None,
        ))
    return paginated(items, meta)
