from datetime import date
from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError

from schoolhub.errors import TransactionFailure
from schoolhub.models import AuditLog, PromotionLog, PromotionStatusEnum, Student
from schoolhub.services import academic_years, catalog, exams, marks, promotions, students


@pytest.fixture
def final_exam(school_id, current_year, school_class):
    result = exams.create_exam(
        school_id, current_year["id"], school_class["id"], "Final", exam_type="final", total_marks=100,
        start_date=date(2024, 4, 1), end_date=date(2024, 4, 10),
    )
    assert result["success"], result
    return result["data"]


def _score(school_id, exam, student, subjects, scores):
    records = [
        {"student_id": student["id"], "subject_id": subject["id"], "marks_obtained": score, "total_marks": 100}
        for subject, score in zip(subjects, scores)
    ]
    assert marks.bulk_create_marks(school_id, exam["id"], records)["success"]


def _run(school_id, school_class, next_class, current_year, next_year, minimum, **kwargs):
    return promotions.run_promotion(
        school_id, school_class["id"], next_class["id"], current_year["id"], next_year["id"], minimum, **kwargs
    )


def test_percentage_equal_to_threshold_is_promoted(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    at_line = make_student("Ada")
    below = make_student("Ben")
    _score(school_id, final_exam, at_line, subjects, [40, 60])  # 50%
    _score(school_id, final_exam, below, subjects, [49, 50])  # 49.5%

    result = _run(school_id, school_class, next_class, current_year, next_year, 50)
    assert result["success"], result
    data = result["data"]
    assert data["summary"] == {"total": 2, "promoted_count": 1, "failed_count": 1}
    assert data["promoted"] == [{"student_id": at_line["id"], "percentage": 50.0}]
    assert data["failed"][0]["student_id"] == below["id"]

    moved = Student.query.get(at_line["id"])
    assert moved.class_id == next_class["id"]
    assert moved.academic_year_id == next_year["id"]
    assert Student.query.get(below["id"]).class_id == school_class["id"]

    failed_log = PromotionLog.query.filter_by(student_id=below["id"]).one()
    assert failed_log.status == PromotionStatusEnum.failed
    assert failed_log.remarks == "Did not meet minimum percentage."
    assert failed_log.percentage == pytest.approx(49.5)


def test_exact_threshold_is_not_lost_to_rounding(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    student = make_student()
    marks.create_mark(school_id, final_exam["id"], student["id"], subjects[0]["id"], 29, total_marks=100)

    result = _run(school_id, school_class, next_class, current_year, next_year, 29)
    assert result["success"], result
    assert result["data"]["promoted"] == [{"student_id": student["id"], "percentage": 29.0}]
    assert Student.query.get(student["id"]).class_id == next_class["id"]

    pct = promotions.calculate_student_percentage(school_id, student["id"], final_exam["id"])
    assert pct["data"]["percentage"] == 29.0


def test_student_without_marks_is_never_promoted(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    student = make_student()

    result = _run(school_id, school_class, next_class, current_year, next_year, 0)
    assert result["success"], result
    assert result["data"]["failed"] == [{"student_id": student["id"], "percentage": 0.0}]
    assert Student.query.get(student["id"]).class_id == school_class["id"]


def test_zero_threshold_promotes_any_scored_student(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    student = make_student()
    _score(school_id, final_exam, student, subjects, [0, 0])

    result = _run(school_id, school_class, next_class, current_year, next_year, 0)
    assert result["data"]["summary"]["promoted_count"] == 1


def test_no_final_exam_fails_without_log_rows(
    school_id, current_year, next_year, school_class, next_class, subjects, make_student
):
    exams.create_exam(school_id, current_year["id"], school_class["id"], "Midterm", exam_type="midterm")
    student = make_student()

    result = _run(school_id, school_class, next_class, current_year, next_year, 33)
    assert result["success"], result
    assert result["data"]["failed"] == [{"student_id": student["id"], "reason": "No final exam found"}]
    assert PromotionLog.query.count() == 0
    assert Student.query.get(student["id"]).class_id == school_class["id"]


def test_only_active_students_are_considered(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    active = make_student("Active")
    graduated = make_student("Gone")
    students.update_student(school_id, graduated["id"], status="graduated")
    for s in (active, graduated):
        _score(school_id, final_exam, s, subjects, [90, 90])

    result = _run(school_id, school_class, next_class, current_year, next_year, 33)
    assert result["data"]["summary"]["total"] == 1


def test_target_section_is_applied(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    section = catalog.create_section(school_id, next_class["id"], "B")["data"]
    student = make_student()
    _score(school_id, final_exam, student, subjects, [70, 70])

    result = _run(school_id, school_class, next_class, current_year, next_year, 33, to_section_id=section["id"])
    assert result["success"], result
    assert Student.query.get(student["id"]).section_id == section["id"]


def test_closed_target_year_is_refused(
    school_id, current_year, next_year, school_class, next_class, final_exam, make_student
):
    make_student()
    academic_years.close_academic_year(school_id, next_year["id"])

    result = _run(school_id, school_class, next_class, current_year, next_year, 33)
    assert result["success"] is False
    assert result["error_type"] == "invalid_state"


def test_threshold_out_of_range_is_rejected(school_id, current_year, next_year, school_class, next_class):
    result = _run(school_id, school_class, next_class, current_year, next_year, 120)
    assert result["error_type"] == "validation"


def test_batch_run_writes_audit_row(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    make_student()
    _run(school_id, school_class, next_class, current_year, next_year, 33)
    assert AuditLog.query.filter_by(school_id=school_id, action="PROMOTION_RUN").count() == 1


def test_fault_mid_batch_rolls_back_everything(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    first = make_student("First")
    second = make_student("Second")
    for s in (first, second):
        _score(school_id, final_exam, s, subjects, [80, 80])

    real = promotions.mark_totals
    calls = {"n": 0}

    def flaky(*args):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("SELECT", {}, Exception("connection lost"))
        return real(*args)

    with mock.patch.object(promotions, "mark_totals", side_effect=flaky):
        with pytest.raises(TransactionFailure):
            _run(school_id, school_class, next_class, current_year, next_year, 33)

    assert Student.query.get(first["id"]).class_id == school_class["id"]
    assert Student.query.get(second["id"]).class_id == school_class["id"]
    assert PromotionLog.query.count() == 0


def test_manual_promotion_always_logs_promoted(
    school_id, current_year, next_year, school_class, next_class, make_student
):
    student = make_student()

    result = promotions.promote_student(school_id, student["id"], next_class["id"], None, next_year["id"])
    assert result["success"], result
    assert result["data"]["status"] == "promoted"
    assert result["data"]["percentage"] is None
    assert result["data"]["remarks"] == "Manual promotion"
    assert result["data"]["from_class_id"] == school_class["id"]
    assert Student.query.get(student["id"]).academic_year_id == next_year["id"]


def test_manual_promotion_of_unknown_student(school_id, next_year, next_class):
    result = promotions.promote_student(school_id, 9999, next_class["id"], None, next_year["id"])
    assert result["error_type"] == "not_found"


def test_percentage_and_logs(
    school_id, current_year, next_year, school_class, next_class, subjects, final_exam, make_student
):
    student = make_student()
    _score(school_id, final_exam, student, subjects, [45, 30])

    pct = promotions.calculate_student_percentage(school_id, student["id"], final_exam["id"])
    assert pct["data"]["percentage"] == pytest.approx(37.5)

    _run(school_id, school_class, next_class, current_year, next_year, 33)
    logs = promotions.get_promotion_logs(school_id, current_year["id"])
    assert logs["data"]["pagination"]["total"] == 1
    assert logs["data"]["items"][0]["to_class_name"] == "Grade 6"
