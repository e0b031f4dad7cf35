import os
import logging
from datetime import date

from schoolhub.extensions import db
from schoolhub.models import School
from schoolhub.services import academic_years, catalog, students, teachers, exams, marks, fees, billing, schools

logger = logging.getLogger(__name__)

DEMO_SLUG = "woodlands-primary"


def _data(result):
    if not result["success"]:
        raise RuntimeError(result["error"])
    return result["data"]


def seed_data():
    """Create a demo tenant with one open year, two classes and a few students."""
    if School.query.filter_by(slug=DEMO_SLUG).first():
        logger.info("Demo school already present, skipping seed")
        return None

    admin_password = os.getenv("ADMIN_PASSWORD", "your_secure_password")

    # School and its admin
    created = _data(schools.create_school(
        name="Woodlands Primary School",
        slug=DEMO_SLUG,
        email="office@woodlands.example",
        phone="+27 11 000 0000",
        admin_name="Site Admin",
        admin_email="admin@woodlands.example",
        admin_password=admin_password,
        address="123 Main St",
    ))
    school_id = created["school"]["id"]
    _data(billing.create_subscription(school_id, "Basic Yearly", 12000))

    # Calendar: the first year becomes current on its own
    year = _data(academic_years.create_academic_year(school_id, "2024-25", date(2024, 6, 1), date(2025, 5, 31)))
    next_year = _data(academic_years.create_academic_year(school_id, "2025-26", date(2025, 6, 1), date(2026, 5, 31)))

    grade_1 = _data(catalog.create_class(school_id, year["id"], "Grade 1", capacity=40))
    grade_2 = _data(catalog.create_class(school_id, next_year["id"], "Grade 2", capacity=40))
    section_a = _data(catalog.create_section(school_id, grade_1["id"], "A"))
    _data(catalog.create_section(school_id, grade_2["id"], "A"))
    maths = _data(catalog.create_subject(school_id, "Mathematics", "MATH", grade_1["id"]))
    english = _data(catalog.create_subject(school_id, "English", "ENG", grade_1["id"]))

    _data(teachers.create_teacher(
        school_id,
        "EMP-001",
        {"email": "tutor@woodlands.example", "password": "tutorpass", "name": "John Tutor"},
        qualification="B.Ed",
        specialization="Mathematics",
    ))

    final_exam = _data(exams.create_exam(
        school_id, year["id"], grade_1["id"], "Final Exam", exam_type="final", total_marks=100, passing_marks=33,
    ))
    term_fee = _data(fees.create_fee_structure(
        school_id, year["id"], grade_1["id"], "tuition", 1000, date(2024, 7, 10), "Term 1 tuition",
    ))

    pupils = [("ADM-001", "Alice", "Mokoena", 92, 88), ("ADM-002", "Bob", "Naidoo", 41, 30)]
    for admission_number, first_name, last_name, maths_score, english_score in pupils:
        student = _data(students.create_student(
            school_id, grade_1["id"], year["id"], admission_number, first_name, last_name,
            section_id=section_a["id"],
        ))
        _data(marks.bulk_create_marks(school_id, final_exam["id"], [
            {"student_id": student["id"], "subject_id": maths["id"], "marks_obtained": maths_score},
            {"student_id": student["id"], "subject_id": english["id"], "marks_obtained": english_score},
        ]))
        _data(fees.record_fee_payment(
            school_id, student["id"], term_fee["id"], 500, date(2024, 7, 12), "cash",
        ))

    db.session.remove()
    logger.info("Seeded demo school %s", school_id)
    return school_id


if __name__ == "__main__":
    from schoolhub import create_app

    app = create_app()
    with app.app_context():
        seed_data()
        print("Database seeded successfully!")
