"""Students, parents and the links between them."""
import logging

from schoolhub.errors import ConflictError, ValidationError
from schoolhub.extensions import db
from schoolhub.models import (
    Student, StudentStatusEnum, Parent, ParentStudent, UserRoleEnum, SchoolClass, Section,
)
from schoolhub.services.accounts import create_account
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

STUDENT_FIELDS = (
    "first_name", "last_name", "date_of_birth", "gender", "address", "status",
    "class_id", "section_id", "guardian_name", "guardian_phone", "guardian_email",
)


def _parse_status(value):
    try:
        return StudentStatusEnum(value)
    except ValueError:
        raise ValidationError(f"Invalid student status: {value}")


def _check_placement(school_id, class_id, section_id):
    school_class = get_owned(SchoolClass, school_id, class_id, "Class")
    if section_id is not None:
        section = get_owned(Section, school_id, section_id, "Section")
        if section.class_id != school_class.id:
            raise ValidationError("Section does not belong to the given class")
    return school_class


def _student_dict(student):
    return to_dict(
        student,
        full_name=student.full_name,
        class_name=student.school_class.name if student.school_class else None,
        section_name=student.section.name if student.section else None,
        email=student.user.email if student.user else None,
    )


# ---------- Students ----------

@service_operation("Failed to create student")
def create_student(school_id, class_id, academic_year_id, admission_number, first_name, last_name,
                   section_id=None, date_of_birth=None, gender=None, address=None,
                   guardian_name=None, guardian_phone=None, guardian_email=None, user_data=None):
    missing = [
        f for f, v in (("admission_number", admission_number), ("first_name", first_name), ("last_name", last_name))
        if not v
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {missing}")

    with transaction():
        ensure_year_open(school_id, academic_year_id)
        _check_placement(school_id, class_id, section_id)

        if Student.query.filter_by(school_id=school_id, admission_number=admission_number).first():
            raise ConflictError("Admission number already exists")

        user = create_account(school_id, user_data, UserRoleEnum.student) if user_data else None

        student = Student(
            school_id=school_id,
            user_id=user.id if user else None,
            class_id=class_id,
            section_id=section_id,
            academic_year_id=academic_year_id,
            admission_number=admission_number,
            first_name=first_name,
            last_name=last_name,
            date_of_birth=parse_date(date_of_birth, "date_of_birth"),
            gender=gender,
            address=address,
            status=StudentStatusEnum.active,
            guardian_name=guardian_name,
            guardian_phone=guardian_phone,
            guardian_email=guardian_email,
        )
        db.session.add(student)

    logger.info("Created student %s (%s) in school %s", student.id, admission_number, school_id)
    return success_response(_student_dict(student), "Student created successfully")


@service_operation("Failed to fetch students")
def list_students(school_id, class_id=None, section_id=None, academic_year_id=None, status=None,
                  search=None, page=1, limit=None):
    if status is not None:
        status = _parse_status(status)

    conditions = build_filters(Student, equals={
        "class_id": class_id,
        "section_id": section_id,
        "academic_year_id": academic_year_id,
        "status": status,
    })
    query = Student.query.filter(Student.school_id == school_id, *conditions).order_by(
        Student.first_name, Student.last_name
    )

    students, meta = apply_pagination_and_search(
        query, Student, search, ["first_name", "last_name", "admission_number"], page, limit
    )
    return paginated([_student_dict(s) for s in students], meta)


@service_operation("Failed to fetch student")
def get_student(school_id, student_id):
    student = get_owned(Student, school_id, student_id, "Student")
    data = _student_dict(student)
    data["parents"] = [
        to_dict(link.parent, relationship=link.relationship, is_primary=link.is_primary)
        for link in student.parent_links
    ]
    return success_response(data)


@service_operation("Failed to update student")
def update_student(school_id, student_id, **fields):
    changes = {k: v for k, v in fields.items() if k in STUDENT_FIELDS and v is not None}
    if not changes:
        raise ValidationError("No fields to update")

    with transaction():
        student = get_owned(Student, school_id, student_id, "Student")

        if "status" in changes:
            changes["status"] = _parse_status(changes["status"])
        if "date_of_birth" in changes:
            changes["date_of_birth"] = parse_date(changes["date_of_birth"], "date_of_birth")
        if "class_id" in changes or "section_id" in changes:
            _check_placement(
                school_id,
                changes.get("class_id", student.class_id),
                changes.get("section_id", student.section_id),
            )

        for key, value in changes.items():
            setattr(student, key, value)
        student.touch()

    return success_response(_student_dict(student), "Student updated successfully")


@service_operation("Failed to delete student")
def delete_student(school_id, student_id):
    with transaction():
        student = get_owned(Student, school_id, student_id, "Student")
        user = student.user
        db.session.delete(student)
        # the login goes with the student record
        if user:
            db.session.flush()
            db.session.delete(user)

    logger.info("Deleted student %s of school %s", student_id, school_id)
    return success_response(message="Student deleted successfully")


# ---------- Parents ----------

@service_operation("Failed to create parent")
def create_parent(school_id, name, email=None, phone=None, password=None):
    if not name:
        raise ValidationError("Parent name is required")

    with transaction():
        user = None
        if password:
            user = create_account(
                school_id, {"email": email, "password": password, "name": name, "phone": phone}, UserRoleEnum.parent
            )
        parent = Parent(
            school_id=school_id,
            user_id=user.id if user else None,
            name=name,
            email=email.strip().lower() if email else None,
            phone=phone,
        )
        db.session.add(parent)

    return success_response(to_dict(parent), "Parent created successfully")


@service_operation("Failed to link parent")
def link_parent(school_id, parent_id, student_id, relationship="guardian", is_primary=False):
    with transaction():
        parent = get_owned(Parent, school_id, parent_id, "Parent")
        student = get_owned(Student, school_id, student_id, "Student")

        link = ParentStudent.query.filter_by(parent_id=parent.id, student_id=student.id).first()
        if link:
            link.relationship = relationship or link.relationship
            link.is_primary = is_primary
        else:
            link = ParentStudent(
                parent_id=parent.id,
                student_id=student.id,
                relationship=relationship or "guardian",
                is_primary=is_primary,
            )
            db.session.add(link)

        if is_primary:
            ParentStudent.query.filter(
                ParentStudent.student_id == student.id,
                ParentStudent.parent_id != parent.id,
            ).update({"is_primary": False}, synchronize_session="fetch")

    return success_response(to_dict(link), "Parent linked to student successfully")


@service_operation("Failed to fetch children")
def get_parent_children(school_id, parent_id):
    parent = get_owned(Parent, school_id, parent_id, "Parent")
    children = []
    for link in parent.student_links:
        data = _student_dict(link.student)
        data["relationship"] = link.relationship
        data["is_primary"] = link.is_primary
        children.append(data)
    return success_response(children)
