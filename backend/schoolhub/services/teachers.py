import logging

from schoolhub.errors import ConflictError, ValidationError
from schoolhub.extensions import db
from schoolhub.models import Teacher, TeacherAssignment, UserRoleEnum, SchoolClass, Section, Subject, AcademicYear
from schoolhub.services.accounts import create_account
from schoolhub.utils.access_control import get_owned
from schoolhub.utils.dates import parse_date
from schoolhub.utils.decorators import service_operation
from schoolhub.utils.pagination import apply_pagination_and_search
from schoolhub.utils.responses import success_response, paginated
from schoolhub.utils.serialization import to_dict
from schoolhub.utils.transaction import transaction

logger = logging.getLogger(__name__)

TEACHER_FIELDS = ("employee_id", "date_of_joining", "qualification", "specialization", "address")
USER_FIELDS = ("name", "phone")


def _teacher_dict(teacher):
    user = teacher.user
    return to_dict(
        teacher,
        name=user.name if user else None,
        email=user.email if user else None,
        phone=user.phone if user else None,
        is_active=user.is_active if user else None,
    )


def _assignment_dict(assignment):
    year = db.session.get(AcademicYear, assignment.academic_year_id)
    school_class = db.session.get(SchoolClass, assignment.class_id)
    subject = db.session.get(Subject, assignment.subject_id)
    return to_dict(
        assignment,
        class_name=school_class.name if school_class else None,
        subject_name=subject.name if subject else None,
        academic_year_name=year.name if year else None,
    )


@service_operation("Failed to create teacher")
def create_teacher(school_id, employee_id, user_data, date_of_joining=None, qualification=None,
                   specialization=None, address=None):
    if not employee_id:
        raise ValidationError("employee_id is required")
    if not user_data:
        raise ValidationError("Teacher requires a user account")

    with transaction():
        if Teacher.query.filter_by(school_id=school_id, employee_id=employee_id).first():
            raise ConflictError("Employee ID already exists")

        user = create_account(school_id, user_data, UserRoleEnum.teacher)
        teacher = Teacher(
            school_id=school_id,
            user_id=user.id,
            employee_id=employee_id,
            date_of_joining=parse_date(date_of_joining, "date_of_joining"),
            qualification=qualification,
            specialization=specialization,
            address=address,
        )
        db.session.add(teacher)

    logger.info("Created teacher %s (%s) in school %s", teacher.id, employee_id, school_id)
    return success_response({"user_id": user.id, "teacher": _teacher_dict(teacher)}, "Teacher created successfully")


@service_operation("Failed to fetch teachers")
def list_teachers(school_id, search=None, page=1, limit=None):
    query = Teacher.query.filter(Teacher.school_id == school_id).order_by(Teacher.employee_id)
    teachers, meta = apply_pagination_and_search(
        query, Teacher, search, ["employee_id", "qualification", "specialization"], page, limit
    )
    return paginated([_teacher_dict(t) for t in teachers], meta)


@service_operation("Failed to fetch teacher")
def get_teacher(school_id, teacher_id):
    teacher = get_owned(Teacher, school_id, teacher_id, "Teacher")
    data = _teacher_dict(teacher)
    data["assignments"] = [_assignment_dict(a) for a in teacher.assignments]
    return success_response(data)


@service_operation("Failed to update teacher")
def update_teacher(school_id, teacher_id, **fields):
    teacher_changes = {k: v for k, v in fields.items() if k in TEACHER_FIELDS and v is not None}
    user_changes = {k: v for k, v in fields.items() if k in USER_FIELDS and v is not None}
    if not teacher_changes and not user_changes:
        raise ValidationError("No fields to update")

    with transaction():
        teacher = get_owned(Teacher, school_id, teacher_id, "Teacher")

        if "employee_id" in teacher_changes:
            clash = Teacher.query.filter(
                Teacher.school_id == school_id,
                Teacher.employee_id == teacher_changes["employee_id"],
                Teacher.id != teacher.id,
            ).first()
            if clash:
                raise ConflictError("Employee ID already exists")
        if "date_of_joining" in teacher_changes:
            teacher_changes["date_of_joining"] = parse_date(teacher_changes["date_of_joining"], "date_of_joining")

        for key, value in teacher_changes.items():
            setattr(teacher, key, value)
        for key, value in user_changes.items():
            setattr(teacher.user, key, value)
        teacher.touch()

    return success_response(_teacher_dict(teacher), "Teacher updated successfully")


@service_operation("Failed to assign teacher")
def assign_teacher(school_id, teacher_id, class_id, section_id, subject_id, academic_year_id):
    with transaction():
        teacher = get_owned(Teacher, school_id, teacher_id, "Teacher")
        school_class = get_owned(SchoolClass, school_id, class_id, "Class")
        get_owned(Subject, school_id, subject_id, "Subject")
        get_owned(AcademicYear, school_id, academic_year_id, "Academic year")
        if section_id is not None:
            section = get_owned(Section, school_id, section_id, "Section")
            if section.class_id != school_class.id:
                raise ValidationError("Section does not belong to the given class")

        existing = TeacherAssignment.query.filter_by(
            teacher_id=teacher.id,
            class_id=class_id,
            section_id=section_id,
            subject_id=subject_id,
            academic_year_id=academic_year_id,
        ).first()
        if existing:
            raise ConflictError("Teacher is already assigned to this class and subject")

        assignment = TeacherAssignment(
            school_id=school_id,
            teacher_id=teacher.id,
            class_id=class_id,
            section_id=section_id,
            subject_id=subject_id,
            academic_year_id=academic_year_id,
        )
        db.session.add(assignment)

    return success_response(_assignment_dict(assignment), "Teacher assigned to class successfully")


@service_operation("Failed to fetch teacher assignments")
def get_teacher_assignments(school_id, teacher_id):
    teacher = get_owned(Teacher, school_id, teacher_id, "Teacher")
    assignments = (
        TeacherAssignment.query.filter_by(school_id=school_id, teacher_id=teacher.id)
        .join(AcademicYear, TeacherAssignment.academic_year_id == AcademicYear.id)
        .order_by(AcademicYear.start_date.desc(), TeacherAssignment.class_id)
        .all()
    )
    return success_response([_assignment_dict(a) for a in assignments])


@service_operation("Failed to delete teacher")
def delete_teacher(school_id, teacher_id):
    with transaction():
        teacher = get_owned(Teacher, school_id, teacher_id, "Teacher")
        user = teacher.user

        TeacherAssignment.query.filter_by(teacher_id=teacher.id).delete(synchronize_session="fetch")
        db.session.delete(teacher)
        db.session.flush()
        if user:
            db.session.delete(user)

    logger.info("Deleted teacher %s of school %s", teacher_id, school_id)
    return success_response(message="Teacher deleted successfully")
