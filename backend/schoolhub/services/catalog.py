"""Classes, sections and subjects of a school."""
import logging

from schoolhub.errors import ConflictError, ValidationError
from schoolhub.extensions import db
from schoolhub.models import SchoolClass, Section, Subject, Student
from schoolhub.services.academic_years import ensure_year_open
from schoolhub.utils.access_control import get_owned
from schoolhub.utils.decorators import service_operation
from schoolhub.utils.filters import build_filters
from schoolhub.utils.pagination import apply_pagination_and_search
from schoolhub.utils.responses import success_response, paginated
from schoolhub.utils.serialization import to_dict
from schoolhub.utils.transaction import transaction

logger = logging.getLogger(__name__)

CLASS_FIELDS = ("name", "capacity", "description")
SECTION_FIELDS = ("name", "capacity")
SUBJECT_FIELDS = ("name", "code", "class_id")


def _pick(fields, allowed):
    return {k: v for k, v in fields.items() if k in allowed and v is not None}


def _class_dict(school_class, student_count=None):
    year = school_class.academic_year
    extra = {
        "academic_year_name": year.name if year else None,
        "sections": [to_dict(s) for s in school_class.sections],
    }
    if student_count is not None:
        extra["student_count"] = student_count
    return to_dict(school_class, **extra)


# ---------- Classes ----------

@service_operation("Failed to create class")
def create_class(school_id, academic_year_id, name, capacity=None, description=None):
    if not name:
        raise ValidationError("Class name is required")

    with transaction():
        ensure_year_open(school_id, academic_year_id)
        school_class = SchoolClass(
            school_id=school_id,
            academic_year_id=academic_year_id,
            name=name,
            capacity=capacity,
            description=description,
        )
        db.session.add(school_class)

    return success_response(_class_dict(school_class), "Class created successfully")


@service_operation("Failed to fetch classes")
def list_classes(school_id, academic_year_id=None, page=1, limit=None, search=None):
    query = SchoolClass.query.filter(
        SchoolClass.school_id == school_id,
        *build_filters(SchoolClass, equals={"academic_year_id": academic_year_id}),
    ).order_by(SchoolClass.name)

    classes, meta = apply_pagination_and_search(query, SchoolClass, search, ["name"], page, limit)
    return paginated([_class_dict(c) for c in classes], meta)


@service_operation("Failed to fetch class")
def get_class(school_id, class_id):
    school_class = get_owned(SchoolClass, school_id, class_id, "Class")
    student_count = Student.query.filter_by(school_id=school_id, class_id=school_class.id).count()
    return success_response(_class_dict(school_class, student_count))


@service_operation("Failed to update class")
def update_class(school_id, class_id, **fields):
    changes = _pick(fields, CLASS_FIELDS)
    if not changes:
        raise ValidationError("No fields to update")

    with transaction():
        school_class = get_owned(SchoolClass, school_id, class_id, "Class")
        ensure_year_open(school_id, school_class.academic_year_id)
        for key, value in changes.items():
            setattr(school_class, key, value)
        school_class.touch()

    return success_response(_class_dict(school_class), "Class updated successfully")


@service_operation("Failed to delete class")
def delete_class(school_id, class_id):
    with transaction():
        school_class = get_owned(SchoolClass, school_id, class_id, "Class")
        enrolled = Student.query.filter_by(school_id=school_id, class_id=school_class.id).count()
        if enrolled:
            raise ConflictError("Cannot delete class with enrolled students")

        Subject.query.filter_by(school_id=school_id, class_id=school_class.id).update(
            {"class_id": None}, synchronize_session="fetch"
        )
        for section in list(school_class.sections):
            db.session.delete(section)
        db.session.delete(school_class)

    logger.info("Deleted class %s of school %s", class_id, school_id)
    return success_response(message="Class deleted successfully")


# ---------- Sections ----------

@service_operation("Failed to create section")
def create_section(school_id, class_id, name, capacity=None):
    if not name:
        raise ValidationError("Section name is required")

    with transaction():
        school_class = get_owned(SchoolClass, school_id, class_id, "Class")
        if Section.query.filter_by(class_id=school_class.id, name=name).first():
            raise ConflictError("Section already exists for this class")
        section = Section(school_id=school_id, class_id=school_class.id, name=name, capacity=capacity)
        db.session.add(section)

    return success_response(to_dict(section), "Section created successfully")


@service_operation("Failed to fetch sections")
def list_sections(school_id, class_id=None):
    query = Section.query.filter(
        Section.school_id == school_id,
        *build_filters(Section, equals={"class_id": class_id}),
    ).order_by(Section.class_id, Section.name)

    items = []
    for section in query.all():
        count = Student.query.filter_by(school_id=school_id, section_id=section.id).count()
        items.append(to_dict(section, class_name=section.school_class.name, student_count=count))
    return success_response(items)


@service_operation("Failed to update section")
def update_section(school_id, section_id, **fields):
    changes = _pick(fields, SECTION_FIELDS)
    if not changes:
        raise ValidationError("No fields to update")

    with transaction():
        section = get_owned(Section, school_id, section_id, "Section")
        if "name" in changes:
            clash = Section.query.filter(
                Section.class_id == section.class_id,
                Section.name == changes["name"],
                Section.id != section.id,
            ).first()
            if clash:
                raise ConflictError("Section already exists for this class")
        for key, value in changes.items():
            setattr(section, key, value)
        section.touch()

    return success_response(to_dict(section), "Section updated successfully")


@service_operation("Failed to delete section")
def delete_section(school_id, section_id):
    with transaction():
        section = get_owned(Section, school_id, section_id, "Section")
        if Student.query.filter_by(school_id=school_id, section_id=section.id).count():
            raise ConflictError("Cannot delete section with assigned students")
        db.session.delete(section)

    return success_response(message="Section deleted successfully")


# ---------- Subjects ----------

@service_operation("Failed to create subject")
def create_subject(school_id, name, code=None, class_id=None):
    if not name:
        raise ValidationError("Subject name is required")

    with transaction():
        if class_id is not None:
            get_owned(SchoolClass, school_id, class_id, "Class")
        subject = Subject(school_id=school_id, name=name, code=code, class_id=class_id)
        db.session.add(subject)

    return success_response(to_dict(subject), "Subject created successfully")


@service_operation("Failed to fetch subjects")
def list_subjects(school_id, class_id=None):
    subjects = (
        Subject.query.filter(
            Subject.school_id == school_id,
            *build_filters(Subject, equals={"class_id": class_id}),
        )
        .order_by(Subject.name)
        .all()
    )
    return success_response([to_dict(s) for s in subjects])


@service_operation("Failed to update subject")
def update_subject(school_id, subject_id, **fields):
    changes = _pick(fields, SUBJECT_FIELDS)
    if not changes:
        raise ValidationError("No fields to update")

    with transaction():
        subject = get_owned(Subject, school_id, subject_id, "Subject")
        if "class_id" in changes:
            get_owned(SchoolClass, school_id, changes["class_id"], "Class")
        for key, value in changes.items():
            setattr(subject, key, value)
        subject.touch()

    return success_response(to_dict(subject), "Subject updated successfully")


@service_operation("Failed to delete subject")
def delete_subject(school_id, subject_id):
    with transaction():
        subject = get_owned(Subject, school_id, subject_id, "Subject")
        db.session.delete(subject)

    return success_response(message="Subject deleted successfully")
