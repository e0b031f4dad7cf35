"""Tenant registry: schools and their bootstrap administrator.

These are platform-operator operations, so they are not gated on the
school being active.
"""
import logging

from schoolhub.errors import ConflictError, NotFoundError, ValidationError
from schoolhub.extensions import db
from schoolhub.models import School, User, UserRoleEnum, Subscription
from schoolhub.utils.audit import log_event
from schoolhub.utils.decorators import service_operation
from schoolhub.utils.pagination import apply_pagination_and_search
from schoolhub.utils.responses import success_response, paginated
from schoolhub.utils.serialization import to_dict
from schoolhub.utils.transaction import transaction

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "email", "phone", "address")


def _get_school(school_id):
    school = db.session.get(School, school_id)
    if not school:
        raise NotFoundError("School not found")
    return school


@service_operation("Failed to create school", tenant_scoped=False)
def create_school(name, slug, email, phone, admin_name, admin_email, admin_password, address=None):
    if not all([name, slug, email, admin_name, admin_email, admin_password]):
        raise ValidationError("Missing required fields")

    slug = slug.strip().lower()
    email = email.strip().lower()
    admin_email = admin_email.strip().lower()

    with transaction():
        if School.query.filter_by(slug=slug).first():
            raise ConflictError("School slug already exists")
        if School.query.filter_by(email=email).first():
            raise ConflictError("School email already exists")
        if User.query.filter_by(email=admin_email).first():
            raise ConflictError("Admin email already exists")

        school = School(name=name.strip(), slug=slug, email=email, phone=phone, address=address, is_active=True)
        db.session.add(school)
        db.session.flush()

        admin = User(
            school_id=school.id,
            name=admin_name,
            email=admin_email,
            role=UserRoleEnum.school_admin,
            is_active=True,
        )
        admin.set_password(admin_password)
        db.session.add(admin)

    log_event("SCHOOL_CREATED", school.id, f"slug={slug}")
    logger.info("Created school %s (%s)", school.id, slug)
    return success_response(
        {"school": school.to_dict(), "admin": admin.to_dict()},
        "School and admin user created successfully",
    )


@service_operation("Failed to fetch schools", tenant_scoped=False)
def list_schools(page=1, limit=10, search=None):
    query = School.query.order_by(School.created_at.desc(), School.id.desc())
    schools, meta = apply_pagination_and_search(query, School, search, ["name", "slug"], page, limit)

    items = []
    for school in schools:
        data = school.to_dict()
        data["user_count"] = User.query.filter_by(school_id=school.id).count()
        items.append(data)
    return paginated(items, meta)


@service_operation("Failed to fetch school", tenant_scoped=False)
def get_school(school_id):
    school = _get_school(school_id)
    data = school.to_dict()
    data["user_count"] = User.query.filter_by(school_id=school.id).count()
    data["subscriptions"] = [
        to_dict(s) for s in Subscription.query.filter_by(school_id=school.id).order_by(Subscription.start_date.desc())
    ]
    return success_response(data)


@service_operation("Failed to update school", tenant_scoped=False)
def update_school(school_id, **fields):
    changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}
    if not changes:
        raise ValidationError("No fields to update")

    with transaction():
        school = _get_school(school_id)
        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()
            clash = School.query.filter(School.email == changes["email"], School.id != school.id).first()
            if clash:
                raise ConflictError("Email already exists")
        for key, value in changes.items():
            setattr(school, key, value)

    return success_response(school.to_dict(), "School updated successfully")


@service_operation("Failed to activate school", tenant_scoped=False)
def activate_school(school_id):
    with transaction():
        school = _get_school(school_id)
        school.is_active = True

    log_event("SCHOOL_ACTIVATED", school.id)
    return success_response(school.to_dict(), "School activated successfully")


def deactivate_school_and_users(school_id):
    """Deactivate the school and every user account it owns, inside the caller's transaction."""
    school = _get_school(school_id)
    school.is_active = False
    User.query.filter_by(school_id=school.id).update({"is_active": False}, synchronize_session="fetch")
    return school


@service_operation("Failed to deactivate school", tenant_scoped=False)
def deactivate_school(school_id):
    with transaction():
        school = deactivate_school_and_users(school_id)

    log_event("SCHOOL_DEACTIVATED", school.id, level="WARNING")
    return success_response(school.to_dict(), "School and its users deactivated successfully")
