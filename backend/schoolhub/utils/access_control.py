from schoolhub.errors import NotFoundError, InvalidStateError
from schoolhub.extensions import db
from schoolhub.models import School

def require_active_school(school_id):
    """
    Returns the school for school_id, gating every tenant operation.
    - Raises NotFoundError when the school does not exist.
    - Raises InvalidStateError when the school has been deactivated.
    """
    school = db.session.get(School, school_id) if school_id is not None else None
    if not school:
        raise NotFoundError("School not found")
    if not school.is_active:
        raise InvalidStateError("School is not active")
    return school

def get_owned(model, school_id, object_id, label=None):
    """
    Loads a tenant row by id, always including school_id in the predicate so a
    bare id from another school is never trusted.
    """
    instance = model.query.filter_by(id=object_id, school_id=school_id).first()
    if not instance:
        raise NotFoundError(f"{label or model.__name__} not found")
    return instance
