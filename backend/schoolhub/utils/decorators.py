import logging
from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from schoolhub.errors import ServiceError, TransactionFailure
from schoolhub.extensions import db
from schoolhub.utils.access_control import require_active_school
from schoolhub.utils.responses import error_response

logger = logging.getLogger(__name__)

def service_operation(failure_message, tenant_scoped=True):
    """
    Wraps a public service function so it returns the uniform envelope.
    Usage: @service_operation("Failed to close academic year")

    - Tenant-scoped operations take school_id as their first argument and
      are refused when the school is missing or inactive.
    - ServiceError ➜ rollback, failure envelope carrying its error_type.
    - IntegrityError ➜ rollback, "conflict" failure envelope.
    - Any other database fault ➜ rollback, re-raised as TransactionFailure.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                if tenant_scoped:
                    school_id = kwargs["school_id"] if "school_id" in kwargs else (args[0] if args else None)
                    require_active_school(school_id)
                return fn(*args, **kwargs)
            except ServiceError as exc:
                db.session.rollback()
                logger.info("%s: %s", fn.__name__, exc.message)
                return error_response(exc.message, exc.error_type)
            except IntegrityError as exc:
                db.session.rollback()
                logger.warning("%s: integrity error: %s", fn.__name__, exc.orig)
                return error_response(f"{failure_message}: conflicting record", "conflict")
            except SQLAlchemyError as exc:
                db.session.rollback()
                logger.exception(failure_message)
                raise TransactionFailure(failure_message) from exc
        return wrapper
    return decorator
