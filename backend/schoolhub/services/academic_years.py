"""Academic calendar manager.

A school's years move forward only: open, optionally current, then closed.
At most one open year is current and open years never overlap.
"""
import logging
from datetime import datetime

from schoolhub.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from schoolhub.extensions import db
from schoolhub.models import AcademicYear, AuditLog
from schoolhub.utils.access_control import get_owned
from schoolhub.utils.audit import log_event
from schoolhub.utils.dates import parse_date
from schoolhub.utils.decorators import service_operation
from schoolhub.utils.pagination import apply_pagination_and_search
from schoolhub.utils.responses import success_response, paginated
from schoolhub.utils.serialization import to_dict
from schoolhub.utils.transaction import transaction

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "start_date", "end_date")


def _find_overlap(school_id, start_date, end_date, exclude_id=None):
    # inclusive at both ends: a year starting on another's last day overlaps it
    query = AcademicYear.query.filter(
        AcademicYear.school_id == school_id,
        AcademicYear.is_closed == False,  # noqa: E712
        AcademicYear.start_date <= end_date,
        AcademicYear.end_date >= start_date,
    )
    if exclude_id is not None:
        query = query.filter(AcademicYear.id != exclude_id)
    return query.first()


def _clear_current(school_id, keep_id):
    AcademicYear.query.filter(
        AcademicYear.school_id == school_id,
        AcademicYear.id != keep_id,
    ).update({"is_current": False}, synchronize_session="fetch")


def ensure_year_open(school_id, year_id):
    """Load a year of this school for a write, refusing closed years."""
    year = get_owned(AcademicYear, school_id, year_id, "Academic year")
    if year.is_closed:
        raise InvalidStateError("Academic year is closed")
    return year


@service_operation("Failed to create academic year")
def create_academic_year(school_id, name, start_date, end_date):
    if not name:
        raise ValidationError("Name is required")
    start_date = parse_date(start_date, "start_date")
    end_date = parse_date(end_date, "end_date")
    if not start_date or not end_date:
        raise ValidationError("start_date and end_date are required")
    if start_date >= end_date:
        raise ValidationError("start_date must be before end_date")

    with transaction():
        clash = _find_overlap(school_id, start_date, end_date)
        if clash:
            raise ConflictError(f"Academic year overlaps with existing year '{clash.name}'")

        is_first = AcademicYear.query.filter_by(school_id=school_id).count() == 0
        year = AcademicYear(
            school_id=school_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            is_current=is_first,
            is_closed=False,
        )
        db.session.add(year)

    logger.info("Created academic year %s for school %s (current=%s)", year.id, school_id, year.is_current)
    return success_response(to_dict(year), "Academic year created successfully")


@service_operation("Failed to fetch academic years")
def list_academic_years(school_id, page=1, limit=None):
    query = AcademicYear.query.filter_by(school_id=school_id).order_by(AcademicYear.start_date.desc())
    years, meta = apply_pagination_and_search(query, AcademicYear, page=page, limit=limit)
    return paginated([to_dict(y) for y in years], meta)


@service_operation("Failed to fetch academic year")
def get_academic_year(school_id, year_id):
    year = get_owned(AcademicYear, school_id, year_id, "Academic year")
    return success_response(to_dict(year))


@service_operation("Failed to fetch current academic year")
def get_current_academic_year(school_id):
    year = AcademicYear.query.filter_by(school_id=school_id, is_current=True, is_closed=False).first()
    if not year:
        raise NotFoundError("No current academic year set")
    return success_response(to_dict(year))


@service_operation("Failed to set current academic year")
def set_current_academic_year(school_id, year_id):
    with transaction():
        year = get_owned(AcademicYear, school_id, year_id, "Academic year")
        if year.is_closed:
            raise InvalidStateError("Closed academic year cannot be set as current")

        # both writes go out in the same transaction
        _clear_current(school_id, year.id)
        year.is_current = True
        year.touch()

    logger.info("Academic year %s is now current for school %s", year.id, school_id)
    return success_response(to_dict(year), "Current academic year updated successfully")


@service_operation("Failed to close academic year")
def close_academic_year(school_id, year_id):
    successor = None
    with transaction():
        year = get_owned(AcademicYear, school_id, year_id, "Academic year")
        if year.is_closed:
            raise InvalidStateError("Academic year is already closed")

        if year.is_current:
            successor = (
                AcademicYear.query.filter(
                    AcademicYear.school_id == school_id,
                    AcademicYear.id != year.id,
                    AcademicYear.is_closed == False,  # noqa: E712
                )
                .order_by(AcademicYear.start_date.desc())
                .first()
            )
            if successor:
                successor.is_current = True
                successor.touch()

        year.is_closed = True
        year.is_current = False
        year.closed_at = datetime.utcnow()
        year.touch()

        description = f"Closed academic year {year.name} (id={year.id})"
        if successor:
            description += f"; current year is now {successor.name} (id={successor.id})"
        db.session.add(AuditLog(school_id=school_id, action="ACADEMIC_YEAR_CLOSED", details=description))

    log_event("ACADEMIC_YEAR_CLOSED", school_id, description)
    data = to_dict(year)
    data["new_current_year"] = to_dict(successor) if successor else None
    return success_response(data, "Academic year closed successfully")


@service_operation("Failed to update academic year")
def update_academic_year(school_id, year_id, **fields):
    changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS and v is not None}

    with transaction():
        year = get_owned(AcademicYear, school_id, year_id, "Academic year")
        if year.is_closed:
            raise InvalidStateError("Closed academic years cannot be edited")
        if not changes:
            raise ValidationError("No fields to update")

        start_date = parse_date(changes.get("start_date"), "start_date") or year.start_date
        end_date = parse_date(changes.get("end_date"), "end_date") or year.end_date
        if start_date >= end_date:
            raise ValidationError("start_date must be before end_date")

        if "start_date" in changes or "end_date" in changes:
            clash = _find_overlap(school_id, start_date, end_date, exclude_id=year.id)
            if clash:
                raise ConflictError(f"Academic year overlaps with existing year '{clash.name}'")

        if "name" in changes:
            year.name = changes["name"]
        year.start_date = start_date
        year.end_date = end_date
        year.touch()

    return success_response(to_dict(year), "Academic year updated successfully")
