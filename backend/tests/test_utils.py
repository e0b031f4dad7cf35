from datetime import date
from decimal import Decimal

import pytest

from schoolhub.errors import NotFoundError, ValidationError
from schoolhub.models import AttendanceRecord, School, SchoolClass
from schoolhub.services import catalog
from schoolhub.utils.access_control import get_owned
from schoolhub.utils.audit import log_event
from schoolhub.utils.dates import parse_date
from schoolhub.utils.filters import build_filters
from schoolhub.utils.pagination import apply_pagination_and_search
from schoolhub.utils.serialization import to_primitive


def test_pagination_meta(school_id, current_year):
    for n in range(7):
        catalog.create_class(school_id, current_year["id"], f"Grade {n + 1}")

    query = SchoolClass.query.filter_by(school_id=school_id).order_by(SchoolClass.name)
    items, meta = apply_pagination_and_search(query, SchoolClass, page=3, limit=3)
    assert meta == {"page": 3, "limit": 3, "total": 7, "totalPages": 3}
    assert [c.name for c in items] == ["Grade 7"]


def test_pagination_defaults_and_search(app, school_id, current_year):
    catalog.create_class(school_id, current_year["id"], "Nursery")
    catalog.create_class(school_id, current_year["id"], "Grade 1")

    items, meta = apply_pagination_and_search(
        SchoolClass.query, SchoolClass, "nurs", ["name"], page=0, limit=None
    )
    assert meta["page"] == 1
    assert meta["limit"] == app.config["DEFAULT_PAGE_SIZE"]
    assert [c.name for c in items] == ["Nursery"]


def test_pagination_of_empty_result(app):
    items, meta = apply_pagination_and_search(School.query, School, page=1, limit=5)
    assert items == []
    assert meta["totalPages"] == 0


def test_build_filters_skips_missing_values():
    assert build_filters(AttendanceRecord, equals={"class_id": None}, ranges={"date": (None, None)}) == []

    conditions = build_filters(
        AttendanceRecord,
        equals={"class_id": 3, "section_id": None},
        ranges={"date": (date(2024, 1, 1), None)},
    )
    assert len(conditions) == 2


def test_get_owned_scopes_by_school(school_id, school_class):
    assert get_owned(SchoolClass, school_id, school_class["id"]).name == "Grade 5"
    with pytest.raises(NotFoundError, match="Class not found"):
        get_owned(SchoolClass, school_id + 1, school_class["id"], "Class")


def test_parse_date():
    assert parse_date("2024-02-29") == date(2024, 2, 29)
    assert parse_date("2024-02-29T10:00:00") == date(2024, 2, 29)
    assert parse_date(None) is None
    with pytest.raises(ValidationError):
        parse_date("29/02/2024", "due_date")


def test_to_primitive():
    assert to_primitive(Decimal("12.50")) == 12.5
    assert to_primitive(date(2024, 1, 2)) == "2024-01-02"
    assert to_primitive("x") == "x"


def test_log_event_appends_lines(app):
    log_event("FIRST", 1, "one")
    log_event("SECOND", level="warning")

    with open(app.config["AUDIT_LOG_FILE"]) as log_file:
        lines = log_file.read().splitlines()
    assert len(lines) == 2
    assert "[INFO] EVENT: FIRST | SCHOOL: 1 | DESC: one" in lines[0]
    assert "[WARNING] EVENT: SECOND | SCHOOL: N/A | DESC: N/A" in lines[1]
